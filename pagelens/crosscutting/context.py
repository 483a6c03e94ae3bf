"""
Name: Request Context (ContextVars)

Responsibilities:
  - Store request-scoped data (request_id, provider) for log correlation
  - Provide async-safe context without parameter passing

Collaborators:
  - application.orchestrator: sets request_id at the start of each request
  - logger.py: reads context for log enrichment

Notes:
  - contextvars are isolated per asyncio task
"""

from contextvars import ContextVar
from uuid import uuid4

# R: Analysis request identifier - set by the orchestrator
request_id_var: ContextVar[str] = ContextVar("request_id", default="")

# R: Provider currently serving the request
provider_var: ContextVar[str] = ContextVar("provider", default="")


def new_request_id() -> str:
    """R: Generate and bind a fresh request id, returning it."""
    request_id = uuid4().hex[:12]
    request_id_var.set(request_id)
    return request_id


def get_context_dict() -> dict:
    """
    R: Get current context as dict for log enrichment.

    Returns:
        Dict with non-empty context values only
    """
    ctx = {}

    if val := request_id_var.get():
        ctx["request_id"] = val
    if val := provider_var.get():
        ctx["provider"] = val

    return ctx


def clear_context() -> None:
    """R: Reset all context vars."""
    request_id_var.set("")
    provider_var.set("")
