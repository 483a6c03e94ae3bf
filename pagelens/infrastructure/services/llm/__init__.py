from .base import BaseProvider
from .fake_provider import FakeProvider
from .gemini_provider import GeminiProvider
from .local_provider import LocalModelProvider
from .ollama_backend import Availability, OllamaBackend, OllamaSession

__all__ = [
    "Availability",
    "BaseProvider",
    "FakeProvider",
    "GeminiProvider",
    "LocalModelProvider",
    "OllamaBackend",
    "OllamaSession",
]
