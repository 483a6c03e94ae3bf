"""
Name: Record Parser

Responsibilities:
  - Turn a raw model response into Records
  - Accept fenced or bare JSON `{"errors": [...]}` payloads
  - Fall back to line-oriented label parsing when JSON is unusable
  - Resolve record positions into source coordinates

Collaborators:
  - application.batch_dispatcher: default parser for chunk responses
  - application.partial_extractor: shares record_from_mapping

Constraints:
  - Never raises: unusable text yields an empty list
  - A record needs a known kind and a non-empty suggestion

Notes:
  - Both "kind" and the legacy "type" key are accepted
"""

from __future__ import annotations

import json
import re
from typing import Any, Optional

from ..crosscutting.logger import logger
from ..domain.entities import Chunk, Record, RecordKind, Severity, TextSpan

_FENCE_RE = re.compile(r"```(?:json)?\s*(.*?)```", re.DOTALL | re.IGNORECASE)

# R: "typo: X -> Y" style lines (English and Japanese labels)
_LABEL_RE = re.compile(
    r"^\s*[-*]?\s*(?P<label>typo|grammar|style|誤字|誤字脱字|文法エラー|文法)\s*[:：]\s*"
    r"(?P<original>.+?)\s*(?:->|→|⇒)\s*(?P<suggestion>.+?)\s*$",
    re.IGNORECASE | re.MULTILINE,
)

_LABEL_KINDS = {
    "typo": RecordKind.TYPO,
    "誤字": RecordKind.TYPO,
    "誤字脱字": RecordKind.TYPO,
    "grammar": RecordKind.GRAMMAR,
    "文法": RecordKind.GRAMMAR,
    "文法エラー": RecordKind.GRAMMAR,
    "style": RecordKind.STYLE_ISSUE,
}


def strip_code_fences(text: str) -> str:
    match = _FENCE_RE.search(text)
    if match:
        return match.group(1).strip()
    return text.strip()


def _load_json(text: str) -> Any:
    """Parse the whole text, or the outermost {...} region, as JSON."""
    candidate = strip_code_fences(text)
    try:
        return json.loads(candidate)
    except (ValueError, RecursionError):
        pass

    first = candidate.find("{")
    last = candidate.rfind("}")
    if first == -1 or last <= first:
        return None
    try:
        return json.loads(candidate[first : last + 1])
    except (ValueError, RecursionError):
        return None


def resolve_position(original: str, chunk: Optional[Chunk]) -> Optional[TextSpan]:
    """
    R: Locate `original` inside the chunk, in source coordinates.

    Falls back to the whole chunk span when the text is not found.
    """
    if chunk is None:
        return None
    idx = chunk.text.find(original) if original else -1
    if idx == -1:
        return TextSpan(chunk.start_offset, chunk.end_offset)
    start = chunk.start_offset + idx
    return TextSpan(start, start + len(original))


def record_from_mapping(
    data: Any, chunk: Optional[Chunk] = None
) -> Optional[Record]:
    """R: Build a Record from one decoded JSON object, or None if invalid."""
    if not isinstance(data, dict):
        return None

    kind = RecordKind.parse(data.get("kind", data.get("type")))
    suggestion = data.get("suggestion")
    if kind is None or not isinstance(suggestion, str) or not suggestion.strip():
        return None

    original = data.get("original")
    original = original if isinstance(original, str) else ""
    explanation = data.get("explanation")

    return Record(
        kind=kind,
        severity=Severity.parse(data.get("severity")),
        original=original,
        suggestion=suggestion,
        explanation=explanation if isinstance(explanation, str) else None,
        source_chunk_id=chunk.id if chunk else None,
        position=resolve_position(original, chunk),
    )


def records_from_payload(payload: Any, chunk: Optional[Chunk] = None) -> list[Record]:
    if isinstance(payload, dict):
        items = payload.get("errors")
    elif isinstance(payload, list):
        items = payload
    else:
        return []
    if not isinstance(items, list):
        return []

    records = []
    for item in items:
        record = record_from_mapping(item, chunk)
        if record is not None:
            records.append(record)
    return records


def fallback_parse(text: str, chunk: Optional[Chunk] = None) -> list[Record]:
    """R: Recover records from labeled lines like `typo: teh -> the`."""
    records = []
    for match in _LABEL_RE.finditer(text):
        kind = _LABEL_KINDS.get(match.group("label").lower())
        if kind is None:
            continue
        original = match.group("original")
        records.append(
            Record(
                kind=kind,
                severity=Severity.WARNING,
                original=original,
                suggestion=match.group("suggestion"),
                source_chunk_id=chunk.id if chunk else None,
                position=resolve_position(original, chunk),
            )
        )
    return records


def parse_records(text: str, chunk: Optional[Chunk] = None) -> list[Record]:
    """
    Parse a model response into Records.

    JSON payloads are authoritative; when the text is not JSON at all the
    labeled-line fallback is tried.
    """
    if not text or not text.strip():
        return []

    payload = _load_json(text)
    if payload is not None:
        return records_from_payload(payload, chunk)

    records = fallback_parse(text, chunk)
    if not records:
        logger.debug(
            "Response contained no parseable records",
            extra={"chunk_id": chunk.id if chunk else None, "chars": len(text)},
        )
    return records
