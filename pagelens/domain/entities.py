"""
Name: Domain Entities

Responsibilities:
  - Define core data structures: Chunk, Record, ChunkResult, TokenUsage,
    stream events, provider configuration and analysis results
  - Keep invariants close to the data (immutable value objects)

Collaborators:
  - domain.services: provider and sink contracts use these types
  - application: segmenter/dispatcher/merger/orchestrator produce and consume them

Constraints:
  - No infrastructure dependencies (no SDKs, no HTTP)
  - Entities are frozen: never mutated after creation

Notes:
  - Offsets are character offsets in the original (source) text
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Optional, Union

if TYPE_CHECKING:
    from ..crosscutting.exceptions import ProviderError


# ---------------------------------------------------------------------------
# Records (findings)
# ---------------------------------------------------------------------------


class RecordKind(str, Enum):
    """R: Kind of finding."""

    TYPO = "typo"
    GRAMMAR = "grammar"
    STYLE_ISSUE = "styleIssue"

    @classmethod
    def parse(cls, value: object) -> Optional["RecordKind"]:
        """
        R: Normalize a wire value into a RecordKind.

        Accepts camelCase/short aliases and the legacy "japanese"
        (unnatural phrasing) kind. Returns None for unknown kinds.
        """
        if not isinstance(value, str):
            return None
        return _KIND_ALIASES.get(value.strip().lower())


_KIND_ALIASES: dict[str, RecordKind] = {
    "typo": RecordKind.TYPO,
    "grammar": RecordKind.GRAMMAR,
    "style_issue": RecordKind.STYLE_ISSUE,
    "styleissue": RecordKind.STYLE_ISSUE,
    "style": RecordKind.STYLE_ISSUE,
    "japanese": RecordKind.STYLE_ISSUE,
}


class Severity(str, Enum):
    """R: Severity of a finding, ranked error < warning < info."""

    ERROR = "error"
    WARNING = "warning"
    INFO = "info"

    @property
    def rank(self) -> int:
        return _SEVERITY_RANK[self]

    @classmethod
    def parse(cls, value: object) -> "Severity":
        """R: Normalize a wire value; unknown or missing means WARNING."""
        if isinstance(value, str):
            try:
                return cls(value.strip().lower())
            except ValueError:
                pass
        return cls.WARNING


_SEVERITY_RANK: dict[Severity, int] = {
    Severity.ERROR: 0,
    Severity.WARNING: 1,
    Severity.INFO: 2,
}


@dataclass(frozen=True)
class TextSpan:
    """Half-open [start, end) span in source coordinates."""

    start: int
    end: int


@dataclass(frozen=True)
class Record:
    """
    A detected finding with a suggested fix.

    `source_chunk_id` and `position` are filled when the record was parsed
    from a chunk of a segmented document.
    """

    kind: RecordKind
    severity: Severity
    original: str
    suggestion: str
    explanation: Optional[str] = None
    source_chunk_id: Optional[int] = None
    position: Optional[TextSpan] = None

    @property
    def dedup_key(self) -> tuple[str, str, str]:
        return (self.kind.value, self.original, self.suggestion)

    def to_dict(self) -> dict:
        return {
            "kind": self.kind.value,
            "severity": self.severity.value,
            "original": self.original,
            "suggestion": self.suggestion,
            "explanation": self.explanation,
            "source_chunk_id": self.source_chunk_id,
            "position": (
                {"start": self.position.start, "end": self.position.end}
                if self.position
                else None
            ),
        }


# ---------------------------------------------------------------------------
# Chunking
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Chunk:
    """
    A bounded, boundary-aware slice of the source text.

    Invariant: end_offset - start_offset == len(text).
    `overlap_text` is the text immediately preceding start_offset; it is
    diagnostic only and never part of the analysis payload.
    """

    id: int
    text: str
    start_offset: int
    end_offset: int
    overlap_text: Optional[str] = None

    def __post_init__(self) -> None:
        if self.end_offset - self.start_offset != len(self.text):
            raise ValueError(
                f"Chunk {self.id}: offsets [{self.start_offset}, {self.end_offset}) "
                f"do not match text length {len(self.text)}"
            )


@dataclass(frozen=True)
class ChunkResult:
    """
    Outcome of analyzing one chunk.

    A degraded result (all attempts exhausted) has no records, zero
    elapsed time and `degraded=True`.
    """

    chunk_id: int
    records: tuple[Record, ...] = ()
    elapsed_ms: int = 0
    degraded: bool = False

    @classmethod
    def degraded_for(cls, chunk_id: int) -> "ChunkResult":
        return cls(chunk_id=chunk_id, records=(), elapsed_ms=0, degraded=True)


# ---------------------------------------------------------------------------
# Provider-facing values
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class TokenUsage:
    """Provider-reported token usage. Advisory only."""

    used: int
    quota: int
    remaining: int

    def to_dict(self) -> dict:
        return {"used": self.used, "quota": self.quota, "remaining": self.remaining}


@dataclass(frozen=True)
class ChatMessage:
    """One turn of conversation history."""

    role: str  # user | assistant
    content: str


class ProviderKind(str, Enum):
    """R: Provider families selectable as primary."""

    LOCAL = "local"
    GEMINI = "gemini"


@dataclass(frozen=True)
class ProviderConfig:
    """Active provider configuration owned by an external settings store."""

    primary_provider_kind: ProviderKind = ProviderKind.LOCAL
    credential: Optional[str] = None
    model_name: str = "gemini-2.5-flash"
    fallback_enabled: bool = True


# ---------------------------------------------------------------------------
# Requests / results
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class AnalysisRequest:
    """Inbound request from the UI collaborator."""

    instruction: str
    content: str
    history: tuple[ChatMessage, ...] = ()


@dataclass(frozen=True)
class AnalysisResult:
    """Single-shot analysis result."""

    result_text: str
    provider_name: str
    token_usage: Optional[TokenUsage] = None


@dataclass(frozen=True)
class AnalysisStats:
    """Totals for a structured analysis."""

    total: int = 0
    by_kind: dict[str, int] = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {"total": self.total, "by_kind": dict(self.by_kind)}


@dataclass(frozen=True)
class ProofreadReport:
    """Structured analysis of a whole (possibly segmented) document."""

    records: tuple[Record, ...]
    stats: AnalysisStats
    chunk_count: int
    failed_chunk_ids: tuple[int, ...] = ()
    cancelled: bool = False


@dataclass(frozen=True)
class AvailabilityReport:
    """Availability of the configured providers."""

    primary: bool
    primary_provider: str
    fallback: Optional[bool] = None
    fallback_provider: Optional[str] = None


# ---------------------------------------------------------------------------
# Stream events
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class TextDelta:
    """Newly produced text since the previous delta."""

    text: str

    def to_dict(self) -> dict:
        return {"type": "text_delta", "text": self.text}


@dataclass(frozen=True)
class PartialRecords:
    """Records extracted (speculatively or authoritatively) from the stream."""

    records: tuple[Record, ...]
    final: bool = False

    def to_dict(self) -> dict:
        return {
            "type": "partial_records",
            "final": self.final,
            "records": [r.to_dict() for r in self.records],
        }


@dataclass(frozen=True)
class StreamDone:
    """Terminal success event."""

    final_text: str
    usage: Optional[TokenUsage] = None
    provider_name: str = ""
    done: bool = True

    def to_dict(self) -> dict:
        return {
            "type": "done",
            "done": self.done,
            "final_text": self.final_text,
            "usage": self.usage.to_dict() if self.usage else None,
            "provider_name": self.provider_name,
        }


@dataclass(frozen=True)
class StreamFailed:
    """Terminal failure event."""

    error: "ProviderError"

    def to_dict(self) -> dict:
        return {"type": "error", "error": self.error.to_dict()}


StreamEvent = Union[TextDelta, PartialRecords, StreamDone, StreamFailed]


def is_terminal(event: StreamEvent) -> bool:
    """R: True for the events that end a stream."""
    return isinstance(event, (StreamDone, StreamFailed))
