"""
Domain layer: entities and service contracts (no infrastructure).
"""

from .entities import (
    AnalysisRequest,
    AnalysisResult,
    AnalysisStats,
    AvailabilityReport,
    ChatMessage,
    Chunk,
    ChunkResult,
    PartialRecords,
    ProofreadReport,
    ProviderConfig,
    ProviderKind,
    Record,
    RecordKind,
    Severity,
    StreamDone,
    StreamEvent,
    StreamFailed,
    TextDelta,
    TextSpan,
    TokenUsage,
)
from .services import AnalysisProvider, StreamSink, TextSegmenterService

__all__ = [
    "AnalysisProvider",
    "AnalysisRequest",
    "AnalysisResult",
    "AnalysisStats",
    "AvailabilityReport",
    "ChatMessage",
    "Chunk",
    "ChunkResult",
    "PartialRecords",
    "ProofreadReport",
    "ProviderConfig",
    "ProviderKind",
    "Record",
    "RecordKind",
    "Severity",
    "StreamDone",
    "StreamEvent",
    "StreamFailed",
    "StreamSink",
    "TextDelta",
    "TextSegmenterService",
    "TextSpan",
    "TokenUsage",
]
