from .batch_dispatcher import ChunkBatchDispatcher
from .orchestrator import AnalysisOrchestrator, ProviderFactory
from .partial_extractor import ExtractingStreamSink, StreamRecordExtractor, is_complete
from .record_parser import parse_records
from .result_merger import compute_stats, merge

__all__ = [
    "AnalysisOrchestrator",
    "ChunkBatchDispatcher",
    "ExtractingStreamSink",
    "ProviderFactory",
    "StreamRecordExtractor",
    "compute_stats",
    "is_complete",
    "merge",
    "parse_records",
]
