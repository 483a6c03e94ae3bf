"""
Use Cases Layer

    from pagelens.application.usecases import ProofreadDocumentUseCase
"""

from .analyze_content import AnalyzeContentUseCase
from .proofread_document import ProofreadDocumentUseCase
from .stream_analysis import StreamAnalysisUseCase

__all__ = [
    "AnalyzeContentUseCase",
    "ProofreadDocumentUseCase",
    "StreamAnalysisUseCase",
]
