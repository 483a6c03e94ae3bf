"""
PageLens analysis engine.

Chunked proofreading, provider fail-over and streaming record extraction
over local and remote language models.
"""

__version__ = "0.1.0"
