from .chunker import TextSegmenter, reconstruct, split

__all__ = ["TextSegmenter", "reconstruct", "split"]
