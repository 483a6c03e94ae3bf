"""
Name: Text Segmenter

Responsibilities:
  - Split long text into size-bounded, boundary-aware, overlapping chunks
  - Prefer natural cuts (sentence terminators, newlines, spaces)
  - Attach the preceding overlap text for diagnostics

Collaborators:
  - domain.entities.Chunk
  - application.usecases.proofread_document: segments page content

Constraints:
  - Deterministic: same input + parameters => identical boundaries
  - Every chunk satisfies end_offset - start_offset == len(text)
  - Chunk starts never regress: a chunk starts at most `overlap_chars`
    before the previous end, and never at or before the previous start

Notes:
  - Chunks keep raw text (no stripping) so offsets stay exact
"""

from __future__ import annotations

from typing import Final

from ...domain.entities import Chunk

# R: Characters after which a cut is allowed (sentence terminators first).
_SENTENCE_TERMINATORS: Final[tuple[str, ...]] = (".", "!", "?", "。", "！", "？")
_BOUNDARY_CHARS: Final[tuple[str, ...]] = _SENTENCE_TERMINATORS + ("\n", " ")


def _find_boundary(text: str, lo: int, hi: int) -> int:
    """
    Return the rightmost boundary position p with lo <= p < hi, or -1.

    The cut is placed right after p (p + 1), so the boundary character
    stays with the chunk it ends.
    """
    best = -1
    for sep in _BOUNDARY_CHARS:
        pos = text.rfind(sep, lo, hi)
        if pos > best:
            best = pos
    return best


def _validate(max_chunk_chars: int, overlap_chars: int) -> None:
    if max_chunk_chars <= 0:
        raise ValueError(f"max_chunk_chars must be > 0, got {max_chunk_chars}")
    if overlap_chars < 0:
        raise ValueError(f"overlap_chars must be >= 0, got {overlap_chars}")


def split(text: str, max_chunk_chars: int, overlap_chars: int) -> list[Chunk]:
    """
    Split `text` into overlapping chunks of at most `max_chunk_chars`.

    - Short text (<= max_chunk_chars) yields a single chunk, no overlap.
    - Otherwise each window [start, start + max) is cut after the rightmost
      boundary strictly after `start`; with no boundary, a hard cut.
    - The next chunk starts `overlap_chars` before the previous end, clamped
      to the previous end when the overlap would not move past the
      previous start.
    """
    _validate(max_chunk_chars, overlap_chars)
    text = text or ""

    if len(text) <= max_chunk_chars:
        return [Chunk(id=0, text=text, start_offset=0, end_offset=len(text))]

    chunks: list[Chunk] = []
    start = 0
    prev_end = 0

    while True:
        limit = min(start + max_chunk_chars, len(text))
        end = limit

        if limit < len(text):
            # R: The cut must land past the previous end to guarantee progress.
            lo = max(start + 1, prev_end)
            boundary = _find_boundary(text, lo, limit)
            if boundary != -1:
                end = boundary + 1

        overlap_text = None
        if start > 0:
            overlap_text = text[max(0, start - overlap_chars) : start]

        chunks.append(
            Chunk(
                id=len(chunks),
                text=text[start:end],
                start_offset=start,
                end_offset=end,
                overlap_text=overlap_text,
            )
        )

        if end >= len(text):
            break

        next_start = end - overlap_chars
        if next_start <= start:
            next_start = end
        prev_end = end
        start = next_start

    return chunks


def reconstruct(chunks: list[Chunk]) -> str:
    """
    Rebuild the source text from chunks, skipping overlap regions.

    Useful to verify segmentation and to re-merge chunk-level edits.
    """
    parts: list[str] = []
    covered = 0
    for chunk in chunks:
        skip = max(0, covered - chunk.start_offset)
        parts.append(chunk.text[skip:])
        covered = max(covered, chunk.end_offset)
    return "".join(parts)


class TextSegmenter:
    """
    Segmentation service bound to configured sizes.

    Validates parameters on construction; `split()` delegates to `split`.
    """

    def __init__(self, max_chunk_chars: int = 20_000, overlap_chars: int = 500):
        _validate(max_chunk_chars, overlap_chars)
        self.max_chunk_chars = max_chunk_chars
        self.overlap_chars = overlap_chars

    def split(self, text: str) -> list[Chunk]:
        return split(
            text,
            max_chunk_chars=self.max_chunk_chars,
            overlap_chars=self.overlap_chars,
        )
