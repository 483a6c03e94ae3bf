"""
Name: Result Merger

Responsibilities:
  - Merge per-chunk results into one ordered, duplicate-free record list
  - Compute totals per record kind

Constraints:
  - Two records are duplicates iff (kind, original, suggestion) match;
    the first occurrence in chunk order wins
  - Output is stably sorted by severity (error, warning, info)
"""

from __future__ import annotations

from collections import Counter
from typing import Iterable

from ..domain.entities import AnalysisStats, ChunkResult, Record


def merge_records(records: Iterable[Record]) -> list[Record]:
    seen: set[tuple[str, str, str]] = set()
    unique: list[Record] = []
    for record in records:
        key = record.dedup_key
        if key in seen:
            continue
        seen.add(key)
        unique.append(record)
    # R: sorted() is stable, so equal severities keep chunk order
    return sorted(unique, key=lambda r: r.severity.rank)


def merge(results: Iterable[ChunkResult]) -> list[Record]:
    """R: Flatten results in chunk-id order, dedupe, then sort by severity."""
    ordered = sorted(results, key=lambda r: r.chunk_id)
    return merge_records(r for result in ordered for r in result.records)


def compute_stats(records: Iterable[Record]) -> AnalysisStats:
    counts = Counter(record.kind.value for record in records)
    return AnalysisStats(total=sum(counts.values()), by_kind=dict(counts))
