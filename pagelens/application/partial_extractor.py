"""
Name: Stream Record Extractor

Responsibilities:
  - Accumulate streamed fragments (delta or cumulative) into a buffer
  - Decide when the buffered JSON response is syntactically complete
  - Pull speculative records out of incomplete text for progressive UI
  - Provide a sink decorator that adds record events to a provider stream

Collaborators:
  - application.record_parser: authoritative parse and record validation
  - domain.entities: stream events

Constraints:
  - Partial records are hints only; the authoritative set always comes
    from the full parse of the final text
  - A strategy miss is silent; extraction never raises

Notes:
  - Strategies, in order: full JSON parse, whole flat record objects,
    loose kind/suggestion pairs
  - Nesting is tracked incrementally over deltas; the buffer is rescanned
    only by the extraction strategies
"""

from __future__ import annotations

import json
import re
from typing import Optional

from ..domain.entities import (
    Chunk,
    PartialRecords,
    Record,
    RecordKind,
    Severity,
    StreamDone,
    StreamEvent,
    StreamFailed,
    TextDelta,
)
from ..domain.services import StreamSink
from .record_parser import (
    parse_records,
    record_from_mapping,
    records_from_payload,
    strip_code_fences,
)

DEFAULT_SENTINEL = '"errors"'

# R: A flat JSON object (no nested braces) that mentions a kind and a suggestion
_RECORD_OBJECT_RE = re.compile(r"\{[^{}]*\}", re.DOTALL)
_TRAILING_COMMA_RE = re.compile(r",\s*}")
_LOOSE_PAIR_RE = re.compile(
    r'"(?:kind|type)"\s*:\s*"(?P<kind>[^"]+)"[^{}]*?'
    r'"suggestion"\s*:\s*"(?P<suggestion>(?:[^"\\]|\\.)*)"',
    re.DOTALL,
)


class _NestingScanner:
    """
    R: Brace/bracket depth tracker that can be fed text piecewise.

    Characters inside JSON strings are ignored. Going below depth zero is
    sticky: the text can never become balanced again.
    """

    __slots__ = ("depth", "in_string", "escaped", "underflow", "last")

    def __init__(self):
        self.depth = 0
        self.in_string = False
        self.escaped = False
        self.underflow = False
        self.last = ""

    def feed(self, text: str) -> None:
        for ch in text:
            if not ch.isspace():
                self.last = ch
            if self.in_string:
                if self.escaped:
                    self.escaped = False
                elif ch == "\\":
                    self.escaped = True
                elif ch == '"':
                    self.in_string = False
                continue
            if ch == '"':
                self.in_string = True
            elif ch in "{[":
                self.depth += 1
            elif ch in "}]":
                self.depth -= 1
                if self.depth < 0:
                    self.underflow = True

    @property
    def balanced(self) -> bool:
        return self.depth == 0 and not self.in_string and not self.underflow


def is_complete(text: str, sentinel: str = DEFAULT_SENTINEL) -> bool:
    """
    Best-effort completion check for a streamed JSON response.

    True when brace/bracket nesting is balanced (characters inside JSON
    strings ignored), the sentinel is present and the trimmed text ends
    with a closing brace.
    """
    scanner = _NestingScanner()
    scanner.feed(text)
    return _scanned_complete(scanner, text, sentinel)


def _scanned_complete(scanner: _NestingScanner, text: str, sentinel: str) -> bool:
    return scanner.last == "}" and scanner.balanced and sentinel in text


def _parse_object(raw: str) -> Optional[dict]:
    try:
        return json.loads(raw)
    except (ValueError, RecursionError):
        pass
    try:
        return json.loads(_TRAILING_COMMA_RE.sub("}", raw))
    except (ValueError, RecursionError):
        return None


def _full_parse(text: str, chunk: Optional[Chunk]) -> list[Record]:
    try:
        payload = json.loads(strip_code_fences(text))
    except (ValueError, RecursionError):
        return []
    return records_from_payload(payload, chunk)


def _object_scan(text: str, chunk: Optional[Chunk]) -> list[Record]:
    records = []
    for match in _RECORD_OBJECT_RE.finditer(text):
        record = record_from_mapping(_parse_object(match.group(0)), chunk)
        if record is not None:
            records.append(record)
    return records


def _loose_scan(text: str, chunk: Optional[Chunk]) -> list[Record]:
    records = []
    for match in _LOOSE_PAIR_RE.finditer(text):
        kind = RecordKind.parse(match.group("kind"))
        try:
            suggestion = json.loads(f'"{match.group("suggestion")}"')
        except ValueError:
            suggestion = match.group("suggestion")
        if kind is None or not suggestion.strip():
            continue
        records.append(
            Record(
                kind=kind,
                severity=Severity.WARNING,
                original="",
                suggestion=suggestion,
                source_chunk_id=chunk.id if chunk else None,
            )
        )
    return records


_STRATEGIES = (_full_parse, _object_scan, _loose_scan)


def extract_partial(text: str, chunk: Optional[Chunk] = None) -> list[Record]:
    """R: Records from the first strategy that finds any."""
    for strategy in _STRATEGIES:
        records = strategy(text, chunk)
        if records:
            return records
    return []


class StreamRecordExtractor:
    """
    Incremental extractor for one streamed response.

    `feed()` returns the events produced by a fragment: a PartialRecords
    event when the speculative record set grew, or StreamDone once the
    buffer is complete. Nothing is produced after completion.
    """

    def __init__(
        self,
        sentinel: str = DEFAULT_SENTINEL,
        cumulative: bool = False,
        chunk: Optional[Chunk] = None,
    ):
        self.sentinel = sentinel
        self.cumulative = cumulative
        self.chunk = chunk
        self.reset()

    def reset(self) -> None:
        self._buffer = ""
        self._seen_length = 0
        self._scanner = _NestingScanner()
        self._emitted_keys: set[tuple[str, str, str]] = set()
        self._complete = False

    @property
    def buffer(self) -> str:
        return self._buffer

    @property
    def complete(self) -> bool:
        return self._complete

    def _delta(self, fragment: str) -> str:
        if not self.cumulative:
            return fragment
        if len(fragment) < self._seen_length:
            # Cumulative source restarted; take the new text as a whole.
            self._buffer = ""
            self._seen_length = 0
            self._scanner = _NestingScanner()
        delta = fragment[self._seen_length :]
        self._seen_length = len(fragment)
        return delta

    def feed(self, fragment: str) -> list[StreamEvent]:
        if self._complete:
            return []

        delta = self._delta(fragment)
        self._buffer += delta
        self._scanner.feed(delta)

        if _scanned_complete(self._scanner, self._buffer, self.sentinel):
            self._complete = True
            return [StreamDone(final_text=self._buffer)]

        # Extraction reruns only when the delta closes an object or array.
        if "}" not in delta and "]" not in delta:
            return []

        records = extract_partial(self._buffer, self.chunk)
        keys = {record.dedup_key for record in records}
        if not keys - self._emitted_keys:
            return []
        self._emitted_keys |= keys
        return [PartialRecords(records=tuple(records))]

    def finalize(self, final_text: Optional[str] = None) -> list[Record]:
        """R: Authoritative records from the full parse of the final text."""
        return parse_records(final_text or self._buffer, self.chunk)


class ExtractingStreamSink:
    """
    StreamSink decorator adding record events to a provider stream.

    Provider events are forwarded unchanged. Speculative PartialRecords
    follow the deltas that produced them, and an authoritative
    PartialRecords(final=True) precedes the provider's StreamDone.
    """

    def __init__(
        self,
        downstream: StreamSink,
        extractor: Optional[StreamRecordExtractor] = None,
    ):
        self.downstream = downstream
        self.extractor = extractor or StreamRecordExtractor()

    def reset(self) -> None:
        """Drop buffered text when the request is re-issued from scratch."""
        self.extractor.reset()
        reset = getattr(self.downstream, "reset", None)
        if callable(reset):
            reset()

    def push(self, event: StreamEvent) -> None:
        if isinstance(event, TextDelta):
            self.downstream.push(event)
            for produced in self.extractor.feed(event.text):
                if isinstance(produced, PartialRecords):
                    self.downstream.push(produced)
        elif isinstance(event, StreamDone):
            records = self.extractor.finalize(event.final_text)
            self.downstream.push(PartialRecords(records=tuple(records), final=True))
            self.downstream.push(event)
        elif isinstance(event, (PartialRecords, StreamFailed)):
            self.downstream.push(event)
