"""
Name: Stream Record Extractor Unit Tests

Responsibilities:
  - Completion detection on streamed JSON
  - Progressive extraction from cumulative and delta fragments
  - ExtractingStreamSink event ordering
"""

import pytest

from pagelens.application import partial_extractor
from pagelens.application.partial_extractor import (
    ExtractingStreamSink,
    StreamRecordExtractor,
    extract_partial,
    is_complete,
)
from pagelens.crosscutting.exceptions import ProviderError
from pagelens.crosscutting.streaming import CollectingStreamSink
from pagelens.domain.entities import (
    PartialRecords,
    RecordKind,
    StreamDone,
    StreamFailed,
    TextDelta,
)

pytestmark = pytest.mark.unit

RECORD = '{"kind": "typo", "original": "teh", "suggestion": "the"}'


class TestIsComplete:
    @pytest.mark.parametrize(
        "text",
        [
            '{"errors": []}',
            '  {"errors": [' + RECORD + "]}\n",
            '{"errors": [{"kind": "typo", "original": "}", "suggestion": "{"}]}',
        ],
    )
    def test_complete(self, text):
        assert is_complete(text)

    @pytest.mark.parametrize(
        "text",
        [
            "{",
            '{"errors": [',
            '{"errors": [' + RECORD,
            '{"result": []}',
            '{"errors": "unterminated}',
            '{"errors": []}]}',
        ],
    )
    def test_incomplete(self, text):
        assert not is_complete(text)

    def test_custom_sentinel(self):
        assert is_complete('{"findings": []}', sentinel='"findings"')


class TestExtractPartial:
    def test_trailing_comma_object_is_recovered(self):
        text = '{"errors": [{"kind": "grammar", "original": "a", "suggestion": "b",}'
        records = extract_partial(text)
        assert [(r.kind, r.suggestion) for r in records] == [(RecordKind.GRAMMAR, "b")]

    def test_loose_pair_from_unterminated_object(self):
        text = '{"errors": [{"kind": "typo", "suggestion": "the", "explanation": "sp'
        records = extract_partial(text)
        assert [(r.kind, r.suggestion, r.original) for r in records] == [
            (RecordKind.TYPO, "the", "")
        ]

    def test_nothing_extractable(self):
        assert extract_partial('{"errors": [') == []

    def test_deep_nesting_is_not_an_error(self):
        assert extract_partial("[" * 200_000 + "]") == []
        assert extract_partial('{"errors": ' + "[" * 200_000 + "]}") == []


class TestStreamRecordExtractor:
    def test_cumulative_sequence(self):
        extractor = StreamRecordExtractor(cumulative=True)
        fragments = [
            "{",
            '{"errors":[',
            '{"errors":[' + RECORD,
            '{"errors":[' + RECORD + "]}",
        ]

        produced = [extractor.feed(fragment) for fragment in fragments]

        assert produced[0] == [] and produced[1] == []
        (partial,) = produced[2]
        assert isinstance(partial, PartialRecords)
        assert partial.records[0].suggestion == "the"
        (done,) = produced[3]
        assert isinstance(done, StreamDone)
        assert done.final_text == fragments[-1]
        assert extractor.complete

        records = extractor.finalize()
        assert [(r.original, r.suggestion) for r in records] == [("teh", "the")]

    def test_delta_mode_accumulates(self):
        extractor = StreamRecordExtractor()
        for piece in ('{"err', 'ors": [', RECORD[:20], RECORD[20:], "]}"):
            extractor.feed(piece)

        assert extractor.complete
        assert extractor.buffer == '{"errors": [' + RECORD + "]}"

    def test_unchanged_record_set_is_not_reemitted(self):
        extractor = StreamRecordExtractor()
        assert extractor.feed('{"errors": [' + RECORD)
        assert extractor.feed(", ") == []

    def test_nothing_after_completion(self):
        extractor = StreamRecordExtractor()
        extractor.feed('{"errors": []}')
        assert extractor.feed("more") == []

    def test_cumulative_restart(self):
        extractor = StreamRecordExtractor(cumulative=True)
        extractor.feed('{"errors": [{"kind"')
        extractor.feed("{")
        assert extractor.buffer == "{"

    def test_character_feed_extracts_only_on_closers(self, monkeypatch):
        calls = []
        real = partial_extractor.extract_partial

        def counting(text, chunk=None):
            calls.append(len(text))
            return real(text, chunk)

        monkeypatch.setattr(partial_extractor, "extract_partial", counting)
        text = '{"errors": [' + ", ".join([RECORD] * 50) + "]}"
        extractor = StreamRecordExtractor()

        for ch in text:
            extractor.feed(ch)

        assert extractor.complete
        assert len(calls) <= text.count("}") + text.count("]")
        assert len(calls) < len(text) // 10

    def test_cumulative_restart_rescans_nesting(self):
        extractor = StreamRecordExtractor(cumulative=True)
        extractor.feed('{"errors": [[[[[[')
        (done,) = extractor.feed('{"errors": []}')
        assert isinstance(done, StreamDone)

    def test_reset(self):
        extractor = StreamRecordExtractor()
        extractor.feed('{"errors": []}')
        extractor.reset()
        assert extractor.buffer == "" and not extractor.complete


class TestExtractingStreamSink:
    def test_events_are_forwarded_with_records(self):
        downstream = CollectingStreamSink()
        sink = ExtractingStreamSink(downstream)
        final = '{"errors": [' + RECORD + "]}"

        sink.push(TextDelta(text='{"errors": [' + RECORD))
        sink.push(TextDelta(text="]}"))
        sink.push(StreamDone(final_text=final, provider_name="P"))

        kinds = [type(e).__name__ for e in downstream.events]
        assert kinds == [
            "TextDelta",
            "PartialRecords",
            "TextDelta",
            "PartialRecords",
            "StreamDone",
        ]
        authoritative = downstream.events[3]
        assert authoritative.final
        assert authoritative.records[0].original == "teh"
        assert downstream.events[-1].provider_name == "P"

    def test_failure_is_forwarded(self):
        downstream = CollectingStreamSink()
        sink = ExtractingStreamSink(downstream)
        failed = StreamFailed(error=ProviderError("TIMEOUT", "slow"))

        sink.push(TextDelta(text="{"))
        sink.push(failed)

        assert downstream.events[-1] is failed

    def test_deeply_nested_stream_does_not_raise(self):
        downstream = CollectingStreamSink()
        sink = ExtractingStreamSink(downstream)
        text = '{"errors": ' + "[" * 200_000 + "]"

        sink.push(TextDelta(text=text))
        sink.push(StreamDone(final_text=text))

        authoritative, done = downstream.events[-2:]
        assert authoritative.final and authoritative.records == ()
        assert isinstance(done, StreamDone)

    def test_reset_clears_buffer_before_reissue(self):
        downstream = CollectingStreamSink()
        sink = ExtractingStreamSink(downstream)
        sink.push(TextDelta(text='{"errors": [{"kind": "typo", "orig'))

        sink.reset()
        sink.push(TextDelta(text='{"errors": []}'))

        assert sink.extractor.buffer == '{"errors": []}'
