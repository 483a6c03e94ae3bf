"""
Name: Record Parser Unit Tests

Responsibilities:
  - JSON, fenced JSON and labeled-line parsing
  - Position resolution in source coordinates
  - Validation of individual records
"""

import pytest

from pagelens.application.record_parser import (
    fallback_parse,
    parse_records,
    record_from_mapping,
    resolve_position,
    strip_code_fences,
)
from pagelens.domain.entities import Chunk, RecordKind, Severity, TextSpan

pytestmark = pytest.mark.unit


class TestParseRecords:
    def test_bare_json(self, proofread_json):
        records = parse_records(proofread_json)

        assert [r.kind for r in records] == [RecordKind.TYPO, RecordKind.GRAMMAR]
        assert records[0].severity == Severity.ERROR
        assert records[0].explanation == "misspelling"
        assert records[1].explanation is None

    def test_fenced_json(self, proofread_json):
        text = f"Here you go:\n```json\n{proofread_json}\n```\nThanks"
        assert len(parse_records(text)) == 2

    def test_json_embedded_in_prose(self, proofread_json):
        assert len(parse_records(f"Result: {proofread_json} (end)")) == 2

    def test_bare_list_payload(self):
        text = '[{"type": "style", "original": "very unique", "suggestion": "unique"}]'
        records = parse_records(text)

        assert len(records) == 1
        assert records[0].kind == RecordKind.STYLE_ISSUE
        assert records[0].severity == Severity.WARNING

    def test_invalid_entries_are_dropped(self):
        text = (
            '{"errors": ['
            '{"kind": "typo", "original": "x", "suggestion": ""},'
            '{"kind": "mystery", "original": "x", "suggestion": "y"},'
            '"not an object",'
            '{"kind": "grammar", "original": "x", "suggestion": "y"}'
            "]}"
        )
        records = parse_records(text)

        assert len(records) == 1
        assert records[0].kind == RecordKind.GRAMMAR

    @pytest.mark.parametrize("text", ["", "   ", "I found nothing wrong.", '{"errors": "none"}'])
    def test_unusable_text_yields_nothing(self, text):
        assert parse_records(text) == []

    def test_labeled_lines_fallback(self):
        text = "Findings:\n- typo: teh -> the\n- 文法: 私わ → 私は\nno label here"
        records = parse_records(text)

        assert [(r.kind, r.original, r.suggestion) for r in records] == [
            (RecordKind.TYPO, "teh", "the"),
            (RecordKind.GRAMMAR, "私わ", "私は"),
        ]

    def test_chunk_provenance_and_position(self):
        chunk = Chunk(id=2, text="I saw teh cat.", start_offset=100, end_offset=114)
        text = '{"errors": [{"kind": "typo", "original": "teh", "suggestion": "the"}]}'

        record = parse_records(text, chunk)[0]

        assert record.source_chunk_id == 2
        assert record.position == TextSpan(106, 109)


class TestHelpers:
    def test_strip_code_fences_without_fence(self):
        assert strip_code_fences("  {}  ") == "{}"

    def test_position_falls_back_to_chunk_span(self):
        chunk = Chunk(id=0, text="abc", start_offset=10, end_offset=13)
        assert resolve_position("zzz", chunk) == TextSpan(10, 13)
        assert resolve_position("", chunk) == TextSpan(10, 13)

    def test_position_without_chunk(self):
        assert resolve_position("abc", None) is None

    def test_record_from_mapping_rejects_non_mapping(self):
        assert record_from_mapping(["typo"]) is None

    def test_record_from_mapping_accepts_legacy_kind(self):
        record = record_from_mapping(
            {"type": "japanese", "original": "x", "suggestion": "y", "severity": "INFO"}
        )
        assert record.kind == RecordKind.STYLE_ISSUE
        assert record.severity == Severity.INFO

    def test_fallback_parse_ignores_unlabeled_arrows(self):
        assert fallback_parse("foo -> bar") == []
