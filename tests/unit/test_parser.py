"""Unit tests for the tab-delimited ingestion parser."""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from kiosk_rag.errors import InvalidEmbeddingError, MalformedRowError
from kiosk_rag.ingestion.models import TSV_HEADER
from kiosk_rag.ingestion.parser import is_header, is_ignorable, parse_embedding, parse_file, parse_line, parse_rows

DIM = 3
EMB = json.dumps([0.1, 0.2, 0.3])


def _line(*fields: str) -> str:
    return "\t".join(fields)


# ── Line classification ────────────────────────────────────────────────


class TestLineClassification:
    def test_header_detected_by_first_field(self) -> None:
        assert is_header(TSV_HEADER)
        assert is_header("document_title\tanything")

    def test_data_line_is_not_header(self) -> None:
        assert not is_header(_line("Handbook", "", "Intro", "Welcome", EMB))

    @pytest.mark.parametrize("line", ["", "   ", "# a comment", TSV_HEADER])
    def test_ignorable_lines(self, line: str) -> None:
        assert is_ignorable(line)


# ── Embedding parsing ─────────────────────────────────────────────────


class TestParseEmbedding:
    def test_valid_array(self) -> None:
        assert parse_embedding("[1, 2.5, -3]", document_title="T", dimension=DIM) == [1.0, 2.5, -3.0]

    def test_wrong_length_rejected(self) -> None:
        with pytest.raises(InvalidEmbeddingError, match="array of 3 numbers, got 2"):
            parse_embedding("[1, 2]", document_title="T", dimension=DIM)

    def test_not_json(self) -> None:
        with pytest.raises(InvalidEmbeddingError) as info:
            parse_embedding("1, 2, 3", document_title="Guide", dimension=DIM)
        assert info.value.document_title == "Guide"
        assert "'Guide'" in str(info.value)

    def test_object_rejected(self) -> None:
        with pytest.raises(InvalidEmbeddingError, match="JSON array"):
            parse_embedding('{"a": 1}', document_title="T", dimension=DIM)

    @pytest.mark.parametrize("raw", ['[1, "2", 3]', "[1, true, 3]", "[1, null, 3]", "[1, NaN, 3]"])
    def test_non_numeric_components_rejected(self, raw: str) -> None:
        with pytest.raises(InvalidEmbeddingError):
            parse_embedding(raw, document_title="T", dimension=DIM)


# ── Row parsing ───────────────────────────────────────────────────────


class TestParseLine:
    def test_full_row(self) -> None:
        row = parse_line(_line("Handbook", "https://x.org/h.pdf", "Intro", "Welcome", EMB), dimension=DIM)
        assert row.document_title == "Handbook"
        assert row.source_url == "https://x.org/h.pdf"
        assert row.section_title == "Intro"
        assert row.chunk_content == "Welcome"
        assert row.embedding == [0.1, 0.2, 0.3]

    def test_empty_optional_fields(self) -> None:
        row = parse_line(_line("Handbook", "", "", "Welcome", EMB), dimension=DIM)
        assert row.source_url == ""
        assert row.section_title == ""
        assert row.document_key == ("Handbook", None)
        assert row.section is None

    def test_fields_are_trimmed(self) -> None:
        row = parse_line(_line("  Handbook ", "", " Intro ", " Welcome  ", EMB) + "\r\n", dimension=DIM)
        assert row.document_title == "Handbook"
        assert row.section_title == "Intro"
        assert row.chunk_content == "Welcome"

    def test_missing_embedding_column(self) -> None:
        with pytest.raises(MalformedRowError, match="embedding"):
            parse_line(_line("Handbook", "", "Intro", "Welcome"), dimension=DIM)

    def test_missing_content(self) -> None:
        with pytest.raises(MalformedRowError, match="chunk_content"):
            parse_line(_line("Handbook", "", "Intro", "  ", EMB), dimension=DIM)

    def test_missing_title(self) -> None:
        with pytest.raises(MalformedRowError, match="document_title"):
            parse_line(_line("", "", "Intro", "Welcome", EMB), dimension=DIM)

    def test_too_many_fields(self) -> None:
        with pytest.raises(MalformedRowError, match="got 6"):
            parse_line(_line("Handbook", "", "Intro", "Welcome", EMB, "extra"), dimension=DIM)

    def test_overlong_title(self) -> None:
        with pytest.raises(MalformedRowError, match="512"):
            parse_line(_line("T" * 513, "", "", "Welcome", EMB), dimension=DIM)

    def test_line_number_in_message(self) -> None:
        with pytest.raises(MalformedRowError, match="^line 7: ") as info:
            parse_line(_line("Handbook", "", "Intro", ""), line_number=7, dimension=DIM)
        assert info.value.line_number == 7


class TestParseRows:
    def test_skips_header_comments_and_blanks(self) -> None:
        text = "\n".join(
            [
                "# exported 2025-01-01",
                TSV_HEADER,
                "",
                _line("Handbook", "", "Intro", "Welcome", EMB),
                "# inline comment",
                _line("FAQ", "https://x.org/faq", "", "Ask staff", EMB),
                "",
            ]
        )
        rows = parse_rows(text, dimension=DIM)
        assert [r.document_title for r in rows] == ["Handbook", "FAQ"]

    def test_preserves_file_order(self) -> None:
        text = "\n".join(_line("Doc", "", "", f"chunk {i}", EMB) for i in range(5))
        rows = parse_rows(text, dimension=DIM)
        assert [r.chunk_content for r in rows] == [f"chunk {i}" for i in range(5)]

    def test_fail_fast_on_bad_embedding(self) -> None:
        text = "\n".join([TSV_HEADER, _line("Handbook", "", "Intro", "Welcome", EMB), _line("Bad", "", "", "x", "[1]")])
        with pytest.raises(InvalidEmbeddingError):
            parse_rows(text, dimension=DIM)

    def test_malformed_row_line_number(self) -> None:
        text = "\n".join([TSV_HEADER, "# c", _line("Handbook", "", "Intro", "Welcome")])
        with pytest.raises(MalformedRowError) as info:
            parse_rows(text, dimension=DIM)
        assert info.value.line_number == 3

    def test_header_only_yields_nothing(self) -> None:
        assert parse_rows(TSV_HEADER + "\n", dimension=DIM) == []

    def test_default_dimension_is_configured_one(self) -> None:
        vector = json.dumps([0.0] * 1536)
        rows = parse_rows(_line("Handbook", "", "", "Welcome", vector))
        assert len(rows[0].embedding) == 1536


def test_parse_file(tmp_path: Path) -> None:
    path = tmp_path / "chunks.tsv"
    path.write_text(TSV_HEADER + "\n" + _line("Guía", "", "Sección", "Señal café", EMB) + "\n", encoding="utf-8")
    rows = parse_file(path, dimension=DIM)
    assert rows[0].document_title == "Guía"
    assert rows[0].chunk_content == "Señal café"
