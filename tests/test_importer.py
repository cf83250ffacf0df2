"""Tests for import dispatch and option validation."""

import pytest

from flashcard_interchange.cards import Card
from flashcard_interchange.export import export_flashcards
from flashcard_interchange.importer import (
    decode_text,
    import_bytes,
    import_file,
    import_summary,
    validate_import_options,
)


class TestImportBytes:
    """Test format detection feeds the right parser."""

    def test_tab_text(self):
        result = import_bytes(b"Q1\tA1\nQ2\tA2", filename="deck.txt")
        assert result.success
        assert result.source_format == "quizlet_text"
        assert result.parsed_cards == 2

    def test_csv_pins_comma(self):
        result = import_bytes(b"Q1,A1", fmt="csv")
        assert result.source_format == "csv"
        assert result.delimiter == ","

    def test_dash_text(self):
        result = import_bytes(b"Q1 - A1", filename="notes.txt")
        assert result.source_format == "dash_text"
        assert result.cards[0].answer == "A1"

    def test_mnemosyne_by_content(self):
        data = b"<?xml version='1.0'?><mnemosyne><card><Q>Q</Q><A>A</A></card></mnemosyne>"
        result = import_bytes(data, filename="upload")
        assert result.source_format == "mnemosyne"
        assert result.parsed_cards == 1

    def test_anki_by_magic(self):
        exported = export_flashcards([Card(question="Q", answer="A")], "anki", {"timestamp": 1700000000})
        result = import_bytes(exported.content)
        assert result.success
        assert result.source_format == "anki"
        assert result.cards[0].question == "Q"

    def test_latin1_fallback(self):
        result = import_bytes("Café\tcoffee".encode("latin-1"))
        assert result.cards[0].question == "Café"

    def test_empty(self):
        result = import_bytes(b"")
        assert not result.success
        assert result.error == "File is empty or could not be read"

    def test_undetectable(self):
        result = import_bytes(b"just some prose", filename="essay.doc")
        assert not result.success
        assert "could not detect a flashcard format" in result.error

    def test_unknown_format_override(self):
        result = import_bytes(b"Q\tA", fmt="docx")
        assert not result.success
        assert result.error == "Unsupported import format: docx"

    def test_decode_text_strips_bom(self):
        assert decode_text(b"\xef\xbb\xbfQ\tA") == "Q\tA"


class TestImportFile:
    """Test reading from disk."""

    def test_reads_file(self, tmp_path):
        path = tmp_path / "deck.csv"
        path.write_text('"Paris, France",capital\n', encoding="utf-8")
        result = import_file(path)
        assert result.success
        assert result.cards[0].question == "Paris, France"

    def test_missing_file(self, tmp_path):
        result = import_file(tmp_path / "missing.txt")
        assert not result.success
        assert result.error == "File is empty or could not be read"

    def test_summary(self, tmp_path):
        path = tmp_path / "deck.txt"
        path.write_text("Q1\tA1\nbroken line\n", encoding="utf-8")
        summary = import_summary(import_file(path))
        assert summary["parsed_cards"] == 1
        assert summary["total_lines"] == 2
        assert summary["delimiter"] == "\t"
        assert len(summary["errors"]) == 1


class TestValidateImportOptions:
    """Test option checks run before an import."""

    def test_valid(self):
        options = {
            "format": "csv",
            "delimiter": "comma",
            "handle_media": True,
            "detect_duplicates": False,
            "similarity_threshold": 0.9,
        }
        assert validate_import_options(options) == []

    def test_all_problems_reported(self):
        options = {
            "format": "docx",
            "delimiter": "~",
            "handle_media": "yes",
            "similarity_threshold": 2,
        }
        errors = validate_import_options(options)
        assert errors[0] == "Invalid import format specified"
        assert errors[1].startswith("Delimiter must be one of:")
        assert "Handle media option must be boolean" in errors
        assert "Similarity threshold must be between 0 and 1" in errors

    def test_threshold_type(self):
        assert validate_import_options({"similarity_threshold": "high"}) == [
            "Similarity threshold must be a number"
        ]

    @pytest.mark.parametrize("delimiter", ["tab", "dash", "-", " - ", "|", ";", ","])
    def test_accepted_delimiters(self, delimiter):
        """Test every delimiter the text parser resolves passes validation."""
        assert validate_import_options({"delimiter": delimiter}) == []

    @pytest.mark.parametrize("delimiter", ["~", "", 3])
    def test_rejected_delimiters(self, delimiter):
        errors = validate_import_options({"delimiter": delimiter})
        assert len(errors) == 1
        assert errors[0].startswith("Delimiter must be one of:")
