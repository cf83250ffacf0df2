"""Integration tests for the flashcard-interchange command line."""

import csv
import json
import tempfile
from pathlib import Path

import pytest

from flashcard_interchange.cards import Card
from flashcard_interchange.cli import load_existing_cards, main
from flashcard_interchange.config import InterchangeConfig, load_config
from flashcard_interchange.export import export_flashcards
from flashcard_interchange.report import DUPLICATE_COLUMNS


@pytest.fixture
def workdir():
    """Fixture providing a scratch directory with a missing config path."""
    with tempfile.TemporaryDirectory() as tmpdir:
        tmpdir = Path(tmpdir)
        yield tmpdir


def run(workdir, *args):
    return main([*args, "--config", str(workdir / "config.json")])


class TestPreview:
    """Test the preview command."""

    def test_preview_text(self, workdir, capsys):
        deck = workdir / "deck.txt"
        deck.write_text("Capital of France? #geo\tParis\nbroken\nCapital of Spain?\tMadrid\n", encoding="utf-8")
        assert run(workdir, "preview", "--input", str(deck)) == 0
        out = capsys.readouterr().out
        assert "Format:       quizlet_text" in out
        assert "Parsed cards: 2" in out
        assert "Line 2: Must contain at least question and answer" in out

    def test_preview_bad_delimiter(self, workdir, capsys):
        deck = workdir / "deck.txt"
        deck.write_text("Q\tA\n", encoding="utf-8")
        assert run(workdir, "preview", "--input", str(deck), "--delimiter", "~") == 1
        assert "Delimiter must be one of" in capsys.readouterr().out

    def test_preview_respects_config_limit(self, workdir, capsys):
        (workdir / "config.json").write_text(json.dumps({"max_import_size": 1}), encoding="utf-8")
        deck = workdir / "deck.txt"
        deck.write_text("Q1\tA1\nQ2\tA2\n", encoding="utf-8")
        assert run(workdir, "preview", "--input", str(deck)) == 1
        assert "maximum allowed is 1" in capsys.readouterr().out

    def test_invalid_config(self, workdir, capsys):
        (workdir / "config.json").write_text("[1, 2", encoding="utf-8")
        deck = workdir / "deck.txt"
        deck.write_text("Q\tA\n", encoding="utf-8")
        assert run(workdir, "preview", "--input", str(deck)) == 1
        assert "Invalid JSON in config file" in capsys.readouterr().out


class TestDedupe:
    """Test duplicate checking against a JSON backup."""

    @pytest.fixture
    def backup(self, workdir):
        existing = [
            Card(question="What is the capital of France?", answer="Paris", id=10),
            Card(question="Largest planet?", answer="Jupiter", id=11),
        ]
        path = workdir / "backup.json"
        path.write_bytes(export_flashcards(existing, "json").content)
        return path

    def test_dedupe_report(self, workdir, backup, capsys):
        deck = workdir / "new.txt"
        deck.write_text(
            "What is the capital of France?\tParis\nWho wrote Hamlet?\tShakespeare\nWho wrote Hamlet?\tShakespeare\n",
            encoding="utf-8",
        )
        out_csv = workdir / "out" / "duplicates.csv"
        code = run(workdir, "dedupe", "--input", str(deck), "--existing", str(backup), "--out", str(out_csv))
        assert code == 0

        with out_csv.open(encoding="utf-8", newline="") as f:
            rows = list(csv.DictReader(f))
        assert len(rows) == 2
        assert rows[0]["import_row"] == "1"
        assert rows[0]["existing_card_id"] == "10"
        assert rows[0]["suggested_action"] == "update"
        assert rows[1]["duplicate_type"] == "within_import"
        assert rows[1]["matched_import_row"] == "2"

        out = capsys.readouterr().out
        assert "Loaded 2 existing cards" in out
        assert "Duplicates:       2" in out

    def test_dedupe_with_action(self, workdir, backup, capsys):
        deck = workdir / "new.txt"
        deck.write_text("What is the capital of France?\tParis\n", encoding="utf-8")
        code = run(
            workdir,
            "dedupe", "--input", str(deck), "--existing", str(backup),
            "--out", str(workdir / "dups.csv"), "--action", "update",
        )
        assert code == 0
        assert "updated: 1" in capsys.readouterr().out

    def test_no_duplicates_still_writes_header(self, workdir, backup, capsys):
        """Test that a clean batch produces a header-only report, not an empty file."""
        deck = workdir / "new.txt"
        deck.write_text("Who painted the Mona Lisa?\tLeonardo\n", encoding="utf-8")
        out_csv = workdir / "clean.csv"
        code = run(workdir, "dedupe", "--input", str(deck), "--existing", str(backup), "--out", str(out_csv))
        assert code == 0

        with out_csv.open(encoding="utf-8", newline="") as f:
            reader = csv.DictReader(f)
            rows = list(reader)
        assert reader.fieldnames == DUPLICATE_COLUMNS
        assert rows == []
        assert "Duplicates:       0" in capsys.readouterr().out

    def test_existing_text_file_numbered(self, workdir):
        path = workdir / "existing.txt"
        path.write_text("Q1\tA1\nQ2\tA2\n", encoding="utf-8")
        cards = load_existing_cards(path, InterchangeConfig())
        assert [c.id for c in cards] == [1, 2]

    def test_unreadable_existing(self, workdir, capsys):
        deck = workdir / "new.txt"
        deck.write_text("Q\tA\n", encoding="utf-8")
        bad = workdir / "bad.json"
        bad.write_text("{", encoding="utf-8")
        code = run(workdir, "dedupe", "--input", str(deck), "--existing", str(bad), "--out", str(workdir / "d.csv"))
        assert code == 1
        assert "Could not read existing cards" in capsys.readouterr().out


class TestConvert:
    """Test converting between formats."""

    def test_text_to_json(self, workdir):
        deck = workdir / "deck.csv"
        deck.write_text("Capital of France?,Paris\nPick one,red;green\n", encoding="utf-8")
        out = workdir / "export" / "deck.json"
        assert run(workdir, "convert", "--input", str(deck), "--format", "json", "--out", str(out)) == 0
        data = json.loads(out.read_text(encoding="utf-8"))
        assert data["total_cards"] == 2
        assert data["flashcards"][1]["card_type"] == "multiple_choice"

    def test_text_to_anki_to_mnemosyne(self, workdir):
        deck = workdir / "deck.txt"
        deck.write_text("Capital of France?\tParis\nThe capital is {{Paris}}\tParis\n", encoding="utf-8")
        apkg = workdir / "deck.apkg"
        assert run(workdir, "convert", "--input", str(deck), "--format", "anki", "--out", str(apkg), "--deck-name", "Geo") == 0

        xml_out = workdir / "deck.xml"
        assert run(workdir, "convert", "--input", str(apkg), "--format", "mnemosyne", "--out", str(xml_out)) == 0
        content = xml_out.read_text(encoding="utf-8")
        assert "<Q>Capital of France?</Q>" in content
        assert "{{c1::Paris}}" in content

    def test_convert_failure(self, workdir, capsys):
        empty = workdir / "empty.txt"
        empty.write_text("", encoding="utf-8")
        code = run(workdir, "convert", "--input", str(empty), "--format", "csv", "--out", str(workdir / "x.csv"))
        assert code == 1
        assert "File is empty or could not be read" in capsys.readouterr().out


class TestFormatsAndConfig:
    """Test format listing and config defaults."""

    def test_formats(self, capsys):
        assert main(["formats"]) == 0
        out = capsys.readouterr().out
        assert "anki" in out
        assert "supermemo" in out

    def test_missing_config_uses_defaults(self, workdir):
        cfg = load_config(workdir / "nope.json")
        assert cfg == InterchangeConfig()
        assert cfg.max_import_size == 500
        assert cfg.similarity_threshold == 0.85

    def test_unknown_config_keys_ignored(self, workdir):
        path = workdir / "config.json"
        path.write_text(json.dumps({"max_export_size": 10, "colour": "blue"}), encoding="utf-8")
        assert load_config(path).max_export_size == 10

    def test_config_must_be_object(self, workdir):
        path = workdir / "config.json"
        path.write_text("[]", encoding="utf-8")
        with pytest.raises(ValueError):
            load_config(path)
