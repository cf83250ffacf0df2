"""Flashcard interchange engine.

Parses Quizlet/CSV/dash text, Anki packages and Mnemosyne XML into one card
model, checks an import batch for duplicates, and exports to Anki, Quizlet,
CSV, JSON, Mnemosyne and SuperMemo.
"""

__all__ = [
    "cards",
    "detect_format",
    "ingest",
    "anki_package",
    "mnemosyne",
    "importer",
    "detect_duplicates",
    "export",
    "anki_export",
    "report",
]
