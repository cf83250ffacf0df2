"""Exporters: one Card list, six target formats.

Every exporter reads the cards without modifying them and returns an
ExportResult holding the payload bytes, a dated filename and a MIME type.
"""

from __future__ import annotations

import csv
import io
import json
import logging
import re
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence

from .anki_export import build_apkg, stable_timestamp
from .cards import Card, answer_text, card_to_dict, is_exportable, question_text, validate_card
from .config import DEFAULT_DECK_NAME, MAX_EXPORT_SIZE
from .mnemosyne import build_mnemosyne_xml
from .results import ExportResult

logger = logging.getLogger(__name__)

EXPORT_FORMATS = {
    "anki": "Anki Package (.apkg)",
    "quizlet": "Quizlet TSV (.tsv)",
    "csv": "Extended CSV (.csv)",
    "json": "JSON Export (.json)",
    "mnemosyne": "Mnemosyne XML (.xml)",
    "supermemo": "SuperMemo Q&A (.txt)",
}

MIME_TYPES = {
    "anki": "application/zip",
    "quizlet": "text/tab-separated-values",
    "csv": "text/csv",
    "json": "application/json",
    "mnemosyne": "application/xml",
    "supermemo": "text/plain",
}

# format -> (filename slug, extension); Anki uses the deck name as its slug.
_FILENAMES = {
    "anki": (None, "apkg"),
    "quizlet": ("quizlet-export", "tsv"),
    "csv": ("extended-export", "csv"),
    "json": ("backup-export", "json"),
    "mnemosyne": ("mnemosyne-export", "xml"),
    "supermemo": ("supermemo-export", "txt"),
}

CSV_HEADER = [
    "ID",
    "Card Type",
    "Question",
    "Answer",
    "Hint",
    "Choices",
    "Correct Choices",
    "Cloze Text",
    "Cloze Answers",
    "Question Image URL",
    "Answer Image URL",
    "Occlusion Data",
    "Difficulty Level",
    "Tags",
    "Created At",
    "Updated At",
]

MAX_DECK_NAME_LENGTH = 100
JSON_FORMAT_VERSION = "1.0"

_SLUG_RE = re.compile(r"[^A-Za-z0-9\-_]")
_DASHES_RE = re.compile(r"-+")


def get_export_formats() -> Dict[str, str]:
    return dict(EXPORT_FORMATS)


def generate_filename(basename: str, extension: str, now: Optional[datetime] = None) -> str:
    """``<slug>-YYYY-MM-DD.<ext>``; unsafe characters in the slug become dashes."""
    slug = _DASHES_RE.sub("-", _SLUG_RE.sub("-", basename or "")).strip("-")
    if not slug:
        slug = "flashcards-export"
    date = (now or datetime.now(timezone.utc)).strftime("%Y-%m-%d")
    return f"{slug}-{date}.{extension}"


def validate_export_options(options: Optional[Mapping[str, Any]], fmt: str) -> List[str]:
    """Check export options for a format.

    Returns:
        Every problem found, as human-readable messages (empty when valid)
    """
    options = options or {}
    errors: List[str] = []
    if fmt not in EXPORT_FORMATS:
        errors.append("Invalid export format specified")

    if fmt == "anki":
        deck_name = options.get("deck_name")
        if not isinstance(deck_name, str) or not deck_name.strip():
            errors.append("Deck name cannot be empty")
        elif len(deck_name) > MAX_DECK_NAME_LENGTH:
            errors.append(f"Deck name cannot exceed {MAX_DECK_NAME_LENGTH} characters")

        media = options.get("media_files")
        if media is not None and not (
            isinstance(media, Mapping)
            and all(isinstance(k, str) and isinstance(v, (bytes, bytearray)) for k, v in media.items())
        ):
            errors.append("Media files option must map filenames to bytes")

        timestamp = options.get("timestamp")
        if timestamp is not None and (
            isinstance(timestamp, bool) or not isinstance(timestamp, (int, float))
        ):
            errors.append("Timestamp option must be a number")

    elif fmt == "json":
        if "include_metadata" in options and not isinstance(options["include_metadata"], bool):
            errors.append("Include metadata option must be boolean")

    return errors


# ---------------------------------------------------------------------------
# Per-format writers
# ---------------------------------------------------------------------------


def _one_line(text: str) -> str:
    return text.replace("\t", " ").replace("\r", "").replace("\n", " ")


def export_quizlet(cards: Sequence[Card], options: Mapping[str, Any], now: datetime) -> bytes:
    lines = [f"{_one_line(question_text(c))}\t{_one_line(answer_text(c))}" for c in cards]
    return "\n".join(lines).strip().encode("utf-8")


def _join(values: Sequence[Any]) -> str:
    return ";".join(str(v) for v in values)


def _iso(value: Optional[datetime]) -> str:
    return value.isoformat() if value else ""


def export_csv(cards: Sequence[Card], options: Mapping[str, Any], now: datetime) -> bytes:
    buffer = io.StringIO()
    writer = csv.writer(buffer, lineterminator="\n")
    writer.writerow(CSV_HEADER)
    for card in cards:
        writer.writerow(
            [
                card.id if card.id is not None else "",
                card.card_type.value,
                card.question,
                card.answer,
                card.hint or "",
                _join(card.choices),
                _join(card.correct_choices),
                card.cloze_text or "",
                _join(card.cloze_answers),
                card.question_image_url or "",
                card.answer_image_url or "",
                json.dumps(card.occlusion_data) if card.occlusion_data else "",
                card.difficulty_level.value,
                _join(card.tags),
                _iso(card.created_at),
                _iso(card.updated_at),
            ]
        )
    return buffer.getvalue().encode("utf-8")


def export_json(cards: Sequence[Card], options: Mapping[str, Any], now: datetime) -> bytes:
    include_metadata = options.get("include_metadata", True)
    data = {
        "exported_at": now.isoformat(),
        "format_version": JSON_FORMAT_VERSION,
        "total_cards": len(cards),
        "flashcards": [card_to_dict(c, include_metadata=include_metadata) for c in cards],
    }
    return json.dumps(data, indent=4, ensure_ascii=False).encode("utf-8")


def export_mnemosyne(cards: Sequence[Card], options: Mapping[str, Any], now: datetime) -> bytes:
    return build_mnemosyne_xml(cards)


def export_supermemo(cards: Sequence[Card], options: Mapping[str, Any], now: datetime) -> bytes:
    blocks = [f"Q: {question_text(c)}\nA: {answer_text(c)}\n" for c in cards]
    return "\n".join(blocks).encode("utf-8")


def export_anki(cards: Sequence[Card], options: Mapping[str, Any], now: datetime) -> bytes:
    deck_name = options.get("deck_name") or DEFAULT_DECK_NAME
    timestamp = options.get("timestamp")
    if timestamp is None:
        timestamp = stable_timestamp(cards, deck_name)
    return build_apkg(
        cards,
        deck_name=deck_name,
        timestamp=float(timestamp),
        media_files=options.get("media_files"),
    )


_EXPORTERS: Dict[str, Callable[[Sequence[Card], Mapping[str, Any], datetime], bytes]] = {
    "anki": export_anki,
    "quizlet": export_quizlet,
    "csv": export_csv,
    "json": export_json,
    "mnemosyne": export_mnemosyne,
    "supermemo": export_supermemo,
}


def export_flashcards(
    cards: Sequence[Card],
    fmt: str,
    options: Optional[Mapping[str, Any]] = None,
    max_export_size: int = MAX_EXPORT_SIZE,
    now: Optional[datetime] = None,
) -> ExportResult:
    """Export cards in the requested format.

    Args:
        cards: Cards to export; never modified
        fmt: One of EXPORT_FORMATS
        options: Format options (``deck_name``, ``media_files`` and
            ``timestamp`` for anki; ``include_metadata`` for json)
        max_export_size: Largest batch accepted; larger batches are refused
        now: Clock reading used for ``exported_at`` and the filename date;
            defaults to the current time. The Anki collection timestamp comes
            from the ``timestamp`` option or, without one, from the cards and
            deck name

    Returns:
        ExportResult; ``success`` is False with ``error`` set on any failure,
        including any card that fails validation (listed in ``errors``)
    """
    cards = list(cards or [])
    if not cards:
        return ExportResult.failure("No flashcards provided for export")
    if len(cards) > max_export_size:
        return ExportResult.failure(f"Export size exceeds maximum limit of {max_export_size} cards")
    if fmt not in EXPORT_FORMATS:
        return ExportResult.failure("Invalid export format specified")

    opts: Dict[str, Any] = dict(options or {})
    if fmt == "anki":
        opts.setdefault("deck_name", DEFAULT_DECK_NAME)
    problems = validate_export_options(opts, fmt)
    if problems:
        return ExportResult.failure("; ".join(problems), errors=problems)

    invalid = [
        f"Card {number}: {message}"
        for number, card in enumerate(cards, start=1)
        if not is_exportable(card)
        for message in validate_card(card)
    ]
    if invalid:
        logger.warning("Export refused: %d card problems", len(invalid))
        return ExportResult.failure(
            f"{len(invalid)} flashcard problem(s) prevent export: {invalid[0]}", errors=invalid
        )

    now = now or datetime.now(timezone.utc)
    try:
        content = _EXPORTERS[fmt](cards, opts, now)
    except Exception as e:
        logger.exception("Flashcard export failed (format=%s, count=%d)", fmt, len(cards))
        return ExportResult.failure(f"Export failed: {e}")

    slug, extension = _FILENAMES[fmt]
    filename = generate_filename(slug or opts["deck_name"], extension, now)
    logger.info("Exported %d cards as %s (%d bytes)", len(cards), fmt, len(content))
    return ExportResult(
        success=True,
        content=content,
        filename=filename,
        mime_type=MIME_TYPES[fmt],
    )
