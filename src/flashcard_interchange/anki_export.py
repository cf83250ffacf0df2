"""Anki package (.apkg) writer built on genanki.

genanki fills a fresh ``collection.anki2`` database; the archive itself is
assembled here so every zip entry carries a fixed date and the same cards,
deck name and timestamp always produce the same bytes.
"""

from __future__ import annotations

import hashlib
import html
import io
import itertools
import json
import logging
import sqlite3
import tempfile
import zipfile
from pathlib import Path
from typing import Dict, Iterable, Mapping, Optional

import genanki

from .cards import Card, CardType, answer_text, question_text
from .cloze import has_anki_cloze, to_anki_cloze
from .tags import anki_safe_tag

logger = logging.getLogger(__name__)

COLLECTION_NAME = "collection.anki2"
MEDIA_INDEX_NAME = "media"
ZIP_DATE = (1980, 1, 1, 0, 0, 0)

_MODEL_CSS = ".card { font-family: arial; font-size: 20px; text-align: center; }"


def _stable_int_id(s: str) -> int:
    # genanki ids must be int; keep stable across runs.
    digest = hashlib.sha1(s.encode("utf-8")).digest()
    n = int.from_bytes(digest[:8], "big", signed=False)
    return n % (2**31 - 1)


# 2020-01-01T00:00:00Z; content-derived timestamps fall in the decade after it.
_TIMESTAMP_BASE = 1577836800
_TIMESTAMP_SPAN = 10 * 365 * 24 * 3600


def stable_timestamp(cards: Iterable[Card], deck_name: str) -> int:
    """Collection timestamp derived from the deck name and card text.

    genanki stamps this value into note, card and model rows, so deriving it
    from content keeps repeated exports of the same cards byte-identical.
    """
    digest = hashlib.sha1(deck_name.encode("utf-8"))
    for card in cards:
        digest.update(b"\x1e")
        digest.update(f"{card.card_type.value}\x1f{question_text(card)}\x1f{answer_text(card)}".encode("utf-8"))
        digest.update(" ".join(card.tags).encode("utf-8"))
    n = int.from_bytes(digest.digest()[:8], "big", signed=False)
    return _TIMESTAMP_BASE + n % _TIMESTAMP_SPAN


def basic_model(deck_name: str) -> genanki.Model:
    return genanki.Model(
        _stable_int_id(f"flashcard_interchange:basic:{deck_name}"),
        "Flashcard Interchange Basic",
        fields=[{"name": "Front"}, {"name": "Back"}],
        templates=[
            {
                "name": "Card 1",
                "qfmt": "{{Front}}",
                "afmt": "{{FrontSide}}<hr id=answer>{{Back}}",
            }
        ],
        css=_MODEL_CSS,
    )


def cloze_model(deck_name: str) -> genanki.Model:
    return genanki.Model(
        _stable_int_id(f"flashcard_interchange:cloze:{deck_name}"),
        "Flashcard Interchange Cloze",
        fields=[{"name": "Text"}, {"name": "Back Extra"}],
        templates=[
            {
                "name": "Cloze",
                "qfmt": "{{cloze:Text}}",
                "afmt": "{{cloze:Text}}<br>{{Back Extra}}",
            }
        ],
        css=_MODEL_CSS,
        model_type=genanki.Model.CLOZE,
    )


def to_field_html(text: str) -> str:
    """Plain card text as an Anki field.

    Text that already carries an ``<img>`` tag is passed through untouched;
    anything else is escaped with newlines turned into ``<br>``.
    """
    if not text:
        return ""
    if "<img" in text.lower():
        return text
    return html.escape(text, quote=False).replace("\n", "<br>")


def card_to_note(card: Card, basic: genanki.Model, cloze: genanki.Model) -> genanki.Note:
    """One note per card; cloze cards whose text has no deletions fall back to basic."""
    tags = [t for t in (anki_safe_tag(tag) for tag in card.tags) if t]
    if card.card_type is CardType.CLOZE:
        text = to_anki_cloze(card.cloze_text or card.question)
        if has_anki_cloze(text):
            extra = card.hint or ""
            return genanki.Note(
                model=cloze,
                fields=[to_field_html(text), to_field_html(extra)],
                tags=tags,
            )
        logger.warning("Cloze card without deletions exported as basic: %.40s", card.question)

    return genanki.Note(
        model=basic,
        fields=[to_field_html(question_text(card)), to_field_html(answer_text(card))],
        tags=tags,
    )


def build_deck(cards: Iterable[Card], deck_name: str) -> genanki.Deck:
    deck = genanki.Deck(_stable_int_id(f"flashcard_interchange:deck:{deck_name}"), deck_name)
    basic = basic_model(deck_name)
    cloze = cloze_model(deck_name)
    for card in cards:
        deck.add_note(card_to_note(card, basic, cloze))
    return deck


def _zip_entry(name: str) -> zipfile.ZipInfo:
    info = zipfile.ZipInfo(name, date_time=ZIP_DATE)
    info.compress_type = zipfile.ZIP_DEFLATED
    info.external_attr = 0o644 << 16
    return info


def build_apkg(
    cards: Iterable[Card],
    deck_name: str,
    timestamp: float,
    media_files: Optional[Mapping[str, bytes]] = None,
) -> bytes:
    """Write an .apkg archive and return its bytes.

    Args:
        cards: Cards to place in a single deck
        deck_name: Deck name shown in Anki
        timestamp: Seconds since the epoch stamped on notes, cards and ids
        media_files: Original filename -> content, stored as numbered entries

    Returns:
        Zip bytes with ``collection.anki2``, ``media`` and one entry per media file
    """
    package = genanki.Package(build_deck(cards, deck_name))
    media = dict(sorted((media_files or {}).items()))

    with tempfile.TemporaryDirectory(prefix="apkg-export-") as tmp:
        db_path = Path(tmp) / COLLECTION_NAME
        conn = sqlite3.connect(str(db_path))
        try:
            cursor = conn.cursor()
            package.write_to_db(cursor, timestamp, itertools.count(int(timestamp * 1000)))
            conn.commit()
        finally:
            conn.close()
        collection = db_path.read_bytes()

    index: Dict[str, str] = {str(i): name for i, name in enumerate(media)}
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w") as archive:
        archive.writestr(_zip_entry(COLLECTION_NAME), collection)
        archive.writestr(_zip_entry(MEDIA_INDEX_NAME), json.dumps(index))
        for number, name in index.items():
            archive.writestr(_zip_entry(number), media[name])

    logger.debug("Built Anki package for deck %r with %d media files", deck_name, len(index))
    return buffer.getvalue()
