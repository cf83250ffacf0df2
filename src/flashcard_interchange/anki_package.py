"""Anki package (.apkg) reader.

An .apkg is a zip archive holding:
- ``collection.anki2`` or ``collection.anki21``: a SQLite database in the
  legacy schema (note types and decks as JSON in the ``col`` row)
- ``media``: a JSON object mapping numbered entry names to original filenames
- ``0``, ``1``, ...: the media files themselves

``collection.anki21b`` (zstd-compressed, split notetype tables) is not read.
"""

from __future__ import annotations

import html as html_lib
import io
import json
import logging
import re
import shutil
import sqlite3
import tempfile
import zipfile
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Tuple

from .cards import Card, CardType
from .cloze import cloze_answers, has_cloze
from .config import MAX_IMPORT_SIZE
from .errors import ArchiveError, SizeLimitError
from .normalize import normalize_line_endings
from .results import MediaFile, ParseResult
from .tags import parse_tags

logger = logging.getLogger(__name__)

FIELD_SEPARATOR = "\x1f"
MODEL_TYPE_STANDARD = 0
MODEL_TYPE_CLOZE = 1
MAX_CHOICES = 6

# Newest first; anki21 carries the same schema as anki2 with newer features.
_COLLECTION_NAMES = ("collection.anki21", "collection.anki2")
_UNSUPPORTED_COLLECTION = "collection.anki21b"

_BREAK_RE = re.compile(r"<br\s*/?>|</div>|</p>", re.IGNORECASE)
# Every tag except <img>, which carries media references.
_NON_IMG_TAG_RE = re.compile(r"<(?!img\b)[^>]+>", re.IGNORECASE)
_IMG_SRC_RE = re.compile(r'(<img[^>]+src=["\'])([^"\']+)(["\'])', re.IGNORECASE)
_SOUND_RE = re.compile(r"\[sound:([^\]]+)\]")
_CHOICE_FIELD_RE = re.compile(r"choice|option", re.IGNORECASE)

MediaUrl = Callable[[str], str]


def parse_anki_package(
    source: bytes | str | Path,
    handle_media: bool = False,
    media_url: Optional[MediaUrl] = None,
    max_import_size: int = MAX_IMPORT_SIZE,
) -> ParseResult:
    """Read an .apkg archive into cards.

    Args:
        source: Raw archive bytes or a path to the archive
        handle_media: Extract media files and rewrite references to them
        media_url: Maps an original media filename to a stored URL; without
            it references keep the original filename
        max_import_size: Largest number of cards a single import may produce

    Returns:
        ParseResult with ``deck_info``, ``note_types`` and, when requested,
        ``media_files`` keyed by original filename
    """
    try:
        with tempfile.TemporaryDirectory(prefix="apkg-") as tmp:
            db_path, media_files, errors = _unpack(
                source, Path(tmp), handle_media, media_url
            )
            conn = _connect_read_only(db_path)
            try:
                note_types, decks = _read_collection(conn)
                cards, card_errors, deck_counts = _read_notes(conn, note_types, media_files)
            except sqlite3.DatabaseError as e:
                raise ArchiveError(f"Invalid Anki package: corrupt collection database ({e})")
            finally:
                conn.close()
    except ArchiveError as e:
        logger.error("Anki import failed: %s", e)
        return ParseResult.failure(str(e), source_format="anki")
    except Exception as e:
        logger.exception("Anki import failed")
        return ParseResult.failure(f"Failed to parse Anki package: {e}", source_format="anki")

    errors.extend(card_errors)
    deck_info = {
        did: {**info, "card_count": deck_counts[did]}
        for did, info in decks.items()
        if did in deck_counts
    }

    if not cards:
        return ParseResult.failure(
            "No valid flashcards found in Anki package",
            errors=errors,
            source_format="anki",
            deck_info=deck_info,
            note_types=note_types,
        )
    if len(cards) > max_import_size:
        error = SizeLimitError(
            f"Import contains {len(cards)} cards, but maximum allowed is {max_import_size}",
            max_import_size,
        )
        return ParseResult.failure(str(error), source_format="anki")

    logger.info(
        "Parsed %d cards from Anki package (%d decks, %d media files, %d errors)",
        len(cards), len(deck_info), len(media_files), len(errors),
    )
    return ParseResult(
        success=True,
        cards=cards,
        errors=errors,
        source_format="anki",
        media_files=media_files,
        deck_info=deck_info,
        note_types=note_types,
    )


# ---------------------------------------------------------------------------
# Archive handling
# ---------------------------------------------------------------------------


def _open_archive(source: bytes | str | Path) -> zipfile.ZipFile:
    try:
        if isinstance(source, (bytes, bytearray)):
            return zipfile.ZipFile(io.BytesIO(source))
        return zipfile.ZipFile(source)
    except (zipfile.BadZipFile, OSError) as e:
        logger.debug("Could not open archive: %s", e)
        raise ArchiveError("Failed to open Anki package file")


def _select_collection(names: List[str]) -> str:
    for name in _COLLECTION_NAMES:
        if name in names:
            return name
    if _UNSUPPORTED_COLLECTION in names:
        raise ArchiveError(
            "Unsupported Anki package: collection.anki21b format is not supported. "
            "Re-export the deck with 'Support older Anki versions' enabled"
        )
    raise ArchiveError("Invalid Anki package: collection.anki2 not found")


def _unpack(
    source: bytes | str | Path,
    tmp: Path,
    handle_media: bool,
    media_url: Optional[MediaUrl],
) -> Tuple[Path, Dict[str, MediaFile], List[str]]:
    """Stage the collection database in ``tmp`` and collect media."""
    errors: List[str] = []
    media_files: Dict[str, MediaFile] = {}
    with _open_archive(source) as archive:
        names = archive.namelist()
        collection = _select_collection(names)
        db_path = tmp / collection
        with archive.open(collection) as src, open(db_path, "wb") as dst:
            shutil.copyfileobj(src, dst)

        media_index = _read_media_index(archive, names, errors)
        if handle_media:
            for entry, filename in media_index.items():
                if entry not in names:
                    errors.append(f"Media file not found: {filename}")
                    continue
                content = archive.read(entry)
                url = media_url(filename) if media_url else None
                media_files[filename] = MediaFile(
                    filename=filename, content=content, size=len(content), url=url
                )
    return db_path, media_files, errors


def _read_media_index(archive: zipfile.ZipFile, names: List[str], errors: List[str]) -> Dict[str, str]:
    if "media" not in names:
        return {}
    raw = archive.read("media")
    if not raw.strip():
        return {}
    try:
        index = json.loads(raw.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError):
        errors.append("Media index could not be read; media files were ignored")
        return {}
    if not isinstance(index, dict):
        return {}
    return {str(k): str(v) for k, v in index.items()}


def _connect_read_only(db_path: Path) -> sqlite3.Connection:
    conn = sqlite3.connect(f"{db_path.as_uri()}?mode=ro", uri=True)
    conn.row_factory = sqlite3.Row
    try:
        conn.execute("SELECT count(*) FROM sqlite_master").fetchone()
    except sqlite3.DatabaseError as e:
        conn.close()
        raise ArchiveError(f"Invalid Anki package: collection database could not be opened ({e})")
    return conn


# ---------------------------------------------------------------------------
# Collection reading
# ---------------------------------------------------------------------------


def _read_collection(conn: sqlite3.Connection) -> Tuple[Dict[str, Dict[str, Any]], Dict[str, Dict[str, Any]]]:
    """Return (note types, decks) from the ``col`` row."""
    tables = {row[0] for row in conn.execute("SELECT name FROM sqlite_master WHERE type='table'")}
    if not {"col", "notes"} <= tables:
        raise ArchiveError("Unsupported Anki package: unrecognized collection schema")

    row = conn.execute("SELECT models, decks FROM col LIMIT 1").fetchone()
    if row is None:
        raise ArchiveError("Unsupported Anki package: collection has no configuration row")

    models_json, decks_json = row["models"], row["decks"]
    if not (models_json or "").strip() or models_json.strip() == "{}":
        if "notetypes" in tables:
            raise ArchiveError(
                "Unsupported Anki package: this collection uses the newer notetype schema"
            )
        raise ArchiveError("Unsupported Anki package: collection has no note types")

    try:
        models = json.loads(models_json)
        decks = json.loads(decks_json or "{}")
    except json.JSONDecodeError as e:
        raise ArchiveError(f"Invalid Anki package: malformed collection metadata ({e})")

    note_types: Dict[str, Dict[str, Any]] = {}
    for mid, model in models.items():
        fields = sorted(model.get("flds", []), key=lambda f: f.get("ord", 0))
        note_types[str(mid)] = {
            "name": model.get("name", ""),
            "type": int(model.get("type", MODEL_TYPE_STANDARD)),
            "fields": [f.get("name", "") for f in fields],
        }

    deck_info = {
        str(did): {"name": deck.get("name", ""), "description": deck.get("desc", "")}
        for did, deck in decks.items()
    }
    return note_types, deck_info


def _note_decks(conn: sqlite3.Connection) -> Dict[int, str]:
    """First deck (lowest card ordinal) holding each note."""
    decks: Dict[int, str] = {}
    try:
        rows = conn.execute("SELECT nid, did FROM cards ORDER BY nid, ord").fetchall()
    except sqlite3.OperationalError:
        return decks
    for row in rows:
        decks.setdefault(row["nid"], str(row["did"]))
    return decks


def _read_notes(
    conn: sqlite3.Connection,
    note_types: Dict[str, Dict[str, Any]],
    media_files: Dict[str, MediaFile],
) -> Tuple[List[Card], List[str], Dict[str, int]]:
    cards: List[Card] = []
    errors: List[str] = []
    deck_counts: Dict[str, int] = {}
    note_decks = _note_decks(conn)

    rows = conn.execute("SELECT id, mid, tags, flds FROM notes ORDER BY id").fetchall()
    for row in rows:
        note_type = note_types.get(str(row["mid"]))
        if note_type is None:
            errors.append(f"Note {row['id']}: unknown note type {row['mid']}")
            logger.warning("Skipping note %s with unknown note type %s", row["id"], row["mid"])
            continue

        fields = [
            _clean_field(_rewrite_media(value, media_files))
            for value in (row["flds"] or "").split(FIELD_SEPARATOR)
        ]
        card = note_to_card(note_type, fields, parse_tags(row["tags"] or ""))
        if card is None:
            errors.append(f"Note {row['id']}: missing question or answer")
            continue

        _attach_media_urls(card, media_files)
        cards.append(card)
        did = note_decks.get(row["id"])
        if did is not None:
            deck_counts[did] = deck_counts.get(did, 0) + 1
    return cards, errors, deck_counts


def note_to_card(note_type: Dict[str, Any], fields: List[str], tags: List[str]) -> Optional[Card]:
    """Map one note's cleaned field values to a Card.

    Cloze note types keep their ``{{cN::...}}`` markers in ``cloze_text``.
    Note types with "choice"/"option" fields become multiple choice. Any
    other note type falls back to first field as question and the remaining
    non-empty fields, newline-joined, as answer.

    Returns:
        Card, or None if the note has no usable question or answer
    """
    names = list(note_type.get("fields", []))
    values = fields + [""] * (len(names) - len(fields))
    if not values or not values[0].strip():
        return None

    if note_type.get("type") == MODEL_TYPE_CLOZE or has_cloze(values[0]):
        text = values[0]
        answers = cloze_answers(text)
        if not answers:
            return None
        extra = "\n".join(v for v in values[1:] if v.strip())
        return Card(
            question=text,
            answer=extra or ", ".join(answers),
            card_type=CardType.CLOZE,
            cloze_text=text,
            cloze_answers=answers,
            tags=tags,
            import_source="anki",
        )

    choice_values = [
        values[i]
        for i, name in enumerate(names)
        if i > 0 and _CHOICE_FIELD_RE.search(name or "") and values[i].strip()
    ]
    if len(choice_values) >= 2:
        choices = choice_values[:MAX_CHOICES]
        return Card(
            question=values[0],
            answer=choices[0],
            card_type=CardType.MULTIPLE_CHOICE,
            choices=choices,
            correct_choices=[0],
            tags=tags,
            import_source="anki",
        )

    answer = "\n".join(v for v in values[1:] if v.strip())
    if not answer:
        return None
    return Card(question=values[0], answer=answer, tags=tags, import_source="anki")


# ---------------------------------------------------------------------------
# Field text
# ---------------------------------------------------------------------------


def _clean_field(value: str) -> str:
    """Strip markup other than ``<img>`` and unescape entities."""
    text = _BREAK_RE.sub("\n", value or "")
    text = _NON_IMG_TAG_RE.sub("", text)
    text = html_lib.unescape(text)
    lines = [line.strip() for line in normalize_line_endings(text).split("\n")]
    return "\n".join(line for line in lines if line)


def _rewrite_media(value: str, media_files: Dict[str, MediaFile]) -> str:
    """Point ``<img src>`` and ``[sound:]`` references at stored media URLs."""
    if not media_files or not value:
        return value

    def _img(match: re.Match) -> str:
        media = media_files.get(match.group(2))
        if media is None or not media.url:
            return match.group(0)
        return f"{match.group(1)}{media.url}{match.group(3)}"

    def _sound(match: re.Match) -> str:
        media = media_files.get(match.group(1))
        if media is None or not media.url:
            return match.group(0)
        return f"[sound:{media.url}]"

    return _SOUND_RE.sub(_sound, _IMG_SRC_RE.sub(_img, value))


def _attach_media_urls(card: Card, media_files: Dict[str, MediaFile]) -> None:
    if not media_files:
        return
    match = _IMG_SRC_RE.search(card.question) or _IMG_SRC_RE.search(card.answer)
    if match:
        card.question_image_url = match.group(2)
