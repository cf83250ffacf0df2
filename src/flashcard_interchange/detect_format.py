"""Format detection for uploaded flashcard files.

Extension is authoritative for container formats (``.apkg`` and
``.xml``/``.mem``); everything else is sniffed from the content: zip magic,
an XML prolog, or the delimiter splitting the first non-empty line.
"""

from __future__ import annotations

import csv
import logging
from pathlib import PurePath
from typing import Iterable, List, Optional

from .errors import FormatError, ValidationError
from .normalize import normalize_line_endings

logger = logging.getLogger(__name__)

QUIZLET_TEXT = "quizlet_text"
CSV = "csv"
DASH_TEXT = "dash_text"
ANKI = "anki"
MNEMOSYNE = "mnemosyne"

IMPORT_FORMATS = (QUIZLET_TEXT, CSV, DASH_TEXT, ANKI, MNEMOSYNE)

SUPPORTED_EXTENSIONS = {
    "csv": "CSV/TSV files",
    "tsv": "Tab-separated values",
    "txt": "Plain text files",
    "apkg": "Anki packages",
    "mem": "Mnemosyne exports",
    "xml": "XML exports",
}

_EXTENSION_FORMATS = {
    "apkg": ANKI,
    "xml": MNEMOSYNE,
    "mem": MNEMOSYNE,
}

DELIMITERS = {
    "tab": "\t",
    "comma": ",",
    "dash": " - ",
    "pipe": "|",
    "semicolon": ";",
}

# Auto-detection preference; semicolon is only used when asked for explicitly.
_DETECTION_ORDER = ("tab", "comma", "dash", "pipe")

_DELIMITER_FORMATS = {
    "\t": QUIZLET_TEXT,
    ",": CSV,
    " - ": DASH_TEXT,
    "|": DASH_TEXT,
}

_ZIP_MAGIC = b"PK\x03\x04"
_SNIFF_BYTES = 4096


def resolve_delimiter(value: str) -> str:
    """Map a delimiter name (``tab``, ``comma``...) or literal to the literal.

    Raises:
        ValidationError: If the value is neither a known name nor a known literal
    """
    if value in DELIMITERS:
        return DELIMITERS[value]
    if value in DELIMITERS.values():
        return value
    if value == "-":
        return DELIMITERS["dash"]
    raise ValidationError([f"Unsupported delimiter: {value!r}"])


def delimiter_name(delimiter: Optional[str]) -> Optional[str]:
    for name, literal in DELIMITERS.items():
        if literal == delimiter:
            return name
    return None


def split_line(line: str, delimiter: str) -> List[str]:
    """Split one line into at most 3 fields (question, answer, hint).

    Commas use quoted-field CSV parsing so separators inside quotes survive.
    """
    if delimiter == ",":
        fields = next(csv.reader([line]), [])
        if len(fields) > 3:
            fields = fields[:2] + [",".join(fields[2:])]
        return fields
    return line.split(delimiter, 2)


def detect_delimiter(lines: Iterable[str]) -> Optional[str]:
    """Pick the delimiter for a text blob from its first non-empty line."""
    first = next((line for line in lines if line.strip()), None)
    if first is None:
        return None
    for name in _DETECTION_ORDER:
        delimiter = DELIMITERS[name]
        if len(split_line(first, delimiter)) >= 2:
            return delimiter
    return None


def _extension(filename: Optional[str]) -> str:
    if not filename:
        return ""
    return PurePath(filename).suffix.lower().lstrip(".")


def _decode_sample(data: bytes) -> str:
    sample = data[:_SNIFF_BYTES]
    for encoding in ("utf-8-sig", "latin-1"):
        try:
            return sample.decode(encoding)
        except UnicodeDecodeError:
            continue
    return ""


def looks_like_xml(text: str) -> bool:
    head = text.lstrip("\ufeff").lstrip()
    return head.startswith("<?xml") or head.startswith("<mnemosyne") or head.startswith("<cards")


def detect_format(filename: Optional[str] = None, content: bytes | str | None = None) -> str:
    """Return one of IMPORT_FORMATS for the given upload.

    Raises:
        FormatError: If neither the extension nor the content identifies a format
    """
    ext = _extension(filename)
    if ext in _EXTENSION_FORMATS:
        return _EXTENSION_FORMATS[ext]

    if content:
        if isinstance(content, bytes):
            if content.startswith(_ZIP_MAGIC):
                return ANKI
            text = _decode_sample(content)
        else:
            text = content[:_SNIFF_BYTES]
        if looks_like_xml(text):
            return MNEMOSYNE
        delimiter = detect_delimiter(normalize_line_endings(text).split("\n"))
        if delimiter is not None:
            return _DELIMITER_FORMATS[delimiter]

    label = f"'.{ext}' file" if ext else "input"
    logger.debug("Format detection failed for %s", filename or "<content>")
    raise FormatError(
        f"Unsupported {label}: could not detect a flashcard format. "
        "Supported formats: tab-separated, comma-separated, \" - \" separated, "
        "Anki (.apkg) and Mnemosyne (.xml/.mem)"
    )
