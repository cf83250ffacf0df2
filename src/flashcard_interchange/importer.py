"""Import entry points: detect the format of an upload and run its parser."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional

from .anki_package import MediaUrl, parse_anki_package
from .config import MAX_IMPORT_SIZE
from .detect_format import (
    ANKI,
    CSV,
    DELIMITERS,
    IMPORT_FORMATS,
    MNEMOSYNE,
    QUIZLET_TEXT,
    detect_format,
    resolve_delimiter,
)
from .errors import FormatError, ValidationError
from .ingest import parse_text
from .mnemosyne import parse_mnemosyne
from .results import ParseResult

logger = logging.getLogger(__name__)

# Formats whose name pins the delimiter; dash_text sniffs dash vs pipe.
_FORMAT_DELIMITERS = {QUIZLET_TEXT: "\t", CSV: ","}

_BOOLEAN_OPTIONS = ("handle_media", "detect_duplicates")


def decode_text(data: bytes) -> str:
    """Decode uploaded text as UTF-8 (BOM tolerated), falling back to Latin-1."""
    try:
        return data.decode("utf-8-sig")
    except UnicodeDecodeError:
        logger.debug("Upload is not valid UTF-8; decoding as latin-1")
        return data.decode("latin-1")


def import_bytes(
    data: bytes,
    filename: Optional[str] = None,
    delimiter: Optional[str] = None,
    handle_media: bool = False,
    media_url: Optional[MediaUrl] = None,
    max_import_size: int = MAX_IMPORT_SIZE,
    fmt: Optional[str] = None,
) -> ParseResult:
    """Detect the format of an upload and parse it.

    Args:
        data: Uploaded file content
        filename: Original filename; its extension is authoritative for
            .apkg, .xml and .mem
        delimiter: Delimiter override for text formats
        handle_media: Extract Anki media files
        media_url: Storage callback mapping a media filename to its URL
        max_import_size: Largest number of cards a single import may produce
        fmt: Skip detection and use this import format

    Returns:
        ParseResult from the chosen parser
    """
    if not data:
        return ParseResult.failure("File is empty or could not be read")

    try:
        source_format = fmt or detect_format(filename, data)
    except FormatError as e:
        logger.error("Import rejected: %s", e)
        return ParseResult.failure(str(e))
    if source_format not in IMPORT_FORMATS:
        return ParseResult.failure(f"Unsupported import format: {source_format}")

    logger.debug("Importing %s as %s", filename or "<upload>", source_format)
    if source_format == ANKI:
        return parse_anki_package(
            data,
            handle_media=handle_media,
            media_url=media_url,
            max_import_size=max_import_size,
        )
    if source_format == MNEMOSYNE:
        return parse_mnemosyne(data, max_import_size=max_import_size)

    return parse_text(
        decode_text(data),
        delimiter=delimiter or _FORMAT_DELIMITERS.get(source_format),
        max_import_size=max_import_size,
        source=source_format,
    )


def import_file(path: str | Path, **kwargs: Any) -> ParseResult:
    """Read a file from disk and pass it to import_bytes."""
    path = Path(path)
    try:
        data = path.read_bytes()
    except OSError as e:
        logger.error("Could not read %s: %s", path, e)
        return ParseResult.failure("File is empty or could not be read")
    return import_bytes(data, filename=path.name, **kwargs)


def _is_known_delimiter(value: Any) -> bool:
    if not isinstance(value, str):
        return False
    try:
        resolve_delimiter(value)
    except ValidationError:
        return False
    return True


def validate_import_options(options: Mapping[str, Any]) -> List[str]:
    """Check import options before running an import.

    Returns:
        Human-readable messages (empty list when the options are valid)
    """
    errors: List[str] = []
    fmt = options.get("format")
    if fmt is not None and fmt not in IMPORT_FORMATS:
        errors.append("Invalid import format specified")

    delimiter = options.get("delimiter")
    if delimiter is not None and not _is_known_delimiter(delimiter):
        errors.append("Delimiter must be one of: " + ", ".join(DELIMITERS))

    for name in _BOOLEAN_OPTIONS:
        if name in options and not isinstance(options[name], bool):
            label = name.replace("_", " ").capitalize()
            errors.append(f"{label} option must be boolean")

    threshold = options.get("similarity_threshold")
    if threshold is not None:
        if isinstance(threshold, bool) or not isinstance(threshold, (int, float)):
            errors.append("Similarity threshold must be a number")
        elif not 0.0 <= threshold <= 1.0:
            errors.append("Similarity threshold must be between 0 and 1")

    return errors


def import_summary(result: ParseResult) -> Dict[str, Any]:
    """Counts a preview screen shows before anything is persisted."""
    return {
        "success": result.success,
        "source_format": result.source_format,
        "total_lines": result.total_lines,
        "parsed_cards": result.parsed_cards,
        "delimiter": result.delimiter,
        "errors": list(result.errors),
        "error": result.error,
    }
