"""Result records returned across the public import/export boundary."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from .cards import Card


@dataclass
class MediaFile:
    filename: str
    content: bytes
    size: int
    url: Optional[str] = None


@dataclass
class ParseResult:
    """Outcome of one parse call.

    Text parsers fill ``total_lines`` and ``delimiter``; the Anki parser fills
    ``media_files``, ``deck_info`` and ``note_types``. ``error`` is set only
    when ``success`` is False; ``errors`` holds per-record problems.
    """
    success: bool
    cards: List[Card] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)
    error: Optional[str] = None
    source_format: Optional[str] = None
    total_lines: int = 0
    delimiter: Optional[str] = None
    media_files: Dict[str, MediaFile] = field(default_factory=dict)
    deck_info: Dict[str, Dict[str, Any]] = field(default_factory=dict)
    note_types: Dict[str, Dict[str, Any]] = field(default_factory=dict)

    @property
    def parsed_cards(self) -> int:
        return len(self.cards)

    @classmethod
    def failure(cls, error: str, **kwargs: Any) -> "ParseResult":
        return cls(success=False, error=error, **kwargs)


@dataclass
class ExportResult:
    success: bool
    content: Optional[bytes] = None
    filename: Optional[str] = None
    mime_type: Optional[str] = None
    error: Optional[str] = None
    errors: List[str] = field(default_factory=list)

    @classmethod
    def failure(cls, error: str, errors: Optional[List[str]] = None) -> "ExportResult":
        return cls(success=False, error=error, errors=list(errors or [error]))
