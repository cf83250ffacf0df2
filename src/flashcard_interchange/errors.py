"""Error taxonomy.

These exceptions are raised inside parsers and exporters and converted to
``success=False`` result values before crossing a public function boundary.
"""

from __future__ import annotations

from typing import List, Optional


class InterchangeError(Exception):
    """Base class for all import/export failures."""


class FormatError(InterchangeError):
    """Input could not be attributed to any known format."""


class SizeLimitError(InterchangeError):
    """Batch exceeds the configured maximum size."""

    def __init__(self, message: str, limit: int) -> None:
        super().__init__(message)
        self.limit = limit


class ValidationError(InterchangeError):
    """One or more options or records are malformed."""

    def __init__(self, messages: List[str]) -> None:
        super().__init__("; ".join(messages))
        self.messages = list(messages)


class ArchiveError(InterchangeError):
    """A zip container or embedded SQLite database could not be read."""


class ParseError(InterchangeError):
    """A single line or record failed to parse."""

    def __init__(self, message: str, line: Optional[int] = None) -> None:
        super().__init__(f"Line {line}: {message}" if line is not None else message)
        self.line = line
