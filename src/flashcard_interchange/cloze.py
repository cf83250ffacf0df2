"""Cloze deletion syntax.

Two marker styles are recognised:
- Plain deletions: ``{{word}}``
- Anki deletions: ``{{c1::word}}`` or ``{{c1::word::hint}}``
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import List, Optional

_ANKI_CLOZE_RE = re.compile(r"\{\{c(\d+)::(.*?)(?:::([^}]*?))?\}\}", re.DOTALL)
_ANY_CLOZE_RE = re.compile(r"\{\{(?:c(\d+)::)?(.*?)(?:::([^}]*?))?\}\}", re.DOTALL)


@dataclass
class ClozeSegment:
    """A single cloze deletion.

    Attributes:
        number: Deletion number (``cN``), None for plain ``{{word}}`` markers
        content: Deleted text (before any ``::`` hint)
        hint: Optional hint text (after the second ``::``)
        full_match: Full matched marker string
    """
    number: Optional[int]
    content: str
    hint: str
    full_match: str


@dataclass
class ClozeParseResult:
    is_cloze: bool
    segments: List[ClozeSegment]
    context_text: str
    full_text: str


def has_cloze(text: str) -> bool:
    return bool(text) and _ANY_CLOZE_RE.search(text) is not None


def has_anki_cloze(text: str) -> bool:
    return bool(text) and _ANKI_CLOZE_RE.search(text) is not None


def parse_cloze(text: str) -> ClozeParseResult:
    """Parse cloze markers from a field.

    Args:
        text: Raw field text

    Returns:
        ClozeParseResult with segments in order of appearance and the text
        outside the deletions
    """
    if not text:
        return ClozeParseResult(is_cloze=False, segments=[], context_text="", full_text=text or "")

    segments = []
    for match in _ANY_CLOZE_RE.finditer(text):
        number = int(match.group(1)) if match.group(1) else None
        segments.append(
            ClozeSegment(
                number=number,
                content=match.group(2).strip(),
                hint=(match.group(3) or "").strip(),
                full_match=match.group(0),
            )
        )

    return ClozeParseResult(
        is_cloze=bool(segments),
        segments=segments,
        context_text=_ANY_CLOZE_RE.sub("", text),
        full_text=text,
    )


def cloze_answers(text: str) -> List[str]:
    """Deleted terms in order of appearance, each reported once."""
    answers: List[str] = []
    for seg in parse_cloze(text).segments:
        if seg.content and seg.content not in answers:
            answers.append(seg.content)
    return answers


def to_anki_cloze(text: str) -> str:
    """Rewrite plain ``{{word}}`` deletions as numbered ``{{cN::word}}``.

    Existing ``cN`` markers are kept; plain markers are numbered after the
    highest existing number so every deletion produces an Anki card.
    """
    if not text:
        return ""
    numbers = [int(m.group(1)) for m in _ANKI_CLOZE_RE.finditer(text)]
    counter = [max(numbers) if numbers else 0]

    def _renumber(match: re.Match) -> str:
        if match.group(1):
            return match.group(0)
        counter[0] += 1
        hint = f"::{match.group(3)}" if match.group(3) else ""
        return f"{{{{c{counter[0]}::{match.group(2)}{hint}}}}}"

    return _ANY_CLOZE_RE.sub(_renumber, text)
