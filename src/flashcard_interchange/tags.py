"""Tag parsing helpers.

Two tag sources exist:
- Inline ``#hashtag`` tokens embedded in imported question/answer text.
- Anki's space-separated tag column (``notes.tags``).
"""

from __future__ import annotations

import re
from typing import Iterable, List, Tuple

from .normalize import collapse_whitespace

# A hashtag token is bounded by whitespace or the string edge on both sides.
_HASHTAG_RE = re.compile(r"(?<!\S)#([^\s#]+)(?!\S)")


def extract_hashtags(text: str) -> Tuple[str, List[str]]:
    """Strip ``#tag`` tokens out of text.

    Args:
        text: Field text possibly containing hashtag tokens

    Returns:
        Tuple of (text without the tokens, tags in order of appearance).
        Tag matching is case-sensitive; repeated tags are reported once.
    """
    if not text:
        return "", []
    tags = merge_tags([], _HASHTAG_RE.findall(text))
    clean = _HASHTAG_RE.sub(" ", text)
    return collapse_whitespace(clean), tags


def parse_tags(tags_string: str) -> List[str]:
    """Parse Anki tag string into list of tags.

    Anki uses space-separated tags. This function splits on whitespace
    and strips each tag.

    Args:
        tags_string: Space-separated tag string from Anki

    Returns:
        List of individual tags (empty list if input is empty)
    """
    if not tags_string or not tags_string.strip():
        return []

    tags = [tag.strip() for tag in tags_string.split()]
    return [tag for tag in tags if tag]


def format_tags(tags_list: Iterable[str]) -> str:
    """Format tag list back to Anki string format.

    Anki tags cannot contain spaces, so inner whitespace becomes ``_``.
    """
    tags = [anki_safe_tag(t) for t in tags_list or []]
    return " ".join(t for t in tags if t)


def anki_safe_tag(tag: str) -> str:
    return "_".join(tag.split())


def merge_tags(existing: Iterable[str], extra: Iterable[str]) -> List[str]:
    """Order-preserving union of two tag lists."""
    out: List[str] = []
    for tag in list(existing or []) + list(extra or []):
        tag = tag.strip()
        if tag and tag not in out:
            out.append(tag)
    return out
