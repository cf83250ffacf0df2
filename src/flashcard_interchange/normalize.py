"""Unicode and markup normalization utilities.

Policy:
- Convert every line ending to ``\\n`` before any line-based parsing.
- Apply NFC early for consistency.
- For matching: lowercase, strip HTML, strip punctuation, collapse whitespace.
"""

from __future__ import annotations

import html as html_lib
import re
import unicodedata as ud

_WS_RE = re.compile(r"\s+")
_HTML_RE = re.compile(r"<[^>]+>")
_SOUND_RE = re.compile(r"\[sound:[^\]]+\]")


def normalize_line_endings(text: str) -> str:
    """Convert ``\\r\\n`` and bare ``\\r`` to ``\\n``."""
    if not text:
        return ""
    return text.replace("\r\n", "\n").replace("\r", "\n")


def normalize_text_nfc(text: str) -> str:
    """Apply Unicode NFC to input text (safe for None-like inputs)."""
    if text is None:
        return ""
    return ud.normalize("NFC", str(text))


def strip_html_tags(text: str) -> str:
    """Remove HTML tags but preserve text content."""
    if not text:
        return ""
    return _HTML_RE.sub("", text)


def strip_sound_tags(text: str) -> str:
    """Remove Anki sound references: [sound:filename.mp3]."""
    if not text:
        return ""
    return _SOUND_RE.sub("", text)


def collapse_whitespace(text: str) -> str:
    if not text:
        return ""
    return _WS_RE.sub(" ", text).strip()


def _strip_punctuation(text: str) -> str:
    # Any 'P*' category becomes a space so words on either side stay apart.
    return "".join(ch if not ud.category(ch).startswith("P") else " " for ch in text)


def normalize_for_match(text: str) -> str:
    """Normalize card text for duplicate matching.

    Steps: NFC -> strip sound references -> unescape entities -> strip HTML
    -> lowercase -> strip punctuation -> collapse whitespace and trim.
    """
    if not text:
        return ""
    t = normalize_text_nfc(text)
    t = html_lib.unescape(strip_html_tags(strip_sound_tags(t)))
    t = t.lower()
    t = _strip_punctuation(t)
    return collapse_whitespace(t)
