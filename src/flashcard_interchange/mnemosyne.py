"""Mnemosyne XML reader and writer.

Accepted input shapes:
- ``<mnemosyne><card><Q>..</Q><A>..</A></card>...</mnemosyne>``
- ``<cards><item><question>..</question><answer>..</answer></item>...</cards>``

Question/answer children are matched case-insensitively against a small set
of aliases. The writer emits the first shape, which the reader accepts back.
"""

from __future__ import annotations

import logging
import re
import xml.etree.ElementTree as ET
from typing import Iterable, List, Optional

from .cards import Card, Difficulty, answer_text, question_text
from .config import MAX_IMPORT_SIZE
from .errors import SizeLimitError
from .normalize import normalize_line_endings
from .results import ParseResult
from .tags import merge_tags

logger = logging.getLogger(__name__)

CARD_ELEMENTS = ("card", "item", "flashcard")
QUESTION_ALIASES = ("q", "question", "front", "text")
ANSWER_ALIASES = ("a", "answer", "back", "solution")
CATEGORY_ALIASES = ("cat", "category", "tag", "deck")
HINT_ALIASES = ("hint", "note", "comment")
DIFFICULTY_ALIASES = ("difficulty", "level")

_INVALID_XML_RE = re.compile("[^\u0009\u000A\u000D\u0020-\uD7FF\uE000-\uFFFD\U00010000-\U0010FFFF]")


def parse_mnemosyne(content: str | bytes, max_import_size: int = MAX_IMPORT_SIZE) -> ParseResult:
    """Parse Mnemosyne XML into cards.

    Malformed XML fails the whole call. A card element missing its question
    or answer is skipped and reported in ``errors``.
    """
    if isinstance(content, bytes):
        content = content.decode("utf-8-sig", errors="replace")
    content = (content or "").lstrip("\ufeff").strip()
    if not content:
        return ParseResult.failure("No content provided", source_format="mnemosyne")

    try:
        root = ET.fromstring(content)
    except ET.ParseError as e:
        logger.error("Mnemosyne XML could not be parsed: %s", e)
        return ParseResult.failure(f"Invalid Mnemosyne XML: {e}", source_format="mnemosyne")

    cards: List[Card] = []
    errors: List[str] = []
    elements = [el for el in root.iter() if _local(el.tag) in CARD_ELEMENTS]
    for number, element in enumerate(elements, start=1):
        card = element_to_card(element)
        if card is None:
            errors.append(f"Card {number}: missing question or answer")
            logger.warning("Skipping Mnemosyne card %d without question or answer", number)
            continue
        cards.append(card)

    if not cards:
        return ParseResult.failure(
            "No valid flashcards found in the file", errors=errors, source_format="mnemosyne"
        )
    if len(cards) > max_import_size:
        error = SizeLimitError(
            f"Import contains {len(cards)} cards, but maximum allowed is {max_import_size}",
            max_import_size,
        )
        return ParseResult.failure(str(error), source_format="mnemosyne")

    logger.info("Parsed %d Mnemosyne cards (%d skipped)", len(cards), len(errors))
    return ParseResult(
        success=True,
        cards=cards,
        errors=errors,
        source_format="mnemosyne",
        total_lines=len(elements),
    )


def element_to_card(element: ET.Element) -> Optional[Card]:
    question = _child_text(element, QUESTION_ALIASES)
    answer = _child_text(element, ANSWER_ALIASES)
    if not question or not answer:
        return None

    categories = [_element_text(child) for child in element if _local(child.tag) in CATEGORY_ALIASES]
    listed = _child_text(element, ("tags",))
    tags = merge_tags(categories, listed.split(",") if listed else [])

    return Card(
        question=question,
        answer=answer,
        hint=_child_text(element, HINT_ALIASES) or None,
        tags=tags,
        difficulty_level=convert_difficulty(_child_text(element, DIFFICULTY_ALIASES)),
        import_source="mnemosyne",
    )


def convert_difficulty(value: Optional[str]) -> Difficulty:
    """Map Mnemosyne's 0-5 scale (or a literal level name) to a Difficulty."""
    if not value:
        return Difficulty.MEDIUM
    value = value.strip().lower()
    if value in (d.value for d in Difficulty):
        return Difficulty(value)
    try:
        number = float(value)
    except ValueError:
        return Difficulty.MEDIUM
    if number <= 1:
        return Difficulty.EASY
    if number >= 4:
        return Difficulty.HARD
    return Difficulty.MEDIUM


def _local(tag: object) -> str:
    # Drops any "{namespace}" prefix.
    if not isinstance(tag, str):
        return ""
    return tag.rsplit("}", 1)[-1].lower()


def _element_text(element: ET.Element) -> str:
    lines = normalize_line_endings("".join(element.itertext())).split("\n")
    return "\n".join(line.strip() for line in lines).strip()


def _child_text(element: ET.Element, aliases: Iterable[str]) -> str:
    for alias in aliases:
        for child in element:
            if _local(child.tag) == alias:
                text = _element_text(child)
                if text:
                    return text
    return ""


def _xml_text(value: str) -> str:
    # XML 1.0 has no encoding for most control characters; drop them.
    return _INVALID_XML_RE.sub("", value)


def build_mnemosyne_xml(cards: Iterable[Card]) -> bytes:
    """Serialize cards as a Mnemosyne XML document (UTF-8, with prolog).

    Characters XML 1.0 cannot carry, such as most C0 controls, are dropped
    from card text so the document always parses back.
    """
    root = ET.Element("mnemosyne", {"core_version": "1", "database_version": "1"})
    for card in cards:
        node = ET.SubElement(root, "card")
        if card.id is not None:
            ET.SubElement(node, "id").text = str(card.id)
        ET.SubElement(node, "Q").text = _xml_text(question_text(card))
        ET.SubElement(node, "A").text = _xml_text(answer_text(card))
        if card.tags:
            ET.SubElement(node, "tags").text = _xml_text(", ".join(card.tags))
        ET.SubElement(node, "grade").text = "0"
        ET.SubElement(node, "easiness").text = "2.5"
        ET.SubElement(node, "acq_reps").text = "0"
    ET.indent(root)
    return ET.tostring(root, encoding="utf-8", xml_declaration=True) + b"\n"
