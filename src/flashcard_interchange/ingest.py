"""Delimited plaintext ingest (Quizlet TSV, CSV, dash- and pipe-separated).

Schema per line: question, answer, optional hint. ``#hashtag`` tokens inside
question or answer become tags. Blank lines are skipped.
"""

from __future__ import annotations

import logging
import re
from typing import Iterable, List, Optional

from .cards import Card, CardType, validate_card
from .cloze import cloze_answers, has_cloze
from .config import MAX_IMPORT_SIZE
from .detect_format import delimiter_name, detect_delimiter, resolve_delimiter, split_line
from .errors import FormatError, ParseError, SizeLimitError, ValidationError
from .normalize import normalize_line_endings
from .results import ParseResult
from .tags import extract_hashtags, merge_tags

logger = logging.getLogger(__name__)

MAX_CHOICES = 6

_TRUE_FALSE_RE = re.compile(r"^(true|false|yes|no|t|f|y|n)$", re.IGNORECASE)
_TRUE_VALUES = {"true", "yes", "t", "y"}
_LETTERED_CHOICE_RE = re.compile(r"^(?:[a-d]|\d+)\)", re.IGNORECASE)
_CHOICE_SPLIT_RE = re.compile(r"\s*(?:^|\s)(?:[a-d]|\d+)\)\s*", re.IGNORECASE)


def parse_text(
    content: str,
    delimiter: Optional[str] = None,
    max_import_size: int = MAX_IMPORT_SIZE,
    source: str = "text",
) -> ParseResult:
    """Parse a delimited text blob into cards.

    Args:
        content: Raw text in any line-ending convention
        delimiter: Optional delimiter name or literal overriding auto-detection
        max_import_size: Largest number of cards a single import may produce
        source: Recorded on each card as ``import_source``

    Returns:
        ParseResult; per-line problems are listed in ``errors`` while the
        batch still succeeds as long as at least one card was parsed
    """
    if not content or not content.strip():
        return ParseResult.failure("No content provided")

    total_lines = 0
    chosen: Optional[str] = None
    try:
        text = normalize_line_endings(content).lstrip("\ufeff")
        numbered = [(n, line) for n, line in enumerate(text.split("\n"), start=1) if line.strip()]
        total_lines = len(numbered)

        chosen = resolve_delimiter(delimiter) if delimiter else detect_delimiter(line for _, line in numbered)
        if chosen is None:
            raise FormatError(
                "Could not detect delimiter. Supported formats: tab-separated, "
                "comma-separated, or \" - \" separated"
            )

        cards: List[Card] = []
        errors: List[str] = []
        for line_number, line in numbered:
            try:
                cards.append(parse_line(line, chosen, line_number, source=source))
            except ParseError as e:
                errors.append(str(e))

        if not cards:
            detail = f" Errors: {'; '.join(errors)}" if errors else ""
            return ParseResult.failure(
                f"No valid flashcards could be parsed.{detail}",
                errors=errors,
                total_lines=total_lines,
                delimiter=chosen,
                source_format=source,
            )

        if len(cards) > max_import_size:
            raise SizeLimitError(
                f"Import contains {len(cards)} cards, but maximum allowed is {max_import_size}",
                max_import_size,
            )

        logger.info(
            "Parsed %d cards from %d lines (delimiter=%s, %d errors)",
            len(cards), total_lines, delimiter_name(chosen), len(errors),
        )
        return ParseResult(
            success=True,
            cards=cards,
            errors=errors,
            total_lines=total_lines,
            delimiter=chosen,
            source_format=source,
        )
    except ValidationError as e:
        return ParseResult.failure(str(e), errors=e.messages, source_format=source)
    except (FormatError, SizeLimitError) as e:
        return ParseResult.failure(
            str(e), total_lines=total_lines, delimiter=chosen, source_format=source
        )
    except Exception as e:
        logger.exception("Import parsing error")
        return ParseResult.failure(f"Failed to parse import data: {e}", source_format=source)


def parse_line(line: str, delimiter: str, line_number: int, source: str = "text") -> Card:
    """Parse one non-blank line.

    Raises:
        ParseError: If the line lacks a question or an answer
    """
    parts = split_line(line, delimiter)
    if len(parts) < 2:
        raise ParseError(
            "Must contain at least question and answer separated by delimiter", line_number
        )

    question, question_tags = extract_hashtags(parts[0].strip())
    answer, answer_tags = extract_hashtags(parts[1].strip())
    hint = parts[2].strip() if len(parts) > 2 else ""

    if not question:
        raise ParseError("Question cannot be empty", line_number)
    if not answer:
        raise ParseError("Answer cannot be empty", line_number)

    card = Card(
        question=question,
        answer=answer,
        hint=hint or None,
        tags=merge_tags(question_tags, answer_tags),
        import_source=source,
    )
    return apply_inferred_type(card)


def infer_card_type(question: str, answer: str) -> CardType:
    """Guess the card type of an untyped question/answer pair."""
    if has_cloze(question) or has_cloze(answer):
        return CardType.CLOZE
    if _LETTERED_CHOICE_RE.match(answer) or ";" in answer:
        return CardType.MULTIPLE_CHOICE
    if _TRUE_FALSE_RE.match(answer.strip()):
        return CardType.TRUE_FALSE
    return CardType.BASIC


def _split_choices(answer: str) -> List[str]:
    if ";" in answer:
        parts = answer.split(";")
    else:
        parts = _CHOICE_SPLIT_RE.split(answer)
    return [p.strip() for p in parts if p.strip()][:MAX_CHOICES]


def apply_inferred_type(card: Card) -> Card:
    """Fill the type-specific fields implied by the card's text.

    Multiple choice detection that yields fewer than two choices leaves the
    card basic rather than producing an invalid record.
    """
    card_type = infer_card_type(card.question, card.answer)

    if card_type is CardType.CLOZE:
        source_text = card.question if has_cloze(card.question) else card.answer
        card.card_type = CardType.CLOZE
        card.cloze_text = source_text
        card.cloze_answers = cloze_answers(source_text)
    elif card_type is CardType.MULTIPLE_CHOICE:
        choices = _split_choices(card.answer)
        if len(choices) >= 2:
            card.card_type = CardType.MULTIPLE_CHOICE
            card.choices = choices
            card.correct_choices = [0]
            card.answer = choices[0]
    elif card_type is CardType.TRUE_FALSE:
        is_true = card.answer.strip().lower() in _TRUE_VALUES
        card.card_type = CardType.TRUE_FALSE
        card.choices = ["True", "False"]
        card.correct_choices = [0 if is_true else 1]
        card.answer = "True" if is_true else "False"
    return card


def validate_import(cards: Iterable[Card], max_import_size: int = MAX_IMPORT_SIZE) -> List[str]:
    """Validate a parsed batch before it is persisted.

    Returns:
        Human-readable messages, one per violation, row-labelled ``Row N: ...``
    """
    cards = list(cards)
    errors: List[str] = []
    if len(cards) > max_import_size:
        errors.append(f"Import size exceeds maximum limit of {max_import_size} cards")
    if not cards:
        errors.append("No valid flashcards found in import data")
    for row, card in enumerate(cards, start=1):
        for message in validate_card(card):
            errors.append(f"Row {row}: {message}")
    return errors
