"""Normalized card model shared by every parser and exporter.

A Card is a value object: ``id`` and the timestamps belong to whatever
persistence layer stores it and are optional here.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Dict, List, Mapping, Optional

MAX_TEXT_LENGTH = 65535
MAX_TAG_LENGTH = 50


class CardType(str, Enum):
    BASIC = "basic"
    MULTIPLE_CHOICE = "multiple_choice"
    TRUE_FALSE = "true_false"
    CLOZE = "cloze"
    TYPED_ANSWER = "typed_answer"
    IMAGE_OCCLUSION = "image_occlusion"


class Difficulty(str, Enum):
    EASY = "easy"
    MEDIUM = "medium"
    HARD = "hard"


@dataclass
class Card:
    question: str
    answer: str
    card_type: CardType = CardType.BASIC
    hint: Optional[str] = None
    choices: List[str] = field(default_factory=list)
    correct_choices: List[int] = field(default_factory=list)  # zero-based indices into choices
    cloze_text: Optional[str] = None
    cloze_answers: List[str] = field(default_factory=list)
    question_image_url: Optional[str] = None
    answer_image_url: Optional[str] = None
    occlusion_data: List[dict] = field(default_factory=list)
    tags: List[str] = field(default_factory=list)
    difficulty_level: Difficulty = Difficulty.MEDIUM
    import_source: Optional[str] = None
    id: Optional[int] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def __post_init__(self) -> None:
        self.card_type = CardType(self.card_type)
        self.difficulty_level = Difficulty(self.difficulty_level)


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------


def _validate_basic(card: Card) -> List[str]:
    return []


def _validate_multiple_choice(card: Card) -> List[str]:
    errors = []
    if len(card.choices) < 2:
        errors.append("Multiple choice cards must have at least 2 choices")
    if not card.correct_choices:
        errors.append("Multiple choice cards must have correct choices specified")
    errors.extend(_choice_index_errors(card))
    return errors


def _validate_true_false(card: Card) -> List[str]:
    errors = []
    if len(card.choices) != 2:
        errors.append("True/false cards must have exactly 2 choices")
    if not card.correct_choices:
        errors.append("True/false cards must have a correct choice specified")
    errors.extend(_choice_index_errors(card))
    return errors


def _validate_cloze(card: Card) -> List[str]:
    errors = []
    if not (card.cloze_text or "").strip():
        errors.append("Cloze deletion cards must have cloze text")
    if not card.cloze_answers:
        errors.append("Cloze deletion cards must have cloze answers")
    return errors


def _validate_image_occlusion(card: Card) -> List[str]:
    errors = []
    if not card.question_image_url:
        errors.append("Image occlusion cards must have a question image")
    if not card.occlusion_data:
        errors.append("Image occlusion cards must have occlusion data")
    return errors


def _choice_index_errors(card: Card) -> List[str]:
    return [
        f"Correct choice index {i} is out of range"
        for i in card.correct_choices
        if card.choices and not 0 <= i < len(card.choices)
    ]


_TYPE_VALIDATORS: Dict[CardType, Callable[[Card], List[str]]] = {
    CardType.BASIC: _validate_basic,
    CardType.TYPED_ANSWER: _validate_basic,
    CardType.MULTIPLE_CHOICE: _validate_multiple_choice,
    CardType.TRUE_FALSE: _validate_true_false,
    CardType.CLOZE: _validate_cloze,
    CardType.IMAGE_OCCLUSION: _validate_image_occlusion,
}


def validate_card(card: Card) -> List[str]:
    """Check required fields, length ceilings and type-specific fields.

    Returns:
        One message per violation (empty list when the card is valid)
    """
    errors: List[str] = []
    for label, value in (("Question", card.question), ("Answer", card.answer)):
        if not isinstance(value, str):
            errors.append(f"{label} must be a string")
        elif not value.strip():
            errors.append(f"{label} is required")
        elif len(value) > MAX_TEXT_LENGTH:
            errors.append(f"{label} may not be greater than {MAX_TEXT_LENGTH} characters")
    if card.hint and len(card.hint) > MAX_TEXT_LENGTH:
        errors.append(f"Hint may not be greater than {MAX_TEXT_LENGTH} characters")
    for tag in card.tags:
        if len(tag) > MAX_TAG_LENGTH:
            errors.append(f"Each tag must be no more than {MAX_TAG_LENGTH} characters")
            break
    errors.extend(_TYPE_VALIDATORS[card.card_type](card))
    return errors


def is_exportable(card: Card) -> bool:
    return not validate_card(card)


# ---------------------------------------------------------------------------
# Single-string views used by exporters
# ---------------------------------------------------------------------------


def choice_letter(index: int) -> str:
    return chr(65 + index)


def format_choices(choices: List[str], separator: str = "\n") -> str:
    return separator.join(f"{choice_letter(i)}) {c}" for i, c in enumerate(choices))


def question_text(card: Card, include_choices: bool = True) -> str:
    """Question as a single string.

    Multiple choice questions get an ``Options:`` listing lettered A, B, C...
    unless ``include_choices`` is False; true/false questions get a
    ``(True or False)`` suffix. Cloze cards are returned verbatim.
    """
    if card.card_type is CardType.MULTIPLE_CHOICE:
        if include_choices and card.choices:
            return f"{card.question}\n\nOptions:\n{format_choices(card.choices)}"
        return card.question
    if card.card_type is CardType.TRUE_FALSE:
        return f"{card.question}\n\n(True or False)"
    return card.question


def answer_text(card: Card) -> str:
    """Answer as a single string.

    Multiple choice answers are the letter and text of the first correct
    choice; true/false answers are ``True`` or ``False``.
    """
    if card.card_type is CardType.MULTIPLE_CHOICE:
        for index in card.correct_choices:
            if 0 <= index < len(card.choices):
                return f"{choice_letter(index)}) {card.choices[index]}"
        return card.answer
    if card.card_type is CardType.TRUE_FALSE:
        if card.correct_choices:
            index = card.correct_choices[0]
            if 0 <= index < len(card.choices) and card.choices[index] in ("True", "False"):
                return card.choices[index]
            return "True" if index == 0 else "False"
        return card.answer
    return card.answer


# ---------------------------------------------------------------------------
# Mapping conversion
# ---------------------------------------------------------------------------


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def card_to_dict(card: Card, include_metadata: bool = True) -> Dict[str, Any]:
    """Serialize a card, including only the fields meaningful for its type."""
    data: Dict[str, Any] = {}
    if include_metadata:
        data["id"] = card.id
    data.update(
        {
            "card_type": card.card_type.value,
            "question": card.question,
            "answer": card.answer,
            "difficulty_level": card.difficulty_level.value,
            "tags": list(card.tags),
        }
    )
    if card.hint:
        data["hint"] = card.hint
    if card.card_type in (CardType.MULTIPLE_CHOICE, CardType.TRUE_FALSE):
        data["choices"] = list(card.choices)
        data["correct_choices"] = list(card.correct_choices)
    if card.card_type is CardType.CLOZE:
        data["cloze_text"] = card.cloze_text
        data["cloze_answers"] = list(card.cloze_answers)
    if card.card_type is CardType.IMAGE_OCCLUSION:
        data["question_image_url"] = card.question_image_url
        data["answer_image_url"] = card.answer_image_url
        data["occlusion_data"] = list(card.occlusion_data)
    if include_metadata:
        data["created_at"] = _iso(card.created_at)
        data["updated_at"] = _iso(card.updated_at)
    return data


def _parse_datetime(value: Any) -> Optional[datetime]:
    if not value:
        return None
    if isinstance(value, datetime):
        return value
    try:
        return datetime.fromisoformat(str(value))
    except ValueError:
        return None


def card_from_dict(data: Mapping[str, Any]) -> Card:
    """Build a Card from a mapping such as one entry of a JSON export.

    Raises:
        ValueError: If card_type or difficulty_level is not a known value
    """
    card_id = data.get("id")
    return Card(
        question=str(data.get("question") or ""),
        answer=str(data.get("answer") or ""),
        card_type=CardType(data.get("card_type") or CardType.BASIC.value),
        hint=data.get("hint") or None,
        choices=[str(c) for c in data.get("choices") or []],
        correct_choices=[int(i) for i in data.get("correct_choices") or []],
        cloze_text=data.get("cloze_text") or None,
        cloze_answers=[str(a) for a in data.get("cloze_answers") or []],
        question_image_url=data.get("question_image_url") or None,
        answer_image_url=data.get("answer_image_url") or None,
        occlusion_data=list(data.get("occlusion_data") or []),
        tags=[str(t) for t in data.get("tags") or []],
        difficulty_level=Difficulty(data.get("difficulty_level") or Difficulty.MEDIUM.value),
        import_source=data.get("import_source") or None,
        id=int(card_id) if card_id is not None else None,
        created_at=_parse_datetime(data.get("created_at")),
        updated_at=_parse_datetime(data.get("updated_at")),
    )
