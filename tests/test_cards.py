"""Tests for the card model, validation and single-string views."""

import pytest

from flashcard_interchange.cards import (
    Card,
    CardType,
    Difficulty,
    answer_text,
    card_from_dict,
    card_to_dict,
    is_exportable,
    question_text,
    validate_card,
)


class TestValidation:
    """Test required fields, length ceilings and per-type checks."""

    def test_valid_basic(self):
        assert validate_card(Card(question="Q", answer="A")) == []

    def test_question_at_limit_passes(self):
        card = Card(question="x" * 65535, answer="A")
        assert validate_card(card) == []

    def test_question_over_limit_fails(self):
        card = Card(question="x" * 65536, answer="A")
        errors = validate_card(card)
        assert len(errors) == 1
        assert "65535" in errors[0]

    def test_answer_required(self):
        errors = validate_card(Card(question="Q", answer="   "))
        assert errors == ["Answer is required"]

    def test_long_tag(self):
        errors = validate_card(Card(question="Q", answer="A", tags=["t" * 51]))
        assert any("50" in e for e in errors)

    def test_multiple_choice_needs_two_choices(self):
        card = Card(
            question="Q",
            answer="A",
            card_type=CardType.MULTIPLE_CHOICE,
            choices=["only"],
            correct_choices=[0],
        )
        assert "Multiple choice cards must have at least 2 choices" in validate_card(card)

    def test_multiple_choice_index_out_of_range(self):
        card = Card(
            question="Q",
            answer="A",
            card_type=CardType.MULTIPLE_CHOICE,
            choices=["a", "b"],
            correct_choices=[5],
        )
        assert any("out of range" in e for e in validate_card(card))

    def test_true_false_needs_exactly_two(self):
        card = Card(
            question="Q",
            answer="True",
            card_type=CardType.TRUE_FALSE,
            choices=["True", "False", "Maybe"],
            correct_choices=[0],
        )
        assert "True/false cards must have exactly 2 choices" in validate_card(card)

    def test_cloze_requires_text_and_answers(self):
        card = Card(question="Q", answer="A", card_type=CardType.CLOZE)
        errors = validate_card(card)
        assert "Cloze deletion cards must have cloze text" in errors
        assert "Cloze deletion cards must have cloze answers" in errors

    def test_image_occlusion_requires_image(self):
        card = Card(question="Q", answer="A", card_type=CardType.IMAGE_OCCLUSION)
        assert not is_exportable(card)

    def test_string_enum_coercion(self):
        card = Card(question="Q", answer="A", card_type="cloze", difficulty_level="hard")
        assert card.card_type is CardType.CLOZE
        assert card.difficulty_level is Difficulty.HARD


class TestTextViews:
    """Test question_text/answer_text per card type."""

    def test_basic_verbatim(self):
        card = Card(question="Q", answer="A")
        assert question_text(card) == "Q"
        assert answer_text(card) == "A"

    def test_multiple_choice(self):
        card = Card(
            question="Capital of France?",
            answer="Paris",
            card_type=CardType.MULTIPLE_CHOICE,
            choices=["London", "Paris"],
            correct_choices=[1],
        )
        assert question_text(card) == "Capital of France?\n\nOptions:\nA) London\nB) Paris"
        assert question_text(card, include_choices=False) == "Capital of France?"
        assert answer_text(card) == "B) Paris"

    def test_true_false(self):
        card = Card(
            question="The sky is green",
            answer="False",
            card_type=CardType.TRUE_FALSE,
            choices=["True", "False"],
            correct_choices=[1],
        )
        assert question_text(card) == "The sky is green\n\n(True or False)"
        assert answer_text(card) == "False"

    def test_cloze_verbatim(self):
        card = Card(
            question="{{Paris}} is the capital",
            answer="Paris",
            card_type=CardType.CLOZE,
            cloze_text="{{Paris}} is the capital",
            cloze_answers=["Paris"],
        )
        assert question_text(card) == "{{Paris}} is the capital"
        assert answer_text(card) == "Paris"


class TestDictConversion:
    """Test mapping conversion used by the JSON export."""

    def test_type_specific_fields_only(self):
        data = card_to_dict(Card(question="Q", answer="A", id=3))
        assert data["id"] == 3
        assert "choices" not in data
        assert "cloze_text" not in data

    def test_metadata_excluded(self):
        data = card_to_dict(Card(question="Q", answer="A", id=3), include_metadata=False)
        assert "id" not in data
        assert "created_at" not in data

    def test_round_trip(self):
        card = Card(
            question="Q",
            answer="B",
            card_type=CardType.MULTIPLE_CHOICE,
            choices=["A", "B"],
            correct_choices=[1],
            tags=["x"],
            id=7,
        )
        assert card_from_dict(card_to_dict(card)) == card

    def test_unknown_type_raises(self):
        with pytest.raises(ValueError):
            card_from_dict({"question": "Q", "answer": "A", "card_type": "nope"})
