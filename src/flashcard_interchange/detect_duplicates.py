"""Duplicate detection for an import batch against existing cards.

Questions are compared after normalization (NFC, lowercase, HTML and
punctuation stripped, whitespace collapsed) with image sources appended, so
image-only questions still compare. Match reasons:
- exact_match: normalized question identical to an existing card
- similar_content: similarity at or above the threshold
- exact_match_in_import / similar_content_in_import: same checks against
  earlier unique cards of the same batch

The detector only suggests; ``plan_merge`` turns the caller's chosen actions
into a list of creates and updates without touching storage.
"""

from __future__ import annotations

import difflib
import logging
import re
from dataclasses import dataclass, field, replace
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

from .cards import Card, Difficulty
from .config import SIMILARITY_THRESHOLD
from .normalize import normalize_for_match
from .tags import merge_tags

logger = logging.getLogger(__name__)

UPDATE_SCORE = 0.95

ACTIONS = ("skip", "update", "keep_both", "replace")
EXISTING = "existing"
WITHIN_IMPORT = "within_import"

_IMG_SRC_RE = re.compile(r"""<img[^>]*?\bsrc\s*=\s*["']?([^"'\s>]+)""", re.IGNORECASE)


def match_key(text: str) -> str:
    """Normalized text followed by any image sources, so image-only cards compare by image."""
    sources = [src.lower() for src in _IMG_SRC_RE.findall(text or "")]
    return " ".join([normalize_for_match(text)] + sources).strip()


def text_similarity(a: str, b: str) -> float:
    """Similarity of two card texts in [0, 1].

    1.0 for identical match keys, 0.0 when either side is empty or the two
    share no word; otherwise difflib's matching-blocks ratio.
    """
    na = match_key(a)
    nb = match_key(b)
    if not na or not nb:
        return 0.0
    if na == nb:
        return 1.0
    if not set(na.split()) & set(nb.split()):
        return 0.0
    return difflib.SequenceMatcher(None, na, nb, autojunk=False).ratio()


@dataclass
class DuplicateMatch:
    import_index: int
    import_card: Card
    existing_card_id: Optional[int]
    similarity_score: float
    suggested_action: str
    duplicate_type: str = EXISTING
    match_reason: str = "similar_content"
    matched_import_index: Optional[int] = None  # set for within_import matches


@dataclass
class DuplicateReport:
    success: bool
    duplicates: List[DuplicateMatch] = field(default_factory=list)
    unique_cards: List[Card] = field(default_factory=list)
    total_import: int = 0
    existing_cards_checked: int = 0
    error: Optional[str] = None

    @property
    def duplicate_count(self) -> int:
        return len(self.duplicates)

    @property
    def unique_count(self) -> int:
        return len(self.unique_cards)


def suggest_action(score: float, duplicate_type: str = EXISTING) -> str:
    if duplicate_type == WITHIN_IMPORT:
        return "skip"
    return "update" if score >= UPDATE_SCORE else "skip"


def _best_existing(
    question: str, existing: Sequence[Tuple[int, Card]], threshold: float
) -> Optional[Tuple[float, Card]]:
    best: Optional[Tuple[float, float, int, Card]] = None
    for position, card in existing:
        score = text_similarity(question, card.question)
        if score <= 0.0 or score < threshold:
            continue
        # Highest score wins; ties go to the lowest id, then earliest position.
        card_id = float(card.id) if card.id is not None else float("inf")
        key = (-score, card_id, position)
        if best is None or key < best[:3]:
            best = (-score, card_id, position, card)
    if best is None:
        return None
    return -best[0], best[3]


def _best_within_import(
    question: str, uniques: Sequence[Tuple[int, Card]], threshold: float
) -> Optional[Tuple[float, int]]:
    best: Optional[Tuple[float, int]] = None
    for index, card in uniques:
        score = text_similarity(question, card.question)
        if score > 0.0 and score >= threshold and (best is None or score > best[0]):
            best = (score, index)
    return best


def detect_duplicates(
    import_cards: Sequence[Card],
    existing_cards: Sequence[Card],
    threshold: float = SIMILARITY_THRESHOLD,
) -> DuplicateReport:
    """Find import cards whose question matches an existing card.

    Args:
        import_cards: Incoming batch in import order
        existing_cards: Cards already stored for the same unit
        threshold: Minimum similarity for a pair to count as a duplicate;
            pairs scoring 0.0 never count, even at threshold 0

    Returns:
        DuplicateReport; each import card appears at most once, either in
        ``duplicates`` or in ``unique_cards``
    """
    if not 0.0 <= threshold <= 1.0:
        return DuplicateReport(
            success=False,
            unique_cards=list(import_cards),
            total_import=len(import_cards),
            error="Similarity threshold must be between 0 and 1",
        )

    try:
        existing = list(enumerate(existing_cards))
        duplicates: List[DuplicateMatch] = []
        uniques: List[Tuple[int, Card]] = []

        for index, card in enumerate(import_cards):
            match = _best_existing(card.question, existing, threshold)
            if match is not None:
                score, existing_card = match
                duplicates.append(
                    DuplicateMatch(
                        import_index=index,
                        import_card=card,
                        existing_card_id=existing_card.id,
                        similarity_score=score,
                        suggested_action=suggest_action(score),
                        duplicate_type=EXISTING,
                        match_reason="exact_match" if score >= 1.0 else "similar_content",
                    )
                )
                continue

            in_batch = _best_within_import(card.question, uniques, threshold)
            if in_batch is not None:
                score, other = in_batch
                duplicates.append(
                    DuplicateMatch(
                        import_index=index,
                        import_card=card,
                        existing_card_id=None,
                        similarity_score=score,
                        suggested_action=suggest_action(score, WITHIN_IMPORT),
                        duplicate_type=WITHIN_IMPORT,
                        match_reason=(
                            "exact_match_in_import" if score >= 1.0 else "similar_content_in_import"
                        ),
                        matched_import_index=other,
                    )
                )
                continue

            uniques.append((index, card))
    except Exception as e:
        logger.exception("Duplicate detection failed")
        return DuplicateReport(
            success=False,
            unique_cards=list(import_cards),
            total_import=len(import_cards),
            error=f"Failed to detect duplicates: {e}",
        )

    logger.info(
        "Duplicate check: %d of %d import cards matched (%d existing checked)",
        len(duplicates), len(import_cards), len(existing),
    )
    return DuplicateReport(
        success=True,
        duplicates=duplicates,
        unique_cards=[card for _, card in uniques],
        total_import=len(import_cards),
        existing_cards_checked=len(existing),
    )


# ---------------------------------------------------------------------------
# Merge planning
# ---------------------------------------------------------------------------


@dataclass
class MergePlan:
    create: List[Card] = field(default_factory=list)
    update: List[Tuple[int, Card]] = field(default_factory=list)  # (existing id, merged card)
    skipped: List[int] = field(default_factory=list)  # import indices
    counts: Dict[str, int] = field(
        default_factory=lambda: {"created": 0, "skipped": 0, "updated": 0, "kept_both": 0, "replaced": 0}
    )
    errors: List[str] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return not self.errors


def merge_update(existing: Card, incoming: Card) -> Card:
    """Existing card updated with the import's content.

    Hint and difficulty fall back to the existing values when the import has
    none (medium counts as unset); tags are the union of both.
    """
    difficulty = incoming.difficulty_level
    if difficulty is Difficulty.MEDIUM:
        difficulty = existing.difficulty_level
    return replace(
        existing,
        question=incoming.question,
        answer=incoming.answer,
        card_type=incoming.card_type,
        choices=list(incoming.choices),
        correct_choices=list(incoming.correct_choices),
        cloze_text=incoming.cloze_text,
        cloze_answers=list(incoming.cloze_answers),
        hint=incoming.hint or existing.hint,
        difficulty_level=difficulty,
        tags=merge_tags(existing.tags, incoming.tags),
        import_source=incoming.import_source or existing.import_source,
    )


def merge_replace(existing: Card, incoming: Card) -> Card:
    return replace(incoming, id=existing.id, created_at=existing.created_at)


def plan_merge(
    report: DuplicateReport,
    existing_cards: Sequence[Card],
    actions: Optional[Mapping[int, str]] = None,
    global_action: Optional[str] = None,
) -> MergePlan:
    """Compute what applying the chosen actions would do.

    Args:
        report: Output of detect_duplicates
        existing_cards: The same existing set the report was computed against
        actions: Per-duplicate action keyed by import index
        global_action: Action applied to every duplicate, overriding ``actions``

    Returns:
        MergePlan; unique cards are always created. Duplicates without a
        chosen action are skipped. Within-import duplicates cannot update or
        replace and are skipped instead.
    """
    plan = MergePlan()
    by_id = {card.id: card for card in existing_cards if card.id is not None}
    actions = actions or {}

    for card in report.unique_cards:
        plan.create.append(card)
        plan.counts["created"] += 1

    for dup in report.duplicates:
        action = global_action or actions.get(dup.import_index) or "skip"
        if action not in ACTIONS:
            plan.errors.append(f"Unknown action '{action}' for import card {dup.import_index + 1}")
            continue

        if action == "keep_both":
            plan.create.append(dup.import_card)
            plan.counts["kept_both"] += 1
            continue

        if action == "skip" or dup.duplicate_type != EXISTING:
            plan.skipped.append(dup.import_index)
            plan.counts["skipped"] += 1
            continue

        existing = by_id.get(dup.existing_card_id)
        if existing is None:
            plan.errors.append(f"Existing card not found for import card {dup.import_index + 1}")
            continue

        if action == "update":
            plan.update.append((existing.id, merge_update(existing, dup.import_card)))
            plan.counts["updated"] += 1
        else:
            plan.update.append((existing.id, merge_replace(existing, dup.import_card)))
            plan.counts["replaced"] += 1

    logger.debug("Merge plan: %s (%d errors)", plan.counts, len(plan.errors))
    return plan


def detection_statistics(
    existing_cards: Sequence[Card], threshold: float = SIMILARITY_THRESHOLD
) -> Dict[str, Any]:
    count = len(existing_cards)
    return {
        "existing_cards": count,
        "similarity_threshold": threshold,
        "will_check_against": count,
    }
