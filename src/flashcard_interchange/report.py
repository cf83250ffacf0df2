"""Reporting utilities for import previews, duplicate checks and exports."""

from __future__ import annotations

import csv
from pathlib import Path
from typing import Iterable, List, Optional

from .detect_duplicates import DuplicateReport, MergePlan
from .results import ExportResult, ParseResult

DUPLICATE_COLUMNS = [
    "import_row",
    "question",
    "answer",
    "duplicate_type",
    "match_reason",
    "similarity_score",
    "existing_card_id",
    "matched_import_row",
    "suggested_action",
]


def write_csv(path: str | Path, rows: Iterable[dict], fieldnames: List[str]) -> None:
    """Write rows under a fixed header; an empty row list still gets the header."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("w", encoding="utf-8", newline="") as f:
        writer = csv.DictWriter(f, fieldnames=fieldnames)
        writer.writeheader()
        for r in rows:
            writer.writerow(r)


def duplicate_rows(report: DuplicateReport) -> List[dict]:
    """One row per duplicate; rows are 1-based to match the import file."""
    rows = []
    for dup in report.duplicates:
        rows.append(
            {
                "import_row": dup.import_index + 1,
                "question": dup.import_card.question,
                "answer": dup.import_card.answer,
                "duplicate_type": dup.duplicate_type,
                "match_reason": dup.match_reason,
                "similarity_score": f"{dup.similarity_score:.3f}",
                "existing_card_id": "" if dup.existing_card_id is None else dup.existing_card_id,
                "matched_import_row": (
                    "" if dup.matched_import_index is None else dup.matched_import_index + 1
                ),
                "suggested_action": dup.suggested_action,
            }
        )
    return rows


def write_duplicate_report(path: str | Path, report: DuplicateReport) -> None:
    write_csv(path, duplicate_rows(report), fieldnames=DUPLICATE_COLUMNS)


def print_import_summary(result: ParseResult, validation_errors: Iterable[str] = ()) -> None:
    """Print the preview shown before anything is persisted."""
    validation_errors = list(validation_errors)
    print("Import Preview:")
    print(f"  Format:       {result.source_format or 'unknown'}")
    print(f"  Total lines:  {result.total_lines}")
    print(f"  Parsed cards: {result.parsed_cards}")
    if result.delimiter is not None:
        print(f"  Delimiter:    {result.delimiter!r}")
    if result.deck_info:
        print(f"  Decks:        {', '.join(d['name'] for d in result.deck_info.values())}")
    if result.media_files:
        print(f"  Media files:  {len(result.media_files)}")
    if not result.success:
        print(f"Error: {result.error}")
    if result.errors:
        print(f"Parse errors ({len(result.errors)}):")
        for message in result.errors:
            print(f"  {message}")
    if validation_errors:
        print(f"Validation errors ({len(validation_errors)}):")
        for message in validation_errors:
            print(f"  {message}")


def print_duplicate_summary(report: DuplicateReport, plan: Optional[MergePlan] = None) -> None:
    counts = {"existing": 0, "within_import": 0}
    actions = {"update": 0, "skip": 0}
    for dup in report.duplicates:
        counts[dup.duplicate_type] = counts.get(dup.duplicate_type, 0) + 1
        actions[dup.suggested_action] = actions.get(dup.suggested_action, 0) + 1

    print("Duplicate Detection Summary:")
    print(f"  Import cards:     {report.total_import}")
    print(f"  Existing checked: {report.existing_cards_checked}")
    print(f"  Unique:           {report.unique_count}")
    print(f"  Duplicates:       {report.duplicate_count}")
    print(f"    vs existing:    {counts['existing']}")
    print(f"    within import:  {counts['within_import']}")
    print("  Suggested actions:")
    for action in ("update", "skip"):
        print(f"    {action:>6}: {actions.get(action, 0)}")
    if plan is not None:
        print("Merge Plan:")
        for key, value in plan.counts.items():
            print(f"  {key:>9}: {value}")
        for message in plan.errors:
            print(f"  Error: {message}")


def print_export_summary(result: ExportResult, out: Optional[str | Path] = None) -> None:
    if not result.success:
        print(f"Export failed: {result.error}")
        return
    print(f"Exported {len(result.content or b'')} bytes as {result.mime_type}")
    print(f"  Suggested filename: {result.filename}")
    if out is not None:
        print(f"Wrote export: {out}")
