"""CLI entrypoint for flashcard-interchange.

Usage:
  flashcard-interchange preview --input deck.txt
  flashcard-interchange dedupe --input new.csv --existing backup.json --out out/duplicates.csv
  flashcard-interchange convert --input deck.apkg --format mnemosyne --out out/deck.xml
  flashcard-interchange formats
"""

from __future__ import annotations

import argparse
import json
import logging
from dataclasses import replace
from pathlib import Path
from typing import List, Optional

from .cards import Card, card_from_dict
from .config import InterchangeConfig, load_config
from .detect_duplicates import ACTIONS, detect_duplicates, plan_merge
from .export import EXPORT_FORMATS, export_flashcards, get_export_formats
from .importer import import_file, validate_import_options
from .ingest import validate_import
from .report import (
    print_duplicate_summary,
    print_export_summary,
    print_import_summary,
    write_duplicate_report,
)
from .results import ParseResult

logger = logging.getLogger(__name__)


def setup_logging(verbose: bool = False) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(levelname)s %(name)s: %(message)s",
    )
    # genanki warns on every field with HTML it does not recognise
    logging.getLogger("genanki").setLevel(logging.ERROR)


def _config(args: argparse.Namespace) -> Optional[InterchangeConfig]:
    try:
        return load_config(args.config)
    except ValueError as e:
        print(f"Error: {e}")
        return None


def _import(path: str, cfg: InterchangeConfig, delimiter: Optional[str] = None) -> ParseResult:
    return import_file(
        path,
        delimiter=delimiter,
        handle_media=cfg.handle_media,
        max_import_size=cfg.max_import_size,
    )


def load_existing_cards(path: str | Path, cfg: InterchangeConfig) -> List[Card]:
    """Existing cards for a duplicate check.

    A JSON backup export keeps its card ids; any other supported format is
    imported and numbered 1..n in file order.

    Raises:
        ValueError: If the file cannot be read as cards
    """
    path = Path(path)
    if path.suffix.lower() == ".json":
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
            entries = data["flashcards"] if isinstance(data, dict) else data
            cards = [card_from_dict(entry) for entry in entries]
        except (OSError, json.JSONDecodeError, KeyError, TypeError, ValueError) as e:
            raise ValueError(f"Could not read existing cards from {path}: {e}")
    else:
        result = import_file(path, max_import_size=cfg.max_export_size)
        if not result.success:
            raise ValueError(f"Could not read existing cards from {path}: {result.error}")
        cards = result.cards
    return [
        card if card.id is not None else replace(card, id=number)
        for number, card in enumerate(cards, start=1)
    ]


def cmd_preview(args: argparse.Namespace) -> int:
    cfg = _config(args)
    if cfg is None:
        return 1

    option_errors = validate_import_options({"delimiter": args.delimiter} if args.delimiter else {})
    if option_errors:
        for message in option_errors:
            print(f"Error: {message}")
        return 1

    result = _import(args.input, cfg, args.delimiter)
    validation = validate_import(result.cards, cfg.max_import_size) if result.success else []
    print_import_summary(result, validation)
    return 0 if result.success and not validation else 1


def cmd_dedupe(args: argparse.Namespace) -> int:
    cfg = _config(args)
    if cfg is None:
        return 1
    threshold = args.threshold if args.threshold is not None else cfg.similarity_threshold

    result = _import(args.input, cfg)
    if not result.success:
        print_import_summary(result)
        return 1

    try:
        existing = load_existing_cards(args.existing, cfg)
    except ValueError as e:
        print(f"Error: {e}")
        return 1
    print(f"Loaded {len(existing)} existing cards from: {args.existing}")

    report = detect_duplicates(result.cards, existing, threshold=threshold)
    if not report.success:
        print(f"Error: {report.error}")
        return 1

    plan = plan_merge(report, existing, global_action=args.action) if args.action else None
    write_duplicate_report(args.out, report)
    print_duplicate_summary(report, plan)
    print(f"Wrote report: {args.out}")
    return 0 if plan is None or plan.success else 1


def cmd_convert(args: argparse.Namespace) -> int:
    cfg = _config(args)
    if cfg is None:
        return 1

    result = _import(args.input, cfg)
    if not result.success:
        print_import_summary(result)
        return 1

    options = {}
    if args.format == "anki":
        options["deck_name"] = args.deck_name or cfg.default_deck_name
        if result.media_files:
            options["media_files"] = {name: m.content for name, m in result.media_files.items()}

    exported = export_flashcards(
        result.cards, args.format, options, max_export_size=cfg.max_export_size
    )
    if not exported.success:
        print_export_summary(exported)
        return 1

    out = Path(args.out)
    out.parent.mkdir(parents=True, exist_ok=True)
    out.write_bytes(exported.content)
    print(f"Converted {result.parsed_cards} cards from {result.source_format} to {args.format}")
    print_export_summary(exported, out)
    return 0


def cmd_formats(args: argparse.Namespace) -> int:
    print("Export formats:")
    for key, label in get_export_formats().items():
        print(f"  {key:<10} {label}")
    return 0


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="flashcard-interchange",
        description="Import, deduplicate and export flashcards across study tools",
    )
    p.add_argument("--verbose", "-v", action="store_true", help="Enable debug logging")
    sub = p.add_subparsers(dest="cmd", required=True)

    def _add_config(sp: argparse.ArgumentParser) -> None:
        sp.add_argument(
            "--config",
            default="config.json",
            help="Path to config.json (optional; defaults will be used if missing)",
        )

    preview = sub.add_parser("preview", help="Parse a file and show what would be imported")
    preview.add_argument("--input", required=True, help="File to import (.txt, .csv, .tsv, .apkg, .xml, .mem)")
    preview.add_argument(
        "--delimiter",
        help="Override delimiter detection for text files (tab, comma, dash, pipe, semicolon)",
    )
    _add_config(preview)
    preview.set_defaults(func=cmd_preview)

    dedupe = sub.add_parser("dedupe", help="Check an import file against existing cards")
    dedupe.add_argument("--input", required=True, help="File to import")
    dedupe.add_argument(
        "--existing",
        required=True,
        help="Existing cards: a JSON backup export, or any importable file",
    )
    dedupe.add_argument("--out", required=True, help="Path to output CSV report")
    dedupe.add_argument("--threshold", type=float, help="Similarity threshold (default from config)")
    dedupe.add_argument(
        "--action",
        choices=ACTIONS,
        help="Apply this action to every duplicate and print the resulting merge plan",
    )
    _add_config(dedupe)
    dedupe.set_defaults(func=cmd_dedupe)

    convert = sub.add_parser("convert", help="Import a file and export it in another format")
    convert.add_argument("--input", required=True, help="File to import")
    convert.add_argument("--format", required=True, choices=list(EXPORT_FORMATS), help="Export format")
    convert.add_argument("--out", required=True, help="Path to write the export")
    convert.add_argument("--deck-name", help="Deck name for Anki exports")
    _add_config(convert)
    convert.set_defaults(func=cmd_convert)

    formats = sub.add_parser("formats", help="List export formats")
    formats.set_defaults(func=cmd_formats)

    return p


def main(argv: List[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    setup_logging(args.verbose)
    return args.func(args)


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
