"""Configuration limits and JSON config loading."""

from __future__ import annotations

import json
from dataclasses import dataclass, fields
from pathlib import Path

MAX_IMPORT_SIZE = 500
MAX_EXPORT_SIZE = 5000
SIMILARITY_THRESHOLD = 0.85
DEFAULT_DECK_NAME = "Exported Flashcards"


@dataclass
class InterchangeConfig:
    max_import_size: int = MAX_IMPORT_SIZE
    max_export_size: int = MAX_EXPORT_SIZE
    similarity_threshold: float = SIMILARITY_THRESHOLD
    default_deck_name: str = DEFAULT_DECK_NAME
    handle_media: bool = False


def load_config(path: str | Path | None) -> InterchangeConfig:
    """Load config.json, falling back to defaults when the file is missing.

    Raises:
        ValueError: If the file exists but is not a JSON object
    """
    if path is None:
        return InterchangeConfig()
    path = Path(path)
    if not path.exists():
        return InterchangeConfig()

    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as e:
        raise ValueError(f"Invalid JSON in config file {path}: {e}")
    if not isinstance(data, dict):
        raise ValueError(f"Config file {path} must contain a JSON object")

    known = {f.name for f in fields(InterchangeConfig)}
    return InterchangeConfig(**{k: v for k, v in data.items() if k in known})
