from __future__ import annotations

import argparse
import hashlib
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Sequence

import yaml

from . import db
from .models import Card, Category

logger = logging.getLogger(__name__)


class ImportFileError(RuntimeError):
    """Raised when a phrase file cannot be interpreted."""


def phrase_id(category_id: str, learning: str) -> str:
    """Stable card id so importing the same file twice does not duplicate cards."""
    digest = hashlib.sha1(f"{category_id}\x00{learning.strip().lower()}".encode("utf-8"))
    return digest.hexdigest()[:16]


def _expect_str(entry: dict[str, Any], key: str, path: Path) -> str:
    value = entry.get(key)
    if not isinstance(value, str) or not value.strip():
        raise ImportFileError(f"Expected non-empty string for '{key}' in {path}")
    return value.strip()


def parse_phrase_file(path: Path, *, now: datetime) -> tuple[list[Category], list[Card]]:
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8"))
    except yaml.YAMLError as exc:
        raise ImportFileError(f"Invalid YAML in {path}: {exc}") from exc
    if not isinstance(data, dict):
        raise ImportFileError(f"Phrase file must be a mapping in {path}")

    raw_categories = data.get("categories") or []
    raw_phrases = data.get("phrases") or []
    if not isinstance(raw_categories, list) or not isinstance(raw_phrases, list):
        raise ImportFileError(f"'categories' and 'phrases' must be lists in {path}")

    categories: list[Category] = []
    for entry in raw_categories:
        if not isinstance(entry, dict):
            raise ImportFileError(f"Category entries must be mappings in {path}")
        categories.append(
            Category(
                id=_expect_str(entry, "id", path),
                name=str(entry.get("name") or entry["id"]),
                is_foundational=bool(entry.get("foundational", False)),
            )
        )

    known = {category.id for category in categories}
    cards: list[Card] = []
    for entry in raw_phrases:
        if not isinstance(entry, dict):
            raise ImportFileError(f"Phrase entries must be mappings in {path}")
        category_id = _expect_str(entry, "category", path)
        if category_id not in known:
            raise ImportFileError(f"Unknown category '{category_id}' in {path}")
        learning = _expect_str(entry, "learning", path)
        cards.append(
            Card(
                id=phrase_id(category_id, learning),
                category_id=category_id,
                learning=learning,
                native=_expect_str(entry, "native", path),
                next_review_at=now,
            )
        )
    return categories, cards


def import_phrase_file(path: Path, *, now: datetime | None = None) -> dict[str, int]:
    """Store categories and new phrases from ``path``. Existing cards keep their progress."""
    moment = now or datetime.now(timezone.utc)
    categories, cards = parse_phrase_file(path, now=moment)

    db.init_db()
    existing_categories = db.load_categories()
    for category in categories:
        current = existing_categories.get(category.id)
        if current is not None:
            # Keep the user's enabled/disabled choice.
            category = Category(
                id=category.id,
                name=category.name,
                is_foundational=category.is_foundational,
                enabled=current.enabled,
            )
        db.save_category(category)

    counts = {"inserted": 0, "unchanged": 0}
    for card in cards:
        if db.fetch_card(card.id) is not None:
            counts["unchanged"] += 1
            continue
        db.save_card(card)
        counts["inserted"] += 1
    logger.info("Imported %s: %s", path, counts)
    return counts


def _parse_args(argv: Sequence[str] | None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Import phrases from a YAML file into the database")
    parser.add_argument("paths", nargs="+", type=Path, help="YAML phrase files")
    return parser.parse_args(argv)


def main(argv: Sequence[str] | None = None) -> None:
    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")
    args = _parse_args(argv)
    totals = {"inserted": 0, "unchanged": 0}
    for path in args.paths:
        if not path.exists():
            print(f"No such file: {path}")
            continue
        counts = import_phrase_file(path)
        for key, value in counts.items():
            totals[key] += value
    print(
        "Processed {total} phrases (inserted: {ins}, unchanged: {unch})".format(
            total=sum(totals.values()),
            ins=totals["inserted"],
            unch=totals["unchanged"],
        )
    )


if __name__ == "__main__":  # pragma: no cover - CLI entry
    main()
