"""SQLite persistence for cards, categories and the review log.

This is the storage collaborator of the engine: the practice layer calls it
after a transition has already been applied in memory.
"""

from __future__ import annotations

import json
import os
import sqlite3
from contextlib import contextmanager
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Iterable, Iterator

from .models import Card, CardSnapshot, Category, ReviewLogEntry, parse_action
from .policy import DEFAULT_MAX_LOG_SIZE
from .review_log import ReviewLog

PACKAGE_ROOT = Path(__file__).resolve().parent
PROJECT_ROOT = PACKAGE_ROOT.parent.parent
DATA_DIR = PROJECT_ROOT / "data"
DEFAULT_DB_PATH = DATA_DIR / "phrase_trainer.db"
DB_PATH = Path(os.environ.get("PHRASE_TRAINER_DB_PATH", DEFAULT_DB_PATH))


@contextmanager
def connect() -> Iterator[sqlite3.Connection]:
    """Yield a SQLite connection with foreign keys enforced."""

    connection = _open_connection()
    try:
        yield connection
        connection.commit()
    finally:
        connection.close()


def _open_connection() -> sqlite3.Connection:
    DB_PATH.parent.mkdir(parents=True, exist_ok=True)
    connection = sqlite3.connect(DB_PATH)
    connection.row_factory = sqlite3.Row
    connection.execute("PRAGMA foreign_keys = ON")
    return connection


def _normalize_datetime(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _iso(value: datetime | None) -> str | None:
    if value is None:
        return None
    return _normalize_datetime(value).isoformat()


def _parse_iso(value: str | None) -> datetime | None:
    if value is None:
        return None
    return _normalize_datetime(datetime.fromisoformat(value))


def now_iso(value: datetime | None = None) -> str:
    """Return the current UTC timestamp (seconds precision) as ISO 8601."""

    moment = _normalize_datetime(value or datetime.now(timezone.utc))
    return moment.isoformat(timespec="seconds")


def init_db() -> None:
    """Initialise the database schema if tables are missing."""

    with connect() as connection:
        connection.executescript(
            """
            CREATE TABLE IF NOT EXISTS categories (
                id TEXT PRIMARY KEY,
                name TEXT NOT NULL,
                is_foundational INTEGER NOT NULL DEFAULT 0,
                enabled INTEGER NOT NULL DEFAULT 1
            );

            CREATE TABLE IF NOT EXISTS cards (
                id TEXT PRIMARY KEY,
                category_id TEXT NOT NULL,
                learning TEXT NOT NULL DEFAULT '',
                native TEXT NOT NULL DEFAULT '',
                mastery_level INTEGER NOT NULL DEFAULT 0,
                last_reviewed_at TEXT,
                next_review_at TEXT NOT NULL,
                know_count INTEGER NOT NULL DEFAULT 0,
                know_streak INTEGER NOT NULL DEFAULT 0,
                lapses INTEGER NOT NULL DEFAULT 0,
                is_mastered INTEGER NOT NULL DEFAULT 0,
                updated_at TEXT NOT NULL
            );

            CREATE INDEX IF NOT EXISTS idx_cards_category ON cards(category_id);

            CREATE TABLE IF NOT EXISTS review_log (
                seq INTEGER PRIMARY KEY AUTOINCREMENT,
                id TEXT NOT NULL UNIQUE,
                timestamp TEXT NOT NULL,
                card_id TEXT NOT NULL,
                category_id TEXT NOT NULL,
                action TEXT NOT NULL,
                before_json TEXT NOT NULL,
                after_json TEXT NOT NULL,
                interval_seconds REAL NOT NULL,
                is_leech_after INTEGER NOT NULL
            );
            """
        )


# ── Categories ────────────────────────────────────────────────────────────────


def _row_to_category(row: sqlite3.Row) -> Category:
    return Category(
        id=row["id"],
        name=row["name"],
        is_foundational=bool(row["is_foundational"]),
        enabled=bool(row["enabled"]),
    )


def save_category(category: Category) -> None:
    with connect() as connection:
        connection.execute(
            """
            INSERT INTO categories (id, name, is_foundational, enabled)
            VALUES (?, ?, ?, ?)
            ON CONFLICT(id) DO UPDATE SET
                name = excluded.name,
                is_foundational = excluded.is_foundational,
                enabled = excluded.enabled
            """,
            (category.id, category.name, int(category.is_foundational), int(category.enabled)),
        )


def load_categories() -> dict[str, Category]:
    with connect() as connection:
        rows = connection.execute("SELECT * FROM categories ORDER BY name").fetchall()
    return {row["id"]: _row_to_category(row) for row in rows}


# ── Cards ─────────────────────────────────────────────────────────────────────


def _row_to_card(row: sqlite3.Row | None) -> Card | None:
    if row is None:
        return None
    next_review_at = _parse_iso(row["next_review_at"])
    assert next_review_at is not None
    return Card(
        id=row["id"],
        category_id=row["category_id"],
        learning=row["learning"],
        native=row["native"],
        mastery_level=int(row["mastery_level"]),
        last_reviewed_at=_parse_iso(row["last_reviewed_at"]),
        next_review_at=next_review_at,
        know_count=int(row["know_count"]),
        know_streak=int(row["know_streak"]),
        lapses=int(row["lapses"]),
        is_mastered=bool(row["is_mastered"]),
    )


def _upsert_card(connection: sqlite3.Connection, card: Card) -> None:
    connection.execute(
        """
        INSERT INTO cards (
            id, category_id, learning, native, mastery_level, last_reviewed_at,
            next_review_at, know_count, know_streak, lapses, is_mastered, updated_at
        )
        VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        ON CONFLICT(id) DO UPDATE SET
            category_id = excluded.category_id,
            learning = excluded.learning,
            native = excluded.native,
            mastery_level = excluded.mastery_level,
            last_reviewed_at = excluded.last_reviewed_at,
            next_review_at = excluded.next_review_at,
            know_count = excluded.know_count,
            know_streak = excluded.know_streak,
            lapses = excluded.lapses,
            is_mastered = excluded.is_mastered,
            updated_at = excluded.updated_at
        """,
        (
            card.id,
            card.category_id,
            card.learning,
            card.native,
            card.mastery_level,
            _iso(card.last_reviewed_at),
            _iso(card.next_review_at),
            card.know_count,
            card.know_streak,
            card.lapses,
            int(card.is_mastered),
            now_iso(),
        ),
    )


def save_card(card: Card) -> None:
    """Insert or overwrite the stored state of ``card``."""
    with connect() as connection:
        _upsert_card(connection, card)


def fetch_card(card_id: str) -> Card | None:
    with connect() as connection:
        row = connection.execute("SELECT * FROM cards WHERE id = ?", (card_id,)).fetchone()
    return _row_to_card(row)


def load_cards() -> list[Card]:
    with connect() as connection:
        rows = connection.execute("SELECT * FROM cards ORDER BY id").fetchall()
    return [card for card in map(_row_to_card, rows) if card is not None]


# ── Review log ────────────────────────────────────────────────────────────────


def _snapshot_to_json(snapshot: CardSnapshot) -> str:
    return json.dumps(
        {
            "mastery_level": snapshot.mastery_level,
            "last_reviewed_at": _iso(snapshot.last_reviewed_at),
            "next_review_at": _iso(snapshot.next_review_at),
            "know_count": snapshot.know_count,
            "know_streak": snapshot.know_streak,
            "lapses": snapshot.lapses,
            "is_mastered": snapshot.is_mastered,
        }
    )


def _snapshot_from_json(raw: str) -> CardSnapshot:
    data: dict[str, Any] = json.loads(raw)
    next_review_at = _parse_iso(data["next_review_at"])
    assert next_review_at is not None
    return CardSnapshot(
        mastery_level=int(data["mastery_level"]),
        last_reviewed_at=_parse_iso(data.get("last_reviewed_at")),
        next_review_at=next_review_at,
        know_count=int(data["know_count"]),
        know_streak=int(data["know_streak"]),
        lapses=int(data["lapses"]),
        is_mastered=bool(data["is_mastered"]),
    )


def _row_to_entry(row: sqlite3.Row) -> ReviewLogEntry:
    timestamp = _parse_iso(row["timestamp"])
    assert timestamp is not None
    return ReviewLogEntry(
        id=row["id"],
        timestamp=timestamp,
        card_id=row["card_id"],
        category_id=row["category_id"],
        action=parse_action(row["action"]),
        before=_snapshot_from_json(row["before_json"]),
        after=_snapshot_from_json(row["after_json"]),
        interval=timedelta(seconds=float(row["interval_seconds"])),
        is_leech_after=bool(row["is_leech_after"]),
    )


def _insert_entries(
    connection: sqlite3.Connection,
    entries: Iterable[ReviewLogEntry],
    max_size: int,
) -> None:
    rows = [
        (
            entry.id,
            _iso(entry.timestamp),
            entry.card_id,
            entry.category_id,
            entry.action.value,
            _snapshot_to_json(entry.before),
            _snapshot_to_json(entry.after),
            entry.interval.total_seconds(),
            int(entry.is_leech_after),
        )
        for entry in entries
    ]
    if not rows:
        return
    connection.executemany(
        """
        INSERT OR IGNORE INTO review_log (
            id, timestamp, card_id, category_id, action,
            before_json, after_json, interval_seconds, is_leech_after
        )
        VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
        """,
        rows,
    )
    connection.execute(
        """
        DELETE FROM review_log
        WHERE seq NOT IN (SELECT seq FROM review_log ORDER BY seq DESC LIMIT ?)
        """,
        (max_size,),
    )


def save_review_outcome(
    card: Card,
    entries: Iterable[ReviewLogEntry],
    *,
    max_size: int = DEFAULT_MAX_LOG_SIZE,
) -> None:
    """Store a card's new state and its log entries in one transaction.

    The log is trimmed to the newest ``max_size`` rows. Nothing is written if
    any statement fails.
    """
    with connect() as connection:
        _upsert_card(connection, card)
        _insert_entries(connection, entries, max_size)


def load_review_log(max_size: int = DEFAULT_MAX_LOG_SIZE) -> ReviewLog:
    with connect() as connection:
        rows = connection.execute(
            "SELECT * FROM (SELECT * FROM review_log ORDER BY seq DESC LIMIT ?) ORDER BY seq ASC",
            (max_size,),
        ).fetchall()
    return ReviewLog(entries=tuple(_row_to_entry(row) for row in rows), max_size=max_size)


__all__ = [
    "DB_PATH",
    "connect",
    "fetch_card",
    "init_db",
    "load_cards",
    "load_categories",
    "load_review_log",
    "now_iso",
    "save_card",
    "save_category",
    "save_review_outcome",
]
