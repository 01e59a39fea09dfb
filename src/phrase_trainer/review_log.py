"""Bounded, append-only audit log of card transitions."""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Iterable, Iterator

from .leech import is_leech
from .models import AnyAction, Card, CardSnapshot, ReviewLogEntry
from .policy import DEFAULT_MAX_LOG_SIZE, DEFAULT_POLICY, SchedulePolicy


@dataclass(frozen=True, slots=True)
class ReviewLog:
    """Immutable FIFO ring of log entries.

    ``append`` and ``extend`` return a new log; when the result would exceed
    ``max_size`` the oldest entries are dropped from the front.
    """

    entries: tuple[ReviewLogEntry, ...] = ()
    max_size: int = DEFAULT_MAX_LOG_SIZE

    def __post_init__(self) -> None:
        if self.max_size < 1:
            raise ValueError("max_size must be at least 1")
        if len(self.entries) > self.max_size:
            object.__setattr__(self, "entries", self.entries[-self.max_size :])

    def __len__(self) -> int:
        return len(self.entries)

    def __iter__(self) -> Iterator[ReviewLogEntry]:
        return iter(self.entries)

    def append(self, entry: ReviewLogEntry) -> ReviewLog:
        return self.extend((entry,))

    def extend(self, entries: Iterable[ReviewLogEntry]) -> ReviewLog:
        combined = self.entries + tuple(entries)
        return ReviewLog(entries=combined[-self.max_size :], max_size=self.max_size)

    @property
    def is_full(self) -> bool:
        return len(self.entries) >= self.max_size

    def for_card(self, card_id: str) -> list[ReviewLogEntry]:
        return [entry for entry in self.entries if entry.card_id == card_id]


def record(
    before: Card,
    after: Card,
    action: AnyAction,
    *,
    now: datetime,
    policy: SchedulePolicy = DEFAULT_POLICY,
    entry_id: str | None = None,
) -> ReviewLogEntry:
    """Build the audit entry for one transition of ``before`` into ``after``."""
    return ReviewLogEntry(
        id=entry_id or uuid.uuid4().hex,
        timestamp=now,
        card_id=after.id,
        category_id=after.category_id,
        action=action,
        before=CardSnapshot.of(before),
        after=CardSnapshot.of(after),
        interval=max(after.next_review_at - now, timedelta(0)),
        is_leech_after=is_leech(after, policy),
    )


def empty_log(policy: SchedulePolicy = DEFAULT_POLICY) -> ReviewLog:
    return ReviewLog(max_size=policy.max_log_size)


__all__ = ["ReviewLog", "empty_log", "record"]
