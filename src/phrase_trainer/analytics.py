"""Read-only practice statistics projected from the review log and card set.

Nothing here is authoritative state. The log may have been trimmed, so every
figure is "over the retained history" rather than over all time.
"""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta, timezone
from typing import Iterable, Mapping, Sequence

from .leech import list_leeches
from .models import Card, Category, ReviewLogEntry
from .policy import DEFAULT_POLICY, SchedulePolicy


@dataclass(slots=True)
class Totals:
    total_cards: int
    mastered: int
    learning: int
    new_cards: int
    mastery_progress_percent: int
    due_today: int
    overdue: int
    due_next_7_days: int


@dataclass(slots=True)
class Accuracy:
    overall: float | None
    last_7_days: float | None
    last_30_days: float | None
    total_reviews: int
    streak_days: int


@dataclass(slots=True)
class CategoryBreakdown:
    id: str
    name: str
    total: int
    mastered: int
    in_progress: int
    accuracy: float | None
    avg_mastery_level: float
    is_foundational: bool


@dataclass(slots=True)
class DayActivity:
    date: str
    total: int = 0
    correct: int = 0
    incorrect: int = 0
    new_cards: int = 0


@dataclass(slots=True)
class LeechSummary:
    card_id: str
    learning: str
    native: str
    lapses: int
    category_id: str


@dataclass(slots=True)
class PracticeSummary:
    totals: Totals
    accuracy: Accuracy
    categories: list[CategoryBreakdown] = field(default_factory=list)
    levels: dict[int, int] = field(default_factory=dict)
    recent_activity: list[DayActivity] = field(default_factory=list)
    new_cards_by_day: dict[str, int] = field(default_factory=dict)
    leeches: list[LeechSummary] = field(default_factory=list)


def _day(moment: datetime) -> date:
    return moment.astimezone(timezone.utc).date()


def calc_accuracy(entries: Sequence[ReviewLogEntry]) -> float | None:
    """Percentage of correct answers, or None with no reviews."""
    reviews = [entry for entry in entries if entry.is_review]
    if not reviews:
        return None
    correct = sum(1 for entry in reviews if entry.was_correct)
    return correct / len(reviews) * 100


def streak_days(active_days: Iterable[date], today: date) -> int:
    """Consecutive days with at least one review, counting back from today."""
    days = set(active_days)
    streak = 0
    cursor = today
    while cursor in days:
        streak += 1
        cursor -= timedelta(days=1)
    return streak


def daily_activity(entries: Iterable[ReviewLogEntry]) -> list[DayActivity]:
    by_day: dict[date, DayActivity] = {}
    for entry in entries:
        if not entry.is_review:
            continue
        key = _day(entry.timestamp)
        stats = by_day.get(key)
        if stats is None:
            stats = by_day[key] = DayActivity(date=key.isoformat())
        stats.total += 1
        if entry.was_correct:
            stats.correct += 1
        else:
            stats.incorrect += 1
        if entry.was_new:
            stats.new_cards += 1
    return [by_day[key] for key in sorted(by_day)]


def _totals(cards: Sequence[Card], now: datetime) -> Totals:
    total = len(cards)
    mastered = sum(1 for card in cards if card.is_mastered)
    new_cards = sum(1 for card in cards if card.is_new)
    start_of_today = datetime.combine(_day(now), time.min, tzinfo=timezone.utc)
    end_of_today = start_of_today + timedelta(days=1)
    end_of_week = end_of_today + timedelta(days=6)
    return Totals(
        total_cards=total,
        mastered=mastered,
        learning=total - mastered - new_cards,
        new_cards=new_cards,
        mastery_progress_percent=round(mastered / total * 100) if total else 0,
        due_today=sum(1 for card in cards if card.next_review_at < end_of_today),
        overdue=sum(1 for card in cards if card.next_review_at < start_of_today),
        due_next_7_days=sum(
            1 for card in cards if end_of_today <= card.next_review_at < end_of_week
        ),
    )


def _category_breakdown(
    cards: Sequence[Card],
    categories: Mapping[str, Category],
    entries: Sequence[ReviewLogEntry],
) -> list[CategoryBreakdown]:
    category_ids = {card.category_id for card in cards} | {entry.category_id for entry in entries}
    breakdown: list[CategoryBreakdown] = []
    for category_id in category_ids:
        members = [card for card in cards if card.category_id == category_id]
        category = categories.get(category_id)
        mastered = sum(1 for card in members if card.is_mastered)
        in_progress = sum(1 for card in members if not card.is_mastered and not card.is_new)
        breakdown.append(
            CategoryBreakdown(
                id=category_id,
                name=category.name if category else category_id,
                total=len(members),
                mastered=mastered,
                in_progress=in_progress,
                accuracy=calc_accuracy([e for e in entries if e.category_id == category_id]),
                avg_mastery_level=(
                    sum(card.mastery_level for card in members) / len(members) if members else 0.0
                ),
                is_foundational=category.is_foundational if category else False,
            )
        )
    breakdown.sort(key=lambda item: (-item.total, item.id))
    return breakdown


def build_summary(
    cards: Sequence[Card],
    categories: Mapping[str, Category],
    entries: Sequence[ReviewLogEntry],
    *,
    now: datetime,
    policy: SchedulePolicy = DEFAULT_POLICY,
) -> PracticeSummary:
    today = _day(now)
    activity = daily_activity(entries)
    last_7 = now - timedelta(days=6)
    last_30 = now - timedelta(days=29)

    accuracy = Accuracy(
        overall=calc_accuracy(entries),
        last_7_days=calc_accuracy([e for e in entries if e.timestamp >= last_7]),
        last_30_days=calc_accuracy([e for e in entries if e.timestamp >= last_30]),
        total_reviews=sum(1 for entry in entries if entry.is_review),
        streak_days=streak_days((date.fromisoformat(day.date) for day in activity), today),
    )

    level_counts = Counter(card.mastery_level for card in cards)
    top_level = max([policy.max_mastery_level, *level_counts.keys()])
    levels = {level: level_counts.get(level, 0) for level in range(top_level + 1)}

    leeches = [
        LeechSummary(
            card_id=card.id,
            learning=card.learning,
            native=card.native,
            lapses=card.lapses,
            category_id=card.category_id,
        )
        for card in list_leeches(cards, policy)
    ]

    return PracticeSummary(
        totals=_totals(cards, now),
        accuracy=accuracy,
        categories=_category_breakdown(cards, categories, entries),
        levels=levels,
        recent_activity=activity,
        new_cards_by_day={day.date: day.new_cards for day in activity if day.new_cards},
        leeches=leeches,
    )


__all__ = [
    "Accuracy",
    "CategoryBreakdown",
    "DayActivity",
    "LeechSummary",
    "PracticeSummary",
    "Totals",
    "build_summary",
    "calc_accuracy",
    "daily_activity",
    "streak_days",
]
