"""Due-card selection from a filtered practice pool.

Selection is read-only and deterministic: the same pool, ``now`` and history
always give the same card, so the selector can be called in a loop to build a
look-ahead chain for prefetching without touching any card.
"""

from __future__ import annotations

from datetime import datetime
from typing import Collection, Iterable, Mapping, Sequence

from .models import Card, Category

TIER_DUE = 0
TIER_NEW = 1
TIER_UPCOMING = 2


def _tier(card: Card, now: datetime) -> int:
    if card.last_reviewed_at is None:
        return TIER_NEW
    if card.next_review_at <= now:
        return TIER_DUE
    return TIER_UPCOMING


def _priority(card: Card, now: datetime) -> tuple[int, datetime, int, str]:
    # Within every tier the earliest next_review_at wins: most overdue first for
    # due cards, soonest first for upcoming ones.
    return (_tier(card, now), card.next_review_at, card.mastery_level, card.id)


def rank_pool(pool: Iterable[Card], now: datetime) -> list[Card]:
    """Return the whole pool in presentation order."""
    return sorted(pool, key=lambda card: _priority(card, now))


def select_next(
    pool: Sequence[Card],
    exclude_id: str | None = None,
    *,
    now: datetime,
    seen: Collection[str] = (),
) -> Card | None:
    """Pick the next card to present.

    ``exclude_id`` (usually the card just shown) is only returned when it is
    the sole candidate. Ids in ``seen`` are never returned. ``None`` means
    there is nothing left to study.
    """
    candidates = [card for card in pool if card.id not in seen]
    if not candidates:
        return None

    ranked = rank_pool(candidates, now)
    for card in ranked:
        if card.id != exclude_id:
            return card
    return ranked[0]


def lookahead(
    pool: Sequence[Card],
    count: int,
    *,
    now: datetime,
    start_id: str | None = None,
) -> list[Card]:
    """Chain ``select_next`` calls into a duplicate-free list of upcoming cards."""
    chain: list[Card] = []
    seen: set[str] = set()
    if start_id is not None:
        seen.add(start_id)
    previous_id = start_id
    while len(chain) < count:
        card = select_next(pool, previous_id, now=now, seen=seen)
        if card is None:
            break
        chain.append(card)
        seen.add(card.id)
        previous_id = card.id
    return chain


def filter_pool(
    cards: Iterable[Card],
    categories: Mapping[str, Category],
    *,
    category_id: str | None = None,
) -> list[Card]:
    """Unmastered cards from enabled categories, optionally a single category.

    Cards whose category is unknown are treated as enabled.
    """
    pool: list[Card] = []
    for card in cards:
        if card.is_mastered:
            continue
        if category_id is not None and card.category_id != category_id:
            continue
        category = categories.get(card.category_id)
        if category is not None and not category.enabled:
            continue
        pool.append(card)
    return pool


def count_due(cards: Iterable[Card], now: datetime) -> int:
    return sum(1 for card in cards if card.last_reviewed_at is not None and card.next_review_at <= now)


__all__ = [
    "TIER_DUE",
    "TIER_NEW",
    "TIER_UPCOMING",
    "count_due",
    "filter_pool",
    "lookahead",
    "rank_pool",
    "select_next",
]
