"""Leech detection and the three remediation transitions."""

from __future__ import annotations

from dataclasses import replace
from datetime import datetime
from typing import Iterable

from .models import Card, LeechAction
from .policy import DEFAULT_POLICY, SchedulePolicy

LEECH_LISTING_LIMIT = 20


class NotALeechError(ValueError):
    """Raised when remediation is applied to a card below the leech threshold."""


def is_leech(card: Card, policy: SchedulePolicy = DEFAULT_POLICY) -> bool:
    return card.lapses >= policy.leech_threshold


def became_leech(before: Card, after: Card, policy: SchedulePolicy = DEFAULT_POLICY) -> bool:
    """True only on the transition that pushes a card over the threshold."""
    return not is_leech(before, policy) and is_leech(after, policy)


def remediate(
    card: Card,
    action: LeechAction,
    *,
    now: datetime,
    policy: SchedulePolicy = DEFAULT_POLICY,
) -> Card:
    if not is_leech(card, policy):
        raise NotALeechError(
            f"Card {card.id} has {card.lapses} lapses, below the leech threshold of {policy.leech_threshold}"
        )

    level = min(card.mastery_level, policy.max_mastery_level)
    if action is LeechAction.CONTINUE:
        return replace(card, mastery_level=level, next_review_at=now + policy.leech_continue_delay)
    if action is LeechAction.POSTPONE:
        return replace(card, mastery_level=level, next_review_at=now + policy.leech_postpone_delay)
    if action is LeechAction.RESET:
        return replace(
            card,
            mastery_level=0,
            last_reviewed_at=None,
            next_review_at=now,
            know_count=0,
            know_streak=0,
            lapses=0,
            is_mastered=False,
        )
    raise ValueError(f"Unsupported leech action: {action!r}")


def list_leeches(
    cards: Iterable[Card],
    policy: SchedulePolicy = DEFAULT_POLICY,
    *,
    limit: int = LEECH_LISTING_LIMIT,
) -> list[Card]:
    """Leeches with the most lapses first."""
    leeches = [card for card in cards if is_leech(card, policy)]
    leeches.sort(key=lambda card: (-card.lapses, card.id))
    return leeches[:limit]


__all__ = [
    "LEECH_LISTING_LIMIT",
    "NotALeechError",
    "became_leech",
    "is_leech",
    "list_leeches",
    "remediate",
]
