"""Mastery state machine: how a card's retention state moves after a review."""

from __future__ import annotations

from dataclasses import replace
from datetime import datetime

from .models import Card, Category, ReviewAction
from .policy import DEFAULT_POLICY, SchedulePolicy


def is_phrase_mastered(
    card: Card,
    category: Category | None,
    policy: SchedulePolicy = DEFAULT_POLICY,
) -> bool:
    """Mastery predicate on the card's counters; foundational categories use stricter constants."""
    rule = policy.mastery_rule(category)
    return rule.is_satisfied(card.know_count, card.know_streak)


def had_prior_success(card: Card) -> bool:
    return card.know_count > 0 or card.last_reviewed_at is not None


def transition(
    card: Card,
    action: ReviewAction,
    category: Category | None,
    *,
    now: datetime,
    policy: SchedulePolicy = DEFAULT_POLICY,
) -> Card:
    """Return the card's state after ``action`` at ``now``. Pure: ``card`` is left untouched."""
    max_level = policy.max_mastery_level
    current_level = min(card.mastery_level, max_level)

    if action is ReviewAction.KNOW:
        level = min(max_level, current_level + 1)
        updated = replace(
            card,
            mastery_level=level,
            know_count=card.know_count + 1,
            know_streak=card.know_streak + 1,
            last_reviewed_at=now,
            next_review_at=now + policy.interval_for(level),
        )
        return replace(updated, is_mastered=is_phrase_mastered(updated, category, policy))

    if action in (ReviewAction.FORGOT, ReviewAction.DONT_KNOW):
        lapses = card.lapses + 1 if had_prior_success(card) else card.lapses
        return replace(
            card,
            mastery_level=max(0, current_level - policy.failure_drop(action)),
            know_streak=0,
            lapses=lapses,
            last_reviewed_at=now,
            next_review_at=now + policy.relearn_delay,
            # A failure always un-masters, whatever the counters say.
            is_mastered=False,
        )

    raise ValueError(f"Unsupported review action: {action!r}")


def reconcile(
    card: Card,
    category: Category | None,
    policy: SchedulePolicy = DEFAULT_POLICY,
) -> Card:
    """Bring a stored card in line with ``policy``.

    The level is clamped to the curve and ``is_mastered`` is cleared when the
    rule no longer holds. It is never set here: a card whose last answer was a
    failure stays unmastered whatever its counters say.
    """
    level = min(card.mastery_level, policy.max_mastery_level)
    mastered = card.is_mastered and is_phrase_mastered(card, category, policy)
    if level == card.mastery_level and mastered == card.is_mastered:
        return card
    return replace(card, mastery_level=level, is_mastered=mastered)


__all__ = ["had_prior_success", "is_phrase_mastered", "reconcile", "transition"]
