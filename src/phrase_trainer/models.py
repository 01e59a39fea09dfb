from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from typing import Union


# Loosest mastery rule any policy may configure.
MIN_MASTERY_KNOW_COUNT = 3
MIN_MASTERY_KNOW_STREAK = 2


class InvalidCardError(ValueError):
    """Raised when a card is constructed with out-of-range retention state."""


class ReviewAction(str, Enum):
    KNOW = "know"
    FORGOT = "forgot"
    DONT_KNOW = "dont_know"


class LeechAction(str, Enum):
    CONTINUE = "continue"
    POSTPONE = "postpone"
    RESET = "reset"


AnyAction = Union[ReviewAction, LeechAction]

REVIEW_ACTIONS: tuple[ReviewAction, ...] = tuple(ReviewAction)
LEECH_ACTIONS: tuple[LeechAction, ...] = tuple(LeechAction)


@dataclass(frozen=True, slots=True)
class Category:
    id: str
    name: str
    is_foundational: bool = False
    enabled: bool = True


@dataclass(frozen=True, slots=True)
class Card:
    """One phrase with its retention state.

    Instances are immutable; every change goes through ``dataclasses.replace``
    so the invariants below are re-checked on each transition.
    """

    id: str
    category_id: str
    next_review_at: datetime
    mastery_level: int = 0
    last_reviewed_at: datetime | None = None
    know_count: int = 0
    know_streak: int = 0
    lapses: int = 0
    is_mastered: bool = False
    learning: str = ""
    native: str = ""

    def __post_init__(self) -> None:
        if not self.id:
            raise InvalidCardError("card id must not be empty")
        if self.mastery_level < 0:
            raise InvalidCardError(f"mastery_level must be >= 0, got {self.mastery_level}")
        for name in ("know_count", "know_streak", "lapses"):
            value = getattr(self, name)
            if value < 0:
                raise InvalidCardError(f"{name} must be >= 0, got {value}")
        if self.know_streak > self.know_count:
            raise InvalidCardError(
                f"know_streak ({self.know_streak}) exceeds know_count ({self.know_count})"
            )
        if self.next_review_at.tzinfo is None:
            raise InvalidCardError("next_review_at must be timezone-aware")
        if self.last_reviewed_at is not None and self.last_reviewed_at.tzinfo is None:
            raise InvalidCardError("last_reviewed_at must be timezone-aware")
        if self.is_mastered and not (
            self.know_count >= MIN_MASTERY_KNOW_COUNT or self.know_streak >= MIN_MASTERY_KNOW_STREAK
        ):
            raise InvalidCardError(
                f"is_mastered set with know_count={self.know_count}, know_streak={self.know_streak}"
            )

    @property
    def is_new(self) -> bool:
        return self.last_reviewed_at is None


@dataclass(frozen=True, slots=True)
class CardSnapshot:
    """Every mutable field of a card at one point in time."""

    mastery_level: int
    last_reviewed_at: datetime | None
    next_review_at: datetime
    know_count: int
    know_streak: int
    lapses: int
    is_mastered: bool

    @classmethod
    def of(cls, card: Card) -> CardSnapshot:
        return cls(
            mastery_level=card.mastery_level,
            last_reviewed_at=card.last_reviewed_at,
            next_review_at=card.next_review_at,
            know_count=card.know_count,
            know_streak=card.know_streak,
            lapses=card.lapses,
            is_mastered=card.is_mastered,
        )


@dataclass(frozen=True, slots=True)
class ReviewLogEntry:
    id: str
    timestamp: datetime
    card_id: str
    category_id: str
    action: AnyAction
    before: CardSnapshot
    after: CardSnapshot
    interval: timedelta
    is_leech_after: bool

    @property
    def is_review(self) -> bool:
        """True for know/forgot/dont_know entries, False for leech remediation."""
        return isinstance(self.action, ReviewAction)

    @property
    def was_correct(self) -> bool:
        return self.action is ReviewAction.KNOW

    @property
    def was_new(self) -> bool:
        return self.before.last_reviewed_at is None


def ensure_review_action(value: str | ReviewAction) -> ReviewAction:
    """Normalise and validate a review action string."""

    if isinstance(value, ReviewAction):
        return value
    normalized = value.strip().lower()
    try:
        return ReviewAction(normalized)
    except ValueError:
        raise ValueError(f"Unsupported review action: {value}") from None


def ensure_leech_action(value: str | LeechAction) -> LeechAction:
    if isinstance(value, LeechAction):
        return value
    normalized = value.strip().lower()
    try:
        return LeechAction(normalized)
    except ValueError:
        raise ValueError(f"Unsupported leech action: {value}") from None


def parse_action(value: str) -> AnyAction:
    """Resolve a stored action string to its review or leech action."""

    normalized = value.strip().lower()
    if normalized in {action.value for action in REVIEW_ACTIONS}:
        return ReviewAction(normalized)
    if normalized in {action.value for action in LEECH_ACTIONS}:
        return LeechAction(normalized)
    raise ValueError(f"Unsupported action: {value}")


__all__ = [
    "AnyAction",
    "Card",
    "CardSnapshot",
    "Category",
    "InvalidCardError",
    "LEECH_ACTIONS",
    "LeechAction",
    "MIN_MASTERY_KNOW_COUNT",
    "MIN_MASTERY_KNOW_STREAK",
    "REVIEW_ACTIONS",
    "ReviewAction",
    "ReviewLogEntry",
    "ensure_leech_action",
    "ensure_review_action",
    "parse_action",
]
