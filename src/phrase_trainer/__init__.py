"""Phrase Trainer: spaced-repetition scheduling engine and practice API."""

from .leech import NotALeechError, became_leech, is_leech, remediate
from .mastery import is_phrase_mastered, transition
from .models import (
    Card,
    CardSnapshot,
    Category,
    InvalidCardError,
    LeechAction,
    ReviewAction,
    ReviewLogEntry,
)
from .policy import DEFAULT_POLICY, SchedulePolicy, load_policy
from .review_log import ReviewLog, record
from .selector import filter_pool, lookahead, select_next

__all__ = [
    "Card",
    "CardSnapshot",
    "Category",
    "DEFAULT_POLICY",
    "InvalidCardError",
    "LeechAction",
    "NotALeechError",
    "ReviewAction",
    "ReviewLog",
    "ReviewLogEntry",
    "SchedulePolicy",
    "became_leech",
    "filter_pool",
    "is_leech",
    "is_phrase_mastered",
    "load_policy",
    "lookahead",
    "record",
    "remediate",
    "select_next",
    "transition",
]
