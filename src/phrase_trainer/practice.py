"""Practice session state: applies engine transitions to the in-memory card set.

Transitions are applied optimistically; persistence runs afterwards through
``PracticeState.sync`` and a failure there never rolls the in-memory state
back. It is logged and kept as a ``SyncNotice`` for the user instead.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Callable

from . import db
from .analytics import PracticeSummary, build_summary
from .leech import became_leech, list_leeches
from .leech import remediate as remediate_card
from .mastery import reconcile, transition
from .models import Card, Category, LeechAction, ReviewAction, ReviewLogEntry
from .policy import SchedulePolicy, load_policy
from .review_log import ReviewLog, empty_log, record
from .selector import count_due, filter_pool, lookahead, select_next

logger = logging.getLogger(__name__)

MAX_NOTICES = 20

_state: PracticeState | None = None


class UnknownCardError(LookupError):
    pass


class UnknownCategoryError(LookupError):
    pass


@dataclass(slots=True)
class ReviewOutcome:
    card: Card
    entry: ReviewLogEntry
    became_leech: bool = False


@dataclass(slots=True)
class SyncNotice:
    card_id: str
    message: str
    created_at: datetime


@dataclass(slots=True)
class PracticeState:
    """Cards, categories and review log owned by one running application."""

    policy: SchedulePolicy
    cards: dict[str, Card] = field(default_factory=dict)
    categories: dict[str, Category] = field(default_factory=dict)
    log: ReviewLog = field(default_factory=ReviewLog)
    notices: list[SyncNotice] = field(default_factory=list)
    save_card: Callable[[Card], None] = db.save_card
    save_category: Callable[[Category], None] = db.save_category
    save_outcome: Callable[..., None] = db.save_review_outcome

    @classmethod
    def from_store(cls, policy: SchedulePolicy | None = None) -> PracticeState:
        policy = policy or load_policy()
        categories = db.load_categories()
        cards: dict[str, Card] = {}
        adjusted = 0
        for stored in db.load_cards():
            card = reconcile(stored, categories.get(stored.category_id), policy)
            if card is not stored:
                adjusted += 1
            cards[card.id] = card
        if adjusted:
            logger.info("Adjusted %d stored cards to the current policy", adjusted)
        log = db.load_review_log(policy.max_log_size)
        logger.info("Loaded %d cards, %d categories, %d log entries", len(cards), len(categories), len(log))
        return cls(policy=policy, cards=cards, categories=categories, log=log)

    @classmethod
    def empty(cls, policy: SchedulePolicy) -> PracticeState:
        return cls(policy=policy, log=empty_log(policy))

    # ── lookups ───────────────────────────────────────────────────────────────

    def get_card(self, card_id: str) -> Card:
        try:
            return self.cards[card_id]
        except KeyError:
            raise UnknownCardError(card_id) from None

    def pool(self, category_id: str | None = None) -> list[Card]:
        return filter_pool(self.cards.values(), self.categories, category_id=category_id)

    def next_card(
        self,
        *,
        now: datetime,
        category_id: str | None = None,
        exclude_id: str | None = None,
    ) -> Card | None:
        return select_next(self.pool(category_id), exclude_id, now=now)

    def due_count(self, *, now: datetime, category_id: str | None = None) -> int:
        return count_due(self.pool(category_id), now)

    def upcoming(
        self,
        count: int,
        *,
        now: datetime,
        category_id: str | None = None,
        start_id: str | None = None,
    ) -> list[Card]:
        return lookahead(self.pool(category_id), count, now=now, start_id=start_id)

    def summary(self, now: datetime) -> PracticeSummary:
        return build_summary(
            list(self.cards.values()),
            self.categories,
            self.log.entries,
            now=now,
            policy=self.policy,
        )

    # ── transitions ───────────────────────────────────────────────────────────

    def _apply(
        self,
        before: Card,
        after: Card,
        action: ReviewAction | LeechAction,
        now: datetime,
    ) -> ReviewLogEntry:
        entry = record(before, after, action, now=now, policy=self.policy)
        if self.log.is_full:
            logger.debug("Review log at %d entries, dropping the oldest", len(self.log))
        self.cards[after.id] = after
        self.log = self.log.append(entry)
        return entry

    def review(self, card_id: str, action: ReviewAction, *, now: datetime) -> ReviewOutcome:
        before = self.get_card(card_id)
        after = transition(before, action, self.categories.get(before.category_id), now=now, policy=self.policy)
        entry = self._apply(before, after, action, now)
        leech_edge = became_leech(before, after, self.policy)
        if leech_edge:
            logger.info("Card %s became a leech with %d lapses", after.id, after.lapses)
        return ReviewOutcome(card=after, entry=entry, became_leech=leech_edge)

    def remediate(self, card_id: str, action: LeechAction, *, now: datetime) -> ReviewOutcome:
        before = self.get_card(card_id)
        after = remediate_card(before, action, now=now, policy=self.policy)
        entry = self._apply(before, after, action, now)
        return ReviewOutcome(card=after, entry=entry)

    def add_card(
        self,
        learning: str,
        native: str,
        category_id: str,
        *,
        now: datetime,
        card_id: str | None = None,
    ) -> Card:
        learning = learning.strip()
        native = native.strip()
        if not learning:
            raise ValueError("learning text must not be empty")
        if not native:
            raise ValueError("native text must not be empty")
        if category_id not in self.categories:
            raise UnknownCategoryError(category_id)
        card = Card(
            id=card_id or uuid.uuid4().hex,
            category_id=category_id,
            learning=learning,
            native=native,
            next_review_at=now,
        )
        self.cards[card.id] = card
        return card

    def add_category(self, category: Category) -> Category:
        self.categories[category.id] = category
        return category

    def set_category_enabled(self, category_id: str, enabled: bool) -> Category:
        try:
            category = self.categories[category_id]
        except KeyError:
            raise UnknownCategoryError(category_id) from None
        updated = replace(category, enabled=enabled)
        self.categories[category_id] = updated
        return updated

    def leeches(self) -> list[Card]:
        return list_leeches(self.cards.values(), self.policy)

    def history(self, card_id: str) -> list[ReviewLogEntry]:
        """Retained log entries for one card, oldest first."""
        self.get_card(card_id)
        return self.log.for_card(card_id)

    # ── persistence ───────────────────────────────────────────────────────────

    def sync(self, outcome: ReviewOutcome) -> bool:
        """Best-effort write of one outcome. Returns False when the store failed."""
        try:
            self.save_outcome(outcome.card, [outcome.entry], max_size=self.policy.max_log_size)
        except Exception as exc:
            logger.exception("Background sync failed for card %s", outcome.card.id)
            self._notify(outcome.card.id, f"Could not save progress: {exc}")
            return False
        return True

    def sync_card(self, card: Card) -> bool:
        try:
            self.save_card(card)
        except Exception as exc:
            logger.exception("Saving card %s failed", card.id)
            self._notify(card.id, f"Could not save card: {exc}")
            return False
        return True

    def sync_category(self, category: Category) -> bool:
        try:
            self.save_category(category)
        except Exception as exc:
            logger.exception("Saving category %s failed", category.id)
            self._notify(category.id, f"Could not save category: {exc}")
            return False
        return True

    def _notify(self, card_id: str, message: str) -> None:
        self.notices.append(SyncNotice(card_id=card_id, message=message, created_at=datetime.now(timezone.utc)))
        del self.notices[:-MAX_NOTICES]

    def drain_notices(self) -> list[SyncNotice]:
        notices = list(self.notices)
        self.notices.clear()
        return notices



def get_state() -> PracticeState:
    """Return the process-wide practice state, loading it from the store on first use."""
    global _state
    if _state is None:
        db.init_db()
        _state = PracticeState.from_store()
    return _state


def reset_state(state: PracticeState | None = None) -> None:
    global _state
    _state = state


__all__ = [
    "MAX_NOTICES",
    "PracticeState",
    "ReviewOutcome",
    "SyncNotice",
    "UnknownCardError",
    "UnknownCategoryError",
    "get_state",
    "reset_state",
]
