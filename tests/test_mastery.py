"""Tests for mastery.py: review transitions and the mastery predicate."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from itertools import product

import pytest

from phrase_trainer.mastery import is_phrase_mastered, reconcile, transition
from phrase_trainer.models import Card, Category, ReviewAction
from phrase_trainer.policy import DEFAULT_POLICY, MasteryRule, SchedulePolicy

NOW = datetime(2024, 3, 1, 12, 0, tzinfo=timezone.utc)
GENERAL = Category(id="general", name="General")
FOUNDATIONAL = Category(id="pronouns", name="Pronouns", is_foundational=True)


def _card(**overrides) -> Card:
    fields = {"id": "c1", "category_id": "general", "next_review_at": NOW - timedelta(days=1)}
    fields.update(overrides)
    return Card(**fields)


class TestKnow:
    def test_new_card_moves_to_level_one(self):
        card = _card()

        updated = transition(card, ReviewAction.KNOW, GENERAL, now=NOW)

        assert updated.mastery_level == 1
        assert updated.know_count == 1
        assert updated.know_streak == 1
        assert updated.last_reviewed_at == NOW
        assert updated.next_review_at > NOW

    def test_next_review_follows_interval_for_new_level(self):
        card = _card(mastery_level=2, know_count=2, know_streak=1, last_reviewed_at=NOW - timedelta(days=1))

        updated = transition(card, ReviewAction.KNOW, GENERAL, now=NOW)

        assert updated.mastery_level == 3
        assert updated.next_review_at == NOW + DEFAULT_POLICY.interval_for(3)

    def test_level_saturates_at_max(self):
        top = DEFAULT_POLICY.max_mastery_level
        card = _card(mastery_level=top, know_count=9, know_streak=4, last_reviewed_at=NOW)

        updated = transition(card, ReviewAction.KNOW, GENERAL, now=NOW)

        assert updated.mastery_level == top
        assert updated.next_review_at == NOW + DEFAULT_POLICY.intervals[-1]

    def test_know_does_not_touch_lapses(self):
        card = _card(know_count=2, lapses=3, last_reviewed_at=NOW - timedelta(hours=1))

        updated = transition(card, ReviewAction.KNOW, GENERAL, now=NOW)

        assert updated.lapses == 3

    def test_input_card_is_not_modified(self):
        card = _card()

        transition(card, ReviewAction.KNOW, GENERAL, now=NOW)

        assert card.mastery_level == 0
        assert card.know_count == 0
        assert card.last_reviewed_at is None

    def test_same_inputs_give_same_output(self):
        card = _card(mastery_level=1, know_count=1, know_streak=1, last_reviewed_at=NOW - timedelta(hours=2))

        first = transition(card, ReviewAction.KNOW, GENERAL, now=NOW)
        second = transition(card, ReviewAction.KNOW, GENERAL, now=NOW)

        assert first == second


class TestFailure:
    def test_forgot_after_successes_counts_lapse(self):
        card = _card(
            mastery_level=4,
            know_count=5,
            know_streak=3,
            lapses=0,
            is_mastered=True,
            last_reviewed_at=NOW - timedelta(days=3),
        )

        updated = transition(card, ReviewAction.FORGOT, GENERAL, now=NOW)

        assert updated.lapses == 1
        assert updated.know_streak == 0
        assert updated.know_count == 5
        assert updated.is_mastered is False

    def test_new_card_failure_is_not_a_lapse(self):
        card = _card()

        updated = transition(card, ReviewAction.DONT_KNOW, GENERAL, now=NOW)

        assert updated.lapses == 0
        assert updated.mastery_level == 0
        assert updated.last_reviewed_at == NOW

    def test_second_failure_of_seen_card_counts_lapse(self):
        card = _card()

        once = transition(card, ReviewAction.DONT_KNOW, GENERAL, now=NOW)
        twice = transition(once, ReviewAction.DONT_KNOW, GENERAL, now=NOW + timedelta(minutes=5))

        assert twice.lapses == 1

    def test_failure_uses_relearn_delay(self):
        card = _card(mastery_level=3, know_count=3, know_streak=3, last_reviewed_at=NOW - timedelta(days=1))

        updated = transition(card, ReviewAction.FORGOT, GENERAL, now=NOW)

        assert updated.next_review_at == NOW + DEFAULT_POLICY.relearn_delay

    def test_forgot_drops_further_than_dont_know(self):
        card = _card(mastery_level=4, know_count=4, know_streak=4, last_reviewed_at=NOW - timedelta(days=1))

        forgot = transition(card, ReviewAction.FORGOT, GENERAL, now=NOW)
        dont_know = transition(card, ReviewAction.DONT_KNOW, GENERAL, now=NOW)

        assert forgot.mastery_level == 4 - DEFAULT_POLICY.forgot_drop
        assert dont_know.mastery_level == 4 - DEFAULT_POLICY.dont_know_drop

    def test_level_never_goes_negative(self):
        card = _card(mastery_level=1, know_count=1, know_streak=1, last_reviewed_at=NOW - timedelta(hours=1))

        updated = transition(card, ReviewAction.FORGOT, GENERAL, now=NOW)

        assert updated.mastery_level == 0

    def test_failure_unmasters_even_with_high_know_count(self):
        card = _card(mastery_level=6, know_count=12, know_streak=6, is_mastered=True, last_reviewed_at=NOW)

        updated = transition(card, ReviewAction.DONT_KNOW, GENERAL, now=NOW)

        assert updated.is_mastered is False


class TestMasteryPredicate:
    def test_three_successes_master_general_card(self):
        card = _card()
        for step in range(3):
            moment = NOW + timedelta(days=step)
            card = transition(card, ReviewAction.KNOW, GENERAL, now=moment)
            if step < 2:
                card = transition(card, ReviewAction.FORGOT, GENERAL, now=moment + timedelta(hours=1))

        assert card.know_count == 3
        assert card.know_streak == 1
        assert card.is_mastered is True

    def test_streak_of_two_masters_general_card(self):
        card = _card()
        card = transition(card, ReviewAction.KNOW, GENERAL, now=NOW)
        assert card.is_mastered is False
        card = transition(card, ReviewAction.KNOW, GENERAL, now=NOW + timedelta(hours=2))

        assert card.know_streak == 2
        assert card.is_mastered is True

    def test_foundational_category_is_stricter(self):
        card = _card(category_id="pronouns")
        card = transition(card, ReviewAction.KNOW, FOUNDATIONAL, now=NOW)
        card = transition(card, ReviewAction.KNOW, FOUNDATIONAL, now=NOW + timedelta(hours=2))

        assert card.know_streak == 2
        assert card.is_mastered is False
        assert is_phrase_mastered(card, GENERAL) is True

    def test_foundational_threshold_reached(self):
        rule = DEFAULT_POLICY.foundational_mastery
        card = _card(category_id="pronouns", know_count=rule.know_streak, know_streak=rule.know_streak)

        assert is_phrase_mastered(card, FOUNDATIONAL) is True

    def test_unknown_category_uses_general_rule(self):
        card = _card(know_count=3, know_streak=0)

        assert is_phrase_mastered(card, None) is True

    def test_custom_rule_constants(self):
        policy = SchedulePolicy(mastery=MasteryRule(know_count=5, know_streak=4))
        card = _card()
        for step in range(3):
            card = transition(card, ReviewAction.KNOW, GENERAL, now=NOW + timedelta(days=step), policy=policy)

        assert card.is_mastered is False


class TestInvariants:
    @pytest.mark.parametrize("history", list(product(ReviewAction, repeat=4)))
    def test_invariants_hold_over_any_history(self, history):
        card = _card()
        moment = NOW
        for action in history:
            previous = card
            card = transition(card, action, GENERAL, now=moment)
            moment += timedelta(hours=1)

            assert 0 <= card.mastery_level <= DEFAULT_POLICY.max_mastery_level
            assert card.know_streak <= card.know_count
            assert card.lapses >= previous.lapses
            if action is ReviewAction.KNOW:
                assert card.know_count == previous.know_count + 1
                assert card.lapses == previous.lapses
                assert card.is_mastered == is_phrase_mastered(card, GENERAL)
            else:
                assert card.know_streak == 0
                assert card.is_mastered is False
            if card.is_mastered:
                assert card.know_count >= 3 or card.know_streak >= 2

    def test_level_above_policy_max_is_clamped(self):
        policy = SchedulePolicy(intervals=(timedelta(hours=1), timedelta(days=1)))
        card = _card(mastery_level=5, know_count=5, know_streak=5, last_reviewed_at=NOW)

        updated = transition(card, ReviewAction.KNOW, GENERAL, now=NOW, policy=policy)

        assert updated.mastery_level == 2


class TestReconcile:
    def test_clears_flag_under_stricter_rule(self):
        policy = SchedulePolicy(mastery=MasteryRule(know_count=5, know_streak=4))
        card = _card(mastery_level=2, know_count=3, know_streak=2, is_mastered=True, last_reviewed_at=NOW)

        updated = reconcile(card, GENERAL, policy)

        assert updated.is_mastered is False
        assert updated.know_count == 3

    def test_never_sets_flag(self):
        card = _card(mastery_level=2, know_count=4, know_streak=0, last_reviewed_at=NOW)

        assert reconcile(card, GENERAL).is_mastered is False

    def test_clamps_level_to_curve(self):
        policy = SchedulePolicy(intervals=(timedelta(hours=1), timedelta(days=1)))
        card = _card(mastery_level=6, know_count=6, know_streak=6, is_mastered=True, last_reviewed_at=NOW)

        updated = reconcile(card, GENERAL, policy)

        assert updated.mastery_level == 2
        assert updated.is_mastered is True

    def test_consistent_card_is_returned_as_is(self):
        card = _card(mastery_level=3, know_count=3, know_streak=3, is_mastered=True, last_reviewed_at=NOW)

        assert reconcile(card, GENERAL) is card
