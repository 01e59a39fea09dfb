"""Tests for models.py: card validation and action parsing."""

from __future__ import annotations

from datetime import datetime, timezone

import pytest

from phrase_trainer.models import (
    Card,
    InvalidCardError,
    LeechAction,
    ReviewAction,
    ensure_leech_action,
    ensure_review_action,
    parse_action,
)

NOW = datetime(2024, 3, 1, 12, 0, tzinfo=timezone.utc)


class TestCardValidation:
    def test_new_card_defaults(self):
        card = Card(id="c1", category_id="general", next_review_at=NOW)

        assert card.is_new
        assert card.mastery_level == 0
        assert card.is_mastered is False

    @pytest.mark.parametrize(
        "overrides",
        [
            {"id": ""},
            {"mastery_level": -1},
            {"know_count": -1},
            {"lapses": -2},
            {"know_count": 1, "know_streak": 2},
            {"next_review_at": datetime(2024, 3, 1, 12, 0)},
            {"last_reviewed_at": datetime(2024, 3, 1, 11, 0)},
        ],
    )
    def test_rejects_invalid_state(self, overrides):
        fields = {"id": "c1", "category_id": "general", "next_review_at": NOW}
        fields.update(overrides)

        with pytest.raises(InvalidCardError):
            Card(**fields)

    @pytest.mark.parametrize("know_count, know_streak", [(0, 0), (2, 1)])
    def test_rejects_mastered_flag_without_enough_successes(self, know_count, know_streak):
        with pytest.raises(InvalidCardError):
            Card(
                id="c1",
                category_id="general",
                next_review_at=NOW,
                know_count=know_count,
                know_streak=know_streak,
                is_mastered=True,
            )

    @pytest.mark.parametrize("know_count, know_streak", [(3, 0), (2, 2)])
    def test_accepts_mastered_flag_at_loosest_rule(self, know_count, know_streak):
        card = Card(
            id="c1",
            category_id="general",
            next_review_at=NOW,
            know_count=know_count,
            know_streak=know_streak,
            is_mastered=True,
        )

        assert card.is_mastered is True

    def test_invalid_card_error_is_value_error(self):
        assert issubclass(InvalidCardError, ValueError)


class TestActions:
    def test_review_action_strings(self):
        assert ensure_review_action(" Know ") is ReviewAction.KNOW
        assert ensure_review_action("dont_know") is ReviewAction.DONT_KNOW
        assert ensure_review_action(ReviewAction.FORGOT) is ReviewAction.FORGOT

    def test_unknown_review_action(self):
        with pytest.raises(ValueError):
            ensure_review_action("reset")

    def test_leech_action_strings(self):
        assert ensure_leech_action("POSTPONE") is LeechAction.POSTPONE
        with pytest.raises(ValueError):
            ensure_leech_action("know")

    def test_parse_action_covers_both_kinds(self):
        assert parse_action("forgot") is ReviewAction.FORGOT
        assert parse_action("reset") is LeechAction.RESET
        with pytest.raises(ValueError):
            parse_action("skip")
