"""Scheduling policy: interval curve, mastery thresholds and leech constants.

The defaults below are used as-is unless ``data/srs.yaml`` (or the file named by
``PHRASE_TRAINER_POLICY_PATH``) overrides them. The policy is an explicit
argument to every engine function, so a different curve can be plugged in by
building another ``SchedulePolicy``.
"""

from __future__ import annotations

import logging
import os
import re
from dataclasses import dataclass, field
from datetime import timedelta
from pathlib import Path
from typing import Any, Mapping

import yaml

from .models import MIN_MASTERY_KNOW_COUNT, MIN_MASTERY_KNOW_STREAK, Category, ReviewAction

logger = logging.getLogger(__name__)

PACKAGE_ROOT = Path(__file__).resolve().parent
PROJECT_ROOT = PACKAGE_ROOT.parent.parent
DATA_DIR = PROJECT_ROOT / "data"
DEFAULT_POLICY_PATH = DATA_DIR / "srs.yaml"
POLICY_PATH = Path(os.environ.get("PHRASE_TRAINER_POLICY_PATH", DEFAULT_POLICY_PATH))

# 1 hour, 8 hours, 1 day, 3 days, 1 week, 2 weeks
DEFAULT_INTERVALS: tuple[timedelta, ...] = (
    timedelta(hours=1),
    timedelta(hours=8),
    timedelta(days=1),
    timedelta(days=3),
    timedelta(days=7),
    timedelta(days=14),
)
DEFAULT_RELEARN_DELAY = timedelta(minutes=5)
DEFAULT_FORGOT_DROP = 2
DEFAULT_DONT_KNOW_DROP = 1
DEFAULT_LEECH_THRESHOLD = 5
DEFAULT_LEECH_CONTINUE_DELAY = timedelta(minutes=10)
DEFAULT_LEECH_POSTPONE_DELAY = timedelta(hours=24)
DEFAULT_MAX_LOG_SIZE = 5000

_DURATION_RE = re.compile(r"^\s*(\d+(?:\.\d+)?)\s*([smhdw])\s*$")
_DURATION_UNITS = {
    "s": "seconds",
    "m": "minutes",
    "h": "hours",
    "d": "days",
    "w": "weeks",
}

_policy_cache: SchedulePolicy | None = None


class PolicyError(ValueError):
    """Raised when policy values are inconsistent."""


@dataclass(frozen=True, slots=True)
class MasteryRule:
    """A card is mastered once either threshold is reached."""

    know_count: int
    know_streak: int

    def is_satisfied(self, know_count: int, know_streak: int) -> bool:
        return know_count >= self.know_count or know_streak >= self.know_streak

    def is_at_least_as_strict_as(self, other: MasteryRule) -> bool:
        return self.know_count >= other.know_count and self.know_streak >= other.know_streak


LOOSEST_MASTERY_RULE = MasteryRule(know_count=MIN_MASTERY_KNOW_COUNT, know_streak=MIN_MASTERY_KNOW_STREAK)


@dataclass(frozen=True, slots=True)
class SchedulePolicy:
    intervals: tuple[timedelta, ...] = DEFAULT_INTERVALS
    relearn_delay: timedelta = DEFAULT_RELEARN_DELAY
    forgot_drop: int = DEFAULT_FORGOT_DROP
    dont_know_drop: int = DEFAULT_DONT_KNOW_DROP
    mastery: MasteryRule = field(default_factory=lambda: MasteryRule(know_count=3, know_streak=2))
    foundational_mastery: MasteryRule = field(
        default_factory=lambda: MasteryRule(know_count=8, know_streak=5)
    )
    leech_threshold: int = DEFAULT_LEECH_THRESHOLD
    leech_continue_delay: timedelta = DEFAULT_LEECH_CONTINUE_DELAY
    leech_postpone_delay: timedelta = DEFAULT_LEECH_POSTPONE_DELAY
    max_log_size: int = DEFAULT_MAX_LOG_SIZE

    def __post_init__(self) -> None:
        if not self.intervals:
            raise PolicyError("at least one review interval is required")
        previous = timedelta(0)
        for interval in self.intervals:
            if interval <= previous:
                raise PolicyError("review intervals must be positive and strictly increasing")
            previous = interval
        if self.relearn_delay <= timedelta(0):
            raise PolicyError("relearn_delay must be positive")
        if self.forgot_drop < 0 or self.dont_know_drop < 0:
            raise PolicyError("failure drops must not be negative")
        if not self.mastery.is_at_least_as_strict_as(LOOSEST_MASTERY_RULE):
            raise PolicyError(
                f"mastery rule must not be looser than know_count={MIN_MASTERY_KNOW_COUNT},"
                f" know_streak={MIN_MASTERY_KNOW_STREAK}"
            )
        if not self.foundational_mastery.is_at_least_as_strict_as(self.mastery):
            raise PolicyError("foundational mastery rule must not be looser than the general rule")
        if self.leech_threshold < 1:
            raise PolicyError("leech_threshold must be at least 1")
        if self.max_log_size < 1:
            raise PolicyError("max_log_size must be at least 1")

    @property
    def max_mastery_level(self) -> int:
        return len(self.intervals)

    def interval_for(self, level: int) -> timedelta:
        """Time until the next review after a successful answer reaching ``level``."""
        index = max(1, min(level, self.max_mastery_level)) - 1
        return self.intervals[index]

    def failure_drop(self, action: ReviewAction) -> int:
        if action is ReviewAction.FORGOT:
            return self.forgot_drop
        if action is ReviewAction.DONT_KNOW:
            return self.dont_know_drop
        raise ValueError(f"{action.value!r} is not a failure action")

    def mastery_rule(self, category: Category | None) -> MasteryRule:
        if category is not None and category.is_foundational:
            return self.foundational_mastery
        return self.mastery


DEFAULT_POLICY = SchedulePolicy()


def geometric_intervals(first: timedelta, factor: float, steps: int) -> tuple[timedelta, ...]:
    """Build an interval curve where each step is ``factor`` times the previous one."""
    if factor <= 1:
        raise PolicyError("factor must be greater than 1")
    if steps < 1:
        raise PolicyError("steps must be at least 1")
    return tuple(first * (factor**step) for step in range(steps))


def parse_duration(value: Any) -> timedelta:
    """Parse ``"90s"``, ``"5m"``, ``"8h"``, ``"3d"``, ``"2w"`` or a number of seconds."""
    if isinstance(value, timedelta):
        return value
    if isinstance(value, bool):
        raise PolicyError(f"Invalid duration: {value!r}")
    if isinstance(value, (int, float)):
        return timedelta(seconds=value)
    if isinstance(value, str):
        match = _DURATION_RE.match(value.lower())
        if match:
            amount = float(match.group(1))
            return timedelta(**{_DURATION_UNITS[match.group(2)]: amount})
    raise PolicyError(f"Invalid duration: {value!r}")


def _mapping(data: Mapping[str, Any], key: str) -> Mapping[str, Any]:
    value = data.get(key) or {}
    if not isinstance(value, Mapping):
        raise PolicyError(f"Expected mapping for '{key}'")
    return value


def _intervals(raw: Any) -> tuple[timedelta, ...]:
    """A list of durations, or a {first, factor, steps} mapping for a geometric curve."""
    if isinstance(raw, list):
        return tuple(parse_duration(item) for item in raw)
    if isinstance(raw, Mapping):
        try:
            return geometric_intervals(
                parse_duration(raw["first"]),
                float(raw["factor"]),
                int(raw["steps"]),
            )
        except KeyError as exc:
            raise PolicyError(f"Missing '{exc.args[0]}' in 'intervals'") from None
    raise PolicyError("Expected list or mapping for 'intervals'")


def _rule(raw: Mapping[str, Any], fallback: MasteryRule) -> MasteryRule:
    return MasteryRule(
        know_count=int(raw.get("know_count", fallback.know_count)),
        know_streak=int(raw.get("know_streak", fallback.know_streak)),
    )


def policy_from_mapping(data: Mapping[str, Any]) -> SchedulePolicy:
    """Build a policy from parsed YAML, falling back to defaults per key."""
    base = DEFAULT_POLICY
    intervals = base.intervals
    if "intervals" in data:
        intervals = _intervals(data["intervals"])

    failure_drop = _mapping(data, "failure_drop")
    leech = _mapping(data, "leech")
    review_log = _mapping(data, "review_log")

    return SchedulePolicy(
        intervals=intervals,
        relearn_delay=parse_duration(data.get("relearn_delay", base.relearn_delay)),
        forgot_drop=int(failure_drop.get("forgot", base.forgot_drop)),
        dont_know_drop=int(failure_drop.get("dont_know", base.dont_know_drop)),
        mastery=_rule(_mapping(data, "mastery"), base.mastery),
        foundational_mastery=_rule(_mapping(data, "foundational_mastery"), base.foundational_mastery),
        leech_threshold=int(leech.get("threshold", base.leech_threshold)),
        leech_continue_delay=parse_duration(leech.get("continue_delay", base.leech_continue_delay)),
        leech_postpone_delay=parse_duration(leech.get("postpone_delay", base.leech_postpone_delay)),
        max_log_size=int(review_log.get("max_size", base.max_log_size)),
    )


def load_policy(path: Path | None = None) -> SchedulePolicy:
    """Parse the policy YAML file. Cached in memory when using the default path."""
    global _policy_cache
    if _policy_cache is not None and path is None:
        return _policy_cache

    file_path = path or POLICY_PATH
    if not file_path.exists():
        logger.info("No policy file at %s, using built-in defaults", file_path)
        policy = DEFAULT_POLICY
    else:
        with open(file_path, encoding="utf-8") as f:
            raw = yaml.safe_load(f) or {}
        if not isinstance(raw, Mapping):
            raise PolicyError(f"Policy file must contain a mapping: {file_path}")
        policy = policy_from_mapping(raw)

    if path is None:
        _policy_cache = policy
    return policy


def clear_cache() -> None:
    """Clear the in-memory policy cache."""
    global _policy_cache
    _policy_cache = None


__all__ = [
    "DEFAULT_INTERVALS",
    "DEFAULT_POLICY",
    "MasteryRule",
    "PolicyError",
    "SchedulePolicy",
    "clear_cache",
    "geometric_intervals",
    "load_policy",
    "parse_duration",
    "policy_from_mapping",
]
