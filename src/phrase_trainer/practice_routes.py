"""JSON routes for practice: next card, reviews, leech remediation and stats."""

from __future__ import annotations

from dataclasses import asdict
from datetime import datetime, timezone
from typing import Any

from fastapi import APIRouter, BackgroundTasks, HTTPException, Query

from .leech import NotALeechError, is_leech
from .models import Card, ReviewLogEntry, ensure_leech_action, ensure_review_action
from .practice import PracticeState, ReviewOutcome, UnknownCardError, get_state

router = APIRouter()

MAX_LOOKAHEAD = 10


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value is not None else None


def card_json(card: Card | None, state: PracticeState) -> dict[str, Any] | None:
    if card is None:
        return None
    return {
        "id": card.id,
        "category_id": card.category_id,
        "learning": card.learning,
        "native": card.native,
        "mastery_level": card.mastery_level,
        "last_reviewed_at": _iso(card.last_reviewed_at),
        "next_review_at": _iso(card.next_review_at),
        "know_count": card.know_count,
        "know_streak": card.know_streak,
        "lapses": card.lapses,
        "is_mastered": card.is_mastered,
        "is_leech": is_leech(card, state.policy),
    }


def _entry_json(entry: ReviewLogEntry) -> dict[str, Any]:
    return {
        "id": entry.id,
        "timestamp": _iso(entry.timestamp),
        "card_id": entry.card_id,
        "action": entry.action.value,
        "interval_seconds": entry.interval.total_seconds(),
        "is_leech_after": entry.is_leech_after,
    }


def _outcome_json(outcome: ReviewOutcome, state: PracticeState, next_card: Card | None) -> dict[str, Any]:
    return {
        "card": card_json(outcome.card, state),
        "became_leech": outcome.became_leech,
        "entry": _entry_json(outcome.entry),
        "next_card": card_json(next_card, state),
    }


@router.get("/practice/next")
async def next_card(
    category_id: str | None = Query(None),
    exclude_id: str | None = Query(None),
) -> dict[str, Any]:
    state = get_state()
    now = _now()
    card = state.next_card(now=now, category_id=category_id, exclude_id=exclude_id)
    return {
        "card": card_json(card, state),
        "due_count": state.due_count(now=now, category_id=category_id),
    }


@router.get("/practice/lookahead")
async def upcoming_cards(
    count: int = Query(2, ge=1, le=MAX_LOOKAHEAD),
    start_id: str | None = Query(None),
    category_id: str | None = Query(None),
) -> dict[str, Any]:
    state = get_state()
    cards = state.upcoming(count, now=_now(), category_id=category_id, start_id=start_id)
    return {"cards": [card_json(card, state) for card in cards]}


@router.get("/practice/leeches")
async def list_leech_cards() -> dict[str, Any]:
    state = get_state()
    return {"cards": [card_json(card, state) for card in state.leeches()]}


@router.get("/practice/{card_id}/history")
async def card_history(card_id: str) -> dict[str, Any]:
    state = get_state()
    try:
        entries = state.history(card_id)
    except UnknownCardError:
        raise HTTPException(status_code=404, detail="Card not found")
    return {"entries": [_entry_json(entry) for entry in entries]}


@router.post("/practice/{card_id}/review/{action}")
async def review_card(
    card_id: str,
    action: str,
    background_tasks: BackgroundTasks,
    category_id: str | None = Query(None),
) -> dict[str, Any]:
    try:
        review_action = ensure_review_action(action)
    except ValueError as exc:
        raise HTTPException(status_code=422, detail=str(exc))
    state = get_state()
    now = _now()
    try:
        outcome = state.review(card_id, review_action, now=now)
    except UnknownCardError:
        raise HTTPException(status_code=404, detail="Card not found")
    background_tasks.add_task(state.sync, outcome)
    upcoming = state.next_card(now=now, category_id=category_id, exclude_id=card_id)
    return _outcome_json(outcome, state, upcoming)


@router.post("/practice/{card_id}/leech/{action}")
async def resolve_leech(
    card_id: str,
    action: str,
    background_tasks: BackgroundTasks,
    category_id: str | None = Query(None),
) -> dict[str, Any]:
    try:
        leech_action = ensure_leech_action(action)
    except ValueError as exc:
        raise HTTPException(status_code=422, detail=str(exc))
    state = get_state()
    now = _now()
    try:
        outcome = state.remediate(card_id, leech_action, now=now)
    except UnknownCardError:
        raise HTTPException(status_code=404, detail="Card not found")
    except NotALeechError as exc:
        raise HTTPException(status_code=409, detail=str(exc))
    background_tasks.add_task(state.sync, outcome)
    upcoming = state.next_card(now=now, category_id=category_id, exclude_id=card_id)
    return _outcome_json(outcome, state, upcoming)


@router.get("/stats")
async def stats() -> dict[str, Any]:
    state = get_state()
    return asdict(state.summary(_now()))


@router.get("/notices")
async def notices() -> dict[str, Any]:
    """Pending sync failures; reading them clears the list."""
    state = get_state()
    return {
        "notices": [
            {"card_id": notice.card_id, "message": notice.message, "created_at": _iso(notice.created_at)}
            for notice in state.drain_notices()
        ]
    }
