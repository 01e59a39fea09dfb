from __future__ import annotations

import logging
import re
from contextlib import asynccontextmanager
from dataclasses import asdict
from datetime import datetime, timezone
from typing import Any

from fastapi import BackgroundTasks, FastAPI, HTTPException, status
from pydantic import BaseModel

from .db import init_db
from .models import Category
from .practice import UnknownCategoryError, get_state, reset_state
from .practice_routes import card_json
from .practice_routes import router as practice_router


@asynccontextmanager
async def lifespan(_: FastAPI):
    init_db()
    get_state()
    yield


app = FastAPI(title="Phrase Trainer", lifespan=lifespan)
app.include_router(practice_router)


class CardCreate(BaseModel):
    learning: str
    native: str
    category_id: str


class CategoryCreate(BaseModel):
    name: str
    is_foundational: bool = False
    id: str | None = None


class CategoryEnabled(BaseModel):
    enabled: bool


def _slugify(name: str) -> str:
    return re.sub(r"[^a-z0-9]+", "-", name.strip().lower()).strip("-")


@app.get("/cards")
async def list_cards() -> dict[str, Any]:
    state = get_state()
    cards = sorted(state.cards.values(), key=lambda card: card.id)
    return {"cards": [card_json(card, state) for card in cards]}


@app.post("/cards", status_code=status.HTTP_201_CREATED)
async def create_card(payload: CardCreate, background_tasks: BackgroundTasks) -> dict[str, Any]:
    state = get_state()
    try:
        card = state.add_card(
            payload.learning,
            payload.native,
            payload.category_id,
            now=datetime.now(timezone.utc),
        )
    except UnknownCategoryError:
        raise HTTPException(status_code=404, detail="Category not found")
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    background_tasks.add_task(state.sync_card, card)
    return {"card": card_json(card, state)}


@app.get("/categories")
async def list_categories() -> dict[str, Any]:
    state = get_state()
    categories = sorted(state.categories.values(), key=lambda category: category.name)
    return {"categories": [asdict(category) for category in categories]}


@app.post("/categories", status_code=status.HTTP_201_CREATED)
async def create_category(payload: CategoryCreate, background_tasks: BackgroundTasks) -> dict[str, Any]:
    state = get_state()
    name = payload.name.strip()
    category_id = payload.id or _slugify(name)
    if not name or not category_id:
        raise HTTPException(status_code=400, detail="Category name is required")
    if category_id in state.categories:
        raise HTTPException(status_code=409, detail="Category already exists")
    category = state.add_category(
        Category(id=category_id, name=name, is_foundational=payload.is_foundational)
    )
    background_tasks.add_task(state.sync_category, category)
    return {"category": asdict(category)}


@app.put("/categories/{category_id}/enabled")
async def set_category_enabled(
    category_id: str,
    payload: CategoryEnabled,
    background_tasks: BackgroundTasks,
) -> dict[str, Any]:
    state = get_state()
    try:
        category = state.set_category_enabled(category_id, payload.enabled)
    except UnknownCategoryError:
        raise HTTPException(status_code=404, detail="Category not found")
    background_tasks.add_task(state.sync_category, category)
    return {"category": asdict(category)}


def main() -> None:
    import uvicorn

    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    uvicorn.run("phrase_trainer.app:app", host="127.0.0.1", port=8000, reload=True)


__all__ = ["app", "lifespan", "main", "reset_state"]


if __name__ == "__main__":
    main()
