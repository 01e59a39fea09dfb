"""Tests for importer.py: YAML phrase files into the database."""

from __future__ import annotations

from dataclasses import replace
from datetime import datetime, timezone

import pytest

from phrase_trainer import db
from phrase_trainer.importer import (
    ImportFileError,
    import_phrase_file,
    main,
    parse_phrase_file,
    phrase_id,
)
from phrase_trainer.policy import DATA_DIR

NOW = datetime(2024, 3, 1, 12, 0, tzinfo=timezone.utc)

SAMPLE = """\
categories:
  - id: general
    name: General
  - id: pronouns
    name: Pronouns
    foundational: true
phrases:
  - category: general
    learning: Guten Tag
    native: Good day
  - category: pronouns
    learning: ich
    native: I
"""


@pytest.fixture(autouse=True)
def fresh_db(tmp_path):
    db_path = tmp_path / "test.db"
    db.DB_PATH = db_path
    yield
    if db_path.exists():
        db_path.unlink()


@pytest.fixture
def sample_file(tmp_path):
    path = tmp_path / "phrases.yaml"
    path.write_text(SAMPLE, encoding="utf-8")
    return path


class TestParse:
    def test_parses_categories_and_cards(self, sample_file):
        categories, cards = parse_phrase_file(sample_file, now=NOW)

        assert [category.id for category in categories] == ["general", "pronouns"]
        assert categories[1].is_foundational is True
        assert [card.learning for card in cards] == ["Guten Tag", "ich"]
        assert all(card.is_new and card.next_review_at == NOW for card in cards)

    def test_ids_are_stable(self, sample_file):
        _, cards = parse_phrase_file(sample_file, now=NOW)

        assert cards[0].id == phrase_id("general", "Guten Tag")
        assert phrase_id("general", " guten tag ") == phrase_id("general", "Guten Tag")
        assert phrase_id("pronouns", "Guten Tag") != phrase_id("general", "Guten Tag")

    def test_unknown_category(self, tmp_path):
        path = tmp_path / "bad.yaml"
        path.write_text("categories: []\nphrases:\n  - {category: x, learning: a, native: b}\n", encoding="utf-8")

        with pytest.raises(ImportFileError):
            parse_phrase_file(path, now=NOW)

    def test_missing_native(self, tmp_path):
        path = tmp_path / "bad.yaml"
        path.write_text(
            "categories: [{id: general}]\nphrases:\n  - {category: general, learning: a}\n",
            encoding="utf-8",
        )

        with pytest.raises(ImportFileError):
            parse_phrase_file(path, now=NOW)

    def test_invalid_yaml(self, tmp_path):
        path = tmp_path / "bad.yaml"
        path.write_text("categories: [\n", encoding="utf-8")

        with pytest.raises(ImportFileError):
            parse_phrase_file(path, now=NOW)

    def test_shipped_phrase_file_parses(self):
        categories, cards = parse_phrase_file(DATA_DIR / "phrases.yaml", now=NOW)

        assert categories
        assert cards


class TestImport:
    def test_import_inserts_then_skips(self, sample_file):
        assert import_phrase_file(sample_file, now=NOW) == {"inserted": 2, "unchanged": 0}
        assert import_phrase_file(sample_file, now=NOW) == {"inserted": 0, "unchanged": 2}
        assert len(db.load_cards()) == 2

    def test_reimport_keeps_progress_and_enabled_flag(self, sample_file):
        import_phrase_file(sample_file, now=NOW)
        card = db.fetch_card(phrase_id("general", "Guten Tag"))
        db.save_card(replace(card, know_count=2, know_streak=1))
        db.save_category(replace(db.load_categories()["pronouns"], enabled=False))

        import_phrase_file(sample_file, now=NOW)

        assert db.fetch_card(card.id).know_count == 2
        assert db.load_categories()["pronouns"].enabled is False

    def test_cli(self, sample_file, tmp_path, capsys):
        main([str(sample_file), str(tmp_path / "missing.yaml")])

        out = capsys.readouterr().out
        assert "No such file" in out
        assert "inserted: 2" in out