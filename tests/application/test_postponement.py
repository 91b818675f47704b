"""Tests for the postponed set and its JSON store."""

from datetime import date
from unittest.mock import MagicMock

from wsr.application.postponement import PostponementSet
from wsr.infrastructure.adapters.postponement_store import JsonPostponementStore

TODAY = date(2026, 10, 16)
YESTERDAY = date(2026, 10, 15)


def test_membership():
    postponed = PostponementSet()
    postponed.add("a")
    postponed.add("a")
    postponed.add("b")

    assert postponed.contains("a")
    assert "b" in postponed
    assert len(postponed) == 2
    assert list(postponed) == ["a", "b"]

    postponed.remove("a")
    postponed.remove("missing")
    assert not postponed.contains("a")

    postponed.clear()
    assert len(postponed) == 0


def test_load_same_day_keeps_ids():
    store = MagicMock()
    store.load.return_value = ({"a", "b"}, TODAY)
    assert set(PostponementSet.load(store, TODAY)) == {"a", "b"}


def test_load_new_day_clears():
    store = MagicMock()
    store.load.return_value = ({"a"}, YESTERDAY)
    assert len(PostponementSet.load(store, TODAY)) == 0


def test_load_new_day_without_clear_policy_keeps_ids():
    store = MagicMock()
    store.load.return_value = ({"a"}, YESTERDAY)
    assert set(PostponementSet.load(store, TODAY, clear_on_new_day=False)) == {"a"}


def test_save_writes_ids_and_day():
    store = MagicMock()
    PostponementSet(["x", "y"]).save(store, TODAY)
    store.save.assert_called_once_with({"x", "y"}, TODAY)


# --- JSON store ---


def test_json_store_round_trip(tmp_path):
    store = JsonPostponementStore(tmp_path / "state" / "postponed.json")
    assert store.load() == (set(), None)

    store.save({"notes/a", "notes/b"}, TODAY)

    assert store.load() == ({"notes/a", "notes/b"}, TODAY)


def test_json_store_ignores_corrupt_file(tmp_path):
    path = tmp_path / "postponed.json"
    path.write_text("{not json", encoding="utf-8")
    assert JsonPostponementStore(path).load() == (set(), None)
