"""Tests for fluxdrop.core.records — the generation record store.

All tests run against a temporary SQLite file.
"""

from __future__ import annotations

import pytest

from fluxdrop.core.errors import PersistenceError
from fluxdrop.core.records import GenerationRecord, RecordStore, dispose_record_stores, get_record_store


def _add(store: RecordStore, prompt: str = "a red cube", url: str = "https://i.ibb.co/xyz.png") -> int:
    return store.add(prompt=prompt, width=512, height=512, steps=4, n=1, image_url=url)


class TestAdd:
    """Test RecordStore.add."""

    def test_returns_generated_id(self, record_store: RecordStore):
        record_id = _add(record_store)
        assert isinstance(record_id, int)
        assert record_id >= 1

    def test_ids_increase(self, record_store: RecordStore):
        first = _add(record_store)
        second = _add(record_store)
        assert second > first

    def test_stores_every_field(self, record_store: RecordStore):
        record_id = _add(record_store, prompt="a blue sphere", url="https://i.ibb.co/abc.png")
        [row] = record_store.list_recent()
        assert row["id"] == record_id
        assert row["prompt"] == "a blue sphere"
        assert (row["width"], row["height"], row["steps"], row["n"]) == (512, 512, 4, 1)
        assert row["image_url"] == "https://i.ibb.co/abc.png"
        assert row["created_at"] is not None

    def test_missing_image_url_raises_persistence_error(self, record_store: RecordStore):
        """A NOT NULL violation surfaces as PersistenceError and writes nothing."""
        with pytest.raises(PersistenceError):
            record_store.add(prompt="p", width=1, height=1, steps=1, n=1, image_url=None)
        assert record_store.count() == 0

    def test_table_created_lazily(self, sqlite_url: str):
        """Constructing a store does not touch the database."""
        store = RecordStore(sqlite_url)
        try:
            assert store._schema_ready is False
            _add(store)
            assert store._schema_ready is True
        finally:
            store.dispose()


class TestListing:
    """Test RecordStore.count and RecordStore.list_recent."""

    def test_empty_store(self, record_store: RecordStore):
        assert record_store.count() == 0
        assert record_store.list_recent() == []

    def test_newest_first_with_paging(self, record_store: RecordStore):
        ids = [_add(record_store, prompt=f"prompt {i}") for i in range(5)]

        assert record_store.count() == 5
        page = record_store.list_recent(offset=0, limit=2)
        assert [row["id"] for row in page] == [ids[4], ids[3]]
        page = record_store.list_recent(offset=4, limit=2)
        assert [row["id"] for row in page] == [ids[0]]


class TestEngineErrors:
    """Verify construction failures become PersistenceError."""

    def test_malformed_url(self):
        with pytest.raises(PersistenceError):
            RecordStore("not a database url")

    def test_unreachable_database(self, tmp_path):
        """A SQLite path inside a missing directory cannot be opened."""
        store = RecordStore(f"sqlite:///{tmp_path / 'missing' / 'dir' / 'x.db'}")
        with pytest.raises(PersistenceError):
            _add(store)


class TestSharedStore:
    def test_same_url_returns_same_store(self, sqlite_url: str):
        try:
            assert get_record_store(sqlite_url) is get_record_store(sqlite_url)
        finally:
            dispose_record_stores()

    def test_dispose_forgets_shared_stores(self, sqlite_url: str):
        """After shutdown cleanup the next lookup builds a fresh store."""
        first = get_record_store(sqlite_url)
        _add(first)
        dispose_record_stores()

        second = get_record_store(sqlite_url)
        try:
            assert second is not first
            assert second.count() == 1
        finally:
            dispose_record_stores()

    def test_dispose_without_stores_is_a_no_op(self):
        dispose_record_stores()

    def test_table_name(self):
        assert GenerationRecord.__tablename__ == "generations"
