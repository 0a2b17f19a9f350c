"""
Tests for the SQLite record store

Verifies the properties the lifecycle engine leans on:
- Records round-trip with id and version
- Optimistic locking via expected_version
- Transactions commit or roll back as a unit
- Unknown collections and duplicate ids are refused

Fun fact: SQLite is the most widely deployed database engine in the world -
it ships inside every smartphone, browser and most TVs.
"""

from concurrent.futures import ThreadPoolExecutor
from pathlib import Path

import pytest

from alicerce.kernel.errors import DuplicateRecord, RecordNotFound, StoreError, VersionConflict
from alicerce.kernel.store import SQLiteStore


def test_insert_and_get_record(store: SQLiteStore) -> None:
    """Inserted records come back with id and version 1"""
    store.insert("demands", {"id": "d-1", "title": "Papel A4", "status": "Rascunho"})

    record = store.get("demands", "d-1")

    assert record is not None
    assert record["id"] == "d-1"
    assert record["version"] == 1
    assert record["title"] == "Papel A4"


def test_get_missing_record_returns_none(store: SQLiteStore) -> None:
    assert store.get("demands", "missing") is None


def test_insert_duplicate_id_raises(store: SQLiteStore) -> None:
    store.insert("items", {"id": "i-1", "demand_id": "d-1"})

    with pytest.raises(DuplicateRecord):
        store.insert("items", {"id": "i-1", "demand_id": "d-1"})


def test_same_id_in_different_collections(store: SQLiteStore) -> None:
    """Ids are scoped per collection"""
    store.insert("items", {"id": "x", "kind": "item"})
    store.insert("questions", {"id": "x", "kind": "question"})

    assert store.get("items", "x")["kind"] == "item"
    assert store.get("questions", "x")["kind"] == "question"


def test_unknown_collection_rejected(store: SQLiteStore) -> None:
    with pytest.raises(StoreError, match="Unknown collection"):
        store.insert("tenders", {"id": "t-1"})


def test_record_without_id_rejected(store: SQLiteStore) -> None:
    with pytest.raises(StoreError, match="no id"):
        store.insert("demands", {"title": "no id"})


def test_list_filters_by_equality_in_insertion_order(store: SQLiteStore) -> None:
    store.insert("items", {"id": "i-1", "demand_id": "d-1"})
    store.insert("items", {"id": "i-2", "demand_id": "d-2"})
    store.insert("items", {"id": "i-3", "demand_id": "d-1"})

    records = store.list("items", {"demand_id": "d-1"})

    assert [r["id"] for r in records] == ["i-1", "i-3"]
    assert len(store.list("items")) == 3


def test_update_merges_patch_and_bumps_version(store: SQLiteStore) -> None:
    store.insert("demands", {"id": "d-1", "title": "Papel", "status": "Rascunho"})

    updated = store.update("demands", "d-1", {"status": "Em Cotação"}, expected_version=1)

    assert updated["version"] == 2
    assert updated["status"] == "Em Cotação"
    assert updated["title"] == "Papel"
    assert store.get("demands", "d-1")["version"] == 2


def test_update_with_stale_version_raises_conflict(store: SQLiteStore) -> None:
    """Optimistic locking: a writer holding an old version loses"""
    store.insert("demands", {"id": "d-1", "status": "Rascunho"})
    store.update("demands", "d-1", {"status": "Em Cotação"}, expected_version=1)

    with pytest.raises(VersionConflict) as exc_info:
        store.update("demands", "d-1", {"status": "Cancelada"}, expected_version=1)

    assert exc_info.value.expected_version == 1
    assert exc_info.value.actual_version == 2
    assert store.get("demands", "d-1")["status"] == "Em Cotação"


def test_update_without_expected_version_always_applies(store: SQLiteStore) -> None:
    store.insert("proposals", {"id": "d-1:s-1", "total_value": "10"})
    store.update("proposals", "d-1:s-1", {"total_value": "12"})

    assert store.get("proposals", "d-1:s-1")["total_value"] == "12"


def test_update_missing_record_raises(store: SQLiteStore) -> None:
    with pytest.raises(RecordNotFound):
        store.update("demands", "missing", {"status": "x"})


def test_delete_removes_record(store: SQLiteStore) -> None:
    store.insert("questions", {"id": "q-1"})
    store.delete("questions", "q-1")

    assert store.get("questions", "q-1") is None
    with pytest.raises(RecordNotFound):
        store.delete("questions", "q-1")


def test_transaction_commits_all_writes(store: SQLiteStore) -> None:
    with store.transaction() as tx:
        tx.insert("demands", {"id": "d-1", "status": "Rascunho"})
        tx.insert("items", {"id": "i-1", "demand_id": "d-1"})
        # Reads inside the transaction see its own writes
        assert tx.get("demands", "d-1") is not None

    assert store.get("demands", "d-1") is not None
    assert store.get("items", "i-1") is not None


def test_transaction_rolls_back_on_error(store: SQLiteStore) -> None:
    """A conflict halfway through leaves nothing behind"""
    store.insert("demands", {"id": "d-1", "status": "Rascunho"})

    with pytest.raises(VersionConflict):
        with store.transaction() as tx:
            tx.insert("items", {"id": "i-1", "demand_id": "d-1"})
            tx.update("demands", "d-1", {"status": "Em Cotação"}, expected_version=99)

    assert store.get("items", "i-1") is None
    assert store.get("demands", "d-1")["status"] == "Rascunho"


def test_count(store: SQLiteStore) -> None:
    store.insert("groups", {"id": "g-1", "name": "Papelaria"})
    store.insert("groups", {"id": "g-2", "name": "Limpeza"})

    assert store.count("groups") == 2
    assert store.count("suppliers") == 0


def test_data_survives_reopen(temp_db: Path) -> None:
    SQLiteStore(temp_db).insert("groups", {"id": "g-1", "name": "Papelaria"})

    reopened = SQLiteStore(temp_db)

    assert reopened.get("groups", "g-1")["name"] == "Papelaria"


def test_concurrent_updates_exactly_one_wins(store: SQLiteStore) -> None:
    """Racing writers with the same expected version: one succeeds, the rest conflict"""
    store.insert("demands", {"id": "d-1", "status": "Em Análise"})

    def attempt(n: int) -> str:
        try:
            store.update("demands", "d-1", {"winner": f"s-{n}"}, expected_version=1)
            return "ok"
        except VersionConflict:
            return "conflict"

    with ThreadPoolExecutor(max_workers=4) as pool:
        outcomes = list(pool.map(attempt, range(4)))

    assert outcomes.count("ok") == 1
    assert outcomes.count("conflict") == 3
    assert store.get("demands", "d-1")["version"] == 2
