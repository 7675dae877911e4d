"""Tests du stockage des lots."""

from pathlib import Path

import pytest

from reconcord.batch import Batch
from reconcord.config import Config
from reconcord.errors import NotFoundError
from reconcord.manager import BatchManager
from reconcord.records import Dataset
from reconcord.rules import RuleSet
from reconcord.store import JsonBatchStore, MemoryBatchStore


def _make_batch(store, name: str = "Lot") -> Batch:
    rules = RuleSet()
    rules.create({"rule_name": "email_exact", "source_field": "email", "target_field": "email"})
    manager = BatchManager(Config(), rules, store)
    source = Dataset.from_records([{"email": "a@x.com", "n": 1}, {"email": "z@x.com", "n": 2}])
    target = Dataset.from_records([{"email": "a@x.com"}, {"email": "a@x.com"}, {"email": "b@x.com"}])
    return manager.run_datasets(name, source, target)


def test_memory_store_round_trip() -> None:
    store = MemoryBatchStore()
    batch = _make_batch(store)
    stored = store.get(batch.batch_id)
    assert stored is not batch
    assert stored.to_dict() == batch.to_dict()
    with pytest.raises(NotFoundError, match="introuvable"):
        store.get("absent")


def test_json_store_round_trip(tmp_path: Path) -> None:
    store = JsonBatchStore(tmp_path / "batches")
    batch = _make_batch(store)

    reloaded = JsonBatchStore(tmp_path / "batches").get(batch.batch_id)
    assert reloaded.to_dict() == batch.to_dict()
    assert reloaded.result.results_payload() == batch.result.results_payload()
    assert reloaded.suspected[0].reason == "tie"


def test_json_store_no_temp_files_left(tmp_path: Path) -> None:
    store = JsonBatchStore(tmp_path)
    batch = _make_batch(store)
    assert [p.name for p in tmp_path.iterdir()] == [f"{batch.batch_id}.json"]


def test_json_store_list_newest_first(tmp_path: Path) -> None:
    store = JsonBatchStore(tmp_path)
    first = _make_batch(store, "A")
    second = _make_batch(store, "B")
    listed = [b.batch_id for b in store.list()]
    assert set(listed) == {first.batch_id, second.batch_id}
    created = [b.created_at for b in store.list()]
    assert created == sorted(created, reverse=True)


@pytest.mark.parametrize("batch_id", ["absent", "../etc/passwd", "", ".hidden"])
def test_json_store_unknown_id(tmp_path: Path, batch_id: str) -> None:
    store = JsonBatchStore(tmp_path)
    with pytest.raises(NotFoundError):
        store.get(batch_id)


def test_memory_store_returns_independent_copies() -> None:
    store = MemoryBatchStore()
    batch = _make_batch(store)
    store.get(batch.batch_id).suspected[0].source_record["email"] = "TAMPERED"
    assert store.get(batch.batch_id).suspected[0].source_record["email"] == "a@x.com"
