"""Tests for :mod:`groovetask.data.tasks`."""

import asyncio
import json
from typing import Any

import pytest

from groovetask.adapters.memory import MemoryBackend
from groovetask.core.models import Task
from groovetask.data.tasks import TaskCollectionStore
from groovetask.errors import InvalidInput


def run(coro: Any) -> Any:
    """Run an async coroutine synchronously for tests."""
    return asyncio.run(coro)


def make_store() -> tuple[TaskCollectionStore, MemoryBackend]:
    backend = MemoryBackend()
    return TaskCollectionStore(backend), backend


def task(task_id: str, created_at: int = 0, **kwargs: Any) -> Task:
    return Task(id=task_id, title=task_id, created_at=created_at, **kwargs)


def ids(tasks: list[Task]) -> list[str]:
    return [t.id for t in tasks]


def test_orphans_follow_the_order_list() -> None:
    store, _ = make_store()
    run(store.save_tasks("u1", [task("A", 1), task("B", 2), task("C", 3)]))
    run(store.save_order("u1", ["C", "A"]))
    assert ids(run(store.get_tasks("u1"))) == ["C", "A", "B"]


def test_missing_collection_reads_empty() -> None:
    store, _ = make_store()
    assert run(store.get_tasks("nobody")) == []


def test_save_replaces_collection_and_deletes_stale_ids() -> None:
    store, backend = make_store()
    run(store.save_tasks("u1", [task("A", 1), task("B", 2)]))
    run(store.save_tasks("u1", [task("B", 2, is_completed=True), task("C", 3)]))

    assert set(run(backend.hkeys("data:tasks:u1"))) == {"B", "C"}
    tasks = run(store.get_tasks("u1"))
    assert ids(tasks) == ["B", "C"]
    assert tasks[0].is_completed


def test_known_ids_protect_tasks_added_elsewhere() -> None:
    store, _ = make_store()
    run(store.save_tasks("group:g1", [task("A", 1), task("B", 2)]))
    # another member adds C after this client last read [A, B]
    run(store.put_task("group:g1", task("C", 3)))

    run(store.save_tasks("group:g1", [task("A", 1)], known_ids=["A", "B"]))
    assert ids(run(store.get_tasks("group:g1"))) == ["A", "C"]


def test_forced_empty_save_keeps_tasks_added_elsewhere() -> None:
    store, backend = make_store()
    run(store.save_tasks("u1", [task("A", 1)]))
    run(store.save_order("u1", ["A"]))
    # a second device adds B before the first deletes its last task
    run(store.put_task("u1", task("B", 2)))

    run(store.save_tasks("u1", [], force_empty=True, known_ids=["A"]))
    assert ids(run(store.get_tasks("u1"))) == ["B"]
    assert "data:tasks:order:u1" in backend.data

    run(store.save_tasks("u1", [], force_empty=True, known_ids=["B"]))
    assert run(store.get_tasks("u1")) == []
    assert "data:tasks:u1" not in backend.data
    assert "data:tasks:order:u1" not in backend.data


def test_empty_save_without_force_is_ignored(caplog: pytest.LogCaptureFixture) -> None:
    store, backend = make_store()
    run(store.save_tasks("u1", [task("A", 1)]))
    run(store.save_order("u1", ["A"]))
    before = dict(backend.data)

    with caplog.at_level("WARNING", logger="groovetask.tasks"):
        run(store.save_tasks("u1", []))

    assert backend.data == before
    assert "[Data Safety]" in caplog.text


def test_force_empty_clears_collection() -> None:
    store, backend = make_store()
    run(store.save_tasks("u1", [task("A", 1)]))
    run(store.save_order("u1", ["A"]))

    run(store.save_tasks("u1", [], force_empty=True))
    assert run(store.get_tasks("u1")) == []
    assert "data:tasks:u1" not in backend.data
    assert "data:tasks:order:u1" not in backend.data

    # a stale client syncing an empty list afterwards changes nothing
    run(store.save_tasks("u1", []))
    assert run(store.get_tasks("u1")) == []


def test_legacy_blob_is_migrated_once(caplog: pytest.LogCaptureFixture) -> None:
    store, backend = make_store()
    backend.data["data:tasks:u1"] = json.dumps(
        [
            {"id": "t1", "title": "Old", "isCompleted": False, "createdAt": 1},
            {"id": "t2", "title": "Older", "lastCompletedDate": "2024-01-01", "createdAt": 2},
        ]
    )

    with caplog.at_level("INFO", logger="groovetask.tasks"):
        first = run(store.get_tasks("u1"))
        second = run(store.get_tasks("u1"))

    assert ids(first) == ids(second) == ["t1", "t2"]
    assert run(backend.type("data:tasks:u1")) == "hash"
    assert caplog.text.count("Migrated") == 1
    assert second[1].completed_at is not None


def test_put_and_delete_migrate_legacy_first() -> None:
    store, backend = make_store()
    backend.data["data:tasks:u1"] = json.dumps([{"id": "t1", "title": "Old", "createdAt": 1}])

    run(store.put_task("u1", task("t2", 2)))
    assert ids(run(store.get_tasks("u1"))) == ["t1", "t2"]

    assert run(store.delete_task("u1", "t1")) is True
    assert run(store.delete_task("u1", "t1")) is False
    assert ids(run(store.get_tasks("u1"))) == ["t2"]


def test_save_over_legacy_blob() -> None:
    store, backend = make_store()
    backend.data["data:tasks:u1"] = json.dumps([{"id": "t1", "title": "Old"}])
    run(store.save_tasks("u1", [task("N", 1)]))
    assert run(backend.type("data:tasks:u1")) == "hash"
    assert ids(run(store.get_tasks("u1"))) == ["N"]


def test_unreadable_entries_are_skipped() -> None:
    store, backend = make_store()
    run(store.save_tasks("u1", [task("A", 1)]))
    backend.data["data:tasks:u1"]["broken"] = "{not json"
    backend.data["data:tasks:order:u1"] = "also not json"
    assert ids(run(store.get_tasks("u1"))) == ["A"]


def test_order_must_be_ids() -> None:
    store, _ = make_store()
    with pytest.raises(InvalidInput):
        run(store.save_order("u1", ["A", 3]))  # type: ignore[list-item]


def test_counter_round_trip_keeps_log() -> None:
    store, _ = make_store()
    counter = Task.model_validate(
        {"id": "c", "type": "counter", "title": "Water", "log": [{"id": "e1", "timestamp": 5}]}
    )
    run(store.put_task("u1", counter))
    (stored,) = run(store.get_tasks("u1"))
    assert stored.kind == "counter"
    assert stored.count == 1 and stored.log[0].id == "e1"
