# tests/test_sync_scheduler.py

from __future__ import annotations

import asyncio
from dataclasses import replace

import pytest

from tasktree.tasks.serialization import dump_tasks, load_tasks
from tasktree.tasks.sync_scheduler import SyncScheduler, SyncState, cache_key
from tasktree.tasks.task_models import Collection, Task, TaskBoard

from .conftest import DEBOUNCE
from .fakes import FakeBoardView, FakeRemoteStore, MemoryCache

WAIT = DEBOUNCE * 3


def _setup(*active: Task, completed: tuple[Task, ...] = ()) -> tuple[SyncScheduler, FakeRemoteStore, FakeBoardView, MemoryCache]:
    remote = FakeRemoteStore()
    cache = MemoryCache()
    view = FakeBoardView(user_id="alice", tasks={Collection.ACTIVE: list(active), Collection.COMPLETED: list(completed)})
    return SyncScheduler(remote, cache, view, debounce_seconds=DEBOUNCE), remote, view, cache


async def _settle(scheduler: SyncScheduler) -> None:
    await asyncio.sleep(WAIT)
    await scheduler.drain()


@pytest.mark.asyncio
async def test_two_edits_in_window_produce_one_update() -> None:
    scheduler, remote, view, _ = _setup()
    doc = remote.seed("alice", Collection.ACTIVE, Task(id=1, text="a"))
    view.tasks[Collection.ACTIVE] = [Task(id=1, text="a1", remote_id=doc)]
    scheduler.schedule_flush("alice", Collection.ACTIVE)

    view.tasks[Collection.ACTIVE] = [Task(id=1, text="a2", remote_id=doc)]
    scheduler.schedule_flush("alice", Collection.ACTIVE)
    assert scheduler.state(Collection.ACTIVE) is SyncState.PENDING_WRITE

    await _settle(scheduler)

    updates = remote.ops("update")
    assert len(updates) == 1
    assert updates[0].task.text == "a2"
    assert scheduler.state(Collection.ACTIVE) is SyncState.IDLE


@pytest.mark.asyncio
async def test_at_most_one_flush_in_flight_per_collection() -> None:
    scheduler, remote, view, _ = _setup()
    doc = remote.seed("alice", Collection.ACTIVE, Task(id=1, text="a"))
    view.tasks[Collection.ACTIVE] = [Task(id=1, text="a1", remote_id=doc)]
    remote.gate = asyncio.Event()

    scheduler.schedule_flush("alice", Collection.ACTIVE)
    await asyncio.sleep(WAIT)
    assert scheduler.state(Collection.ACTIVE) is SyncState.FLUSHING

    view.tasks[Collection.ACTIVE] = [Task(id=1, text="a2", remote_id=doc)]
    scheduler.schedule_flush("alice", Collection.ACTIVE)
    await asyncio.sleep(WAIT)
    # The second timer fired while the first flush was blocked: it must wait.
    assert remote.in_flight == 1

    remote.gate.set()
    await scheduler.drain()

    assert remote.max_in_flight == 1
    assert [c.task.text for c in remote.ops("update")] == ["a1", "a2"]
    assert remote.bucket("alice", Collection.ACTIVE)[doc].text == "a2"


@pytest.mark.asyncio
async def test_failed_flush_keeps_local_state_and_retries_latest_snapshot() -> None:
    scheduler, remote, view, _ = _setup(Task(id=1, text="a"))
    remote.fail_next = 1

    scheduler.schedule_flush("alice", Collection.ACTIVE)
    await _settle(scheduler)

    assert scheduler.last_error(Collection.ACTIVE) is not None
    assert view.tasks[Collection.ACTIVE] == [Task(id=1, text="a")]
    assert remote.bucket("alice", Collection.ACTIVE) == {}

    view.tasks[Collection.ACTIVE] = [Task(id=1, text="a edited")]
    scheduler.retry_failed("alice")
    await _settle(scheduler)

    assert scheduler.last_error(Collection.ACTIVE) is None
    (stored,) = remote.bucket("alice", Collection.ACTIVE).values()
    assert stored.text == "a edited"


@pytest.mark.asyncio
async def test_create_attaches_remote_id() -> None:
    scheduler, remote, view, _ = _setup(Task(id=1, text="a"))
    scheduler.schedule_flush("alice", Collection.ACTIVE)
    await _settle(scheduler)

    (create,) = remote.ops("create")
    assert create.task.id == 1
    (attached,) = view.attached
    assert attached[:3] == ("alice", Collection.ACTIVE, 1)
    assert view.tasks[Collection.ACTIVE][0].remote_id == attached[3]


@pytest.mark.asyncio
async def test_update_of_vanished_document_is_treated_as_success() -> None:
    scheduler, remote, _, _ = _setup(Task(id=1, text="a", remote_id="gone"))
    scheduler.schedule_flush("alice", Collection.ACTIVE)
    await _settle(scheduler)

    assert len(remote.ops("update")) == 1
    assert remote.ops("create") == []
    assert scheduler.last_error(Collection.ACTIVE) is None


@pytest.mark.asyncio
async def test_request_move_moves_document_and_attaches_new_id() -> None:
    scheduler, remote, view, _ = _setup()
    doc = remote.seed("alice", Collection.ACTIVE, Task(id=1, text="a"))
    view.tasks[Collection.COMPLETED] = [Task(id=1, text="a", completed=True, remote_id=doc)]

    scheduler.request_move("alice", 1, Collection.ACTIVE)
    await scheduler.drain()

    (move,) = remote.ops("move")
    assert move.collection is Collection.ACTIVE
    assert remote.bucket("alice", Collection.ACTIVE) == {}
    (new_doc,) = remote.bucket("alice", Collection.COMPLETED)
    assert view.tasks[Collection.COMPLETED][0].remote_id == new_doc
    assert view.rejected == []
    assert remote.ops("create") == [] and remote.ops("delete") == []


@pytest.mark.asyncio
async def test_failed_move_is_retried_by_next_flush_of_destination() -> None:
    scheduler, remote, view, _ = _setup()
    doc = remote.seed("alice", Collection.ACTIVE, Task(id=1, text="a"))
    view.tasks[Collection.COMPLETED] = [Task(id=1, text="a", completed=True, remote_id=doc)]
    remote.fail_next = 1

    scheduler.request_move("alice", 1, Collection.ACTIVE)
    await scheduler.drain()
    assert scheduler.last_error(Collection.COMPLETED) is not None

    scheduler.retry_failed("alice")
    await _settle(scheduler)

    assert len(remote.ops("move")) == 2
    assert remote.bucket("alice", Collection.ACTIVE) == {}
    (new_doc,) = remote.bucket("alice", Collection.COMPLETED)
    assert view.tasks[Collection.COMPLETED][0].remote_id == new_doc
    assert view.rejected == []


@pytest.mark.asyncio
async def test_cancel_pending_drops_timers_for_previous_user() -> None:
    scheduler, remote, _, _ = _setup(Task(id=1, text="a"))
    scheduler.schedule_flush("alice", Collection.ACTIVE)
    scheduler.cancel_pending()
    await _settle(scheduler)
    assert remote.calls == []


@pytest.mark.asyncio
async def test_flush_for_signed_out_user_is_skipped() -> None:
    scheduler, remote, view, _ = _setup(Task(id=1, text="a"))
    view.user_id = "bob"
    scheduler.schedule_flush("alice", Collection.ACTIVE)
    await _settle(scheduler)
    assert remote.calls == []


@pytest.mark.asyncio
async def test_delete_falls_back_to_other_collection() -> None:
    scheduler, remote, _, _ = _setup()
    doc = remote.seed("alice", Collection.COMPLETED, Task(id=1, text="a"))

    scheduler.request_delete("alice", Collection.ACTIVE, doc)
    await scheduler.drain()

    assert [c.collection for c in remote.ops("delete")] == [Collection.ACTIVE, Collection.COMPLETED]
    assert remote.bucket("alice", Collection.COMPLETED) == {}


@pytest.mark.asyncio
async def test_flush_pending_runs_armed_timers_now() -> None:
    scheduler, remote, _, _ = _setup(Task(id=1, text="a"))
    scheduler.schedule_flush("alice", Collection.ACTIVE)
    await scheduler.flush_pending()
    assert len(remote.ops("create")) == 1
    assert scheduler.busy is False


def test_persist_local_writes_every_collection() -> None:
    scheduler, _, _, cache = _setup()
    board = TaskBoard(active=(Task(id=1, text="a"),), completed=(Task(id=2, text="b", completed=True),))
    scheduler.persist_local("alice", board)

    assert load_tasks(cache.data[cache_key("alice", Collection.ACTIVE)]) == [board.active[0]]
    assert load_tasks(cache.data[cache_key("alice", Collection.COMPLETED)]) == [board.completed[0]]


def test_patch_local_remote_id_only_fills_missing_ids() -> None:
    scheduler, _, _, cache = _setup()
    key = cache_key("alice", Collection.ACTIVE)
    cache.data[key] = dump_tasks([Task(id=1, text="a"), Task(id=2, text="b", remote_id="keep")])

    scheduler.patch_local_remote_id("alice", Collection.ACTIVE, 1, "doc-9")
    scheduler.patch_local_remote_id("alice", Collection.ACTIVE, 2, "other")

    assert [t.remote_id for t in load_tasks(cache.data[key])] == ["doc-9", "keep"]
    assert replace(load_tasks(cache.data[key])[0], remote_id="") == Task(id=1, text="a")


def test_patch_local_remote_id_replaces_id_left_by_a_move() -> None:
    scheduler, _, _, cache = _setup()
    key = cache_key("alice", Collection.COMPLETED)
    cache.data[key] = dump_tasks([Task(id=1, text="a", completed=True, remote_id="old")])

    scheduler.patch_local_remote_id("alice", Collection.COMPLETED, 1, "stray")
    assert load_tasks(cache.data[key])[0].remote_id == "old"

    scheduler.patch_local_remote_id("alice", Collection.COMPLETED, 1, "new", replaces="old")
    assert load_tasks(cache.data[key])[0].remote_id == "new"
