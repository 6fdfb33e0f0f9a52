# src/tasktree/tasks/task_session.py

from __future__ import annotations

"""
Task session: the owner of the in-memory Canonical Store for one signed-in user.

Every command runs a cascade-engine function to completion, swaps the board, and
hands the change to the SyncScheduler (local cache now, remote later). Callers get a
bool back: True if anything changed. Remote failures never surface here.
"""

import asyncio
import logging
from collections.abc import Sequence
from dataclasses import replace
from datetime import datetime

from ..core.errors import CacheCorrupt, RemoteError, ValidationNoop
from ..core.ports import LocalCache, RemoteTaskStore
from . import cascade
from .ordering import DragController, DropTarget, apply_order
from .reconcile import reconcile_boards
from .serialization import load_tasks
from .sync_scheduler import SyncScheduler, cache_key
from .task_models import Collection, Task, TaskBoard, mint_task_id

logger = logging.getLogger(__name__)


class TaskSession:
    def __init__(
        self,
        remote: RemoteTaskStore,
        cache: LocalCache,
        *,
        debounce_seconds: float = 2.0,
        transition_delay_seconds: float = 0.5,
        strict: bool = False,
    ) -> None:
        self._remote = remote
        self._cache = cache
        self._scheduler = SyncScheduler(remote, cache, self, debounce_seconds=debounce_seconds)
        self._transition_delay = max(0.0, float(transition_delay_seconds))
        self._strict = strict

        self._board = TaskBoard()
        self._user_id: str | None = None
        self._loaded = False
        self._online = True
        self._drag = DragController()
        self._archive_timers: dict[int, asyncio.TimerHandle] = {}

    # ---- read-only projection ----

    @property
    def board(self) -> TaskBoard:
        return self._board

    @property
    def active_tasks(self) -> tuple[Task, ...]:
        return self._board.active

    @property
    def completed_tasks(self) -> tuple[Task, ...]:
        return self._board.completed

    @property
    def user_id(self) -> str | None:
        return self._user_id

    @property
    def loaded(self) -> bool:
        return self._loaded

    @property
    def online(self) -> bool:
        return self._online

    @property
    def scheduler(self) -> SyncScheduler:
        return self._scheduler

    # ---- BoardView (used by the scheduler) ----

    def snapshot(self, user_id: str, collection: Collection) -> Sequence[Task] | None:
        if user_id != self._user_id:
            return None
        return self._board.tasks(collection)

    def find(self, user_id: str, task_id: int) -> tuple[Collection, Task] | None:
        if user_id != self._user_id:
            return None
        found = self._board.locate(task_id)
        if found is None:
            return None
        return found[0], found[2]

    def attach_remote_id(
        self,
        user_id: str,
        collection: Collection,
        task_id: int,
        remote_id: str,
        *,
        replaces: str | None = None,
    ) -> None:
        if user_id != self._user_id:
            # A flush for the previous user finished after a switch.
            self._scheduler.patch_local_remote_id(user_id, collection, task_id, remote_id, replaces=replaces)
            return

        found = self._board.locate(task_id)
        if found is None:
            logger.info("Task %s was deleted while being created remotely; removing document %s", task_id, remote_id)
            self._scheduler.request_delete(user_id, collection, remote_id)
            return

        where, index, task = found
        if task.remote_id and task.remote_id not in (remote_id, replaces):
            logger.warning("Task %s already has document %s; removing duplicate %s", task_id, task.remote_id, remote_id)
            self._scheduler.request_delete(user_id, collection, remote_id)
            return

        self._board = self._board.replace_task(where, index, replace(task, remote_id=remote_id))
        self._scheduler.persist_local(user_id, self._board, (where,))
        if where is not collection:
            self._scheduler.request_move(user_id, task_id, collection)

    # ---- user lifecycle ----

    async def sign_in(self, user_id: str) -> None:
        user_id = (user_id or "").strip()
        if not user_id:
            raise ValueError("user_id is required")
        if user_id == self._user_id and self._loaded:
            return

        self._reset()
        self._user_id = user_id
        logger.info("Signed in user=%s", user_id)
        await self._load(user_id)

    def sign_out(self) -> None:
        if self._user_id is not None:
            logger.info("Signed out user=%s", self._user_id)
        self._reset()
        self._user_id = None

    def _reset(self) -> None:
        self._scheduler.cancel_pending()
        for handle in self._archive_timers.values():
            handle.cancel()
        self._archive_timers.clear()
        self._drag.cancel()
        self._board = TaskBoard()
        self._loaded = False

    def _read_local(self, user_id: str) -> TaskBoard:
        parts: dict[Collection, tuple[Task, ...]] = {}
        for collection in Collection:
            key = cache_key(user_id, collection)
            raw = self._cache.load(key)
            if not raw:
                parts[collection] = ()
                continue
            try:
                parts[collection] = tuple(load_tasks(raw))
            except CacheCorrupt as e:
                logger.warning("Discarding corrupt local snapshot key=%s: %s", key, e)
                parts[collection] = ()
        return TaskBoard(active=parts[Collection.ACTIVE], completed=parts[Collection.COMPLETED])

    async def _read_remote(self, user_id: str) -> TaskBoard:
        parts: dict[Collection, tuple[Task, ...]] = {}
        for collection in Collection:
            try:
                parts[collection] = tuple(await self._remote.list(user_id, collection))
            except RemoteError as e:
                logger.warning("Remote list of %s failed user=%s: %s", collection.value, user_id, e)
                parts[collection] = ()
        return TaskBoard(active=parts[Collection.ACTIVE], completed=parts[Collection.COMPLETED])

    async def _load(self, user_id: str) -> None:
        local = self._read_local(user_id)
        remote = await self._read_remote(user_id)
        if user_id != self._user_id:
            logger.info("Dropping load result for user=%s: user switched", user_id)
            return

        # Oldest first: remote, then the local cache, then edits made while loading.
        result = reconcile_boards(remote, local, self._board)
        self._board = result.board
        self._loaded = True
        self._scheduler.persist_local(user_id, self._board)

        for collection, loser in result.discarded:
            self._settle_discarded(user_id, collection, loser)

        for collection in Collection:
            if any(not t.remote_id for t in self._board.tasks(collection)):
                self._scheduler.schedule_flush(user_id, collection)
        self._arm_archives()

        logger.info(
            "Loaded user=%s active=%d completed=%d",
            user_id,
            len(self._board.active),
            len(self._board.completed),
        )

    def _settle_discarded(self, user_id: str, collection: Collection, loser: Task) -> None:
        if not loser.remote_id:
            return
        found = self._board.locate(loser.id)
        if found is not None and found[2].remote_id == loser.remote_id:
            if found[0] is not collection:
                # Same document, listed in the wrong set: the next flush moves it.
                self._scheduler.note_remote_home(user_id, loser.id, collection)
            return
        self._scheduler.request_delete(user_id, collection, loser.remote_id)

    def set_online(self, online: bool) -> None:
        """Connectivity hint from the outside; never blocks local edits."""
        was_online, self._online = self._online, bool(online)
        if self._online and not was_online:
            logger.info("Back online")
            if self._user_id is not None:
                self._scheduler.retry_failed(self._user_id)
        elif was_online and not self._online:
            logger.info("Offline: edits are kept locally")

    async def close(self) -> None:
        """Apply pending archives, flush armed timers, and wait for remote work."""
        user_id = self._user_id
        for task_id, handle in list(self._archive_timers.items()):
            handle.cancel()
            if user_id is not None:
                self._archive(user_id, task_id)
        self._archive_timers.clear()
        await self._scheduler.flush_pending()

    # ---- commit plumbing ----

    def _missing(self, task_id: int, subtask_id: int | None = None) -> str | None:
        task = self._board.get(task_id)
        if task is None:
            return f"unknown task {task_id}"
        if subtask_id is not None and task.find_subtask(subtask_id) is None:
            return f"unknown subtask {subtask_id} in task {task_id}"
        return None

    def _apply(self, op: str, after: TaskBoard, problem: str | None = None) -> bool:
        before = self._board
        if after is before:
            if problem is not None:
                if self._strict:
                    raise ValidationNoop(f"{op}: {problem}")
                logger.debug("%s ignored: %s", op, problem)
            return False
        if after == before:
            return False
        self._commit(before, after)
        return True

    def _commit(self, before: TaskBoard, after: TaskBoard) -> None:
        self._board = after
        user_id = self._user_id
        if user_id is None:
            return

        self._scheduler.persist_local(user_id, after)

        dirty: set[Collection] = set()
        after_ids = after.ids()
        for collection in Collection:
            previous = {t.id: t for t in before.tasks(collection)}
            for task in after.tasks(collection):
                old = previous.get(task.id)
                if old is None:
                    located = before.locate(task.id)
                    if located is None or not located[2].remote_id:
                        # New task, or moved before it ever reached the remote store.
                        dirty.add(collection)
                    else:
                        self._scheduler.request_move(user_id, task.id, located[0])
                elif old != task:
                    dirty.add(collection)

            for task_id, old in previous.items():
                if task_id not in after_ids and old.remote_id:
                    self._scheduler.request_delete(user_id, collection, old.remote_id, task_id=task_id)

        for collection in dirty:
            self._scheduler.schedule_flush(user_id, collection)
        self._arm_archives()

    def _arm_archives(self) -> None:
        user_id = self._user_id
        waiting = set(cascade.pending_archive_ids(self._board))

        for task_id in list(self._archive_timers):
            if task_id not in waiting:
                self._archive_timers.pop(task_id).cancel()

        if user_id is None or not waiting:
            return
        loop = asyncio.get_running_loop()
        for task_id in waiting:
            if task_id not in self._archive_timers:
                self._archive_timers[task_id] = loop.call_later(
                    self._transition_delay, self._archive, user_id, task_id
                )

    def _archive(self, user_id: str, task_id: int) -> None:
        self._archive_timers.pop(task_id, None)
        if user_id != self._user_id:
            return
        self._apply("archive_task", cascade.archive_task(self._board, task_id))

    # ---- commands: tasks ----

    def add_task(self, text: str, *, due_date: datetime | None = None, notes: str | None = None) -> int | None:
        """Create a task at the end of the active list. Returns its id, or None for blank text."""
        task_id = mint_task_id(self._board)
        after = cascade.add_task(self._board, task_id, text, due_date=due_date, notes=notes)
        problem = None if (text or "").strip() else "blank task text"
        if not self._apply("add_task", after, problem):
            return None
        logger.debug("Task %s added", task_id)
        return task_id

    def toggle_task(self, task_id: int, *, now: datetime | None = None) -> bool:
        return self._apply("toggle_task", cascade.toggle_task(self._board, task_id, now=now), self._missing(task_id))

    def delete_task(self, task_id: int) -> bool:
        return self._apply("delete_task", cascade.delete_task(self._board, task_id), self._missing(task_id))

    def set_task_due_date(self, task_id: int, due_date: datetime | None) -> bool:
        return self._apply(
            "set_task_due_date",
            cascade.set_task_due_date(self._board, task_id, due_date),
            self._missing(task_id),
        )

    def toggle_expanded(self, task_id: int) -> bool:
        return self._apply("toggle_expanded", cascade.toggle_expanded(self._board, task_id), self._missing(task_id))

    def edit_details(
        self, task_id: int, *, title: str, notes: str | None, due_date: datetime | None
    ) -> bool:
        after = cascade.edit_details(self._board, task_id, title=title, notes=notes, due_date=due_date)
        return self._apply("edit_details", after, self._missing(task_id))

    def restore_task(self, task_id: int) -> bool:
        return self._apply("restore_task", cascade.restore_task(self._board, task_id), self._missing(task_id))

    # ---- commands: subtasks ----

    def add_subtask(self, task_id: int, text: str) -> int | None:
        """Append a subtask; returns its id, or None if nothing was added."""
        after = cascade.add_subtask(self._board, task_id, text)
        problem = self._missing(task_id) or (None if (text or "").strip() else "blank subtask text")
        if not self._apply("add_subtask", after, problem):
            return None
        task = self._board.get(task_id)
        return task.subtasks[-1].id if task and task.subtasks else None

    def toggle_subtask(self, task_id: int, subtask_id: int, *, now: datetime | None = None) -> bool:
        after = cascade.toggle_subtask(self._board, task_id, subtask_id, now=now)
        return self._apply("toggle_subtask", after, self._missing(task_id, subtask_id))

    def delete_subtask(self, task_id: int, subtask_id: int) -> bool:
        after = cascade.delete_subtask(self._board, task_id, subtask_id)
        return self._apply("delete_subtask", after, self._missing(task_id, subtask_id))

    def set_subtask_due_date(self, task_id: int, subtask_id: int, due_date: datetime | None) -> bool:
        after = cascade.set_subtask_due_date(self._board, task_id, subtask_id, due_date)
        return self._apply("set_subtask_due_date", after, self._missing(task_id, subtask_id))

    def edit_subtask_details(
        self,
        task_id: int,
        subtask_id: int,
        *,
        title: str,
        notes: str | None,
        due_date: datetime | None,
    ) -> bool:
        after = cascade.edit_subtask_details(
            self._board, task_id, subtask_id, title=title, notes=notes, due_date=due_date
        )
        return self._apply("edit_subtask_details", after, self._missing(task_id, subtask_id))

    def restore_subtask(self, task_id: int, subtask_id: int) -> bool:
        after = cascade.restore_subtask(self._board, task_id, subtask_id)
        return self._apply("restore_subtask", after, self._missing(task_id, subtask_id))

    def restore_subtask_from_completed_task(self, task_id: int, subtask_id: int) -> bool:
        after = cascade.restore_subtask_from_completed_task(self._board, task_id, subtask_id)
        return self._apply("restore_subtask_from_completed_task", after, self._missing(task_id, subtask_id))

    # ---- drag & drop ----

    @property
    def dragging(self) -> bool:
        return self._drag.dragging

    def begin_drag(self, task_id: int) -> bool:
        return self._drag.begin(task_id, self._board.active)

    def drag_over(self, target: DropTarget) -> tuple[Task, ...]:
        self._drag.over(target)
        return self.drag_preview()

    def drag_preview(self) -> tuple[Task, ...]:
        return self._drag.preview(self._board.active)

    def drop(self) -> bool:
        ordered = self._drag.drop(self._board.active)
        if ordered is None:
            return False
        return self._apply("drop", apply_order(self._board, ordered))

    def cancel_drag(self) -> None:
        self._drag.cancel()
