# src/tasktree/tasks/sync_scheduler.py

from __future__ import annotations

"""
Sync scheduler.

Owns every write to the local cache and the remote store:
- local cache: full snapshot written synchronously on every mutation,
- remote store: one debounced flush slot per collection (timer restarted by each
  mutation, stale timer cancelled before the new one is armed),
- at most one flush in flight per collection; a timer that fires during a flush
  turns into a single follow-up flush,
- moves between collections go out as one remote move, not two flushes,
- remote failures are logged at this boundary and never reach callers.

State per collection: IDLE -> PENDING_WRITE -> FLUSHING -> IDLE.
"""

import asyncio
import logging
from collections.abc import Coroutine, Iterable
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any

from ..core.errors import CacheCorrupt, RemoteError, RemoteNotFound
from ..core.ports import BoardView, LocalCache, RemoteTaskStore
from .serialization import dump_tasks, load_tasks
from .task_models import Collection, TaskBoard

logger = logging.getLogger(__name__)


class SyncState(str, Enum):
    IDLE = "idle"
    PENDING_WRITE = "pending_write"
    FLUSHING = "flushing"


@dataclass(slots=True)
class _Channel:
    collection: Collection
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)
    timer: asyncio.TimerHandle | None = None
    timer_user: str | None = None
    flushing: bool = False
    rerun_user: str | None = None
    last_error: str | None = None


def cache_key(user_id: str, collection: Collection) -> str:
    return f"{user_id}:{collection.value}"


class SyncScheduler:
    """
    Debounced remote persistence for one session.

    All remote work runs on the event loop of the caller; schedule_* methods must be
    called from inside a running loop.
    """

    def __init__(
        self,
        remote: RemoteTaskStore,
        cache: LocalCache,
        view: BoardView,
        *,
        debounce_seconds: float = 2.0,
    ) -> None:
        self._remote = remote
        self._cache = cache
        self._view = view
        self._debounce = max(0.0, float(debounce_seconds))
        self._channels = {c: _Channel(c) for c in Collection}
        self._inflight: set[asyncio.Task[None]] = set()
        # (user_id, task_id) -> collection that still holds the task's remote document.
        self._homes: dict[tuple[str, int], Collection] = {}

    # ---- introspection ----

    def state(self, collection: Collection) -> SyncState:
        ch = self._channels[collection]
        if ch.flushing:
            return SyncState.FLUSHING
        if ch.timer is not None or ch.rerun_user is not None:
            return SyncState.PENDING_WRITE
        return SyncState.IDLE

    def last_error(self, collection: Collection) -> str | None:
        return self._channels[collection].last_error

    @property
    def busy(self) -> bool:
        return bool(self._inflight) or any(ch.timer is not None for ch in self._channels.values())

    # ---- local cache ----

    def persist_local(
        self, user_id: str, board: TaskBoard, collections: Iterable[Collection] = tuple(Collection)
    ) -> None:
        for collection in collections:
            key = cache_key(user_id, collection)
            try:
                self._cache.save(key, dump_tasks(board.tasks(collection)))
            except Exception:
                logger.exception("Local cache write failed key=%s", key)

    def patch_local_remote_id(
        self,
        user_id: str,
        collection: Collection,
        task_id: int,
        remote_id: str,
        *,
        replaces: str | None = None,
    ) -> None:
        """
        Record a remote id in a user's cached snapshot without loading the user.

        Only a missing id, or the `replaces` id left behind by a move, is overwritten.
        """
        key = cache_key(user_id, collection)
        try:
            raw = self._cache.load(key)
            if not raw:
                return
            tasks = load_tasks(raw)
        except CacheCorrupt as e:
            logger.warning("Cannot patch snapshot key=%s: %s", key, e)
            return

        patched = [
            replace(t, remote_id=remote_id)
            if t.id == task_id and (not t.remote_id or (replaces is not None and t.remote_id == replaces))
            else t
            for t in tasks
        ]
        if patched == tasks:
            return
        try:
            self._cache.save(key, dump_tasks(patched))
        except Exception:
            logger.exception("Local cache write failed key=%s", key)
            return
        logger.debug("Patched remote id of task %s in snapshot key=%s", task_id, key)

    # ---- debounced flush ----

    def schedule_flush(self, user_id: str, collection: Collection) -> None:
        ch = self._channels[collection]
        if ch.timer is not None:
            ch.timer.cancel()
        loop = asyncio.get_running_loop()
        ch.timer = loop.call_later(self._debounce, self._on_timer, user_id, collection)
        ch.timer_user = user_id

    def cancel_pending(self) -> None:
        """Cancel every armed timer (user switch). In-flight work is left to finish."""
        for ch in self._channels.values():
            if ch.timer is not None:
                ch.timer.cancel()
                logger.debug("Cancelled pending %s flush for user %s", ch.collection.value, ch.timer_user)
            ch.timer = None
            ch.timer_user = None
            ch.rerun_user = None

    def retry_failed(self, user_id: str) -> None:
        for ch in self._channels.values():
            if ch.last_error is not None:
                self.schedule_flush(user_id, ch.collection)

    def _on_timer(self, user_id: str, collection: Collection) -> None:
        ch = self._channels[collection]
        ch.timer = None
        ch.timer_user = None
        self._start_flush(user_id, collection)

    def _start_flush(self, user_id: str, collection: Collection) -> None:
        ch = self._channels[collection]
        if ch.flushing:
            # Runs once the current flush is done, never concurrently.
            ch.rerun_user = user_id
            return
        ch.flushing = True
        self._spawn(self._flush_loop(user_id, collection))

    async def _flush_loop(self, user_id: str, collection: Collection) -> None:
        ch = self._channels[collection]
        try:
            while True:
                await self._flush(user_id, collection)
                if ch.rerun_user is None:
                    break
                user_id, ch.rerun_user = ch.rerun_user, None
        finally:
            ch.flushing = False

    async def _flush(self, user_id: str, collection: Collection) -> None:
        ch = self._channels[collection]
        async with ch.lock:
            tasks = self._view.snapshot(user_id, collection)
            if tasks is None:
                logger.debug("Skipping %s flush: user %s is no longer signed in", collection.value, user_id)
                return

            seen: set[int] = set()
            created = updated = moved = 0
            try:
                for task in tasks:
                    if task.id in seen:
                        continue
                    seen.add(task.id)

                    home = self._homes.get((user_id, task.id))
                    if task.remote_id and home is not None and home is not collection:
                        new_id = await self._remote.move(user_id, home, task)
                        self._homes.pop((user_id, task.id), None)
                        self._view.attach_remote_id(user_id, collection, task.id, new_id, replaces=task.remote_id)
                        moved += 1
                    elif task.remote_id:
                        try:
                            await self._remote.update(user_id, collection, task)
                            updated += 1
                        except RemoteNotFound:
                            logger.info("Task %s has no remote document any more; update skipped", task.id)
                    else:
                        remote_id = await self._remote.create(user_id, collection, task)
                        self._view.attach_remote_id(user_id, collection, task.id, remote_id)
                        created += 1
            except RemoteError as e:
                ch.last_error = str(e) or e.__class__.__name__
                logger.warning("Remote flush of %s failed user=%s: %s", collection.value, user_id, ch.last_error)
                return
            except Exception as e:
                ch.last_error = repr(e)
                logger.exception("Remote flush of %s crashed user=%s", collection.value, user_id)
                return

            ch.last_error = None
            logger.info(
                "Flushed %s user=%s updated=%d created=%d moved=%d",
                collection.value,
                user_id,
                updated,
                created,
                moved,
            )

    # ---- moves & deletes ----

    def note_remote_home(self, user_id: str, task_id: int, collection: Collection) -> None:
        """Record that the task's remote document lives in `collection`."""
        self._homes.setdefault((user_id, task_id), collection)

    def request_move(self, user_id: str, task_id: int, source: Collection) -> None:
        self.note_remote_home(user_id, task_id, source)
        self._spawn(self._run_move(user_id, task_id))

    async def _run_move(self, user_id: str, task_id: int) -> None:
        first = self._channels[Collection.ACTIVE]
        second = self._channels[Collection.COMPLETED]
        async with first.lock, second.lock:
            key = (user_id, task_id)
            home = self._homes.get(key)
            if home is None:
                return

            found = self._view.find(user_id, task_id)
            if found is None or found[0] is home or not found[1].remote_id:
                # Deleted, moved back, or never created remotely: nothing to move.
                self._homes.pop(key, None)
                return
            where, task = found

            try:
                new_id = await self._remote.move(user_id, home, task)
            except RemoteError as e:
                self._channels[where].last_error = str(e) or e.__class__.__name__
                logger.warning(
                    "Remote move of task %s %s->%s failed user=%s: %s",
                    task_id,
                    home.value,
                    where.value,
                    user_id,
                    e,
                )
                return
            except Exception as e:
                self._channels[where].last_error = repr(e)
                logger.exception("Remote move of task %s crashed user=%s", task_id, user_id)
                return

            self._homes.pop(key, None)
            self._view.attach_remote_id(user_id, where, task_id, new_id, replaces=task.remote_id)
            logger.info("Moved task %s %s->%s user=%s", task_id, home.value, where.value, user_id)

        # Edits made while the move was in flight still need to reach the destination.
        current = self._view.find(user_id, task_id)
        if current is not None and current[1] != replace(task, remote_id=new_id):
            self.schedule_flush(user_id, current[0])

    def request_delete(self, user_id: str, collection: Collection, remote_id: str, *, task_id: int | None = None) -> None:
        if not remote_id:
            return
        if task_id is not None:
            home = self._homes.pop((user_id, task_id), None)
            if home is not None:
                collection = home
        self._spawn(self._run_delete(user_id, collection, remote_id))

    async def _run_delete(self, user_id: str, collection: Collection, remote_id: str) -> None:
        ch = self._channels[collection]
        try:
            async with ch.lock:
                try:
                    await self._remote.delete(user_id, collection, remote_id)
                except RemoteNotFound:
                    # A half-finished move may have left the document in the other set.
                    try:
                        await self._remote.delete(user_id, collection.other, remote_id)
                    except RemoteNotFound:
                        logger.debug("Remote document %s already gone", remote_id)
        except RemoteError as e:
            ch.last_error = str(e) or e.__class__.__name__
            logger.warning("Remote delete of %s in %s failed user=%s: %s", remote_id, collection.value, user_id, e)
            return
        except Exception as e:
            ch.last_error = repr(e)
            logger.exception("Remote delete of %s crashed user=%s", remote_id, user_id)
            return
        logger.info("Deleted remote document %s user=%s", remote_id, user_id)

    # ---- shutdown ----

    async def flush_pending(self) -> None:
        """Run armed flushes now instead of waiting for their timers, then drain."""
        for ch in self._channels.values():
            if ch.timer is None:
                continue
            user_id = ch.timer_user
            ch.timer.cancel()
            ch.timer = None
            ch.timer_user = None
            if user_id is not None:
                self._start_flush(user_id, ch.collection)
        await self.drain()

    async def drain(self) -> None:
        """Wait until no remote work is in flight."""
        while self._inflight:
            await asyncio.gather(*list(self._inflight), return_exceptions=True)

    def _spawn(self, coro: Coroutine[Any, Any, None]) -> asyncio.Task[None]:
        task = asyncio.get_running_loop().create_task(coro)
        self._inflight.add(task)
        task.add_done_callback(self._inflight.discard)
        return task
