# src/tasktree/core/ports.py

from __future__ import annotations

"""
Ports (interfaces) used by the core.

The core depends on Protocols instead of concrete implementations.
This keeps the remote backend and the local cache swappable and makes testing easier.
"""

from collections.abc import Sequence
from typing import Protocol

from ..tasks.task_models import Collection, Task


class RemoteTaskStore(Protocol):
    """
    Remote document store, one collection per task set, scoped by user.

    Failures surface as RemoteWriteError; a vanished document as RemoteNotFound.
    """

    async def list(self, user_id: str, collection: Collection) -> list[Task]: ...

    async def create(self, user_id: str, collection: Collection, task: Task) -> str: ...

    async def update(self, user_id: str, collection: Collection, task: Task) -> None: ...

    async def delete(self, user_id: str, collection: Collection, remote_id: str) -> None: ...

    async def move(self, user_id: str, source: Collection, task: Task) -> str:
        """
        Create `task` in the other collection, then delete `task.remote_id` from `source`.

        Returns the new document id. A failed delete after a successful create is
        tolerated (the duplicate is removed by a later reconciliation pass).
        """
        ...


class LocalCache(Protocol):
    """Synchronous durable key/value store for serialized snapshots."""

    def load(self, key: str) -> str | None: ...
    def save(self, key: str, payload: str) -> None: ...


class BoardView(Protocol):
    """
    What the sync scheduler may see of the session.

    Every call carries the user id captured when the work was scheduled; the session
    ignores calls for a user that is no longer signed in.
    """

    def snapshot(self, user_id: str, collection: Collection) -> Sequence[Task] | None: ...
    def find(self, user_id: str, task_id: int) -> tuple[Collection, Task] | None: ...
    def attach_remote_id(
        self,
        user_id: str,
        collection: Collection,
        task_id: int,
        remote_id: str,
        *,
        replaces: str | None = None,
    ) -> None:
        """
        Record `remote_id` as the task's document. A move passes the id it replaced in
        `replaces`; any other differing id already on the task makes `remote_id` a duplicate.
        """
        ...
