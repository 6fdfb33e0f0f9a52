# src/tasktree/remote/offline.py

from __future__ import annotations

import uuid
from dataclasses import replace

from ..core.errors import RemoteNotFound
from ..tasks.task_models import Collection, Task
from .http_store import order_remote_list


class OfflineRemoteTaskStore:
    """
    In-memory remote store used for demos when no remote URL is configured.

    Behavior matches the HTTP store: generated document ids, 404 on unknown documents,
    list ordering enforced on read. Nothing survives the process.
    """

    def __init__(self) -> None:
        self._docs: dict[tuple[str, Collection], dict[str, Task]] = {}

    def _bucket(self, user_id: str, collection: Collection) -> dict[str, Task]:
        return self._docs.setdefault((user_id, collection), {})

    async def list(self, user_id: str, collection: Collection) -> list[Task]:
        docs = self._bucket(user_id, collection)
        return order_remote_list(collection, [replace(t, remote_id=doc) for doc, t in docs.items()])

    async def create(self, user_id: str, collection: Collection, task: Task) -> str:
        doc = uuid.uuid4().hex
        self._bucket(user_id, collection)[doc] = replace(task, remote_id="")
        return doc

    async def update(self, user_id: str, collection: Collection, task: Task) -> None:
        docs = self._bucket(user_id, collection)
        if task.remote_id not in docs:
            raise RemoteNotFound(f"{collection.value}/{task.remote_id}: not found")
        docs[task.remote_id] = replace(task, remote_id="")

    async def delete(self, user_id: str, collection: Collection, remote_id: str) -> None:
        if self._bucket(user_id, collection).pop(remote_id, None) is None:
            raise RemoteNotFound(f"{collection.value}/{remote_id}: not found")

    async def move(self, user_id: str, source: Collection, task: Task) -> str:
        new_id = await self.create(user_id, source.other, task)
        self._bucket(user_id, source).pop(task.remote_id, None)
        return new_id
