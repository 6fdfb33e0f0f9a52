# src/tasktree/remote/http_store.py

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any

import httpx

from ..core.errors import RemoteNotFound, RemoteWriteError
from ..tasks.serialization import task_from_dict, task_to_dict
from ..tasks.task_models import Collection, Task

logger = logging.getLogger(__name__)

_OLDEST = datetime.min.replace(tzinfo=timezone.utc)


def order_remote_list(collection: Collection, tasks: list[Task]) -> list[Task]:
    """
    Active documents come back by id ascending, completed ones newest completion first.
    """
    if collection is Collection.ACTIVE:
        return sorted(tasks, key=lambda t: t.id)
    return sorted(tasks, key=lambda t: t.completed_date or _OLDEST, reverse=True)


class HttpRemoteTaskStore:
    """
    REST document store client.

    Layout:
    - GET    /users/{user}/{collection}        -> [{"id": "<doc>", "data": {...}}, ...]
    - POST   /users/{user}/{collection}        -> {"id": "<doc>"}
    - PUT    /users/{user}/{collection}/{doc}
    - DELETE /users/{user}/{collection}/{doc}

    We disable retries here; the sync scheduler re-flushes the latest snapshot instead.
    """

    def __init__(
        self,
        base_url: str,
        *,
        token: str | None = None,
        timeout_seconds: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        if not base_url or not base_url.strip():
            raise ValueError("base_url is required")

        headers = {"Accept": "application/json"}
        if token:
            headers["Authorization"] = f"Bearer {token}"

        timeout = httpx.Timeout(timeout_seconds, connect=min(5.0, timeout_seconds))
        self._client = httpx.AsyncClient(
            base_url=base_url.rstrip("/"),
            headers=headers,
            timeout=timeout,
            transport=transport,
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    @staticmethod
    def _path(user_id: str, collection: Collection, doc: str | None = None) -> str:
        base = f"/users/{user_id}/{collection.value}"
        return base if doc is None else f"{base}/{doc}"

    async def _request(self, method: str, path: str, *, json: Any = None) -> httpx.Response:
        try:
            resp = await self._client.request(method, path, json=json)
        except httpx.HTTPError as e:
            raise RemoteWriteError(f"{method} {path} failed: {e.__class__.__name__}: {e}") from e

        if resp.status_code == 404:
            raise RemoteNotFound(f"{method} {path}: not found")
        if resp.is_error:
            raise RemoteWriteError(f"{method} {path}: HTTP {resp.status_code}")
        return resp

    async def list(self, user_id: str, collection: Collection) -> list[Task]:
        try:
            resp = await self._request("GET", self._path(user_id, collection))
        except RemoteNotFound:
            return []

        payload = resp.json()
        if not isinstance(payload, list):
            raise RemoteWriteError(f"unexpected list payload for {collection.value}")

        tasks: list[Task] = []
        for doc in payload:
            try:
                tasks.append(task_from_dict(doc["data"], remote_id=str(doc["id"])))
            except (KeyError, TypeError, ValueError) as e:
                logger.warning("Skipping malformed remote document in %s: %s", collection.value, e)
        logger.debug("Listed %d document(s) from %s user=%s", len(tasks), collection.value, user_id)
        return order_remote_list(collection, tasks)

    async def create(self, user_id: str, collection: Collection, task: Task) -> str:
        resp = await self._request(
            "POST",
            self._path(user_id, collection),
            json=task_to_dict(task, include_remote_id=False),
        )
        try:
            doc_id = str(resp.json()["id"])
        except (KeyError, TypeError, ValueError) as e:
            raise RemoteWriteError(f"create in {collection.value} returned no document id") from e
        logger.debug("Created document %s for task %s in %s", doc_id, task.id, collection.value)
        return doc_id

    async def update(self, user_id: str, collection: Collection, task: Task) -> None:
        if not task.remote_id:
            raise RemoteWriteError(f"task {task.id} has no remote id")
        await self._request(
            "PUT",
            self._path(user_id, collection, task.remote_id),
            json=task_to_dict(task, include_remote_id=False),
        )

    async def delete(self, user_id: str, collection: Collection, remote_id: str) -> None:
        await self._request("DELETE", self._path(user_id, collection, remote_id))

    async def move(self, user_id: str, source: Collection, task: Task) -> str:
        new_id = await self.create(user_id, source.other, task)
        if task.remote_id:
            try:
                await self.delete(user_id, source, task.remote_id)
            except RemoteNotFound:
                pass
            except RemoteWriteError as e:
                # The stale copy is cleaned up by reconciliation on the next load.
                logger.warning("Move of task %s left document %s in %s: %s", task.id, task.remote_id, source.value, e)
        return new_id
