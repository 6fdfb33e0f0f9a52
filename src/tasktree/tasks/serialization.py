# src/tasktree/tasks/serialization.py

from __future__ import annotations

"""
Snapshot format shared by the local cache and the remote adapters.

A snapshot is a JSON array of task objects using camelCase field names
(dueDate, completedDate, isExpanded, remoteId). Dates are ISO-8601 strings
and are parsed back into aware datetimes before any comparison runs.
"""

import json
from collections.abc import Iterable
from datetime import datetime, timezone
from typing import Any

from ..core.errors import CacheCorrupt
from .task_models import Subtask, Task, as_utc


def _date_out(value: datetime | None) -> str | None:
    return value.isoformat() if value is not None else None


def _date_in(raw: Any) -> datetime | None:
    if raw is None or raw == "":
        return None
    if isinstance(raw, (int, float)) and not isinstance(raw, bool):
        # Epoch milliseconds are accepted for snapshots written by older clients.
        return datetime.fromtimestamp(raw / 1000.0, tz=timezone.utc)
    if not isinstance(raw, str):
        raise ValueError(f"unsupported date value: {raw!r}")
    return as_utc(datetime.fromisoformat(raw))


def subtask_to_dict(sub: Subtask) -> dict[str, Any]:
    return {
        "id": sub.id,
        "text": sub.text,
        "completed": sub.completed,
        "dueDate": _date_out(sub.due_date),
        "completedDate": _date_out(sub.completed_date),
        "hidden": sub.hidden,
        "notes": sub.notes,
    }


def task_to_dict(task: Task, *, include_remote_id: bool = True) -> dict[str, Any]:
    data: dict[str, Any] = {
        "id": task.id,
        "text": task.text,
        "completed": task.completed,
        "dueDate": _date_out(task.due_date),
        "completedDate": _date_out(task.completed_date),
        "subtasks": [subtask_to_dict(s) for s in task.subtasks],
        "isExpanded": task.is_expanded,
        "notes": task.notes,
    }
    if include_remote_id:
        data["remoteId"] = task.remote_id
    return data


def subtask_from_dict(data: dict[str, Any]) -> Subtask:
    completed = bool(data.get("completed", False))
    return Subtask(
        id=int(data["id"]),
        text=str(data.get("text") or ""),
        completed=completed,
        due_date=_date_in(data.get("dueDate")),
        completed_date=_date_in(data.get("completedDate")),
        hidden=bool(data.get("hidden", completed)),
        notes=data.get("notes") or None,
    )


def task_from_dict(data: dict[str, Any], *, remote_id: str | None = None) -> Task:
    raw_subs = data.get("subtasks") or []
    if not isinstance(raw_subs, list):
        raise ValueError("subtasks must be a list")
    return Task(
        id=int(data["id"]),
        text=str(data.get("text") or ""),
        completed=bool(data.get("completed", False)),
        due_date=_date_in(data.get("dueDate")),
        completed_date=_date_in(data.get("completedDate")),
        subtasks=tuple(subtask_from_dict(s) for s in raw_subs),
        is_expanded=bool(data.get("isExpanded", False)),
        notes=data.get("notes") or None,
        remote_id=str(remote_id if remote_id is not None else (data.get("remoteId") or "")),
    )


def dump_tasks(tasks: Iterable[Task]) -> str:
    return json.dumps([task_to_dict(t) for t in tasks], ensure_ascii=False)


def load_tasks(raw: str) -> list[Task]:
    """
    Parse a snapshot. Any structural problem raises CacheCorrupt.
    """
    try:
        data = json.loads(raw)
    except (TypeError, ValueError) as e:
        raise CacheCorrupt(f"snapshot is not valid JSON: {e}") from e

    if not isinstance(data, list):
        raise CacheCorrupt("snapshot must be a JSON array")

    try:
        return [task_from_dict(item) for item in data]
    except (KeyError, TypeError, ValueError, AttributeError) as e:
        raise CacheCorrupt(f"snapshot has a malformed task: {e}") from e
