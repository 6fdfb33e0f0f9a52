# src/tasktree/tasks/task_models.py

from __future__ import annotations

from collections.abc import Iterable, Iterator
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from enum import StrEnum


class Collection(StrEnum):
    """
    The two disjoint task sets.

    A task lives in exactly one of them; moving between them keeps its identity.
    """

    ACTIVE = "active"
    COMPLETED = "completed"

    @property
    def other(self) -> Collection:
        return Collection.COMPLETED if self is Collection.ACTIVE else Collection.ACTIVE


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime | None) -> datetime | None:
    """Normalize a datetime for comparisons; naive values are taken as UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


@dataclass(slots=True, frozen=True)
class Subtask:
    id: int
    text: str
    completed: bool = False
    due_date: datetime | None = None
    completed_date: datetime | None = None
    # Keeps completed subtasks out of the default list while the parent is still active.
    hidden: bool = False
    notes: str | None = None

    def mark_completed(self, at: datetime) -> Subtask:
        return replace(self, completed=True, completed_date=at, hidden=True)

    def mark_uncompleted(self) -> Subtask:
        return replace(self, completed=False, completed_date=None, hidden=False)


@dataclass(slots=True, frozen=True)
class Task:
    id: int
    text: str
    completed: bool = False
    due_date: datetime | None = None
    completed_date: datetime | None = None
    subtasks: tuple[Subtask, ...] = ()
    is_expanded: bool = False
    notes: str | None = None
    # Empty until the remote store assigns a document id.
    remote_id: str = ""

    def find_subtask(self, subtask_id: int) -> tuple[int, Subtask] | None:
        for i, sub in enumerate(self.subtasks):
            if sub.id == subtask_id:
                return i, sub
        return None

    def with_subtask(self, index: int, subtask: Subtask) -> Task:
        subs = list(self.subtasks)
        subs[index] = subtask
        return replace(self, subtasks=tuple(subs))

    def visible_subtasks(self) -> tuple[Subtask, ...]:
        return tuple(s for s in self.subtasks if not s.hidden)

    def all_subtasks_completed(self) -> bool:
        return bool(self.subtasks) and all(s.completed for s in self.subtasks)


@dataclass(slots=True, frozen=True)
class TaskBoard:
    """
    Canonical Store: the in-memory source of truth for one signed-in user.

    `active` is user-ordered; `completed` is newest first.
    The local cache and the remote store are replicas of it.
    """

    active: tuple[Task, ...] = ()
    completed: tuple[Task, ...] = ()

    def tasks(self, collection: Collection) -> tuple[Task, ...]:
        return self.active if collection is Collection.ACTIVE else self.completed

    def with_tasks(self, collection: Collection, tasks: Iterable[Task]) -> TaskBoard:
        if collection is Collection.ACTIVE:
            return replace(self, active=tuple(tasks))
        return replace(self, completed=tuple(tasks))

    def locate(self, task_id: int) -> tuple[Collection, int, Task] | None:
        for collection in Collection:
            for i, task in enumerate(self.tasks(collection)):
                if task.id == task_id:
                    return collection, i, task
        return None

    def get(self, task_id: int) -> Task | None:
        found = self.locate(task_id)
        return found[2] if found else None

    def replace_task(self, collection: Collection, index: int, task: Task) -> TaskBoard:
        items = list(self.tasks(collection))
        items[index] = task
        return self.with_tasks(collection, items)

    def iter_all(self) -> Iterator[Task]:
        yield from self.active
        yield from self.completed

    def ids(self) -> set[int]:
        return {t.id for t in self.iter_all()}


def mint_task_id(board: TaskBoard, now: datetime | None = None) -> int:
    """
    Fresh task id: epoch milliseconds, bumped past the current maximum on collision.

    Ids grow with creation order, which the remote active listing relies on.
    """
    ts = as_utc(now) or utc_now()
    candidate = int(ts.timestamp() * 1000)
    existing = board.ids()
    if existing:
        candidate = max(candidate, max(existing) + 1)
    return candidate


def next_subtask_id(board: TaskBoard) -> int:
    # Subtask ids are drawn from one pool across every task in both sets.
    highest = 0
    for task in board.iter_all():
        for sub in task.subtasks:
            highest = max(highest, sub.id)
    return highest + 1
