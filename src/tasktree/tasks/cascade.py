# src/tasktree/tasks/cascade.py

from __future__ import annotations

"""
Cascade engine.

Pure functions that apply one edit to a TaskBoard and return a new board:
- completion cascades (subtasks -> parent, parent -> subtasks),
- due-date propagation (parent -> undated subtasks, subtask -> parent ratchet),
- subtask add/remove/edit, restore from the completed set.

No I/O and no timers. Moving an auto-completed task into the completed set is a
separate step (archive_task) because the caller defers it for a visual transition.

Missing ids and blank text return the *same* board object, so callers can tell a
no-op apart from a real change with `is`.
"""

from collections.abc import Iterable
from dataclasses import replace
from datetime import datetime
from typing import TypeVar

from .task_models import (
    Collection,
    Subtask,
    Task,
    TaskBoard,
    as_utc,
    next_subtask_id,
    utc_now,
)

_Dated = TypeVar("_Dated", Task, Subtask)


def _stamp(now: datetime | None) -> datetime:
    return as_utc(now) or utc_now()


def _is_later(candidate: datetime, current: datetime | None) -> bool:
    if current is None:
        return True
    return as_utc(candidate) > as_utc(current)  # type: ignore[operator]


def _locate_subtask(
    board: TaskBoard, task_id: int, subtask_id: int
) -> tuple[Collection, int, Task, int, Subtask] | None:
    found = board.locate(task_id)
    if found is None:
        return None
    collection, index, task = found
    hit = task.find_subtask(subtask_id)
    if hit is None:
        return None
    sub_index, sub = hit
    return collection, index, task, sub_index, sub


def _move(board: TaskBoard, task: Task, source: Collection, *, to_head: bool) -> TaskBoard:
    remaining = [t for t in board.tasks(source) if t.id != task.id]
    board = board.with_tasks(source, remaining)
    dest = source.other
    current = board.tasks(dest)
    moved = (task, *current) if to_head else (*current, task)
    return board.with_tasks(dest, moved)


# ---- task lifecycle ----


def add_task(
    board: TaskBoard,
    task_id: int,
    text: str,
    *,
    due_date: datetime | None = None,
    notes: str | None = None,
) -> TaskBoard:
    text = (text or "").strip()
    if not text or task_id in board.ids():
        return board
    task = Task(id=task_id, text=text, due_date=as_utc(due_date), notes=notes or None)
    return board.with_tasks(Collection.ACTIVE, (*board.active, task))


def delete_task(board: TaskBoard, task_id: int) -> TaskBoard:
    found = board.locate(task_id)
    if found is None:
        return board
    collection, _, _ = found
    return board.with_tasks(collection, [t for t in board.tasks(collection) if t.id != task_id])


def toggle_task(board: TaskBoard, task_id: int, *, now: datetime | None = None) -> TaskBoard:
    """
    Flip a task's completion.

    Completing stamps the task and every not-yet-completed subtask with one shared
    timestamp. Un-completing leaves subtasks alone and, for a task already in the
    completed set, moves it back to the end of the active set.
    """
    found = board.locate(task_id)
    if found is None:
        return board
    collection, index, task = found

    if not task.completed:
        stamp = _stamp(now)
        subtasks = tuple(s if s.completed else s.mark_completed(stamp) for s in task.subtasks)
        done = replace(task, completed=True, completed_date=stamp, subtasks=subtasks)
        return board.replace_task(collection, index, done)

    reopened = replace(task, completed=False, completed_date=None)
    if collection is Collection.COMPLETED:
        return _move(board, reopened, Collection.COMPLETED, to_head=False)
    return board.replace_task(collection, index, reopened)


def toggle_expanded(board: TaskBoard, task_id: int) -> TaskBoard:
    found = board.locate(task_id)
    if found is None:
        return board
    collection, index, task = found
    return board.replace_task(collection, index, replace(task, is_expanded=not task.is_expanded))


def pending_archive_ids(board: TaskBoard) -> list[int]:
    """Active tasks that are completed and still waiting for the deferred move."""
    return [t.id for t in board.active if t.completed]


def archive_task(board: TaskBoard, task_id: int) -> TaskBoard:
    """Move a completed active task to the head of the completed set. Idempotent."""
    found = board.locate(task_id)
    if found is None:
        return board
    collection, _, task = found
    if collection is not Collection.ACTIVE or not task.completed:
        return board
    return _move(board, task, Collection.ACTIVE, to_head=True)


# ---- subtasks ----


def add_subtask(board: TaskBoard, task_id: int, text: str) -> TaskBoard:
    text = (text or "").strip()
    if not text:
        return board
    found = board.locate(task_id)
    if found is None:
        return board
    collection, index, task = found
    if collection is not Collection.ACTIVE:
        return board

    sub = Subtask(id=next_subtask_id(board), text=text, due_date=task.due_date)
    grown = replace(task, subtasks=(*task.subtasks, sub), is_expanded=True)
    return board.replace_task(collection, index, grown)


def delete_subtask(board: TaskBoard, task_id: int, subtask_id: int) -> TaskBoard:
    hit = _locate_subtask(board, task_id, subtask_id)
    if hit is None:
        return board
    collection, index, task, _, _ = hit
    kept = tuple(s for s in task.subtasks if s.id != subtask_id)
    return board.replace_task(collection, index, replace(task, subtasks=kept))


def toggle_subtask(
    board: TaskBoard, task_id: int, subtask_id: int, *, now: datetime | None = None
) -> TaskBoard:
    """
    Flip one subtask.

    When this completes the last open subtask of an open task, the task is completed
    with the same timestamp. It stays in the active set until archive_task runs.

    Reopening a subtask of a completed task reopens the task too; if it was already
    archived it goes back to the end of the active set.
    """
    hit = _locate_subtask(board, task_id, subtask_id)
    if hit is None:
        return board
    collection, index, task, sub_index, sub = hit

    stamp = _stamp(now)
    flipped = sub.mark_uncompleted() if sub.completed else sub.mark_completed(stamp)
    task = task.with_subtask(sub_index, flipped)

    if not task.completed and task.all_subtasks_completed():
        task = replace(task, completed=True, completed_date=stamp)
    elif task.completed and not flipped.completed:
        task = replace(task, completed=False, completed_date=None)
        if collection is Collection.COMPLETED:
            return _move(board, task, Collection.COMPLETED, to_head=False)

    return board.replace_task(collection, index, task)


# ---- due dates ----


def set_task_due_date(board: TaskBoard, task_id: int, due_date: datetime | None) -> TaskBoard:
    """Set a task's due date; undated subtasks inherit it, dated ones are left alone."""
    found = board.locate(task_id)
    if found is None:
        return board
    collection, index, task = found

    due = as_utc(due_date)
    subtasks = task.subtasks
    if due is not None:
        subtasks = tuple(s if s.due_date is not None else replace(s, due_date=due) for s in subtasks)
    return board.replace_task(collection, index, replace(task, due_date=due, subtasks=subtasks))


def set_subtask_due_date(
    board: TaskBoard, task_id: int, subtask_id: int, due_date: datetime | None
) -> TaskBoard:
    """Set a subtask's due date; a later date raises the parent's (never lowers it)."""
    hit = _locate_subtask(board, task_id, subtask_id)
    if hit is None:
        return board
    collection, index, task, sub_index, sub = hit

    due = as_utc(due_date)
    task = task.with_subtask(sub_index, replace(sub, due_date=due))
    if due is not None and _is_later(due, task.due_date):
        task = replace(task, due_date=due)
    return board.replace_task(collection, index, task)


def _clamp_subtasks(subtasks: tuple[Subtask, ...], parent_due: datetime | None) -> tuple[Subtask, ...]:
    if parent_due is None:
        return tuple(replace(s, due_date=None) if s.due_date is not None else s for s in subtasks)
    out: list[Subtask] = []
    for s in subtasks:
        if s.due_date is None or _is_later(s.due_date, parent_due):
            s = replace(s, due_date=parent_due)
        out.append(s)
    return tuple(out)


# ---- details edits ----


def edit_details(
    board: TaskBoard,
    task_id: int,
    *,
    title: str,
    notes: str | None,
    due_date: datetime | None,
) -> TaskBoard:
    """
    Apply a details-panel edit (title, notes, due date) in one step.

    A changed due date is pushed down: undated subtasks inherit it and later ones are
    clamped to it. Clearing the date wipes every subtask's due date too, including
    dates the subtasks were given on their own; they are not restored if the task is
    dated again. set_task_due_date(None) leaves subtask dates alone. A blank title
    keeps the current one.
    """
    found = board.locate(task_id)
    if found is None:
        return board
    collection, index, task = found

    due = as_utc(due_date)
    subtasks = task.subtasks
    if due != as_utc(task.due_date):
        subtasks = _clamp_subtasks(subtasks, due)

    edited = replace(
        task,
        text=(title or "").strip() or task.text,
        notes=notes or None,
        due_date=due,
        subtasks=subtasks,
    )
    return board.replace_task(collection, index, edited)


def edit_subtask_details(
    board: TaskBoard,
    task_id: int,
    subtask_id: int,
    *,
    title: str,
    notes: str | None,
    due_date: datetime | None,
) -> TaskBoard:
    hit = _locate_subtask(board, task_id, subtask_id)
    if hit is None:
        return board
    collection, index, task, sub_index, sub = hit

    sub = replace(sub, text=(title or "").strip() or sub.text, notes=notes or None)
    board = board.replace_task(collection, index, task.with_subtask(sub_index, sub))
    if as_utc(due_date) != as_utc(sub.due_date):
        board = set_subtask_due_date(board, task_id, subtask_id, due_date)
    return board


# ---- restore ----


def restore_task(board: TaskBoard, task_id: int) -> TaskBoard:
    """Reopen a completed task and return it to the active set; subtasks keep their state."""
    found = board.locate(task_id)
    if found is None:
        return board
    collection, index, task = found
    if not task.completed and collection is Collection.ACTIVE:
        return board

    reopened = replace(task, completed=False, completed_date=None)
    if collection is Collection.COMPLETED:
        return _move(board, reopened, Collection.COMPLETED, to_head=False)
    return board.replace_task(collection, index, reopened)


def restore_subtask_from_completed_task(board: TaskBoard, task_id: int, subtask_id: int) -> TaskBoard:
    """Reopen one subtask and its task, moving the task back to the active set."""
    hit = _locate_subtask(board, task_id, subtask_id)
    if hit is None:
        return board
    collection, index, task, sub_index, sub = hit

    reopened = replace(
        task.with_subtask(sub_index, sub.mark_uncompleted()),
        completed=False,
        completed_date=None,
    )
    if collection is Collection.COMPLETED:
        return _move(board, reopened, Collection.COMPLETED, to_head=False)
    return board.replace_task(collection, index, reopened)


def restore_subtask(board: TaskBoard, task_id: int, subtask_id: int) -> TaskBoard:
    """
    Reopen a single subtask in place.

    The parent is not touched: a completed parent stays completed (and stays in the
    completed set) even though it now holds an open subtask.
    """
    hit = _locate_subtask(board, task_id, subtask_id)
    if hit is None:
        return board
    collection, index, task, sub_index, sub = hit
    return board.replace_task(collection, index, task.with_subtask(sub_index, sub.mark_uncompleted()))


# ---- display ordering ----


def sort_by_due_date(items: Iterable[_Dated]) -> list[_Dated]:
    """Stable sort by due date; undated items go last."""

    def key(item: _Dated) -> tuple[int, float]:
        due = as_utc(item.due_date)
        if due is None:
            return (1, 0.0)
        return (0, due.timestamp())

    return sorted(items, key=key)
