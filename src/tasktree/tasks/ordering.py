# src/tasktree/tasks/ordering.py

from __future__ import annotations

"""
Drag-and-drop reordering of the active task list.

A drag session tracks one dragged id and one current target (another task id or
END_OF_LIST). While it is active, the preview is the canonical list with the dragged
task removed and reinserted after the target (or at the end). Only drop() commits.
Completed tasks are never draggable.
"""

import logging
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Final

from .task_models import Collection, Task, TaskBoard

logger = logging.getLogger(__name__)


class _EndOfList:
    __slots__ = ()

    def __repr__(self) -> str:
        return "END_OF_LIST"


END_OF_LIST: Final = _EndOfList()

DropTarget = int | _EndOfList


def project_drop(tasks: Sequence[Task], dragged_id: int, target: DropTarget | None) -> tuple[Task, ...]:
    """
    Remove `dragged_id` and reinsert it after `target` (or at the end for END_OF_LIST).

    Unknown ids, a missing target, or targeting the dragged task itself leave the order as is.
    """
    original = tuple(tasks)
    dragged = next((t for t in original if t.id == dragged_id), None)
    if dragged is None or target is None:
        return original

    rest = [t for t in original if t.id != dragged_id]
    if isinstance(target, _EndOfList):
        rest.append(dragged)
        return tuple(rest)

    for i, t in enumerate(rest):
        if t.id == target:
            rest.insert(i + 1, dragged)
            return tuple(rest)
    return original


def apply_order(board: TaskBoard, ordered: Sequence[Task]) -> TaskBoard:
    """Commit a new active order. Must be a permutation of the current active set."""
    if [t.id for t in ordered] == [t.id for t in board.active]:
        return board
    if sorted(t.id for t in ordered) != sorted(t.id for t in board.active):
        return board
    return board.with_tasks(Collection.ACTIVE, ordered)


@dataclass(slots=True)
class DragController:
    dragged_id: int | None = None
    target: DropTarget | None = None

    @property
    def dragging(self) -> bool:
        return self.dragged_id is not None

    def begin(self, task_id: int, tasks: Sequence[Task]) -> bool:
        if not any(t.id == task_id for t in tasks):
            logger.debug("begin_drag ignored: %s is not in the active list", task_id)
            self.cancel()
            return False
        self.dragged_id = task_id
        self.target = None
        return True

    def over(self, target: DropTarget) -> None:
        if self.dragged_id is None:
            return
        self.target = target

    def preview(self, tasks: Sequence[Task]) -> tuple[Task, ...]:
        if self.dragged_id is None:
            return tuple(tasks)
        return project_drop(tasks, self.dragged_id, self.target)

    def drop(self, tasks: Sequence[Task]) -> tuple[Task, ...] | None:
        """
        End the session and return the committed order, or None when nothing moves.
        """
        if self.dragged_id is None:
            return None
        projected = self.preview(tasks)
        self.cancel()
        if [t.id for t in projected] == [t.id for t in tasks]:
            return None
        return projected

    def cancel(self) -> None:
        self.dragged_id = None
        self.target = None
