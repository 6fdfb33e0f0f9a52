# src/tasktree/tasks/reconcile.py

from __future__ import annotations

"""
Merge task lists from several replicas into one list with unique ids.

Per id, a copy carrying a remote id beats one without; otherwise the copy seen last
wins. Active and completed sets are deduplicated separately. Order follows the replicas
the same way: a newer replica reorders the ids it lists within the slots they hold, and ids
only it knows go to the end. An id left in both sets
(e.g. a remote move that created the destination document but failed to delete the
source) is then settled so the sets stay disjoint.
"""

import logging
from collections.abc import Iterable
from dataclasses import dataclass, field

from ..core.errors import DuplicateIdentity
from .task_models import Collection, Task, TaskBoard

logger = logging.getLogger(__name__)


@dataclass(slots=True, frozen=True)
class ReconcileResult:
    board: TaskBoard
    # Losing copies, with the collection they were listed in.
    discarded: list[tuple[Collection, Task]] = field(default_factory=list)
    # One entry per resolved clash; logged, never raised.
    duplicates: list[DuplicateIdentity] = field(default_factory=list)


def _prefer(current: Task, incoming: Task) -> bool:
    """True if `incoming` should replace `current`."""
    if current.remote_id and not incoming.remote_id:
        return False
    return True


def _dedupe(lists: Iterable[Iterable[Task]]) -> tuple[list[Task], list[Task], set[int]]:
    """
    Returns (merged, losers, clashing ids). The same task arriving from two replicas is
    expected; an id listed twice by one replica, or carrying two different remote ids,
    is a clash.
    """
    order: list[int] = []
    winners: dict[int, Task] = {}
    losers: list[Task] = []
    clashes: set[int] = set()

    for tasks in lists:
        seen: set[int] = set()
        for task in tasks:
            if task.id in seen:
                clashes.add(task.id)
            seen.add(task.id)
            current = winners.get(task.id)
            if current is None:
                order.append(task.id)
                winners[task.id] = task
            else:
                if current.remote_id and task.remote_id and current.remote_id != task.remote_id:
                    clashes.add(task.id)
                if _prefer(current, task):
                    winners[task.id] = task
                    losers.append(current)
                else:
                    losers.append(task)

    return [winners[i] for i in order], losers, clashes


def dedupe_tasks(*lists: Iterable[Task]) -> list[Task]:
    """One list with unique ids, keeping each id at the position it was first seen."""
    merged, losers, clashes = _dedupe(lists)
    if clashes:
        logger.warning("dedupe_tasks resolved %s", DuplicateIdentity(f"duplicate ids: {sorted(clashes)}"))
    elif losers:
        logger.debug("dedupe_tasks merged %d copy(ies): %s", len(losers), [t.id for t in losers])
    return merged


def reconcile_boards(*boards: TaskBoard) -> ReconcileResult:
    """
    Reconcile several replicas of a board, oldest first (e.g. remote, then local cache).
    """
    discarded: list[tuple[Collection, Task]] = []
    duplicates: list[DuplicateIdentity] = []
    merged: dict[Collection, list[Task]] = {}

    for collection in Collection:
        tasks, losers, clashes = _dedupe(b.tasks(collection) for b in boards)
        by_id = {t.id: t for t in tasks}
        order: list[int] = []
        for b in boards:
            order = _layer_order(order, (t.id for t in b.tasks(collection)))
        merged[collection] = [by_id[i] for i in order]
        discarded.extend((collection, t) for t in losers)
        if clashes:
            clash = DuplicateIdentity(f"duplicate ids in {collection.value}: {sorted(clashes)}")
            duplicates.append(clash)
            logger.warning("Resolved %s", clash)

    active_ids = {t.id for t in merged[Collection.ACTIVE]}
    both = active_ids & {t.id for t in merged[Collection.COMPLETED]}
    for task_id in sorted(both):
        keep = _membership(task_id, boards, merged)
        drop = keep.other
        loser = next(t for t in merged[drop] if t.id == task_id)
        merged[drop] = [t for t in merged[drop] if t.id != task_id]
        discarded.append((drop, loser))
        clash = DuplicateIdentity(f"task {task_id} listed as both active and completed; kept {keep.value}")
        duplicates.append(clash)
        logger.warning("Resolved %s", clash)

    board = TaskBoard(
        active=tuple(merged[Collection.ACTIVE]),
        completed=tuple(merged[Collection.COMPLETED]),
    )
    return ReconcileResult(board=board, discarded=discarded, duplicates=duplicates)


def _layer_order(order: list[int], newer: Iterable[int]) -> list[int]:
    """
    Reorder the ids of `order` that `newer` lists into `newer`'s order, keeping the
    slots they occupy; ids only `newer` lists are appended.
    """
    listed = list(dict.fromkeys(newer))
    known = set(order)
    shared = [i for i in listed if i in known]
    shared_set = set(shared)
    fill = iter(shared)
    out = [next(fill) if i in shared_set else i for i in order]
    out.extend(i for i in listed if i not in known)
    return out


def _membership(task_id: int, boards: tuple[TaskBoard, ...], merged: dict[Collection, list[Task]]) -> Collection:
    # The newest replica that lists the id in exactly one set decides.
    for board in reversed(boards):
        listed = [c for c in Collection if any(t.id == task_id for t in board.tasks(c))]
        if len(listed) == 1:
            return listed[0]

    # Otherwise keep the copy whose flag matches its set; completed wins a tie.
    active_copy = next(t for t in merged[Collection.ACTIVE] if t.id == task_id)
    if not active_copy.completed:
        completed_copy = next(t for t in merged[Collection.COMPLETED] if t.id == task_id)
        if not completed_copy.completed:
            return Collection.ACTIVE
    return Collection.COMPLETED
