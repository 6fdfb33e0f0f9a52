# tests/test_cascade.py

from __future__ import annotations

from datetime import datetime, timedelta, timezone

from tasktree.tasks import cascade
from tasktree.tasks.task_models import Collection, Subtask, Task, TaskBoard, mint_task_id, next_subtask_id

JUNE_1 = datetime(2024, 6, 1, tzinfo=timezone.utc)
JUNE_5 = datetime(2024, 6, 5, tzinfo=timezone.utc)
JUNE_3 = datetime(2024, 6, 3, tzinfo=timezone.utc)
T0 = datetime(2024, 5, 20, 12, 0, tzinfo=timezone.utc)


def _board(*tasks: Task, completed: tuple[Task, ...] = ()) -> TaskBoard:
    return TaskBoard(active=tuple(tasks), completed=completed)


def _assert_disjoint(board: TaskBoard) -> None:
    active = {t.id for t in board.active}
    done = {t.id for t in board.completed}
    assert not active & done
    assert len(active) == len(board.active)
    assert len(done) == len(board.completed)


def test_buy_milk_scenario() -> None:
    board = cascade.add_task(TaskBoard(), 1, "Buy milk", due_date=JUNE_1)
    board = cascade.add_subtask(board, 1, "2%")

    task = board.get(1)
    assert task is not None
    sub = task.subtasks[0]
    assert sub.due_date == JUNE_1
    assert task.is_expanded is True

    board = cascade.set_subtask_due_date(board, 1, sub.id, JUNE_5)
    assert board.get(1).due_date == JUNE_5

    board = cascade.toggle_subtask(board, 1, sub.id, now=T0)
    task = board.get(1)
    assert task.completed is True
    assert task.completed_date == T0
    assert task.subtasks[0].completed_date == T0
    # Still active until the deferred archive step runs.
    assert cascade.pending_archive_ids(board) == [1]

    board = cascade.archive_task(board, 1)
    assert [t.id for t in board.active] == []
    assert [t.id for t in board.completed] == [1]
    assert board.completed[0].subtasks[0].completed is True
    _assert_disjoint(board)


def test_missing_ids_return_same_board() -> None:
    board = cascade.add_task(TaskBoard(), 1, "a")
    assert cascade.toggle_task(board, 99) is board
    assert cascade.delete_task(board, 99) is board
    assert cascade.add_subtask(board, 99, "x") is board
    assert cascade.toggle_subtask(board, 1, 42) is board
    assert cascade.set_subtask_due_date(board, 1, 42, JUNE_1) is board
    assert cascade.restore_subtask(board, 1, 42) is board
    assert cascade.edit_details(board, 99, title="t", notes=None, due_date=None) is board


def test_blank_text_is_a_noop() -> None:
    board = cascade.add_task(TaskBoard(), 1, "a")
    assert cascade.add_task(board, 2, "   ") is board
    assert cascade.add_subtask(board, 1, "") is board


def test_toggle_task_stamps_open_subtasks_with_one_timestamp() -> None:
    early = T0 - timedelta(days=1)
    task = Task(
        id=1,
        text="t",
        subtasks=(
            Subtask(id=1, text="done", completed=True, completed_date=early, hidden=True),
            Subtask(id=2, text="open"),
            Subtask(id=3, text="open too"),
        ),
    )
    board = cascade.toggle_task(_board(task), 1, now=T0)
    done = board.get(1)
    assert done.completed_date == T0
    assert [s.completed_date for s in done.subtasks] == [early, T0, T0]
    assert all(s.hidden for s in done.subtasks)


def test_completing_subtasks_one_by_one_vs_bulk() -> None:
    task = Task(id=1, text="t", subtasks=(Subtask(id=1, text="a"), Subtask(id=2, text="b")))
    t1, t2 = T0, T0 + timedelta(minutes=5)

    one_by_one = cascade.toggle_subtask(_board(task), 1, 1, now=t1)
    one_by_one = cascade.toggle_subtask(one_by_one, 1, 2, now=t2)
    bulk = cascade.toggle_task(_board(task), 1, now=t2)

    a, b = one_by_one.get(1), bulk.get(1)
    assert a.completed and b.completed
    assert all(s.completed for s in a.subtasks) and all(s.completed for s in b.subtasks)
    # Individually completed subtasks keep their own stamps; bulk uses one.
    assert [s.completed_date for s in a.subtasks] == [t1, t2]
    assert [s.completed_date for s in b.subtasks] == [t2, t2]
    assert a.completed_date == b.completed_date == t2


def test_uncompleting_subtask_reopens_parent() -> None:
    task = Task(id=1, text="t", subtasks=(Subtask(id=1, text="a"), Subtask(id=2, text="b")))
    board = cascade.toggle_subtask(_board(task), 1, 1, now=T0)
    board = cascade.toggle_subtask(board, 1, 2, now=T0)
    assert board.get(1).completed is True

    board = cascade.toggle_subtask(board, 1, 1, now=T0)
    reopened = board.get(1)
    assert reopened.subtasks[0].completed is False
    assert reopened.subtasks[0].hidden is False
    assert reopened.subtasks[1].completed is True
    assert reopened.completed is False
    assert reopened.completed_date is None
    assert cascade.pending_archive_ids(board) == []


def test_uncompleting_subtask_of_archived_task_returns_it_to_active() -> None:
    done = Task(
        id=3,
        text="done",
        completed=True,
        completed_date=T0,
        subtasks=(Subtask(id=7, text="x", completed=True, completed_date=T0, hidden=True),),
    )
    board = _board(Task(id=1, text="a"), completed=(done,))

    board = cascade.toggle_subtask(board, 3, 7, now=T0)

    _assert_disjoint(board)
    assert [t.id for t in board.active] == [1, 3]
    assert board.completed == ()
    task = board.get(3)
    assert task.completed is False
    assert task.subtasks[0].completed is False


def test_toggle_task_from_completed_set_returns_to_end_of_active() -> None:
    done = Task(id=3, text="done", completed=True, completed_date=T0)
    board = _board(Task(id=1, text="a"), Task(id=2, text="b"), completed=(done,))
    board = cascade.toggle_task(board, 3)
    assert [t.id for t in board.active] == [1, 2, 3]
    assert board.completed == ()
    assert board.get(3).completed_date is None


def test_archive_prepends_to_completed() -> None:
    old = Task(id=1, text="old", completed=True, completed_date=T0)
    fresh = Task(id=2, text="fresh", completed=True, completed_date=T0)
    board = _board(fresh, completed=(old,))
    board = cascade.archive_task(board, 2)
    assert [t.id for t in board.completed] == [2, 1]
    assert cascade.archive_task(board, 2) is board


def test_subtask_due_date_never_lowers_parent() -> None:
    task = Task(id=1, text="t", due_date=JUNE_5, subtasks=(Subtask(id=1, text="a"), Subtask(id=2, text="b")))
    board = _board(task)
    for sub_id, due in ((1, JUNE_1), (2, JUNE_3), (1, None), (2, JUNE_5 + timedelta(days=2))):
        before = board.get(1).due_date
        board = cascade.set_subtask_due_date(board, 1, sub_id, due)
        after = board.get(1).due_date
        assert after >= before
        dated = [s.due_date for s in board.get(1).subtasks if s.due_date is not None]
        assert all(after >= d for d in dated)


def test_set_task_due_date_fills_only_undated_subtasks() -> None:
    task = Task(id=1, text="t", subtasks=(Subtask(id=1, text="a"), Subtask(id=2, text="b", due_date=JUNE_1)))
    board = cascade.set_task_due_date(_board(task), 1, JUNE_5)
    assert [s.due_date for s in board.get(1).subtasks] == [JUNE_5, JUNE_1]

    # Clearing the task date leaves subtask dates alone.
    board = cascade.set_task_due_date(board, 1, None)
    assert board.get(1).due_date is None
    assert [s.due_date for s in board.get(1).subtasks] == [JUNE_5, JUNE_1]


def test_edit_details_clamps_subtasks_to_new_date() -> None:
    task = Task(
        id=1,
        text="t",
        due_date=JUNE_5,
        subtasks=(Subtask(id=1, text="a", due_date=JUNE_5), Subtask(id=2, text="b", due_date=JUNE_1), Subtask(id=3, text="c")),
    )
    board = cascade.edit_details(_board(task), 1, title="  renamed ", notes="n", due_date=JUNE_3)
    edited = board.get(1)
    assert edited.text == "renamed"
    assert edited.notes == "n"
    assert [s.due_date for s in edited.subtasks] == [JUNE_3, JUNE_1, JUNE_3]

    cleared = cascade.edit_details(board, 1, title="", notes=None, due_date=None).get(1)
    assert cleared.text == "renamed"
    assert cleared.due_date is None
    assert all(s.due_date is None for s in cleared.subtasks)


def test_clearing_date_wipes_subtask_dates_only_through_edit_details() -> None:
    task = Task(id=1, text="t", due_date=JUNE_5, subtasks=(Subtask(id=1, text="a", due_date=JUNE_1),))

    via_setter = cascade.set_task_due_date(_board(task), 1, None).get(1)
    assert via_setter.due_date is None
    assert via_setter.subtasks[0].due_date == JUNE_1

    via_edit = cascade.edit_details(_board(task), 1, title="t", notes=None, due_date=None).get(1)
    assert via_edit.subtasks[0].due_date is None


def test_edit_details_without_date_change_keeps_subtask_dates() -> None:
    task = Task(id=1, text="t", due_date=JUNE_5, subtasks=(Subtask(id=1, text="a", due_date=JUNE_1),))
    board = _board(task)
    edited = cascade.edit_details(board, 1, title="t", notes="x", due_date=JUNE_5)
    assert edited.get(1).subtasks[0].due_date == JUNE_1


def test_edit_subtask_details_ratchets_parent() -> None:
    task = Task(id=1, text="t", due_date=JUNE_1, subtasks=(Subtask(id=7, text="a", due_date=JUNE_1),))
    board = cascade.edit_subtask_details(_board(task), 1, 7, title="b", notes="n", due_date=JUNE_5)
    edited = board.get(1)
    assert edited.subtasks[0].text == "b"
    assert edited.subtasks[0].notes == "n"
    assert edited.due_date == JUNE_5


def test_add_subtask_only_on_active_tasks() -> None:
    done = Task(id=2, text="done", completed=True)
    board = _board(Task(id=1, text="a"), completed=(done,))
    assert cascade.add_subtask(board, 2, "x") is board


def test_subtask_ids_are_unique_across_both_sets() -> None:
    done = Task(id=2, text="done", completed=True, subtasks=(Subtask(id=9, text="x"),))
    board = _board(Task(id=1, text="a"), completed=(done,))
    assert next_subtask_id(board) == 10
    board = cascade.add_subtask(board, 1, "y")
    assert board.get(1).subtasks[0].id == 10


def test_mint_task_id_is_monotonic() -> None:
    board = _board(Task(id=10**14, text="future"))
    assert mint_task_id(board, now=T0) == 10**14 + 1
    assert mint_task_id(TaskBoard(), now=T0) == int(T0.timestamp() * 1000)


def test_restore_task_returns_to_end_of_active_and_keeps_subtasks() -> None:
    sub = Subtask(id=1, text="a", completed=True, completed_date=T0, hidden=True)
    done = Task(id=2, text="done", completed=True, completed_date=T0, subtasks=(sub,))
    board = _board(Task(id=1, text="a"), completed=(done,))
    board = cascade.restore_task(board, 2)
    assert [t.id for t in board.active] == [1, 2]
    restored = board.get(2)
    assert restored.completed is False
    assert restored.completed_date is None
    assert restored.subtasks[0].completed is True
    _assert_disjoint(board)

    assert cascade.restore_task(board, 1) is board


def test_restore_subtask_from_completed_task() -> None:
    subs = (
        Subtask(id=1, text="a", completed=True, completed_date=T0, hidden=True),
        Subtask(id=2, text="b", completed=True, completed_date=T0, hidden=True),
    )
    done = Task(id=5, text="done", completed=True, completed_date=T0, subtasks=subs)
    board = cascade.restore_subtask_from_completed_task(_board(completed=(done,)), 5, 2)
    restored = board.get(5)
    assert board.locate(5)[0] is Collection.ACTIVE
    assert restored.completed is False
    assert [s.completed for s in restored.subtasks] == [True, False]
    assert restored.subtasks[1].hidden is False
    assert restored.subtasks[1].completed_date is None


def test_restore_subtask_leaves_completed_parent_in_place() -> None:
    sub = Subtask(id=1, text="a", completed=True, completed_date=T0, hidden=True)
    done = Task(id=5, text="done", completed=True, completed_date=T0, subtasks=(sub,))
    board = cascade.restore_subtask(_board(completed=(done,)), 5, 1)
    assert board.locate(5)[0] is Collection.COMPLETED
    assert board.get(5).completed is True
    assert board.get(5).subtasks[0].hidden is False


def test_delete_subtask_and_toggle_expanded() -> None:
    task = Task(id=1, text="t", subtasks=(Subtask(id=1, text="a"), Subtask(id=2, text="b")))
    board = cascade.delete_subtask(_board(task), 1, 1)
    assert [s.id for s in board.get(1).subtasks] == [2]
    board = cascade.toggle_expanded(board, 1)
    assert board.get(1).is_expanded is True


def test_sort_by_due_date_is_stable_with_undated_last() -> None:
    tasks = [
        Task(id=1, text="none"),
        Task(id=2, text="late", due_date=JUNE_5),
        Task(id=3, text="early", due_date=JUNE_1),
        Task(id=4, text="late too", due_date=JUNE_5),
    ]
    assert [t.id for t in cascade.sort_by_due_date(tasks)] == [3, 2, 4, 1]
