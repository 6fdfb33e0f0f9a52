# src/tasktree/cli/commands.py

from __future__ import annotations

import functools
import inspect
import logging
from collections.abc import Awaitable, Callable
from datetime import datetime, timezone
from typing import cast

from ..core.errors import ValidationNoop
from ..core.state import AppState
from ..tasks.cascade import sort_by_due_date
from ..tasks.ordering import END_OF_LIST, DropTarget
from ..tasks.task_models import Collection, Subtask, Task, as_utc

CommandEmitter = Callable[[str], None]
CommandResult = str | Awaitable[str]
CommandHandler2 = Callable[[AppState, list[str]], CommandResult]
CommandHandler3 = Callable[[AppState, list[str], CommandEmitter | None], CommandResult]
CommandHandler = CommandHandler2 | CommandHandler3

logger = logging.getLogger(__name__)


class CommandRegistry:
    """Simple slash-command registry used by connectors (/help, /add, ...)."""

    def __init__(self) -> None:
        self._handlers: dict[str, CommandHandler] = {}
        self._help: dict[str, str] = {}

    def register(
        self,
        name: str,
        handler: CommandHandler,
        help_text: str,
        aliases: list[str] | None = None,
    ) -> None:
        aliases = aliases or []
        key = name.lower()
        self._handlers[key] = handler
        self._help[key] = help_text
        for alias in aliases:
            self._handlers[alias.lower()] = handler

    async def handle(
        self,
        state: AppState,
        line: str,
        emit: CommandEmitter | None = None,
    ) -> str | None:
        """
        Handle a string like "/command args".
        Returns a reply string or None if not a command.
        """
        if not line.startswith("/"):
            return None

        parts = line[1:].split()
        if not parts:
            return "Empty command. Use /help to list available commands."

        name = parts[0].lower()
        args = parts[1:]

        handler = self._handlers.get(name)
        if not handler:
            return f"Unknown command: /{name}. Use /help to list available commands."

        try:
            nparams = len(inspect.signature(handler).parameters)
        except (TypeError, ValueError):
            nparams = 3

        try:
            if nparams >= 3:
                result = cast(CommandHandler3, handler)(state, args, emit)
            else:
                result = cast(CommandHandler2, handler)(state, args)
            if inspect.isawaitable(result):
                result = await result
        except ValidationNoop as e:
            return f"Rejected: {e}"
        return cast(str, result)

    def build_help(self) -> str:
        lines = ["Available commands:"]
        for name, help_text in self._help.items():
            lines.append(f"  /{name} - {help_text}")
        return "\n".join(lines)


registry = CommandRegistry()


# ---- argument parsing ----


class _BadArgs(ValueError):
    pass


def _task_ref(state: AppState, ref: str) -> Task:
    """
    "3" -> third active task, "c2" -> second completed task (1-based, as shown by /list).
    """
    raw = ref.strip().lower()
    collection = Collection.ACTIVE
    if raw.startswith("c"):
        collection = Collection.COMPLETED
        raw = raw[1:]
    try:
        pos = int(raw)
    except ValueError:
        raise _BadArgs(f"Not a task reference: {ref}") from None
    tasks = state.session.board.tasks(collection)
    if pos < 1 or pos > len(tasks):
        raise _BadArgs(f"No task {ref} (have {len(tasks)} in {collection.value}).")
    return tasks[pos - 1]


def _subtask_ref(state: AppState, ref: str) -> tuple[Task, Subtask]:
    """ "3.2" -> second subtask of active task 3; "c1.2" for completed tasks. """
    task_part, sep, sub_part = ref.partition(".")
    if not sep:
        raise _BadArgs(f"Not a subtask reference: {ref} (expected N.M)")
    task = _task_ref(state, task_part)
    try:
        pos = int(sub_part)
    except ValueError:
        raise _BadArgs(f"Not a subtask reference: {ref}") from None
    if pos < 1 or pos > len(task.subtasks):
        raise _BadArgs(f"No subtask {ref} (task has {len(task.subtasks)}).")
    return task, task.subtasks[pos - 1]


def _parse_date(raw: str) -> datetime | None:
    if raw.lower() in ("none", "clear", "-"):
        return None
    try:
        return as_utc(datetime.fromisoformat(raw))
    except ValueError:
        raise _BadArgs(f"Not a date: {raw} (use YYYY-MM-DD or 'none')") from None


def _split_title_notes(words: list[str]) -> tuple[str, str | None]:
    text = " ".join(words)
    title, sep, notes = text.partition("|")
    return title.strip(), (notes.strip() or None) if sep else None


def _fmt_date(value: datetime | None) -> str:
    # Dates are entered as UTC days, so they are shown as UTC days too.
    return value.astimezone(timezone.utc).strftime("%Y-%m-%d") if value is not None else ""


def _fmt_task(label: str, task: Task, *, show_hidden: bool) -> list[str]:
    mark = "x" if task.completed else " "
    due = f"  (due {_fmt_date(task.due_date)})" if task.due_date else ""
    fold = "-" if task.is_expanded else "+"
    head = f"{label:>4}. [{mark}] {task.text}{due}"
    if task.subtasks:
        head += f"  {fold}{len(task.visible_subtasks())}/{len(task.subtasks)}"
    lines = [head]
    if task.notes:
        lines.append(f"        {task.notes}")
    if task.is_expanded or show_hidden:
        for i, sub in enumerate(task.subtasks, start=1):
            if sub.hidden and not show_hidden:
                continue
            sub_mark = "x" if sub.completed else " "
            sub_due = f"  (due {_fmt_date(sub.due_date)})" if sub.due_date else ""
            hidden = "  [hidden]" if sub.hidden else ""
            lines.append(f"        {label}.{i} [{sub_mark}] {sub.text}{sub_due}{hidden}")
    return lines


def _changed(ok: bool, what: str) -> str:
    return what if ok else "Nothing changed."


# ---- commands ----


def cmd_help(state: AppState, args: list[str]) -> str:
    return registry.build_help()


def cmd_list(state: AppState, args: list[str]) -> str:
    """
    /list        -> active + completed, canonical order
    /list due    -> active sorted by due date (undated last)
    /list all    -> include hidden subtasks
    """
    flags = {a.lower() for a in args}
    board = state.session.board
    active = list(board.active)
    positions = {t.id: i for i, t in enumerate(active, start=1)}
    if "due" in flags:
        active = sort_by_due_date(active)

    lines = [f"Active ({len(board.active)}):"]
    for task in active:
        lines.extend(_fmt_task(str(positions[task.id]), task, show_hidden="all" in flags))
    lines.append(f"Completed ({len(board.completed)}):")
    for i, task in enumerate(board.completed, start=1):
        lines.extend(_fmt_task(f"c{i}", task, show_hidden="all" in flags))
    return "\n".join(lines)


def cmd_add(state: AppState, args: list[str]) -> str:
    """/add <text> [@YYYY-MM-DD]"""
    due = None
    if args and args[-1].startswith("@"):
        due = _parse_date(args[-1][1:])
        args = args[:-1]
    title, notes = _split_title_notes(args)
    task_id = state.session.add_task(title, due_date=due, notes=notes)
    if task_id is None:
        return "Usage: /add <text> [| notes] [@YYYY-MM-DD]"
    return f"Added task {len(state.session.active_tasks)}."


def cmd_sub(state: AppState, args: list[str]) -> str:
    if len(args) < 2:
        return "Usage: /sub <task> <text>"
    task = _task_ref(state, args[0])
    sub_id = state.session.add_subtask(task.id, " ".join(args[1:]))
    if sub_id is None:
        return "Subtasks can only be added to active tasks."
    return "Subtask added."


def cmd_check(state: AppState, args: list[str]) -> str:
    if len(args) != 1:
        return "Usage: /check <task.sub>"
    task, sub = _subtask_ref(state, args[0])
    return _changed(state.session.toggle_subtask(task.id, sub.id), "Subtask toggled.")


def cmd_done(state: AppState, args: list[str]) -> str:
    if len(args) != 1:
        return "Usage: /done <task>"
    task = _task_ref(state, args[0])
    return _changed(state.session.toggle_task(task.id), "Task toggled.")


def cmd_due(state: AppState, args: list[str]) -> str:
    if len(args) != 2:
        return "Usage: /due <task> <YYYY-MM-DD|none>"
    task = _task_ref(state, args[0])
    return _changed(state.session.set_task_due_date(task.id, _parse_date(args[1])), "Due date set.")


def cmd_subdue(state: AppState, args: list[str]) -> str:
    if len(args) != 2:
        return "Usage: /subdue <task.sub> <YYYY-MM-DD|none>"
    task, sub = _subtask_ref(state, args[0])
    ok = state.session.set_subtask_due_date(task.id, sub.id, _parse_date(args[1]))
    return _changed(ok, "Subtask due date set.")


def cmd_edit(state: AppState, args: list[str]) -> str:
    """
    /edit <task> <title> [| notes]        -> keeps the due date
    /edit <task.sub> <title> [| notes]
    """
    if len(args) < 2:
        return "Usage: /edit <task|task.sub> <title> [| notes]"
    title, notes = _split_title_notes(args[1:])
    if "." in args[0]:
        task, sub = _subtask_ref(state, args[0])
        ok = state.session.edit_subtask_details(
            task.id, sub.id, title=title, notes=notes, due_date=sub.due_date
        )
    else:
        task = _task_ref(state, args[0])
        ok = state.session.edit_details(task.id, title=title, notes=notes, due_date=task.due_date)
    return _changed(ok, "Saved.")


def cmd_del(state: AppState, args: list[str]) -> str:
    if len(args) != 1:
        return "Usage: /del <task>"
    task = _task_ref(state, args[0])
    return _changed(state.session.delete_task(task.id), f"Deleted: {task.text}")


def cmd_delsub(state: AppState, args: list[str]) -> str:
    if len(args) != 1:
        return "Usage: /delsub <task.sub>"
    task, sub = _subtask_ref(state, args[0])
    return _changed(state.session.delete_subtask(task.id, sub.id), f"Deleted: {sub.text}")


def cmd_restore(state: AppState, args: list[str]) -> str:
    if len(args) != 1:
        return "Usage: /restore <cN>"
    task = _task_ref(state, args[0])
    return _changed(state.session.restore_task(task.id), f"Restored: {task.text}")


def cmd_restoresub(state: AppState, args: list[str]) -> str:
    if len(args) != 1:
        return "Usage: /restoresub <cN.M>"
    task, sub = _subtask_ref(state, args[0])
    ok = state.session.restore_subtask_from_completed_task(task.id, sub.id)
    return _changed(ok, f"Restored: {sub.text}")


def cmd_unhide(state: AppState, args: list[str]) -> str:
    if len(args) != 1:
        return "Usage: /unhide <task.sub>"
    task, sub = _subtask_ref(state, args[0])
    return _changed(state.session.restore_subtask(task.id, sub.id), f"Reopened: {sub.text}")


def cmd_expand(state: AppState, args: list[str]) -> str:
    if len(args) != 1:
        return "Usage: /expand <task>"
    task = _task_ref(state, args[0])
    state.session.toggle_expanded(task.id)
    return "Collapsed." if task.is_expanded else "Expanded."


def cmd_move(state: AppState, args: list[str]) -> str:
    """/move <task> <after-task|end>: the same remove-and-reinsert a drop performs."""
    if len(args) != 2:
        return "Usage: /move <task> <after-task|end>"
    task = _task_ref(state, args[0])
    target: DropTarget
    if args[1].lower() == "end":
        target = END_OF_LIST
    else:
        target = _task_ref(state, args[1]).id

    session = state.session
    if not session.begin_drag(task.id):
        return "Only active tasks can be moved."
    session.drag_over(target)
    return _changed(session.drop(), "Moved.")


def cmd_status(state: AppState, args: list[str]) -> str:
    session = state.session
    sched = session.scheduler
    lines = [
        "Status:",
        f"  User: {session.user_id or '-'} (loaded: {'yes' if session.loaded else 'no'})",
        f"  Network: {'online' if session.online else 'offline'}",
        f"  Theme: {state.ui.theme}",
        f"  Tasks: {len(session.active_tasks)} active, {len(session.completed_tasks)} completed",
    ]
    for collection in Collection:
        err = sched.last_error(collection)
        tail = f" (last error: {err})" if err else ""
        lines.append(f"  Sync {collection.value}: {sched.state(collection).value}{tail}")
    return "\n".join(lines)


def cmd_online(state: AppState, args: list[str]) -> str:
    if not args:
        return f"Network is {'online' if state.session.online else 'offline'}. Use /online on|off."
    arg = args[0].lower()
    if arg in ("on", "1", "true", "yes"):
        state.session.set_online(True)
        return "Online."
    if arg in ("off", "0", "false", "no"):
        state.session.set_online(False)
        return "Offline. Edits are kept locally."
    return "Usage: /online on|off"


def cmd_theme(state: AppState, args: list[str]) -> str:
    if not args:
        state.ui.theme = "dark" if state.ui.theme == "light" else "light"
    elif args[0].lower() in ("light", "dark"):
        state.ui.theme = args[0].lower()
    else:
        return "Usage: /theme [light|dark]"
    return f"Theme: {state.ui.theme}"


async def cmd_user(state: AppState, args: list[str], emit: CommandEmitter | None = None) -> str:
    if len(args) != 1:
        return f"Signed in as {state.session.user_id or '-'}. Usage: /user <id>"
    if emit:
        emit(f"Loading tasks for {args[0]}...")
    # Pending writes for the previous user go out before the switch.
    await state.session.scheduler.flush_pending()
    await state.session.sign_in(args[0])
    return f"Signed in as {state.session.user_id}: {len(state.session.active_tasks)} active task(s)."


def _guard(fn: Callable[[AppState, list[str]], str]) -> Callable[[AppState, list[str]], str]:
    @functools.wraps(fn)
    def wrapper(state: AppState, args: list[str]) -> str:
        try:
            return fn(state, args)
        except _BadArgs as e:
            return str(e)

    return wrapper


registry.register("help", cmd_help, help_text="Show available commands.", aliases=["h", "?"])
registry.register("list", _guard(cmd_list), help_text="Show tasks: /list [due] [all].", aliases=["ls"])
registry.register("add", _guard(cmd_add), help_text="Add a task: /add <text> [| notes] [@YYYY-MM-DD].")
registry.register("sub", _guard(cmd_sub), help_text="Add a subtask: /sub <task> <text>.")
registry.register("check", _guard(cmd_check), help_text="Toggle a subtask: /check <task.sub>.")
registry.register("done", _guard(cmd_done), help_text="Toggle a task: /done <task|cN>.")
registry.register("due", _guard(cmd_due), help_text="Set a task due date: /due <task> <date|none>.")
registry.register("subdue", _guard(cmd_subdue), help_text="Set a subtask due date: /subdue <task.sub> <date|none>.")
registry.register("edit", _guard(cmd_edit), help_text="Edit title/notes: /edit <task|task.sub> <title> [| notes].")
registry.register("del", _guard(cmd_del), help_text="Delete a task: /del <task|cN>.")
registry.register("delsub", _guard(cmd_delsub), help_text="Delete a subtask: /delsub <task.sub>.")
registry.register("restore", _guard(cmd_restore), help_text="Reopen a completed task: /restore <cN>.")
registry.register("restoresub", _guard(cmd_restoresub), help_text="Reopen one subtask of a completed task: /restoresub <cN.M>.")
registry.register("unhide", _guard(cmd_unhide), help_text="Reopen a hidden subtask: /unhide <task.sub>.")
registry.register("expand", _guard(cmd_expand), help_text="Expand/collapse a task: /expand <task>.")
registry.register("move", _guard(cmd_move), help_text="Reorder: /move <task> <after-task|end>.")
registry.register("status", cmd_status, help_text="Show user, network and sync state.")
registry.register("online", cmd_online, help_text="Network hint: /online on|off.")
registry.register("theme", cmd_theme, help_text="Switch theme: /theme [light|dark].")
registry.register("user", cmd_user, help_text="Switch user: /user <id>.")
