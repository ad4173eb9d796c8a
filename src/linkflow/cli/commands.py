# src/linkflow/cli/commands.py

from __future__ import annotations

import inspect
import logging
from collections.abc import Callable
from datetime import datetime
from typing import Any, cast

from ..core.errors import NotFoundError, StoreError, ValidationError
from ..core.state import AppState
from ..tasks import task_api
from ..tasks.task_models import Task

CommandEmitter = Callable[[str], None]
CommandHandler2 = Callable[[AppState, list[str]], str]
CommandHandler3 = Callable[[AppState, list[str], CommandEmitter | None], str]
CommandHandler = CommandHandler2 | CommandHandler3

logger = logging.getLogger(__name__)


class CommandRegistry:
    """Simple slash-command registry used by connectors (/help, /add, /done, ...)."""

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

    def handle(
        self,
        state: AppState,
        line: str,
        emit: CommandEmitter | None = None,
    ) -> str | None:
        """
        Handle a string like "/command args".
        Returns a reply string or None if not a command.

        Validation and not-found errors become a readable reply; store errors are logged.
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
                h3 = cast(CommandHandler3, handler)
                return h3(state, args, emit)
            h2 = cast(CommandHandler2, handler)
            return h2(state, args)
        except (ValidationError, NotFoundError) as err:
            return f"Error: {err}"
        except StoreError:
            logger.exception("Store error in /%s", name)
            return "Storage error, see log for details."

    def build_help(self) -> str:
        lines = ["Available commands:"]
        for name, help_text in self._help.items():
            lines.append(f"  /{name} - {help_text}")
        return "\n".join(lines)


registry = CommandRegistry()

_OPTION_KEYS = {"date", "time", "remind", "repeat", "list", "title"}


def _split_options(args: list[str]) -> tuple[list[str], dict[str, str], str | None]:
    """
    Split "/add" style args into (words, key=value options, detail after "--").
    Only known keys are treated as options; everything else stays a word.
    """
    words: list[str] = []
    options: dict[str, str] = {}
    detail: str | None = None

    for i, token in enumerate(args):
        if token == "--":
            detail = " ".join(args[i + 1 :]).strip() or None
            break
        key, sep, value = token.partition("=")
        if sep and key.lower() in _OPTION_KEYS:
            options[key.lower()] = value
        else:
            words.append(token)

    return words, options, detail


def _parse_remind(value: str) -> Any:
    v = value.strip().lower()
    if v in ("off", "none", "no"):
        return None
    if v in ("on", "yes"):
        return True
    try:
        minutes = int(v)
    except ValueError as err:
        raise ValidationError(f"remind= expects minutes, on or off (got {value!r})") from err
    return {"type": "relative", "offsetMinutes": minutes}


def _parse_repeat(value: str) -> Any:
    """daily | weekly:1,3 | monthly:5,31 | off"""
    v = value.strip().lower()
    if v in ("off", "none", "no"):
        return None

    kind, _, days_raw = v.partition(":")
    try:
        days = [int(d) for d in days_raw.split(",") if d.strip()]
    except ValueError as err:
        raise ValidationError(f"Invalid repeat days: {days_raw!r}") from err

    if kind == "weekly":
        return {"type": "weekly", "dayOfWeek": days}
    if kind == "monthly":
        return {"type": "monthly", "dayOfMonth": days}
    return {"type": kind}


def _resolve_task(state: AppState, ref: str) -> Task:
    """Accept a 1-based index from /tasks, a full task id, or a unique id prefix."""
    tasks = state.task_store.list_tasks()

    if ref.isdigit():
        idx = int(ref)
        if 1 <= idx <= len(tasks):
            return tasks[idx - 1]
        raise NotFoundError(f"No task #{ref}")

    needle = ref if ref.startswith("task_") else f"task_{ref}"
    matches = [t for t in tasks if t.id == ref or t.id.startswith(needle)]
    if len(matches) == 1:
        return matches[0]
    if not matches:
        raise NotFoundError(f"No task matches {ref!r}")
    raise ValidationError(f"Ambiguous task reference {ref!r} ({len(matches)} matches)")


def _format_task(index: int, task: Task) -> str:
    box = "x" if task.completed else " "
    parts = [f"{index:>3}. [{box}] {task.title}"]
    if task.due_date:
        parts.append(f"{task.due_date} {task.due_time or ''}".rstrip())
    if task.reminder is not None:
        parts.append(f"remind -{task.reminder.offset_minutes}m")
    if task.repeat_rule is not None:
        rule = task.repeat_rule
        days = rule.days_of_week or rule.days_of_month
        parts.append(f"repeat {rule.rule_type}" + (f":{','.join(map(str, days))}" if days else ""))
    parts.append(f"({task.id[:13]})")
    return "  ".join(parts)


def _fmt_ms(epoch_ms: int) -> str:
    return datetime.fromtimestamp(epoch_ms / 1000).astimezone().strftime("%Y-%m-%d %H:%M:%S")


def cmd_help(state: AppState, args: list[str]) -> str:
    return registry.build_help()


def cmd_status(state: AppState, args: list[str]) -> str:
    settings = state.settings
    nxt = task_api.debug_next_reminder(state)
    next_line = "none" if nxt is None else f"{nxt.task_title} at {_fmt_ms(nxt.remind_at)}"
    return (
        "Status:\n"
        f"  Database: {getattr(settings, 'db_path', '?')}\n"
        f"  Tasks: {state.task_store.count_tasks()}\n"
        f"  Fired reminders kept: {state.ledger.count()}\n"
        f"  Desktop notifications: {'ON' if getattr(settings, 'notifications_enabled', False) else 'OFF'}\n"
        f"  Next reminder: {next_line}"
    )


def cmd_lists(state: AppState, args: list[str]) -> str:
    lines = ["Lists:"]
    for item in state.task_store.list_lists():
        lines.append(f"  {item.icon} {item.name} ({item.id})")
    return "\n".join(lines)


def cmd_newlist(state: AppState, args: list[str]) -> str:
    item = state.task_store.create_list(" ".join(args))
    return f"List created: {item.name} ({item.id})"


def cmd_tasks(state: AppState, args: list[str]) -> str:
    """
    /tasks          -> all tasks
    /tasks <listid> -> only tasks of that list (numbering stays global)
    """
    tasks = state.task_store.list_tasks()
    if not tasks:
        return "No tasks yet. Use /add to create one."
    wanted = args[0] if args else None
    lines = [
        _format_task(i, t)
        for i, t in enumerate(tasks, start=1)
        if wanted is None or t.list_id == wanted
    ]
    return "\n".join(lines) if lines else f"No tasks in list {wanted}."


def cmd_add(state: AppState, args: list[str]) -> str:
    """
    /add Call mom date=2024-05-01 time=18:30 remind=15 repeat=weekly:0,3 list=list_life -- bring cake
    """
    words, opts, detail = _split_options(args)
    task = task_api.create_task(
        state,
        title=opts.get("title") or " ".join(words),
        list_id=opts.get("list"),
        detail=detail,
        due_date=opts.get("date"),
        due_time=opts.get("time"),
        reminder=_parse_remind(opts["remind"]) if "remind" in opts else None,
        repeat_rule=_parse_repeat(opts["repeat"]) if "repeat" in opts else None,
    )
    return f"Task created: {task.title} ({task.id[:13]})"


def cmd_edit(state: AppState, args: list[str]) -> str:
    """/edit <task> date=... time=... remind=... repeat=... list=... title=... [-- new detail]"""
    if not args:
        return "Usage: /edit <task> key=value ... [-- detail]"

    task = _resolve_task(state, args[0])
    _, opts, detail = _split_options(args[1:])

    changes: dict[str, Any] = {}
    if "title" in opts:
        changes["title"] = opts["title"]
    if "date" in opts:
        changes["due_date"] = opts["date"] or None
    if "time" in opts:
        changes["due_time"] = opts["time"] or None
    if "remind" in opts:
        changes["reminder"] = _parse_remind(opts["remind"])
    if "repeat" in opts:
        changes["repeat_rule"] = _parse_repeat(opts["repeat"])
    if "list" in opts:
        changes["list_id"] = opts["list"] or None
    if detail is not None:
        changes["detail"] = detail

    if not changes:
        return "Nothing to change."

    saved = task_api.edit_task(state, task.id, **changes)
    return f"Task saved: {_format_task(0, saved).split('. ', 1)[1]}"


def cmd_done(state: AppState, args: list[str]) -> str:
    if not args:
        return "Usage: /done <task>"
    task = task_api.toggle_task_completed(state, _resolve_task(state, args[0]).id)
    return f"{'Completed' if task.completed else 'Reopened'}: {task.title}"


def cmd_rm(state: AppState, args: list[str]) -> str:
    if not args:
        return "Usage: /rm <task>"
    task = _resolve_task(state, args[0])
    task_api.delete_task(state, task.id)
    return f"Deleted: {task.title}"


def cmd_next(state: AppState, args: list[str]) -> str:
    nxt = task_api.debug_next_reminder(state)
    if nxt is None:
        return "No pending reminders."
    return (
        f"Next reminder: {nxt.task_title} ({nxt.task_id[:13]})\n"
        f"  due {nxt.due_date} {nxt.time}, fires at {_fmt_ms(nxt.remind_at)} (in {nxt.delay_ms // 1000}s)"
    )


def cmd_export(state: AppState, args: list[str]) -> str:
    path = task_api.export_backup(state, " ".join(args))
    return f"Backup written to {path}"


def cmd_import(state: AppState, args: list[str], emit: CommandEmitter | None = None) -> str:
    if emit:
        emit("[BACKUP] Replacing all lists, schemes and tasks...")
    snap = task_api.import_backup(state, " ".join(args))
    return f"Backup imported: {len(snap.lists)} lists, {len(snap.tasks)} tasks, {len(snap.schemes)} schemes."


registry.register("help", cmd_help, help_text="Show available commands.", aliases=["h", "?"])
registry.register("status", cmd_status, help_text="Show database, counts and the next reminder.")
registry.register("lists", cmd_lists, help_text="Show lists.")
registry.register("newlist", cmd_newlist, help_text="Create a list: /newlist <name>.")
registry.register("tasks", cmd_tasks, help_text="Show tasks: /tasks [list_id].", aliases=["ls"])
registry.register(
    "add",
    cmd_add,
    help_text="Add a task: /add <title> [date=YYYY-MM-DD time=HH:MM remind=N repeat=weekly:1,3 list=ID] [-- detail].",
)
registry.register("edit", cmd_edit, help_text="Edit a task: /edit <task> key=value ... [-- detail].")
registry.register("done", cmd_done, help_text="Toggle completion: /done <task>.")
registry.register("rm", cmd_rm, help_text="Delete a task: /rm <task>.", aliases=["del"])
registry.register("next", cmd_next, help_text="Show the next reminder the scheduler will fire.")
registry.register("export", cmd_export, help_text="Export a JSON backup: /export <path>.")
registry.register("import", cmd_import, help_text="Import a JSON backup (replaces everything): /import <path>.")
