# src/homeloop/cli/commands.py

from __future__ import annotations

import asyncio
import inspect
import logging
from collections.abc import Callable, Coroutine
from datetime import UTC, date, datetime
from typing import Any, TypeVar, cast

from ..core.state import AppState
from ..goals.goal_api import record_deduction
from ..goals.goal_models import previous_week_start, remaining_points, week_start_for

CommandEmitter = Callable[[str], None]
CommandHandler4 = Callable[[AppState, list[str], str | None, str | None], str]
CommandHandler5 = Callable[
    [AppState, list[str], str | None, str | None, CommandEmitter | None], str
]
CommandHandler = CommandHandler4 | CommandHandler5

T = TypeVar("T")

logger = logging.getLogger(__name__)


class CommandRegistry:
    """Simple slash-command registry used by the console (/help, /generate, ...)."""

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
        user_id: str | None = None,
        room_id: str | None = None,
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
            nparams = 5

        if nparams >= 5:
            h5 = cast(CommandHandler5, handler)
            return h5(state, args, user_id, room_id, emit)

        h4 = cast(CommandHandler4, handler)
        return h4(state, args, user_id, room_id)

    def build_help(self) -> str:
        lines = ["Available commands:"]
        for name, help_text in self._help.items():
            lines.append(f"  /{name} - {help_text}")
        return "\n".join(lines)


registry = CommandRegistry()


def _utc_today() -> date:
    return datetime.now(UTC).date()


def _parse_date_arg(args: list[str]) -> date | None:
    """First argument as YYYY-MM-DD, or None if absent. Raises ValueError on bad input."""
    if not args:
        return None
    return date.fromisoformat(args[0])


def run_on_engine(state: AppState, coro: Coroutine[Any, Any, T]) -> T:
    """
    Run an engine coroutine from the console thread.

    When the scheduler thread is running, the coroutine goes to its loop so the
    notifier (and its Matrix client) is only ever used from one loop.
    """
    runner = state.scheduler_runner
    if runner is not None:
        return cast(T, runner.submit(coro))
    return asyncio.run(coro)


def cmd_help(
    state: AppState,
    args: list[str],
    user_id: str | None,
    room_id: str | None,
    emit: CommandEmitter | None = None,
) -> str:
    return registry.build_help()


def cmd_status(
    state: AppState,
    args: list[str],
    user_id: str | None,
    room_id: str | None,
) -> str:
    sched = state.scheduler_state
    running = state.scheduler_runner is not None and state.scheduler_runner.thread.is_alive()
    lines = [
        "Status:",
        f"  Database: {state.settings.db_path}",
        f"  Scheduler: {'running' if running else 'stopped'}",
        f"  Last generation date: {sched.last_generation_date or '-'}",
        f"  Last settled week: {sched.last_settled_week or '-'}",
        f"  Schedules: {state.schedules.count_rows()}",
        f"  Tasks: {state.tasks.count_tasks()}",
        f"  Open goals: {state.goals.count_goals()}",
        f"  Notifier: {type(state.notifier).__name__}",
    ]
    for name, summary in state.last_results.items():
        lines.append(f"  Last {name}: {summary}")
    return "\n".join(lines)


def cmd_generate(
    state: AppState,
    args: list[str],
    user_id: str | None,
    room_id: str | None,
    emit: CommandEmitter | None = None,
) -> str:
    """
    /generate             -> generate tasks for today (UTC)
    /generate 2025-01-08  -> generate tasks for a specific date
    """
    try:
        day = _parse_date_arg(args) or _utc_today()
    except ValueError:
        return "Usage: /generate [YYYY-MM-DD]"

    if emit:
        emit(f"Generating tasks for {day}...")

    summary = run_on_engine(state, state.generator.generate_for_date(day))
    state.last_results["generation"] = summary.as_log_dict()
    return (
        f"Generation for {day}: {summary.created_count} created, "
        f"{summary.skipped_count} skipped, {summary.error_count} errors "
        f"({summary.total} schedules)."
    )


def cmd_catchup(
    state: AppState,
    args: list[str],
    user_id: str | None,
    room_id: str | None,
) -> str:
    """
    /catchup     -> run startup catch-up for today
    /catchup 3   -> replay the last 3 days as well
    """
    try:
        lookback = int(args[0]) if args else int(getattr(state.settings, "startup_lookback_days", 0))
    except ValueError:
        return "Usage: /catchup [days]"
    if lookback < 0:
        return "Usage: /catchup [days] (days must be >= 0)"

    summary = run_on_engine(state, state.generator.generate_missed_on_startup(lookback_days=lookback))
    state.last_results["catchup"] = summary.as_log_dict()
    return (
        f"Catch-up ({lookback} day(s) back): {summary.created_count} created, "
        f"{summary.skipped_count} skipped, {summary.error_count} errors."
    )


def cmd_settle(
    state: AppState,
    args: list[str],
    user_id: str | None,
    room_id: str | None,
    emit: CommandEmitter | None = None,
) -> str:
    """
    /settle             -> settle the previous week
    /settle 2025-01-05  -> settle the week containing that date
    """
    try:
        given = _parse_date_arg(args)
    except ValueError:
        return "Usage: /settle [YYYY-MM-DD]"

    week = week_start_for(given) if given is not None else previous_week_start(_utc_today())
    if emit:
        emit(f"Settling contribution goals for week starting {week}...")

    summary = run_on_engine(state, state.settlement.process_week(week))
    state.last_results["settlement"] = summary.as_log_dict()
    return (
        f"Settlement for week {week}: {summary.success_count}/{summary.total} goals settled, "
        f"{summary.points_awarded} points awarded, {summary.error_count} errors."
    )


def cmd_deduct(
    state: AppState,
    args: list[str],
    user_id: str | None,
    room_id: str | None,
) -> str:
    """/deduct <goal_id> <amount> [reason...]"""
    usage = "Usage: /deduct <goal_id> <amount> [reason...]"
    if len(args) < 2:
        return usage
    try:
        goal_id = int(args[0])
        amount = int(args[1])
    except ValueError:
        return usage
    reason = " ".join(args[2:]) or "manual deduction"

    try:
        goal = run_on_engine(
            state,
            record_deduction(
                state.goals, state.events, goal_id, amount=amount, reason=reason, recorded_by=user_id
            ),
        )
    except ValueError as e:
        return f"Deduction rejected: {e}"

    return f"Deducted {amount} from goal {goal.id} ({goal.title}); {remaining_points(goal)} points remaining."


registry.register("help", cmd_help, help_text="Show available commands.", aliases=["h", "?"])
registry.register("status", cmd_status, help_text="Show engine state and store counts.")
registry.register("generate", cmd_generate, help_text="Generate recurring tasks: /generate [YYYY-MM-DD].")
registry.register("catchup", cmd_catchup, help_text="Run startup catch-up: /catchup [days].")
registry.register("settle", cmd_settle, help_text="Settle contribution goals: /settle [YYYY-MM-DD].")
registry.register("deduct", cmd_deduct, help_text="Record a goal deduction: /deduct <goal_id> <amount> [reason].")
