# src/homeloop/scheduler.py

from __future__ import annotations

"""
External trigger for the recurrence engine.

A small polling loop that, on every tick:
- runs task generation once per UTC date (after daily_hour),
- runs settlement of the previous week once, on settlement_day_of_week after settlement_hour.

A job is marked as done only when its runner returned; if the runner raised
(e.g. the candidate fetch failed) the tick logs it and the next tick retries.

The engine runs in a background thread with its own event loop so the
blocking console REPL can stay in the main thread.
"""

import asyncio
import contextlib
import logging
import threading
from collections.abc import Callable, Coroutine
from dataclasses import dataclass, field
from datetime import UTC, date, datetime
from typing import TYPE_CHECKING, Any

from .goals.goal_models import previous_week_start
from .goals.settlement import ContributionSettlementRunner
from .tasks.recurrence import day_of_week
from .tasks.task_generator import TaskRecurrenceRunner

if TYPE_CHECKING:
    from .core.state import AppState

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(UTC)


@dataclass(slots=True, frozen=True)
class SchedulerConfig:
    interval_seconds: float = 60.0
    # Hours are UTC; day of week uses 0=Sunday.
    daily_hour: int = 0
    settlement_day_of_week: int = 0
    settlement_hour: int = 18

    @classmethod
    def from_settings(cls, settings) -> SchedulerConfig:
        return cls(
            interval_seconds=float(getattr(settings, "scheduler_interval_seconds", 60.0)),
            daily_hour=int(getattr(settings, "daily_generation_hour", 0)),
            settlement_day_of_week=int(getattr(settings, "settlement_day_of_week", 0)),
            settlement_hour=int(getattr(settings, "settlement_hour", 18)),
        )


@dataclass(slots=True)
class SchedulerState:
    last_generation_date: date | None = None
    last_settled_week: date | None = None
    runs: dict[str, int] = field(default_factory=lambda: {"generation": 0, "settlement": 0})


def generation_due(state: SchedulerState, now: datetime, config: SchedulerConfig) -> bool:
    return now.hour >= config.daily_hour and state.last_generation_date != now.date()


def settlement_week_due(state: SchedulerState, now: datetime, config: SchedulerConfig) -> date | None:
    """Week start to settle at `now`, or None when settlement is not due."""
    today = now.date()
    if day_of_week(today) != config.settlement_day_of_week or now.hour < config.settlement_hour:
        return None
    week = previous_week_start(today)
    if state.last_settled_week == week:
        return None
    return week


async def run_due_jobs(
    generator: TaskRecurrenceRunner,
    settlement: ContributionSettlementRunner,
    state: SchedulerState,
    now: datetime,
    config: SchedulerConfig,
) -> list[str]:
    """Run every job that is due at `now`. Returns the names of jobs that completed."""
    now = now.astimezone(UTC) if now.tzinfo is not None else now.replace(tzinfo=UTC)
    done: list[str] = []

    if generation_due(state, now, config):
        today = now.date()
        try:
            await generator.generate_for_date(today)
            state.last_generation_date = today
            state.runs["generation"] += 1
            done.append("generation")
        except Exception:
            logger.exception("Daily task generation failed date=%s; will retry next tick", today)

    week = settlement_week_due(state, now, config)
    if week is not None:
        try:
            await settlement.process_week(week)
            state.last_settled_week = week
            state.runs["settlement"] += 1
            done.append("settlement")
        except Exception:
            logger.exception("Weekly settlement failed week_start=%s; will retry next tick", week)

    return done


async def run_recurrence_scheduler(
    generator: TaskRecurrenceRunner,
    settlement: ContributionSettlementRunner,
    *,
    config: SchedulerConfig,
    state: SchedulerState | None = None,
    clock: Clock | None = None,
    stop_event: asyncio.Event | None = None,
) -> None:
    """
    Polling loop. Stops when `stop_event` is set or the coroutine is cancelled.
    """
    sleep_s = max(0.5, float(config.interval_seconds))
    state = state or SchedulerState()
    clock = clock or utc_now

    logger.info(
        "Recurrence scheduler started interval=%.1fs daily_hour=%d settlement=dow%d@%d",
        sleep_s,
        config.daily_hour,
        config.settlement_day_of_week,
        config.settlement_hour,
    )

    while stop_event is None or not stop_event.is_set():
        await run_due_jobs(generator, settlement, state, clock(), config)

        if stop_event is None:
            await asyncio.sleep(sleep_s)
            continue
        with contextlib.suppress(TimeoutError):
            await asyncio.wait_for(stop_event.wait(), timeout=sleep_s)

    logger.info("Recurrence scheduler stopped.")


# ---- Background thread ----


async def _run_engine(app: AppState, stop_event: asyncio.Event) -> None:
    settings = app.settings
    scheduler_state = app.scheduler_state

    today = utc_now().date()
    try:
        await app.generator.generate_missed_on_startup(
            today, lookback_days=int(getattr(settings, "startup_lookback_days", 0))
        )
        scheduler_state.last_generation_date = today
    except Exception:
        logger.exception("Startup task generation failed; the scheduler will retry")

    try:
        await run_recurrence_scheduler(
            app.generator,
            app.settlement,
            config=SchedulerConfig.from_settings(settings),
            state=scheduler_state,
            stop_event=stop_event,
        )
    finally:
        close = getattr(app.notifier, "close", None)
        if close is not None:
            with contextlib.suppress(Exception):
                await close()


@dataclass(slots=True)
class SchedulerBackgroundRunner:
    thread: threading.Thread
    loop: asyncio.AbstractEventLoop
    stop_event: asyncio.Event

    def submit(self, coro: Coroutine[Any, Any, Any], timeout: float | None = 300.0) -> Any:
        """Run `coro` on the engine loop from another thread and wait for its result."""
        fut = asyncio.run_coroutine_threadsafe(coro, self.loop)
        return fut.result(timeout=timeout)

    def stop(self) -> None:
        try:
            self.loop.call_soon_threadsafe(self.stop_event.set)
        except RuntimeError:
            logger.debug("Failed to signal scheduler stop.", exc_info=True)

    def join(self, timeout: float | None = None) -> None:
        self.thread.join(timeout=timeout)


def start_scheduler_in_background(app: AppState) -> SchedulerBackgroundRunner | None:
    """
    Start the engine (startup catch-up + polling loop) in a background thread.

    The console REPL blocks on input(); the engine is async and wants its own loop.
    """
    ready = threading.Event()
    holder: dict[str, object] = {}

    def runner() -> None:
        loop = asyncio.new_event_loop()
        asyncio.set_event_loop(loop)
        stop_event = asyncio.Event()

        holder["loop"] = loop
        holder["stop_event"] = stop_event
        ready.set()

        try:
            loop.run_until_complete(_run_engine(app, stop_event))
        except Exception:
            logger.exception("Scheduler thread crashed.")
        finally:
            loop.close()

    t = threading.Thread(target=runner, name="homeloop-scheduler", daemon=True)
    t.start()

    ready.wait(timeout=5.0)
    loop = holder.get("loop")
    stop_event = holder.get("stop_event")

    if not isinstance(loop, asyncio.AbstractEventLoop) or not isinstance(stop_event, asyncio.Event):
        logger.error("Scheduler thread did not initialize properly.")
        return None

    logger.info("Scheduler background thread started.")
    runner_handle = SchedulerBackgroundRunner(thread=t, loop=loop, stop_event=stop_event)
    app.scheduler_runner = runner_handle
    return runner_handle
