# src/homeloop/cli/main.py

"""
CLI entrypoint.

Initializes logging, builds AppState, then starts:
- the recurrence engine (startup catch-up + scheduler) in a background thread,
- the console REPL in the main thread (optional).
"""

from __future__ import annotations

import contextlib
import logging
import signal
import threading

from ..cli.bootstrap import create_initial_state
from ..config import get_settings
from ..connectors.console_connector import run_console_loop
from ..core.state import AppState
from ..logging_setup import setup_logging
from ..scheduler import start_scheduler_in_background

logger = logging.getLogger(__name__)


def _shutdown(state: AppState) -> None:
    """Close stores; nothing here may raise."""
    # Stores use short-lived sqlite connections per call; close() is a no-op hook.
    for store in (state.schedules, state.tasks, state.goals, state.members, state.ledger, state.activity):
        try:
            store.close()
        except Exception:
            logger.debug("Store close failed: %s", type(store).__name__, exc_info=True)


def main() -> None:
    settings = get_settings()

    level_name = str(getattr(settings, "log_level", "INFO")).upper()
    console_level = getattr(logging, level_name, logging.INFO)

    log_dir = getattr(settings, "data_dir", ".local/homeloop")
    setup_logging(log_dir=log_dir, console_level=console_level)

    logger.info("Starting %s...", getattr(settings, "app_name", "homeloop"))

    # Reuse the same settings object.
    state = create_initial_state(settings=settings)

    runner = start_scheduler_in_background(state)
    if runner is None:
        logger.error("Recurrence engine failed to start; console commands will run inline.")

    stop_main = threading.Event()

    def _handle_signal(signum, _frame) -> None:
        logger.info("Signal %s received, shutting down...", signum)
        stop_main.set()

    # SIGTERM is not available everywhere.
    with contextlib.suppress(ValueError, OSError, AttributeError):
        signal.signal(signal.SIGINT, _handle_signal)
        signal.signal(signal.SIGTERM, _handle_signal)

    try:
        if settings.console_enabled:
            run_console_loop(state)
            stop_main.set()
        else:
            logger.info("Console disabled. Running the scheduler only. Press Ctrl+C to stop.")
            stop_main.wait()
    finally:
        if runner is not None:
            runner.stop()
            runner.join(timeout=10.0)

        _shutdown(state)
        logger.info("Bye.")


if __name__ == "__main__":
    main()
