# src/homeloop/logging_setup.py

from __future__ import annotations

import logging
import sys
from pathlib import Path

LOG_FILE_NAME = "homeloop.log"

# Pass as `extra=` on per-schedule / per-goal lines. A daily run over a large
# household base emits one such line per record; the console keeps only the
# batch start/summary lines and anything at WARNING or above.
PER_RECORD = {"per_record": True}

_QUIET_HOMELOOP_LOGGERS = ("homeloop.notifications.dispatcher",)
_THIRD_PARTY_LOGGERS = ("nio", "aiohttp")


def is_per_record(record: logging.LogRecord) -> bool:
    return bool(getattr(record, "per_record", False))


class BatchConsoleFilter(logging.Filter):
    """
    Console view of a running engine.

    homeloop records pass, except per-record outcomes below WARNING and the
    Matrix dispatcher chatter below WARNING. Everything else (nio, aiohttp,
    py.warnings) needs ERROR.
    """

    def filter(self, record: logging.LogRecord) -> bool:
        if not record.name.startswith("homeloop"):
            return record.levelno >= logging.ERROR

        if record.levelno >= logging.WARNING:
            return True
        if record.name in _QUIET_HOMELOOP_LOGGERS:
            return False
        return not is_per_record(record)


def _formatter() -> logging.Formatter:
    return logging.Formatter(
        fmt="%(asctime)s.%(msecs)03d %(levelname)s %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )


def setup_logging(
    *,
    log_dir: str | Path = ".local/homeloop",
    console_level: int = logging.INFO,
    file_level: int = logging.DEBUG,
) -> Path:
    """
    Console gets batch summaries; `<log_dir>/homeloop.log` gets every record.

    Replaces existing root handlers, so calling it twice does not duplicate output.
    Returns the log file path.
    """
    log_file = Path(log_dir) / LOG_FILE_NAME
    log_file.parent.mkdir(parents=True, exist_ok=True)

    root = logging.getLogger()
    root.setLevel(logging.DEBUG)
    for h in list(root.handlers):
        root.removeHandler(h)
        h.close()

    console = logging.StreamHandler(sys.stderr)
    console.setLevel(console_level)
    console.addFilter(BatchConsoleFilter())

    file = logging.FileHandler(str(log_file), encoding="utf-8")
    file.setLevel(file_level)

    for handler in (console, file):
        handler.setFormatter(_formatter())
        root.addHandler(handler)

    logging.captureWarnings(True)
    for name in _THIRD_PARTY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    return log_file
