"""Logging setup with per-search correlation ids."""

import logging
import sys
from contextvars import ContextVar

from shelf.config import get_settings

LOG_FORMAT = (
    "%(asctime)s | %(levelname)-8s | %(search_id)s | "
    "%(name)s:%(funcName)s:%(lineno)d | %(message)s"
)
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# Chatty HTTP loggers pulled in by the OpenAI SDK
_QUIET_LOGGERS = ("httpx", "httpcore", "openai")

search_id_var: ContextVar[str | None] = ContextVar("search_id", default=None)


class SearchIdFilter(logging.Filter):
    """Stamp each record with the id of the search that emitted it ("-" outside a search)."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.search_id = search_id_var.get() or "-"
        return True


class ColoredFormatter(logging.Formatter):
    """Console formatter that wraps the level name in ANSI colors."""

    COLORS = {
        "DEBUG": "\033[36m",
        "INFO": "\033[32m",
        "WARNING": "\033[33m",
        "ERROR": "\033[31m",
        "CRITICAL": "\033[35m",
    }
    RESET = "\033[0m"

    def format(self, record: logging.LogRecord) -> str:
        color = self.COLORS.get(record.levelname)
        if color is None:
            return super().format(record)

        # Format a copy so other handlers see the plain level name
        colored = logging.makeLogRecord(record.__dict__)
        colored.levelname = f"{color}{record.levelname}{self.RESET}"
        return super().format(colored)


def setup_logging() -> None:
    """Route all logging to stdout at the configured level.

    Colors are used only when stdout is a terminal. Any handlers already
    attached to the root logger are replaced.
    """
    level = get_settings().log_level

    formatter_cls = ColoredFormatter if sys.stdout.isatty() else logging.Formatter
    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(level)
    handler.setFormatter(formatter_cls(LOG_FORMAT, datefmt=DATE_FORMAT))
    handler.addFilter(SearchIdFilter())

    root = logging.getLogger()
    root.setLevel(level)
    root.handlers.clear()
    root.addHandler(handler)

    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    logging.getLogger(__name__).info(f"Logging configured with level: {level}")


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)


def set_search_id(search_id: str) -> None:
    """Bind a search id to the current async context."""
    search_id_var.set(search_id)


def clear_search_id() -> None:
    search_id_var.set(None)
