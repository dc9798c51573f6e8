"""
Logging setup for autorebase.

Every line carries the event it belongs to (``owner/repo@<delivery id>``, or
``autorebase-system`` outside of an event). The console output highlights the
steps of the rebase/merge cycle; the optional log file stays plain.
"""

from __future__ import annotations

import contextvars
import logging
import os
import sys
from datetime import date
from logging.handlers import RotatingFileHandler
from pathlib import Path

DEFAULT_EVENT_CONTEXT = "autorebase-system"

LOG_FORMAT = "[%(asctime)s] %(levelname)s %(event_context)s %(name)s: %(message)s"

# Task-local under asyncio: each handled event runs in its own task
_event_context: contextvars.ContextVar[str] = contextvars.ContextVar(
    "event_context", default=DEFAULT_EVENT_CONTEXT
)


def set_event_context(repo: str | None = None, event_id: str | None = None) -> None:
    """Tag subsequent log lines with the event being handled.

    Args:
        repo: Repository in 'owner/repo' format
        event_id: Webhook delivery identifier
    """
    _event_context.set(f"{repo}@{event_id}" if repo and event_id else DEFAULT_EVENT_CONTEXT)


def clear_event_context() -> None:
    _event_context.set(DEFAULT_EVENT_CONTEXT)


def get_event_context() -> str:
    return _event_context.get()


class Colors:
    """ANSI escape sequences used by the console formatter."""

    RESET = "\033[0m"
    RED = "\033[31m"
    GREEN = "\033[32m"
    YELLOW = "\033[33m"
    BLUE = "\033[34m"
    MAGENTA = "\033[35m"
    GRAY = "\033[90m"
    ORANGE = "\033[38;5;208m"


# Keyword -> (color, prefix) for INFO lines; first match wins
SEMANTIC_COLORS = {
    "rebasing": ("green", ">>>"),
    "merging": ("green", ">>>"),
    "received event": ("green", ">>>"),
    "rebased": ("green", "✓"),
    "merged": ("green", "✓"),
    "lock released": ("green", "✓"),
    "lock acquired": ("magenta", "🔒"),
    "aborting": ("magenta", "🔒"),
    "deleted reference": ("blue", "🧹"),
    "removed worktree": ("blue", "🧹"),
    "skipping": ("gray", "⊘"),
    "nop": ("gray", "⊘"),
    "no pull request": ("gray", "⊘"),
    "denied": ("orange", "✋"),
}


class DateRotatingFileHandler(RotatingFileHandler):
    """RotatingFileHandler whose backups carry the rotation date.

    ``autorebase.log.1`` becomes ``autorebase.2024-01-15.log.1``.
    """

    def rotation_filename(self, default_name: str) -> str:
        current = Path(self.baseFilename)
        counter = default_name[len(self.baseFilename) :]
        today = date.today().isoformat()
        if current.suffix:
            name = f"{current.stem}.{today}{current.suffix}{counter}"
        else:
            name = f"{current.name}.{today}{counter}"
        return str(current.with_name(name))


class ColoredFormatter(logging.Formatter):
    """Colors errors red, warnings yellow, and INFO lines by what they report."""

    COLOR_MAP = {
        "green": Colors.GREEN,
        "blue": Colors.BLUE,
        "magenta": Colors.MAGENTA,
        "yellow": Colors.YELLOW,
        "gray": Colors.GRAY,
        "red": Colors.RED,
        "orange": Colors.ORANGE,
    }

    def _get_semantic_color(self, message: str) -> tuple[str, str] | None:
        lowered = message.lower()
        return next(
            (style for keyword, style in SEMANTIC_COLORS.items() if keyword in lowered),
            None,
        )

    def format(self, record: logging.LogRecord) -> str:
        text = super().format(record)

        if record.levelno >= logging.WARNING:
            color = Colors.RED if record.levelno >= logging.ERROR else Colors.YELLOW
            return f"{color}{text}{Colors.RESET}"

        if record.levelno == logging.INFO:
            style = self._get_semantic_color(record.getMessage())
            if style is not None:
                color_name, prefix = style
                return f"{self.COLOR_MAP[color_name]}{prefix} {text}{Colors.RESET}"

        return text


class ContextAwareFormatter(ColoredFormatter):
    """Console formatter adding the current event context."""

    def format(self, record: logging.LogRecord) -> str:
        record.event_context = get_event_context()
        return super().format(record)


class PlainContextAwareFormatter(logging.Formatter):
    """File formatter adding the current event context, without colors."""

    def format(self, record: logging.LogRecord) -> str:
        record.event_context = get_event_context()
        return super().format(record)


def _console_handlers() -> list[logging.Handler]:
    formatter = ContextAwareFormatter(LOG_FORMAT)

    # DEBUG/INFO go to stdout, WARNING and above to stderr
    stdout_handler = logging.StreamHandler(sys.stdout)
    stdout_handler.setLevel(logging.DEBUG)
    stdout_handler.addFilter(lambda record: record.levelno < logging.WARNING)

    stderr_handler = logging.StreamHandler(sys.stderr)
    stderr_handler.setLevel(logging.WARNING)

    for handler in (stdout_handler, stderr_handler):
        handler.setFormatter(formatter)
    return [stdout_handler, stderr_handler]


def _file_handler(log_file: str, log_size: int, log_backups: int) -> logging.Handler | None:
    try:
        Path(log_file).parent.mkdir(parents=True, exist_ok=True)
        handler = DateRotatingFileHandler(log_file, maxBytes=log_size, backupCount=log_backups)
    except OSError as e:
        print(f"[logger] Failed to create file handler: {e}", file=sys.stderr)
        return None
    handler.setLevel(logging.DEBUG)
    handler.setFormatter(PlainContextAwareFormatter(LOG_FORMAT))
    return handler


def setup_logging(
    log_file: str | None = None,
    log_size: int = 10 * 1024 * 1024,
    log_backups: int = 5,
) -> None:
    """
    Replace the root logger's handlers with the autorebase ones.

    The level comes from the LOG_LEVEL environment variable (default INFO).

    Args:
        log_file: Optional path of a rotating log file, in addition to the console
        log_size: Bytes before the log file is rotated
        log_backups: Rotated files to keep
    """
    level_name = os.getenv("LOG_LEVEL", "INFO").upper()

    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, level_name, logging.INFO))
    root_logger.handlers.clear()

    for handler in _console_handlers():
        root_logger.addHandler(handler)

    if log_file:
        file_handler = _file_handler(log_file, log_size, log_backups)
        if file_handler is not None:
            root_logger.addHandler(file_handler)


def get_logger(name: str) -> logging.Logger:
    """Module logger; call with ``__name__``."""
    return logging.getLogger(name)
