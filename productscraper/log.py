"""Console logging for scraper runs.

Wraps a stdlib ``logging.Logger`` with the helpers the scrapers lean on:
a SUCCESS level, step counters, timers, dividers and per-field ✓/✗ lines.
"""

from __future__ import annotations

import json
import logging
import os
import sys
import time
import traceback
from typing import Any

SUCCESS = 25
logging.addLevelName(SUCCESS, "SUCCESS")


class Colors:
    """ANSI color codes for terminal output."""

    RESET = "\033[0m"
    BOLD = "\033[1m"
    DIM = "\033[2m"

    RED = "\033[31m"
    GREEN = "\033[32m"
    YELLOW = "\033[33m"
    CYAN = "\033[36m"
    GRAY = "\033[90m"


LEVEL_COLORS = {
    "DEBUG": Colors.GRAY,
    "INFO": Colors.CYAN,
    "WARNING": Colors.YELLOW,
    "ERROR": Colors.RED,
    "SUCCESS": Colors.GREEN,
}

LEVEL_ICONS = {
    "DEBUG": "  ",
    "INFO": "i ",
    "WARNING": "! ",
    "ERROR": "X ",
    "SUCCESS": "* ",
}


class ConsoleFormatter(logging.Formatter):
    """Timestamped, color-coded formatter.

    Records logged with ``extra={"raw": True}`` are printed as-is (dividers,
    field lines, data dumps).
    """

    def format(self, record: logging.LogRecord) -> str:
        message = record.getMessage()
        if getattr(record, "raw", False):
            return message

        timestamp = time.strftime("%Y-%m-%dT%H:%M:%S", time.gmtime(record.created))
        timestamp = f"{timestamp}.{int(record.msecs):03d}Z"
        level = record.levelname
        color = LEVEL_COLORS.get(level, "")
        icon = LEVEL_ICONS.get(level, "  ")
        label = "WARN" if level == "WARNING" else level
        return f"{Colors.DIM}[{timestamp}]{Colors.RESET} {color}[{icon}{label}]{Colors.RESET} {message}"


def format_data(data: Any) -> str:
    if isinstance(data, str):
        return data
    try:
        return json.dumps(data, indent=2, default=str, ensure_ascii=False)
    except (TypeError, ValueError):
        return str(data)


def format_field_value(value: Any) -> str:
    """Render an extracted value for a ✓/✗ field line."""
    if value is None:
        return f"{Colors.DIM}null{Colors.RESET}"
    if isinstance(value, str) and len(value) > 50:
        return f'"{value[:47]}..."'
    if isinstance(value, (list, tuple)):
        return f"[{len(value)} items]"
    if isinstance(value, dict):
        return f"{{{len(value)} keys}}"
    return json.dumps(value, default=str, ensure_ascii=False)


def format_duration(ms: float) -> str:
    if ms < 1000:
        return f"{int(ms)}ms"
    return f"{ms / 1000:.1f}s"


class ScrapeLogger:
    """Leveled logger with scraper-specific helpers."""

    def __init__(self, name: str = "productscraper", debug: bool = False, stream=None):
        self._logger = logging.getLogger(name)
        self._logger.propagate = False
        if not self._logger.handlers:
            handler = logging.StreamHandler(stream or sys.stdout)
            handler.setFormatter(ConsoleFormatter())
            self._logger.addHandler(handler)

        self._timers: dict[str, float] = {}
        self.current_step = 0
        self.total_steps = 0
        self.set_debug(debug or os.environ.get("DEBUG") == "true")

    @property
    def logger(self) -> logging.Logger:
        return self._logger

    def _raw(self, message: str, level: int = logging.INFO) -> None:
        self._logger.log(level, message, extra={"raw": True})

    def _data(self, data: Any, color: str, level: int = logging.INFO) -> None:
        if data is not None:
            self._raw(f"{color}{format_data(data)}{Colors.RESET}", level)

    def debug(self, message: str, data: Any = None) -> None:
        if not self._logger.isEnabledFor(logging.DEBUG):
            return
        self._logger.debug(message)
        self._data(data, Colors.GRAY, logging.DEBUG)

    def info(self, message: str, data: Any = None) -> None:
        self._logger.info(message)
        self._data(data, Colors.DIM)

    def warn(self, message: str, data: Any = None) -> None:
        self._logger.warning(message)
        self._data(data, Colors.YELLOW, logging.WARNING)

    warning = warn

    def error(self, message: str, error: BaseException | Any = None) -> None:
        self._logger.error(message)
        if error is None:
            return
        if isinstance(error, BaseException):
            self._raw(f"{Colors.RED}{error}{Colors.RESET}", logging.ERROR)
            if self.is_debug_enabled() and error.__traceback__ is not None:
                tb = "".join(traceback.format_exception(type(error), error, error.__traceback__))
                self._raw(f"{Colors.DIM}{tb}{Colors.RESET}", logging.ERROR)
        else:
            self._data(error, Colors.RED, logging.ERROR)

    def success(self, message: str, data: Any = None) -> None:
        self._logger.log(SUCCESS, message)
        self._data(data, Colors.GREEN, SUCCESS)

    def step(self, step_number: int, total_steps: int, description: str) -> None:
        self.current_step = step_number
        self.total_steps = total_steps
        self.info(f"{Colors.BOLD}Step [{step_number}/{total_steps}]{Colors.RESET} {description}")

    def start_timer(self, label: str) -> None:
        self._timers[label] = time.perf_counter()
        self.debug(f"Timer started: {label}")

    def end_timer(self, label: str) -> int:
        """Stop a timer and return the elapsed milliseconds (0 if unknown)."""
        started = self._timers.pop(label, None)
        if started is None:
            self.warn(f"Timer '{label}' not found")
            return 0
        duration = int((time.perf_counter() - started) * 1000)
        self.debug(f"Timer ended: {label} ({format_duration(duration)})")
        return duration

    def divider(self, title: str | None = None) -> None:
        if not title:
            self._raw(f"{Colors.DIM}{'─' * 62}{Colors.RESET}")
            return
        line = "═" * 60
        self._raw(f"{Colors.DIM}╔{line}╗{Colors.RESET}")
        self._raw(f"{Colors.DIM}║{Colors.BOLD}{title.center(60)}{Colors.RESET}{Colors.DIM}║{Colors.RESET}")
        self._raw(f"{Colors.DIM}╚{line}╝{Colors.RESET}")

    def field(self, field_name: str, value: Any, success: bool = True) -> None:
        status = f"{Colors.GREEN}✓" if success else f"{Colors.RED}✗"
        self._raw(
            f"  {status}{Colors.RESET} {Colors.BOLD}{field_name}:{Colors.RESET} {format_field_value(value)}"
        )

    def selector(self, name: str, selector: str, found: bool) -> None:
        status = f"{Colors.GREEN}found" if found else f"{Colors.RED}not found"
        self.debug(f'Selector [{name}]: "{selector}" - {status}{Colors.RESET}')

    def html(self, label: str, snippet: str, max_length: int = 500) -> None:
        if not self.is_debug_enabled():
            return
        truncated = snippet[:max_length] + "..." if len(snippet) > max_length else snippet
        self._raw(f"{Colors.DIM}[HTML: {label}]{Colors.RESET}", logging.DEBUG)
        self._raw(f"{Colors.GRAY}{truncated}{Colors.RESET}", logging.DEBUG)

    def screenshot(self, path: str) -> None:
        self.info(f"Screenshot saved: {Colors.CYAN}{path}{Colors.RESET}")

    def set_debug(self, enabled: bool) -> None:
        self._logger.setLevel(logging.DEBUG if enabled else logging.INFO)

    def is_debug_enabled(self) -> bool:
        return self._logger.isEnabledFor(logging.DEBUG)


logger = ScrapeLogger()
