from __future__ import annotations

import logging
import os
import sys
import weakref
from typing import Callable

from nicegui import ui

TRACE = 5

# SGR parameters per level number
_LEVEL_SGR = {
    TRACE: "32",  # green
    logging.DEBUG: "36",  # cyan
    logging.INFO: "37",  # light gray
    logging.WARNING: "33",  # yellow
    logging.ERROR: "31",  # red
    logging.CRITICAL: "41",  # red background
}
_DIM_SGR = "2"

LinkTag = Callable[[], str]


def _sgr(text: str, params: str) -> str:
    return f"\033[{params}m{text}\033[0m"


def _install_trace_level() -> None:
    logging.addLevelName(TRACE, "TRACE")
    if hasattr(logging.Logger, "trace"):
        return

    def trace(self, msg, *args, **kwargs):
        if self.isEnabledFor(TRACE):
            self._log(TRACE, msg, args, **kwargs)

    logging.Logger.trace = trace  # type: ignore[attr-defined]


_install_trace_level()

# Per-byte TX logging stays off unless explicitly enabled
TRACE_ENABLED = os.getenv("CARLINK_TRACE", "0").strip().lower() in ("1", "true", "yes", "on")


def level_from_name(name: str) -> int:
    """Map a level name (including TRACE) to its numeric value; unknown names give WARNING."""
    value = logging.getLevelName(name.strip().upper())
    return value if isinstance(value, int) else logging.WARNING


class AnsiColorFormatter(logging.Formatter):
    """Console lines as "HH:MM:SS LEVEL logger: message", colored when stderr is a TTY."""

    def __init__(self, colored: bool = True) -> None:
        super().__init__(datefmt="%H:%M:%S")
        self.colored = colored and sys.stderr.isatty()

    def format(self, record: logging.LogRecord) -> str:
        stamp = self.formatTime(record, self.datefmt)
        level = record.levelname
        if self.colored:
            stamp = _sgr(stamp, _DIM_SGR)
            if record.levelno in _LEVEL_SGR:
                level = _sgr(level, _LEVEL_SGR[record.levelno])
        line = f"{stamp} {level} {record.name}: {record.getMessage()}"
        if record.exc_info:
            line = f"{line}\n{self.formatException(record.exc_info)}"
        return line


# ---- UI log sink ----


class LinkLogHandler(logging.Handler):
    """
    Mirror log records into one ui.log widget, prefixed with the link state.

    Records arrive from the I/O worker as well as the UI thread. The widget is
    held weakly; once it is collected or its client is gone the handler goes
    inert and the next attach_ui_log() call removes it from the logger.
    """

    def __init__(
        self, widget: ui.log, tag: LinkTag | None = None, level: int = logging.INFO
    ) -> None:
        super().__init__(level=level)
        self._widget: weakref.ref | None = weakref.ref(widget)
        self.tag = tag
        self.setFormatter(logging.Formatter("%(asctime)s [%(levelname)s] %(message)s", "%H:%M:%S"))

    @property
    def widget(self) -> ui.log | None:
        return self._widget() if self._widget is not None else None

    @property
    def alive(self) -> bool:
        return self.widget is not None

    def emit(self, record: logging.LogRecord) -> None:
        widget = self.widget
        if widget is None:
            self._widget = None
            return
        line = self.format(record)
        if self.tag is not None:
            line = f"({self.tag()}) {line}"
        try:
            widget.push(line)
        except Exception:
            # Widget deleted with its client
            self._widget = None


def _ui_handlers(logger: logging.Logger) -> list[LinkLogHandler]:
    return [h for h in logger.handlers if isinstance(h, LinkLogHandler)]


def attach_ui_log(
    widget: ui.log,
    tag: LinkTag | None = None,
    level: int = logging.INFO,
    logger: logging.Logger | None = None,
) -> LinkLogHandler:
    """Start mirroring records of logger (root by default) into widget. Re-attaching replaces the tag."""
    logger = logger or logging.getLogger()
    for h in _ui_handlers(logger):
        if not h.alive:
            logger.removeHandler(h)
        elif h.widget is widget:
            h.tag = tag
            h.setLevel(level)
            return h
    handler = LinkLogHandler(widget, tag=tag, level=level)
    logger.addHandler(handler)
    return handler


def detach_ui_log(widget: ui.log, logger: logging.Logger | None = None) -> None:
    logger = logger or logging.getLogger()
    for h in _ui_handlers(logger):
        if not h.alive or h.widget is widget:
            logger.removeHandler(h)


def configure_logging(level: int = logging.INFO, use_color: bool = True) -> logging.Logger:
    """
    Set the root level and install one colored stderr handler.

    Repeated calls only update the level. UI widgets are attached separately
    with attach_ui_log().
    """
    logger = logging.getLogger()
    logger.setLevel(level)

    console = next(
        (h for h in logger.handlers if isinstance(h.formatter, AnsiColorFormatter)), None
    )
    if console is None:
        console = logging.StreamHandler(stream=sys.stderr)
        console.setFormatter(AnsiColorFormatter(colored=use_color))
        logger.addHandler(console)
    console.setLevel(level)
    return logger
