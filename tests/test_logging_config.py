from __future__ import annotations

import logging
from types import SimpleNamespace

import pytest

from carlink.common import logging_config
from carlink.common.logging_config import (
    TRACE,
    AnsiColorFormatter,
    LinkLogHandler,
    attach_ui_log,
    configure_logging,
    detach_ui_log,
    level_from_name,
)
from tests.utils.fake_log import BrokenLogWidget, FakeLogWidget


def _record(msg: str, level: int = logging.INFO) -> logging.LogRecord:
    return logging.LogRecord("carlink.test", level, __file__, 1, msg, None, None)


def _ui_handlers(logger: logging.Logger) -> list[LinkLogHandler]:
    return [h for h in logger.handlers if isinstance(h, LinkLogHandler)]


@pytest.mark.unit
def test_level_from_name():
    assert level_from_name("trace") == TRACE
    assert level_from_name(" DEBUG ") == logging.DEBUG
    assert level_from_name("nope") == logging.WARNING


@pytest.mark.unit
def test_logger_has_trace():
    logger = logging.getLogger("carlink.trace-test")
    logger.setLevel(TRACE)
    assert hasattr(logger, "trace")
    assert logging.getLevelName(TRACE) == "TRACE"


@pytest.mark.unit
def test_formatter_plain_when_not_a_tty():
    fmt = AnsiColorFormatter(colored=False)
    out = fmt.format(_record("Connected to ESP32-Car"))
    assert "\033[" not in out
    assert out.endswith("INFO carlink.test: Connected to ESP32-Car")


@pytest.mark.unit
def test_formatter_colors_level(monkeypatch: pytest.MonkeyPatch):
    tty = SimpleNamespace(stderr=SimpleNamespace(isatty=lambda: True))
    monkeypatch.setattr(logging_config, "sys", tty)
    fmt = AnsiColorFormatter(colored=True)
    out = fmt.format(_record("Write failed", logging.ERROR))
    assert "\033[31mERROR\033[0m" in out
    assert out.startswith("\033[2m")


@pytest.mark.unit
def test_configure_logging_is_idempotent():
    root = logging.getLogger()
    configure_logging(logging.DEBUG, use_color=False)
    count = len(root.handlers)
    configure_logging(logging.INFO, use_color=False)
    assert len(root.handlers) == count
    assert root.level == logging.INFO
    consoles = [h for h in root.handlers if isinstance(h.formatter, AnsiColorFormatter)]
    assert len(consoles) == 1
    assert consoles[0].level == logging.INFO
    assert _ui_handlers(root) == []


@pytest.mark.unit
def test_ui_log_prefixes_link_state():
    logger = logging.getLogger("carlink.ui-test")
    logger.setLevel(logging.INFO)
    logger.propagate = False
    state = {"value": "connecting"}
    widget = FakeLogWidget()
    attach_ui_log(widget, tag=lambda: state["value"], logger=logger)

    logger.info("Opened /dev/rfcomm0 at 115200 baud")
    state["value"] = "connected"
    logger.info("Moving Forward")
    logger.debug("below the sink level")

    assert len(widget.lines) == 2
    assert widget.lines[0].startswith("(connecting) ")
    assert widget.lines[0].endswith("[INFO] Opened /dev/rfcomm0 at 115200 baud")
    assert widget.lines[1].startswith("(connected) ")

    detach_ui_log(widget, logger=logger)
    logger.info("Stopped")
    assert len(widget.lines) == 2
    assert _ui_handlers(logger) == []


@pytest.mark.unit
def test_reattach_reuses_handler():
    logger = logging.getLogger("carlink.ui-reattach")
    widget = FakeLogWidget()
    first = attach_ui_log(widget, logger=logger)
    second = attach_ui_log(widget, tag=lambda: "connected", logger=logger)
    try:
        assert first is second
        assert _ui_handlers(logger) == [first]
        assert first.tag() == "connected"
    finally:
        detach_ui_log(widget, logger=logger)


@pytest.mark.unit
def test_dead_widget_goes_inert_and_is_pruned():
    logger = logging.getLogger("carlink.ui-prune")
    logger.setLevel(logging.INFO)
    logger.propagate = False
    broken, good = BrokenLogWidget(), FakeLogWidget()
    stale = attach_ui_log(broken, logger=logger)

    logger.info("Connection lost: failed to send command")
    assert not stale.alive

    attach_ui_log(good, logger=logger)
    assert _ui_handlers(logger) != [] and stale not in logger.handlers
    logger.info("Disconnected")
    assert len(good.lines) == 1
    detach_ui_log(good, logger=logger)
