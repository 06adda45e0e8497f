from __future__ import annotations

import logging
import os
from typing import TYPE_CHECKING

import pytest

from carlink.common.logging_config import AnsiColorFormatter, LinkLogHandler
from carlink.services.controller import ConnectionController
from carlink.services.status import StatusPublisher
from carlink.state import StatusSnapshot
from tests.utils.fake_transport import CAR, FUTURE_TIMEOUT, OTHER, RecorderTransport

if TYPE_CHECKING:
    from collections.abc import Iterator


@pytest.fixture(scope="session", autouse=True)
def carlink_env_session() -> None:
    """
    Global test defaults (set at session start via os.environ):
      - No preselected port, so controllers start with nothing selected
      - Per-byte TX tracing off
    These can still be overridden per-test with monkeypatch.setenv if needed.
    """
    os.environ.pop("CARLINK_PORT", None)
    os.environ["CARLINK_TRACE"] = "0"


@pytest.fixture(autouse=True)
def restore_root_logging() -> Iterator[None]:
    """configure_logging() mutates the root logger; undo it after each test."""
    root = logging.getLogger()
    before, level = set(root.handlers), root.level
    yield
    for h in list(root.handlers):
        if h in before:
            continue
        if isinstance(h, LinkLogHandler) or isinstance(h.formatter, AnsiColorFormatter):
            root.removeHandler(h)
    root.setLevel(level)


@pytest.fixture
def transport() -> RecorderTransport:
    return RecorderTransport(endpoints=[CAR, OTHER])


@pytest.fixture
def snapshots() -> list[StatusSnapshot]:
    return []


@pytest.fixture
def controller(
    transport: RecorderTransport, snapshots: list[StatusSnapshot]
) -> Iterator[ConnectionController]:
    """Controller over a RecorderTransport; every published snapshot lands in `snapshots`."""
    publisher = StatusPublisher()
    publisher.subscribe(snapshots.append)
    ctl = ConnectionController(transport=transport, publisher=publisher)
    try:
        yield ctl
    finally:
        ctl.shutdown()


@pytest.fixture
def connected(controller: ConnectionController, transport: RecorderTransport) -> ConnectionController:
    """Controller already CONNECTED to CAR, with the initial speed byte written."""
    controller.select_endpoint(CAR)
    pending = controller.connect()
    assert pending is not None
    assert pending.result(timeout=FUTURE_TIMEOUT) is True
    assert transport.written == b"5"
    return controller
