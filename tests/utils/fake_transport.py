from __future__ import annotations

import threading
import time

from carlink.errors import IOFailure
from carlink.state import Endpoint

from .types import WriteEvent


class RecorderTransport:
    """Records writes while acting as the transport for hardware-free controller tests."""

    def __init__(self, endpoints: list[Endpoint] | None = None) -> None:
        self.endpoints = list(endpoints or [])
        self.writes: list[WriteEvent] = []
        self.opened: list[Endpoint] = []
        self.close_calls = 0
        self.open_error: Exception | None = None
        self.write_error: Exception | None = None
        self.list_error: Exception | None = None
        # Cleared -> open() blocks until the test sets it
        self.open_gate = threading.Event()
        self.open_gate.set()
        self.open_started = threading.Event()
        self._open = False
        self._active_writers = 0
        self.max_concurrent_writers = 0
        self._lock = threading.Lock()

    @property
    def is_open(self) -> bool:
        return self._open

    @property
    def written(self) -> bytes:
        return b"".join(w.data for w in self.writes)

    def list_known_endpoints(self) -> list[Endpoint]:
        if self.list_error is not None:
            return []
        return list(self.endpoints)

    def open(self, endpoint: Endpoint) -> None:
        self.open_started.set()
        self.open_gate.wait(timeout=5.0)
        if self.open_error is not None:
            self._open = False
            raise self.open_error
        self.opened.append(endpoint)
        self._open = True

    def write(self, data: bytes) -> int:
        with self._lock:
            self._active_writers += 1
            self.max_concurrent_writers = max(self.max_concurrent_writers, self._active_writers)
        try:
            if not self._open:
                raise IOFailure("port is not open")
            if self.write_error is not None:
                raise self.write_error
            self.writes.append(WriteEvent(data=data, t=time.monotonic()))
            return len(data)
        finally:
            with self._lock:
                self._active_writers -= 1

    def close(self) -> None:
        self.close_calls += 1
        self._open = False


CAR = Endpoint(address="/dev/rfcomm0", name="ESP32-Car")
OTHER = Endpoint(address="/dev/ttyUSB0", name=None)

FUTURE_TIMEOUT = 5.0
