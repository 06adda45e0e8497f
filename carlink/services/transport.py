from __future__ import annotations

import errno
import logging
import threading
from typing import Callable, Protocol

import serial
from serial.tools import list_ports

from carlink.common.logging_config import TRACE_ENABLED
from carlink.constants import DEFAULT_BAUDRATE
from carlink.errors import IOFailure, PermissionDenied
from carlink.state import Endpoint


PermissionGate = Callable[[], bool]

_DENIED_ERRNOS = {errno.EACCES, errno.EPERM}


class EndpointSource(Protocol):
    """Supplies endpoints the host already knows about (paired/bonded ports)."""

    def list_endpoints(self) -> list[Endpoint]: ...

    def cancel_discovery(self) -> None: ...


def _endpoint_from_port(port) -> Endpoint:
    desc = port.description if port.description and port.description != "n/a" else None
    return Endpoint(address=port.device, name=desc, description=port.hwid)


class SerialPortSource:
    """
    Known serial ports as reported by pyserial.

    Paired Bluetooth SPP links show up as /dev/rfcomm* on Linux and as COM
    ports on Windows, so no active scan is needed.
    """

    def __init__(self, pattern: str | None = None, include_links: bool = False) -> None:
        self.pattern = pattern
        self.include_links = include_links

    def list_endpoints(self) -> list[Endpoint]:
        if self.pattern:
            ports = list(list_ports.grep(self.pattern, include_links=self.include_links))
        else:
            ports = list_ports.comports(include_links=self.include_links)
        return [_endpoint_from_port(p) for p in sorted(ports, key=lambda p: p.device)]

    def cancel_discovery(self) -> None:
        # Ports are enumerated, never scanned
        return None


def _is_permission_error(exc: BaseException) -> bool:
    if isinstance(exc, PermissionError):
        return True
    if getattr(exc, "errno", None) in _DENIED_ERRNOS:
        return True
    # Windows reports the cause only in the message
    text = str(exc)
    return "PermissionError" in text or "Access is denied" in text


class SerialTransport:
    """
    One bidirectional byte stream to the vehicle.

    - open() blocks until the port is open or fails; run it off the UI thread.
    - write() writes then flushes; no retry.
    - close() is idempotent and never raises.
    A failed open never leaves a half-open handle behind.
    """

    def __init__(
        self,
        source: EndpointSource | None = None,
        baudrate: int = DEFAULT_BAUDRATE,
        write_timeout: float | None = None,
        permission_gate: PermissionGate | None = None,
    ) -> None:
        self.source: EndpointSource = source or SerialPortSource()
        self.baudrate = baudrate
        self.write_timeout = write_timeout
        self.permission_gate = permission_gate
        self._port: serial.SerialBase | None = None
        self._endpoint: Endpoint | None = None
        self._lock = threading.Lock()

    @property
    def is_open(self) -> bool:
        port = self._port
        return port is not None and bool(port.is_open)

    @property
    def endpoint(self) -> Endpoint | None:
        return self._endpoint if self.is_open else None

    def list_known_endpoints(self) -> list[Endpoint]:
        """Known endpoints, or an empty list if the host query fails."""
        try:
            found = self.source.list_endpoints()
        except Exception as e:
            logging.warning("Endpoint query failed: %s", e)
            return []
        seen: set[str] = set()
        out: list[Endpoint] = []
        for ep in found:
            if ep.address not in seen:
                seen.add(ep.address)
                out.append(ep)
        return out

    def open(self, endpoint: Endpoint) -> None:
        """
        Open a byte stream to endpoint.

        Raises:
            PermissionDenied: permission gate refused, or the OS denied access
            IOFailure: peer unreachable, port missing or busy
        """
        with self._lock:
            self._close_locked()

            try:
                self.source.cancel_discovery()
            except Exception as e:
                logging.debug("cancel_discovery failed: %s", e)

            if self.permission_gate is not None and not self.permission_gate():
                raise PermissionDenied(f"access to {endpoint.display_name} not granted")

            try:
                port = serial.serial_for_url(
                    endpoint.address,
                    baudrate=self.baudrate,
                    write_timeout=self.write_timeout,
                )
            except (serial.SerialException, OSError, ValueError) as e:
                if _is_permission_error(e):
                    raise PermissionDenied(str(e)) from e
                raise IOFailure(str(e)) from e

            self._port = port
            self._endpoint = endpoint
        logging.info("Opened %s at %d baud", endpoint.address, self.baudrate)

    def write(self, data: bytes) -> int:
        """Write and flush. Raises IOFailure when the port is closed or the peer dropped."""
        with self._lock:
            port = self._port
            if port is None or not port.is_open:
                raise IOFailure("port is not open")
            try:
                n = port.write(data)
                port.flush()
            except (serial.SerialException, OSError) as e:
                raise IOFailure(str(e)) from e
        if TRACE_ENABLED:
            logging.getLogger().trace("TX %r", data)  # type: ignore[attr-defined]
        return n if n is not None else len(data)

    def close(self) -> None:
        with self._lock:
            self._close_locked()

    def _close_locked(self) -> None:
        port = self._port
        if port is None:
            return
        try:
            if port.is_open:
                port.flush()
            port.close()
        except Exception as e:
            logging.debug("Ignoring error while closing %s: %s", port.port, e)
        finally:
            self._port = None
            self._endpoint = None
        logging.info("Port closed")
