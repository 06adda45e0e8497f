from __future__ import annotations

import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor

from carlink.errors import IOFailure, NoEndpointSelected, NotConnected, PermissionDenied
from carlink.services import codec
from carlink.services.codec import AngleCommand, Command, Movement, SpeedCommand
from carlink.services.status import StatusPublisher
from carlink.services.transport import SerialTransport
from carlink.state import ConnectionState, Endpoint

MSG_SELECT_FIRST = "Please select a device first"
MSG_NOT_CONNECTED = "Not connected to any device"
MSG_DISCONNECTED = "Disconnected"
MSG_LINK_LOST = "Connection lost: failed to send command"
MSG_NO_DEVICES = "No known devices. Pair or plug in the vehicle first."
MSG_PERMISSION = "Permission denied. Please grant access to the device."


class ConnectionController:
    """
    Owns the link to the vehicle.

    State machine: DISCONNECTED -> CONNECTING -> CONNECTED -> DISCONNECTED.
    Every open/write/close runs on a single I/O worker thread, so calls from
    the UI never block on the stream and writes never interleave. Operations
    that queue I/O return the worker Future (or None when nothing was queued).

    Failures are reported through the StatusPublisher only; nothing is raised
    to the caller and nothing is retried. All publishing happens under the
    controller lock, so subscribers see snapshots in transition order.
    """

    def __init__(
        self,
        transport: SerialTransport | None = None,
        publisher: StatusPublisher | None = None,
        default_speed: float = 0.5,
    ) -> None:
        self._transport = transport or SerialTransport()
        self._publisher = publisher or StatusPublisher()
        self._worker: threading.Thread | None = None
        self._executor = ThreadPoolExecutor(
            max_workers=1, thread_name_prefix="carlink-io", initializer=self._mark_worker
        )
        self._lock = threading.RLock()

        self._state = ConnectionState.DISCONNECTED
        self._endpoints: list[Endpoint] = []
        self._selected: Endpoint | None = None
        self._speed = codec.speed_level(default_speed)
        self._angle = self._publisher.snapshot.angle
        # Last wire code accepted for transmission, per debounced channel
        self._last_codes: dict[type, str] = {}
        # Bumped whenever a session ends; stale worker completions compare against it
        self._session = 0
        self._closed = False
        self._io_stopped = False

        with self._lock:
            self._publish(speed=self._speed)

    # ---- Accessors ----

    @property
    def publisher(self) -> StatusPublisher:
        return self._publisher

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def selected(self) -> Endpoint | None:
        return self._selected

    @property
    def endpoints(self) -> list[Endpoint]:
        return list(self._endpoints)

    @property
    def speed(self) -> int:
        return self._speed

    @property
    def angle(self) -> float:
        return self._angle

    # ---- Discovery / selection ----

    def refresh_endpoints(self) -> list[Endpoint]:
        """Re-read known endpoints on the calling thread and publish them."""
        endpoints = self._transport.list_known_endpoints()
        if endpoints:
            message = f"Found {len(endpoints)} device(s)"
        else:
            message = MSG_NO_DEVICES
        logging.info(message)
        with self._lock:
            self._endpoints = list(endpoints)
            self._publish(endpoints=tuple(endpoints), message=message)
        return list(endpoints)

    def select_endpoint(self, endpoint: Endpoint) -> None:
        logging.info("Selected %s", endpoint.address)
        with self._lock:
            self._selected = endpoint
            self._publish(selected=endpoint)

    # ---- Lifecycle ----

    def connect(self) -> Future[bool] | None:
        """Start connecting to the selected endpoint. No-op unless DISCONNECTED."""
        with self._lock:
            if self._closed:
                logging.warning("connect() after shutdown ignored")
                return None
            endpoint = self._selected
            if endpoint is None:
                logging.warning("connect: %s", NoEndpointSelected(MSG_SELECT_FIRST))
                self._publish(message=MSG_SELECT_FIRST)
                return None
            if self._state is not ConnectionState.DISCONNECTED:
                logging.info("connect() ignored while %s", self._state.value)
                return None
            self._state = ConnectionState.CONNECTING
            self._publish_state(f"Connecting to {endpoint.display_name}...")
            return self._executor.submit(self._open, endpoint, self._session)

    def disconnect(self) -> Future[None] | None:
        """Force DISCONNECTED and close the stream. Safe in any state, safe to repeat."""
        with self._lock:
            if self._state is not ConnectionState.DISCONNECTED:
                logging.info("Disconnecting (was %s)", self._state.value)
            self._end_session_locked()
            self._publish_state(MSG_DISCONNECTED)
            if not self._io_stopped:
                # Queued behind any in-flight open, so a handle it produces gets closed too
                return self._executor.submit(self._transport.close)
        self._transport.close()
        return None

    def shutdown(self) -> None:
        """
        Release everything. The owner calls this once; later calls do nothing.

        Safe from a subscriber: when called on the I/O worker it does not wait
        for the worker, and the queued close still runs after the current task.
        """
        with self._lock:
            if self._closed:
                return
            self._closed = True
        self.disconnect()
        with self._lock:
            self._io_stopped = True
        self._executor.shutdown(wait=threading.current_thread() is not self._worker)
        with self._lock:
            self._selected = None
            self._publish(selected=None)
        self._transport.close()
        logging.info("Controller shut down")

    # ---- Commands ----

    def send(self, command: Command) -> Future[bool] | None:
        """Transmit one command if CONNECTED; otherwise report and do no I/O."""
        return self._dispatch(command, debounce=False)

    def set_speed(self, fraction: float) -> Future[bool] | None:
        """
        Update the speed level and transmit only if its wire code changed.

        The published level stays within 0..10; the byte sent is the code for
        the raw step, so out-of-range input goes out as the fallback code.
        """
        level = codec.speed_level(fraction)
        with self._lock:
            self._speed = level
            self._publish(speed=level)
            return self._dispatch(SpeedCommand(codec.speed_step(fraction)), debounce=True)

    def set_angle(self, degrees: float) -> Future[bool] | None:
        """Update the servo angle and transmit only if its bucket changed."""
        angle = codec.clamp_angle(degrees)
        with self._lock:
            self._angle = angle
            self._publish(angle=angle)
            return self._dispatch(AngleCommand(angle), debounce=True)

    def on_action_start(self, movement: Movement) -> Future[bool] | None:
        """Press of a drive control."""
        return self.send(movement)

    def on_action_end(self) -> Future[bool] | None:
        """Release of a drive control."""
        return self.send(Movement.STOP)

    # ---- Internals ----

    def _mark_worker(self) -> None:
        self._worker = threading.current_thread()

    def _dispatch(self, command: Command, debounce: bool) -> Future[bool] | None:
        code = codec.wire_code(command)
        channel = None if isinstance(command, Movement) else type(command)
        with self._lock:
            if debounce and channel is not None and self._last_codes.get(channel) == code:
                return None
            if self._state is not ConnectionState.CONNECTED or self._closed:
                logging.debug("send %r: %s", code, NotConnected(MSG_NOT_CONNECTED))
                self._publish(message=MSG_NOT_CONNECTED)
                return None
            if channel is not None:
                self._last_codes[channel] = code
            return self._executor.submit(self._write, command, self._session)

    def _open(self, endpoint: Endpoint, session: int) -> bool:
        # Runs on the I/O worker
        try:
            self._transport.open(endpoint)
        except PermissionDenied as e:
            logging.warning("Connect to %s denied: %s", endpoint.address, e)
            self._fail_connect(session, MSG_PERMISSION)
            return False
        except IOFailure as e:
            logging.error("Connect to %s failed: %s", endpoint.address, e)
            self._fail_connect(session, f"Connection failed: {e}. Check if device is powered on.")
            return False

        with self._lock:
            if self._session != session or self._state is not ConnectionState.CONNECTING:
                # Operator disconnected while we were opening; the queued close releases the port
                logging.info("Connect to %s superseded by disconnect", endpoint.address)
                return False
            self._state = ConnectionState.CONNECTED
            logging.info("Connected to %s", endpoint.address)
            self._publish_state(f"Connected to {endpoint.display_name}")
            speed = SpeedCommand(self._speed)
            self._last_codes[SpeedCommand] = codec.wire_code(speed)

        # A fresh link inherits the operator's last speed
        return self._write(speed, session)

    def _write(self, command: Command, session: int) -> bool:
        # Runs on the I/O worker
        with self._lock:
            if self._session != session or self._state is not ConnectionState.CONNECTED:
                return False
        try:
            self._transport.write(codec.encode(command))
        except IOFailure as e:
            logging.error("Write failed, dropping link: %s", e)
            self._transport.close()
            with self._lock:
                if self._session == session:
                    self._end_session_locked()
                    self._publish_state(MSG_LINK_LOST)
            return False
        with self._lock:
            if self._session == session:
                self._publish(message=codec.describe(command))
        return True

    def _fail_connect(self, session: int, message: str) -> None:
        with self._lock:
            if self._session != session:
                return
            self._end_session_locked()
            self._publish_state(message)

    def _end_session_locked(self) -> None:
        self._state = ConnectionState.DISCONNECTED
        self._session += 1
        self._last_codes.clear()

    def _publish_state(self, message: str) -> None:
        self._publish(
            state=self._state,
            connected=self._state is ConnectionState.CONNECTED,
            message=message,
        )

    def _publish(self, **changes) -> None:
        self._publisher.publish(**changes)
