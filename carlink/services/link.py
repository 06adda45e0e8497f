from __future__ import annotations

from nicegui import ui

from carlink.common.logging_config import attach_ui_log
from carlink.config import Config, config
from carlink.services.controller import ConnectionController
from carlink.services.status import StatusPublisher
from carlink.services.transport import PermissionGate, SerialPortSource, SerialTransport
from carlink.state import Endpoint, LinkState, apply_snapshot


def create_controller(
    cfg: Config = config,
    permission_gate: PermissionGate | None = None,
    mirror: LinkState | None = None,
    log_widget: ui.log | None = None,
) -> ConnectionController:
    """
    Build a controller from runtime configuration.

    When mirror is given, every snapshot is copied into it so UI widgets can
    bind to its fields. When log_widget is given, log records are mirrored
    into it, each prefixed with the controller's connection state.
    CARLINK_PORT, if set, is preselected.
    """
    transport = SerialTransport(
        source=SerialPortSource(pattern=cfg.PORT_FILTER),
        baudrate=cfg.BAUDRATE,
        write_timeout=cfg.WRITE_TIMEOUT,
        permission_gate=permission_gate,
    )
    publisher = StatusPublisher()
    if mirror is not None:
        publisher.subscribe(lambda snapshot: apply_snapshot(snapshot, mirror))
    controller = ConnectionController(
        transport=transport, publisher=publisher, default_speed=cfg.DEFAULT_SPEED
    )
    if log_widget is not None:
        attach_ui_log(log_widget, tag=lambda: controller.state.value)
    if cfg.PORT:
        controller.select_endpoint(Endpoint(address=cfg.PORT))
    return controller
