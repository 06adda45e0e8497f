from __future__ import annotations

import time
from dataclasses import dataclass, field
from enum import Enum

from nicegui import binding

from carlink.constants import DEFAULT_ANGLE_DEG, DEFAULT_SPEED_LEVEL


@dataclass(frozen=True)
class Endpoint:
    """A remote peer the link can be opened to. Equal when addresses match."""

    address: str  # device path (/dev/rfcomm0, COM5) or pyserial URL (socket://, loop://)
    name: str | None = field(default=None, compare=False)
    description: str | None = field(default=None, compare=False)

    @property
    def display_name(self) -> str:
        return self.name or self.address


class ConnectionState(Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"


@dataclass(frozen=True)
class StatusSnapshot:
    connected: bool = False
    state: ConnectionState = ConnectionState.DISCONNECTED
    message: str = "Ready"
    endpoints: tuple[Endpoint, ...] = ()
    selected: Endpoint | None = None
    speed: int = DEFAULT_SPEED_LEVEL  # 0..10
    angle: float = DEFAULT_ANGLE_DEG  # 0..180


# Bindable mirror of the latest snapshot for UI widgets
@binding.bindable_dataclass
class LinkState:
    connected: bool = False
    state: str = ConnectionState.DISCONNECTED.value
    message: str = "Ready"
    endpoints: list[str] = field(default_factory=list)  # display names, same order as snapshot
    selected: str = ""  # address of the selected endpoint, "" when none
    speed: int = DEFAULT_SPEED_LEVEL
    angle: float = DEFAULT_ANGLE_DEG
    last_update_ts: float = 0.0


def apply_snapshot(snapshot: StatusSnapshot, target: LinkState | None = None) -> None:
    """Subscriber that copies a snapshot into the bindable LinkState."""
    target = target if target is not None else link_state
    target.connected = snapshot.connected
    target.state = snapshot.state.value
    target.message = snapshot.message
    target.endpoints = [e.display_name for e in snapshot.endpoints]
    target.selected = snapshot.selected.address if snapshot.selected else ""
    target.speed = snapshot.speed
    target.angle = snapshot.angle
    target.last_update_ts = time.time()


# Module-level singleton
link_state = LinkState()
