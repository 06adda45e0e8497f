from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Optional

from carlink.constants import DEFAULT_BAUDRATE


def _optional_float(name: str) -> Optional[float]:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return None
    return float(raw)


@dataclass
class Config:
    """Runtime configuration for the vehicle link."""
    PORT: Optional[str] = None  # default endpoint address, e.g. /dev/rfcomm0
    BAUDRATE: int = DEFAULT_BAUDRATE
    WRITE_TIMEOUT: Optional[float] = None  # None blocks until the port errors or succeeds
    PORT_FILTER: Optional[str] = None  # regex applied to known ports during discovery
    DEFAULT_SPEED: float = 0.5  # normalized 0.0..1.0

    @classmethod
    def from_env(cls) -> "Config":
        port = os.getenv("CARLINK_PORT") or None
        baudrate = int(os.getenv("CARLINK_BAUDRATE", str(DEFAULT_BAUDRATE)))
        write_timeout = _optional_float("CARLINK_WRITE_TIMEOUT")
        port_filter = os.getenv("CARLINK_PORT_FILTER") or None
        default_speed = float(os.getenv("CARLINK_DEFAULT_SPEED", "0.5"))
        return cls(
            PORT=port,
            BAUDRATE=baudrate,
            WRITE_TIMEOUT=write_timeout,
            PORT_FILTER=port_filter,
            DEFAULT_SPEED=default_speed,
        )


# Export a default instance for convenience
config = Config.from_env()
