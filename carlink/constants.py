from __future__ import annotations

import logging
import os

# Wire vocabulary: one ASCII byte per command, no framing
MOVE_FORWARD = "F"
MOVE_BACKWARD = "B"
TURN_LEFT = "L"
TURN_RIGHT = "R"
STOP = "S"

SPEED_STEPS = 10  # levels 0..10, level 10 is "max"
SPEED_MAX_CODE = "q"
SPEED_FALLBACK_CODE = "5"
DEFAULT_SPEED_LEVEL = 5

ANGLE_MIN_DEG = 0.0
ANGLE_MAX_DEG = 180.0
ANGLE_BUCKET_DEG = 18.0
ANGLE_CODES = "abcdefghij"
DEFAULT_ANGLE_DEG = 90.0

DEFAULT_BAUDRATE = 115200


def _resolve_log_level() -> int:
    s = os.getenv("CARLINK_LOG_LEVEL")
    if s:
        name = s.strip().upper()
        mapping = {
            "DEBUG": logging.DEBUG,
            "INFO": logging.INFO,
            "WARNING": logging.WARNING,
            "ERROR": logging.ERROR,
            "CRITICAL": logging.CRITICAL,
        }
        return mapping.get(name, logging.WARNING)
    else:
        return logging.WARNING


LOG_LEVEL: int = _resolve_log_level()
