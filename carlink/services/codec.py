from __future__ import annotations

import math
from dataclasses import dataclass
from enum import Enum
from typing import Union

from carlink.constants import (
    ANGLE_BUCKET_DEG,
    ANGLE_CODES,
    ANGLE_MAX_DEG,
    ANGLE_MIN_DEG,
    MOVE_BACKWARD,
    MOVE_FORWARD,
    SPEED_FALLBACK_CODE,
    SPEED_MAX_CODE,
    SPEED_STEPS,
    STOP,
    TURN_LEFT,
    TURN_RIGHT,
)


class Movement(Enum):
    """Drive intents; the value is the wire code."""

    FORWARD = MOVE_FORWARD
    BACKWARD = MOVE_BACKWARD
    LEFT = TURN_LEFT
    RIGHT = TURN_RIGHT
    STOP = STOP


_MOVEMENT_TEXT = {
    Movement.FORWARD: "Moving Forward",
    Movement.BACKWARD: "Moving Backward",
    Movement.LEFT: "Turning Left",
    Movement.RIGHT: "Turning Right",
    Movement.STOP: "Stopped",
}


@dataclass(frozen=True)
class SpeedCommand:
    level: int | None  # step from speed_step(); outside 0..10 encodes as the fallback


@dataclass(frozen=True)
class AngleCommand:
    degrees: float


Command = Union[Movement, SpeedCommand, AngleCommand]


# ---- Speed ----


def speed_step(fraction: float) -> int | None:
    """Raw wire step floor(p * 10). Not clamped; None when p is not finite."""
    if not math.isfinite(fraction):
        return None
    return math.floor(fraction * SPEED_STEPS)


def speed_level(fraction: float) -> int:
    """Displayed speed level, the step clamped to 0..10 (NaN -> 0)."""
    if math.isnan(fraction):
        return 0
    fraction = max(0.0, min(1.0, float(fraction)))
    return math.floor(fraction * SPEED_STEPS)


def speed_code_for_level(level: int | None) -> str:
    if level is None:
        return SPEED_FALLBACK_CODE
    if 0 <= level < SPEED_STEPS:
        return str(level)
    if level == SPEED_STEPS:
        return SPEED_MAX_CODE
    return SPEED_FALLBACK_CODE


def speed_code(fraction: float) -> str:
    return speed_code_for_level(speed_step(fraction))


# ---- Servo angle ----


def clamp_angle(degrees: float) -> float:
    if math.isnan(degrees):
        return ANGLE_MIN_DEG
    return max(ANGLE_MIN_DEG, min(ANGLE_MAX_DEG, float(degrees)))


def angle_code(degrees: float) -> str:
    """
    Bucket an angle into one of ten codes 'a'..'j'.

    Upper bounds are inclusive: 18 -> 'a', 18.01 -> 'b'. Everything above 162
    lands in the last bucket 'j'.
    """
    a = clamp_angle(degrees)
    for i, code in enumerate(ANGLE_CODES[:-1]):
        if a <= ANGLE_BUCKET_DEG * (i + 1):
            return code
    return ANGLE_CODES[-1]


# ---- Commands ----


def wire_code(command: Command) -> str:
    if isinstance(command, Movement):
        return command.value
    if isinstance(command, SpeedCommand):
        return speed_code_for_level(command.level)
    return angle_code(command.degrees)


def encode(command: Command) -> bytes:
    """Single ASCII byte for the command."""
    return wire_code(command).encode("ascii")


def describe(command: Command) -> str:
    """Human-readable status text for a sent command."""
    if isinstance(command, Movement):
        return _MOVEMENT_TEXT[command]
    if isinstance(command, SpeedCommand):
        code = speed_code_for_level(command.level)
        if code == SPEED_MAX_CODE:
            return "Speed set to max"
        return f"Speed set to {code}"
    return f"Servo set to {clamp_angle(command.degrees):.0f} deg"
