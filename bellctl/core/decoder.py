"""Notification payload decoding for the bell controller and mmc accessory."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from typing import Union

from bellctl.core.thermal import THERMAL_PAYLOAD_LENGTH, ThermalSample, calibrate

JOYSTICK_PAYLOAD_LENGTH = 10
HOME_PAYLOAD_LENGTH = 3
HOME_HELD = b"\x08\x00\x00"

# Directions are exclusive sentinel values of byte 8; diagonals are not decoded.
DIRECTION_BYTE = 8
DIRECTIONS = {
    "up": 0x01,
    "right": 0x03,
    "down": 0x05,
    "left": 0x07,
}

# (byte index, bit mask) for independently combinable buttons
BUTTONS = {
    "i": (7, 0x04),
    "ii": (7, 0x08),
    "a": (6, 0x01),
    "b": (6, 0x02),
    "c": (6, 0x08),
    "d": (6, 0x10),
    "l1": (6, 0x40),
    "r1": (6, 0x80),
}

L2_MAGNITUDE_BYTE = 4
R2_MAGNITUDE_BYTE = 5
TRIGGER_BYTE = 7
L2_PRESSED_MASK = 0x01
R2_PRESSED_MASK = 0x02


@dataclass(frozen=True)
class TriggerState:
    magnitude: int
    pressed: bool


@dataclass(frozen=True)
class JoystickState:
    up: bool
    down: bool
    left: bool
    right: bool
    i: bool
    ii: bool
    a: bool
    b: bool
    c: bool
    d: bool
    l1: bool
    r1: bool
    l2: TriggerState
    r2: TriggerState
    rl: tuple[int, int]
    rr: tuple[int, int]

    def pressed(self) -> tuple[str, ...]:
        """Names of the directions and buttons currently held."""
        names = [name for name in (*DIRECTIONS, *BUTTONS) if getattr(self, name)]
        names.extend(name for name in ("l2", "r2") if getattr(self, name).pressed)
        return tuple(names)


@dataclass(frozen=True)
class HomeEvent:
    held: bool


@dataclass(frozen=True)
class Unrecognized:
    payload: bytes


NotificationEvent = Union[JoystickState, HomeEvent, ThermalSample, Unrecognized]
Decoder = Callable[[bytes], NotificationEvent]


def decode_joystick(payload: bytes) -> JoystickState:
    direction = payload[DIRECTION_BYTE]
    flags = {name: direction == value for name, value in DIRECTIONS.items()}
    flags.update(
        {name: payload[index] & mask != 0 for name, (index, mask) in BUTTONS.items()}
    )
    return JoystickState(
        **flags,
        l2=TriggerState(
            magnitude=payload[L2_MAGNITUDE_BYTE],
            pressed=payload[TRIGGER_BYTE] & L2_PRESSED_MASK != 0,
        ),
        r2=TriggerState(
            magnitude=payload[R2_MAGNITUDE_BYTE],
            pressed=payload[TRIGGER_BYTE] & R2_PRESSED_MASK != 0,
        ),
        rl=(payload[0], payload[1]),
        rr=(payload[2], payload[3]),
    )


def decode(payload: bytes | bytearray) -> NotificationEvent:
    """Decode one notification payload. Never raises; unknown shapes are
    returned as ``Unrecognized``."""
    data = bytes(payload)
    if len(data) == JOYSTICK_PAYLOAD_LENGTH:
        return decode_joystick(data)
    if len(data) == HOME_PAYLOAD_LENGTH:
        return HomeEvent(held=data == HOME_HELD)
    if len(data) == THERMAL_PAYLOAD_LENGTH:
        return calibrate(data)
    return Unrecognized(payload=data)


def decode_raw(payload: bytes | bytearray) -> NotificationEvent:
    return Unrecognized(payload=bytes(payload))


DECODERS: dict[str, Decoder] = {
    "auto": decode,
    "raw": decode_raw,
}


def get_decoder(name: str) -> Decoder:
    try:
        return DECODERS[name]
    except KeyError:
        raise ValueError(f"Unknown decoder '{name}'. Available: {', '.join(sorted(DECODERS))}") from None
