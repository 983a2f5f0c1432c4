"""Two-point calibration for the mmc thermometer accessory.

A 6-byte notification carries two signed little-endian readings in hundredths
of a degree: the primary sensor at bytes 1-2 and the secondary at bytes 3-4.
Bytes 0 and 5 are not used.
"""

from __future__ import annotations

import struct
from dataclasses import dataclass

THERMAL_PAYLOAD_LENGTH = 6

# Secondary reading reported by the accessory when its second probe is absent.
SECONDARY_ABSENT = (0xF2, 0x7F)

# Calibration constants, empirically derived from the accessory firmware.
OFFSET_CLAMP = 1.0
FOLD_CEILING = 200
FOLD_STEP = 100
FOLD_FLOOR = 100
FOLD_BUMP = 50

SCALE = 100

_READINGS = struct.Struct("<hh")


@dataclass(frozen=True)
class ThermalSample:
    raw: float
    secondary: float
    offset_corrected: float
    smoothed: float


def _fold(diff: int) -> int:
    folded = diff
    while folded > FOLD_CEILING:
        folded -= FOLD_STEP
    if folded < FOLD_FLOOR:
        folded += FOLD_BUMP
    return folded


def calibrate(buffer: bytes | bytearray) -> ThermalSample:
    """Convert a 6-byte thermometer payload into degrees."""
    if len(buffer) != THERMAL_PAYLOAD_LENGTH:
        raise ValueError(
            f"thermal payload must be {THERMAL_PAYLOAD_LENGTH} bytes, got {len(buffer)}"
        )

    t0, t1 = _READINGS.unpack_from(bytes(buffer), 1)
    if (buffer[3], buffer[4]) == SECONDARY_ABSENT:
        t1 = 0
        offset: float = 0
        smoothed = t0
    else:
        diff = t0 - t1
        offset = min(diff / 2, OFFSET_CLAMP)
        smoothed = t0 + _fold(diff) if diff > 0 else t0

    return ThermalSample(
        raw=t0 / SCALE,
        secondary=t1 / SCALE,
        offset_corrected=(t0 + offset) / SCALE,
        smoothed=smoothed / SCALE,
    )
