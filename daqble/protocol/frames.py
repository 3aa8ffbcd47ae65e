# daqble/protocol/frames.py
from __future__ import annotations

import struct
from dataclasses import dataclass
from typing import Any, Dict, Tuple, Union

from .defs import (
    FSR_MARKER,
    FSR_READING_COUNT,
    IMU_MARKER,
    IMU_SCALE,
)


@dataclass(frozen=True)
class PressureFrame:
    """FSR pressure sample: device timestamp + ten 8-bit readings."""
    timestamp_ms: int
    readings: Tuple[int, ...]

    def encode(self) -> bytes:
        if not 0 <= int(self.timestamp_ms) <= 0xFFFFFFFF:
            raise ValueError(f"timestamp_ms out of u32 range: {self.timestamp_ms}")
        if len(self.readings) != FSR_READING_COUNT:
            raise ValueError(f"expected {FSR_READING_COUNT} readings, got {len(self.readings)}")
        if any(not 0 <= int(r) <= 0xFF for r in self.readings):
            raise ValueError(f"readings must be u8 values: {self.readings}")

        return bytes([FSR_MARKER]) + struct.pack(">I", int(self.timestamp_ms)) + bytes(self.readings)

    def as_message(self) -> Dict[str, Any]:
        return {"message": "fsr data", "time": self.timestamp_ms, "fsr": list(self.readings)}


@dataclass(frozen=True)
class OrientationFrame:
    """
    IMU orientation in whole degrees.

    The device does not transmit a timestamp for this frame; timestamp_ms is always 0
    for decoded frames.
    """
    roll: float
    pitch: float
    yaw: float
    timestamp_ms: int = 0

    def encode(self) -> bytes:
        """
        Each angle is sent as int16(degrees x 10), low byte first, in yaw/roll/pitch order.
        """
        out = bytearray([IMU_MARKER])
        for name, angle in (("yaw", self.yaw), ("roll", self.roll), ("pitch", self.pitch)):
            raw = int(round(angle * IMU_SCALE))
            if not -0x8000 <= raw <= 0x7FFF:
                raise ValueError(f"{name}={angle} does not fit int16 after x{IMU_SCALE} scaling")
            out += struct.pack("<h", raw)
        return bytes(out)

    def as_message(self) -> Dict[str, Any]:
        return {"message": "imu data", "yaw": self.yaw, "roll": self.roll, "pitch": self.pitch}


@dataclass(frozen=True)
class TextLine:
    """Free-form ASCII from the device's serial-port emulation."""
    text: str

    def encode(self) -> bytes:
        return bytes(ord(c) & 0xFF for c in self.text)

    def as_message(self) -> Dict[str, Any]:
        return {"message": "uart data", "data": self.text}


Frame = Union[PressureFrame, OrientationFrame, TextLine]
