# daqble/protocol/decoder.py
from __future__ import annotations

import struct

from .defs import (
    FSR_FRAME_LEN,
    FSR_MARKER,
    IMU_FRAME_LEN,
    IMU_MARKER,
    IMU_SCALE,
)
from .frames import Frame, OrientationFrame, PressureFrame, TextLine


def _scaled_degrees(lo: int, hi: int) -> float:
    # hi carries the sign; division truncates toward zero like the firmware's integer math
    raw = struct.unpack(">h", bytes((hi, lo)))[0]
    return float(int(raw / IMU_SCALE))


def decode_notification(data: bytes) -> Frame:
    """
    Decode one inbound notification buffer into exactly one frame.

    Rules, in order:
      1. FSR marker and 15 bytes  -> PressureFrame (big-endian u32 timestamp, 10 x u8)
      2. IMU marker and 7 bytes   -> OrientationFrame (yaw, roll, pitch; int16 / 10)
      3. anything else            -> TextLine (one character per byte)

    Never raises: a buffer failing the marker/length tests of 1 and 2 is text.
    """
    buf = bytes(data)
    n = len(buf)

    if n == FSR_FRAME_LEN and buf[0] == FSR_MARKER:
        (timestamp_ms,) = struct.unpack(">I", buf[1:5])
        return PressureFrame(timestamp_ms=timestamp_ms, readings=tuple(buf[5:15]))

    if n == IMU_FRAME_LEN and buf[0] == IMU_MARKER:
        yaw = _scaled_degrees(buf[1], buf[2])
        roll = _scaled_degrees(buf[3], buf[4])
        pitch = _scaled_degrees(buf[5], buf[6])
        return OrientationFrame(roll=roll, pitch=pitch, yaw=yaw, timestamp_ms=0)

    return TextLine(text=buf.decode("latin-1"))
