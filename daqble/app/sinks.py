# daqble/app/sinks.py
from __future__ import annotations

import sys
from typing import Optional, Sequence, TextIO

from daqble.runtime.state import ConnectionState


class PrintObserver:
    """Print session events to a text stream (stdout by default)."""

    def __init__(self, *, stream: Optional[TextIO] = None, show_frames: bool = True):
        self._stream = stream
        self._show_frames = show_frames

    @property
    def out(self) -> TextIO:
        return self._stream or sys.stdout

    def on_connection_state_changed(self, state: ConnectionState) -> None:
        print(f"STATE {state.name}", file=self.out, flush=True)

    def on_pressure_frame(self, timestamp_ms: int, readings: Sequence[int]) -> None:
        if self._show_frames:
            print(f"FSR t={timestamp_ms:10d} {' '.join(f'{r:3d}' for r in readings)}", file=self.out, flush=True)

    def on_orientation_frame(self, timestamp_ms: int, roll: float, pitch: float, yaw: float) -> None:
        if self._show_frames:
            print(f"IMU roll={roll:7.1f} pitch={pitch:7.1f} yaw={yaw:7.1f}", file=self.out, flush=True)

    def on_text_line(self, text: str) -> None:
        # device text arrives in arbitrary chunks; print it as a terminal would
        print(text, end="", file=self.out, flush=True)

    def close(self) -> None:
        return None
