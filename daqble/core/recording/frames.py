# daqble/core/recording/frames.py
from __future__ import annotations

import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional, Sequence

from daqble.core.recording.jsonl_writer import JsonlWriter
from daqble.protocol.frames import OrientationFrame, PressureFrame, TextLine
from daqble.runtime.state import ConnectionState


class FrameRecorder:
    """
    Session observer that records decoded frames as JSON messages, one per line:

      {"message": "fsr data", "time": ..., "fsr": [...]}
      {"message": "imu data", "yaw": ..., "roll": ..., "pitch": ...}
      {"message": "uart data", "data": "..."}
      {"message": "state", "state": "CONNECTED"}

    Each line also carries the host receive time as "ts_utc".
    """

    def __init__(self, path: Path, *, flush_interval_s: float = 0.5, logger: Optional[logging.Logger] = None):
        self._writer = JsonlWriter(Path(path), flush_interval=flush_interval_s, logger=logger)
        self.frames_written = 0

    @property
    def path(self) -> Path:
        return self._writer.path

    def on_connection_state_changed(self, state: ConnectionState) -> None:
        self._write({"message": "state", "state": state.name})

    def on_pressure_frame(self, timestamp_ms: int, readings: Sequence[int]) -> None:
        self._write(PressureFrame(timestamp_ms, tuple(readings)).as_message())
        self.frames_written += 1

    def on_orientation_frame(self, timestamp_ms: int, roll: float, pitch: float, yaw: float) -> None:
        self._write(OrientationFrame(roll, pitch, yaw, timestamp_ms).as_message())
        self.frames_written += 1

    def on_text_line(self, text: str) -> None:
        self._write(TextLine(text).as_message())
        self.frames_written += 1

    def close(self) -> None:
        self._writer.close()

    def _write(self, msg: dict) -> None:
        msg["ts_utc"] = datetime.now(timezone.utc).isoformat()
        self._writer.write(msg)
