# daqble/interfaces/observer.py
from __future__ import annotations

from typing import Protocol, Sequence

from daqble.runtime.state import ConnectionState


class SessionObserver(Protocol):
    """
    Receives session events in the order the session produced them.

    Callbacks run on the transport's callback thread while the session is locked:
    keep them short and never block.
    """
    def on_connection_state_changed(self, state: ConnectionState) -> None: ...
    def on_pressure_frame(self, timestamp_ms: int, readings: Sequence[int]) -> None: ...
    def on_orientation_frame(self, timestamp_ms: int, roll: float, pitch: float, yaw: float) -> None: ...
    def on_text_line(self, text: str) -> None: ...
