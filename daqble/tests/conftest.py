# daqble/tests/conftest.py
from __future__ import annotations

from typing import Any, Callable, List, Optional, Tuple

import pytest

from daqble.protocol.defs import INBOUND_CHAR_UUID, OUTBOUND_CHAR_UUID
from daqble.runtime.state import ConnectionState
from daqble.transport.base import BleTransport


class FakeTransport(BleTransport):
    """
    Synchronous BleTransport stub: records requests, never calls back by itself.
    Tests drive the listener callbacks explicitly.
    """

    def __init__(self):
        super().__init__()
        self.address: Optional[str] = None
        self.calls: List[Tuple[Any, ...]] = []
        self.writes: List[Tuple[str, bytes]] = []

        self.accept_connect = True
        self.accept_reconnect = True
        self.accept_disconnect = True
        self.accept_discover = True
        self.accept_subscribe = True
        self.write_results: List[bool] = []  # consumed front-first; empty -> True
        self.closed = 0

    def handle_address(self) -> Optional[str]:
        return self.address

    def connect(self, address: str) -> bool:
        self.calls.append(("connect", address))
        if self.accept_connect:
            self.address = address
        return self.accept_connect

    def reconnect(self) -> bool:
        self.calls.append(("reconnect",))
        return self.accept_reconnect

    def disconnect(self) -> bool:
        self.calls.append(("disconnect",))
        return self.accept_disconnect

    def discover_services(self) -> bool:
        self.calls.append(("discover",))
        return self.accept_discover

    def subscribe_notifications(self, char_id: str, enabled: bool) -> bool:
        self.calls.append(("subscribe", char_id, enabled))
        return self.accept_subscribe

    def write(self, char_id: str, data: bytes) -> bool:
        ok = self.write_results.pop(0) if self.write_results else True
        self.calls.append(("write", char_id, bytes(data), ok))
        if ok:
            self.writes.append((char_id, bytes(data)))
        return ok

    def close(self) -> None:
        self.closed += 1
        self.address = None

    # helpers
    def call_names(self) -> List[str]:
        return [c[0] for c in self.calls]


class _Call:
    def __init__(self, delay_s: float, fn: Callable[..., Any], args: tuple):
        self.delay_s = delay_s
        self.fn = fn
        self.args = args
        self.cancelled = False

    def cancel(self) -> None:
        self.cancelled = True


class FakeScheduler:
    """Collects deferred calls; fire_all() runs the ones not cancelled."""

    def __init__(self):
        self.pending: List[_Call] = []

    def call_later(self, delay_s: float, fn: Callable[..., Any], *args: Any) -> _Call:
        call = _Call(delay_s, fn, args)
        self.pending.append(call)
        return call

    def fire_all(self) -> int:
        calls, self.pending = self.pending, []
        fired = 0
        for call in calls:
            if not call.cancelled:
                call.fn(*call.args)
                fired += 1
        return fired


class RecordingObserver:
    def __init__(self):
        self.events: List[Tuple[Any, ...]] = []

    def on_connection_state_changed(self, state: ConnectionState) -> None:
        self.events.append(("state", state))

    def on_pressure_frame(self, timestamp_ms, readings) -> None:
        self.events.append(("fsr", timestamp_ms, tuple(readings)))

    def on_orientation_frame(self, timestamp_ms, roll, pitch, yaw) -> None:
        self.events.append(("imu", timestamp_ms, roll, pitch, yaw))

    def on_text_line(self, text: str) -> None:
        self.events.append(("text", text))

    def states(self) -> List[ConnectionState]:
        return [e[1] for e in self.events if e[0] == "state"]


@pytest.fixture
def fake_transport() -> FakeTransport:
    return FakeTransport()


@pytest.fixture
def fake_scheduler() -> FakeScheduler:
    return FakeScheduler()


@pytest.fixture
def recording_observer() -> RecordingObserver:
    return RecordingObserver()


@pytest.fixture
def gatt_chars() -> List[str]:
    return ["00002a00-0000-1000-8000-00805f9b34fb", INBOUND_CHAR_UUID, OUTBOUND_CHAR_UUID]
