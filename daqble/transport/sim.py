# daqble/transport/sim.py
from __future__ import annotations

import logging
import math
import random
import re
import threading
import time
from dataclasses import dataclass
from queue import Empty, Queue
from typing import Any, Callable, Dict, List, Optional

from daqble.protocol.defs import INBOUND_CHAR_UUID, OUTBOUND_CHAR_UUID, normalize_uuid
from daqble.protocol.frames import OrientationFrame, PressureFrame, TextLine

from .base import BleTransport, RawLinkState

_COMMAND_RE = re.compile(r"^\$([a-z]+)((?:,[^,;]*)*);$")

# Standard GAP device-name characteristic, advertised alongside the serial profile.
_DEVICE_NAME_CHAR = "00002a00-0000-1000-8000-00805f9b34fb"


@dataclass
class _Stream:
    delay_ms: int
    enabled: bool = False
    next_due: float = 0.0


class SimulatedDaqTransport(BleTransport):
    """
    In-process emulation of the DAQ device (driver "sim").

    Callbacks are delivered from a worker thread, like a real BLE stack. The device
    understands the same command grammar as the hardware:
      $fsr|imu,enable|disable;   start/stop the periodic frame stream
      $fsr|imu,delay,N;          stream period in ms
      $send,info;                reply with a text line describing the device
      $real,enable|disable;      acknowledged with a text line
    Anything else is echoed back as text.
    """

    def __init__(
        self,
        *,
        fsr_delay_ms: int = 100,
        imu_delay_ms: int = 100,
        info_text: str = "DAQ simulator fw=sim-1\n",
        refuse_writes: int = 0,
        seed: Optional[int] = None,
        logger: Optional[logging.Logger] = None,
    ):
        super().__init__()
        self.info_text = info_text
        self._log = logger or logging.getLogger(__name__)
        self._rng = random.Random(seed)

        self._lock = threading.Lock()
        self._queue: "Queue[Callable[[], None]]" = Queue()
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None

        self._address: Optional[str] = None
        self._connected = False
        self._subscribed = False
        self._t0 = time.monotonic()
        self._refuse_writes = int(refuse_writes)

        self._streams: Dict[str, _Stream] = {
            "fsr": _Stream(delay_ms=int(fsr_delay_ms)),
            "imu": _Stream(delay_ms=int(imu_delay_ms)),
        }

        #: every payload the simulated device received, in order
        self.received: List[bytes] = []

    # ---------------- BleTransport ----------------
    def handle_address(self) -> Optional[str]:
        with self._lock:
            return self._address

    def connect(self, address: str) -> bool:
        self._ensure_worker()
        with self._lock:
            self._address = address
        self._post(self._link_up)
        return True

    def reconnect(self) -> bool:
        with self._lock:
            if self._address is None:
                return False
        self._ensure_worker()
        self._post(self._link_up)
        return True

    def disconnect(self) -> bool:
        with self._lock:
            if self._address is None:
                return False
        self._post(self._link_down)
        return True

    def discover_services(self) -> bool:
        with self._lock:
            if not self._connected:
                return False
        self._post(lambda: self._call("on_services_discovered", True, [
            _DEVICE_NAME_CHAR, INBOUND_CHAR_UUID, OUTBOUND_CHAR_UUID,
        ]))
        return True

    def subscribe_notifications(self, char_id: str, enabled: bool) -> bool:
        with self._lock:
            if not self._connected or normalize_uuid(char_id) != INBOUND_CHAR_UUID:
                return False
            self._subscribed = bool(enabled)
        return True

    def write(self, char_id: str, data: bytes) -> bool:
        with self._lock:
            if not self._connected or normalize_uuid(char_id) != OUTBOUND_CHAR_UUID:
                return False
            if self._refuse_writes > 0:
                self._refuse_writes -= 1
                return False
        payload = bytes(data)
        self._post(lambda: self._on_write(char_id, payload))
        return True

    def close(self) -> None:
        self._stop_event.set()
        thread = self._thread
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout=1.0)
        self._thread = None
        with self._lock:
            self._address = None
            self._connected = False
            self._subscribed = False

    # ---------------- Test / demo hooks ----------------
    def drop_link(self) -> None:
        """Simulate the device going out of range."""
        self._post(self._link_lost)

    def stream_enabled(self, name: str) -> bool:
        return self._streams[name].enabled

    def stream_delay_ms(self, name: str) -> int:
        return self._streams[name].delay_ms

    # ---------------- Worker thread ----------------
    def _ensure_worker(self) -> None:
        if self._thread is not None and self._thread.is_alive():
            return
        self._stop_event.clear()
        self._thread = threading.Thread(target=self._run, name="daq-sim", daemon=True)
        self._thread.start()

    def _post(self, action: Callable[[], None]) -> None:
        self._queue.put(action)

    def _run(self) -> None:
        while not self._stop_event.is_set():
            try:
                action = self._queue.get(timeout=0.005)
            except Empty:
                action = None

            try:
                if action is not None:
                    action()
                self._tick(time.monotonic())
            except Exception:
                self._log.exception("SIM_WORKER_EXCEPTION")

    def _tick(self, now: float) -> None:
        with self._lock:
            active = self._connected and self._subscribed
        if not active:
            return

        for name, stream in self._streams.items():
            if not stream.enabled or now < stream.next_due:
                continue
            stream.next_due = now + stream.delay_ms / 1000.0
            frame = self._make_frame(name, now)
            self._notify(frame.encode())

    def _make_frame(self, name: str, now: float):
        elapsed_ms = int((now - self._t0) * 1000) & 0xFFFFFFFF
        if name == "fsr":
            readings = tuple(self._rng.randint(0, 255) for _ in range(10))
            return PressureFrame(timestamp_ms=elapsed_ms, readings=readings)

        phase = elapsed_ms / 1000.0
        return OrientationFrame(
            roll=float(int(30 * math.sin(phase))),
            pitch=float(int(15 * math.cos(phase))),
            yaw=float(int((phase * 20) % 360) - 180),
        )

    # ---------------- Device behaviour ----------------
    def _link_up(self) -> None:
        with self._lock:
            if self._connected:
                return
            self._connected = True
            self._t0 = time.monotonic()
        self._call("on_connection_state_changed", RawLinkState.CONNECTED)

    def _link_down(self) -> None:
        self._call("on_connection_state_changed", RawLinkState.DISCONNECTING)
        self._link_lost()

    def _link_lost(self) -> None:
        with self._lock:
            self._connected = False
            self._subscribed = False
        for stream in self._streams.values():
            stream.enabled = False
        self._call("on_connection_state_changed", RawLinkState.DISCONNECTED)

    def _on_write(self, char_id: str, payload: bytes) -> None:
        self.received.append(payload)
        self._call("on_characteristic_write_completed", char_id, True)

        text = payload.decode("latin-1")
        m = _COMMAND_RE.match(text)
        if m is None:
            self._reply(text)
            return

        keyword = m.group(1)
        fields = [f for f in m.group(2).split(",") if f]

        if keyword in self._streams and fields:
            stream = self._streams[keyword]
            if fields[0] in ("enable", "disable"):
                stream.enabled = fields[0] == "enable"
                stream.next_due = 0.0
                return
            if fields[0] == "delay" and len(fields) == 2 and fields[1].isdigit():
                stream.delay_ms = int(fields[1])
                return

        if keyword == "send" and fields == ["info"]:
            self._reply(self.info_text)
            return

        if keyword == "real" and fields and fields[0] in ("enable", "disable"):
            self._reply(f"real {fields[0]}d\n")
            return

        self._reply(text)

    def _reply(self, text: str) -> None:
        data = TextLine(text).encode()
        if data:
            self._notify(data)

    def _notify(self, data: bytes) -> None:
        with self._lock:
            if not self._subscribed:
                return
        self._call("on_characteristic_notified", INBOUND_CHAR_UUID, data)

    def _call(self, method: str, *args: Any) -> None:
        listener = self.listener
        if listener is None:
            return
        try:
            getattr(listener, method)(*args)
        except Exception:
            self._log.exception("SIM_LISTENER_ERROR method=%s", method)
