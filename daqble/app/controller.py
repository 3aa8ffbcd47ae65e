# daqble/app/controller.py
from __future__ import annotations

import logging
import threading
import time
from typing import Any, List, Mapping, Optional, Sequence

from daqble.app.config import DaqConfig
from daqble.core.errors import ConfigError, DeviceConnectError
from daqble.interfaces import CommandSink, SessionObserver
from daqble.protocol.commands import Command, RequestInfo
from daqble.runtime.device_session import DeviceSession
from daqble.runtime.scheduler import Scheduler
from daqble.runtime.state import ConnectionState, SessionStatus
from daqble.transport.base import BleTransport
from daqble.transport.factory import create_transport
from daqble.transport.registry import TransportDriverRegistry


class DaqController:
    """
    App-level controller: builds the transport + session from config, fans session
    events out to observers, and offers blocking connect/disconnect for scripts.

    Once services are discovered it confirms the link ($send,info;) and pushes the
    configured stream settings.
    """

    def __init__(
        self,
        config: DaqConfig,
        *,
        transport: Optional[BleTransport] = None,
        drivers: Optional[TransportDriverRegistry] = None,
        scheduler: Optional[Scheduler] = None,
        cmd_sink: Optional[CommandSink] = None,
        logger: Optional[logging.Logger] = None,
    ):
        self._config = config
        self._log = logger or logging.getLogger(__name__)

        self._transport = transport or create_transport(config.driver, config.transport, drivers=drivers)
        self._session = DeviceSession(
            self._transport,
            scheduler=scheduler,
            retry_delay_s=config.write_retry_delay_s,
            cmd_sink=cmd_sink,
            logger=self._log,
        )

        self._observers: List[SessionObserver] = []
        self._cond = threading.Condition()
        self._state = ConnectionState.DISCONNECTED
        self._unsubscribe = self._session.subscribe(self)

    @property
    def config(self) -> DaqConfig:
        return self._config

    @property
    def session(self) -> DeviceSession:
        return self._session

    def add_observer(self, observer: SessionObserver) -> None:
        if observer not in self._observers:
            self._observers.append(observer)

    def remove_observer(self, observer: SessionObserver) -> None:
        if observer in self._observers:
            self._observers.remove(observer)

    # ---------------- Link ----------------
    def connect(self, address: Optional[str] = None, *, timeout_s: Optional[float] = None) -> SessionStatus:
        address = address or self._config.address
        if not address:
            raise ConfigError("No device address given.", hint="Pass --address or set 'address' in the config file.")

        if self._session.status().ready and self._session.status().address == address:
            return self._session.status()

        timeout_s = self._config.connect_timeout_s if timeout_s is None else float(timeout_s)
        self._log.info("CONTROLLER_CONNECT address=%s timeout_s=%.1f", address, timeout_s)

        if not self._session.request_connect(address):
            st = self._session.status()
            raise DeviceConnectError(
                f"Connect request to {address} was refused.",
                hint="Check the adapter is powered and the address is correct.",
                details={"last_error": st.last_error.value if st.last_error else None},
            )

        if not self._wait_for(ConnectionState.SERVICES_DISCOVERED, timeout_s):
            st = self._session.status()
            raise DeviceConnectError(
                f"Device {address} did not become ready within {timeout_s:.1f}s.",
                hint="Is the device advertising and in range?",
                details={"state": st.state.name, "last_error": st.last_error.value if st.last_error else None},
            )
        return self._session.status()

    def disconnect(self, *, timeout_s: float = 5.0) -> bool:
        if not self._session.request_disconnect():
            return False
        return self._wait_for(ConnectionState.DISCONNECTED, timeout_s)

    def wait_for_state(self, state: ConnectionState, timeout_s: float) -> bool:
        return self._wait_for(state, timeout_s)

    # ---------------- Commands ----------------
    def send(self, cmd: Command) -> None:
        self._session.send_command(cmd)

    def send_text(self, text: str) -> None:
        self._session.send_text(text)

    def apply_settings(self, settings: Mapping[str, Any]) -> None:
        self._session.apply_settings(settings)

    def status(self) -> SessionStatus:
        return self._session.status()

    # ---------------- Lifecycle ----------------
    def close(self) -> None:
        try:
            self._session.close()
        except Exception:
            self._log.exception("SESSION_CLOSE_ERROR")

        if self._unsubscribe:
            self._unsubscribe()
            self._unsubscribe = None

        for obs in list(self._observers):
            close = getattr(obs, "close", None)
            if close is None:
                continue
            try:
                close()
            except Exception:
                self._log.exception("OBSERVER_CLOSE_ERROR")
        self._observers.clear()

    def __enter__(self) -> "DaqController":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    # ---------------- SessionObserver (fan-out) ----------------
    def on_connection_state_changed(self, state: ConnectionState) -> None:
        with self._cond:
            self._state = state
            self._cond.notify_all()

        if state is ConnectionState.SERVICES_DISCOVERED:
            self._session.send_command(RequestInfo())
            if self._config.settings:
                self._session.apply_settings(self._config.settings)

        self._fanout("on_connection_state_changed", state)

    def on_pressure_frame(self, timestamp_ms: int, readings: Sequence[int]) -> None:
        self._fanout("on_pressure_frame", timestamp_ms, readings)

    def on_orientation_frame(self, timestamp_ms: int, roll: float, pitch: float, yaw: float) -> None:
        self._fanout("on_orientation_frame", timestamp_ms, roll, pitch, yaw)

    def on_text_line(self, text: str) -> None:
        self._fanout("on_text_line", text)

    # ---------------- Internal ----------------
    def _fanout(self, method: str, *args: Any) -> None:
        for obs in list(self._observers):
            try:
                getattr(obs, method)(*args)
            except Exception:
                self._log.exception("OBSERVER_ERROR method=%s", method)

    def _wait_for(self, state: ConnectionState, timeout_s: float) -> bool:
        deadline = time.monotonic() + max(0.0, float(timeout_s))
        with self._cond:
            while self._state is not state:
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    return False
                self._cond.wait(remaining)
            return True
