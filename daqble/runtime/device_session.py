# daqble/runtime/device_session.py
from __future__ import annotations

import logging
import threading
from collections import deque
from typing import Any, Callable, Deque, List, Mapping, Optional, Sequence, Union

from daqble.interfaces.command_sink import CommandSink
from daqble.interfaces.observer import SessionObserver
from daqble.protocol.commands import (
    Command,
    RawText,
    command_text,
    commands_from_settings,
    encode_command,
)
from daqble.protocol.decoder import decode_notification
from daqble.protocol.defs import (
    INBOUND_CHAR_UUID,
    OUTBOUND_CHAR_UUID,
    WRITE_RETRY_DELAY_S,
    normalize_uuid,
)
from daqble.protocol.frames import Frame, OrientationFrame, PressureFrame, TextLine
from daqble.runtime.connection import ConnectionStateMachine, SessionData
from daqble.runtime.scheduler import Scheduler, TimerScheduler
from daqble.runtime.state import ConnectionState, SessionStatus
from daqble.runtime.writer import CommandWriter
from daqble.transport.base import BleTransport, RawLinkState

SessionEvent = Union[ConnectionState, Frame]


class DeviceSession:
    """
    One device session over a BLE serial-port emulation link.

    Composes the connection state machine, the notification decoder and the command
    writer, and is itself the transport's listener. All session state is mutated under
    one re-entrant lock; observer events are queued while a handler runs and delivered
    in production order once the outermost handler finishes, so a transport that calls
    back re-entrantly cannot reorder what observers see.
    """

    def __init__(
        self,
        transport: BleTransport,
        *,
        scheduler: Optional[Scheduler] = None,
        retry_delay_s: float = WRITE_RETRY_DELAY_S,
        cmd_sink: Optional[CommandSink] = None,
        inbound_uuid: str = INBOUND_CHAR_UUID,
        outbound_uuid: str = OUTBOUND_CHAR_UUID,
        logger: Optional[logging.Logger] = None,
    ):
        self._transport = transport
        self._log = logger or logging.getLogger(__name__)

        self._lock = threading.RLock()
        self._data = SessionData()

        self._observers: List[SessionObserver] = []
        self._events: Deque[SessionEvent] = deque()
        self._dispatching = False
        self._closed = False

        self._writer = CommandWriter(
            transport,
            self._data,
            lock=self._lock,
            scheduler=scheduler or TimerScheduler(),
            retry_delay_s=retry_delay_s,
            cmd_sink=cmd_sink,
            logger=self._log,
        )
        self._machine = ConnectionStateMachine(
            transport,
            self._data,
            on_state=self._events.append,
            on_link_lost=self._writer.reset,
            inbound_uuid=inbound_uuid,
            outbound_uuid=outbound_uuid,
            logger=self._log,
        )

        transport.set_listener(self)

    # ---------------- Caller API ----------------
    def request_connect(self, address: str) -> bool:
        with self._lock:
            self._require_open()
            try:
                return self._machine.request_connect(address)
            finally:
                self._drain()

    def request_disconnect(self) -> bool:
        with self._lock:
            self._require_open()
            try:
                return self._machine.request_disconnect()
            finally:
                self._drain()

    def current_state(self) -> ConnectionState:
        return self._data.state

    def status(self) -> SessionStatus:
        with self._lock:
            return SessionStatus(
                state=self._data.state,
                address=self._data.address,
                inbound_char=self._data.inbound_char,
                outbound_char=self._data.outbound_char,
                queued_writes=self._writer.queued,
                write_in_flight=self._writer.in_flight,
                last_error=self._data.last_error,
            )

    def send_command(self, cmd: Command) -> None:
        """
        Fire-and-forget: the command is dropped silently when no outbound
        characteristic is known or when the transport refuses it twice.
        """
        data = encode_command(cmd)
        label = command_text(cmd)
        self._log.info("SEND cmd=%r", label)
        with self._lock:
            self._require_open()
            self._writer.submit(data, label)

    def send_text(self, text: str) -> None:
        self.send_command(RawText(text))

    def apply_settings(self, settings: Mapping[str, Any]) -> None:
        for cmd in commands_from_settings(settings):
            self.send_command(cmd)

    def subscribe(self, observer: SessionObserver) -> Callable[[], None]:
        with self._lock:
            self._observers.append(observer)

        def _unsubscribe() -> None:
            with self._lock:
                if observer in self._observers:
                    self._observers.remove(observer)

        return _unsubscribe

    def close(self) -> None:
        """Tear the session down and release the transport handle."""
        with self._lock:
            if self._closed:
                return
            self._closed = True
            self._log.info("SESSION_CLOSE address=%s", self._data.address)
            self._transport.set_listener(None)

        # outside the lock: a transport thread may be blocked on it mid-callback
        try:
            self._transport.close()
        except Exception:
            self._log.exception("TRANSPORT_CLOSE_FAILED")

        with self._lock:
            self._machine.reset()
            self._drain()

    def __enter__(self) -> "DeviceSession":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    # ---------------- Transport listener ----------------
    def on_connection_state_changed(self, raw: RawLinkState) -> None:
        with self._lock:
            if self._closed:
                return
            try:
                self._machine.on_transport_state_changed(raw)
            finally:
                self._drain()

    def on_services_discovered(self, success: bool, characteristics: Sequence[str]) -> None:
        with self._lock:
            if self._closed:
                return
            try:
                self._machine.on_services_discovered(success, list(characteristics))
            finally:
                self._drain()

    def on_characteristic_notified(self, char_id: str, data: bytes) -> None:
        self._on_inbound(char_id, data)

    def on_characteristic_read(self, char_id: str, data: bytes, success: bool) -> None:
        if not success:
            self._log.debug("READ_FAILED char=%s", char_id)
            return
        self._on_inbound(char_id, data)

    def on_characteristic_write_completed(self, char_id: str, success: bool) -> None:
        with self._lock:
            if self._closed:
                return
            self._writer.on_write_completed(char_id, success)

    # ---------------- Internal ----------------
    def _on_inbound(self, char_id: str, data: bytes) -> None:
        with self._lock:
            if self._closed:
                return
            inbound = self._data.inbound_char
            if inbound is None or normalize_uuid(char_id) != normalize_uuid(inbound):
                self._log.debug("NOTIFY_IGNORED char=%s len=%d", char_id, len(data))
                return
            self._events.append(decode_notification(data))
            self._drain()

    def _drain(self) -> None:
        # Runs under self._lock; nested handlers leave delivery to the outermost one.
        if self._dispatching:
            return
        self._dispatching = True
        try:
            while self._events:
                event = self._events.popleft()
                for observer in list(self._observers):
                    try:
                        self._deliver(observer, event)
                    except Exception:
                        self._log.exception("OBSERVER_CALLBACK_ERROR event=%s", type(event).__name__)
        finally:
            self._dispatching = False

    @staticmethod
    def _deliver(observer: SessionObserver, event: SessionEvent) -> None:
        if isinstance(event, ConnectionState):
            observer.on_connection_state_changed(event)
        elif isinstance(event, PressureFrame):
            observer.on_pressure_frame(event.timestamp_ms, event.readings)
        elif isinstance(event, OrientationFrame):
            observer.on_orientation_frame(event.timestamp_ms, event.roll, event.pitch, event.yaw)
        elif isinstance(event, TextLine):
            observer.on_text_line(event.text)

    def _require_open(self) -> None:
        if self._closed:
            raise RuntimeError("DeviceSession is closed")
