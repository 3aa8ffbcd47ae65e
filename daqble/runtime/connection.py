# daqble/runtime/connection.py
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, Optional, Sequence

from daqble.core.errors import ErrorKind
from daqble.protocol.defs import INBOUND_CHAR_UUID, OUTBOUND_CHAR_UUID, normalize_uuid
from daqble.runtime.state import ConnectionState
from daqble.transport.base import BleTransport, RawLinkState


@dataclass
class SessionData:
    """
    Mutable session aggregate. Owned by DeviceSession and only touched under its lock.
    """
    state: ConnectionState = ConnectionState.DISCONNECTED
    address: Optional[str] = None
    inbound_char: Optional[str] = None
    outbound_char: Optional[str] = None
    last_error: Optional[ErrorKind] = None

    def clear_link(self) -> None:
        self.address = None
        self.inbound_char = None
        self.outbound_char = None


_RAW_TO_STATE = {
    RawLinkState.CONNECTED: ConnectionState.CONNECTED,
    RawLinkState.DISCONNECTED: ConnectionState.DISCONNECTED,
    RawLinkState.CONNECTING: ConnectionState.CONNECTING,
    RawLinkState.DISCONNECTING: ConnectionState.DISCONNECTING,
}


class ConnectionStateMachine:
    """
    Tracks the lifecycle of one BLE link.

    Transitions happen only on explicit requests or transport callbacks:
      Disconnected -> Connecting            request_connect()
      Connecting -> Connected               transport reports connected (discovery is then requested)
      Connected -> ServicesDiscovered       inbound characteristic found and subscribed
      any -> Disconnecting / Disconnected   transport reports it

    A transport report of the state already held is not passed on again.

    An unexpected disconnect is handled exactly like a graceful one.
    """

    def __init__(
        self,
        transport: BleTransport,
        session: SessionData,
        *,
        on_state: Callable[[ConnectionState], None],
        on_link_lost: Optional[Callable[[], None]] = None,
        inbound_uuid: str = INBOUND_CHAR_UUID,
        outbound_uuid: str = OUTBOUND_CHAR_UUID,
        logger: Optional[logging.Logger] = None,
    ):
        self._transport = transport
        self._session = session
        self._on_state = on_state
        self._on_link_lost = on_link_lost
        self._inbound_uuid = normalize_uuid(inbound_uuid)
        self._outbound_uuid = normalize_uuid(outbound_uuid)
        self._log = logger or logging.getLogger(__name__)

    def current_state(self) -> ConnectionState:
        return self._session.state

    # ---------------- Requests ----------------
    def request_connect(self, address: str) -> bool:
        state = self._session.state
        if state in (ConnectionState.CONNECTED, ConnectionState.CONNECTING):
            self._log.info("CONNECT_IGNORED state=%s address=%s", state.name, address)
            self._on_state(state)
            return True

        if self._transport.handle_address() == address:
            # Resume the existing handle; the transport reports whatever state follows.
            if not self._transport.reconnect():
                self._fail(ErrorKind.TRANSPORT_REJECTED, "RECONNECT_REJECTED address=%s", address)
                return False
            self._session.address = address
            self._log.info("RECONNECT_REQUESTED address=%s", address)
            return True

        # A new address replaces the transport handle; nothing of the old link survives.
        self._session.clear_link()
        if self._on_link_lost is not None:
            self._on_link_lost()

        # Connecting is entered before the request: a transport may report the link
        # from inside connect() and that report must win.
        self._session.address = address
        self._log.info("CONNECT_REQUESTED address=%s", address)
        self._set_state(ConnectionState.CONNECTING)

        if not self._transport.connect(address):
            self._fail(ErrorKind.TRANSPORT_REJECTED, "CONNECT_REJECTED address=%s", address)
            if self._session.state is ConnectionState.CONNECTING:
                self._session.address = None
                self._set_state(state)
            return False
        return True

    def request_disconnect(self) -> bool:
        if not self._transport.has_handle():
            self._fail(ErrorKind.NO_ACTIVE_SESSION, "DISCONNECT_NO_SESSION state=%s", self._session.state.name)
            return False

        if not self._transport.disconnect():
            self._fail(ErrorKind.TRANSPORT_REJECTED, "DISCONNECT_REJECTED address=%s", self._session.address)
            return False

        self._log.info("DISCONNECT_REQUESTED address=%s", self._session.address)
        return True

    def reset(self) -> None:
        """Drop all link state (teardown)."""
        self._session.clear_link()
        if self._on_link_lost is not None:
            self._on_link_lost()
        if self._session.state is not ConnectionState.DISCONNECTED:
            self._set_state(ConnectionState.DISCONNECTED)

    # ---------------- Transport events ----------------
    def on_transport_state_changed(self, raw: RawLinkState) -> None:
        new_state = _RAW_TO_STATE[RawLinkState(raw)]

        if new_state is ConnectionState.DISCONNECTED:
            self._session.clear_link()
            if self._on_link_lost is not None:
                self._on_link_lost()

        if new_state is self._session.state:
            # e.g. the transport confirming the Connecting a request already entered
            self._log.debug("STATE_UNCHANGED state=%s", new_state.name)
            return

        self._set_state(new_state)

        if new_state is ConnectionState.CONNECTED:
            if self._transport.discover_services():
                self._log.info("DISCOVERY_REQUESTED address=%s", self._session.address)
            else:
                self._fail(ErrorKind.DISCOVERY_FAILED, "DISCOVERY_REQUEST_REJECTED address=%s", self._session.address)

    def on_services_discovered(self, success: bool, characteristics: Sequence[str]) -> None:
        if self._session.state in (ConnectionState.DISCONNECTED, ConnectionState.DISCONNECTING):
            self._log.info("DISCOVERY_RESULT_IGNORED state=%s", self._session.state.name)
            return

        if not success:
            self._fail(ErrorKind.DISCOVERY_FAILED, "DISCOVERY_FAILED address=%s", self._session.address)
            return

        inbound: Optional[str] = None
        outbound: Optional[str] = None
        for char_id in characteristics:
            key = normalize_uuid(char_id)
            if key == self._inbound_uuid:
                inbound = char_id
            elif key == self._outbound_uuid:
                outbound = char_id

        if outbound is not None:
            self._session.outbound_char = outbound
            self._log.info("OUTBOUND_CHAR_FOUND char=%s", outbound)

        if inbound is None:
            self._log.warning("INBOUND_CHAR_MISSING count=%d", len(characteristics))
            return

        if not self._transport.subscribe_notifications(inbound, True):
            self._fail(ErrorKind.TRANSPORT_REJECTED, "SUBSCRIBE_REJECTED char=%s", inbound)
            return

        self._session.inbound_char = inbound
        self._log.info("INBOUND_CHAR_SUBSCRIBED char=%s", inbound)
        self._set_state(ConnectionState.SERVICES_DISCOVERED)

    # ---------------- Internal ----------------
    def _set_state(self, new_state: ConnectionState) -> None:
        old = self._session.state
        self._session.state = new_state
        self._log.info("STATE_CHANGED old=%s new=%s", old.name, new_state.name)
        self._on_state(new_state)

    def _fail(self, kind: ErrorKind, msg: str, *args: object) -> None:
        self._session.last_error = kind
        self._log.warning(msg, *args)
