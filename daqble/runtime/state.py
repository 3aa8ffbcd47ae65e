# daqble/runtime/state.py
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional

from daqble.core.errors import ErrorKind


class ConnectionState(Enum):
    """
    Lifecycle state of the single device session.

    Values keep the numbering the device tooling has always reported.
    """
    DISCONNECTED = 0
    CONNECTING = 1
    CONNECTED = 2
    DISCONNECTING = 3
    SERVICES_DISCOVERED = 4


@dataclass(frozen=True)
class SessionStatus:
    """
    A snapshot of the session, safe to share across threads.
    """
    state: ConnectionState
    address: Optional[str] = None
    inbound_char: Optional[str] = None
    outbound_char: Optional[str] = None
    queued_writes: int = 0
    write_in_flight: bool = False
    last_error: Optional[ErrorKind] = None

    @property
    def ready(self) -> bool:
        return self.state is ConnectionState.SERVICES_DISCOVERED and self.outbound_char is not None
