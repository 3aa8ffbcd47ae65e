# daqble/transport/base.py
from __future__ import annotations

from abc import ABC, abstractmethod
from enum import Enum
from typing import Any, Optional, Protocol, Sequence


class RawLinkState(str, Enum):
    """Primitive link states reported by a BLE stack."""
    CONNECTED = "connected"
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    DISCONNECTING = "disconnecting"


class TransportListener(Protocol):
    """
    Inbound callback surface of a transport.

    Called from the transport's own thread/loop, in the order the link produced them.
    """
    def on_connection_state_changed(self, raw: RawLinkState) -> None: ...
    def on_services_discovered(self, success: bool, characteristics: Sequence[str]) -> None: ...
    def on_characteristic_notified(self, char_id: str, data: bytes) -> None: ...
    def on_characteristic_read(self, char_id: str, data: bytes, success: bool) -> None: ...
    def on_characteristic_write_completed(self, char_id: str, success: bool) -> None: ...


class BleTransport(ABC):
    """
    Abstract BLE GATT transport (bleak, simulated device, etc.).

    Contract:
      - Every request returns True when accepted and False when refused synchronously.
        Outcomes of accepted requests arrive later through the listener.
      - Requests never block on the radio.
      - A transport keeps at most one link handle. connect(address) replaces it,
        reconnect() resumes it, close() releases it.
    """

    def __init__(self) -> None:
        self._listener: Optional[TransportListener] = None

    def set_listener(self, listener: Optional[TransportListener]) -> None:
        self._listener = listener

    @property
    def listener(self) -> Optional[TransportListener]:
        return self._listener

    @abstractmethod
    def handle_address(self) -> Optional[str]:
        """Address of the still-valid link handle, or None."""

    def has_handle(self) -> bool:
        return self.handle_address() is not None

    @abstractmethod
    def connect(self, address: str) -> bool: ...

    @abstractmethod
    def reconnect(self) -> bool: ...

    @abstractmethod
    def disconnect(self) -> bool: ...

    @abstractmethod
    def discover_services(self) -> bool: ...

    @abstractmethod
    def subscribe_notifications(self, char_id: str, enabled: bool) -> bool: ...

    @abstractmethod
    def write(self, char_id: str, data: bytes) -> bool: ...

    @abstractmethod
    def close(self) -> None: ...

    def __enter__(self) -> "BleTransport":
        return self

    def __exit__(self, exc_type: type | None, exc_val: BaseException | None, exc_tb: Any) -> None:
        self.close()
