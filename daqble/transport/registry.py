from __future__ import annotations

from typing import Dict, Type

from .base import BleTransport
from .bleak_ble import BleakTransport
from .sim import SimulatedDaqTransport
from .errors import TransportError


class TransportDriverRegistry:
    """
    Maps driver keys -> concrete transport classes.

    - NO config loading
    - NO session logic
    """

    def __init__(self, drivers: Dict[str, Type[BleTransport]]):
        # normalize keys to be case-insensitive
        self._drivers: Dict[str, Type[BleTransport]] = {k.lower(): v for k, v in drivers.items()}

    @classmethod
    def default(cls) -> "TransportDriverRegistry":
        return cls(
            drivers={
                "ble": BleakTransport,
                "sim": SimulatedDaqTransport,
            }
        )

    def names(self) -> list[str]:
        return sorted(self._drivers)

    def has(self, driver: str) -> bool:
        return driver.lower() in self._drivers

    def get_class(self, driver: str) -> Type[BleTransport]:
        key = driver.lower()
        if key not in self._drivers:
            raise TransportError(f"Transport driver '{driver}' not registered")
        return self._drivers[key]

    def create(self, driver: str, **params) -> BleTransport:
        """
        Instantiate a transport by driver key.
        """
        transport_cls = self.get_class(driver)
        return transport_cls(**params)
