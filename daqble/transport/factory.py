# daqble/transport/factory.py
from __future__ import annotations

from typing import Any, Mapping, Optional

from daqble.core.errors import TransportConfigError
from daqble.transport.base import BleTransport
from daqble.transport.errors import TransportError
from daqble.transport.registry import TransportDriverRegistry


def create_transport(
    driver: str,
    params: Optional[Mapping[str, Any]] = None,
    *,
    drivers: Optional[TransportDriverRegistry] = None,
) -> BleTransport:
    """
    Construct (but do not connect) a transport from a driver key + constructor params.
    """
    registry = drivers or TransportDriverRegistry.default()
    params = dict(params or {})

    try:
        return registry.create(driver, **params)
    except TransportError:
        raise TransportConfigError(
            f"Unknown transport driver '{driver}'.",
            hint=f"Known drivers: {', '.join(registry.names())}",
            details={"driver": driver},
        ) from None
    except TypeError as e:
        # constructor mismatch
        raise TransportConfigError(
            f"Invalid parameters for transport driver '{driver}'.",
            hint=str(e),
            details={"driver": driver, "params": params},
        ) from None
