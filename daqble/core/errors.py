# daqble/core/errors.py
from __future__ import annotations

from enum import Enum


class ErrorKind(str, Enum):
    """
    Session-level failure kinds.

    These are recorded on the session (status().last_error) and logged; the session
    never raises them. Callers get a boolean from the request that failed, or nothing
    at all for a dropped write.
    """
    NO_ACTIVE_SESSION = "no_active_session"    # disconnect/write with no transport handle
    TRANSPORT_REJECTED = "transport_rejected"  # transport refused the request synchronously
    DISCOVERY_FAILED = "discovery_failed"      # service enumeration failed; link stays Connected
    WRITE_DROPPED = "write_dropped"            # write refused twice; silently discarded


class DaqError(Exception):
    """
    Base class for all expected operational errors at the app/CLI layer.
    """

    #: Stable machine-readable identifier (for CLI exit mapping, logs, etc.)
    code: str = "unknown"

    def __init__(
        self,
        message: str,
        *,
        hint: str | None = None,
        details: dict | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.hint = hint
        self.details = details or {}

    def __str__(self) -> str:
        return self.message


# ---------------------------------------------------------------------------
# Configuration / setup errors (no radio access yet)
# ---------------------------------------------------------------------------

class ConfigError(DaqError):
    """
    Configuration file or CLI values are invalid.

    Examples:
      - YAML file missing or not a mapping
      - unknown top-level key
      - wrong value type (e.g. non-numeric timeout)
    """
    code = "config_error"


class TransportConfigError(DaqError):
    """
    Transport driver could not be constructed.

    Examples:
      - unknown driver key
      - constructor params do not match the driver
    """
    code = "transport_config_error"


# ---------------------------------------------------------------------------
# Link lifecycle errors
# ---------------------------------------------------------------------------

class DeviceConnectError(DaqError):
    """
    The link did not become usable (services discovered) in time, or the
    transport refused the connect request.
    """
    code = "device_connect_error"

