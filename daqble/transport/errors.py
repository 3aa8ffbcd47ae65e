# daqble/transport/errors.py
from __future__ import annotations

class TransportError(Exception):
    """Base class for transport-layer failures."""

class TransportOpenError(TransportError):
    """The adapter/event loop backing the transport could not be brought up."""
