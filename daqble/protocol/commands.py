# daqble/protocol/commands.py
from __future__ import annotations

import json
from dataclasses import dataclass
from enum import Enum
from typing import Any, List, Mapping, Union

from .defs import (
    CMD_PREFIX,
    CMD_SEPARATOR,
    CMD_TERMINATOR,
    KW_DELAY,
    KW_DISABLE,
    KW_ENABLE,
    KW_INFO,
    KW_REALTIME,
    KW_SEND,
)


class StreamKind(str, Enum):
    FSR = "fsr"
    IMU = "imu"


@dataclass(frozen=True)
class SetStreamEnabled:
    stream: StreamKind
    enabled: bool


@dataclass(frozen=True)
class SetStreamDelay:
    stream: StreamKind
    millis: int

    def __post_init__(self) -> None:
        if isinstance(self.millis, bool) or not isinstance(self.millis, int):
            raise ValueError(f"delay must be an int, got {type(self.millis).__name__}")
        if self.millis < 0:
            raise ValueError(f"delay must be non-negative, got {self.millis}")


@dataclass(frozen=True)
class SetRealtime:
    enabled: bool


@dataclass(frozen=True)
class RequestInfo:
    pass


@dataclass(frozen=True)
class RawText:
    """Terminal-style passthrough; sent exactly as given."""
    text: str


Command = Union[SetStreamEnabled, SetStreamDelay, SetRealtime, RequestInfo, RawText]


def _wrap(*fields: str) -> str:
    return CMD_PREFIX + CMD_SEPARATOR.join(fields) + CMD_TERMINATOR


def command_text(cmd: Command) -> str:
    """Wire string for a command, e.g. '$fsr,enable;' or '$imu,delay,250;'."""
    if isinstance(cmd, SetStreamEnabled):
        return _wrap(StreamKind(cmd.stream).value, KW_ENABLE if cmd.enabled else KW_DISABLE)
    if isinstance(cmd, SetStreamDelay):
        return _wrap(StreamKind(cmd.stream).value, KW_DELAY, str(int(cmd.millis)))
    if isinstance(cmd, SetRealtime):
        return _wrap(KW_REALTIME, KW_ENABLE if cmd.enabled else KW_DISABLE)
    if isinstance(cmd, RequestInfo):
        return _wrap(KW_SEND, KW_INFO)
    if isinstance(cmd, RawText):
        return cmd.text
    raise TypeError(f"Unsupported command type: {type(cmd).__name__}")


def encode_command(cmd: Command) -> bytes:
    # one byte per character, low 8 bits only (no charset negotiation on the device)
    return bytes(ord(c) & 0xFF for c in command_text(cmd))


# ---------------------------------------------------------------------------
# "settings" messages
# ---------------------------------------------------------------------------

SETTINGS_MESSAGE = "settings"

_SETTINGS_KEYS = (
    ("enable fsr", StreamKind.FSR, "enable"),
    ("fsr delay", StreamKind.FSR, "delay"),
    ("enable imu", StreamKind.IMU, "enable"),
    ("imu delay", StreamKind.IMU, "delay"),
)


def commands_from_settings(settings: Mapping[str, Any]) -> List[Command]:
    """
    Translate a settings mapping into commands.

    Recognized keys: "enable fsr", "fsr delay", "enable imu", "imu delay".
    Commands come out in that order; unknown keys are ignored.
    """
    out: List[Command] = []
    for key, stream, kind in _SETTINGS_KEYS:
        if key not in settings:
            continue
        value = settings[key]
        if kind == "enable":
            if not isinstance(value, bool):
                raise ValueError(f"settings '{key}' must be a bool, got {value!r}")
            out.append(SetStreamEnabled(stream, value))
        else:
            out.append(SetStreamDelay(stream, value))
    return out


def commands_from_json(text: str) -> List[Command]:
    try:
        obj = json.loads(text)
    except json.JSONDecodeError as e:
        raise ValueError(f"Invalid JSON message: {e}") from None

    if not isinstance(obj, dict):
        raise ValueError("JSON message must be an object")
    if obj.get("message") != SETTINGS_MESSAGE:
        return []
    return commands_from_settings(obj)
