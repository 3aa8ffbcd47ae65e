# daqble/protocol/__init__.py

from .frames import Frame, PressureFrame, OrientationFrame, TextLine
from .decoder import decode_notification
from .commands import (
    Command,
    StreamKind,
    SetStreamEnabled,
    SetStreamDelay,
    SetRealtime,
    RequestInfo,
    RawText,
    command_text,
    encode_command,
    commands_from_settings,
    commands_from_json,
)

__all__ = [
    "Frame", "PressureFrame", "OrientationFrame", "TextLine",
    "decode_notification",
    "Command", "StreamKind",
    "SetStreamEnabled", "SetStreamDelay", "SetRealtime", "RequestInfo", "RawText",
    "command_text", "encode_command",
    "commands_from_settings", "commands_from_json",
]
