from .observer import SessionObserver
from .command_sink import CommandEvent, CommandSink

__all__ = ["SessionObserver", "CommandEvent", "CommandSink"]
