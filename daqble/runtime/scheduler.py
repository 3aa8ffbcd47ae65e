# daqble/runtime/scheduler.py
from __future__ import annotations

import threading
from typing import Any, Callable, Protocol


class ScheduledCall(Protocol):
    def cancel(self) -> None: ...


class Scheduler(Protocol):
    """Deferred execution used for the write retry backoff."""
    def call_later(self, delay_s: float, fn: Callable[..., Any], *args: Any) -> ScheduledCall: ...


class TimerScheduler:
    """Runs each deferred call on its own daemon threading.Timer."""

    def call_later(self, delay_s: float, fn: Callable[..., Any], *args: Any) -> ScheduledCall:
        timer = threading.Timer(float(delay_s), fn, args=args)
        timer.daemon = True
        timer.start()
        return timer
