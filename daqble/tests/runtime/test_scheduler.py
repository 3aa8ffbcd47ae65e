# daqble/tests/runtime/test_scheduler.py
from __future__ import annotations

import threading
import time

from daqble.runtime.scheduler import TimerScheduler


def test_call_later_runs_with_args():
    done = threading.Event()
    seen = []

    def fn(a, b):
        seen.append((a, b))
        done.set()

    TimerScheduler().call_later(0.01, fn, 1, "x")
    assert done.wait(2.0)
    assert seen == [(1, "x")]


def test_cancel_prevents_call():
    fired = threading.Event()
    call = TimerScheduler().call_later(0.2, fired.set)
    call.cancel()
    time.sleep(0.3)
    assert not fired.is_set()
