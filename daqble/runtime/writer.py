# daqble/runtime/writer.py
from __future__ import annotations

import itertools
import logging
import threading
from collections import deque
from dataclasses import dataclass
from typing import Deque, Optional

from daqble.core.errors import ErrorKind
from daqble.interfaces.command_sink import CommandEvent, CommandSink
from daqble.protocol.defs import WRITE_RETRY_DELAY_S, normalize_uuid
from daqble.runtime.connection import SessionData
from daqble.runtime.scheduler import ScheduledCall, Scheduler
from daqble.transport.base import BleTransport


@dataclass
class OutboundWrite:
    seq: int
    data: bytes
    label: str
    retried: bool = False


class CommandWriter:
    """
    Serializes outbound writes to the session's outbound characteristic.

    - FIFO queue, at most one write in flight.
    - A write the transport does not accept is retried once, after retry_delay_s,
      from the scheduler (never a sleep on the caller's thread).
    - A second refusal drops the write; nothing is reported to the caller.
    - The in-flight slot is released by the transport's write-completed callback.

    Every method expects the session lock to be held; the retry timer takes it itself.
    """

    def __init__(
        self,
        transport: BleTransport,
        session: SessionData,
        *,
        lock: threading.RLock,
        scheduler: Scheduler,
        retry_delay_s: float = WRITE_RETRY_DELAY_S,
        cmd_sink: Optional[CommandSink] = None,
        logger: Optional[logging.Logger] = None,
    ):
        self._transport = transport
        self._session = session
        self._lock = lock
        self._scheduler = scheduler
        self.retry_delay_s = float(retry_delay_s)
        self._cmd_sink = cmd_sink
        self._log = logger or logging.getLogger(__name__)

        self._queue: Deque[OutboundWrite] = deque()
        self._in_flight: Optional[OutboundWrite] = None
        self._retry_call: Optional[ScheduledCall] = None
        self._generation = 0
        self._seq = itertools.count(1)

    @property
    def queued(self) -> int:
        return len(self._queue)

    @property
    def in_flight(self) -> bool:
        return self._in_flight is not None

    @property
    def retry_pending(self) -> bool:
        return self._retry_call is not None

    def submit(self, data: bytes, label: str) -> bool:
        """Queue a write. Returns False (and does nothing else) when no outbound handle is resolved."""
        item = OutboundWrite(seq=next(self._seq), data=bytes(data), label=label)

        if self._session.outbound_char is None:
            if not self._transport.has_handle():
                self._session.last_error = ErrorKind.NO_ACTIVE_SESSION
            self._log.info("WRITE_SKIPPED_NO_CHAR cmd=%r", label)
            self._emit(item, "skipped")
            return False

        self._queue.append(item)
        self._pump()
        return True

    def on_write_completed(self, char_id: str, success: bool) -> None:
        item = self._in_flight
        if item is None or self._retry_call is not None:
            self._log.debug("WRITE_COMPLETION_UNEXPECTED char=%s", char_id)
            return
        outbound = self._session.outbound_char
        if outbound is None or normalize_uuid(char_id) != normalize_uuid(outbound):
            self._log.debug("WRITE_COMPLETION_OTHER_CHAR char=%s", char_id)
            return

        self._in_flight = None
        if success:
            self._emit(item, "ok")
        else:
            self._log.warning("WRITE_FAILED cmd=%r", item.label)
            self._emit(item, "error")
        self._pump()

    def reset(self) -> None:
        """Forget every queued/in-flight write (link lost or session teardown)."""
        self._generation += 1
        if self._retry_call is not None:
            self._retry_call.cancel()
            self._retry_call = None

        dropped = len(self._queue) + (1 if self._in_flight is not None else 0)
        self._queue.clear()
        self._in_flight = None
        if dropped:
            self._log.info("WRITE_QUEUE_CLEARED dropped=%d", dropped)

    # ---------------- Internal ----------------
    def _pump(self) -> None:
        while self._in_flight is None and self._queue:
            self._attempt(self._queue.popleft())

    def _attempt(self, item: OutboundWrite) -> None:
        char_id = self._session.outbound_char
        if char_id is None:
            self._drop(item)
            return

        self._in_flight = item
        self._emit(item, "retry" if item.retried else "send")
        self._log.debug("WRITE cmd=%r len=%d retry=%s", item.label, len(item.data), item.retried)

        if self._transport.write(char_id, item.data):
            return

        if item.retried:
            self._drop(item)
            return

        item.retried = True
        self._log.info("WRITE_NOT_ACCEPTED cmd=%r retry_in_s=%.3f", item.label, self.retry_delay_s)
        self._retry_call = self._scheduler.call_later(self.retry_delay_s, self._on_retry_due, self._generation)

    def _on_retry_due(self, generation: int) -> None:
        with self._lock:
            if generation != self._generation:
                return
            self._retry_call = None
            item = self._in_flight
            if item is None:
                return
            self._in_flight = None
            self._attempt(item)
            self._pump()

    def _drop(self, item: OutboundWrite) -> None:
        self._in_flight = None
        self._session.last_error = ErrorKind.WRITE_DROPPED
        self._log.warning("WRITE_DROPPED cmd=%r len=%d", item.label, len(item.data))
        self._emit(item, "dropped")

    def _emit(self, item: OutboundWrite, kind: str) -> None:
        if self._cmd_sink is None:
            return
        try:
            self._cmd_sink.on_command(
                CommandEvent(
                    name=item.label,
                    kind=kind,
                    request_id=str(item.seq),
                    payload={"len": len(item.data), "retried": item.retried},
                )
            )
        except Exception:
            self._log.exception("COMMAND_SINK_ERROR")
