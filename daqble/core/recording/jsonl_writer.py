# daqble/core/recording/jsonl_writer.py
from __future__ import annotations

import json
import logging
import threading
import time
from pathlib import Path
from queue import Empty, Queue
from typing import Any, List, Mapping, Optional


class JsonlWriter:
    """
    Threaded, batched JSON-lines appender.

    Observers run on the transport's callback thread and must not block, so records
    are queued and written by a background thread every flush_interval seconds.
    """

    def __init__(
        self,
        path: Path,
        flush_interval: float = 0.5,
        *,
        logger: Optional[logging.Logger] = None,
    ):
        self._path = Path(path)
        self._flush_interval = float(flush_interval)
        self._log = logger or logging.getLogger(__name__)

        self._queue: "Queue[str]" = Queue()
        self._stop_event = threading.Event()

        self._path.parent.mkdir(parents=True, exist_ok=True)
        self._thread = threading.Thread(target=self._worker, name="jsonl-writer", daemon=True)
        self._thread.start()

    @property
    def path(self) -> Path:
        return self._path

    # ---------------- Public API ----------------
    def write(self, record: Mapping[str, Any]) -> None:
        """Queue one record (no-op after close())."""
        if self._stop_event.is_set():
            return
        self._queue.put(json.dumps(dict(record), ensure_ascii=False))

    def close(self) -> None:
        """Flush remaining records and stop the writer thread."""
        if self._stop_event.is_set():
            return
        self._stop_event.set()
        self._thread.join(timeout=None)

    # ---------------- Internal ----------------
    def _worker(self) -> None:
        batch: List[str] = []
        last_flush = time.time()

        while not self._stop_event.is_set() or not self._queue.empty():
            try:
                batch.append(self._queue.get(timeout=0.1))
            except Empty:
                pass

            now = time.time()
            if batch and (now - last_flush >= self._flush_interval or self._stop_event.is_set()):
                self._flush_safe(batch)
                batch.clear()
                last_flush = now

        if batch:
            self._flush_safe(batch)

    def _flush_safe(self, batch: List[str]) -> None:
        """Flush with exception safety (never kill the worker thread)."""
        try:
            with open(self._path, "a", encoding="utf-8") as f:
                for line in batch:
                    f.write(line + "\n")
        except OSError:
            self._log.exception("JSONL_FLUSH_FAILED path=%s batch_len=%d", self._path, len(batch))
