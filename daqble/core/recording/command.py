# daqble/core/recording/command.py
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from daqble.interfaces.command_sink import CommandEvent, CommandSink
from daqble.core.recording.jsonl_writer import JsonlWriter


@dataclass
class CommandTraceLogger(CommandSink):
    """Logs every outbound command event and, optionally, appends it to a JSONL trace."""
    logger: logging.Logger
    file_path: Optional[Path] = None
    flush_interval_s: float = 0.5

    def __post_init__(self) -> None:
        self._writer: Optional[JsonlWriter] = None
        if self.file_path is not None:
            self._writer = JsonlWriter(
                Path(self.file_path),
                flush_interval=self.flush_interval_s,
                logger=self.logger,
            )

    def close(self) -> None:
        if self._writer is not None:
            self._writer.close()
            self._writer = None

    def on_command(self, event: CommandEvent) -> None:
        self.logger.debug("CMD %s %s id=%s", event.kind, event.name, event.request_id)
        if self._writer is None:
            return

        ts_utc = event.ts_utc or datetime.now(timezone.utc).isoformat()

        out = {
            "name": event.name,
            "kind": event.kind,
            "request_id": event.request_id,
            "payload": dict(event.payload) if event.payload is not None else None,
            "ts_utc": ts_utc,
        }

        self._writer.write({k: v for k, v in out.items() if v is not None})
