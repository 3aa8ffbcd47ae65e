# daqble/cli/commands.py
from __future__ import annotations

import logging
import sys
import time
from pathlib import Path
from typing import Optional, TextIO

from daqble.app.config import DaqConfig
from daqble.app.controller import DaqController
from daqble.app.sinks import PrintObserver
from daqble.core.recording.command import CommandTraceLogger
from daqble.core.recording.frames import FrameRecorder
from daqble.protocol.commands import (
    SetRealtime,
    SetStreamDelay,
    SetStreamEnabled,
    StreamKind,
    commands_from_json,
)
from daqble.transport.registry import TransportDriverRegistry

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


# ---------------- Logging ----------------

def configure_logging(*, verbose: bool = False, log_file: Optional[str] = None) -> None:
    """
    Console handler on stderr + optional file handler on the root logger (idempotent).
    Kept in CLI (presentation-layer concern).
    """
    root = logging.getLogger()
    level = logging.DEBUG if verbose else logging.WARNING

    if not any(getattr(h, "_daqble_console", False) for h in root.handlers):
        ch = logging.StreamHandler(sys.stderr)
        ch.setFormatter(logging.Formatter(LOG_FORMAT))
        ch._daqble_console = True  # type: ignore[attr-defined]
        root.addHandler(ch)
    for h in root.handlers:
        if getattr(h, "_daqble_console", False):
            h.setLevel(level)

    if log_file:
        path = Path(log_file)
        path.parent.mkdir(parents=True, exist_ok=True)
        target = str(path.resolve())
        if not any(
            isinstance(h, logging.FileHandler) and getattr(h, "baseFilename", None) == target
            for h in root.handlers
        ):
            fh = logging.FileHandler(path, encoding="utf-8", delay=True)
            fh.setLevel(logging.INFO)
            fh.setFormatter(logging.Formatter(LOG_FORMAT))
            root.addHandler(fh)

    wanted = logging.DEBUG if verbose else (logging.INFO if log_file else logging.WARNING)
    if root.level == logging.NOTSET or root.level > wanted:
        root.setLevel(wanted)


# ---------------- Helpers ----------------

def _open_controller(config: DaqConfig) -> tuple[DaqController, Optional[CommandTraceLogger]]:
    sink = None
    if config.trace_path:
        sink = CommandTraceLogger(logger=logging.getLogger("commands"), file_path=Path(config.trace_path))
    try:
        controller = DaqController(config, cmd_sink=sink)
    except Exception:
        if sink is not None:
            sink.close()
        raise
    return controller, sink


def _listen(secs: Optional[float]) -> None:
    t0 = time.monotonic()
    try:
        while secs is None or time.monotonic() - t0 < secs:
            time.sleep(0.1)
    except KeyboardInterrupt:
        pass


# ---------------- Commands ----------------

def cmd_drivers(*, out: Optional[TextIO] = None) -> int:
    out = out or sys.stdout
    registry = TransportDriverRegistry.default()
    print("Available transport drivers:\n", file=out)
    for name in registry.names():
        cls = registry.get_class(name)
        doc = (cls.__doc__ or "").strip().splitlines()
        print(f"  {name:6s} {doc[0] if doc else cls.__name__}", file=out)
    print("\nExample:\n  daqble stream --driver ble --address AA:BB:CC:DD:EE:FF --fsr", file=out)
    return 0


def cmd_stream(args, config: DaqConfig) -> int:
    controller, sink = _open_controller(config)
    recorder = None
    try:
        with controller:
            controller.add_observer(PrintObserver(show_frames=not args.quiet))
            if config.record_path:
                recorder = FrameRecorder(Path(config.record_path))
                controller.add_observer(recorder)
                print(f"Recording: {recorder.path}")

            st = controller.connect()
            print(f"Connected: {st.address}")

            if args.realtime:
                controller.send(SetRealtime(True))
            if args.fsr_delay is not None:
                controller.send(SetStreamDelay(StreamKind.FSR, args.fsr_delay))
            if args.imu_delay is not None:
                controller.send(SetStreamDelay(StreamKind.IMU, args.imu_delay))

            streams = [k for k, on in ((StreamKind.FSR, args.fsr), (StreamKind.IMU, args.imu)) if on]
            for kind in streams:
                controller.send(SetStreamEnabled(kind, True))

            _listen(args.secs)

            for kind in reversed(streams):
                controller.send(SetStreamEnabled(kind, False))
            controller.disconnect()

            if recorder is not None:
                print(f"Captured {recorder.frames_written} frame(s) -> {recorder.path}")
            return 0
    finally:
        if sink is not None:
            sink.close()


def cmd_send(args, config: DaqConfig) -> int:
    controller, sink = _open_controller(config)
    try:
        with controller:
            controller.add_observer(PrintObserver())
            controller.connect()
            for text in args.text:
                controller.send_text(text)
            _listen(args.secs)
            controller.disconnect()
            return 0
    finally:
        if sink is not None:
            sink.close()


def cmd_shell(config: DaqConfig, *, stdin: Optional[TextIO] = None) -> int:
    """
    Terminal over the serial-port emulation.

    Every input line is sent as typed. A line starting with '{' is read as a JSON
    settings message instead. ':quit' (or EOF) leaves the shell.
    """
    controller, sink = _open_controller(config)
    try:
        with controller:
            controller.add_observer(PrintObserver())
            controller.connect()
            print("Connected. Type commands ($fsr,enable; ...), ':quit' to leave.")

            for line in stdin or sys.stdin:
                line = line.rstrip("\r\n")
                if line == ":quit":
                    break
                if not line:
                    continue
                if line.lstrip().startswith("{"):
                    try:
                        cmds = commands_from_json(line)
                    except ValueError as e:
                        print(f"[shell] {e}")
                        continue
                    for cmd in cmds:
                        controller.send(cmd)
                    continue
                controller.send_text(line)

            controller.disconnect()
            return 0
    finally:
        if sink is not None:
            sink.close()
