# daqble/cli/args.py
from __future__ import annotations

import argparse
from typing import Optional, Tuple

from daqble.app.config import DaqConfig, load_config


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="daqble", description="Host tools for the BLE data-acquisition wearable")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug-level console logging.")
    parser.add_argument("--log-file", default=None, help="Also write the application log to this file.")

    sub = parser.add_subparsers(dest="cmd", required=True)

    sub.add_parser("drivers", help="List transport drivers.")

    common = argparse.ArgumentParser(add_help=False)
    common.add_argument("--config", default=None, help="YAML config file.")
    common.add_argument("--driver", default=None, help="Transport driver key (see: daqble drivers).")
    common.add_argument("--address", default=None, help="Device address, e.g. AA:BB:CC:DD:EE:FF.")
    common.add_argument("--timeout", type=float, default=None, help="Seconds to wait for the link to become ready.")
    common.add_argument("--trace", default=None, help="Append outbound command events to this JSONL file.")

    ps = sub.add_parser("stream", parents=[common], help="Enable sensor streams and print frames.")
    ps.add_argument("--fsr", action="store_true", help="Enable the pressure (FSR) stream.")
    ps.add_argument("--imu", action="store_true", help="Enable the orientation (IMU) stream.")
    ps.add_argument("--fsr-delay", type=int, default=None, help="FSR frame period in ms.")
    ps.add_argument("--imu-delay", type=int, default=None, help="IMU frame period in ms.")
    ps.add_argument("--realtime", action="store_true", help="Send $real,enable; before starting streams.")
    ps.add_argument("--secs", type=float, default=None, help="Stop after N seconds (default: until Ctrl+C).")
    ps.add_argument("--record", default=None, help="Record frames as JSON lines to this file.")
    ps.add_argument("--quiet", action="store_true", help="Do not print individual frames.")

    pt = sub.add_parser("send", parents=[common], help="Send raw text / commands and print the replies.")
    pt.add_argument("text", nargs="+", help="Each argument is sent as-is, e.g. '$send,info;'.")
    pt.add_argument("--secs", type=float, default=1.0, help="Seconds to listen for replies.")

    sub.add_parser("shell", parents=[common], help="Interactive terminal over the serial-port emulation.")

    return parser


def parse_args(argv: Optional[list[str]] = None) -> Tuple[argparse.Namespace, DaqConfig]:
    """
    Returns: (args, config)

    The config comes from --config (if given) with CLI flags applied on top.
    """
    args = build_parser().parse_args(argv)

    if args.cmd == "drivers":
        return args, DaqConfig()

    config = load_config(args.config) if args.config else DaqConfig()
    config = config.with_overrides(
        driver=args.driver,
        address=args.address,
        connect_timeout_s=args.timeout,
        trace_path=args.trace,
        log_file=args.log_file,
        record_path=getattr(args, "record", None),
    )
    return args, config
