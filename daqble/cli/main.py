# daqble/cli/main.py
from __future__ import annotations

import sys
from typing import Optional

from daqble.core.errors import DaqError

from daqble.cli.args import parse_args
from daqble.cli.commands import (
    configure_logging,
    cmd_drivers,
    cmd_send,
    cmd_shell,
    cmd_stream,
)


def main(argv: Optional[list[str]] = None) -> int:
    try:
        args, config = parse_args(argv)
        configure_logging(verbose=args.verbose, log_file=config.log_file)

        if args.cmd == "drivers":
            return cmd_drivers()
        if args.cmd == "stream":
            return cmd_stream(args, config)
        if args.cmd == "send":
            return cmd_send(args, config)
        if args.cmd == "shell":
            return cmd_shell(config)

        return 2
    except DaqError as e:
        print(f"ERROR: {e.message}")
        if e.hint:
            print(f"Hint: {e.hint}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
