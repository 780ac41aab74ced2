# ncmarshal/cli/main.py
from __future__ import annotations

import logging
from typing import Optional

from ncmarshal.app.config import ConverterConfig
from ncmarshal.core.errors import ConversionError

from ncmarshal.cli.args import parse_args
from ncmarshal.cli.commands import (
    cmd_types,
    cmd_encode,
    cmd_decode,
)


def main(argv: Optional[list[str]] = None) -> int:
    args = parse_args(argv)
    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )

    try:
        config = ConverterConfig.load(args.config) if args.config else ConverterConfig()

        if args.cmd == "types":
            return cmd_types(args)
        if args.cmd == "encode":
            return cmd_encode(args, config)
        if args.cmd == "decode":
            return cmd_decode(args, config)

        return 2
    except ConversionError as e:
        print(f"ERROR: {e.message}")
        if e.hint:
            print(f"Hint: {e.hint}")
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
