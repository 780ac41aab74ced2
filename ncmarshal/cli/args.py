# ncmarshal/cli/args.py
from __future__ import annotations

import argparse
from typing import Optional


def _policy_args(p: argparse.ArgumentParser) -> None:
    p.add_argument("--schema", default=None, help="YAML schema file defining user types.")
    p.add_argument("--type", required=True, dest="type_name", help="Wire type name (atomic or user type).")
    p.add_argument("--shape", type=int, nargs="*", default=None, help="Wire dimensions (omit for a flat vector).")
    p.add_argument("--fill", default=None, help="Fill value (JSON literal).")
    p.add_argument("--min", dest="valid_min", default=None, help="Smallest valid value (JSON literal).")
    p.add_argument("--max", dest="valid_max", default=None, help="Largest valid value (JSON literal).")
    p.add_argument("--scale", type=float, default=None, help="Scale factor for packed data.")
    p.add_argument("--add", type=float, default=None, help="Offset for packed data.")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="ncmarshal")
    parser.add_argument("--config", default=None, help="YAML file with a 'converter' section.")
    parser.add_argument(
        "--log-level",
        default="WARNING",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level for conversion events.",
    )
    sub = parser.add_subparsers(dest="cmd", required=True)

    p_types = sub.add_parser("types", help="List the user types of a schema.")
    p_types.add_argument("--schema", required=True)

    p_enc = sub.add_parser("encode", help="Convert a JSON host value to wire bytes (hex).")
    _policy_args(p_enc)
    p_enc.add_argument("--value", required=True, help="Host value as JSON.")

    p_dec = sub.add_parser("decode", help="Convert wire bytes (hex) to a JSON host value.")
    _policy_args(p_dec)
    p_dec.add_argument("--hex", required=True, dest="hex_data", help="Wire bytes as hex.")
    p_dec.add_argument("--raw-text", action="store_true", default=None, help="Read char data as raw bytes.")
    p_dec.add_argument("--native", action="store_true", default=None, help="Keep integer wire types as integers.")

    return parser


def parse_args(argv: Optional[list[str]] = None) -> argparse.Namespace:
    return build_parser().parse_args(argv)
