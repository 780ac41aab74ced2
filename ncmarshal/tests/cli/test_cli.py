from __future__ import annotations

import json
from pathlib import Path
import textwrap

import pytest

from ncmarshal.cli.main import main


def _schema(p: Path) -> str:
    path = p / "schema.yml"
    path.write_text(
        textwrap.dedent(
            """
            types:
              status:
                class: enum
                base: ubyte
                members: {idle: 0, busy: 1}
              samples:
                class: vlen
                base: double
              point:
                class: compound
                fields:
                  - {name: x, type: short}
                  - {name: y, type: short}
            """
        ).lstrip(),
        encoding="utf-8",
    )
    return str(path)


def test_types_lists_user_types(tmp_path: Path, capsys) -> None:
    assert main(["types", "--schema", _schema(tmp_path)]) == 0
    out = capsys.readouterr().out
    assert "status" in out and "samples" in out and "point" in out
    assert "idle=0" in out


def test_encode_with_fill(capsys) -> None:
    assert main(["encode", "--type", "ubyte", "--value", "[1, null, 3]", "--fill", "255"]) == 0
    assert capsys.readouterr().out.strip() == "01ff03"


def test_encode_range_error_maps_to_exit_1(capsys) -> None:
    assert main(["encode", "--type", "ubyte", "--value", "[1, null, 300]", "--fill", "255"]) == 1
    assert capsys.readouterr().out.startswith("ERROR:")


def test_decode_with_fill_and_bounds(capsys) -> None:
    argv = ["decode", "--type", "ubyte", "--hex", "000102ff", "--fill", "255", "--min", "0", "--max", "2"]
    assert main(argv) == 0
    assert json.loads(capsys.readouterr().out) == [0.0, 1.0, 2.0, None]

    assert main(argv + ["--native"]) == 0
    assert capsys.readouterr().out.strip() == "[0, 1, 2, null]"


def test_encode_decode_enum_and_compound(tmp_path: Path, capsys) -> None:
    schema = _schema(tmp_path)

    assert main(["encode", "--schema", schema, "--type", "status", "--value", '["busy", "idle"]']) == 0
    assert capsys.readouterr().out.strip() == "0100"

    assert main(["decode", "--schema", schema, "--type", "status", "--hex", "0001"]) == 0
    assert json.loads(capsys.readouterr().out) == ["idle", "busy"]

    assert main(["encode", "--schema", schema, "--type", "point", "--value", '{"x": 1, "y": 2}']) == 0
    hex_point = capsys.readouterr().out.strip()
    assert main(["decode", "--schema", schema, "--type", "point", "--hex", hex_point, "--native"]) == 0
    assert json.loads(capsys.readouterr().out) == {"x": [1], "y": [2]}


def test_pointer_types_not_printable(tmp_path: Path, capsys) -> None:
    schema = _schema(tmp_path)
    assert main(["encode", "--schema", schema, "--type", "samples", "--value", "[[1.0, 2.0]]"]) == 1
    out = capsys.readouterr().out
    assert "ERROR:" in out and "Hint:" in out


def test_encode_char_strings(capsys) -> None:
    assert main(["encode", "--type", "char", "--value", '["ab", "c"]']) == 0
    assert capsys.readouterr().out.strip() == b"abc\0".hex()


def test_config_file_applies(tmp_path: Path, capsys) -> None:
    cfg = tmp_path / "ncmarshal.yml"
    cfg.write_text("converter:\n  prefer_native_numeric: true\n", encoding="utf-8")
    assert main(["--config", str(cfg), "decode", "--type", "ubyte", "--hex", "05"]) == 0
    assert json.loads(capsys.readouterr().out) == [5]


def test_compound_records_list(tmp_path: Path, capsys) -> None:
    schema = _schema(tmp_path)
    value = '[{"x": 1, "y": 2}, {"x": 3, "y": 4}]'
    assert main(["encode", "--schema", schema, "--type", "point", "--value", value]) == 0
    hex_points = capsys.readouterr().out.strip()
    assert len(bytes.fromhex(hex_points)) == 8

    assert main(["decode", "--schema", schema, "--type", "point", "--hex", hex_points, "--native"]) == 0
    assert json.loads(capsys.readouterr().out) == {"x": [1, 3], "y": [2, 4]}
