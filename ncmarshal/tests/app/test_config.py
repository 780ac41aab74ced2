from __future__ import annotations

from pathlib import Path
import textwrap

import pytest

from ncmarshal.app.config import ConverterConfig
from ncmarshal.core.errors import SchemaError
from ncmarshal.model.host import HOST_STRING_MAXLEN


def _write(p: Path, name: str, text: str) -> Path:
    path = p / name
    path.write_text(textwrap.dedent(text).lstrip(), encoding="utf-8")
    return path


def test_defaults():
    cfg = ConverterConfig()
    assert cfg.host_string_maxlen == HOST_STRING_MAXLEN
    assert not cfg.prefer_raw_text
    assert not cfg.prefer_native_numeric


def test_load_converter_section(tmp_path: Path) -> None:
    path = _write(
        tmp_path,
        "ncmarshal.yml",
        """
        converter:
          host_string_maxlen: 64
          prefer_native_numeric: true
        """,
    )
    cfg = ConverterConfig.load(path)
    assert cfg.host_string_maxlen == 64
    assert cfg.prefer_native_numeric
    assert not cfg.prefer_raw_text


def test_missing_section_gives_defaults(tmp_path: Path) -> None:
    path = _write(tmp_path, "ncmarshal.yml", "other: 1\n")
    assert ConverterConfig.load(path) == ConverterConfig()


def test_unknown_key_rejected(tmp_path: Path) -> None:
    path = _write(
        tmp_path,
        "ncmarshal.yml",
        """
        converter:
          prefer_raw: true
        """,
    )
    with pytest.raises(SchemaError) as ei:
        ConverterConfig.load(path)
    assert "prefer_raw" in ei.value.message
    assert ei.value.hint is not None


def test_invalid_maxlen():
    with pytest.raises(SchemaError):
        ConverterConfig(host_string_maxlen=0)


def test_missing_file(tmp_path: Path) -> None:
    with pytest.raises(SchemaError):
        ConverterConfig.load(tmp_path / "absent.yml")
