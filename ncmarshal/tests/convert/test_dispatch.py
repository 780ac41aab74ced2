from __future__ import annotations

import logging

import pytest

from ncmarshal.app.config import ConverterConfig
from ncmarshal.convert import Converter, ReadConversion
from ncmarshal.core.errors import DataLengthError, RangeError, UnsupportedTypeError
from ncmarshal.model import host as hv
from ncmarshal.model.registry import TypeRegistry


def _conv(**kwargs) -> Converter:
    reg = TypeRegistry()
    reg.define_enum("color", "ubyte", {"red": 0})
    reg.define_opaque("blob", 2)
    return Converter(reg, **kwargs)


@pytest.mark.parametrize(
    "value, type_name",
    [
        (hv.string(["1"]), "int"),
        (hv.vlist([hv.integer([1])]), "color"),
        (hv.double([1.0]), "blob"),
        (hv.raw(b"\x01"), "int"),
        (hv.integer([1]), "string"),
    ],
)
def test_unsupported_pairs(value, type_name):
    conv = _conv()
    with pytest.raises(UnsupportedTypeError):
        conv.host_to_wire(value, conv.context(type_name, (1,), flat=True))


def test_failures_are_logged_before_raising(caplog):
    conv = _conv()
    caplog.set_level(logging.WARNING, logger="ncmarshal.convert.dispatch")
    with pytest.raises(RangeError):
        conv.host_to_wire(hv.integer([300]), conv.context("ubyte", (1,), flat=True))
    assert any("WRITE_FAILED" in r.getMessage() and "range_error" in r.getMessage() for r in caplog.records)


def test_injected_logger_receives_events(caplog):
    log = logging.getLogger("test.converter")
    conv = _conv(logger=log)
    caplog.set_level(logging.DEBUG, logger="test.converter")
    conv.wire_to_host(conv.context("ubyte", (1,), flat=True), b"\x01")
    assert any(r.name == "test.converter" and "READ_OK" in r.getMessage() for r in caplog.records)


def test_two_phase_read_releases_scratch_on_finish():
    conv = _conv()
    rc = conv.prepare_read(conv.context("char", (2, 3)))
    assert isinstance(rc, ReadConversion)
    assert conv.arena.in_use == 6

    rc.buffer.data[:] = b"abcde\0"
    out = rc.finish()
    assert conv.arena.in_use == 0
    assert out.data == ["abc", "de"]
    assert rc.finished
    assert rc.finish() is out


def test_short_wire_buffer():
    conv = _conv()
    with pytest.raises(DataLengthError):
        conv.wire_to_host(conv.context("int", (2,), flat=True), b"\0\0\0\0")
    with pytest.raises(DataLengthError):
        conv.prepare_read(conv.context("blob", (2,), flat=True), b"\0")
    assert conv.arena.in_use == 0


def test_context_uses_config_defaults():
    conv = _conv(config=ConverterConfig(prefer_native_numeric=True, prefer_raw_text=True))
    ctx = conv.context("int", (2,), flat=True)
    assert ctx.prefer_native_numeric and ctx.prefer_raw_text
    assert not conv.context("int", (2,), flat=True, prefer_raw_text=False).prefer_raw_text


def test_unknown_type():
    conv = _conv()
    with pytest.raises(UnsupportedTypeError):
        conv.context("nope", (1,))
