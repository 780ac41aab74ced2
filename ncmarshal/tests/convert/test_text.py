from __future__ import annotations

import pytest

from ncmarshal.app.config import ConverterConfig
from ncmarshal.convert import Converter
from ncmarshal.core.buffer import WireBuffer
from ncmarshal.core.errors import DataLengthError, UnsupportedTypeError
from ncmarshal.model import host as hv
from ncmarshal.model.host import HostKind
from ncmarshal.model.registry import TypeRegistry


class RecordingStorage:
    def __init__(self) -> None:
        self.calls = []

    def free_string(self, count, buffer) -> None:
        self.calls.append(("string", count))

    def free_vlen(self, buffer, offset) -> None:
        self.calls.append(("vlen", offset))


def _conv(**kwargs) -> Converter:
    return Converter(TypeRegistry(), **kwargs)


# ---------------- fixed-length char ----------------

def test_char_write_pads_and_truncates():
    conv = _conv()
    ctx = conv.context("char", (3, 4))
    wire = conv.host_to_wire(hv.string(["ab", "abcdef", None]), ctx)
    assert wire.tobytes() == b"ab\0\0abcd\0\0\0\0"


def test_char_write_stops_at_embedded_nul():
    conv = _conv()
    wire = conv.host_to_wire(hv.string(["a\0b"]), conv.context("char", (1, 3)))
    assert wire.tobytes() == b"a\0\0"


def test_char_read_keeps_unterminated_full_width():
    conv = _conv()
    out = conv.wire_to_host(conv.context("char", (3, 4)), b"ab\0\0abcdxy\0\0")
    assert out.kind == HostKind.STRING
    assert out.dim == (3,)
    assert out.data == ["ab", "abcd", "xy"]


def test_char_scalar_and_flat_vector():
    conv = _conv()
    assert conv.host_to_wire(hv.string(["q"]), conv.context("char")).tobytes() == b"q"
    assert conv.wire_to_host(conv.context("char"), b"q").data == ["q"]

    flat = conv.context("char", (5,), flat=True)
    assert conv.host_to_wire(hv.string(["hello world"]), flat).tobytes() == b"hello"
    out = conv.wire_to_host(flat, b"hello")
    assert out.dim == ()
    assert out.data == ["hello"]


def test_char_read_replaces_invalid_utf8():
    conv = _conv()
    out = conv.wire_to_host(conv.context("char", (2,), flat=True), b"\xff\xfe")
    assert out.data == ["\ufffd\ufffd"]


def test_char_raw_mode_keeps_full_shape():
    conv = _conv()
    ctx = conv.context("char", (2, 3), prefer_raw_text=True)
    out = conv.wire_to_host(ctx, b"abcdef")
    assert out.kind == HostKind.RAW
    assert out.dim == (2, 3)
    assert out.to_python() == b"abcdef"


def test_raw_to_char_aliases():
    conv = _conv()
    value = hv.raw(b"xyz")
    wire = conv.host_to_wire(value, conv.context("char", (3,), flat=True))
    assert wire.shares_memory(value.data)
    with pytest.raises(DataLengthError):
        conv.host_to_wire(hv.raw(b"xy"), conv.context("char", (3,), flat=True))


def test_char_read_respects_configured_maxlen():
    conv = _conv(config=ConverterConfig(host_string_maxlen=3))
    out = conv.wire_to_host(conv.context("char", (1, 6)), b"abcdef")
    assert out.data == ["abc"]


def test_char_rejects_numbers():
    conv = _conv()
    with pytest.raises(UnsupportedTypeError):
        conv.host_to_wire(hv.integer([1]), conv.context("char", (1,), flat=True))


# ---------------- variable-length strings ----------------

def test_string_write_one_object_per_slot():
    conv = _conv()
    wire = conv.host_to_wire(hv.string(["hi", None, "héllo"]), conv.context("string", (3,), flat=True))
    assert len(wire) == 24
    assert wire.refs == {0: b"hi", 8: b"", 16: "héllo".encode("utf-8")}


def test_string_round_trip_releases_storage():
    conv = _conv()
    ctx = conv.context("string", (3,), flat=True)
    wire = conv.host_to_wire(hv.string(["hi", None, "héllo"]), ctx)
    out = conv.wire_to_host(ctx, wire)
    assert out.data == ["hi", "", "héllo"]
    assert wire.refs == {}


def test_string_null_slot_reads_empty():
    conv = _conv()
    wire = WireBuffer(bytearray(16), {0: b"x"})
    assert conv.wire_to_host(conv.context("string", (2,), flat=True), wire).data == ["x", ""]


def test_string_truncated_to_maxlen():
    conv = _conv(config=ConverterConfig(host_string_maxlen=2))
    wire = WireBuffer(bytearray(16), {0: b"hi", 8: b"hello"})
    assert conv.wire_to_host(conv.context("string", (2,), flat=True), wire).data == ["hi", "he"]


def test_string_free_called_once_unless_empty():
    storage = RecordingStorage()
    conv = _conv(storage=storage)

    wire = WireBuffer(bytearray(16), {0: b"a", 8: b"b"})
    conv.wire_to_host(conv.context("string", (2,), flat=True), wire)
    assert storage.calls == [("string", 2)]

    conv.wire_to_host(conv.context("string", (0,), flat=True), b"")
    assert storage.calls == [("string", 2)]
