from __future__ import annotations

import numpy as np
import pytest

from ncmarshal.convert import Converter
from ncmarshal.core.buffer import WireBuffer
from ncmarshal.core.errors import DataLengthError, UnsupportedTypeError
from ncmarshal.model import host as hv
from ncmarshal.model.host import HostKind
from ncmarshal.model.registry import TypeRegistry


def _conv() -> Converter:
    reg = TypeRegistry()
    reg.define_vlen("samples", "double")
    reg.define_vlen("shorts", "short")
    reg.define_vlen("text", "char")
    reg.define_opaque("pair", 2)
    reg.define_vlen("pairs", "pair")
    reg.define_vlen("ints", "int")
    reg.define_vlen("nested", "ints")
    return Converter(reg)


def test_vlen_write_slots():
    conv = _conv()
    value = hv.vlist([hv.double([1.0, 2.0]), hv.double([]), hv.double([3.0])])
    wire = conv.host_to_wire(value, conv.context("samples", (3,), flat=True))

    assert len(wire) == 48
    assert [wire.get_count(off) for off in (0, 16, 32)] == [2, 0, 1]
    assert sorted(wire.refs) == [8, 40]
    assert wire.refs[8].tobytes() == np.array([1.0, 2.0]).tobytes()


def test_vlen_round_trip_releases_elements():
    conv = _conv()
    ctx = conv.context("samples", (3,), flat=True)
    wire = conv.host_to_wire(hv.vlist([hv.double([1.0, 2.0]), hv.double([]), hv.double([3.0])]), ctx)

    out = conv.wire_to_host(ctx, wire)
    assert out.kind == HostKind.LIST
    assert out.to_python() == [[1.0, 2.0], [], [3.0]]
    assert wire.refs == {}


def test_vlen_policy_reaches_elements():
    conv = _conv()
    ctx = conv.context("shorts", (1,), flat=True, fill=-1)
    wire = conv.host_to_wire(hv.vlist([hv.integer([1, None])]), ctx)
    assert wire.refs[8].tobytes() == np.array([1, -1], dtype="=i2").tobytes()
    assert conv.wire_to_host(ctx, wire).to_python() == [[1.0, None]]


def test_vlen_of_char_uses_string_length():
    conv = _conv()
    ctx = conv.context("text", (2,), flat=True)
    wire = conv.host_to_wire(hv.vlist([hv.string(["hello"]), hv.string([""])]), ctx)
    assert wire.get_count(0) == 5
    assert wire.get_count(16) == 0
    assert wire.refs[8].tobytes() == b"hello"
    assert conv.wire_to_host(ctx, wire).to_python() == [["hello"], [""]]


def test_vlen_of_opaque_counts_elements():
    conv = _conv()
    ctx = conv.context("pairs", (1,), flat=True)
    wire = conv.host_to_wire(hv.vlist([hv.raw(b"abcd")]), ctx)
    assert wire.get_count(0) == 2
    assert conv.wire_to_host(ctx, wire).to_python() == [b"abcd"]


def test_nested_vlen_round_trip():
    conv = _conv()
    ctx = conv.context("nested", (1,), flat=True)
    value = hv.vlist([hv.vlist([hv.integer([1]), hv.integer([2, 3])])])
    wire = conv.host_to_wire(value, ctx)
    assert conv.wire_to_host(ctx, wire).to_python() == [[[1.0], [2.0, 3.0]]]


def test_vlen_scratch_released():
    conv = _conv()
    ctx = conv.context("samples", (2,), flat=True)
    wire = conv.host_to_wire(hv.vlist([hv.double([1.0]), hv.double([2.0])]), ctx)
    assert conv.arena.in_use == 0
    conv.wire_to_host(ctx, wire)
    assert conv.arena.in_use == 0


def test_vlen_null_pointer_with_count():
    conv = _conv()
    wire = WireBuffer(bytearray(16))
    wire.set_count(0, 2)
    with pytest.raises(DataLengthError):
        conv.wire_to_host(conv.context("samples", (1,), flat=True), wire)


def test_vlen_errors():
    conv = _conv()
    with pytest.raises(DataLengthError):
        conv.host_to_wire(hv.vlist([hv.double([1.0])]), conv.context("samples", (2,), flat=True))
    with pytest.raises(UnsupportedTypeError):
        conv.host_to_wire(hv.vlist([None]), conv.context("samples", (1,), flat=True))
    with pytest.raises(UnsupportedTypeError):
        conv.host_to_wire(hv.vlist([hv.string(["x"])]), conv.context("samples", (1,), flat=True))


def test_vlen_of_compound_counts_fields():
    reg = TypeRegistry()
    reg.define_compound("xy", [("x", "int"), ("y", "int")])
    reg.define_vlen("path", "xy")
    conv = Converter(reg)
    ctx = conv.context("path", (1,), flat=True)

    two = hv.vlist([hv.integer([1, 2]), hv.integer([3, 4])], names=["x", "y"])
    wire = conv.host_to_wire(hv.vlist([two]), ctx)
    assert wire.get_count(0) == 2
    assert conv.wire_to_host(ctx, wire).to_python() == [{"x": [1.0, 2.0], "y": [3.0, 4.0]}]

    empty = hv.vlist([hv.integer([]), hv.integer([])], names=["x", "y"])
    with pytest.raises(DataLengthError):
        conv.host_to_wire(hv.vlist([empty]), ctx)
