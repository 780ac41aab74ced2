from __future__ import annotations

import numpy as np
import pytest

from ncmarshal.core.arena import Arena
from ncmarshal.core.buffer import WireBuffer


def test_zeros_from_arena_counts_allocation():
    arena = Arena()
    wb = WireBuffer.zeros(8, arena)
    assert wb.nbytes == 8
    assert arena.in_use == 8
    assert wb.tobytes() == b"\0" * 8


def test_alias_shares_memory():
    host = np.arange(3, dtype="=i4")
    wb = WireBuffer.alias(host)
    assert wb.shares_memory(host)
    wb.array("=i4", 3)[0] = 42
    assert host[0] == 42


def test_array_bounds_checked():
    wb = WireBuffer(bytearray(6))
    assert wb.array("=i2", 3).tolist() == [0, 0, 0]
    assert len(wb.array("=i8", 0)) == 0
    with pytest.raises(ValueError):
        wb.array("=i4", 2)


def test_vlen_slot_count_and_ref():
    wb = WireBuffer(bytearray(16))
    wb.set_count(0, 5)
    wb.set_ref(8, b"payload")
    assert wb.get_count(0) == 5
    assert wb.get_ref(8) == b"payload"

    wb.set_ref(8, None)
    assert wb.get_ref(8) is None
    assert wb.refs == {}




def test_readonly():
    assert WireBuffer(b"abc").readonly
    assert not WireBuffer(bytearray(3)).readonly
