from __future__ import annotations

import numpy as np
import pytest

from ncmarshal.core.errors import RangeError, UnsupportedTypeError
from ncmarshal.model.codec import (
    ATOMICS,
    BYTE,
    CHAR,
    DOUBLE,
    INT,
    INT64,
    SHORT,
    STRING,
    UBYTE,
    atomic,
    atomic_by_name,
    decode_scalar,
    encode_scalar,
    is_atomic,
)


def test_atomic_table_widths():
    assert atomic(UBYTE).size == 1
    assert atomic(SHORT).size == 2
    assert atomic(INT).size == 4
    assert atomic(DOUBLE).size == 8
    assert atomic(STRING).size == 8


def test_atomic_by_name_is_case_insensitive():
    assert atomic_by_name("INT").type_id == INT
    assert atomic_by_name("uint64").size == 8


def test_unknown_atomic_raises():
    with pytest.raises(UnsupportedTypeError):
        atomic(99)
    with pytest.raises(UnsupportedTypeError):
        atomic_by_name("u128")


def test_is_atomic_bounds():
    assert is_atomic(BYTE)
    assert is_atomic(STRING)
    assert not is_atomic(0)
    assert not is_atomic(32)


def test_unsigned_flag():
    assert ATOMICS[UBYTE].is_unsigned
    assert not ATOMICS[BYTE].is_unsigned
    assert not ATOMICS[DOUBLE].is_unsigned


def test_encode_scalar_native_layout():
    assert encode_scalar(SHORT, -2) == np.array(-2, dtype="=i2").tobytes()
    assert encode_scalar(DOUBLE, 0.5) == np.array(0.5, dtype="=f8").tobytes()


def test_encode_scalar_rejects_out_of_range_and_fractions():
    with pytest.raises(RangeError):
        encode_scalar(UBYTE, 256)
    with pytest.raises(RangeError):
        encode_scalar(INT, 1.5)


def test_encode_scalar_accepts_raw_bytes_of_right_width():
    assert encode_scalar(SHORT, b"\x01\x02") == b"\x01\x02"
    with pytest.raises(RangeError):
        encode_scalar(SHORT, b"\x01")


def test_encode_scalar_char_not_numeric():
    with pytest.raises(UnsupportedTypeError):
        encode_scalar(CHAR, 1)


def test_decode_scalar_int64_limit():
    assert decode_scalar(INT64, encode_scalar(INT64, 2**63 - 1)) == 2**63 - 1


def test_decode_wrong_size_raises():
    with pytest.raises(ValueError):
        decode_scalar(INT, b"\x01\x02\x03")
