# ncmarshal/model/codec.py
from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Optional, Union
import math

import numpy as np

from ncmarshal.core.errors import RangeError, UnsupportedTypeError

# Wire type ids of the atomic types (netCDF numbering)
NAT = 0
BYTE = 1
CHAR = 2
SHORT = 3
INT = 4
FLOAT = 5
DOUBLE = 6
UBYTE = 7
USHORT = 8
UINT = 9
INT64 = 10
UINT64 = 11
STRING = 12

MAX_ATOMIC_TYPE = STRING
FIRST_USER_TYPE = 32

# Width of a pointer slot in a wire block
POINTER_SIZE = 8

FLT_MAX = float(np.finfo(np.float32).max)
DBL_MAX = float(np.finfo(np.float64).max)

Scalar = Union[int, float]


@dataclass(frozen=True)
class AtomicCodec:
    type_id: int
    name: str
    dtype: Optional[str]   # native-order numpy dtype, None for pointer slots
    size: int
    min_value: Optional[Scalar] = None
    max_value: Optional[Scalar] = None
    is_integer: bool = False

    @property
    def np_dtype(self) -> np.dtype:
        if self.dtype is None:
            raise UnsupportedTypeError(f"Wire type '{self.name}' has no numeric layout")
        return np.dtype(self.dtype)

    @property
    def is_numeric(self) -> bool:
        return self.type_id not in (CHAR, STRING)

    @property
    def is_unsigned(self) -> bool:
        return self.is_integer and self.min_value == 0


ATOMICS: Dict[int, AtomicCodec] = {
    BYTE:   AtomicCodec(BYTE,   "byte",   "=i1", 1, -(2**7),  2**7 - 1,  True),
    UBYTE:  AtomicCodec(UBYTE,  "ubyte",  "=u1", 1, 0,        2**8 - 1,  True),
    SHORT:  AtomicCodec(SHORT,  "short",  "=i2", 2, -(2**15), 2**15 - 1, True),
    USHORT: AtomicCodec(USHORT, "ushort", "=u2", 2, 0,        2**16 - 1, True),
    INT:    AtomicCodec(INT,    "int",    "=i4", 4, -(2**31), 2**31 - 1, True),
    UINT:   AtomicCodec(UINT,   "uint",   "=u4", 4, 0,        2**32 - 1, True),
    INT64:  AtomicCodec(INT64,  "int64",  "=i8", 8, -(2**63), 2**63 - 1, True),
    UINT64: AtomicCodec(UINT64, "uint64", "=u8", 8, 0,        2**64 - 1, True),
    FLOAT:  AtomicCodec(FLOAT,  "float",  "=f4", 4, -FLT_MAX, FLT_MAX),
    DOUBLE: AtomicCodec(DOUBLE, "double", "=f8", 8, -DBL_MAX, DBL_MAX),
    CHAR:   AtomicCodec(CHAR,   "char",   "=u1", 1),
    STRING: AtomicCodec(STRING, "string", None,  POINTER_SIZE),
}

ATOMICS_BY_NAME: Dict[str, AtomicCodec] = {c.name: c for c in ATOMICS.values()}


def is_atomic(type_id: int) -> bool:
    return 0 < int(type_id) <= MAX_ATOMIC_TYPE


def atomic(type_id: int) -> AtomicCodec:
    codec = ATOMICS.get(int(type_id))
    if codec is None:
        raise UnsupportedTypeError(f"Unknown atomic wire type id {type_id}")
    return codec


def atomic_by_name(name: str) -> AtomicCodec:
    codec = ATOMICS_BY_NAME.get(name.lower())
    if codec is None:
        raise UnsupportedTypeError(f"Unknown atomic wire type '{name}'")
    return codec


def encode_scalar(type_id: int, value: Union[Scalar, bytes]) -> bytes:
    """
    Encode one Python scalar with the native layout of a numeric wire type.

    Raw bytes are accepted as an already-encoded value and only length-checked.
    """
    codec = atomic(type_id)
    if isinstance(value, (bytes, bytearray)):
        if len(value) != codec.size:
            raise RangeError(
                f"Encoded value length {len(value)} != expected {codec.size} for '{codec.name}'"
            )
        return bytes(value)

    if not codec.is_numeric:
        raise UnsupportedTypeError(f"Cannot encode a scalar as '{codec.name}'")

    if codec.is_integer:
        fval = float(value)
        if not math.isfinite(fval) or fval != math.floor(fval):
            raise RangeError(f"Value {value!r} is not an integer for '{codec.name}'")
        ival = int(value)
        if not (codec.min_value <= ival <= codec.max_value):
            raise RangeError(f"Value {value!r} out of range for '{codec.name}'")
        return np.array(ival, dtype=codec.np_dtype).tobytes()

    fval = float(value)
    if math.isfinite(fval) and not (codec.min_value <= fval <= codec.max_value):
        raise RangeError(f"Value {value!r} out of range for '{codec.name}'")
    return np.array(fval, dtype=codec.np_dtype).tobytes()


def decode_scalar(type_id: int, raw_bytes: bytes) -> Scalar:
    codec = atomic(type_id)
    if len(raw_bytes) != codec.size:
        raise ValueError(
            f"Raw bytes length {len(raw_bytes)} != expected {codec.size} for '{codec.name}'"
        )
    return np.frombuffer(raw_bytes, dtype=codec.np_dtype, count=1)[0].item()
