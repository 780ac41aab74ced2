# ncmarshal/convert/numeric.py
"""
Numeric codec matrix.

Every (host kind, wire kind) pair is described by a NumericPair holding the
range test for that pair; one generic routine performs the missing test,
range test and pack/copy for all of them.

Write: missing -> fill (or MissingValueError), out of range -> RangeError,
else pack (round((v - add) / scale)) or copy. Nothing is returned on failure.

Read: fill and out-of-range values become the host missing value; reading
valid storage never fails.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

import numpy as np

from ncmarshal.core.arena import Arena
from ncmarshal.core.buffer import WireBuffer
from ncmarshal.core.context import ConversionContext
from ncmarshal.core.errors import DataLengthError, MissingValueError, RangeError, UnsupportedTypeError
from ncmarshal.model.codec import (
    ATOMICS,
    BYTE,
    DOUBLE,
    FLOAT,
    FLT_MAX,
    INT,
    INT64,
    SHORT,
    UBYTE,
    UINT,
    UINT64,
    USHORT,
    AtomicCodec,
)
from ncmarshal.model.host import (
    HOST_DTYPES,
    NA_INTEGER,
    NA_INTEGER64,
    NA_REAL,
    HostKind,
    HostValue,
    alloc_array,
)

Bound = Optional[float]

# Pseudo wire kind for the host length type (size_t)
SIZE = -1

_EPS = float(np.finfo(np.float64).eps)

# 64-bit limits as doubles, shrunk so that the bound itself converts back
# without rounding past the true integer limit
LLONG_MAX_DBL = float(2**63 - 1) * (1.0 - _EPS)
LLONG_MIN_DBL = float(-(2**63)) * (1.0 - _EPS)
ULLONG_MAX_DBL = float(2**64 - 1) * (1.0 - _EPS)
SIZE_MAX_DBL = ULLONG_MAX_DBL

NUMERIC_HOST_KINDS = (HostKind.INTEGER, HostKind.DOUBLE, HostKind.INTEGER64)

_SMALL_INTS = (BYTE, UBYTE, SHORT, USHORT)

# Block length for in-place reads, processed from the last block to the first
READ_CHUNK = 1 << 16


@dataclass(frozen=True)
class NumericPair:
    host_kind: HostKind
    wire_id: int
    min_value: Bound
    max_value: Bound

    @property
    def unchecked(self) -> bool:
        return self.min_value is None and self.max_value is None


def _exact(wire_id: int) -> Tuple[Bound, Bound]:
    c = ATOMICS[wire_id]
    return c.min_value, c.max_value


def _bounds_for(host_kind: HostKind, wire_id: int) -> Tuple[Bound, Bound]:
    if host_kind == HostKind.INTEGER:
        if wire_id in _SMALL_INTS:
            return _exact(wire_id)
        if wire_id in (UINT, UINT64, SIZE):
            return 0, None
        return None, None

    if host_kind == HostKind.DOUBLE:
        if wire_id in _SMALL_INTS or wire_id in (INT, UINT):
            return _exact(wire_id)
        if wire_id == INT64:
            return LLONG_MIN_DBL, LLONG_MAX_DBL
        if wire_id == UINT64:
            return 0, ULLONG_MAX_DBL
        if wire_id == SIZE:
            return 0, SIZE_MAX_DBL
        if wire_id == FLOAT:
            return -FLT_MAX, FLT_MAX
        return None, None

    # integer64: wraps into uint64 and the 64-bit host length type
    if wire_id in _SMALL_INTS or wire_id in (INT, UINT):
        return _exact(wire_id)
    return None, None


def _build_matrix() -> Dict[Tuple[HostKind, int], NumericPair]:
    matrix: Dict[Tuple[HostKind, int], NumericPair] = {}
    wire_ids = [tid for tid, c in ATOMICS.items() if c.is_numeric] + [SIZE]
    for kind in NUMERIC_HOST_KINDS:
        for tid in wire_ids:
            lo, hi = _bounds_for(kind, tid)
            matrix[(kind, tid)] = NumericPair(kind, tid, lo, hi)
    return matrix


MATRIX: Dict[Tuple[HostKind, int], NumericPair] = _build_matrix()


def write_pair(host_kind: HostKind, wire_id: int) -> NumericPair:
    pair = MATRIX.get((host_kind, wire_id))
    if pair is None:
        raise UnsupportedTypeError(
            f"No numeric conversion from host '{host_kind.value}' to wire type id {wire_id}"
        )
    return pair


def round_half_away(x: np.ndarray) -> np.ndarray:
    """Round to nearest, ties away from zero (C round())."""
    r = np.trunc(x)
    return np.where(np.abs(x - r) >= 0.5, r + np.sign(x), r)


def _wire_scalar(codec: AtomicCodec, raw: Optional[bytes]):
    if raw is None:
        return None
    return np.frombuffer(raw, dtype=codec.np_dtype, count=1)[0]


def _range_mask(values: np.ndarray, lo, hi) -> np.ndarray:
    ok = np.ones(values.shape, dtype=bool)
    if values.dtype.kind == "f":
        if lo is not None:
            ok &= values >= lo
        if hi is not None:
            ok &= values <= hi
        return ok

    # Bounds at or beyond the host range are tautologies
    info = np.iinfo(values.dtype)
    if lo is not None:
        if lo > info.max:
            ok[:] = False
        elif lo > info.min:
            ok &= values >= lo
    if hi is not None:
        if hi < info.min:
            ok[:] = False
        elif hi < info.max:
            ok &= values <= hi
    return ok


def _narrow(lo, hi, vmin, vmax):
    if vmin is not None:
        vmin = vmin.item()
        lo = vmin if lo is None else max(lo, vmin)
    if vmax is not None:
        vmax = vmax.item()
        hi = vmax if hi is None else min(hi, vmax)
    return lo, hi


# ---------------------------------------------------------------------
# Write direction
# ---------------------------------------------------------------------
def host_to_numeric(
    value: HostValue,
    ctx: ConversionContext,
    codec: AtomicCodec,
    arena: Optional[Arena] = None,
) -> WireBuffer:
    if value.kind not in NUMERIC_HOST_KINDS:
        raise UnsupportedTypeError(
            f"Host '{value.kind.value}' cannot be converted to '{codec.name}'"
        )
    pair = write_pair(value.kind, codec.type_id)

    cnt = ctx.count
    if len(value) < cnt:
        raise DataLengthError(
            f"Host data has {len(value)} elements, {cnt} required",
            details={"have": len(value), "need": cnt},
        )

    values = value.data[:cnt]
    missing = value.missing_mask()[:cnt]
    dtype = codec.np_dtype
    bounded = ctx.valid_min is not None or ctx.valid_max is not None

    # Same layout, nothing to substitute: the wire buffer aliases host memory
    if ctx.fill is None and not ctx.unpack and not bounded and values.dtype == dtype and pair.unchecked:
        if missing.any():
            raise MissingValueError(
                "Missing values sent to storage without conversion to fill value"
            )
        return WireBuffer.alias(np.ascontiguousarray(values))

    # Packed data is range checked after packing, not as the unpacked host value
    if ctx.unpack:
        factor = 1.0 if ctx.scale is None else ctx.scale
        offset = 0.0 if ctx.add is None else ctx.add
        work = round_half_away((values.astype(np.float64) - offset) / factor)
        packed = write_pair(HostKind.DOUBLE, codec.type_id)
        lo, hi = packed.min_value, packed.max_value
    else:
        work = values
        lo, hi = pair.min_value, pair.max_value

    lo, hi = _narrow(lo, hi, _wire_scalar(codec, ctx.valid_min), _wire_scalar(codec, ctx.valid_max))

    present = ~missing
    bad = present & ~_range_mask(work, lo, hi)
    if bad.any():
        idx = int(np.flatnonzero(bad)[0])
        raise RangeError(
            f"Value {values[idx].item()!r} at index {idx} is outside the range of '{codec.name}'",
            details={"index": idx, "type": codec.name},
        )
    if ctx.fill is None and missing.any():
        raise MissingValueError(
            "Missing values sent to storage without conversion to fill value",
            hint="Configure a fill value for the variable.",
        )

    out = WireBuffer.zeros(cnt * codec.size, arena)
    arr = out.array(dtype, cnt)
    if present.all():
        arr[:] = work.astype(dtype)
    else:
        arr[present] = work[present].astype(dtype)
        if ctx.fill is not None:
            arr[missing] = _wire_scalar(codec, ctx.fill)
    return out


def host_to_sizes(value: HostValue, n: int, fill: int = 0) -> List[int]:
    """
    Convert the leading n elements of a host start/count vector to lengths.

    Missing elements and positions beyond the host vector take `fill`.
    """
    if value.kind not in NUMERIC_HOST_KINDS:
        raise UnsupportedTypeError(f"Unsupported host kind '{value.kind.value}' for a dimension vector")
    pair = write_pair(value.kind, SIZE)
    nr = min(len(value), int(n))
    values = value.data[:nr]
    missing = value.missing_mask()[:nr]
    bad = ~missing & ~_range_mask(values, pair.min_value, pair.max_value)
    if bad.any():
        idx = int(np.flatnonzero(bad)[0])
        raise RangeError(f"Dimension value {values[idx].item()!r} at index {idx} is out of range")
    out = values.astype(np.uint64)
    sizes = [int(fill) if m else int(v) for v, m in zip(out.tolist(), missing.tolist())]
    sizes.extend([int(fill)] * (int(n) - nr))
    return sizes


# ---------------------------------------------------------------------
# Read direction
# ---------------------------------------------------------------------
def read_kind(ctx: ConversionContext, codec: AtomicCodec) -> HostKind:
    """Host container for a numeric read."""
    if ctx.unpack:
        return HostKind.DOUBLE
    if ctx.prefer_native_numeric:
        if codec.type_id in _SMALL_INTS or codec.type_id == INT:
            return HostKind.INTEGER
        if codec.type_id in (INT64, UINT64):
            return HostKind.INTEGER64
    return HostKind.DOUBLE


def prepare_numeric_read(
    ctx: ConversionContext,
    codec: AtomicCodec,
    arena: Optional[Arena] = None,
    wire: Optional[WireBuffer] = None,
) -> Tuple[HostValue, WireBuffer]:
    """
    Allocate the host array and the wire buffer the storage layer fills.

    The wire buffer reuses the host array memory when the host element is at
    least as wide as the wire element.
    """
    host = alloc_array(read_kind(ctx, codec), ctx.ndim, ctx.shape)
    if wire is None:
        if HOST_DTYPES[host.kind].itemsize >= codec.size:
            wire = WireBuffer.alias(host.data)
        else:
            wire = WireBuffer.zeros(ctx.count * codec.size, arena)
    return host, wire


def numeric_to_host(wire: WireBuffer, host: HostValue, ctx: ConversionContext, codec: AtomicCodec) -> HostValue:
    cnt = len(host.data)
    src_all = wire.array(codec.np_dtype, cnt)
    out = host.data

    fillval = _wire_scalar(codec, ctx.fill)
    vmin = _wire_scalar(codec, ctx.valid_min)
    vmax = _wire_scalar(codec, ctx.valid_max)
    lo = codec.min_value if vmin is None else vmin
    hi = codec.max_value if vmax is None else vmax

    if host.kind == HostKind.INTEGER:
        na = NA_INTEGER
    elif host.kind == HostKind.INTEGER64:
        na = NA_INTEGER64
    else:
        na = NA_REAL

    factor = 1.0 if ctx.scale is None else ctx.scale
    offset = 0.0 if ctx.add is None else ctx.add

    # Output may share memory with the input and is at least as wide,
    # so convert from the last block to the first
    stop = cnt
    while stop > 0:
        start = max(0, stop - READ_CHUNK)
        src = src_all[start:stop]
        bad = (src < lo) | (src > hi)
        if fillval is not None:
            bad |= src == fillval
        if ctx.unpack:
            vals = src.astype(np.float64) * factor + offset
        else:
            vals = src.astype(out.dtype)
        vals[bad] = na
        out[start:stop] = vals
        stop = start
    return host
