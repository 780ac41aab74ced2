# ncmarshal/model/host.py
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

import math

import numpy as np

from ncmarshal.core.errors import DataLengthError, RangeError, UnmatchedLevelError, UnsupportedTypeError
from ncmarshal.core.shapes import element_count, host_dim

NA_INTEGER = -(2**31)
NA_INTEGER64 = -(2**63)
NA_REAL = float("nan")

# Longest string the host can hold
HOST_STRING_MAXLEN = 2**31 - 1


class HostKind(str, Enum):
    INTEGER = "integer"
    DOUBLE = "double"
    INTEGER64 = "integer64"
    STRING = "string"
    RAW = "raw"
    LIST = "list"
    FACTOR = "factor"


# Element layout of the array-backed kinds
HOST_DTYPES: Dict[HostKind, np.dtype] = {
    HostKind.INTEGER: np.dtype("=i4"),
    HostKind.DOUBLE: np.dtype("=f8"),
    HostKind.INTEGER64: np.dtype("=i8"),
    HostKind.RAW: np.dtype("=u1"),
    HostKind.FACTOR: np.dtype("=i4"),
}


@dataclass(eq=False)
class HostValue:
    """
    A dynamically typed host value.

    Array-backed kinds (integer, double, integer64, raw, factor) keep a flat
    numpy array in C order; string and list kinds keep a Python list.
    `dim` is None for a plain vector, () for a scalar, else the array shape.
    Lists may carry `names`; factors carry their ordered `levels`.
    """
    kind: HostKind
    data: Any
    dim: Optional[Tuple[int, ...]] = None
    names: Optional[List[str]] = None
    levels: Optional[List[str]] = None

    def __len__(self) -> int:
        return len(self.data)

    @property
    def is_array(self) -> bool:
        return self.kind in HOST_DTYPES

    def missing_mask(self) -> np.ndarray:
        if self.kind in (HostKind.INTEGER, HostKind.FACTOR):
            return self.data == NA_INTEGER
        if self.kind == HostKind.INTEGER64:
            return self.data == NA_INTEGER64
        if self.kind == HostKind.DOUBLE:
            return np.isnan(self.data)
        if self.kind == HostKind.STRING:
            return np.array([s is None for s in self.data], dtype=bool)
        return np.zeros(len(self.data), dtype=bool)

    def get(self, name: str) -> "HostValue":
        if self.kind != HostKind.LIST or self.names is None:
            raise UnsupportedTypeError("Named access requires a named list")
        try:
            return self.data[self.names.index(name)]
        except ValueError:
            raise KeyError(name) from None

    def to_python(self) -> Any:
        """Plain Python rendering: missing values become None, named lists dicts."""
        if self.kind in (HostKind.INTEGER, HostKind.INTEGER64):
            na = NA_INTEGER if self.kind == HostKind.INTEGER else NA_INTEGER64
            return [None if v == na else v for v in self.data.tolist()]
        if self.kind == HostKind.DOUBLE:
            return [None if math.isnan(v) else v for v in self.data.tolist()]
        if self.kind == HostKind.RAW:
            return bytes(self.data)
        if self.kind == HostKind.STRING:
            return list(self.data)
        if self.kind == HostKind.FACTOR:
            levels = self.levels or []
            return [None if v == NA_INTEGER else levels[v - 1] for v in self.data.tolist()]
        items = [item.to_python() for item in self.data]
        if self.names is not None:
            return dict(zip(self.names, items))
        return items

    def __repr__(self) -> str:
        return f"HostValue(kind={self.kind.value}, len={len(self)}, dim={self.dim})"


# ---------------------------------------------------------------------
# Factories
# ---------------------------------------------------------------------
def _check_dim(n: int, dim: Optional[Sequence[int]]) -> Optional[Tuple[int, ...]]:
    if dim is None:
        return None
    dim = tuple(int(d) for d in dim)
    if element_count(dim) != n:
        raise DataLengthError(
            f"dim {dim} does not match {n} elements",
            details={"dim": list(dim), "have": n},
        )
    return dim


def _int_array(values: Iterable[Any], dtype: np.dtype, na: int) -> np.ndarray:
    info = np.iinfo(dtype)
    out: List[int] = []
    for v in values:
        if v is None:
            out.append(na)
            continue
        iv = int(v)
        if not (info.min <= iv <= info.max):
            raise RangeError(f"Value {v!r} does not fit host type {dtype}")
        out.append(iv)
    return np.array(out, dtype=dtype)


def integer(values: Iterable[Any], dim: Optional[Sequence[int]] = None) -> HostValue:
    data = _int_array(values, HOST_DTYPES[HostKind.INTEGER], NA_INTEGER)
    return HostValue(HostKind.INTEGER, data, _check_dim(len(data), dim))


def double(values: Iterable[Any], dim: Optional[Sequence[int]] = None) -> HostValue:
    data = np.array([NA_REAL if v is None else float(v) for v in values],
                    dtype=HOST_DTYPES[HostKind.DOUBLE])
    return HostValue(HostKind.DOUBLE, data, _check_dim(len(data), dim))


def integer64(values: Iterable[Any], dim: Optional[Sequence[int]] = None) -> HostValue:
    data = _int_array(values, HOST_DTYPES[HostKind.INTEGER64], NA_INTEGER64)
    return HostValue(HostKind.INTEGER64, data, _check_dim(len(data), dim))


def string(values: Iterable[Optional[str]], dim: Optional[Sequence[int]] = None) -> HostValue:
    data = [None if s is None else str(s) for s in values]
    return HostValue(HostKind.STRING, data, _check_dim(len(data), dim))


def raw(values: Any, dim: Optional[Sequence[int]] = None) -> HostValue:
    data = np.frombuffer(bytes(values), dtype=HOST_DTYPES[HostKind.RAW]).copy()
    return HostValue(HostKind.RAW, data, _check_dim(len(data), dim))


def vlist(
    items: Iterable[HostValue],
    names: Optional[Sequence[str]] = None,
    dim: Optional[Sequence[int]] = None,
) -> HostValue:
    data = list(items)
    if names is not None:
        names = [str(n) for n in names]
        if len(names) != len(data):
            raise DataLengthError(
                f"{len(names)} names given for {len(data)} list items",
                details={"names": len(names), "items": len(data)},
            )
    return HostValue(HostKind.LIST, data, _check_dim(len(data), dim), names=names)


def factor(
    codes: Iterable[Any],
    levels: Sequence[str],
    dim: Optional[Sequence[int]] = None,
) -> HostValue:
    """Factor from 1-based level indices (None is missing)."""
    data = _int_array(codes, HOST_DTYPES[HostKind.FACTOR], NA_INTEGER)
    return HostValue(HostKind.FACTOR, data, _check_dim(len(data), dim), levels=[str(s) for s in levels])


def factor_from_labels(
    labels: Iterable[Optional[str]],
    levels: Optional[Sequence[str]] = None,
    dim: Optional[Sequence[int]] = None,
) -> HostValue:
    labels = list(labels)
    if levels is None:
        levels = sorted({s for s in labels if s is not None})
    index = {name: ii + 1 for ii, name in enumerate(levels)}
    codes = []
    for s in labels:
        if s is None:
            codes.append(None)
        elif s in index:
            codes.append(index[s])
        else:
            raise UnmatchedLevelError(f"Label '{s}' is not one of the factor levels")
    return factor(codes, levels, dim)


def alloc_array(kind: HostKind, ndim: int, shape: Sequence[int]) -> HostValue:
    """
    Zero-initialised host value for a wire shape.

    ndim<0 gives a plain vector of shape[0] elements, ndim=0 a scalar.
    """
    dim = host_dim(ndim, shape)
    n = element_count(shape, ndim)
    if kind in HOST_DTYPES:
        return HostValue(kind, np.zeros(n, dtype=HOST_DTYPES[kind]), dim)
    if kind == HostKind.STRING:
        return HostValue(kind, [""] * n, dim)
    if kind == HostKind.LIST:
        return HostValue(kind, [None] * n, dim)
    raise UnsupportedTypeError(f"Cannot allocate host kind '{kind}'")
