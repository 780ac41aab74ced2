# ncmarshal/core/shapes.py
from __future__ import annotations

import math
from typing import Any, Optional, Sequence, Tuple

import numpy as np

from .errors import InvalidLengthError, RangeError, ShapeOverflowError, UnsupportedTypeError

SIZE_MAX = 2**64 - 1
HOST_DIM_MAX = 2**31 - 1

_NA_INTEGER = -(2**31)
_NA_INTEGER64 = -(2**63)


def shape_ndim(shape: Sequence[int], flat: bool = False) -> int:
    """ndim convention: -1 for a flat vector of length shape[0], else len(shape)."""
    return -1 if flat else len(shape)


def element_count(shape: Sequence[int], ndim: Optional[int] = None) -> int:
    """
    Number of elements described by a wire shape.

    ndim=0 is a scalar (1 element), ndim<0 a flat vector of shape[0] elements.
    When ndim is omitted it is len(shape).
    """
    if ndim is None:
        ndim = len(shape)
    if ndim < 0:
        ndim = 1
    if len(shape) < ndim:
        raise InvalidLengthError(f"Shape {tuple(shape)} has fewer than {ndim} dimensions")

    length = 1
    for ii in range(ndim):
        dim = int(shape[ii])
        if dim < 0:
            raise InvalidLengthError(f"Negative dimension {dim} in shape {tuple(shape)}")
        length *= dim
        if length > SIZE_MAX:
            raise ShapeOverflowError(
                f"Element count of shape {tuple(shape)} exceeds the host length range",
                details={"shape": tuple(int(d) for d in shape)},
            )
    return length


def host_element_count(lengths: Any) -> int:
    """
    Element count from a host-supplied length vector.

    Accepts a sequence, a numpy array or an integer/double host value.
    An empty vector (or None) describes a scalar.
    """
    if lengths is None:
        return 1

    kind = getattr(lengths, "kind", None)
    if kind is not None:
        if kind not in ("integer", "double", "integer64"):
            raise UnsupportedTypeError(f"Unsupported host kind '{kind}' for a length vector")
        lengths = lengths.data

    arr = np.asarray(lengths)
    if arr.size == 0:
        return 1

    if arr.dtype.kind == "f":
        length = 1.0
        for v in arr.ravel().tolist():
            if not math.isfinite(v) or v < 0:
                raise InvalidLengthError(f"Non-finite or negative length {v!r} in length vector")
            length *= v
        if not math.isfinite(length) or length > SIZE_MAX:
            raise InvalidLengthError("Non-finite length in length vector")
        return int(length)

    if arr.dtype.kind in "iu":
        length = 1
        for v in arr.ravel().tolist():
            if (kind == "integer" and v == _NA_INTEGER) or (kind == "integer64" and v == _NA_INTEGER64):
                raise InvalidLengthError("Missing value in length vector")
            if v < 0:
                raise InvalidLengthError(f"Negative length {v} in length vector")
            length *= v
        if length > SIZE_MAX:
            raise ShapeOverflowError("Element count of length vector exceeds the host length range")
        return length

    if arr.dtype == object:
        values = arr.ravel().tolist()
        if any(v is None for v in values):
            raise InvalidLengthError("Missing value in length vector")
        return host_element_count([float(v) if isinstance(v, float) else int(v) for v in values])

    raise UnsupportedTypeError(f"Unsupported length vector dtype '{arr.dtype}'")


def host_dim(ndim: int, shape: Sequence[int]) -> Optional[Tuple[int, ...]]:
    """
    Host dim attribute for an array of the given wire shape.

    None means a plain vector without dim, () a scalar.
    """
    if ndim < 0:
        return None
    if ndim == 0:
        return ()
    dims = tuple(int(d) for d in shape[:ndim])
    for d in dims:
        if d > HOST_DIM_MAX:
            raise RangeError("Host array dimension cannot exceed range of the host integer type")
    return dims
