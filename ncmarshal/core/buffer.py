# ncmarshal/core/buffer.py
from __future__ import annotations

import struct
from typing import Any, Dict, Optional, Union

import numpy as np

from .arena import Arena

_COUNT = struct.Struct("=Q")

BufferLike = Union[bytes, bytearray, memoryview]


class WireBuffer:
    """
    A block of wire-format bytes plus the objects behind its pointer slots.

    Fixed-size data lives in `data`. Variable-length strings and vlen elements
    are referenced from 8-byte pointer slots; the referenced object (bytes for
    a string, a WireBuffer for a vlen element, None for a null pointer) is
    kept in `refs`, keyed by the byte offset of the slot.
    """

    __slots__ = ("data", "refs")

    def __init__(self, data: BufferLike, refs: Optional[Dict[int, Any]] = None):
        if isinstance(data, memoryview) and (data.format != "B" or data.ndim != 1):
            data = data.cast("B")
        self.data = data
        self.refs: Dict[int, Any] = refs if refs is not None else {}

    @classmethod
    def zeros(cls, n_bytes: int, arena: Optional[Arena] = None) -> "WireBuffer":
        if arena is not None:
            return cls(arena.allocate(n_bytes))
        return cls(bytearray(n_bytes))

    @classmethod
    def alias(cls, array: np.ndarray) -> "WireBuffer":
        """Wire buffer sharing memory with a contiguous numpy array."""
        if not array.flags["C_CONTIGUOUS"]:
            raise ValueError("only contiguous arrays can be aliased")
        if array.size == 0:
            return cls(bytearray())
        return cls(memoryview(array).cast("B"))

    def __len__(self) -> int:
        return len(self.data)

    @property
    def nbytes(self) -> int:
        return len(self.data)

    @property
    def readonly(self) -> bool:
        return isinstance(self.data, bytes) or (
            isinstance(self.data, memoryview) and self.data.readonly
        )

    def tobytes(self) -> bytes:
        return bytes(self.data)

    def shares_memory(self, array: np.ndarray) -> bool:
        if len(self.data) == 0 or array.size == 0:
            return False
        return np.shares_memory(np.frombuffer(self.data, dtype=np.uint8), array)

    def array(self, dtype: Any, count: int, offset: int = 0) -> np.ndarray:
        """numpy view of `count` elements of `dtype` starting at byte `offset`."""
        dtype = np.dtype(dtype)
        if count == 0:
            return np.empty(0, dtype=dtype)
        end = offset + count * dtype.itemsize
        if end > len(self.data):
            raise ValueError(
                f"Wire buffer holds {len(self.data)} bytes, {end} required"
            )
        return np.frombuffer(self.data, dtype=dtype, count=count, offset=offset)

    # ------------------------------------------------------------------
    # Pointer slots
    # ------------------------------------------------------------------
    def get_ref(self, offset: int) -> Any:
        return self.refs.get(offset)

    def set_ref(self, offset: int, obj: Any) -> None:
        if obj is None:
            self.refs.pop(offset, None)
        else:
            self.refs[offset] = obj

    def get_count(self, offset: int) -> int:
        return _COUNT.unpack_from(self.data, offset)[0]

    def set_count(self, offset: int, count: int) -> None:
        _COUNT.pack_into(self.data, offset, int(count))

    def __repr__(self) -> str:
        return f"WireBuffer(nbytes={len(self.data)}, refs={len(self.refs)})"
