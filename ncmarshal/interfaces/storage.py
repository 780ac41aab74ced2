# ncmarshal/interfaces/storage.py
from __future__ import annotations

from typing import Protocol

from ncmarshal.core.buffer import WireBuffer
from ncmarshal.model.codec import POINTER_SIZE


class StorageLayer(Protocol):
    """
    Release calls for memory the storage layer owns.

    After a read, the strings behind a string array and the data of each
    vlen element belong to the storage layer and are handed back through
    these calls once the converter has copied them.
    """

    def free_string(self, count: int, buffer: WireBuffer) -> None: ...
    def free_vlen(self, buffer: WireBuffer, offset: int) -> None: ...


class HeapStorage:
    """Default storage adapter: releasing drops the referenced objects."""

    def free_string(self, count: int, buffer: WireBuffer) -> None:
        for ii in range(count):
            buffer.set_ref(ii * POINTER_SIZE, None)

    def free_vlen(self, buffer: WireBuffer, offset: int) -> None:
        buffer.set_ref(offset + POINTER_SIZE, None)
