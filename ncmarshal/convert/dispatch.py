# ncmarshal/convert/dispatch.py
from __future__ import annotations

import logging
from typing import Any, Callable, List, Optional, Sequence, Union

from ncmarshal.app.config import ConverterConfig
from ncmarshal.core.arena import Arena, ArenaMark
from ncmarshal.core.buffer import BufferLike, WireBuffer
from ncmarshal.core.context import ConversionContext
from ncmarshal.core.errors import ConversionError, DataLengthError, UnsupportedTypeError
from ncmarshal.interfaces.storage import HeapStorage, StorageLayer
from ncmarshal.model.codec import CHAR, STRING, atomic
from ncmarshal.model.host import HostKind, HostValue
from ncmarshal.model.registry import TypeRef, TypeRegistry
from ncmarshal.model.types import TypeClass

from . import structured
from .numeric import NUMERIC_HOST_KINDS, host_to_numeric, host_to_sizes, numeric_to_host, prepare_numeric_read
from .text import (
    char_to_host,
    prepare_char_read,
    prepare_string_read,
    raw_to_char,
    string_to_host,
    strings_to_char,
    strings_to_string,
)

WireLike = Union[WireBuffer, BufferLike]


def _as_wire(wire: Optional[WireLike]) -> Optional[WireBuffer]:
    if wire is None or isinstance(wire, WireBuffer):
        return wire
    return WireBuffer(wire)


class ReadConversion:
    """
    A read in progress.

    The storage layer fills `buffer` with wire data, then finish() converts
    it into `host`. The buffer may share memory with the host array.
    """

    def __init__(
        self,
        ctx: ConversionContext,
        host: HostValue,
        buffer: WireBuffer,
        finisher: Callable[[], HostValue],
        release: Optional[Callable[[], None]] = None,
    ):
        self.ctx = ctx
        self.host = host
        self.buffer = buffer
        self._finisher = finisher
        self._release = release
        self._result: Optional[HostValue] = None

    @property
    def finished(self) -> bool:
        return self._result is not None

    def finish(self) -> HostValue:
        if self._result is None:
            try:
                self._result = self._finisher()
            finally:
                if self._release is not None:
                    self._release()
                    self._release = None
        return self._result

    def __repr__(self) -> str:
        return f"ReadConversion(type_id={self.ctx.type_id}, nbytes={len(self.buffer)}, finished={self.finished})"


class Converter:
    """
    Converts host values to wire buffers and back.

    Dispatch is on the host kind (write) and the wire type class (read).
    Vlen and compound codecs call back into to_wire / to_host / prepare for
    their elements and fields. A Converter owns its arena and must not be
    shared between threads.
    """

    def __init__(
        self,
        registry: TypeRegistry,
        *,
        storage: Optional[StorageLayer] = None,
        arena: Optional[Arena] = None,
        config: Optional[ConverterConfig] = None,
        logger: Optional[logging.Logger] = None,
    ):
        self.registry = registry
        self.storage: StorageLayer = storage or HeapStorage()
        self.arena = arena or Arena()
        self.config = config or ConverterConfig()
        self._log = logger or logging.getLogger(__name__)

    def context(self, type_ref: TypeRef, shape: Sequence[int] = (), **policy: Any) -> ConversionContext:
        """ConversionContext.build() with the configured behaviour flags as defaults."""
        policy.setdefault("prefer_raw_text", self.config.prefer_raw_text)
        policy.setdefault("prefer_native_numeric", self.config.prefer_native_numeric)
        return ConversionContext.build(self.registry, type_ref, shape, **policy)

    # ------------------------------------------------------------------
    # Public entry points
    # ------------------------------------------------------------------
    def host_to_wire(self, value: HostValue, ctx: ConversionContext) -> WireBuffer:
        type_name = self.registry.type_name(ctx.type_id)
        try:
            with self.arena.scope():
                out = self.to_wire(value, ctx)
        except ConversionError as e:
            self._log.warning("WRITE_FAILED type=%s code=%s err=%s", type_name, e.code, e)
            raise
        self._log.debug("WRITE_OK type=%s count=%d nbytes=%d", type_name, ctx.count, len(out))
        return out

    def prepare_read(self, ctx: ConversionContext, wire: Optional[WireLike] = None) -> ReadConversion:
        """
        First phase of a read: allocate the host value and the wire buffer.

        Scratch memory taken from the arena is released by finish().
        """
        mark: ArenaMark = self.arena.mark()
        try:
            rc = self.prepare(ctx, _as_wire(wire), release=lambda: self.arena.reset(mark))
        except ConversionError as e:
            self.arena.reset(mark)
            self._log.warning(
                "READ_FAILED type=%s code=%s err=%s", self.registry.type_name(ctx.type_id), e.code, e
            )
            raise
        return rc

    def wire_to_host(self, ctx: ConversionContext, wire: WireLike) -> HostValue:
        type_name = self.registry.type_name(ctx.type_id)
        try:
            with self.arena.scope():
                host = self.to_host(ctx, _as_wire(wire))
        except ConversionError as e:
            self._log.warning("READ_FAILED type=%s code=%s err=%s", type_name, e.code, e)
            raise
        self._log.debug("READ_OK type=%s count=%d kind=%s", type_name, ctx.count, host.kind.value)
        return host

    def dims_to_wire(self, value: HostValue, n: int, fill: int = 0) -> List[int]:
        """Host start/count vector as n wire lengths; missing or absent entries take `fill`."""
        return host_to_sizes(value, n, fill)

    # ------------------------------------------------------------------
    # Write dispatch
    # ------------------------------------------------------------------
    def to_wire(self, value: HostValue, ctx: ConversionContext) -> WireBuffer:
        tid = ctx.type_id
        tclass = self.registry.type_class(tid)
        kind = value.kind

        if tclass == TypeClass.ATOMIC:
            codec = atomic(tid)
            if codec.is_numeric:
                if kind in NUMERIC_HOST_KINDS:
                    return host_to_numeric(value, ctx, codec, self.arena)
                if kind == HostKind.FACTOR:
                    # Factor codes go to numeric variables as plain integers
                    codes = HostValue(HostKind.INTEGER, value.data, value.dim)
                    return host_to_numeric(codes, ctx, codec, self.arena)
            elif tid == CHAR:
                if kind == HostKind.STRING:
                    return strings_to_char(value, ctx, self.arena)
                if kind == HostKind.RAW:
                    return raw_to_char(value, ctx)
            elif tid == STRING and kind == HostKind.STRING:
                return strings_to_string(value, ctx, self.arena)

        elif tclass == TypeClass.ENUM and kind == HostKind.FACTOR:
            return structured.factor_to_enum(self, value, ctx)
        elif tclass == TypeClass.OPAQUE and kind == HostKind.RAW:
            return structured.raw_to_opaque(self, value, ctx)
        elif tclass == TypeClass.VLEN and kind == HostKind.LIST:
            return structured.list_to_vlen(self, value, ctx)
        elif tclass == TypeClass.COMPOUND and kind == HostKind.LIST:
            return structured.list_to_compound(self, value, ctx)

        raise UnsupportedTypeError(
            f"Conversion from host '{kind.value}' to wire type '{self.registry.type_name(tid)}' is not supported",
            details={"host_kind": kind.value, "type_id": tid},
        )

    # ------------------------------------------------------------------
    # Read dispatch
    # ------------------------------------------------------------------
    def prepare(
        self,
        ctx: ConversionContext,
        wire: Optional[WireBuffer] = None,
        *,
        release: Optional[Callable[[], None]] = None,
    ) -> ReadConversion:
        tid = ctx.type_id
        tclass = self.registry.type_class(tid)

        if wire is not None:
            need = ctx.count * self.registry.type_size(tid)
            if len(wire) < need:
                raise DataLengthError(
                    f"Wire buffer holds {len(wire)} bytes, {need} required",
                    details={"have": len(wire), "need": need},
                )

        finisher: Callable[[], HostValue]
        if tclass == TypeClass.ATOMIC:
            codec = atomic(tid)
            if codec.is_numeric:
                host, wire = prepare_numeric_read(ctx, codec, self.arena, wire)
                finisher = lambda: numeric_to_host(wire, host, ctx, codec)
            elif tid == CHAR:
                host, wire = prepare_char_read(ctx, self.arena, wire)
                finisher = lambda: char_to_host(wire, host, ctx, self.config.host_string_maxlen)
            else:
                host, wire = prepare_string_read(ctx, self.arena, wire)
                finisher = lambda: string_to_host(wire, host, self.storage, self.config.host_string_maxlen)
        elif tclass == TypeClass.ENUM:
            host, wire = structured.prepare_enum_read(self, ctx, wire)
            finisher = lambda: structured.enum_to_factor(self, wire, host, ctx)
        elif tclass == TypeClass.OPAQUE:
            host, wire = structured.prepare_opaque_read(self, ctx, wire)
            finisher = lambda: structured.opaque_to_raw(wire, host)
        elif tclass == TypeClass.VLEN:
            host, wire = structured.prepare_vlen_read(self, ctx, wire)
            finisher = lambda: structured.vlen_to_list(self, wire, host, ctx)
        elif tclass == TypeClass.COMPOUND:
            host, wire = structured.prepare_compound_read(self, ctx, wire)
            finisher = lambda: structured.compound_to_list(self, wire, host, ctx)
        else:
            raise UnsupportedTypeError(f"Unsupported wire type class '{tclass}'")

        return ReadConversion(ctx, host, wire, finisher, release=release)

    def to_host(self, ctx: ConversionContext, wire: Optional[WireBuffer]) -> HostValue:
        # A null element pointer is only valid for an empty element
        if wire is None:
            wire = WireBuffer(b"")
        return self.prepare(ctx, wire).finish()
