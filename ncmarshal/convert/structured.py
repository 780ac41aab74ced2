# ncmarshal/convert/structured.py
"""
Codecs for user-defined types: enum <-> factor, opaque <-> raw bytes,
vlen <-> list of vectors, compound <-> named list.

Vlen and compound codecs convert their elements / fields by re-entering the
converter with the element or field type, one at a time, releasing scratch
memory from the arena after each one.
"""
from __future__ import annotations

from typing import TYPE_CHECKING, Dict, Optional, Tuple

import numpy as np

from ncmarshal.core.buffer import WireBuffer
from ncmarshal.core.context import ConversionContext
from ncmarshal.core.errors import (
    DataLengthError,
    FieldNotFoundError,
    MissingValueError,
    RangeError,
    UnknownEnumValueError,
    UnmatchedLevelError,
    UnsupportedTypeError,
)
from ncmarshal.core.shapes import element_count
from ncmarshal.model.codec import CHAR, POINTER_SIZE, atomic
from ncmarshal.model.host import NA_INTEGER, HostKind, HostValue, alloc_array, vlist
from ncmarshal.model.registry import VLEN_SIZE
from ncmarshal.model.types import CompoundField, TypeClass, UserType

if TYPE_CHECKING:
    from .dispatch import Converter, ReadConversion


# ---------------------------------------------------------------------
# Opaque
# ---------------------------------------------------------------------
def raw_to_opaque(conv: "Converter", value: HostValue, ctx: ConversionContext) -> WireBuffer:
    size = conv.registry.type_size(ctx.type_id)
    need = ctx.count * size
    if len(value) < need:
        raise DataLengthError(f"Host data has {len(value)} bytes, {need} required")
    return WireBuffer.alias(value.data[:need])


def prepare_opaque_read(
    conv: "Converter", ctx: ConversionContext, wire: Optional[WireBuffer]
) -> Tuple[HostValue, WireBuffer]:
    size = conv.registry.type_size(ctx.type_id)
    # A flat vector still needs a dimension to select the opaque elements
    ndim = ctx.ndim if ctx.ndim >= 0 else 1
    shape = tuple(ctx.shape[:ndim]) + (size,)
    host = alloc_array(HostKind.RAW, ndim + 1, shape)
    if wire is None:
        wire = WireBuffer.alias(host.data)
    return host, wire


def opaque_to_raw(wire: WireBuffer, host: HostValue) -> HostValue:
    n = len(host.data)
    if n and not wire.shares_memory(host.data):
        host.data[:] = wire.array(np.uint8, n)
    return host


# ---------------------------------------------------------------------
# Enum
# ---------------------------------------------------------------------
def factor_to_enum(conv: "Converter", value: HostValue, ctx: ConversionContext) -> WireBuffer:
    ut = conv.registry.user_type(ctx.type_id)
    if value.levels is None:
        raise UnsupportedTypeError("Expected a character vector of levels for the factor")

    by_name = {m.name: m for m in ut.members}
    table = []
    for level in value.levels:
        member = by_name.get(level)
        if member is None:
            raise UnmatchedLevelError(
                f"Level '{level}' has no matching member in enum '{ut.name}'",
                details={"level": level, "enum": ut.name},
            )
        table.append(member.raw)

    cnt = ctx.count
    if len(value) < cnt:
        raise DataLengthError(f"Host data has {len(value)} elements, {cnt} required")

    base = atomic(ut.base_type).np_dtype
    codes = value.data[:cnt]
    na = codes == NA_INTEGER
    invalid = ~na & ((codes < 1) | (codes > len(table)))
    if ctx.fill is None:
        invalid |= na
    if invalid.any():
        idx = int(np.flatnonzero(invalid)[0])
        if na[idx]:
            raise MissingValueError(
                "Missing factor value sent to storage without conversion to fill value"
            )
        raise RangeError(f"Invalid index {int(codes[idx])} in factor at position {idx}")

    out = WireBuffer.zeros(cnt * ut.size, conv.arena)
    arr = out.array(base, cnt)
    if table:
        values = np.frombuffer(b"".join(table), dtype=base)
        arr[~na] = values[codes[~na] - 1]
    if na.any():
        arr[na] = np.frombuffer(ctx.fill, dtype=base, count=1)[0]
    return out


def prepare_enum_read(
    conv: "Converter", ctx: ConversionContext, wire: Optional[WireBuffer]
) -> Tuple[HostValue, WireBuffer]:
    host = alloc_array(HostKind.FACTOR, ctx.ndim, ctx.shape)
    if wire is None:
        size = conv.registry.type_size(ctx.type_id)
        wire = WireBuffer.zeros(len(host.data) * size, conv.arena)
    return host, wire


def enum_to_factor(conv: "Converter", wire: WireBuffer, host: HostValue, ctx: ConversionContext) -> HostValue:
    ut = conv.registry.user_type(ctx.type_id)

    # Request-scoped table: exact wire byte pattern -> 1-based level index
    lookup: Dict[bytes, int] = {m.raw: ii + 1 for ii, m in enumerate(ut.members)}
    if ctx.fill is not None:
        lookup[ctx.fill] = NA_INTEGER

    cnt = len(host.data)
    if cnt:
        values = wire.array(atomic(ut.base_type).np_dtype, cnt)
        uniq, inverse = np.unique(values, return_inverse=True)
        mapped = np.empty(len(uniq), dtype=host.data.dtype)
        for ii, v in enumerate(uniq):
            idx = lookup.get(v.tobytes())
            if idx is None:
                raise UnknownEnumValueError(
                    f"Unknown enum value {v.item()} in data of type '{ut.name}'",
                    details={"value": v.item(), "enum": ut.name},
                )
            mapped[ii] = idx
        host.data[:] = mapped[inverse.reshape(-1)]

    host.levels = [m.name for m in ut.members]
    return host


# ---------------------------------------------------------------------
# Vlen
# ---------------------------------------------------------------------
def _vlen_item_length(conv: "Converter", item: HostValue, ut: UserType) -> int:
    if ut.base_type == CHAR and item.kind == HostKind.STRING:
        if len(item) == 0 or item.data[0] is None:
            return 0
        return len(item.data[0].encode("utf-8"))
    if item.kind == HostKind.RAW and conv.registry.type_class(ut.base_type) == TypeClass.OPAQUE:
        return len(item) // conv.registry.type_size(ut.base_type)
    return len(item)


def list_to_vlen(conv: "Converter", value: HostValue, ctx: ConversionContext) -> WireBuffer:
    """
    One wire vlen slot per host list item.

    The element count of each slot is the length of the host item. For a
    vlen of compound the item is a named list of field columns, so its
    length is the number of fields, not the number of records; an item
    whose columns are shorter than that raises DataLengthError.
    """
    ut = conv.registry.user_type(ctx.type_id)
    cnt = ctx.count
    if len(value) < cnt:
        raise DataLengthError(f"Host list has {len(value)} elements, {cnt} required")

    out = WireBuffer.zeros(cnt * VLEN_SIZE, conv.arena)
    for ii, item in enumerate(value.data[:cnt]):
        if not isinstance(item, HostValue):
            raise UnsupportedTypeError(f"Vlen element {ii} is not a host value")
        n = _vlen_item_length(conv, item, ut)
        slot = ii * VLEN_SIZE
        out.set_count(slot, n)
        if n > 0:
            sub = ctx.derive(ut.base_type, (n,), -1)
            out.set_ref(slot + POINTER_SIZE, conv.to_wire(item, sub))
    return out


def prepare_vlen_read(
    conv: "Converter", ctx: ConversionContext, wire: Optional[WireBuffer]
) -> Tuple[HostValue, WireBuffer]:
    host = alloc_array(HostKind.LIST, ctx.ndim, ctx.shape)
    if wire is None:
        wire = WireBuffer.zeros(len(host.data) * VLEN_SIZE, conv.arena)
    return host, wire


def vlen_to_list(conv: "Converter", wire: WireBuffer, host: HostValue, ctx: ConversionContext) -> HostValue:
    ut = conv.registry.user_type(ctx.type_id)
    for ii in range(len(host.data)):
        slot = ii * VLEN_SIZE
        n = wire.get_count(slot)
        with conv.arena.scope():
            sub = ctx.derive(ut.base_type, (n,), -1)
            host.data[ii] = conv.to_host(sub, wire.get_ref(slot + POINTER_SIZE))
        conv.storage.free_vlen(wire, slot)
    return host


# ---------------------------------------------------------------------
# Compound
# ---------------------------------------------------------------------
def _field_span(conv: "Converter", f: CompoundField) -> int:
    return conv.registry.type_size(f.type_id) * element_count(f.dims, f.ndim)


def _scatter_field(out: WireBuffer, size: int, offset: int, buf: WireBuffer, cnt: int, span: int) -> None:
    """Copy element i of a field buffer to byte offset i*size+offset of the compound block."""
    if cnt and span:
        block = np.frombuffer(out.data, dtype=np.uint8, count=cnt * size).reshape(cnt, size)
        block[:, offset:offset + span] = buf.array(np.uint8, cnt * span).reshape(cnt, span)
    for off, obj in buf.refs.items():
        ielem, rem = divmod(off, span)
        out.refs[ielem * size + offset + rem] = obj


def _gather_field(dst: WireBuffer, src: WireBuffer, size: int, offset: int, cnt: int, span: int) -> None:
    """Copy byte range [offset, offset+span) of each compound element into a contiguous field buffer."""
    if cnt and span:
        block = src.array(np.uint8, cnt * size).reshape(cnt, size)
        dst.array(np.uint8, cnt * span).reshape(cnt, span)[:] = block[:, offset:offset + span]
    for off, obj in src.refs.items():
        ielem, rem = divmod(off, size)
        if offset <= rem < offset + span:
            dst.refs[ielem * span + rem - offset] = obj


def list_to_compound(conv: "Converter", value: HostValue, ctx: ConversionContext) -> WireBuffer:
    ut = conv.registry.user_type(ctx.type_id)
    if value.kind != HostKind.LIST or value.names is None:
        raise UnsupportedTypeError("Named list required for conversion to compound type")
    if len(value.names) < len(ut.fields):
        raise DataLengthError(
            f"Not enough fields in list for conversion to compound type '{ut.name}'"
        )

    cnt = ctx.count
    # Zeroed so that alignment gaps carry no stale bytes
    out = WireBuffer.zeros(cnt * ut.size, conv.arena)

    # Fields follow schema order; the host list may hold them in any order
    for f in ut.fields:
        if f.name not in value.names:
            raise FieldNotFoundError(
                f"Name of compound field '{f.name}' not found in input list",
                details={"field": f.name, "compound": ut.name},
            )
        item = value.data[value.names.index(f.name)]

        with conv.arena.scope():
            sub = ctx.derive(f.type_id, (cnt,) + f.dims, f.ndim + 1, keep_policy=False)
            buf = conv.to_wire(item, sub)
            _scatter_field(out, ut.size, f.offset, buf, cnt, _field_span(conv, f))
    return out


def prepare_compound_read(
    conv: "Converter", ctx: ConversionContext, wire: Optional[WireBuffer]
) -> Tuple[HostValue, WireBuffer]:
    ut = conv.registry.user_type(ctx.type_id)
    host = vlist([None] * len(ut.fields), names=[f.name for f in ut.fields])
    if wire is None:
        wire = WireBuffer.zeros(ctx.count * ut.size, conv.arena)
    return host, wire


def _field_context(ctx: ConversionContext, f: CompoundField) -> ConversionContext:
    if ctx.ndim < 0:
        if not f.dims:
            return ctx.derive(f.type_id, ctx.shape[:1], -1, keep_policy=False)
        lead: Tuple[int, ...] = tuple(ctx.shape[:1])
    else:
        lead = tuple(ctx.shape[:ctx.ndim])
    return ctx.derive(f.type_id, lead + f.dims, len(lead) + f.ndim, keep_policy=False)


def compound_to_list(conv: "Converter", wire: WireBuffer, host: HostValue, ctx: ConversionContext) -> HostValue:
    ut = conv.registry.user_type(ctx.type_id)
    cnt = ctx.count

    for ifld, f in enumerate(ut.fields):
        # Nested fields may allocate in proportion to the element count,
        # so each field's scratch memory is released before the next
        with conv.arena.scope():
            rc: "ReadConversion" = conv.prepare(_field_context(ctx, f))
            _gather_field(rc.buffer, wire, ut.size, f.offset, cnt, _field_span(conv, f))
            host.data[ifld] = rc.finish()
    return host
