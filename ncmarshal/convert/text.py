# ncmarshal/convert/text.py
"""
Text codecs: fixed-length char blocks, variable-length string arrays and raw
byte passthrough for char data.
"""
from __future__ import annotations

from typing import Optional, Tuple

import numpy as np

from ncmarshal.core.arena import Arena
from ncmarshal.core.buffer import WireBuffer
from ncmarshal.core.context import ConversionContext
from ncmarshal.core.errors import DataLengthError
from ncmarshal.core.shapes import element_count
from ncmarshal.interfaces.storage import StorageLayer
from ncmarshal.model.codec import POINTER_SIZE
from ncmarshal.model.host import HOST_STRING_MAXLEN, HostKind, HostValue, alloc_array


def _encode(s: Optional[str]) -> bytes:
    return b"" if s is None else s.encode("utf-8")


def _decode(b: bytes) -> str:
    return b.decode("utf-8", errors="replace")


def char_layout(ctx: ConversionContext) -> Tuple[int, int]:
    """(string length, number of strings) of a char block."""
    if ctx.ndim > 0:
        # Fastest-varying dimension holds the characters of each string
        return ctx.shape[ctx.ndim - 1], element_count(ctx.shape, ctx.ndim - 1)
    if ctx.ndim == 0:
        return 1, 1
    return ctx.shape[0], 1


# ---------------------------------------------------------------------
# Fixed-length char
# ---------------------------------------------------------------------
def strings_to_char(value: HostValue, ctx: ConversionContext, arena: Optional[Arena] = None) -> WireBuffer:
    strlen, cnt = char_layout(ctx)
    if len(value) < cnt:
        raise DataLengthError(f"Host data has {len(value)} strings, {cnt} required")

    out = WireBuffer.zeros(cnt * strlen, arena)
    pos = 0
    for s in value.data[:cnt]:
        # Short strings are zero padded, long strings truncated
        b = _encode(s).split(b"\0", 1)[0][:strlen]
        out.data[pos:pos + len(b)] = b
        pos += strlen
    return out


def raw_to_char(value: HostValue, ctx: ConversionContext) -> WireBuffer:
    cnt = ctx.count
    if len(value) < cnt:
        raise DataLengthError(f"Host data has {len(value)} bytes, {cnt} required")
    return WireBuffer.alias(value.data[:cnt])


def prepare_char_read(
    ctx: ConversionContext,
    arena: Optional[Arena] = None,
    wire: Optional[WireBuffer] = None,
) -> Tuple[HostValue, WireBuffer]:
    if ctx.prefer_raw_text:
        host = alloc_array(HostKind.RAW, ctx.ndim, ctx.shape)
        if wire is None:
            wire = WireBuffer.alias(host.data)
        return host, wire

    if ctx.ndim > 0:
        host = alloc_array(HostKind.STRING, ctx.ndim - 1, ctx.shape)
    else:
        host = alloc_array(HostKind.STRING, 0, ctx.shape)
    if wire is None:
        wire = WireBuffer.zeros(ctx.count, arena)
    return host, wire


def char_to_host(
    wire: WireBuffer,
    host: HostValue,
    ctx: ConversionContext,
    maxlen: int = HOST_STRING_MAXLEN,
) -> HostValue:
    if host.kind == HostKind.RAW:
        n = len(host.data)
        if n and not wire.shares_memory(host.data):
            host.data[:] = wire.array(np.uint8, n)
        return host

    strlen, _ = char_layout(ctx)
    rlen = min(strlen, maxlen)
    raw = bytes(wire.data)
    for ii in range(len(host.data)):
        slot = raw[ii * strlen:ii * strlen + rlen]
        end = slot.find(b"\0")
        # Without a terminator the string fills the whole slot
        host.data[ii] = _decode(slot if end < 0 else slot[:end])
    return host


# ---------------------------------------------------------------------
# Variable-length strings
# ---------------------------------------------------------------------
def strings_to_string(value: HostValue, ctx: ConversionContext, arena: Optional[Arena] = None) -> WireBuffer:
    cnt = ctx.count
    if len(value) < cnt:
        raise DataLengthError(f"Host data has {len(value)} strings, {cnt} required")

    out = WireBuffer.zeros(cnt * POINTER_SIZE, arena)
    for ii, s in enumerate(value.data[:cnt]):
        out.set_ref(ii * POINTER_SIZE, _encode(s))
    return out


def prepare_string_read(
    ctx: ConversionContext,
    arena: Optional[Arena] = None,
    wire: Optional[WireBuffer] = None,
) -> Tuple[HostValue, WireBuffer]:
    host = alloc_array(HostKind.STRING, ctx.ndim, ctx.shape)
    if wire is None:
        wire = WireBuffer.zeros(len(host.data) * POINTER_SIZE, arena)
    return host, wire


def string_to_host(
    wire: WireBuffer,
    host: HostValue,
    storage: StorageLayer,
    maxlen: int = HOST_STRING_MAXLEN,
) -> HostValue:
    cnt = len(host.data)
    for ii in range(cnt):
        ref = wire.get_ref(ii * POINTER_SIZE)
        if not ref:
            continue
        b = bytes(ref).split(b"\0", 1)[0]
        # Excessively long strings are truncated to the host limit
        host.data[ii] = _decode(b[:maxlen])
    # Strings behind the pointers belong to the storage layer
    if cnt > 0:
        storage.free_string(cnt, wire)
    return host
