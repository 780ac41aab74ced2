# ncmarshal/cli/commands.py
from __future__ import annotations

import argparse
import json
from typing import Any, List, Optional, Sequence, Tuple

from ncmarshal.app.config import ConverterConfig
from ncmarshal.convert import Converter
from ncmarshal.core.errors import SchemaError, UnmatchedLevelError, UnsupportedTypeError
from ncmarshal.model import HostKind, HostValue, SchemaLoader, TypeClass, TypeRegistry
from ncmarshal.model import host as hv
from ncmarshal.model.codec import CHAR, STRING, atomic


# ---------------- JSON <-> host values ----------------

def _as_list(obj: Any) -> list:
    return list(obj) if isinstance(obj, list) else [obj]


def _numeric_from_json(values: list) -> HostValue:
    present = [v for v in values if v is not None]
    if any(isinstance(v, float) for v in present):
        return hv.double(values)
    if all(hv.NA_INTEGER < int(v) < 2**31 for v in present):
        return hv.integer(values)
    return hv.integer64(values)


def host_from_json(registry: TypeRegistry, type_id: int, obj: Any) -> HostValue:
    """
    Host value for a JSON document, shaped after the wire type.

    Numbers become integer/integer64/double vectors (null is missing),
    strings string vectors, enum labels factors, hex strings raw bytes,
    lists of lists vlen lists and objects compound lists.
    """
    tclass = registry.type_class(type_id)

    if tclass == TypeClass.ATOMIC:
        if type_id in (CHAR, STRING):
            return hv.string(_as_list(obj))
        return _numeric_from_json(_as_list(obj))

    ut = registry.user_type(type_id)
    if tclass == TypeClass.ENUM:
        labels = _as_list(obj)
        levels = [m.name for m in ut.members]
        for s in labels:
            if s is not None and s not in levels:
                raise UnmatchedLevelError(f"Label '{s}' is not a member of enum '{ut.name}'")
        return hv.factor_from_labels(labels, levels)

    if tclass == TypeClass.OPAQUE:
        try:
            return hv.raw(b"".join(bytes.fromhex(s) for s in _as_list(obj)))
        except (TypeError, ValueError) as e:
            raise SchemaError(f"Opaque '{ut.name}' values must be hex strings") from e

    if tclass == TypeClass.VLEN:
        items = obj if isinstance(obj, list) and all(isinstance(x, list) for x in obj) else [obj]
        return hv.vlist([host_from_json(registry, ut.base_type, item) for item in items])

    if isinstance(obj, list) and all(isinstance(rec, dict) for rec in obj):
        obj = _columns(obj)
    if not isinstance(obj, dict):
        raise SchemaError(f"Compound '{ut.name}' value must be a JSON object or a list of objects")
    field_types = {f.name: f.type_id for f in ut.fields}
    items = []
    for name, value in obj.items():
        ftid = field_types.get(name)
        items.append(_untyped_from_json(value) if ftid is None else host_from_json(registry, ftid, value))
    return hv.vlist(items, names=list(obj.keys()))


def _columns(records: List[dict]) -> dict:
    """Records [{x: 1, y: 2}, {x: 3, y: 4}] as field columns {x: [1, 3], y: [2, 4]}."""
    cols: dict = {}
    for rec in records:
        for name, value in rec.items():
            cols.setdefault(name, []).extend(_as_list(value))
    return cols


def _untyped_from_json(obj: Any) -> HostValue:
    values = _as_list(obj)
    if all(isinstance(v, str) or v is None for v in values):
        return hv.string(values)
    return _numeric_from_json(values)


def _jsonable(obj: Any) -> Any:
    if isinstance(obj, bytes):
        return obj.hex()
    if isinstance(obj, dict):
        return {k: _jsonable(v) for k, v in obj.items()}
    if isinstance(obj, list):
        return [_jsonable(v) for v in obj]
    return obj


def _json_literal(text: Optional[str]) -> Any:
    if text is None:
        return None
    try:
        return json.loads(text)
    except json.JSONDecodeError:
        # Bare words such as enum member names
        return text


# ---------------- helpers ----------------

def load_registry(schema: Optional[str]) -> TypeRegistry:
    if schema is None:
        return TypeRegistry()
    return SchemaLoader(schema).load()


def _encode_shape(registry: TypeRegistry, type_id: int, host: HostValue, doc: Any) -> Tuple[Sequence[int], bool]:
    if registry.type_class(type_id) == TypeClass.COMPOUND:
        return (len(doc) if isinstance(doc, list) else 1,), True
    if type_id == CHAR and host.kind == HostKind.STRING:
        width = max([len((s or "").encode("utf-8")) for s in host.data] + [1])
        return (len(host), width), False
    if host.kind == HostKind.RAW:
        return (len(host) // registry.type_size(type_id),), True
    return (len(host),), True


def _policy(args: argparse.Namespace) -> dict:
    return {
        "fill": _json_literal(args.fill),
        "valid_min": _json_literal(args.valid_min),
        "valid_max": _json_literal(args.valid_max),
        "scale": args.scale,
        "add": args.add,
    }


# ---------------- Commands ----------------

def cmd_types(args: argparse.Namespace) -> int:
    registry = load_registry(args.schema)
    if len(registry) == 0:
        print("(no user types)")
        return 0

    for ut in registry:
        print(f"{ut.type_id:>4}  {ut.name:<20} {ut.type_class.value:<9} size={ut.size}")
        if ut.type_class == TypeClass.ENUM:
            members = ", ".join(f"{m.name}={m.value}" for m in ut.members)
            print(f"        base={atomic(ut.base_type).name} members: {members}")
        elif ut.type_class == TypeClass.VLEN:
            print(f"        base={registry.type_name(ut.base_type)}")
        elif ut.type_class == TypeClass.COMPOUND:
            for f in ut.fields:
                dims = f" dims={list(f.dims)}" if f.dims else ""
                print(f"        - {f.name}: {registry.type_name(f.type_id)} @{f.offset}{dims}")
    return 0


def cmd_encode(args: argparse.Namespace, config: ConverterConfig) -> int:
    registry = load_registry(args.schema)
    conv = Converter(registry, config=config)
    tid = registry.resolve(args.type_name)

    try:
        doc = json.loads(args.value)
    except json.JSONDecodeError as e:
        raise SchemaError("Invalid JSON value", details={"error": str(e)}) from e

    host = host_from_json(registry, tid, doc)
    if args.shape is None:
        shape, flat = _encode_shape(registry, tid, host, doc)
    else:
        shape, flat = args.shape, False

    ctx = conv.context(tid, shape, flat=flat, **_policy(args))
    wire = conv.host_to_wire(host, ctx)
    if wire.refs:
        raise UnsupportedTypeError(
            f"Wire data of type '{registry.type_name(tid)}' holds pointers",
            hint="Only fixed-size types can be printed as hex.",
        )
    print(wire.tobytes().hex())
    return 0


def cmd_decode(args: argparse.Namespace, config: ConverterConfig) -> int:
    registry = load_registry(args.schema)
    conv = Converter(registry, config=config)
    tid = registry.resolve(args.type_name)
    if registry.has_pointers(tid):
        raise UnsupportedTypeError(
            f"Wire data of type '{registry.type_name(tid)}' holds pointers",
            hint="Only fixed-size types can be read from hex.",
        )

    try:
        data = bytes.fromhex(args.hex_data)
    except ValueError as e:
        raise SchemaError("Invalid hex data", details={"error": str(e)}) from e

    if args.shape is None:
        shape: List[int] = [len(data) // registry.type_size(tid)]
        flat = True
    else:
        shape, flat = args.shape, False

    flags = {}
    if args.raw_text is not None:
        flags["prefer_raw_text"] = args.raw_text
    if args.native is not None:
        flags["prefer_native_numeric"] = args.native

    ctx = conv.context(tid, shape, flat=flat, **_policy(args), **flags)
    host = conv.wire_to_host(ctx, data)
    print(json.dumps(_jsonable(host.to_python())))
    return 0
