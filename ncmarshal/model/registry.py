# ncmarshal/model/registry.py
from __future__ import annotations

import logging
from typing import Any, Dict, Iterator, List, Mapping, Optional, Sequence, Tuple, Union

from ncmarshal.core.errors import ConversionError, SchemaError, UnsupportedTypeError
from .codec import (
    ATOMICS_BY_NAME,
    FIRST_USER_TYPE,
    POINTER_SIZE,
    STRING,
    atomic,
    encode_scalar,
    is_atomic,
)
from .types import CompoundField, EnumMember, TypeClass, UserType

# A vlen element is a (count, pointer) pair
VLEN_SIZE = 16

TypeRef = Union[int, str]


def _align_up(offset: int, align: int) -> int:
    return (offset + align - 1) // align * align


class TypeRegistry:
    """
    Schema of wire types, queried read-only while converting.

    Atomic types are built in; user types are added with the define_* methods
    (or by SchemaLoader from YAML). Types may be referred to by id or name.
    """

    def __init__(self, *, logger: Optional[logging.Logger] = None):
        self._types: Dict[int, UserType] = {}
        self._by_name: Dict[str, int] = {}
        self._next_id = FIRST_USER_TYPE
        self._log = logger or logging.getLogger(__name__)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------
    def resolve(self, ref: TypeRef) -> int:
        if isinstance(ref, str):
            if ref.lower() in ATOMICS_BY_NAME:
                return ATOMICS_BY_NAME[ref.lower()].type_id
            if ref in self._by_name:
                return self._by_name[ref]
            raise UnsupportedTypeError(f"Unknown wire type '{ref}'")
        tid = int(ref)
        if is_atomic(tid) or tid in self._types:
            return tid
        raise UnsupportedTypeError(f"Unknown wire type id {tid}")

    def type_class(self, ref: TypeRef) -> TypeClass:
        tid = self.resolve(ref)
        if is_atomic(tid):
            return TypeClass.ATOMIC
        return self._types[tid].type_class

    def type_size(self, ref: TypeRef) -> int:
        tid = self.resolve(ref)
        if is_atomic(tid):
            return atomic(tid).size
        return self._types[tid].size

    def type_name(self, ref: TypeRef) -> str:
        tid = self.resolve(ref)
        if is_atomic(tid):
            return atomic(tid).name
        return self._types[tid].name

    def user_type(self, ref: TypeRef) -> UserType:
        tid = self.resolve(ref)
        if tid not in self._types:
            raise UnsupportedTypeError(f"Wire type '{self.type_name(tid)}' is not a user type")
        return self._types[tid]

    def alignment(self, ref: TypeRef) -> int:
        tid = self.resolve(ref)
        if is_atomic(tid):
            return atomic(tid).size
        ut = self._types[tid]
        if ut.type_class == TypeClass.ENUM:
            return atomic(ut.base_type).size
        if ut.type_class == TypeClass.OPAQUE:
            return 1
        if ut.type_class == TypeClass.VLEN:
            return POINTER_SIZE
        return max((self.alignment(f.type_id) for f in ut.fields), default=1)

    def has_pointers(self, ref: TypeRef) -> bool:
        """True if elements of the type embed string or vlen pointer slots."""
        tid = self.resolve(ref)
        if tid == STRING:
            return True
        if is_atomic(tid):
            return False
        ut = self._types[tid]
        if ut.type_class == TypeClass.VLEN:
            return True
        if ut.type_class == TypeClass.COMPOUND:
            return any(self.has_pointers(f.type_id) for f in ut.fields)
        return False

    def __contains__(self, ref: object) -> bool:
        try:
            self.resolve(ref)  # type: ignore[arg-type]
        except UnsupportedTypeError:
            return False
        return True

    def __iter__(self) -> Iterator[UserType]:
        return iter(self._types.values())

    def __len__(self) -> int:
        return len(self._types)

    def as_dict(self) -> dict:
        return {ut.name: ut.as_dict() for ut in self._types.values()}

    # ------------------------------------------------------------------
    # Definitions
    # ------------------------------------------------------------------
    def define_enum(
        self,
        name: str,
        base: TypeRef,
        members: Union[Mapping[str, int], Sequence[Tuple[str, int]]],
    ) -> int:
        base_id = self.resolve(base)
        if not is_atomic(base_id) or not atomic(base_id).is_integer:
            raise SchemaError(f"Enum '{name}' base type must be an atomic integer type")

        pairs = list(members.items()) if isinstance(members, Mapping) else list(members)
        if not pairs:
            raise SchemaError(f"Enum '{name}' must define at least one member")

        seen_names = set()
        seen_values = set()
        out: List[EnumMember] = []
        for mname, mval in pairs:
            mname = str(mname)
            if mname in seen_names:
                raise SchemaError(f"Duplicate member '{mname}' in enum '{name}'")
            if mval in seen_values:
                raise SchemaError(f"Duplicate value {mval} in enum '{name}'")
            try:
                raw = encode_scalar(base_id, mval)
            except ConversionError as e:
                raise SchemaError(f"Enum '{name}' member '{mname}': {e.message}") from None
            seen_names.add(mname)
            seen_values.add(mval)
            out.append(EnumMember(name=mname, value=int(mval), raw=raw))

        return self._add(UserType(
            type_id=0,
            name=name,
            type_class=TypeClass.ENUM,
            size=atomic(base_id).size,
            base_type=base_id,
            members=tuple(out),
        ))

    def define_opaque(self, name: str, size: int) -> int:
        if int(size) <= 0:
            raise SchemaError(f"Opaque '{name}' size must be positive")
        return self._add(UserType(type_id=0, name=name, type_class=TypeClass.OPAQUE, size=int(size)))

    def define_vlen(self, name: str, base: TypeRef) -> int:
        base_id = self.resolve(base)
        return self._add(UserType(
            type_id=0, name=name, type_class=TypeClass.VLEN, size=VLEN_SIZE, base_type=base_id
        ))

    def define_compound(
        self,
        name: str,
        fields: Sequence[Any],
        *,
        size: Optional[int] = None,
    ) -> int:
        """
        Define a compound type.

        Each field is a mapping with keys name, type and optional dims / offset,
        or a tuple (name, type[, dims[, offset]]). Missing offsets follow C
        struct layout rules: each field is aligned to its own alignment and the
        total size is padded to the largest alignment.
        """
        if not fields:
            raise SchemaError(f"Compound '{name}' must define at least one field")

        out: List[CompoundField] = []
        cursor = 0
        max_align = 1
        for entry in fields:
            if isinstance(entry, Mapping):
                fname = entry.get("name")
                ftype = entry.get("type")
                dims = entry.get("dims") or ()
                offset = entry.get("offset")
            else:
                fname, ftype, *rest = entry
                dims = rest[0] if len(rest) > 0 and rest[0] is not None else ()
                offset = rest[1] if len(rest) > 1 else None
            if not fname or ftype is None:
                raise SchemaError(f"Compound '{name}' field requires 'name' and 'type'")

            tid = self.resolve(ftype)
            if isinstance(dims, int):
                dims = (dims,)
            dims = tuple(int(d) for d in dims)
            if any(d <= 0 for d in dims):
                raise SchemaError(f"Compound '{name}' field '{fname}' dims must be positive")

            align = self.alignment(tid)
            max_align = max(max_align, align)
            if offset is None:
                offset = _align_up(cursor, align)
            offset = int(offset)
            if offset < cursor:
                raise SchemaError(f"Compound '{name}' field '{fname}' overlaps the previous field")

            count = 1
            for d in dims:
                count *= d
            cursor = offset + count * self.type_size(tid)
            out.append(CompoundField(name=str(fname), offset=offset, type_id=tid, dims=dims))

        names = [f.name for f in out]
        if len(names) != len(set(names)):
            raise SchemaError(f"Duplicate field name in compound '{name}'")

        total = _align_up(cursor, max_align) if size is None else int(size)
        if total < cursor:
            raise SchemaError(f"Compound '{name}' size {total} is smaller than its fields ({cursor})")

        return self._add(UserType(
            type_id=0, name=name, type_class=TypeClass.COMPOUND, size=total, fields=tuple(out)
        ))

    def _add(self, ut: UserType) -> int:
        if not ut.name:
            raise SchemaError("User type requires a name")
        if ut.name in self._by_name or ut.name.lower() in ATOMICS_BY_NAME:
            raise SchemaError(f"Type name '{ut.name}' is already defined")

        tid = self._next_id
        self._next_id += 1
        stored = UserType(
            type_id=tid,
            name=ut.name,
            type_class=ut.type_class,
            size=ut.size,
            base_type=ut.base_type,
            members=ut.members,
            fields=ut.fields,
        )
        self._types[tid] = stored
        self._by_name[ut.name] = tid
        self._log.debug("TYPE_DEFINED id=%d name=%s class=%s size=%d", tid, ut.name, ut.type_class.value, ut.size)
        return tid
