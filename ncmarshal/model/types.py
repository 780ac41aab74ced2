# ncmarshal/model/types.py
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Tuple


class TypeClass(str, Enum):
    ATOMIC = "atomic"
    ENUM = "enum"
    OPAQUE = "opaque"
    VLEN = "vlen"
    COMPOUND = "compound"


@dataclass(frozen=True)
class EnumMember:
    name: str
    value: int
    raw: bytes     # value encoded with the enum base type


@dataclass(frozen=True)
class CompoundField:
    name: str
    offset: int
    type_id: int
    dims: Tuple[int, ...] = ()

    @property
    def ndim(self) -> int:
        return len(self.dims)


@dataclass(frozen=True)
class UserType:
    """
    Read-only descriptor of a user-defined wire type.

    size is the byte width of one element as laid out in memory,
    including alignment padding for compounds.
    """
    type_id: int
    name: str
    type_class: TypeClass
    size: int
    base_type: int = 0
    members: Tuple[EnumMember, ...] = field(default=())
    fields: Tuple[CompoundField, ...] = field(default=())

    def member_named(self, name: str) -> EnumMember:
        for m in self.members:
            if m.name == name:
                return m
        raise KeyError(name)

    def field_named(self, name: str) -> CompoundField:
        for f in self.fields:
            if f.name == name:
                return f
        raise KeyError(name)

    def as_dict(self) -> dict:
        d = {
            "type_id": self.type_id,
            "name": self.name,
            "class": self.type_class.value,
            "size": self.size,
        }
        if self.type_class in (TypeClass.ENUM, TypeClass.VLEN):
            d["base_type"] = self.base_type
        if self.members:
            d["members"] = {m.name: m.value for m in self.members}
        if self.fields:
            d["fields"] = [
                {"name": f.name, "offset": f.offset, "type_id": f.type_id, "dims": list(f.dims)}
                for f in self.fields
            ]
        return d

    def __repr__(self) -> str:
        return f"UserType(id={self.type_id}, name='{self.name}', class={self.type_class.value})"
