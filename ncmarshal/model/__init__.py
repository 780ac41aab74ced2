from .host import HostKind, HostValue
from .types import TypeClass, UserType, EnumMember, CompoundField
from .registry import TypeRegistry
from .loader import SchemaLoader

__all__ = ["HostKind",
           "HostValue",
           "TypeClass",
           "UserType",
           "EnumMember",
           "CompoundField",
           "TypeRegistry",
           "SchemaLoader"]
