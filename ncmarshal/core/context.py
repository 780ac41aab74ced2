# ncmarshal/core/context.py
from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Any, Optional, Sequence, Tuple

from ncmarshal.core.errors import ConversionError, InvalidLengthError, SchemaError
from ncmarshal.core.shapes import element_count, shape_ndim
from ncmarshal.model.codec import CHAR, STRING, encode_scalar, is_atomic
from ncmarshal.model.registry import TypeRef, TypeRegistry
from ncmarshal.model.types import TypeClass


@dataclass(frozen=True)
class ConversionContext:
    """
    One conversion request and its policy.

    fill / valid_min / valid_max hold the exact wire byte pattern of the
    sentinel or bound (see build()). Either scale or add switches numeric
    conversions to pack/unpack mode. ndim is -1 for a flat vector of
    shape[0] elements, 0 for a scalar.
    """
    type_id: int
    shape: Tuple[int, ...] = ()
    ndim: int = 0
    fill: Optional[bytes] = None
    valid_min: Optional[bytes] = None
    valid_max: Optional[bytes] = None
    scale: Optional[float] = None
    add: Optional[float] = None
    prefer_raw_text: bool = False
    prefer_native_numeric: bool = False

    def __post_init__(self) -> None:
        if self.ndim < 0 and len(self.shape) < 1:
            raise InvalidLengthError("A flat vector needs its length in shape[0]")
        if self.ndim > len(self.shape):
            raise InvalidLengthError(
                f"ndim={self.ndim} exceeds shape {self.shape}",
                details={"ndim": self.ndim, "shape": list(self.shape)},
            )

    @property
    def unpack(self) -> bool:
        return self.scale is not None or self.add is not None

    @property
    def count(self) -> int:
        return element_count(self.shape, self.ndim)

    @classmethod
    def build(
        cls,
        registry: TypeRegistry,
        type_ref: TypeRef,
        shape: Sequence[int] = (),
        *,
        flat: bool = False,
        fill: Any = None,
        valid_min: Any = None,
        valid_max: Any = None,
        scale: Optional[float] = None,
        add: Optional[float] = None,
        prefer_raw_text: bool = False,
        prefer_native_numeric: bool = False,
    ) -> "ConversionContext":
        """Build a context, encoding Python fill/bound values for the wire type."""
        tid = registry.resolve(type_ref)
        shape = tuple(int(d) for d in shape)
        return cls(
            type_id=tid,
            shape=shape,
            ndim=shape_ndim(shape, flat),
            fill=encode_policy_value(registry, tid, fill, "fill"),
            valid_min=encode_policy_value(registry, tid, valid_min, "valid_min"),
            valid_max=encode_policy_value(registry, tid, valid_max, "valid_max"),
            scale=None if scale is None else float(scale),
            add=None if add is None else float(add),
            prefer_raw_text=bool(prefer_raw_text),
            prefer_native_numeric=bool(prefer_native_numeric),
        )

    def derive(self, type_id: int, shape: Sequence[int], ndim: int, *, keep_policy: bool = True) -> "ConversionContext":
        """Context for a nested conversion (vlen element, compound field)."""
        if keep_policy:
            return replace(self, type_id=type_id, shape=tuple(shape), ndim=ndim)
        return replace(
            self,
            type_id=type_id,
            shape=tuple(shape),
            ndim=ndim,
            fill=None,
            valid_min=None,
            valid_max=None,
            scale=None,
            add=None,
        )


def encode_policy_value(registry: TypeRegistry, type_id: int, value: Any, what: str) -> Optional[bytes]:
    """
    Wire byte pattern of a fill or bound value.

    Numeric types take Python numbers; enums take a member name or base value;
    vlen types use their element type; raw bytes are accepted for any
    fixed-size type.
    """
    if value is None:
        return None

    size = registry.type_size(type_id)
    if is_atomic(type_id):
        if type_id == STRING:
            raise SchemaError(f"{what} is not supported for variable-length strings")
        if type_id == CHAR:
            if isinstance(value, str):
                value = value.encode("utf-8")
            if not isinstance(value, (bytes, bytearray)) or len(value) != 1:
                raise SchemaError(f"{what} for char data must be a single byte")
            return bytes(value)
        try:
            return encode_scalar(type_id, value)
        except ConversionError as e:
            raise SchemaError(f"Invalid {what}: {e.message}") from None

    ut = registry.user_type(type_id)
    if isinstance(value, (bytes, bytearray)) and ut.type_class != TypeClass.VLEN:
        if len(value) != size:
            raise SchemaError(f"{what} must be {size} bytes for type '{ut.name}'")
        return bytes(value)

    if ut.type_class == TypeClass.ENUM:
        if isinstance(value, str):
            try:
                return ut.member_named(value).raw
            except KeyError:
                raise SchemaError(f"{what} '{value}' is not a member of enum '{ut.name}'") from None
        return encode_policy_value(registry, ut.base_type, value, what)
    if ut.type_class == TypeClass.VLEN:
        return encode_policy_value(registry, ut.base_type, value, what)

    raise SchemaError(f"{what} is not supported for {ut.type_class.value} type '{ut.name}'")
