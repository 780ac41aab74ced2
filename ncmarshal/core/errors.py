# ncmarshal/core/errors.py
from __future__ import annotations


class ConversionError(Exception):
    """
    Base class for all expected conversion failures in ncmarshal.
    """

    #: Stable machine-readable identifier (for CLI exit mapping, callers, etc.)
    code: str = "unknown"

    def __init__(
        self,
        message: str,
        *,
        hint: str | None = None,
        details: dict | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.hint = hint
        self.details = details or {}

    def __str__(self) -> str:
        return self.message


# ---------------------------------------------------------------------------
# Write-direction value errors
# ---------------------------------------------------------------------------

class RangeError(ConversionError):
    """
    A host value lies outside the range accepted by the destination.

    Examples:
      - 300 written to an unsigned 8-bit variable
      - a factor index beyond the number of levels
      - a packed value that overflows the storage type
    """
    code = "range_error"


class MissingValueError(ConversionError):
    """
    A missing host value was written without a fill value to replace it.
    """
    code = "missing_value"


class DataLengthError(ConversionError):
    """
    The host container holds fewer elements than the shape demands.
    """
    code = "data_length"


# ---------------------------------------------------------------------------
# Type / structure errors
# ---------------------------------------------------------------------------

class UnsupportedTypeError(ConversionError):
    """
    No codec exists for the combination of host kind and wire type.

    Examples:
      - a string vector written to an integer variable
      - a plain list written to an enum type
      - an unknown wire type id
    """
    code = "unsupported_type"


class UnmatchedLevelError(ConversionError):
    """
    A factor level has no enum member with the same name.
    """
    code = "unmatched_level"


class UnknownEnumValueError(ConversionError):
    """
    Stored enum data contains a value that is neither a member nor the fill.
    """
    code = "unknown_enum_value"


class FieldNotFoundError(ConversionError):
    """
    A compound field named by the schema is absent from the host list.
    """
    code = "field_not_found"


# ---------------------------------------------------------------------------
# Shape errors
# ---------------------------------------------------------------------------

class InvalidLengthError(ConversionError):
    """
    A host-supplied length vector contains a missing or non-finite entry,
    or a conversion shape cannot describe the requested layout.
    """
    code = "invalid_length"


class ShapeOverflowError(ConversionError, OverflowError):
    """
    An element count does not fit the host length representation.
    """
    code = "shape_overflow"


# ---------------------------------------------------------------------------
# Schema / configuration errors
# ---------------------------------------------------------------------------

class SchemaError(ConversionError):
    """
    A type definition or configuration document is invalid.

    Examples:
      - compound field overlapping another field
      - enum member value outside the base type range
      - unknown key in a converter config file
    """
    code = "schema_error"
