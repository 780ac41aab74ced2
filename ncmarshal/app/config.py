# ncmarshal/app/config.py
from __future__ import annotations

from dataclasses import dataclass, fields
from pathlib import Path

import yaml

from ncmarshal.core.errors import SchemaError
from ncmarshal.model.host import HOST_STRING_MAXLEN


@dataclass(frozen=True)
class ConverterConfig:
    host_string_maxlen: int = HOST_STRING_MAXLEN
    prefer_raw_text: bool = False
    prefer_native_numeric: bool = False

    def __post_init__(self) -> None:
        if not (0 < self.host_string_maxlen <= HOST_STRING_MAXLEN):
            raise SchemaError(
                f"host_string_maxlen must be in 1..{HOST_STRING_MAXLEN}",
                details={"host_string_maxlen": self.host_string_maxlen},
            )

    @classmethod
    def from_dict(cls, data: dict) -> "ConverterConfig":
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(data) - known)
        if unknown:
            raise SchemaError(
                f"Unknown converter setting(s): {', '.join(unknown)}",
                hint=f"Valid settings: {', '.join(sorted(known))}",
            )
        return cls(
            host_string_maxlen=int(data.get("host_string_maxlen", HOST_STRING_MAXLEN)),
            prefer_raw_text=bool(data.get("prefer_raw_text", False)),
            prefer_native_numeric=bool(data.get("prefer_native_numeric", False)),
        )

    @classmethod
    def load(cls, path: str | Path) -> "ConverterConfig":
        """Read the `converter:` mapping of a YAML file."""
        path = Path(path)
        if not path.exists():
            raise SchemaError(f"Missing config file: {path}")

        with open(path, "r", encoding="utf-8") as f:
            try:
                data = yaml.safe_load(f) or {}
            except yaml.YAMLError as e:
                raise SchemaError(f"Invalid YAML in {path}", details={"error": str(e)}) from e

        section = data.get("converter", {}) if isinstance(data, dict) else None
        if not isinstance(section, dict):
            raise SchemaError(f"{path.name}: 'converter' must be a mapping")
        return cls.from_dict(section)
