# ncmarshal/model/loader.py
from __future__ import annotations

import logging
from pathlib import Path
from typing import Dict, Optional

import yaml

from ncmarshal.core.errors import ConversionError, SchemaError
from ncmarshal.utils.hashing import sha256_digest
from .registry import TypeRegistry
from .types import TypeClass


class SchemaLoader:
    """
    Builds a TypeRegistry from a YAML schema file.

    Expected layout:

        types:
          status:   {class: enum, base: ubyte, members: {ok: 0, fail: 1}}
          blob:     {class: opaque, size: 16}
          samples:  {class: vlen, base: double}
          reading:
            class: compound
            fields:
              - {name: when, type: double}
              - {name: label, type: char, dims: [8]}

    Types are defined in document order, so a type may only refer to
    atomic types and to types listed before it.

    After calling load(), exposes:
        self.registry    : TypeRegistry
        self.file_hashes : dict[str, str]  (filename -> sha256)
    """

    def __init__(
        self,
        path: str | Path,
        *,
        registry: Optional[TypeRegistry] = None,
        logger: Optional[logging.Logger] = None,
    ):
        self.path = Path(path)
        self._log = logger or logging.getLogger(__name__)
        self.registry = registry if registry is not None else TypeRegistry(logger=logger)
        self.file_hashes: Dict[str, str] = {}

    # ---------------------------------------------------------------------
    # YAML utility
    # ---------------------------------------------------------------------
    def _load_yaml(self) -> tuple[dict, bytes]:
        if not self.path.exists():
            raise SchemaError(f"Missing schema file: {self.path}")

        raw = self.path.read_bytes()
        try:
            return yaml.safe_load(raw) or {}, raw
        except yaml.YAMLError as e:
            raise SchemaError(
                f"Invalid YAML in {self.path}",
                details={"error": str(e)},
            ) from e

    # ---------------------------------------------------------------------
    # Public entry point
    # ---------------------------------------------------------------------
    def load(self) -> TypeRegistry:
        """Define every type of the schema file + hash the bytes that were parsed."""
        data, raw = self._load_yaml()
        self.file_hashes[self.path.name] = sha256_digest(raw)

        types = data.get("types") if isinstance(data, dict) else None
        if not isinstance(types, dict):
            raise SchemaError(f"{self.path.name} is missing 'types' root node")

        for name, tinfo in types.items():
            name = str(name)
            if not isinstance(tinfo, dict):
                raise SchemaError(f"Type '{name}' entry must be a mapping")
            try:
                self._define(name, tinfo)
            except SchemaError:
                raise
            except ConversionError as e:
                raise SchemaError(
                    f"Type '{name}': {e.message}",
                    hint="Types may only refer to atomic types or types defined above them.",
                ) from e

        self._log.info(
            "SCHEMA_LOADED file=%s types=%d sha256=%s",
            self.path.name, len(types), self.file_hashes[self.path.name],
        )
        return self.registry

    # ---------------------------------------------------------------------
    # Per-class definitions
    # ---------------------------------------------------------------------
    def _define(self, name: str, tinfo: dict) -> int:
        cls_raw = tinfo.get("class")
        try:
            tclass = TypeClass(str(cls_raw).lower())
        except ValueError:
            raise SchemaError(f"Type '{name}' has unknown class '{cls_raw}'") from None

        if tclass == TypeClass.ENUM:
            members = tinfo.get("members")
            if not isinstance(members, dict):
                raise SchemaError(f"Enum '{name}' 'members' must be a mapping")
            return self.registry.define_enum(name, self._required(name, tinfo, "base"), members)

        if tclass == TypeClass.OPAQUE:
            return self.registry.define_opaque(name, int(self._required(name, tinfo, "size")))

        if tclass == TypeClass.VLEN:
            return self.registry.define_vlen(name, self._required(name, tinfo, "base"))

        if tclass == TypeClass.COMPOUND:
            fields = tinfo.get("fields")
            if not isinstance(fields, list):
                raise SchemaError(f"Compound '{name}' 'fields' must be a list")
            for f in fields:
                if not isinstance(f, dict):
                    raise SchemaError(f"Compound '{name}' field entries must be mappings")
            size = tinfo.get("size")
            return self.registry.define_compound(name, fields, size=None if size is None else int(size))

        raise SchemaError(f"Type '{name}': class '{tclass.value}' cannot be defined")

    @staticmethod
    def _required(name: str, tinfo: dict, key: str):
        value = tinfo.get(key)
        if value is None:
            raise SchemaError(f"Type '{name}' is missing '{key}'")
        return value
