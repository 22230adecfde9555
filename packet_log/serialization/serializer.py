"""Structural JSON rendering of arbitrary packet payloads."""

from __future__ import annotations

import dataclasses
import inspect
import json
import math
from collections.abc import Mapping
from typing import Any, Optional, Set

from .registry import DEFAULT_REGISTRY, EncoderRegistry

_SCALARS = (str, int, float, bool, type(None))


class SerializationError(Exception):
    """Raised when a payload cannot be structurally encoded."""


class StructuredSerializer:
    """Encode values as pretty-printed JSON.

    Registered encoders win over structural traversal for the subtree they
    match. Otherwise mappings become objects, sequences and sets become
    arrays, objects exposing ``to_dict()`` are encoded from its result, and
    dataclasses and plain objects become objects of their public fields.
    """

    def __init__(self, registry: Optional[EncoderRegistry] = None, indent: int = 2):
        self.registry = registry if registry is not None else DEFAULT_REGISTRY
        self.indent = indent

    def serialize(self, value: Any) -> str:
        structure = self.to_structure(value)
        try:
            return json.dumps(structure, indent=self.indent, ensure_ascii=False, allow_nan=False)
        except ValueError as exc:
            raise SerializationError(f"Cannot encode {type(value).__name__}: {exc}") from exc

    def to_structure(self, value: Any) -> Any:
        return self._encode(value, set(), "$")

    def _encode(self, value: Any, active: Set[int], path: str) -> Any:
        if type(value) in _SCALARS and not (type(value) is float and not math.isfinite(value)):
            return value

        encoder = self.registry.lookup(value)
        if encoder is not None:
            return self._descend(encoder(value), active, path, value)

        if isinstance(value, bool) or value is None or isinstance(value, str):
            return value
        if isinstance(value, int):
            return int(value)
        if isinstance(value, float):
            if not math.isfinite(value):
                return str(value)
            return value

        if isinstance(value, Mapping):
            return self._descend(value, active, path, value)
        if isinstance(value, (list, tuple, set, frozenset)):
            return self._descend(value, active, path, value)

        if isinstance(value, type) or inspect.isroutine(value) or inspect.ismodule(value):
            raise SerializationError(f"No encoding for {type(value).__name__} at {path}")

        to_dict = getattr(value, "to_dict", None)
        if callable(to_dict):
            return self._descend(to_dict(), active, path, value)
        if dataclasses.is_dataclass(value):
            fields = {f.name: getattr(value, f.name) for f in dataclasses.fields(value)}
            return self._descend(fields, active, path, value)

        attributes = getattr(value, "__dict__", None)
        if attributes is not None:
            public = {key: attr for key, attr in attributes.items() if not key.startswith("_")}
            return self._descend(public, active, path, value)

        raise SerializationError(f"No encoding for {type(value).__name__} at {path}")

    def _descend(self, value: Any, active: Set[int], path: str, owner: Any) -> Any:
        if isinstance(value, _SCALARS):
            return value

        marker = id(owner)
        if marker in active:
            raise SerializationError(f"Cyclic reference to {type(owner).__name__} at {path}")
        active.add(marker)
        try:
            if isinstance(value, Mapping):
                return {
                    str(key): self._encode(item, active, f"{path}.{key}")
                    for key, item in value.items()
                }
            if isinstance(value, (set, frozenset)):
                items = sorted(value, key=repr)
                return [self._encode(item, active, f"{path}[{i}]") for i, item in enumerate(items)]
            if isinstance(value, (list, tuple)):
                return [self._encode(item, active, f"{path}[{i}]") for i, item in enumerate(value)]
            if value is owner:
                raise SerializationError(f"No encoding for {type(owner).__name__} at {path}")
            return self._encode(value, active, path)
        finally:
            active.discard(marker)


DEFAULT_SERIALIZER = StructuredSerializer()


__all__ = ["SerializationError", "StructuredSerializer", "DEFAULT_SERIALIZER"]
