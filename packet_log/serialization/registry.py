"""Per-type custom encoders consulted before structural traversal."""

from __future__ import annotations

import base64
import threading
from datetime import date, datetime
from enum import Enum
from pathlib import PurePath
from types import MappingProxyType
from typing import Any, Callable, Dict, Mapping, Optional, Type
from uuid import UUID

import numpy as np

from ..models.vector import Vector3f, Vector3i

Encoder = Callable[[Any], Any]


class EncoderRegistry:
    """Mapping from value type to an encoding function.

    Lookup walks the value type's MRO, so subclasses of a registered type
    share its encoder. A frozen registry rejects further registration and is
    safe to share between threads.
    """

    def __init__(self, encoders: Optional[Mapping[type, Encoder]] = None, frozen: bool = False):
        self._encoders: Dict[type, Encoder] = dict(encoders or {})
        self._frozen = frozen
        self._cache: Dict[type, Optional[Encoder]] = {}
        self._cache_lock = threading.Lock()

    @property
    def frozen(self) -> bool:
        return self._frozen

    @property
    def encoders(self) -> Mapping[type, Encoder]:
        return MappingProxyType(self._encoders)

    def register(self, value_type: Type, encoder: Encoder) -> None:
        if self._frozen:
            raise RuntimeError("Encoder registry is frozen")
        self._encoders[value_type] = encoder
        with self._cache_lock:
            self._cache.clear()

    def freeze(self) -> "EncoderRegistry":
        """Return an immutable copy of this registry."""
        return EncoderRegistry(self._encoders, frozen=True)

    def lookup(self, value: Any) -> Optional[Encoder]:
        value_type = type(value)
        with self._cache_lock:
            if value_type in self._cache:
                return self._cache[value_type]

        encoder = None
        for klass in value_type.__mro__:
            encoder = self._encoders.get(klass)
            if encoder is not None:
                break

        with self._cache_lock:
            self._cache[value_type] = encoder
        return encoder


def _encode_vector(vector: Any) -> Dict[str, Any]:
    return {"x": vector.x, "y": vector.y, "z": vector.z}


def _encode_bytes(data: Any) -> str:
    return base64.b64encode(bytes(data)).decode("ascii")


def _encode_enum(member: Enum) -> Any:
    return member.value


def _encode_ndarray(array: np.ndarray) -> Any:
    return array.tolist()


def _encode_numpy_scalar(value: np.generic) -> Any:
    return value.item()


def _encode_temporal(value: Any) -> str:
    return value.isoformat()


def build_default_registry() -> EncoderRegistry:
    registry = EncoderRegistry()
    registry.register(Vector3i, _encode_vector)
    registry.register(Vector3f, _encode_vector)
    registry.register(bytes, _encode_bytes)
    registry.register(bytearray, _encode_bytes)
    registry.register(Enum, _encode_enum)
    registry.register(datetime, _encode_temporal)
    registry.register(date, _encode_temporal)
    registry.register(np.ndarray, _encode_ndarray)
    registry.register(np.generic, _encode_numpy_scalar)
    registry.register(UUID, str)
    registry.register(PurePath, str)
    return registry.freeze()


DEFAULT_REGISTRY = build_default_registry()


__all__ = ["Encoder", "EncoderRegistry", "DEFAULT_REGISTRY", "build_default_registry"]
