"""Compound vector values carried inside packets."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class Vector3i:
    """Integer block position."""

    x: int
    y: int
    z: int

    def __str__(self) -> str:
        return f"({self.x}, {self.y}, {self.z})"


@dataclass(frozen=True)
class Vector3f:
    x: float
    y: float
    z: float

    def __str__(self) -> str:
        return f"({self.x}, {self.y}, {self.z})"


__all__ = ["Vector3i", "Vector3f"]
