from __future__ import annotations

from typing import Iterable


class PacketFilter:
    """Predicate over packet kinds excluded from the packet log."""

    def __init__(self, ignored: Iterable[str] = ()):
        self._ignored = frozenset(ignored)

    def is_ignored(self, kind: str) -> bool:
        return kind in self._ignored


__all__ = ["PacketFilter"]
