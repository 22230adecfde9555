"""Packet helpers: kind resolution and a packet type for decoded JSON frames."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict


def packet_kind(packet: Any) -> str:
    """Return the kind used for filtering: ``packet.kind`` or the class name."""
    kind = getattr(packet, "kind", None)
    if isinstance(kind, str) and kind:
        return kind
    return type(packet).__name__


@dataclass
class JsonPacket:
    """A decoded JSON frame treated as a packet.

    The kind comes from the frame's ``kind`` or ``type`` field, falling back to
    ``"Unknown"``. Non-object frames are wrapped under ``value``.
    """

    body: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_message(cls, message: Any) -> "JsonPacket":
        if isinstance(message, dict):
            return cls(body=message)
        return cls(body={"value": message})

    @property
    def kind(self) -> str:
        for key in ("kind", "type"):
            value = self.body.get(key)
            if isinstance(value, str) and value:
                return value
        return "Unknown"

    def to_dict(self) -> Dict[str, Any]:
        return dict(self.body)

    def __str__(self) -> str:
        fields = ", ".join(f"{key}={value!r}" for key, value in self.body.items())
        return f"{self.kind}({fields})"


__all__ = ["JsonPacket", "packet_kind"]
