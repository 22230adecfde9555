"""Value types and collaborator protocols used by the packet logger."""

from .packet import JsonPacket, packet_kind
from .session import ProxySession, SessionIdentity
from .vector import Vector3f, Vector3i

__all__ = [
    "JsonPacket",
    "ProxySession",
    "SessionIdentity",
    "Vector3f",
    "Vector3i",
    "packet_kind",
]
