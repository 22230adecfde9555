"""Per-session packet logging for the proxy."""

from .config import Config, ConfigError, load_config
from .core import PacketFilter, SessionLogger, SessionLoggerError
from .models import JsonPacket, Vector3i
from .serialization import SerializationError, StructuredSerializer

__all__ = [
    "Config",
    "ConfigError",
    "JsonPacket",
    "PacketFilter",
    "SerializationError",
    "SessionLogger",
    "SessionLoggerError",
    "StructuredSerializer",
    "Vector3i",
    "load_config",
]
