"""Payload serialization and log line formatting."""

from .formatter import (
    DefaultTextRenderer,
    Direction,
    EventFormatter,
    StructuredRenderer,
    format_line,
    renderer_for,
)
from .registry import DEFAULT_REGISTRY, EncoderRegistry
from .serializer import DEFAULT_SERIALIZER, SerializationError, StructuredSerializer

__all__ = [
    "DEFAULT_REGISTRY",
    "DEFAULT_SERIALIZER",
    "DefaultTextRenderer",
    "Direction",
    "EncoderRegistry",
    "EventFormatter",
    "SerializationError",
    "StructuredRenderer",
    "StructuredSerializer",
    "format_line",
    "renderer_for",
]
