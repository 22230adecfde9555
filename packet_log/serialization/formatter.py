"""Render one packet log line: ``[HH:MM:SS:mmm] [DIRECTION] - payload``."""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any, Optional, Protocol

from ..utils.time_utils import format_capture_time
from .serializer import DEFAULT_SERIALIZER, StructuredSerializer

LOG_FORMAT = "[%s] [%s] - %s"


class Direction(str, Enum):
    SERVER_BOUND = "SERVER BOUND"
    CLIENT_BOUND = "CLIENT BOUND"

    @classmethod
    def from_upstream(cls, upstream: bool) -> "Direction":
        return cls.SERVER_BOUND if upstream else cls.CLIENT_BOUND


class PayloadRenderer(Protocol):
    def render(self, payload: Any) -> str:
        ...


class DefaultTextRenderer:
    """Embed the payload's own text form."""

    def render(self, payload: Any) -> str:
        return str(payload)


class StructuredRenderer:
    """Embed the payload as pretty-printed JSON."""

    def __init__(self, serializer: Optional[StructuredSerializer] = None):
        self.serializer = serializer or DEFAULT_SERIALIZER

    def render(self, payload: Any) -> str:
        return self.serializer.serialize(payload)


def renderer_for(use_structured: bool, serializer: Optional[StructuredSerializer] = None) -> PayloadRenderer:
    if use_structured:
        return StructuredRenderer(serializer)
    return DefaultTextRenderer()


class EventFormatter:
    """Stateless line formatter around one rendering strategy."""

    def __init__(self, renderer: PayloadRenderer):
        self.renderer = renderer

    def format(self, timestamp: datetime, is_upstream: bool, payload: Any) -> str:
        return LOG_FORMAT % (
            format_capture_time(timestamp),
            Direction.from_upstream(is_upstream).value,
            self.renderer.render(payload),
        )


def format_line(timestamp: datetime, is_upstream: bool, payload: Any, use_structured: bool) -> str:
    return EventFormatter(renderer_for(use_structured)).format(timestamp, is_upstream, payload)


__all__ = [
    "Direction",
    "DefaultTextRenderer",
    "EventFormatter",
    "LOG_FORMAT",
    "PayloadRenderer",
    "StructuredRenderer",
    "format_line",
    "renderer_for",
]
