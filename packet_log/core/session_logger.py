"""Per-session packet log: buffered line capture plus direct artifact writes."""

from __future__ import annotations

import io
import logging
import sys
import threading
from pathlib import Path
from typing import Any, Mapping, Optional, Union

import numpy as np
from PIL import Image

from ..config import Config
from ..models.packet import packet_kind
from ..models.session import ProxySession, SessionIdentity
from ..serialization.formatter import Direction, EventFormatter, renderer_for
from ..serialization.serializer import DEFAULT_SERIALIZER, StructuredSerializer
from ..utils.time_utils import CaptureClock
from .buffer import LineBuffer
from .packet_filter import PacketFilter
from .scheduler import FlushScheduler, ScheduledTask, get_shared_scheduler

logger = logging.getLogger(__name__)

LOG_FILE_NAME = "packets.log"

ImageLike = Union[Image.Image, np.ndarray]


class SessionLoggerError(Exception):
    """Raised when the output directory or an artifact cannot be written."""


class SessionLogger:
    """Capture packets of one proxied session into ``{sessions_dir}/{name}-{ts}``.

    ``log_packet`` is called on the hot path for every packet in either
    direction. Lines are buffered in memory and appended to ``packets.log``
    by the shared flush scheduler; console output, when enabled, is written
    immediately. Images and JSON documents are written straight to the
    session directory.
    """

    def __init__(
        self,
        config: Config,
        sessions_dir: Union[str, Path],
        display_name: str,
        timestamp: int,
        packet_filter: Optional[PacketFilter] = None,
        scheduler: Optional[FlushScheduler] = None,
        serializer: Optional[StructuredSerializer] = None,
    ):
        self.config = config
        self.identity = SessionIdentity(display_name, timestamp)
        self.data_path = self.identity.resolve(Path(sessions_dir))
        self.log_path = self.data_path / LOG_FILE_NAME

        settings = config.packet_logging
        self.packet_filter = packet_filter or PacketFilter(settings.ignored_packets)
        self.serializer = serializer or DEFAULT_SERIALIZER
        self.formatter = EventFormatter(renderer_for(settings.log_to_json, self.serializer))

        self._scheduler = scheduler
        self._buffer = LineBuffer()
        self._flush_lock = threading.Lock()
        self._flush_task: Optional[ScheduledTask] = None
        self._started = False
        self._closed = False

    @property
    def started(self) -> bool:
        return self._started

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def pending_lines(self) -> int:
        return len(self._buffer)

    def __enter__(self) -> "SessionLogger":
        self.start()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def start(self) -> None:
        settings = self.config.packet_logging
        if self._started or not settings.logging_packets:
            return

        if settings.log_to.file:
            logger.debug("Packets will be logged under %s", self.log_path)
            try:
                self.data_path.mkdir(parents=True, exist_ok=True)
            except OSError as exc:
                raise SessionLoggerError(f"Cannot create session directory {self.data_path}") from exc

        scheduler = self._scheduler or get_shared_scheduler()
        self._flush_task = scheduler.schedule_at_fixed_rate(
            self.flush,
            settings.flush_interval_s,
            settings.flush_interval_s,
            name=f"flush-{self.identity.directory_name}",
            run_on_shutdown=True,
        )
        self._started = True

    def log_packet(self, session: ProxySession, packet: Any, upstream: bool) -> None:
        """Capture one packet. Packets logged after ``close()`` are dropped."""
        if self.packet_filter.is_ignored(packet_kind(packet)):
            return

        if session.is_logging and logger.isEnabledFor(logging.DEBUG):
            logger.debug(
                "%s %s: %s", Direction.from_upstream(upstream).value, session.socket_address, packet
            )

        settings = self.config.packet_logging
        if not settings.logging_packets or self._closed:
            return

        line = self.formatter.format(CaptureClock.now(), upstream, packet)
        self._buffer.append(line)

        if settings.log_to.console:
            print(line, file=sys.stdout, flush=True)

    def save_image(self, name: str, image: ImageLike) -> Path:
        path = self.data_path / f"{name}.png"
        if isinstance(image, np.ndarray):
            image = Image.fromarray(image)
        encoded = io.BytesIO()
        try:
            image.save(encoded, format="PNG")
        except (OSError, ValueError) as exc:
            raise SessionLoggerError(f"Cannot encode image {name} as PNG") from exc
        try:
            path.write_bytes(encoded.getvalue())
        except OSError as exc:
            raise SessionLoggerError(f"Cannot write image {path}") from exc
        return path

    def save_json(self, name: str, document: Union[Mapping[str, Any], Any]) -> Path:
        """Write ``document`` pretty-printed to ``{name}.json``, replacing any existing file."""
        encoded = self.serializer.serialize(document)
        return self._write_json(name, encoded.encode("utf-8"))

    def save_json_bytes(self, name: str, data: bytes) -> Path:
        """Write already-encoded JSON to ``{name}.json`` verbatim."""
        return self._write_json(name, bytes(data))

    def flush(self) -> int:
        """Append every buffered line to ``packets.log``; returns lines written.

        A write failure is logged and that batch is dropped. Flushes of one
        logger never overlap, so batches reach the file in capture order.
        """
        with self._flush_lock:
            lines = self._buffer.drain_all()
            if not lines or not self.config.packet_logging.log_to.file:
                return 0

            try:
                with self.log_path.open("a", encoding="utf-8") as handle:
                    for line in lines:
                        handle.write(line)
                        handle.write("\n")
            except OSError:
                logger.exception("Unable to flush packet log")
                return 0
            return len(lines)

    def close(self) -> None:
        """Stop scheduled flushing and write whatever is still buffered."""
        if self._closed:
            return
        self._closed = True
        if self._flush_task is not None:
            self._flush_task.cancel()
            self._flush_task = None
        if self._started:
            self.flush()

    def _write_json(self, name: str, data: bytes) -> Path:
        path = self.data_path / f"{name}.json"
        try:
            path.write_bytes(data)
        except OSError as exc:
            raise SessionLoggerError(f"Cannot write document {path}") from exc
        return path


__all__ = ["SessionLogger", "SessionLoggerError", "LOG_FILE_NAME"]
