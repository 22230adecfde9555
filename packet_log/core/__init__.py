"""Core packet logging: buffer, shared flush scheduler, session logger."""

from .buffer import LineBuffer
from .packet_filter import PacketFilter
from .scheduler import FlushScheduler, ScheduledTask, get_shared_scheduler, shutdown_shared_scheduler
from .session_logger import LOG_FILE_NAME, SessionLogger, SessionLoggerError

__all__ = [
    "FlushScheduler",
    "LOG_FILE_NAME",
    "LineBuffer",
    "PacketFilter",
    "ScheduledTask",
    "SessionLogger",
    "SessionLoggerError",
    "get_shared_scheduler",
    "shutdown_shared_scheduler",
]
