from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any, Protocol, runtime_checkable


@runtime_checkable
class ProxySession(Protocol):
    """What the logger needs from a proxied connection."""

    @property
    def is_logging(self) -> bool:
        """True when fine-grained tracing was requested for this session."""
        ...

    @property
    def socket_address(self) -> Any:
        ...


@dataclass(frozen=True)
class SessionIdentity:
    display_name: str
    timestamp: int

    @property
    def directory_name(self) -> str:
        return f"{self.display_name}-{self.timestamp}"

    def resolve(self, sessions_dir: Path) -> Path:
        return Path(sessions_dir) / self.directory_name


__all__ = ["ProxySession", "SessionIdentity"]
