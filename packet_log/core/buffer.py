from __future__ import annotations

import threading
from collections import deque
from typing import Iterable, List


class LineBuffer:
    """Unbounded line queue; append and drain are mutually exclusive."""

    def __init__(self) -> None:
        self._lines: deque[str] = deque()
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._lines)

    def append(self, line: str) -> None:
        with self._lock:
            self._lines.append(line)

    def extend(self, lines: Iterable[str]) -> None:
        with self._lock:
            self._lines.extend(lines)

    def drain_all(self) -> List[str]:
        """
        Remove and return every buffered line in append order.
        The buffer is empty afterwards.
        """
        with self._lock:
            drained = list(self._lines)
            self._lines.clear()
        return drained


__all__ = ["LineBuffer"]
