"""In-flight suppression of duplicate pull request deliveries."""

from __future__ import annotations

import threading
from contextlib import contextmanager
from typing import Iterator, Set


class InFlightRegistry:
    """Process-local set of dedup keys currently being processed.

    Nothing is persisted: a restart forgets every key, and separate
    processes do not coordinate. The lock makes the check-and-set atomic
    even if callers run on more than one thread.
    """

    def __init__(self) -> None:
        self._keys: Set[str] = set()
        self._lock = threading.Lock()

    def try_acquire(self, key: str) -> bool:
        with self._lock:
            if key in self._keys:
                return False
            self._keys.add(key)
            return True

    def release(self, key: str) -> None:
        with self._lock:
            self._keys.discard(key)

    def __len__(self) -> int:
        with self._lock:
            return len(self._keys)

    @contextmanager
    def hold(self, key: str) -> Iterator[bool]:
        """Yield whether ``key`` was acquired; release it on exit only if it was."""

        acquired = self.try_acquire(key)
        try:
            yield acquired
        finally:
            if acquired:
                self.release(key)
