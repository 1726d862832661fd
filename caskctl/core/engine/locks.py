"""
Per-identifier locks.

Installing or removing one package is serialized; different packages
proceed in parallel, each under its own lock.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Iterator
from contextlib import contextmanager

logger = logging.getLogger(__name__)


class LockRegistry:
    """Lazily-created ``threading.Lock`` per package identifier."""

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._locks: dict[str, threading.Lock] = {}

    def _lock_for(self, identifier: str) -> threading.Lock:
        with self._guard:
            lock = self._locks.get(identifier)
            if lock is None:
                lock = self._locks[identifier] = threading.Lock()
            return lock

    @contextmanager
    def lock(self, identifier: str) -> Iterator[None]:
        """Hold the lock for ``identifier`` for the duration of the block."""
        lock = self._lock_for(identifier)
        if lock.locked():
            logger.info("Waiting for in-flight operation on %s", identifier)
        with lock:
            yield

    def held(self, identifier: str) -> bool:
        with self._guard:
            lock = self._locks.get(identifier)
        return lock is not None and lock.locked()

    def __len__(self) -> int:
        with self._guard:
            return len(self._locks)
