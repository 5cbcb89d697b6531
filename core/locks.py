# core/locks.py
"""
Per-key mutual exclusion for course offering operations.

Operations on the same course offering (ingest, calculate, publish, finalize)
serialize through one lock; different offerings never contend.
"""

from __future__ import annotations
import logging
import threading
from contextlib import contextmanager
from typing import Dict, Hashable, Iterator, Optional, Type

logger = logging.getLogger(__name__)


class KeyedLocks:
    """Lazily created lock per key."""

    def __init__(self):
        self._guard = threading.Lock()
        self._locks: Dict[Hashable, threading.Lock] = {}

    def _lock_for(self, key: Hashable) -> threading.Lock:
        with self._guard:
            lock = self._locks.get(key)
            if lock is None:
                lock = threading.Lock()
                self._locks[key] = lock
            return lock

    def is_locked(self, key: Hashable) -> bool:
        return self._lock_for(key).locked()

    @contextmanager
    def hold(self, key: Hashable, wait_seconds: float = 0.0,
             busy_error: Optional[Type[Exception]] = None) -> Iterator[None]:
        """
        Acquire the lock for ``key``.

        With ``wait_seconds`` of 0 the attempt is non-blocking. When the lock
        cannot be taken in time, ``busy_error(key)`` is raised (RuntimeError
        when no error type is given).
        """
        lock = self._lock_for(key)
        if wait_seconds and wait_seconds > 0:
            acquired = lock.acquire(timeout=wait_seconds)
        else:
            acquired = lock.acquire(blocking=False)
        if not acquired:
            logger.warning(f"Lock busy for {key!r}")
            if busy_error is None:
                raise RuntimeError(f"Lock busy for {key!r}")
            raise busy_error(key)
        try:
            yield
        finally:
            lock.release()
