from __future__ import annotations

import logging
import threading

from sqlalchemy import text

logger = logging.getLogger(__name__)


class InMemoryLock:
    """Process-local, non-reentrant named lock with try-acquire semantics."""

    def __init__(self) -> None:
        self._locks: dict[int, threading.Lock] = {}
        self._guard = threading.Lock()

    def _lock_for(self, key: int) -> threading.Lock:
        with self._guard:
            lock = self._locks.get(key)
            if lock is None:
                lock = threading.Lock()
                self._locks[key] = lock
            return lock

    def try_acquire(self, key: int) -> bool:
        return self._lock_for(key).acquire(blocking=False)

    def release(self, key: int) -> None:
        self._lock_for(key).release()


class PostgresAdvisoryLock:
    """Session-scoped pg advisory lock.

    pg advisory locks belong to the database session that took them, so each
    held key keeps its own connection open until release.
    """

    def __init__(self, engine) -> None:
        self._engine = engine
        self._held: dict[int, object] = {}
        self._guard = threading.Lock()

    def try_acquire(self, key: int) -> bool:
        with self._guard:
            if key in self._held:
                return False
            conn = self._engine.connect()
            try:
                acquired = bool(conn.execute(text("SELECT pg_try_advisory_lock(:key)"), {"key": key}).scalar())
            except Exception:
                conn.close()
                raise
            if not acquired:
                conn.close()
                return False
            self._held[key] = conn
            return True

    def release(self, key: int) -> None:
        with self._guard:
            conn = self._held.pop(key, None)
        if conn is None:
            logger.warning("[LOCK] release called for key %s that is not held", key)
            return
        try:
            conn.execute(text("SELECT pg_advisory_unlock(:key)"), {"key": key})
        finally:
            conn.close()
