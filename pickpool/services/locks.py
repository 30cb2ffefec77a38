"""
Per-key mutual exclusion for recomputes

PostgreSQL deployments take a transaction-scoped advisory lock, so the lock
is shared by every worker process and released on commit or rollback. Other
engines fall back to an in-process lock per key.
"""

import hashlib
import logging
import threading
from contextlib import contextmanager

from sqlalchemy import text

from pickpool import db

logger = logging.getLogger(__name__)


def advisory_key(name):
    """Stable signed 64-bit key for pg_advisory_xact_lock"""
    digest = hashlib.blake2b(name.encode("utf-8"), digest_size=8).digest()
    return int.from_bytes(digest, "big", signed=True)


class KeyLockRegistry:
    """
    Hands out one lock per key name. Local locks are reference counted and
    dropped once no thread holds or waits on them.
    """

    def __init__(self):
        self._locks = {}  # name -> [RLock, users]
        self._guard = threading.Lock()

    @property
    def tracked_names(self):
        with self._guard:
            return sorted(self._locks)

    def _checkout(self, name):
        with self._guard:
            entry = self._locks.get(name)
            if entry is None:
                entry = [threading.RLock(), 0]
                self._locks[name] = entry
            entry[1] += 1
            return entry[0]

    def _checkin(self, name):
        with self._guard:
            entry = self._locks[name]
            entry[1] -= 1
            if entry[1] == 0:
                del self._locks[name]

    @staticmethod
    def _uses_advisory_locks():
        return db.engine.dialect.name == "postgresql"

    @contextmanager
    def hold(self, name):
        """
        Hold the lock for name for the duration of the block.

        With advisory locks the lock lives until the surrounding transaction
        ends, so callers commit inside the block.
        """
        if self._uses_advisory_locks():
            db.session.execute(
                text("SELECT pg_advisory_xact_lock(:key)"), {"key": advisory_key(name)}
            )
            logger.debug(f"Advisory lock acquired: {name}")
            yield
            return

        lock = self._checkout(name)
        try:
            with lock:
                logger.debug(f"Local lock acquired: {name}")
                yield
        finally:
            self._checkin(name)


key_locks = KeyLockRegistry()
