import logging
import threading
from contextlib import contextmanager
from typing import Hashable, Optional

from utils.errors import StoreTimeout

logger = logging.getLogger(__name__)


class KeyedLocks:
    """One lock per key, created on demand and dropped when nobody holds or waits on it.

    Callers on different keys never share a lock, so a teacher saving a whole
    roster only serializes edits to the same cell.
    """

    def __init__(self, name: str = "keyed"):
        self.name = name
        self._guard = threading.Lock()
        self._locks = {}  # key -> [lock, users]

    def _checkout(self, key: Hashable) -> threading.Lock:
        with self._guard:
            entry = self._locks.get(key)
            if entry is None:
                entry = [threading.Lock(), 0]
                self._locks[key] = entry
            entry[1] += 1
            return entry[0]

    def _release_entry(self, key: Hashable):
        with self._guard:
            entry = self._locks.get(key)
            if entry is None:
                return
            entry[1] -= 1
            if entry[1] <= 0:
                del self._locks[key]

    @contextmanager
    def hold(self, key: Hashable, timeout: Optional[float] = None):
        """Hold the lock for key; raises StoreTimeout if it is not acquired in time."""
        lock = self._checkout(key)
        acquired = lock.acquire(timeout=-1 if timeout is None else max(timeout, 0))
        if not acquired:
            self._release_entry(key)
            logger.warning(f"{self.name} lock for {key!r} not acquired within {timeout}s")
            raise StoreTimeout(f"Timed out waiting for {self.name} lock", key=str(key))
        try:
            yield
        finally:
            lock.release()
            self._release_entry(key)

    def __len__(self):
        with self._guard:
            return len(self._locks)
