# src/lsm/guard.py: Per-service mutual exclusion.
# The health monitor and the restart scheduler share one ServiceGuard so that
# at most one of them runs commands for a given service at any time. Acquiring
# never blocks: a caller that finds the service busy skips its work.

import threading
from contextlib import contextmanager
from typing import Dict, Iterator

class ServiceGuard:
    def __init__(self):
        self._lock = threading.Lock()
        self._locks: Dict[str, threading.Lock] = {}

    def _lock_for(self, name: str) -> threading.Lock:
        with self._lock:
            return self._locks.setdefault(name, threading.Lock())

    @contextmanager
    def hold(self, name: str) -> Iterator[bool]:
        """
        Try to take exclusive use of a service.

        Yields True if the guard was taken (and releases it on exit), False if
        another unit already holds it.
        """
        lock = self._lock_for(name)
        acquired = lock.acquire(blocking=False)
        try:
            yield acquired
        finally:
            if acquired:
                lock.release()
