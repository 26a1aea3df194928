"""Per-key mutual exclusion for the sync route handlers (which run in a threadpool)."""
import threading
from collections.abc import Iterator
from contextlib import contextmanager


class KeyedLocks:
    """
    One lock per key, created on first use and dropped once nobody holds
    or waits for it, so finished sessions don't pile up locks.

    Only serializes within one process. Running several workers against the
    same database needs a store-level guard instead.
    """

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._locks: dict[str, threading.Lock] = {}
        self._users: dict[str, int] = {}

    @contextmanager
    def hold(self, key: str) -> Iterator[None]:
        with self._guard:
            lock = self._locks.setdefault(key, threading.Lock())
            self._users[key] = self._users.get(key, 0) + 1
        lock.acquire()
        try:
            yield
        finally:
            lock.release()
            with self._guard:
                self._users[key] -= 1
                if self._users[key] == 0:
                    del self._users[key]
                    del self._locks[key]

    def __len__(self) -> int:
        with self._guard:
            return len(self._locks)


session_locks = KeyedLocks()
owner_locks = KeyedLocks()
