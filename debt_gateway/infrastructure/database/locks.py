"""In-process mutual exclusion keyed by entity id"""

import threading
from contextlib import contextmanager
from typing import Dict, Iterator


class KeyedLockRegistry:
    """
    Hands out one lock per key so operations on the same debt run one at a time.

    A key's lock lives only while someone holds or waits for it; the last
    one out removes it, so the registry stays as large as the set of debts
    currently being worked on.
    """

    def __init__(self):
        self._guard = threading.Lock()
        self._locks: Dict[str, threading.Lock] = {}
        self._users: Dict[str, int] = {}

    def _acquire_entry(self, key: str) -> threading.Lock:
        with self._guard:
            lock = self._locks.get(key)
            if lock is None:
                lock = threading.Lock()
                self._locks[key] = lock
            self._users[key] = self._users.get(key, 0) + 1
            return lock

    def _release_entry(self, key: str) -> None:
        with self._guard:
            remaining = self._users[key] - 1
            if remaining:
                self._users[key] = remaining
            else:
                del self._users[key]
                del self._locks[key]

    @contextmanager
    def hold(self, key: str) -> Iterator[None]:
        lock = self._acquire_entry(key)
        try:
            with lock:
                yield
        finally:
            self._release_entry(key)

    def __len__(self) -> int:
        return len(self._locks)


def debt_key(debt_id: int) -> str:
    return f"debt:{debt_id}"


# Shared by every request handled by this process
debt_locks = KeyedLockRegistry()
