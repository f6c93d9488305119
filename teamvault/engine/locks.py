"""
Resource-scoped locks for structural mutations.

Keys look like ``file:12`` / ``folder:3`` / ``team:7``. ``hold()`` acquires
all requested keys in sorted order so two operations touching overlapping
resources can never deadlock each other.  A key's lock exists only while
some thread holds or waits for it.
"""

from __future__ import annotations

import threading
from contextlib import contextmanager
from typing import Dict, Generator, Iterable


def file_key(file_id: int) -> str:
    return f"file:{file_id}"


def folder_key(folder_id: int) -> str:
    return f"folder:{folder_id}"


def team_key(team_id: int) -> str:
    return f"team:{team_id}"


# Serializes account creation; the first account becomes ADMIN
REGISTRATION_KEY = "account:registration"


class LockRegistry:
    """Process-wide registry of re-entrant locks keyed by resource."""

    def __init__(self):
        self._guard = threading.Lock()
        self._locks: Dict[str, threading.RLock] = {}
        self._users: Dict[str, int] = {}

    def _checkout(self, key: str) -> threading.RLock:
        with self._guard:
            lock = self._locks.get(key)
            if lock is None:
                lock = self._locks[key] = threading.RLock()
            self._users[key] = self._users.get(key, 0) + 1
            return lock

    def _checkin(self, key: str) -> None:
        with self._guard:
            self._users[key] -= 1
            if self._users[key] == 0:
                del self._users[key]
                del self._locks[key]

    @contextmanager
    def hold(self, keys: Iterable[str]) -> Generator[None, None, None]:
        ordered = sorted(set(keys))
        checked_out = []
        acquired = []
        try:
            for key in ordered:
                lock = self._checkout(key)
                checked_out.append(key)
                lock.acquire()
                acquired.append(lock)
            yield
        finally:
            for lock in reversed(acquired):
                lock.release()
            for key in reversed(checked_out):
                self._checkin(key)

    def __len__(self) -> int:
        with self._guard:
            return len(self._locks)
