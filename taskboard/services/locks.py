from __future__ import annotations

import threading
from collections.abc import Iterator
from contextlib import contextmanager


class BoardLocks:
    """One exclusive lock per board, created on first use."""

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._locks: dict[int, threading.Lock] = {}

    def lock_for(self, board_id: int) -> threading.Lock:
        with self._guard:
            lock = self._locks.get(board_id)
            if lock is None:
                lock = threading.Lock()
                self._locks[board_id] = lock
            return lock

    @contextmanager
    def hold(self, board_id: int) -> Iterator[None]:
        lock = self.lock_for(board_id)
        with lock:
            yield
