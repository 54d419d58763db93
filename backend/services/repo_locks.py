"""Per-repository write locks.

Mutating operations on one repository directory (clone, save, pull,
checkout, reset, delete, file writes) run one at a time. Locks are keyed by
canonical path and reference-counted, so the registry only holds entries
for repositories that are currently in use.

Waiting happens on the event loop, never on a worker thread: a request
queued behind a busy repository does not take a slot in the worker pool.
The lock itself is a plain ``threading.Lock`` so the worker that ran the
mutation can release it whichever loop or thread acquired it.
"""

import asyncio
import os
import threading
from typing import Callable

from utils.errors import OperationTimeout

LOCK_POLL_INTERVAL = 0.02


class _LockEntry:
    __slots__ = ("lock", "holders")

    def __init__(self) -> None:
        self.lock = threading.Lock()
        self.holders = 0


class RepositoryLocks:
    """Registry of reference-counted locks, one per repository path."""

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._entries: dict[str, _LockEntry] = {}

    @staticmethod
    def _key(path) -> str:
        return os.path.normcase(os.path.realpath(str(path)))

    def _enter(self, key: str) -> _LockEntry:
        with self._guard:
            entry = self._entries.get(key)
            if entry is None:
                entry = self._entries[key] = _LockEntry()
            entry.holders += 1
            return entry

    def _leave(self, key: str, entry: _LockEntry) -> None:
        with self._guard:
            entry.holders -= 1
            if entry.holders == 0:
                del self._entries[key]

    async def acquire(self, path, timeout: float | None = None) -> Callable[[], None]:
        """
        Wait for the lock on ``path`` without blocking the event loop.

        Returns:
            Callable: Releases the lock; safe to call from any thread, and
            more than once.

        Raises:
            OperationTimeout: If the lock is still held after ``timeout``
                seconds. Nothing is held when this is raised.
        """
        key = self._key(path)
        entry = self._enter(key)
        loop = asyncio.get_running_loop()
        deadline = None if timeout is None else loop.time() + timeout
        try:
            while not entry.lock.acquire(blocking=False):
                if deadline is not None and loop.time() >= deadline:
                    raise OperationTimeout(
                        "Repository is busy.",
                        details=f"Another operation held {path} for more than {timeout} seconds",
                    )
                await asyncio.sleep(LOCK_POLL_INTERVAL)
        except BaseException:
            self._leave(key, entry)
            raise

        released = threading.Event()

        def release() -> None:
            with self._guard:
                if released.is_set():
                    return
                released.set()
            entry.lock.release()
            self._leave(key, entry)

        return release

    def is_locked(self, path) -> bool:
        with self._guard:
            entry = self._entries.get(self._key(path))
        return entry is not None and entry.lock.locked()

    def active_count(self) -> int:
        """Number of repositories with a holder or waiter."""
        with self._guard:
            return len(self._entries)
