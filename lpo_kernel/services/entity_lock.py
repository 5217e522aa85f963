"""
EntityLockRegistry -- bounded per-entity mutual exclusion.

Responsibility:
    Serializes mutations of one order (or one asset) inside this process.
    Two approvers racing on the same order, or two clerks receiving against
    the same line, are executed one after the other; the loser then sees the
    winner's committed state and fails with a definite error.

Architecture position:
    Kernel > Services.  Used by ``lpo_services.lifecycle`` around every
    mutating operation.  Database row locks and row versions provide the
    same guarantee across processes.

Invariants enforced:
    - Locks are keyed per entity; different keys never contend.
    - Acquisition waits at most ``timeout`` seconds, then raises
      ``LockTimeoutError``.  No operation blocks indefinitely.
    - A key has an entry only while a thread holds or waits for it.
"""

import threading
from contextlib import contextmanager
from typing import Generator

from lpo_kernel.exceptions import LockTimeoutError
from lpo_kernel.logging_config import get_logger

logger = get_logger("services.entity_lock")


class _Entry:
    """A lock plus the number of threads holding or waiting for it."""

    __slots__ = ("lock", "users")

    def __init__(self) -> None:
        self.lock = threading.Lock()
        self.users = 0


class EntityLockRegistry:
    """Registry of one ``threading.Lock`` per entity key.

    An entry lives only while some thread holds or waits for its key, so
    the registry does not grow with every order the process has handled.
    """

    def __init__(self, default_timeout: float = 5.0):
        self._default_timeout = default_timeout
        self._guard = threading.Lock()
        self._entries: dict[str, _Entry] = {}

    @staticmethod
    def order_key(order_id) -> str:
        return f"order:{order_id}"

    @staticmethod
    def asset_key(asset_id) -> str:
        return f"asset:{asset_id}"

    def _checkout(self, key: str) -> _Entry:
        with self._guard:
            entry = self._entries.get(key)
            if entry is None:
                entry = _Entry()
                self._entries[key] = entry
            entry.users += 1
            return entry

    def _checkin(self, key: str, entry: _Entry) -> None:
        with self._guard:
            entry.users -= 1
            if entry.users == 0:
                del self._entries[key]

    @contextmanager
    def hold(self, key: str, timeout: float | None = None) -> Generator[None, None, None]:
        """Hold the lock for ``key`` for the duration of the block.

        Raises:
            LockTimeoutError: the lock was not acquired within ``timeout``.
        """
        wait = self._default_timeout if timeout is None else timeout
        entry = self._checkout(key)
        try:
            if not entry.lock.acquire(timeout=wait):
                logger.warning(
                    "entity_lock_timeout",
                    extra={"lock_key": key, "timeout_seconds": wait},
                )
                raise LockTimeoutError(key, wait)
            try:
                yield
            finally:
                entry.lock.release()
        finally:
            self._checkin(key, entry)

    def is_held(self, key: str) -> bool:
        with self._guard:
            entry = self._entries.get(key)
            return entry is not None and entry.lock.locked()

    def active_count(self) -> int:
        """Number of keys currently held or waited on."""
        with self._guard:
            return len(self._entries)
