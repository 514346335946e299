"""
Module: billing_services.counterparty_locks
Responsibility:
    In-process mutual exclusion per counterparty, held only around the
    commit of a cash event.

Architecture position:
    Services -- stateful orchestration.  Used by the cash settlement module
    service; complements the database row lock taken by LedgerCommitter
    (``SELECT ... FOR UPDATE``), which is the cross-process guarantee.

Invariants enforced:
    - At most one commit per counterparty runs at a time in this process.
    - Commits for different counterparties never block each other.
    - Planning and validation run outside the lock.

Failure modes:
    - LockTimeoutError if the lock is not acquired within the timeout.
"""

from __future__ import annotations

import threading
from collections.abc import Iterator
from contextlib import contextmanager
from uuid import UUID

from billing_kernel.exceptions import LockTimeoutError
from billing_kernel.logging_config import get_logger

logger = get_logger("services.counterparty_locks")

DEFAULT_LOCK_TIMEOUT_SECONDS = 10.0


class CounterpartyLockRegistry:
    """Lazily created ``threading.Lock`` per counterparty id."""

    def __init__(self, timeout_seconds: float = DEFAULT_LOCK_TIMEOUT_SECONDS):
        self.timeout_seconds = timeout_seconds
        self._locks: dict[UUID, threading.Lock] = {}
        self._guard = threading.Lock()

    def _lock_for(self, counterparty_id: UUID) -> threading.Lock:
        with self._guard:
            lock = self._locks.get(counterparty_id)
            if lock is None:
                lock = threading.Lock()
                self._locks[counterparty_id] = lock
            return lock

    @contextmanager
    def hold(self, counterparty_id: UUID, timeout: float | None = None) -> Iterator[None]:
        """
        Hold the counterparty's lock for the duration of the block.

        Raises:
            LockTimeoutError: If the lock is not acquired within ``timeout``.
        """
        wait = self.timeout_seconds if timeout is None else timeout
        lock = self._lock_for(counterparty_id)
        if not lock.acquire(timeout=wait):
            logger.warning("counterparty_lock_timeout", extra={
                "counterparty_id": str(counterparty_id),
                "timeout_seconds": wait,
            })
            raise LockTimeoutError(str(counterparty_id), wait)
        logger.debug("counterparty_lock_acquired", extra={
            "counterparty_id": str(counterparty_id),
        })
        try:
            yield
        finally:
            lock.release()
            logger.debug("counterparty_lock_released", extra={
                "counterparty_id": str(counterparty_id),
            })

    def is_locked(self, counterparty_id: UUID) -> bool:
        with self._guard:
            lock = self._locks.get(counterparty_id)
        return lock is not None and lock.locked()


_default_registry = CounterpartyLockRegistry()


def default_lock_registry() -> CounterpartyLockRegistry:
    """Process-wide registry shared by services that are not given one."""
    return _default_registry
