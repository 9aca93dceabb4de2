"""
Per-date locking primitives.

Two kinds of lock guard the date-keyed snapshot documents:

* ``DateLockManager`` is the processing lock. It has acquire-or-reject
  semantics: a second processing request for a date that is already being
  processed fails immediately with ``LockBusyError`` instead of queueing.
  Leases expire after ``ttl_seconds`` so a crashed task cannot wedge a date,
  and only the owner token returned by ``acquire`` can release the lease.

* ``KeyedMutex`` serializes the short read-modify-write cycles on one
  document. Unlike the processing lock it waits; it is held only while a
  snapshot is loaded, edited in memory and written back.

Both are in-process and keyed by string, so different dates never contend.
"""

import asyncio
import logging
import uuid
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import AsyncIterator, Callable, Dict, Optional

from prospect_dashboard.core.config import get_settings
from prospect_dashboard.core.exceptions import LockBusyError

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class LockLease:
    """A held processing lock."""
    resource: str
    token: str
    holder: str
    acquired_at: datetime
    expires_at: datetime

    def is_expired(self, now: datetime) -> bool:
        return now >= self.expires_at


class DateLockManager:
    """
    Acquire-or-reject lock table keyed by resource (a date string).

    Args:
        ttl_seconds: Lease lifetime; an expired lease is taken over by the
            next ``acquire``.
        clock: Injectable time source, used by tests.
    """

    def __init__(self, ttl_seconds: float = 300.0, clock: Callable[[], datetime] = _utcnow):
        self.ttl = timedelta(seconds=ttl_seconds)
        self._clock = clock
        self._leases: Dict[str, LockLease] = {}
        self._guard = asyncio.Lock()

    async def acquire(self, resource: str, holder: str = "processor") -> LockLease:
        """
        Take the lock for ``resource`` or fail immediately.

        Raises:
            LockBusyError: If a live lease for ``resource`` exists.
        """
        async with self._guard:
            now = self._clock()
            current = self._leases.get(resource)
            if current is not None and not current.is_expired(now):
                logger.warning(
                    f"Lock for {resource} rejected: held by {current.holder} until {current.expires_at.isoformat()}"
                )
                raise LockBusyError(resource, holder=current.holder, expires_at=current.expires_at)
            if current is not None:
                logger.warning(f"Taking over expired lock for {resource} from {current.holder}")

            lease = LockLease(
                resource=resource,
                token=uuid.uuid4().hex,
                holder=holder,
                acquired_at=now,
                expires_at=now + self.ttl,
            )
            self._leases[resource] = lease
            return lease

    async def release(self, lease: LockLease) -> bool:
        """
        Release ``lease`` if it still owns the lock.

        Returns:
            True if the lock was released, False if it had expired and been
            taken over (or was already released).
        """
        async with self._guard:
            current = self._leases.get(lease.resource)
            if current is None or current.token != lease.token:
                return False
            del self._leases[lease.resource]
            return True

    async def is_locked(self, resource: str) -> bool:
        async with self._guard:
            current = self._leases.get(resource)
            return current is not None and not current.is_expired(self._clock())

    async def owns(self, lease: LockLease) -> bool:
        """True while ``lease`` is the live lease of its resource."""
        async with self._guard:
            current = self._leases.get(lease.resource)
            return (
                current is not None
                and current.token == lease.token
                and not current.is_expired(self._clock())
            )


class KeyedMutex:
    """One ``asyncio.Lock`` per key, created on demand."""

    def __init__(self) -> None:
        self._locks: Dict[str, asyncio.Lock] = {}

    def _lock_for(self, key: str) -> asyncio.Lock:
        lock = self._locks.get(key)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[key] = lock
        return lock

    @asynccontextmanager
    async def locked(self, key: str) -> AsyncIterator[None]:
        async with self._lock_for(key):
            yield


# =============================================================================
# Process-wide Lock Manager
# =============================================================================

_lock_manager: Optional[DateLockManager] = None


def get_lock_manager() -> DateLockManager:
    """Return the process-wide processing lock manager."""
    global _lock_manager

    if _lock_manager is None:
        _lock_manager = DateLockManager(ttl_seconds=get_settings().lock_ttl_seconds)

    return _lock_manager


def reset_lock_manager() -> None:
    """Drop the process-wide lock manager (tests, shutdown)."""
    global _lock_manager
    _lock_manager = None
