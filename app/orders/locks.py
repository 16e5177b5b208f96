"""
Concurrency control utilities for order operations.

This module provides two complementary concurrency mechanisms:

1. **Distributed Locks** (DistributedLock)
   - Redis-based mutual exclusion across processes/servers
   - TTL prevents deadlocks from crashed processes
   - Context manager support for clean usage
   - Use for: serializing everything that touches one order reference
     (callbacks, admin mutations, the reaper)

2. **Row Locks with Version Check** (check_version)
   - select_for_update() inside the current transaction
   - Optional optimistic version check for callers that read first and
     write later (admin status updates)

Usage:

    from orders.locks import DistributedLock, check_version

    with DistributedLock(f"order:{reference}", ttl=30):
        with transaction.atomic():
            order = check_version(Order, expected_version=None, reference=reference)
            order.mark_paid()
            order.save()

Note:
    The Order Store (orders.services.order_store) combines both; services
    should go through it rather than using these primitives directly.
"""

from __future__ import annotations

import time
import uuid as uuid_module
from typing import TYPE_CHECKING, TypeVar

from django.db import models

from django_redis import get_redis_connection

from core.exceptions import NotFoundError
from orders.exceptions import LockAcquisitionError, StaleRecordError

if TYPE_CHECKING:
    from typing import Any

    from redis import Redis

# Type variable for model classes
T = TypeVar("T", bound=models.Model)


# =============================================================================
# Distributed Locks
# =============================================================================


class DistributedLock:
    """
    Redis-based distributed lock with TTL.

    Features:
        - Automatic TTL prevents deadlocks from crashed processes
        - Token-based ownership prevents accidental release by other processes
        - Blocking and non-blocking acquisition modes
        - Context manager support for clean usage

    Example:
        with DistributedLock("order:MF-1700000000-AB12CD", ttl=30):
            apply_callback()

        lock = DistributedLock("order:MF-1700000000-AB12CD", blocking=False)
        try:
            with lock:
                capture()
        except LockAcquisitionError:
            # Another worker is already handling this order
            ...

    Args:
        key: Lock identifier (will be prefixed with "lock:")
        ttl: Lock TTL in seconds (auto-releases after this time)
        blocking: If True, acquire() waits until lock is available
        timeout: Maximum wait time in seconds (only if blocking=True)
    """

    # Lua script for atomic check-and-delete (release)
    RELEASE_SCRIPT = """
    if redis.call("get", KEYS[1]) == ARGV[1] then
        return redis.call("del", KEYS[1])
    else
        return 0
    end
    """

    RETRY_INTERVAL_SECONDS = 0.05

    def __init__(
        self,
        key: str,
        ttl: int = 30,
        blocking: bool = True,
        timeout: float = 10.0,
    ) -> None:
        self.key = f"lock:{key}"
        self.ttl = ttl
        self.blocking = blocking
        self.timeout = timeout
        self._token: str | None = None
        self._redis: Redis | None = None

    def _get_redis(self) -> Redis:
        """Get Redis connection (lazy initialization)."""
        if self._redis is None:
            self._redis = get_redis_connection("default")
        return self._redis

    def acquire(self) -> bool:
        """
        Attempt to acquire the lock.

        Returns:
            True if lock was acquired

        Raises:
            LockAcquisitionError: If lock couldn't be acquired
        """
        token = str(uuid_module.uuid4())
        redis = self._get_redis()

        if self.blocking:
            end_time = time.monotonic() + self.timeout
            while time.monotonic() < end_time:
                if self._try_acquire(redis, token):
                    self._token = token
                    return True
                time.sleep(self.RETRY_INTERVAL_SECONDS)

            raise LockAcquisitionError(
                f"Failed to acquire lock '{self.key}' within {self.timeout}s",
                details={"key": self.key, "timeout": self.timeout},
            )

        if not self._try_acquire(redis, token):
            raise LockAcquisitionError(
                f"Lock '{self.key}' is already held",
                details={"key": self.key},
            )
        self._token = token
        return True

    def _try_acquire(self, redis: Redis, token: str) -> bool:
        """Try once to acquire the lock."""
        return bool(redis.set(self.key, token, nx=True, ex=self.ttl))

    def release(self) -> bool:
        """
        Release the lock if we hold it.

        Returns:
            True if lock was released, False if we didn't hold it

        Note:
            Safe to call multiple times. Uses atomic Lua script to
            ensure we only release if we own the lock.
        """
        if self._token is None:
            return False

        redis = self._get_redis()
        result = redis.eval(self.RELEASE_SCRIPT, 1, self.key, self._token)
        self._token = None
        return bool(result)

    def __enter__(self) -> DistributedLock:
        self.acquire()
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: Any,
    ) -> bool:
        self.release()
        return False


# =============================================================================
# Row Locks
# =============================================================================


def check_version(
    model_class: type[T],
    expected_version: int | None = None,
    **lookup: Any,
) -> T:
    """
    Lock a record for update and optionally verify its version.

    Args:
        model_class: Django model class (must have 'version' field)
        expected_version: Version the caller read earlier, or None to skip
            the optimistic check
        **lookup: Field lookups identifying exactly one record

    Returns:
        The row-locked model instance

    Raises:
        NotFoundError: If record doesn't exist
        StaleRecordError: If version doesn't match (concurrent modification)

    Note:
        Must be called within a transaction. The row lock is held until the
        transaction commits or rolls back.
    """
    model_name = model_class.__name__
    instance = model_class.objects.select_for_update().filter(**lookup).first()

    if instance is None:
        raise NotFoundError(
            f"{model_name} not found",
            error_code=f"{model_name.upper()}_NOT_FOUND",
            details={key: str(value) for key, value in lookup.items()},
        )

    if expected_version is not None and instance.version != expected_version:
        raise StaleRecordError(
            f"{model_name} has been modified "
            f"(expected version {expected_version}, current {instance.version})",
            details={
                **{key: str(value) for key, value in lookup.items()},
                "expected_version": expected_version,
                "current_version": instance.version,
            },
        )

    return instance


__all__ = [
    "DistributedLock",
    "check_version",
]
