"""
RedisDistributedLock -- cluster-wide exclusive lock with TTL.

Responsibility:
    Guarantees that at most one service instance runs a given batch at a
    time.  The lock is a Redis key whose value is the holder id; it expires
    after the TTL so a crashed holder cannot starve later runs forever.

Architecture position:
    Kernel > Services -- imperative shell infrastructure.
    Used by ``commission_batch.services.calculation_engine``.

Invariants enforced:
    - Acquisition is ``SET key holder NX PX ttl``: fails fast when held,
      never queues or blocks.
    - Release deletes the key only while it still holds this holder's id
      (WATCH / MULTI check-and-delete), so a holder whose TTL lapsed cannot
      release a lock that another instance has since taken.
    - ``hold()`` releases on every exit path of the guarded body.

Failure modes:
    - BatchAlreadyRunningError from ``hold()`` when the lock is held.
    - redis.exceptions.ConnectionError propagates: without the lock store
      no batch may run.
"""

from collections.abc import Iterator
from contextlib import contextmanager
from datetime import timedelta

import redis
from redis.exceptions import WatchError

from commission_kernel.exceptions import BatchAlreadyRunningError
from commission_kernel.logging_config import get_logger

logger = get_logger("services.distributed_lock")


class RedisDistributedLock:
    """
    Exclusive TTL lock on a Redis key.

    Contract:
        - ``try_acquire()`` returns True when this holder now owns the key.
        - ``release()`` returns True when this holder's key was deleted.
        - ``hold()`` is the scoped form used around a batch run.
    """

    def __init__(self, client: redis.Redis):
        self._redis = client

    def try_acquire(self, key: str, holder_id: str, ttl: timedelta) -> bool:
        ttl_ms = max(1, int(ttl.total_seconds() * 1000))
        acquired = bool(self._redis.set(key, holder_id, nx=True, px=ttl_ms))
        logger.info(
            "lock_acquired" if acquired else "lock_busy",
            extra={"lock_key": key, "holder_id": holder_id, "ttl_ms": ttl_ms},
        )
        return acquired

    def release(self, key: str, holder_id: str) -> bool:
        with self._redis.pipeline() as pipe:
            try:
                pipe.watch(key)
                current = pipe.get(key)
                if _as_text(current) != holder_id:
                    pipe.unwatch()
                    logger.warning(
                        "lock_release_not_owner",
                        extra={
                            "lock_key": key,
                            "holder_id": holder_id,
                            "current_holder": _as_text(current),
                        },
                    )
                    return False
                pipe.multi()
                pipe.delete(key)
                pipe.execute()
            except WatchError:
                # Key changed between GET and DELETE: it expired and was re-taken
                logger.warning(
                    "lock_release_lost",
                    extra={"lock_key": key, "holder_id": holder_id},
                )
                return False

        logger.info("lock_released", extra={"lock_key": key, "holder_id": holder_id})
        return True

    def holder_of(self, key: str) -> str | None:
        return _as_text(self._redis.get(key))

    @contextmanager
    def hold(self, key: str, holder_id: str, ttl: timedelta) -> Iterator[None]:
        """
        Acquire, run the guarded body, always release.

        Raises:
            BatchAlreadyRunningError: If the lock is already held.
        """
        if not self.try_acquire(key, holder_id, ttl):
            raise BatchAlreadyRunningError(key, self.holder_of(key))
        try:
            yield
        finally:
            self.release(key, holder_id)


def _as_text(value: bytes | str | None) -> str | None:
    if isinstance(value, bytes):
        return value.decode("utf-8")
    return value
