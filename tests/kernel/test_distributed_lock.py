"""
RedisDistributedLock tests against fakeredis.
"""

from datetime import timedelta

import pytest

from commission_kernel.exceptions import BatchAlreadyRunningError, ConcurrencyError

KEY = "CommissionService:OvernightSwapProcess"
TTL = timedelta(minutes=10)


class TestTryAcquire:
    def test_free_lock_is_acquired(self, distributed_lock, redis_client):
        assert distributed_lock.try_acquire(KEY, "host-a", TTL) is True
        assert distributed_lock.holder_of(KEY) == "host-a"
        assert 0 < redis_client.pttl(KEY) <= 600_000

    def test_held_lock_fails_fast(self, distributed_lock):
        distributed_lock.try_acquire(KEY, "host-a", TTL)

        assert distributed_lock.try_acquire(KEY, "host-b", TTL) is False
        assert distributed_lock.holder_of(KEY) == "host-a"

    def test_same_holder_cannot_reenter(self, distributed_lock):
        distributed_lock.try_acquire(KEY, "host-a", TTL)
        assert distributed_lock.try_acquire(KEY, "host-a", TTL) is False

    def test_busy_lock_logged(self, distributed_lock, captured_logs):
        distributed_lock.try_acquire(KEY, "host-a", TTL)
        distributed_lock.try_acquire(KEY, "host-b", TTL)

        busy = [r for r in captured_logs() if r["message"] == "lock_busy"]
        assert busy and busy[0]["holder_id"] == "host-b"


class TestRelease:
    def test_owner_releases(self, distributed_lock):
        distributed_lock.try_acquire(KEY, "host-a", TTL)

        assert distributed_lock.release(KEY, "host-a") is True
        assert distributed_lock.holder_of(KEY) is None

    def test_non_owner_cannot_release(self, distributed_lock):
        distributed_lock.try_acquire(KEY, "host-a", TTL)

        assert distributed_lock.release(KEY, "host-b") is False
        assert distributed_lock.holder_of(KEY) == "host-a"

    def test_expired_and_retaken_lock_not_released_by_old_holder(
        self, distributed_lock, redis_client,
    ):
        distributed_lock.try_acquire(KEY, "host-a", TTL)
        redis_client.delete(KEY)  # TTL lapsed
        distributed_lock.try_acquire(KEY, "host-b", TTL)

        assert distributed_lock.release(KEY, "host-a") is False
        assert distributed_lock.holder_of(KEY) == "host-b"

    def test_release_of_free_lock_is_false(self, distributed_lock):
        assert distributed_lock.release(KEY, "host-a") is False


class TestHold:
    def test_body_runs_under_lock(self, distributed_lock):
        with distributed_lock.hold(KEY, "host-a", TTL):
            assert distributed_lock.holder_of(KEY) == "host-a"
        assert distributed_lock.holder_of(KEY) is None

    def test_released_when_body_raises(self, distributed_lock):
        with pytest.raises(RuntimeError):
            with distributed_lock.hold(KEY, "host-a", TTL):
                raise RuntimeError("boom")
        assert distributed_lock.holder_of(KEY) is None

    def test_held_lock_raises_batch_already_running(self, distributed_lock):
        distributed_lock.try_acquire(KEY, "host-a", TTL)
        entered = []

        with pytest.raises(BatchAlreadyRunningError) as exc_info:
            with distributed_lock.hold(KEY, "host-b", TTL):
                entered.append(True)

        assert entered == []
        assert exc_info.value.lock_key == KEY
        assert exc_info.value.holder_id == "host-a"
        assert isinstance(exc_info.value, ConcurrencyError)
        # The other holder keeps its lock
        assert distributed_lock.holder_of(KEY) == "host-a"
