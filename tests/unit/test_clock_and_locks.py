"""Deterministic clock and advisory lock keys."""

from datetime import datetime, timezone
from uuid import UUID, uuid4

from shopfloor_kernel.db.locks import WIP_LOCK_NAMESPACE, advisory_key
from shopfloor_kernel.domain.clock import DeterministicClock, SystemClock


class TestDeterministicClock:

    def test_default_time(self):
        assert DeterministicClock().now() == datetime(2024, 1, 1, 12, tzinfo=timezone.utc)

    def test_now_is_stable(self):
        clock = DeterministicClock()
        assert clock.now() == clock.now()

    def test_advance_and_tick(self):
        clock = DeterministicClock()
        start = clock.now()
        clock.advance(30)
        assert (clock.now() - start).total_seconds() == 30
        assert (clock.tick() - start).total_seconds() == 31

    def test_set_time_resets_offset(self):
        clock = DeterministicClock()
        clock.advance(100)
        target = datetime(2025, 6, 1, tzinfo=timezone.utc)
        clock.set_time(target)
        assert clock.now() == target


def test_system_clock_is_utc():
    assert SystemClock().now().tzinfo is not None


class TestAdvisoryKey:

    def test_deterministic(self):
        uid = UUID("12345678-1234-5678-1234-567812345678")
        assert advisory_key(WIP_LOCK_NAMESPACE, uid) == advisory_key(WIP_LOCK_NAMESPACE, uid)

    def test_signed_64_bit_range(self):
        for _ in range(200):
            key = advisory_key(WIP_LOCK_NAMESPACE, uuid4())
            assert -(1 << 63) <= key < (1 << 63)

    def test_namespace_changes_key(self):
        uid = uuid4()
        assert advisory_key(1, uid) != advisory_key(2, uid)
