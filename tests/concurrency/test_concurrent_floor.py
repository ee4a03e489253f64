"""
True concurrency on the floor tables.

Each thread runs one FloorOperations call in its own database session;
a Barrier releases them together so the row locks and the per-item
advisory lock are actually contended.

Expected Behavior:
- Concurrent status changes on one session leave exactly one open event
- Concurrent downstream pulls never take more than the upstream balance
- Concurrent session starts for one worker leave exactly one active session
"""

from concurrent.futures import ThreadPoolExecutor
from threading import Barrier

import pytest
from sqlalchemy import func, select

from shopfloor_kernel.domain.statuses import SessionStatus
from shopfloor_kernel.exceptions import SessionConflictError
from shopfloor_kernel.models import StatusEvent, WipConsumption, WorkSession

pytestmark = [pytest.mark.postgres, pytest.mark.slow_locks]


def _run_together(count, fn):
    """Run ``fn(i)`` on ``count`` threads released by one barrier."""
    barrier = Barrier(count)

    def _task(i):
        barrier.wait(timeout=10)
        try:
            return fn(i), None
        except Exception as exc:  # collected for assertions
            return None, exc

    with ThreadPoolExecutor(max_workers=count) as pool:
        return list(pool.map(_task, range(count)))


def _open_production(floor_ops, floor, statuses, worker_index, step_index):
    info = floor_ops.create_session(
        floor.worker_ids[worker_index],
        floor.station_ids[step_index],
        f"tab-{worker_index}",
        job_id=floor.job_id,
        job_item_id=floor.job_item_id,
        job_item_step_id=floor.steps[step_index].id,
        initial_status_id=statuses["production"].id,
    )
    (event,) = floor_ops.open_events(info.id)
    return info, event


class TestConcurrentStatusChanges:

    def test_one_open_event_after_racing_changes(
        self, floor_ops, committed_floor, floor_statuses, pg_session_factory
    ):
        floor = committed_floor(length=1)
        info = floor_ops.create_session(floor.worker_ids[0], floor.station_ids[0], "tab-1")
        targets = [
            floor_statuses["production"].id,
            floor_statuses["malfunction"].id,
            floor_statuses["other"].id,
        ]

        results = _run_together(
            3, lambda i: floor_ops.start_status_event(info.id, targets[i])
        )

        assert all(exc is None for _, exc in results)
        (open_event,) = floor_ops.open_events(info.id)
        assert floor_ops.get_session(info.id).current_status_id == open_event.status_definition_id

        s = pg_session_factory()
        total = s.execute(
            select(func.count()).select_from(StatusEvent).where(StatusEvent.session_id == info.id)
        ).scalar_one()
        assert total == 4


class TestConcurrentPulls:

    def test_two_pulls_share_upstream_balance(
        self, floor_ops, committed_floor, floor_statuses, pg_session_factory
    ):
        floor = committed_floor(length=2, workers=3)
        stop = floor_statuses["stop"].id

        upstream, event = _open_production(floor_ops, floor, floor_statuses, 0, 0)
        floor_ops.end_production_status(upstream.id, event.id, 100, 0, stop)

        downstream = [
            _open_production(floor_ops, floor, floor_statuses, i, 1) for i in (1, 2)
        ]

        results = _run_together(
            2,
            lambda i: floor_ops.end_production_status(
                downstream[i][0].id, downstream[i][1].id, 30, 0, stop
            ),
        )

        assert all(exc is None for _, exc in results)
        assert [b.good_available for b in floor_ops.wip_balances(floor.job_item_id)] == [40, 60]
        assert floor_ops.completed_good(floor.job_item_id) == 60

        s = pg_session_factory()
        pulled = s.execute(
            select(func.sum(WipConsumption.good_used)).where(
                WipConsumption.job_item_id == floor.job_item_id
            )
        ).scalar_one()
        assert pulled == 60

    def test_pulls_exceeding_balance_originate_the_rest(
        self, floor_ops, committed_floor, floor_statuses
    ):
        floor = committed_floor(length=2, workers=3)
        stop = floor_statuses["stop"].id

        upstream, event = _open_production(floor_ops, floor, floor_statuses, 0, 0)
        floor_ops.end_production_status(upstream.id, event.id, 50, 0, stop)
        downstream = [
            _open_production(floor_ops, floor, floor_statuses, i, 1) for i in (1, 2)
        ]

        results = _run_together(
            2,
            lambda i: floor_ops.end_production_status(
                downstream[i][0].id, downstream[i][1].id, 40, 0, stop
            ),
        )

        assert all(exc is None for _, exc in results)
        pulled = sorted(result.wip.pulled_good for result, _ in results)
        assert pulled == [10, 40]
        assert [b.good_available for b in floor_ops.wip_balances(floor.job_item_id)] == [0, 80]


class TestConcurrentSessionStart:

    def test_one_active_session_per_worker(
        self, floor_ops, committed_floor, pg_session_factory
    ):
        floor = committed_floor(length=3)
        worker_id = floor.worker_ids[0]

        results = _run_together(
            3,
            lambda i: floor_ops.create_session(worker_id, floor.station_ids[i], f"tab-{i}"),
        )

        assert any(exc is None for _, exc in results)
        for _, exc in results:
            assert exc is None or isinstance(exc, SessionConflictError)

        s = pg_session_factory()
        active = s.execute(
            select(func.count())
            .select_from(WorkSession)
            .where(WorkSession.worker_id == worker_id)
            .where(WorkSession.status == SessionStatus.ACTIVE)
        ).scalar_one()
        assert active == 1
