"""
FloorOperations -- each operation is one committed transaction.

Runs against real commits (``pg_session_factory``); data is truncated at
teardown.
"""

from uuid import uuid4

import pytest

from shopfloor_kernel.domain.statuses import SessionStatus
from shopfloor_kernel.exceptions import InvalidQuantitiesError, StatusDefinitionNotFoundError
from shopfloor_kernel.models.job_item import JobItem

pytestmark = pytest.mark.postgres


class TestCommitBoundaries:

    def test_create_session_is_visible_to_later_reads(self, floor_ops, committed_floor):
        floor = committed_floor(length=1)

        info = floor_ops.create_session(floor.worker_ids[0], floor.station_ids[0], "tab-1")

        stored = floor_ops.get_session(info.id)
        assert stored is not None
        assert stored.status == SessionStatus.ACTIVE
        assert floor_ops.active_session_for_worker(floor.worker_ids[0]).id == info.id
        (event,) = floor_ops.open_events(info.id)
        assert event.status_definition_id == stored.current_status_id

    def test_failure_inside_transaction_leaves_no_writes(self, floor_ops, committed_floor):
        floor = committed_floor(length=1)

        with pytest.raises(RuntimeError):
            with floor_ops.transaction("create_session") as svc:
                svc.sessions.create_session(floor.worker_ids[0], floor.station_ids[0], "tab-1")
                raise RuntimeError("boom")

        assert floor_ops.active_session_for_worker(floor.worker_ids[0]) is None

    def test_replacement_rolled_back_with_failed_create(self, floor_ops, committed_floor):
        floor = committed_floor(length=1)
        first = floor_ops.create_session(floor.worker_ids[0], floor.station_ids[0], "tab-1")

        with pytest.raises(StatusDefinitionNotFoundError):
            floor_ops.create_session(
                floor.worker_ids[0], floor.station_ids[0], "tab-2", initial_status_id=uuid4()
            )

        assert floor_ops.get_session(first.id).status == SessionStatus.ACTIVE
        assert floor_ops.active_session_for_worker(floor.worker_ids[0]).id == first.id

    def test_rollback_is_logged(self, floor_ops, committed_floor, floor_statuses, captured_logs):
        floor = committed_floor(length=1)
        info = floor_ops.create_session(
            floor.worker_ids[0],
            floor.station_ids[0],
            "tab-1",
            job_id=floor.job_id,
            job_item_id=floor.job_item_id,
            job_item_step_id=floor.steps[0].id,
            initial_status_id=floor_statuses["production"].id,
        )
        (event,) = floor_ops.open_events(info.id)

        with pytest.raises(InvalidQuantitiesError):
            floor_ops.end_production_status(
                info.id, event.id, -1, 0, floor_statuses["stop"].id
            )

        rolled_back = [r for r in captured_logs() if r["message"] == "transaction_rolled_back"]
        assert len(rolled_back) == 1
        assert rolled_back[0]["operation"] == "end_production_status"
        assert rolled_back[0]["session_id"] == str(info.id)
        assert rolled_back[0]["exc_code"] == "INVALID_QUANTITIES"
        assert floor_ops.open_events(info.id) == [event]


class TestProductionFlow:

    def test_two_station_flow(self, floor_ops, committed_floor, floor_statuses):
        floor = committed_floor(length=2, workers=2)
        production = floor_statuses["production"].id
        stop = floor_statuses["stop"].id

        upstream = floor_ops.create_session(
            floor.worker_ids[0], floor.station_ids[0], "tab-1",
            job_id=floor.job_id, job_item_id=floor.job_item_id,
            job_item_step_id=floor.steps[0].id, initial_status_id=production,
        )
        (event,) = floor_ops.open_events(upstream.id)
        floor_ops.end_production_status(upstream.id, event.id, 40, 2, stop)

        downstream = floor_ops.create_session(
            floor.worker_ids[1], floor.station_ids[1], "tab-2",
            job_id=floor.job_id, job_item_id=floor.job_item_id,
            job_item_step_id=floor.steps[1].id, initial_status_id=production,
        )
        (event,) = floor_ops.open_events(downstream.id)
        result = floor_ops.end_production_status(downstream.id, event.id, 25, 0, stop)

        assert result.wip.pulled_good == 25
        assert [b.good_available for b in floor_ops.wip_balances(floor.job_item_id)] == [15, 25]
        assert floor_ops.completed_good(floor.job_item_id) == 25

        totals = floor_ops.session_totals(upstream.id)
        assert (totals.total_good, totals.total_scrap) == (40, 2)
        accounting = floor_ops.session_wip_accounting(downstream.id)
        assert accounting.pulled_good == 25 and accounting.originated_good == 0
        (consumption,) = floor_ops.consumptions_for_session(downstream.id)
        assert consumption.good_used == 25

        completed = floor_ops.complete_session(downstream.id)
        assert completed.status == SessionStatus.COMPLETED
        assert floor_ops.open_events(downstream.id) == []


class TestPipelines:

    def test_setup_pipeline_records_preset(self, floor_ops, committed_floor, pg_session_factory):
        floor = committed_floor(length=2)
        preset_id = floor_ops.create_pipeline_preset("cut-weld", floor.station_ids, [False, True])

        steps = floor_ops.setup_pipeline(
            floor.job_item_id, floor.station_ids, preset_id=preset_id, approval_flags=[False, True]
        )

        assert [s.station_id for s in steps] == floor.station_ids
        assert [s.requires_first_product_approval for s in steps] == [False, True]
        s = pg_session_factory()
        try:
            assert s.get(JobItem, floor.job_item_id).pipeline_preset_id == preset_id
        finally:
            s.close()
