"""
PipelineService -- pipeline setup, presets and the production lock.
"""

from uuid import uuid4

import pytest
from sqlalchemy import select

from shopfloor_kernel.exceptions import (
    JobItemNotFoundError,
    JobItemStepNotFoundError,
    PipelineEmptyError,
    PipelineLockedError,
    PipelinePresetNotFoundError,
    StationInvalidError,
)
from shopfloor_kernel.models import JobItem, JobItemProgress, WipBalance


class TestSetupPipeline:

    def test_positions_and_terminal(self, services, make_station, make_job_item):
        stations = [make_station() for _ in range(3)]
        item = make_job_item()

        steps = services.pipelines.setup_pipeline(item.id, [s.id for s in stations])

        assert [s.position for s in steps] == [1, 2, 3]
        assert [s.is_terminal for s in steps] == [False, False, True]
        assert [s.station_id for s in steps] == [s.id for s in stations]

    def test_zero_balances_and_progress(self, session, services, make_station, make_job_item):
        item = make_job_item()
        services.pipelines.setup_pipeline(item.id, [make_station().id, make_station().id])

        assert services.wip_reads.balance_by_position(item.id) == {1: 0, 2: 0}
        progress = session.execute(
            select(JobItemProgress).where(JobItemProgress.job_item_id == item.id)
        ).scalar_one()
        assert progress.completed_good == 0

    def test_same_station_twice(self, services, make_station, make_job_item):
        station = make_station()
        item = make_job_item()
        steps = services.pipelines.setup_pipeline(item.id, [station.id, station.id])
        assert len(steps) == 2

    def test_rebuild_replaces_steps(self, session, services, make_station, make_job_item):
        item = make_job_item()
        services.pipelines.setup_pipeline(item.id, [make_station().id, make_station().id])
        steps = services.pipelines.setup_pipeline(item.id, [make_station().id])

        assert len(steps) == 1 and steps[0].is_terminal
        assert services.pipelines.list_steps(item.id) == steps
        balances = session.execute(
            select(WipBalance).where(WipBalance.job_item_id == item.id)
        ).scalars().all()
        assert len(balances) == 1

    def test_empty_pipeline(self, services, make_job_item):
        with pytest.raises(PipelineEmptyError):
            services.pipelines.setup_pipeline(make_job_item().id, [])

    def test_unknown_job_item(self, services, make_station):
        with pytest.raises(JobItemNotFoundError):
            services.pipelines.setup_pipeline(uuid4(), [make_station().id])

    def test_invalid_station(self, services, make_station, make_job_item):
        inactive = make_station(is_active=False)
        missing = uuid4()
        with pytest.raises(StationInvalidError) as exc_info:
            services.pipelines.setup_pipeline(make_job_item().id, [inactive.id, missing])
        assert exc_info.value.code == "STATION_INVALID"

    def test_locked_after_production(
        self, session, services, pipeline_factory, production_session, make_station
    ):
        item, _, (s1, _) = pipeline_factory(2)
        production_session(item, s1)

        assert session.get(JobItem, item.id, populate_existing=True).is_pipeline_locked
        with pytest.raises(PipelineLockedError):
            services.pipelines.setup_pipeline(item.id, [make_station().id])


class TestPresets:

    def test_setup_from_preset(self, session, services, make_station, make_job_item):
        stations = [make_station(), make_station()]
        preset_id = services.pipelines.create_preset(
            "cut-and-weld", [s.id for s in stations], approval_flags=[True, False]
        )
        item = make_job_item()

        steps = services.pipelines.setup_pipeline_from_preset(item.id, preset_id)

        assert [s.station_id for s in steps] == [s.id for s in stations]
        assert [s.requires_first_product_approval for s in steps] == [True, False]
        assert session.get(JobItem, item.id).pipeline_preset_id == preset_id

    def test_unknown_preset(self, services, make_job_item):
        with pytest.raises(PipelinePresetNotFoundError):
            services.pipelines.setup_pipeline_from_preset(make_job_item().id, uuid4())


def test_set_approval_on_unknown_step(services):
    with pytest.raises(JobItemStepNotFoundError):
        services.pipelines.set_step_approval_requirement(uuid4(), True)
