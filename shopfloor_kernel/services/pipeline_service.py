"""
PipelineService -- job item pipeline definition.

Responsibility:
    Replaces a job item's ordered pipeline of stations, creating the step
    rows, their zeroed WIP balances and the single progress row; expands
    presets into pipelines; toggles first-product approval per step.

Architecture position:
    Kernel > Services.  The only writer of JobItemStep rows.

Invariants enforced:
    - Positions are 1..n in the given order; exactly one step (the last)
      is terminal.  A single-station pipeline's step is both first and
      terminal.
    - One WipBalance per step, created at 0; one JobItemProgress per job
      item, reset to 0.
    - A locked pipeline is never rebuilt.  The job item row is locked FOR
      UPDATE while rebuilding, so a production start cannot slip in
      between the lock check and the rewrite.

Failure modes:
    - PipelineEmptyError, JobItemNotFoundError, PipelineLockedError,
      StationInvalidError, PipelinePresetNotFoundError,
      JobItemStepNotFoundError.
"""

from collections.abc import Sequence
from uuid import UUID

from sqlalchemy import delete, select

from shopfloor_kernel.domain.dtos import PipelineStepInfo
from shopfloor_kernel.exceptions import (
    JobItemNotFoundError,
    JobItemStepNotFoundError,
    PipelineEmptyError,
    PipelineLockedError,
    PipelinePresetNotFoundError,
    StationInvalidError,
)
from shopfloor_kernel.logging_config import get_logger
from shopfloor_kernel.models.job_item import (
    JobItem,
    JobItemProgress,
    JobItemStep,
    PipelinePreset,
    PipelinePresetStep,
)
from shopfloor_kernel.models.reference import Station
from shopfloor_kernel.models.wip import WipBalance
from shopfloor_kernel.services.base import BaseService

logger = get_logger("services.pipeline")


class PipelineService(BaseService[JobItemStep]):
    """Defines job item pipelines and pipeline presets."""

    def _validate_stations(self, station_ids: Sequence[UUID]) -> None:
        active = set(
            self.session.execute(
                select(Station.id)
                .where(Station.id.in_(set(station_ids)))
                .where(Station.is_active.is_(True))
            ).scalars()
        )
        invalid = [str(sid) for sid in station_ids if sid not in active]
        if invalid:
            raise StationInvalidError(invalid)

    def setup_pipeline(
        self,
        job_item_id: UUID,
        station_ids: Sequence[UUID],
        preset_id: UUID | None = None,
        approval_flags: Sequence[bool] | None = None,
    ) -> list[PipelineStepInfo]:
        """
        Replace the pipeline of ``job_item_id`` with ``station_ids`` in order.

        Args:
            job_item_id: Job item to (re)build.
            station_ids: Ordered station ids; duplicates are allowed.
            preset_id: Preset the pipeline came from, recorded on the item.
            approval_flags: Per-position requires_first_product_approval;
                defaults to all False.

        Returns:
            The new steps ordered by position.
        """
        if not station_ids:
            raise PipelineEmptyError(job_item_id)
        if approval_flags is not None and len(approval_flags) != len(station_ids):
            raise ValueError("approval_flags must match station_ids in length")

        job_item = self.session.execute(
            select(JobItem)
            .where(JobItem.id == job_item_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if job_item is None:
            raise JobItemNotFoundError(job_item_id)
        if job_item.is_pipeline_locked:
            raise PipelineLockedError(job_item_id)

        self._validate_stations(station_ids)

        self.session.execute(
            delete(WipBalance)
            .where(WipBalance.job_item_id == job_item_id)
            .execution_options(synchronize_session="fetch")
        )
        self.session.execute(
            delete(JobItemStep)
            .where(JobItemStep.job_item_id == job_item_id)
            .execution_options(synchronize_session="fetch")
        )

        flags = list(approval_flags) if approval_flags is not None else [False] * len(station_ids)
        last = len(station_ids)
        steps = []
        for position, (station_id, needs_approval) in enumerate(zip(station_ids, flags), start=1):
            step = JobItemStep(
                job_item_id=job_item_id,
                station_id=station_id,
                position=position,
                is_terminal=position == last,
                requires_first_product_approval=bool(needs_approval),
            )
            self.session.add(step)
            steps.append(step)
        self.session.flush()

        for step in steps:
            self.session.add(
                WipBalance(job_item_id=job_item_id, job_item_step_id=step.id, good_available=0)
            )

        progress = self.session.execute(
            select(JobItemProgress).where(JobItemProgress.job_item_id == job_item_id)
        ).scalar_one_or_none()
        if progress is None:
            self.session.add(JobItemProgress(job_item_id=job_item_id, completed_good=0))
        else:
            progress.completed_good = 0
            progress.last_completed_at = None

        if preset_id is not None:
            job_item.pipeline_preset_id = preset_id
        self.session.flush()

        logger.info(
            "pipeline_setup",
            extra={
                "job_item_id": str(job_item_id),
                "step_count": len(steps),
                "preset_id": str(preset_id) if preset_id else None,
            },
        )
        return [PipelineStepInfo.from_model(step) for step in steps]

    def setup_pipeline_from_preset(
        self, job_item_id: UUID, preset_id: UUID
    ) -> list[PipelineStepInfo]:
        preset = self.session.get(PipelinePreset, preset_id)
        if preset is None or not preset.is_active:
            raise PipelinePresetNotFoundError(preset_id)
        return self.setup_pipeline(
            job_item_id,
            [ps.station_id for ps in preset.steps],
            preset_id=preset_id,
            approval_flags=[ps.requires_first_product_approval for ps in preset.steps],
        )

    def create_preset(
        self,
        name: str,
        station_ids: Sequence[UUID],
        approval_flags: Sequence[bool] | None = None,
    ) -> UUID:
        if not station_ids:
            raise PipelineEmptyError(name)
        self._validate_stations(station_ids)
        flags = list(approval_flags) if approval_flags is not None else [False] * len(station_ids)

        preset = PipelinePreset(name=name)
        preset.steps = [
            PipelinePresetStep(
                station_id=station_id,
                position=position,
                requires_first_product_approval=bool(flag),
            )
            for position, (station_id, flag) in enumerate(zip(station_ids, flags), start=1)
        ]
        self.session.add(preset)
        self.session.flush()
        logger.info(
            "pipeline_preset_created",
            extra={"preset_id": str(preset.id), "step_count": len(station_ids)},
        )
        return preset.id

    def set_step_approval_requirement(
        self, job_item_step_id: UUID, required: bool
    ) -> PipelineStepInfo:
        step = self.session.get(JobItemStep, job_item_step_id)
        if step is None:
            raise JobItemStepNotFoundError(job_item_step_id)
        step.requires_first_product_approval = required
        self.session.flush()
        logger.info(
            "step_approval_requirement_changed",
            extra={"job_item_step_id": str(step.id), "required": required},
        )
        return PipelineStepInfo.from_model(step)

    def list_steps(self, job_item_id: UUID) -> list[PipelineStepInfo]:
        rows = self.session.execute(
            select(JobItemStep)
            .where(JobItemStep.job_item_id == job_item_id)
            .order_by(JobItemStep.position)
        ).scalars()
        return [PipelineStepInfo.from_model(row) for row in rows]
