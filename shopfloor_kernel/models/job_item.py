"""
Module: shopfloor_kernel.models.job_item
Responsibility: Job items and their multi-station pipelines, plus the
    reusable pipeline presets they may be built from.
Architecture position: Kernel > Models.  Imports db/ only.

Invariants enforced:
    - Step positions are unique per job item (uq_job_item_step_position);
      contiguity from 1 and the single terminal step are maintained by
      PipelineService, which is the only writer of steps.
    - Exactly one JobItemProgress row per job item (uq_job_item_progress).
    - is_pipeline_locked never goes back to false once production starts.
"""

from datetime import datetime
from uuid import UUID

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    ForeignKey,
    Index,
    Integer,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from shopfloor_kernel.db.base import TrackedBase, UUIDString


class PipelinePreset(TrackedBase):
    """A named, reusable ordered list of stations."""

    __tablename__ = "pipeline_presets"

    __table_args__ = (
        UniqueConstraint("name", name="uq_pipeline_preset_name"),
    )

    name: Mapped[str] = mapped_column(String(255), nullable=False)

    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    steps: Mapped[list["PipelinePresetStep"]] = relationship(
        back_populates="preset",
        cascade="all, delete-orphan",
        order_by="PipelinePresetStep.position",
        lazy="selectin",
    )


class PipelinePresetStep(TrackedBase):
    __tablename__ = "pipeline_preset_steps"

    __table_args__ = (
        UniqueConstraint("preset_id", "position", name="uq_pipeline_preset_step_position"),
        CheckConstraint("position >= 1", name="ck_pipeline_preset_step_position"),
    )

    preset_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("pipeline_presets.id", ondelete="CASCADE"),
        nullable=False,
    )

    station_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("stations.id"),
        nullable=False,
    )

    position: Mapped[int] = mapped_column(Integer, nullable=False)

    requires_first_product_approval: Mapped[bool] = mapped_column(
        Boolean, default=False, nullable=False
    )

    preset: Mapped[PipelinePreset] = relationship(back_populates="steps")


class JobItem(TrackedBase):
    """
    A unit of work within a job, produced through an ordered pipeline.

    Once any production interval is opened against the item (or any WIP is
    recorded for it) the pipeline is locked and its steps may no longer be
    replaced.
    """

    __tablename__ = "job_items"

    __table_args__ = (
        Index("idx_job_item_job", "job_id"),
        CheckConstraint("planned_quantity >= 0", name="ck_job_item_planned_quantity"),
    )

    job_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("jobs.id", ondelete="CASCADE"),
        nullable=False,
    )

    name: Mapped[str] = mapped_column(String(255), nullable=False)

    planned_quantity: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    is_pipeline_locked: Mapped[bool] = mapped_column(
        Boolean, default=False, nullable=False
    )

    pipeline_preset_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("pipeline_presets.id", ondelete="SET NULL"),
        nullable=True,
    )

    def __repr__(self) -> str:
        return f"<JobItem {self.name} locked={self.is_pipeline_locked}>"


class JobItemStep(TrackedBase):
    """One pipeline stage: a station at a 1-based position."""

    __tablename__ = "job_item_steps"

    __table_args__ = (
        UniqueConstraint("job_item_id", "position", name="uq_job_item_step_position"),
        CheckConstraint("position >= 1", name="ck_job_item_step_position"),
        Index("idx_job_item_step_station", "station_id"),
    )

    job_item_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("job_items.id", ondelete="CASCADE"),
        nullable=False,
    )

    station_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("stations.id"),
        nullable=False,
    )

    position: Mapped[int] = mapped_column(Integer, nullable=False)

    # True iff this is the highest-position step of the job item
    is_terminal: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    requires_first_product_approval: Mapped[bool] = mapped_column(
        Boolean, default=False, nullable=False
    )

    def __repr__(self) -> str:
        return f"<JobItemStep {self.job_item_id}#{self.position}>"


class JobItemProgress(TrackedBase):
    """Finished-unit counter, advanced only by terminal-step good output."""

    __tablename__ = "job_item_progress"

    __table_args__ = (
        UniqueConstraint("job_item_id", name="uq_job_item_progress"),
        CheckConstraint("completed_good >= 0", name="ck_job_item_progress_completed"),
    )

    job_item_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("job_items.id", ondelete="CASCADE"),
        nullable=False,
    )

    completed_good: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    last_completed_at: Mapped[datetime | None] = mapped_column(nullable=True)
