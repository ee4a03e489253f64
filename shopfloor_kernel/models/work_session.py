"""
Module: shopfloor_kernel.models.work_session
Responsibility: The worker session: one worker's engagement at one station,
    with an optional job/job-item/step binding and a mirror of its current
    status for O(1) dashboard reads.
Architecture position: Kernel > Models.  Imports db/ only.

Invariants enforced:
    - At most one active session per worker: partial unique index
      uq_sessions_one_active_per_worker ON sessions(worker_id)
      WHERE status = 'active'.  The index, not an application check, closes
      the check-then-insert window.
    - current_status_id always matches the definition of the session's open
      status event; both are written in the same transaction.

Design note:
    job_item_step_id has no foreign key so that a binding to a step that was
    later removed stays observable (quantity reporting raises
    JOB_ITEM_STEP_NOT_FOUND instead of the reference silently vanishing).
"""

from datetime import datetime
from uuid import UUID

from sqlalchemy import ForeignKey, Index, String, Text, text
from sqlalchemy.orm import Mapped, mapped_column

from shopfloor_kernel.db.base import TrackedBase, UUIDString
from shopfloor_kernel.domain.statuses import SessionStatus


class WorkSession(TrackedBase):
    __tablename__ = "sessions"

    __table_args__ = (
        Index(
            "uq_sessions_one_active_per_worker",
            "worker_id",
            unique=True,
            postgresql_where=text("status = 'active'"),
        ),
        Index("idx_session_station_status", "station_id", "status"),
        Index("idx_session_job_item", "job_item_id"),
    )

    worker_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("workers.id"),
        nullable=False,
    )

    station_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("stations.id"),
        nullable=False,
    )

    job_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("jobs.id", ondelete="SET NULL"),
        nullable=True,
    )

    job_item_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("job_items.id", ondelete="SET NULL"),
        nullable=True,
    )

    job_item_step_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    status: Mapped[SessionStatus] = mapped_column(
        String(20), default=SessionStatus.ACTIVE, nullable=False
    )

    # Mirror of the open status event's definition
    current_status_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("status_definitions.id"),
        nullable=True,
    )

    last_status_change_at: Mapped[datetime | None] = mapped_column(nullable=True)

    started_at: Mapped[datetime] = mapped_column(nullable=False)

    ended_at: Mapped[datetime | None] = mapped_column(nullable=True)

    # Set when the session was closed by replacement or recovery
    forced_closed_at: Mapped[datetime | None] = mapped_column(nullable=True)

    # Client instance currently owning the session (takeover CAS column)
    instance_id: Mapped[str | None] = mapped_column(String(100), nullable=True)

    last_seen_at: Mapped[datetime | None] = mapped_column(nullable=True)

    # Snapshots for historical display
    worker_code_snapshot: Mapped[str | None] = mapped_column(String(50), nullable=True)
    worker_full_name_snapshot: Mapped[str | None] = mapped_column(String(255), nullable=True)
    station_code_snapshot: Mapped[str | None] = mapped_column(String(50), nullable=True)
    station_name_snapshot: Mapped[str | None] = mapped_column(String(255), nullable=True)

    close_note: Mapped[str | None] = mapped_column(Text, nullable=True)

    @property
    def is_active(self) -> bool:
        return self.status == SessionStatus.ACTIVE

    def __repr__(self) -> str:
        return f"<WorkSession {self.id} worker={self.worker_id} {self.status}>"
