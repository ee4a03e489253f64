"""
Module: shopfloor_kernel.models.status
Responsibility: Status definitions (the registry) and status events (one row
    per status interval within a session).
Architecture position: Kernel > Models.  Imports db/ and domain/ enums only.

Invariants enforced:
    - At most one open (ended_at IS NULL) event per session, enforced by the
      partial unique index uq_status_events_one_open_per_session.
    - Station-scoped definitions name their station (ck_status_definition_scope).
    - Quantities, when recorded, are non-negative.

Design note:
    status_events.job_item_step_id and status_events.report_id carry no
    foreign key.  The step id is a snapshot that must survive pipeline
    rebuilds; reports already reference their event, so a back-reference FK
    would form a cycle.
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
    Text,
    UniqueConstraint,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column

from shopfloor_kernel.db.base import Base, TrackedBase, UUIDString
from shopfloor_kernel.domain.statuses import MachineState, StatusReportType, StatusScope


class StatusDefinition(TrackedBase):
    """A status a worker can put a session into."""

    __tablename__ = "status_definitions"

    __table_args__ = (
        UniqueConstraint("protected_key", name="uq_status_definition_protected_key"),
        CheckConstraint(
            "scope = 'global' OR station_id IS NOT NULL",
            name="ck_status_definition_scope",
        ),
        CheckConstraint(
            "NOT is_protected OR scope = 'global'",
            name="ck_status_definition_protected_global",
        ),
        Index("idx_status_definition_station", "station_id"),
    )

    scope: Mapped[StatusScope] = mapped_column(
        String(20), default=StatusScope.GLOBAL, nullable=False
    )

    station_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("stations.id", ondelete="CASCADE"),
        nullable=True,
    )

    machine_state: Mapped[MachineState] = mapped_column(String(20), nullable=False)

    label_he: Mapped[str] = mapped_column(String(255), nullable=False)

    label_ru: Mapped[str | None] = mapped_column(String(255), nullable=True)

    color_hex: Mapped[str] = mapped_column(String(7), nullable=False)

    report_type: Mapped[StatusReportType] = mapped_column(
        String(20), default=StatusReportType.NONE, nullable=False
    )

    is_protected: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    # Catalog key for protected rows ("stop", "other", ...); NULL otherwise
    protected_key: Mapped[str | None] = mapped_column(String(50), nullable=True)

    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    def allowed_at(self, station_id: UUID) -> bool:
        """Global statuses apply everywhere; station statuses at their station."""
        if self.scope == StatusScope.GLOBAL:
            return True
        return self.station_id == station_id

    @property
    def is_production(self) -> bool:
        return self.machine_state == MachineState.PRODUCTION

    def __repr__(self) -> str:
        return f"<StatusDefinition {self.label_he} ({self.machine_state})>"


class StatusEvent(Base):
    """One status interval; open while ended_at is NULL."""

    __tablename__ = "status_events"

    __table_args__ = (
        Index(
            "uq_status_events_one_open_per_session",
            "session_id",
            unique=True,
            postgresql_where=text("ended_at IS NULL"),
        ),
        Index("idx_status_event_session_started", "session_id", "started_at"),
        Index("idx_status_event_definition", "status_definition_id"),
        Index("idx_status_event_job_item", "job_item_id"),
        CheckConstraint(
            "quantity_good IS NULL OR quantity_good >= 0",
            name="ck_status_event_quantity_good",
        ),
        CheckConstraint(
            "quantity_scrap IS NULL OR quantity_scrap >= 0",
            name="ck_status_event_quantity_scrap",
        ),
    )

    session_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("sessions.id", ondelete="CASCADE"),
        nullable=False,
    )

    status_definition_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("status_definitions.id"),
        nullable=False,
    )

    started_at: Mapped[datetime] = mapped_column(nullable=False)

    ended_at: Mapped[datetime | None] = mapped_column(nullable=True)

    # Filled only when a production interval is closed with counts
    quantity_good: Mapped[int | None] = mapped_column(Integer, nullable=True)

    quantity_scrap: Mapped[int | None] = mapped_column(Integer, nullable=True)

    # Snapshot of the session's binding when the event was opened
    job_item_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("job_items.id", ondelete="SET NULL"),
        nullable=True,
    )

    job_item_step_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    station_reason_id: Mapped[str | None] = mapped_column(String(100), nullable=True)

    note: Mapped[str | None] = mapped_column(Text, nullable=True)

    report_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    @property
    def is_open(self) -> bool:
        return self.ended_at is None

    def __repr__(self) -> str:
        state = "open" if self.ended_at is None else "closed"
        return f"<StatusEvent {self.id} {state}>"
