"""
Module: shopfloor_kernel.models.report
Responsibility: The unified report entity for malfunction, general and scrap
    reports, including first-product approval requests.
Architecture position: Kernel > Models.  Imports db/ and domain/ enums only.

Invariants enforced:
    - Status is one of the type's machine states (guarded by ReportService
      through domain/report_lifecycle.py).
    - At most one first-product approval request per (session, step):
      partial unique index uq_reports_first_product_request.
"""

from datetime import datetime
from uuid import UUID

from sqlalchemy import Boolean, ForeignKey, Index, String, Text, text
from sqlalchemy.orm import Mapped, mapped_column

from shopfloor_kernel.db.base import TrackedBase, UUIDString
from shopfloor_kernel.domain.report_lifecycle import ReportStatus, ReportType


class Report(TrackedBase):
    __tablename__ = "reports"

    __table_args__ = (
        Index(
            "uq_reports_first_product_request",
            "session_id",
            "job_item_step_id",
            unique=True,
            postgresql_where=text("is_first_product_qa"),
        ),
        Index("idx_report_type_status", "type", "status"),
        Index("idx_report_station", "station_id"),
        Index("idx_report_session", "session_id"),
    )

    type: Mapped[ReportType] = mapped_column(String(20), nullable=False)

    status: Mapped[ReportStatus] = mapped_column(String(20), nullable=False)

    station_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("stations.id", ondelete="SET NULL"),
        nullable=True,
    )

    session_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("sessions.id", ondelete="SET NULL"),
        nullable=True,
    )

    status_event_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("status_events.id", ondelete="SET NULL"),
        nullable=True,
    )

    job_item_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("job_items.id", ondelete="SET NULL"),
        nullable=True,
    )

    # Step the first-product request is for; snapshot, no FK
    job_item_step_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    is_first_product_qa: Mapped[bool] = mapped_column(
        Boolean, default=False, nullable=False
    )

    description: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Reference only; the core never touches image storage
    image_url: Mapped[str | None] = mapped_column(String(1024), nullable=True)

    station_reason_id: Mapped[str | None] = mapped_column(String(100), nullable=True)

    report_reason_id: Mapped[str | None] = mapped_column(String(100), nullable=True)

    reported_by_worker_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("workers.id", ondelete="SET NULL"),
        nullable=True,
    )

    admin_notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    status_changed_at: Mapped[datetime | None] = mapped_column(nullable=True)

    status_changed_by: Mapped[str | None] = mapped_column(String(255), nullable=True)

    def __repr__(self) -> str:
        return f"<Report {self.type} {self.status}>"
