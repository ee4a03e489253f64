"""
Module: shopfloor_kernel.models.reference
Responsibility: Reference data the core reads but never mutates: workers,
    stations and jobs.  Admin maintenance of these rows is a collaborator
    concern.
Architecture position: Kernel > Models.  Imports db/ only.
"""

from sqlalchemy import JSON, Boolean, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from shopfloor_kernel.db.base import TrackedBase


class Worker(TrackedBase):
    """A person who opens sessions at stations."""

    __tablename__ = "workers"

    __table_args__ = (
        UniqueConstraint("worker_code", name="uq_worker_code"),
    )

    worker_code: Mapped[str] = mapped_column(String(50), nullable=False)

    full_name: Mapped[str] = mapped_column(String(255), nullable=False)

    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    def __repr__(self) -> str:
        return f"<Worker {self.worker_code}>"


class Station(TrackedBase):
    """A physical work location on the floor."""

    __tablename__ = "stations"

    __table_args__ = (
        UniqueConstraint("code", name="uq_station_code"),
    )

    code: Mapped[str] = mapped_column(String(50), nullable=False)

    name: Mapped[str] = mapped_column(String(255), nullable=False)

    # e.g. "cnc", "assembly", "packaging"
    station_type: Mapped[str] = mapped_column(String(50), default="other", nullable=False)

    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    # Allowed malfunction reasons: [{"id": ..., "label_he": ..., "label_ru": ...}]
    station_reasons: Mapped[list] = mapped_column(JSON, default=list, nullable=False)

    def allows_reason(self, station_reason_id: str) -> bool:
        return any(
            isinstance(reason, dict) and reason.get("id") == station_reason_id
            for reason in self.station_reasons or ()
        )

    def __repr__(self) -> str:
        return f"<Station {self.code}>"


class Job(TrackedBase):
    """A customer order; owns job items."""

    __tablename__ = "jobs"

    __table_args__ = (
        UniqueConstraint("job_number", name="uq_job_number"),
    )

    job_number: Mapped[str] = mapped_column(String(50), nullable=False)

    customer_name: Mapped[str | None] = mapped_column(String(255), nullable=True)

    description: Mapped[str | None] = mapped_column(Text, nullable=True)

    def __repr__(self) -> str:
        return f"<Job {self.job_number}>"
