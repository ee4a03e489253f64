"""
Module: shopfloor_kernel.models.wip
Responsibility: The WIP ledger tables: one balance row per pipeline step and
    the append-only audit trail of pulls between steps.
Architecture position: Kernel > Models.  Imports db/ only.

Invariants enforced:
    - One WipBalance per step (uq_wip_balance_step); good_available >= 0.
    - WipConsumption rows are append-only (ORM listener in db/immutability.py
      plus the database trigger in db/sql/01_wip_consumption.sql).
    - A step with consumptions cannot be deleted (FK ON DELETE RESTRICT).
"""

from datetime import datetime
from uuid import UUID

from sqlalchemy import Boolean, CheckConstraint, ForeignKey, Index, Integer, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from shopfloor_kernel.db.base import Base, TrackedBase, UUIDString


class WipBalance(TrackedBase):
    """Accepted units sitting at a step, ready to be pulled downstream."""

    __tablename__ = "wip_balances"

    __table_args__ = (
        UniqueConstraint("job_item_step_id", name="uq_wip_balance_step"),
        CheckConstraint("good_available >= 0", name="ck_wip_balance_non_negative"),
        Index("idx_wip_balance_job_item", "job_item_id"),
    )

    job_item_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("job_items.id", ondelete="CASCADE"),
        nullable=False,
    )

    job_item_step_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("job_item_steps.id", ondelete="CASCADE"),
        nullable=False,
    )

    good_available: Mapped[int] = mapped_column(Integer, default=0, nullable=False)


class WipConsumption(Base):
    """
    One pull from an upstream step's balance.

    ``is_scrap`` marks units consumed to produce scrap rather than good
    output.  Rows are never updated or deleted.
    """

    __tablename__ = "wip_consumptions"

    __table_args__ = (
        CheckConstraint("good_used > 0", name="ck_wip_consumption_positive"),
        Index("idx_wip_consumption_session", "consuming_session_id"),
        Index("idx_wip_consumption_job_item", "job_item_id"),
        Index("idx_wip_consumption_from_step", "from_job_item_step_id"),
    )

    job_item_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("job_items.id", ondelete="CASCADE"),
        nullable=False,
    )

    consuming_session_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("sessions.id", ondelete="CASCADE"),
        nullable=False,
    )

    # Step whose balance was decremented
    from_job_item_step_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("job_item_steps.id", ondelete="RESTRICT"),
        nullable=False,
    )

    # Step that reported the output
    to_job_item_step_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("job_item_steps.id", ondelete="RESTRICT"),
        nullable=False,
    )

    good_used: Mapped[int] = mapped_column(Integer, nullable=False)

    is_scrap: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    created_at: Mapped[datetime] = mapped_column(nullable=False)
