"""
WipSelector -- read models over the WIP ledger.

Balances per job item (ordered by pipeline position), finished-unit
progress, consumption history, and per-session pulled-versus-originated
accounting.  Read-only.
"""

from uuid import UUID

from sqlalchemy import case, func, select

from shopfloor_kernel.domain.dtos import (
    SessionWipAccounting,
    WipBalanceInfo,
    WipConsumptionInfo,
)
from shopfloor_kernel.models.job_item import JobItemProgress, JobItemStep
from shopfloor_kernel.models.status import StatusEvent
from shopfloor_kernel.models.wip import WipBalance, WipConsumption
from shopfloor_kernel.selectors.base import BaseSelector


class WipSelector(BaseSelector[WipBalance]):

    def balances(self, job_item_id: UUID) -> list[WipBalanceInfo]:
        rows = self.session.execute(
            select(WipBalance, JobItemStep)
            .join(JobItemStep, JobItemStep.id == WipBalance.job_item_step_id)
            .where(WipBalance.job_item_id == job_item_id)
            .order_by(JobItemStep.position)
        ).all()
        return [
            WipBalanceInfo(
                job_item_id=balance.job_item_id,
                job_item_step_id=step.id,
                station_id=step.station_id,
                position=step.position,
                is_terminal=step.is_terminal,
                good_available=balance.good_available,
            )
            for balance, step in rows
        ]

    def balance_by_position(self, job_item_id: UUID) -> dict[int, int]:
        """``{position: good_available}``; handy for dashboards and tests."""
        return {b.position: b.good_available for b in self.balances(job_item_id)}

    def completed_good(self, job_item_id: UUID) -> int:
        value = self.session.execute(
            select(JobItemProgress.completed_good).where(
                JobItemProgress.job_item_id == job_item_id
            )
        ).scalar_one_or_none()
        return value or 0

    def consumptions_for_session(self, session_id: UUID) -> list[WipConsumptionInfo]:
        rows = self.session.execute(
            select(WipConsumption)
            .where(WipConsumption.consuming_session_id == session_id)
            .order_by(WipConsumption.created_at, WipConsumption.is_scrap)
        ).scalars()
        return [WipConsumptionInfo.from_model(row) for row in rows]

    def consumptions_for_job_item(self, job_item_id: UUID) -> list[WipConsumptionInfo]:
        rows = self.session.execute(
            select(WipConsumption)
            .where(WipConsumption.job_item_id == job_item_id)
            .order_by(WipConsumption.created_at, WipConsumption.is_scrap)
        ).scalars()
        return [WipConsumptionInfo.from_model(row) for row in rows]

    def pulled_from_step(self, job_item_step_id: UUID, *, is_scrap: bool | None = None) -> int:
        stmt = select(func.coalesce(func.sum(WipConsumption.good_used), 0)).where(
            WipConsumption.from_job_item_step_id == job_item_step_id
        )
        if is_scrap is not None:
            stmt = stmt.where(WipConsumption.is_scrap.is_(is_scrap))
        return int(self.session.execute(stmt).scalar_one())

    def session_accounting(self, session_id: UUID) -> SessionWipAccounting:
        totals = self.session.execute(
            select(
                func.coalesce(func.sum(StatusEvent.quantity_good), 0),
                func.coalesce(func.sum(StatusEvent.quantity_scrap), 0),
            ).where(StatusEvent.session_id == session_id)
        ).one()
        pulled = self.session.execute(
            select(
                func.coalesce(
                    func.sum(case((WipConsumption.is_scrap.is_(False), WipConsumption.good_used), else_=0)),
                    0,
                ),
                func.coalesce(
                    func.sum(case((WipConsumption.is_scrap.is_(True), WipConsumption.good_used), else_=0)),
                    0,
                ),
            ).where(WipConsumption.consuming_session_id == session_id)
        ).one()
        return SessionWipAccounting(
            session_id=session_id,
            total_good=int(totals[0]),
            total_scrap=int(totals[1]),
            pulled_good=int(pulled[0]),
            pulled_scrap=int(pulled[1]),
        )
