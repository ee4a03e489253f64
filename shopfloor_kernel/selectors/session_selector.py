"""
SessionSelector -- read models over sessions and status events.
"""

from uuid import UUID

from sqlalchemy import func, select

from shopfloor_kernel.domain.dtos import SessionInfo, SessionTotals, StatusEventInfo
from shopfloor_kernel.domain.statuses import SessionStatus
from shopfloor_kernel.models.status import StatusEvent
from shopfloor_kernel.models.work_session import WorkSession
from shopfloor_kernel.selectors.base import BaseSelector


class SessionSelector(BaseSelector[WorkSession]):

    def get(self, session_id: UUID) -> SessionInfo | None:
        row = self.session.get(WorkSession, session_id, populate_existing=True)
        return SessionInfo.from_model(row) if row is not None else None

    def active_session_for_worker(self, worker_id: UUID) -> SessionInfo | None:
        row = self.session.execute(
            select(WorkSession)
            .where(WorkSession.worker_id == worker_id)
            .where(WorkSession.status == SessionStatus.ACTIVE)
        ).scalar_one_or_none()
        return SessionInfo.from_model(row) if row is not None else None

    def active_session_count(self, worker_id: UUID) -> int:
        return self.session.execute(
            select(func.count())
            .select_from(WorkSession)
            .where(WorkSession.worker_id == worker_id)
            .where(WorkSession.status == SessionStatus.ACTIVE)
        ).scalar_one()

    def open_events(self, session_id: UUID) -> list[StatusEventInfo]:
        rows = self.session.execute(
            select(StatusEvent)
            .where(StatusEvent.session_id == session_id)
            .where(StatusEvent.ended_at.is_(None))
        ).scalars()
        return [StatusEventInfo.from_model(row) for row in rows]

    def events(self, session_id: UUID) -> list[StatusEventInfo]:
        rows = self.session.execute(
            select(StatusEvent)
            .where(StatusEvent.session_id == session_id)
            .order_by(StatusEvent.started_at, StatusEvent.ended_at.nulls_last())
        ).scalars()
        return [StatusEventInfo.from_model(row) for row in rows]

    def current_job_item_totals(self, session_id: UUID) -> SessionTotals:
        """
        Quantities reported for the session's currently bound job item.

        Derived from status events whose job item snapshot matches the
        binding, so re-binding starts a fresh count.
        """
        work_session = self.session.get(WorkSession, session_id, populate_existing=True)
        if work_session is None or work_session.job_item_id is None:
            return SessionTotals(session_id, None, 0, 0)
        good, scrap = self.session.execute(
            select(
                func.coalesce(func.sum(StatusEvent.quantity_good), 0),
                func.coalesce(func.sum(StatusEvent.quantity_scrap), 0),
            )
            .where(StatusEvent.session_id == session_id)
            .where(StatusEvent.job_item_id == work_session.job_item_id)
        ).one()
        return SessionTotals(session_id, work_session.job_item_id, int(good), int(scrap))
