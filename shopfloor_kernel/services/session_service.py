"""
SessionService -- session lifecycle and the status-event state machine.

Responsibility:
    Creates sessions with their initial status event, opens and closes
    status events, mirrors the current status onto the session, binds job
    items, completes / aborts sessions, and performs the instance takeover
    compare-and-swap.

Architecture position:
    Kernel > Services.  Uses StatusDefinitionService to resolve statuses
    and ReportService for the first-product approval gate.

Invariants enforced:
    - One open status event per session.  Every transition locks the
      session row FOR UPDATE, closes open events, inserts the new event and
      mirrors current_status_id as one unit; the partial unique index
      uq_status_events_one_open_per_session backs it in storage.
    - One active session per worker.  Creation closes the worker's existing
      active sessions, then inserts under a savepoint; a unique violation
      on uq_sessions_one_active_per_worker becomes SessionConflictError.
    - Transitions on different sessions never block each other (row locks
      only).
    - Production cannot start at a step that requires first-product
      approval until the check returns ``approved``.
    - Opening a production interval on a bound session locks the job
      item's pipeline.

Failure modes:
    - SessionNotFoundError, SessionConflictError, SessionNotActiveError,
      SessionOwnershipError, InstanceMismatchError.
    - StatusDefinitionNotFoundError, StatusNotAllowedError,
      StopStatusNotFoundError, FirstProductApprovalRequiredError.
    - JobItemNotFoundError, JobItemJobMismatchError, JobItemInactiveError,
      JobItemStationNotFoundError, JobItemStationMismatchError.
"""

from datetime import datetime
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from shopfloor_kernel.domain.clock import Clock
from shopfloor_kernel.domain.dtos import SessionInfo, StatusEventInfo
from shopfloor_kernel.domain.statuses import MachineState, SessionStatus
from shopfloor_kernel.exceptions import (
    FirstProductApprovalRequiredError,
    InstanceMismatchError,
    JobItemInactiveError,
    JobItemJobMismatchError,
    JobItemNotFoundError,
    JobItemStationMismatchError,
    JobItemStationNotFoundError,
    SessionConflictError,
    SessionNotActiveError,
    SessionNotFoundError,
    SessionOwnershipError,
)
from shopfloor_kernel.logging_config import get_logger
from shopfloor_kernel.models.job_item import JobItem, JobItemStep
from shopfloor_kernel.models.reference import Station, Worker
from shopfloor_kernel.models.status import StatusDefinition, StatusEvent
from shopfloor_kernel.models.work_session import WorkSession
from shopfloor_kernel.services.base import BaseService
from shopfloor_kernel.services.report_service import ReportService
from shopfloor_kernel.services.status_definition_service import StatusDefinitionService

logger = get_logger("services.session")

REPLACED_NOTE = "replaced-by-new-session"
ABORTED_NOTE = "session-aborted"


class SessionService(BaseService[WorkSession]):
    """
    Owns the worker session lifecycle.

    Every mutating call locks the session row first, so transitions on one
    session serialize while different sessions proceed independently.
    Flushes only; the caller owns the transaction.

    Usage:
        service = SessionService(session, statuses, reports, clock)
        info = service.create_session(worker_id, station_id, instance_id)
        service.bind_job_item(info.id, job_id, job_item_id, step_id)
        service.start_status_event(info.id, production_status_id)
    """

    def __init__(
        self,
        session: Session,
        statuses: StatusDefinitionService,
        reports: ReportService | None = None,
        clock: Clock | None = None,
        replaced_note: str = REPLACED_NOTE,
        aborted_note: str = ABORTED_NOTE,
    ):
        super().__init__(session, clock)
        self.statuses = statuses
        self.reports = reports or ReportService(session, self.clock)
        self.replaced_note = replaced_note
        self.aborted_note = aborted_note

    # ------------------------------------------------------------------
    # Locking and lookup
    # ------------------------------------------------------------------

    def lock_session(self, session_id: UUID) -> WorkSession:
        """Load the session row FOR UPDATE, refreshing any stale copy."""
        work_session = self.session.execute(
            select(WorkSession)
            .where(WorkSession.id == session_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if work_session is None:
            raise SessionNotFoundError(session_id)
        return work_session

    def get_open_event(self, session_id: UUID) -> StatusEvent | None:
        return self.session.execute(
            select(StatusEvent)
            .where(StatusEvent.session_id == session_id)
            .where(StatusEvent.ended_at.is_(None))
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()

    # ------------------------------------------------------------------
    # Status transitions
    # ------------------------------------------------------------------

    def resolve_status(
        self, work_session: WorkSession, status_definition_id: UUID
    ) -> StatusDefinition:
        """
        Resolve and guard the status ``work_session`` is about to enter.

        Checked before any mutation so a rejected transition leaves the
        session untouched.
        """
        if work_session.status != SessionStatus.ACTIVE:
            raise SessionNotActiveError(work_session.id, work_session.status)
        status = self.statuses.get_for_station(status_definition_id, work_session.station_id)
        if status.is_production and work_session.job_item_step_id is not None:
            check = self.reports.check_approval_for_session(
                work_session.id, work_session.job_item_step_id
            )
            if not check.is_satisfied:
                raise FirstProductApprovalRequiredError(
                    work_session.id, work_session.job_item_step_id, check.status.value
                )
        return status

    def _close_open_events(self, session_id: UUID, now: datetime) -> int:
        return self.session.execute(
            update(StatusEvent)
            .where(StatusEvent.session_id == session_id)
            .where(StatusEvent.ended_at.is_(None))
            .values(ended_at=now)
            .execution_options(synchronize_session="fetch")
        ).rowcount

    def open_event(
        self,
        work_session: WorkSession,
        status: StatusDefinition,
        *,
        note: str | None = None,
        station_reason_id: str | None = None,
        report_id: UUID | None = None,
    ) -> StatusEvent:
        """
        Close any open event, open one for ``status`` and mirror it.

        ``work_session`` must already be locked by the caller.
        """
        now = self.clock.now()
        self._close_open_events(work_session.id, now)

        event = StatusEvent(
            session_id=work_session.id,
            status_definition_id=status.id,
            started_at=now,
            job_item_id=work_session.job_item_id,
            job_item_step_id=work_session.job_item_step_id,
            station_reason_id=station_reason_id,
            note=note,
            report_id=report_id,
        )
        self.session.add(event)

        work_session.current_status_id = status.id
        work_session.last_status_change_at = now

        if status.is_production and work_session.job_item_id is not None:
            self.session.execute(
                update(JobItem)
                .where(JobItem.id == work_session.job_item_id)
                .where(JobItem.is_pipeline_locked.is_(False))
                .values(is_pipeline_locked=True)
            )
        self.session.flush()

        logger.info(
            "status_event_started",
            extra={
                "session_id": str(work_session.id),
                "status_event_id": str(event.id),
                "status_definition_id": str(status.id),
                "machine_state": MachineState(status.machine_state).value,
            },
        )
        return event

    def start_status_event(
        self,
        session_id: UUID,
        status_definition_id: UUID,
        note: str | None = None,
        station_reason_id: str | None = None,
        report_id: UUID | None = None,
    ) -> StatusEventInfo:
        """
        Move an active session into ``status_definition_id``.

        Closes the open event and opens the new one under the session row
        lock.  Entering a production status on a step gated by first-product
        approval requires an approved request.

        Raises:
            SessionNotFoundError, SessionNotActiveError,
            StatusNotAllowedError, FirstProductApprovalRequiredError.
        """
        work_session = self.lock_session(session_id)
        status = self.resolve_status(work_session, status_definition_id)
        event = self.open_event(
            work_session,
            status,
            note=note,
            station_reason_id=station_reason_id,
            report_id=report_id,
        )
        return StatusEventInfo.from_model(event)

    # ------------------------------------------------------------------
    # Creation and closing
    # ------------------------------------------------------------------

    def _close_session(
        self,
        work_session: WorkSession,
        final_status: SessionStatus,
        note: str | None,
        forced: bool,
    ) -> None:
        now = self.clock.now()
        open_event = self.get_open_event(work_session.id)
        if open_event is not None:
            open_event.ended_at = now
            if note and not open_event.note:
                open_event.note = note
        work_session.status = final_status
        work_session.ended_at = now
        work_session.close_note = note
        if forced:
            work_session.forced_closed_at = now

    def _lock_active_sessions(self, worker_id: UUID) -> list[WorkSession]:
        return list(
            self.session.execute(
                select(WorkSession)
                .where(WorkSession.worker_id == worker_id)
                .where(WorkSession.status == SessionStatus.ACTIVE)
                .order_by(WorkSession.started_at)
                .with_for_update()
                .execution_options(populate_existing=True)
            ).scalars()
        )

    def close_active_sessions_for_worker(
        self, worker_id: UUID, note: str | None = None
    ) -> list[UUID]:
        """
        Abort every active session of ``worker_id``.  Idempotent.

        Returns:
            Ids of the sessions closed; empty when there were none.
        """
        closed = []
        for work_session in self._lock_active_sessions(worker_id):
            self._close_session(
                work_session, SessionStatus.ABORTED, note or self.aborted_note, forced=True
            )
            closed.append(work_session.id)
        self.session.flush()
        if closed:
            logger.info(
                "worker_sessions_closed",
                extra={"worker_id": str(worker_id), "session_ids": [str(s) for s in closed]},
            )
        return closed

    def create_session(
        self,
        worker_id: UUID,
        station_id: UUID,
        instance_id: str | None,
        job_id: UUID | None = None,
        job_item_id: UUID | None = None,
        job_item_step_id: UUID | None = None,
        initial_status_id: UUID | None = None,
    ) -> SessionInfo:
        """
        Open a session with its initial status event.

        Existing active sessions of the worker are aborted first with the
        replacement note.  Defaults to the protected stop status.
        """
        worker = self.session.get(Worker, worker_id)
        station = self.session.get(Station, station_id)

        self.close_active_sessions_for_worker(worker_id, note=self.replaced_note)

        now = self.clock.now()
        savepoint = self.session.begin_nested()
        try:
            work_session = WorkSession(
                worker_id=worker_id,
                station_id=station_id,
                job_id=job_id,
                job_item_id=job_item_id,
                job_item_step_id=job_item_step_id,
                status=SessionStatus.ACTIVE,
                started_at=now,
                instance_id=instance_id,
                last_seen_at=now,
                worker_code_snapshot=worker.worker_code if worker else None,
                worker_full_name_snapshot=worker.full_name if worker else None,
                station_code_snapshot=station.code if station else None,
                station_name_snapshot=station.name if station else None,
            )
            self.session.add(work_session)
            self.session.flush()
            savepoint.commit()
        except IntegrityError as exc:
            savepoint.rollback()
            if "uq_sessions_one_active_per_worker" in str(exc.orig):
                logger.warning("session_conflict", extra={"worker_id": str(worker_id)})
                raise SessionConflictError(worker_id) from exc
            raise

        if initial_status_id is not None:
            status = self.resolve_status(work_session, initial_status_id)
        else:
            status = self.statuses.default_stop_status()
        self.open_event(work_session, status)

        logger.info(
            "session_created",
            extra={
                "session_id": str(work_session.id),
                "worker_id": str(worker_id),
                "station_id": str(station_id),
                "initial_status_id": str(status.id),
            },
        )
        return SessionInfo.from_model(work_session)

    def complete_session(self, session_id: UUID) -> SessionInfo:
        """Close an active session as completed, ending its open event."""
        work_session = self.lock_session(session_id)
        if work_session.status != SessionStatus.ACTIVE:
            raise SessionNotActiveError(session_id, work_session.status)
        self._close_session(work_session, SessionStatus.COMPLETED, None, forced=False)
        self.session.flush()
        logger.info("session_completed", extra={"session_id": str(session_id)})
        return SessionInfo.from_model(work_session)

    def abort_session(self, session_id: UUID, note: str | None = None) -> SessionInfo:
        """Abort one session.  Aborting an already-closed session is a no-op."""
        work_session = self.lock_session(session_id)
        if work_session.status == SessionStatus.ACTIVE:
            self._close_session(
                work_session, SessionStatus.ABORTED, note or self.aborted_note, forced=True
            )
            self.session.flush()
            logger.info("session_aborted", extra={"session_id": str(session_id)})
        return SessionInfo.from_model(work_session)

    # ------------------------------------------------------------------
    # Binding
    # ------------------------------------------------------------------

    def bind_job_item(
        self,
        session_id: UUID,
        job_id: UUID,
        job_item_id: UUID,
        job_item_step_id: UUID,
    ) -> SessionInfo:
        """
        Attach a job item step at the session's station.

        A session already in a production status may only bind to a gated
        step once its first-product request is approved, and binding it
        locks the job item's pipeline.

        Raises:
            SessionNotActiveError, JobItemNotFoundError,
            JobItemJobMismatchError, JobItemInactiveError,
            JobItemStationNotFoundError, JobItemStationMismatchError,
            FirstProductApprovalRequiredError.
        """
        work_session = self.lock_session(session_id)
        if work_session.status != SessionStatus.ACTIVE:
            raise SessionNotActiveError(session_id, work_session.status)

        job_item =self.session.get(JobItem, job_item_id)
        if job_item is None:
            raise JobItemNotFoundError(job_item_id)
        if job_item.job_id != job_id:
            raise JobItemJobMismatchError(job_item_id, job_id)
        if not job_item.is_active:
            raise JobItemInactiveError(job_item_id)

        step = self.session.get(JobItemStep, job_item_step_id)
        if step is None:
            raise JobItemStationNotFoundError(job_item_step_id)
        if step.job_item_id != job_item_id or step.station_id != work_session.station_id:
            raise JobItemStationMismatchError(
                job_item_step_id, job_item_id, work_session.station_id
            )

        current = (
            self.session.get(StatusDefinition, work_session.current_status_id)
            if work_session.current_status_id is not None
            else None
        )
        in_production = current is not None and current.is_production
        if in_production:
            check = self.reports.check_approval_for_session(session_id, job_item_step_id)
            if not check.is_satisfied:
                raise FirstProductApprovalRequiredError(
                    session_id, job_item_step_id, check.status.value
                )

        work_session.job_id = job_id
        work_session.job_item_id = job_item_id
        work_session.job_item_step_id = job_item_step_id
        if in_production and not job_item.is_pipeline_locked:
            job_item.is_pipeline_locked = True
        self.session.flush()

        logger.info(
            "job_item_bound",
            extra={
                "session_id": str(session_id),
                "job_item_id": str(job_item_id),
                "job_item_step_id": str(job_item_step_id),
            },
        )
        return SessionInfo.from_model(work_session)

    # ------------------------------------------------------------------
    # Takeover
    # ------------------------------------------------------------------

    def takeover_session(
        self,
        session_id: UUID,
        worker_id: UUID,
        instance_id: str,
        expected_instance_id: str | None = None,
    ) -> SessionInfo:
        """
        Move session ownership to ``instance_id``.

        A compare-and-swap on sessions.instance_id: when
        ``expected_instance_id`` is given, the swap only happens if the
        column still holds that value.
        """
        now = self.clock.now()
        stmt = (
            update(WorkSession)
            .where(WorkSession.id == session_id)
            .where(WorkSession.worker_id == worker_id)
            .where(WorkSession.status == SessionStatus.ACTIVE)
            .values(instance_id=instance_id, last_seen_at=now)
            .execution_options(synchronize_session=False)
        )
        if expected_instance_id is not None:
            stmt = stmt.where(WorkSession.instance_id == expected_instance_id)

        if self.session.execute(stmt).rowcount == 1:
            work_session = self.session.execute(
                select(WorkSession)
                .where(WorkSession.id == session_id)
                .execution_options(populate_existing=True)
            ).scalar_one()
            logger.info(
                "session_taken_over",
                extra={"session_id": str(session_id), "instance_id": instance_id},
            )
            return SessionInfo.from_model(work_session)

        current = self.session.get(WorkSession, session_id, populate_existing=True)
        if current is None:
            raise SessionNotFoundError(session_id)
        if current.worker_id != worker_id:
            raise SessionOwnershipError(session_id, worker_id)
        if current.status != SessionStatus.ACTIVE:
            raise SessionNotActiveError(session_id, current.status)
        raise InstanceMismatchError(session_id, expected_instance_id, current.instance_id)
