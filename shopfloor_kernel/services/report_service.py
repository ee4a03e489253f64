"""
ReportService -- malfunction / general / scrap reports and the
first-product approval gate.

Responsibility:
    Files reports with a server-enforced initial status, moves them through
    their type's state machine, edits non-status fields, and answers the
    first-product approval check for a session at a pipeline step.

Architecture position:
    Kernel > Services.  Transition tables live in domain/report_lifecycle.py;
    this service only loads, locks, checks and writes.

Invariants enforced:
    - New malfunction reports start ``open``; general and scrap start
      ``new``, whatever the caller asked for.
    - Status changes follow REPORT_TRANSITIONS; same-state moves are no-ops.
    - Field edits never engage the transition guard.
    - At most one first-product request per (session, step): the session
      row is locked while checking, and uq_reports_first_product_request
      backs it in storage.

Failure modes:
    - ReportNotFoundError, ReportTypeInvalidError,
      ReportTransitionForbiddenError.
    - SessionNotFoundError, NoJobItemBoundError, JobItemStepNotFoundError,
      ApprovalNotRequiredError, ApprovalAlreadyApprovedError,
      ApprovalAlreadyPendingError.
"""

from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from shopfloor_kernel.domain.dtos import ApprovalCheck, ReportInfo
from shopfloor_kernel.domain.report_lifecycle import (
    ApprovalState,
    ReportStatus,
    ReportType,
    initial_status,
    is_transition_allowed,
)
from shopfloor_kernel.exceptions import (
    ApprovalAlreadyApprovedError,
    ApprovalAlreadyPendingError,
    ApprovalNotRequiredError,
    JobItemStepNotFoundError,
    NoJobItemBoundError,
    ReportNotFoundError,
    ReportTransitionForbiddenError,
    ReportTypeInvalidError,
    SessionNotFoundError,
)
from shopfloor_kernel.logging_config import get_logger
from shopfloor_kernel.models.job_item import JobItemStep
from shopfloor_kernel.models.report import Report
from shopfloor_kernel.models.work_session import WorkSession
from shopfloor_kernel.services.base import BaseService

logger = get_logger("services.report")

_UNSET = object()


def _coerce_type(report_type: object) -> ReportType:
    try:
        return ReportType(report_type)
    except ValueError:
        raise ReportTypeInvalidError(report_type) from None


class ReportService(BaseService[Report]):
    """
    Files and transitions reports, and answers first-product checks.

    Status moves lock the report row; approval checks and submissions lock
    the owning session row.
    """

    # ------------------------------------------------------------------
    # Creation and edits
    # ------------------------------------------------------------------

    def create_report(
        self,
        report_type: ReportType | str,
        *,
        station_id: UUID | None = None,
        session_id: UUID | None = None,
        status_event_id: UUID | None = None,
        job_item_id: UUID | None = None,
        description: str | None = None,
        image_url: str | None = None,
        station_reason_id: str | None = None,
        report_reason_id: str | None = None,
        reported_by_worker_id: UUID | None = None,
    ) -> ReportInfo:
        rtype = _coerce_type(report_type)
        report = Report(
            type=rtype,
            status=initial_status(rtype),
            station_id=station_id,
            session_id=session_id,
            status_event_id=status_event_id,
            job_item_id=job_item_id,
            is_first_product_qa=False,
            description=description,
            image_url=image_url,
            station_reason_id=station_reason_id,
            report_reason_id=report_reason_id,
            reported_by_worker_id=reported_by_worker_id,
        )
        self.session.add(report)
        self.session.flush()

        logger.info(
            "report_created",
            extra={
                "report_id": str(report.id),
                "report_type": rtype.value,
                "status": report.status.value,
            },
        )
        return ReportInfo.from_model(report)

    def _lock_report(self, report_id: UUID) -> Report:
        report = self.session.execute(
            select(Report)
            .where(Report.id == report_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if report is None:
            raise ReportNotFoundError(report_id)
        return report

    def update_report_status(
        self,
        report_id: UUID,
        new_status: ReportStatus | str,
        changed_by: str | None = None,
    ) -> ReportInfo:
        """
        Move a report along its type's state machine.

        Raises:
            ReportNotFoundError: No such report.
            ReportTransitionForbiddenError: Edge not in the type's table.
        """
        report = self._lock_report(report_id)
        current = ReportStatus(report.status)
        target = str(getattr(new_status, "value", new_status))

        if not is_transition_allowed(report.type, current, target):
            raise ReportTransitionForbiddenError(
                report_id, ReportType(report.type).value, current.value, target
            )

        if current.value == target:
            return ReportInfo.from_model(report)

        report.status = ReportStatus(target)
        report.status_changed_at = self.clock.now()
        report.status_changed_by = changed_by
        self.session.flush()

        logger.info(
            "report_status_changed",
            extra={
                "report_id": str(report.id),
                "report_type": ReportType(report.type).value,
                "from_status": current.value,
                "to_status": target,
            },
        )
        return ReportInfo.from_model(report)

    def update_report_fields(
        self,
        report_id: UUID,
        *,
        description=_UNSET,
        image_url=_UNSET,
        admin_notes=_UNSET,
    ) -> ReportInfo:
        report = self._lock_report(report_id)
        if description is not _UNSET:
            report.description = description
        if image_url is not _UNSET:
            report.image_url = image_url
        if admin_notes is not _UNSET:
            report.admin_notes = admin_notes
        self.session.flush()
        return ReportInfo.from_model(report)

    # ------------------------------------------------------------------
    # First-product approval gate
    # ------------------------------------------------------------------

    def _first_product_requests(self, session_id: UUID, job_item_step_id: UUID) -> list[Report]:
        return list(
            self.session.execute(
                select(Report)
                .where(Report.session_id == session_id)
                .where(Report.job_item_step_id == job_item_step_id)
                .where(Report.is_first_product_qa.is_(True))
                .where(Report.type == ReportType.GENERAL)
                .order_by(Report.created_at.desc())
            ).scalars()
        )

    def check_approval_for_session(
        self, session_id: UUID, job_item_step_id: UUID
    ) -> ApprovalCheck:
        """
        Classify the gate: not_required, needs_submission, pending, approved.
        """
        step = self.session.get(JobItemStep, job_item_step_id)
        if step is None:
            raise JobItemStepNotFoundError(job_item_step_id)
        if not step.requires_first_product_approval:
            return ApprovalCheck(required=False, status=ApprovalState.NOT_REQUIRED)

        requests = self._first_product_requests(session_id, job_item_step_id)
        approved = next((r for r in requests if r.status == ReportStatus.APPROVED), None)
        if approved is not None:
            return ApprovalCheck(
                required=True,
                status=ApprovalState.APPROVED,
                approved_report=ReportInfo.from_model(approved),
            )
        pending = next((r for r in requests if r.status == ReportStatus.NEW), None)
        if pending is not None:
            return ApprovalCheck(
                required=True,
                status=ApprovalState.PENDING,
                pending_report=ReportInfo.from_model(pending),
            )
        return ApprovalCheck(required=True, status=ApprovalState.NEEDS_SUBMISSION)

    def submit_first_product_approval(
        self,
        session_id: UUID,
        *,
        description: str | None = None,
        image_url: str | None = None,
        reported_by_worker_id: UUID | None = None,
    ) -> ReportInfo:
        """
        File the first-product approval request for the session's bound step.

        The session row is locked so two submissions for the same session
        serialize; the second sees the first and fails ALREADY_PENDING.
        """
        work_session = self.session.execute(
            select(WorkSession)
            .where(WorkSession.id == session_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if work_session is None:
            raise SessionNotFoundError(session_id)
        if work_session.job_item_id is None or work_session.job_item_step_id is None:
            raise NoJobItemBoundError(session_id)

        step_id = work_session.job_item_step_id
        check = self.check_approval_for_session(session_id, step_id)
        if check.status == ApprovalState.NOT_REQUIRED:
            raise ApprovalNotRequiredError(step_id)
        if check.status == ApprovalState.APPROVED:
            raise ApprovalAlreadyApprovedError(check.approved_report.id)
        if check.status == ApprovalState.PENDING:
            raise ApprovalAlreadyPendingError(check.pending_report.id)

        savepoint = self.session.begin_nested()
        try:
            report = Report(
                type=ReportType.GENERAL,
                status=ReportStatus.NEW,
                station_id=work_session.station_id,
                session_id=session_id,
                job_item_id=work_session.job_item_id,
                job_item_step_id=step_id,
                is_first_product_qa=True,
                description=description,
                image_url=image_url,
                reported_by_worker_id=reported_by_worker_id or work_session.worker_id,
            )
            self.session.add(report)
            self.session.flush()
            savepoint.commit()
        except IntegrityError:
            savepoint.rollback()
            existing = self._first_product_requests(session_id, step_id)
            raise ApprovalAlreadyPendingError(existing[0].id if existing else "unknown") from None

        logger.info(
            "first_product_approval_requested",
            extra={
                "report_id": str(report.id),
                "session_id": str(session_id),
                "job_item_step_id": str(step_id),
            },
        )
        return ReportInfo.from_model(report)
