"""
shopfloor_services.floor_operations -- transactional facade.

Responsibility:
    ``FloorServices`` wires every kernel service once per database
    session.  ``FloorOperations`` exposes each floor operation as one
    transaction: open a session from the factory, bind the log context,
    run the kernel services, commit; on any exception roll back, log
    ``transaction_rolled_back`` and re-raise.

Architecture position:
    Services -- the only layer that commits.  Kernel services flush but
    never commit or roll back, so an operation that fails part-way leaves
    no partial writes.

Usage:
    from shopfloor_config import get_active_config
    from shopfloor_kernel.db.engine import init_engine_from_url
    from shopfloor_services import FloorOperations

    config = get_active_config()
    init_engine_from_url(config.database.url)
    ops = FloorOperations.from_config(config)
    ops.ensure_protected_statuses()
    session = ops.create_session(worker_id, station_id, instance_id="tab-1")
"""

from __future__ import annotations

from collections.abc import Callable, Generator, Sequence
from contextlib import contextmanager
from typing import Any, TypeVar
from uuid import UUID

from sqlalchemy.orm import Session, sessionmaker

from shopfloor_config import FloorConfig, build_status_catalog
from shopfloor_kernel.db.engine import get_session_factory
from shopfloor_kernel.db.immutability import register_immutability_listeners
from shopfloor_kernel.domain.clock import Clock, SystemClock
from shopfloor_kernel.domain.dtos import (
    ApprovalCheck,
    PipelineStepInfo,
    ProductionEndResult,
    ReportInfo,
    SessionInfo,
    SessionTotals,
    SessionWipAccounting,
    StatusDefinitionInfo,
    StatusEventInfo,
    WipBalanceInfo,
    WipConsumptionInfo,
)
from shopfloor_kernel.domain.statuses import StatusCatalog
from shopfloor_kernel.logging_config import LogContext, get_logger
from shopfloor_kernel.selectors import SessionSelector, WipSelector
from shopfloor_kernel.services.pipeline_service import PipelineService
from shopfloor_kernel.services.production_reporter import ProductionReporter
from shopfloor_kernel.services.report_service import ReportService
from shopfloor_kernel.services.session_service import (
    ABORTED_NOTE,
    REPLACED_NOTE,
    SessionService,
)
from shopfloor_kernel.services.status_definition_service import StatusDefinitionService
from shopfloor_kernel.services.wip_ledger_service import WipLedgerService

logger = get_logger("services.floor_operations")

T = TypeVar("T")


class FloorServices:
    """Kernel services sharing one Session and one Clock.

    Does NOT manage transaction boundaries.
    """

    def __init__(
        self,
        session: Session,
        catalog: StatusCatalog,
        clock: Clock,
        replaced_note: str = REPLACED_NOTE,
        aborted_note: str = ABORTED_NOTE,
    ) -> None:
        self.session = session
        self.statuses = StatusDefinitionService(session, catalog, clock)
        self.reports = ReportService(session, clock)
        self.sessions = SessionService(
            session,
            self.statuses,
            self.reports,
            clock,
            replaced_note=replaced_note,
            aborted_note=aborted_note,
        )
        self.ledger = WipLedgerService(session, clock)
        self.production = ProductionReporter(session, self.sessions, self.ledger, clock)
        self.pipelines = PipelineService(session, clock)
        self.session_reads = SessionSelector(session)
        self.wip_reads = WipSelector(session)


class FloorOperations:
    """One method per floor operation; each call is one transaction."""

    def __init__(
        self,
        catalog: StatusCatalog,
        session_factory: sessionmaker[Session] | Callable[[], Session] | None = None,
        clock: Clock | None = None,
        replaced_note: str = REPLACED_NOTE,
        aborted_note: str = ABORTED_NOTE,
    ) -> None:
        self.catalog = catalog
        self._session_factory = session_factory or get_session_factory()
        self.clock = clock or SystemClock()
        self._replaced_note = replaced_note
        self._aborted_note = aborted_note
        register_immutability_listeners()

    @classmethod
    def from_config(
        cls,
        config: FloorConfig,
        session_factory: sessionmaker[Session] | Callable[[], Session] | None = None,
        clock: Clock | None = None,
    ) -> FloorOperations:
        return cls(
            build_status_catalog(config),
            session_factory=session_factory,
            clock=clock,
            replaced_note=config.sessions.replaced_note,
            aborted_note=config.sessions.aborted_note,
        )

    @contextmanager
    def transaction(self, operation: str, **context: Any) -> Generator[FloorServices, None, None]:
        """
        Run one operation atomically.

        ``context`` keys must be LogContext fields; they are bound for the
        duration of the operation.
        """
        session = self._session_factory()
        try:
            with LogContext.bind(**context):
                services = FloorServices(
                    session,
                    self.catalog,
                    self.clock,
                    replaced_note=self._replaced_note,
                    aborted_note=self._aborted_note,
                )
                try:
                    yield services
                    session.commit()
                except Exception:
                    session.rollback()
                    logger.warning(
                        "transaction_rolled_back",
                        extra={"operation": operation},
                        exc_info=True,
                    )
                    raise
        finally:
            session.close()

    def _read(self, fn: Callable[[FloorServices], T]) -> T:
        session = self._session_factory()
        try:
            return fn(
                FloorServices(session, self.catalog, self.clock, self._replaced_note, self._aborted_note)
            )
        finally:
            session.rollback()
            session.close()

    # ------------------------------------------------------------------
    # Sessions and status events
    # ------------------------------------------------------------------

    def create_session(
        self,
        worker_id: UUID,
        station_id: UUID,
        instance_id: str | None = None,
        job_id: UUID | None = None,
        job_item_id: UUID | None = None,
        job_item_step_id: UUID | None = None,
        initial_status_id: UUID | None = None,
    ) -> SessionInfo:
        with self.transaction(
            "create_session",
            worker_id=worker_id,
            station_id=station_id,
            job_item_id=job_item_id,
            instance_id=instance_id,
        ) as svc:
            return svc.sessions.create_session(
                worker_id,
                station_id,
                instance_id,
                job_id=job_id,
                job_item_id=job_item_id,
                job_item_step_id=job_item_step_id,
                initial_status_id=initial_status_id,
            )

    def start_status_event(
        self,
        session_id: UUID,
        status_definition_id: UUID,
        note: str | None = None,
        station_reason_id: str | None = None,
        report_id: UUID | None = None,
    ) -> StatusEventInfo:
        with self.transaction("start_status_event", session_id=session_id) as svc:
            return svc.sessions.start_status_event(
                session_id,
                status_definition_id,
                note=note,
                station_reason_id=station_reason_id,
                report_id=report_id,
            )

    def end_production_status(
        self,
        session_id: UUID,
        status_event_id: UUID,
        quantity_good: int,
        quantity_scrap: int,
        next_status_id: UUID,
    ) -> ProductionEndResult:
        with self.transaction("end_production_status", session_id=session_id) as svc:
            return svc.production.end_production_status(
                session_id, status_event_id, quantity_good, quantity_scrap, next_status_id
            )

    def bind_job_item_to_session(
        self,
        session_id: UUID,
        job_id: UUID,
        job_item_id: UUID,
        job_item_step_id: UUID,
    ) -> SessionInfo:
        with self.transaction(
            "bind_job_item_to_session", session_id=session_id, job_item_id=job_item_id
        ) as svc:
            return svc.sessions.bind_job_item(session_id, job_id, job_item_id, job_item_step_id)

    def complete_session(self, session_id: UUID) -> SessionInfo:
        with self.transaction("complete_session", session_id=session_id) as svc:
            return svc.sessions.complete_session(session_id)

    def abort_session(self, session_id: UUID, note: str | None = None) -> SessionInfo:
        with self.transaction("abort_session", session_id=session_id) as svc:
            return svc.sessions.abort_session(session_id, note)

    def close_active_sessions_for_worker(
        self, worker_id: UUID, note: str | None = None
    ) -> list[UUID]:
        with self.transaction("close_active_sessions_for_worker", worker_id=worker_id) as svc:
            return svc.sessions.close_active_sessions_for_worker(worker_id, note)

    def takeover_session(
        self,
        session_id: UUID,
        worker_id: UUID,
        instance_id: str,
        expected_instance_id: str | None = None,
    ) -> SessionInfo:
        with self.transaction(
            "takeover_session",
            session_id=session_id,
            worker_id=worker_id,
            instance_id=instance_id,
        ) as svc:
            return svc.sessions.takeover_session(
                session_id, worker_id, instance_id, expected_instance_id
            )

    # ------------------------------------------------------------------
    # Pipelines
    # ------------------------------------------------------------------

    def setup_pipeline(
        self,
        job_item_id: UUID,
        station_ids: Sequence[UUID],
        preset_id: UUID | None = None,
        approval_flags: Sequence[bool] | None = None,
    ) -> list[PipelineStepInfo]:
        with self.transaction("setup_pipeline", job_item_id=job_item_id) as svc:
            return svc.pipelines.setup_pipeline(
                job_item_id, station_ids, preset_id=preset_id, approval_flags=approval_flags
            )

    def setup_pipeline_from_preset(
        self, job_item_id: UUID, preset_id: UUID
    ) -> list[PipelineStepInfo]:
        with self.transaction("setup_pipeline_from_preset", job_item_id=job_item_id) as svc:
            return svc.pipelines.setup_pipeline_from_preset(job_item_id, preset_id)

    def create_pipeline_preset(
        self,
        name: str,
        station_ids: Sequence[UUID],
        approval_flags: Sequence[bool] | None = None,
    ) -> UUID:
        with self.transaction("create_pipeline_preset") as svc:
            return svc.pipelines.create_preset(name, station_ids, approval_flags)

    def set_step_approval_requirement(
        self, job_item_step_id: UUID, required: bool
    ) -> PipelineStepInfo:
        with self.transaction("set_step_approval_requirement") as svc:
            return svc.pipelines.set_step_approval_requirement(job_item_step_id, required)

    # ------------------------------------------------------------------
    # Reports and first-product approval
    # ------------------------------------------------------------------

    def create_report(self, report_type: str, **fields: Any) -> ReportInfo:
        with self.transaction(
            "create_report", session_id=fields.get("session_id")
        ) as svc:
            return svc.reports.create_report(report_type, **fields)

    def update_report_status(
        self, report_id: UUID, new_status: str, changed_by: str | None = None
    ) -> ReportInfo:
        with self.transaction("update_report_status") as svc:
            return svc.reports.update_report_status(report_id, new_status, changed_by)

    def update_report_fields(self, report_id: UUID, **fields: Any) -> ReportInfo:
        with self.transaction("update_report_fields") as svc:
            return svc.reports.update_report_fields(report_id, **fields)

    def check_approval_for_session(
        self, session_id: UUID, job_item_step_id: UUID
    ) -> ApprovalCheck:
        return self._read(
            lambda svc: svc.reports.check_approval_for_session(session_id, job_item_step_id)
        )

    def submit_first_product_approval(
        self,
        session_id: UUID,
        description: str | None = None,
        image_url: str | None = None,
        reported_by_worker_id: UUID | None = None,
    ) -> ReportInfo:
        with self.transaction("submit_first_product_approval", session_id=session_id) as svc:
            return svc.reports.submit_first_product_approval(
                session_id,
                description=description,
                image_url=image_url,
                reported_by_worker_id=reported_by_worker_id,
            )

    # ------------------------------------------------------------------
    # Status registry
    # ------------------------------------------------------------------

    def ensure_protected_statuses(self) -> list[StatusDefinitionInfo]:
        with self.transaction("ensure_protected_statuses") as svc:
            return svc.statuses.ensure_protected_statuses()

    def create_status_definition(self, **fields: Any) -> StatusDefinitionInfo:
        with self.transaction("create_status_definition", station_id=fields.get("station_id")) as svc:
            return svc.statuses.create(**fields)

    def update_status_definition(
        self, status_definition_id: UUID, **fields: Any
    ) -> StatusDefinitionInfo:
        with self.transaction("update_status_definition") as svc:
            return svc.statuses.update(status_definition_id, **fields)

    def delete_status_definition(self, status_definition_id: UUID) -> StatusDefinitionInfo:
        with self.transaction("delete_status_definition") as svc:
            return svc.statuses.delete(status_definition_id)

    def statuses_for_station(self, station_id: UUID) -> list[StatusDefinitionInfo]:
        return self._read(lambda svc: svc.statuses.list_for_station(station_id))

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_session(self, session_id: UUID) -> SessionInfo | None:
        return self._read(lambda svc: svc.session_reads.get(session_id))

    def active_session_for_worker(self, worker_id: UUID) -> SessionInfo | None:
        return self._read(lambda svc: svc.session_reads.active_session_for_worker(worker_id))

    def open_events(self, session_id: UUID) -> list[StatusEventInfo]:
        return self._read(lambda svc: svc.session_reads.open_events(session_id))

    def session_totals(self, session_id: UUID) -> SessionTotals:
        return self._read(lambda svc: svc.session_reads.current_job_item_totals(session_id))

    def wip_balances(self, job_item_id: UUID) -> list[WipBalanceInfo]:
        return self._read(lambda svc: svc.wip_reads.balances(job_item_id))

    def completed_good(self, job_item_id: UUID) -> int:
        return self._read(lambda svc: svc.wip_reads.completed_good(job_item_id))

    def session_wip_accounting(self, session_id: UUID) -> SessionWipAccounting:
        return self._read(lambda svc: svc.wip_reads.session_accounting(session_id))

    def consumptions_for_session(self, session_id: UUID) -> list[WipConsumptionInfo]:
        return self._read(lambda svc: svc.wip_reads.consumptions_for_session(session_id))
