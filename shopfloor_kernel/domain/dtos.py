"""
Domain Data Transfer Objects (``shopfloor_kernel.domain.dtos``).

Responsibility
--------------
Frozen snapshots of ORM rows and operation results.  Services and
selectors return these, never live ORM instances, so callers outside the
transaction cannot mutate or lazy-load through them.

Architecture position
---------------------
**Kernel domain layer** -- ZERO I/O.  ORM models are referenced for
typing only; conversion happens in ``from_model()``.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import TYPE_CHECKING
from uuid import UUID

from shopfloor_kernel.domain.report_lifecycle import ApprovalState, ReportStatus, ReportType
from shopfloor_kernel.domain.statuses import (
    MachineState,
    SessionStatus,
    StatusReportType,
    StatusScope,
)

if TYPE_CHECKING:
    from shopfloor_kernel.models.job_item import JobItemStep
    from shopfloor_kernel.models.report import Report
    from shopfloor_kernel.models.status import StatusDefinition, StatusEvent
    from shopfloor_kernel.models.wip import WipConsumption
    from shopfloor_kernel.models.work_session import WorkSession


@dataclass(frozen=True)
class SessionInfo:
    id: UUID
    worker_id: UUID
    station_id: UUID
    status: SessionStatus
    started_at: datetime
    job_id: UUID | None = None
    job_item_id: UUID | None = None
    job_item_step_id: UUID | None = None
    current_status_id: UUID | None = None
    last_status_change_at: datetime | None = None
    ended_at: datetime | None = None
    forced_closed_at: datetime | None = None
    instance_id: str | None = None
    last_seen_at: datetime | None = None
    worker_code_snapshot: str | None = None
    worker_full_name_snapshot: str | None = None
    station_code_snapshot: str | None = None
    station_name_snapshot: str | None = None

    @property
    def is_active(self) -> bool:
        return self.status == SessionStatus.ACTIVE

    @classmethod
    def from_model(cls, model: WorkSession) -> SessionInfo:
        return cls(
            id=model.id,
            worker_id=model.worker_id,
            station_id=model.station_id,
            status=SessionStatus(model.status),
            started_at=model.started_at,
            job_id=model.job_id,
            job_item_id=model.job_item_id,
            job_item_step_id=model.job_item_step_id,
            current_status_id=model.current_status_id,
            last_status_change_at=model.last_status_change_at,
            ended_at=model.ended_at,
            forced_closed_at=model.forced_closed_at,
            instance_id=model.instance_id,
            last_seen_at=model.last_seen_at,
            worker_code_snapshot=model.worker_code_snapshot,
            worker_full_name_snapshot=model.worker_full_name_snapshot,
            station_code_snapshot=model.station_code_snapshot,
            station_name_snapshot=model.station_name_snapshot,
        )


@dataclass(frozen=True)
class StatusEventInfo:
    id: UUID
    session_id: UUID
    status_definition_id: UUID
    started_at: datetime
    ended_at: datetime | None = None
    quantity_good: int | None = None
    quantity_scrap: int | None = None
    job_item_id: UUID | None = None
    job_item_step_id: UUID | None = None
    station_reason_id: str | None = None
    note: str | None = None
    report_id: UUID | None = None

    @property
    def is_open(self) -> bool:
        return self.ended_at is None

    @classmethod
    def from_model(cls, model: StatusEvent) -> StatusEventInfo:
        return cls(
            id=model.id,
            session_id=model.session_id,
            status_definition_id=model.status_definition_id,
            started_at=model.started_at,
            ended_at=model.ended_at,
            quantity_good=model.quantity_good,
            quantity_scrap=model.quantity_scrap,
            job_item_id=model.job_item_id,
            job_item_step_id=model.job_item_step_id,
            station_reason_id=model.station_reason_id,
            note=model.note,
            report_id=model.report_id,
        )


@dataclass(frozen=True)
class StatusDefinitionInfo:
    id: UUID
    scope: StatusScope
    machine_state: MachineState
    label_he: str
    color_hex: str
    report_type: StatusReportType
    is_protected: bool
    station_id: UUID | None = None
    label_ru: str | None = None
    protected_key: str | None = None
    is_active: bool = True

    @classmethod
    def from_model(cls, model: StatusDefinition) -> StatusDefinitionInfo:
        return cls(
            id=model.id,
            scope=StatusScope(model.scope),
            machine_state=MachineState(model.machine_state),
            label_he=model.label_he,
            color_hex=model.color_hex,
            report_type=StatusReportType(model.report_type),
            is_protected=model.is_protected,
            station_id=model.station_id,
            label_ru=model.label_ru,
            protected_key=model.protected_key,
            is_active=model.is_active,
        )


@dataclass(frozen=True)
class PipelineStepInfo:
    id: UUID
    job_item_id: UUID
    station_id: UUID
    position: int
    is_terminal: bool
    requires_first_product_approval: bool

    @classmethod
    def from_model(cls, model: JobItemStep) -> PipelineStepInfo:
        return cls(
            id=model.id,
            job_item_id=model.job_item_id,
            station_id=model.station_id,
            position=model.position,
            is_terminal=model.is_terminal,
            requires_first_product_approval=model.requires_first_product_approval,
        )


@dataclass(frozen=True)
class WipBalanceInfo:
    """Balance of one step, joined with its pipeline position."""

    job_item_id: UUID
    job_item_step_id: UUID
    station_id: UUID
    position: int
    is_terminal: bool
    good_available: int


@dataclass(frozen=True)
class WipConsumptionInfo:
    id: UUID
    job_item_id: UUID
    consuming_session_id: UUID
    from_job_item_step_id: UUID
    to_job_item_step_id: UUID
    good_used: int
    is_scrap: bool
    created_at: datetime

    @classmethod
    def from_model(cls, model: WipConsumption) -> WipConsumptionInfo:
        return cls(
            id=model.id,
            job_item_id=model.job_item_id,
            consuming_session_id=model.consuming_session_id,
            from_job_item_step_id=model.from_job_item_step_id,
            to_job_item_step_id=model.to_job_item_step_id,
            good_used=model.good_used,
            is_scrap=model.is_scrap,
            created_at=model.created_at,
        )


@dataclass(frozen=True)
class WipConsumptionResult:
    """
    What one ledger application did.

    ``originated_*`` are the units credited without an upstream pull: all
    of them at the first step, the shortfall at later steps.
    """

    job_item_id: UUID
    job_item_step_id: UUID
    position: int
    is_terminal: bool
    quantity_good: int
    quantity_scrap: int
    pulled_good: int
    pulled_scrap: int
    step_balance_after: int
    upstream_step_id: UUID | None = None
    upstream_balance_after: int | None = None
    completed_good_after: int | None = None

    @property
    def originated_good(self) -> int:
        return self.quantity_good - self.pulled_good

    @property
    def originated_scrap(self) -> int:
        return self.quantity_scrap - self.pulled_scrap


@dataclass(frozen=True)
class ProductionEndResult:
    """Closed production event, the event opened after it, and the ledger outcome."""

    updated_event: StatusEventInfo
    new_status_event: StatusEventInfo
    wip: WipConsumptionResult | None = None


@dataclass(frozen=True)
class ReportInfo:
    id: UUID
    type: ReportType
    status: ReportStatus
    is_first_product_qa: bool
    station_id: UUID | None = None
    session_id: UUID | None = None
    status_event_id: UUID | None = None
    job_item_id: UUID | None = None
    job_item_step_id: UUID | None = None
    description: str | None = None
    image_url: str | None = None
    station_reason_id: str | None = None
    report_reason_id: str | None = None
    reported_by_worker_id: UUID | None = None
    admin_notes: str | None = None
    status_changed_at: datetime | None = None
    status_changed_by: str | None = None

    @classmethod
    def from_model(cls, model: Report) -> ReportInfo:
        return cls(
            id=model.id,
            type=ReportType(model.type),
            status=ReportStatus(model.status),
            is_first_product_qa=model.is_first_product_qa,
            station_id=model.station_id,
            session_id=model.session_id,
            status_event_id=model.status_event_id,
            job_item_id=model.job_item_id,
            job_item_step_id=model.job_item_step_id,
            description=model.description,
            image_url=model.image_url,
            station_reason_id=model.station_reason_id,
            report_reason_id=model.report_reason_id,
            reported_by_worker_id=model.reported_by_worker_id,
            admin_notes=model.admin_notes,
            status_changed_at=model.status_changed_at,
            status_changed_by=model.status_changed_by,
        )


@dataclass(frozen=True)
class ApprovalCheck:
    """Outcome of the first-product approval gate for one session and step."""

    required: bool
    status: ApprovalState
    pending_report: ReportInfo | None = None
    approved_report: ReportInfo | None = None

    @property
    def is_satisfied(self) -> bool:
        return self.status in (ApprovalState.NOT_REQUIRED, ApprovalState.APPROVED)


@dataclass(frozen=True)
class SessionWipAccounting:
    """How much of a session's output was pulled versus originated."""

    session_id: UUID
    total_good: int
    total_scrap: int
    pulled_good: int
    pulled_scrap: int

    @property
    def originated_good(self) -> int:
        return self.total_good - self.pulled_good

    @property
    def originated_scrap(self) -> int:
        return self.total_scrap - self.pulled_scrap


@dataclass(frozen=True)
class SessionTotals:
    """Quantities a session reported for its currently bound job item."""

    session_id: UUID
    job_item_id: UUID | None
    total_good: int
    total_scrap: int
