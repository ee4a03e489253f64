"""
Typed Exception Hierarchy for the Shop-Floor Kernel.

===============================================================================
TYPED EXCEPTIONS
===============================================================================

Every failure the kernel surfaces to a caller is a typed exception class
carrying:
  1. a ``code`` class attribute (machine-readable, stable, API-safe);
  2. a ``category`` class attribute naming how a caller should react;
  3. the structured identifiers involved, stored as instance attributes.

Example:
    try:
        ops.end_production_status(...)
    except StatusEventAlreadyEndedError as e:
        respond(code=e.code, status_event_id=e.status_event_id)

===============================================================================
CATEGORIES
===============================================================================

    conflict              -- uniqueness or invariant violation (one active
                             session per worker, one open event per session).
    not_found             -- referential integrity: missing row, or a row that
                             belongs to another parent.
    validation            -- malformed input rejected before any mutation.
    forbidden_transition  -- a state-machine guard refused the change.

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    FloorKernelError (base)
    |
    +-- SessionError
    |   +-- SessionNotFoundError          SESSION_NOT_FOUND
    |   +-- SessionConflictError          SESSION_CONFLICT
    |   +-- SessionNotActiveError         SESSION_NOT_ACTIVE
    |   +-- SessionOwnershipError         SESSION_OWNERSHIP_MISMATCH
    |   +-- InstanceMismatchError         INSTANCE_MISMATCH
    |
    +-- StatusEventError
    |   +-- StatusEventNotFoundError      STATUS_EVENT_NOT_FOUND
    |   +-- StatusEventSessionMismatchError STATUS_EVENT_SESSION_MISMATCH
    |   +-- StatusEventAlreadyEndedError  STATUS_EVENT_ALREADY_ENDED
    |   +-- InvalidQuantitiesError        INVALID_QUANTITIES
    |
    +-- StatusDefinitionError
    |   +-- StatusDefinitionNotFoundError STATUS_NOT_FOUND
    |   +-- StopStatusNotFoundError       STOP_STATUS_NOT_FOUND
    |   +-- StatusNotAllowedError         STATUS_NOT_ALLOWED
    |   +-- StatusLabelRequiredError      STATUS_LABEL_HE_REQUIRED
    |   +-- StatusColorNotAllowedError    STATUS_COLOR_INVALID_NOT_ALLOWED
    |   +-- ProtectedStatusScopeError     STATUS_PROTECTED_GLOBAL_ONLY
    |   +-- StatusStationRequiredError    STATUS_STATION_REQUIRED
    |   +-- StatusMachineStateInvalidError STATUS_MACHINE_STATE_INVALID
    |   +-- StatusReportTypeInvalidError  STATUS_REPORT_TYPE_INVALID
    |   +-- ProtectedStatusEditError      STATUS_EDIT_FORBIDDEN_PROTECTED
    |   +-- ProtectedStatusDeleteError    STATUS_DELETE_FORBIDDEN_PROTECTED
    |
    +-- JobItemError
    |   +-- JobItemNotFoundError          JOB_ITEM_NOT_FOUND
    |   +-- JobItemJobMismatchError       JOB_ITEM_JOB_MISMATCH
    |   +-- JobItemInactiveError          JOB_ITEM_INACTIVE
    |   +-- JobItemStationNotFoundError   JOB_ITEM_STATION_NOT_FOUND
    |   +-- JobItemStationMismatchError   JOB_ITEM_STATION_MISMATCH
    |   +-- JobItemStepNotFoundError      JOB_ITEM_STEP_NOT_FOUND
    |
    +-- PipelineError
    |   +-- PipelineEmptyError            PIPELINE_EMPTY
    |   +-- StationInvalidError           STATION_INVALID
    |   +-- PipelineLockedError           PIPELINE_LOCKED
    |   +-- PipelinePresetNotFoundError   PIPELINE_PRESET_NOT_FOUND
    |
    +-- WipError
    |   +-- WipBalanceNotFoundError       WIP_BALANCE_NOT_FOUND
    |
    +-- ReportError
    |   +-- ReportNotFoundError           REPORT_NOT_FOUND
    |   +-- ReportTypeInvalidError        REPORT_TYPE_INVALID
    |   +-- ReportTransitionForbiddenError TRANSITION_FORBIDDEN
    |
    +-- ApprovalError
    |   +-- FirstProductApprovalRequiredError FIRST_PRODUCT_APPROVAL_REQUIRED
    |   +-- NoJobItemBoundError           NO_JOB_ITEM_BOUND
    |   +-- ApprovalNotRequiredError      APPROVAL_NOT_REQUIRED
    |   +-- ApprovalAlreadyApprovedError  ALREADY_APPROVED
    |   +-- ApprovalAlreadyPendingError   ALREADY_PENDING
    |
    +-- ImmutabilityError
        +-- ImmutabilityViolationError    IMMUTABILITY_VIOLATION

===============================================================================
"""

from uuid import UUID

CONFLICT = "conflict"
NOT_FOUND = "not_found"
VALIDATION = "validation"
FORBIDDEN_TRANSITION = "forbidden_transition"


class FloorKernelError(Exception):
    """
    Base exception for all shop-floor kernel errors.

    All subclasses must define a ``code`` class attribute.
    """

    code: str = "FLOOR_KERNEL_ERROR"
    category: str = VALIDATION


# Session-related exceptions


class SessionError(FloorKernelError):
    """Base exception for session lifecycle errors."""

    code: str = "SESSION_ERROR"


class SessionNotFoundError(SessionError):
    """Session with given ID was not found."""

    code: str = "SESSION_NOT_FOUND"
    category: str = NOT_FOUND

    def __init__(self, session_id: UUID | str):
        self.session_id = str(session_id)
        super().__init__(f"Session not found: {session_id}")


class SessionConflictError(SessionError):
    """
    The worker already holds an active session.

    Raised when the one-active-session-per-worker unique index rejects
    an insert. The caller retries or treats the attempt as a takeover.
    """

    code: str = "SESSION_CONFLICT"
    category: str = CONFLICT

    def __init__(self, worker_id: UUID | str):
        self.worker_id = str(worker_id)
        super().__init__(f"Worker {worker_id} already has an active session")


class SessionNotActiveError(SessionError):
    """Operation requires an active session."""

    code: str = "SESSION_NOT_ACTIVE"
    category: str = FORBIDDEN_TRANSITION

    def __init__(self, session_id: UUID | str, status: str):
        self.session_id = str(session_id)
        self.status = getattr(status, "value", status)
        super().__init__(f"Session {session_id} is {self.status}, not active")


class SessionOwnershipError(SessionError):
    """Session belongs to another worker."""

    code: str = "SESSION_OWNERSHIP_MISMATCH"
    category: str = NOT_FOUND

    def __init__(self, session_id: UUID | str, worker_id: UUID | str):
        self.session_id = str(session_id)
        self.worker_id = str(worker_id)
        super().__init__(
            f"Session {session_id} does not belong to worker {worker_id}"
        )


class InstanceMismatchError(SessionError):
    """Takeover compare-and-swap lost: the owning instance changed."""

    code: str = "INSTANCE_MISMATCH"
    category: str = CONFLICT

    def __init__(
        self,
        session_id: UUID | str,
        expected_instance_id: str | None,
        actual_instance_id: str | None,
    ):
        self.session_id = str(session_id)
        self.expected_instance_id = expected_instance_id
        self.actual_instance_id = actual_instance_id
        super().__init__(
            f"Session {session_id} is owned by instance {actual_instance_id}, "
            f"expected {expected_instance_id}"
        )


# Status-event exceptions


class StatusEventError(FloorKernelError):
    """Base exception for status-event errors."""

    code: str = "STATUS_EVENT_ERROR"


class StatusEventNotFoundError(StatusEventError):
    code: str = "STATUS_EVENT_NOT_FOUND"
    category: str = NOT_FOUND

    def __init__(self, status_event_id: UUID | str):
        self.status_event_id = str(status_event_id)
        super().__init__(f"Status event not found: {status_event_id}")


class StatusEventSessionMismatchError(StatusEventError):
    """Status event belongs to a different session."""

    code: str = "STATUS_EVENT_SESSION_MISMATCH"
    category: str = NOT_FOUND

    def __init__(
        self,
        status_event_id: UUID | str,
        session_id: UUID | str,
        actual_session_id: UUID | str,
    ):
        self.status_event_id = str(status_event_id)
        self.session_id = str(session_id)
        self.actual_session_id = str(actual_session_id)
        super().__init__(
            f"Status event {status_event_id} belongs to session "
            f"{actual_session_id}, not {session_id}"
        )


class StatusEventAlreadyEndedError(StatusEventError):
    """
    Status event was already closed.

    A repeated end-production call lands here, so quantities are never
    applied twice.
    """

    code: str = "STATUS_EVENT_ALREADY_ENDED"
    category: str = CONFLICT

    def __init__(self, status_event_id: UUID | str):
        self.status_event_id = str(status_event_id)
        super().__init__(f"Status event already ended: {status_event_id}")


class InvalidQuantitiesError(StatusEventError):
    code: str = "INVALID_QUANTITIES"

    def __init__(self, quantity_good: object, quantity_scrap: object):
        self.quantity_good = quantity_good
        self.quantity_scrap = quantity_scrap
        super().__init__(
            "Quantities must be non-negative integers: "
            f"good={quantity_good!r}, scrap={quantity_scrap!r}"
        )


# Status-definition exceptions


class StatusDefinitionError(FloorKernelError):
    """Base exception for status-definition registry errors."""

    code: str = "STATUS_DEFINITION_ERROR"


class StatusDefinitionNotFoundError(StatusDefinitionError):
    code: str = "STATUS_NOT_FOUND"
    category: str = NOT_FOUND

    def __init__(self, status_definition_id: UUID | str):
        self.status_definition_id = str(status_definition_id)
        super().__init__(f"Status definition not found: {status_definition_id}")


class StopStatusNotFoundError(StatusDefinitionError):
    """The protected default stoppage status has not been seeded."""

    code: str = "STOP_STATUS_NOT_FOUND"
    category: str = NOT_FOUND

    def __init__(self, label_he: str):
        self.label_he = label_he
        super().__init__(f"Default stop status not found: {label_he}")


class StatusNotAllowedError(StatusDefinitionError):
    """Status is neither global nor scoped to the session's station."""

    code: str = "STATUS_NOT_ALLOWED"
    category: str = FORBIDDEN_TRANSITION

    def __init__(self, status_definition_id: UUID | str, station_id: UUID | str):
        self.status_definition_id = str(status_definition_id)
        self.station_id = str(station_id)
        super().__init__(
            f"Status {status_definition_id} is not allowed at station {station_id}"
        )


class StatusLabelRequiredError(StatusDefinitionError):
    code: str = "STATUS_LABEL_HE_REQUIRED"

    def __init__(self):
        super().__init__("Status label_he is required")


class StatusColorNotAllowedError(StatusDefinitionError):
    code: str = "STATUS_COLOR_INVALID_NOT_ALLOWED"

    def __init__(self, color_hex: str):
        self.color_hex = color_hex
        super().__init__(f"Status color not in allowed palette: {color_hex}")


class ProtectedStatusScopeError(StatusDefinitionError):
    """Protected labels may only exist with global scope."""

    code: str = "STATUS_PROTECTED_GLOBAL_ONLY"

    def __init__(self, label_he: str):
        self.label_he = label_he
        super().__init__(f"Protected status '{label_he}' must be global")


class StatusStationRequiredError(StatusDefinitionError):
    code: str = "STATUS_STATION_REQUIRED"

    def __init__(self):
        super().__init__("Station-scoped status requires a station_id")


class StatusMachineStateInvalidError(StatusDefinitionError):
    code: str = "STATUS_MACHINE_STATE_INVALID"

    def __init__(self, machine_state: object):
        self.machine_state = machine_state
        super().__init__(f"Invalid machine state: {machine_state!r}")


class StatusReportTypeInvalidError(StatusDefinitionError):
    code: str = "STATUS_REPORT_TYPE_INVALID"

    def __init__(self, report_type: object):
        self.report_type = report_type
        super().__init__(f"Invalid status report type: {report_type!r}")


class ProtectedStatusEditError(StatusDefinitionError):
    code: str = "STATUS_EDIT_FORBIDDEN_PROTECTED"
    category: str = FORBIDDEN_TRANSITION

    def __init__(self, status_definition_id: UUID | str):
        self.status_definition_id = str(status_definition_id)
        super().__init__(
            f"Protected status {status_definition_id} cannot be edited"
        )


class ProtectedStatusDeleteError(StatusDefinitionError):
    code: str = "STATUS_DELETE_FORBIDDEN_PROTECTED"
    category: str = FORBIDDEN_TRANSITION

    def __init__(self, status_definition_id: UUID | str):
        self.status_definition_id = str(status_definition_id)
        super().__init__(
            f"Protected status {status_definition_id} cannot be deleted"
        )


# Job-item exceptions


class JobItemError(FloorKernelError):
    """Base exception for job item and binding errors."""

    code: str = "JOB_ITEM_ERROR"
    category: str = NOT_FOUND


class JobItemNotFoundError(JobItemError):
    code: str = "JOB_ITEM_NOT_FOUND"

    def __init__(self, job_item_id: UUID | str):
        self.job_item_id = str(job_item_id)
        super().__init__(f"Job item not found: {job_item_id}")


class JobItemJobMismatchError(JobItemError):
    code: str = "JOB_ITEM_JOB_MISMATCH"

    def __init__(self, job_item_id: UUID | str, job_id: UUID | str):
        self.job_item_id = str(job_item_id)
        self.job_id = str(job_id)
        super().__init__(f"Job item {job_item_id} does not belong to job {job_id}")


class JobItemInactiveError(JobItemError):
    code: str = "JOB_ITEM_INACTIVE"
    category: str = FORBIDDEN_TRANSITION

    def __init__(self, job_item_id: UUID | str):
        self.job_item_id = str(job_item_id)
        super().__init__(f"Job item is inactive: {job_item_id}")


class JobItemStationNotFoundError(JobItemError):
    """The requested pipeline step does not exist."""

    code: str = "JOB_ITEM_STATION_NOT_FOUND"

    def __init__(self, job_item_step_id: UUID | str):
        self.job_item_step_id = str(job_item_step_id)
        super().__init__(f"Job item step not found: {job_item_step_id}")


class JobItemStationMismatchError(JobItemError):
    """The pipeline step belongs to another job item or station."""

    code: str = "JOB_ITEM_STATION_MISMATCH"

    def __init__(
        self,
        job_item_step_id: UUID | str,
        job_item_id: UUID | str,
        station_id: UUID | str,
    ):
        self.job_item_step_id = str(job_item_step_id)
        self.job_item_id = str(job_item_id)
        self.station_id = str(station_id)
        super().__init__(
            f"Step {job_item_step_id} does not belong to job item "
            f"{job_item_id} at station {station_id}"
        )


class JobItemStepNotFoundError(JobItemError):
    """
    A bound session references a step that no longer exists.

    This is a data integrity fault, never a legacy case: quantity
    reporting fails instead of skipping the ledger.
    """

    code: str = "JOB_ITEM_STEP_NOT_FOUND"

    def __init__(self, job_item_step_id: UUID | str):
        self.job_item_step_id = str(job_item_step_id)
        super().__init__(f"Job item step not found: {job_item_step_id}")


# Pipeline exceptions


class PipelineError(FloorKernelError):
    """Base exception for pipeline setup errors."""

    code: str = "PIPELINE_ERROR"


class PipelineEmptyError(PipelineError):
    code: str = "PIPELINE_EMPTY"

    def __init__(self, job_item_id: UUID | str):
        self.job_item_id = str(job_item_id)
        super().__init__(f"Pipeline for job item {job_item_id} has no stations")


class StationInvalidError(PipelineError):
    code: str = "STATION_INVALID"

    def __init__(self, station_ids: list[str]):
        self.station_ids = station_ids
        super().__init__(f"Invalid or inactive stations: {', '.join(station_ids)}")


class PipelineLockedError(PipelineError):
    """Production has started; the pipeline structure is frozen."""

    code: str = "PIPELINE_LOCKED"
    category: str = FORBIDDEN_TRANSITION

    def __init__(self, job_item_id: UUID | str):
        self.job_item_id = str(job_item_id)
        super().__init__(f"Pipeline is locked for job item {job_item_id}")


class PipelinePresetNotFoundError(PipelineError):
    code: str = "PIPELINE_PRESET_NOT_FOUND"
    category: str = NOT_FOUND

    def __init__(self, preset_id: UUID | str):
        self.preset_id = str(preset_id)
        super().__init__(f"Pipeline preset not found: {preset_id}")


# WIP ledger exceptions


class WipError(FloorKernelError):
    """Base exception for WIP ledger errors."""

    code: str = "WIP_ERROR"


class WipBalanceNotFoundError(WipError):
    code: str = "WIP_BALANCE_NOT_FOUND"
    category: str = NOT_FOUND

    def __init__(self, job_item_step_id: UUID | str):
        self.job_item_step_id = str(job_item_step_id)
        super().__init__(f"WIP balance not found for step {job_item_step_id}")


# Report exceptions


class ReportError(FloorKernelError):
    """Base exception for report errors."""

    code: str = "REPORT_ERROR"


class ReportNotFoundError(ReportError):
    code: str = "REPORT_NOT_FOUND"
    category: str = NOT_FOUND

    def __init__(self, report_id: UUID | str):
        self.report_id = str(report_id)
        super().__init__(f"Report not found: {report_id}")


class ReportTypeInvalidError(ReportError):
    code: str = "REPORT_TYPE_INVALID"

    def __init__(self, report_type: object):
        self.report_type = report_type
        super().__init__(f"Invalid report type: {report_type!r}")


class ReportTransitionForbiddenError(ReportError):
    """The report's status machine does not allow this edge."""

    code: str = "TRANSITION_FORBIDDEN"
    category: str = FORBIDDEN_TRANSITION

    def __init__(
        self,
        report_id: UUID | str,
        report_type: str,
        from_status: str,
        to_status: str,
    ):
        self.report_id = str(report_id)
        self.report_type = report_type
        self.from_status = from_status
        self.to_status = to_status
        super().__init__(
            f"Cannot move {report_type} report {report_id} "
            f"from {from_status} to {to_status}"
        )


# First-product approval exceptions


class ApprovalError(FloorKernelError):
    """Base exception for the first-product approval gate."""

    code: str = "APPROVAL_ERROR"


class FirstProductApprovalRequiredError(ApprovalError):
    """Production cannot start until the first product is approved."""

    code: str = "FIRST_PRODUCT_APPROVAL_REQUIRED"
    category: str = FORBIDDEN_TRANSITION

    def __init__(self, session_id: UUID | str, job_item_step_id: UUID | str, status: str):
        self.session_id = str(session_id)
        self.job_item_step_id = str(job_item_step_id)
        self.status = status
        super().__init__(
            f"First product approval is {status} for session {session_id} "
            f"at step {job_item_step_id}"
        )


class NoJobItemBoundError(ApprovalError):
    code: str = "NO_JOB_ITEM_BOUND"

    def __init__(self, session_id: UUID | str):
        self.session_id = str(session_id)
        super().__init__(f"Session {session_id} has no job item bound")


class ApprovalNotRequiredError(ApprovalError):
    code: str = "APPROVAL_NOT_REQUIRED"

    def __init__(self, job_item_step_id: UUID | str):
        self.job_item_step_id = str(job_item_step_id)
        super().__init__(
            f"Step {job_item_step_id} does not require first product approval"
        )


class ApprovalAlreadyApprovedError(ApprovalError):
    code: str = "ALREADY_APPROVED"
    category: str = CONFLICT

    def __init__(self, report_id: UUID | str):
        self.report_id = str(report_id)
        super().__init__(f"First product already approved by report {report_id}")


class ApprovalAlreadyPendingError(ApprovalError):
    code: str = "ALREADY_PENDING"
    category: str = CONFLICT

    def __init__(self, report_id: UUID | str):
        self.report_id = str(report_id)
        super().__init__(f"First product approval already pending: {report_id}")


# Immutability exceptions


class ImmutabilityError(FloorKernelError):
    """Base exception for immutability-related errors."""

    code: str = "IMMUTABILITY_ERROR"
    category: str = FORBIDDEN_TRANSITION


class ImmutabilityViolationError(ImmutabilityError):
    """
    Attempted to modify or delete an immutable record.

    WipConsumption rows are append-only; protected status definitions
    cannot change.
    """

    code: str = "IMMUTABILITY_VIOLATION"

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(
            f"Immutability violation on {entity_type} {entity_id}: {reason}"
        )
