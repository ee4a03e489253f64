"""
ProductionReporter -- end a production interval with quantities.

Responsibility:
    Given a production status event ending with (good, scrap) counts,
    closes the event, records the quantities, applies them to the WIP
    ledger when the session is bound to a pipeline step, opens the next
    status event and mirrors it onto the session.

Architecture position:
    Kernel > Services.  Composes SessionService (locking, transitions) and
    WipLedgerService (pull ledger).  Flush-only: FloorOperations commits
    the whole sequence or none of it.

Invariants enforced:
    - Preconditions are checked in order, each a distinct failure:
      event exists, event belongs to the session, event is still open,
      quantities are non-negative integers.  The next status is resolved
      and guarded before anything is written.
    - Not retry-idempotent by design: a second call for the same event
      fails with StatusEventAlreadyEndedError, so quantities are applied
      exactly once.
    - Unbound (legacy) sessions skip the ledger and still succeed.  A
      session bound to a step that no longer exists fails with
      JobItemStepNotFoundError.

Lock order:
    session row (FOR UPDATE) -> status event row (FOR UPDATE) ->
    job item advisory lock -> balance rows (FOR UPDATE).
"""

from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from shopfloor_kernel.domain.clock import Clock
from shopfloor_kernel.domain.dtos import ProductionEndResult, StatusEventInfo
from shopfloor_kernel.domain.wip import validate_quantities
from shopfloor_kernel.exceptions import (
    JobItemStepNotFoundError,
    StatusEventAlreadyEndedError,
    StatusEventNotFoundError,
    StatusEventSessionMismatchError,
)
from shopfloor_kernel.logging_config import get_logger
from shopfloor_kernel.models.job_item import JobItemStep
from shopfloor_kernel.models.status import StatusEvent
from shopfloor_kernel.services.base import BaseService
from shopfloor_kernel.services.session_service import SessionService
from shopfloor_kernel.services.wip_ledger_service import WipLedgerService

logger = get_logger("services.production_reporter")


class ProductionReporter(BaseService[StatusEvent]):
    """
    Ends production intervals with reported quantities.

    Holds the session row lock for the whole call so the event close, the
    ledger update and the next event open happen as one unit.
    """

    def __init__(
        self,
        session: Session,
        sessions: SessionService,
        ledger: WipLedgerService | None = None,
        clock: Clock | None = None,
    ):
        super().__init__(session, clock)
        self.sessions = sessions
        self.ledger = ledger or WipLedgerService(session, self.clock)

    def end_production_status(
        self,
        session_id: UUID,
        status_event_id: UUID,
        quantity_good: int,
        quantity_scrap: int,
        next_status_id: UUID,
    ) -> ProductionEndResult:
        """
        Close a production event with its quantities and open the next one.

        The closed event is stamped with the session's current job item so
        totals follow a bind made mid-interval.  A bound session applies
        the quantities to the WIP ledger; an unbound one records them only.

        Raises:
            StatusEventNotFoundError: No such event.
            StatusEventSessionMismatchError: Event belongs to another session.
            StatusEventAlreadyEndedError: Event already closed.
            InvalidQuantitiesError: Negative or non-integer quantities.
        """
        work_session =self.sessions.lock_session(session_id)

        event = self.session.execute(
            select(StatusEvent)
            .where(StatusEvent.id == status_event_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if event is None:
            raise StatusEventNotFoundError(status_event_id)
        if event.session_id != session_id:
            raise StatusEventSessionMismatchError(status_event_id, session_id, event.session_id)
        if event.ended_at is not None:
            raise StatusEventAlreadyEndedError(status_event_id)
        quantity_good, quantity_scrap = validate_quantities(quantity_good, quantity_scrap)

        next_status = self.sessions.resolve_status(work_session, next_status_id)

        event.ended_at = self.clock.now()
        event.quantity_good = quantity_good
        event.quantity_scrap = quantity_scrap
        # The session may have been bound after this event opened.
        event.job_item_id = work_session.job_item_id
        event.job_item_step_id = work_session.job_item_step_id
        self.session.flush()

        wip_result = None
        step_id = work_session.job_item_step_id
        if step_id is not None:
            job_item_id = work_session.job_item_id
            if job_item_id is None:
                step = self.session.get(JobItemStep, step_id)
                if step is None:
                    raise JobItemStepNotFoundError(step_id)
                job_item_id = step.job_item_id
            wip_result = self.ledger.consume(
                job_item_id, step_id, quantity_good, quantity_scrap, session_id
            )
        else:
            logger.debug(
                "wip_skipped_unbound_session",
                extra={"session_id": str(session_id)},
            )

        new_event = self.sessions.open_event(work_session, next_status)

        logger.info(
            "production_ended",
            extra={
                "session_id": str(session_id),
                "status_event_id": str(status_event_id),
                "quantity_good": quantity_good,
                "quantity_scrap": quantity_scrap,
                "next_status_id": str(next_status_id),
                "wip_applied": wip_result is not None,
            },
        )
        return ProductionEndResult(
            updated_event=StatusEventInfo.from_model(event),
            new_status_event=StatusEventInfo.from_model(new_event),
            wip=wip_result,
        )
