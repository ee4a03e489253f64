"""
WipLedgerService -- the WIP pull-ledger.

Responsibility:
    Applies one downstream report of (good, scrap) to a job item's pipeline:
    pulls from the immediately upstream step's balance, records the pull in
    the append-only consumption ledger, credits the reporting step with its
    good output, and advances finished-unit progress at the terminal step.

Architecture position:
    Kernel > Services.  Called by ProductionReporter inside the transaction
    that closes the production event.  Pull arithmetic lives in
    domain/wip.py (plan_pull); this service locks, loads and writes.

Invariants enforced:
    - Serialization per job item: every mutation runs after
      pg_advisory_xact_lock keyed on the job item id, so two steps of the
      same pipeline never interleave while different job items run fully
      in parallel.  Balance rows are additionally locked FOR UPDATE.
    - Good need is satisfied before scrap need; any shortfall originates at
      the reporting step instead of blocking the worker.
    - Scrap never accumulates in any balance.
    - Only terminal-step good output advances JobItemProgress.
    - Pulled units per step never exceed what was credited to it, because
      the upstream balance cannot go negative (ck_wip_balance_non_negative).
    - Recording WIP freezes the pipeline (is_pipeline_locked).

Failure modes:
    - JobItemStepNotFoundError: the step is missing or belongs to another
      job item.  Never skipped silently.
    - WipBalanceNotFoundError: a step exists without its balance row.
    - InvalidQuantitiesError: negative or non-integer quantities.
"""

from uuid import UUID

from sqlalchemy import select, update

from shopfloor_kernel.db.locks import acquire_job_item_lock
from shopfloor_kernel.domain.dtos import WipConsumptionResult
from shopfloor_kernel.domain.wip import plan_pull, validate_quantities
from shopfloor_kernel.exceptions import JobItemStepNotFoundError, WipBalanceNotFoundError
from shopfloor_kernel.logging_config import get_logger
from shopfloor_kernel.models.job_item import JobItem, JobItemProgress, JobItemStep
from shopfloor_kernel.models.wip import WipBalance, WipConsumption
from shopfloor_kernel.services.base import BaseService

logger = get_logger("services.wip_ledger")


class WipLedgerService(BaseService[WipBalance]):
    """
    Applies production reports to a job item's WIP balances.

    Each call takes the job item's transaction-scoped advisory lock before
    reading any balance.  Flushes only; the caller owns the transaction.

    Usage:
        ledger = WipLedgerService(session, clock)
        result = ledger.consume(job_item_id, step_id, good, scrap, session_id)
    """

    def _load_step(self, job_item_id: UUID, job_item_step_id: UUID) -> JobItemStep:
        step = self.session.execute(
            select(JobItemStep)
            .where(JobItemStep.id == job_item_step_id)
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if step is None or step.job_item_id != job_item_id:
            raise JobItemStepNotFoundError(job_item_step_id)
        return step

    def _lock_balance(self, job_item_step_id: UUID) -> WipBalance:
        balance = self.session.execute(
            select(WipBalance)
            .where(WipBalance.job_item_step_id == job_item_step_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if balance is None:
            raise WipBalanceNotFoundError(job_item_step_id)
        return balance

    def _upstream_step(self, step: JobItemStep) -> JobItemStep | None:
        if step.position <= 1:
            return None
        upstream = self.session.execute(
            select(JobItemStep)
            .where(JobItemStep.job_item_id == step.job_item_id)
            .where(JobItemStep.position == step.position - 1)
        ).scalar_one_or_none()
        if upstream is None:
            # Positions are contiguous; a gap means the pipeline is corrupt.
            raise JobItemStepNotFoundError(f"{step.job_item_id}#{step.position - 1}")
        return upstream

    def _lock_progress(self, job_item_id: UUID) -> JobItemProgress:
        progress = self.session.execute(
            select(JobItemProgress)
            .where(JobItemProgress.job_item_id == job_item_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if progress is None:
            # Pipelines built before progress tracking; the advisory lock
            # already serializes this insert per job item.
            progress = JobItemProgress(job_item_id=job_item_id, completed_good=0)
            self.session.add(progress)
        return progress

    def consume(
        self,
        job_item_id: UUID,
        job_item_step_id: UUID,
        quantity_good: int,
        quantity_scrap: int,
        consuming_session_id: UUID,
    ) -> WipConsumptionResult:
        """
        Apply one report to the ledger.

        Args:
            job_item_id: Job item whose pipeline is affected (lock key).
            job_item_step_id: Step that reported the output.
            quantity_good: Good units produced at the step.
            quantity_scrap: Units scrapped at the step.
            consuming_session_id: Session credited with the pull.

        Returns:
            WipConsumptionResult describing pulls, originations and the
            balances after the update.
        """
        quantity_good, quantity_scrap = validate_quantities(quantity_good, quantity_scrap)

        lock_key = acquire_job_item_lock(self.session, job_item_id)
        step = self._load_step(job_item_id, job_item_step_id)
        balance = self._lock_balance(step.id)
        now = self.clock.now()

        upstream = self._upstream_step(step)
        upstream_balance = self._lock_balance(upstream.id) if upstream is not None else None

        plan = plan_pull(
            quantity_good,
            quantity_scrap,
            upstream_balance.good_available if upstream_balance is not None else None,
        )

        if upstream_balance is not None and plan.pulled_total:
            upstream_balance.good_available = plan.upstream_after
            for used, is_scrap in ((plan.pulled_good, False), (plan.pulled_scrap, True)):
                if used:
                    self.session.add(
                        WipConsumption(
                            job_item_id=job_item_id,
                            consuming_session_id=consuming_session_id,
                            from_job_item_step_id=upstream.id,
                            to_job_item_step_id=step.id,
                            good_used=used,
                            is_scrap=is_scrap,
                            created_at=now,
                        )
                    )

        balance.good_available += quantity_good

        completed_after = None
        if step.is_terminal:
            progress = self._lock_progress(job_item_id)
            progress.completed_good += quantity_good
            if quantity_good:
                progress.last_completed_at = now
            completed_after = progress.completed_good

        self.session.execute(
            update(JobItem)
            .where(JobItem.id == job_item_id)
            .where(JobItem.is_pipeline_locked.is_(False))
            .values(is_pipeline_locked=True)
        )
        self.session.flush()

        if plan.pulled_total < quantity_good + quantity_scrap and plan.has_upstream:
            logger.info(
                "wip_shortfall_originated",
                extra={
                    "job_item_step_id": str(step.id),
                    "originated_good": plan.originated_good,
                    "originated_scrap": plan.originated_scrap,
                },
            )
        if not plan.has_upstream and quantity_scrap:
            logger.info(
                "wip_first_step_scrap",
                extra={"job_item_step_id": str(step.id), "quantity_scrap": quantity_scrap},
            )
        logger.info(
            "wip_consumed",
            extra={
                "job_item_id": str(job_item_id),
                "job_item_step_id": str(step.id),
                "position": step.position,
                "is_terminal": step.is_terminal,
                "quantity_good": quantity_good,
                "quantity_scrap": quantity_scrap,
                "pulled_good": plan.pulled_good,
                "pulled_scrap": plan.pulled_scrap,
                "lock_key": lock_key,
            },
        )

        return WipConsumptionResult(
            job_item_id=job_item_id,
            job_item_step_id=step.id,
            position=step.position,
            is_terminal=step.is_terminal,
            quantity_good=quantity_good,
            quantity_scrap=quantity_scrap,
            pulled_good=plan.pulled_good,
            pulled_scrap=plan.pulled_scrap,
            step_balance_after=balance.good_available,
            upstream_step_id=upstream.id if upstream is not None else None,
            upstream_balance_after=plan.upstream_after,
            completed_good_after=completed_after,
        )
