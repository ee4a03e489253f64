"""
WIP pull planning (``shopfloor_kernel.domain.wip``).

Responsibility
--------------
Decide, given a downstream report of (good, scrap) and the upstream step's
available balance, how many units are pulled from upstream and how many
originate at the reporting step.  The ledger service applies the plan
under the job item's advisory lock; this module only does arithmetic.

Rules
-----
* First step (no upstream): nothing is pulled; good and scrap both
  originate.  Scrap at the first step consumes nothing.
* Later steps: good need is satisfied first, then scrap need from what
  remains.  Any shortfall originates at the step instead of blocking the
  report.
* Scrap never adds to any balance; only good output is credited to the
  reporting step.

Architecture position
---------------------
**Kernel domain layer** -- ZERO I/O.
"""

from __future__ import annotations

from dataclasses import dataclass

from shopfloor_kernel.exceptions import InvalidQuantitiesError


def validate_quantities(quantity_good: object, quantity_scrap: object) -> tuple[int, int]:
    """Reject anything that is not a non-negative int (bools included)."""
    for value in (quantity_good, quantity_scrap):
        if isinstance(value, bool) or not isinstance(value, int) or value < 0:
            raise InvalidQuantitiesError(quantity_good, quantity_scrap)
    return quantity_good, quantity_scrap


@dataclass(frozen=True)
class PullPlan:
    quantity_good: int
    quantity_scrap: int
    pulled_good: int
    pulled_scrap: int
    upstream_before: int | None

    @property
    def has_upstream(self) -> bool:
        return self.upstream_before is not None

    @property
    def pulled_total(self) -> int:
        return self.pulled_good + self.pulled_scrap

    @property
    def originated_good(self) -> int:
        return self.quantity_good - self.pulled_good

    @property
    def originated_scrap(self) -> int:
        return self.quantity_scrap - self.pulled_scrap

    @property
    def upstream_after(self) -> int | None:
        if self.upstream_before is None:
            return None
        return self.upstream_before - self.pulled_total


def plan_pull(
    quantity_good: int,
    quantity_scrap: int,
    upstream_available: int | None,
) -> PullPlan:
    """
    Compute the pull for one report.

    Args:
        quantity_good: Good units reported at the step.
        quantity_scrap: Scrapped units reported at the step.
        upstream_available: ``good_available`` of the immediately upstream
            step, or None when the step is first in its pipeline.
    """
    if upstream_available is None:
        return PullPlan(quantity_good, quantity_scrap, 0, 0, None)
    if upstream_available < 0:
        raise ValueError(f"Negative upstream balance: {upstream_available}")

    pulled_good = min(quantity_good, upstream_available)
    pulled_scrap = min(quantity_scrap, upstream_available - pulled_good)
    return PullPlan(
        quantity_good,
        quantity_scrap,
        pulled_good,
        pulled_scrap,
        upstream_available,
    )
