"""
Report lifecycle domain types (``shopfloor_kernel.domain.report_lifecycle``).

Responsibility
--------------
The two report state machines and the first-product approval outcome.

* Malfunction: ``open -> known``, ``open -> solved``, ``known -> solved``,
  and ``solved -> open`` (reopen from archive).
* General / scrap: ``new -> approved`` only.

Same-state moves are always permitted as no-ops.  A status that does not
belong to the report's type has no edges at all.

Architecture position
---------------------
**Kernel domain layer** -- ZERO I/O.
"""

from __future__ import annotations

from enum import Enum


class ReportType(str, Enum):
    MALFUNCTION = "malfunction"
    GENERAL = "general"
    SCRAP = "scrap"


class ReportStatus(str, Enum):
    OPEN = "open"
    KNOWN = "known"
    SOLVED = "solved"
    NEW = "new"
    APPROVED = "approved"


MALFUNCTION_TRANSITIONS: dict[ReportStatus, frozenset[ReportStatus]] = {
    ReportStatus.OPEN: frozenset({ReportStatus.KNOWN, ReportStatus.SOLVED}),
    ReportStatus.KNOWN: frozenset({ReportStatus.SOLVED}),
    ReportStatus.SOLVED: frozenset({ReportStatus.OPEN}),
}

SIMPLE_TRANSITIONS: dict[ReportStatus, frozenset[ReportStatus]] = {
    ReportStatus.NEW: frozenset({ReportStatus.APPROVED}),
    ReportStatus.APPROVED: frozenset(),
}

REPORT_TRANSITIONS: dict[ReportType, dict[ReportStatus, frozenset[ReportStatus]]] = {
    ReportType.MALFUNCTION: MALFUNCTION_TRANSITIONS,
    ReportType.GENERAL: SIMPLE_TRANSITIONS,
    ReportType.SCRAP: SIMPLE_TRANSITIONS,
}

INITIAL_STATUS: dict[ReportType, ReportStatus] = {
    ReportType.MALFUNCTION: ReportStatus.OPEN,
    ReportType.GENERAL: ReportStatus.NEW,
    ReportType.SCRAP: ReportStatus.NEW,
}


def initial_status(report_type: ReportType) -> ReportStatus:
    """Server-enforced starting status, whatever the caller asked for."""
    return INITIAL_STATUS[report_type]


def is_transition_allowed(
    report_type: ReportType | str,
    from_status: ReportStatus | str,
    to_status: ReportStatus | str,
) -> bool:
    """
    True if ``from_status -> to_status`` is an edge of the type's machine.

    Unknown statuses and statuses of the other machine are never allowed,
    not even as same-state moves.
    """
    table = REPORT_TRANSITIONS[ReportType(report_type)]
    try:
        source = ReportStatus(from_status)
        target = ReportStatus(to_status)
    except ValueError:
        return False
    if source not in table or target not in table:
        return False
    if source == target:
        return True
    return target in table[source]


class ApprovalState(str, Enum):
    """Outcome of the first-product approval check for one step."""

    NOT_REQUIRED = "not_required"
    NEEDS_SUBMISSION = "needs_submission"
    PENDING = "pending"
    APPROVED = "approved"
