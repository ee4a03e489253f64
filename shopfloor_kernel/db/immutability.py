"""
ORM-level immutability enforcement (layer 1 of 2).

===============================================================================
HOW IT WORKS
===============================================================================

    session.flush()
         |
    [before_update event] --> _check_*_immutability() ---+
    [before_delete event] --> _check_*_delete() ---------+
         |
         v
    SQL sent to database (only if checks pass)

If a check fails, ImmutabilityViolationError is raised and the flush is
aborted.  Layer 2 is the PostgreSQL triggers in db/sql/, which also catch
bulk statements and raw SQL that bypass the ORM.

===============================================================================
PROTECTED ENTITIES
===============================================================================

Entity              | When Immutable        | Why
--------------------|-----------------------|------------------------------
WipConsumption      | Always                | Ledger audit trail
StatusDefinition    | is_protected = True   | Catalog rows other code relies
                    |                       | on (default stop, fallback)

Bookkeeping columns (updated_at) may change on any row.
"""

from sqlalchemy import event, inspect

from shopfloor_kernel.exceptions import ImmutabilityViolationError
from shopfloor_kernel.logging_config import get_logger

logger = get_logger("db.immutability")

_MUTABLE_BOOKKEEPING = frozenset({"updated_at"})


def _changed_fields(target) -> list[str]:
    insp = inspect(target)
    return [
        attr.key
        for attr in insp.attrs
        if attr.key not in _MUTABLE_BOOKKEEPING and attr.history.has_changes()
    ]


def _check_wip_consumption_immutability(mapper, connection, target):
    fields = _changed_fields(target)
    if fields:
        logger.error(
            "immutability_violation_blocked",
            extra={
                "entity_type": "WipConsumption",
                "entity_id": str(target.id),
                "operation": "UPDATE",
                "fields": fields,
            },
        )
        raise ImmutabilityViolationError(
            entity_type="WipConsumption",
            entity_id=str(target.id),
            reason=f"Ledger rows are append-only (changed: {', '.join(fields)})",
        )


def _check_wip_consumption_delete(mapper, connection, target):
    logger.error(
        "immutability_violation_blocked",
        extra={
            "entity_type": "WipConsumption",
            "entity_id": str(target.id),
            "operation": "DELETE",
        },
    )
    raise ImmutabilityViolationError(
        entity_type="WipConsumption",
        entity_id=str(target.id),
        reason="Ledger rows cannot be deleted",
    )


def _was_protected(target) -> bool:
    hist = inspect(target).attrs.is_protected.history
    if hist.deleted:
        return bool(hist.deleted[0])
    return bool(target.is_protected)


def _check_protected_status_immutability(mapper, connection, target):
    if not _was_protected(target):
        return
    fields = [f for f in _changed_fields(target) if f != "is_active"]
    if fields:
        logger.error(
            "immutability_violation_blocked",
            extra={
                "entity_type": "StatusDefinition",
                "entity_id": str(target.id),
                "operation": "UPDATE",
                "fields": fields,
            },
        )
        raise ImmutabilityViolationError(
            entity_type="StatusDefinition",
            entity_id=str(target.id),
            reason=f"Protected status cannot be edited (changed: {', '.join(fields)})",
        )


def _check_protected_status_delete(mapper, connection, target):
    if not target.is_protected:
        return
    logger.error(
        "immutability_violation_blocked",
        extra={
            "entity_type": "StatusDefinition",
            "entity_id": str(target.id),
            "operation": "DELETE",
        },
    )
    raise ImmutabilityViolationError(
        entity_type="StatusDefinition",
        entity_id=str(target.id),
        reason="Protected status cannot be deleted",
    )


def _listeners():
    from shopfloor_kernel.models.status import StatusDefinition
    from shopfloor_kernel.models.wip import WipConsumption

    return [
        (WipConsumption, "before_update", _check_wip_consumption_immutability),
        (WipConsumption, "before_delete", _check_wip_consumption_delete),
        (StatusDefinition, "before_update", _check_protected_status_immutability),
        (StatusDefinition, "before_delete", _check_protected_status_delete),
    ]


def register_immutability_listeners():
    """
    Register all immutability enforcement event listeners.

    Safe to call more than once; already-registered listeners are skipped.
    """
    for target, event_name, fn in _listeners():
        if not event.contains(target, event_name, fn):
            event.listen(target, event_name, fn)


def unregister_immutability_listeners():
    """
    Remove immutability enforcement event listeners.

    Only for tests that must bypass layer 1 to prove layer 2 holds.
    """
    for target, event_name, fn in _listeners():
        if event.contains(target, event_name, fn):
            event.remove(target, event_name, fn)
