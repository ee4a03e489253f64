"""
Module: shopfloor_kernel.db.locks
Responsibility: Transaction-scoped PostgreSQL advisory locks.
Architecture position: Kernel > DB.  Used by the WIP ledger service.  MUST NOT
    import from models/, services/, selectors/, or outer layers.

Invariants enforced:
    - All WIP ledger mutations for one job item are serialized: the lock key is
      derived from the job item id, never from a step id, so two steps of the
      same pipeline cannot interleave while different job items never contend.
    - Locks are xact-scoped (pg_advisory_xact_lock) and released automatically
      on COMMIT or ROLLBACK; there is no explicit unlock path to forget.
"""

from uuid import UUID

from sqlalchemy import text
from sqlalchemy.orm import Session

# Keeps ledger lock keys apart from any other advisory lock user on the
# same database.
WIP_LOCK_NAMESPACE = 0x5749_5000


def advisory_key(namespace: int, entity_id: UUID) -> int:
    """
    Derive a signed 64-bit advisory lock key from a namespace and a UUID.

    The key is deterministic across processes and Python runs (no reliance
    on hash randomization).
    """
    raw = int.from_bytes(entity_id.bytes[:8], "big") ^ (namespace << 32)
    raw &= 0xFFFF_FFFF_FFFF_FFFF
    if raw >= 1 << 63:
        raw -= 1 << 64
    return raw


def acquire_job_item_lock(session: Session, job_item_id: UUID) -> int:
    """
    Block until this transaction holds the WIP lock for ``job_item_id``.

    Returns:
        The lock key, for logging.
    """
    key = advisory_key(WIP_LOCK_NAMESPACE, job_item_id)
    session.execute(text("SELECT pg_advisory_xact_lock(:key)"), {"key": key})
    return key
