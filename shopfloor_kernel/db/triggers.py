"""
Module: shopfloor_kernel.db.triggers
Responsibility: Loading, installing, and verifying the PostgreSQL triggers that
    back the ledger invariants at the database level.  This is the complement
    to the ORM-level listeners in db/immutability.py.
Architecture position: Kernel > DB.  MUST NOT import from models/, services/,
    selectors/, domain/, or outer layers.

Invariants enforced:
    - wip_consumptions rows: no UPDATE, no DELETE (append-only ledger).
    - status_events INSERT of a production interval bound to a job item sets
      job_items.is_pipeline_locked.
    - Protected status_definitions rows: no edit of catalog fields, no DELETE.

Failure modes:
    - PostgreSQL RAISE EXCEPTION on violation (surfaced by SQLAlchemy as
      IntegrityError / InternalError).
    - FileNotFoundError if SQL files are missing from the sql/ directory.
"""

from pathlib import Path

from sqlalchemy import text
from sqlalchemy.engine import Engine

from shopfloor_kernel.logging_config import get_logger

logger = get_logger("db.triggers")

SQL_DIR = Path(__file__).parent / "sql"

TRIGGER_FILES = [
    "01_wip_consumption.sql",
    "02_pipeline_lock.sql",
    "03_protected_status.sql",
]

DROP_FILE = "99_drop_all.sql"

ALL_TRIGGER_NAMES = [
    "trg_wip_consumption_immutability_update",
    "trg_wip_consumption_immutability_delete",
    "trg_status_event_pipeline_lock",
    "trg_status_definition_protected_update",
    "trg_status_definition_protected_delete",
]


def _load_sql_file(filename: str) -> str:
    return (SQL_DIR / filename).read_text(encoding="utf-8")


def _load_all_trigger_sql() -> str:
    """Concatenate all trigger SQL files in numbered order."""
    sql_parts = []
    for filename in TRIGGER_FILES:
        sql_parts.append(f"-- Loading: {filename}")
        sql_parts.append(_load_sql_file(filename))
        sql_parts.append("")
    return "\n".join(sql_parts)


def install_floor_triggers(engine: Engine) -> None:
    """
    Install the database-level ledger triggers.

    Tables must exist.  Functions use CREATE OR REPLACE, so reinstalling
    is safe.
    """
    with engine.connect() as conn:
        conn.execute(text(_load_all_trigger_sql()))
        conn.commit()
    logger.info("triggers_installed", extra={"trigger_count": len(ALL_TRIGGER_NAMES)})


def uninstall_floor_triggers(engine: Engine) -> None:
    """Remove all ledger triggers and their backing functions."""
    with engine.connect() as conn:
        conn.execute(text(_load_sql_file(DROP_FILE)))
        conn.commit()


def get_installed_triggers(engine: Engine) -> list[str]:
    """List the ledger triggers currently present in pg_trigger."""
    with engine.connect() as conn:
        result = conn.execute(
            text(
                "SELECT tgname FROM pg_trigger "
                "WHERE tgname = ANY(:names) ORDER BY tgname"
            ),
            {"names": ALL_TRIGGER_NAMES},
        )
        return [row[0] for row in result]


def triggers_installed(engine: Engine) -> bool:
    return len(get_installed_triggers(engine)) == len(ALL_TRIGGER_NAMES)
