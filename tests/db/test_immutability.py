"""
Append-only ledger rows and protected statuses, at both layers.

Layer 1 is the ORM listener set; layer 2 is the database triggers, which
must hold even for raw SQL that never touches the ORM.
"""

import pytest
from sqlalchemy import select, text
from sqlalchemy.exc import IntegrityError, InternalError, ProgrammingError

from shopfloor_kernel.db.engine import session_scope
from shopfloor_kernel.db.triggers import get_installed_triggers, triggers_installed
from shopfloor_kernel.exceptions import ImmutabilityViolationError
from shopfloor_kernel.models import JobItem, Station, StatusDefinition, WipConsumption

_DB_ERRORS = (IntegrityError, InternalError, ProgrammingError)


@pytest.fixture
def consumption(session, pipeline_factory, report_output):
    item, _, (s1, s2) = pipeline_factory(2)
    report_output(item, s1, 10)
    report_output(item, s2, 5)
    return session.execute(
        select(WipConsumption).where(WipConsumption.job_item_id == item.id)
    ).scalar_one()


def test_triggers_installed(db_engine, db_tables):
    assert triggers_installed(db_engine)
    names = set(get_installed_triggers(db_engine))
    assert {
        "trg_wip_consumption_immutability_update",
        "trg_status_event_pipeline_lock",
        "trg_status_definition_protected_delete",
    } <= names


class TestWipConsumptionOrm:

    def test_update_blocked(self, session, consumption):
        consumption.good_used = 1
        with pytest.raises(ImmutabilityViolationError) as exc_info:
            session.flush()
        assert exc_info.value.entity_type == "WipConsumption"

    def test_delete_blocked(self, session, consumption):
        session.delete(consumption)
        with pytest.raises(ImmutabilityViolationError):
            session.flush()


class TestWipConsumptionTriggers:

    def test_raw_update_blocked(self, session, consumption):
        with pytest.raises(_DB_ERRORS) as exc_info:
            with session.begin_nested():
                session.execute(
                    text("UPDATE wip_consumptions SET good_used = 0 WHERE id = :id"),
                    {"id": str(consumption.id)},
                )
        assert "append-only" in str(exc_info.value)

    def test_raw_delete_blocked(self, session, consumption):
        with pytest.raises(_DB_ERRORS):
            with session.begin_nested():
                session.execute(
                    text("DELETE FROM wip_consumptions WHERE id = :id"),
                    {"id": str(consumption.id)},
                )


class TestProtectedStatusLayers:

    def test_orm_edit_blocked(self, session, protected_statuses):
        row = session.get(StatusDefinition, protected_statuses["production"].id)
        row.color_hex = "#ef4444"
        with pytest.raises(ImmutabilityViolationError):
            session.flush()

    def test_orm_deactivate_allowed(self, session, protected_statuses):
        row = session.get(StatusDefinition, protected_statuses["other"].id)
        row.is_active = False
        session.flush()

    def test_raw_edit_blocked(self, session, protected_statuses):
        with pytest.raises(_DB_ERRORS) as exc_info:
            with session.begin_nested():
                session.execute(
                    text("UPDATE status_definitions SET label_he = 'x' WHERE id = :id"),
                    {"id": str(protected_statuses["stop"].id)},
                )
        assert "cannot be edited" in str(exc_info.value)

    def test_raw_delete_blocked(self, session, protected_statuses):
        with pytest.raises(_DB_ERRORS) as exc_info:
            with session.begin_nested():
                session.execute(
                    text("DELETE FROM status_definitions WHERE id = :id"),
                    {"id": str(protected_statuses["stop"].id)},
                )
        assert "cannot be deleted" in str(exc_info.value)


def test_pipeline_lock_trigger_on_raw_insert(session, pipeline_factory, protected_statuses, worker):
    """A production event inserted without the service still locks the pipeline."""
    item, (station, _), (step, _) = pipeline_factory(2)
    session_id = session.execute(
        text(
            "INSERT INTO sessions (id, worker_id, station_id, status, started_at) "
            "VALUES (gen_random_uuid()::text, :w, :s, 'active', now()) RETURNING id"
        ),
        {"w": str(worker.id), "s": str(station.id)},
    ).scalar_one()
    session.execute(
        text(
            "INSERT INTO status_events (id, session_id, status_definition_id, started_at, "
            "job_item_id, job_item_step_id) "
            "VALUES (gen_random_uuid()::text, :sid, :status, now(), :item, :step)"
        ),
        {
            "sid": str(session_id),
            "status": str(protected_statuses["production"].id),
            "item": str(item.id),
            "step": str(step.id),
        },
    )

    assert session.get(JobItem, item.id, populate_existing=True).is_pipeline_locked


class TestSessionScope:

    def test_commits_on_success(self, pg_session_factory, db_engine):
        with session_scope() as s:
            station = Station(code="SCOPE-1", name="Scoped")
            s.add(station)
            s.flush()
            station_id = station.id

        check = pg_session_factory()
        assert check.get(Station, station_id) is not None

    def test_rolls_back_on_error(self, pg_session_factory, db_engine):
        with pytest.raises(RuntimeError):
            with session_scope() as s:
                station = Station(code="SCOPE-2", name="Scoped")
                s.add(station)
                s.flush()
                station_id = station.id
                raise RuntimeError("boom")

        check = pg_session_factory()
        assert check.get(Station, station_id) is None
