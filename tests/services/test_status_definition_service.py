"""
StatusDefinitionService -- protected catalog seeding and registry CRUD.
"""

import pytest

from shopfloor_kernel.domain.statuses import MachineState, StatusReportType, StatusScope
from shopfloor_kernel.exceptions import (
    ProtectedStatusDeleteError,
    ProtectedStatusEditError,
    ProtectedStatusScopeError,
    StatusColorNotAllowedError,
    StatusDefinitionNotFoundError,
)


class TestProtectedCatalog:

    def test_seeds_every_protected_status(self, services, status_catalog):
        seeded = services.statuses.ensure_protected_statuses()
        assert {s.protected_key for s in seeded} == {p.key for p in status_catalog.protected}
        assert all(s.is_protected and s.scope == StatusScope.GLOBAL for s in seeded)

    def test_seeding_is_idempotent(self, services):
        first = {s.protected_key: s.id for s in services.statuses.ensure_protected_statuses()}
        second = {s.protected_key: s.id for s in services.statuses.ensure_protected_statuses()}
        assert first == second

    def test_catalog_attributes(self, protected_statuses):
        malfunction = protected_statuses["malfunction"]
        assert malfunction.machine_state == MachineState.STOPPAGE
        assert malfunction.report_type == StatusReportType.MALFUNCTION
        assert protected_statuses["production"].machine_state == MachineState.PRODUCTION

    def test_protected_cannot_be_edited(self, services, protected_statuses):
        with pytest.raises(ProtectedStatusEditError) as exc_info:
            services.statuses.update(protected_statuses["stop"].id, color_hex="#10b981")
        assert exc_info.value.code == "STATUS_EDIT_FORBIDDEN_PROTECTED"

    def test_protected_can_be_deactivated(self, services, protected_statuses):
        target = protected_statuses["malfunction"].id
        updated = services.statuses.update(target, is_active=False)
        assert updated.is_active is False
        assert updated.is_protected

        restored = services.statuses.update(target, is_active=True)
        assert restored.is_active is True

    def test_protected_activation_with_other_edit_rejected(self, services, protected_statuses):
        with pytest.raises(ProtectedStatusEditError):
            services.statuses.update(
                protected_statuses["stop"].id, is_active=False, label_he="עצירה ארוכה"
            )

    def test_protected_cannot_be_deleted(self, services, protected_statuses):
        with pytest.raises(ProtectedStatusDeleteError):
            services.statuses.delete(protected_statuses["other"].id)


class TestCreateAndUpdate:

    def test_create_global(self, services):
        status = services.statuses.create(label_he=" הכנה ", label_ru="Наладка", machine_state="setup")
        assert status.label_he == "הכנה"
        assert status.color_hex == "#94a3b8"
        assert status.scope == StatusScope.GLOBAL
        assert not status.is_protected

    def test_create_station_scoped(self, services, station):
        status = services.statuses.create(
            label_he="כיול", machine_state="setup", scope="station",
            station_id=station.id, color_hex="#3B82F6",
        )
        assert status.station_id == station.id
        assert status.color_hex == "#3b82f6"

    def test_protected_label_not_station_scoped(self, services, protected_statuses, station):
        with pytest.raises(ProtectedStatusScopeError):
            services.statuses.create(
                label_he="עצירה", machine_state="stoppage", scope="station", station_id=station.id
            )

    def test_color_outside_palette(self, services):
        with pytest.raises(StatusColorNotAllowedError):
            services.statuses.create(label_he="הכנה", machine_state="setup", color_hex="#000000")

    def test_update_fields(self, services):
        status = services.statuses.create(label_he="הכנה", machine_state="setup")
        updated = services.statuses.update(
            status.id, label_he="הכנה ארוכה", machine_state="stoppage", report_type="general"
        )
        assert updated.label_he == "הכנה ארוכה"
        assert updated.machine_state == MachineState.STOPPAGE
        assert updated.report_type == StatusReportType.GENERAL

    def test_update_unknown(self, services):
        from uuid import uuid4

        with pytest.raises(StatusDefinitionNotFoundError):
            services.statuses.update(uuid4(), label_he="x")

    def test_list_for_station(self, services, protected_statuses, make_station):
        here, there = make_station(), make_station()
        local = services.statuses.create(
            label_he="כיול", machine_state="setup", scope="station", station_id=here.id
        )
        services.statuses.create(
            label_he="שטיפה", machine_state="setup", scope="station", station_id=there.id
        )

        ids = {s.id for s in services.statuses.list_for_station(here.id)}
        assert local.id in ids
        assert {s.id for s in protected_statuses.values()} <= ids
        assert len(ids) == len(protected_statuses) + 1


class TestDelete:

    def test_reassigns_events_to_fallback(self, services, protected_statuses, worker, station):
        setup = services.statuses.create(label_he="הכנה", machine_state="setup")
        info = services.sessions.create_session(worker.id, station.id, "tablet-1")
        services.sessions.start_status_event(info.id, setup.id)

        fallback = services.statuses.delete(setup.id)

        assert fallback.id == protected_statuses["other"].id
        assert services.session_reads.get(info.id).current_status_id == fallback.id
        (open_event,) = services.session_reads.open_events(info.id)
        assert open_event.status_definition_id == fallback.id
        with pytest.raises(StatusDefinitionNotFoundError):
            services.statuses.get(setup.id)

    def test_fallback_created_when_missing(self, services):
        setup = services.statuses.create(label_he="הכנה", machine_state="setup")
        fallback = services.statuses.delete(setup.id)
        assert fallback.protected_key == "other"
