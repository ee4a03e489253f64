"""
StatusDefinitionService -- the status registry.

Responsibility:
    Creates, edits, deletes and lists status definitions; seeds the
    protected catalog; resolves the default stop status and the fallback
    status; and checks that a status may be used at a station.

Architecture position:
    Kernel > Services.  Receives a ``StatusCatalog`` (built by
    ``shopfloor_config.bridges``) instead of reading configuration itself.

Invariants enforced:
    - Protected statuses are global, seeded once per catalog key, and can
      be neither edited nor deleted.
    - Colors come from the palette; station statuses name their station.
    - Deleting a status moves its events, and every session mirroring it,
      to the fallback status first, so no reference dangles.

Failure modes:
    - StatusDefinitionNotFoundError, StatusNotAllowedError,
      StopStatusNotFoundError, the validation errors from
      domain/statuses.py, ProtectedStatusEditError,
      ProtectedStatusDeleteError.
"""

from uuid import UUID

from sqlalchemy import or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from shopfloor_kernel.domain.clock import Clock
from shopfloor_kernel.domain.dtos import StatusDefinitionInfo
from shopfloor_kernel.domain.statuses import (
    ProtectedStatusSpec,
    StatusCatalog,
    StatusScope,
    validate_status_fields,
)
from shopfloor_kernel.exceptions import (
    ProtectedStatusDeleteError,
    ProtectedStatusEditError,
    StatusDefinitionNotFoundError,
    StatusNotAllowedError,
    StopStatusNotFoundError,
)
from shopfloor_kernel.logging_config import get_logger
from shopfloor_kernel.models.status import StatusDefinition, StatusEvent
from shopfloor_kernel.models.work_session import WorkSession
from shopfloor_kernel.services.base import BaseService

logger = get_logger("services.status_definition")

_UNSET = object()


class StatusDefinitionService(BaseService[StatusDefinition]):

    def __init__(self, session: Session, catalog: StatusCatalog, clock: Clock | None = None):
        super().__init__(session, clock)
        self.catalog = catalog

    # ------------------------------------------------------------------
    # Protected catalog
    # ------------------------------------------------------------------

    def ensure_protected_statuses(self) -> list[StatusDefinitionInfo]:
        """Insert any missing protected status.  Idempotent."""
        return [
            StatusDefinitionInfo.from_model(self._ensure_protected(spec))
            for spec in self.catalog.protected
        ]

    def _find_protected(self, key: str) -> StatusDefinition | None:
        return self.session.execute(
            select(StatusDefinition).where(StatusDefinition.protected_key == key)
        ).scalar_one_or_none()

    def _ensure_protected(self, spec: ProtectedStatusSpec) -> StatusDefinition:
        existing = self._find_protected(spec.key)
        if existing is not None:
            return existing

        # Concurrent seeders race on uq_status_definition_protected_key;
        # the savepoint keeps the caller's transaction usable.
        savepoint = self.session.begin_nested()
        try:
            status = StatusDefinition(
                scope=StatusScope.GLOBAL,
                station_id=None,
                machine_state=spec.machine_state,
                label_he=spec.label_he,
                label_ru=spec.label_ru,
                color_hex=spec.color_hex,
                report_type=spec.report_type,
                is_protected=True,
                protected_key=spec.key,
            )
            self.session.add(status)
            self.session.flush()
            savepoint.commit()
        except IntegrityError:
            savepoint.rollback()
            logger.debug("protected_status_seed_race", extra={"key": spec.key})
            return self.session.execute(
                select(StatusDefinition).where(StatusDefinition.protected_key == spec.key)
            ).scalar_one()

        logger.info(
            "protected_status_seeded",
            extra={"key": spec.key, "status_definition_id": str(status.id)},
        )
        return status

    def default_stop_status(self) -> StatusDefinition:
        """The status new sessions open with when none is given."""
        status = self._find_protected(self.catalog.stop_key)
        if status is None:
            raise StopStatusNotFoundError(self.catalog.spec(self.catalog.stop_key).label_he)
        return status

    def fallback_status(self) -> StatusDefinition:
        """The status that inherits a deleted status's events; created if missing."""
        return self._ensure_protected(self.catalog.spec(self.catalog.fallback_key))

    # ------------------------------------------------------------------
    # Lookup
    # ------------------------------------------------------------------

    def get(self, status_definition_id: UUID) -> StatusDefinition:
        status = self.session.get(StatusDefinition, status_definition_id)
        if status is None:
            raise StatusDefinitionNotFoundError(status_definition_id)
        return status

    def get_for_station(self, status_definition_id: UUID, station_id: UUID) -> StatusDefinition:
        """
        Resolve a status a session at ``station_id`` may enter.

        Raises:
            StatusDefinitionNotFoundError: No such status.
            StatusNotAllowedError: Inactive, or scoped to another station.
        """
        status = self.get(status_definition_id)
        if not status.is_active or not status.allowed_at(station_id):
            raise StatusNotAllowedError(status_definition_id, station_id)
        return status

    def list_for_station(self, station_id: UUID) -> list[StatusDefinitionInfo]:
        """Active global statuses plus those scoped to ``station_id``."""
        rows = self.session.execute(
            select(StatusDefinition)
            .where(StatusDefinition.is_active.is_(True))
            .where(
                or_(
                    StatusDefinition.scope == StatusScope.GLOBAL,
                    StatusDefinition.station_id == station_id,
                )
            )
            .order_by(StatusDefinition.is_protected.desc(), StatusDefinition.label_he)
        ).scalars()
        return [StatusDefinitionInfo.from_model(row) for row in rows]

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def create(
        self,
        *,
        label_he: str,
        machine_state: str,
        scope: StatusScope | str = StatusScope.GLOBAL,
        station_id: UUID | None = None,
        label_ru: str | None = None,
        color_hex: str | None = None,
        report_type: str | None = None,
    ) -> StatusDefinitionInfo:
        scope = StatusScope(scope)
        color = self.catalog.normalize_color(color_hex)
        state, report = validate_status_fields(
            self.catalog,
            scope=scope,
            station_id=station_id,
            label_he=label_he,
            color_hex=color,
            machine_state=machine_state,
            report_type=report_type,
        )

        status = StatusDefinition(
            scope=scope,
            station_id=station_id if scope == StatusScope.STATION else None,
            machine_state=state,
            label_he=label_he.strip(),
            label_ru=label_ru.strip() if label_ru else None,
            color_hex=color,
            report_type=report,
            is_protected=False,
        )
        self.session.add(status)
        self.session.flush()

        logger.info(
            "status_definition_created",
            extra={
                "status_definition_id": str(status.id),
                "scope": scope.value,
                "machine_state": state.value,
            },
        )
        return StatusDefinitionInfo.from_model(status)

    def update(
        self,
        status_definition_id: UUID,
        *,
        label_he=_UNSET,
        label_ru=_UNSET,
        color_hex=_UNSET,
        machine_state=_UNSET,
        report_type=_UNSET,
        scope=_UNSET,
        station_id=_UNSET,
        is_active=_UNSET,
    ) -> StatusDefinitionInfo:
        status = self.session.execute(
            select(StatusDefinition)
            .where(StatusDefinition.id == status_definition_id)
            .with_for_update()
        ).scalar_one_or_none()
        if status is None:
            raise StatusDefinitionNotFoundError(status_definition_id)
        if status.is_protected:
            edits = (label_he, label_ru, color_hex, machine_state, report_type, scope, station_id)
            if is_active is _UNSET or any(value is not _UNSET for value in edits):
                raise ProtectedStatusEditError(status_definition_id)
            status.is_active = bool(is_active)
            self.session.flush()
            logger.info(
                "protected_status_activation_changed",
                extra={"status_definition_id": str(status.id), "is_active": status.is_active},
            )
            return StatusDefinitionInfo.from_model(status)

        new_scope = StatusScope(status.scope if scope is _UNSET else scope)
        new_station = status.station_id if station_id is _UNSET else station_id
        new_label = status.label_he if label_he is _UNSET else label_he
        new_color = (
            status.color_hex if color_hex is _UNSET else self.catalog.normalize_color(color_hex)
        )
        state, report = validate_status_fields(
            self.catalog,
            scope=new_scope,
            station_id=new_station,
            label_he=new_label,
            color_hex=new_color,
            machine_state=status.machine_state if machine_state is _UNSET else machine_state,
            report_type=status.report_type if report_type is _UNSET else report_type,
        )

        status.scope = new_scope
        status.station_id = new_station if new_scope == StatusScope.STATION else None
        status.label_he = new_label.strip()
        status.color_hex = new_color
        status.machine_state = state
        status.report_type = report
        if label_ru is not _UNSET:
            status.label_ru = label_ru.strip() if label_ru else None
        if is_active is not _UNSET:
            status.is_active = bool(is_active)
        self.session.flush()

        logger.info(
            "status_definition_updated",
            extra={"status_definition_id": str(status.id)},
        )
        return StatusDefinitionInfo.from_model(status)

    def delete(self, status_definition_id: UUID) -> StatusDefinitionInfo:
        """
        Delete a non-protected status.

        Returns:
            The fallback status that inherited the deleted status's events.
        """
        status = self.get(status_definition_id)
        if status.is_protected:
            raise ProtectedStatusDeleteError(status_definition_id)

        fallback = self.fallback_status()

        events_moved = self.session.execute(
            update(StatusEvent)
            .where(StatusEvent.status_definition_id == status.id)
            .values(status_definition_id=fallback.id)
            .execution_options(synchronize_session=False)
        ).rowcount
        sessions_moved = self.session.execute(
            update(WorkSession)
            .where(WorkSession.current_status_id == status.id)
            .values(current_status_id=fallback.id)
            .execution_options(synchronize_session=False)
        ).rowcount
        # Drop stale in-memory copies of the rows just rewritten.
        self.session.expire_all()

        self.session.delete(self.get(status_definition_id))
        self.session.flush()

        logger.info(
            "status_definition_deleted",
            extra={
                "status_definition_id": str(status_definition_id),
                "fallback_status_id": str(fallback.id),
                "events_reassigned": events_moved,
                "sessions_reassigned": sessions_moved,
            },
        )
        return StatusDefinitionInfo.from_model(fallback)
