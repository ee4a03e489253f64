"""
Status definition domain types (``shopfloor_kernel.domain.statuses``).

Responsibility
--------------
Pure value objects for the status registry: the machine-state and scope
enums, the protected-status catalog, and validation of a candidate status
definition against the catalog and color palette.

Architecture position
---------------------
**Kernel domain layer** -- ZERO I/O.  No imports from ``db/``,
``services/``, ``selectors/``, or outer layers.  The catalog is built by
``shopfloor_config.bridges`` from YAML and handed to the registry service.

Invariants enforced
-------------------
* Colors come from the allow-listed palette only.
* A protected label can exist only with global scope.
* A station-scoped status always names its station.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from uuid import UUID

from shopfloor_kernel.exceptions import (
    ProtectedStatusScopeError,
    StatusColorNotAllowedError,
    StatusLabelRequiredError,
    StatusMachineStateInvalidError,
    StatusReportTypeInvalidError,
    StatusStationRequiredError,
)


class MachineState(str, Enum):
    """What the machine is doing during a status interval."""

    PRODUCTION = "production"
    SETUP = "setup"
    STOPPAGE = "stoppage"


class StatusScope(str, Enum):
    GLOBAL = "global"
    STATION = "station"


class StatusReportType(str, Enum):
    """Report a worker must file when entering the status."""

    NONE = "none"
    MALFUNCTION = "malfunction"
    GENERAL = "general"


@dataclass(frozen=True)
class ProtectedStatusSpec:
    """One entry of the protected catalog (seeded, never editable)."""

    key: str
    label_he: str
    label_ru: str | None
    color_hex: str
    machine_state: MachineState
    report_type: StatusReportType = StatusReportType.NONE


@dataclass(frozen=True)
class StatusCatalog:
    """
    Palette and protected statuses the registry enforces.

    ``stop_key`` names the status new sessions open with when the caller
    gives none; ``fallback_key`` names the status that inherits events of a
    deleted status.
    """

    palette: frozenset[str]
    default_color: str
    protected: tuple[ProtectedStatusSpec, ...]
    stop_key: str = "stop"
    fallback_key: str = "other"

    def __post_init__(self) -> None:
        keys = {spec.key for spec in self.protected}
        for required in (self.stop_key, self.fallback_key):
            if required not in keys:
                raise ValueError(f"Protected catalog has no '{required}' status")

    def spec(self, key: str) -> ProtectedStatusSpec:
        for spec in self.protected:
            if spec.key == key:
                return spec
        raise KeyError(key)

    @property
    def protected_labels(self) -> frozenset[str]:
        return frozenset(spec.label_he for spec in self.protected)

    def is_protected_label(self, label_he: str) -> bool:
        return label_he.strip() in self.protected_labels

    def normalize_color(self, color_hex: str | None) -> str:
        """Lower-case the color, or fall back to the default color."""
        if color_hex is None or not color_hex.strip():
            return self.default_color
        return color_hex.strip().lower()


def coerce_machine_state(value: object) -> MachineState:
    try:
        return MachineState(value)
    except ValueError:
        raise StatusMachineStateInvalidError(value) from None


def coerce_report_type(value: object) -> StatusReportType:
    if value is None:
        return StatusReportType.NONE
    try:
        return StatusReportType(value)
    except ValueError:
        raise StatusReportTypeInvalidError(value) from None


def validate_status_fields(
    catalog: StatusCatalog,
    *,
    scope: StatusScope,
    station_id: UUID | None,
    label_he: str | None,
    color_hex: str,
    machine_state: object,
    report_type: object,
) -> tuple[MachineState, StatusReportType]:
    """
    Validate a candidate (non-protected) status definition.

    Checks run in a fixed order: label, color, protected scope, station,
    machine state, report type.

    Returns:
        The coerced (machine_state, report_type) pair.
    """
    if label_he is None or not label_he.strip():
        raise StatusLabelRequiredError()
    if color_hex not in catalog.palette:
        raise StatusColorNotAllowedError(color_hex)
    if scope == StatusScope.STATION and catalog.is_protected_label(label_he):
        raise ProtectedStatusScopeError(label_he.strip())
    if scope == StatusScope.STATION and station_id is None:
        raise StatusStationRequiredError()
    return coerce_machine_state(machine_state), coerce_report_type(report_type)


class SessionStatus(str, Enum):
    """Lifecycle of a worker session: active until completed or aborted."""

    ACTIVE = "active"
    COMPLETED = "completed"
    ABORTED = "aborted"
