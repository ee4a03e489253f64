"""
Typed configuration objects (``shopfloor_config.schema``).

Every section of the YAML file parses into one frozen dataclass.  The
kernel never sees these; ``shopfloor_config.bridges`` translates them.
"""

from __future__ import annotations

from dataclasses import dataclass, field


@dataclass(frozen=True)
class DatabaseSettings:
    url: str
    pool_size: int = 5
    max_overflow: int = 10
    pool_timeout: int = 30
    pool_recycle: int = 1800
    echo: bool = False


@dataclass(frozen=True)
class ProtectedStatusDef:
    key: str
    label_he: str
    machine_state: str
    color_hex: str
    label_ru: str | None = None
    report_type: str = "none"


@dataclass(frozen=True)
class StatusCatalogSettings:
    palette: tuple[str, ...]
    default_color: str
    protected: tuple[ProtectedStatusDef, ...]
    stop_key: str = "stop"
    fallback_key: str = "other"


@dataclass(frozen=True)
class SessionSettings:
    replaced_note: str = "replaced-by-new-session"
    aborted_note: str = "session-aborted"


@dataclass(frozen=True)
class FloorConfig:
    """The complete runtime configuration."""

    database: DatabaseSettings
    status_catalog: StatusCatalogSettings
    sessions: SessionSettings = field(default_factory=SessionSettings)
    source: str | None = None
