"""
Configuration Loader (``shopfloor_config.loader``).

Responsibility
--------------
Reads the YAML file and parses it into ``shopfloor_config.schema``
dataclasses.  Runtime callers go through
``shopfloor_config.get_active_config()`` instead of calling this directly.

Failure modes
-------------
* Missing file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Missing or ill-typed keys  -> ``ConfigurationError``.
"""

from __future__ import annotations

import re
from pathlib import Path
from typing import Any

import yaml

from shopfloor_config.schema import (
    DatabaseSettings,
    FloorConfig,
    ProtectedStatusDef,
    SessionSettings,
    StatusCatalogSettings,
)
from shopfloor_kernel.exceptions import FloorKernelError

_HEX_COLOR = re.compile(r"^#[0-9a-fA-F]{6}$")


class ConfigurationError(FloorKernelError):
    """The configuration file is structurally invalid."""

    code: str = "CONFIGURATION_ERROR"

    def __init__(self, message: str):
        super().__init__(message)


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
        ConfigurationError: if the top level is not a mapping.
    """
    with open(path, encoding="utf-8") as f:
        data = yaml.safe_load(f)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigurationError(f"{path}: top level must be a mapping")
    return data


def _require(section: dict[str, Any], key: str, where: str) -> Any:
    if key not in section:
        raise ConfigurationError(f"{where}: missing required key '{key}'")
    return section[key]


def _check_color(value: Any, where: str) -> str:
    if not isinstance(value, str) or not _HEX_COLOR.match(value):
        raise ConfigurationError(f"{where}: '{value}' is not a #rrggbb color")
    return value.lower()


def parse_database(data: dict[str, Any]) -> DatabaseSettings:
    url = _require(data, "url", "database")
    if not isinstance(url, str) or not url:
        raise ConfigurationError("database.url must be a non-empty string")
    return DatabaseSettings(
        url=url,
        pool_size=int(data.get("pool_size", 5)),
        max_overflow=int(data.get("max_overflow", 10)),
        pool_timeout=int(data.get("pool_timeout", 30)),
        pool_recycle=int(data.get("pool_recycle", 1800)),
        echo=bool(data.get("echo", False)),
    )


def parse_protected_status(data: dict[str, Any], index: int) -> ProtectedStatusDef:
    where = f"status_catalog.protected[{index}]"
    return ProtectedStatusDef(
        key=str(_require(data, "key", where)),
        label_he=str(_require(data, "label_he", where)),
        label_ru=data.get("label_ru"),
        color_hex=_check_color(_require(data, "color_hex", where), where),
        machine_state=str(_require(data, "machine_state", where)),
        report_type=str(data.get("report_type", "none")),
    )


def parse_status_catalog(data: dict[str, Any]) -> StatusCatalogSettings:
    palette = _require(data, "palette", "status_catalog")
    if not isinstance(palette, list) or not palette:
        raise ConfigurationError("status_catalog.palette must be a non-empty list")
    colors = tuple(_check_color(c, "status_catalog.palette") for c in palette)
    default_color = _check_color(
        _require(data, "default_color", "status_catalog"), "status_catalog.default_color"
    )
    if default_color not in colors:
        raise ConfigurationError("status_catalog.default_color must be in the palette")

    protected = tuple(
        parse_protected_status(entry, i)
        for i, entry in enumerate(_require(data, "protected", "status_catalog"))
    )
    keys = [p.key for p in protected]
    if len(set(keys)) != len(keys):
        raise ConfigurationError("status_catalog.protected keys must be unique")

    stop_key = str(data.get("stop_key", "stop"))
    fallback_key = str(data.get("fallback_key", "other"))
    for name, key in (("stop_key", stop_key), ("fallback_key", fallback_key)):
        if key not in keys:
            raise ConfigurationError(
                f"status_catalog.{name} '{key}' is not a protected status key"
            )
    return StatusCatalogSettings(
        palette=colors,
        default_color=default_color,
        protected=protected,
        stop_key=stop_key,
        fallback_key=fallback_key,
    )


def parse_sessions(data: dict[str, Any] | None) -> SessionSettings:
    data = data or {}
    return SessionSettings(
        replaced_note=str(data.get("replaced_note", "replaced-by-new-session")),
        aborted_note=str(data.get("aborted_note", "session-aborted")),
    )


def parse_floor_config(data: dict[str, Any], source: str | None = None) -> FloorConfig:
    return FloorConfig(
        database=parse_database(_require(data, "database", "root")),
        status_catalog=parse_status_catalog(_require(data, "status_catalog", "root")),
        sessions=parse_sessions(data.get("sessions")),
        source=source,
    )
