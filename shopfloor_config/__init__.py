"""
shopfloor_config -- single public entrypoint for shop-floor configuration.

Responsibility:
    ``get_active_config()`` is the only way runtime code obtains
    configuration.  It reads the YAML file (the packaged
    ``defaults.yaml`` unless a path is given), applies the
    ``DATABASE_URL`` environment override and returns a frozen
    ``FloorConfig``.

Architecture position:
    Sits above ``shopfloor_kernel`` and below ``shopfloor_services``.  The
    kernel must never import from this package; ``bridges`` translates
    configuration into kernel inputs.

Failure modes:
    - ``FileNotFoundError`` -- the configuration file does not exist.
    - ``ConfigurationError`` -- missing keys, bad colors, unknown
      protected keys.
"""

from __future__ import annotations

import dataclasses
import logging
import os
from pathlib import Path

from shopfloor_config.bridges import build_status_catalog
from shopfloor_config.loader import ConfigurationError, load_yaml_file, parse_floor_config
from shopfloor_config.schema import FloorConfig

_logger = logging.getLogger("shopfloor_kernel.config")

DEFAULT_CONFIG_PATH = Path(__file__).parent / "defaults.yaml"
DATABASE_URL_ENV = "DATABASE_URL"


def get_active_config(config_path: Path | str | None = None) -> FloorConfig:
    """
    Load and validate the active configuration.

    Args:
        config_path: YAML file to read.  Defaults to the packaged
            defaults.yaml.

    Returns:
        FloorConfig with ``database.url`` replaced by ``$DATABASE_URL``
        when that variable is set and non-empty.
    """
    path = Path(config_path) if config_path is not None else DEFAULT_CONFIG_PATH
    config = parse_floor_config(load_yaml_file(path), source=str(path))

    env_url = os.environ.get(DATABASE_URL_ENV)
    if env_url:
        config = dataclasses.replace(
            config, database=dataclasses.replace(config.database, url=env_url)
        )

    _logger.info(
        "floor_config_loaded",
        extra={
            "source": config.source,
            "protected_status_count": len(config.status_catalog.protected),
            "database_url_from_env": bool(env_url),
        },
    )
    return config


__all__ = [
    "ConfigurationError",
    "FloorConfig",
    "build_status_catalog",
    "get_active_config",
]
