"""
Bridges from configuration objects to kernel inputs.

The kernel never imports ``shopfloor_config``; this module builds the
kernel-side value objects from a ``FloorConfig``.
"""

from __future__ import annotations

from shopfloor_config.loader import ConfigurationError
from shopfloor_config.schema import FloorConfig
from shopfloor_kernel.domain.statuses import (
    ProtectedStatusSpec,
    StatusCatalog,
    coerce_machine_state,
    coerce_report_type,
)
from shopfloor_kernel.exceptions import FloorKernelError


def build_status_catalog(config: FloorConfig) -> StatusCatalog:
    """Translate ``config.status_catalog`` into the kernel's StatusCatalog."""
    settings = config.status_catalog
    try:
        protected = tuple(
            ProtectedStatusSpec(
                key=p.key,
                label_he=p.label_he,
                label_ru=p.label_ru,
                color_hex=p.color_hex,
                machine_state=coerce_machine_state(p.machine_state),
                report_type=coerce_report_type(p.report_type),
            )
            for p in settings.protected
        )
    except FloorKernelError as exc:
        raise ConfigurationError(f"status_catalog.protected: {exc}") from exc

    return StatusCatalog(
        palette=frozenset(settings.palette),
        default_color=settings.default_color,
        protected=protected,
        stop_key=settings.stop_key,
        fallback_key=settings.fallback_key,
    )
