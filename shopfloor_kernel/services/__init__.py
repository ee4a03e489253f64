"""Kernel services: state machines and the WIP ledger (flush-only)."""

from shopfloor_kernel.services.pipeline_service import PipelineService
from shopfloor_kernel.services.production_reporter import ProductionReporter
from shopfloor_kernel.services.report_service import ReportService
from shopfloor_kernel.services.session_service import SessionService
from shopfloor_kernel.services.status_definition_service import StatusDefinitionService
from shopfloor_kernel.services.wip_ledger_service import WipLedgerService

__all__ = [
    "PipelineService",
    "ProductionReporter",
    "ReportService",
    "SessionService",
    "StatusDefinitionService",
    "WipLedgerService",
]
