"""ORM models for the shop-floor kernel."""

from shopfloor_kernel.models.job_item import (
    JobItem,
    JobItemProgress,
    JobItemStep,
    PipelinePreset,
    PipelinePresetStep,
)
from shopfloor_kernel.models.reference import Job, Station, Worker
from shopfloor_kernel.models.report import Report
from shopfloor_kernel.models.status import StatusDefinition, StatusEvent
from shopfloor_kernel.models.wip import WipBalance, WipConsumption
from shopfloor_kernel.models.work_session import SessionStatus, WorkSession

__all__ = [
    "Job",
    "JobItem",
    "JobItemProgress",
    "JobItemStep",
    "PipelinePreset",
    "PipelinePresetStep",
    "Report",
    "SessionStatus",
    "Station",
    "StatusDefinition",
    "StatusEvent",
    "WipBalance",
    "WipConsumption",
    "Worker",
    "WorkSession",
]
