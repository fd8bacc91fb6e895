"""Bulk export of review notes across repositories."""

from reviewnotes.export.distributor import (
    ExportResult,
    RepositoryOutcome,
    WorkDistributor,
    WorkItem,
    WorkQueue,
)
from reviewnotes.export.progress import ExportProgress, WorkItemProgress

__all__ = [
    "WorkDistributor",
    "WorkQueue",
    "WorkItem",
    "ExportResult",
    "RepositoryOutcome",
    "ExportProgress",
    "WorkItemProgress",
]
