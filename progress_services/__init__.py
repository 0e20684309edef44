"""
progress_services -- Package init and public API.

Responsibility:
    Stateful services that compose the pure calculation engines
    (progress_engines/) with database sessions, the clock and the logging
    context.  This is the **only** layer that may hold sessions or read
    wall-clock time.

Architecture position:
    Services -- imperative shell over engines + config + kernel.

    Dependency direction:
        progress_services/ -> progress_engines/  (allowed)
        progress_services/ -> progress_config/   (allowed)
        progress_services/ -> progress_kernel/   (allowed)
        progress_engines/  -> progress_services/ (FORBIDDEN)
        progress_kernel/   -> progress_services/ (FORBIDDEN)

Invariants enforced:
    - Services flush, callers commit (see ``session_scope``).
    - The compiled catalog is passed into every service explicitly.

Failure modes:
    - ImportError at startup if a service's dependency graph is broken.
"""

from progress_kernel.logging_config import get_logger

logger = get_logger("services")

from progress_services.audit_service import AuditCheckpoint, AuditService
from progress_services.milestone_service import MilestoneService, MilestoneUpdateResult
from progress_services.progress_service import (
    AggregateTable,
    CalculationOutcome,
    DeltaScope,
    ProgressService,
)
from progress_services.repair_service import RepairedComponent, RepairResult, RepairService
from progress_services.snapshot import SnapshotLoader, partition_snapshot
from progress_services.template_service import TemplateService

__all__ = [
    "AggregateTable",
    "AuditCheckpoint",
    "AuditService",
    "CalculationOutcome",
    "DeltaScope",
    "MilestoneService",
    "MilestoneUpdateResult",
    "ProgressService",
    "RepairedComponent",
    "RepairResult",
    "RepairService",
    "SnapshotLoader",
    "TemplateService",
    "partition_snapshot",
]
