"""
Reconciliation -- consistency audit across independent computation paths.

Pure domain types and the pure ``ConsistencyAuditor``.  Snapshot loading,
checkpointing and parallel partition runs live in
``progress_services.audit_service``.
"""

from progress_kernel.logging_config import get_logger

logger = get_logger("engines.reconciliation")

from progress_engines.reconciliation.types import (
    AuditReport,
    AuditSnapshot,
    AuditStatus,
    CheckSeverity,
    ClassificationGap,
    Discrepancy,
    DiscrepancyKind,
)

from progress_engines.reconciliation.auditor import ConsistencyAuditor

__all__ = [
    "AuditReport",
    "AuditSnapshot",
    "AuditStatus",
    "CheckSeverity",
    "ClassificationGap",
    "ConsistencyAuditor",
    "Discrepancy",
    "DiscrepancyKind",
]
