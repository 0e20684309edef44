"""
progress_services.audit_service -- checkpointed, partitioned consistency audits.

Responsibility:
    Read one consistent snapshot of a project, split it into one partition
    per dimension key and run the pure ``ConsistencyAuditor`` over the
    partitions concurrently.  Completed partitions are recorded in an
    ``AuditCheckpoint`` so a cancelled run can be resumed.

Architecture position:
    Services -- imperative shell.  The auditor itself is pure; this module
    owns the session read, the worker pool, the run id and the log context.

Invariants enforced:
    - Read-only: an audit never writes.  Repairs go through RepairService.
    - One snapshot per run: every partition is audited against the same
      read, so partitions never observe each other's time.
    - Resume never re-audits a partition already in the checkpoint.

Failure modes:
    - AuditCancelledError when the checkpoint is cancelled before all
      partitions finish.
    - Errors raised inside a partition propagate out of ``run``.

Audit relevance:
    - ``audit_run_started`` / ``audit_partition_completed`` /
      ``audit_run_completed`` records all carry ``audit_run_id``.
"""

from __future__ import annotations

import contextvars
import threading
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from functools import reduce
from uuid import UUID, uuid4

from sqlalchemy.orm import Session

from progress_config import CompiledCatalog
from progress_engines.reconciliation import AuditReport, AuditSnapshot, ConsistencyAuditor
from progress_kernel.domain.values import Dimension, to_decimal
from progress_kernel.exceptions import AuditCancelledError
from progress_kernel.logging_config import LogContext, get_logger
from progress_services.snapshot import SnapshotLoader, partition_snapshot

logger = get_logger("services.audit")

DEFAULT_MAX_WORKERS = 4


@dataclass
class AuditCheckpoint:
    """
    Progress of one audit run, shared with its worker threads.

    Hold on to the checkpoint to cancel a running audit from another
    thread, or to resume one that was cancelled.
    """

    project_id: UUID
    dimension: Dimension = Dimension.PROJECT
    run_id: UUID = field(default_factory=uuid4)
    completed: dict[str, AuditReport] = field(default_factory=dict)
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False)
    _cancelled: threading.Event = field(default_factory=threading.Event, repr=False)

    def record(self, partition: str, report: AuditReport) -> None:
        with self._lock:
            self.completed[partition] = report

    def is_completed(self, partition: str) -> bool:
        with self._lock:
            return partition in self.completed

    def completed_partitions(self) -> tuple[str, ...]:
        with self._lock:
            return tuple(sorted(self.completed))

    def cancel(self) -> None:
        self._cancelled.set()

    def resume(self) -> None:
        self._cancelled.clear()

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()

    def combined_report(self, tolerance: Decimal) -> AuditReport:
        """Merge of every completed partition, in partition order."""
        with self._lock:
            reports = [self.completed[label] for label in sorted(self.completed)]
        empty = AuditReport.from_findings(
            project_id=self.project_id,
            discrepancies=(),
            classification_gaps=(),
            tolerance=tolerance,
            components_checked=0,
            events_checked=0,
            checks_performed=(),
        )
        return reduce(AuditReport.merge, reports, empty)


class AuditService:
    """
    Runs consistency audits for a project.

    Contract:
        The session is only used to load the snapshot; worker threads
        never touch it.
    Guarantees:
        - The report of a resumed run equals the report of an
          uninterrupted run over the same snapshot.
    Non-goals:
        - Does not schedule audits or persist reports.
    """

    def __init__(
        self,
        session: Session,
        catalog: CompiledCatalog,
        auditor: ConsistencyAuditor | None = None,
        max_workers: int = DEFAULT_MAX_WORKERS,
    ) -> None:
        self._loader = SnapshotLoader(session)
        self._compiled = catalog
        self._auditor = auditor or ConsistencyAuditor()
        self._max_workers = max_workers

    def start(self, project_id: UUID, dimension: Dimension | str = Dimension.PROJECT) -> AuditCheckpoint:
        """A fresh checkpoint for a new run."""
        return AuditCheckpoint(project_id=project_id, dimension=Dimension.parse(dimension))

    def run(
        self,
        project_id: UUID,
        dimension: Dimension | str = Dimension.PROJECT,
        tolerance: Decimal | None = None,
        checkpoint: AuditCheckpoint | None = None,
        as_of: datetime | None = None,
    ) -> AuditReport:
        """
        Audit a project, one partition per key of ``dimension``.

        Args:
            tolerance: Percentage points; defaults to the catalog's
                reporting policy.
            checkpoint: Resume a run; partitions already recorded in it are
                skipped.  A new checkpoint is created when omitted.
            as_of: Only events strictly before this instant are replayed.
                Components updated at or after it get the event chain
                check only.

        Raises:
            AuditCancelledError: the checkpoint was cancelled first.
        """
        dimension = Dimension.parse(dimension)
        tolerance = to_decimal(
            tolerance if tolerance is not None else self._compiled.reporting.audit_tolerance
        )
        checkpoint = checkpoint or self.start(project_id, dimension)

        with LogContext.bind(audit_run_id=str(checkpoint.run_id), project_id=str(project_id)):
            snapshot = self._loader.load(project_id, self._compiled.catalog, dimension, as_of)
            partitions = partition_snapshot(snapshot)
            pending = [label for label in partitions if not checkpoint.is_completed(label)]

            logger.info(
                "audit_run_started",
                extra={
                    "dimension": dimension.value,
                    "tolerance": tolerance,
                    "partition_count": len(partitions),
                    "pending_count": len(pending),
                    "catalog_version": self._compiled.version,
                },
            )

            if pending:
                workers = max(1, min(self._max_workers, len(pending)))
                with ThreadPoolExecutor(max_workers=workers) as pool:
                    futures = [
                        pool.submit(
                            contextvars.copy_context().run,
                            self._audit_partition,
                            checkpoint,
                            label,
                            partitions[label],
                            tolerance,
                        )
                        for label in pending
                    ]
                    for future in as_completed(futures):
                        future.result()

            remaining = tuple(label for label in partitions if not checkpoint.is_completed(label))
            if remaining:
                completed = checkpoint.completed_partitions()
                logger.warning(
                    "audit_run_cancelled",
                    extra={"completed_count": len(completed), "remaining_count": len(remaining)},
                )
                raise AuditCancelledError(str(checkpoint.run_id), completed, remaining)

            report = checkpoint.combined_report(tolerance)
            logger.info(
                "audit_run_completed",
                extra={
                    "status": report.status.value,
                    "discrepancy_count": len(report.discrepancies),
                    "error_count": report.error_count,
                    "warning_count": report.warning_count,
                    "classification_gap_count": len(report.classification_gaps),
                    "components_checked": report.components_checked,
                    "events_checked": report.events_checked,
                },
            )
            return report

    def _audit_partition(
        self,
        checkpoint: AuditCheckpoint,
        label: str,
        snapshot: AuditSnapshot,
        tolerance: Decimal,
    ) -> None:
        if checkpoint.cancelled:
            return
        report = self._auditor.audit_partition(snapshot, tolerance, partition=label)
        checkpoint.record(label, report)
        logger.info(
            "audit_partition_completed",
            extra={
                "partition": label,
                "status": report.status.value,
                "discrepancy_count": len(report.discrepancies),
            },
        )
