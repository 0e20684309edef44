"""
Consistency audit domain types.

Pure frozen dataclasses and enums.  Populated by the audit service
(snapshot), consumed and produced by ``ConsistencyAuditor``.

Architecture: progress_engines/reconciliation -- pure domain, zero I/O.
"""

from __future__ import annotations

from collections.abc import Hashable
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID

from progress_kernel.domain.catalog import MilestoneCatalog, normalize_milestone_name
from progress_kernel.domain.values import (
    DEFAULT_AUDIT_TOLERANCE,
    Component,
    Dimension,
    MilestoneEvent,
)


# =============================================================================
# Enums
# =============================================================================


class DiscrepancyKind(str, Enum):
    """What two independently computed values disagreed about."""

    STORED_PERCENT_MISMATCH = "stored_percent_mismatch"
    PERCENT_OUT_OF_RANGE = "percent_out_of_range"
    CATEGORY_ROLLUP_MISMATCH = "category_rollup_mismatch"
    VIEW_TOTAL_MISMATCH = "view_total_mismatch"
    REPLAY_STATE_MISMATCH = "replay_state_mismatch"
    REPLAY_EARNED_MISMATCH = "replay_earned_mismatch"
    EVENT_CHAIN_GAP = "event_chain_gap"


class CheckSeverity(str, Enum):
    """Severity level of a discrepancy."""

    ERROR = "error"
    WARNING = "warning"
    INFO = "info"


class AuditStatus(str, Enum):
    """Overall status of an audit run."""

    PASSED = "passed"
    FAILED = "failed"  # at least one ERROR
    WARNING = "warning"  # warnings only


# =============================================================================
# Input types
# =============================================================================


@dataclass(frozen=True)
class AuditSnapshot:
    """Consistent read of one project (or one partition of it).

    The service takes this in a single session before auditing; the
    auditor never reads anything else.

    When ``taken_at`` is set, ``events`` stop before it while components
    carry their current state.  ``updated_after`` names the components
    with events at or after ``taken_at``; their current state cannot be
    compared with the truncated replay.
    """

    project_id: UUID
    components: tuple[Component, ...]
    events: tuple[MilestoneEvent, ...]
    catalog: MilestoneCatalog
    dimension: Dimension = Dimension.PROJECT
    taken_at: datetime | None = None
    updated_after: frozenset[UUID] = field(default_factory=frozenset)

    @property
    def component_count(self) -> int:
        return len(self.components)

    @property
    def event_count(self) -> int:
        return len(self.events)


# =============================================================================
# Output types
# =============================================================================


@dataclass(frozen=True)
class Discrepancy:
    """One disagreement between two computation paths.

    ``computed_a`` is the value under test (stored, replayed, view);
    ``computed_b`` is the reference recomputation.
    """

    kind: DiscrepancyKind
    entity: str
    computed_a: Decimal
    computed_b: Decimal
    severity: CheckSeverity
    message: str
    component_id: UUID | None = None
    dimension_key: Hashable = None

    @property
    def delta(self) -> Decimal:
        return self.computed_a - self.computed_b


@dataclass(frozen=True)
class ClassificationGap:
    """A milestone name the catalog does not know, reported once per type."""

    component_type: str
    milestone_name: str
    event_count: int = 0
    component_count: int = 0


@dataclass(frozen=True)
class AuditReport:
    """Result of an audit run.  ``status`` follows the worst severity."""

    project_id: UUID
    status: AuditStatus
    tolerance: Decimal = DEFAULT_AUDIT_TOLERANCE
    discrepancies: tuple[Discrepancy, ...] = ()
    classification_gaps: tuple[ClassificationGap, ...] = ()
    components_checked: int = 0
    events_checked: int = 0
    checks_performed: tuple[str, ...] = ()
    partitions: tuple[str, ...] = field(default_factory=tuple)

    @property
    def is_clean(self) -> bool:
        return not self.discrepancies

    @property
    def error_count(self) -> int:
        return sum(1 for d in self.discrepancies if d.severity == CheckSeverity.ERROR)

    @property
    def warning_count(self) -> int:
        return sum(1 for d in self.discrepancies if d.severity == CheckSeverity.WARNING)

    def of_kind(self, kind: DiscrepancyKind) -> tuple[Discrepancy, ...]:
        return tuple(d for d in self.discrepancies if d.kind == kind)

    @property
    def mismatched_component_ids(self) -> tuple[UUID, ...]:
        """Components whose stored percent disagrees with recomputation."""
        seen: dict[UUID, None] = {}
        for d in self.of_kind(DiscrepancyKind.STORED_PERCENT_MISMATCH):
            if d.component_id is not None:
                seen.setdefault(d.component_id, None)
        return tuple(seen)

    @classmethod
    def from_findings(
        cls,
        project_id: UUID,
        discrepancies: tuple[Discrepancy, ...],
        classification_gaps: tuple[ClassificationGap, ...],
        tolerance: Decimal,
        components_checked: int,
        events_checked: int,
        checks_performed: tuple[str, ...],
        partitions: tuple[str, ...] = (),
    ) -> AuditReport:
        """Factory that derives status from the findings."""
        if any(d.severity == CheckSeverity.ERROR for d in discrepancies):
            status = AuditStatus.FAILED
        elif any(d.severity == CheckSeverity.WARNING for d in discrepancies):
            status = AuditStatus.WARNING
        else:
            status = AuditStatus.PASSED
        return cls(
            project_id=project_id,
            status=status,
            tolerance=tolerance,
            discrepancies=discrepancies,
            classification_gaps=classification_gaps,
            components_checked=components_checked,
            events_checked=events_checked,
            checks_performed=checks_performed,
            partitions=partitions,
        )

    def merge(self, other: AuditReport) -> AuditReport:
        """Combine partition reports.  Gap counts are summed per (type, normalized name)."""
        gaps: dict[tuple[str, str], ClassificationGap] = {}
        for gap in self.classification_gaps + other.classification_gaps:
            key = (gap.component_type, normalize_milestone_name(gap.milestone_name))
            if key in gaps:
                prior = gaps[key]
                gap = ClassificationGap(
                    component_type=gap.component_type,
                    milestone_name=min(prior.milestone_name, gap.milestone_name),
                    event_count=prior.event_count + gap.event_count,
                    component_count=prior.component_count + gap.component_count,
                )
            gaps[key] = gap
        checks = tuple(dict.fromkeys(self.checks_performed + other.checks_performed))
        ordered = sorted(gaps.values(), key=lambda g: (g.component_type, g.milestone_name))
        return AuditReport.from_findings(
            project_id=self.project_id,
            discrepancies=self.discrepancies + other.discrepancies,
            classification_gaps=tuple(ordered),
            tolerance=self.tolerance,
            components_checked=self.components_checked + other.components_checked,
            events_checked=self.events_checked + other.events_checked,
            checks_performed=checks,
            partitions=self.partitions + other.partitions,
        )
