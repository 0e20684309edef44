"""
ConsistencyAuditor -- pure engine comparing independent computation paths.

Finds components and dimensions where the stored projection, the
current-state calculation, the category rollup and the event-log replay
disagree.  Diagnostic only: it reports and never corrects.

Architecture: progress_engines -- pure calculation, zero I/O, zero DB access.
All inputs come in one ``AuditSnapshot`` populated by the service layer.

Checks:
    stored_percent    stored percent vs recomputed percent, and range
    category_rollup   category subtotals vs whole earned MH per component
    view_totals       dimension earned from stored percent vs recomputed
    replay            full-lifetime event replay vs current state and
                      earned MH, plus event chain continuity; components
                      updated after the snapshot cut get the chain check only
    classification    milestone names the catalog does not know, listed
                      once per (component type, name)

Tolerance is in percentage points.  Manhour comparisons scale it by the
budget being compared (``tolerance * budget / 100``).
"""

from __future__ import annotations

from collections import defaultdict
from decimal import Decimal
from uuid import UUID

from progress_engines.delta import MilestoneDeltaEngine
from progress_engines.earned_manhours import EarnedManhoursAggregator, PercentSource
from progress_engines.percent_complete import PercentCompleteCalculator, PercentCompleteResult
from progress_engines.reconciliation.types import (
    AuditReport,
    AuditSnapshot,
    CheckSeverity,
    ClassificationGap,
    Discrepancy,
    DiscrepancyKind,
)
from progress_engines.tracer import traced_engine
from progress_kernel.domain.catalog import normalize_milestone_name
from progress_kernel.domain.values import (
    DEFAULT_AUDIT_TOLERANCE,
    HUNDRED,
    ZERO,
    Component,
    MilestoneEvent,
    dimension_key_fn,
    to_decimal,
)
from progress_kernel.logging_config import get_logger

logger = get_logger("engines.reconciliation.auditor")


def _component_entity(component_id: UUID) -> str:
    return f"component:{component_id}"


class ConsistencyAuditor:
    """Pure engine for cross-path consistency checks.

    Usage:
        auditor = ConsistencyAuditor()
        report = auditor.audit(snapshot, tolerance=Decimal("0.1"))
    """

    def __init__(
        self,
        calculator: PercentCompleteCalculator | None = None,
        aggregator: EarnedManhoursAggregator | None = None,
        delta_engine: MilestoneDeltaEngine | None = None,
    ):
        self._calculator = calculator or PercentCompleteCalculator()
        self._aggregator = aggregator or EarnedManhoursAggregator(self._calculator)
        self._delta = delta_engine or MilestoneDeltaEngine(calculator=self._calculator)

    @traced_engine("consistency_audit", "1.0", fingerprint_fields=("snapshot", "tolerance"))
    def audit(
        self,
        snapshot: AuditSnapshot,
        tolerance: Decimal = DEFAULT_AUDIT_TOLERANCE,
    ) -> AuditReport:
        return self.audit_partition(snapshot, tolerance)

    def audit_partition(
        self,
        snapshot: AuditSnapshot,
        tolerance: Decimal = DEFAULT_AUDIT_TOLERANCE,
        partition: str | None = None,
    ) -> AuditReport:
        """Untraced audit of one snapshot; the audit service calls this per partition."""
        tolerance = to_decimal(tolerance)
        active = [c for c in snapshot.components if not c.is_retired]
        results = {c.id: self._calculator.calculate_component(c, snapshot.catalog) for c in active}

        discrepancies: list[Discrepancy] = []
        discrepancies.extend(self.check_stored_percent(active, results, tolerance))
        discrepancies.extend(self.check_category_rollup(snapshot))
        discrepancies.extend(self.check_view_totals(snapshot, tolerance))
        discrepancies.extend(self.check_replay(snapshot, tolerance))
        gaps = self.classification_gaps(snapshot, results)

        report = AuditReport.from_findings(
            project_id=snapshot.project_id,
            discrepancies=tuple(discrepancies),
            classification_gaps=gaps,
            tolerance=tolerance,
            components_checked=len(active),
            events_checked=len(snapshot.events),
            checks_performed=(
                "stored_percent",
                "category_rollup",
                "view_totals",
                "replay",
                "classification",
            ),
            partitions=(partition,) if partition is not None else (),
        )
        logger.info(
            "consistency_audit_completed",
            extra={
                "project_id": str(snapshot.project_id),
                "partition": partition,
                "status": report.status.value,
                "discrepancy_count": len(report.discrepancies),
                "classification_gap_count": len(report.classification_gaps),
                "components_checked": report.components_checked,
            },
        )
        return report

    # -----------------------------------------------------------------
    # Stored percent
    # -----------------------------------------------------------------

    def check_stored_percent(
        self,
        components: list[Component],
        results: dict[UUID, PercentCompleteResult],
        tolerance: Decimal,
    ) -> list[Discrepancy]:
        findings = []
        for component in components:
            stored = component.percent_complete
            recomputed = results[component.id].percent
            entity = _component_entity(component.id)

            if stored < ZERO or stored > HUNDRED:
                findings.append(
                    Discrepancy(
                        kind=DiscrepancyKind.PERCENT_OUT_OF_RANGE,
                        entity=entity,
                        computed_a=stored,
                        computed_b=recomputed,
                        severity=CheckSeverity.ERROR,
                        message=f"Stored percent {stored} outside [0, 100]",
                        component_id=component.id,
                    )
                )

            if abs(stored - recomputed) > tolerance:
                findings.append(
                    Discrepancy(
                        kind=DiscrepancyKind.STORED_PERCENT_MISMATCH,
                        entity=entity,
                        computed_a=stored,
                        computed_b=recomputed,
                        severity=CheckSeverity.ERROR,
                        message=(
                            f"Stored percent {stored} differs from recomputed "
                            f"{recomputed} by more than {tolerance}"
                        ),
                        component_id=component.id,
                    )
                )
        return findings

    # -----------------------------------------------------------------
    # Category rollup
    # -----------------------------------------------------------------

    def check_category_rollup(self, snapshot: AuditSnapshot) -> list[Discrepancy]:
        result = self._aggregator.aggregate_partition(
            snapshot.components,
            dimension_key_fn(snapshot.dimension),
            snapshot.catalog,
            PercentSource.RECOMPUTED,
        )
        return [
            Discrepancy(
                kind=DiscrepancyKind.CATEGORY_ROLLUP_MISMATCH,
                entity=_component_entity(m.component_id),
                computed_a=m.category_sum,
                computed_b=m.earned_mh,
                severity=CheckSeverity.ERROR,
                message=f"Category subtotals {m.category_sum} MH do not add up to earned {m.earned_mh} MH",
                component_id=m.component_id,
                dimension_key=m.dimension_key,
            )
            for m in result.mismatches
        ]

    # -----------------------------------------------------------------
    # View totals
    # -----------------------------------------------------------------

    def check_view_totals(self, snapshot: AuditSnapshot, tolerance: Decimal) -> list[Discrepancy]:
        key_fn = dimension_key_fn(snapshot.dimension)
        recomputed = self._aggregator.aggregate_partition(
            snapshot.components, key_fn, snapshot.catalog, PercentSource.RECOMPUTED
        )
        stored = self._aggregator.aggregate_partition(
            snapshot.components, key_fn, snapshot.catalog, PercentSource.STORED
        )

        findings = []
        for key in recomputed.keys:
            a = stored.totals[key]
            b = recomputed.totals[key]
            if abs(a.earned_mh - b.earned_mh) > tolerance * b.budget_mh / HUNDRED:
                findings.append(
                    Discrepancy(
                        kind=DiscrepancyKind.VIEW_TOTAL_MISMATCH,
                        entity=f"{snapshot.dimension.value}:{key}",
                        computed_a=a.earned_mh,
                        computed_b=b.earned_mh,
                        severity=CheckSeverity.WARNING,
                        message=(
                            f"Earned MH from stored percent ({a.earned_mh}) differs from "
                            f"recomputed ({b.earned_mh})"
                        ),
                        dimension_key=key,
                    )
                )
        return findings

    # -----------------------------------------------------------------
    # Replay
    # -----------------------------------------------------------------

    def check_replay(self, snapshot: AuditSnapshot, tolerance: Decimal) -> list[Discrepancy]:
        events_by_component: dict[UUID, list[MilestoneEvent]] = defaultdict(list)
        for event in snapshot.events:
            events_by_component[event.component_id].append(event)

        findings = []
        for component in snapshot.components:
            if component.is_retired:
                continue
            replay = self._delta.replay_component(
                component, events_by_component.get(component.id, []), snapshot.catalog
            )
            entity = _component_entity(component.id)
            # Chain continuity still holds for a truncated history.
            compare_state = component.id not in snapshot.updated_after

            if compare_state and replay.state_mismatches:
                findings.append(
                    Discrepancy(
                        kind=DiscrepancyKind.REPLAY_STATE_MISMATCH,
                        entity=entity,
                        computed_a=replay.replayed_percent,
                        computed_b=replay.current_percent,
                        severity=CheckSeverity.ERROR,
                        message=(
                            f"Event replay does not reproduce milestones "
                            f"{list(replay.state_mismatches)}"
                        ),
                        component_id=component.id,
                    )
                )

            if compare_state and abs(replay.earned_delta) > tolerance * component.budget / HUNDRED:
                findings.append(
                    Discrepancy(
                        kind=DiscrepancyKind.REPLAY_EARNED_MISMATCH,
                        entity=entity,
                        computed_a=replay.net_delta_mh,
                        computed_b=replay.current_earned_mh,
                        severity=CheckSeverity.ERROR,
                        message=(
                            f"Lifetime net delta {replay.net_delta_mh} MH differs from "
                            f"current earned {replay.current_earned_mh} MH"
                        ),
                        component_id=component.id,
                    )
                )

            for gap in replay.chain_gaps:
                findings.append(
                    Discrepancy(
                        kind=DiscrepancyKind.EVENT_CHAIN_GAP,
                        entity=f"event:{gap.event_id}",
                        computed_a=gap.recorded_fraction,
                        computed_b=gap.expected_fraction,
                        severity=CheckSeverity.WARNING,
                        message=(
                            f"Event for '{gap.milestone_name}' records previous value "
                            f"{gap.recorded_fraction}, replay expected {gap.expected_fraction}"
                        ),
                        component_id=component.id,
                    )
                )
        return findings

    # -----------------------------------------------------------------
    # Classification gaps
    # -----------------------------------------------------------------

    def classification_gaps(
        self,
        snapshot: AuditSnapshot,
        results: dict[UUID, PercentCompleteResult],
    ) -> tuple[ClassificationGap, ...]:
        """
        Unknown milestone names, once per (component type, name).

        Names are grouped the way the catalog looks them up, so ``Paint``
        and ``paint`` are one gap; the gap shows the lowest spelling seen.
        """
        components = {c.id: c for c in snapshot.components if not c.is_retired}
        event_counts: dict[tuple[str, str], int] = defaultdict(int)
        component_sets: dict[tuple[str, str], set[UUID]] = defaultdict(set)
        spellings: dict[tuple[str, str], str] = {}

        def gap_key(component_type: str, name: str) -> tuple[str, str]:
            key = (component_type, normalize_milestone_name(name))
            spellings[key] = min(spellings.get(key, name), name)
            return key

        for component_id, result in results.items():
            for name in result.unclassified:
                component_sets[gap_key(result.component_type, name)].add(component_id)

        for event in snapshot.events:
            component = components.get(event.component_id)
            if component is None:
                continue
            definition = snapshot.catalog.resolve(
                component.component_type, event.milestone_name, component.project_id
            )
            if definition is None:
                key = gap_key(component.component_type, event.milestone_name)
                event_counts[key] += 1
                component_sets[key].add(component.id)

        return tuple(
            ClassificationGap(
                component_type=key[0],
                milestone_name=spellings[key],
                event_count=event_counts.get(key, 0),
                component_count=len(component_sets.get(key, ())),
            )
            for key in sorted(spellings, key=lambda k: (k[0], spellings[k]))
        )
