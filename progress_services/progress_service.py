"""
progress_services.progress_service -- reporting API over the pure engines.

Responsibility:
    Answer the four reporting questions: percent complete of a component,
    earned-manhour totals per dimension, earned-manhour change over a time
    window, and whether stored and derived values still agree.

Architecture position:
    Services -- imperative shell.  Loads snapshots through the kernel
    selectors, passes the compiled catalog explicitly into the engines and
    labels the results for presentation.

Invariants enforced:
    - Read-only: no method here writes.
    - Every number is derived from component state or the event log;
      nothing is read from a stored total.
    - With the high-water-mark floor policy on, the calculated earned MH
      is still reported next to the floored figure.

Failure modes:
    - ComponentNotFoundError, InvalidDimensionError, InvalidTimeWindowError.
    - MilestoneTemplateNotFoundError for a component type with no template.
"""

from __future__ import annotations

from collections.abc import Hashable
from dataclasses import dataclass, field
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal
from typing import Any
from uuid import UUID

from sqlalchemy.orm import Session

from progress_config import CompiledCatalog
from progress_engines.delta import DeltaMode, DeltaResult, DimensionDelta, MilestoneDeltaEngine
from progress_engines.earned_manhours import AggregationResult, EarnedManhoursAggregator, PercentSource
from progress_engines.percent_complete import PercentCompleteCalculator, PercentCompleteResult
from progress_engines.reconciliation import AuditReport, ConsistencyAuditor
from progress_kernel.domain.values import (
    CalculationWarning,
    Component,
    Dimension,
    StandardCategory,
    dimension_key_fn,
)
from progress_kernel.logging_config import LogContext, get_logger
from progress_kernel.selectors.component_selector import ComponentFilters, ComponentSelector
from progress_kernel.selectors.dimension_selector import DimensionSelector
from progress_kernel.selectors.milestone_event_selector import MilestoneEventSelector
from progress_services.audit_service import AuditCheckpoint, AuditService

logger = get_logger("services.progress")


@dataclass(frozen=True)
class CalculationOutcome:
    """Percent complete of one component with the warnings behind it."""

    percent: Decimal
    warnings: tuple[CalculationWarning, ...]
    result: PercentCompleteResult


@dataclass(frozen=True)
class AggregateTable:
    """Labelled earned-manhour rows for one dimension."""

    project_id: UUID
    dimension: Dimension
    rows: tuple[dict[str, Any], ...]
    result: AggregationResult
    catalog_version: int
    floored: bool = False

    @property
    def grand_total_earned(self) -> Decimal:
        return self.result.grand_total.earned_mh


@dataclass(frozen=True)
class DeltaScope:
    """
    Which components a window delta covers.

    ``dimension`` + ``dimension_value`` narrows to one dimension key
    (``dimension_value=None`` means the unassigned ones).
    """

    project_id: UUID
    dimension: Dimension | None = None
    dimension_value: UUID | None = None
    component_ids: frozenset[UUID] = field(default_factory=frozenset)
    component_types: frozenset[str] = field(default_factory=frozenset)


class ProgressService:
    """
    Read-side entry point for progress reporting.

    Contract:
        Receives the session and compiled catalog via the constructor; the
        caller owns the transaction.
    Guarantees:
        - Results for the same data and catalog version are identical.
    """

    def __init__(
        self,
        session: Session,
        catalog: CompiledCatalog,
        calculator: PercentCompleteCalculator | None = None,
        max_workers: int | None = None,
    ) -> None:
        self._session = session
        self._compiled = catalog
        self._calculator = calculator or PercentCompleteCalculator()
        self._aggregator = EarnedManhoursAggregator(self._calculator)
        self._delta = MilestoneDeltaEngine(calculator=self._calculator)
        self._components = ComponentSelector(session)
        self._events = MilestoneEventSelector(session)
        self._dimensions = DimensionSelector(session)
        self._max_workers = max_workers

    @property
    def _places(self) -> int:
        return self._compiled.reporting.percent_decimal_places

    # -----------------------------------------------------------------
    # Percent complete
    # -----------------------------------------------------------------

    def compute_percent_complete(self, component: Component | UUID) -> CalculationOutcome:
        """Percent complete derived from the component's milestone state."""
        if not isinstance(component, Component):
            component = self._components.get(component)
        result = self._calculator.calculate(
            component.component_type,
            component.current_milestones,
            self._compiled.catalog,
            project_id=component.project_id,
        )
        warnings = tuple(w.with_component(component.id, component.component_type) for w in result.warnings)
        for warning in warnings:
            logger.warning(
                "calculation_warning",
                extra={
                    "component_id": str(component.id),
                    "warning_code": warning.code.value,
                    "milestone_name": warning.milestone_name,
                },
            )
        return CalculationOutcome(percent=result.percent, warnings=warnings, result=result)

    # -----------------------------------------------------------------
    # Aggregates
    # -----------------------------------------------------------------

    def compute_aggregates(
        self,
        project_id: UUID,
        dimension: Dimension | str = Dimension.PROJECT,
        percent_source: PercentSource = PercentSource.RECOMPUTED,
        component_types: frozenset[str] = frozenset(),
    ) -> AggregateTable:
        """Earned and budgeted manhours per key of ``dimension``."""
        dimension = Dimension.parse(dimension)
        key_fn = dimension_key_fn(dimension)

        with LogContext.bind(project_id=str(project_id)):
            components = self._components.fetch_components(
                project_id, ComponentFilters(component_types=frozenset(component_types))
            )
            result = self._aggregator.aggregate(
                components,
                key_fn,
                self._compiled.catalog,
                percent_source=percent_source,
                max_workers=self._max_workers,
            )
            metadata = self._dimensions.fetch_dimension_metadata(project_id)
            rows = result.to_rows(
                label=lambda key: metadata.label(dimension, key),
                decimal_places=self._places,
            )

            floored = self._compiled.reporting.floor_earned_at_high_water_mark
            if floored:
                events = self._events.fetch_milestone_events(project_id=project_id)
                marks = self._delta.high_water_marks(
                    components, events, self._compiled.catalog, key_fn
                )
                rows = self._apply_floor(rows, result, marks)

            logger.info(
                "aggregates_computed",
                extra={
                    "dimension": dimension.value,
                    "row_count": len(rows),
                    "component_count": len(components),
                    "mismatch_count": len(result.mismatches),
                    "floored": floored,
                },
            )

        return AggregateTable(
            project_id=project_id,
            dimension=dimension,
            rows=tuple(rows),
            result=result,
            catalog_version=self._compiled.version,
            floored=floored,
        )

    def _apply_floor(
        self,
        rows: list[dict[str, Any]],
        result: AggregationResult,
        marks: dict[Hashable, Decimal],
    ) -> list[dict[str, Any]]:
        quantum = Decimal(1).scaleb(-self._places)
        floored_rows = []
        for key, row in zip(result.keys, rows):
            earned = result.totals[key].earned_mh
            mark = marks.get(key, earned)
            reported = max(earned, mark)
            floored_rows.append(
                {
                    **row,
                    "reported_mh_earned": reported.quantize(quantum, rounding=ROUND_HALF_UP),
                    "is_floored": reported > earned,
                }
            )
        return floored_rows

    # -----------------------------------------------------------------
    # Deltas
    # -----------------------------------------------------------------

    def compute_delta(
        self,
        scope: DeltaScope,
        start: datetime,
        end: datetime,
        mode: DeltaMode = DeltaMode.FORWARD,
        category: StandardCategory | None = None,
    ) -> DeltaResult:
        """Earned-MH change of the scoped components over ``[start, end)``."""
        with LogContext.bind(project_id=str(scope.project_id)):
            components = self._components.fetch_components(
                scope.project_id,
                ComponentFilters(
                    component_types=frozenset(scope.component_types),
                    dimension=Dimension.parse(scope.dimension) if scope.dimension is not None else None,
                    dimension_value=scope.dimension_value,
                    component_ids=frozenset(scope.component_ids),
                ),
            )
            events = self._events.fetch_milestone_events(
                project_id=scope.project_id, start=start, end=end
            )
            return self._delta.delta(
                components, events, self._compiled.catalog, start, end, mode, category
            )

    def compute_delta_table(
        self,
        project_id: UUID,
        dimension: Dimension | str,
        start: datetime,
        end: datetime,
        mode: DeltaMode = DeltaMode.FORWARD,
        category: StandardCategory | None = None,
    ) -> list[dict[str, Any]]:
        """Window deltas per dimension key, one labelled row each."""
        dimension = Dimension.parse(dimension)
        with LogContext.bind(project_id=str(project_id)):
            components = self._components.fetch_components(project_id)
            events = self._events.fetch_milestone_events(project_id=project_id, start=start, end=end)
            grouped = self._delta.delta_by_dimension(
                components,
                events,
                self._compiled.catalog,
                start,
                end,
                dimension_key_fn(dimension),
                mode,
                category,
            )
            metadata = self._dimensions.fetch_dimension_metadata(project_id)
            return [
                self._delta_row(metadata.label(dimension, key), grouped[key])
                for key in sorted(grouped, key=lambda k: (k is None, str(k)))
            ]

    def _delta_row(self, label: str, delta: DimensionDelta) -> dict[str, Any]:
        quantum = Decimal(1).scaleb(-self._places)

        def q(value: Decimal) -> Decimal:
            return value.quantize(quantum, rounding=ROUND_HALF_UP)

        row: dict[str, Any] = {"dimension_key": label, "budget_mh": q(delta.budget_mh)}
        for c in StandardCategory.ordered():
            row[f"{c.value}_mh_delta"] = q(delta.delta_by_category[c])
        row["delta_mh"] = q(delta.delta_mh)
        row["delta_percent"] = q(delta.window_percent)
        row["components_with_activity"] = delta.components_with_activity
        row["rollback_count"] = delta.rollback_count
        return row

    # -----------------------------------------------------------------
    # Audit
    # -----------------------------------------------------------------

    def run_audit(
        self,
        project_id: UUID,
        tolerance: Decimal | None = None,
        dimension: Dimension | str = Dimension.PROJECT,
        checkpoint: AuditCheckpoint | None = None,
    ) -> AuditReport:
        """Consistency audit of a project.  See ``AuditService.run``."""
        service = AuditService(
            self._session,
            self._compiled,
            auditor=ConsistencyAuditor(self._calculator, self._aggregator, self._delta),
        )
        return service.run(project_id, dimension=dimension, tolerance=tolerance, checkpoint=checkpoint)
