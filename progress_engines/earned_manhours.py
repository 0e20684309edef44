"""
Module: progress_engines.earned_manhours
Responsibility:
    Roll component percent complete up into earned and budgeted manhours
    per aggregation dimension, with per-category columns.

Architecture position:
    Engines -- pure calculation layer, zero I/O.

Algorithm:
    For every non-retired component:
        earned          = budget * percent / 100
        earned[cat]     = budget * category_points[cat] / 100
        budget[cat]     = budget * category_weight[cat] / 100
    Totals are summed per dimension key.  The category columns are always
    re-derived from milestone contributions; ``percent_source`` only picks
    whether the whole-value column uses the recomputed or the stored
    percent.

Invariants enforced:
    - Decomposition: per component, sum of earned[cat] equals earned within
      tolerance.  Every miss is a ``CategoryRollupMismatch`` entry.
    - Associativity: ``merge`` is a plain sum, so partitions can be
      aggregated in any order and combined.
    - Retired components never contribute.

Failure modes:
    - ``MilestoneTemplateNotFoundError`` from the calculator.
    - Missing budget is not an error: zero MH, still counted.
"""

from __future__ import annotations

from collections.abc import Callable, Hashable, Iterable, Mapping, Sequence
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from decimal import ROUND_HALF_UP, Decimal
from enum import Enum
from functools import reduce
from typing import Any
from uuid import UUID

from progress_engines.percent_complete import PercentCompleteCalculator
from progress_engines.tracer import traced_engine
from progress_kernel.domain.catalog import MilestoneCatalog
from progress_kernel.domain.values import (
    DECOMPOSITION_TOLERANCE,
    HUNDRED,
    ZERO,
    CalculationWarning,
    Component,
    StandardCategory,
)
from progress_kernel.logging_config import get_logger

logger = get_logger("engines.earned_manhours")


class PercentSource(str, Enum):
    """Which percent feeds the whole-value earned column."""

    RECOMPUTED = "recomputed"
    STORED = "stored"


def _zero_categories() -> dict[StandardCategory, Decimal]:
    return {c: ZERO for c in StandardCategory.ordered()}


def _sum_categories(
    a: Mapping[StandardCategory, Decimal], b: Mapping[StandardCategory, Decimal]
) -> dict[StandardCategory, Decimal]:
    return {c: a.get(c, ZERO) + b.get(c, ZERO) for c in StandardCategory.ordered()}


@dataclass(frozen=True)
class CategoryRollupMismatch:
    """A component whose category subtotals do not add up to its earned MH."""

    component_id: UUID
    dimension_key: Hashable
    earned_mh: Decimal
    category_sum: Decimal

    @property
    def delta(self) -> Decimal:
        return self.category_sum - self.earned_mh


@dataclass(frozen=True)
class DimensionTotals:
    """Manhour totals for one dimension key."""

    budget_mh: Decimal = ZERO
    earned_mh: Decimal = ZERO
    earned_by_category: Mapping[StandardCategory, Decimal] = field(default_factory=_zero_categories)
    budget_by_category: Mapping[StandardCategory, Decimal] = field(default_factory=_zero_categories)
    component_count: int = 0
    components_without_budget: int = 0

    @property
    def percent_complete(self) -> Decimal:
        """Earned over budget, 0 when there is no budget."""
        if self.budget_mh == ZERO:
            return ZERO
        return self.earned_mh / self.budget_mh * HUNDRED

    def merge(self, other: DimensionTotals) -> DimensionTotals:
        return DimensionTotals(
            budget_mh=self.budget_mh + other.budget_mh,
            earned_mh=self.earned_mh + other.earned_mh,
            earned_by_category=_sum_categories(self.earned_by_category, other.earned_by_category),
            budget_by_category=_sum_categories(self.budget_by_category, other.budget_by_category),
            component_count=self.component_count + other.component_count,
            components_without_budget=self.components_without_budget + other.components_without_budget,
        )


def _key_sort(key: Hashable) -> tuple[int, str]:
    # Unassigned (None) sorts last.
    return (1, "") if key is None else (0, str(key))


@dataclass(frozen=True)
class AggregationResult:
    """Dimension key -> totals, plus the findings gathered on the way."""

    totals: Mapping[Hashable, DimensionTotals] = field(default_factory=dict)
    mismatches: tuple[CategoryRollupMismatch, ...] = ()
    warnings: tuple[CalculationWarning, ...] = ()
    percent_source: PercentSource = PercentSource.RECOMPUTED

    @property
    def keys(self) -> list[Hashable]:
        return sorted(self.totals, key=_key_sort)

    @property
    def grand_total(self) -> DimensionTotals:
        return reduce(DimensionTotals.merge, (self.totals[k] for k in self.keys), DimensionTotals())

    def merge(self, other: AggregationResult) -> AggregationResult:
        """Combine two partial results.  Order of the operands does not matter."""
        totals: dict[Hashable, DimensionTotals] = dict(self.totals)
        for key, value in other.totals.items():
            totals[key] = totals[key].merge(value) if key in totals else value
        mismatches = sorted(
            self.mismatches + other.mismatches, key=lambda m: str(m.component_id)
        )
        warnings = sorted(
            self.warnings + other.warnings,
            key=lambda w: (str(w.component_id), w.milestone_name or "", w.code.value),
        )
        return AggregationResult(
            totals=totals,
            mismatches=tuple(mismatches),
            warnings=tuple(warnings),
            percent_source=self.percent_source,
        )

    def to_rows(
        self,
        label: Callable[[Hashable], Any] | None = None,
        decimal_places: int = 2,
    ) -> list[dict[str, Any]]:
        """Rows in the stable report column contract.

        ``label`` maps a dimension key to its display value; the raw key is
        used when omitted.
        """
        quantum = Decimal(1).scaleb(-decimal_places)

        def q(value: Decimal) -> Decimal:
            return value.quantize(quantum, rounding=ROUND_HALF_UP)

        rows = []
        for key in self.keys:
            t = self.totals[key]
            row: dict[str, Any] = {
                "dimension_key": label(key) if label is not None else key,
                "budget_mh": q(t.budget_mh),
            }
            for c in StandardCategory.ordered():
                row[f"{c.value}_mh_budget"] = q(t.budget_by_category[c])
            for c in StandardCategory.ordered():
                row[f"{c.value}_mh_earned"] = q(t.earned_by_category[c])
            row["total_mh_earned"] = q(t.earned_mh)
            row["percent_complete"] = q(t.percent_complete)
            row["component_count"] = t.component_count
            rows.append(row)
        return rows


class EarnedManhoursAggregator:
    """
    Earned-manhour rollup over component snapshots.

    Contract:
        Pure over the snapshots it is given.
    Guarantees:
        - Same inputs -> same totals, regardless of ``max_workers``.
        - Rollup mismatches are always checked, never skipped.
    """

    def __init__(
        self,
        calculator: PercentCompleteCalculator | None = None,
        rollup_tolerance: Decimal = DECOMPOSITION_TOLERANCE,
    ):
        self._calculator = calculator or PercentCompleteCalculator()
        self._rollup_tolerance = rollup_tolerance

    @traced_engine(
        "earned_manhours",
        "1.0",
        fingerprint_fields=("components", "catalog", "percent_source"),
    )
    def aggregate(
        self,
        components: Sequence[Component],
        dimension_key_fn: Callable[[Component], Hashable],
        catalog: MilestoneCatalog,
        percent_source: PercentSource = PercentSource.RECOMPUTED,
        max_workers: int | None = None,
    ) -> AggregationResult:
        percent_source = PercentSource(percent_source)
        components = list(components)

        if not max_workers or max_workers <= 1 or len(components) < 2:
            return self.aggregate_partition(components, dimension_key_fn, catalog, percent_source)

        size = -(-len(components) // max_workers)
        partitions = [components[i:i + size] for i in range(0, len(components), size)]
        with ThreadPoolExecutor(max_workers=max_workers) as pool:
            results = list(
                pool.map(
                    lambda part: self.aggregate_partition(part, dimension_key_fn, catalog, percent_source),
                    partitions,
                )
            )
        logger.debug(
            "aggregation_partitions_merged",
            extra={"partition_count": len(partitions), "component_count": len(components)},
        )
        return reduce(AggregationResult.merge, results, AggregationResult(percent_source=percent_source))

    def aggregate_partition(
        self,
        components: Iterable[Component],
        dimension_key_fn: Callable[[Component], Hashable],
        catalog: MilestoneCatalog,
        percent_source: PercentSource = PercentSource.RECOMPUTED,
    ) -> AggregationResult:
        """Untraced single-threaded rollup of one partition."""
        totals: dict[Hashable, DimensionTotals] = {}
        mismatches: list[CategoryRollupMismatch] = []
        warnings: list[CalculationWarning] = []

        for component in components:
            if component.is_retired:
                continue
            key = dimension_key_fn(component)
            contribution, mismatch, component_warnings = self._contribution(
                component, key, catalog, percent_source
            )
            totals[key] = totals[key].merge(contribution) if key in totals else contribution
            warnings.extend(component_warnings)
            if mismatch is not None:
                mismatches.append(mismatch)

        return AggregationResult(
            totals=totals,
            mismatches=tuple(mismatches),
            warnings=tuple(warnings),
            percent_source=percent_source,
        )

    def _contribution(
        self,
        component: Component,
        key: Hashable,
        catalog: MilestoneCatalog,
        percent_source: PercentSource,
    ) -> tuple[DimensionTotals, CategoryRollupMismatch | None, tuple[CalculationWarning, ...]]:
        result = self._calculator.calculate_component(component, catalog)
        if not component.has_budget:
            return (
                DimensionTotals(component_count=1, components_without_budget=1),
                None,
                result.warnings,
            )

        budget = component.budget
        percent = (
            component.percent_complete
            if percent_source == PercentSource.STORED
            else result.percent
        )
        earned = budget * percent / HUNDRED
        earned_by_category = {
            c: budget * points / HUNDRED for c, points in result.category_breakdown.items()
        }
        budget_by_category = {
            c: budget * weight / HUNDRED
            for c, weight in catalog.category_weights(component.component_type, component.project_id).items()
        }

        mismatch = None
        category_sum = sum(earned_by_category.values(), ZERO)
        if abs(category_sum - earned) > self._rollup_tolerance:
            mismatch = CategoryRollupMismatch(
                component_id=component.id,
                dimension_key=key,
                earned_mh=earned,
                category_sum=category_sum,
            )

        totals = DimensionTotals(
            budget_mh=budget,
            earned_mh=earned,
            earned_by_category=earned_by_category,
            budget_by_category=budget_by_category,
            component_count=1,
        )
        return totals, mismatch, result.warnings
