"""
Module: progress_engines.percent_complete
Responsibility:
    Turn one component's raw milestone state into a percent complete
    (0-100) using the catalog weights of its component type.

Architecture position:
    Engines -- pure calculation layer, zero I/O, no clock.

Algorithm:
    percent = sum over catalog milestones of weight * fraction, where
    fraction is the normalized raw value (0 when the key is absent).

Invariants enforced:
    - Range: 0 <= percent <= 100 (clamped, with a warning, if ever outside).
    - Determinism: identical (type, state, catalog) -> identical result,
      independent of the insertion order of the state mapping.
    - Decomposition: the category breakdown sums to the percent.
    - State keys the catalog does not know are excluded and reported;
      they never count at weight 0 silently.

Failure modes:
    - ``MilestoneTemplateNotFoundError`` when the component type has no
      template.  Everything else degrades to warnings.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from decimal import Decimal
from typing import Any
from uuid import UUID

from progress_engines.normalizer import MilestoneValueNormalizer
from progress_engines.tracer import traced_engine
from progress_kernel.domain.catalog import MilestoneCatalog
from progress_kernel.domain.values import (
    HUNDRED,
    ZERO,
    CalculationWarning,
    Component,
    MilestoneDefinition,
    StandardCategory,
    WarningCode,
)
from progress_kernel.logging_config import get_logger

logger = get_logger("engines.percent_complete")


@dataclass(frozen=True)
class MilestoneContribution:
    """What one catalog milestone added to the percent."""

    milestone: MilestoneDefinition
    raw_key: str | None
    raw_value: Any
    fraction: Decimal
    contribution: Decimal

    @property
    def name(self) -> str:
        return self.milestone.name

    @property
    def category(self) -> StandardCategory:
        return self.milestone.category


@dataclass(frozen=True)
class PercentCompleteResult:
    """
    Percent complete of one component, with its derivation.

    ``unclassified`` lists raw state keys that matched no catalog milestone.
    """

    component_type: str
    percent: Decimal
    contributions: tuple[MilestoneContribution, ...]
    warnings: tuple[CalculationWarning, ...] = ()
    unclassified: tuple[str, ...] = ()
    unclamped: Decimal = ZERO
    catalog_version: int = 0
    component_id: UUID | None = None

    @property
    def category_breakdown(self) -> dict[StandardCategory, Decimal]:
        """Percentage points per standard category; sums to ``percent``."""
        breakdown = {c: ZERO for c in StandardCategory.ordered()}
        for c in self.contributions:
            breakdown[c.category] += c.contribution
        if self.unclamped != self.percent and self.unclamped > ZERO:
            factor = self.percent / self.unclamped
            breakdown = {c: v * factor for c, v in breakdown.items()}
        return breakdown

    def fraction_of(self, milestone_name: str) -> Decimal:
        for c in self.contributions:
            if c.name == milestone_name:
                return c.fraction
        return ZERO

    @property
    def fractions(self) -> dict[str, Decimal]:
        """Canonical milestone name -> fraction."""
        return {c.name: c.fraction for c in self.contributions}


class PercentCompleteCalculator:
    """
    Weighted percent-complete calculation.

    Contract:
        Pure; the catalog is passed in, never looked up.
    Guarantees:
        - Result in [0, 100].
        - Two raw keys resolving to the same milestone: the higher fraction
          wins and a DUPLICATE_MILESTONE_KEY warning is attached.
    Non-goals:
        - Does not persist or cache anything.
    """

    def __init__(self, normalizer: MilestoneValueNormalizer | None = None):
        self._normalizer = normalizer or MilestoneValueNormalizer()

    @traced_engine(
        "percent_complete",
        "1.0",
        fingerprint_fields=("component_type", "current_milestones", "catalog", "project_id"),
    )
    def calculate(
        self,
        component_type: str,
        current_milestones: Mapping[str, Any],
        catalog: MilestoneCatalog,
        project_id: UUID | None = None,
    ) -> PercentCompleteResult:
        """Traced entry point for a single calculation."""
        return self.evaluate(component_type, current_milestones, catalog, project_id=project_id)

    def calculate_component(self, component: Component, catalog: MilestoneCatalog) -> PercentCompleteResult:
        """Untraced calculation for bulk callers (aggregator, auditor)."""
        return self.evaluate(
            component.component_type,
            component.current_milestones,
            catalog,
            project_id=component.project_id,
            component_id=component.id,
        )

    def evaluate(
        self,
        component_type: str,
        current_milestones: Mapping[str, Any],
        catalog: MilestoneCatalog,
        project_id: UUID | None = None,
        component_id: UUID | None = None,
    ) -> PercentCompleteResult:
        component_type = str(getattr(component_type, "value", component_type))
        template = catalog.template_for(component_type, project_id)

        warnings: list[CalculationWarning] = []
        unclassified: list[str] = []
        matched: dict[str, list[tuple[str, Any]]] = {}

        for key in sorted(current_milestones, key=str):
            definition = catalog.resolve(component_type, key, project_id)
            if definition is None:
                unclassified.append(key)
                warnings.append(
                    CalculationWarning(
                        code=WarningCode.UNCLASSIFIED_MILESTONE,
                        message=(
                            f"Milestone '{key}' is not in the '{component_type}' template; "
                            f"excluded from percent complete"
                        ),
                        milestone_name=key,
                        raw_value=current_milestones[key],
                    )
                )
                continue
            matched.setdefault(definition.name, []).append((key, current_milestones[key]))

        contributions: list[MilestoneContribution] = []
        for milestone in template.milestones:
            entries = matched.get(milestone.name, [])
            raw_key: str | None = None
            raw_value: Any = None
            fraction = ZERO

            for key, value in entries:
                normalized = self._normalizer.normalize(value, milestone.kind, milestone_name=key)
                if normalized.warning is not None:
                    warnings.append(normalized.warning)
                if raw_key is None or normalized.fraction > fraction:
                    raw_key, raw_value, fraction = key, value, normalized.fraction

            if len(entries) > 1:
                warnings.append(
                    CalculationWarning(
                        code=WarningCode.DUPLICATE_MILESTONE_KEY,
                        message=(
                            f"Keys {[k for k, _ in entries]} all resolve to milestone "
                            f"'{milestone.name}'; using '{raw_key}'"
                        ),
                        milestone_name=milestone.name,
                        raw_value=raw_value,
                    )
                )

            if milestone.weight == ZERO and fraction > ZERO:
                logger.debug(
                    "non_contributing_milestone",
                    extra={
                        "component_type": component_type,
                        "milestone_name": milestone.name,
                    },
                )

            contributions.append(
                MilestoneContribution(
                    milestone=milestone,
                    raw_key=raw_key,
                    raw_value=raw_value,
                    fraction=fraction,
                    contribution=milestone.weight * fraction,
                )
            )

        unclamped = sum((c.contribution for c in contributions), ZERO)
        percent = min(max(unclamped, ZERO), HUNDRED)
        if percent != unclamped:
            warnings.append(
                CalculationWarning(
                    code=WarningCode.PERCENT_CLAMPED,
                    message=f"Percent {unclamped} clamped to {percent}",
                    raw_value=unclamped,
                )
            )

        if component_id is not None:
            warnings = [w.with_component(component_id, component_type) for w in warnings]

        return PercentCompleteResult(
            component_type=component_type,
            percent=percent,
            contributions=tuple(contributions),
            warnings=tuple(warnings),
            unclassified=tuple(unclassified),
            unclamped=unclamped,
            catalog_version=catalog.version,
            component_id=component_id,
        )


_default_calculator = PercentCompleteCalculator()


def calculate_percent_complete(
    component_type: str,
    current_milestones: Mapping[str, Any],
    catalog: MilestoneCatalog,
    project_id: UUID | None = None,
) -> Decimal:
    """Percent only, for callers that do not need the derivation."""
    return _default_calculator.evaluate(
        component_type, current_milestones, catalog, project_id=project_id
    ).percent
