"""
progress_services.milestone_service -- component registration and milestone updates.

Responsibility:
    The only write path for component milestone state.  Registers
    components, applies milestone updates (appending an event for every
    change and recomputing the stored percent) and performs administrative
    removal.

Architecture position:
    Services -- imperative shell.  Composes the pure normalizer and
    percent-complete calculator with the kernel models and selectors.

Invariants enforced:
    - Every state change appends exactly one ``MilestoneEventModel`` whose
      ``previous_value`` is the value it replaced.
    - ``percent_complete`` is recomputed on every change.
    - Writes are strict: a value that the normalizer would coerce (partial
      value on a discrete milestone, unparseable or out-of-range value) is
      rejected instead of stored.
    - Retired components reject updates.

Failure modes:
    - ComponentNotFoundError, RetiredComponentError,
      InvalidMilestoneUpdateError, MilestoneTemplateNotFoundError.

Audit relevance:
    - ``milestone_updated`` records carry the component, milestone,
      previous and new value, delta MH and the catalog version.
    - Removal is logged at WARNING with the number of events removed.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal
from typing import Any
from uuid import UUID

from sqlalchemy.orm import Session

from progress_config import CompiledCatalog
from progress_engines.budget_distribution import BudgetDistributionEngine, DistributionResult
from progress_engines.normalizer import MilestoneValueNormalizer
from progress_engines.percent_complete import PercentCompleteCalculator
from progress_kernel.domain.catalog import MilestoneCatalog
from progress_kernel.domain.clock import Clock, SystemClock
from progress_kernel.domain.values import (
    HUNDRED,
    ONE,
    ZERO,
    CalculationWarning,
    Component,
    ComponentType,
    EventAction,
    MilestoneEvent,
    to_decimal,
)
from progress_kernel.exceptions import (
    InvalidMilestoneUpdateError,
    RetiredComponentError,
)
from progress_kernel.logging_config import LogContext, get_logger
from progress_kernel.models.component import ComponentModel, FieldWeldDetailModel
from progress_kernel.models.milestone_event import MilestoneEventModel
from progress_kernel.selectors.component_selector import ComponentSelector, component_from_model
from progress_kernel.selectors.base import as_utc
from progress_kernel.selectors.milestone_event_selector import MilestoneEventSelector, event_from_model

logger = get_logger("services.milestone")


def _json_value(fraction: Decimal) -> int | float:
    """Fraction -> JSON number: 0 and 1 as ints, partial fractions as floats."""
    if fraction == fraction.to_integral_value():
        return int(fraction)
    return float(fraction)


@dataclass(frozen=True)
class MilestoneUpdateResult:
    """Outcome of one milestone update.  ``event`` is None for a no-op."""

    component: Component
    event: MilestoneEvent | None
    previous_percent: Decimal
    warnings: tuple[CalculationWarning, ...] = ()

    @property
    def changed(self) -> bool:
        return self.event is not None


class MilestoneService:
    """
    Write path for components and their milestones.

    Contract:
        Flushes but never commits; the caller owns the transaction.
    Guarantees:
        - State, event and stored percent change together in one flush.
    Non-goals:
        - Does not import components in bulk (external collaborator).
    """

    def __init__(
        self,
        session: Session,
        catalog: CompiledCatalog,
        clock: Clock | None = None,
        calculator: PercentCompleteCalculator | None = None,
    ) -> None:
        self._session = session
        self._compiled = catalog
        self._catalog: MilestoneCatalog = catalog.catalog
        self._clock = clock or SystemClock()
        self._normalizer = MilestoneValueNormalizer()
        self._calculator = calculator or PercentCompleteCalculator(self._normalizer)
        self._components = ComponentSelector(session)
        self._events = MilestoneEventSelector(session)
        self._distribution = BudgetDistributionEngine()
        self._quantum = Decimal(1).scaleb(-catalog.reporting.percent_decimal_places)

    # -----------------------------------------------------------------
    # Registration
    # -----------------------------------------------------------------

    def register_component(
        self,
        project_id: UUID,
        component_type: ComponentType | str,
        identity_key: Mapping[str, Any],
        actor_id: UUID,
        budgeted_manhours: Decimal | None = None,
        area_id: UUID | None = None,
        system_id: UUID | None = None,
        test_package_id: UUID | None = None,
        drawing_id: UUID | None = None,
        welder_id: UUID | None = None,
        weld_type: str | None = None,
        attributes: Mapping[str, Any] | None = None,
    ) -> Component:
        """
        Create a component with empty milestone state.

        Raises:
            MilestoneTemplateNotFoundError: the type has no template.
            InvalidMilestoneUpdateError: weld data on a non-weld component.
        """
        component_type = str(getattr(component_type, "value", component_type))
        self._catalog.template_for(component_type, project_id)

        is_weld = component_type == ComponentType.FIELD_WELD.value
        if not is_weld and (welder_id is not None or weld_type is not None):
            raise InvalidMilestoneUpdateError(
                "(new)", "welder", f"component type '{component_type}' carries no weld detail"
            )

        model = ComponentModel(
            project_id=project_id,
            component_type=component_type,
            identity_key=dict(identity_key),
            budgeted_manhours=to_decimal(budgeted_manhours) if budgeted_manhours is not None else None,
            current_milestones={},
            percent_complete=ZERO,
            is_retired=False,
            template_version=self._catalog.version,
            attributes=dict(attributes or {}),
            area_id=area_id,
            system_id=system_id,
            test_package_id=test_package_id,
            drawing_id=drawing_id,
            created_by_id=actor_id,
        )
        if is_weld:
            model.field_weld = FieldWeldDetailModel(
                welder_id=welder_id,
                weld_type=weld_type,
                created_by_id=actor_id,
            )
        self._session.add(model)
        self._session.flush()

        logger.info(
            "component_registered",
            extra={
                "component_id": str(model.id),
                "project_id": str(project_id),
                "component_type": component_type,
                "template_version": self._catalog.version,
            },
        )
        return component_from_model(model)

    def assign_welder(self, component_id: UUID, welder_id: UUID | None, actor_id: UUID) -> Component:
        """Set or clear the welder of a field weld."""
        model = self._components.get_model(component_id)
        if model.field_weld is None:
            raise InvalidMilestoneUpdateError(
                str(component_id), "welder", "component has no weld detail"
            )
        model.field_weld.welder_id = welder_id
        model.field_weld.updated_by_id = actor_id
        self._session.flush()
        logger.info(
            "welder_assigned",
            extra={"component_id": str(component_id), "welder_id": str(welder_id) if welder_id else None},
        )
        return component_from_model(model)

    def retire_component(self, component_id: UUID, actor_id: UUID) -> Component:
        model = self._components.get_model(component_id)
        model.is_retired = True
        model.updated_by_id = actor_id
        self._session.flush()
        logger.info("component_retired", extra={"component_id": str(component_id)})
        return component_from_model(model)

    # -----------------------------------------------------------------
    # Milestone updates
    # -----------------------------------------------------------------

    def update_milestone(
        self,
        component_id: UUID,
        milestone_name: str,
        value: Any,
        actor_id: UUID,
        occurred_at: datetime | None = None,
    ) -> MilestoneUpdateResult:
        """
        Set one milestone of one component.

        ``value`` accepts booleans, 0/1, 0-100 percentages and numeric
        strings; it is stored as a fraction in [0, 1].

        Raises:
            ComponentNotFoundError: unknown component.
            RetiredComponentError: component is retired.
            InvalidMilestoneUpdateError: unknown milestone, a value that
                would need coercion, a welder-gated milestone without a
                welder, or an ``occurred_at`` earlier than the component's
                latest event.
        """
        with LogContext.bind(component_id=str(component_id), actor_id=str(actor_id)):
            model = self._components.get_model(component_id)
            if model.is_retired:
                raise RetiredComponentError(str(component_id))

            definition = self._catalog.resolve(model.component_type, milestone_name, model.project_id)
            if definition is None:
                raise InvalidMilestoneUpdateError(
                    str(component_id),
                    milestone_name,
                    f"not a milestone of '{model.component_type}'",
                )

            normalized = self._normalizer.normalize(value, definition.kind, definition.name)
            if normalized.warning is not None:
                raise InvalidMilestoneUpdateError(
                    str(component_id), definition.name, normalized.warning.message
                )
            new_fraction = normalized.fraction

            if definition.requires_welder and new_fraction > ZERO and model.welder_id is None:
                raise InvalidMilestoneUpdateError(
                    str(component_id), definition.name, "a welder must be assigned first"
                )

            # Replay orders by occurred_at, so history may not be rewritten backwards.
            occurred_at = as_utc(occurred_at) if occurred_at is not None else self._clock.now()
            latest = self._events.latest_occurred_at(model.id)
            if latest is not None and occurred_at < latest:
                raise InvalidMilestoneUpdateError(
                    str(component_id),
                    definition.name,
                    f"occurred_at {occurred_at.isoformat()} precedes the latest event at {latest.isoformat()}",
                )

            state = dict(model.current_milestones or {})
            previous_value = None
            for key in list(state):
                if key == definition.name or self._catalog.canonical_name(
                    model.component_type, key, model.project_id
                ) == definition.name:
                    previous_value = state.pop(key)
            previous_fraction = (
                self._normalizer.normalize(previous_value, definition.kind, definition.name).fraction
                if previous_value is not None
                else ZERO
            )

            previous_percent = model.percent_complete
            if new_fraction == previous_fraction and previous_value is not None:
                logger.debug("milestone_unchanged", extra={"milestone_name": definition.name})
                return MilestoneUpdateResult(
                    component=component_from_model(model),
                    event=None,
                    previous_percent=previous_percent,
                )

            state[definition.name] = _json_value(new_fraction)
            result = self._calculator.evaluate(
                model.component_type, state, self._catalog,
                project_id=model.project_id, component_id=model.id,
            )

            budget = model.budgeted_manhours or ZERO
            delta_mh = (new_fraction - previous_fraction) * definition.weight * budget / HUNDRED
            if new_fraction < previous_fraction:
                action = EventAction.ROLLBACK
            elif new_fraction == ONE:
                action = EventAction.COMPLETE
            else:
                action = EventAction.UPDATE

            event = MilestoneEventModel(
                component_id=model.id,
                project_id=model.project_id,
                sequence=self._events.next_sequence(model.id),
                milestone_name=definition.name,
                previous_value=previous_value,
                value=_json_value(new_fraction),
                action=action.value,
                delta_mh=delta_mh,
                category=definition.category.value if definition.category else None,
                actor_id=actor_id,
                occurred_at=occurred_at,
            )
            self._session.add(event)

            model.current_milestones = state
            model.percent_complete = result.percent.quantize(self._quantum, rounding=ROUND_HALF_UP)
            model.updated_by_id = actor_id
            self._session.flush()

            logger.info(
                "milestone_updated",
                extra={
                    "milestone_name": definition.name,
                    "previous_value": previous_value,
                    "value": _json_value(new_fraction),
                    "action": action.value,
                    "delta_mh": delta_mh,
                    "percent_complete": model.percent_complete,
                    "catalog_version": self._catalog.version,
                },
            )
            return MilestoneUpdateResult(
                component=component_from_model(model),
                event=event_from_model(event),
                previous_percent=previous_percent,
                warnings=result.warnings,
            )

    # -----------------------------------------------------------------
    # Budget
    # -----------------------------------------------------------------

    def distribute_budget(
        self,
        project_id: UUID,
        total_budget: Decimal,
        actor_id: UUID,
    ) -> DistributionResult:
        """
        Spread ``total_budget`` over the project's active components by size
        weight and store each allocation as the component budget.

        Raises:
            ZeroDistributionWeightError: no active component carries weight.
        """
        components = self._components.fetch_components(project_id)
        result = self._distribution.distribute(total_budget, components)

        models = {m.id: m for m in (self._components.get_model(line.component_id) for line in result.lines)}
        for line in result.lines:
            model = models[line.component_id]
            model.budgeted_manhours = line.allocated_mh
            model.updated_by_id = actor_id
        self._session.flush()

        logger.info(
            "budget_distributed",
            extra={
                "project_id": str(project_id),
                "total_budget": result.total_budget,
                "component_count": len(result.lines),
                "rounding_adjustment": result.rounding_adjustment,
            },
        )
        return result

    # -----------------------------------------------------------------
    # Administrative removal
    # -----------------------------------------------------------------

    def remove_component(self, component_id: UUID, actor_id: UUID, reason: str) -> int:
        """
        Delete a component with its weld detail and full event history.

        Returns:
            Number of milestone events removed with it.
        """
        model = self._components.get_model(component_id)
        # Events are appended by id, not through the relationship.
        self._session.expire(model, ["events"])
        event_count = len(model.events)
        self._session.delete(model)
        self._session.flush()
        logger.warning(
            "component_removed",
            extra={
                "component_id": str(component_id),
                "project_id": str(model.project_id),
                "actor_id": str(actor_id),
                "reason": reason,
                "event_count": event_count,
            },
        )
        return event_count
