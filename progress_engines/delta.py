"""
Module: progress_engines.delta
Responsibility:
    Earned-manhour change over a time window, computed from the milestone
    event log rather than from current state.  Also replays a component's
    full history to check the log against its current milestone state.

Architecture position:
    Engines -- pure calculation layer, zero I/O, no clock.

Algorithm (window):
    Events with ``start <= occurred_at < end`` are taken per component in
    (occurred_at, input order) order.  Each event contributes
        (new_fraction - previous_fraction) * weight * budget / 100
    where the fractions are the normalized ``value`` and ``previous_value``
    recorded on the event.  FORWARD mode floors each contribution at 0;
    NET mode keeps the sign.  Both modes count rollbacks.

Algorithm (replay):
    Start from empty state, apply every event in order and sum the signed
    contributions measured against the replayed state.  An event whose
    recorded ``previous_value`` disagrees with the replayed value is a
    chain gap.

Invariants enforced:
    - Full-lifetime NET replay equals budget * current percent / 100 when
      the log is complete.
    - Per-component processing is strictly ordered; components are
      independent of each other.
    - Unclassified events never reach MH or category totals but are
      counted in ``event_count`` and in ``classification_gaps``, one entry
      per (component type, normalized milestone name).
    - With a ``category`` filter, ``rollback_count`` counts only rollbacks
      of that category.

Failure modes:
    - ``InvalidTimeWindowError`` when ``start >= end``.
    - ``MilestoneTemplateNotFoundError`` for a component type without a
      template.
"""

from __future__ import annotations

from collections import Counter
from collections.abc import Callable, Hashable, Iterable, Mapping, Sequence
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID

from progress_engines.normalizer import MilestoneValueNormalizer
from progress_engines.percent_complete import PercentCompleteCalculator
from progress_engines.tracer import traced_engine
from progress_kernel.domain.catalog import MilestoneCatalog, normalize_milestone_name
from progress_kernel.domain.values import (
    HUNDRED,
    ZERO,
    Component,
    MilestoneDefinition,
    MilestoneEvent,
    StandardCategory,
)
from progress_kernel.exceptions import InvalidTimeWindowError
from progress_kernel.logging_config import get_logger

logger = get_logger("engines.delta")


class DeltaMode(str, Enum):
    """How regressions count toward a window delta."""

    FORWARD = "forward"  # only progress counts
    NET = "net"  # rollbacks subtract


def _zero_categories() -> dict[StandardCategory, Decimal]:
    return {c: ZERO for c in StandardCategory.ordered()}


def _ordered_events(events: Iterable[MilestoneEvent]) -> dict[UUID, list[MilestoneEvent]]:
    """Events grouped per component, each list in processing order.

    ``sorted`` is stable, so events with equal timestamps keep input order
    (the selectors deliver them by sequence).
    """
    grouped: dict[UUID, list[MilestoneEvent]] = {}
    for event in events:
        grouped.setdefault(event.component_id, []).append(event)
    return {cid: sorted(evs, key=lambda e: e.occurred_at) for cid, evs in grouped.items()}


@dataclass(frozen=True)
class EventDelta:
    """Contribution of one milestone event."""

    event: MilestoneEvent
    milestone_name: str | None
    category: StandardCategory | None
    previous_fraction: Decimal
    new_fraction: Decimal
    delta_percent: Decimal
    delta_mh: Decimal

    @property
    def is_classified(self) -> bool:
        return self.milestone_name is not None

    @property
    def is_rollback(self) -> bool:
        return self.new_fraction < self.previous_fraction


@dataclass(frozen=True)
class ComponentDelta:
    """Window totals of one component."""

    component_id: UUID
    budget_mh: Decimal
    delta_mh: Decimal = ZERO
    delta_percent: Decimal = ZERO
    delta_by_category: Mapping[StandardCategory, Decimal] = field(default_factory=_zero_categories)
    event_count: int = 0
    rollback_count: int = 0
    negative_mh: Decimal = ZERO


@dataclass(frozen=True)
class DeltaResult:
    """Earned-MH change over ``[start, end)``."""

    start: datetime
    end: datetime
    mode: DeltaMode
    category: StandardCategory | None
    delta_mh: Decimal
    delta_by_category: Mapping[StandardCategory, Decimal]
    by_component: Mapping[UUID, ComponentDelta]
    event_count: int
    rollback_count: int
    negative_mh: Decimal
    classification_gaps: Mapping[tuple[str, str], int] = field(default_factory=dict)
    skipped_event_count: int = 0

    @property
    def components_with_activity(self) -> int:
        return sum(1 for c in self.by_component.values() if c.event_count)


@dataclass(frozen=True)
class DimensionDelta:
    """Window totals for one dimension key."""

    budget_mh: Decimal = ZERO
    delta_mh: Decimal = ZERO
    delta_by_category: Mapping[StandardCategory, Decimal] = field(default_factory=_zero_categories)
    budget_by_category: Mapping[StandardCategory, Decimal] = field(default_factory=_zero_categories)
    components_with_activity: int = 0
    rollback_count: int = 0

    @property
    def window_percent(self) -> Decimal:
        """Delta as a percentage of the dimension budget, 0 without budget."""
        if self.budget_mh == ZERO:
            return ZERO
        return self.delta_mh / self.budget_mh * HUNDRED


@dataclass(frozen=True)
class ChainGap:
    """An event whose recorded previous value does not follow the replay."""

    event_id: UUID
    milestone_name: str
    expected_fraction: Decimal
    recorded_fraction: Decimal
    occurred_at: datetime


@dataclass(frozen=True)
class ReplayResult:
    """Full-history replay of one component."""

    component_id: UUID
    replayed_state: Mapping[str, Any]
    net_delta_mh: Decimal
    net_delta_percent: Decimal
    replayed_percent: Decimal
    current_percent: Decimal
    current_earned_mh: Decimal
    state_mismatches: tuple[str, ...] = ()
    chain_gaps: tuple[ChainGap, ...] = ()
    unclassified_events: tuple[MilestoneEvent, ...] = ()
    event_count: int = 0

    @property
    def earned_delta(self) -> Decimal:
        """Replayed lifetime MH minus current earned MH (0 when consistent)."""
        return self.net_delta_mh - self.current_earned_mh

    @property
    def is_consistent(self) -> bool:
        return not self.state_mismatches and not self.chain_gaps


class MilestoneDeltaEngine:
    """
    Event-log based earned-MH deltas.

    Contract:
        Components and events are snapshots; the engine only reads them.
    Guarantees:
        - Deterministic for the same inputs.
        - Events of components not in ``components`` are skipped and
          counted in ``skipped_event_count``.
    """

    def __init__(
        self,
        normalizer: MilestoneValueNormalizer | None = None,
        calculator: PercentCompleteCalculator | None = None,
    ):
        self._normalizer = normalizer or MilestoneValueNormalizer()
        self._calculator = calculator or PercentCompleteCalculator(self._normalizer)

    # -----------------------------------------------------------------
    # Window deltas
    # -----------------------------------------------------------------

    @traced_engine(
        "delta",
        "1.0",
        fingerprint_fields=("components", "events", "catalog", "start", "end", "mode", "category"),
    )
    def delta(
        self,
        components: Sequence[Component],
        events: Sequence[MilestoneEvent],
        catalog: MilestoneCatalog,
        start: datetime,
        end: datetime,
        mode: DeltaMode = DeltaMode.FORWARD,
        category: StandardCategory | None = None,
    ) -> DeltaResult:
        return self.window(components, events, catalog, start, end, mode, category)

    @traced_engine(
        "delta_by_dimension",
        "1.0",
        fingerprint_fields=("components", "events", "catalog", "start", "end", "mode", "category"),
    )
    def delta_by_dimension(
        self,
        components: Sequence[Component],
        events: Sequence[MilestoneEvent],
        catalog: MilestoneCatalog,
        start: datetime,
        end: datetime,
        dimension_key_fn: Callable[[Component], Hashable],
        mode: DeltaMode = DeltaMode.FORWARD,
        category: StandardCategory | None = None,
    ) -> dict[Hashable, DimensionDelta]:
        """Window deltas grouped by dimension key.

        Every non-retired component's budget counts toward its key, with or
        without activity in the window.
        """
        result = self.window(components, events, catalog, start, end, mode, category)

        grouped: dict[Hashable, DimensionDelta] = {}
        for component in components:
            if component.is_retired:
                continue
            key = dimension_key_fn(component)
            current = grouped.get(key, DimensionDelta())
            cd = result.by_component.get(component.id)
            budget_by_category = {
                c: component.budget * w / HUNDRED
                for c, w in catalog.category_weights(component.component_type, component.project_id).items()
            }
            grouped[key] = DimensionDelta(
                budget_mh=current.budget_mh + component.budget,
                delta_mh=current.delta_mh + (cd.delta_mh if cd else ZERO),
                delta_by_category={
                    c: current.delta_by_category[c] + (cd.delta_by_category[c] if cd else ZERO)
                    for c in StandardCategory.ordered()
                },
                budget_by_category={
                    c: current.budget_by_category[c] + budget_by_category[c]
                    for c in StandardCategory.ordered()
                },
                components_with_activity=current.components_with_activity + (1 if cd and cd.event_count else 0),
                rollback_count=current.rollback_count + (cd.rollback_count if cd else 0),
            )
        return grouped

    def window(
        self,
        components: Sequence[Component],
        events: Sequence[MilestoneEvent],
        catalog: MilestoneCatalog,
        start: datetime,
        end: datetime,
        mode: DeltaMode = DeltaMode.FORWARD,
        category: StandardCategory | None = None,
    ) -> DeltaResult:
        """Untraced window computation shared by the public operations."""
        if start >= end:
            raise InvalidTimeWindowError(start, end)
        mode = DeltaMode(mode)
        category = StandardCategory(category) if category is not None else None

        by_id = {c.id: c for c in components if not c.is_retired}
        grouped = _ordered_events(e for e in events if start <= e.occurred_at < end)

        by_component: dict[UUID, ComponentDelta] = {}
        gaps: Counter[tuple[str, str]] = Counter()
        spellings: dict[tuple[str, str], str] = {}
        skipped = 0

        for component_id in sorted(grouped, key=str):
            component = by_id.get(component_id)
            if component is None:
                skipped += len(grouped[component_id])
                continue

            delta_mh = ZERO
            delta_percent = ZERO
            negative_mh = ZERO
            rollbacks = 0
            per_category = _zero_categories()

            for event in grouped[component_id]:
                ed = self._event_delta(component, event, catalog, event.previous_value)
                if not ed.is_classified:
                    key = (component.component_type, normalize_milestone_name(event.milestone_name))
                    gaps[key] += 1
                    spellings[key] = min(spellings.get(key, event.milestone_name), event.milestone_name)
                    continue
                if category is not None and ed.category != category:
                    continue
                if ed.is_rollback:
                    rollbacks += 1
                contribution_mh = ed.delta_mh
                contribution_pct = ed.delta_percent
                if contribution_mh < ZERO:
                    negative_mh += contribution_mh
                if mode == DeltaMode.FORWARD:
                    contribution_mh = max(contribution_mh, ZERO)
                    contribution_pct = max(contribution_pct, ZERO)
                delta_mh += contribution_mh
                delta_percent += contribution_pct
                per_category[ed.category] += contribution_mh

            by_component[component_id] = ComponentDelta(
                component_id=component_id,
                budget_mh=component.budget,
                delta_mh=delta_mh,
                delta_percent=delta_percent,
                delta_by_category=per_category,
                event_count=len(grouped[component_id]),
                rollback_count=rollbacks,
                negative_mh=negative_mh,
            )

        if skipped:
            logger.debug("delta_events_skipped", extra={"skipped_event_count": skipped})

        totals = _zero_categories()
        for cd in by_component.values():
            for c in StandardCategory.ordered():
                totals[c] += cd.delta_by_category[c]

        return DeltaResult(
            start=start,
            end=end,
            mode=mode,
            category=category,
            delta_mh=sum((cd.delta_mh for cd in by_component.values()), ZERO),
            delta_by_category=totals,
            by_component=by_component,
            event_count=sum(cd.event_count for cd in by_component.values()),
            rollback_count=sum(cd.rollback_count for cd in by_component.values()),
            negative_mh=sum((cd.negative_mh for cd in by_component.values()), ZERO),
            classification_gaps={
                (ctype, spellings[(ctype, name)]): count for (ctype, name), count in gaps.items()
            },
            skipped_event_count=skipped,
        )

    # -----------------------------------------------------------------
    # Replay
    # -----------------------------------------------------------------

    @traced_engine("replay", "1.0", fingerprint_fields=("component", "events", "catalog"))
    def replay(
        self,
        component: Component,
        events: Sequence[MilestoneEvent],
        catalog: MilestoneCatalog,
    ) -> ReplayResult:
        return self.replay_component(component, events, catalog)

    def replay_component(
        self,
        component: Component,
        events: Sequence[MilestoneEvent],
        catalog: MilestoneCatalog,
    ) -> ReplayResult:
        """Untraced replay for bulk callers (auditor)."""
        ordered = _ordered_events(e for e in events if e.component_id == component.id).get(component.id, [])

        state: dict[str, Any] = {}
        net_mh = ZERO
        net_pct = ZERO
        gaps: list[ChainGap] = []
        unclassified: list[MilestoneEvent] = []

        for event in ordered:
            definition = catalog.resolve(component.component_type, event.milestone_name, component.project_id)
            replayed_previous = self._replayed_value(component, state, event.milestone_name, catalog)
            ed = self._event_delta(component, event, catalog, replayed_previous)

            if definition is not None:
                recorded = self._fraction(event.previous_value, definition)
                if recorded != ed.previous_fraction:
                    gaps.append(
                        ChainGap(
                            event_id=event.id,
                            milestone_name=definition.name,
                            expected_fraction=ed.previous_fraction,
                            recorded_fraction=recorded,
                            occurred_at=event.occurred_at,
                        )
                    )
                net_mh += ed.delta_mh
                net_pct += ed.delta_percent
            else:
                unclassified.append(event)

            # A renamed key replaces the earlier spelling of the same milestone.
            for key in [k for k in state if self._same_milestone(component, k, event.milestone_name, catalog)]:
                del state[key]
            state[event.milestone_name] = event.value

        replayed = self._calculator.evaluate(
            component.component_type, state, catalog, project_id=component.project_id
        )
        current = self._calculator.evaluate(
            component.component_type, component.current_milestones, catalog, project_id=component.project_id
        )
        mismatches = tuple(
            name
            for name, fraction in current.fractions.items()
            if replayed.fraction_of(name) != fraction
        )

        return ReplayResult(
            component_id=component.id,
            replayed_state=state,
            net_delta_mh=net_mh,
            net_delta_percent=net_pct,
            replayed_percent=replayed.percent,
            current_percent=current.percent,
            current_earned_mh=component.budget * current.percent / HUNDRED,
            state_mismatches=mismatches,
            chain_gaps=tuple(gaps),
            unclassified_events=tuple(unclassified),
            event_count=len(ordered),
        )

    # -----------------------------------------------------------------
    # High-water marks
    # -----------------------------------------------------------------

    @traced_engine("high_water_marks", "1.0", fingerprint_fields=("components", "events", "catalog"))
    def high_water_marks(
        self,
        components: Sequence[Component],
        events: Sequence[MilestoneEvent],
        catalog: MilestoneCatalog,
        dimension_key_fn: Callable[[Component], Hashable],
    ) -> dict[Hashable, Decimal]:
        """Highest cumulative earned MH each dimension key ever reached.

        Walks the whole event history in time order, applying signed
        contributions against replayed state.
        """
        by_id = {c.id: c for c in components if not c.is_retired}
        timeline = sorted(
            (e for e in events if e.component_id in by_id),
            key=lambda e: e.occurred_at,
        )

        states: dict[UUID, dict[str, Any]] = {}
        cumulative: dict[Hashable, Decimal] = {dimension_key_fn(c): ZERO for c in by_id.values()}
        marks: dict[Hashable, Decimal] = dict(cumulative)

        for event in timeline:
            component = by_id[event.component_id]
            state = states.setdefault(component.id, {})
            previous = self._replayed_value(component, state, event.milestone_name, catalog)
            ed = self._event_delta(component, event, catalog, previous)
            for key in [k for k in state if self._same_milestone(component, k, event.milestone_name, catalog)]:
                del state[key]
            state[event.milestone_name] = event.value
            if not ed.is_classified:
                continue
            key = dimension_key_fn(component)
            cumulative[key] += ed.delta_mh
            if cumulative[key] > marks[key]:
                marks[key] = cumulative[key]
        return marks

    # -----------------------------------------------------------------
    # Helpers
    # -----------------------------------------------------------------

    def _fraction(self, raw_value: Any, definition: MilestoneDefinition) -> Decimal:
        if raw_value is None:
            return ZERO
        return self._normalizer.normalize(raw_value, definition.kind, definition.name).fraction

    def _event_delta(
        self,
        component: Component,
        event: MilestoneEvent,
        catalog: MilestoneCatalog,
        previous_value: Any,
    ) -> EventDelta:
        definition = catalog.resolve(component.component_type, event.milestone_name, component.project_id)
        if definition is None:
            return EventDelta(
                event=event,
                milestone_name=None,
                category=None,
                previous_fraction=ZERO,
                new_fraction=ZERO,
                delta_percent=ZERO,
                delta_mh=ZERO,
            )
        previous = self._fraction(previous_value, definition)
        new = self._fraction(event.value, definition)
        delta_percent = (new - previous) * definition.weight
        return EventDelta(
            event=event,
            milestone_name=definition.name,
            category=definition.category,
            previous_fraction=previous,
            new_fraction=new,
            delta_percent=delta_percent,
            delta_mh=delta_percent * component.budget / HUNDRED,
        )

    def _replayed_value(
        self,
        component: Component,
        state: Mapping[str, Any],
        milestone_name: str,
        catalog: MilestoneCatalog,
    ) -> Any:
        for key, value in state.items():
            if self._same_milestone(component, key, milestone_name, catalog):
                return value
        return None

    @staticmethod
    def _same_milestone(
        component: Component, a: str, b: str, catalog: MilestoneCatalog
    ) -> bool:
        if a == b:
            return True
        name_a = catalog.canonical_name(component.component_type, a, component.project_id)
        return name_a is not None and name_a == catalog.canonical_name(
            component.component_type, b, component.project_id
        )
