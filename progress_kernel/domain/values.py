"""
Value objects for the progress domain.

Everything here is a frozen dataclass or a string enum: components and
milestone events are immutable snapshots handed to the pure engines by the
service layer, never live ORM rows.

Design decisions:
- Manhours and percentages are Decimal.  Floats arriving from stored JSON
  are converted through ``str()`` so 0.1 stays 0.1.
- ``Component.percent_complete`` is a cached projection.  The engines never
  trust it; the auditor compares it against a recomputation.
- Enum members subclass ``str`` so stored tags compare equal to them.
"""

from __future__ import annotations

from collections.abc import Callable, Hashable, Mapping
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any
from uuid import UUID

from progress_kernel.exceptions import InvalidDimensionError

ZERO = Decimal("0")
ONE = Decimal("1")
HUNDRED = Decimal("100")

# Stored-vs-recomputed percent tolerance, in percentage points.
DEFAULT_AUDIT_TOLERANCE = Decimal("0.1")

# Category subtotals must add up to the whole value within this bound.
DECOMPOSITION_TOLERANCE = Decimal("0.000001")


def to_decimal(value: Any) -> Decimal:
    """Convert int/float/str/Decimal to Decimal without binary float noise.

    Raises:
        ValueError: if the value is not numeric.
    """
    if isinstance(value, Decimal):
        return value
    if isinstance(value, bool):
        return ONE if value else ZERO
    if isinstance(value, (int, float, str)):
        try:
            return Decimal(str(value).strip())
        except InvalidOperation as exc:
            raise ValueError(f"Not a number: {value!r}") from exc
    raise ValueError(f"Not a number: {value!r}")


# =============================================================================
# Enums
# =============================================================================


class ComponentType(str, Enum):
    """Component types with a standard milestone template."""

    SPOOL = "spool"
    FIELD_WELD = "field_weld"
    SUPPORT = "support"
    VALVE = "valve"
    FITTING = "fitting"
    FLANGE = "flange"
    INSTRUMENT = "instrument"
    TUBING = "tubing"
    HOSE = "hose"
    MISC_COMPONENT = "misc_component"
    THREADED_PIPE = "threaded_pipe"
    PIPE = "pipe"


class MilestoneKind(str, Enum):
    """How a milestone contributes to percent complete."""

    DISCRETE = "discrete"  # 0% or 100% of its weight
    PARTIAL = "partial"  # weight * fraction complete


class StandardCategory(str, Enum):
    """Cross-type milestone grouping used for category rollups."""

    RECEIVE = "receive"
    INSTALL = "install"
    PUNCH = "punch"
    TEST = "test"
    RESTORE = "restore"

    @classmethod
    def ordered(cls) -> tuple[StandardCategory, ...]:
        """Categories in report column order."""
        return (cls.RECEIVE, cls.INSTALL, cls.PUNCH, cls.TEST, cls.RESTORE)


class EventAction(str, Enum):
    """What a milestone event did to the milestone."""

    COMPLETE = "complete"
    ROLLBACK = "rollback"
    UPDATE = "update"


class Dimension(str, Enum):
    """Aggregation dimension."""

    AREA = "area"
    SYSTEM = "system"
    TEST_PACKAGE = "test_package"
    DRAWING = "drawing"
    WELDER = "welder"
    PROJECT = "project"

    @classmethod
    def parse(cls, value: Dimension | str) -> Dimension:
        """Parse a dimension name.

        Raises:
            InvalidDimensionError: if the name is not a known dimension.
        """
        if isinstance(value, Dimension):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError as exc:
            raise InvalidDimensionError(str(value)) from exc


class WarningCode(str, Enum):
    """Non-fatal findings attached to a calculation result."""

    UNCLASSIFIED_MILESTONE = "unclassified_milestone"
    PARTIAL_DISCRETE_VALUE = "partial_discrete_value"
    UNPARSEABLE_VALUE = "unparseable_value"
    OUT_OF_RANGE_VALUE = "out_of_range_value"
    DUPLICATE_MILESTONE_KEY = "duplicate_milestone_key"
    PERCENT_CLAMPED = "percent_clamped"


# =============================================================================
# Value objects
# =============================================================================


@dataclass(frozen=True)
class CalculationWarning:
    """One non-fatal finding produced while calculating."""

    code: WarningCode
    message: str
    component_id: UUID | None = None
    component_type: str | None = None
    milestone_name: str | None = None
    raw_value: Any = None

    def with_component(self, component_id: UUID | None, component_type: str | None) -> CalculationWarning:
        """Copy of this warning tagged with the component it belongs to."""
        return CalculationWarning(
            code=self.code,
            message=self.message,
            component_id=component_id,
            component_type=component_type,
            milestone_name=self.milestone_name,
            raw_value=self.raw_value,
        )


@dataclass(frozen=True)
class MilestoneDefinition:
    """One weighted milestone of a component type's template."""

    name: str
    weight: Decimal
    kind: MilestoneKind
    category: StandardCategory | None
    order: int = 0
    requires_welder: bool = False

    def __post_init__(self) -> None:
        object.__setattr__(self, "weight", to_decimal(self.weight))
        object.__setattr__(self, "kind", MilestoneKind(self.kind))
        if self.category is not None:
            object.__setattr__(self, "category", StandardCategory(self.category))

    @property
    def is_partial(self) -> bool:
        return self.kind == MilestoneKind.PARTIAL


@dataclass(frozen=True)
class Component:
    """Snapshot of one tracked component.

    ``budgeted_manhours`` may be None: unbudgeted components are counted
    but contribute nothing to manhour totals.
    """

    id: UUID
    project_id: UUID
    component_type: str
    current_milestones: Mapping[str, Any] = field(default_factory=dict)
    percent_complete: Decimal = ZERO
    budgeted_manhours: Decimal | None = None
    is_retired: bool = False
    identity_key: Mapping[str, Any] = field(default_factory=dict)
    attributes: Mapping[str, Any] = field(default_factory=dict)
    area_id: UUID | None = None
    system_id: UUID | None = None
    test_package_id: UUID | None = None
    drawing_id: UUID | None = None
    welder_id: UUID | None = None
    template_version: int | None = None
    created_by: UUID | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "component_type", str(getattr(self.component_type, "value", self.component_type)))
        object.__setattr__(self, "percent_complete", to_decimal(self.percent_complete))
        if self.budgeted_manhours is not None:
            object.__setattr__(self, "budgeted_manhours", to_decimal(self.budgeted_manhours))

    @property
    def budget(self) -> Decimal:
        """Budgeted manhours, zero when unset."""
        return self.budgeted_manhours if self.budgeted_manhours is not None else ZERO

    @property
    def has_budget(self) -> bool:
        return self.budgeted_manhours is not None


@dataclass(frozen=True)
class MilestoneEvent:
    """Immutable record of one milestone value change."""

    id: UUID
    component_id: UUID
    milestone_name: str
    value: Any
    occurred_at: datetime
    previous_value: Any = None
    action: EventAction = EventAction.UPDATE
    delta_mh: Decimal | None = None
    category: StandardCategory | None = None
    actor_id: UUID | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "action", EventAction(self.action))
        if self.delta_mh is not None:
            object.__setattr__(self, "delta_mh", to_decimal(self.delta_mh))
        if self.category is not None:
            object.__setattr__(self, "category", StandardCategory(self.category))


# =============================================================================
# Dimension keys
# =============================================================================

_DIMENSION_ATTRIBUTES: dict[Dimension, str] = {
    Dimension.AREA: "area_id",
    Dimension.SYSTEM: "system_id",
    Dimension.TEST_PACKAGE: "test_package_id",
    Dimension.DRAWING: "drawing_id",
    Dimension.WELDER: "welder_id",
    Dimension.PROJECT: "project_id",
}


def dimension_key_fn(dimension: Dimension | str) -> Callable[[Component], Hashable]:
    """Key function grouping components by a dimension.

    Components without an assignment group under ``None`` (unassigned).
    """
    attr = _DIMENSION_ATTRIBUTES[Dimension.parse(dimension)]
    return lambda component: getattr(component, attr)
