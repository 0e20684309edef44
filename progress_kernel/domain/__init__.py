"""
Pure domain layer.

Value objects, the milestone catalog and the clock abstraction, with NO
dependencies on:
- ORM (SQLAlchemy)
- Database
- I/O

All domain objects are immutable and deterministic.
"""

from progress_kernel.domain.catalog import (
    MilestoneAlias,
    MilestoneCatalog,
    MilestoneTemplate,
    catalog_errors,
    normalize_milestone_name,
    template_errors,
)
from progress_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from progress_kernel.domain.values import (
    DEFAULT_AUDIT_TOLERANCE,
    CalculationWarning,
    Component,
    ComponentType,
    Dimension,
    EventAction,
    MilestoneDefinition,
    MilestoneEvent,
    MilestoneKind,
    StandardCategory,
    WarningCode,
    dimension_key_fn,
    to_decimal,
)

__all__ = [
    # Catalog
    "MilestoneAlias",
    "MilestoneCatalog",
    "MilestoneTemplate",
    "catalog_errors",
    "normalize_milestone_name",
    "template_errors",
    # Clock
    "Clock",
    "DeterministicClock",
    "SystemClock",
    # Values
    "DEFAULT_AUDIT_TOLERANCE",
    "CalculationWarning",
    "Component",
    "ComponentType",
    "Dimension",
    "EventAction",
    "MilestoneDefinition",
    "MilestoneEvent",
    "MilestoneKind",
    "StandardCategory",
    "WarningCode",
    "dimension_key_fn",
    "to_decimal",
]
