"""
Typed Exception Hierarchy for the Progress Kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Callers of the progress engine (reporting jobs, import pipelines, the audit
runner) must be able to tell a broken catalog apart from a bad request
without parsing messages.  Every error therefore has:
  1. A TYPED exception class (catch by type, not message)
  2. A CODE attribute (machine-readable, API-safe)
  3. Structured DATA attributes (not just a message string)

Only configuration errors stop a calculation.  Classification gaps and
normalization ambiguity are NOT exceptions -- they travel as
``CalculationWarning`` values next to a best-effort result.  Consistency
violations are NOT exceptions either -- they are ``Discrepancy`` entries in
an audit report.

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    ProgressKernelError (base)
    |
    +-- CatalogError
    |   +-- CatalogValidationError
    |   +-- MilestoneTemplateNotFoundError
    |   +-- CatalogVersionNotFoundError
    |   +-- CatalogIntegrityError
    |
    +-- ComponentError
    |   +-- ComponentNotFoundError
    |   +-- RetiredComponentError
    |   +-- InvalidMilestoneUpdateError
    |
    +-- QueryError
    |   +-- InvalidTimeWindowError
    |   +-- InvalidDimensionError
    |
    +-- BudgetError
    |   +-- ZeroDistributionWeightError
    |
    +-- RepairError
    |   +-- RepairScopeError
    |
    +-- AuditError
    |   +-- AuditCancelledError
    |
    +-- ImmutabilityError
        +-- ImmutabilityViolationError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category      | Code                         | When Raised
--------------|------------------------------|-----------------------------------------
Catalog       | CATALOG_INVALID              | Weights != 100, duplicate names, bad alias
              | MILESTONE_TEMPLATE_NOT_FOUND | No template for component type
              | CATALOG_VERSION_NOT_FOUND    | Requested catalog version does not exist
              | CATALOG_INTEGRITY_MISMATCH   | Compiled checksum != approved pin
--------------|------------------------------|-----------------------------------------
Component     | COMPONENT_NOT_FOUND          | Component ID does not exist
              | RETIRED_COMPONENT            | Milestone update on a retired component
              | INVALID_MILESTONE_UPDATE     | Unknown milestone or invalid value
--------------|------------------------------|-----------------------------------------
Query         | INVALID_TIME_WINDOW          | start >= end
              | INVALID_DIMENSION            | Unsupported aggregation dimension
--------------|------------------------------|-----------------------------------------
Budget        | ZERO_DISTRIBUTION_WEIGHT     | Budget distribution over zero weight
--------------|------------------------------|-----------------------------------------
Repair        | REPAIR_SCOPE_INVALID         | Repair without actor, reason or scope
--------------|------------------------------|-----------------------------------------
Audit         | AUDIT_CANCELLED              | Audit run stopped before all partitions
--------------|------------------------------|-----------------------------------------
Immutability  | IMMUTABILITY_VIOLATION       | Updating/deleting a milestone event
"""

from __future__ import annotations

from typing import Any


class ProgressKernelError(Exception):
    """
    Base exception for all progress kernel errors.

    All subclasses must have a ``code`` class attribute for machine-readable
    error identification.
    """

    code: str = "PROGRESS_KERNEL_ERROR"


# Catalog (configuration) exceptions


class CatalogError(ProgressKernelError):
    """Base exception for milestone catalog configuration errors."""

    code: str = "CATALOG_ERROR"


class CatalogValidationError(CatalogError):
    """
    Milestone catalog failed validation at load time.

    The engine refuses to calculate with an invalid catalog rather than
    produce a plausible-looking wrong number.
    """

    code: str = "CATALOG_INVALID"

    def __init__(self, catalog_id: str, errors: list[str] | tuple[str, ...]):
        self.catalog_id = catalog_id
        self.errors = tuple(errors)
        super().__init__(
            f"Milestone catalog '{catalog_id}' is invalid:\n"
            + "\n".join(f"  - {e}" for e in self.errors)
        )


class MilestoneTemplateNotFoundError(CatalogError):
    """No milestone template is configured for a component type."""

    code: str = "MILESTONE_TEMPLATE_NOT_FOUND"

    def __init__(self, component_type: str, catalog_id: str, version: int):
        self.component_type = component_type
        self.catalog_id = catalog_id
        self.version = version
        super().__init__(
            f"No milestone template for component type '{component_type}' "
            f"in catalog {catalog_id} v{version}"
        )


class CatalogVersionNotFoundError(CatalogError):
    """A specific catalog version was requested but does not exist."""

    code: str = "CATALOG_VERSION_NOT_FOUND"

    def __init__(self, version: int | None, available: tuple[int, ...] = ()):
        self.version = version
        self.available = available
        super().__init__(
            f"Milestone catalog version {version} not found "
            f"(available: {', '.join(str(v) for v in available) or 'none'})"
        )


class CatalogIntegrityError(CatalogError):
    """Compiled catalog checksum does not match the approved pin."""

    code: str = "CATALOG_INTEGRITY_MISMATCH"

    def __init__(self, catalog_id: str, expected: str, actual: str, pin_path: Any):
        self.catalog_id = catalog_id
        self.expected = expected
        self.actual = actual
        self.pin_path = pin_path
        super().__init__(
            f"Catalog integrity check failed for '{catalog_id}': "
            f"pinned checksum {expected[:16]}... != "
            f"compiled checksum {actual[:16]}... "
            f"(pin file: {pin_path})"
        )


# Component exceptions


class ComponentError(ProgressKernelError):
    """Base exception for component-related errors."""

    code: str = "COMPONENT_ERROR"


class ComponentNotFoundError(ComponentError):
    """Component with given ID was not found."""

    code: str = "COMPONENT_NOT_FOUND"

    def __init__(self, component_id: str):
        self.component_id = component_id
        super().__init__(f"Component not found: {component_id}")


class RetiredComponentError(ComponentError):
    """Milestones cannot be updated on a retired component."""

    code: str = "RETIRED_COMPONENT"

    def __init__(self, component_id: str):
        self.component_id = component_id
        super().__init__(
            f"Component {component_id} is retired; milestone updates are not allowed"
        )


class InvalidMilestoneUpdateError(ComponentError):
    """A milestone update names an unknown milestone or carries a bad value."""

    code: str = "INVALID_MILESTONE_UPDATE"

    def __init__(self, component_id: str, milestone_name: str, reason: str):
        self.component_id = component_id
        self.milestone_name = milestone_name
        self.reason = reason
        super().__init__(
            f"Invalid update of milestone '{milestone_name}' on component "
            f"{component_id}: {reason}"
        )


# Query exceptions


class QueryError(ProgressKernelError):
    """Base exception for malformed engine queries."""

    code: str = "QUERY_ERROR"


class InvalidTimeWindowError(QueryError):
    """Delta window must satisfy start < end."""

    code: str = "INVALID_TIME_WINDOW"

    def __init__(self, start: Any, end: Any):
        self.start = start
        self.end = end
        super().__init__(f"Invalid time window: start {start} must be before end {end}")


class InvalidDimensionError(QueryError):
    """Aggregation dimension is not supported."""

    code: str = "INVALID_DIMENSION"

    def __init__(self, dimension: str):
        self.dimension = dimension
        super().__init__(
            f"Invalid dimension: {dimension}. Must be one of "
            "area, system, test_package, drawing, welder, project"
        )


# Budget exceptions


class BudgetError(ProgressKernelError):
    """Base exception for manhour budget errors."""

    code: str = "BUDGET_ERROR"


class ZeroDistributionWeightError(BudgetError):
    """Sum of component weights is zero, cannot distribute budget."""

    code: str = "ZERO_DISTRIBUTION_WEIGHT"

    def __init__(self, component_count: int):
        self.component_count = component_count
        super().__init__(
            f"Sum of weights over {component_count} components is zero; "
            "cannot distribute budget"
        )


# Repair exceptions


class RepairError(ProgressKernelError):
    """Base exception for repair operations."""

    code: str = "REPAIR_ERROR"


class RepairScopeError(RepairError):
    """
    Repair request is not explicitly scoped.

    Repairs are human-triggered: they require an actor, a reason and a
    non-empty set of components.
    """

    code: str = "REPAIR_SCOPE_INVALID"

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(f"Repair rejected: {reason}")


# Audit exceptions


class AuditError(ProgressKernelError):
    """Base exception for audit runs."""

    code: str = "AUDIT_ERROR"


class AuditCancelledError(AuditError):
    """
    Audit run was cancelled before every partition finished.

    Completed partitions stay in the checkpoint; running the audit again
    with the same checkpoint resumes with the remaining ones.
    """

    code: str = "AUDIT_CANCELLED"

    def __init__(self, run_id: str, completed: tuple[str, ...], remaining: tuple[str, ...]):
        self.run_id = run_id
        self.completed = completed
        self.remaining = remaining
        super().__init__(
            f"Audit run {run_id} cancelled with {len(remaining)} of "
            f"{len(completed) + len(remaining)} partitions remaining"
        )


# Immutability exceptions


class ImmutabilityError(ProgressKernelError):
    """Base exception for immutability-related errors."""

    code: str = "IMMUTABILITY_ERROR"


class ImmutabilityViolationError(ImmutabilityError):
    """
    Attempted to modify or delete an immutable record.

    Milestone events are append-only; they are only removed together with
    their component by an administrative removal.
    """

    code: str = "IMMUTABILITY_VIOLATION"

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(
            f"Immutability violation on {entity_type} {entity_id}: {reason}"
        )
