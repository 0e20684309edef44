"""
Configuration schema (``progress_config.schema``).

Frozen dataclasses describing a milestone catalog set exactly as written in
YAML, before validation.  Values stay close to their source form (weights
as Decimal, kinds and categories as strings) so the validator can report
every problem instead of failing on the first bad enum value.

The compiled runtime artifact is ``progress_config.compiler.CompiledCatalog``;
nothing outside this package should consume these types.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal

from progress_config.lifecycle import ConfigStatus


@dataclass(frozen=True)
class MilestoneDef:
    """One milestone row of a template fragment."""

    name: str
    weight: Decimal
    kind: str = "discrete"
    category: str | None = None
    order: int = 0
    requires_welder: bool = False


@dataclass(frozen=True)
class TemplateDef:
    """Milestone template for one component type.

    ``project_id`` (string UUID) marks a project override.
    """

    component_type: str
    milestones: tuple[MilestoneDef, ...]
    workflow_type: str = "discrete"
    project_id: str | None = None
    source: str = ""


@dataclass(frozen=True)
class AliasDef:
    """Alternate milestone spelling; ``component_type=None`` is global."""

    alias: str
    canonical: str
    component_type: str | None = None


@dataclass(frozen=True)
class ReportingPolicy:
    """
    Reporting knobs that travel with a catalog version.

    floor_earned_at_high_water_mark:
        When True, reports show earned manhours floored at the historical
        maximum (rollbacks do not lower the reported figure).  The
        calculated value is always reported alongside.
    audit_tolerance:
        Default stored-vs-recomputed tolerance, in percentage points.
    percent_decimal_places:
        Precision of the stored percent_complete cache.
    """

    floor_earned_at_high_water_mark: bool = False
    audit_tolerance: Decimal = Decimal("0.1")
    percent_decimal_places: int = 2


@dataclass(frozen=True)
class CatalogConfigurationSet:
    """Everything one ``sets/<set-id>/`` directory declares."""

    catalog_id: str
    version: int
    status: ConfigStatus
    effective_from: date | None
    templates: tuple[TemplateDef, ...]
    aliases: tuple[AliasDef, ...] = ()
    reporting: ReportingPolicy = field(default_factory=ReportingPolicy)
    predecessor: str | None = None
    description: str = ""
    checksum: str = ""
