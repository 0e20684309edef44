"""
Catalog compiler (``progress_config.compiler``).

Turns a validated ``CatalogConfigurationSet`` into the frozen runtime
artifact: a kernel ``MilestoneCatalog`` plus the ``ReportingPolicy`` of the
same version and a canonical fingerprint for pinning.

The kernel never imports this package; the compiler is where config types
become kernel types.
"""

from __future__ import annotations

import hashlib
import json
from dataclasses import dataclass

from progress_config.lifecycle import ConfigStatus
from progress_config.schema import CatalogConfigurationSet, ReportingPolicy
from progress_config.validator import to_domain_templates, validate_configuration
from progress_kernel.domain.catalog import MilestoneAlias, MilestoneCatalog
from progress_kernel.exceptions import CatalogValidationError


@dataclass(frozen=True)
class CompiledCatalog:
    """
    Machine-validated catalog version; the only config object services use.

    Attributes:
        catalog: Validated, immutable milestone catalog.
        reporting: Reporting policy of this version.
        status: Lifecycle status of the source set.
        checksum: Checksum of the assembled YAML.
        canonical_fingerprint: Hash of the compiled weights, categories and
            aliases.  Formatting-only YAML edits do not change it.
        warnings: Validator warnings, kept for review tooling.
    """

    catalog: MilestoneCatalog
    reporting: ReportingPolicy
    status: ConfigStatus
    checksum: str
    canonical_fingerprint: str
    predecessor: str | None = None
    warnings: tuple[str, ...] = ()

    @property
    def catalog_id(self) -> str:
        return self.catalog.catalog_id

    @property
    def version(self) -> int:
        return self.catalog.version


def compile_catalog(config: CatalogConfigurationSet) -> CompiledCatalog:
    """
    Validate and compile a catalog set.

    Raises:
        CatalogValidationError: if validation reports any error.
    """
    validation = validate_configuration(config)
    if not validation.is_valid:
        raise CatalogValidationError(config.catalog_id, validation.errors)

    system, overrides = to_domain_templates(config)
    aliases = [
        MilestoneAlias(alias=a.alias, canonical=a.canonical, component_type=a.component_type)
        for a in config.aliases
    ]
    catalog = MilestoneCatalog(
        catalog_id=config.catalog_id,
        version=config.version,
        templates=system,
        aliases=aliases,
        project_templates=overrides,
        checksum=config.checksum,
    )

    return CompiledCatalog(
        catalog=catalog,
        reporting=config.reporting,
        status=config.status,
        checksum=config.checksum,
        canonical_fingerprint=compute_fingerprint(catalog, config.reporting),
        predecessor=config.predecessor,
        warnings=tuple(validation.warnings),
    )


def compute_fingerprint(catalog: MilestoneCatalog, reporting: ReportingPolicy) -> str:
    """Deterministic fingerprint of everything that affects a number."""
    templates = [
        {
            "component_type": t.component_type,
            "project_id": str(t.project_id) if t.project_id else None,
            "milestones": [
                [m.name, str(m.weight), m.kind.value, m.category.value if m.category else None]
                for m in t.milestones
            ],
        }
        for t in catalog.templates + tuple(
            sorted(catalog.project_templates, key=lambda t: (str(t.project_id), t.component_type))
        )
    ]
    canonical = json.dumps(
        {
            "catalog_id": catalog.catalog_id,
            "version": catalog.version,
            "templates": templates,
            "aliases": sorted(
                [a.alias, a.canonical, a.component_type or ""] for a in catalog.aliases
            ),
            "floor_earned_at_high_water_mark": reporting.floor_earned_at_high_water_mark,
            "audit_tolerance": str(reporting.audit_tolerance),
            "percent_decimal_places": reporting.percent_decimal_places,
        },
        sort_keys=True,
    )
    return hashlib.sha256(canonical.encode()).hexdigest()
