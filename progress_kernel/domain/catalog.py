"""
MilestoneCatalog -- versioned (component type, milestone) -> weight/category.

Responsibility:
    Hold the validated milestone templates of one catalog version and answer
    lookups.  Owns milestone name normalization and the alias table that
    absorbs historical naming drift ("Fit-up" / "Fit-Up", "Weld Made" /
    "Weld Complete").

Architecture position:
    Kernel > Domain -- pure, immutable after construction.  Built by
    ``progress_config`` from YAML (or by a selector from persisted
    templates) and passed explicitly into every engine call.  There is no
    global catalog, so recalculating history against an older version is
    just a matter of passing that version.

Invariants enforced:
    - Weights of every template sum to exactly 100.
    - Weights are non-negative.
    - Milestone names are unique per template after normalization.
    - Every milestone maps to a standard category.
    - An alias never shadows a different canonical milestone.
    Violations raise ``CatalogValidationError`` at construction, so an
    invalid catalog can never reach a calculation.

Failure modes:
    - ``CatalogValidationError`` on construction.
    - ``MilestoneTemplateNotFoundError`` from ``template_for`` when a
      component type has no template.
    - Lookup misses are NOT errors: ``resolve*`` returns None and logs a
      ``classification_gap`` record.
"""

from __future__ import annotations

import re
import unicodedata
from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from decimal import Decimal
from uuid import UUID

from progress_kernel.domain.values import (
    HUNDRED,
    ZERO,
    MilestoneDefinition,
    StandardCategory,
)
from progress_kernel.exceptions import (
    CatalogValidationError,
    MilestoneTemplateNotFoundError,
)
from progress_kernel.logging_config import get_logger

logger = get_logger("domain.catalog")

_SEPARATORS = re.compile(r"[\s\-_‐-―/.]+")


def normalize_milestone_name(name: str) -> str:
    """Case-fold and collapse whitespace, hyphen and underscore variants.

    >>> normalize_milestone_name("Fit-Up") == normalize_milestone_name("fit up")
    True
    """
    text = unicodedata.normalize("NFKC", str(name)).casefold()
    return _SEPARATORS.sub(" ", text).strip()


@dataclass(frozen=True)
class MilestoneTemplate:
    """Ordered milestone definitions for one component type.

    ``project_id`` is set for project-specific overrides of the system
    template.
    """

    component_type: str
    milestones: tuple[MilestoneDefinition, ...]
    workflow_type: str = "discrete"
    project_id: UUID | None = None

    @property
    def total_weight(self) -> Decimal:
        return sum((m.weight for m in self.milestones), ZERO)

    @property
    def label(self) -> str:
        if self.project_id is None:
            return f"'{self.component_type}'"
        return f"'{self.component_type}' (project {self.project_id})"


@dataclass(frozen=True)
class MilestoneAlias:
    """Alternate spelling of a canonical milestone name.

    ``component_type=None`` applies the alias to every component type.
    """

    alias: str
    canonical: str
    component_type: str | None = None


def template_errors(template: MilestoneTemplate) -> list[str]:
    """Structural errors of a single template (empty when valid)."""
    errors: list[str] = []
    if not template.milestones:
        errors.append(f"Template {template.label} has no milestones")
        return errors

    seen: dict[str, str] = {}
    for m in template.milestones:
        key = normalize_milestone_name(m.name)
        if key in seen:
            errors.append(
                f"Template {template.label}: duplicate milestone "
                f"'{m.name}' (collides with '{seen[key]}')"
            )
        seen[key] = m.name
        if m.weight < ZERO:
            errors.append(
                f"Template {template.label}: milestone '{m.name}' has "
                f"negative weight {m.weight}"
            )
        if m.category is None:
            errors.append(
                f"Template {template.label}: milestone '{m.name}' has no "
                f"standard category"
            )

    if template.total_weight != HUNDRED:
        errors.append(
            f"Template {template.label}: weights sum to "
            f"{template.total_weight}, expected 100"
        )
    return errors


class MilestoneCatalog:
    """
    Validated, immutable milestone catalog for one version.

    Contract:
        Built once, read many times, shared freely across threads.
        Lookups accept any spelling that normalizes to a canonical name or
        to a registered alias.
    Guarantees:
        - Construction succeeds only for a valid catalog.
        - ``resolve_category`` / ``resolve_weight`` never raise.
        - Project overrides win over system templates for their project.
    Non-goals:
        - Does not load configuration (see ``progress_config``).
        - Does not normalize milestone values (see the normalizer engine).
    """

    def __init__(
        self,
        catalog_id: str,
        version: int,
        templates: Sequence[MilestoneTemplate],
        aliases: Sequence[MilestoneAlias] = (),
        project_templates: Sequence[MilestoneTemplate] = (),
        checksum: str = "",
    ) -> None:
        self.catalog_id = catalog_id
        self.version = version
        self.checksum = checksum
        self.aliases = tuple(aliases)

        errors = catalog_errors(templates, self.aliases, project_templates)
        if errors:
            raise CatalogValidationError(catalog_id, errors)

        self._templates: dict[str, MilestoneTemplate] = {
            t.component_type: t for t in templates
        }
        self._project_templates: dict[tuple[UUID, str], MilestoneTemplate] = {
            (t.project_id, t.component_type): t for t in project_templates
        }
        self._alias_index: dict[tuple[str | None, str], str] = {
            (a.component_type, normalize_milestone_name(a.alias)): normalize_milestone_name(a.canonical)
            for a in self.aliases
        }

    def __repr__(self) -> str:
        return (
            f"MilestoneCatalog(catalog_id={self.catalog_id!r}, "
            f"version={self.version}, types={len(self._templates)})"
        )

    # -----------------------------------------------------------------
    # Templates
    # -----------------------------------------------------------------

    @property
    def component_types(self) -> tuple[str, ...]:
        return tuple(sorted(self._templates))

    @property
    def templates(self) -> tuple[MilestoneTemplate, ...]:
        return tuple(self._templates[k] for k in self.component_types)

    @property
    def project_templates(self) -> tuple[MilestoneTemplate, ...]:
        return tuple(self._project_templates.values())

    def for_project(self, project_id: UUID) -> MilestoneCatalog:
        """Catalog view in which the project's overrides replace system templates."""
        merged = dict(self._templates)
        for (pid, ctype), template in self._project_templates.items():
            if pid == project_id:
                merged[ctype] = MilestoneTemplate(
                    component_type=ctype,
                    milestones=template.milestones,
                    workflow_type=template.workflow_type,
                )
        return MilestoneCatalog(
            catalog_id=self.catalog_id,
            version=self.version,
            templates=[merged[k] for k in sorted(merged)],
            aliases=self.aliases,
            checksum=self.checksum,
        )

    def has_template(self, component_type: str, project_id: UUID | None = None) -> bool:
        return self._find_template(str(component_type), project_id) is not None

    def template_for(self, component_type: str, project_id: UUID | None = None) -> MilestoneTemplate:
        """Template for a component type, preferring a project override.

        Raises:
            MilestoneTemplateNotFoundError: if the type has no template.
        """
        template = self._find_template(str(component_type), project_id)
        if template is None:
            raise MilestoneTemplateNotFoundError(
                str(component_type), self.catalog_id, self.version
            )
        return template

    def milestones_for(
        self, component_type: str, project_id: UUID | None = None
    ) -> tuple[MilestoneDefinition, ...]:
        return self.template_for(component_type, project_id).milestones

    def category_weights(
        self, component_type: str, project_id: UUID | None = None
    ) -> dict[StandardCategory, Decimal]:
        """Total template weight per standard category."""
        weights = {c: ZERO for c in StandardCategory.ordered()}
        for m in self.milestones_for(component_type, project_id):
            weights[m.category] += m.weight
        return weights

    # -----------------------------------------------------------------
    # Lookups
    # -----------------------------------------------------------------

    def resolve(
        self,
        component_type: str,
        milestone_name: str,
        project_id: UUID | None = None,
    ) -> MilestoneDefinition | None:
        """Find the milestone a (possibly drifted) name refers to."""
        component_type = str(component_type)
        template = self._find_template(component_type, project_id)
        if template is None:
            logger.debug(
                "classification_gap",
                extra={
                    "component_type": component_type,
                    "milestone_name": milestone_name,
                    "reason": "no_template",
                },
            )
            return None

        by_name = {normalize_milestone_name(m.name): m for m in template.milestones}
        key = normalize_milestone_name(milestone_name)
        found = by_name.get(key)
        if found is None:
            canonical = self._alias_index.get((component_type, key))
            if canonical is None:
                canonical = self._alias_index.get((None, key))
            if canonical is not None:
                found = by_name.get(canonical)

        if found is None:
            logger.debug(
                "classification_gap",
                extra={
                    "component_type": component_type,
                    "milestone_name": milestone_name,
                    "reason": "not_in_template",
                },
            )
        return found

    def resolve_category(
        self,
        component_type: str,
        milestone_name: str,
        project_id: UUID | None = None,
    ) -> StandardCategory | None:
        found = self.resolve(component_type, milestone_name, project_id)
        return found.category if found is not None else None

    def resolve_weight(
        self,
        component_type: str,
        milestone_name: str,
        project_id: UUID | None = None,
    ) -> Decimal | None:
        found = self.resolve(component_type, milestone_name, project_id)
        return found.weight if found is not None else None

    def canonical_name(
        self,
        component_type: str,
        milestone_name: str,
        project_id: UUID | None = None,
    ) -> str | None:
        found = self.resolve(component_type, milestone_name, project_id)
        return found.name if found is not None else None

    def _find_template(self, component_type: str, project_id: UUID | None) -> MilestoneTemplate | None:
        if project_id is not None:
            override = self._project_templates.get((project_id, component_type))
            if override is not None:
                return override
        return self._templates.get(component_type)


def catalog_errors(
    templates: Iterable[MilestoneTemplate],
    aliases: Iterable[MilestoneAlias] = (),
    project_templates: Iterable[MilestoneTemplate] = (),
) -> list[str]:
    """All fatal configuration errors of a catalog (empty when valid)."""
    errors: list[str] = []
    templates = tuple(templates)
    project_templates = tuple(project_templates)

    seen_types: set[str] = set()
    for t in templates:
        if t.project_id is not None:
            errors.append(f"System template {t.label} must not carry a project_id")
        if t.component_type in seen_types:
            errors.append(f"Duplicate template for component type '{t.component_type}'")
        seen_types.add(t.component_type)
        errors.extend(template_errors(t))

    seen_overrides: set[tuple[UUID | None, str]] = set()
    for t in project_templates:
        if t.project_id is None:
            errors.append(f"Project template {t.label} has no project_id")
        key = (t.project_id, t.component_type)
        if key in seen_overrides:
            errors.append(f"Duplicate project template {t.label}")
        seen_overrides.add(key)
        errors.extend(template_errors(t))

    canonical_by_type: dict[str, set[str]] = {}
    for t in templates + project_templates:
        canonical_by_type.setdefault(t.component_type, set()).update(
            normalize_milestone_name(m.name) for m in t.milestones
        )

    for a in aliases:
        alias_key = normalize_milestone_name(a.alias)
        target_key = normalize_milestone_name(a.canonical)
        if alias_key == target_key:
            continue
        scope = (
            {a.component_type: canonical_by_type.get(a.component_type, set())}
            if a.component_type is not None
            else canonical_by_type
        )
        for ctype, names in scope.items():
            if alias_key in names and target_key in names:
                errors.append(
                    f"Alias '{a.alias}' -> '{a.canonical}' shadows canonical "
                    f"milestone '{a.alias}' of '{ctype}'"
                )
    return errors
