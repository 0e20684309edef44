"""
Configuration validator (``progress_config.validator``).

Responsibility
--------------
Validate a ``CatalogConfigurationSet`` before it is compiled, collecting
every problem rather than stopping at the first.

Errors (block compilation):
    * weights of a template do not sum to exactly 100
    * negative or non-numeric weights
    * milestone names not unique per template after normalization
    * unknown milestone kind or standard category, or a missing category
    * more than one template per component type (per project)
    * an alias that shadows a different canonical milestone
    * negative audit tolerance or percent precision

Warnings (compile, but review):
    * component type without a standard ``ComponentType`` member
    * alias whose canonical name no template defines
    * ``requires_welder`` on a non-weld component type
"""

from __future__ import annotations

from dataclasses import dataclass, field
from uuid import UUID

from progress_config.schema import CatalogConfigurationSet, TemplateDef
from progress_kernel.domain.catalog import (
    MilestoneAlias,
    MilestoneTemplate,
    catalog_errors,
    normalize_milestone_name,
)
from progress_kernel.domain.values import (
    ComponentType,
    MilestoneDefinition,
    MilestoneKind,
    StandardCategory,
)

_KINDS = {k.value for k in MilestoneKind}
_CATEGORIES = {c.value for c in StandardCategory}
_COMPONENT_TYPES = {t.value for t in ComponentType}


@dataclass
class ConfigValidationResult:
    """``is_valid`` is True only when ``errors`` is empty."""

    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return len(self.errors) == 0

    def add_error(self, msg: str) -> None:
        self.errors.append(msg)

    def add_warning(self, msg: str) -> None:
        self.warnings.append(msg)


def validate_configuration(config: CatalogConfigurationSet) -> ConfigValidationResult:
    """Validate a catalog set; see module docstring for the rules."""
    result = ConfigValidationResult()

    if config.reporting.audit_tolerance < 0:
        result.add_error(
            f"reporting.audit_tolerance must be >= 0, got {config.reporting.audit_tolerance}"
        )
    if config.reporting.percent_decimal_places < 0:
        result.add_error("reporting.percent_decimal_places must be >= 0")

    system: list[MilestoneTemplate] = []
    overrides: list[MilestoneTemplate] = []
    for template in config.templates:
        converted = _convert_template(template, result)
        if converted is None:
            continue
        (overrides if converted.project_id is not None else system).append(converted)

        if template.component_type not in _COMPONENT_TYPES:
            result.add_warning(
                f"Component type '{template.component_type}' ({template.source}) is not a "
                f"standard component type"
            )
        if template.component_type != ComponentType.FIELD_WELD.value:
            for m in template.milestones:
                if m.requires_welder:
                    result.add_warning(
                        f"'{template.component_type}.{m.name}' requires a welder but the "
                        f"type has no welder assignment"
                    )

    aliases = [
        MilestoneAlias(alias=a.alias, canonical=a.canonical, component_type=a.component_type)
        for a in config.aliases
    ]
    for error in catalog_errors(system, aliases, overrides):
        result.add_error(error)

    defined = {
        (t.component_type, normalize_milestone_name(m.name))
        for t in config.templates
        for m in t.milestones
    }
    defined_any = {name for _, name in defined}
    for a in config.aliases:
        target = normalize_milestone_name(a.canonical)
        known = (
            (a.component_type, target) in defined
            if a.component_type is not None
            else target in defined_any
        )
        if not known:
            scope = a.component_type or "any component type"
            result.add_warning(
                f"Alias '{a.alias}' points at '{a.canonical}', which no template of "
                f"{scope} defines"
            )

    return result


def _convert_template(
    template: TemplateDef, result: ConfigValidationResult
) -> MilestoneTemplate | None:
    """Schema template -> domain template; problems go to ``result``."""
    ok = True
    definitions: list[MilestoneDefinition] = []
    label = template.component_type + (f" (project {template.project_id})" if template.project_id else "")

    for m in template.milestones:
        if m.kind not in _KINDS:
            result.add_error(f"Template '{label}': milestone '{m.name}' has unknown kind '{m.kind}'")
            ok = False
            continue
        if m.category is not None and m.category not in _CATEGORIES:
            result.add_error(
                f"Template '{label}': milestone '{m.name}' has unknown category '{m.category}'"
            )
            ok = False
            continue
        definitions.append(
            MilestoneDefinition(
                name=m.name,
                weight=m.weight,
                kind=m.kind,
                category=m.category,
                order=m.order,
                requires_welder=m.requires_welder,
            )
        )

    project_id = None
    if template.project_id is not None:
        try:
            project_id = UUID(template.project_id)
        except ValueError:
            result.add_error(f"Template '{label}': project_id is not a UUID")
            ok = False

    if not ok:
        return None
    return MilestoneTemplate(
        component_type=template.component_type,
        milestones=tuple(definitions),
        workflow_type=template.workflow_type,
        project_id=project_id,
    )


def to_domain_templates(
    config: CatalogConfigurationSet,
) -> tuple[list[MilestoneTemplate], list[MilestoneTemplate]]:
    """(system templates, project overrides) of a validated set."""
    scratch = ConfigValidationResult()
    system: list[MilestoneTemplate] = []
    overrides: list[MilestoneTemplate] = []
    for template in config.templates:
        converted = _convert_template(template, scratch)
        if converted is None:
            continue
        (overrides if converted.project_id is not None else system).append(converted)
    return system, overrides
