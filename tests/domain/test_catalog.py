"""
Tests for the milestone catalog.

Covers:
- Load-time validation (weights, duplicates, categories, alias shadowing)
- Name normalization and alias resolution
- Project overrides
- Category weights
"""

from decimal import Decimal
from uuid import uuid4

import pytest

from progress_kernel.domain.catalog import (
    MilestoneAlias,
    MilestoneCatalog,
    MilestoneTemplate,
    normalize_milestone_name,
)
from progress_kernel.domain.values import MilestoneDefinition, StandardCategory
from progress_kernel.exceptions import CatalogValidationError, MilestoneTemplateNotFoundError


def _m(name, weight, category="install", kind="discrete"):
    return MilestoneDefinition(name=name, weight=Decimal(str(weight)), kind=kind, category=category)


def _template(component_type="support", milestones=None, project_id=None):
    return MilestoneTemplate(
        component_type=component_type,
        milestones=milestones or (_m("Receive", 50, "receive"), _m("Install", 50)),
        project_id=project_id,
    )


class TestCatalogValidation:
    """An invalid catalog never constructs."""

    def test_valid_catalog_constructs(self):
        catalog = MilestoneCatalog("c", 1, [_template()])
        assert catalog.component_types == ("support",)

    def test_weights_not_summing_to_100_rejected(self):
        with pytest.raises(CatalogValidationError) as exc_info:
            MilestoneCatalog("c", 1, [_template(milestones=(_m("Receive", 50, "receive"), _m("Install", 40)))])

        assert any("expected 100" in e for e in exc_info.value.errors)
        assert exc_info.value.code == "CATALOG_INVALID"

    def test_duplicate_names_after_normalization_rejected(self):
        with pytest.raises(CatalogValidationError) as exc_info:
            MilestoneCatalog("c", 1, [_template(milestones=(_m("Fit-Up", 50), _m("fit up", 50)))])

        assert any("duplicate milestone" in e for e in exc_info.value.errors)

    def test_negative_weight_rejected(self):
        with pytest.raises(CatalogValidationError):
            MilestoneCatalog("c", 1, [_template(milestones=(_m("A", 110), _m("B", -10)))])

    def test_missing_category_rejected(self):
        with pytest.raises(CatalogValidationError) as exc_info:
            MilestoneCatalog("c", 1, [_template(milestones=(_m("A", 100, category=None),))])

        assert any("standard category" in e for e in exc_info.value.errors)

    def test_alias_shadowing_canonical_milestone_rejected(self):
        with pytest.raises(CatalogValidationError) as exc_info:
            MilestoneCatalog(
                "c",
                1,
                [_template()],
                aliases=[MilestoneAlias(alias="Receive", canonical="Install")],
            )

        assert any("shadows" in e for e in exc_info.value.errors)

    def test_all_errors_reported_together(self):
        with pytest.raises(CatalogValidationError) as exc_info:
            MilestoneCatalog(
                "c",
                1,
                [
                    _template("support", (_m("A", 10), _m("a", 10))),
                    _template("valve", (_m("B", 99),)),
                ],
            )

        assert len(exc_info.value.errors) >= 3


class TestNameResolution:
    """Lookups absorb casing, separator and alias drift."""

    def test_normalize_collapses_separators_and_case(self):
        assert normalize_milestone_name("Fit-Up") == normalize_milestone_name("fit_up")
        assert normalize_milestone_name("  WELD   complete ") == "weld complete"

    def test_resolve_is_case_insensitive(self, scenario_catalog):
        definition = scenario_catalog.resolve("field_weld", "FIT-UP")
        assert definition is not None
        assert definition.name == "Fit-up"

    def test_resolve_follows_alias(self, scenario_catalog):
        assert scenario_catalog.canonical_name("field_weld", "weld made") == "Weld Complete"

    def test_type_scoped_alias_does_not_leak(self, scenario_catalog):
        assert scenario_catalog.resolve("support", "Weld Made") is None

    def test_unknown_name_returns_none(self, scenario_catalog):
        assert scenario_catalog.resolve("support", "Paint") is None
        assert scenario_catalog.resolve_weight("support", "Paint") is None
        assert scenario_catalog.resolve_category("support", "Paint") is None

    def test_unknown_type_returns_none_from_resolve(self, scenario_catalog):
        assert scenario_catalog.resolve("spaceship", "Receive") is None

    def test_template_for_unknown_type_raises(self, scenario_catalog):
        with pytest.raises(MilestoneTemplateNotFoundError) as exc_info:
            scenario_catalog.template_for("spaceship")

        assert exc_info.value.component_type == "spaceship"


class TestProjectOverrides:
    """A project override wins for its project only."""

    def test_override_used_for_its_project(self):
        project_id = uuid4()
        override = _template(milestones=(_m("Install", 100),), project_id=project_id)
        catalog = MilestoneCatalog("c", 1, [_template()], project_templates=[override])

        assert catalog.resolve_weight("support", "Install", project_id) == Decimal("100")
        assert catalog.resolve_weight("support", "Install") == Decimal("50")
        assert catalog.resolve_weight("support", "Install", uuid4()) == Decimal("50")

    def test_for_project_view_replaces_template(self):
        project_id = uuid4()
        override = _template(milestones=(_m("Install", 100),), project_id=project_id)
        catalog = MilestoneCatalog("c", 1, [_template()], project_templates=[override])

        view = catalog.for_project(project_id)

        assert [m.name for m in view.milestones_for("support")] == ["Install"]
        assert view.version == catalog.version


class TestCategoryWeights:

    def test_category_weights_cover_every_category(self, scenario_catalog):
        weights = scenario_catalog.category_weights("support")

        assert set(weights) == set(StandardCategory.ordered())
        assert sum(weights.values()) == Decimal("100")
        assert weights[StandardCategory.INSTALL] == Decimal("60")

    def test_zero_weight_categories_present(self, scenario_catalog):
        weights = scenario_catalog.category_weights("threaded_pipe")

        assert weights[StandardCategory.INSTALL] == Decimal("100")
        assert weights[StandardCategory.PUNCH] == Decimal("0")
        assert weights[StandardCategory.RECEIVE] == Decimal("0")
