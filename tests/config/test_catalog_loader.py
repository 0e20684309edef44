"""
Tests for catalog set loading, validation and pinning.

Covers:
- Default selection of the highest published set
- Explicit version selection (superseded sets stay loadable)
- Validation failures surface as CatalogValidationError
- Fingerprint pin verification
- Lifecycle transitions
"""

import shutil
from decimal import Decimal
from pathlib import Path

import pytest
import yaml

from progress_config import AssemblyError, get_active_catalog, list_catalog_sets
from progress_config.integrity import PINFILE_NAME, write_pinned_fingerprint
from progress_config.lifecycle import ConfigStatus, validate_transition
from progress_kernel.exceptions import (
    CatalogIntegrityError,
    CatalogValidationError,
    CatalogVersionNotFoundError,
)

SETS_DIR = Path(__file__).resolve().parents[2] / "progress_config" / "sets"


def _write_set(sets_dir: Path, name: str, root: dict, templates: list, aliases: list = ()) -> Path:
    set_dir = sets_dir / name
    (set_dir / "templates").mkdir(parents=True)
    (set_dir / "root.yaml").write_text(yaml.safe_dump(root))
    (set_dir / "templates" / "main.yaml").write_text(yaml.safe_dump({"templates": templates}))
    if aliases:
        (set_dir / "aliases.yaml").write_text(yaml.safe_dump({"aliases": list(aliases)}))
    return set_dir


def _support(weights=(50, 50)):
    receive, install = weights
    return {
        "component_type": "support",
        "milestones": [
            {"name": "Receive", "weight": receive, "category": "receive"},
            {"name": "Install", "weight": install, "category": "install"},
        ],
    }


class TestPublishedSets:

    def test_default_is_highest_published(self, compiled_catalog):
        assert compiled_catalog.catalog_id == "standard"
        assert compiled_catalog.version == 2
        assert compiled_catalog.status == ConfigStatus.PUBLISHED

    def test_every_template_sums_to_100(self, compiled_catalog):
        for template in compiled_catalog.catalog.templates:
            assert template.total_weight == Decimal("100"), template.component_type

    def test_reporting_policy(self, compiled_catalog):
        reporting = compiled_catalog.reporting

        assert reporting.floor_earned_at_high_water_mark is False
        assert reporting.audit_tolerance == Decimal("0.1")
        assert reporting.percent_decimal_places == 2

    def test_weld_complete_requires_welder(self, catalog):
        definition = catalog.resolve("field_weld", "Weld Complete")

        assert definition.requires_welder is True

    def test_renamed_milestone_resolves_through_alias(self, catalog):
        assert catalog.canonical_name("field_weld", "Weld Made") == "Weld Complete"
        assert catalog.canonical_name("valve", "Hydrotest") == "Test"

    def test_superseded_version_loadable_explicitly(self):
        v1 = get_active_catalog(version=1)

        assert v1.version == 1
        assert v1.status == ConfigStatus.SUPERSEDED
        assert not v1.catalog.has_template("pipe")
        assert v1.canonical_fingerprint != get_active_catalog().canonical_fingerprint

    def test_unknown_version_raises(self):
        with pytest.raises(CatalogVersionNotFoundError) as exc_info:
            get_active_catalog(version=99)

        assert exc_info.value.available == (1, 2)

    def test_listing(self):
        versions = sorted(c.version for c, _ in list_catalog_sets())

        assert versions == [1, 2]

    def test_trace_logged(self, captured_logs):
        get_active_catalog()

        traces = [r for r in captured_logs() if r["message"] == "PROGRESS_CATALOG_TRACE"]
        assert traces[0]["catalog_version"] == 2


class TestCustomSets:

    def test_minimal_set_loads(self, tmp_path):
        _write_set(tmp_path, "mini-v1", {"catalog_id": "mini", "version": 1, "status": "published"}, [_support()])

        compiled = get_active_catalog(config_dir=tmp_path)

        assert compiled.catalog.component_types == ("support",)
        assert compiled.reporting.audit_tolerance == Decimal("0.1")

    def test_only_draft_set_used_when_alone(self, tmp_path):
        _write_set(tmp_path, "mini-v1", {"catalog_id": "mini", "version": 1}, [_support()])

        assert get_active_catalog(config_dir=tmp_path).status == ConfigStatus.DRAFT

    def test_bad_weights_rejected(self, tmp_path):
        _write_set(
            tmp_path, "mini-v1", {"catalog_id": "mini", "version": 1, "status": "published"}, [_support((50, 40))]
        )

        with pytest.raises(CatalogValidationError) as exc_info:
            get_active_catalog(config_dir=tmp_path)

        assert any("expected 100" in e for e in exc_info.value.errors)

    def test_unknown_category_rejected(self, tmp_path):
        template = _support()
        template["milestones"][1]["category"] = "paint"
        _write_set(tmp_path, "mini-v1", {"catalog_id": "mini", "version": 1, "status": "published"}, [template])

        with pytest.raises(CatalogValidationError):
            get_active_catalog(config_dir=tmp_path)

    def test_project_override_in_yaml(self, tmp_path):
        override = _support((0, 100))
        override["project_id"] = "6f1c9d7e-2b0e-4a51-9d3c-1f6f3b7a2c11"
        _write_set(
            tmp_path,
            "mini-v1",
            {"catalog_id": "mini", "version": 1, "status": "published"},
            [_support(), override],
        )

        compiled = get_active_catalog(config_dir=tmp_path)

        assert len(compiled.catalog.project_templates) == 1

    def test_missing_root_key_is_assembly_error(self, tmp_path):
        _write_set(tmp_path, "mini-v1", {"catalog_id": "mini"}, [_support()])

        with pytest.raises(AssemblyError):
            get_active_catalog(config_dir=tmp_path)

    def test_formatting_change_keeps_fingerprint(self, tmp_path):
        _write_set(tmp_path / "a", "mini-v1", {"catalog_id": "mini", "version": 1}, [_support()])
        _write_set(
            tmp_path / "b",
            "mini-v1",
            {"catalog_id": "mini", "version": 1, "description": "reworded"},
            [_support()],
        )

        a = get_active_catalog(config_dir=tmp_path / "a")
        b = get_active_catalog(config_dir=tmp_path / "b")

        assert a.checksum != b.checksum
        assert a.canonical_fingerprint == b.canonical_fingerprint


class TestFingerprintPin:

    def test_matching_pin_accepted(self, tmp_path):
        set_dir = _write_set(tmp_path, "mini-v1", {"catalog_id": "mini", "version": 1}, [_support()])
        fingerprint = get_active_catalog(config_dir=tmp_path).canonical_fingerprint
        write_pinned_fingerprint(set_dir, fingerprint)

        assert get_active_catalog(config_dir=tmp_path).canonical_fingerprint == fingerprint

    def test_weight_edit_after_pin_rejected(self, tmp_path):
        set_dir = _write_set(tmp_path, "mini-v1", {"catalog_id": "mini", "version": 1}, [_support()])
        write_pinned_fingerprint(set_dir, get_active_catalog(config_dir=tmp_path).canonical_fingerprint)
        (set_dir / "templates" / "main.yaml").write_text(yaml.safe_dump({"templates": [_support((40, 60))]}))

        with pytest.raises(CatalogIntegrityError) as exc_info:
            get_active_catalog(config_dir=tmp_path)

        assert exc_info.value.pin_path == set_dir / PINFILE_NAME

    def test_shipped_sets_load_from_a_copy(self, tmp_path):
        shutil.copytree(SETS_DIR, tmp_path / "sets")

        assert get_active_catalog(config_dir=tmp_path / "sets").version == 2


class TestLifecycle:

    @pytest.mark.parametrize(
        "current, target, allowed",
        [
            (ConfigStatus.DRAFT, ConfigStatus.REVIEWED, True),
            (ConfigStatus.APPROVED, ConfigStatus.PUBLISHED, True),
            (ConfigStatus.PUBLISHED, ConfigStatus.SUPERSEDED, True),
            (ConfigStatus.DRAFT, ConfigStatus.PUBLISHED, False),
            (ConfigStatus.SUPERSEDED, ConfigStatus.PUBLISHED, False),
            (ConfigStatus.PUBLISHED, ConfigStatus.DRAFT, False),
        ],
    )
    def test_transitions(self, current, target, allowed):
        assert validate_transition(current, target) is allowed
