"""
Tests for ProgressService -- percent, aggregate, delta and audit reads.
"""

import dataclasses
from datetime import timedelta
from decimal import Decimal

import pytest

from progress_config import ReportingPolicy
from progress_engines.delta import DeltaMode
from progress_engines.earned_manhours import PercentSource
from progress_engines.reconciliation import AuditStatus
from progress_kernel.domain.values import Dimension, StandardCategory, WarningCode
from progress_kernel.exceptions import InvalidDimensionError, InvalidTimeWindowError
from progress_services.milestone_service import MilestoneService
from progress_services.progress_service import DeltaScope, ProgressService
from tests.conftest import T0

WINDOW_END = T0 + timedelta(hours=1)


class TestPercentComplete:

    def test_by_id(self, progress_service, project):
        outcome = progress_service.compute_percent_complete(project.support.id)

        assert outcome.percent == Decimal("70")
        assert outcome.warnings == ()

    def test_snapshot_with_drift_warns(self, progress_service, project, make_component, captured_logs):
        drifted = make_component("support", {"Install": True, "Paint": True})

        outcome = progress_service.compute_percent_complete(drifted)

        assert outcome.percent == Decimal("60")
        assert outcome.warnings[0].code == WarningCode.UNCLASSIFIED_MILESTONE
        assert outcome.warnings[0].component_id == drifted.id
        assert any(r["message"] == "calculation_warning" for r in captured_logs())


class TestAggregates:

    def test_project_totals(self, progress_service, project, project_id):
        table = progress_service.compute_aggregates(project_id)

        assert len(table.rows) == 1
        row = table.rows[0]
        assert row["budget_mh"] == Decimal("40.00")
        assert row["total_mh_earned"] == Decimal("10.00")
        assert row["percent_complete"] == Decimal("25.00")
        assert table.grand_total_earned == Decimal("10")
        assert table.catalog_version == 2

    def test_rows_labelled_by_area(self, progress_service, project, project_id):
        table = progress_service.compute_aggregates(project_id, "area")

        by_label = {row["dimension_key"]: row for row in table.rows}
        assert set(by_label) == {"North", "South", "(unassigned)"}
        assert by_label["North"]["total_mh_earned"] == Decimal("7.00")
        assert by_label["North"]["install_mh_earned"] == Decimal("6.00")
        assert by_label["South"]["percent_complete"] == Decimal("10.00")
        assert table.rows[-1]["dimension_key"] == "(unassigned)"

    def test_component_type_filter(self, progress_service, project, project_id):
        table = progress_service.compute_aggregates(project_id, component_types=frozenset({"valve"}))

        assert table.rows[0]["budget_mh"] == Decimal("20.00")

    def test_stored_source(self, progress_service, project, project_id, corrupt_percent):
        corrupt_percent(project.valve, "50")

        recomputed = progress_service.compute_aggregates(project_id)
        stored = progress_service.compute_aggregates(project_id, percent_source=PercentSource.STORED)

        assert recomputed.grand_total_earned == Decimal("10")
        assert stored.grand_total_earned == Decimal("18")

    def test_unknown_dimension(self, progress_service, project_id):
        with pytest.raises(InvalidDimensionError):
            progress_service.compute_aggregates(project_id, "galaxy")

    def test_no_floor_columns_by_default(self, progress_service, project, project_id):
        table = progress_service.compute_aggregates(project_id)

        assert not table.floored
        assert "reported_mh_earned" not in table.rows[0]


class TestHighWaterFloor:

    @pytest.fixture
    def floored_catalog(self, compiled_catalog):
        return dataclasses.replace(
            compiled_catalog, reporting=ReportingPolicy(floor_earned_at_high_water_mark=True)
        )

    def test_rollback_keeps_reported_earned(
        self, session, floored_catalog, project, project_id, actor_id, clock
    ):
        MilestoneService(session, floored_catalog, clock=clock).update_milestone(
            project.support.id, "Install", False, actor_id
        )

        table = ProgressService(session, floored_catalog).compute_aggregates(project_id, Dimension.AREA)

        north = next(r for r in table.rows if r["dimension_key"] == "North")
        assert north["total_mh_earned"] == Decimal("1.00")
        assert north["reported_mh_earned"] == Decimal("7.00")
        assert north["is_floored"] is True
        south = next(r for r in table.rows if r["dimension_key"] == "South")
        assert south["is_floored"] is False
        assert table.floored


class TestDelta:

    def test_window_delta(self, progress_service, project, project_id):
        result = progress_service.compute_delta(DeltaScope(project_id), T0, WINDOW_END)

        assert result.delta_mh == Decimal("10")
        assert result.event_count == 4
        assert result.delta_by_category[StandardCategory.RECEIVE] == Decimal("3")

    def test_window_excludes_earlier_events(self, progress_service, project, project_id):
        result = progress_service.compute_delta(
            DeltaScope(project_id), T0 + timedelta(seconds=2), WINDOW_END
        )

        assert result.delta_mh == Decimal("3")

    def test_scope_by_area(self, progress_service, project, project_id, areas):
        scope = DeltaScope(project_id, dimension=Dimension.AREA, dimension_value=areas["North"])

        result = progress_service.compute_delta(scope, T0, WINDOW_END)

        assert result.delta_mh == Decimal("7")
        assert set(result.by_component) == {project.support.id}

    def test_scope_unassigned(self, progress_service, project, project_id):
        scope = DeltaScope(project_id, dimension=Dimension.AREA, dimension_value=None)

        result = progress_service.compute_delta(scope, T0, WINDOW_END)

        assert set(result.by_component) == {project.weld.id}

    def test_rollback_nets_out(self, session, milestone_service, progress_service, project, project_id, actor_id):
        milestone_service.update_milestone(project.support.id, "Install", False, actor_id)

        forward = progress_service.compute_delta(DeltaScope(project_id), T0, WINDOW_END)
        net = progress_service.compute_delta(DeltaScope(project_id), T0, WINDOW_END, mode=DeltaMode.NET)

        assert forward.delta_mh == Decimal("10")
        assert net.delta_mh == Decimal("4")
        assert net.rollback_count == 1

    def test_inverted_window(self, progress_service, project_id):
        with pytest.raises(InvalidTimeWindowError):
            progress_service.compute_delta(DeltaScope(project_id), WINDOW_END, T0)

    def test_delta_table(self, progress_service, project, project_id):
        rows = progress_service.compute_delta_table(project_id, "area", T0, WINDOW_END)

        by_label = {row["dimension_key"]: row for row in rows}
        north = by_label["North"]
        assert north["budget_mh"] == Decimal("10.00")
        assert north["delta_mh"] == Decimal("7.00")
        assert north["receive_mh_delta"] == Decimal("1.00")
        assert north["delta_percent"] == Decimal("70.00")
        assert north["components_with_activity"] == 1
        assert north["rollback_count"] == 0
        assert rows[-1]["dimension_key"] == "(unassigned)"


class TestRunAudit:

    def test_consistent_project_passes(self, progress_service, project, project_id):
        report = progress_service.run_audit(project_id)

        assert report.status == AuditStatus.PASSED
        assert report.components_checked == 3
        assert report.events_checked == 4
