"""
Tests for RepairService -- scoped, logged repairs of stored percent.
"""

from decimal import Decimal
from uuid import uuid4

import pytest
from sqlalchemy import select

from progress_engines.reconciliation import AuditStatus
from progress_kernel.exceptions import ComponentNotFoundError, RepairScopeError
from progress_kernel.models.milestone_event import MilestoneEventModel
from progress_kernel.models.repair_log import ProgressRepairLogModel
from progress_kernel.selectors.component_selector import ComponentSelector
from progress_services.audit_service import AuditService
from progress_services.repair_service import RepairService


@pytest.fixture
def repair_service(session, compiled_catalog, clock):
    return RepairService(session, compiled_catalog, clock=clock)


class TestScope:

    def test_actor_required(self, repair_service, project):
        with pytest.raises(RepairScopeError):
            repair_service.repair_stored_percent([project.valve.id], None, "fix")

    @pytest.mark.parametrize("reason", ["", "   "])
    def test_reason_required(self, repair_service, project, actor_id, reason):
        with pytest.raises(RepairScopeError):
            repair_service.repair_stored_percent([project.valve.id], actor_id, reason)

    def test_components_required(self, repair_service, actor_id):
        with pytest.raises(RepairScopeError):
            repair_service.repair_stored_percent([], actor_id, "fix")

    def test_unknown_component(self, repair_service, actor_id):
        with pytest.raises(ComponentNotFoundError):
            repair_service.repair_stored_percent([uuid4()], actor_id, "fix")


class TestRepair:

    def test_stale_percent_rewritten(self, session, repair_service, project, actor_id, corrupt_percent):
        corrupt_percent(project.valve, "95")

        result = repair_service.repair_stored_percent(
            [project.valve.id, project.support.id], actor_id, "stale cache"
        )

        assert result.repaired_count == 1
        assert result.repaired[0].old_percent == Decimal("95")
        assert result.repaired[0].new_percent == Decimal("10.00")
        assert result.unchanged == (project.support.id,)
        assert ComponentSelector(session).get(project.valve.id).percent_complete == Decimal("10.00")

    def test_log_row_written(
        self, session, repair_service, compiled_catalog, project, actor_id, corrupt_percent, clock
    ):
        corrupt_percent(project.valve, "95")
        run_id = uuid4()

        result = repair_service.repair_stored_percent([project.valve.id], actor_id, "stale cache", run_id)

        row = session.scalars(select(ProgressRepairLogModel)).one()
        assert row.repair_batch_id == result.repair_batch_id
        assert row.component_id == project.valve.id
        assert row.actor_id == actor_id
        assert row.audit_run_id == run_id
        assert row.reason == "stale cache"
        assert row.catalog_version == compiled_catalog.version
        assert row.repaired_at == clock.now()

    def test_events_untouched(self, session, repair_service, project, actor_id, corrupt_percent):
        before = session.scalars(select(MilestoneEventModel.id)).all()
        corrupt_percent(project.valve, "95")

        repair_service.repair_stored_percent([project.valve.id], actor_id, "stale cache")

        assert session.scalars(select(MilestoneEventModel.id)).all() == before

    def test_repair_logged(self, repair_service, project, actor_id, corrupt_percent, captured_logs):
        corrupt_percent(project.valve, "95")

        repair_service.repair_stored_percent([project.valve.id], actor_id, "stale cache")

        record = next(r for r in captured_logs() if r["message"] == "PROGRESS_REPAIR_APPLIED")
        assert record["component_id"] == str(project.valve.id)
        assert record["actor_id"] == str(actor_id)

    def test_nothing_to_repair(self, session, repair_service, project, actor_id):
        result = repair_service.repair_stored_percent([project.support.id], actor_id, "check")

        assert result.repaired == ()
        assert session.scalars(select(ProgressRepairLogModel)).all() == []


class TestRepairFromReport:

    def test_audit_repair_audit(
        self, session, compiled_catalog, repair_service, project, project_id, actor_id, corrupt_percent
    ):
        corrupt_percent(project.valve, "95")
        corrupt_percent(project.weld, "0")
        audit = AuditService(session, compiled_catalog)
        checkpoint = audit.start(project_id)
        report = audit.run(project_id, checkpoint=checkpoint)
        assert set(report.mismatched_component_ids) == {project.valve.id, project.weld.id}

        result = repair_service.repair_from_report(report, actor_id, "audit findings", checkpoint.run_id)

        assert result.repaired_count == 2
        assert AuditService(session, compiled_catalog).run(project_id).status == AuditStatus.PASSED

    def test_clean_report_has_nothing_to_repair(
        self, session, compiled_catalog, repair_service, project, project_id, actor_id
    ):
        report = AuditService(session, compiled_catalog).run(project_id)

        with pytest.raises(RepairScopeError):
            repair_service.repair_from_report(report, actor_id, "audit findings")
