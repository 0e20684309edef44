"""
Tests for the consistency auditor.

Covers:
- Clean snapshot passes every check
- Stale stored percent -> STORED_PERCENT_MISMATCH and view total warning
- Replay mismatches and event chain gaps
- Classification gaps reported once per (type, name)
- Partition report merging
"""

from decimal import Decimal
from uuid import uuid4

import pytest

from progress_engines.reconciliation import (
    AuditReport,
    AuditSnapshot,
    AuditStatus,
    CheckSeverity,
    ConsistencyAuditor,
    DiscrepancyKind,
)


@pytest.fixture
def auditor():
    return ConsistencyAuditor()


def _snapshot(project_id, catalog, components, events=()):
    return AuditSnapshot(
        project_id=project_id,
        components=tuple(components),
        events=tuple(events),
        catalog=catalog,
    )


@pytest.fixture
def consistent_weld(make_component, make_event):
    weld = make_component("field_weld", {"Fit-up": True}, budget="10", percent="40")
    return weld, [make_event(weld, "Fit-up", True, minutes=1)]


class TestCleanSnapshot:

    def test_passes(self, auditor, project_id, scenario_catalog, consistent_weld):
        weld, events = consistent_weld

        report = auditor.audit(_snapshot(project_id, scenario_catalog, [weld], events))

        assert report.status == AuditStatus.PASSED
        assert report.is_clean
        assert report.components_checked == 1
        assert report.events_checked == 1
        assert "replay" in report.checks_performed

    def test_empty_snapshot_passes(self, auditor, project_id, scenario_catalog):
        report = auditor.audit(_snapshot(project_id, scenario_catalog, []))

        assert report.status == AuditStatus.PASSED

    def test_retired_components_not_checked(self, auditor, project_id, scenario_catalog, make_component):
        retired = make_component("support", {"Install": True}, percent="0", is_retired=True)

        report = auditor.audit(_snapshot(project_id, scenario_catalog, [retired]))

        assert report.is_clean
        assert report.components_checked == 0


class TestStoredPercent:

    def test_stale_percent_flagged(self, auditor, project_id, scenario_catalog, make_component, make_event):
        stale = make_component("field_weld", {"Fit-up": True}, budget="10", percent="0")
        events = [make_event(stale, "Fit-up", True, minutes=1)]

        report = auditor.audit(_snapshot(project_id, scenario_catalog, [stale], events))

        mismatches = report.of_kind(DiscrepancyKind.STORED_PERCENT_MISMATCH)
        assert len(mismatches) == 1
        assert mismatches[0].computed_a == Decimal("0")
        assert mismatches[0].computed_b == Decimal("40")
        assert mismatches[0].severity == CheckSeverity.ERROR
        assert report.status == AuditStatus.FAILED
        assert report.mismatched_component_ids == (stale.id,)

    def test_view_total_warning_accompanies_stale_percent(
        self, auditor, project_id, scenario_catalog, make_component, make_event
    ):
        stale = make_component("field_weld", {"Fit-up": True}, budget="10", percent="0")
        events = [make_event(stale, "Fit-up", True, minutes=1)]

        report = auditor.audit(_snapshot(project_id, scenario_catalog, [stale], events))

        views = report.of_kind(DiscrepancyKind.VIEW_TOTAL_MISMATCH)
        assert len(views) == 1
        assert views[0].delta == Decimal("-4")

    def test_within_tolerance_not_flagged(self, auditor, project_id, scenario_catalog, make_component, make_event):
        close = make_component("field_weld", {"Fit-up": True}, budget="10", percent="40.05")
        events = [make_event(close, "Fit-up", True, minutes=1)]

        report = auditor.audit(_snapshot(project_id, scenario_catalog, [close], events))

        assert report.of_kind(DiscrepancyKind.STORED_PERCENT_MISMATCH) == ()

    def test_out_of_range_stored_percent(self, auditor, project_id, scenario_catalog, make_component):
        broken = make_component("support", {}, percent="120")

        report = auditor.audit(_snapshot(project_id, scenario_catalog, [broken]))

        assert len(report.of_kind(DiscrepancyKind.PERCENT_OUT_OF_RANGE)) == 1


class TestReplayChecks:

    def test_state_without_events_flagged(self, auditor, project_id, scenario_catalog, make_component):
        orphan = make_component("field_weld", {"Fit-up": True}, budget="10", percent="40")

        report = auditor.audit(_snapshot(project_id, scenario_catalog, [orphan]))

        assert len(report.of_kind(DiscrepancyKind.REPLAY_STATE_MISMATCH)) == 1
        earned = report.of_kind(DiscrepancyKind.REPLAY_EARNED_MISMATCH)
        assert earned[0].computed_a == Decimal("0")
        assert earned[0].computed_b == Decimal("4")

    def test_chain_gap_is_warning(self, auditor, project_id, scenario_catalog, make_component, make_event):
        weld = make_component("field_weld", {"Fit-up": False}, budget="10", percent="0")
        events = [
            make_event(weld, "Fit-up", True, minutes=1),
            make_event(weld, "Fit-up", False, previous_value=False, minutes=2),
        ]

        report = auditor.audit(_snapshot(project_id, scenario_catalog, [weld], events))

        gaps = report.of_kind(DiscrepancyKind.EVENT_CHAIN_GAP)
        assert len(gaps) == 1
        assert gaps[0].severity == CheckSeverity.WARNING
        assert report.status == AuditStatus.WARNING

    def test_updated_after_cut_skips_state_comparison(
        self, auditor, project_id, scenario_catalog, make_component, make_event
    ):
        weld = make_component("field_weld", {"Fit-up": True, "Weld Complete": True}, budget="10", percent="100")
        events = [make_event(weld, "Fit-up", True, minutes=1)]
        snapshot = AuditSnapshot(
            project_id=project_id,
            components=(weld,),
            events=tuple(events),
            catalog=scenario_catalog,
            updated_after=frozenset({weld.id}),
        )

        report = auditor.audit(snapshot)

        assert report.of_kind(DiscrepancyKind.REPLAY_STATE_MISMATCH) == ()
        assert report.of_kind(DiscrepancyKind.REPLAY_EARNED_MISMATCH) == ()
        assert report.status == AuditStatus.PASSED

    def test_updated_after_cut_still_checks_chain(
        self, auditor, project_id, scenario_catalog, make_component, make_event
    ):
        weld = make_component("field_weld", {"Fit-up": True}, budget="10", percent="40")
        events = [
            make_event(weld, "Fit-up", True, minutes=1),
            make_event(weld, "Fit-up", False, previous_value=False, minutes=2),
        ]
        snapshot = AuditSnapshot(
            project_id=project_id,
            components=(weld,),
            events=tuple(events),
            catalog=scenario_catalog,
            updated_after=frozenset({weld.id}),
        )

        report = auditor.audit(snapshot)

        assert len(report.of_kind(DiscrepancyKind.EVENT_CHAIN_GAP)) == 1


class TestClassificationGaps:

    def test_reported_once_per_type_and_name(self, auditor, project_id, scenario_catalog, make_component, make_event):
        a = make_component("support", {"Paint": True}, percent="0")
        b = make_component("support", {"Paint": True}, percent="0")
        events = [
            make_event(a, "Paint", True, minutes=1),
            make_event(b, "Paint", True, minutes=1),
            make_event(b, "Paint", False, previous_value=True, minutes=2),
        ]

        report = auditor.audit(_snapshot(project_id, scenario_catalog, [a, b], events))

        assert len(report.classification_gaps) == 1
        gap = report.classification_gaps[0]
        assert (gap.component_type, gap.milestone_name) == ("support", "Paint")
        assert gap.event_count == 3
        assert gap.component_count == 2

    def test_spellings_of_one_name_grouped(self, auditor, project_id, scenario_catalog, make_component, make_event):
        a = make_component("support", {"paint": True}, percent="0")
        b = make_component("support", {}, percent="0")
        events = [
            make_event(a, "paint", True, minutes=1),
            make_event(b, "Paint", True, minutes=1),
        ]

        report = auditor.audit(_snapshot(project_id, scenario_catalog, [a, b], events))

        assert len(report.classification_gaps) == 1
        gap = report.classification_gaps[0]
        assert gap.milestone_name == "Paint"
        assert gap.event_count == 2
        assert gap.component_count == 2


class TestMerge:

    def test_partition_reports_merge(self, auditor, project_id, scenario_catalog, make_component, consistent_weld):
        weld, events = consistent_weld
        stale = make_component("support", {"Paint": True}, percent="50")

        clean = auditor.audit_partition(
            _snapshot(project_id, scenario_catalog, [weld], events), partition="north"
        )
        dirty = auditor.audit_partition(
            _snapshot(project_id, scenario_catalog, [stale]), partition="south"
        )

        merged = clean.merge(dirty)

        assert merged.status == AuditStatus.FAILED
        assert merged.components_checked == 2
        assert merged.partitions == ("north", "south")
        assert merged.classification_gaps[0].component_count == 1

    def test_gap_counts_summed_across_partitions(self, project_id):
        from progress_engines.reconciliation import ClassificationGap

        def report(events):
            return AuditReport.from_findings(
                project_id=project_id,
                discrepancies=(),
                classification_gaps=(ClassificationGap("support", "Paint", events, 1),),
                tolerance=Decimal("0.1"),
                components_checked=1,
                events_checked=events,
                checks_performed=("classification",),
            )

        merged = report(2).merge(report(3))

        assert merged.classification_gaps == (ClassificationGap("support", "Paint", 5, 2),)
        assert merged.checks_performed == ("classification",)
        assert merged.project_id == project_id
        assert merged.status == AuditStatus.PASSED

    def test_gap_spellings_merged_across_partitions(self, auditor, project_id, scenario_catalog, make_component):
        north = make_component("support", {"paint": True}, percent="0")
        south = make_component("support", {"Paint": True}, percent="0")

        merged = auditor.audit_partition(_snapshot(project_id, scenario_catalog, [north])).merge(
            auditor.audit_partition(_snapshot(project_id, scenario_catalog, [south]))
        )

        assert len(merged.classification_gaps) == 1
        assert merged.classification_gaps[0].milestone_name == "Paint"
        assert merged.classification_gaps[0].component_count == 2
