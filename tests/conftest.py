"""
Pytest fixtures for the progress engine test suite.

Provides:
- Structured logging capture
- An in-memory SQLite database per test (foreign keys on, append-only
  listeners registered)
- The published YAML catalog and a small hand-built scenario catalog
- Builders for component and event snapshots
- Services wired to a deterministic clock
"""

import json
import logging
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from io import StringIO
from typing import Any, Generator
from uuid import UUID, uuid4

import pytest
from sqlalchemy.orm import Session

from progress_config import CompiledCatalog, get_active_catalog
from progress_kernel.db.engine import (
    create_tables,
    get_session,
    init_engine_from_url,
    reset_engine,
)
from progress_kernel.db.immutability import (
    register_immutability_listeners,
    unregister_immutability_listeners,
)
from progress_kernel.domain.catalog import MilestoneAlias, MilestoneCatalog, MilestoneTemplate
from progress_kernel.domain.clock import DeterministicClock
from progress_kernel.domain.values import (
    Component,
    EventAction,
    MilestoneDefinition,
    MilestoneEvent,
)
from progress_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)
from progress_kernel.models.dimensions import AreaModel, WelderModel
from progress_services.milestone_service import MilestoneService
from progress_services.progress_service import ProgressService

# Test actor ID for all test operations
TEST_ACTOR_ID = uuid4()

T0 = datetime(2024, 1, 1, 12, 0, 0, tzinfo=timezone.utc)


# =============================================================================
# Logging fixtures
# =============================================================================


@pytest.fixture(autouse=True, scope="session")
def _configure_test_logging():
    """Configure structured logging for the test suite."""
    reset_logging()
    configure_logging(level=logging.DEBUG)
    yield
    reset_logging()


@pytest.fixture(autouse=True)
def _clear_log_context():
    """Clear LogContext between tests to prevent cross-test contamination."""
    LogContext.clear()
    yield
    LogContext.clear()


@pytest.fixture
def captured_logs():
    """
    Capture progress_kernel logs as parsed JSON dicts.

    Usage::

        def test_something(captured_logs, milestone_service):
            milestone_service.update_milestone(...)
            logs = captured_logs()
            assert any(r["message"] == "milestone_updated" for r in logs)
    """
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    root = logging.getLogger("progress_kernel")
    root.addHandler(handler)

    def _get_records() -> list[dict]:
        lines = stream.getvalue().strip().split("\n")
        return [json.loads(line) for line in lines if line]

    yield _get_records

    root.removeHandler(handler)


# =============================================================================
# Database
# =============================================================================


@pytest.fixture(scope="session", autouse=True)
def _immutability_listeners():
    register_immutability_listeners()
    yield
    unregister_immutability_listeners()


@pytest.fixture
def session() -> Generator[Session, None, None]:
    """Fresh in-memory database per test."""
    init_engine_from_url("sqlite://")
    create_tables()
    s = get_session()
    try:
        yield s
    finally:
        s.rollback()
        s.close()
        reset_engine()


@pytest.fixture
def project_id() -> UUID:
    return uuid4()


@pytest.fixture
def actor_id() -> UUID:
    return TEST_ACTOR_ID


@pytest.fixture
def clock() -> DeterministicClock:
    return DeterministicClock(T0)


@pytest.fixture
def welder(session, project_id) -> WelderModel:
    row = WelderModel(
        project_id=project_id,
        name="J. Rivera",
        stencil="JR-07",
        created_by_id=TEST_ACTOR_ID,
    )
    session.add(row)
    session.flush()
    return row


@pytest.fixture
def areas(session, project_id) -> dict[str, UUID]:
    """Two areas, "North" and "South", by name."""
    rows = {
        name: AreaModel(project_id=project_id, name=name, created_by_id=TEST_ACTOR_ID)
        for name in ("North", "South")
    }
    session.add_all(rows.values())
    session.flush()
    return {name: row.id for name, row in rows.items()}


# =============================================================================
# Catalogs
# =============================================================================


@pytest.fixture(scope="session")
def compiled_catalog() -> CompiledCatalog:
    """Highest published YAML catalog."""
    return get_active_catalog()


@pytest.fixture(scope="session")
def catalog(compiled_catalog) -> MilestoneCatalog:
    return compiled_catalog.catalog


def _milestone(name, weight, category, kind="discrete", order=0, requires_welder=False):
    return MilestoneDefinition(
        name=name,
        weight=Decimal(str(weight)),
        kind=kind,
        category=category,
        order=order,
        requires_welder=requires_welder,
    )


@pytest.fixture(scope="session")
def scenario_catalog() -> MilestoneCatalog:
    """
    Small catalog with round numbers:

    field_weld     Fit-up 40 / Weld Complete 60, both discrete
    threaded_pipe  five partial milestones at 20, Punch/Test/Restore at 0
    support        Receive 10 / Install 60 / Punch 10 / Test 15 / Restore 5
    """
    field_weld = MilestoneTemplate(
        component_type="field_weld",
        milestones=(
            _milestone("Fit-up", 40, "install", order=1),
            _milestone("Weld Complete", 60, "install", order=2),
        ),
    )
    threaded_pipe = MilestoneTemplate(
        component_type="threaded_pipe",
        workflow_type="hybrid",
        milestones=tuple(
            _milestone(name, 20, "install", kind="partial", order=i)
            for i, name in enumerate(("Fabricate", "Install", "Erect", "Connect", "Support"), start=1)
        )
        + (
            _milestone("Punch", 0, "punch", order=6),
            _milestone("Test", 0, "test", order=7),
            _milestone("Restore", 0, "restore", order=8),
        ),
    )
    support = MilestoneTemplate(
        component_type="support",
        milestones=(
            _milestone("Receive", 10, "receive", order=1),
            _milestone("Install", 60, "install", order=2),
            _milestone("Punch", 10, "punch", order=3),
            _milestone("Test", 15, "test", order=4),
            _milestone("Restore", 5, "restore", order=5),
        ),
    )
    return MilestoneCatalog(
        catalog_id="scenario",
        version=1,
        templates=[field_weld, threaded_pipe, support],
        aliases=[MilestoneAlias(alias="Weld Made", canonical="Weld Complete", component_type="field_weld")],
    )


# =============================================================================
# Snapshot builders
# =============================================================================


@pytest.fixture
def make_component(project_id):
    """Factory for frozen Component snapshots."""

    def _make(
        component_type: str = "support",
        milestones: dict[str, Any] | None = None,
        budget: Decimal | str | None = "10",
        percent: Decimal | str = "0",
        **overrides: Any,
    ) -> Component:
        values = dict(
            id=uuid4(),
            project_id=project_id,
            component_type=component_type,
            current_milestones=milestones or {},
            percent_complete=Decimal(str(percent)),
            budgeted_manhours=Decimal(str(budget)) if budget is not None else None,
        )
        values.update(overrides)
        return Component(**values)

    return _make


@pytest.fixture
def make_event():
    """Factory for MilestoneEvent snapshots; ``minutes`` is an offset from T0."""

    def _make(
        component: Component,
        milestone_name: str,
        value: Any,
        previous_value: Any = None,
        minutes: int = 0,
        action: EventAction | None = None,
    ) -> MilestoneEvent:
        if action is None:
            action = EventAction.ROLLBACK if previous_value and not value else EventAction.UPDATE
        return MilestoneEvent(
            id=uuid4(),
            component_id=component.id,
            milestone_name=milestone_name,
            value=value,
            previous_value=previous_value,
            occurred_at=T0 + timedelta(minutes=minutes),
            action=action,
        )

    return _make


# =============================================================================
# Services
# =============================================================================


@pytest.fixture
def milestone_service(session, compiled_catalog, clock) -> MilestoneService:
    return MilestoneService(session, compiled_catalog, clock=clock)


@pytest.fixture
def progress_service(session, compiled_catalog) -> ProgressService:
    return ProgressService(session, compiled_catalog)
