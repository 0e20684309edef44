"""
Shared fixtures for service tests: one small project built through the
milestone service, so stored state, events and percent agree.
"""

from dataclasses import dataclass
from decimal import Decimal

import pytest

from progress_kernel.domain.values import Component
from progress_kernel.models.component import ComponentModel
from progress_kernel.selectors.component_selector import ComponentSelector


@dataclass
class Project:
    support: Component  # North, 10 MH, Receive + Install = 70%
    valve: Component  # South, 20 MH, Receive = 10%
    weld: Component  # unassigned, 10 MH, Fit-Up = 10%

    @property
    def components(self) -> tuple[Component, ...]:
        return (self.support, self.valve, self.weld)


@pytest.fixture
def project(session, milestone_service, project_id, actor_id, areas, clock) -> Project:
    def register(component_type, tag, budget, area=None):
        return milestone_service.register_component(
            project_id,
            component_type,
            {"tag": tag},
            actor_id,
            budgeted_manhours=Decimal(budget),
            area_id=areas[area] if area else None,
        )

    support = register("support", "PS-1", "10", "North")
    valve = register("valve", "V-1", "20", "South")
    weld = register("field_weld", "W-1", "10")

    milestone_service.update_milestone(support.id, "Receive", True, actor_id)
    clock.tick()
    milestone_service.update_milestone(support.id, "Install", True, actor_id)
    clock.tick()
    milestone_service.update_milestone(valve.id, "Receive", True, actor_id)
    clock.tick()
    milestone_service.update_milestone(weld.id, "Fit-Up", True, actor_id)
    clock.tick()

    selector = ComponentSelector(session)
    return Project(
        support=selector.get(support.id),
        valve=selector.get(valve.id),
        weld=selector.get(weld.id),
    )


@pytest.fixture
def corrupt_percent(session):
    """Overwrite a component's stored percent, bypassing the service."""

    def _corrupt(component: Component, percent: str) -> None:
        model = session.get(ComponentModel, component.id)
        model.percent_complete = Decimal(percent)
        session.flush()

    return _corrupt
