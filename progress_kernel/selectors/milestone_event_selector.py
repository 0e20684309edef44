"""
MilestoneEventSelector -- ordered event history for delta and replay.
"""

from datetime import datetime
from uuid import UUID

from sqlalchemy import func, select

from progress_kernel.domain.values import MilestoneEvent
from progress_kernel.models.milestone_event import MilestoneEventModel
from progress_kernel.selectors.base import BaseSelector, as_utc


def event_from_model(model: MilestoneEventModel) -> MilestoneEvent:
    return MilestoneEvent(
        id=model.id,
        component_id=model.component_id,
        milestone_name=model.milestone_name,
        value=model.value,
        previous_value=model.previous_value,
        occurred_at=as_utc(model.occurred_at),
        action=model.action,
        delta_mh=model.delta_mh,
        category=model.category,
        actor_id=model.actor_id,
    )


class MilestoneEventSelector(BaseSelector[MilestoneEventModel]):
    """Read access to milestone events, always in replay order."""

    def fetch_milestone_events(
        self,
        *,
        component_id: UUID | None = None,
        project_id: UUID | None = None,
        start: datetime | None = None,
        end: datetime | None = None,
    ) -> list[MilestoneEvent]:
        """
        Events of one component or one project, optionally in [start, end).

        Ordered by (occurred_at, sequence) within each component; components
        are interleaved by time.

        Raises:
            ValueError: if neither or both of component_id / project_id given.
        """
        if (component_id is None) == (project_id is None):
            raise ValueError("Pass exactly one of component_id or project_id")

        stmt = select(MilestoneEventModel)
        if component_id is not None:
            stmt = stmt.where(MilestoneEventModel.component_id == component_id)
        else:
            stmt = stmt.where(MilestoneEventModel.project_id == project_id)
        if start is not None:
            stmt = stmt.where(MilestoneEventModel.occurred_at >= as_utc(start))
        if end is not None:
            stmt = stmt.where(MilestoneEventModel.occurred_at < as_utc(end))
        stmt = stmt.order_by(
            MilestoneEventModel.occurred_at,
            MilestoneEventModel.component_id,
            MilestoneEventModel.sequence,
        )
        return [event_from_model(m) for m in self.session.scalars(stmt)]

    def next_sequence(self, component_id: UUID) -> int:
        """Sequence number the next event of a component gets."""
        current = self.session.scalar(
            select(func.max(MilestoneEventModel.sequence)).where(
                MilestoneEventModel.component_id == component_id
            )
        )
        return (current or 0) + 1

    def latest_occurred_at(self, component_id: UUID) -> datetime | None:
        """Timestamp of the component's most recent event, if it has any."""
        latest = self.session.scalar(
            select(func.max(MilestoneEventModel.occurred_at)).where(
                MilestoneEventModel.component_id == component_id
            )
        )
        return as_utc(latest) if latest is not None else None

    def components_updated_since(self, project_id: UUID, since: datetime) -> frozenset[UUID]:
        """Components of a project with at least one event at or after ``since``."""
        stmt = (
            select(MilestoneEventModel.component_id)
            .where(MilestoneEventModel.project_id == project_id)
            .where(MilestoneEventModel.occurred_at >= as_utc(since))
            .distinct()
        )
        return frozenset(self.session.scalars(stmt))
