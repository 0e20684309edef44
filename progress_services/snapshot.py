"""
progress_services.snapshot -- consistent reads handed to the pure engines.

Responsibility:
    Load a project's components and milestone events in one session and
    freeze them into an ``AuditSnapshot``; split a snapshot into one
    partition per dimension key.

Architecture position:
    Services -- imperative shell.  The only place the audit path touches
    the database.

Invariants enforced:
    - Components and events come from the same session, and events are
      bounded by ``as_of``, so a repair committed after the read cannot
      leak half into an audit.
    - Components with events at or after ``as_of`` are listed in
      ``updated_after`` so the auditor does not compare their current
      state with a truncated replay.
    - Partitions are disjoint: every component and its events belong to
      exactly one partition.
"""

from __future__ import annotations

from collections.abc import Hashable
from dataclasses import replace
from datetime import datetime
from uuid import UUID

from sqlalchemy.orm import Session

from progress_engines.reconciliation import AuditSnapshot
from progress_kernel.domain.catalog import MilestoneCatalog
from progress_kernel.domain.values import Dimension, dimension_key_fn
from progress_kernel.logging_config import get_logger
from progress_kernel.selectors.component_selector import ComponentFilters, ComponentSelector
from progress_kernel.selectors.milestone_event_selector import MilestoneEventSelector

logger = get_logger("services.snapshot")

UNASSIGNED_PARTITION = "unassigned"


def partition_label(key: Hashable) -> str:
    return UNASSIGNED_PARTITION if key is None else str(key)


class SnapshotLoader:
    """Reads one project into an immutable snapshot."""

    def __init__(self, session: Session) -> None:
        self._components = ComponentSelector(session)
        self._events = MilestoneEventSelector(session)

    def load(
        self,
        project_id: UUID,
        catalog: MilestoneCatalog,
        dimension: Dimension | str = Dimension.PROJECT,
        as_of: datetime | None = None,
    ) -> AuditSnapshot:
        components = self._components.fetch_components(
            project_id, ComponentFilters(include_retired=True)
        )
        events = self._events.fetch_milestone_events(project_id=project_id, end=as_of)
        updated_after = (
            self._events.components_updated_since(project_id, as_of) if as_of is not None else frozenset()
        )
        logger.info(
            "snapshot_loaded",
            extra={
                "project_id": str(project_id),
                "component_count": len(components),
                "event_count": len(events),
                "as_of": as_of.isoformat() if as_of else None,
                "updated_after_count": len(updated_after),
            },
        )
        return AuditSnapshot(
            project_id=project_id,
            components=tuple(components),
            events=tuple(events),
            catalog=catalog,
            dimension=Dimension.parse(dimension),
            taken_at=as_of,
            updated_after=updated_after,
        )


def partition_snapshot(snapshot: AuditSnapshot) -> dict[str, AuditSnapshot]:
    """One sub-snapshot per dimension key, labelled for checkpointing."""
    key_fn = dimension_key_fn(snapshot.dimension)
    owner: dict[UUID, str] = {}
    grouped: dict[str, list] = {}
    for component in snapshot.components:
        label = partition_label(key_fn(component))
        owner[component.id] = label
        grouped.setdefault(label, []).append(component)

    events: dict[str, list] = {label: [] for label in grouped}
    for event in snapshot.events:
        label = owner.get(event.component_id)
        if label is not None:
            events[label].append(event)

    return {
        label: replace(snapshot, components=tuple(grouped[label]), events=tuple(events[label]))
        for label in sorted(grouped)
    }
