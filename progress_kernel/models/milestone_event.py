"""
Module: progress_kernel.models.milestone_event
Responsibility: ORM persistence for the append-only milestone event history.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - Append-only: UPDATE is always rejected, DELETE only as part of an
      administrative component removal (db/immutability.py).
    - ``sequence`` numbers a component's events 1, 2, 3, ... in insertion
      order; (occurred_at, sequence) is the total replay order, so events
      sharing a timestamp keep the order they were recorded in.
"""

from datetime import datetime
from decimal import Decimal
from typing import TYPE_CHECKING, Any
from uuid import UUID

from sqlalchemy import ForeignKey, Index, String, UniqueConstraint, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from progress_kernel.db.base import Base, JSONType, UTCDateTime, UUIDString

if TYPE_CHECKING:
    from progress_kernel.models.component import ComponentModel


class MilestoneEventModel(Base):
    """One recorded change of one milestone value."""

    __tablename__ = "milestone_events"

    __table_args__ = (
        UniqueConstraint("component_id", "sequence", name="uq_milestone_event_sequence"),
        Index("idx_milestone_event_component_time", "component_id", "occurred_at"),
        Index("idx_milestone_event_project_time", "project_id", "occurred_at"),
    )

    component_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("components.id", ondelete="CASCADE"),
        nullable=False,
    )

    # Denormalized for project-wide window queries.
    project_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    sequence: Mapped[int] = mapped_column(nullable=False)

    milestone_name: Mapped[str] = mapped_column(String(100), nullable=False)

    # Raw values exactly as recorded (bool, number or string).
    previous_value: Mapped[Any | None] = mapped_column(JSONType, nullable=True)

    value: Mapped[Any | None] = mapped_column(JSONType, nullable=True)

    action: Mapped[str] = mapped_column(String(20), nullable=False)

    # Signed earned-manhour change, computed when recorded.
    delta_mh: Mapped[Decimal | None] = mapped_column(nullable=True)

    # Standard category at recording time (None for unclassified names).
    category: Mapped[str | None] = mapped_column(String(20), nullable=True)

    actor_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    occurred_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)

    recorded_at: Mapped[datetime] = mapped_column(
        UTCDateTime(),
        server_default=func.now(),
        nullable=False,
    )

    component: Mapped["ComponentModel"] = relationship(back_populates="events")

    def __repr__(self) -> str:
        return (
            f"<MilestoneEvent {self.component_id}#{self.sequence} "
            f"{self.milestone_name}: {self.previous_value!r} -> {self.value!r}>"
        )
