"""
Module: progress_kernel.models.component
Responsibility: ORM persistence for tracked components and their field-weld
    detail rows.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - ``current_milestones`` is only changed through the milestone service,
      which appends a MilestoneEvent for every change.
    - ``percent_complete`` is a cache recomputed on every milestone change;
      the consistency auditor detects drift.
    - Removing a component cascades to its field-weld detail and its event
      history (see db/immutability.py for the only sanctioned event delete).

JSON columns are reassigned, never mutated in place, so SQLAlchemy sees
the change.
"""

from datetime import datetime
from decimal import Decimal
from typing import TYPE_CHECKING, Any
from uuid import UUID

from sqlalchemy import Boolean, ForeignKey, Index, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from progress_kernel.db.base import JSONType, TrackedBase, UTCDateTime, UUIDString

if TYPE_CHECKING:
    from progress_kernel.models.milestone_event import MilestoneEventModel


class ComponentModel(TrackedBase):
    """One trackable component (spool, field weld, valve, ...)."""

    __tablename__ = "components"

    __table_args__ = (
        Index("idx_component_project", "project_id"),
        Index("idx_component_project_type", "project_id", "component_type"),
        Index("idx_component_area", "area_id"),
        Index("idx_component_system", "system_id"),
        Index("idx_component_test_package", "test_package_id"),
        Index("idx_component_drawing", "drawing_id"),
    )

    project_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    component_type: Mapped[str] = mapped_column(String(50), nullable=False)

    # Type-specific composite key, e.g. {"spool_id": "SP-001"}
    identity_key: Mapped[dict[str, Any]] = mapped_column(JSONType, nullable=False, default=dict)

    budgeted_manhours: Mapped[Decimal | None] = mapped_column(nullable=True)

    current_milestones: Mapped[dict[str, Any]] = mapped_column(JSONType, nullable=False, default=dict)

    percent_complete: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))

    is_retired: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    template_version: Mapped[int | None] = mapped_column(nullable=True)

    attributes: Mapped[dict[str, Any]] = mapped_column(JSONType, nullable=False, default=dict)

    area_id: Mapped[UUID | None] = mapped_column(UUIDString(), ForeignKey("areas.id"), nullable=True)

    system_id: Mapped[UUID | None] = mapped_column(UUIDString(), ForeignKey("systems.id"), nullable=True)

    test_package_id: Mapped[UUID | None] = mapped_column(
        UUIDString(), ForeignKey("test_packages.id"), nullable=True
    )

    drawing_id: Mapped[UUID | None] = mapped_column(UUIDString(), ForeignKey("drawings.id"), nullable=True)

    field_weld: Mapped["FieldWeldDetailModel | None"] = relationship(
        back_populates="component",
        uselist=False,
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    events: Mapped[list["MilestoneEventModel"]] = relationship(
        back_populates="component",
        cascade="all, delete-orphan",
        order_by="[MilestoneEventModel.occurred_at, MilestoneEventModel.sequence]",
    )

    @property
    def welder_id(self) -> UUID | None:
        return self.field_weld.welder_id if self.field_weld is not None else None

    def __repr__(self) -> str:
        return f"<Component {self.component_type} {self.id} {self.percent_complete}%>"


class FieldWeldDetailModel(TrackedBase):
    """Weld-specific data, one row per field_weld component."""

    __tablename__ = "field_weld_details"

    component_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("components.id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
    )

    welder_id: Mapped[UUID | None] = mapped_column(UUIDString(), ForeignKey("welders.id"), nullable=True)

    weld_type: Mapped[str | None] = mapped_column(String(20), nullable=True)

    date_welded: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)

    component: Mapped[ComponentModel] = relationship(back_populates="field_weld")
