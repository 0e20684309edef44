"""
Module: progress_kernel.models.dimensions
Responsibility: ORM persistence for the reporting dimensions a component can
    be assigned to: areas, systems, test packages, drawings and welders.
Architecture position: Kernel > Models.  May import from db/base.py only.

Dimension totals are never stored.  These tables only hold the labels that
aggregation results are keyed by; every number is derived from components.
"""

from uuid import UUID

from sqlalchemy import Index, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from progress_kernel.db.base import TrackedBase, UUIDString


class _ProjectScopedDimension(TrackedBase):
    """Shared columns: every dimension value belongs to one project."""

    __abstract__ = True

    project_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    name: Mapped[str] = mapped_column(String(200), nullable=False)

    description: Mapped[str | None] = mapped_column(String(500), nullable=True)

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.name}>"


class AreaModel(_ProjectScopedDimension):
    """Physical area of the plant."""

    __tablename__ = "areas"
    __table_args__ = (
        UniqueConstraint("project_id", "name", name="uq_area_project_name"),
    )


class SystemModel(_ProjectScopedDimension):
    """Process system (e.g. cooling water)."""

    __tablename__ = "systems"
    __table_args__ = (
        UniqueConstraint("project_id", "name", name="uq_system_project_name"),
    )


class TestPackageModel(_ProjectScopedDimension):
    """Group of components pressure tested together."""

    __tablename__ = "test_packages"
    __test__ = False
    __table_args__ = (
        UniqueConstraint("project_id", "name", name="uq_test_package_project_name"),
    )


class DrawingModel(_ProjectScopedDimension):
    """Isometric drawing; ``name`` holds the normalized drawing number."""

    __tablename__ = "drawings"
    __table_args__ = (
        UniqueConstraint("project_id", "name", name="uq_drawing_project_name"),
    )

    title: Mapped[str | None] = mapped_column(String(300), nullable=True)

    revision: Mapped[str | None] = mapped_column(String(20), nullable=True)


class WelderModel(_ProjectScopedDimension):
    """Welder, identified on the job by their stencil."""

    __tablename__ = "welders"
    __table_args__ = (
        UniqueConstraint("project_id", "stencil", name="uq_welder_project_stencil"),
        Index("idx_welder_project", "project_id"),
    )

    stencil: Mapped[str] = mapped_column(String(20), nullable=False)
