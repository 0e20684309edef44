"""
Module: progress_kernel.models.progress_template
Responsibility: Persisted milestone templates, one row per
    (component type, version, project) with the milestones as JSON.
Architecture position: Kernel > Models.  May import from db/base.py only.

The YAML catalog sets under ``progress_config/sets`` are the canonical
configuration.  This table holds published copies (and project overrides
created at runtime) for collaborators that read templates from the
database; see ``TemplateSelector``.

Milestones JSON shape::

    [{"name": "Receive", "weight": "10", "kind": "discrete",
      "category": "receive", "order": 1, "requires_welder": false}, ...]
"""

from typing import Any
from uuid import UUID

from sqlalchemy import Index, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from progress_kernel.db.base import JSONType, TrackedBase, UUIDString


class ProgressTemplateModel(TrackedBase):
    """One version of one component type's milestone template."""

    __tablename__ = "progress_templates"

    __table_args__ = (
        UniqueConstraint(
            "catalog_id", "component_type", "version", "project_id",
            name="uq_progress_template_version",
        ),
        Index("idx_progress_template_type", "component_type", "version"),
    )

    catalog_id: Mapped[str] = mapped_column(String(100), nullable=False)

    component_type: Mapped[str] = mapped_column(String(50), nullable=False)

    version: Mapped[int] = mapped_column(nullable=False)

    # NULL for the system template; set for a project override.
    project_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    workflow_type: Mapped[str] = mapped_column(String(20), nullable=False, default="discrete")

    milestones: Mapped[list[Any]] = mapped_column(JSONType, nullable=False)

    def __repr__(self) -> str:
        scope = f" project={self.project_id}" if self.project_id else ""
        return f"<ProgressTemplate {self.component_type} v{self.version}{scope}>"
