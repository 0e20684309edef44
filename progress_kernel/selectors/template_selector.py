"""
TemplateSelector -- milestone templates persisted in ``progress_templates``.

Version selection: ``version=None`` means the latest version stored for the
component type.  A project override, when one exists for the requested
version, wins over the system template.
"""

from typing import Any
from uuid import UUID

from sqlalchemy import func, select

from progress_kernel.domain.catalog import MilestoneCatalog, MilestoneTemplate
from progress_kernel.domain.values import MilestoneDefinition
from progress_kernel.exceptions import (
    CatalogVersionNotFoundError,
    MilestoneTemplateNotFoundError,
)
from progress_kernel.models.progress_template import ProgressTemplateModel
from progress_kernel.selectors.base import BaseSelector


def definitions_from_json(rows: list[dict[str, Any]]) -> tuple[MilestoneDefinition, ...]:
    """Milestone JSON rows -> definitions, in ``order``."""
    definitions = [
        MilestoneDefinition(
            name=row["name"],
            weight=row["weight"],
            kind=row.get("kind", "discrete"),
            category=row.get("category"),
            order=int(row.get("order", index + 1)),
            requires_welder=bool(row.get("requires_welder", False)),
        )
        for index, row in enumerate(rows)
    ]
    return tuple(sorted(definitions, key=lambda d: d.order))


def definitions_to_json(definitions: tuple[MilestoneDefinition, ...]) -> list[dict[str, Any]]:
    return [
        {
            "name": d.name,
            "weight": str(d.weight),
            "kind": d.kind.value,
            "category": d.category.value if d.category is not None else None,
            "order": d.order,
            "requires_welder": d.requires_welder,
        }
        for d in definitions
    ]


class TemplateSelector(BaseSelector[ProgressTemplateModel]):
    """Read access to persisted milestone templates."""

    def latest_version(self, component_type: str) -> int | None:
        return self.session.scalar(
            select(func.max(ProgressTemplateModel.version)).where(
                ProgressTemplateModel.component_type == str(component_type),
                ProgressTemplateModel.project_id.is_(None),
            )
        )

    def fetch_milestone_catalog(
        self,
        component_type: str,
        version: int | None = None,
        project_id: UUID | None = None,
    ) -> tuple[MilestoneDefinition, ...]:
        """
        Ordered milestone definitions of one component type.

        Raises:
            MilestoneTemplateNotFoundError: no template stored for the type
                (or not at the requested version).
        """
        component_type = str(component_type)
        if version is None:
            version = self.latest_version(component_type)
            if version is None:
                raise MilestoneTemplateNotFoundError(component_type, "persisted", 0)

        rows = self.session.scalars(
            select(ProgressTemplateModel).where(
                ProgressTemplateModel.component_type == component_type,
                ProgressTemplateModel.version == version,
            )
        ).all()
        system = next((r for r in rows if r.project_id is None), None)
        override = next(
            (r for r in rows if project_id is not None and r.project_id == project_id),
            None,
        )
        chosen = override or system
        if chosen is None:
            raise MilestoneTemplateNotFoundError(component_type, "persisted", version)
        return definitions_from_json(chosen.milestones)

    def available_versions(self, catalog_id: str) -> tuple[int, ...]:
        versions = self.session.scalars(
            select(ProgressTemplateModel.version)
            .where(ProgressTemplateModel.catalog_id == catalog_id)
            .distinct()
            .order_by(ProgressTemplateModel.version)
        ).all()
        return tuple(versions)

    def load_catalog(self, catalog_id: str, version: int | None = None) -> MilestoneCatalog:
        """
        Rebuild a full ``MilestoneCatalog`` from stored rows.

        Aliases are not persisted; the result resolves canonical names only.

        Raises:
            CatalogVersionNotFoundError: nothing stored for that version.
            CatalogValidationError: stored rows do not form a valid catalog.
        """
        available = self.available_versions(catalog_id)
        if not available or (version is not None and version not in available):
            raise CatalogVersionNotFoundError(version, available)
        if version is None:
            version = available[-1]

        rows = self.session.scalars(
            select(ProgressTemplateModel)
            .where(
                ProgressTemplateModel.catalog_id == catalog_id,
                ProgressTemplateModel.version == version,
            )
            .order_by(ProgressTemplateModel.component_type)
        ).all()

        system: list[MilestoneTemplate] = []
        overrides: list[MilestoneTemplate] = []
        for row in rows:
            template = MilestoneTemplate(
                component_type=row.component_type,
                milestones=definitions_from_json(row.milestones),
                workflow_type=row.workflow_type,
                project_id=row.project_id,
            )
            (overrides if row.project_id is not None else system).append(template)

        return MilestoneCatalog(
            catalog_id=catalog_id,
            version=version,
            templates=system,
            project_templates=overrides,
        )
