"""
progress_services.template_service -- persisted milestone templates.

Responsibility:
    Publish a compiled YAML catalog into ``progress_templates`` and create
    project-specific template overrides at runtime.  ``TemplateSelector``
    reads them back.

Architecture position:
    Services -- imperative shell over the kernel template model.

Invariants enforced:
    - Publishing is idempotent: rows already stored for the same catalog,
      version, type and project are left untouched.
    - An override is validated like any catalog template (weights sum to
      100, unique names, categories present) before it is stored.
    - Overrides only exist for component types with a system template.

Failure modes:
    - CatalogValidationError for an invalid override.
    - MilestoneTemplateNotFoundError when overriding an unknown type.
"""

from __future__ import annotations

from collections.abc import Sequence
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from progress_config import CompiledCatalog
from progress_kernel.domain.catalog import MilestoneTemplate, template_errors
from progress_kernel.domain.values import MilestoneDefinition
from progress_kernel.exceptions import CatalogValidationError
from progress_kernel.logging_config import get_logger
from progress_kernel.models.progress_template import ProgressTemplateModel
from progress_kernel.selectors.template_selector import definitions_to_json

logger = get_logger("services.template")


class TemplateService:
    """Writes milestone templates to the database."""

    def __init__(self, session: Session, catalog: CompiledCatalog) -> None:
        self._session = session
        self._compiled = catalog

    def publish_catalog(self, actor_id: UUID) -> int:
        """
        Store every template of the compiled catalog.

        Returns:
            Number of rows written (0 when already published).
        """
        catalog = self._compiled.catalog
        written = 0
        for template in catalog.templates + catalog.project_templates:
            if self._exists(template.component_type, template.project_id):
                continue
            self._store(template, actor_id)
            written += 1
        self._session.flush()

        logger.info(
            "catalog_published",
            extra={
                "catalog_id": catalog.catalog_id,
                "catalog_version": catalog.version,
                "rows_written": written,
            },
        )
        return written

    def create_project_override(
        self,
        project_id: UUID,
        component_type: str,
        milestones: Sequence[MilestoneDefinition],
        actor_id: UUID,
        workflow_type: str = "discrete",
    ) -> MilestoneTemplate:
        """
        Store a project-specific template for one component type.

        Raises:
            MilestoneTemplateNotFoundError: no system template for the type.
            CatalogValidationError: the override is not a valid template.
        """
        catalog = self._compiled.catalog
        component_type = str(getattr(component_type, "value", component_type))
        catalog.template_for(component_type)

        template = MilestoneTemplate(
            component_type=component_type,
            milestones=tuple(sorted(milestones, key=lambda m: m.order)),
            workflow_type=workflow_type,
            project_id=project_id,
        )
        errors = template_errors(template)
        if self._exists(component_type, project_id):
            errors.append(f"Template {template.label} already exists at version {catalog.version}")
        if errors:
            raise CatalogValidationError(catalog.catalog_id, errors)

        self._store(template, actor_id)
        self._session.flush()
        logger.info(
            "project_override_created",
            extra={
                "project_id": str(project_id),
                "component_type": component_type,
                "catalog_version": catalog.version,
                "milestone_count": len(template.milestones),
            },
        )
        return template

    def _exists(self, component_type: str, project_id: UUID | None) -> bool:
        catalog = self._compiled.catalog
        stmt = select(ProgressTemplateModel.id).where(
            ProgressTemplateModel.catalog_id == catalog.catalog_id,
            ProgressTemplateModel.component_type == component_type,
            ProgressTemplateModel.version == catalog.version,
        )
        if project_id is None:
            stmt = stmt.where(ProgressTemplateModel.project_id.is_(None))
        else:
            stmt = stmt.where(ProgressTemplateModel.project_id == project_id)
        return self._session.scalar(stmt) is not None

    def _store(self, template: MilestoneTemplate, actor_id: UUID) -> None:
        catalog = self._compiled.catalog
        self._session.add(
            ProgressTemplateModel(
                catalog_id=catalog.catalog_id,
                component_type=template.component_type,
                version=catalog.version,
                project_id=template.project_id,
                workflow_type=template.workflow_type,
                milestones=definitions_to_json(template.milestones),
                created_by_id=actor_id,
            )
        )
