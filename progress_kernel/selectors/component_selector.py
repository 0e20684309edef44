"""
ComponentSelector -- component snapshots for the calculation engines.

Loads components (with their field-weld welder assignment) and converts
them to frozen ``Component`` values.
"""

from dataclasses import dataclass, field
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import selectinload

from progress_kernel.domain.values import Component, Dimension, dimension_key_fn
from progress_kernel.exceptions import ComponentNotFoundError
from progress_kernel.models.component import ComponentModel
from progress_kernel.selectors.base import BaseSelector


@dataclass(frozen=True)
class ComponentFilters:
    """
    Narrow a component fetch.

    ``dimension`` + ``dimension_value`` restricts to one dimension key;
    ``dimension_value=None`` with a dimension selects the unassigned ones.
    """

    component_types: frozenset[str] = field(default_factory=frozenset)
    include_retired: bool = False
    dimension: Dimension | None = None
    dimension_value: UUID | None = None
    component_ids: frozenset[UUID] = field(default_factory=frozenset)


def component_from_model(model: ComponentModel) -> Component:
    """Freeze an ORM row into a domain snapshot."""
    return Component(
        id=model.id,
        project_id=model.project_id,
        component_type=model.component_type,
        current_milestones=dict(model.current_milestones or {}),
        percent_complete=model.percent_complete,
        budgeted_manhours=model.budgeted_manhours,
        is_retired=model.is_retired,
        identity_key=dict(model.identity_key or {}),
        attributes=dict(model.attributes or {}),
        area_id=model.area_id,
        system_id=model.system_id,
        test_package_id=model.test_package_id,
        drawing_id=model.drawing_id,
        welder_id=model.welder_id,
        template_version=model.template_version,
        created_by=model.created_by_id,
        created_at=model.created_at,
        updated_at=model.updated_at,
    )


class ComponentSelector(BaseSelector[ComponentModel]):
    """Read access to components."""

    def get(self, component_id: UUID) -> Component:
        """
        One component by id.

        Raises:
            ComponentNotFoundError: if it does not exist.
        """
        return component_from_model(self.get_model(component_id))

    def get_model(self, component_id: UUID) -> ComponentModel:
        model = self.session.get(ComponentModel, component_id)
        if model is None:
            raise ComponentNotFoundError(str(component_id))
        return model

    def fetch_components(
        self,
        project_id: UUID,
        filters: ComponentFilters | None = None,
    ) -> list[Component]:
        """Components of a project, ordered by creation then id."""
        filters = filters or ComponentFilters()

        stmt = (
            select(ComponentModel)
            .where(ComponentModel.project_id == project_id)
            .options(selectinload(ComponentModel.field_weld))
            .order_by(ComponentModel.created_at, ComponentModel.id)
        )
        if not filters.include_retired:
            stmt = stmt.where(ComponentModel.is_retired.is_(False))
        if filters.component_types:
            stmt = stmt.where(ComponentModel.component_type.in_(sorted(filters.component_types)))
        if filters.component_ids:
            stmt = stmt.where(ComponentModel.id.in_(list(filters.component_ids)))
        if filters.dimension is not None and filters.dimension != Dimension.WELDER:
            column = {
                Dimension.AREA: ComponentModel.area_id,
                Dimension.SYSTEM: ComponentModel.system_id,
                Dimension.TEST_PACKAGE: ComponentModel.test_package_id,
                Dimension.DRAWING: ComponentModel.drawing_id,
                Dimension.PROJECT: ComponentModel.project_id,
            }[filters.dimension]
            if filters.dimension_value is None:
                stmt = stmt.where(column.is_(None))
            else:
                stmt = stmt.where(column == filters.dimension_value)

        components = [component_from_model(m) for m in self.session.scalars(stmt)]

        # Welder lives on the weld detail row; filter after loading.
        if filters.dimension == Dimension.WELDER:
            key = dimension_key_fn(Dimension.WELDER)
            components = [c for c in components if key(c) == filters.dimension_value]
        return components
