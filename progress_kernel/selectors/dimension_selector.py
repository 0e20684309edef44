"""
DimensionSelector -- labels for dimension keys.

Aggregation keys are ids; reports need names.  This selector returns every
area, system, test package, drawing and welder of a project in one
``DimensionMetadata`` value.
"""

from collections.abc import Mapping
from dataclasses import dataclass, field
from uuid import UUID

from sqlalchemy import select

from progress_kernel.domain.values import Dimension
from progress_kernel.models.dimensions import (
    AreaModel,
    DrawingModel,
    SystemModel,
    TestPackageModel,
    WelderModel,
)
from progress_kernel.selectors.base import BaseSelector

UNASSIGNED_LABEL = "(unassigned)"


@dataclass(frozen=True)
class DimensionMetadata:
    """id -> display name, per dimension."""

    project_id: UUID
    labels: Mapping[Dimension, Mapping[UUID, str]] = field(default_factory=dict)

    def label(self, dimension: Dimension, key: UUID | None) -> str:
        if key is None:
            return UNASSIGNED_LABEL
        if dimension == Dimension.PROJECT:
            return str(key)
        return self.labels.get(dimension, {}).get(key, str(key))


class DimensionSelector(BaseSelector):
    """Read access to dimension tables."""

    _MODELS = {
        Dimension.AREA: AreaModel,
        Dimension.SYSTEM: SystemModel,
        Dimension.TEST_PACKAGE: TestPackageModel,
        Dimension.DRAWING: DrawingModel,
    }

    def fetch_dimension_metadata(self, project_id: UUID) -> DimensionMetadata:
        labels: dict[Dimension, dict[UUID, str]] = {}
        for dimension, model in self._MODELS.items():
            rows = self.session.execute(
                select(model.id, model.name).where(model.project_id == project_id)
            )
            labels[dimension] = {row.id: row.name for row in rows}

        welders = self.session.execute(
            select(WelderModel.id, WelderModel.stencil, WelderModel.name).where(
                WelderModel.project_id == project_id
            )
        )
        labels[Dimension.WELDER] = {row.id: f"{row.stencil} {row.name}" for row in welders}

        return DimensionMetadata(project_id=project_id, labels=labels)
