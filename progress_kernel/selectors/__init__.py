"""Read-only query selectors returning frozen domain snapshots."""

from progress_kernel.selectors.base import BaseSelector
from progress_kernel.selectors.component_selector import (
    ComponentFilters,
    ComponentSelector,
    component_from_model,
)
from progress_kernel.selectors.dimension_selector import DimensionMetadata, DimensionSelector
from progress_kernel.selectors.milestone_event_selector import (
    MilestoneEventSelector,
    event_from_model,
)
from progress_kernel.selectors.template_selector import TemplateSelector

__all__ = [
    "BaseSelector",
    "ComponentFilters",
    "ComponentSelector",
    "component_from_model",
    "DimensionMetadata",
    "DimensionSelector",
    "MilestoneEventSelector",
    "event_from_model",
    "TemplateSelector",
]
