"""SQLAlchemy ORM models for the progress schema."""

from progress_kernel.models.component import ComponentModel, FieldWeldDetailModel
from progress_kernel.models.dimensions import (
    AreaModel,
    DrawingModel,
    SystemModel,
    TestPackageModel,
    WelderModel,
)
from progress_kernel.models.milestone_event import MilestoneEventModel
from progress_kernel.models.progress_template import ProgressTemplateModel
from progress_kernel.models.repair_log import ProgressRepairLogModel

__all__ = [
    "ComponentModel",
    "FieldWeldDetailModel",
    "MilestoneEventModel",
    "ProgressTemplateModel",
    "ProgressRepairLogModel",
    "AreaModel",
    "SystemModel",
    "TestPackageModel",
    "DrawingModel",
    "WelderModel",
]
