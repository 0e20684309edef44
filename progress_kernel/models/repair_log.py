"""
Module: progress_kernel.models.repair_log
Responsibility: Record of every explicit repair of a stored percent-complete.
Architecture position: Kernel > Models.  May import from db/base.py only.

Audits never write.  When a human decides to fix drift found by an audit,
the repair service rewrites the stored cache and leaves one row here per
component, with the values before and after.
"""

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import Index, String
from sqlalchemy.orm import Mapped, mapped_column

from progress_kernel.db.base import Base, UTCDateTime, UUIDString


class ProgressRepairLogModel(Base):
    """One component's stored percent rewritten by a repair."""

    __tablename__ = "progress_repair_log"

    __table_args__ = (
        Index("idx_repair_log_component", "component_id"),
        Index("idx_repair_log_batch", "repair_batch_id"),
    )

    repair_batch_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    component_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    project_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    actor_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    reason: Mapped[str] = mapped_column(String(500), nullable=False)

    # Audit run whose findings prompted the repair, if any.
    audit_run_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    old_percent: Mapped[Decimal] = mapped_column(nullable=False)

    new_percent: Mapped[Decimal] = mapped_column(nullable=False)

    catalog_version: Mapped[int] = mapped_column(nullable=False)

    repaired_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)
