"""
progress_services.repair_service -- explicit repair of stored percent-complete.

Responsibility:
    Rewrite the cached ``percent_complete`` of named components from their
    current milestone state, leaving one ``progress_repair_log`` row per
    component.

Architecture position:
    Services -- imperative shell.  Never called by the audit path: a human
    (or a tool acting for one) reads an audit report and asks for a repair.

Invariants enforced:
    - Scoped: a repair needs an actor, a reason and at least one component.
    - Milestone state and events are never touched, only the cache.
    - Components whose stored value already matches are left alone and
      not logged.

Failure modes:
    - RepairScopeError for an unscoped request.
    - ComponentNotFoundError for an unknown component id.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from uuid import UUID, uuid4

from sqlalchemy.orm import Session

from progress_config import CompiledCatalog
from progress_engines.percent_complete import PercentCompleteCalculator
from progress_engines.reconciliation import AuditReport
from progress_kernel.domain.clock import Clock, SystemClock
from progress_kernel.exceptions import RepairScopeError
from progress_kernel.logging_config import LogContext, get_logger
from progress_kernel.models.repair_log import ProgressRepairLogModel
from progress_kernel.selectors.component_selector import ComponentSelector, component_from_model

logger = get_logger("services.repair")


@dataclass(frozen=True)
class RepairedComponent:
    component_id: UUID
    old_percent: Decimal
    new_percent: Decimal


@dataclass(frozen=True)
class RepairResult:
    repair_batch_id: UUID
    repaired: tuple[RepairedComponent, ...]
    unchanged: tuple[UUID, ...]

    @property
    def repaired_count(self) -> int:
        return len(self.repaired)


class RepairService:
    """
    Rewrites stored percent-complete for an explicit set of components.

    Contract:
        Flushes but never commits; the caller owns the transaction.
    """

    def __init__(
        self,
        session: Session,
        catalog: CompiledCatalog,
        clock: Clock | None = None,
        calculator: PercentCompleteCalculator | None = None,
    ) -> None:
        self._session = session
        self._compiled = catalog
        self._clock = clock or SystemClock()
        self._calculator = calculator or PercentCompleteCalculator()
        self._components = ComponentSelector(session)
        self._quantum = Decimal(1).scaleb(-catalog.reporting.percent_decimal_places)

    def repair_stored_percent(
        self,
        component_ids: Iterable[UUID],
        actor_id: UUID | None,
        reason: str,
        audit_run_id: UUID | None = None,
    ) -> RepairResult:
        """
        Recompute and store percent-complete for each named component.

        Raises:
            RepairScopeError: no actor, blank reason or no components.
        """
        ids = list(dict.fromkeys(component_ids))
        if actor_id is None:
            raise RepairScopeError("an actor is required")
        if not reason or not reason.strip():
            raise RepairScopeError("a reason is required")
        if not ids:
            raise RepairScopeError("no components named")

        batch_id = uuid4()
        now = self._clock.now()
        repaired: list[RepairedComponent] = []
        unchanged: list[UUID] = []

        with LogContext.bind(actor_id=str(actor_id)):
            for component_id in ids:
                model = self._components.get_model(component_id)
                result = self._calculator.calculate_component(
                    component_from_model(model), self._compiled.catalog
                )
                new_percent = result.percent.quantize(self._quantum, rounding=ROUND_HALF_UP)
                old_percent = model.percent_complete
                if old_percent == new_percent:
                    unchanged.append(component_id)
                    continue

                model.percent_complete = new_percent
                model.updated_by_id = actor_id
                self._session.add(
                    ProgressRepairLogModel(
                        repair_batch_id=batch_id,
                        component_id=component_id,
                        project_id=model.project_id,
                        actor_id=actor_id,
                        reason=reason,
                        audit_run_id=audit_run_id,
                        old_percent=old_percent,
                        new_percent=new_percent,
                        catalog_version=self._compiled.version,
                        repaired_at=now,
                    )
                )
                repaired.append(RepairedComponent(component_id, old_percent, new_percent))
                logger.info(
                    "PROGRESS_REPAIR_APPLIED",
                    extra={
                        "repair_batch_id": str(batch_id),
                        "component_id": str(component_id),
                        "old_percent": old_percent,
                        "new_percent": new_percent,
                        "reason": reason,
                        "audit_run_id": str(audit_run_id) if audit_run_id else None,
                    },
                )
            self._session.flush()

        logger.info(
            "repair_batch_completed",
            extra={
                "repair_batch_id": str(batch_id),
                "repaired_count": len(repaired),
                "unchanged_count": len(unchanged),
            },
        )
        return RepairResult(
            repair_batch_id=batch_id,
            repaired=tuple(repaired),
            unchanged=tuple(unchanged),
        )

    def repair_from_report(
        self,
        report: AuditReport,
        actor_id: UUID | None,
        reason: str,
        audit_run_id: UUID | None = None,
    ) -> RepairResult:
        """Repair every component the report flags with a stored-percent mismatch."""
        return self.repair_stored_percent(
            report.mismatched_component_ids, actor_id, reason, audit_run_id
        )
