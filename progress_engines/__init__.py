"""
Module: progress_engines
Responsibility:
    Package entrypoint that re-exports the public symbols of the pure
    calculation engines.  This is the import surface for
    ``progress_services``.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    May only import progress_kernel domain types (and sibling engines).
    MUST NOT import progress_config or progress_services.

Invariants enforced:
    - Purity: engines never read the clock.  Time windows are parameters.
    - Decimal-only arithmetic for percentages and manhours.
    - Determinism: identical inputs and catalog give identical outputs.
    - The catalog is always an explicit argument.

Failure modes:
    - Configuration errors (``MilestoneTemplateNotFoundError``) propagate.
      Everything else about a component's data degrades to warnings.

Audit relevance:
    Top-level engine operations are wrapped by ``@traced_engine`` (see
    ``progress_engines.tracer``) and emit PROGRESS_ENGINE_TRACE records with
    engine name, version, input fingerprint and duration.  Bulk paths
    (per-component calculation inside an aggregation) are not traced
    individually.

Usage:
    from progress_engines.percent_complete import PercentCompleteCalculator
    from progress_engines.earned_manhours import EarnedManhoursAggregator
    from progress_engines.delta import DeltaMode, MilestoneDeltaEngine
    from progress_engines.reconciliation import ConsistencyAuditor
"""

from progress_kernel.logging_config import get_logger

logger = get_logger("engines")

from progress_engines.budget_distribution import (
    BudgetDistributionEngine,
    BudgetLine,
    DistributionResult,
    ParsedSize,
    WeightBasis,
    WeightResult,
    calculate_weight,
    parse_size,
)
from progress_engines.delta import (
    ChainGap,
    ComponentDelta,
    DeltaMode,
    DeltaResult,
    DimensionDelta,
    EventDelta,
    MilestoneDeltaEngine,
    ReplayResult,
)
from progress_engines.earned_manhours import (
    AggregationResult,
    CategoryRollupMismatch,
    DimensionTotals,
    EarnedManhoursAggregator,
    PercentSource,
)
from progress_engines.normalizer import (
    MilestoneValueNormalizer,
    NormalizedValue,
    normalize,
)
from progress_engines.percent_complete import (
    MilestoneContribution,
    PercentCompleteCalculator,
    PercentCompleteResult,
    calculate_percent_complete,
)
from progress_engines.reconciliation import (
    AuditReport,
    AuditSnapshot,
    AuditStatus,
    CheckSeverity,
    ClassificationGap,
    ConsistencyAuditor,
    Discrepancy,
    DiscrepancyKind,
)
from progress_engines.tracer import compute_input_fingerprint, traced_engine

__all__ = [
    # Normalizer
    "MilestoneValueNormalizer",
    "NormalizedValue",
    "normalize",
    # Percent complete
    "MilestoneContribution",
    "PercentCompleteCalculator",
    "PercentCompleteResult",
    "calculate_percent_complete",
    # Earned manhours
    "AggregationResult",
    "CategoryRollupMismatch",
    "DimensionTotals",
    "EarnedManhoursAggregator",
    "PercentSource",
    # Delta
    "ChainGap",
    "ComponentDelta",
    "DeltaMode",
    "DeltaResult",
    "DimensionDelta",
    "EventDelta",
    "MilestoneDeltaEngine",
    "ReplayResult",
    # Budget distribution
    "BudgetDistributionEngine",
    "BudgetLine",
    "DistributionResult",
    "ParsedSize",
    "WeightBasis",
    "WeightResult",
    "calculate_weight",
    "parse_size",
    # Reconciliation
    "AuditReport",
    "AuditSnapshot",
    "AuditStatus",
    "CheckSeverity",
    "ClassificationGap",
    "ConsistencyAuditor",
    "Discrepancy",
    "DiscrepancyKind",
    # Tracing
    "compute_input_fingerprint",
    "traced_engine",
]
