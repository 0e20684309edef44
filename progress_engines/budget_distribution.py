"""
Module: progress_engines.budget_distribution
Responsibility:
    Distribute a project's total manhour budget over its components in
    proportion to a size-derived weight.

Architecture position:
    Engines -- pure calculation layer, zero I/O.

Weights:
    standard component          diameter ** 1.5
    reducer ("2X4")             ((d1 + d2) / 2) ** 1.5
    pipe / threaded pipe        diameter ** 1.5 * linear_feet * 0.1
    no usable size              0.5 (1.0 for threaded pipe)

    Aggregate pipe components (identity key carries ``pipe_id``) read
    ``size`` and ``total_linear_feet`` from their attributes.

Sizes accept integers, decimals, fractions ("3/4"), mixed numbers
("1 1/2", "1-1/2"), inch marks ('2"'), reducers ("2 X 4") and the words
HALF and NOSIZE.

Invariants enforced:
    - Conservation: allocated amounts sum exactly to the total budget; the
      rounding residual goes to the last component.
    - Determinism: components are allocated in input order.

Failure modes:
    - ``ZeroDistributionWeightError`` when no component carries weight.
"""

from __future__ import annotations

import re
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from decimal import ROUND_HALF_UP, Decimal
from enum import Enum
from typing import Any
from uuid import UUID

from progress_engines.tracer import traced_engine
from progress_kernel.domain.values import ZERO, Component, to_decimal
from progress_kernel.exceptions import ZeroDistributionWeightError
from progress_kernel.logging_config import get_logger

logger = get_logger("engines.budget_distribution")

SIZE_EXPONENT = Decimal("1.5")
LINEAR_FEET_FACTOR = Decimal("0.1")
FALLBACK_WEIGHT = Decimal("0.5")
THREADED_FALLBACK_WEIGHT = Decimal("1.0")

_MIXED_NUMBER = re.compile(r"^(\d+)[\s-]+(\d+)/(\d+)$")
_FRACTION = re.compile(r"^(\d+(?:\.\d+)?)/(\d+(?:\.\d+)?)$")
_NUMBER = re.compile(r"^\d+(?:\.\d+)?$|^\.\d+$")


class WeightBasis(str, Enum):
    """Where a component's distribution weight came from."""

    DIMENSION = "dimension"
    LINEAR_FEET = "linear_feet"
    FIXED = "fixed"


@dataclass(frozen=True)
class ParsedSize:
    """A parsed nominal size.  ``diameter`` is None when unusable."""

    raw: str
    diameter: Decimal | None
    is_reducer: bool = False
    second_diameter: Decimal | None = None


def _parse_single(text: str) -> Decimal | None:
    text = text.strip()
    if text == "HALF":
        return Decimal("0.5")

    match = _MIXED_NUMBER.match(text)
    if match:
        whole, num, den = (Decimal(g) for g in match.groups())
        if den == ZERO:
            return None
        return whole + num / den

    match = _FRACTION.match(text)
    if match:
        num, den = (Decimal(g) for g in match.groups())
        if den == ZERO:
            return None
        return num / den

    if _NUMBER.match(text):
        return Decimal(text)
    return None


def parse_size(raw: Any) -> ParsedSize:
    """Parse a nominal pipe size.  Never raises."""
    if raw is None or isinstance(raw, bool):
        return ParsedSize(raw="" if raw is None else str(raw), diameter=None)
    if isinstance(raw, (int, float, Decimal)):
        try:
            value = to_decimal(raw)
        except ValueError:
            return ParsedSize(raw=str(raw), diameter=None)
        return ParsedSize(raw=str(raw), diameter=value if value.is_finite() and value > ZERO else None)
    if not isinstance(raw, str):
        return ParsedSize(raw=str(raw), diameter=None)

    text = raw.strip().upper().replace('"', "")
    text = re.sub(r"\s*/\s*", "/", text)
    if not text or text == "NOSIZE":
        return ParsedSize(raw=raw, diameter=None)

    if "X" in text:
        parts = [p.strip() for p in text.split("X")]
        if len(parts) != 2 or not all(parts):
            return ParsedSize(raw=raw, diameter=None)
        first, second = (_parse_single(p) for p in parts)
        if first is None or second is None or first <= ZERO or second <= ZERO:
            return ParsedSize(raw=raw, diameter=None)
        return ParsedSize(
            raw=raw,
            diameter=(first + second) / Decimal(2),
            is_reducer=True,
            second_diameter=second,
        )

    diameter = _parse_single(text)
    if diameter is None or diameter <= ZERO:
        return ParsedSize(raw=raw, diameter=None)
    return ParsedSize(raw=raw, diameter=diameter)


@dataclass(frozen=True)
class WeightResult:
    weight: Decimal
    basis: WeightBasis
    metadata: Mapping[str, Any] = field(default_factory=dict)


def _uses_linear_feet(component_type: str) -> bool:
    upper = component_type.upper()
    return "THREADED" in upper or upper == "PIPE"


def _fallback(component_type: str) -> Decimal:
    return THREADED_FALLBACK_WEIGHT if "THREADED" in component_type.upper() else FALLBACK_WEIGHT


def _parse_linear_feet(raw: Any) -> Decimal | None:
    if raw is None or isinstance(raw, bool):
        return None
    try:
        value = to_decimal(raw)
    except ValueError:
        return None
    return value if value.is_finite() else None


def _effective_key(identity_key: Mapping[str, Any], attributes: Mapping[str, Any] | None) -> dict[str, Any]:
    effective = dict(identity_key)
    if "pipe_id" in identity_key and attributes:
        if "size" in attributes:
            effective["size"] = attributes["size"]
        if "total_linear_feet" in attributes:
            effective["linear_feet"] = attributes["total_linear_feet"]
    return effective


def calculate_weight(
    component_type: str,
    identity_key: Mapping[str, Any],
    attributes: Mapping[str, Any] | None = None,
) -> WeightResult:
    """Distribution weight of one component."""
    component_type = str(getattr(component_type, "value", component_type))
    key = _effective_key(identity_key, attributes)
    fallback = _fallback(component_type)

    if "size" not in key and "SIZE" not in key:
        return WeightResult(fallback, WeightBasis.FIXED, {"reason": "no_size_field"})

    raw_size = key["size"] if "size" in key else key["SIZE"]
    parsed = parse_size(raw_size)
    if parsed.diameter is None:
        return WeightResult(fallback, WeightBasis.FIXED, {"reason": "unparseable_size", "size": raw_size})

    diameter = parsed.diameter
    size_weight = diameter ** SIZE_EXPONENT

    raw_feet = key.get("linear_feet", key.get("LINEAR_FEET"))
    if _uses_linear_feet(component_type) and raw_feet is not None:
        feet = _parse_linear_feet(raw_feet)
        if feet is None or feet < ZERO:
            return WeightResult(
                size_weight,
                WeightBasis.DIMENSION,
                {"reason": "invalid_linear_feet", "linear_feet": raw_feet, "diameter": diameter},
            )
        return WeightResult(
            size_weight * feet * LINEAR_FEET_FACTOR,
            WeightBasis.LINEAR_FEET,
            {"diameter": diameter, "linear_feet": feet},
        )

    if parsed.is_reducer:
        metadata = {
            "diameter1": diameter * 2 - parsed.second_diameter,
            "diameter2": parsed.second_diameter,
            "average_diameter": diameter,
        }
    else:
        metadata = {"diameter": diameter}
    return WeightResult(size_weight, WeightBasis.DIMENSION, metadata)


@dataclass(frozen=True)
class BudgetLine:
    """Budget allocated to one component."""

    component_id: UUID
    weight: Decimal
    basis: WeightBasis
    allocated_mh: Decimal


@dataclass(frozen=True)
class DistributionResult:
    """
    Outcome of one distribution run.

    Guarantees:
        - ``sum(line.allocated_mh) == total_budget``.
    """

    total_budget: Decimal
    total_weight: Decimal
    lines: tuple[BudgetLine, ...]
    rounding_adjustment: Decimal

    @property
    def allocations(self) -> dict[UUID, Decimal]:
        return {line.component_id: line.allocated_mh for line in self.lines}


class BudgetDistributionEngine:
    """
    Proportional manhour distribution.

    Contract:
        Pure; returns allocations, never writes them.
    Guarantees:
        - Retired components receive nothing and are not listed.
        - Allocations are rounded ROUND_HALF_UP to ``decimal_places``
          except the last, which absorbs the residual.
    """

    @traced_engine("budget_distribution", "1.0", fingerprint_fields=("total_budget", "components"))
    def distribute(
        self,
        total_budget: Decimal,
        components: Sequence[Component],
        decimal_places: int = 2,
    ) -> DistributionResult:
        total_budget = to_decimal(total_budget)
        active = [c for c in components if not c.is_retired]
        weights = [
            calculate_weight(c.component_type, c.identity_key, c.attributes) for c in active
        ]
        total_weight = sum((w.weight for w in weights), ZERO)
        if not active or total_weight <= ZERO:
            raise ZeroDistributionWeightError(len(active))

        quantum = Decimal(10) ** -decimal_places
        lines: list[BudgetLine] = []
        allocated_so_far = ZERO
        rounding_adjustment = ZERO
        last = len(active) - 1

        for i, (component, weight) in enumerate(zip(active, weights)):
            exact = total_budget * weight.weight / total_weight
            if i == last:
                amount = total_budget - allocated_so_far
                rounding_adjustment = amount - exact.quantize(quantum, rounding=ROUND_HALF_UP)
            else:
                amount = exact.quantize(quantum, rounding=ROUND_HALF_UP)
                allocated_so_far += amount
            lines.append(
                BudgetLine(
                    component_id=component.id,
                    weight=weight.weight,
                    basis=weight.basis,
                    allocated_mh=amount,
                )
            )

        fallback_count = sum(1 for w in weights if w.basis == WeightBasis.FIXED)
        if fallback_count:
            logger.info(
                "budget_distribution_fallback_weights",
                extra={"fallback_count": fallback_count, "component_count": len(active)},
            )

        return DistributionResult(
            total_budget=total_budget,
            total_weight=total_weight,
            lines=tuple(lines),
            rounding_adjustment=rounding_adjustment,
        )
