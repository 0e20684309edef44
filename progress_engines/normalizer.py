"""
Module: progress_engines.normalizer
Responsibility:
    Map a raw stored milestone value to a completion fraction in [0, 1].

Architecture position:
    Engines -- pure calculation layer, zero I/O.

Stored milestone values are heterogeneous: booleans, 0/1, 0/100, numeric
strings, "true"/"false".  This module is the single place that decides
what they mean.

Rules (applied in order):
    1. ``True``/``False`` and the strings "true"/"false" -> 1 / 0.
    2. Numbers and numeric strings are parsed as Decimal.  None, empty or
       non-numeric strings, NaN, infinities and containers are
       UNPARSEABLE -> 0.
    3. Negative -> 0 and above 100 -> 1, both OUT_OF_RANGE.
    4. Above 1 is a percentage and is divided by 100; 0..1 is used as-is.
       A partial milestone stored as exactly 1 therefore means 100%.
    5. Discrete milestones accept only 0 or 1 after scaling; anything in
       between is PARTIAL_DISCRETE_VALUE -> 0.

The normalizer never raises.  Every coercion that loses information
carries a ``CalculationWarning``.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Any

from progress_kernel.domain.values import (
    HUNDRED,
    ONE,
    ZERO,
    CalculationWarning,
    MilestoneKind,
    WarningCode,
)

_TRUE_STRINGS = frozenset({"true"})
_FALSE_STRINGS = frozenset({"false"})


@dataclass(frozen=True)
class NormalizedValue:
    """Completion fraction plus the warning explaining any coercion."""

    fraction: Decimal
    warning: CalculationWarning | None = None

    @property
    def is_complete(self) -> bool:
        return self.fraction == ONE


def _parse_number(raw_value: Any) -> Decimal | None:
    """Raw value -> number on its stored scale, or None if not a number."""
    if isinstance(raw_value, bool):
        return ONE if raw_value else ZERO
    if isinstance(raw_value, (int, float, Decimal)):
        try:
            number = Decimal(str(raw_value))
        except InvalidOperation:
            return None
    elif isinstance(raw_value, str):
        text = raw_value.strip().lower()
        if text in _TRUE_STRINGS:
            return ONE
        if text in _FALSE_STRINGS:
            return ZERO
        try:
            number = Decimal(text)
        except InvalidOperation:
            return None
    else:
        return None
    if not number.is_finite():
        return None
    return number


class MilestoneValueNormalizer:
    """
    Raw milestone value -> fraction in [0, 1].

    Contract:
        Pure and total: every input yields a fraction.
    Guarantees:
        - ``0 <= fraction <= 1``.
        - Discrete milestones yield exactly 0 or 1.
        - At most one warning per value.
    """

    def normalize(
        self,
        raw_value: Any,
        kind: MilestoneKind | str,
        milestone_name: str | None = None,
    ) -> NormalizedValue:
        kind = MilestoneKind(kind)

        number = _parse_number(raw_value)
        if number is None:
            return NormalizedValue(
                ZERO,
                CalculationWarning(
                    code=WarningCode.UNPARSEABLE_VALUE,
                    message=f"Cannot interpret milestone value {raw_value!r}; counted as 0",
                    milestone_name=milestone_name,
                    raw_value=raw_value,
                ),
            )

        warning = None
        if number < ZERO:
            fraction = ZERO
            warning = CalculationWarning(
                code=WarningCode.OUT_OF_RANGE_VALUE,
                message=f"Negative milestone value {raw_value!r}; counted as 0",
                milestone_name=milestone_name,
                raw_value=raw_value,
            )
        elif number > HUNDRED:
            fraction = ONE
            warning = CalculationWarning(
                code=WarningCode.OUT_OF_RANGE_VALUE,
                message=f"Milestone value {raw_value!r} above 100; counted as complete",
                milestone_name=milestone_name,
                raw_value=raw_value,
            )
        elif number > ONE:
            fraction = number / HUNDRED
        else:
            fraction = number

        if kind == MilestoneKind.DISCRETE and fraction not in (ZERO, ONE):
            return NormalizedValue(
                ZERO,
                CalculationWarning(
                    code=WarningCode.PARTIAL_DISCRETE_VALUE,
                    message=(
                        f"Discrete milestone has partial value {raw_value!r}; "
                        f"only 0 or complete is accepted, counted as 0"
                    ),
                    milestone_name=milestone_name,
                    raw_value=raw_value,
                ),
            )

        return NormalizedValue(fraction, warning)


_default_normalizer = MilestoneValueNormalizer()


def normalize(raw_value: Any, kind: MilestoneKind | str) -> Decimal:
    """Fraction only, for callers that do not collect warnings."""
    return _default_normalizer.normalize(raw_value, kind).fraction
