"""
Module: causation_engines.billing
Responsibility:
    Amount math for billing concepts: rounding by mode, base selection,
    fixed / percentage / tiered calc methods, min-max clamping, and tier
    selection among a concept's pricing rules.

Architecture position:
    Engines -- pure calculation layer, zero I/O.

Invariants enforced:
    - The final amount always passes through round_money() after the
      concept's own rounding mode, so it is a valid two-decimal money value.
    - min/max clamps only apply when configured with a positive value.
    - Rounding decimals are clamped to 0..6.

Failure modes:
    - None raised; a missing base or rate yields zero (the calculator then
      drops the charge as not chargeable).
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from datetime import date
from decimal import ROUND_CEILING, ROUND_FLOOR, ROUND_HALF_UP, Decimal

from causation_kernel.db.types import ZERO, round_money, to_decimal
from causation_kernel.domain.terms import (
    BaseAmountKind,
    CalcMethod,
    RangeMetric,
    RoundingMode,
)
from causation_engines.tracer import traced_engine

HUNDRED = Decimal("100")
MAX_ROUNDING_DECIMALS = 6

_ROUNDING_BY_MODE = {
    RoundingMode.NEAREST: ROUND_HALF_UP,
    RoundingMode.UP: ROUND_CEILING,
    RoundingMode.DOWN: ROUND_FLOOR,
}


def round_by_mode(
    value: Decimal,
    mode: RoundingMode | str = RoundingMode.NEAREST,
    decimals: int | None = 2,
) -> Decimal:
    """Round ``value`` to ``decimals`` places (clamped 0..6) toward ``mode``."""
    places = 2 if decimals is None else max(0, min(MAX_ROUNDING_DECIMALS, int(decimals)))
    return round_money(value, places, _ROUNDING_BY_MODE[RoundingMode(mode)])


@dataclass(frozen=True)
class PricingTerms:
    """Pricing fields of a concept rule or a loan's snapshot of one."""

    calc_method: CalcMethod
    base_amount: BaseAmountKind | None = None
    rate: Decimal | None = None
    amount: Decimal | None = None
    min_amount: Decimal | None = None
    max_amount: Decimal | None = None
    rounding_mode: RoundingMode = RoundingMode.NEAREST
    rounding_decimals: int = 2


@dataclass(frozen=True)
class TierRule:
    """A concept rule as a tier candidate."""

    rule_id: int
    terms: PricingTerms
    range_metric: RangeMetric | None = None
    value_from: Decimal | None = None
    value_to: Decimal | None = None
    effective_from: date | None = None
    effective_to: date | None = None
    priority: int = 0
    is_active: bool = True

    def is_effective(self, as_of: date) -> bool:
        if not self.is_active:
            return False
        if self.effective_from is not None and as_of < self.effective_from:
            return False
        if self.effective_to is not None and as_of > self.effective_to:
            return False
        return True

    def contains(self, value: Decimal) -> bool:
        if self.value_from is not None and value < self.value_from:
            return False
        if self.value_to is not None and value > self.value_to:
            return False
        return True


def select_tier(
    rules: Sequence[TierRule],
    metric_values: Mapping[RangeMetric, Decimal],
    as_of: date,
) -> TierRule | None:
    """
    Highest-priority effective rule whose range contains its metric value.

    Rules without a range metric match any value.  Ties on priority go to
    the higher ``value_from`` (the narrower, later band), then higher id.
    """
    candidates = []
    for rule in rules:
        if not rule.is_effective(as_of):
            continue
        if rule.range_metric is not None:
            value = metric_values.get(RangeMetric(rule.range_metric))
            if value is None or not rule.contains(value):
                continue
        candidates.append(rule)

    if not candidates:
        return None
    return max(
        candidates,
        key=lambda r: (r.priority, r.value_from if r.value_from is not None else ZERO, r.rule_id),
    )


@traced_engine("billing_concept", "1.0")
def calculate_concept_amount(
    terms: PricingTerms,
    base_values: Mapping[BaseAmountKind, Decimal],
) -> Decimal:
    """
    Amount of one billing concept occurrence.

    FIXED_AMOUNT / TIERED_FIXED_AMOUNT use ``amount``; PERCENTAGE /
    TIERED_PERCENTAGE use ``base * rate / 100`` where the base is picked
    from ``base_values`` by ``terms.base_amount``.
    """
    method = CalcMethod(terms.calc_method)
    if method in (CalcMethod.FIXED_AMOUNT, CalcMethod.TIERED_FIXED_AMOUNT):
        calculated = to_decimal(terms.amount)
    else:
        base = ZERO
        if terms.base_amount is not None:
            base = to_decimal(base_values.get(BaseAmountKind(terms.base_amount)))
        calculated = base * to_decimal(terms.rate) / HUNDRED

    min_amount = to_decimal(terms.min_amount)
    max_amount = to_decimal(terms.max_amount)
    if min_amount > ZERO:
        calculated = max(calculated, min_amount)
    if max_amount > ZERO:
        calculated = min(calculated, max_amount)

    rounded = round_by_mode(calculated, terms.rounding_mode, terms.rounding_decimals)
    return round_money(rounded)
