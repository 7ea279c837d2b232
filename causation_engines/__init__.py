"""
Module: causation_engines
Responsibility:
    Pure calculation layer for the causation engine: rate and day-count
    math, accrual windows, allocation, billing-concept pricing and
    late-interest rule selection.

Architecture position:
    Engines -- zero I/O.  May import causation_kernel.db.types and
    causation_kernel.domain only.  MUST NOT import causation_batch.

Invariants enforced:
    - Engines never read the clock; dates are parameters.
    - Decimal-only arithmetic for money.
    - Determinism: identical inputs always produce identical outputs.
"""

from causation_engines.allocation import (
    PercentageLine,
    allocate_by_percentage,
    allocate_by_weight,
)
from causation_engines.billing import (
    PricingTerms,
    TierRule,
    calculate_concept_amount,
    round_by_mode,
    select_tier,
)
from causation_engines.late_rules import LateRule, pick_late_rule, rules_in_force
from causation_engines.rates import (
    AccrualWindow,
    accrual_window,
    accrue,
    days_past_due,
    is_end_of_month,
    period_rate,
    year_base_days,
)

__all__ = [
    "AccrualWindow",
    "LateRule",
    "PercentageLine",
    "PricingTerms",
    "TierRule",
    "accrual_window",
    "accrue",
    "allocate_by_percentage",
    "allocate_by_weight",
    "calculate_concept_amount",
    "days_past_due",
    "is_end_of_month",
    "period_rate",
    "pick_late_rule",
    "round_by_mode",
    "rules_in_force",
    "select_tier",
    "year_base_days",
]
