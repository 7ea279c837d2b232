"""
Module: causation_engines.late_rules
Responsibility:
    Selection of the late-interest rule that applies to a days-past-due
    value, and filtering of a product's rule table down to the rules in
    force on a date.

Architecture position:
    Engines -- pure calculation layer, zero I/O.

Invariants enforced:
    - Ordering is total and deterministic: priority desc, days_from desc,
      rule id desc.
    - ``days_to`` None means open-ended.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from datetime import date
from decimal import Decimal


@dataclass(frozen=True)
class LateRule:
    rule_id: int
    credit_product_id: int
    category_code: str
    days_from: int
    days_to: int | None
    late_factor: Decimal
    priority: int = 0
    effective_from: date | None = None
    effective_to: date | None = None
    is_active: bool = True

    def covers(self, days_past_due: int) -> bool:
        if days_past_due < self.days_from:
            return False
        return self.days_to is None or days_past_due <= self.days_to

    def in_force(self, as_of: date) -> bool:
        if not self.is_active:
            return False
        if self.effective_from is not None and self.effective_from > as_of:
            return False
        if self.effective_to is not None and self.effective_to < as_of:
            return False
        return True


def _sort_key(rule: LateRule) -> tuple[int, int, int]:
    return (rule.priority, rule.days_from, rule.rule_id)


def rules_in_force(rules: Iterable[LateRule], as_of: date) -> list[LateRule]:
    """Rules active on ``as_of``, in pick order."""
    return sorted(
        (rule for rule in rules if rule.in_force(as_of)),
        key=_sort_key,
        reverse=True,
    )


def pick_late_rule(rules: Sequence[LateRule], days_past_due: int) -> LateRule | None:
    """First rule in pick order whose band contains ``days_past_due``."""
    for rule in sorted(rules, key=_sort_key, reverse=True):
        if rule.covers(days_past_due):
            return rule
    return None
