"""
Module: causation_engines.allocation
Responsibility:
    Split a money total across distribution lines (by percentage) or across
    arbitrary items (by weight) so that the parts always sum to the total.

Architecture position:
    Engines -- pure calculation layer, zero I/O.

Invariants enforced:
    - Conservation: sum(parts) == total to the cent.  Every part except the
      last weighted one is rounded with round_money(); that last weighted
      part absorbs the remainder.  Zero-weight parts are exactly zero.
    - Zero total, no lines, or all-zero weights: every part is zero.
    - Deterministic: output order is input order; identical inputs give
      identical outputs.

Failure modes:
    - ValueError on a negative percentage or weight.
"""

from __future__ import annotations

from collections.abc import Callable, Hashable, Sequence
from dataclasses import dataclass
from decimal import Decimal
from typing import TypeVar

from causation_kernel.db.types import ZERO, round_money, to_decimal
from causation_engines.tracer import traced_engine

T = TypeVar("T")
K = TypeVar("K", bound=Hashable)


@dataclass(frozen=True)
class PercentageLine:
    """A distribution line as seen by the allocator."""

    key: Hashable
    percentage: Decimal


def _split(total: Decimal, weights: Sequence[Decimal]) -> list[Decimal]:
    for weight in weights:
        if weight < ZERO:
            raise ValueError(f"Allocation weights must be non-negative, got {weight}")

    if not weights:
        return []
    weight_sum = sum(weights, ZERO)
    if total == ZERO or weight_sum == ZERO:
        return [ZERO for _ in weights]

    parts: list[Decimal] = []
    allocated = ZERO
    # Remainder goes to the last line that carries weight.
    last = max(i for i, weight in enumerate(weights) if weight > ZERO)
    for index, weight in enumerate(weights):
        if index == last:
            part = round_money(total - allocated)
        elif index > last or weight == ZERO:
            part = ZERO
        else:
            part = round_money(total * weight / weight_sum)
        allocated += part
        parts.append(part)

    assert sum(parts, ZERO) == round_money(total), "allocation must conserve the total"
    return parts


@traced_engine("allocation", "1.0", fingerprint_fields=("total",))
def allocate_by_percentage(
    total: Decimal,
    lines: Sequence[PercentageLine],
) -> dict[Hashable, Decimal]:
    """
    Split ``total`` across ``lines`` by percentage.

    With percentages summing to 100 each non-last line receives
    ``round(total * pct / 100)``.  Percentages are normalised by their
    actual sum, so a distribution configured as 50/30 still allocates the
    whole total (62.5% / 37.5%).  Keys must be unique.
    """
    total = round_money(to_decimal(total))
    parts = _split(total, [to_decimal(line.percentage) for line in lines])
    result: dict[Hashable, Decimal] = {}
    for line, part in zip(lines, parts):
        if line.key in result:
            raise ValueError(f"Duplicate allocation key: {line.key!r}")
        result[line.key] = part
    return result


def allocate_by_weight(
    total: Decimal,
    items: Sequence[T],
    weight_fn: Callable[[T], Decimal],
) -> list[tuple[T, Decimal]]:
    """
    Split ``total`` across ``items`` proportionally to ``weight_fn(item)``.

    Used to push a pooled late-interest charge back onto the overdue
    installments that produced it.  Returns ``(item, amount)`` pairs in
    input order.
    """
    total = round_money(to_decimal(total))
    parts = _split(total, [to_decimal(weight_fn(item)) for item in items])
    return list(zip(items, parts))
