"""
Module: causation_engines.rates
Responsibility:
    Day-count, rate-to-period conversion and accrual window arithmetic for
    the causation calculators.

Architecture position:
    Engines -- pure calculation layer, zero I/O.  Imports only kernel
    domain terms and money helpers.

Invariants enforced:
    - Decimal-only arithmetic.  Fractional powers use Decimal ** Decimal
      under a 28-digit context; results are never rounded here, only the
      money amount they produce is (via round_money).
    - A checkpoint date that already covers the process date always yields
      "no window" (the idempotency skip).

Failure modes:
    - ValueError on a negative day interval.
"""

from __future__ import annotations

import calendar
from dataclasses import dataclass
from datetime import date, timedelta
from decimal import Decimal

from causation_kernel.db.types import round_money, to_decimal
from causation_kernel.domain.terms import AccrualMethod, DayCountConvention, RateType

ONE = Decimal("1")
HUNDRED = Decimal("100")
DAYS_IN_MONTH_BASE = Decimal("30")

_YEAR_BASE_DAYS: dict[DayCountConvention, Decimal] = {
    DayCountConvention.THIRTY_360: Decimal("360"),
    DayCountConvention.ACTUAL_360: Decimal("360"),
    DayCountConvention.ACTUAL_365: Decimal("365"),
    DayCountConvention.ACTUAL_ACTUAL: Decimal("365.25"),
}


def year_base_days(convention: DayCountConvention | str | None) -> Decimal:
    """Days in the conventional year; unknown conventions use 360."""
    if convention is None:
        return Decimal("360")
    try:
        return _YEAR_BASE_DAYS[DayCountConvention(convention)]
    except ValueError:
        return Decimal("360")


def _coerce_rate_type(rate_type: RateType | str | None) -> RateType:
    if rate_type is None:
        return RateType.NOMINAL_ANNUAL
    try:
        return RateType(rate_type)
    except ValueError:
        return RateType.NOMINAL_ANNUAL


def period_rate(
    rate_percent: Decimal | int | str,
    days_interval: int,
    rate_type: RateType | str | None = RateType.NOMINAL_ANNUAL,
    convention: DayCountConvention | str | None = DayCountConvention.ACTUAL_360,
) -> Decimal:
    """
    Convert a configured rate percent into the rate for ``days_interval`` days.

    EFFECTIVE_ANNUAL    (1 + r) ** (days / year_base) - 1
    EFFECTIVE_MONTHLY   (1 + r) ** (days / 30) - 1
    NOMINAL_MONTHLY,
    MONTHLY_FLAT        r * days / 30
    NOMINAL_ANNUAL      r * days / year_base   (default)

    ``r`` is ``rate_percent / 100``.  A zero rate returns zero.
    """
    if days_interval < 0:
        raise ValueError(f"days_interval must be >= 0, got {days_interval}")

    rate = to_decimal(rate_percent) / HUNDRED
    if rate == 0:
        return Decimal("0")

    days = Decimal(days_interval)
    month_fraction = days / DAYS_IN_MONTH_BASE
    year_fraction = days / year_base_days(convention)

    kind = _coerce_rate_type(rate_type)
    if kind is RateType.EFFECTIVE_ANNUAL:
        return (ONE + rate) ** year_fraction - ONE
    if kind is RateType.EFFECTIVE_MONTHLY:
        return (ONE + rate) ** month_fraction - ONE
    if kind in (RateType.NOMINAL_MONTHLY, RateType.MONTHLY_FLAT):
        return rate * month_fraction
    return rate * year_fraction


def accrue(base: Decimal, rate: Decimal) -> Decimal:
    """Money amount for ``base`` at ``rate`` (rounded with round_money)."""
    return round_money(base * rate)


# ---------------------------------------------------------------------------
# Calendar helpers
# ---------------------------------------------------------------------------


def is_end_of_month(value: date) -> bool:
    return value.day == calendar.monthrange(value.year, value.month)[1]


def same_year_month(a: date, b: date) -> bool:
    return a.year == b.year and a.month == b.month


def start_of_month(value: date) -> date:
    return value.replace(day=1)


def days_past_due(due_date: date, as_of: date) -> int:
    """Calendar days ``as_of`` is past ``due_date``; 0 when not yet due."""
    return max(0, (as_of - due_date).days)


@dataclass(frozen=True)
class AccrualWindow:
    """Inclusive date range a charge covers, and its day count (>= 1)."""

    start: date
    end: date
    days: int


def accrual_window(
    method: AccrualMethod | str,
    process_date: date,
    checkpoint: date | None,
) -> AccrualWindow | None:
    """
    Range to accrue for a loan, or None when nothing is due.

    DAILY: skipped when the checkpoint already reached ``process_date``;
        otherwise starts the day after the checkpoint (or on
        ``process_date`` for a first accrual).
    MONTHLY: only on the last calendar day of a month, and not when the
        checkpoint already sits in that month; starts at the later of the
        first of the month and the day after the checkpoint.
    """
    if AccrualMethod(method) is AccrualMethod.MONTHLY:
        if not is_end_of_month(process_date):
            return None
        if checkpoint is not None and same_year_month(checkpoint, process_date):
            return None
        month_start = start_of_month(process_date)
        start = (
            max(month_start, checkpoint + timedelta(days=1))
            if checkpoint is not None
            else month_start
        )
    else:
        if checkpoint is not None and checkpoint >= process_date:
            return None
        start = checkpoint + timedelta(days=1) if checkpoint is not None else process_date

    if start > process_date:
        return None
    days = max(1, (process_date - start).days + 1)
    return AccrualWindow(start=start, end=process_date, days=days)
