"""
DTOs -- Frozen values exchanged between kernel services and their callers.

Services return these instead of ORM entities so that callers cannot mutate
persistent state by accident.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import Decimal


@dataclass(frozen=True)
class AccountingPeriodInfo:
    id: int
    year: int
    month: int
    is_closed: bool

    @property
    def period_code(self) -> str:
        return f"{self.year:04d}-{self.month:02d}"


@dataclass(frozen=True)
class PortfolioDelta:
    """
    Instruction to move a loan's open balance on a receivable account.

    charge_delta increases the balance, payment_delta decreases it.  Both
    must be non-negative.
    """

    gl_account_id: int
    third_party_id: int
    loan_id: int
    installment_number: int
    due_date: date
    charge_delta: Decimal = Decimal("0")
    payment_delta: Decimal = Decimal("0")

    @property
    def slot(self) -> tuple[int, int, int, int]:
        """Key of the balance row this delta targets."""
        return (
            self.gl_account_id,
            self.third_party_id,
            self.loan_id,
            self.installment_number,
        )
