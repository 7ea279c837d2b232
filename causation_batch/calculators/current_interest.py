"""
Current interest: contractual interest on the outstanding principal.

The base is the sum of the loan's OPEN capital balance rows.  The rate is
the loan's financing factor, converted to the accrual window with the
product's rate type and day-count convention.  The charge references the
oldest open capital installment.
"""

from __future__ import annotations

from datetime import date

from causation_kernel.db.types import ZERO, is_chargeable, to_decimal
from causation_engines.rates import accrual_window, accrue, period_rate

from causation_batch.cache import ResolvedDistribution
from causation_batch.calculators.base import (
    CalculationContext,
    Charge,
    LoanAccrual,
    open_capital_rows,
    outstanding_principal,
)
from causation_batch.domain.types import ProcessType
from causation_batch.selector import LoanCandidate


class CurrentInterestCalculator:
    """Daily or month-end accrual of contractual interest."""

    @property
    def process_type(self) -> ProcessType:
        return ProcessType.CURRENT_INTEREST

    @property
    def description(self) -> str:
        return "Accrue contractual interest on outstanding principal"

    def resolve_distribution(
        self,
        candidate: LoanCandidate,
        context: CalculationContext,
    ) -> ResolvedDistribution:
        return context.cache.distribution(
            candidate.interest_distribution_id,
            owner=f"interest of loan {candidate.credit_number}",
        )

    def compute_charges(
        self,
        candidate: LoanCandidate,
        checkpoint: date | None,
        context: CalculationContext,
    ) -> LoanAccrual | None:
        accounts = context.cache.product_accounts(
            candidate.credit_product_id, candidate.credit_number
        )

        window = accrual_window(
            candidate.interest_method(), context.process_date, checkpoint
        )
        if window is None:
            return None

        rate_percent = to_decimal(candidate.financing_factor)
        if rate_percent <= ZERO:
            return None

        base = outstanding_principal(
            context.session, candidate.loan_id, accounts.capital_gl_account_id
        )
        if not is_chargeable(base):
            return None

        amount = accrue(
            base,
            period_rate(
                rate_percent,
                window.days,
                candidate.interest_rate_type,
                candidate.interest_day_count_convention,
            ),
        )
        if not is_chargeable(amount):
            return None

        rows = open_capital_rows(
            context.session, candidate.loan_id, accounts.capital_gl_account_id
        )
        reference = rows[0] if rows else None

        charge = Charge(
            amount=amount,
            installment_number=reference.installment_number if reference else 1,
            due_date=reference.due_date if reference else context.process_date,
            description=f"Interest accrual loan {candidate.credit_number}"[:255],
            distribution=self.resolve_distribution(candidate, context),
        )
        return LoanAccrual(charges=(charge,))
