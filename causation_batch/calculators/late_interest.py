"""
Late interest: penalty interest on overdue capital.

Overdue rows are OPEN capital balance rows with a balance above the money
tolerance whose due date is before the process date.  A per product and
category rule table maps days past due to a late rate.

    OLDEST_OVERDUE_INSTALLMENT  one rule, picked with the largest days past
                                due, accrues on the whole overdue balance;
                                the total is split back over the overdue
                                installments by balance.
    EACH_INSTALLMENT            every overdue installment picks its own rule
                                and accrues on its own balance.

The loan posts one charge referencing its oldest overdue installment; the
receivable side is pushed back onto each installment by what it accrued.
A matched rule with a zero rate counts as processed with no charge.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import Decimal

from causation_kernel.db.types import MONEY_TOLERANCE, ZERO, is_chargeable, round_money
from causation_kernel.domain.terms import LateInterestAgeBasis
from causation_kernel.exceptions import (
    LateInterestRuleNotFoundError,
    LateInterestRulesMissingError,
)
from causation_engines.allocation import allocate_by_weight
from causation_engines.late_rules import LateRule, pick_late_rule
from causation_engines.rates import accrual_window, accrue, days_past_due, period_rate

from causation_batch.cache import ResolvedDistribution
from causation_batch.calculators.base import (
    CalculationContext,
    Charge,
    LoanAccrual,
    ReceivableSplit,
    open_capital_rows,
)
from causation_batch.domain.types import ProcessType
from causation_batch.selector import LoanCandidate


@dataclass(frozen=True)
class OverdueInstallment:
    installment_number: int
    due_date: date
    balance: Decimal
    days_past_due: int


def find_overdue(rows, process_date: date) -> list[OverdueInstallment]:
    overdue = []
    for row in rows:
        dpd = days_past_due(row.due_date, process_date)
        if row.balance > MONEY_TOLERANCE and dpd > 0:
            overdue.append(
                OverdueInstallment(
                    installment_number=row.installment_number,
                    due_date=row.due_date,
                    balance=round_money(row.balance),
                    days_past_due=dpd,
                )
            )
    return overdue


class LateInterestCalculator:
    """Late interest under either age-basis policy."""

    @property
    def process_type(self) -> ProcessType:
        return ProcessType.LATE_INTEREST

    @property
    def description(self) -> str:
        return "Accrue late interest on overdue capital installments"

    def resolve_distribution(
        self,
        candidate: LoanCandidate,
        context: CalculationContext,
    ) -> ResolvedDistribution:
        return context.cache.distribution(
            candidate.late_interest_distribution_id,
            owner=f"late interest of loan {candidate.credit_number}",
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
            candidate.late_interest_method(), context.process_date, checkpoint
        )
        if window is None:
            return None

        overdue = find_overdue(
            open_capital_rows(
                context.session, candidate.loan_id, accounts.capital_gl_account_id
            ),
            context.process_date,
        )
        if not overdue:
            return None

        rules = context.cache.late_rules(
            candidate.credit_product_id, candidate.category_code
        )
        if not rules:
            raise LateInterestRulesMissingError(
                candidate.credit_number, candidate.category_code
            )

        if candidate.age_basis() is LateInterestAgeBasis.EACH_INSTALLMENT:
            accrued, zero_rate_only = self._each_installment(
                candidate, overdue, rules, window.days
            )
        else:
            accrued, zero_rate_only = self._oldest_overdue(
                candidate, overdue, rules, window.days
            )

        total = round_money(sum((amount for _, amount in accrued), ZERO))
        if not is_chargeable(total):
            return LoanAccrual.zero_charge() if zero_rate_only else None

        first = overdue[0]
        charge = Charge(
            amount=total,
            installment_number=first.installment_number,
            due_date=first.due_date,
            description=f"Late interest accrual loan {candidate.credit_number}"[:255],
            distribution=self.resolve_distribution(candidate, context),
            receivable_splits=tuple(
                ReceivableSplit(item.installment_number, item.due_date, amount)
                for item, amount in accrued
            ),
        )
        return LoanAccrual(charges=(charge,))

    # -------------------------------------------------------------------------
    # Policies
    # -------------------------------------------------------------------------

    def _rate(self, candidate: LoanCandidate, rule: LateRule, days: int) -> Decimal:
        return period_rate(
            rule.late_factor,
            days,
            candidate.late_interest_rate_type,
            candidate.late_interest_day_count_convention,
        )

    def _oldest_overdue(
        self,
        candidate: LoanCandidate,
        overdue: list[OverdueInstallment],
        rules: tuple[LateRule, ...],
        days: int,
    ) -> tuple[list[tuple[OverdueInstallment, Decimal]], bool]:
        max_dpd = max(item.days_past_due for item in overdue)
        rule = pick_late_rule(rules, max_dpd)
        if rule is None:
            raise LateInterestRuleNotFoundError(candidate.credit_number, max_dpd)
        if rule.late_factor <= ZERO:
            return [], True

        total_balance = round_money(sum((item.balance for item in overdue), ZERO))
        total = accrue(total_balance, self._rate(candidate, rule, days))
        if not is_chargeable(total):
            return [], False

        parts = allocate_by_weight(total, overdue, lambda item: item.balance)
        return [(item, amount) for item, amount in parts if is_chargeable(amount)], False

    def _each_installment(
        self,
        candidate: LoanCandidate,
        overdue: list[OverdueInstallment],
        rules: tuple[LateRule, ...],
        days: int,
    ) -> tuple[list[tuple[OverdueInstallment, Decimal]], bool]:
        accrued: list[tuple[OverdueInstallment, Decimal]] = []
        zero_rate_only = True
        for item in overdue:
            rule = pick_late_rule(rules, item.days_past_due)
            if rule is None:
                raise LateInterestRuleNotFoundError(
                    candidate.credit_number, item.days_past_due, item.installment_number
                )
            if rule.late_factor <= ZERO:
                continue
            zero_rate_only = False
            amount = accrue(item.balance, self._rate(candidate, rule, days))
            if is_chargeable(amount):
                accrued.append((item, amount))
        return accrued, zero_rate_only
