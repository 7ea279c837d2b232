"""
Insurance: premiums of installments falling due since the last accrual.

Each GENERATED or ACCOUNTED installment whose due date is in
(checkpoint, process date] and whose insurance amount is chargeable posts
one charge through the insurer's distribution.
"""

from __future__ import annotations

from datetime import date

from causation_kernel.db.types import is_chargeable, round_money, to_decimal

from causation_batch.cache import ResolvedDistribution
from causation_batch.calculators.base import (
    CalculationContext,
    Charge,
    LoanAccrual,
    billable_installments,
    due_in_window,
)
from causation_batch.domain.types import ProcessType
from causation_batch.selector import LoanCandidate


class InsuranceCalculator:
    """Per-installment insurance premium accrual."""

    @property
    def process_type(self) -> ProcessType:
        return ProcessType.INSURANCE

    @property
    def description(self) -> str:
        return "Accrue insurance premiums of installments falling due"

    def resolve_distribution(
        self,
        candidate: LoanCandidate,
        context: CalculationContext,
    ) -> ResolvedDistribution:
        distribution_id = (
            context.cache.insurer_distribution_id(candidate.insurance_company_id)
            if candidate.insurance_company_id
            else None
        )
        return context.cache.distribution(
            distribution_id,
            owner=f"insurance of loan {candidate.credit_number}",
        )

    def compute_charges(
        self,
        candidate: LoanCandidate,
        checkpoint: date | None,
        context: CalculationContext,
    ) -> LoanAccrual | None:
        if not candidate.insurance_company_id:
            return None
        if not is_chargeable(round_money(to_decimal(candidate.insurance_value))):
            return None
        if checkpoint is not None and checkpoint >= context.process_date:
            return None

        due = [
            installment
            for installment in billable_installments(context.session, candidate.loan_id)
            if due_in_window(installment.due_date, checkpoint, context.process_date)
            and is_chargeable(round_money(to_decimal(installment.insurance_amount)))
        ]
        if not due:
            return None

        distribution = self.resolve_distribution(candidate, context)
        description = f"Insurance accrual loan {candidate.credit_number}"[:255]
        return LoanAccrual(
            charges=tuple(
                Charge(
                    amount=round_money(to_decimal(installment.insurance_amount)),
                    installment_number=installment.installment_number,
                    due_date=installment.due_date,
                    description=description,
                    distribution=distribution,
                )
                for installment in due
            )
        )
