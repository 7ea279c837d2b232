"""
Billing concepts: fees billed separately from the loan schedule.

Only concepts with financing mode BILLED_SEPARATELY and frequency MONTHLY
or PER_INSTALLMENT are accrued; other financing modes are settled at
disbursement and never reach causation.

    PER_INSTALLMENT  one charge per installment due in
                     (checkpoint, process date]
    MONTHLY          one charge at month end against the latest installment
                     due on or before the process date (the first one when
                     none is due yet)

Debits follow the product's capital distribution.  Each charge is credited
in full to the concept's own GL account, which must not be a receivable.
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal

from sqlalchemy import select

from causation_kernel.db.types import is_chargeable, round_money, to_decimal
from causation_kernel.domain.terms import (
    AccountDetailType,
    BaseAmountKind,
    CalcMethod,
    ConceptFrequency,
    FinancingMode,
    RangeMetric,
)
from causation_kernel.exceptions import (
    BillingConceptConfigError,
    MissingDistributionError,
    MissingInstallmentsError,
)
from causation_kernel.models.billing import BillingConcept, LoanBillingConcept
from causation_engines.billing import PricingTerms, calculate_concept_amount, select_tier
from causation_engines.rates import is_end_of_month

from causation_batch.cache import ResolvedDistribution
from causation_batch.calculators.base import (
    CalculationContext,
    Charge,
    LoanAccrual,
    billable_installments,
    due_in_window,
    outstanding_principal,
)
from causation_batch.domain.types import ProcessType
from causation_batch.selector import LoanCandidate

ACCRUED_FREQUENCIES = (ConceptFrequency.MONTHLY.value, ConceptFrequency.PER_INSTALLMENT.value)


def _in_effect(concept: LoanBillingConcept, on: date) -> bool:
    if concept.start_date is not None and on < concept.start_date:
        return False
    if concept.end_date is not None and on > concept.end_date:
        return False
    return True


def _snapshot_terms(concept: LoanBillingConcept) -> PricingTerms:
    return PricingTerms(
        calc_method=CalcMethod(concept.calc_method),
        base_amount=BaseAmountKind(concept.base_amount) if concept.base_amount else None,
        rate=concept.rate,
        amount=concept.amount,
        min_amount=concept.min_amount,
        max_amount=concept.max_amount,
        rounding_mode=concept.rounding_mode,
        rounding_decimals=concept.rounding_decimals,
    )


class BillingConceptsCalculator:
    """Monthly and per-installment billing concept accrual."""

    @property
    def process_type(self) -> ProcessType:
        return ProcessType.BILLING_CONCEPTS

    @property
    def description(self) -> str:
        return "Accrue separately billed loan concepts"

    def resolve_distribution(
        self,
        candidate: LoanCandidate,
        context: CalculationContext,
    ) -> ResolvedDistribution:
        return context.cache.distribution(
            candidate.capital_distribution_id,
            owner=f"capital of loan {candidate.credit_number}",
            require_credit=False,
        )

    def compute_charges(
        self,
        candidate: LoanCandidate,
        checkpoint: date | None,
        context: CalculationContext,
    ) -> LoanAccrual | None:
        if not candidate.capital_distribution_id:
            raise MissingDistributionError(
                f"capital of loan {candidate.credit_number}",
                candidate.capital_distribution_id,
                "not configured",
            )

        rows = context.session.execute(
            select(LoanBillingConcept, BillingConcept.code)
            .join(BillingConcept, LoanBillingConcept.billing_concept_id == BillingConcept.id)
            .where(
                LoanBillingConcept.loan_id == candidate.loan_id,
                LoanBillingConcept.is_active == True,  # noqa: E712
                LoanBillingConcept.financing_mode == FinancingMode.BILLED_SEPARATELY.value,
                LoanBillingConcept.frequency.in_(ACCRUED_FREQUENCIES),
            )
            .order_by(LoanBillingConcept.id)
        ).all()
        if not rows:
            return None

        installments = billable_installments(context.session, candidate.loan_id)
        if not installments:
            raise MissingInstallmentsError(candidate.credit_number)

        process_date = context.process_date
        due = [
            item
            for item in installments
            if due_in_window(item.due_date, checkpoint, process_date)
        ]
        monthly_reference = next(
            (item for item in reversed(installments) if item.due_date <= process_date),
            installments[0],
        )
        # Shared checkpoint with PER_INSTALLMENT: only a same-date rerun blocks
        # the month-end charge.
        month_end_due = is_end_of_month(process_date) and (
            checkpoint is None or checkpoint < process_date
        )

        debit_side = self.resolve_distribution(candidate, context)
        principal = round_money(to_decimal(candidate.principal_amount))
        outstanding: Decimal | None = None

        charges: list[Charge] = []
        for concept, code in rows:
            distribution = self._credit_target(candidate, concept, debit_side, context)
            terms = self._terms(candidate, concept, principal, context)

            if terms.base_amount == BaseAmountKind.OUTSTANDING_BALANCE and outstanding is None:
                accounts = context.cache.product_accounts(
                    candidate.credit_product_id, candidate.credit_number
                )
                outstanding = outstanding_principal(
                    context.session, candidate.loan_id, accounts.capital_gl_account_id
                )

            base_values = {
                BaseAmountKind.DISBURSED_AMOUNT: principal,
                BaseAmountKind.PRINCIPAL: principal,
                BaseAmountKind.OUTSTANDING_BALANCE: (
                    outstanding if outstanding is not None else principal
                ),
            }
            description = (
                f"Billing concept {code} accrual loan {candidate.credit_number}"[:255]
            )

            if concept.frequency == ConceptFrequency.PER_INSTALLMENT:
                targets = [item for item in due if _in_effect(concept, item.due_date)]
            elif month_end_due and _in_effect(concept, process_date):
                targets = [monthly_reference]
            else:
                targets = []

            for installment in targets:
                amount = calculate_concept_amount(
                    terms,
                    {
                        **base_values,
                        BaseAmountKind.INSTALLMENT_AMOUNT: round_money(
                            to_decimal(installment.total_amount)
                        ),
                    },
                )
                if not is_chargeable(amount):
                    continue
                charges.append(
                    Charge(
                        amount=amount,
                        installment_number=installment.installment_number,
                        due_date=installment.due_date,
                        description=description,
                        distribution=distribution,
                    )
                )

        if not charges:
            return None
        return LoanAccrual(charges=tuple(charges))

    # -------------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------------

    def _credit_target(
        self,
        candidate: LoanCandidate,
        concept: LoanBillingConcept,
        debit_side: ResolvedDistribution,
        context: CalculationContext,
    ) -> ResolvedDistribution:
        if not concept.gl_account_id:
            raise BillingConceptConfigError(
                candidate.credit_number,
                concept.billing_concept_id,
                "no GL account configured",
            )
        detail_type = context.cache.account_detail_type(concept.gl_account_id)
        if detail_type is None:
            raise BillingConceptConfigError(
                candidate.credit_number,
                concept.billing_concept_id,
                f"GL account {concept.gl_account_id} does not exist",
            )
        if detail_type is AccountDetailType.RECEIVABLE:
            raise BillingConceptConfigError(
                candidate.credit_number,
                concept.billing_concept_id,
                "cannot credit a receivable account",
            )
        return debit_side.with_single_credit(concept.gl_account_id)

    def _terms(
        self,
        candidate: LoanCandidate,
        concept: LoanBillingConcept,
        principal: Decimal,
        context: CalculationContext,
    ) -> PricingTerms:
        """Tier terms for tiered concepts, falling back to the loan snapshot."""
        snapshot = _snapshot_terms(concept)
        if not snapshot.calc_method.is_tiered:
            return snapshot
        tier = select_tier(
            context.cache.billing_rules(concept.billing_concept_id),
            {
                RangeMetric.INSTALLMENT_COUNT: Decimal(candidate.installments),
                RangeMetric.CREDIT_AMOUNT: principal,
            },
            context.process_date,
        )
        return tier.terms if tier is not None else snapshot
