"""
RunReferenceCache -- run-scoped memo of the reference data a run reads.

Contract:
    One instance per ``RunExecutor.execute()`` call, passed explicitly to
    every calculator.  Loans of the same product share lookups of product
    accounts, distribution lines, late-interest rules and billing-concept
    rules; insurer distributions are shared per insurer.

Architecture: causation_batch.  Read-only over kernel models; converts rows
    into frozen values before caching so cached data cannot be mutated
    through the session.

Invariants enforced:
    CB-8 -- Never module-level and never reused across runs.
    - Distribution validation (lines present, debit and credit sides,
      a receivable debit line) runs on every call, so the error names the
      loan being processed even when the lines came from the cache.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.orm import Session

from causation_kernel.domain.terms import AccountDetailType, EntryNature, RangeMetric
from causation_kernel.exceptions import (
    MissingDistributionError,
    MissingProductAccountsError,
    MissingReceivableLineError,
)
from causation_kernel.models.accounting import (
    AccountingDistributionLine,
    GlAccount,
)
from causation_kernel.models.billing import BillingConceptRule
from causation_kernel.models.product import (
    CreditProductAccount,
    InsuranceCompany,
    LateInterestRule,
)
from causation_engines.billing import PricingTerms, TierRule
from causation_engines.late_rules import LateRule, rules_in_force


# =============================================================================
# Cached values
# =============================================================================


@dataclass(frozen=True)
class ProductAccounts:
    credit_product_id: int
    capital_gl_account_id: int
    interest_gl_account_id: int
    late_interest_gl_account_id: int


@dataclass(frozen=True)
class DistributionLeg:
    """One distribution line with the detail type of its GL account."""

    line_id: int
    gl_account_id: int
    cost_center_id: int | None
    percentage: Decimal
    nature: EntryNature
    is_receivable: bool


@dataclass(frozen=True)
class ResolvedDistribution:
    """Validated debit and credit sides of a distribution."""

    distribution_id: int | None
    debit_legs: tuple[DistributionLeg, ...]
    credit_legs: tuple[DistributionLeg, ...]

    @property
    def receivable_legs(self) -> tuple[DistributionLeg, ...]:
        return tuple(leg for leg in self.debit_legs if leg.is_receivable)

    def with_single_credit(self, gl_account_id: int) -> ResolvedDistribution:
        """Same debit side, credited 100% to ``gl_account_id``."""
        return ResolvedDistribution(
            distribution_id=self.distribution_id,
            debit_legs=self.debit_legs,
            credit_legs=(
                DistributionLeg(
                    line_id=0,
                    gl_account_id=gl_account_id,
                    cost_center_id=None,
                    percentage=Decimal("100"),
                    nature=EntryNature.CREDIT,
                    is_receivable=False,
                ),
            ),
        )


# =============================================================================
# Cache
# =============================================================================


class RunReferenceCache:
    """Reference-data lookups memoised for the lifetime of one run."""

    def __init__(self, session: Session, process_date: date):
        self._session = session
        self.process_date = process_date
        self._accounts: dict[int, ProductAccounts | None] = {}
        self._legs: dict[int, tuple[DistributionLeg, ...]] = {}
        self._insurer_distribution: dict[int, int | None] = {}
        self._late_rules: dict[tuple[int, str], tuple[LateRule, ...]] = {}
        self._billing_rules: dict[int, tuple[TierRule, ...]] = {}
        self._detail_types: dict[int, AccountDetailType | None] = {}

    # -------------------------------------------------------------------------
    # Product accounts
    # -------------------------------------------------------------------------

    def product_accounts(
        self,
        credit_product_id: int,
        loan_reference: str | None = None,
    ) -> ProductAccounts:
        if credit_product_id not in self._accounts:
            row = self._session.execute(
                select(CreditProductAccount).where(
                    CreditProductAccount.credit_product_id == credit_product_id
                )
            ).scalar_one_or_none()
            self._accounts[credit_product_id] = (
                ProductAccounts(
                    credit_product_id=credit_product_id,
                    capital_gl_account_id=row.capital_gl_account_id,
                    interest_gl_account_id=row.interest_gl_account_id,
                    late_interest_gl_account_id=row.late_interest_gl_account_id,
                )
                if row is not None
                else None
            )

        accounts = self._accounts[credit_product_id]
        if accounts is None:
            raise MissingProductAccountsError(credit_product_id, loan_reference)
        return accounts

    # -------------------------------------------------------------------------
    # Distributions
    # -------------------------------------------------------------------------

    def _load_legs(self, distribution_id: int) -> tuple[DistributionLeg, ...]:
        if distribution_id not in self._legs:
            rows = self._session.execute(
                select(AccountingDistributionLine, GlAccount.detail_type)
                .join(GlAccount, AccountingDistributionLine.gl_account_id == GlAccount.id)
                .where(AccountingDistributionLine.distribution_id == distribution_id)
                .order_by(AccountingDistributionLine.id)
            ).all()
            self._legs[distribution_id] = tuple(
                DistributionLeg(
                    line_id=line.id,
                    gl_account_id=line.gl_account_id,
                    cost_center_id=line.cost_center_id,
                    percentage=line.percentage,
                    nature=EntryNature(line.nature),
                    is_receivable=detail_type == AccountDetailType.RECEIVABLE.value,
                )
                for line, detail_type in rows
            )
        return self._legs[distribution_id]

    def distribution(
        self,
        distribution_id: int | None,
        owner: str,
        require_credit: bool = True,
    ) -> ResolvedDistribution:
        """
        Lines of ``distribution_id`` split by nature and validated.

        ``owner`` names what the distribution is for (e.g. "interest of
        loan 000123") and appears in every error raised.  With
        ``require_credit=False`` the credit side may be empty; the caller
        supplies its own credit leg.
        """
        if not distribution_id or distribution_id <= 0:
            raise MissingDistributionError(owner, distribution_id, "not configured")

        legs = self._load_legs(distribution_id)
        if not legs:
            raise MissingDistributionError(owner, distribution_id, "has no lines")

        debit = tuple(leg for leg in legs if leg.nature is EntryNature.DEBIT)
        credit = tuple(leg for leg in legs if leg.nature is EntryNature.CREDIT)
        if not debit:
            raise MissingDistributionError(owner, distribution_id, "has no debit lines")
        if require_credit and not credit:
            raise MissingDistributionError(owner, distribution_id, "has no credit lines")
        if not any(leg.is_receivable for leg in debit):
            raise MissingReceivableLineError(owner, distribution_id)

        return ResolvedDistribution(
            distribution_id=distribution_id,
            debit_legs=debit,
            credit_legs=credit,
        )

    def insurer_distribution_id(self, insurance_company_id: int) -> int | None:
        if insurance_company_id not in self._insurer_distribution:
            self._insurer_distribution[insurance_company_id] = self._session.execute(
                select(InsuranceCompany.distribution_id).where(
                    InsuranceCompany.id == insurance_company_id
                )
            ).scalar_one_or_none()
        return self._insurer_distribution[insurance_company_id]

    def account_detail_type(self, gl_account_id: int) -> AccountDetailType | None:
        if gl_account_id not in self._detail_types:
            value = self._session.execute(
                select(GlAccount.detail_type).where(GlAccount.id == gl_account_id)
            ).scalar_one_or_none()
            self._detail_types[gl_account_id] = (
                AccountDetailType(value) if value is not None else None
            )
        return self._detail_types[gl_account_id]

    # -------------------------------------------------------------------------
    # Rules
    # -------------------------------------------------------------------------

    def late_rules(self, credit_product_id: int, category_code: str) -> tuple[LateRule, ...]:
        """Late-interest rules in force on the process date, in pick order."""
        key = (credit_product_id, category_code)
        if key not in self._late_rules:
            rows = self._session.execute(
                select(LateInterestRule).where(
                    LateInterestRule.credit_product_id == credit_product_id,
                    LateInterestRule.category_code == category_code,
                    LateInterestRule.is_active == True,  # noqa: E712
                )
            ).scalars().all()
            rules = (
                LateRule(
                    rule_id=row.id,
                    credit_product_id=row.credit_product_id,
                    category_code=row.category_code,
                    days_from=row.days_from,
                    days_to=row.days_to,
                    late_factor=row.late_factor,
                    priority=row.priority,
                    effective_from=row.effective_from,
                    effective_to=row.effective_to,
                    is_active=row.is_active,
                )
                for row in rows
            )
            self._late_rules[key] = tuple(rules_in_force(rules, self.process_date))
        return self._late_rules[key]

    def billing_rules(self, billing_concept_id: int) -> tuple[TierRule, ...]:
        if billing_concept_id not in self._billing_rules:
            rows = self._session.execute(
                select(BillingConceptRule)
                .where(BillingConceptRule.billing_concept_id == billing_concept_id)
                .order_by(BillingConceptRule.id)
            ).scalars().all()
            self._billing_rules[billing_concept_id] = tuple(
                TierRule(
                    rule_id=row.id,
                    terms=PricingTerms(
                        calc_method=row.calc_method,
                        base_amount=row.base_amount,
                        rate=row.rate,
                        amount=row.amount,
                        min_amount=row.min_amount,
                        max_amount=row.max_amount,
                        rounding_mode=row.rounding_mode,
                        rounding_decimals=row.rounding_decimals,
                    ),
                    range_metric=RangeMetric(row.range_metric) if row.range_metric else None,
                    value_from=row.value_from,
                    value_to=row.value_to,
                    effective_from=row.effective_from,
                    effective_to=row.effective_to,
                    priority=row.priority,
                    is_active=row.is_active,
                )
                for row in rows
            )
        return self._billing_rules[billing_concept_id]
