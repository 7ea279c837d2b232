"""
LoanSelector -- resolves the loans a causation run covers.

Contract:
    ``select(scope_type, scope_id)`` returns the accruable loans in scope
    (status ACTIVE or ACCOUNTED) ordered by loan id, each as a frozen
    ``LoanCandidate`` carrying the product parameters the calculators need.

Architecture: causation_batch.  Read-only over kernel models.

Invariants enforced:
    - Deterministic order (loan id ascending).
    - GENERAL scope tolerates an empty portfolio; any other scope with no
      candidates raises NoLoansInScopeError.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import TypeVar

from sqlalchemy import select
from sqlalchemy.orm import Session

from causation_kernel.domain.terms import AccrualMethod, LateInterestAgeBasis
from causation_kernel.exceptions import InvalidProductTermError, NoLoansInScopeError
from causation_kernel.logging_config import get_logger
from causation_kernel.models.loan import ACCRUABLE_LOAN_STATUSES, Loan
from causation_kernel.models.product import CreditProduct

from causation_batch.domain.types import RunScope

logger = get_logger("batch.selector")

E = TypeVar("E", bound=Enum)


@dataclass(frozen=True)
class LoanCandidate:
    """Snapshot of a loan joined with its credit product.

    Product terms are kept as stored.  Rate types and day-count conventions
    are interpreted leniently by the rate engine; accrual methods and the
    late-interest age basis are resolved per loan through the accessors
    below, so a bad product value fails only the loans that use it.
    """

    loan_id: int
    credit_number: str
    credit_product_id: int
    third_party_id: int
    cost_center_id: int | None
    category_code: str
    financing_factor: Decimal
    principal_amount: Decimal
    installments: int
    insurance_company_id: int | None
    insurance_value: Decimal | None
    capital_distribution_id: int | None
    interest_distribution_id: int | None
    late_interest_distribution_id: int | None
    interest_accrual_method: str | None
    interest_rate_type: str | None
    interest_day_count_convention: str | None
    late_interest_accrual_method: str | None
    late_interest_rate_type: str | None
    late_interest_day_count_convention: str | None
    late_interest_age_basis: str | None

    def _term(self, enum_cls: type[E], term: str, default: E) -> E:
        value = getattr(self, term)
        if value is None:
            return default
        try:
            return enum_cls(value)
        except ValueError:
            raise InvalidProductTermError(
                self.credit_product_id, term, value, self.credit_number
            ) from None

    def interest_method(self) -> AccrualMethod:
        return self._term(AccrualMethod, "interest_accrual_method", AccrualMethod.DAILY)

    def late_interest_method(self) -> AccrualMethod:
        return self._term(AccrualMethod, "late_interest_accrual_method", AccrualMethod.DAILY)

    def age_basis(self) -> LateInterestAgeBasis:
        return self._term(
            LateInterestAgeBasis,
            "late_interest_age_basis",
            LateInterestAgeBasis.OLDEST_OVERDUE_INSTALLMENT,
        )


def _stored(value: object) -> str | None:
    if value is None:
        return None
    return value.value if isinstance(value, Enum) else str(value)


def _to_candidate(loan: Loan, product: CreditProduct) -> LoanCandidate:
    return LoanCandidate(
        loan_id=loan.id,
        credit_number=loan.credit_number,
        credit_product_id=product.id,
        third_party_id=loan.third_party_id,
        cost_center_id=loan.cost_center_id,
        category_code=loan.category_code,
        financing_factor=loan.financing_factor,
        principal_amount=loan.principal_amount,
        installments=loan.installments,
        insurance_company_id=loan.insurance_company_id,
        insurance_value=loan.insurance_value,
        capital_distribution_id=product.capital_distribution_id,
        interest_distribution_id=product.interest_distribution_id,
        late_interest_distribution_id=product.late_interest_distribution_id,
        interest_accrual_method=_stored(product.interest_accrual_method),
        interest_rate_type=_stored(product.interest_rate_type),
        interest_day_count_convention=_stored(product.interest_day_count_convention),
        late_interest_accrual_method=_stored(product.late_interest_accrual_method),
        late_interest_rate_type=_stored(product.late_interest_rate_type),
        late_interest_day_count_convention=_stored(product.late_interest_day_count_convention),
        late_interest_age_basis=_stored(product.late_interest_age_basis),
    )


class LoanSelector:
    """Candidate loans for a run scope."""

    def __init__(self, session: Session):
        self._session = session

    def select(self, scope_type: RunScope, scope_id: int) -> tuple[LoanCandidate, ...]:
        stmt = (
            select(Loan, CreditProduct)
            .join(CreditProduct, Loan.credit_product_id == CreditProduct.id)
            .where(Loan.status.in_([s.value for s in ACCRUABLE_LOAN_STATUSES]))
        )
        scope = RunScope(scope_type)
        if scope is RunScope.CREDIT_PRODUCT:
            stmt = stmt.where(Loan.credit_product_id == scope_id)
        elif scope is RunScope.LOAN:
            stmt = stmt.where(Loan.id == scope_id)

        rows = self._session.execute(stmt.order_by(Loan.id)).all()
        candidates = tuple(_to_candidate(loan, product) for loan, product in rows)

        if scope is not RunScope.GENERAL and not candidates:
            raise NoLoansInScopeError(scope.value, scope_id)

        logger.debug(
            "candidates_selected",
            extra={"scope_type": scope.value, "scope_id": scope_id, "count": len(candidates)},
        )
        return candidates
