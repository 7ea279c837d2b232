"""
Module: causation_kernel.models.product
Responsibility: Credit product configuration consumed by the calculators:
    accrual method, rate type and day-count convention for current and late
    interest, the three product distributions, the product's ledger accounts,
    late-interest rules and insurers.
Architecture position: Kernel > Models.  May import from db/ and domain/ only.

Invariants enforced:
    - One CreditProductAccount per product (uq_credit_product_accounts_product).
    - LateInterestRule.days_from >= 0 and days_to is NULL or >= days_from
      (checked by the rule picker, which ignores malformed ranges).

Audit relevance:
    Read-only to the causation engine; cached per run keyed by product id.
"""

from datetime import date
from decimal import Decimal

from sqlalchemy import Boolean, Date, ForeignKey, Index, Integer, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column

from causation_kernel.db.base import TrackedBase
from causation_kernel.domain.terms import (
    AccrualMethod,
    DayCountConvention,
    LateInterestAgeBasis,
    RateType,
)


class CreditProduct(TrackedBase):
    """Credit line (tipo de credito) with its accrual parameters."""

    __tablename__ = "credit_products"

    name: Mapped[str] = mapped_column(String(100), nullable=False)

    capital_distribution_id: Mapped[int | None] = mapped_column(
        ForeignKey("accounting_distributions.id"), nullable=True
    )
    interest_distribution_id: Mapped[int | None] = mapped_column(
        ForeignKey("accounting_distributions.id"), nullable=True
    )
    late_interest_distribution_id: Mapped[int | None] = mapped_column(
        ForeignKey("accounting_distributions.id"), nullable=True
    )

    interest_accrual_method: Mapped[AccrualMethod] = mapped_column(
        String(20), default=AccrualMethod.DAILY, nullable=False
    )
    interest_rate_type: Mapped[RateType] = mapped_column(
        String(30), default=RateType.NOMINAL_ANNUAL, nullable=False
    )
    interest_day_count_convention: Mapped[DayCountConvention] = mapped_column(
        String(20), default=DayCountConvention.ACTUAL_360, nullable=False
    )

    late_interest_accrual_method: Mapped[AccrualMethod] = mapped_column(
        String(20), default=AccrualMethod.DAILY, nullable=False
    )
    late_interest_rate_type: Mapped[RateType] = mapped_column(
        String(30), default=RateType.NOMINAL_ANNUAL, nullable=False
    )
    late_interest_day_count_convention: Mapped[DayCountConvention] = mapped_column(
        String(20), default=DayCountConvention.ACTUAL_360, nullable=False
    )
    late_interest_age_basis: Mapped[LateInterestAgeBasis] = mapped_column(
        String(40),
        default=LateInterestAgeBasis.OLDEST_OVERDUE_INSTALLMENT,
        nullable=False,
    )

    cost_center_id: Mapped[int | None] = mapped_column(
        ForeignKey("cost_centers.id"), nullable=True
    )
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    def __repr__(self) -> str:
        return f"<CreditProduct {self.id}: {self.name}>"


class CreditProductAccount(TrackedBase):
    """Capital, interest and late-interest GL accounts of a product."""

    __tablename__ = "credit_product_accounts"

    credit_product_id: Mapped[int] = mapped_column(
        ForeignKey("credit_products.id"),
        unique=True,
        nullable=False,
    )
    capital_gl_account_id: Mapped[int] = mapped_column(
        ForeignKey("gl_accounts.id"), nullable=False
    )
    interest_gl_account_id: Mapped[int] = mapped_column(
        ForeignKey("gl_accounts.id"), nullable=False
    )
    late_interest_gl_account_id: Mapped[int] = mapped_column(
        ForeignKey("gl_accounts.id"), nullable=False
    )


class LateInterestRule(TrackedBase):
    """
    Days-past-due band mapped to a late rate.

    Contract:
        A rule applies to a loan when product and category match, the rule
        is active and effective on the process date, and
        days_from <= days_past_due <= days_to (days_to NULL = open-ended).
        Among applicable rules the highest priority wins, then the latest
        days_from, then the highest id.
    """

    __tablename__ = "late_interest_rules"

    __table_args__ = (
        Index("idx_late_rules_product_category", "credit_product_id", "category_code"),
    )

    credit_product_id: Mapped[int] = mapped_column(
        ForeignKey("credit_products.id"), nullable=False
    )
    category_code: Mapped[str] = mapped_column(String(1), nullable=False)
    days_from: Mapped[int] = mapped_column(Integer, nullable=False)
    days_to: Mapped[int | None] = mapped_column(Integer, nullable=True)
    late_factor: Mapped[Decimal] = mapped_column(Numeric(12, 9), nullable=False)
    effective_from: Mapped[date | None] = mapped_column(Date, nullable=True)
    effective_to: Mapped[date | None] = mapped_column(Date, nullable=True)
    priority: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)


class InsuranceCompany(TrackedBase):
    """Insurer; its distribution splits the insurance premium."""

    __tablename__ = "insurance_companies"

    name: Mapped[str] = mapped_column(String(150), nullable=False)
    distribution_id: Mapped[int | None] = mapped_column(
        ForeignKey("accounting_distributions.id"), nullable=True
    )
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
