"""
Module: causation_kernel.models.billing
Responsibility: Billing concepts (fees charged alongside a loan), their
    tiered pricing rules, and the per-loan snapshot of a concept's terms.
Architecture position: Kernel > Models.  May import from db/ and domain/ only.

Invariants enforced:
    - (loan_id, billing_concept_id) is unique on loan_billing_concepts.

Audit relevance:
    LoanBillingConcept is a snapshot: the terms in force when the loan was
    created.  Tiered rules on BillingConceptRule are consulted only for
    TIERED_* calc methods, to pick the band that applies to the loan.
"""

from datetime import date
from decimal import Decimal

from sqlalchemy import (
    Boolean,
    Date,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column

from causation_kernel.db.base import TrackedBase
from causation_kernel.domain.terms import (
    BaseAmountKind,
    CalcMethod,
    ConceptFrequency,
    FinancingMode,
    RangeMetric,
    RoundingMode,
)


class BillingConcept(TrackedBase):
    __tablename__ = "billing_concepts"

    code: Mapped[str] = mapped_column(String(20), unique=True, nullable=False)
    name: Mapped[str] = mapped_column(String(150), nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)


class _PricingTermsMixin:
    """Columns shared by a concept rule and a loan's snapshot of it."""

    calc_method: Mapped[CalcMethod] = mapped_column(String(30), nullable=False)
    base_amount: Mapped[BaseAmountKind | None] = mapped_column(String(30), nullable=True)
    rate: Mapped[Decimal | None] = mapped_column(Numeric(12, 6), nullable=True)
    amount: Mapped[Decimal | None] = mapped_column(Numeric(18, 2), nullable=True)
    value_from: Mapped[Decimal | None] = mapped_column(Numeric(18, 2), nullable=True)
    value_to: Mapped[Decimal | None] = mapped_column(Numeric(18, 2), nullable=True)
    min_amount: Mapped[Decimal | None] = mapped_column(Numeric(18, 2), nullable=True)
    max_amount: Mapped[Decimal | None] = mapped_column(Numeric(18, 2), nullable=True)
    rounding_mode: Mapped[RoundingMode] = mapped_column(
        String(10), default=RoundingMode.NEAREST, nullable=False
    )
    rounding_decimals: Mapped[int] = mapped_column(Integer, default=2, nullable=False)


class BillingConceptRule(_PricingTermsMixin, TrackedBase):
    """Pricing rule of a concept; several may coexist as tiers."""

    __tablename__ = "billing_concept_rules"

    __table_args__ = (
        Index("idx_billing_concept_rules_concept", "billing_concept_id", "is_active"),
    )

    billing_concept_id: Mapped[int] = mapped_column(
        ForeignKey("billing_concepts.id"), nullable=False
    )
    range_metric: Mapped[RangeMetric | None] = mapped_column(String(30), nullable=True)
    effective_from: Mapped[date | None] = mapped_column(Date, nullable=True)
    effective_to: Mapped[date | None] = mapped_column(Date, nullable=True)
    priority: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)


class LoanBillingConcept(_PricingTermsMixin, TrackedBase):
    """A concept attached to a loan with the terms copied at origination."""

    __tablename__ = "loan_billing_concepts"

    __table_args__ = (
        UniqueConstraint("loan_id", "billing_concept_id", name="uq_loan_billing_concepts"),
        Index("idx_loan_billing_concepts_loan", "loan_id"),
    )

    loan_id: Mapped[int] = mapped_column(ForeignKey("loans.id"), nullable=False)
    billing_concept_id: Mapped[int] = mapped_column(
        ForeignKey("billing_concepts.id"), nullable=False
    )
    frequency: Mapped[ConceptFrequency] = mapped_column(String(20), nullable=False)
    financing_mode: Mapped[FinancingMode] = mapped_column(String(40), nullable=False)
    gl_account_id: Mapped[int | None] = mapped_column(
        ForeignKey("gl_accounts.id"), nullable=True
    )
    start_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    end_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
