"""
Module: causation_kernel.models.loan
Responsibility: Loans and their installment schedule.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - credit_number is unique.
    - (loan_id, installment_number) is unique.

Audit relevance:
    The causation engine reads loans with status ACTIVE or ACCOUNTED and
    never writes to them.
"""

from datetime import date
from decimal import Decimal
from enum import Enum

from sqlalchemy import Date, ForeignKey, Integer, Numeric, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from causation_kernel.db.base import TrackedBase


class LoanStatus(str, Enum):
    ACTIVE = "ACTIVE"
    GENERATED = "GENERATED"
    INACTIVE = "INACTIVE"
    ACCOUNTED = "ACCOUNTED"
    VOID = "VOID"
    RELIQUIDATED = "RELIQUIDATED"
    FINISHED = "FINISHED"
    PAID = "PAID"


ACCRUABLE_LOAN_STATUSES: tuple[LoanStatus, ...] = (
    LoanStatus.ACTIVE,
    LoanStatus.ACCOUNTED,
)


class InstallmentStatus(str, Enum):
    GENERATED = "GENERATED"
    ACCOUNTED = "ACCOUNTED"
    PAID = "PAID"
    VOID = "VOID"


class Loan(TrackedBase):
    """
    An approved loan (the obligation).

    ``financing_factor`` is the contractual rate percent used for current
    interest; ``category_code`` selects late-interest rules.
    """

    __tablename__ = "loans"

    credit_number: Mapped[str] = mapped_column(String(20), unique=True, nullable=False)
    credit_product_id: Mapped[int] = mapped_column(
        ForeignKey("credit_products.id"), nullable=False
    )
    third_party_id: Mapped[int] = mapped_column(
        ForeignKey("third_parties.id"), nullable=False
    )
    cost_center_id: Mapped[int | None] = mapped_column(
        ForeignKey("cost_centers.id"), nullable=True
    )
    category_code: Mapped[str] = mapped_column(String(1), default="A", nullable=False)
    financing_factor: Mapped[Decimal] = mapped_column(
        Numeric(12, 9), default=Decimal("0"), nullable=False
    )
    principal_amount: Mapped[Decimal] = mapped_column(Numeric(18, 2), nullable=False)
    installments: Mapped[int] = mapped_column(Integer, nullable=False)
    insurance_company_id: Mapped[int | None] = mapped_column(
        ForeignKey("insurance_companies.id"), nullable=True
    )
    insurance_value: Mapped[Decimal | None] = mapped_column(Numeric(18, 2), nullable=True)
    status: Mapped[LoanStatus] = mapped_column(
        String(20), default=LoanStatus.ACTIVE, nullable=False
    )

    schedule: Mapped[list["LoanInstallment"]] = relationship(
        back_populates="loan",
        order_by="LoanInstallment.installment_number",
    )

    def __repr__(self) -> str:
        return f"<Loan {self.credit_number}: {self.status}>"


class LoanInstallment(TrackedBase):
    __tablename__ = "loan_installments"

    __table_args__ = (
        UniqueConstraint("loan_id", "installment_number", name="uq_loan_installment"),
    )

    loan_id: Mapped[int] = mapped_column(ForeignKey("loans.id"), nullable=False)
    installment_number: Mapped[int] = mapped_column(Integer, nullable=False)
    due_date: Mapped[date] = mapped_column(Date, nullable=False)
    principal_amount: Mapped[Decimal] = mapped_column(
        Numeric(18, 2), default=Decimal("0"), nullable=False
    )
    interest_amount: Mapped[Decimal] = mapped_column(
        Numeric(18, 2), default=Decimal("0"), nullable=False
    )
    insurance_amount: Mapped[Decimal] = mapped_column(
        Numeric(18, 2), default=Decimal("0"), nullable=False
    )
    status: Mapped[InstallmentStatus] = mapped_column(
        String(20), default=InstallmentStatus.GENERATED, nullable=False
    )

    loan: Mapped[Loan] = relationship(back_populates="schedule")

    @property
    def total_amount(self) -> Decimal:
        return self.principal_amount + self.interest_amount + self.insurance_amount
