"""
Module: causation_kernel.models.accounting
Responsibility: Chart-of-accounts reference data used by postings: GL
    accounts, cost centers, counterparties and accounting distributions
    (the percentage rules that split a charge across accounts).
Architecture position: Kernel > Models.  May import from db/ and domain/ only.

Invariants enforced:
    - Distribution line percentages are stored as Numeric(5, 2).
    - A distribution line's nature is DEBIT or CREDIT.

Audit relevance:
    Read-only to the causation engine.  Every accounting entry it writes
    points at a GlAccount selected through one of these distributions.
"""

from decimal import Decimal

from sqlalchemy import Boolean, ForeignKey, Index, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from causation_kernel.db.base import TrackedBase
from causation_kernel.domain.terms import AccountDetailType, EntryNature


class GlAccount(TrackedBase):
    """Ledger account (auxiliar)."""

    __tablename__ = "gl_accounts"

    code: Mapped[str] = mapped_column(String(20), unique=True, nullable=False)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    detail_type: Mapped[AccountDetailType] = mapped_column(
        String(20),
        default=AccountDetailType.NONE,
        nullable=False,
    )
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    @property
    def is_receivable(self) -> bool:
        return self.detail_type == AccountDetailType.RECEIVABLE

    def __repr__(self) -> str:
        return f"<GlAccount {self.code}>"


class CostCenter(TrackedBase):
    __tablename__ = "cost_centers"

    code: Mapped[str] = mapped_column(String(20), unique=True, nullable=False)
    name: Mapped[str] = mapped_column(String(200), nullable=False)


class ThirdParty(TrackedBase):
    """Counterparty (borrower) of a loan."""

    __tablename__ = "third_parties"

    document_number: Mapped[str] = mapped_column(String(20), unique=True, nullable=False)
    name: Mapped[str] = mapped_column(String(200), nullable=False)


class AccountingDistribution(TrackedBase):
    """
    Named set of distribution lines.

    Contract:
        Debit lines and credit lines are each expected to sum to 100%.
        The allocation engine normalises by the actual sum, so a
        misconfigured distribution still allocates the full amount.
    """

    __tablename__ = "accounting_distributions"

    name: Mapped[str] = mapped_column(String(100), nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    lines: Mapped[list["AccountingDistributionLine"]] = relationship(
        back_populates="distribution",
        order_by="AccountingDistributionLine.id",
    )


class AccountingDistributionLine(TrackedBase):
    __tablename__ = "accounting_distribution_lines"

    __table_args__ = (
        Index("idx_distribution_lines_distribution", "distribution_id"),
    )

    distribution_id: Mapped[int] = mapped_column(
        ForeignKey("accounting_distributions.id"),
        nullable=False,
    )
    gl_account_id: Mapped[int] = mapped_column(
        ForeignKey("gl_accounts.id"),
        nullable=False,
    )
    cost_center_id: Mapped[int | None] = mapped_column(
        ForeignKey("cost_centers.id"),
        nullable=True,
    )
    percentage: Mapped[Decimal] = mapped_column(Numeric(5, 2), nullable=False)
    nature: Mapped[EntryNature] = mapped_column(String(10), nullable=False)

    distribution: Mapped[AccountingDistribution] = relationship(back_populates="lines")
    gl_account: Mapped[GlAccount] = relationship()
