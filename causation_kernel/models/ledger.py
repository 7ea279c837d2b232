"""
Module: causation_kernel.models.ledger
Responsibility: ORM persistence for accounting entries (one row per debit or
    credit leg) and portfolio balance rows (open amount a loan owes on a
    receivable account, per installment).
Architecture position: Kernel > Models.  May import from db/ and domain/ only.

Invariants enforced:
    K-4 -- AccountingEntry rows are insert-only for the causation engine.
    UNIQUE(process_type, document_code, sequence) on accounting_entries:
          a run can never write the same leg twice.
    UNIQUE(gl_account_id, third_party_id, loan_id, installment_number) on
          portfolio_entries: one balance row per receivable slot.
    PortfolioEntry.balance == charge_amount - payment_amount (maintained by
          PortfolioLedger, the only writer).

Failure modes:
    - IntegrityError on a duplicate leg or portfolio slot.

Audit relevance:
    Every entry carries process_run_id and document_code, so downstream
    reporting can reconstruct exactly what a run posted.  For any document
    code the DEBIT and CREDIT amounts sum to the same total.
"""

from datetime import date
from decimal import Decimal
from enum import Enum

from sqlalchemy import (
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
from causation_kernel.domain.terms import EntryNature


class AccountingEntryStatus(str, Enum):
    DRAFT = "DRAFT"
    POSTED = "POSTED"
    VOID = "VOID"


class PortfolioEntryStatus(str, Enum):
    OPEN = "OPEN"
    CLOSED = "CLOSED"
    VOID = "VOID"


SOURCE_TYPE_PROCESS_RUN = "PROCESS_RUN"


class AccountingEntry(TrackedBase):
    """One leg of a posted transaction."""

    __tablename__ = "accounting_entries"

    __table_args__ = (
        UniqueConstraint(
            "process_type",
            "document_code",
            "sequence",
            name="uq_accounting_entry_document_sequence",
        ),
        Index("idx_entries_process_run", "process_run_id"),
        Index("idx_entries_loan", "loan_id"),
    )

    process_type: Mapped[str] = mapped_column(String(20), nullable=False)
    document_code: Mapped[str] = mapped_column(String(20), nullable=False)
    sequence: Mapped[int] = mapped_column(Integer, nullable=False)
    entry_date: Mapped[date] = mapped_column(Date, nullable=False)
    gl_account_id: Mapped[int] = mapped_column(ForeignKey("gl_accounts.id"), nullable=False)
    cost_center_id: Mapped[int | None] = mapped_column(
        ForeignKey("cost_centers.id"), nullable=True
    )
    third_party_id: Mapped[int] = mapped_column(
        ForeignKey("third_parties.id"), nullable=False
    )
    description: Mapped[str] = mapped_column(String(255), nullable=False)
    nature: Mapped[EntryNature] = mapped_column(String(10), nullable=False)
    amount: Mapped[Decimal] = mapped_column(Numeric(18, 2), nullable=False)
    loan_id: Mapped[int] = mapped_column(ForeignKey("loans.id"), nullable=False)
    installment_number: Mapped[int | None] = mapped_column(Integer, nullable=True)
    due_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    status: Mapped[AccountingEntryStatus] = mapped_column(
        String(10), default=AccountingEntryStatus.DRAFT, nullable=False
    )
    source_type: Mapped[str] = mapped_column(
        String(20), default=SOURCE_TYPE_PROCESS_RUN, nullable=False
    )
    process_run_id: Mapped[int | None] = mapped_column(Integer, nullable=True)

    def __repr__(self) -> str:
        return (
            f"<AccountingEntry {self.document_code}#{self.sequence} "
            f"{self.nature} {self.amount}>"
        )


class PortfolioEntry(TrackedBase):
    """Open balance of a loan installment on a receivable account."""

    __tablename__ = "portfolio_entries"

    __table_args__ = (
        UniqueConstraint(
            "gl_account_id",
            "third_party_id",
            "loan_id",
            "installment_number",
            name="uq_portfolio_entry_slot",
        ),
        Index("idx_portfolio_loan_status", "loan_id", "status"),
    )

    gl_account_id: Mapped[int] = mapped_column(ForeignKey("gl_accounts.id"), nullable=False)
    third_party_id: Mapped[int] = mapped_column(
        ForeignKey("third_parties.id"), nullable=False
    )
    loan_id: Mapped[int] = mapped_column(ForeignKey("loans.id"), nullable=False)
    installment_number: Mapped[int] = mapped_column(Integer, nullable=False)
    due_date: Mapped[date] = mapped_column(Date, nullable=False)
    charge_amount: Mapped[Decimal] = mapped_column(
        Numeric(18, 2), default=Decimal("0"), nullable=False
    )
    payment_amount: Mapped[Decimal] = mapped_column(
        Numeric(18, 2), default=Decimal("0"), nullable=False
    )
    balance: Mapped[Decimal] = mapped_column(
        Numeric(18, 2), default=Decimal("0"), nullable=False
    )
    last_movement_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    status: Mapped[PortfolioEntryStatus] = mapped_column(
        String(10), default=PortfolioEntryStatus.OPEN, nullable=False
    )
