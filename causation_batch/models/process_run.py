"""
ORM models for causation run persistence.

Contract:
    ProcessRunModel persists one causation batch execution and its JSON
    summary.  LoanProcessStateModel is the per (loan, process type)
    checkpoint.  Both have ``to_dto()``; runs also have ``from_dto()``.

Architecture: causation_batch/models.  Imports from causation_kernel.db only.

Invariants enforced:
    CB-2 -- Duplicate-run detection is a service check over
            (process_type, process_date, scope_type, scope_id) restricted to
            blocking statuses; the composite index serves it.
    CB-5 -- UNIQUE(loan_id, process_type) on loan_process_states: one
            checkpoint per loan and process type.
"""

from __future__ import annotations

from datetime import date, datetime
from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy import (
    JSON,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column

from causation_kernel.db.base import TrackedBase, UUIDString

if TYPE_CHECKING:
    from causation_batch.domain.types import LoanCheckpoint, ProcessRun


class ProcessRunModel(TrackedBase):
    """Persistent causation run record."""

    __tablename__ = "process_runs"

    __table_args__ = (
        Index(
            "ix_process_runs_key",
            "process_type",
            "process_date",
            "scope_type",
            "scope_id",
        ),
        Index("ix_process_runs_status", "status"),
        Index("ix_process_runs_period", "accounting_period_id"),
    )

    process_type: Mapped[str] = mapped_column(String(20), nullable=False)
    scope_type: Mapped[str] = mapped_column(String(20), nullable=False)
    scope_id: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    accounting_period_id: Mapped[int] = mapped_column(
        ForeignKey("accounting_periods.id"), nullable=False
    )
    process_date: Mapped[date] = mapped_column(Date, nullable=False)
    transaction_date: Mapped[date] = mapped_column(Date, nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False)
    trigger_source: Mapped[str] = mapped_column(String(10), nullable=False)
    executed_by_user_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    executed_by_user_name: Mapped[str] = mapped_column(String(255), nullable=False)
    executed_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    started_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    finished_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    note: Mapped[str | None] = mapped_column(Text, nullable=True)
    summary: Mapped[dict | None] = mapped_column(JSON, nullable=True)

    def to_dto(self) -> ProcessRun:
        from causation_batch.domain.types import (
            ProcessRun,
            ProcessType,
            RunScope,
            RunStatus,
            RunSummary,
            TriggerSource,
        )

        return ProcessRun(
            run_id=self.id,
            process_type=ProcessType(self.process_type),
            scope_type=RunScope(self.scope_type),
            scope_id=self.scope_id,
            process_date=self.process_date,
            transaction_date=self.transaction_date,
            status=RunStatus(self.status),
            accounting_period_id=self.accounting_period_id,
            trigger_source=TriggerSource(self.trigger_source),
            executed_by_user_id=self.executed_by_user_id,
            executed_by_user_name=self.executed_by_user_name,
            executed_at=self.executed_at,
            note=self.note,
            summary=RunSummary.from_json(self.summary) if self.summary is not None else None,
            started_at=self.started_at,
            finished_at=self.finished_at,
        )

    @classmethod
    def from_dto(cls, dto: ProcessRun) -> ProcessRunModel:
        return cls(
            process_type=dto.process_type.value,
            scope_type=dto.scope_type.value,
            scope_id=dto.scope_id,
            accounting_period_id=dto.accounting_period_id,
            process_date=dto.process_date,
            transaction_date=dto.transaction_date,
            status=dto.status.value,
            trigger_source=dto.trigger_source.value,
            executed_by_user_id=dto.executed_by_user_id,
            executed_by_user_name=dto.executed_by_user_name,
            executed_at=dto.executed_at,
            started_at=dto.started_at,
            finished_at=dto.finished_at,
            note=dto.note,
            summary=dto.summary.to_json() if dto.summary is not None else None,
        )


class LoanProcessStateModel(TrackedBase):
    """Per (loan, process type) accrual checkpoint."""

    __tablename__ = "loan_process_states"

    __table_args__ = (
        UniqueConstraint("loan_id", "process_type", name="uq_loan_process_state"),
        Index("ix_loan_process_states_last_date", "process_type", "last_processed_date"),
    )

    loan_id: Mapped[int] = mapped_column(ForeignKey("loans.id"), nullable=False)
    process_type: Mapped[str] = mapped_column(String(20), nullable=False)
    last_processed_date: Mapped[date] = mapped_column(Date, nullable=False)
    last_process_run_id: Mapped[int | None] = mapped_column(
        ForeignKey("process_runs.id"), nullable=True
    )
    last_error: Mapped[str | None] = mapped_column(Text, nullable=True)

    def to_dto(self) -> LoanCheckpoint:
        from causation_batch.domain.types import LoanCheckpoint, ProcessType

        return LoanCheckpoint(
            loan_id=self.loan_id,
            process_type=ProcessType(self.process_type),
            last_processed_date=self.last_processed_date,
            last_process_run_id=self.last_process_run_id,
            last_error=self.last_error,
        )
