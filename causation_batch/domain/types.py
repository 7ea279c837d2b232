"""
Causation run domain types -- enums and frozen DTOs.

All types are immutable.  ORM models convert to/from these via
``to_dto()`` / ``from_dto()``.

Invariants:
    CB-3  Document code is a pure function of (process type, run id)
    CB-7  RunSummary.from_json never raises; every field defaults
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any
from uuid import UUID

from causation_kernel.db.types import ZERO, round_money


# =============================================================================
# Enums
# =============================================================================


class ProcessType(str, Enum):
    """Causation process type.

    Values are the ledger-wide process codes; billing concepts post under
    the generic OTHER code.
    """

    CURRENT_INTEREST = "INTEREST"
    LATE_INTEREST = "LATE_INTEREST"
    INSURANCE = "INSURANCE"
    BILLING_CONCEPTS = "OTHER"

    @property
    def document_prefix(self) -> str:
        return _DOCUMENT_PREFIX[self]

    @property
    def job_name(self) -> str:
        return _JOB_NAME[self]

    @property
    def label(self) -> str:
        return _LABEL[self]

    @classmethod
    def from_job_name(cls, job_name: str) -> ProcessType:
        for process_type, name in _JOB_NAME.items():
            if name == job_name:
                return process_type
        raise KeyError(f"Unknown causation job: {job_name!r}")


_DOCUMENT_PREFIX = {
    ProcessType.CURRENT_INTEREST: "I",
    ProcessType.LATE_INTEREST: "M",
    ProcessType.INSURANCE: "S",
    ProcessType.BILLING_CONCEPTS: "O",
}

_JOB_NAME = {
    ProcessType.CURRENT_INTEREST: "causation.current_interest",
    ProcessType.LATE_INTEREST: "causation.late_interest",
    ProcessType.INSURANCE: "causation.insurance",
    ProcessType.BILLING_CONCEPTS: "causation.billing_concepts",
}

_LABEL = {
    ProcessType.CURRENT_INTEREST: "current interest",
    ProcessType.LATE_INTEREST: "late interest",
    ProcessType.INSURANCE: "insurance",
    ProcessType.BILLING_CONCEPTS: "billing concepts",
}


class RunScope(str, Enum):
    GENERAL = "GENERAL"
    CREDIT_PRODUCT = "CREDIT_PRODUCT"
    LOAN = "LOAN"


class RunStatus(str, Enum):
    """Lifecycle: QUEUED -> RUNNING -> COMPLETED | FAILED.  CANCELED is manual."""

    QUEUED = "QUEUED"
    RUNNING = "RUNNING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"
    CANCELED = "CANCELED"


# A run in one of these states blocks a new run with the same key.
BLOCKING_RUN_STATUSES: tuple[RunStatus, ...] = (
    RunStatus.QUEUED,
    RunStatus.RUNNING,
    RunStatus.COMPLETED,
)


class TriggerSource(str, Enum):
    MANUAL = "MANUAL"
    CRON = "CRON"


class LoanOutcomeStatus(str, Enum):
    ACCRUED = "ACCRUED"
    SKIPPED = "SKIPPED"
    FAILED = "FAILED"


DOCUMENT_NUMBER_MODULUS = 1_000_000


def build_document_code(process_type: ProcessType, run_id: int) -> str:
    """Prefix + 6-digit zero-padded ``run_id % 1_000_000`` (e.g. I000042)."""
    number = run_id % DOCUMENT_NUMBER_MODULUS
    return f"{ProcessType(process_type).document_prefix}{number:06d}"


# =============================================================================
# Per-loan outcomes and the run summary
# =============================================================================


@dataclass(frozen=True)
class LoanFailure:
    loan_id: int
    loan_reference: str
    reason: str

    def to_json(self) -> dict[str, Any]:
        return {
            "loan_id": self.loan_id,
            "loan_reference": self.loan_reference,
            "reason": self.reason,
        }


@dataclass(frozen=True)
class LoanOutcome:
    """Result of one loan's pipeline: accrued, skipped, or failed."""

    loan_id: int
    loan_reference: str
    status: LoanOutcomeStatus
    amount: Decimal = ZERO
    entries_written: int = 0
    reason: str | None = None

    @classmethod
    def accrued(
        cls, loan_id: int, loan_reference: str, amount: Decimal, entries_written: int
    ) -> LoanOutcome:
        return cls(loan_id, loan_reference, LoanOutcomeStatus.ACCRUED, amount, entries_written)

    @classmethod
    def skipped(cls, loan_id: int, loan_reference: str, reason: str) -> LoanOutcome:
        return cls(loan_id, loan_reference, LoanOutcomeStatus.SKIPPED, reason=reason)

    @classmethod
    def failed(cls, loan_id: int, loan_reference: str, reason: str) -> LoanOutcome:
        return cls(loan_id, loan_reference, LoanOutcomeStatus.FAILED, reason=reason)


def _as_int(value: Any) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return 0


def _as_decimal(value: Any) -> Decimal:
    if value is None or isinstance(value, bool):
        return ZERO
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError):
        return ZERO


def _as_failure(value: Any) -> LoanFailure | None:
    if not isinstance(value, dict):
        return None
    reason = value.get("reason", value.get("message"))
    return LoanFailure(
        loan_id=_as_int(value.get("loan_id", value.get("loanId"))),
        loan_reference=str(
            value.get("loan_reference", value.get("creditNumber", "")) or ""
        ),
        reason=str(reason) if reason is not None else "",
    )


@dataclass(frozen=True)
class RunSummary:
    """Aggregate result of a run, persisted as JSON on the run row."""

    reviewed_credits: int = 0
    accrued_credits: int = 0
    failed_credits: int = 0
    total_accrued_amount: Decimal = ZERO
    errors: tuple[LoanFailure, ...] = field(default_factory=tuple)

    @classmethod
    def from_outcomes(cls, outcomes: list[LoanOutcome] | tuple[LoanOutcome, ...]) -> RunSummary:
        accrued = [o for o in outcomes if o.status == LoanOutcomeStatus.ACCRUED]
        failed = [o for o in outcomes if o.status == LoanOutcomeStatus.FAILED]
        return cls(
            reviewed_credits=len(outcomes),
            accrued_credits=len(accrued),
            failed_credits=len(failed),
            total_accrued_amount=round_money(sum((o.amount for o in accrued), ZERO)),
            errors=tuple(
                LoanFailure(o.loan_id, o.loan_reference, o.reason or "")
                for o in failed
            ),
        )

    def to_json(self) -> dict[str, Any]:
        return {
            "reviewed_credits": self.reviewed_credits,
            "accrued_credits": self.accrued_credits,
            "failed_credits": self.failed_credits,
            "total_accrued_amount": str(self.total_accrued_amount),
            "errors": [error.to_json() for error in self.errors],
        }

    @classmethod
    def from_json(cls, value: Any) -> RunSummary:
        """
        Parse a stored summary, defaulting anything missing or malformed.

        Accepts None (a run that has not finished), summaries written with
        camelCase keys, numeric strings, and non-list error payloads.
        """
        if not isinstance(value, dict):
            return cls()

        def pick(snake: str, camel: str) -> Any:
            return value.get(snake, value.get(camel))

        raw_errors = pick("errors", "errors")
        errors: tuple[LoanFailure, ...] = ()
        if isinstance(raw_errors, list):
            errors = tuple(
                failure
                for failure in (_as_failure(item) for item in raw_errors)
                if failure is not None
            )

        return cls(
            reviewed_credits=_as_int(pick("reviewed_credits", "reviewedCredits")),
            accrued_credits=_as_int(pick("accrued_credits", "accruedCredits")),
            failed_credits=_as_int(pick("failed_credits", "failedCredits")),
            total_accrued_amount=_as_decimal(
                pick("total_accrued_amount", "totalAccruedAmount")
            ),
            errors=errors,
        )

    def completion_note(self) -> str:
        return (
            f"Run finished. Loans accrued: {self.accrued_credits}. "
            f"Loans with errors: {self.failed_credits}."
        )


# =============================================================================
# Run DTOs
# =============================================================================


@dataclass(frozen=True)
class ProcessRun:
    """Immutable view of a causation run."""

    run_id: int
    process_type: ProcessType
    scope_type: RunScope
    scope_id: int
    process_date: date
    transaction_date: date
    status: RunStatus
    accounting_period_id: int
    trigger_source: TriggerSource
    executed_by_user_id: UUID
    executed_by_user_name: str
    executed_at: datetime
    note: str | None = None
    summary: RunSummary | None = None
    started_at: datetime | None = None
    finished_at: datetime | None = None

    @property
    def document_code(self) -> str:
        return build_document_code(self.process_type, self.run_id)


@dataclass(frozen=True)
class CreatedRun:
    """Result of run creation exposed to callers."""

    id: int
    status: RunStatus
    scope_type: RunScope
    scope_id: int
    process_date: date
    transaction_date: date


@dataclass(frozen=True)
class RunStatusView:
    """Read-only projection of a run and its summary."""

    id: int
    process_type: ProcessType
    status: RunStatus
    scope_type: RunScope
    scope_id: int
    process_date: date
    transaction_date: date
    reviewed_credits: int
    accrued_credits: int
    failed_credits: int
    total_accrued_amount: Decimal
    errors: tuple[LoanFailure, ...]
    started_at: str | None
    finished_at: str | None
    message: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "process_type": self.process_type.value,
            "status": self.status.value,
            "scope_type": self.scope_type.value,
            "scope_id": self.scope_id,
            "process_date": self.process_date.isoformat(),
            "transaction_date": self.transaction_date.isoformat(),
            "reviewed_credits": self.reviewed_credits,
            "accrued_credits": self.accrued_credits,
            "failed_credits": self.failed_credits,
            "total_accrued_amount": str(self.total_accrued_amount),
            "errors": [error.to_json() for error in self.errors],
            "started_at": self.started_at,
            "finished_at": self.finished_at,
            "message": self.message,
        }


@dataclass(frozen=True)
class LoanCheckpoint:
    """Last date through which a loan was accrued for a process type."""

    loan_id: int
    process_type: ProcessType
    last_processed_date: date
    last_process_run_id: int | None
    last_error: str | None = None
