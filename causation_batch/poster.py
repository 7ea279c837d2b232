"""
DoubleEntryPoster -- turns a loan's charges into ledger rows.

Contract:
    ``post()`` builds the DEBIT and CREDIT legs of every charge, checks the
    balance law for the loan, then writes the entries, applies the
    receivable portfolio deltas and upserts the loan checkpoint.
    ``advance_checkpoint()`` records a processed loan that owed nothing.

Architecture: causation_batch.  Runs inside the executor's per-loan
    SAVEPOINT; a raise anywhere leaves nothing behind once the SAVEPOINT
    rolls back.  Flush-only.

Invariants enforced:
    CB-3 -- Every entry of a run carries the run's document code and a
            sequence that increases by one per leg across the whole run.
    CB-4 -- sum(DEBIT) == sum(CREDIT) within 0.01 per loan, checked
            before any row is added to the session.
    CB-5 -- The checkpoint date is max(existing, process date).
    - Portfolio deltas come only from DEBIT legs on RECEIVABLE accounts.

Failure modes:
    - UnbalancedPostingError when the legs do not balance.
    - InvalidPortfolioDeltaError from the portfolio ledger.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import Decimal

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from causation_kernel.db.types import MONEY_TOLERANCE, ZERO, round_money
from causation_kernel.domain.dtos import PortfolioDelta
from causation_kernel.domain.terms import EntryNature
from causation_kernel.exceptions import UnbalancedPostingError
from causation_kernel.logging_config import get_logger
from causation_kernel.models.ledger import (
    SOURCE_TYPE_PROCESS_RUN,
    AccountingEntry,
    AccountingEntryStatus,
)
from causation_kernel.services.portfolio_ledger import PortfolioLedger
from causation_engines.allocation import (
    PercentageLine,
    allocate_by_percentage,
    allocate_by_weight,
)

from causation_batch.cache import DistributionLeg
from causation_batch.calculators.base import Charge, LoanAccrual
from causation_batch.domain.types import ProcessRun
from causation_batch.models.process_run import LoanProcessStateModel
from causation_batch.selector import LoanCandidate

logger = get_logger("batch.poster")


@dataclass(frozen=True)
class PostingResult:
    loan_id: int
    amount: Decimal
    entries_written: int
    portfolio_rows: int
    first_sequence: int | None
    last_sequence: int | None


def _split_by_percentage(amount: Decimal, legs: tuple[DistributionLeg, ...]) -> list[Decimal]:
    parts = allocate_by_percentage(
        amount,
        [PercentageLine(key=index, percentage=leg.percentage) for index, leg in enumerate(legs)],
    )
    return [parts[index] for index in range(len(legs))]


class DoubleEntryPoster:
    """
    Writer of one run's accounting entries.

    One instance per run.  The sequence counter starts after the highest
    sequence already stored for the run's document code, so a re-delivered
    run continues numbering where the interrupted attempt stopped.
    """

    def __init__(self, session: Session, run: ProcessRun):
        self._session = session
        self._run = run
        self._document_code = run.document_code
        self._portfolio = PortfolioLedger(session)
        stored = session.execute(
            select(func.max(AccountingEntry.sequence)).where(
                AccountingEntry.process_type == run.process_type.value,
                AccountingEntry.document_code == self._document_code,
            )
        ).scalar_one_or_none()
        self._next_sequence = (stored or 0) + 1

    @property
    def document_code(self) -> str:
        return self._document_code

    @property
    def next_sequence(self) -> int:
        return self._next_sequence

    # -------------------------------------------------------------------------
    # Posting
    # -------------------------------------------------------------------------

    def post(self, candidate: LoanCandidate, accrual: LoanAccrual) -> PostingResult:
        sequence = self._next_sequence
        entries: list[AccountingEntry] = []
        deltas: list[PortfolioDelta] = []

        for charge in accrual.charges:
            distribution = charge.distribution
            debit_parts = _split_by_percentage(charge.amount, distribution.debit_legs)
            credit_parts = _split_by_percentage(charge.amount, distribution.credit_legs)

            for leg, amount in zip(distribution.debit_legs, debit_parts):
                if amount <= ZERO:
                    continue
                entries.append(self._entry(candidate, charge, leg, EntryNature.DEBIT, amount, sequence))
                sequence += 1
                if leg.is_receivable:
                    deltas.extend(self._receivable_deltas(candidate, charge, leg, amount))

            for leg, amount in zip(distribution.credit_legs, credit_parts):
                if amount <= ZERO:
                    continue
                entries.append(self._entry(candidate, charge, leg, EntryNature.CREDIT, amount, sequence))
                sequence += 1

        debits = round_money(
            sum((e.amount for e in entries if e.nature == EntryNature.DEBIT.value), ZERO)
        )
        credits = round_money(
            sum((e.amount for e in entries if e.nature == EntryNature.CREDIT.value), ZERO)
        )
        if abs(debits - credits) > MONEY_TOLERANCE:
            raise UnbalancedPostingError(candidate.loan_id, debits, credits)

        self._session.add_all(entries)
        self._session.flush()
        portfolio_rows = self._portfolio.apply_deltas(self._run.transaction_date, deltas)
        self._upsert_checkpoint(candidate.loan_id)

        first = self._next_sequence if entries else None
        last = sequence - 1 if entries else None
        self._next_sequence = sequence

        logger.debug(
            "loan_posted",
            extra={
                "loan_id": candidate.loan_id,
                "document_code": self._document_code,
                "entries": len(entries),
                "debits": str(debits),
                "credits": str(credits),
            },
        )
        return PostingResult(
            loan_id=candidate.loan_id,
            amount=accrual.total,
            entries_written=len(entries),
            portfolio_rows=portfolio_rows,
            first_sequence=first,
            last_sequence=last,
        )

    def advance_checkpoint(self, loan_id: int) -> None:
        """Record ``loan_id`` as processed through the run's process date."""
        self._upsert_checkpoint(loan_id)

    # -------------------------------------------------------------------------
    # Internal helpers
    # -------------------------------------------------------------------------

    def _entry(
        self,
        candidate: LoanCandidate,
        charge: Charge,
        leg: DistributionLeg,
        nature: EntryNature,
        amount: Decimal,
        sequence: int,
    ) -> AccountingEntry:
        return AccountingEntry(
            process_type=self._run.process_type.value,
            document_code=self._document_code,
            sequence=sequence,
            entry_date=self._run.transaction_date,
            gl_account_id=leg.gl_account_id,
            cost_center_id=leg.cost_center_id or candidate.cost_center_id,
            third_party_id=candidate.third_party_id,
            description=charge.description,
            nature=nature.value,
            amount=amount,
            loan_id=candidate.loan_id,
            installment_number=charge.installment_number,
            due_date=charge.due_date,
            status=AccountingEntryStatus.DRAFT.value,
            source_type=SOURCE_TYPE_PROCESS_RUN,
            process_run_id=self._run.run_id,
        )

    def _receivable_deltas(
        self,
        candidate: LoanCandidate,
        charge: Charge,
        leg: DistributionLeg,
        amount: Decimal,
    ) -> list[PortfolioDelta]:
        if not charge.receivable_splits:
            return [
                PortfolioDelta(
                    gl_account_id=leg.gl_account_id,
                    third_party_id=candidate.third_party_id,
                    loan_id=candidate.loan_id,
                    installment_number=charge.installment_number,
                    due_date=charge.due_date,
                    charge_delta=amount,
                )
            ]
        return [
            PortfolioDelta(
                gl_account_id=leg.gl_account_id,
                third_party_id=candidate.third_party_id,
                loan_id=candidate.loan_id,
                installment_number=split.installment_number,
                due_date=split.due_date,
                charge_delta=part,
            )
            for split, part in allocate_by_weight(
                amount, charge.receivable_splits, lambda split: split.weight
            )
            if part > ZERO
        ]

    def _upsert_checkpoint(self, loan_id: int) -> None:
        process_date: date = self._run.process_date
        state = self._session.execute(
            select(LoanProcessStateModel).where(
                LoanProcessStateModel.loan_id == loan_id,
                LoanProcessStateModel.process_type == self._run.process_type.value,
            )
        ).scalar_one_or_none()

        if state is None:
            self._session.add(
                LoanProcessStateModel(
                    loan_id=loan_id,
                    process_type=self._run.process_type.value,
                    last_processed_date=process_date,
                    last_process_run_id=self._run.run_id,
                    last_error=None,
                )
            )
        else:
            state.last_processed_date = max(state.last_processed_date, process_date)
            state.last_process_run_id = self._run.run_id
            state.last_error = None
        self._session.flush()
