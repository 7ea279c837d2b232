"""
RunExecutor -- SAVEPOINT-per-loan causation run execution.

Contract:
    ``execute(run_id, process_type)`` picks up a QUEUED run (or a RUNNING
    one re-delivered after a crash), selects its loans, and for each loan
    computes the charges with the process type's calculator and posts them
    with the DoubleEntryPoster.  The run ends COMPLETED with its summary,
    however many loans failed.

Architecture: causation_batch/services.  Imports from causation_batch
    (domain, models, selector, cache, calculators, poster) and kernel
    services.

Invariants enforced:
    CB-1 -- SAVEPOINT isolation per loan: a loan's failure rolls back only
            that loan's writes and is recorded in the summary.
    CB-6 -- All timestamps from the injected Clock.
    CB-8 -- One RunReferenceCache per execute() call.
    - The run row is locked (SELECT ... FOR UPDATE) while it is picked up.
    - A run already COMPLETED, FAILED or CANCELED is returned unchanged.

Failure modes:
    - ProcessRunNotFoundError, ProcessTypeMismatchError before anything is
      written.
    - Any error before the per-loan loop (e.g. NoLoansInScopeError) marks
      the run FAILED with the error message and is re-raised.  With
      ``commit_each_loan`` the FAILED mark is committed before re-raising,
      so the caller's rollback cannot leave the run RUNNING.
"""

from __future__ import annotations

import time
from datetime import date

from sqlalchemy import select
from sqlalchemy.orm import Session

from causation_kernel.domain.clock import Clock, SystemClock
from causation_kernel.exceptions import (
    ProcessRunNotFoundError,
    ProcessTypeMismatchError,
)
from causation_kernel.logging_config import LogContext, get_logger

from causation_batch.cache import RunReferenceCache
from causation_batch.calculators.base import (
    CalculationContext,
    CalculatorRegistry,
    CausationCalculator,
)
from causation_batch.domain.types import (
    LoanOutcome,
    ProcessRun,
    ProcessType,
    RunStatus,
    RunSummary,
)
from causation_batch.models.process_run import LoanProcessStateModel, ProcessRunModel
from causation_batch.poster import DoubleEntryPoster
from causation_batch.selector import LoanCandidate, LoanSelector

logger = get_logger("batch.executor")

RUN_IN_PROGRESS_NOTE = "Run in progress"

_EXECUTABLE_STATUSES = (RunStatus.QUEUED.value, RunStatus.RUNNING.value)


def _error_message(exc: BaseException) -> str:
    message = str(exc).strip()
    return message or type(exc).__name__


class RunExecutor:
    """Causation run engine.

    Contract:
        - ``execute()`` runs the full pipeline with per-loan SAVEPOINTs.
        - With ``commit_each_loan`` the session is committed after the run
          is marked RUNNING and after every loan, so a crash leaves every
          finished loan durable and a re-delivered run resumes through the
          loan checkpoints.

    Non-goals:
        - Does NOT call ``session.commit()`` unless ``commit_each_loan``.
        - Does NOT create runs -- that is ProcessRunService's job.
    """

    def __init__(
        self,
        session: Session,
        calculator_registry: CalculatorRegistry,
        clock: Clock | None = None,
        commit_each_loan: bool = False,
    ):
        self._session = session
        self._registry = calculator_registry
        self._clock = clock or SystemClock()
        self._commit_each_loan = commit_each_loan

    # -------------------------------------------------------------------------
    # Execute
    # -------------------------------------------------------------------------

    def execute(
        self,
        run_id: int,
        process_type: ProcessType | str | None = None,
    ) -> ProcessRun:
        """Execute a run.

        Raises:
            ProcessRunNotFoundError: If run_id does not exist.
            ProcessTypeMismatchError: If the run is of another process type.
        """
        start_time = time.monotonic()

        run_model = self._session.execute(
            select(ProcessRunModel)
            .where(ProcessRunModel.id == run_id)
            .with_for_update()
        ).scalar_one_or_none()

        if run_model is None:
            raise ProcessRunNotFoundError(run_id)

        if process_type is not None and run_model.process_type != ProcessType(process_type).value:
            raise ProcessTypeMismatchError(
                run_id, ProcessType(process_type).value, run_model.process_type
            )

        if run_model.status not in _EXECUTABLE_STATUSES:
            logger.info(
                "run_not_executable",
                extra={"run_id": run_id, "status": run_model.status},
            )
            return run_model.to_dto()

        calculator = self._registry.get(run_model.process_type)

        # Transition to RUNNING
        run_model.status = RunStatus.RUNNING.value
        run_model.started_at = run_model.started_at or self._clock.now()
        run_model.note = RUN_IN_PROGRESS_NOTE
        self._session.flush()
        run = run_model.to_dto()
        if self._commit_each_loan:
            self._session.commit()

        with LogContext.bind(run_id=run.run_id, process_type=run.process_type.value):
            logger.info(
                "run_started",
                extra={
                    "scope_type": run.scope_type.value,
                    "scope_id": run.scope_id,
                    "process_date": run.process_date.isoformat(),
                    "document_code": run.document_code,
                },
            )

            try:
                candidates = LoanSelector(self._session).select(run.scope_type, run.scope_id)
                checkpoints = self._load_checkpoints(run.process_type, candidates)
                cache = RunReferenceCache(self._session, run.process_date)
                context = CalculationContext(
                    session=self._session,
                    cache=cache,
                    process_date=run.process_date,
                    transaction_date=run.transaction_date,
                )
                poster = DoubleEntryPoster(self._session, run)
            except Exception as exc:
                if self._commit_each_loan:
                    # RUNNING is already committed, so FAILED must be as well.
                    self._session.rollback()
                self._fail_run(run_id, _error_message(exc))
                if self._commit_each_loan:
                    self._session.commit()
                raise

            outcomes: list[LoanOutcome] = []
            for candidate in candidates:
                with LogContext.bind(loan_id=candidate.loan_id):
                    outcomes.append(
                        self._process_loan(
                            run,
                            candidate,
                            checkpoints.get(candidate.loan_id),
                            calculator,
                            context,
                            poster,
                        )
                    )
                if self._commit_each_loan:
                    self._session.commit()

            summary = RunSummary.from_outcomes(outcomes)
            run_model = self._session.get(ProcessRunModel, run_id)
            run_model.status = RunStatus.COMPLETED.value
            run_model.finished_at = self._clock.now()
            run_model.summary = summary.to_json()
            run_model.note = summary.completion_note()
            self._session.flush()

            logger.info(
                "run_completed",
                extra={
                    "reviewed_credits": summary.reviewed_credits,
                    "accrued_credits": summary.accrued_credits,
                    "failed_credits": summary.failed_credits,
                    "total_accrued_amount": str(summary.total_accrued_amount),
                    "duration_ms": int((time.monotonic() - start_time) * 1000),
                },
            )

        return run_model.to_dto()

    # -------------------------------------------------------------------------
    # Per loan
    # -------------------------------------------------------------------------

    def _process_loan(
        self,
        run: ProcessRun,
        candidate: LoanCandidate,
        checkpoint: date | None,
        calculator: CausationCalculator,
        context: CalculationContext,
        poster: DoubleEntryPoster,
    ) -> LoanOutcome:
        savepoint = self._session.begin_nested()
        try:
            accrual = calculator.compute_charges(candidate, checkpoint, context)
            if accrual is None:
                savepoint.rollback()
                return LoanOutcome.skipped(
                    candidate.loan_id, candidate.credit_number, "nothing to accrue"
                )

            if not accrual.charges:
                poster.advance_checkpoint(candidate.loan_id)
                savepoint.commit()
                logger.info("loan_processed_zero_charge")
                return LoanOutcome.skipped(
                    candidate.loan_id, candidate.credit_number, "zero charge"
                )

            result = poster.post(candidate, accrual)
            savepoint.commit()
        except Exception as exc:
            savepoint.rollback()
            reason = _error_message(exc)
            self._record_loan_error(run.process_type, candidate.loan_id, reason)
            logger.warning(
                "loan_failed",
                extra={
                    "credit_number": candidate.credit_number,
                    "error_type": type(exc).__name__,
                    "reason": reason,
                },
            )
            return LoanOutcome.failed(candidate.loan_id, candidate.credit_number, reason)

        logger.info(
            "loan_accrued",
            extra={
                "credit_number": candidate.credit_number,
                "amount": str(result.amount),
                "entries": result.entries_written,
            },
        )
        return LoanOutcome.accrued(
            candidate.loan_id,
            candidate.credit_number,
            result.amount,
            result.entries_written,
        )

    # -------------------------------------------------------------------------
    # Internal helpers
    # -------------------------------------------------------------------------

    def _load_checkpoints(
        self,
        process_type: ProcessType,
        candidates: tuple[LoanCandidate, ...],
    ) -> dict[int, date]:
        if not candidates:
            return {}
        rows = self._session.execute(
            select(
                LoanProcessStateModel.loan_id,
                LoanProcessStateModel.last_processed_date,
            ).where(
                LoanProcessStateModel.process_type == process_type.value,
                LoanProcessStateModel.loan_id.in_([c.loan_id for c in candidates]),
            )
        ).all()
        return {loan_id: last_date for loan_id, last_date in rows}

    def _record_loan_error(self, process_type: ProcessType, loan_id: int, reason: str) -> None:
        """Store ``reason`` on the loan's existing checkpoint, if it has one."""
        state = self._session.execute(
            select(LoanProcessStateModel).where(
                LoanProcessStateModel.loan_id == loan_id,
                LoanProcessStateModel.process_type == process_type.value,
            )
        ).scalar_one_or_none()
        if state is not None:
            state.last_error = reason
            self._session.flush()

    def _fail_run(self, run_id: int, message: str) -> None:
        run_model = self._session.get(ProcessRunModel, run_id)
        run_model.status = RunStatus.FAILED.value
        run_model.finished_at = self._clock.now()
        run_model.note = message
        self._session.flush()
        logger.error("run_failed", extra={"reason": message})
