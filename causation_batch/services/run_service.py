"""
ProcessRunService -- creation and read-side of causation runs.

Contract:
    ``create_run()`` validates the scope, the open accounting period and the
    duplicate-run key, persists the run as QUEUED and hands it to the
    RunQueue.  ``get_status()`` and ``list_runs()`` project stored runs.

Architecture: causation_batch/services.  Uses the kernel PeriodService and
    a RunQueue port.

Invariants enforced:
    CB-2 -- A run in QUEUED, RUNNING or COMPLETED blocks another run with
            the same (process type, process date, scope type, scope id).
            FAILED and CANCELED runs are superseded.
    CB-6 -- executed_at from the injected Clock.
    CB-7 -- Status projections default every summary field.

Failure modes:
    - InvalidScopeError / ScopeTargetNotFoundError for a bad scope.
    - NoOpenPeriodError when the process date's period is missing or closed.
    - DuplicateRunError for a blocked key.
    - EnqueueFailedError when the queue refuses the job.  The run row has
      already been marked FAILED with the queue's message; the caller
      commits so the failure record survives.

Audit relevance:
    Validation failures write nothing.  Once a run row exists it is never
    deleted.
"""

from __future__ import annotations

from datetime import date
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from causation_kernel.domain.clock import Clock, SystemClock
from causation_kernel.exceptions import (
    DuplicateRunError,
    EnqueueFailedError,
    InvalidScopeError,
    ProcessRunNotFoundError,
    ProcessTypeMismatchError,
    ScopeTargetNotFoundError,
)
from causation_kernel.logging_config import get_logger
from causation_kernel.models.loan import Loan
from causation_kernel.models.product import CreditProduct
from causation_kernel.services.period_service import PeriodService

from causation_batch.domain.types import (
    BLOCKING_RUN_STATUSES,
    CreatedRun,
    ProcessRun,
    ProcessType,
    RunScope,
    RunStatus,
    RunStatusView,
    RunSummary,
    TriggerSource,
)
from causation_batch.models.process_run import ProcessRunModel
from causation_batch.services.queue import RunJob, RunQueue

logger = get_logger("batch.run_service")

QUEUED_NOTE = "Run queued for asynchronous processing"
ENQUEUE_FAILED_NOTE = "Unable to enqueue run: {reason}"
DEFAULT_LIST_LIMIT = 50


def resolve_scope_id(scope_type: RunScope | str, scope_id: int | None) -> int:
    """GENERAL resolves to 0; other scopes need a positive target id."""
    scope = RunScope(scope_type)
    if scope is RunScope.GENERAL:
        return 0
    try:
        resolved = int(scope_id) if scope_id is not None else 0
    except (TypeError, ValueError):
        raise InvalidScopeError(scope.value, scope_id) from None
    if resolved <= 0:
        raise InvalidScopeError(scope.value, scope_id)
    return resolved


class ProcessRunService:
    """Run creation, status and listing.

    Non-goals:
        - Does NOT execute runs -- RunExecutor does, via the worker.
        - Does NOT commit -- the caller owns the unit of work.
    """

    def __init__(
        self,
        session: Session,
        queue: RunQueue,
        clock: Clock | None = None,
    ):
        self._session = session
        self._queue = queue
        self._clock = clock or SystemClock()
        self._periods = PeriodService(session)

    # -------------------------------------------------------------------------
    # Create
    # -------------------------------------------------------------------------

    def create_run(
        self,
        process_type: ProcessType | str,
        process_date: date,
        scope_type: RunScope | str,
        executed_by_user_id: UUID,
        executed_by_user_name: str,
        scope_id: int | None = None,
        transaction_date: date | None = None,
        trigger_source: TriggerSource | str = TriggerSource.MANUAL,
    ) -> CreatedRun:
        """Validate, persist as QUEUED and enqueue a run.

        ``transaction_date`` (the posting date of the entries) defaults to
        ``process_date``.

        Raises:
            InvalidScopeError, ScopeTargetNotFoundError, NoOpenPeriodError,
            DuplicateRunError, EnqueueFailedError.
        """
        process_type = ProcessType(process_type)
        scope = RunScope(scope_type)
        resolved_scope_id = resolve_scope_id(scope, scope_id)
        self._validate_scope_target(scope, resolved_scope_id)

        period = self._periods.require_open_period(process_date)

        existing = self._session.execute(
            select(ProcessRunModel)
            .where(
                ProcessRunModel.process_type == process_type.value,
                ProcessRunModel.process_date == process_date,
                ProcessRunModel.scope_type == scope.value,
                ProcessRunModel.scope_id == resolved_scope_id,
                ProcessRunModel.status.in_([s.value for s in BLOCKING_RUN_STATUSES]),
            )
            .order_by(ProcessRunModel.id.desc())
            .limit(1)
        ).scalar_one_or_none()
        if existing is not None:
            raise DuplicateRunError(
                process_type.value,
                process_date,
                scope.value,
                resolved_scope_id,
                existing.id,
                existing.status,
            )

        model = ProcessRunModel(
            process_type=process_type.value,
            scope_type=scope.value,
            scope_id=resolved_scope_id,
            accounting_period_id=period.id,
            process_date=process_date,
            transaction_date=transaction_date or process_date,
            status=RunStatus.QUEUED.value,
            trigger_source=TriggerSource(trigger_source).value,
            executed_by_user_id=executed_by_user_id,
            executed_by_user_name=executed_by_user_name,
            executed_at=self._clock.now(),
            note=QUEUED_NOTE,
            summary=None,
        )
        self._session.add(model)
        self._session.flush()

        logger.info(
            "run_created",
            extra={
                "run_id": model.id,
                "process_type": process_type.value,
                "scope_type": scope.value,
                "scope_id": resolved_scope_id,
                "process_date": process_date.isoformat(),
                "trigger_source": model.trigger_source,
            },
        )

        try:
            self._queue.enqueue(RunJob.for_run(process_type, model.id))
        except Exception as exc:
            reason = str(exc) or type(exc).__name__
            model.status = RunStatus.FAILED.value
            model.finished_at = self._clock.now()
            model.note = ENQUEUE_FAILED_NOTE.format(reason=reason)
            self._session.flush()
            logger.error(
                "run_enqueue_failed",
                extra={"run_id": model.id, "reason": reason},
            )
            raise EnqueueFailedError(model.id, reason) from exc

        return CreatedRun(
            id=model.id,
            status=RunStatus(model.status),
            scope_type=scope,
            scope_id=resolved_scope_id,
            process_date=model.process_date,
            transaction_date=model.transaction_date,
        )

    # -------------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------------

    def get_run(self, run_id: int) -> ProcessRun:
        """
        Raises:
            ProcessRunNotFoundError: If run_id does not exist.
        """
        model = self._session.get(ProcessRunModel, run_id)
        if model is None:
            raise ProcessRunNotFoundError(run_id)
        return model.to_dto()

    def get_status(
        self,
        run_id: int,
        process_type: ProcessType | str | None = None,
    ) -> RunStatusView:
        """Status projection; counters default to zero until the run finishes."""
        run = self.get_run(run_id)
        if process_type is not None and run.process_type is not ProcessType(process_type):
            raise ProcessTypeMismatchError(
                run_id, ProcessType(process_type).value, run.process_type.value
            )
        summary = run.summary or RunSummary()
        return RunStatusView(
            id=run.run_id,
            process_type=run.process_type,
            status=run.status,
            scope_type=run.scope_type,
            scope_id=run.scope_id,
            process_date=run.process_date,
            transaction_date=run.transaction_date,
            reviewed_credits=summary.reviewed_credits,
            accrued_credits=summary.accrued_credits,
            failed_credits=summary.failed_credits,
            total_accrued_amount=summary.total_accrued_amount,
            errors=summary.errors,
            started_at=run.started_at.isoformat() if run.started_at else None,
            finished_at=run.finished_at.isoformat() if run.finished_at else None,
            message=run.note or "",
        )

    def list_runs(
        self,
        process_type: ProcessType | str | None = None,
        limit: int = DEFAULT_LIST_LIMIT,
    ) -> tuple[ProcessRun, ...]:
        """Most recent runs first."""
        stmt = select(ProcessRunModel)
        if process_type is not None:
            stmt = stmt.where(ProcessRunModel.process_type == ProcessType(process_type).value)
        models = self._session.execute(
            stmt.order_by(ProcessRunModel.id.desc()).limit(limit)
        ).scalars().all()
        return tuple(model.to_dto() for model in models)

    # -------------------------------------------------------------------------
    # Internal helpers
    # -------------------------------------------------------------------------

    def _validate_scope_target(self, scope: RunScope, scope_id: int) -> None:
        if scope is RunScope.GENERAL:
            return
        target = CreditProduct if scope is RunScope.CREDIT_PRODUCT else Loan
        if self._session.get(target, scope_id) is None:
            raise ScopeTargetNotFoundError(scope.value, scope_id)
