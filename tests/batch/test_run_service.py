"""
Tests for causation_batch.services.run_service.

Covers:
- Run creation: QUEUED status, scope resolution, transaction date default,
  enqueue of the matching job
- Validation: scope, scope target, open period (nothing written on failure)
- Duplicate-run key over blocking statuses
- Enqueue failure leaves a FAILED run with the queue's message
- Status projection and listing
"""

from datetime import date

import pytest
from sqlalchemy import func, select

from causation_batch.domain.types import (
    ProcessType,
    RunScope,
    RunStatus,
    TriggerSource,
)
from causation_batch.models.process_run import ProcessRunModel
from causation_batch.services.run_service import (
    QUEUED_NOTE,
    ProcessRunService,
    resolve_scope_id,
)
from causation_kernel.exceptions import (
    DuplicateRunError,
    EnqueueFailedError,
    ErrorKind,
    InvalidScopeError,
    NoOpenPeriodError,
    ProcessRunNotFoundError,
    ProcessTypeMismatchError,
    ScopeTargetNotFoundError,
)
from conftest import TEST_ACTOR_ID, TEST_ACTOR_NAME

PROCESS_DATE = date(2024, 6, 30)


class BrokenQueue:
    def enqueue(self, job):
        raise RuntimeError("broker down")


def _create(service, process_type=ProcessType.CURRENT_INTEREST, **kwargs):
    kwargs.setdefault("process_date", PROCESS_DATE)
    kwargs.setdefault("scope_type", RunScope.GENERAL)
    return service.create_run(
        process_type=process_type,
        executed_by_user_id=TEST_ACTOR_ID,
        executed_by_user_name=TEST_ACTOR_NAME,
        **kwargs,
    )


def _run_count(session) -> int:
    return session.execute(select(func.count()).select_from(ProcessRunModel)).scalar_one()


@pytest.fixture
def open_june(seed):
    return seed.period(2024, 6)


class TestResolveScopeId:
    def test_general_is_zero(self):
        assert resolve_scope_id(RunScope.GENERAL, None) == 0
        assert resolve_scope_id("GENERAL", 55) == 0

    def test_targeted_scope_keeps_id(self):
        assert resolve_scope_id(RunScope.LOAN, 12) == 12
        assert resolve_scope_id(RunScope.CREDIT_PRODUCT, "3") == 3

    @pytest.mark.parametrize("scope_id", [None, 0, -4, "abc"])
    def test_targeted_scope_needs_positive_id(self, scope_id):
        with pytest.raises(InvalidScopeError):
            resolve_scope_id(RunScope.LOAN, scope_id)


class TestCreateRun:
    def test_general_run_is_queued(self, session, run_service, queue, clock, open_june):
        created = _create(run_service)

        assert created.status is RunStatus.QUEUED
        assert created.scope_type is RunScope.GENERAL
        assert created.scope_id == 0
        assert created.process_date == PROCESS_DATE
        assert created.transaction_date == PROCESS_DATE

        run = run_service.get_run(created.id)
        assert run.accounting_period_id == open_june.id
        assert run.trigger_source is TriggerSource.MANUAL
        assert run.executed_by_user_id == TEST_ACTOR_ID
        assert run.executed_by_user_name == TEST_ACTOR_NAME
        assert run.executed_at == clock.now()
        assert run.note == QUEUED_NOTE
        assert run.summary is None
        assert run.document_code == f"I{created.id:06d}"

        (job,) = queue.pending()
        assert job.job_name == "causation.current_interest"
        assert job.process_run_id == created.id

    def test_explicit_transaction_date(self, run_service, open_june):
        created = _create(run_service, transaction_date=date(2024, 7, 1))
        assert created.transaction_date == date(2024, 7, 1)

    def test_accepts_stored_codes(self, run_service, queue, open_june):
        created = _create(run_service, process_type="OTHER", scope_type="GENERAL")
        assert run_service.get_run(created.id).process_type is ProcessType.BILLING_CONCEPTS
        assert queue.pending()[0].job_name == "causation.billing_concepts"

    def test_loan_scope(self, run_service, seed, open_june):
        loan = seed.loan(seed.product())
        created = _create(run_service, scope_type=RunScope.LOAN, scope_id=loan.id)
        assert (created.scope_type, created.scope_id) == (RunScope.LOAN, loan.id)

    def test_cron_trigger_is_stored(self, run_service, open_june):
        created = _create(run_service, trigger_source=TriggerSource.CRON)
        assert run_service.get_run(created.id).trigger_source is TriggerSource.CRON

    def test_creation_is_logged(self, run_service, open_june, captured_logs):
        created = _create(run_service)
        records = [r for r in captured_logs() if r["message"] == "run_created"]
        assert records[0]["run_id"] == created.id
        assert records[0]["process_type"] == "INTEREST"


class TestCreateRunValidation:
    def test_missing_target_id(self, session, run_service, open_june):
        with pytest.raises(InvalidScopeError) as exc_info:
            _create(run_service, scope_type=RunScope.LOAN, scope_id=None)
        assert exc_info.value.kind is ErrorKind.BAD_REQUEST
        assert _run_count(session) == 0

    def test_unknown_product(self, session, run_service, open_june):
        with pytest.raises(ScopeTargetNotFoundError) as exc_info:
            _create(run_service, scope_type=RunScope.CREDIT_PRODUCT, scope_id=999)
        assert exc_info.value.kind is ErrorKind.NOT_FOUND
        assert _run_count(session) == 0

    def test_unknown_loan(self, run_service, open_june):
        with pytest.raises(ScopeTargetNotFoundError):
            _create(run_service, scope_type=RunScope.LOAN, scope_id=999)

    def test_no_period(self, session, run_service, queue):
        with pytest.raises(NoOpenPeriodError):
            _create(run_service)
        assert _run_count(session) == 0
        assert len(queue) == 0

    def test_closed_period(self, run_service, seed):
        seed.period(2024, 6, is_closed=True)
        with pytest.raises(NoOpenPeriodError):
            _create(run_service)


class TestDuplicateRuns:
    @pytest.mark.parametrize("status", [RunStatus.QUEUED, RunStatus.RUNNING, RunStatus.COMPLETED])
    def test_blocking_status_conflicts(self, session, run_service, open_june, status):
        first = _create(run_service)
        session.get(ProcessRunModel, first.id).status = status.value
        session.flush()

        with pytest.raises(DuplicateRunError) as exc_info:
            _create(run_service)
        assert exc_info.value.kind is ErrorKind.CONFLICT
        assert exc_info.value.existing_run_id == first.id
        assert exc_info.value.existing_status == status.value
        assert _run_count(session) == 1

    @pytest.mark.parametrize("status", [RunStatus.FAILED, RunStatus.CANCELED])
    def test_finished_without_success_does_not_block(self, session, run_service, open_june, status):
        first = _create(run_service)
        session.get(ProcessRunModel, first.id).status = status.value
        session.flush()

        second = _create(run_service)
        assert second.id != first.id
        assert second.status is RunStatus.QUEUED

    def test_key_includes_type_date_and_scope(self, run_service, seed, open_june):
        loan = seed.loan(seed.product())
        _create(run_service)
        _create(run_service, process_type=ProcessType.LATE_INTEREST)
        _create(run_service, process_date=date(2024, 6, 29))
        _create(run_service, scope_type=RunScope.LOAN, scope_id=loan.id)
        with pytest.raises(DuplicateRunError):
            _create(run_service, scope_type=RunScope.LOAN, scope_id=loan.id)


class TestEnqueueFailure:
    def test_run_is_marked_failed(self, session, clock, open_june):
        service = ProcessRunService(session, BrokenQueue(), clock)

        with pytest.raises(EnqueueFailedError) as exc_info:
            _create(service)

        failed = service.get_run(exc_info.value.run_id)
        assert failed.status is RunStatus.FAILED
        assert failed.note == "Unable to enqueue run: broker down"
        assert failed.finished_at == clock.now()
        assert exc_info.value.reason == "broker down"

    def test_failed_enqueue_does_not_block_retry(self, session, run_service, clock, open_june):
        with pytest.raises(EnqueueFailedError):
            _create(ProcessRunService(session, BrokenQueue(), clock))
        assert _create(run_service).status is RunStatus.QUEUED


class TestStatusAndListing:
    def test_status_of_queued_run(self, run_service, open_june):
        created = _create(run_service)
        view = run_service.get_status(created.id)

        assert view.status is RunStatus.QUEUED
        assert view.reviewed_credits == 0
        assert view.accrued_credits == 0
        assert view.failed_credits == 0
        assert view.errors == ()
        assert view.started_at is None
        assert view.message == QUEUED_NOTE

        payload = view.to_dict()
        assert payload["process_type"] == "INTEREST"
        assert payload["status"] == "QUEUED"
        assert payload["process_date"] == "2024-06-30"
        assert payload["total_accrued_amount"] == "0"

    def test_status_type_mismatch(self, run_service, open_june):
        created = _create(run_service)
        with pytest.raises(ProcessTypeMismatchError):
            run_service.get_status(created.id, ProcessType.INSURANCE)
        assert run_service.get_status(created.id, "INTEREST").id == created.id

    def test_unknown_run(self, run_service):
        with pytest.raises(ProcessRunNotFoundError) as exc_info:
            run_service.get_status(404)
        assert exc_info.value.kind is ErrorKind.NOT_FOUND

    def test_list_runs_newest_first(self, run_service, open_june):
        a = _create(run_service, process_date=date(2024, 6, 1))
        b = _create(run_service, process_date=date(2024, 6, 2))
        c = _create(run_service, process_type=ProcessType.INSURANCE)

        assert [r.run_id for r in run_service.list_runs()] == [c.id, b.id, a.id]
        assert [r.run_id for r in run_service.list_runs(ProcessType.CURRENT_INTEREST)] == [
            b.id,
            a.id,
        ]
        assert [r.run_id for r in run_service.list_runs(limit=1)] == [c.id]
