"""
Run queue and worker.

Contract:
    ``RunQueue`` is the hand-off port between run creation and execution:
    ``enqueue(RunJob)`` either accepts the job or raises.  ``RunWorker``
    consumes jobs: one session per job, routed to the executor by job name,
    committed when the executor returns.

Architecture: causation_batch/services.  The queue transport itself is
    pluggable; ``InMemoryRunQueue`` serves tests and single-process
    deployments.

Invariants enforced:
    - A job name maps to exactly one process type.
    - A run-level CausationError is committed before it propagates, so the
      FAILED status the executor recorded survives.
"""

from __future__ import annotations

import threading
from collections import deque
from dataclasses import dataclass
from typing import TYPE_CHECKING, Callable, Protocol, runtime_checkable

from sqlalchemy.orm import Session

from causation_kernel.exceptions import CausationError
from causation_kernel.logging_config import LogContext, get_logger

from causation_batch.domain.types import ProcessRun, ProcessType

if TYPE_CHECKING:
    from causation_batch.services.executor import RunExecutor

logger = get_logger("batch.queue")


@dataclass(frozen=True)
class RunJob:
    """Payload handed to the worker: which executor, which run."""

    job_name: str
    process_run_id: int

    @classmethod
    def for_run(cls, process_type: ProcessType, run_id: int) -> RunJob:
        return cls(job_name=ProcessType(process_type).job_name, process_run_id=run_id)

    @property
    def process_type(self) -> ProcessType:
        return ProcessType.from_job_name(self.job_name)


@runtime_checkable
class RunQueue(Protocol):
    def enqueue(self, job: RunJob) -> None: ...


class InMemoryRunQueue:
    """FIFO queue held in process memory."""

    def __init__(self) -> None:
        self._jobs: deque[RunJob] = deque()
        self._lock = threading.Lock()

    def enqueue(self, job: RunJob) -> None:
        with self._lock:
            self._jobs.append(job)
        logger.debug(
            "job_enqueued",
            extra={"job_name": job.job_name, "run_id": job.process_run_id},
        )

    def dequeue(self) -> RunJob | None:
        with self._lock:
            return self._jobs.popleft() if self._jobs else None

    def pending(self) -> tuple[RunJob, ...]:
        with self._lock:
            return tuple(self._jobs)

    def __len__(self) -> int:
        with self._lock:
            return len(self._jobs)


class RunWorker:
    """Consumer of RunJobs.

    Contract:
        - ``handle()`` executes one job in its own session and commits.
        - ``drain()`` handles every pending job of an InMemoryRunQueue;
          a failing job is logged and the next one still runs.

    Non-goals:
        - Does NOT retry failed runs -- a new run must be created.
    """

    def __init__(
        self,
        session_factory: Callable[[], Session],
        executor_factory: Callable[[Session], RunExecutor],
    ):
        self._session_factory = session_factory
        self._executor_factory = executor_factory

    def handle(self, job: RunJob) -> ProcessRun:
        process_type = job.process_type
        session = self._session_factory()
        try:
            with LogContext.bind(run_id=job.process_run_id, process_type=process_type.value):
                run = self._executor_factory(session).execute(
                    job.process_run_id, process_type
                )
            session.commit()
            return run
        except CausationError:
            session.commit()
            raise
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def drain(self, queue: InMemoryRunQueue) -> list[ProcessRun]:
        """Handle all pending jobs; returns the runs that finished."""
        finished: list[ProcessRun] = []
        while True:
            job = queue.dequeue()
            if job is None:
                break
            try:
                finished.append(self.handle(job))
            except Exception:
                logger.exception(
                    "job_failed",
                    extra={"job_name": job.job_name, "run_id": job.process_run_id},
                )
        return finished

