"""
DailyCausationScheduler -- in-process daily trigger for causation runs.

Contract:
    Once per calendar day, at or after the configured hour, creates a
    GENERAL scope CRON run for the previous day for every enabled process
    type, attributed to the system actor.  Execution happens later through
    the queue and the worker.

Architecture: causation_batch/services.  Uses ProcessRunService through a
    factory so every creation gets its own session.

Invariants enforced:
    CB-6 -- "Today" comes from the injected Clock.
    - A DuplicateRunError means another instance (or an earlier tick)
      already created the run; it is ignored.
    - One process type failing never stops the others.
    - Graceful shutdown: ``stop()`` is honoured between process types.
"""

from __future__ import annotations

import threading
from datetime import date, timedelta
from typing import Callable, Sequence
from uuid import UUID

from sqlalchemy.orm import Session

from causation_kernel.domain.clock import Clock, SystemClock
from causation_kernel.exceptions import DuplicateRunError, EnqueueFailedError
from causation_kernel.logging_config import get_logger

from causation_batch.domain.types import ProcessType, RunScope, TriggerSource
from causation_batch.services.run_service import ProcessRunService

logger = get_logger("batch.scheduler")

SYSTEM_USER_ID = UUID("00000000-0000-0000-0000-000000000000")
SYSTEM_USER_NAME = "SYSTEM_CRON"


class DailyCausationScheduler:
    """Daily CRON run creator.

    Contract:
        - ``tick()`` creates the day's runs when due (public for testing).
        - ``start()`` / ``stop()`` for background thread operation.
        - ``paused`` disables ``tick()`` entirely.

    Non-goals:
        - NOT a distributed scheduler (duplicate protection comes from the
          run key, not from leader election).
        - Does NOT execute runs.
    """

    def __init__(
        self,
        session_factory: Callable[[], Session],
        run_service_factory: Callable[[Session], ProcessRunService],
        process_types: Sequence[ProcessType] = tuple(ProcessType),
        clock: Clock | None = None,
        hour: int = 0,
        tick_interval_seconds: int = 60,
        paused: bool = False,
        system_user_id: UUID = SYSTEM_USER_ID,
        system_user_name: str = SYSTEM_USER_NAME,
    ):
        if not 0 <= hour <= 23:
            raise ValueError(f"hour must be within 0..23, got {hour}")
        self._session_factory = session_factory
        self._run_service_factory = run_service_factory
        self._process_types = tuple(ProcessType(t) for t in process_types)
        self._clock = clock or SystemClock()
        self._hour = hour
        self._tick_interval = tick_interval_seconds
        self._paused = paused
        self._system_user_id = system_user_id
        self._system_user_name = system_user_name
        self._last_fired_on: date | None = None
        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None

    # -------------------------------------------------------------------------
    # Public API
    # -------------------------------------------------------------------------

    @property
    def paused(self) -> bool:
        return self._paused

    @property
    def last_fired_on(self) -> date | None:
        return self._last_fired_on

    def tick(self) -> int:
        """Create the day's runs if due.  Returns the number created."""
        if self._paused:
            logger.debug("scheduler_paused")
            return 0

        now = self._clock.now()
        today = now.date()
        if now.hour < self._hour or self._last_fired_on == today:
            return 0

        process_date = today - timedelta(days=1)
        created = 0
        for process_type in self._process_types:
            if self._stop_event.is_set():
                break
            if self._create_run(process_type, process_date):
                created += 1

        self._last_fired_on = today
        return created

    def start(self) -> None:
        """Start the scheduler in a background thread."""
        if self._thread is not None and self._thread.is_alive():
            return

        self._stop_event.clear()
        self._thread = threading.Thread(
            target=self._run_loop,
            name="causation-scheduler",
            daemon=True,
        )
        self._thread.start()
        logger.info(
            "scheduler_started",
            extra={"tick_interval": self._tick_interval, "hour": self._hour},
        )

    def stop(self, timeout: float = 30.0) -> None:
        """Signal stop and wait for the scheduler thread to finish."""
        self._stop_event.set()
        if self._thread is not None and self._thread.is_alive():
            self._thread.join(timeout=timeout)
        logger.info("scheduler_stopped")

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    # -------------------------------------------------------------------------
    # Internal
    # -------------------------------------------------------------------------

    def _run_loop(self) -> None:
        while not self._stop_event.is_set():
            try:
                self.tick()
            except Exception:
                logger.exception("scheduler_tick_exception")
            self._stop_event.wait(timeout=self._tick_interval)

    def _create_run(self, process_type: ProcessType, process_date: date) -> bool:
        session = self._session_factory()
        try:
            created = self._run_service_factory(session).create_run(
                process_type=process_type,
                process_date=process_date,
                scope_type=RunScope.GENERAL,
                transaction_date=process_date,
                executed_by_user_id=self._system_user_id,
                executed_by_user_name=self._system_user_name,
                trigger_source=TriggerSource.CRON,
            )
            session.commit()
            logger.info(
                "scheduler_run_created",
                extra={
                    "run_id": created.id,
                    "process_type": process_type.value,
                    "process_date": process_date.isoformat(),
                },
            )
            return True
        except DuplicateRunError as exc:
            session.rollback()
            logger.debug(
                "scheduler_run_skipped_conflict",
                extra={
                    "process_type": process_type.value,
                    "existing_run_id": exc.existing_run_id,
                },
            )
            return False
        except EnqueueFailedError:
            # The FAILED run row is the failure record; keep it.
            session.commit()
            logger.exception(
                "scheduler_run_failed",
                extra={"process_type": process_type.value},
            )
            return False
        except Exception:
            session.rollback()
            logger.exception(
                "scheduler_run_failed",
                extra={"process_type": process_type.value},
            )
            return False
        finally:
            session.close()
