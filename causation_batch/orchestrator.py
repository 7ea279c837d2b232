"""
CausationOrchestrator -- DI container for causation runs.

Contract:
    Wires the CalculatorRegistry, the run queue and the clock into
    ProcessRunService, RunExecutor, RunWorker and DailyCausationScheduler.
    Single place where causation dependencies are composed.

Architecture: causation_batch (top-level).  Canonical entry point for
    creating and executing runs.

Invariants enforced:
    CB-6 -- Clock injection (every service receives the same Clock).
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Callable

from sqlalchemy.orm import Session

from causation_kernel.domain.clock import Clock, SystemClock
from causation_kernel.logging_config import get_logger

from causation_batch.calculators.base import CalculatorRegistry, default_calculator_registry
from causation_batch.domain.types import ProcessType
from causation_batch.services.executor import RunExecutor
from causation_batch.services.queue import InMemoryRunQueue, RunQueue, RunWorker
from causation_batch.services.run_service import ProcessRunService
from causation_batch.services.scheduler import DailyCausationScheduler

if TYPE_CHECKING:
    from causation_config.schema import CausationSettings

logger = get_logger("batch.orchestrator")


class CausationOrchestrator:
    """DI container for the causation engine.

    Contract:
        - ``from_session()`` factory creates a fully wired orchestrator.
        - ``create_run_service()`` / ``create_executor()`` for one session.
        - ``create_worker()`` / ``create_scheduler()`` take a session factory.

    Non-goals:
        - Does NOT start the scheduler automatically -- caller decides.
        - Does NOT manage session lifecycle -- caller controls commits.
    """

    def __init__(
        self,
        session: Session,
        calculator_registry: CalculatorRegistry,
        queue: RunQueue,
        clock: Clock | None = None,
    ) -> None:
        self._session = session
        self._registry = calculator_registry
        self._queue = queue
        self._clock = clock or SystemClock()

    # -------------------------------------------------------------------------
    # Factory
    # -------------------------------------------------------------------------

    @classmethod
    def from_session(
        cls,
        session: Session,
        clock: Clock | None = None,
        queue: RunQueue | None = None,
        calculator_registry: CalculatorRegistry | None = None,
    ) -> CausationOrchestrator:
        """Create a fully wired orchestrator.

        Args:
            session: SQLAlchemy session for persistence.
            clock: Optional clock for deterministic testing.
            queue: Optional queue port.  Defaults to an InMemoryRunQueue.
            calculator_registry: Optional registry.  Defaults to the four
                built-in calculators.
        """
        return cls(
            session=session,
            calculator_registry=(
                calculator_registry
                if calculator_registry is not None
                else default_calculator_registry()
            ),
            queue=queue if queue is not None else InMemoryRunQueue(),
            clock=clock or SystemClock(),
        )

    # -------------------------------------------------------------------------
    # Services
    # -------------------------------------------------------------------------

    def create_run_service(self, session: Session | None = None) -> ProcessRunService:
        return ProcessRunService(
            session=session or self._session,
            queue=self._queue,
            clock=self._clock,
        )

    def create_executor(
        self,
        session: Session | None = None,
        commit_each_loan: bool = False,
    ) -> RunExecutor:
        return RunExecutor(
            session=session or self._session,
            calculator_registry=self._registry,
            clock=self._clock,
            commit_each_loan=commit_each_loan,
        )

    def create_worker(self, session_factory: Callable[[], Session]) -> RunWorker:
        """Worker committing after every loan of the runs it executes."""

        def executor_factory(session: Session) -> RunExecutor:
            return self.create_executor(session, commit_each_loan=True)

        return RunWorker(session_factory=session_factory, executor_factory=executor_factory)

    def create_scheduler(
        self,
        session_factory: Callable[[], Session],
        settings: CausationSettings | None = None,
    ) -> DailyCausationScheduler:
        """Scheduler configured from ``settings`` (defaults when None)."""

        def run_service_factory(session: Session) -> ProcessRunService:
            return self.create_run_service(session)

        if settings is None:
            return DailyCausationScheduler(
                session_factory=session_factory,
                run_service_factory=run_service_factory,
                clock=self._clock,
            )

        scheduler = settings.scheduler
        return DailyCausationScheduler(
            session_factory=session_factory,
            run_service_factory=run_service_factory,
            process_types=tuple(ProcessType(t) for t in scheduler.enabled_process_types),
            clock=self._clock,
            hour=scheduler.hour,
            tick_interval_seconds=scheduler.tick_interval_seconds,
            paused=scheduler.paused,
            system_user_id=settings.system_actor.user_id,
            system_user_name=settings.system_actor.user_name,
        )

    # -------------------------------------------------------------------------
    # Properties
    # -------------------------------------------------------------------------

    @property
    def session(self) -> Session:
        return self._session

    @property
    def clock(self) -> Clock:
        return self._clock

    @property
    def queue(self) -> RunQueue:
        return self._queue

    @property
    def calculator_registry(self) -> CalculatorRegistry:
        return self._registry
