"""
Causation settings schema.

Typed, frozen view of the runtime settings.  YAML documents are parsed into
these types by the loader; nothing else in the repository reads
configuration files or environment variables.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from uuid import UUID

from causation_batch.domain.types import ProcessType

# ---------------------------------------------------------------------------
# Scheduler
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class SchedulerSettings:
    """Daily scheduler knobs."""

    enabled_process_types: tuple[ProcessType, ...] = tuple(ProcessType)
    hour: int = 0  # local hour of day, 0..23
    tick_interval_seconds: int = 60
    paused: bool = False


# ---------------------------------------------------------------------------
# System actor
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class SystemActorSettings:
    """Identity recorded on runs created by the scheduler."""

    user_id: UUID = UUID(int=0)
    user_name: str = "SYSTEM_CRON"


# ---------------------------------------------------------------------------
# Root
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class CausationSettings:
    database_url: str = "sqlite:///causation.db"
    echo_sql: bool = False
    log_level: str = "INFO"
    scheduler: SchedulerSettings = field(default_factory=SchedulerSettings)
    system_actor: SystemActorSettings = field(default_factory=SystemActorSettings)
