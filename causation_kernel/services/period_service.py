"""
PeriodService -- open accounting period gate.

Responsibility:
    Answers whether a process date falls in an open monthly accounting
    period.  A causation run cannot be created otherwise.

Architecture position:
    Kernel > Services.  Called by ProcessRunService at run creation.

Invariants enforced:
    - Returns frozen ``AccountingPeriodInfo`` DTOs, never ORM entities.
    - Read-only; never flushes.

Failure modes:
    - NoOpenPeriodError from ``require_open_period()`` when the period for
      the date's year/month is missing or closed.
"""

from datetime import date

from sqlalchemy import select

from causation_kernel.domain.dtos import AccountingPeriodInfo
from causation_kernel.exceptions import NoOpenPeriodError
from causation_kernel.logging_config import get_logger
from causation_kernel.models.period import AccountingPeriod
from causation_kernel.services.base import BaseService

logger = get_logger("services.period")


class PeriodService(BaseService):
    """Lookup of monthly accounting periods."""

    @staticmethod
    def _to_dto(period: AccountingPeriod) -> AccountingPeriodInfo:
        return AccountingPeriodInfo(
            id=period.id,
            year=period.year,
            month=period.month,
            is_closed=period.is_closed,
        )

    def get_open_period(self, as_of: date) -> AccountingPeriodInfo | None:
        """Open period for ``as_of``'s year and month, or None."""
        period = self.session.execute(
            select(AccountingPeriod).where(
                AccountingPeriod.year == as_of.year,
                AccountingPeriod.month == as_of.month,
                AccountingPeriod.is_closed == False,  # noqa: E712
            )
        ).scalar_one_or_none()
        return self._to_dto(period) if period is not None else None

    def require_open_period(self, as_of: date) -> AccountingPeriodInfo:
        """Like ``get_open_period`` but raises NoOpenPeriodError."""
        period = self.get_open_period(as_of)
        if period is None:
            logger.warning(
                "open_period_missing",
                extra={"as_of": as_of.isoformat()},
            )
            raise NoOpenPeriodError(as_of)
        return period
