"""
Module: causation_kernel.models.period
Responsibility: Monthly accounting periods.  A causation run may only be
    created for a process date whose year/month has an open period.
Architecture position: Kernel > Models.  May import from db/base.py only.

Failure modes:
    - NoOpenPeriodError (raised by PeriodService) when the period is missing
      or closed.
"""

from sqlalchemy import Boolean, Integer, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from causation_kernel.db.base import TrackedBase


class AccountingPeriod(TrackedBase):
    __tablename__ = "accounting_periods"

    __table_args__ = (
        UniqueConstraint("year", "month", name="uq_accounting_period_year_month"),
    )

    year: Mapped[int] = mapped_column(Integer, nullable=False)
    month: Mapped[int] = mapped_column(Integer, nullable=False)
    is_closed: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    @property
    def period_code(self) -> str:
        return f"{self.year:04d}-{self.month:02d}"

    def __repr__(self) -> str:
        state = "closed" if self.is_closed else "open"
        return f"<AccountingPeriod {self.period_code}: {state}>"
