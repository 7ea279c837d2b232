"""Kernel services: accounting period gate and portfolio ledger updater."""

from causation_kernel.services.period_service import PeriodService
from causation_kernel.services.portfolio_ledger import (
    PortfolioLedger,
    merge_portfolio_deltas,
)

__all__ = ["PeriodService", "PortfolioLedger", "merge_portfolio_deltas"]
