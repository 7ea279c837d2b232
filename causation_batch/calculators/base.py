"""
CausationCalculator protocol, supporting types, and CalculatorRegistry.

Contract:
    ``CausationCalculator`` defines the interface every process type
    implements.  ``CalculatorRegistry`` stores calculators keyed by
    ``process_type``.  ``default_calculator_registry()`` returns a registry
    holding the four built-in calculators.

Architecture:
    causation_batch/calculators.  Calculators read through the session and
    the run's RunReferenceCache; they never write.  Posting is the poster's
    job.

Invariants enforced:
    - Registry: one calculator per process type.
    - A calculator returns None (skip, checkpoint untouched), a LoanAccrual
      with charges, or a LoanAccrual with no charges whose
      ``advance_checkpoint`` is True (processed, zero charge).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Protocol, runtime_checkable

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from causation_kernel.db.types import ZERO, round_money, to_decimal
from causation_kernel.models.ledger import PortfolioEntry, PortfolioEntryStatus
from causation_kernel.models.loan import InstallmentStatus, LoanInstallment

from causation_batch.cache import ResolvedDistribution, RunReferenceCache
from causation_batch.domain.types import ProcessType
from causation_batch.selector import LoanCandidate


# =============================================================================
# Supporting DTOs
# =============================================================================


@dataclass(frozen=True)
class CalculationContext:
    """What a calculator may read while computing one loan's charges."""

    session: Session
    cache: RunReferenceCache
    process_date: date
    transaction_date: date


@dataclass(frozen=True)
class ReceivableSplit:
    """Installment a pooled charge's receivable is pushed back onto."""

    installment_number: int
    due_date: date
    weight: Decimal


@dataclass(frozen=True)
class Charge:
    """One chargeable amount and where it posts.

    ``receivable_splits`` is empty for charges that belong to a single
    installment; otherwise the receivable side is spread over the listed
    installments by weight.
    """

    amount: Decimal
    installment_number: int
    due_date: date
    description: str
    distribution: ResolvedDistribution
    receivable_splits: tuple[ReceivableSplit, ...] = ()


@dataclass(frozen=True)
class LoanAccrual:
    charges: tuple[Charge, ...] = field(default_factory=tuple)
    advance_checkpoint: bool = True

    @property
    def total(self) -> Decimal:
        return round_money(sum((c.amount for c in self.charges), ZERO))

    @classmethod
    def zero_charge(cls) -> LoanAccrual:
        return cls(charges=(), advance_checkpoint=True)


# =============================================================================
# CausationCalculator Protocol
# =============================================================================


@runtime_checkable
class CausationCalculator(Protocol):
    """Interface of a causation process type.

    Contract:
        - ``process_type``: unique key registered in CalculatorRegistry.
        - ``description``: human-readable label for logs.
        - ``compute_charges()``: charges owed by one loan as of the
          context's process date, given the loan's checkpoint.
        - ``resolve_distribution()``: the validated distribution the loan's
          charges post through.

    Non-goals:
        - Does NOT write -- the poster owns entries, deltas and checkpoints.
        - Does NOT catch per-loan errors -- the executor records them.
    """

    @property
    def process_type(self) -> ProcessType: ...

    @property
    def description(self) -> str: ...

    def compute_charges(
        self,
        candidate: LoanCandidate,
        checkpoint: date | None,
        context: CalculationContext,
    ) -> LoanAccrual | None: ...

    def resolve_distribution(
        self,
        candidate: LoanCandidate,
        context: CalculationContext,
    ) -> ResolvedDistribution: ...


# =============================================================================
# Shared reads
# =============================================================================


def open_capital_rows(
    session: Session,
    loan_id: int,
    capital_gl_account_id: int,
) -> list[PortfolioEntry]:
    """OPEN capital balance rows with a positive balance, oldest due first."""
    return list(
        session.execute(
            select(PortfolioEntry)
            .where(
                PortfolioEntry.loan_id == loan_id,
                PortfolioEntry.gl_account_id == capital_gl_account_id,
                PortfolioEntry.status == PortfolioEntryStatus.OPEN.value,
                PortfolioEntry.balance > ZERO,
            )
            .order_by(PortfolioEntry.due_date, PortfolioEntry.installment_number)
        ).scalars().all()
    )


def outstanding_principal(
    session: Session,
    loan_id: int,
    capital_gl_account_id: int,
) -> Decimal:
    total = session.execute(
        select(func.coalesce(func.sum(PortfolioEntry.balance), 0)).where(
            PortfolioEntry.loan_id == loan_id,
            PortfolioEntry.gl_account_id == capital_gl_account_id,
            PortfolioEntry.status == PortfolioEntryStatus.OPEN.value,
            PortfolioEntry.balance > ZERO,
        )
    ).scalar_one()
    return round_money(to_decimal(total))


def billable_installments(session: Session, loan_id: int) -> list[LoanInstallment]:
    """Installments in GENERATED or ACCOUNTED status, by due date."""
    return list(
        session.execute(
            select(LoanInstallment)
            .where(
                LoanInstallment.loan_id == loan_id,
                LoanInstallment.status.in_(
                    [InstallmentStatus.GENERATED.value, InstallmentStatus.ACCOUNTED.value]
                ),
            )
            .order_by(LoanInstallment.due_date, LoanInstallment.installment_number)
        ).scalars().all()
    )


def due_in_window(due_date: date, checkpoint: date | None, process_date: date) -> bool:
    """True when ``due_date`` is in (checkpoint, process_date]."""
    if due_date > process_date:
        return False
    return checkpoint is None or due_date > checkpoint


# =============================================================================
# CalculatorRegistry
# =============================================================================


class CalculatorRegistry:
    """Registry mapping process types to CausationCalculator implementations.

    Contract:
        - ``register()`` adds a calculator; raises ValueError on duplicate.
        - ``get()`` retrieves by process type; raises KeyError if missing.
        - ``list_process_types()`` returns all registered types.
    """

    def __init__(self) -> None:
        self._calculators: dict[ProcessType, CausationCalculator] = {}

    def register(self, calculator: CausationCalculator) -> None:
        """Register a calculator.

        Raises:
            ValueError: If the process type is already registered.
        """
        key = ProcessType(calculator.process_type)
        if key in self._calculators:
            raise ValueError(f"Process type '{key.value}' is already registered")
        self._calculators[key] = calculator

    def get(self, process_type: ProcessType | str) -> CausationCalculator:
        """Retrieve the calculator for ``process_type``.

        Raises:
            KeyError: If no calculator is registered for it.
        """
        try:
            return self._calculators[ProcessType(process_type)]
        except (KeyError, ValueError):
            raise KeyError(
                f"No calculator registered for '{process_type}'. "
                f"Available: {[t.value for t in self.list_process_types()]}"
            ) from None

    def list_process_types(self) -> tuple[ProcessType, ...]:
        return tuple(sorted(self._calculators, key=lambda t: t.value))

    def __len__(self) -> int:
        return len(self._calculators)

    def __contains__(self, process_type: object) -> bool:
        try:
            return ProcessType(process_type) in self._calculators
        except ValueError:
            return False


def default_calculator_registry() -> CalculatorRegistry:
    """Create a registry holding the four built-in calculators."""
    from causation_batch.calculators.billing_concepts import BillingConceptsCalculator
    from causation_batch.calculators.current_interest import CurrentInterestCalculator
    from causation_batch.calculators.insurance import InsuranceCalculator
    from causation_batch.calculators.late_interest import LateInterestCalculator

    registry = CalculatorRegistry()
    registry.register(CurrentInterestCalculator())
    registry.register(LateInterestCalculator())
    registry.register(InsuranceCalculator())
    registry.register(BillingConceptsCalculator())
    return registry
