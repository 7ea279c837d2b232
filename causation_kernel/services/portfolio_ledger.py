"""
PortfolioLedger -- applies charge/payment deltas to portfolio balance rows.

Responsibility:
    Maintains the open balance a loan owes per (receivable account,
    counterparty, loan, installment).  The causation poster hands it the
    receivable deltas of a loan posting; it runs inside the same SAVEPOINT
    as the accounting entry inserts and the checkpoint upsert.

Architecture position:
    Kernel > Services -- imperative shell.

Invariants enforced:
    - balance == charge_amount - payment_amount after every update.
    - status is CLOSED when balance <= 0.01, OPEN otherwise.
    - Negative charge or payment deltas are rejected before any write.
    - Flush-only (K-2).

Failure modes:
    - InvalidPortfolioDeltaError for a negative component.
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from typing import Iterable, Sequence

from sqlalchemy import select

from causation_kernel.db.types import MONEY_TOLERANCE, ZERO, round_money
from causation_kernel.domain.dtos import PortfolioDelta
from causation_kernel.exceptions import InvalidPortfolioDeltaError
from causation_kernel.logging_config import get_logger
from causation_kernel.models.ledger import PortfolioEntry, PortfolioEntryStatus
from causation_kernel.services.base import BaseService

logger = get_logger("services.portfolio_ledger")


def merge_portfolio_deltas(deltas: Iterable[PortfolioDelta]) -> list[PortfolioDelta]:
    """
    Collapse deltas that target the same balance row.

    Charges and payments are summed per slot and the earliest due date is
    kept.  Output order follows first appearance of each slot.
    """
    merged: dict[tuple[int, int, int, int], PortfolioDelta] = {}
    for delta in deltas:
        current = merged.get(delta.slot)
        if current is None:
            merged[delta.slot] = delta
            continue
        merged[delta.slot] = PortfolioDelta(
            gl_account_id=delta.gl_account_id,
            third_party_id=delta.third_party_id,
            loan_id=delta.loan_id,
            installment_number=delta.installment_number,
            due_date=min(current.due_date, delta.due_date),
            charge_delta=current.charge_delta + delta.charge_delta,
            payment_delta=current.payment_delta + delta.payment_delta,
        )
    return list(merged.values())


def _status_for(balance: Decimal) -> str:
    if balance <= MONEY_TOLERANCE:
        return PortfolioEntryStatus.CLOSED.value
    return PortfolioEntryStatus.OPEN.value


class PortfolioLedger(BaseService):
    """
    Writer of portfolio balance rows.

    Contract:
        ``apply_deltas`` merges its input, validates every component, then
        updates existing rows or inserts new ones.  It returns the number
        of rows touched.

    Non-goals:
        - Does NOT post accounting entries.
        - Does NOT recompute aging or provisions.
    """

    def apply_deltas(
        self,
        movement_date: date,
        deltas: Sequence[PortfolioDelta],
    ) -> int:
        merged = merge_portfolio_deltas(deltas)
        for delta in merged:
            if delta.charge_delta < ZERO:
                raise InvalidPortfolioDeltaError(
                    delta.loan_id, delta.gl_account_id, "charge delta is negative"
                )
            if delta.payment_delta < ZERO:
                raise InvalidPortfolioDeltaError(
                    delta.loan_id, delta.gl_account_id, "payment delta is negative"
                )

        for delta in merged:
            charge = round_money(delta.charge_delta)
            payment = round_money(delta.payment_delta)
            row = self.session.execute(
                select(PortfolioEntry).where(
                    PortfolioEntry.gl_account_id == delta.gl_account_id,
                    PortfolioEntry.third_party_id == delta.third_party_id,
                    PortfolioEntry.loan_id == delta.loan_id,
                    PortfolioEntry.installment_number == delta.installment_number,
                )
            ).scalar_one_or_none()

            if row is None:
                balance = round_money(charge - payment)
                self.session.add(
                    PortfolioEntry(
                        gl_account_id=delta.gl_account_id,
                        third_party_id=delta.third_party_id,
                        loan_id=delta.loan_id,
                        installment_number=delta.installment_number,
                        due_date=delta.due_date,
                        charge_amount=charge,
                        payment_amount=payment,
                        balance=balance,
                        last_movement_date=movement_date,
                        status=_status_for(balance),
                    )
                )
                continue

            row.charge_amount = round_money(row.charge_amount + charge)
            row.payment_amount = round_money(row.payment_amount + payment)
            row.balance = round_money(row.charge_amount - row.payment_amount)
            row.status = _status_for(row.balance)
            row.last_movement_date = movement_date

        self.session.flush()
        logger.debug(
            "portfolio_deltas_applied",
            extra={"rows": len(merged), "movement_date": movement_date.isoformat()},
        )
        return len(merged)
