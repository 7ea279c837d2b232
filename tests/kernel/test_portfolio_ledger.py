"""
Tests for causation_kernel.services.portfolio_ledger.

Covers:
- Delta merging per balance slot
- Insert of new rows and update of existing ones
- Status transitions (OPEN / CLOSED at the 0.01 tolerance)
- Rejection of negative components before any write
"""

from datetime import date
from decimal import Decimal

import pytest
from sqlalchemy import func, select

from causation_kernel.domain.dtos import PortfolioDelta
from causation_kernel.exceptions import ErrorKind, InvalidPortfolioDeltaError
from causation_kernel.models.ledger import PortfolioEntry, PortfolioEntryStatus
from causation_kernel.services.portfolio_ledger import (
    PortfolioLedger,
    merge_portfolio_deltas,
)


def _delta(loan, gl_account, installment=1, due=date(2024, 6, 30), charge="0", payment="0"):
    return PortfolioDelta(
        gl_account_id=gl_account.id,
        third_party_id=loan.third_party_id,
        loan_id=loan.id,
        installment_number=installment,
        due_date=due,
        charge_delta=Decimal(charge),
        payment_delta=Decimal(payment),
    )


@pytest.fixture
def loan(seed):
    return seed.loan(seed.product())


class TestMergePortfolioDeltas:
    def test_same_slot_is_summed_with_earliest_due_date(self, seed, loan):
        account = seed.chart.interest_receivable
        merged = merge_portfolio_deltas(
            [
                _delta(loan, account, 1, date(2024, 6, 30), charge="10"),
                _delta(loan, account, 1, date(2024, 5, 31), charge="5", payment="2"),
                _delta(loan, account, 2, date(2024, 7, 31), charge="1"),
            ]
        )
        assert len(merged) == 2
        first, second = merged
        assert first.installment_number == 1
        assert first.charge_delta == Decimal("15")
        assert first.payment_delta == Decimal("2")
        assert first.due_date == date(2024, 5, 31)
        assert second.installment_number == 2


class TestApplyDeltas:
    def test_inserts_open_row(self, session, seed, loan, portfolio):
        account = seed.chart.interest_receivable
        touched = PortfolioLedger(session).apply_deltas(
            date(2024, 6, 30), [_delta(loan, account, charge="20000")]
        )

        assert touched == 1
        (row,) = portfolio(loan.id, account.id)
        assert row.charge_amount == Decimal("20000.00")
        assert row.payment_amount == Decimal("0")
        assert row.balance == Decimal("20000.00")
        assert row.status == PortfolioEntryStatus.OPEN.value
        assert row.last_movement_date == date(2024, 6, 30)

    def test_updates_existing_row(self, session, seed, loan, portfolio):
        account = seed.chart.interest_receivable
        ledger = PortfolioLedger(session)
        ledger.apply_deltas(date(2024, 6, 29), [_delta(loan, account, charge="100")])
        ledger.apply_deltas(date(2024, 6, 30), [_delta(loan, account, charge="50")])

        (row,) = portfolio(loan.id, account.id)
        assert row.charge_amount == Decimal("150.00")
        assert row.balance == Decimal("150.00")
        assert row.last_movement_date == date(2024, 6, 30)

    def test_payment_closes_row_within_tolerance(self, session, seed, loan, portfolio):
        account = seed.chart.interest_receivable
        ledger = PortfolioLedger(session)
        ledger.apply_deltas(date(2024, 6, 29), [_delta(loan, account, charge="100")])
        ledger.apply_deltas(date(2024, 6, 30), [_delta(loan, account, payment="99.99")])

        (row,) = portfolio(loan.id, account.id)
        assert row.balance == Decimal("0.01")
        assert row.status == PortfolioEntryStatus.CLOSED.value

    def test_charge_reopens_closed_row(self, session, seed, loan, portfolio):
        account = seed.chart.interest_receivable
        ledger = PortfolioLedger(session)
        ledger.apply_deltas(date(2024, 6, 1), [_delta(loan, account, charge="10", payment="10")])
        assert portfolio(loan.id, account.id)[0].status == PortfolioEntryStatus.CLOSED.value

        ledger.apply_deltas(date(2024, 6, 2), [_delta(loan, account, charge="5")])
        row = portfolio(loan.id, account.id)[0]
        assert row.balance == Decimal("5.00")
        assert row.status == PortfolioEntryStatus.OPEN.value

    def test_negative_component_rejected_before_any_write(self, session, seed, loan):
        account = seed.chart.interest_receivable
        with pytest.raises(InvalidPortfolioDeltaError) as exc_info:
            PortfolioLedger(session).apply_deltas(
                date(2024, 6, 30),
                [
                    _delta(loan, account, 1, charge="10"),
                    _delta(loan, account, 2, charge="-1"),
                ],
            )
        assert exc_info.value.kind is ErrorKind.BAD_REQUEST
        count = session.execute(select(func.count()).select_from(PortfolioEntry)).scalar_one()
        assert count == 0

    def test_logs_applied_rows(self, session, seed, loan, captured_logs):
        PortfolioLedger(session).apply_deltas(
            date(2024, 6, 30), [_delta(loan, seed.chart.interest_receivable, charge="1")]
        )
        records = [r for r in captured_logs() if r["message"] == "portfolio_deltas_applied"]
        assert records and records[0]["rows"] == 1
