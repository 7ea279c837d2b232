"""
Pytest fixtures for the causation engine test suite.

Provides:
- In-memory SQLite sessions (SAVEPOINT-capable pysqlite setup)
- File-backed SQLite session factories for multi-session tests
  (worker, scheduler)
- A deterministic clock, captured structured logs
- ``seed``: a builder for chart of accounts, products, loans, schedules
  and portfolio balances
"""

import json
import logging
from dataclasses import dataclass
from datetime import date, datetime, timezone
from decimal import Decimal
from io import StringIO
from itertools import count
from uuid import UUID

import pytest
from sqlalchemy import create_engine, event, select
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

import causation_batch.models  # noqa: F401
import causation_kernel.models  # noqa: F401
from causation_batch.domain.types import ProcessType, RunScope
from causation_batch.models.process_run import LoanProcessStateModel, ProcessRunModel
from causation_batch.services.executor import RunExecutor
from causation_batch.services.queue import InMemoryRunQueue
from causation_batch.services.run_service import ProcessRunService
from causation_batch.calculators.base import default_calculator_registry
from causation_kernel.db.base import Base
from causation_kernel.domain.clock import DeterministicClock
from causation_kernel.domain.terms import (
    AccountDetailType,
    AccrualMethod,
    CalcMethod,
    ConceptFrequency,
    DayCountConvention,
    EntryNature,
    FinancingMode,
    LateInterestAgeBasis,
    RateType,
    RoundingMode,
)
from causation_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)
from causation_kernel.models import (
    AccountingDistribution,
    AccountingDistributionLine,
    AccountingEntry,
    AccountingPeriod,
    BillingConcept,
    BillingConceptRule,
    CostCenter,
    CreditProduct,
    CreditProductAccount,
    GlAccount,
    InstallmentStatus,
    InsuranceCompany,
    LateInterestRule,
    Loan,
    LoanBillingConcept,
    LoanInstallment,
    LoanStatus,
    PortfolioEntry,
    PortfolioEntryStatus,
    ThirdParty,
)


TEST_ACTOR_ID = UUID("5f0c7a52-6d3e-4a8e-9b61-2f1d0c3e7a10")
TEST_ACTOR_NAME = "test.operator"


# =============================================================================
# Logging fixtures
# =============================================================================


@pytest.fixture(autouse=True, scope="session")
def _configure_test_logging():
    """Configure structured logging for the test suite."""
    reset_logging()
    configure_logging(level=logging.DEBUG, stream=StringIO())
    yield
    reset_logging()


@pytest.fixture(autouse=True)
def _clear_log_context():
    """Clear LogContext between tests to prevent cross-test contamination."""
    LogContext.clear()
    yield
    LogContext.clear()


@pytest.fixture
def captured_logs():
    """
    Capture causation logs as parsed JSON dicts.

    Usage::

        def test_something(captured_logs, ...):
            ...
            logs = captured_logs()
            assert any(r["message"] == "run_completed" for r in logs)
    """
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    root = logging.getLogger("causation")
    root.addHandler(handler)

    def _get_records() -> list[dict]:
        lines = stream.getvalue().strip().split("\n")
        return [json.loads(line) for line in lines if line]

    yield _get_records

    root.removeHandler(handler)


# =============================================================================
# Database fixtures
# =============================================================================


def make_sqlite_engine(url: str = "sqlite:///:memory:"):
    """
    SQLite engine on which SAVEPOINT works.

    pysqlite's own transaction handling is switched off and BEGIN is
    emitted by SQLAlchemy instead (the documented pysqlite recipe).
    """
    if url == "sqlite:///:memory:":
        engine = create_engine(
            url,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
    else:
        engine = create_engine(url, connect_args={"check_same_thread": False})

    @event.listens_for(engine, "connect")
    def _do_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _do_begin(conn):
        conn.exec_driver_sql("BEGIN")

    Base.metadata.create_all(engine)
    return engine


@pytest.fixture
def engine():
    engine = make_sqlite_engine()
    yield engine
    engine.dispose()


@pytest.fixture
def session(engine) -> Session:
    session = sessionmaker(bind=engine, expire_on_commit=False)()
    yield session
    session.rollback()
    session.close()


@pytest.fixture
def file_session_factory(tmp_path):
    """Session factory over a file database; one connection per session."""
    engine = make_sqlite_engine(f"sqlite:///{tmp_path / 'causation.db'}")
    yield sessionmaker(bind=engine, expire_on_commit=False)
    engine.dispose()


@pytest.fixture
def clock() -> DeterministicClock:
    return DeterministicClock(datetime(2024, 6, 1, 8, 0, 0, tzinfo=timezone.utc))


@pytest.fixture
def queue() -> InMemoryRunQueue:
    return InMemoryRunQueue()


@pytest.fixture
def run_service(session, queue, clock) -> ProcessRunService:
    return ProcessRunService(session, queue, clock)


@pytest.fixture
def executor(session, clock) -> RunExecutor:
    return RunExecutor(session, default_calculator_registry(), clock)


# =============================================================================
# Seed data
# =============================================================================


@dataclass
class Chart:
    cost_center: CostCenter
    capital: GlAccount
    interest_receivable: GlAccount
    interest_income: GlAccount
    late_receivable: GlAccount
    late_income: GlAccount
    insurance_receivable: GlAccount
    insurance_payable: GlAccount
    fee_income: GlAccount


class Seeder:
    """Builds reference data and loans directly through the ORM."""

    def __init__(self, session: Session):
        self.session = session
        self._ids = count(1)
        self._chart: Chart | None = None

    def _add(self, obj):
        self.session.add(obj)
        self.session.flush()
        return obj

    # -- chart of accounts ---------------------------------------------------

    def gl_account(self, code, name, detail_type=AccountDetailType.NONE) -> GlAccount:
        return self._add(GlAccount(code=code, name=name, detail_type=detail_type.value))

    @property
    def chart(self) -> Chart:
        if self._chart is None:
            self._chart = Chart(
                cost_center=self._add(CostCenter(code="CC-01", name="Head office")),
                capital=self.gl_account("140505", "Consumer loans", AccountDetailType.RECEIVABLE),
                interest_receivable=self.gl_account(
                    "160505", "Interest receivable", AccountDetailType.RECEIVABLE
                ),
                interest_income=self.gl_account("415005", "Interest income"),
                late_receivable=self.gl_account(
                    "160510", "Late interest receivable", AccountDetailType.RECEIVABLE
                ),
                late_income=self.gl_account("415010", "Late interest income"),
                insurance_receivable=self.gl_account(
                    "160515", "Insurance receivable", AccountDetailType.RECEIVABLE
                ),
                insurance_payable=self.gl_account(
                    "233505", "Insurance payable", AccountDetailType.PAYABLE
                ),
                fee_income=self.gl_account("415015", "Fee income"),
            )
        return self._chart

    def distribution(self, name, lines) -> AccountingDistribution:
        """``lines``: (gl_account, percentage, nature[, cost_center]) tuples."""
        distribution = self._add(AccountingDistribution(name=name))
        for line in lines:
            gl_account, percentage, nature = line[:3]
            cost_center = line[3] if len(line) > 3 else None
            self._add(
                AccountingDistributionLine(
                    distribution_id=distribution.id,
                    gl_account_id=gl_account.id,
                    cost_center_id=cost_center.id if cost_center else None,
                    percentage=Decimal(percentage),
                    nature=nature.value,
                )
            )
        return distribution

    def simple_distribution(self, name, debit: GlAccount, credit: GlAccount):
        return self.distribution(
            name,
            [(debit, "100", EntryNature.DEBIT), (credit, "100", EntryNature.CREDIT)],
        )

    # -- periods and parties -------------------------------------------------

    def period(self, year: int, month: int, is_closed: bool = False) -> AccountingPeriod:
        return self._add(AccountingPeriod(year=year, month=month, is_closed=is_closed))

    def third_party(self) -> ThirdParty:
        n = next(self._ids)
        return self._add(ThirdParty(document_number=f"CC{n:08d}", name=f"Borrower {n}"))

    def insurer(self, distribution: AccountingDistribution | None = None) -> InsuranceCompany:
        return self._add(
            InsuranceCompany(
                name="Life Insurer S.A.",
                distribution_id=distribution.id if distribution else None,
            )
        )

    def insurance_distribution(self) -> AccountingDistribution:
        chart = self.chart
        return self.simple_distribution(
            "Insurance", chart.insurance_receivable, chart.insurance_payable
        )

    # -- products ------------------------------------------------------------

    def product(
        self,
        name: str = "Consumer credit",
        *,
        with_accounts: bool = True,
        capital_distribution: AccountingDistribution | None | bool = True,
        interest_distribution: AccountingDistribution | None | bool = True,
        late_interest_distribution: AccountingDistribution | None | bool = True,
        interest_accrual_method: AccrualMethod = AccrualMethod.DAILY,
        interest_rate_type: RateType = RateType.NOMINAL_ANNUAL,
        interest_day_count_convention: DayCountConvention = DayCountConvention.ACTUAL_360,
        late_interest_accrual_method: AccrualMethod = AccrualMethod.DAILY,
        late_interest_rate_type: RateType = RateType.NOMINAL_MONTHLY,
        late_interest_day_count_convention: DayCountConvention = DayCountConvention.ACTUAL_360,
        late_interest_age_basis: LateInterestAgeBasis = LateInterestAgeBasis.OLDEST_OVERDUE_INSTALLMENT,
    ) -> CreditProduct:
        chart = self.chart

        def resolve(value, factory):
            if value is True:
                return factory()
            return value

        capital = resolve(
            capital_distribution,
            lambda: self.distribution("Capital", [(chart.capital, "100", EntryNature.DEBIT)]),
        )
        interest = resolve(
            interest_distribution,
            lambda: self.simple_distribution(
                "Interest", chart.interest_receivable, chart.interest_income
            ),
        )
        late = resolve(
            late_interest_distribution,
            lambda: self.simple_distribution(
                "Late interest", chart.late_receivable, chart.late_income
            ),
        )

        product = self._add(
            CreditProduct(
                name=name,
                capital_distribution_id=capital.id if capital else None,
                interest_distribution_id=interest.id if interest else None,
                late_interest_distribution_id=late.id if late else None,
                interest_accrual_method=interest_accrual_method.value,
                interest_rate_type=interest_rate_type.value,
                interest_day_count_convention=interest_day_count_convention.value,
                late_interest_accrual_method=late_interest_accrual_method.value,
                late_interest_rate_type=late_interest_rate_type.value,
                late_interest_day_count_convention=late_interest_day_count_convention.value,
                late_interest_age_basis=late_interest_age_basis.value,
                cost_center_id=chart.cost_center.id,
            )
        )
        if with_accounts:
            self._add(
                CreditProductAccount(
                    credit_product_id=product.id,
                    capital_gl_account_id=chart.capital.id,
                    interest_gl_account_id=chart.interest_receivable.id,
                    late_interest_gl_account_id=chart.late_receivable.id,
                )
            )
        return product

    def late_rule(
        self,
        product: CreditProduct,
        days_from: int,
        days_to: int | None,
        late_factor: str,
        category_code: str = "A",
        priority: int = 0,
        is_active: bool = True,
        effective_from: date | None = None,
        effective_to: date | None = None,
    ) -> LateInterestRule:
        return self._add(
            LateInterestRule(
                credit_product_id=product.id,
                category_code=category_code,
                days_from=days_from,
                days_to=days_to,
                late_factor=Decimal(late_factor),
                priority=priority,
                is_active=is_active,
                effective_from=effective_from,
                effective_to=effective_to,
            )
        )

    # -- loans ---------------------------------------------------------------

    def loan(
        self,
        product: CreditProduct,
        *,
        financing_factor: str = "24",
        principal_amount: str = "1000000",
        installments: int = 12,
        status: LoanStatus = LoanStatus.ACTIVE,
        category_code: str = "A",
        insurer: InsuranceCompany | None = None,
        insurance_value: str | None = None,
        cost_center: CostCenter | None = None,
    ) -> Loan:
        n = next(self._ids)
        return self._add(
            Loan(
                credit_number=f"{n:06d}",
                credit_product_id=product.id,
                third_party_id=self.third_party().id,
                cost_center_id=cost_center.id if cost_center else None,
                category_code=category_code,
                financing_factor=Decimal(financing_factor),
                principal_amount=Decimal(principal_amount),
                installments=installments,
                insurance_company_id=insurer.id if insurer else None,
                insurance_value=Decimal(insurance_value) if insurance_value else None,
                status=status.value,
            )
        )

    def installment(
        self,
        loan: Loan,
        number: int,
        due_date: date,
        principal_amount: str = "0",
        interest_amount: str = "0",
        insurance_amount: str = "0",
        status: InstallmentStatus = InstallmentStatus.GENERATED,
    ) -> LoanInstallment:
        return self._add(
            LoanInstallment(
                loan_id=loan.id,
                installment_number=number,
                due_date=due_date,
                principal_amount=Decimal(principal_amount),
                interest_amount=Decimal(interest_amount),
                insurance_amount=Decimal(insurance_amount),
                status=status.value,
            )
        )

    def capital_balance(
        self,
        loan: Loan,
        number: int,
        due_date: date,
        balance: str,
        status: PortfolioEntryStatus = PortfolioEntryStatus.OPEN,
    ) -> PortfolioEntry:
        amount = Decimal(balance)
        return self._add(
            PortfolioEntry(
                gl_account_id=self.chart.capital.id,
                third_party_id=loan.third_party_id,
                loan_id=loan.id,
                installment_number=number,
                due_date=due_date,
                charge_amount=amount,
                payment_amount=Decimal("0"),
                balance=amount,
                status=status.value,
            )
        )

    def checkpoint(
        self,
        loan: Loan,
        process_type: ProcessType,
        last_processed_date: date,
    ) -> LoanProcessStateModel:
        return self._add(
            LoanProcessStateModel(
                loan_id=loan.id,
                process_type=process_type.value,
                last_processed_date=last_processed_date,
            )
        )

    # -- billing concepts ----------------------------------------------------

    def billing_concept(self, code: str, name: str | None = None) -> BillingConcept:
        return self._add(BillingConcept(code=code, name=name or f"Concept {code}"))

    def concept_rule(self, concept: BillingConcept, **fields) -> BillingConceptRule:
        fields.setdefault("rounding_mode", RoundingMode.NEAREST.value)
        fields.setdefault("rounding_decimals", 2)
        return self._add(BillingConceptRule(billing_concept_id=concept.id, **fields))

    def loan_concept(
        self,
        loan: Loan,
        concept: BillingConcept,
        *,
        frequency: ConceptFrequency = ConceptFrequency.PER_INSTALLMENT,
        financing_mode: FinancingMode = FinancingMode.BILLED_SEPARATELY,
        calc_method: CalcMethod = CalcMethod.FIXED_AMOUNT,
        gl_account: GlAccount | None = None,
        **fields,
    ) -> LoanBillingConcept:
        fields.setdefault("rounding_mode", RoundingMode.NEAREST.value)
        fields.setdefault("rounding_decimals", 2)
        return self._add(
            LoanBillingConcept(
                loan_id=loan.id,
                billing_concept_id=concept.id,
                frequency=frequency.value,
                financing_mode=financing_mode.value,
                calc_method=calc_method.value,
                gl_account_id=gl_account.id if gl_account else None,
                **fields,
            )
        )


@pytest.fixture
def seed(session) -> Seeder:
    return Seeder(session)


# =============================================================================
# Query helpers
# =============================================================================


@pytest.fixture
def create_and_execute(run_service, executor):
    """Create a run through the service and execute it in the same session."""

    def _run(
        process_type: ProcessType,
        process_date: date,
        scope_type: RunScope = RunScope.GENERAL,
        scope_id: int | None = None,
        transaction_date: date | None = None,
    ):
        created = run_service.create_run(
            process_type=process_type,
            process_date=process_date,
            scope_type=scope_type,
            scope_id=scope_id,
            transaction_date=transaction_date,
            executed_by_user_id=TEST_ACTOR_ID,
            executed_by_user_name=TEST_ACTOR_NAME,
        )
        return executor.execute(created.id, process_type)

    return _run


@pytest.fixture
def entries(session):
    """Accounting entries of a run (or of everything), by sequence."""

    def _entries(run_id: int | None = None) -> list[AccountingEntry]:
        stmt = select(AccountingEntry)
        if run_id is not None:
            stmt = stmt.where(AccountingEntry.process_run_id == run_id)
        return list(
            session.execute(
                stmt.order_by(AccountingEntry.process_run_id, AccountingEntry.sequence)
            ).scalars().all()
        )

    return _entries


@pytest.fixture
def portfolio(session):
    """Portfolio balance rows of a loan on one GL account, by installment."""

    def _rows(loan_id: int, gl_account_id: int) -> list[PortfolioEntry]:
        return list(
            session.execute(
                select(PortfolioEntry)
                .where(
                    PortfolioEntry.loan_id == loan_id,
                    PortfolioEntry.gl_account_id == gl_account_id,
                )
                .order_by(PortfolioEntry.installment_number)
            ).scalars().all()
        )

    return _rows


@pytest.fixture
def checkpoint_of(session):
    def _checkpoint(loan_id: int, process_type: ProcessType) -> LoanProcessStateModel | None:
        return session.execute(
            select(LoanProcessStateModel).where(
                LoanProcessStateModel.loan_id == loan_id,
                LoanProcessStateModel.process_type == process_type.value,
            )
        ).scalar_one_or_none()

    return _checkpoint


@pytest.fixture
def run_row(session):
    def _run_row(run_id: int) -> ProcessRunModel:
        session.expire_all()
        return session.get(ProcessRunModel, run_id)

    return _run_row


@pytest.fixture
def make_seeder():
    """Seeder class, for tests that seed through their own sessions."""
    return Seeder
