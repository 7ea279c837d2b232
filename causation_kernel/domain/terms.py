"""
Terms -- Enumerations shared by the reference data and the engines.

These are the configuration vocabularies stored on credit products, late
interest rules and billing concepts.  They live in the kernel so that both
the ORM models and the pure engines can use them without the engines
depending on persistence.
"""

from enum import Enum


class AccrualMethod(str, Enum):
    """How often a charge is recognised."""

    DAILY = "DAILY"
    MONTHLY = "MONTHLY"


class RateType(str, Enum):
    """How a configured rate percent converts into a period rate."""

    EFFECTIVE_ANNUAL = "EFFECTIVE_ANNUAL"
    EFFECTIVE_MONTHLY = "EFFECTIVE_MONTHLY"
    NOMINAL_MONTHLY = "NOMINAL_MONTHLY"
    NOMINAL_ANNUAL = "NOMINAL_ANNUAL"
    MONTHLY_FLAT = "MONTHLY_FLAT"


class DayCountConvention(str, Enum):
    """Calendar-interval to year-fraction rule."""

    THIRTY_360 = "30_360"
    ACTUAL_360 = "ACTUAL_360"
    ACTUAL_365 = "ACTUAL_365"
    ACTUAL_ACTUAL = "ACTUAL_ACTUAL"


class LateInterestAgeBasis(str, Enum):
    """How days-past-due selects a late-interest rule."""

    OLDEST_OVERDUE_INSTALLMENT = "OLDEST_OVERDUE_INSTALLMENT"
    EACH_INSTALLMENT = "EACH_INSTALLMENT"


class CalcMethod(str, Enum):
    FIXED_AMOUNT = "FIXED_AMOUNT"
    PERCENTAGE = "PERCENTAGE"
    TIERED_FIXED_AMOUNT = "TIERED_FIXED_AMOUNT"
    TIERED_PERCENTAGE = "TIERED_PERCENTAGE"

    @property
    def is_tiered(self) -> bool:
        return self in (CalcMethod.TIERED_FIXED_AMOUNT, CalcMethod.TIERED_PERCENTAGE)


class BaseAmountKind(str, Enum):
    """Which loan figure a percentage billing concept applies to."""

    DISBURSED_AMOUNT = "DISBURSED_AMOUNT"
    PRINCIPAL = "PRINCIPAL"
    OUTSTANDING_BALANCE = "OUTSTANDING_BALANCE"
    INSTALLMENT_AMOUNT = "INSTALLMENT_AMOUNT"


class RangeMetric(str, Enum):
    """Metric a tiered rule range is measured against."""

    INSTALLMENT_COUNT = "INSTALLMENT_COUNT"
    CREDIT_AMOUNT = "CREDIT_AMOUNT"


class RoundingMode(str, Enum):
    NEAREST = "NEAREST"
    UP = "UP"
    DOWN = "DOWN"


class ConceptFrequency(str, Enum):
    ONE_TIME = "ONE_TIME"
    MONTHLY = "MONTHLY"
    PER_INSTALLMENT = "PER_INSTALLMENT"


class FinancingMode(str, Enum):
    FINANCED_IN_LOAN = "FINANCED_IN_LOAN"
    DISCOUNTED_FROM_DISBURSEMENT = "DISCOUNTED_FROM_DISBURSEMENT"
    BILLED_SEPARATELY = "BILLED_SEPARATELY"


class EntryNature(str, Enum):
    """Side of an accounting entry or distribution line."""

    DEBIT = "DEBIT"
    CREDIT = "CREDIT"


class AccountDetailType(str, Enum):
    """Subledger role of a GL account."""

    RECEIVABLE = "RECEIVABLE"
    PAYABLE = "PAYABLE"
    NONE = "NONE"
