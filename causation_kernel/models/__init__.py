"""Reference-data and ledger models for the causation kernel."""

from causation_kernel.models.accounting import (
    AccountingDistribution,
    AccountingDistributionLine,
    CostCenter,
    GlAccount,
    ThirdParty,
)
from causation_kernel.models.billing import (
    BillingConcept,
    BillingConceptRule,
    LoanBillingConcept,
)
from causation_kernel.models.ledger import (
    AccountingEntry,
    AccountingEntryStatus,
    PortfolioEntry,
    PortfolioEntryStatus,
)
from causation_kernel.models.loan import (
    ACCRUABLE_LOAN_STATUSES,
    InstallmentStatus,
    Loan,
    LoanInstallment,
    LoanStatus,
)
from causation_kernel.models.period import AccountingPeriod
from causation_kernel.models.product import (
    CreditProduct,
    CreditProductAccount,
    InsuranceCompany,
    LateInterestRule,
)

__all__ = [
    "AccountingDistribution",
    "AccountingDistributionLine",
    "AccountingEntry",
    "AccountingEntryStatus",
    "AccountingPeriod",
    "ACCRUABLE_LOAN_STATUSES",
    "BillingConcept",
    "BillingConceptRule",
    "CostCenter",
    "CreditProduct",
    "CreditProductAccount",
    "GlAccount",
    "InstallmentStatus",
    "InsuranceCompany",
    "LateInterestRule",
    "Loan",
    "LoanBillingConcept",
    "LoanInstallment",
    "LoanStatus",
    "PortfolioEntry",
    "PortfolioEntryStatus",
    "ThirdParty",
]
