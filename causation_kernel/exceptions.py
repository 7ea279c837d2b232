"""
Typed Exception Hierarchy for the Causation Engine.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

A causation run produces two very different kinds of failure: failures that
block run creation (scope, period, duplicate run) and failures that only
affect a single loan inside a running batch (missing distribution, missing
late-interest rule, unbalanced posting).  Callers must be able to tell them
apart without parsing message text.

Every exception therefore carries:
  1. A TYPED class (catch by type, not message)
  2. A CODE attribute (machine-readable, API-safe)
  3. A KIND attribute from ErrorKind, which an outer HTTP layer maps to a
     status code (BAD_REQUEST -> 400, NOT_FOUND -> 404, CONFLICT -> 409,
     INTERNAL_SERVER_ERROR -> 500)
  4. Structured DATA (not just a message string)

Example:
    try:
        run_service.create_run(...)
    except DuplicateRunError as e:
        log.info("already queued", extra={"existing_run_id": e.existing_run_id})

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    CausationError (base, INTERNAL_SERVER_ERROR)
    |
    +-- CausationValidationError (BAD_REQUEST)
    |   +-- InvalidScopeError
    |   +-- NoOpenPeriodError
    |   +-- ProcessTypeMismatchError
    |   +-- MissingProductAccountsError
    |   +-- InvalidProductTermError
    |   +-- MissingDistributionError
    |   +-- MissingReceivableLineError
    |   +-- UnbalancedPostingError
    |   +-- LateInterestRulesMissingError
    |   +-- LateInterestRuleNotFoundError
    |   +-- MissingInstallmentsError
    |   +-- BillingConceptConfigError
    |   +-- InvalidPortfolioDeltaError
    |
    +-- CausationNotFoundError (NOT_FOUND)
    |   +-- ScopeTargetNotFoundError
    |   +-- NoLoansInScopeError
    |   +-- ProcessRunNotFoundError
    |
    +-- CausationConflictError (CONFLICT)
    |   +-- DuplicateRunError
    |
    +-- EnqueueFailedError (INTERNAL_SERVER_ERROR)

Programming errors in the pure engines (negative weights, bad arguments)
raise ValueError and are not part of this hierarchy.
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from enum import Enum


class ErrorKind(str, Enum):
    """Coarse error category exposed to the surrounding system."""

    BAD_REQUEST = "BAD_REQUEST"
    NOT_FOUND = "NOT_FOUND"
    CONFLICT = "CONFLICT"
    INTERNAL_SERVER_ERROR = "INTERNAL_SERVER_ERROR"

    @property
    def http_status(self) -> int:
        return _HTTP_STATUS[self]


_HTTP_STATUS = {
    ErrorKind.BAD_REQUEST: 400,
    ErrorKind.NOT_FOUND: 404,
    ErrorKind.CONFLICT: 409,
    ErrorKind.INTERNAL_SERVER_ERROR: 500,
}


class CausationError(Exception):
    """Base exception for all causation engine errors."""

    code: str = "CAUSATION_ERROR"
    kind: ErrorKind = ErrorKind.INTERNAL_SERVER_ERROR


# =============================================================================
# Validation errors (BAD_REQUEST)
# =============================================================================


class CausationValidationError(CausationError):
    """Configuration or input is not acceptable."""

    code: str = "VALIDATION_ERROR"
    kind: ErrorKind = ErrorKind.BAD_REQUEST


class InvalidScopeError(CausationValidationError):
    """Non-GENERAL scope without a positive target id."""

    code: str = "INVALID_SCOPE"

    def __init__(self, scope_type: str, scope_id: object):
        self.scope_type = scope_type
        self.scope_id = scope_id
        super().__init__(
            f"A target must be selected for scope {scope_type} (got {scope_id!r})"
        )


class NoOpenPeriodError(CausationValidationError):
    """No open accounting period for the process date's year/month."""

    code: str = "NO_OPEN_PERIOD"

    def __init__(self, process_date: date):
        self.process_date = process_date
        super().__init__(
            f"No open accounting period exists for {process_date.isoformat()}"
        )


class ProcessTypeMismatchError(CausationValidationError):
    """Run belongs to a different process type than the caller expects."""

    code: str = "PROCESS_TYPE_MISMATCH"

    def __init__(self, run_id: int, expected: str, actual: str):
        self.run_id = run_id
        self.expected = expected
        self.actual = actual
        super().__init__(
            f"Run {run_id} is a {actual} run, not {expected}"
        )


class MissingProductAccountsError(CausationValidationError):
    """Credit product has no ledger accounts configured."""

    code: str = "MISSING_PRODUCT_ACCOUNTS"

    def __init__(self, credit_product_id: int, loan_reference: str | None = None):
        self.credit_product_id = credit_product_id
        self.loan_reference = loan_reference
        suffix = f" (loan {loan_reference})" if loan_reference else ""
        super().__init__(
            f"Credit product {credit_product_id} has no accounts configured{suffix}"
        )


class InvalidProductTermError(CausationValidationError):
    """Credit product carries a value outside a known product term."""

    code: str = "INVALID_PRODUCT_TERM"

    def __init__(
        self,
        credit_product_id: int,
        term: str,
        value: object,
        loan_reference: str | None = None,
    ):
        self.credit_product_id = credit_product_id
        self.term = term
        self.value = value
        self.loan_reference = loan_reference
        suffix = f" (loan {loan_reference})" if loan_reference else ""
        super().__init__(
            f"Credit product {credit_product_id} has an unknown {term} {value!r}{suffix}"
        )


class MissingDistributionError(CausationValidationError):
    """Distribution is absent or lacks the debit/credit lines required."""

    code: str = "MISSING_DISTRIBUTION"

    def __init__(self, owner: str, distribution_id: int | None, detail: str):
        self.owner = owner
        self.distribution_id = distribution_id
        self.detail = detail
        super().__init__(
            f"Accounting distribution for {owner} "
            f"(id={distribution_id}) is not usable: {detail}"
        )


class MissingReceivableLineError(CausationValidationError):
    """No debit line targets a RECEIVABLE account."""

    code: str = "MISSING_RECEIVABLE_LINE"

    def __init__(self, owner: str, distribution_id: int | None):
        self.owner = owner
        self.distribution_id = distribution_id
        super().__init__(
            f"Accounting distribution for {owner} (id={distribution_id}) "
            "has no debit line on a receivable account"
        )


class UnbalancedPostingError(CausationValidationError):
    """Debits and credits generated for a loan differ beyond tolerance."""

    code: str = "UNBALANCED_POSTING"

    def __init__(self, loan_id: int, debits: Decimal, credits: Decimal):
        self.loan_id = loan_id
        self.debits = debits
        self.credits = credits
        super().__init__(
            f"Posting for loan {loan_id} is unbalanced: "
            f"debits={debits}, credits={credits}"
        )


class LateInterestRulesMissingError(CausationValidationError):
    """No active late-interest rules for the loan's product and category."""

    code: str = "LATE_INTEREST_RULES_MISSING"

    def __init__(self, loan_reference: str, category_code: str):
        self.loan_reference = loan_reference
        self.category_code = category_code
        super().__init__(
            f"No active late-interest rules for loan {loan_reference} "
            f"({category_code})"
        )


class LateInterestRuleNotFoundError(CausationValidationError):
    """No rule range contains the encountered days-past-due value."""

    code: str = "LATE_INTEREST_RULE_NOT_FOUND"

    def __init__(
        self,
        loan_reference: str,
        days_past_due: int,
        installment_number: int | None = None,
    ):
        self.loan_reference = loan_reference
        self.days_past_due = days_past_due
        self.installment_number = installment_number
        where = (
            f"installment {installment_number} of loan {loan_reference}"
            if installment_number is not None
            else f"loan {loan_reference}"
        )
        super().__init__(
            f"No late-interest rule for {days_past_due} days past due on {where}"
        )


class MissingInstallmentsError(CausationValidationError):
    """Loan has no installment schedule."""

    code: str = "MISSING_INSTALLMENTS"

    def __init__(self, loan_reference: str):
        self.loan_reference = loan_reference
        super().__init__(f"Loan {loan_reference} has no installments")


class BillingConceptConfigError(CausationValidationError):
    """A loan billing concept cannot be accrued as configured."""

    code: str = "BILLING_CONCEPT_CONFIG"

    def __init__(self, loan_reference: str, concept_id: int, detail: str):
        self.loan_reference = loan_reference
        self.concept_id = concept_id
        self.detail = detail
        super().__init__(
            f"Billing concept {concept_id} of loan {loan_reference}: {detail}"
        )


class InvalidPortfolioDeltaError(CausationValidationError):
    """Portfolio delta with a negative charge or payment component."""

    code: str = "INVALID_PORTFOLIO_DELTA"

    def __init__(self, loan_id: int, gl_account_id: int, detail: str):
        self.loan_id = loan_id
        self.gl_account_id = gl_account_id
        self.detail = detail
        super().__init__(
            f"Invalid portfolio delta for loan {loan_id}, account "
            f"{gl_account_id}: {detail}"
        )


# =============================================================================
# Not-found errors
# =============================================================================


class CausationNotFoundError(CausationError):
    """A referenced record does not exist."""

    code: str = "NOT_FOUND"
    kind: ErrorKind = ErrorKind.NOT_FOUND


class ScopeTargetNotFoundError(CausationNotFoundError):
    """Credit product or loan named by the run scope does not exist."""

    code: str = "SCOPE_TARGET_NOT_FOUND"

    def __init__(self, scope_type: str, scope_id: int):
        self.scope_type = scope_type
        self.scope_id = scope_id
        super().__init__(f"{scope_type} with id {scope_id} not found")


class NoLoansInScopeError(CausationNotFoundError):
    """A non-GENERAL scope resolved to an empty candidate list."""

    code: str = "NO_LOANS_IN_SCOPE"

    def __init__(self, scope_type: str, scope_id: int):
        self.scope_type = scope_type
        self.scope_id = scope_id
        super().__init__(
            f"No loans found for scope {scope_type} #{scope_id}"
        )


class ProcessRunNotFoundError(CausationNotFoundError):
    """Process run id does not exist."""

    code: str = "PROCESS_RUN_NOT_FOUND"

    def __init__(self, run_id: int):
        self.run_id = run_id
        super().__init__(f"Process run {run_id} not found")


# =============================================================================
# Conflict errors
# =============================================================================


class CausationConflictError(CausationError):
    """The requested state change conflicts with existing state."""

    code: str = "CONFLICT"
    kind: ErrorKind = ErrorKind.CONFLICT


class DuplicateRunError(CausationConflictError):
    """An active run already exists for the same (type, date, scope) key."""

    code: str = "DUPLICATE_RUN"

    def __init__(
        self,
        process_type: str,
        process_date: date,
        scope_type: str,
        scope_id: int,
        existing_run_id: int,
        existing_status: str,
    ):
        self.process_type = process_type
        self.process_date = process_date
        self.scope_type = scope_type
        self.scope_id = scope_id
        self.existing_run_id = existing_run_id
        self.existing_status = existing_status
        super().__init__(
            f"A run already exists for {process_type} on "
            f"{process_date.isoformat()} scope {scope_type}#{scope_id} "
            f"(run #{existing_run_id}, status {existing_status})"
        )


# =============================================================================
# Infrastructure errors
# =============================================================================


class EnqueueFailedError(CausationError):
    """The run was persisted but could not be handed to the worker queue."""

    code: str = "ENQUEUE_FAILED"

    def __init__(self, run_id: int, reason: str):
        self.run_id = run_id
        self.reason = reason
        super().__init__(f"Unable to enqueue causation run {run_id}")
