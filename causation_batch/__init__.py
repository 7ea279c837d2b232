"""
causation_batch -- Loan causation (accrual) runs.

Creates, executes and reports causation runs for the four process types
(current interest, late interest, insurance, billing concepts).  Each run
selects the loans in its scope, lets the type's calculator compute the
charges owed as of the process date, and posts them as balanced
double-entry accounting entries plus portfolio balance deltas, one loan per
SAVEPOINT.

Architecture:
    causation_batch/ is a top-level package.  It imports from
    causation_kernel and causation_engines; nothing there imports from it.

Invariants:
    CB-1  SAVEPOINT isolation per loan (one failure doesn't abort the run)
    CB-2  At most one blocking run per (type, date, scope type, scope id)
    CB-3  Document code is a pure function of (process type, run id)
    CB-4  Debits equal credits (within 0.01) for every loan posting
    CB-5  A loan checkpoint never moves backward
    CB-6  Clock injection (no datetime.now() calls)
    CB-7  Summary parsing tolerates partial or legacy payloads
    CB-8  Reference data is cached per run, never across runs
"""
