"""
causation_kernel -- Persistence, ledger models and cross-cutting services.

Provides the database layer (declarative base, engine and session scope,
financial column types), structured logging, the typed exception hierarchy,
the injectable clock, the reference-data and ledger ORM models, and the two
ledger-side services the causation engine depends on: the open accounting
period gate and the portfolio ledger updater.

Architecture:
    causation_kernel/ is the innermost package.  It never imports from
    causation_engines/ or causation_batch/.

Invariants:
    K-1  round_money() is the only rounding function for money
    K-2  Services flush, never commit (the caller owns the unit of work)
    K-3  Clock injection (no datetime.now() outside SystemClock)
    K-4  Accounting entries are never mutated after insert
"""
