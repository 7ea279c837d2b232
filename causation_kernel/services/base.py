"""
BaseService -- abstract base for kernel services.

Invariants enforced:
    K-2 -- Services flush within the caller's transaction and never commit
           or roll back.  The run executor owns the per-loan SAVEPOINT and
           the worker owns the commit.
"""

from abc import ABC

from sqlalchemy.orm import Session


class BaseService(ABC):
    """
    Abstract base class for kernel services.

    Contract:
        Accepts a SQLAlchemy ``Session`` from the caller and uses
        ``session.flush()`` to persist changes within the active
        transaction.
    """

    def __init__(self, session: Session):
        self.session = session
