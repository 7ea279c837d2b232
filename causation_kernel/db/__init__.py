"""Database layer - engine, base classes and column types."""

from causation_kernel.db.base import UUID, Base, TrackedBase, UUIDString
from causation_kernel.db.engine import (
    create_tables,
    get_engine,
    get_session,
    get_session_factory,
    init_engine_from_url,
    session_scope,
)
from causation_kernel.db.types import (
    MONEY_TOLERANCE,
    Money,
    Percentage,
    Rate,
    is_chargeable,
    round_money,
    to_decimal,
)

__all__ = [
    "init_engine_from_url",
    "get_engine",
    "get_session",
    "get_session_factory",
    "session_scope",
    "create_tables",
    "Base",
    "TrackedBase",
    "UUIDString",
    "UUID",
    "Money",
    "Rate",
    "Percentage",
    "MONEY_TOLERANCE",
    "round_money",
    "to_decimal",
    "is_chargeable",
]
