"""
Tests for causation_kernel.db.engine.

Covers:
- Accessors fail before initialisation
- create_tables builds the kernel and batch schema
- session_scope commits on success and rolls back on error
"""

import pytest
from sqlalchemy import inspect, select

from causation_kernel.db.engine import (
    create_tables,
    get_engine,
    get_session,
    get_session_factory,
    init_engine_from_url,
    reset_engine,
    session_scope,
)
from causation_kernel.models import AccountingPeriod


@pytest.fixture
def sqlite_url(tmp_path):
    yield f"sqlite:///{tmp_path / 'engine.db'}"
    reset_engine()


class TestEngineLifecycle:
    def test_accessors_require_init(self):
        reset_engine()
        for accessor in (get_engine, get_session, get_session_factory):
            with pytest.raises(RuntimeError, match="init_engine_from_url"):
                accessor()

    def test_create_tables(self, sqlite_url):
        engine = init_engine_from_url(sqlite_url)
        assert get_engine() is engine

        create_tables()

        tables = set(inspect(engine).get_table_names())
        assert {"accounting_entries", "portfolio_entries", "process_runs"} <= tables


class TestSessionScope:
    def test_commit_on_success(self, sqlite_url):
        init_engine_from_url(sqlite_url)
        create_tables()

        with session_scope() as session:
            session.add(AccountingPeriod(year=2024, month=6, is_closed=False))

        with session_scope() as session:
            periods = session.execute(select(AccountingPeriod)).scalars().all()
            assert [(p.year, p.month) for p in periods] == [(2024, 6)]

    def test_rollback_on_error(self, sqlite_url):
        init_engine_from_url(sqlite_url)
        create_tables()

        with pytest.raises(RuntimeError, match="boom"):
            with session_scope() as session:
                session.add(AccountingPeriod(year=2024, month=7, is_closed=False))
                session.flush()
                raise RuntimeError("boom")

        with session_scope() as session:
            assert session.execute(select(AccountingPeriod)).scalars().all() == []
