"""Tests for module-level engine state and session_scope."""

import pytest
from sqlalchemy import select

from billing_kernel.db import engine as db_engine
from billing_kernel.models.counterparty import Counterparty


@pytest.fixture
def module_engine():
    eng = db_engine.init_engine_from_url("sqlite://")
    db_engine.create_tables()
    yield eng
    db_engine.drop_tables()
    db_engine.reset_engine()


class TestModuleEngine:

    def test_uninitialized_access_raises(self):
        db_engine.reset_engine()
        with pytest.raises(RuntimeError):
            db_engine.get_session()
        with pytest.raises(RuntimeError):
            db_engine.get_engine()

    def test_sqlite_is_not_postgres(self, module_engine):
        assert db_engine.get_engine() is module_engine
        assert not db_engine.is_postgres()


class TestSessionScope:

    def test_commits_on_success(self, module_engine, test_actor_id):
        with db_engine.session_scope() as session:
            session.add(Counterparty(code="C1", name="One", created_by_id=test_actor_id))

        with db_engine.session_scope() as session:
            assert session.scalars(select(Counterparty.code)).all() == ["C1"]

    def test_rolls_back_on_error(self, module_engine, test_actor_id):
        with pytest.raises(ValueError):
            with db_engine.session_scope() as session:
                session.add(Counterparty(code="C2", name="Two", created_by_id=test_actor_id))
                session.flush()
                raise ValueError("abort")

        with db_engine.session_scope() as session:
            assert session.scalars(select(Counterparty)).all() == []
