"""
Pytest fixtures for the billing engine test suite.

Provides:
- Structured logging configured once per session, plus a log capture fixture
- An in-memory SQLite session with all tables, fresh per test
- A file-backed SQLite session factory for threaded tests
- Deterministic clock, actor id and config
- Factories for counterparties and trades (through TradeService)

Environment Variables:
- DATABASE_URL: optional PostgreSQL URL.  Tests marked ``postgres`` are
  skipped unless it is set.
"""

import json
import logging
import os
from datetime import date, datetime, timezone
from decimal import Decimal
from io import StringIO
from uuid import UUID, uuid4

import pytest
from sqlalchemy.orm import Session, sessionmaker

from billing_config import BillingConfig, reset_active_config
from billing_kernel.db.engine import build_engine, create_tables, drop_tables
from billing_kernel.domain.clock import DeterministicClock
from billing_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)
from billing_modules.cash.service import CashSettlementService
from billing_modules.trade.service import TradeService
from billing_services.counterparty_locks import CounterpartyLockRegistry

# Test actor ID for all test operations
TEST_ACTOR_ID = uuid4()


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line("markers", "postgres: mark test as requiring PostgreSQL")
    config.addinivalue_line("markers", "slow_locks: mark test as potentially waiting for locks")


def pytest_collection_modifyitems(config, items):
    if os.environ.get("DATABASE_URL", "").startswith("postgresql"):
        return
    skip = pytest.mark.skip(reason="DATABASE_URL does not point at PostgreSQL")
    for item in items:
        if "postgres" in item.keywords:
            item.add_marker(skip)


# =============================================================================
# Logging fixtures
# =============================================================================


@pytest.fixture(autouse=True, scope="session")
def _configure_test_logging():
    """Configure structured logging for the test suite."""
    reset_logging()
    configure_logging(level=logging.DEBUG)
    yield
    reset_logging()


@pytest.fixture(autouse=True)
def _clear_log_context():
    """Clear LogContext between tests to prevent cross-test contamination."""
    LogContext.clear()
    yield
    LogContext.clear()


@pytest.fixture(autouse=True)
def _reset_config_cache():
    reset_active_config()
    yield
    reset_active_config()


@pytest.fixture
def captured_logs():
    """
    Capture billing_kernel logs as parsed JSON dicts.

    Usage::

        def test_something(captured_logs, cash_service):
            cash_service.commit_cash_event(...)
            logs = captured_logs()
            assert any(r["message"] == "cash_event_committed" for r in logs)
    """
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    root = logging.getLogger("billing_kernel")
    root.addHandler(handler)

    def _get_records() -> list[dict]:
        lines = stream.getvalue().strip().split("\n")
        return [json.loads(line) for line in lines if line]

    yield _get_records

    root.removeHandler(handler)


# =============================================================================
# Core fixtures
# =============================================================================


@pytest.fixture
def test_actor_id() -> UUID:
    return TEST_ACTOR_ID


@pytest.fixture
def deterministic_clock() -> DeterministicClock:
    return DeterministicClock(datetime(2024, 4, 1, 9, 0, 0, tzinfo=timezone.utc))


@pytest.fixture
def billing_config() -> BillingConfig:
    return BillingConfig(database_url="sqlite://", lock_timeout_seconds=5.0)


@pytest.fixture
def engine():
    """Fresh in-memory SQLite database with every table."""
    eng = build_engine("sqlite://")
    create_tables(eng)
    yield eng
    drop_tables(eng)
    eng.dispose()


@pytest.fixture
def session(engine) -> Session:
    factory = sessionmaker(bind=engine, expire_on_commit=False)
    sess = factory()
    yield sess
    sess.rollback()
    sess.close()


@pytest.fixture
def session_factory(tmp_path):
    """
    Session factory over a file-backed SQLite database.

    Each worker thread opens its own session from this factory.
    """
    eng = build_engine(f"sqlite:///{tmp_path / 'billing_test.db'}")
    create_tables(eng)
    yield sessionmaker(bind=eng, expire_on_commit=False)
    eng.dispose()


@pytest.fixture
def lock_registry() -> CounterpartyLockRegistry:
    return CounterpartyLockRegistry(timeout_seconds=5.0)


@pytest.fixture
def trade_service(session, billing_config, deterministic_clock) -> TradeService:
    return TradeService(session, config=billing_config, clock=deterministic_clock)


@pytest.fixture
def cash_service(session, billing_config, deterministic_clock, lock_registry) -> CashSettlementService:
    return CashSettlementService(
        session,
        config=billing_config,
        clock=deterministic_clock,
        lock_registry=lock_registry,
    )


# =============================================================================
# Factories
# =============================================================================


@pytest.fixture
def create_counterparty(trade_service, test_actor_id):
    """Factory: ``create_counterparty(code="C001", name=...)``."""
    counter = {"n": 0}

    def _create(code: str | None = None, name: str | None = None):
        counter["n"] += 1
        code = code or f"CP{counter['n']:03d}"
        return trade_service.register_counterparty(code, name or f"Counterparty {code}", test_actor_id)

    return _create


@pytest.fixture
def create_sale(trade_service, test_actor_id, deterministic_clock):
    """Factory: ``create_sale(counterparty, quantity, rate, trade_date=..., discount_mode=...)``."""

    def _create(
        counterparty,
        quantity_kg="1000",
        rate_per_kg="10",
        trade_date: date = date(2024, 4, 1),
        discount_mode=None,
        bill_number: str = "",
    ):
        deterministic_clock.tick()
        return trade_service.record_sale(
            counterparty_id=counterparty.id,
            trade_date=trade_date,
            quantity_kg=Decimal(quantity_kg),
            rate_per_kg=Decimal(rate_per_kg),
            actor_id=test_actor_id,
            bill_number=bill_number,
            discount_mode=discount_mode,
        )

    return _create


@pytest.fixture
def create_purchase(trade_service, test_actor_id, deterministic_clock):
    """Factory: ``create_purchase(counterparty, quantity, rate, trade_date=...)``."""

    def _create(
        counterparty,
        quantity_kg="1000",
        rate_per_kg="10",
        trade_date: date = date(2024, 4, 1),
        bill_number: str = "",
    ):
        deterministic_clock.tick()
        return trade_service.record_purchase(
            counterparty_id=counterparty.id,
            trade_date=trade_date,
            quantity_kg=Decimal(quantity_kg),
            rate_per_kg=Decimal(rate_per_kg),
            actor_id=test_actor_id,
            bill_number=bill_number,
        )

    return _create
