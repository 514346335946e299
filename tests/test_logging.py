"""Tests for the structured logging system (billing_kernel/logging_config.py)."""

import json
import logging
from io import StringIO
from uuid import uuid4

import pytest

from billing_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    get_logger,
    reset_logging,
)


@pytest.fixture(autouse=True)
def _clean_logging():
    """Reset logging state between tests and restore the suite's DEBUG setup."""
    reset_logging()
    LogContext.clear()
    yield
    LogContext.clear()
    reset_logging()
    configure_logging(level=logging.DEBUG)


def _make_handler() -> tuple[logging.Handler, StringIO]:
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    return handler, stream


def _parse_log(stream: StringIO) -> dict:
    line = stream.getvalue().strip().split("\n")[0]
    return json.loads(line)


def _parse_all_logs(stream: StringIO) -> list[dict]:
    lines = stream.getvalue().strip().split("\n")
    return [json.loads(line) for line in lines if line]


# ---------------------------------------------------------------------------
# StructuredFormatter tests
# ---------------------------------------------------------------------------


class TestStructuredFormatter:

    def test_basic_json_output(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        get_logger("test").info("hello")

        record = _parse_log(stream)
        assert record["level"] == "INFO"
        assert record["message"] == "hello"
        assert record["logger"] == "billing_kernel.test"
        assert "ts" in record

    def test_extra_fields_included(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        get_logger("test").info("allocated", extra={"allocation_count": 2, "payment_thread": "PORTAL"})

        record = _parse_log(stream)
        assert record["allocation_count"] == 2
        assert record["payment_thread"] == "PORTAL"

    def test_context_fields_included(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        with LogContext.bind(counterparty_id="cp-1", actor_id="actor-7"):
            get_logger("test").info("test_msg")

        record = _parse_log(stream)
        assert record["actor_id"] == "actor-7"
        assert record["counterparty_id"] == "cp-1"

    def test_exception_fields(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        try:
            raise ValueError("boom")
        except ValueError:
            get_logger("test").error("failed", exc_info=True)

        record = _parse_log(stream)
        assert record["exc_type"] == "ValueError"
        assert record["exc_message"] == "boom"
        assert "traceback" in record

    def test_billing_exception_code_extracted(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        from billing_kernel.exceptions import TradeReversedError

        try:
            raise TradeReversedError("trade-9")
        except TradeReversedError:
            get_logger("test").error("edit_failed", exc_info=True)

        record = _parse_log(stream)
        assert record["exc_code"] == "TRADE_REVERSED"
        assert record["exc_type"] == "TradeReversedError"
        assert record["exc_trade_id"] == "trade-9"

    def test_decimal_and_uuid_serialized(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        from decimal import Decimal

        uid = uuid4()
        get_logger("test").info("values", extra={"obligation_id": uid, "amount": Decimal("10.50")})

        record = _parse_log(stream)
        assert record["obligation_id"] == str(uid)
        assert record["amount"] == "10.50"

    def test_no_context_fields_when_empty(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        get_logger("test").info("bare_message")

        record = _parse_log(stream)
        assert "counterparty_id" not in record
        assert "actor_id" not in record

    def test_valid_json_every_line(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        logger = get_logger("test")
        logger.info("first")
        logger.warning("second", extra={"k": "v"})
        logger.debug("third")

        logs = _parse_all_logs(stream)
        assert len(logs) == 2
        for record in logs:
            assert {"ts", "level", "logger", "message"} <= record.keys()


# ---------------------------------------------------------------------------
# LogContext tests
# ---------------------------------------------------------------------------


class TestLogContext:

    def test_clear(self):
        with LogContext.bind(counterparty_id="cp"):
            LogContext.clear()
            assert LogContext.current() == {}

    def test_bind_nests_and_restores(self):
        with LogContext.bind(counterparty_id="outer"):
            with LogContext.bind(counterparty_id="inner", actor_id="a"):
                assert LogContext.current() == {"counterparty_id": "inner", "actor_id": "a"}
            assert LogContext.current() == {"counterparty_id": "outer"}

    def test_bind_restores_none(self):
        assert "actor_id" not in LogContext.current()
        with LogContext.bind(actor_id="temp"):
            assert LogContext.current()["actor_id"] == "temp"
        assert "actor_id" not in LogContext.current()

    def test_bind_ignores_unknown_fields(self):
        with LogContext.bind(producer="x", counterparty_id="cp"):
            assert LogContext.current() == {"counterparty_id": "cp"}


# ---------------------------------------------------------------------------
# configure_logging tests
# ---------------------------------------------------------------------------


class TestConfigureLogging:

    def test_idempotent(self):
        h1, _ = _make_handler()
        configure_logging(handler=h1)
        h2, _ = _make_handler()
        configure_logging(handler=h2)
        assert len(logging.getLogger("billing_kernel").handlers) == 1

    def test_get_logger_returns_child(self):
        assert get_logger("services.ledger_committer").name == "billing_kernel.services.ledger_committer"

    def test_logger_hierarchy(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler, level=logging.DEBUG)
        get_logger("deep.nested.module").debug("hierarchy_test")

        record = _parse_log(stream)
        assert record["message"] == "hierarchy_test"
        assert record["logger"] == "billing_kernel.deep.nested.module"
