"""Tests for the structured logging system (lpo_kernel/logging_config.py)."""

import json
import logging
from datetime import date
from decimal import Decimal
from io import StringIO
from uuid import uuid4

import pytest

from lpo_kernel.exceptions import OverReceiptError
from lpo_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    get_logger,
    reset_logging,
)


@pytest.fixture
def stream():
    """Route the ``lpo`` hierarchy to a private stream for one test."""
    reset_logging()
    buffer = StringIO()
    handler = logging.StreamHandler(buffer)
    configure_logging(level=logging.DEBUG, handler=handler)
    yield buffer
    reset_logging()
    configure_logging(level=logging.DEBUG)


def _parse_all_logs(buffer: StringIO) -> list[dict]:
    lines = buffer.getvalue().strip().split("\n")
    return [json.loads(line) for line in lines if line]


# ---------------------------------------------------------------------------
# StructuredFormatter
# ---------------------------------------------------------------------------


class TestStructuredFormatter:

    def test_one_json_object_per_record(self, stream):
        logger = get_logger("test")
        logger.info("first")
        logger.warning("second")
        records = _parse_all_logs(stream)
        assert [r["message"] for r in records] == ["first", "second"]
        assert records[1]["level"] == "WARNING"
        assert records[0]["logger"] == "lpo.test"
        assert "ts" in records[0]

    def test_extra_fields_are_serialized(self, stream):
        order_id = uuid4()
        get_logger("test").info(
            "payload",
            extra={"order_id": order_id, "amount": Decimal("157.500"), "on": date(2024, 1, 1)},
        )
        record = _parse_all_logs(stream)[0]
        assert record["order_id"] == str(order_id)
        assert record["amount"] == "157.500"
        assert record["on"] == "2024-01-01"

    def test_procurement_error_fields_are_flattened(self, stream):
        try:
            raise OverReceiptError("line-1", Decimal("5"), Decimal("4"), order_id="order-1")
        except OverReceiptError:
            get_logger("test").exception("receipt_failed")
        record = _parse_all_logs(stream)[0]
        assert record["exc_type"] == "OverReceiptError"
        assert record["exc_code"] == "OVER_RECEIPT"
        assert record["exc_line_id"] == "line-1"
        assert record["exc_pending"] == "4"
        assert "Traceback" in record["traceback"]

    def test_non_lpo_loggers_untouched(self, stream):
        logging.getLogger("somebody.else").warning("ignored")
        assert _parse_all_logs(stream) == []


# ---------------------------------------------------------------------------
# LogContext
# ---------------------------------------------------------------------------


class TestLogContext:

    def test_bound_fields_appear_and_are_restored(self, stream):
        logger = get_logger("test")
        with LogContext.bind(order_id="o-1", actor_id="a-1", operation="approve_order"):
            logger.info("inside")
        logger.info("outside")
        inside, outside = _parse_all_logs(stream)
        assert inside["order_id"] == "o-1"
        assert inside["operation"] == "approve_order"
        assert "order_id" not in outside

    def test_nested_bind_restores_outer_value(self, stream):
        with LogContext.bind(order_id="outer"):
            with LogContext.bind(order_id="inner"):
                assert LogContext.get_all()["order_id"] == "inner"
            assert LogContext.get_all()["order_id"] == "outer"

    def test_set_rejects_unknown_field(self):
        with pytest.raises(KeyError):
            LogContext.set(tenant="x")

    def test_clear(self):
        LogContext.set(correlation_id="c-1")
        LogContext.clear()
        assert LogContext.get_all() == {}


class TestConfigureLogging:

    def test_idempotent(self, stream):
        before = list(logging.getLogger("lpo").handlers)
        configure_logging()
        assert logging.getLogger("lpo").handlers == before

    def test_does_not_propagate_to_root(self, stream):
        assert logging.getLogger("lpo").propagate is False
