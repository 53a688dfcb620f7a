"""Structured JSON logging: formatter, request context and configuration."""

import json
import logging
from decimal import Decimal
from io import StringIO
from uuid import uuid4

import pytest

from stock_kernel.domain.order_lifecycle import OrderStatus
from stock_kernel.exceptions import InsufficientStockError
from stock_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    get_logger,
    reset_logging,
)


@pytest.fixture(autouse=True)
def _fresh_logging():
    reset_logging()
    LogContext.clear()
    yield
    LogContext.clear()
    reset_logging()


@pytest.fixture
def json_lines():
    """Configure the kernel logger onto a buffer; returns a reader of parsed lines."""
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    configure_logging(handler=handler)
    return lambda: [json.loads(line) for line in stream.getvalue().splitlines() if line]


class TestStructuredFormatter:

    def test_envelope(self, json_lines):
        get_logger("ledger").info("inventory_record_created")

        (line,) = json_lines()
        assert line["level"] == "INFO"
        assert line["logger"] == "stock_kernel.ledger"
        assert line["message"] == "inventory_record_created"
        assert line["ts"].endswith("+00:00")

    def test_extra_becomes_top_level_fields(self, json_lines):
        get_logger("movements").info(
            "movement_recorded", extra={"seq": 42, "movement_type": "COMPRA"}
        )

        line = json_lines()[0]
        assert (line["seq"], line["movement_type"]) == (42, "COMPRA")

    def test_typed_values_are_serialized(self, json_lines):
        order_id = uuid4()
        get_logger("orders").info(
            "order_reserved",
            extra={"order_id": order_id, "total": Decimal("31.50"), "status": OrderStatus.PENDING},
        )

        line = json_lines()[0]
        assert line["order_id"] == str(order_id)
        assert line["total"] == "31.50"
        assert line["status"] == "PENDING"

    def test_plain_exception(self, json_lines):
        try:
            raise ValueError("boom")
        except ValueError:
            get_logger("x").error("failed", exc_info=True)

        line = json_lines()[0]
        assert line["exc_type"] == "ValueError"
        assert line["exc_message"] == "boom"
        assert "exc_code" not in line
        assert "Traceback" in line["traceback"]

    def test_kernel_exception_payload(self, json_lines):
        try:
            raise InsufficientStockError("p-1", "b-1", requested=5, available=2)
        except InsufficientStockError:
            get_logger("reservations").warning("operation_rejected", exc_info=True)

        line = json_lines()[0]
        assert line["exc_code"] == "INSUFFICIENT_STOCK"
        assert line["exc_product_id"] == "p-1"
        assert (line["exc_requested"], line["exc_available"]) == (5, 2)

    def test_formatter_works_on_a_bare_handler(self):
        stream = StringIO()
        handler = logging.StreamHandler(stream)
        handler.setFormatter(StructuredFormatter())
        handler.emit(logging.LogRecord("elsewhere", logging.WARNING, "f.py", 1, "hi %s", ("there",), None))

        assert json.loads(stream.getvalue())["message"] == "hi there"

    def test_debug_dropped_at_default_level(self, json_lines):
        logger = get_logger("x")
        logger.debug("noise")
        logger.info("signal")

        assert [line["message"] for line in json_lines()] == ["signal"]


class TestLogContext:

    def test_context_merged_into_lines(self, json_lines):
        LogContext.set(correlation_id="abc-123", order_id="ord-456")
        get_logger("x").info("with_context")

        line = json_lines()[0]
        assert (line["correlation_id"], line["order_id"]) == ("abc-123", "ord-456")

    def test_no_context_fields_when_empty(self, json_lines):
        get_logger("x").info("bare")
        assert not {"correlation_id", "actor_id", "order_id", "operation"} & set(json_lines()[0])

    def test_set_merges_and_clear_empties(self):
        LogContext.set(correlation_id="c")
        LogContext.set(actor_id="a", order_id=None)
        assert LogContext.get_all() == {"correlation_id": "c", "actor_id": "a"}

        LogContext.clear()
        assert LogContext.get_all() == {}

    def test_bind_restores_outer_values(self):
        LogContext.set(correlation_id="outer")
        with LogContext.bind(correlation_id="inner", operation="reserve_order"):
            assert LogContext.get_all() == {"correlation_id": "inner", "operation": "reserve_order"}
        assert LogContext.get_all() == {"correlation_id": "outer"}

    def test_bind_restores_on_error(self):
        with pytest.raises(RuntimeError):
            with LogContext.bind(order_id="o-1"):
                raise RuntimeError("inside")
        assert LogContext.get_all() == {}

    def test_unknown_field_rejected(self):
        with pytest.raises(TypeError):
            LogContext.set(tenant="x")


class TestConfigureLogging:

    def test_second_call_is_ignored(self):
        first = logging.NullHandler()
        second = logging.NullHandler()
        configure_logging(handler=first)
        configure_logging(handler=second)
        handlers = logging.getLogger("stock_kernel").handlers
        assert first in handlers
        assert second not in handlers

    def test_kernel_logger_does_not_propagate(self):
        configure_logging(handler=logging.NullHandler(), level=logging.DEBUG)
        kernel = logging.getLogger("stock_kernel")
        assert kernel.propagate is False
        assert kernel.level == logging.DEBUG

    def test_reset_allows_reconfiguration(self):
        first = logging.NullHandler()
        configure_logging(handler=first)
        reset_logging()
        kernel = logging.getLogger("stock_kernel")
        assert first not in kernel.handlers

        second = logging.NullHandler()
        configure_logging(handler=second)
        assert second in kernel.handlers

    def test_reset_leaves_foreign_handlers_attached(self):
        kernel = logging.getLogger("stock_kernel")
        foreign = logging.NullHandler()
        kernel.addHandler(foreign)
        try:
            configure_logging(handler=logging.NullHandler())
            reset_logging()
            assert foreign in kernel.handlers
        finally:
            kernel.removeHandler(foreign)

    def test_child_loggers(self):
        assert get_logger("services.fulfillment").name == "stock_kernel.services.fulfillment"
