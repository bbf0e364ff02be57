"""
Tests for Logging Infrastructure
"""
import pytest
import json
import logging
from datetime import datetime
from decimal import Decimal
from io import StringIO

from marketplace_wallet.core import logging as wallet_logging
from marketplace_wallet.core.logging import (
    get_logger,
    set_correlation_id,
    get_correlation_id,
    generate_correlation_id,
    JSONFormatter,
    log_async_operation
)


class TestCorrelationId:
    """Tests for correlation ID management"""

    @pytest.mark.unit
    def test_generate_correlation_id(self):
        cid = generate_correlation_id()

        assert len(cid) == 8
        assert cid.replace("-", "").isalnum()

    @pytest.mark.unit
    def test_set_and_get_correlation_id(self):
        result = set_correlation_id("test1234")

        assert result == "test1234"
        assert get_correlation_id() == "test1234"

    @pytest.mark.unit
    def test_set_correlation_id_generates_if_none(self):
        result = set_correlation_id(None)

        assert len(result) == 8


class TestJSONFormatter:
    """Tests for JSON log formatting"""

    @pytest.fixture
    def log_stream(self) -> StringIO:
        return StringIO()

    @pytest.fixture
    def json_handler(self, log_stream: StringIO) -> logging.Handler:
        handler = logging.StreamHandler(log_stream)
        handler.setFormatter(JSONFormatter())
        return handler

    @pytest.mark.unit
    def test_json_format_basic(self, log_stream: StringIO, json_handler: logging.Handler):
        logger = logging.getLogger("test_json_basic")
        logger.addHandler(json_handler)
        logger.setLevel(logging.INFO)

        logger.info("Test message")

        log_entry = json.loads(log_stream.getvalue())
        assert log_entry["level"] == "INFO"
        assert log_entry["message"] == "Test message"
        assert log_entry["logger"] == "test_json_basic"
        assert log_entry["timestamp"].endswith("Z")
        assert log_entry["service"] == wallet_logging._service_name

    @pytest.mark.unit
    def test_json_format_with_correlation_id(self, log_stream: StringIO, json_handler: logging.Handler):
        set_correlation_id("testcorr")

        logger = logging.getLogger("test_json_corr")
        logger.addHandler(json_handler)
        logger.setLevel(logging.INFO)

        logger.info("Correlated message")

        log_entry = json.loads(log_stream.getvalue())
        assert log_entry.get("correlation_id") == "testcorr"

    @pytest.mark.unit
    def test_json_format_with_exception(self, log_stream: StringIO, json_handler: logging.Handler):
        logger = logging.getLogger("test_json_exc")
        logger.addHandler(json_handler)
        logger.setLevel(logging.ERROR)

        try:
            raise ValueError("Test error")
        except ValueError:
            logger.error("Error occurred", exc_info=True)

        log_entry = json.loads(log_stream.getvalue())
        assert log_entry["level"] == "ERROR"
        assert "ValueError" in log_entry["exception"]


class TestStructuredLogger:
    """Tests for structured logger functionality"""

    @pytest.mark.unit
    def test_logger_with_extra_data(self):
        log_stream = StringIO()
        handler = logging.StreamHandler(log_stream)
        handler.setFormatter(JSONFormatter())

        logger = get_logger("test.extra")
        logger.addHandler(handler)
        logger.setLevel(logging.INFO)

        logger.info("Coins credited", extra_data={"user_id": 123, "amount": 50})

        log_entry = json.loads(log_stream.getvalue())
        assert log_entry["extra"]["user_id"] == 123
        assert log_entry["extra"]["amount"] == 50

    @pytest.mark.unit
    def test_hebrew_message_not_escaped(self):
        log_stream = StringIO()
        handler = logging.StreamHandler(log_stream)
        handler.setFormatter(JSONFormatter())

        logger = get_logger("test.hebrew")
        logger.addHandler(handler)
        logger.setLevel(logging.INFO)

        logger.info("סיום ריצת פקיעת מטבעות")

        assert "סיום ריצת פקיעת מטבעות" in log_stream.getvalue()


class TestAsyncLoggingDecorator:
    """Tests for async operation logging decorator"""

    @pytest.mark.unit
    async def test_log_async_operation_success(self):
        @log_async_operation("test_operation")
        async def success_func():
            return "success"

        assert await success_func() == "success"

    @pytest.mark.unit
    async def test_log_async_operation_failure(self):
        @log_async_operation("failing_operation")
        async def failing_func():
            raise ValueError("Test failure")

        with pytest.raises(ValueError):
            await failing_func()

    @pytest.mark.unit
    async def test_log_async_operation_reports_result(self):
        log_stream = StringIO()
        handler = logging.StreamHandler(log_stream)
        handler.setFormatter(JSONFormatter())

        @log_async_operation("sweep", result_key="coins_expired")
        async def sweep():
            return 70

        # הלוגר נקבע לפי המודול של הפונקציה המקושטת
        logger = get_logger(sweep.__module__)
        logger.addHandler(handler)
        logger.setLevel(logging.INFO)
        try:
            assert await sweep() == 70
        finally:
            logger.removeHandler(handler)

        log_entry = json.loads(log_stream.getvalue().splitlines()[-1])
        assert log_entry["message"] == "Completed sweep"
        assert log_entry["extra"]["coins_expired"] == 70
        assert log_entry["extra"]["status"] == "completed"


class TestJSONSerialization:
    """Money and timestamps in extra_data"""

    @pytest.mark.unit
    def test_decimal_and_datetime_serialized(self):
        log_stream = StringIO()
        handler = logging.StreamHandler(log_stream)
        handler.setFormatter(JSONFormatter())

        logger = get_logger("test.decimal")
        logger.addHandler(handler)
        logger.setLevel(logging.INFO)

        logger.info(
            "Coins redeemed",
            extra_data={
                "discount_amount": Decimal("3.00"),
                "expires_at": datetime(2026, 4, 1, 12, 0),
            },
        )

        log_entry = json.loads(log_stream.getvalue())
        assert log_entry["extra"]["discount_amount"] == "3.00"
        assert log_entry["extra"]["expires_at"] == "2026-04-01T12:00:00"

    @pytest.mark.unit
    def test_caller_location_recorded(self):
        log_stream = StringIO()
        handler = logging.StreamHandler(log_stream)
        handler.setFormatter(JSONFormatter())

        logger = get_logger("test.caller")
        logger.addHandler(handler)
        logger.setLevel(logging.INFO)

        logger.warning("where am I", extra_data={"k": 1})

        log_entry = json.loads(log_stream.getvalue())
        assert log_entry["function"] == "test_caller_location_recorded"
        assert log_entry["module"] == "test_logging"
