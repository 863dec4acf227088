"""
Unit Tests for logging configuration
"""
import json
import logging

from sitepulse.core.exceptions import CounterQueryError
from sitepulse.core.logging_config import (
    JSONFormatter,
    SitePulseLogger,
    logger,
    set_request_id,
    set_user_id,
)


def make_record(**extra) -> logging.LogRecord:
    record = logging.LogRecord("sitepulse", logging.INFO, __file__, 10, "badge refresh", (), None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


class TestJSONFormatter:

    def test_includes_context_and_extra_fields(self):
        set_request_id("req-1")
        set_user_id("user-1")
        try:
            payload = json.loads(JSONFormatter().format(make_record(event_type="db_query", db_table="rfis")))
        finally:
            set_request_id("")
            set_user_id("")

        assert payload["message"] == "badge refresh"
        assert payload["request_id"] == "req-1"
        assert payload["user_id"] == "user-1"
        assert payload["event_type"] == "db_query"
        assert payload["db_table"] == "rfis"

    def test_omits_empty_context(self):
        payload = json.loads(JSONFormatter().format(make_record()))

        assert "request_id" not in payload
        assert "user_id" not in payload

    def test_exception_details(self):
        try:
            raise CounterQueryError("rfis", "timeout")
        except CounterQueryError as e:
            record = logging.LogRecord("sitepulse", logging.ERROR, __file__, 1, "failed", (), (type(e), e, e.__traceback__))

        payload = json.loads(JSONFormatter().format(record))

        assert payload["exception"]["type"] == "CounterQueryError"


class TestSitePulseLogger:

    def test_module_logger_is_custom_class(self):
        assert isinstance(logger, SitePulseLogger)

    def test_error_helper_attaches_error_code(self, caplog):
        with caplog.at_level(logging.ERROR, logger="sitepulse"):
            logger.log_error_with_context(CounterQueryError("rfis", "timeout"), context="counters.rfis")

        record = caplog.records[-1]
        assert record.error_code == "COUNTER_QUERY_FAILED"
        assert record.error_context == "counters.rfis"

    def test_performance_warns_over_threshold(self, caplog):
        with caplog.at_level(logging.DEBUG, logger="sitepulse"):
            logger.log_performance("count_all", 1500.0)

        assert caplog.records[-1].levelno == logging.WARNING
        assert caplog.records[-1].exceeded_threshold is True
