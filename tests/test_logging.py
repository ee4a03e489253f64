"""Tests for the structured logging system (shopfloor_kernel/logging_config.py)."""

import json
import logging
from io import StringIO
from uuid import uuid4

import pytest

from shopfloor_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    get_logger,
    reset_logging,
)


@pytest.fixture(autouse=True)
def _clean_logging():
    """Reset logging state between tests, then restore the suite configuration."""
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
    """Parse the first JSON log line from a stream."""
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
        assert record["logger"] == "shopfloor_kernel.test"
        assert "ts" in record

    def test_extra_fields_included(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        get_logger("test").info("wip_pulled", extra={"good_pulled": 30, "position": 2})

        record = _parse_log(stream)
        assert record["good_pulled"] == 30
        assert record["position"] == 2

    def test_context_fields_included(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        LogContext.set(session_id="sess-1", station_id="st-9")
        get_logger("test").info("status_event_started")

        record = _parse_log(stream)
        assert record["session_id"] == "sess-1"
        assert record["station_id"] == "st-9"

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

    def test_kernel_exception_attributes_extracted(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        from shopfloor_kernel.domain.statuses import SessionStatus
        from shopfloor_kernel.exceptions import SessionNotActiveError

        session_id = uuid4()
        try:
            raise SessionNotActiveError(session_id, SessionStatus.COMPLETED)
        except SessionNotActiveError:
            get_logger("test").warning("rejected", exc_info=True)

        record = _parse_log(stream)
        assert record["exc_code"] == "SESSION_NOT_ACTIVE"
        assert record["exc_type"] == "SessionNotActiveError"
        assert record["exc_session_id"] == str(session_id)
        assert record["exc_status"] == "completed"
        assert "exc_category" in record

    def test_no_context_fields_when_empty(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        get_logger("test").info("bare_message")

        record = _parse_log(stream)
        assert "session_id" not in record
        assert "worker_id" not in record

    def test_uuid_serialized(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        uid = uuid4()
        get_logger("test").info("with_uuid", extra={"job_item_step_id": uid})

        assert _parse_log(stream)["job_item_step_id"] == str(uid)

    def test_valid_json_every_line(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        logger = get_logger("test")
        logger.info("first")
        logger.warning("second", extra={"k": "v"})
        logger.debug("third")

        logs = _parse_all_logs(stream)
        # default level is INFO
        assert len(logs) == 2
        for record in logs:
            assert {"ts", "level", "logger", "message"} <= set(record)


# ---------------------------------------------------------------------------
# LogContext tests
# ---------------------------------------------------------------------------


class TestLogContext:

    def test_set_and_get(self):
        LogContext.set(correlation_id="x", session_id="y")
        assert LogContext.get_all() == {"correlation_id": "x", "session_id": "y"}

    def test_clear(self):
        LogContext.set(worker_id="x")
        LogContext.clear()
        assert LogContext.get_all() == {}

    def test_bind_context_manager(self):
        LogContext.set(session_id="outer")
        with LogContext.bind(session_id="inner"):
            assert LogContext.get_all()["session_id"] == "inner"
        assert LogContext.get_all()["session_id"] == "outer"

    def test_bind_restores_none(self):
        assert "job_item_id" not in LogContext.get_all()
        with LogContext.bind(job_item_id="temp"):
            assert LogContext.get_all()["job_item_id"] == "temp"
        assert "job_item_id" not in LogContext.get_all()

    def test_bind_skips_none_values(self):
        with LogContext.bind(session_id=None, instance_id="tab-1"):
            assert LogContext.get_all() == {"instance_id": "tab-1"}

    def test_uuid_values_stored_as_strings(self):
        uid = uuid4()
        LogContext.set(worker_id=uid)
        assert LogContext.get_all()["worker_id"] == str(uid)

    def test_all_fields(self):
        LogContext.set(
            correlation_id="c",
            session_id="s",
            worker_id="w",
            station_id="st",
            job_item_id="j",
            instance_id="i",
        )
        ctx = LogContext.get_all()
        assert len(ctx) == 6
        assert ctx["instance_id"] == "i"

    def test_unknown_field_rejected(self):
        with pytest.raises(TypeError):
            LogContext.set(event_id="e")


# ---------------------------------------------------------------------------
# configure_logging tests
# ---------------------------------------------------------------------------


class TestConfigureLogging:

    def test_idempotent(self):
        h1, _ = _make_handler()
        configure_logging(handler=h1)
        h2, _ = _make_handler()
        configure_logging(handler=h2)
        assert len(logging.getLogger("shopfloor_kernel").handlers) == 1

    def test_get_logger_returns_child(self):
        assert get_logger("services.wip_ledger").name == "shopfloor_kernel.services.wip_ledger"

    def test_logger_hierarchy(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler, level=logging.DEBUG)
        get_logger("deep.nested.module").debug("hierarchy_test")

        record = _parse_log(stream)
        assert record["message"] == "hierarchy_test"
        assert record["logger"] == "shopfloor_kernel.deep.nested.module"
