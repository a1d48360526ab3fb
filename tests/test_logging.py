"""Tests for the structured logging system (broker_kernel/logging_config.py)."""

import json
import logging
from datetime import date, datetime, timezone
from decimal import Decimal
from io import StringIO
from uuid import uuid4

import pytest

from broker_kernel.domain.lifecycle import EntityKind
from broker_kernel.exceptions import ForbiddenFieldsError, IllegalTransitionError
from broker_kernel.logging_config import (
    LogContext,
    configure_logging,
    get_logger,
    reset_logging,
)


@pytest.fixture(autouse=True)
def _clean_logging():
    """Start each test unconfigured, then restore the suite configuration."""
    reset_logging()
    LogContext.clear()
    yield
    LogContext.clear()
    reset_logging()
    configure_logging(level=logging.DEBUG)


class _Sink:
    """A handler writing to memory plus a reader for the JSON lines."""

    def __init__(self):
        self.stream = StringIO()
        self.handler = logging.StreamHandler(self.stream)

    def records(self) -> list[dict]:
        return [json.loads(line) for line in self.stream.getvalue().splitlines() if line]

    def first(self) -> dict:
        return self.records()[0]


@pytest.fixture
def sink() -> _Sink:
    """Logging configured at the default level, writing to memory."""
    s = _Sink()
    configure_logging(handler=s.handler)
    return s


class TestStructuredFormatter:
    def test_base_keys(self, sink):
        get_logger("test").info("hello")

        record = sink.first()
        assert record["level"] == "INFO"
        assert record["message"] == "hello"
        assert record["logger"] == "broker_kernel.test"
        assert datetime.fromisoformat(record["ts"]).tzinfo is not None

    def test_extra_keys_are_top_level(self, sink):
        get_logger("test").info("lifecycle_edit_rejected", extra={"code": "ILLEGAL_TRANSITION"})
        assert sink.first()["code"] == "ILLEGAL_TRANSITION"

    def test_context_fields_are_merged(self, sink):
        LogContext.set(correlation_id="req-1", entity_kind="claim", actor_role="SUPER_ADMIN")
        get_logger("test").info("edit")

        record = sink.first()
        assert record["correlation_id"] == "req-1"
        assert record["entity_kind"] == "claim"
        assert record["actor_role"] == "SUPER_ADMIN"
        assert "record_id" not in record

    def test_plain_exception(self, sink):
        try:
            raise ValueError("boom")
        except ValueError:
            get_logger("test").error("failed", exc_info=True)

        record = sink.first()
        assert record["exc_type"] == "ValueError"
        assert record["exc_message"] == "boom"
        assert "exc_code" not in record
        assert "Traceback" in record["traceback"]

    def test_kernel_exception_attributes(self, sink):
        try:
            raise IllegalTransitionError("claim", "SETTLED", "CANCELLED")
        except IllegalTransitionError:
            get_logger("test").error("rejected", exc_info=True)

        record = sink.first()
        assert record["exc_code"] == "ILLEGAL_TRANSITION"
        assert record["exc_entity_kind"] == "claim"
        assert (record["exc_from_state"], record["exc_to_state"]) == ("SETTLED", "CANCELLED")

    def test_field_sets_serialize_sorted(self, sink):
        try:
            raise ForbiddenFieldsError("claim", "SUBMITTED", {"status_note", "care_type"})
        except ForbiddenFieldsError:
            get_logger("test").warning("rejected", exc_info=True)

        assert sink.first()["exc_forbidden_fields"] == ["care_type", "status_note"]

    def test_payload_value_types(self, sink):
        uid = uuid4()
        get_logger("test").info(
            "types",
            extra={
                "record": uid,
                "amount": Decimal("850.00"),
                "day": date(2025, 2, 10),
                "at": datetime(2025, 1, 1, 12, 0, tzinfo=timezone.utc),
                "kind": EntityKind.POLICY,
            },
        )

        record = sink.first()
        assert record["record"] == str(uid)
        assert record["amount"] == "850.00"
        assert record["day"] == "2025-02-10"
        assert record["at"] == "2025-01-01T12:00:00+00:00"
        assert record["kind"] == "policy"

    def test_debug_dropped_at_default_level(self, sink):
        logger = get_logger("test")
        logger.info("first")
        logger.warning("second")
        logger.debug("third")

        assert [r["message"] for r in sink.records()] == ["first", "second"]


class TestLogContext:
    def test_set_is_additive(self):
        LogContext.set(correlation_id="x")
        LogContext.set(record_id="y")
        assert LogContext.get_all() == {"correlation_id": "x", "record_id": "y"}

    def test_none_leaves_value(self):
        LogContext.set(correlation_id="x")
        LogContext.set(correlation_id=None)
        assert LogContext.get_all() == {"correlation_id": "x"}

    def test_unknown_field_rejected(self):
        with pytest.raises(KeyError):
            LogContext.set(event_id="e")
        with pytest.raises(KeyError):
            with LogContext.bind(producer="p"):
                pass

    def test_clear(self):
        LogContext.set(correlation_id="x")
        LogContext.clear()
        assert LogContext.get_all() == {}

    def test_bind_restores_previous_value(self):
        LogContext.set(actor_role="CLAIMS_EMPLOYEE")
        with LogContext.bind(actor_role="SUPER_ADMIN", record_id="r-1"):
            assert LogContext.get_all() == {"actor_role": "SUPER_ADMIN", "record_id": "r-1"}
        assert LogContext.get_all() == {"actor_role": "CLAIMS_EMPLOYEE"}

    def test_bind_restores_on_error(self):
        with pytest.raises(RuntimeError):
            with LogContext.bind(record_id="r-1"):
                raise RuntimeError("fail inside bind")
        assert LogContext.get_all() == {}

    def test_get_all_returns_copy(self):
        LogContext.set(correlation_id="x")
        LogContext.get_all()["correlation_id"] = "tampered"
        assert LogContext.get_all()["correlation_id"] == "x"


class TestConfigureLogging:
    def test_only_first_call_attaches_handler(self):
        first, second = _Sink(), _Sink()
        configure_logging(handler=first.handler)
        configure_logging(handler=second.handler)
        handlers = logging.getLogger("broker_kernel").handlers
        assert first.handler in handlers
        assert second.handler not in handlers

    def test_does_not_propagate_to_root(self, sink):
        assert logging.getLogger("broker_kernel").propagate is False

    def test_child_loggers_share_configuration(self):
        s = _Sink()
        configure_logging(handler=s.handler, level=logging.DEBUG)
        get_logger("services.lifecycle_executor").debug("nested")

        record = s.first()
        assert record["message"] == "nested"
        assert record["logger"] == "broker_kernel.services.lifecycle_executor"
