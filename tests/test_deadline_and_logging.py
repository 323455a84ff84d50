"""Tests for deadlines and structured logging."""

import json
import logging

import pytest

from backlog_sync.deadline import Deadline
from backlog_sync.logger import ComponentLogger, JsonFormatter, get_logger


class FakeClock:
    def __init__(self, now=100.0):
        self.now = now

    def __call__(self):
        return self.now


class TestDeadline:
    """Tests for Deadline."""

    def test_remaining_and_expiry(self):
        clock = FakeClock()
        deadline = Deadline(5, clock=clock)
        assert deadline.remaining() == 5
        assert not deadline.expired

        clock.now += 6
        assert deadline.remaining() == 0.0
        assert deadline.expired

    def test_clip(self):
        clock = FakeClock()
        deadline = Deadline(2, clock=clock)
        assert deadline.clip(30.0) == 2
        assert deadline.clip(1.0) == 1.0

    def test_zero_is_expired(self):
        assert Deadline(0, clock=FakeClock()).expired

    def test_negative_rejected(self):
        with pytest.raises(ValueError):
            Deadline(-1)

    def test_optional(self):
        assert Deadline.optional(None) is None
        assert isinstance(Deadline.optional(3), Deadline)


def _record(**extra):
    record = logging.makeLogRecord({"msg": "gateway.retry", "levelname": "WARNING", "levelno": 30})
    record.__dict__.update(extra)
    return record


class TestJsonFormatter:
    """Tests for JSON log output."""

    def test_includes_extra_fields(self):
        output = json.loads(JsonFormatter().format(_record(component="gateway", attempt=2)))
        assert output["message"] == "gateway.retry"
        assert output["level"] == "WARNING"
        assert output["component"] == "gateway"
        assert output["attempt"] == 2

    def test_redacts_credentials(self):
        output = json.loads(JsonFormatter().format(_record(token="secret-pat", Authorization="Basic x")))
        assert output["token"] == "***"
        assert output["Authorization"] == "***"
        assert "secret-pat" not in json.dumps(output)

    def test_non_serializable_values_are_stringified(self):
        output = json.loads(JsonFormatter().format(_record(error=RuntimeError("boom"))))
        assert output["error"] == "boom"


class TestComponentLogger:
    """Tests for the component wrapper."""

    def test_get_logger(self):
        logger = get_logger("resolver")
        assert isinstance(logger, ComponentLogger)
        assert logger.component == "resolver"

    def test_attaches_component_and_item(self, caplog):
        logger = get_logger("batcher")
        with caplog.at_level(logging.INFO, logger="BacklogSync"):
            logger.info("batcher.patch.applied", item_id=7, fields=["System.State"])

        [record] = caplog.records
        assert record.component == "batcher"
        assert record.item_id == 7
        assert record.fields == ["System.State"]

    def test_records_point_at_the_caller(self, caplog):
        logger = get_logger("gateway")
        with caplog.at_level(logging.INFO, logger="BacklogSync"):
            logger.warning("gateway.retry", attempt=1)

        [record] = caplog.records
        assert record.module == "test_deadline_and_logging"
        assert record.funcName == "test_records_point_at_the_caller"
