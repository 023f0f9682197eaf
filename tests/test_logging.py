"""
Tests for structured logging setup.
"""
import json
import logging
from typing import Any

import pytest
import structlog

from donation_settlement.monitoring.logging import setup_logging


@pytest.fixture
def restore_root_handlers() -> Any:
    root_logger = logging.getLogger()
    saved = root_logger.handlers[:]
    yield
    root_logger.handlers[:] = saved


class TestLogging:
    """Test suite for setup_logging."""

    @pytest.mark.unit
    def test_bound_identifiers_in_every_line(
        self, capsys: pytest.CaptureFixture, restore_root_handlers: Any
    ) -> None:
        setup_logging()
        capsys.readouterr()

        with structlog.contextvars.bound_contextvars(request_id="req_1", payment_id="pay_1"):
            structlog.get_logger("donation_settlement.test").info("settlement_started")

        lines = [line for line in capsys.readouterr().out.splitlines() if "settlement_started" in line]
        assert len(lines) == 1

        record = json.loads(lines[0])
        event = json.loads(record["message"])
        assert event["event"] == "settlement_started"
        assert event["request_id"] == "req_1"
        assert event["payment_id"] == "pay_1"
        assert event["app_name"]
        assert record["level"] == "INFO"
