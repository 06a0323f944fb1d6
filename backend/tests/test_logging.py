"""Tests for structlog setup and campaign-scoped log context."""
import json
import logging

import pytest
import structlog

from marketing_ops.core.logging import QUIET_LOGGERS, campaign_context, configure_structlog

pytestmark = pytest.mark.unit


@pytest.fixture
def reset_logging():
    root = logging.getLogger()
    saved_level = root.level
    yield
    structlog.contextvars.clear_contextvars()
    structlog.reset_defaults()
    root.handlers = [h for h in root.handlers if not isinstance(h.formatter, structlog.stdlib.ProcessorFormatter)]
    root.setLevel(saved_level)
    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.NOTSET)


def _last_record(capsys) -> dict:
    return json.loads(capsys.readouterr().out.strip().splitlines()[-1])


def test_campaign_context_restores_outer_keys(reset_logging):
    structlog.contextvars.bind_contextvars(request="r-1")

    with campaign_context("c-1", work_item_id="w-1"):
        assert structlog.contextvars.get_contextvars() == {
            "request": "r-1",
            "campaign_id": "c-1",
            "work_item_id": "w-1",
        }

    assert structlog.contextvars.get_contextvars() == {"request": "r-1"}


def test_json_logs_carry_campaign_id(reset_logging, capsys):
    configure_structlog(log_level="INFO", json_logs=True)

    with campaign_context("c-42"):
        structlog.get_logger("marketing_ops.test").info("work_item_moved", to_phase_id="ph-2")

    record = _last_record(capsys)
    assert record["event"] == "work_item_moved"
    assert record["campaign_id"] == "c-42"
    assert record["to_phase_id"] == "ph-2"
    assert record["level"] == "info"


def test_stdlib_records_go_through_the_same_renderer(reset_logging, capsys):
    configure_structlog(log_level="INFO", json_logs=True)

    logging.getLogger("marketing_ops.thirdparty").warning("pool exhausted")

    record = _last_record(capsys)
    assert record["event"] == "pool exhausted"
    assert record["level"] == "warning"


def test_chatty_libraries_are_raised_to_warning(reset_logging):
    configure_structlog(log_level="DEBUG", json_logs=False)

    assert logging.getLogger().level == logging.DEBUG
    assert all(logging.getLogger(name).level == logging.WARNING for name in QUIET_LOGGERS)
