"""
Tests for structured logging setup
"""

import json
import logging

import pytest
import structlog

from stellar_swap.logging_config import QUIET_LOGGERS, setup_logging, transaction_context


@pytest.fixture(autouse=True)
def restore_logging():
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    yield
    root.handlers[:] = handlers
    root.setLevel(level)
    structlog.reset_defaults()
    structlog.contextvars.clear_contextvars()


def last_json_line(capsys) -> dict:
    lines = [line for line in capsys.readouterr().out.splitlines() if line.strip()]
    return json.loads(lines[-1])


def test_json_records_carry_network(capsys):
    setup_logging("INFO", log_format="json", network="testnet")

    logging.getLogger("stellar_swap.session").info("session started on %s", "TESTNET")

    record = last_json_line(capsys)
    assert record["event"] == "session started on TESTNET"
    assert record["network"] == "TESTNET"
    assert record["level"] == "info"
    assert record["logger"] == "stellar_swap.session"


def test_transaction_context_is_bound_then_dropped(capsys):
    setup_logging("INFO", log_format="json", network="PUBLIC")
    log = logging.getLogger("stellar_swap.core.execution.manager")

    with transaction_context("tx-1-1", "swap"):
        log.info("transaction tx-1-1: building -> signing")
    inside = last_json_line(capsys)
    log.info("after")
    outside = last_json_line(capsys)

    assert inside["tx_id"] == "tx-1-1"
    assert inside["tx_kind"] == "swap"
    assert "tx_id" not in outside


def test_level_and_quiet_loggers():
    setup_logging("warning", log_format="console")

    assert logging.getLogger().level == logging.WARNING
    for name in QUIET_LOGGERS:
        assert logging.getLogger(name).level == logging.WARNING
