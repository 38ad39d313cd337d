"""
Logging, correlation id and audit trail tests.
"""

from __future__ import annotations

import io
import json
import logging

import pytest

from ticketmint.observability import (
    AuditLogger,
    Layer,
    configure_logging,
    correlation_id_var,
    get_correlation_id,
    get_logger,
    reset_correlation_id,
    set_correlation_id,
    timed_operation,
)


@pytest.fixture
def stream():
    buffer = io.StringIO()
    handler = configure_logging("debug", "json", buffer)
    yield buffer
    logging.getLogger("ticketmint").removeHandler(handler)


def _records(buffer):
    return [json.loads(line) for line in buffer.getvalue().splitlines()]


class TestStructuredLogging:

    def test_json_record(self, stream):
        logger = get_logger("unit", Layer.PROGRAM)
        token = set_correlation_id("tx-1")
        try:
            logger.info("hello", nft_id=3)
        finally:
            reset_correlation_id(token)
        [record] = _records(stream)
        assert record["message"] == "hello"
        assert record["level"] == "info"
        assert record["logger"] == "ticketmint.program.unit"
        assert record["layer"] == "program"
        assert record["correlation_id"] == "tx-1"
        assert record["context"] == {"nft_id": 3}

    def test_empty_fields_dropped(self, stream):
        get_logger("unit", Layer.LEDGER).warning("bare")
        [record] = _records(stream)
        assert "operation" not in record
        assert "context" not in record
        assert "correlation_id" not in record

    def test_level_filter(self):
        buffer = io.StringIO()
        handler = configure_logging("warning", "json", buffer)
        try:
            logger = get_logger("unit", Layer.CLI)
            logger.info("hidden")
            logger.error("shown", error_code="E1")
        finally:
            logging.getLogger("ticketmint").removeHandler(handler)
        [record] = _records(buffer)
        assert record["message"] == "shown"
        assert record["error_code"] == "E1"

    def test_reconfigure_replaces_handler(self):
        first, second = io.StringIO(), io.StringIO()
        configure_logging("info", "json", first)
        handler = configure_logging("info", "json", second)
        try:
            get_logger("unit", Layer.CLI).info("once")
        finally:
            logging.getLogger("ticketmint").removeHandler(handler)
        assert first.getvalue() == ""
        assert len(_records(second)) == 1

    def test_text_format(self):
        buffer = io.StringIO()
        handler = configure_logging("info", "text", buffer)
        try:
            get_logger("unit", Layer.CLIENT).info("plain", nft_id=1)
        finally:
            logging.getLogger("ticketmint").removeHandler(handler)
        line = buffer.getvalue().strip()
        assert "INFO ticketmint.client.unit plain nft_id=1" in line

    def test_timed_operation(self, stream):
        logger = get_logger("unit", Layer.PROGRAM)

        @timed_operation(logger, "work")
        def work(fail):
            if fail:
                raise ValueError("no")
            return 5

        assert work(False) == 5
        with pytest.raises(ValueError):
            work(True)
        ok, bad = _records(stream)
        assert (ok["operation"], ok["level"]) == ("work", "info")
        assert (bad["message"], bad["level"]) == ("Operation work failed", "warning")
        assert "duration_ms" in ok


class TestCorrelation:

    def test_generated_when_unset(self):
        token = correlation_id_var.set("")
        try:
            cid = get_correlation_id()
            assert cid.startswith("corr-")
            assert get_correlation_id() == cid
        finally:
            correlation_id_var.reset(token)

    def test_ledger_binds_transaction_id(self, stream, claim, alice):
        receipt = claim(1, alice)
        committed = [r for r in _records(stream) if r["message"] == "transaction committed"]
        assert committed[-1]["correlation_id"] == receipt.transaction_id


class TestAuditLogger:

    def test_chain(self):
        audit = AuditLogger(get_logger("audit", Layer.LEDGER))
        first = audit.log("alice", "ClaimEvent", "transaction", "t1", "committed", nft_id=1)
        second = audit.log("op", "LockEvent", "transaction", "t2", "committed")
        assert first.previous_hash == AuditLogger.GENESIS
        assert second.previous_hash == first.event_hash
        assert audit.verify_chain()

    def test_tampering_detected(self):
        audit = AuditLogger(get_logger("audit", Layer.LEDGER))
        audit.log("alice", "ClaimEvent", "transaction", "t1", "committed")
        audit.log("op", "LockEvent", "transaction", "t2", "committed")
        audit._entries[0].actor = "mallory"
        assert not audit.verify_chain()

    def test_removal_detected(self):
        audit = AuditLogger(get_logger("audit", Layer.LEDGER))
        for n in range(3):
            audit.log("op", "BurnEvent", "transaction", f"t{n}", "committed")
        del audit._entries[1]
        assert not audit.verify_chain()
