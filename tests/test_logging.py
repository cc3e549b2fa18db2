"""
JSON log lines and the unit-of-work log context.

What a run's context looks like end to end is covered in
tests/coordinator; these tests pin the formatter and LogContext alone.
"""

import json
import logging
from concurrent.futures import ThreadPoolExecutor
from decimal import Decimal
from io import StringIO
from uuid import uuid4

import pytest

from ledger_kernel.exceptions import ClosedPeriodError, UnbalancedJournalError
from ledger_kernel.logging_config import (
    UNIT_OF_WORK_FIELDS,
    LogContext,
    StructuredFormatter,
    get_logger,
)


@pytest.fixture
def lines():
    """Attach a JSON handler to one logger and return its parsed lines on call."""
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    logger = get_logger("tests.logging")
    logger.addHandler(handler)
    logger.setLevel(logging.DEBUG)

    def _read():
        return [json.loads(line) for line in stream.getvalue().splitlines() if line]

    yield logger, _read
    logger.removeHandler(handler)


class TestStructuredFormatter:
    def test_amounts_keep_their_digits(self, lines):
        logger, read = lines
        logger.info("journal_created", extra={"total": Decimal("1234567890.123456789")})

        [record] = read()
        assert record["total"] == "1234567890.123456789"
        assert record["logger"] == "ledger_kernel.tests.logging"
        assert record["level"] == "INFO"

    def test_ids_and_sequences_serialized(self, lines):
        logger, read = lines
        journal_id = uuid4()
        logger.info("journal_reversed", extra={"journal_id": journal_id, "movement_ids": (1, 2)})

        [record] = read()
        assert record["journal_id"] == str(journal_id)
        assert record["movement_ids"] == [1, 2]

    def test_kernel_error_fields(self, lines):
        logger, read = lines
        try:
            raise ClosedPeriodError("2024-01", "2024-01-15")
        except ClosedPeriodError:
            logger.error("posting_rejected", exc_info=True)

        [record] = read()
        assert record["exc_code"] == "CLOSED_PERIOD"
        assert record["exc_type"] == "ClosedPeriodError"
        assert record["exc_period_name"] == "2024-01"
        assert "traceback" in record

    def test_unbalanced_totals_rendered_as_strings(self, lines):
        logger, read = lines
        try:
            raise UnbalancedJournalError(Decimal("100.00"), Decimal("99.99"))
        except UnbalancedJournalError:
            logger.error("journal_rejected", exc_info=True)

        [record] = read()
        assert record["exc_code"] == "UNBALANCED_JOURNAL"
        assert record["exc_debits"] == "100.00"
        assert record["exc_difference"] == "0.01"

    def test_extra_never_overrides_context(self, lines):
        logger, read = lines
        with LogContext.bind(operation="invoice.post"):
            logger.info("clash", extra={"operation": "spoofed"})

        [record] = read()
        assert record["operation"] == "invoice.post"


class TestLogContext:
    def test_bind_restores_outer_values(self):
        with LogContext.bind(operation="bill.post", idempotency_key="outer"):
            with LogContext.bind(idempotency_key="inner"):
                assert LogContext.get_all() == {"operation": "bill.post", "idempotency_key": "inner"}
            assert LogContext.get_all()["idempotency_key"] == "outer"
        assert LogContext.get_all() == {}

    def test_bind_restores_after_error(self):
        with pytest.raises(RuntimeError):
            with LogContext.bind(operation="invoice.post"):
                raise RuntimeError("boom")
        assert LogContext.get_all() == {}

    def test_ids_stringified_and_none_skipped(self):
        org = uuid4()
        with LogContext.bind(organization_id=org, actor_id=None):
            assert LogContext.get_all() == {"organization_id": str(org)}

    def test_unknown_field_rejected(self):
        with pytest.raises(TypeError):
            LogContext.set(event_id="x")

    def test_fields_in_declared_order(self):
        LogContext.set(**{name: name.upper() for name in reversed(UNIT_OF_WORK_FIELDS)})
        assert tuple(LogContext.get_all()) == UNIT_OF_WORK_FIELDS

    def test_threads_do_not_share_context(self):
        def bound(key):
            with LogContext.bind(idempotency_key=key):
                return LogContext.get_all()["idempotency_key"]

        with LogContext.bind(idempotency_key="main"):
            with ThreadPoolExecutor(max_workers=4) as executor:
                seen = list(executor.map(bound, ["a", "b", "c", "d"]))
            assert LogContext.get_all()["idempotency_key"] == "main"
        assert seen == ["a", "b", "c", "d"]
