"""Tests for billtrack_kernel.logging_config: JSON lines, context, setup."""

import json
import logging
from decimal import Decimal
from io import StringIO
from uuid import uuid4

import pytest

from billtrack_kernel.domain.payments import PayerType, SettlementStatus
from billtrack_kernel.exceptions import AlreadySettledError, InvalidTransitionError
from billtrack_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    get_logger,
    reset_logging,
)


@pytest.fixture(autouse=True)
def _fresh_logging():
    reset_logging()
    LogContext.clear()
    yield
    LogContext.clear()
    reset_logging()


@pytest.fixture
def json_lines():
    """Configure logging into a buffer; return a reader of parsed lines."""

    def _install(level: int = logging.INFO):
        stream = StringIO()
        handler = logging.StreamHandler(stream)
        configure_logging(handler=handler, level=level)
        return lambda: [json.loads(line) for line in stream.getvalue().splitlines() if line]

    return _install


class TestJsonLines:
    """Shape and serialization of each emitted line."""

    def test_envelope(self, json_lines):
        read = json_lines()
        get_logger("engines.tax").info("transaction_totals_computed")

        (line,) = read()
        assert line["level"] == "INFO"
        assert line["message"] == "transaction_totals_computed"
        assert line["logger"] == "billtrack.engines.tax"
        assert line["ts"].endswith("+00:00")

    def test_money_ids_and_enums(self, json_lines):
        """Decimals keep their exact digits; ids and enums become strings."""
        read = json_lines()
        payment_id = uuid4()
        get_logger("modules.settlement").info("payment_settled", extra={
            "payment_id": payment_id,
            "amount": Decimal("350.50"),
            "payer_type": PayerType.INDIVIDUAL,
            "status": SettlementStatus.SETTLED,
            "count": 2,
        })

        (line,) = read()
        assert line["payment_id"] == str(payment_id)
        assert line["amount"] == "350.50"
        assert line["payer_type"] == "INDIVIDUAL"
        assert line["status"] == "SETTLED"
        assert line["count"] == 2

    def test_context_merged_into_line(self, json_lines):
        read = json_lines()
        actor = uuid4()
        with LogContext.bind(actor_id=actor, company_id="co-1"):
            get_logger("services.workflow_orchestrator").info("transaction_submitted")

        (line,) = read()
        assert line["actor_id"] == str(actor)
        assert line["company_id"] == "co-1"
        assert "payment_id" not in line

    def test_extra_does_not_override_context(self, json_lines):
        read = json_lines()
        LogContext.set(transaction_id="from-context")
        get_logger("test").info("msg", extra={"transaction_id": "from-extra"})

        (line,) = read()
        assert line["transaction_id"] == "from-context"

    def test_plain_exception(self, json_lines):
        read = json_lines()
        try:
            raise RuntimeError("auditor offline")
        except RuntimeError:
            get_logger("services.event_dispatcher").exception("audit_record_failed")

        (line,) = read()
        assert line["exc_type"] == "RuntimeError"
        assert line["exc_message"] == "auditor offline"
        assert "exc_code" not in line
        assert "Traceback" in line["traceback"]

    def test_transition_error_context(self, json_lines):
        read = json_lines()
        try:
            raise InvalidTransitionError(
                entity="approval", current_state="APPROVED", requested="APPROVE",
                rule="allowed from APPROVED: none",
            )
        except InvalidTransitionError:
            get_logger("test").error("transition_rejected", exc_info=True)

        (line,) = read()
        assert line["exc_code"] == "INVALID_TRANSITION"
        assert line["exc_current_state"] == "APPROVED"
        assert line["exc_requested"] == "APPROVE"
        assert line["exc_rule"] == "allowed from APPROVED: none"

    def test_settlement_error_ids(self, json_lines):
        read = json_lines()
        payment_id, settler = uuid4(), uuid4()
        try:
            raise AlreadySettledError(payment_id, settled_by=settler)
        except AlreadySettledError:
            get_logger("test").warning("settle_rejected", exc_info=True)

        (line,) = read()
        assert line["exc_code"] == "ALREADY_SETTLED"
        assert line["exc_payment_id"] == str(payment_id)
        assert line["exc_settled_by"] == str(settler)

    def test_level_filtering(self, json_lines):
        read = json_lines()
        logger = get_logger("test")
        logger.debug("dropped")
        logger.info("kept")
        logger.warning("kept_too")

        assert [line["message"] for line in read()] == ["kept", "kept_too"]


class TestLogContext:
    """Context fields: set, bind, restore."""

    def test_set_skips_none(self):
        LogContext.set(correlation_id="req-1", company_id=None)
        assert LogContext.get_all() == {"correlation_id": "req-1"}

    def test_clear(self):
        LogContext.set(actor_id="a", payment_id="p")
        LogContext.clear()
        assert LogContext.get_all() == {}

    def test_bind_nests_and_restores(self):
        LogContext.set(transaction_id="outer")
        with LogContext.bind(transaction_id="inner", payment_id="p-1"):
            assert LogContext.get_all() == {"transaction_id": "inner", "payment_id": "p-1"}
        assert LogContext.get_all() == {"transaction_id": "outer"}

    def test_bind_restores_after_error(self):
        with pytest.raises(ValueError):
            with LogContext.bind(actor_id="a"):
                raise ValueError("boom")
        assert LogContext.get_all() == {}

    def test_bind_stringifies_and_ignores_none(self):
        tx_id = uuid4()
        with LogContext.bind(transaction_id=tx_id, payment_id=None):
            assert LogContext.get_all() == {"transaction_id": str(tx_id)}

    def test_unknown_field_rejected(self):
        with pytest.raises(TypeError, match="unknown log context field"):
            LogContext.set(invoice_id="x")

    def test_all_fields(self):
        LogContext.set(
            correlation_id="c",
            actor_id="a",
            company_id="co",
            transaction_id="t",
            payment_id="p",
        )
        assert set(LogContext.get_all()) == {
            "correlation_id", "actor_id", "company_id", "transaction_id", "payment_id",
        }


def _structured_handlers() -> list[logging.Handler]:
    return [
        h for h in logging.getLogger("billtrack").handlers
        if isinstance(h.formatter, StructuredFormatter)
    ]


class TestConfigureLogging:
    """Handler installation."""

    def test_second_call_is_ignored(self):
        first = logging.StreamHandler(StringIO())
        configure_logging(handler=first)
        configure_logging(handler=logging.StreamHandler(StringIO()))

        assert _structured_handlers() == [first]

    def test_reset_allows_reconfiguration(self, json_lines):
        json_lines()
        reset_logging()
        assert _structured_handlers() == []

        read = json_lines(level=logging.DEBUG)
        get_logger("deep.nested.module").debug("visible")
        assert read()[0]["logger"] == "billtrack.deep.nested.module"

    def test_reset_leaves_foreign_handlers(self):
        foreign = logging.NullHandler()
        billtrack = logging.getLogger("billtrack")
        billtrack.addHandler(foreign)
        try:
            configure_logging(handler=logging.StreamHandler(StringIO()))
            reset_logging()
            assert foreign in billtrack.handlers
        finally:
            billtrack.removeHandler(foreign)

    def test_not_propagated_to_root(self, json_lines):
        json_lines()
        assert logging.getLogger("billtrack").propagate is False
