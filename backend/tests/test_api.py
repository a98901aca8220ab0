# tests/test_api.py
"""
Tests for the ledger facade, entry serialization and JSON log lines.
"""

import json
import logging
from decimal import Decimal

import pytest

from ledger import api
from ledger.serializers import JournalEntrySerializer
from ops.logging_config import JsonFormatter, get_logging_config


@pytest.mark.django_db
class TestFacade:

    def test_post_and_serialize(self, chart):
        result = api.post(chart, {
            "date": "2025-03-01",
            "description": "Key deposit refund",
            "transaction_reference": "KEY-9",
            "lines": [
                {"account_code": "4005", "debit": "15.00"},
                {"account_code": "1000", "credit": "15.00"},
            ],
        })

        assert result.success, result.error
        data = JournalEntrySerializer(api.get_journal_entry(chart, result.data.entry_id)).data
        assert data["id"] == result.data.entry_id
        assert data["is_balanced"] is True
        assert data["total_debit"] == "15.00"
        assert [line["account_code"] for line in data["lines"]] == ["4005", "1000"]

    def test_failures_carry_error_codes(self, chart, simple_entry):
        api.reverse(chart, simple_entry.entry_id)

        result = api.reverse(chart, simple_entry.entry_id)

        assert not result.success
        assert result.error_code == "ALREADY_REVERSED"

    def test_student_lifecycle(self, chart, lease_start, rent_payment, student_id):
        discount = api.apply_discount(chart, student_id, "600.00", "550.00", "rent")
        assert discount.success, discount.error

        status = api.get_status(chart, student_id)
        assert status.discounted == Decimal("50.00")
        assert status.outstanding == Decimal("550.00")
        assert status.to_dict()["outstanding"] == "550.00"


class TestJsonLogging:

    def test_extra_fields_are_emitted(self):
        record = logging.LogRecord(
            name="ledger.commands",
            level=logging.INFO,
            pathname=__file__,
            lineno=1,
            msg="Journal entry posted",
            args=(),
            exc_info=None,
        )
        record.entry_id = "abc"
        record.amount = Decimal("10.00")

        line = json.loads(JsonFormatter().format(record))

        assert line["message"] == "Journal entry posted"
        assert line["logger"] == "ledger.commands"
        assert line["extra"]["entry_id"] == "abc"
        assert line["extra"]["amount"] == "10.00"

    def test_app_loggers_configured(self, monkeypatch):
        monkeypatch.setenv("LOG_FORMAT", "json")

        config = get_logging_config(debug=False)

        assert config["formatters"]["json"]["()"] == "ops.logging_config.JsonFormatter"
        for name in ("ledger", "audit", "housing"):
            assert config["loggers"][name]["propagate"] is False
