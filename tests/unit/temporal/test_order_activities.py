"""Tests for order activities that need no database or network."""

import hashlib
import threading

import pytest
from temporalio.exceptions import ApplicationError
from temporalio.testing import ActivityEnvironment

from order_intake.core.exceptions import BlockedFileError, ValidationError
from order_intake.services.ledger.draft_order_service import EXTERNAL_ORDER_KEY_FIELD, build_sales_order_payload
from order_intake.temporal.activities import intake
from order_intake.temporal.activities.common import to_application_error
from order_intake.temporal.activities.intake import parse_workbook


class TestErrorTranslation:

    def test_validation_error_is_non_retryable(self):
        error = to_application_error(ValidationError("line 2 has a negative quantity (-3)"))

        assert isinstance(error, ApplicationError)
        assert error.type == "ValidationError"
        assert error.non_retryable is True
        assert not error.details

    def test_blocked_file_carries_code_and_issues(self):
        blocked = BlockedFileError(
            "Formulas are not allowed",
            code="FORMULAS_BLOCKED",
            issues=[{"code": "FORMULAS_BLOCKED", "severity": "blocker"}],
        )

        error = to_application_error(blocked)

        assert error.type == "BlockedFileError"
        assert error.details[0]["code"] == "FORMULAS_BLOCKED"
        assert error.details[0]["issues"][0]["severity"] == "blocker"


class TestSalesOrderPayload:

    def test_payload_uses_ledger_ids(self, sample_order):
        sample_order.customer.ledger_customer_id = "cust-1"
        sample_order.line_items[0].ledger_item_id = "item-1"
        sample_order.line_items[1].ledger_item_id = "item-2"

        payload = build_sales_order_payload(sample_order, "f" * 64)

        assert payload["customer_id"] == "cust-1"
        assert payload["reference_number"] == "f" * 64
        assert "case-001" in payload["notes"]
        assert payload["line_items"] == [
            {"item_id": "item-1", "quantity": 10},
            {"item_id": "item-2", "quantity": 4},
        ]
        assert payload["custom_fields"] == [{"api_name": EXTERNAL_ORDER_KEY_FIELD, "value": "f" * 64}]
        assert "rate" not in payload["line_items"][0]

    def test_unresolved_customer_is_rejected(self, sample_order):
        with pytest.raises(ValidationError, match="customer must be resolved"):
            build_sales_order_payload(sample_order, "f" * 64)

    def test_unresolved_lines_are_rejected(self, sample_order):
        sample_order.customer.ledger_customer_id = "cust-1"
        sample_order.line_items[0].ledger_item_id = "item-1"

        with pytest.raises(ValidationError, match=r"lines \[2\]"):
            build_sales_order_payload(sample_order, "f" * 64)


class TestParseWorkbookActivity:

    @pytest.mark.asyncio
    async def test_returns_order_band_and_confidence(self, tmp_path, order_workbook, received_at):
        stored = tmp_path / "order.xlsx"
        stored.write_bytes(order_workbook)

        result = await ActivityEnvironment().run(
            parse_workbook,
            "case-001",
            str(stored),
            hashlib.sha256(order_workbook).hexdigest(),
            received_at.isoformat(),
            "tenant-1",
            "order.xlsx",
            None,
        )

        assert result["band"] == "high"
        assert result["mapping_confidence"] == pytest.approx(0.85)
        assert result["order"]["metadata"]["case_id"] == "case-001"
        assert len(result["order"]["line_items"]) == 4

    @pytest.mark.asyncio
    async def test_unreadable_file_is_a_blocked_application_error(self, tmp_path, received_at):
        stored = tmp_path / "broken.xlsx"
        stored.write_bytes(b"not a workbook")

        with pytest.raises(ApplicationError) as exc_info:
            await ActivityEnvironment().run(
                parse_workbook, "case-002", str(stored), "0" * 64, received_at.isoformat(), None, None, None
            )

        assert exc_info.value.type == "BlockedFileError"
        assert exc_info.value.non_retryable is True
        assert exc_info.value.details[0]["code"] == "UNREADABLE_FILE"

    @pytest.mark.asyncio
    async def test_parsing_runs_off_the_event_loop(self, monkeypatch, tmp_path, order_workbook, received_at):
        stored = tmp_path / "order.xlsx"
        stored.write_bytes(order_workbook)
        real_parser = intake._parser()
        threads = []

        class RecordingParser:
            def parse(self, content, **kwargs):
                threads.append(threading.get_ident())
                return real_parser.parse(content, **kwargs)

        monkeypatch.setattr(intake, "_parser", RecordingParser)

        result = await ActivityEnvironment().run(
            parse_workbook, "case-003", str(stored), "0" * 64, received_at.isoformat(), None, None, None
        )

        assert len(result["order"]["line_items"]) == 4
        assert threads and threads[0] != threading.get_ident()
