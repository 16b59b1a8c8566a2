"""Tests for the order case aggregate: status graph, corrections, selections and transitions."""

from datetime import datetime, timezone
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest

from order_intake.core.exceptions import CaseNotFoundError, InvalidTransitionError, ValidationError
from order_intake.schemas.case import CaseStatus
from order_intake.schemas.order import (
    Correction,
    Issue,
    IssueSeverity,
    LedgerCandidate,
    ResolutionStatus,
    Selection,
)
from order_intake.services.case_service import (
    CaseService,
    apply_corrections,
    apply_selections,
    split_corrections,
)

NOW = datetime(2026, 3, 2, 10, 0, tzinfo=timezone.utc)


def _correction(path, value, original=None):
    return Correction(field_path=path, original_value=original, corrected_value=value, actor="user-1", timestamp=NOW)


class TestCaseStatus:

    @pytest.mark.parametrize("status", [CaseStatus.COMPLETED, CaseStatus.CANCELLED, CaseStatus.FAILED])
    def test_terminal_states_allow_no_moves(self, status):
        assert status.is_terminal
        for target in CaseStatus:
            assert not status.can_transition_to(target)

    def test_failure_reachable_from_any_active_state(self):
        for status in CaseStatus:
            if not status.is_terminal:
                assert status.can_transition_to(CaseStatus.FAILED)

    def test_happy_path_edges(self):
        path = [
            CaseStatus.STORING_FILE,
            CaseStatus.PARSING,
            CaseStatus.RUNNING_COMMITTEE,
            CaseStatus.RESOLVING_CUSTOMER,
            CaseStatus.RESOLVING_ITEMS,
            CaseStatus.AWAITING_APPROVAL,
            CaseStatus.CREATING_ZOHO_DRAFT,
            CaseStatus.COMPLETED,
        ]
        for current, target in zip(path, path[1:]):
            assert current.can_transition_to(target), f"{current} -> {target}"

    def test_cannot_skip_approval(self):
        assert not CaseStatus.RESOLVING_ITEMS.can_transition_to(CaseStatus.CREATING_ZOHO_DRAFT)

    def test_human_waits_can_cancel(self):
        for status in CaseStatus:
            if status.is_human_wait:
                assert status.can_transition_to(CaseStatus.CANCELLED)


class TestSplitCorrections:

    def test_mapping_paths_become_overrides(self):
        overrides, values = split_corrections([
            _correction("mapping.quantity", " c "),
            _correction("mapping.gtin", None),
            _correction("line_items.1.quantity", 3),
        ])

        assert overrides == {"quantity": "C", "gtin": None}
        assert [c.field_path for c in values] == ["line_items.1.quantity"]

    def test_unknown_field_is_rejected(self):
        with pytest.raises(ValidationError, match="Unknown field"):
            split_corrections([_correction("mapping.discount", "B")])

    def test_invalid_column_is_rejected(self):
        with pytest.raises(ValidationError, match="Invalid column"):
            split_corrections([_correction("mapping.quantity", "B2")])


class TestApplyCorrections:

    def test_confirming_zero_quantity_clears_the_issue(self, sample_order):
        sample_order.line_items[1].quantity = 0
        sample_order.line_items[1].line_total = None
        sample_order.issues = [
            Issue(
                code="ZERO_QUANTITY",
                severity=IssueSeverity.WARNING,
                message="Line 2: Quantity is zero",
                line_number=2,
                requires_confirmation=True,
            ),
            Issue(code="FORMULAS_WARNING", severity=IssueSeverity.WARNING, message="formulas"),
        ]

        updated = apply_corrections(sample_order, [_correction("line_items.2.quantity", 0, original=0)])

        assert updated.line(2).quantity_confirmed is True
        assert updated.pending_confirmations == []
        assert [issue.code for issue in updated.issues] == ["FORMULAS_WARNING"]
        assert updated.version == 2
        assert len(updated.corrections) == 1
        # input order is untouched
        assert sample_order.version == 1

    def test_quantity_correction_accepts_formatted_numbers(self, sample_order):
        updated = apply_corrections(sample_order, [_correction("line_items.1.quantity", "12")])
        assert updated.line(1).quantity == 12.0

    def test_negative_quantity_is_rejected(self, sample_order):
        with pytest.raises(ValidationError, match="negative quantity"):
            apply_corrections(sample_order, [_correction("line_items.1.quantity", -1)])

    def test_unknown_line_is_rejected(self, sample_order):
        with pytest.raises(ValidationError, match="unknown line 9"):
            apply_corrections(sample_order, [_correction("line_items.9.quantity", 1)])

    @pytest.mark.parametrize("path", ["customer.address", "line_items.1.colour", "totals.total"])
    def test_unsupported_path_is_rejected(self, sample_order, path):
        with pytest.raises(ValidationError, match="unsupported correction path"):
            apply_corrections(sample_order, [_correction(path, "x")])

    def test_customer_name_resets_resolution(self, sample_order):
        sample_order.customer.ledger_customer_id = "cust-1"
        sample_order.customer.resolution_status = ResolutionStatus.RESOLVED

        updated = apply_corrections(sample_order, [_correction("customer.name", "  Globex   Corp ")])

        assert updated.customer.input_name == "Globex Corp"
        assert updated.customer.ledger_customer_id is None
        assert updated.customer.resolution_status == ResolutionStatus.UNRESOLVED

    def test_sku_correction_clears_item_resolution(self, sample_order):
        sample_order.line_items[0].ledger_item_id = "item-1"
        sample_order.line_items[0].resolution_status = ResolutionStatus.RESOLVED

        updated = apply_corrections(sample_order, [_correction("line_items.1.sku", " abc-009 ")])

        assert updated.line(1).sku == "ABC-009"
        assert updated.line(1).ledger_item_id is None
        assert updated.line(1).resolution_status == ResolutionStatus.UNRESOLVED


class TestApplySelections:

    def test_customer_and_item_choices(self, sample_order):
        sample_order.customer.resolution_status = ResolutionStatus.AMBIGUOUS
        sample_order.customer.candidates = [
            LedgerCandidate(external_id="c-1", name="Acme Trading Ltd", score=0.88),
            LedgerCandidate(external_id="c-2", name="Acme Trading LLC", score=0.86),
        ]
        selection = Selection(customer_external_id="c-2", items={2: "item-77"}, actor="user-1", timestamp=NOW)

        updated = apply_selections(sample_order, selection)

        assert updated.customer.ledger_customer_id == "c-2"
        assert updated.customer.ledger_customer_name == "Acme Trading LLC"
        assert updated.customer.resolution_status == ResolutionStatus.RESOLVED
        assert updated.line(2).ledger_item_id == "item-77"
        assert updated.line(2).resolution_status == ResolutionStatus.RESOLVED
        assert updated.line(1).resolution_status == ResolutionStatus.UNRESOLVED
        assert updated.version == sample_order.version + 1

    def test_unknown_line_is_rejected(self, sample_order):
        selection = Selection(items={5: "item-1"}, actor="user-1", timestamp=NOW)

        with pytest.raises(ValidationError, match="unknown lines"):
            apply_selections(sample_order, selection)


def _record(status: CaseStatus, revision: int = 3):
    return SimpleNamespace(
        case_id="case-001",
        tenant_id="tenant-1",
        correlation_id="corr-1",
        user_id="user-1",
        status=status.value,
        current_step="step",
        revision=revision,
        file_blob_reference="s3://bucket/order.xlsx",
        file_sha256=None,
        order_snapshot=None,
        zoho_order_id=None,
        zoho_order_number=None,
        last_error=None,
        created_at=NOW,
        updated_at=NOW,
    )


class TestCaseServiceTransition:

    @pytest.fixture
    def service(self):
        service = CaseService(MagicMock())
        service.cases = AsyncMock()
        service.events = AsyncMock()
        service.events.list_for_case.return_value = []
        return service

    @pytest.mark.asyncio
    async def test_allowed_move_updates_and_appends_event(self, service):
        service.cases.get_by_id.return_value = _record(CaseStatus.PARSING)

        await service.transition("case-001", CaseStatus.RUNNING_COMMITTEE, current_step="committee", actor="system")

        service.cases.update.assert_awaited_once()
        _, updates = service.cases.update.call_args
        assert updates["status"] == "running_committee"
        assert updates["revision"] == 4
        assert updates["current_step"] == "committee"

        _, event = service.events.append.call_args
        assert event["status"] == "running_committee"
        assert event["payload"]["from"] == "parsing"
        assert event["correlation_id"] == "corr-1"

    @pytest.mark.asyncio
    async def test_invalid_move_is_rejected(self, service):
        service.cases.get_by_id.return_value = _record(CaseStatus.STORING_FILE)

        with pytest.raises(InvalidTransitionError):
            await service.transition("case-001", CaseStatus.COMPLETED)

        service.cases.update.assert_not_awaited()
        service.events.append.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_repeating_current_status_is_idempotent(self, service):
        service.cases.get_by_id.return_value = _record(CaseStatus.AWAITING_APPROVAL)

        await service.transition("case-001", CaseStatus.AWAITING_APPROVAL)

        service.cases.update.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_terminal_case_cannot_move(self, service):
        service.cases.get_by_id.return_value = _record(CaseStatus.COMPLETED)

        with pytest.raises(InvalidTransitionError):
            await service.transition("case-001", CaseStatus.FAILED)

    @pytest.mark.asyncio
    async def test_missing_case(self, service):
        service.cases.get_by_id.return_value = None

        with pytest.raises(CaseNotFoundError):
            await service.transition("case-404", CaseStatus.PARSING)
