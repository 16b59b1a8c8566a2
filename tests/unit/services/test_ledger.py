"""Tests for the ledger HTTP client and the customer/item resolvers."""

from unittest.mock import AsyncMock

import httpx
import pytest

from order_intake.core.exceptions import APIClientError, LedgerUnavailableError
from order_intake.schemas.order import LineItem, ResolutionStatus
from order_intake.services.ledger.ledger_client import LedgerClient
from order_intake.services.ledger.resolvers import CustomerResolver, ItemResolver


def _client(handler) -> LedgerClient:
    return LedgerClient(
        base_url="https://ledger.test/",
        organization_id="org-1",
        transport=httpx.MockTransport(handler),
    )


class TestLedgerClient:

    @pytest.mark.asyncio
    async def test_search_customers_sends_organization(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["url"] = request.url
            return httpx.Response(200, json={"contacts": [{"contact_id": "1", "contact_name": "Acme"}]})

        contacts = await _client(handler).search_customers("Acme")

        assert contacts == [{"contact_id": "1", "contact_name": "Acme"}]
        assert seen["url"].path == "/books/v3/contacts"
        assert seen["url"].params["organization_id"] == "org-1"
        assert seen["url"].params["search_text"] == "Acme"

    @pytest.mark.asyncio
    async def test_create_draft_order(self):
        def handler(request: httpx.Request) -> httpx.Response:
            assert request.method == "POST"
            return httpx.Response(201, json={"salesorder": {"salesorder_id": "so-1", "salesorder_number": "SO-00001"}})

        result = await _client(handler).create_draft_order({"customer_id": "c-1", "line_items": []})

        assert result == {"salesorder_id": "so-1", "salesorder_number": "SO-00001"}

    @pytest.mark.asyncio
    async def test_server_error_is_unavailable(self):
        client = _client(lambda request: httpx.Response(503, text="maintenance"))

        with pytest.raises(LedgerUnavailableError):
            await client.search_items("ABC")

    @pytest.mark.asyncio
    async def test_connection_error_is_unavailable(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        with pytest.raises(LedgerUnavailableError):
            await _client(handler).search_items("ABC")

    @pytest.mark.asyncio
    async def test_client_error_is_not_unavailable(self):
        client = _client(lambda request: httpx.Response(400, json={"message": "bad customer"}))

        with pytest.raises(APIClientError) as exc_info:
            await client.create_draft_order({})

        assert not isinstance(exc_info.value, LedgerUnavailableError)

    @pytest.mark.asyncio
    async def test_missing_order_id_is_an_error(self):
        client = _client(lambda request: httpx.Response(200, json={"salesorder": {}}))

        with pytest.raises(APIClientError):
            await client.create_draft_order({})

    @pytest.mark.asyncio
    async def test_find_by_external_key_matches_reference_exactly(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["url"] = request.url
            return httpx.Response(
                200,
                json={
                    "salesorders": [
                        {"salesorder_id": "so-8", "salesorder_number": "SO-00008", "reference_number": "abc123-2"},
                        {"salesorder_id": "so-7", "salesorder_number": "SO-00007", "reference_number": "abc123"},
                    ]
                },
            )

        found = await _client(handler).find_by_external_key("abc123")

        assert found == {"salesorder_id": "so-7", "salesorder_number": "SO-00007"}
        assert seen["url"].path == "/books/v3/salesorders"
        assert seen["url"].params["reference_number"] == "abc123"

    @pytest.mark.asyncio
    async def test_find_by_external_key_without_match(self):
        client = _client(lambda request: httpx.Response(200, json={"salesorders": []}))

        assert await client.find_by_external_key("abc123") is None


class TestCustomerResolver:

    @pytest.fixture
    def ledger(self):
        return AsyncMock(spec=LedgerClient)

    @pytest.mark.asyncio
    async def test_exact_name_match(self, ledger):
        ledger.search_customers.return_value = [
            {"contact_id": 1, "contact_name": "Acme Trading Ltd"},
            {"contact_id": 2, "contact_name": "Acme Trading LLC"},
        ]

        resolution = await CustomerResolver(ledger).resolve("  acme   trading ltd ")

        assert resolution.status == ResolutionStatus.RESOLVED
        assert resolution.external_id == "1"
        assert resolution.method == "exact"

    @pytest.mark.asyncio
    async def test_single_strong_fuzzy_match(self, ledger):
        ledger.search_customers.return_value = [
            {"contact_id": "c-1", "contact_name": "Trading Acme Ltd"},
            {"contact_id": "c-2", "contact_name": "Globex Corporation"},
        ]

        resolution = await CustomerResolver(ledger).resolve("Acme Trading Ltd")

        assert resolution.status == ResolutionStatus.RESOLVED
        assert resolution.external_id == "c-1"
        assert resolution.method == "fuzzy"

    @pytest.mark.asyncio
    async def test_two_strong_matches_are_ambiguous(self, ledger):
        ledger.search_customers.return_value = [
            {"contact_id": "c-1", "contact_name": "Trading Acme Ltd"},
            {"contact_id": "c-2", "contact_name": "Ltd Acme Trading"},
        ]

        resolution = await CustomerResolver(ledger).resolve("Acme Trading Ltd")

        assert resolution.status == ResolutionStatus.AMBIGUOUS
        assert {c.external_id for c in resolution.candidates} == {"c-1", "c-2"}

    @pytest.mark.asyncio
    async def test_nothing_similar_is_not_found(self, ledger):
        ledger.search_customers.return_value = [{"contact_id": "c-9", "contact_name": "Zeta"}]

        resolution = await CustomerResolver(ledger).resolve("Acme Trading Ltd")

        assert resolution.status == ResolutionStatus.NOT_FOUND

    @pytest.mark.asyncio
    async def test_blank_name_skips_the_ledger(self, ledger):
        resolution = await CustomerResolver(ledger).resolve("   ")

        assert resolution.status == ResolutionStatus.NOT_FOUND
        ledger.search_customers.assert_not_awaited()


class TestItemResolver:

    @pytest.fixture
    def ledger(self):
        return AsyncMock(spec=LedgerClient)

    @pytest.mark.asyncio
    async def test_sku_match_wins(self, ledger):
        ledger.search_items.return_value = [
            {"item_id": "i-1", "name": "Blue widget", "sku": "abc-001"},
            {"item_id": "i-2", "name": "Blue widget XL", "sku": "ABC-0011"},
        ]

        resolution = await ItemResolver(ledger).resolve(LineItem(line_number=1, quantity=1, sku="ABC-001"))

        assert resolution.status == ResolutionStatus.RESOLVED
        assert resolution.external_id == "i-1"
        assert resolution.method == "sku"
        ledger.search_items.assert_awaited_once_with("ABC-001")

    @pytest.mark.asyncio
    async def test_falls_back_to_gtin(self, ledger):
        ledger.search_items.side_effect = [
            [],
            [{"item_id": "i-7", "name": "Red widget", "ean": "4006381333931"}],
        ]
        line = LineItem(line_number=2, quantity=4, sku="UNKNOWN", gtin="4006381333931")

        resolution = await ItemResolver(ledger).resolve(line)

        assert resolution.external_id == "i-7"
        assert resolution.method == "gtin"

    @pytest.mark.asyncio
    async def test_falls_back_to_description(self, ledger):
        ledger.search_items.return_value = [
            {"item_id": "i-3", "name": "Green widget"},
            {"item_id": "i-4", "name": "Gravel"},
        ]
        line = LineItem(line_number=3, quantity=2, description="green widget")

        resolution = await ItemResolver(ledger).resolve(line)

        assert resolution.status == ResolutionStatus.RESOLVED
        assert resolution.external_id == "i-3"
        assert resolution.method == "fuzzy"

    @pytest.mark.asyncio
    async def test_line_without_identifiers_is_not_found(self, ledger):
        resolution = await ItemResolver(ledger).resolve(LineItem(line_number=4, quantity=1))

        assert resolution.status == ResolutionStatus.NOT_FOUND
        ledger.search_items.assert_not_awaited()
