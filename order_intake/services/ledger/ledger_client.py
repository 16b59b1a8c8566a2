"""HTTP client for the downstream ledger (Zoho Books style API)."""

from typing import Any, Dict, List, Optional

import httpx

from order_intake.core.config import IntegrationSettings
from order_intake.core.exceptions import APIClientError, LedgerUnavailableError
from order_intake.utils.logging import get_logger

LOGGER = get_logger(__name__)


class LedgerClient:
    """Thin async adapter over the ledger's contacts, items and sales orders endpoints.

    Connection failures, timeouts and 5xx responses raise
    :class:`LedgerUnavailableError` (retried by the calling activity). Other
    non-2xx responses raise :class:`APIClientError`.
    """

    def __init__(
        self,
        base_url: str,
        organization_id: str,
        timeout: float = 60.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.organization_id = organization_id
        self.timeout = timeout
        self._transport = transport

    @classmethod
    def from_settings(cls, integrations: IntegrationSettings) -> "LedgerClient":
        return cls(
            base_url=integrations.ledger_base_url,
            organization_id=integrations.ledger_organization_id,
            timeout=integrations.http_timeout,
        )

    async def search_customers(self, search_text: str) -> List[Dict[str, Any]]:
        data = await self._request("GET", "/books/v3/contacts", params={"search_text": search_text, "contact_type": "customer"})
        return data.get("contacts", [])

    async def search_items(self, search_text: str) -> List[Dict[str, Any]]:
        data = await self._request("GET", "/books/v3/items", params={"search_text": search_text})
        return data.get("items", [])

    async def create_draft_order(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        """Create a draft sales order and return ``{"salesorder_id", "salesorder_number"}``."""
        data = await self._request("POST", "/books/v3/salesorders", json=payload)
        order = data.get("salesorder") or {}
        if not order.get("salesorder_id"):
            raise APIClientError("Ledger response did not contain a sales order id")
        return {
            "salesorder_id": order["salesorder_id"],
            "salesorder_number": order.get("salesorder_number"),
        }

    async def find_by_external_key(self, external_key: str) -> Optional[Dict[str, Any]]:
        """Return the sales order whose reference number is ``external_key``, if one exists."""
        data = await self._request("GET", "/books/v3/salesorders", params={"reference_number": external_key})
        for order in data.get("salesorders") or []:
            # the ledger filter is a prefix match
            if order.get("reference_number") == external_key and order.get("salesorder_id"):
                return {
                    "salesorder_id": order["salesorder_id"],
                    "salesorder_number": order.get("salesorder_number"),
                }
        return None

    async def _request(
        self,
        method: str,
        path: str,
        params: Optional[Dict[str, Any]] = None,
        json: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        url = f"{self.base_url}{path}"
        query = {"organization_id": self.organization_id, **(params or {})}

        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                response = await client.request(method, url, params=query, json=json)
        except httpx.TimeoutException as e:
            LOGGER.warning(f"Ledger request timed out: {method} {path}")
            raise LedgerUnavailableError(f"Ledger timed out on {method} {path}", original_error=e)
        except httpx.HTTPError as e:
            LOGGER.warning(f"Ledger unreachable: {method} {path}: {e}")
            raise LedgerUnavailableError(f"Ledger unreachable: {e}", original_error=e)

        if response.status_code >= 500:
            LOGGER.error(
                f"Ledger server error: {response.text}",
                extra={"path": path, "status_code": response.status_code},
            )
            raise LedgerUnavailableError(f"Ledger returned {response.status_code} on {method} {path}")

        if response.status_code >= 400:
            LOGGER.error(
                f"Ledger rejected request: {response.text}",
                extra={"path": path, "status_code": response.status_code},
            )
            raise APIClientError(f"Ledger returned {response.status_code}: {response.text}")

        return response.json()
