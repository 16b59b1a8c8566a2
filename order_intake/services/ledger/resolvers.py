"""Customer and item resolution against ledger search results."""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from rapidfuzz import fuzz

from order_intake.schemas.order import LedgerCandidate, LineItem, ResolutionStatus
from order_intake.services.ledger.ledger_client import LedgerClient
from order_intake.services.parsing.normalizer import normalize_gtin, normalize_sku
from order_intake.utils.logging import get_logger

LOGGER = get_logger(__name__)

UNIQUE_THRESHOLD = 90.0
CANDIDATE_THRESHOLD = 60.0
MAX_CANDIDATES = 5


@dataclass
class Resolution:
    status: ResolutionStatus
    external_id: Optional[str] = None
    name: Optional[str] = None
    method: Optional[str] = None
    candidates: List[LedgerCandidate] = field(default_factory=list)


def _squash(value: Optional[str]) -> str:
    return " ".join((value or "").split()).casefold()


def rank_by_name(
    query: str,
    records: List[Dict[str, Any]],
    id_key: str,
    name_key: str,
    min_score: float = CANDIDATE_THRESHOLD,
) -> List[LedgerCandidate]:
    """Score records by rapidfuzz ``token_sort_ratio`` and keep those at or above ``min_score``."""
    ranked: List[LedgerCandidate] = []
    for record in records:
        name = record.get(name_key) or ""
        score = fuzz.token_sort_ratio(_squash(query), _squash(name))
        if score >= min_score:
            ranked.append(
                LedgerCandidate(
                    external_id=str(record[id_key]),
                    name=name,
                    score=round(score / 100.0, 4),
                    sku=record.get("sku"),
                    gtin=record.get("ean") or record.get("upc"),
                )
            )
    ranked.sort(key=lambda c: (-c.score, c.name))
    return ranked


def classify(ranked: List[LedgerCandidate], method: str = "fuzzy") -> Resolution:
    if not ranked:
        return Resolution(status=ResolutionStatus.NOT_FOUND)

    strong = [c for c in ranked if c.score * 100 >= UNIQUE_THRESHOLD]
    if len(strong) == 1:
        best = strong[0]
        return Resolution(
            status=ResolutionStatus.RESOLVED,
            external_id=best.external_id,
            name=best.name,
            method=method,
            candidates=ranked[:MAX_CANDIDATES],
        )
    return Resolution(status=ResolutionStatus.AMBIGUOUS, candidates=ranked[:MAX_CANDIDATES])


class CustomerResolver:
    """Exact name match, then a single strong fuzzy match, else candidates for the user."""

    def __init__(self, client: LedgerClient):
        self.client = client

    async def resolve(self, input_name: Optional[str]) -> Resolution:
        if not input_name or not input_name.strip():
            return Resolution(status=ResolutionStatus.NOT_FOUND)

        customers = await self.client.search_customers(input_name.strip())
        target = _squash(input_name)

        exact = [
            c for c in customers
            if _squash(c.get("contact_name")) == target or _squash(c.get("company_name")) == target
        ]
        if len(exact) == 1:
            match = exact[0]
            return Resolution(
                status=ResolutionStatus.RESOLVED,
                external_id=str(match["contact_id"]),
                name=match.get("contact_name"),
                method="exact",
                candidates=[LedgerCandidate(external_id=str(match["contact_id"]), name=match.get("contact_name") or "", score=1.0)],
            )

        resolution = classify(rank_by_name(input_name, customers, "contact_id", "contact_name"))
        LOGGER.info(
            f"Customer '{input_name}' resolved as {resolution.status.value}",
            extra={"candidates": len(resolution.candidates)},
        )
        return resolution


class ItemResolver:
    """Resolves line items by SKU, then GTIN, then fuzzy product name."""

    def __init__(self, client: LedgerClient):
        self.client = client

    async def resolve(self, line: LineItem) -> Resolution:
        sku = normalize_sku(line.sku)
        if sku:
            items = await self.client.search_items(sku)
            matches = [i for i in items if normalize_sku(i.get("sku")) == sku]
            if len(matches) == 1:
                return self._exact(matches[0], "sku")

        gtin = normalize_gtin(line.gtin)
        if gtin:
            items = await self.client.search_items(gtin)
            matches = [i for i in items if normalize_gtin(i.get("ean") or i.get("upc")) == gtin]
            if len(matches) == 1:
                return self._exact(matches[0], "gtin")

        if line.description:
            items = await self.client.search_items(line.description)
            return classify(rank_by_name(line.description, items, "item_id", "name"))

        return Resolution(status=ResolutionStatus.NOT_FOUND)

    @staticmethod
    def _exact(item: Dict[str, Any], method: str) -> Resolution:
        candidate = LedgerCandidate(
            external_id=str(item["item_id"]),
            name=item.get("name") or "",
            score=1.0,
            sku=item.get("sku"),
            gtin=item.get("ean") or item.get("upc"),
        )
        return Resolution(
            status=ResolutionStatus.RESOLVED,
            external_id=candidate.external_id,
            name=candidate.name,
            method=method,
            candidates=[candidate],
        )
