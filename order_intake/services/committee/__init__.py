"""Reviewer committee: evidence packs, reviewers and adjudication."""

from order_intake.services.committee.adjudicator import CommitteeAdjudicator
from order_intake.services.committee.committee_service import CommitteeService
from order_intake.services.committee.evidence_pack import COMMITTEE_FIELDS, EvidencePackBuilder
from order_intake.services.committee.reviewers import BaseReviewer, OpenRouterReviewer

__all__ = [
    "CommitteeAdjudicator",
    "CommitteeService",
    "COMMITTEE_FIELDS",
    "EvidencePackBuilder",
    "BaseReviewer",
    "OpenRouterReviewer",
]
