"""Runs the reviewer committee for one mapping task."""

import asyncio
from typing import Dict, List, Optional, Sequence

from order_intake.core.config import CommitteeSettings
from order_intake.core.exceptions import ReviewerUnavailableError
from order_intake.schemas.committee import CandidateSet, CommitteeVerdict, EvidencePack, ReviewerProposal
from order_intake.services.committee.adjudicator import CommitteeAdjudicator
from order_intake.services.committee.reviewers import BaseReviewer, OpenRouterReviewer
from order_intake.utils.logging import get_logger

LOGGER = get_logger(__name__)


class CommitteeService:
    """Fans a mapping task out to every reviewer and adjudicates the answers.

    Reviewer calls run concurrently, at most ``max_concurrent`` at a time.
    A reviewer that errors or times out yields a failed proposal; fewer than
    ``min_successful`` answers raise :class:`ReviewerUnavailableError` so the
    calling activity is retried.
    """

    def __init__(
        self,
        reviewers: Sequence[BaseReviewer],
        adjudicator: Optional[CommitteeAdjudicator] = None,
        max_concurrent: int = 3,
        min_successful: int = 2,
        reviewer_timeout: float = 30.0,
    ):
        self.reviewers = list(reviewers)
        self.adjudicator = adjudicator or CommitteeAdjudicator()
        self.max_concurrent = max_concurrent
        self.min_successful = min_successful
        self.reviewer_timeout = reviewer_timeout

    @classmethod
    def from_settings(cls, committee_settings: CommitteeSettings) -> "CommitteeService":
        reviewers = [
            OpenRouterReviewer(
                model=model,
                api_key=committee_settings.openrouter_api_key,
                base_url=committee_settings.openrouter_api_url,
                timeout=committee_settings.reviewer_timeout_seconds,
            )
            for model in committee_settings.reviewer_models
        ]
        return cls(
            reviewers=reviewers,
            adjudicator=CommitteeAdjudicator(
                consensus_threshold=committee_settings.consensus_threshold,
                min_agreeing=committee_settings.min_agreeing_reviewers,
            ),
            max_concurrent=committee_settings.max_concurrent_reviewers,
            min_successful=committee_settings.min_successful_reviewers,
            reviewer_timeout=committee_settings.reviewer_timeout_seconds,
        )

    async def review(
        self,
        pack: EvidencePack,
        candidates: CandidateSet,
        deterministic_top: Optional[Dict[str, str]] = None,
    ) -> CommitteeVerdict:
        semaphore = asyncio.Semaphore(self.max_concurrent)
        proposals: List[ReviewerProposal] = await asyncio.gather(
            *(self._run_reviewer(reviewer, pack, candidates, semaphore) for reviewer in self.reviewers)
        )

        successful = [p for p in proposals if not p.failed]
        LOGGER.info(
            "Committee responses collected",
            extra={
                "case_id": pack.case_id,
                "reviewers": len(proposals),
                "successful": len(successful),
            },
        )

        if len(successful) < self.min_successful:
            raise ReviewerUnavailableError(
                f"Case {pack.case_id}: only {len(successful)} of {len(proposals)} reviewers answered "
                f"(need {self.min_successful})"
            )

        return self.adjudicator.adjudicate(proposals, candidates, deterministic_top)

    async def _run_reviewer(
        self,
        reviewer: BaseReviewer,
        pack: EvidencePack,
        candidates: CandidateSet,
        semaphore: asyncio.Semaphore,
    ) -> ReviewerProposal:
        async with semaphore:
            try:
                return await asyncio.wait_for(reviewer.review(pack, candidates), timeout=self.reviewer_timeout)
            except asyncio.TimeoutError:
                LOGGER.warning(
                    "Reviewer timed out",
                    extra={"reviewer_id": reviewer.reviewer_id, "case_id": pack.case_id},
                )
                return ReviewerProposal(reviewer_id=reviewer.reviewer_id, weight=reviewer.weight, error="timeout")
            except Exception as e:
                LOGGER.error(
                    f"Reviewer {reviewer.reviewer_id} failed: {e}",
                    extra={"reviewer_id": reviewer.reviewer_id, "case_id": pack.case_id},
                    exc_info=True,
                )
                return ReviewerProposal(reviewer_id=reviewer.reviewer_id, weight=reviewer.weight, error=str(e))
