"""Deterministic adjudication of reviewer proposals.

Rules, per field:

* proposals naming a field or column outside the candidate set are rejected
  whole before counting
* a column (or an explicit ``null``) is accepted when at least
  ``min_agreeing`` proposals pick it and their mean confidence reaches
  ``consensus_threshold``; anything else is AMBIGUOUS
* accepted required fields must come from one table, otherwise all of them
  become AMBIGUOUS
* then, where the header matcher's top column disagrees with the accepted
  decision, the field becomes AMBIGUOUS
"""

from collections import OrderedDict
from typing import Dict, List, Optional, Sequence, Tuple

from order_intake.schemas.committee import (
    CandidateColumn,
    CandidateSet,
    CommitteeVerdict,
    ConsensusLevel,
    Disagreement,
    FieldVote,
    RejectedProposal,
    ReviewerProposal,
)
from order_intake.utils.logging import get_logger

LOGGER = get_logger(__name__)

REQUIRED_SAME_TABLE_FIELDS = ("sku", "quantity", "unit_price", "line_total")

REASON_NO_AGREEMENT = "no_agreement"
REASON_LOW_CONFIDENCE = "low_confidence"
REASON_SAME_TABLE = "same_table_violation"
REASON_EVIDENCE = "deterministic_evidence_conflict"

_ABSENT = object()


class CommitteeAdjudicator:
    def __init__(
        self,
        consensus_threshold: float = 0.70,
        min_agreeing: int = 2,
        required_fields: Sequence[str] = REQUIRED_SAME_TABLE_FIELDS,
        max_choices: int = 5,
    ):
        self.consensus_threshold = consensus_threshold
        self.min_agreeing = min_agreeing
        self.required_fields = tuple(required_fields)
        self.max_choices = max_choices

    def adjudicate(
        self,
        proposals: Sequence[ReviewerProposal],
        candidates: CandidateSet,
        deterministic_top: Optional[Dict[str, str]] = None,
    ) -> CommitteeVerdict:
        """Merge proposals into a verdict.

        Args:
            proposals: One proposal per reviewer, failed ones included
            candidates: Fields to decide and columns allowed
            deterministic_top: Header matcher's top column per field

        Returns:
            CommitteeVerdict with accepted mapping and disagreements
        """
        deterministic_top = deterministic_top or {}
        successful = [p for p in proposals if not p.failed]
        valid, rejected = self._split_valid(successful, candidates)

        # field -> accepted column, or None when accepted as absent
        decisions: Dict[str, Optional[str]] = {}
        reasons: Dict[str, str] = {}
        votes_by_field: Dict[str, List[FieldVote]] = {}
        unanimous_fields = set()

        for field in candidates.fields:
            votes = self._votes(valid, field)
            votes_by_field[field] = votes
            winner, reason = self._decide(votes)
            if winner is _ABSENT:
                reasons[field] = reason
                continue
            decisions[field] = winner
            if len(votes) == len(valid) and all(v.column == winner for v in votes):
                unanimous_fields.add(field)

        self._apply_same_table(decisions, reasons, candidates)
        self._apply_evidence(decisions, reasons, deterministic_top)

        ambiguous = [field for field in candidates.fields if field not in decisions]
        accepted_mapping = {field: column for field, column in decisions.items() if column is not None}
        consensus = self._consensus(candidates.fields, decisions, unanimous_fields)

        weights = {p.reviewer_id: p.weight for p in valid}
        disagreements = [
            Disagreement(
                field=field,
                reason=reasons.get(field, REASON_NO_AGREEMENT),
                votes=sorted(votes_by_field.get(field, []), key=lambda v: (-weights.get(v.reviewer_id, 1.0), v.reviewer_id)),
                choices=self._choices(field, votes_by_field.get(field, []), candidates, deterministic_top),
                deterministic_top=deterministic_top.get(field),
            )
            for field in ambiguous
        ]

        verdict = CommitteeVerdict(
            consensus=consensus,
            accepted_mapping=accepted_mapping,
            ambiguous_fields=ambiguous,
            disagreements=disagreements,
            rejected_proposals=rejected,
            successful_reviewers=len(successful),
            needs_human=bool(ambiguous),
        )
        LOGGER.info(
            "Committee adjudicated",
            extra={
                "consensus": consensus.value,
                "accepted": accepted_mapping,
                "ambiguous": ambiguous,
                "rejected": [r.reviewer_id for r in rejected],
            },
        )
        return verdict

    @staticmethod
    def _split_valid(
        proposals: Sequence[ReviewerProposal], candidates: CandidateSet
    ) -> Tuple[List[ReviewerProposal], List[RejectedProposal]]:
        valid: List[ReviewerProposal] = []
        rejected: List[RejectedProposal] = []
        allowed_fields = set(candidates.fields)

        for proposal in proposals:
            problem = None
            for mapping in proposal.mappings:
                if mapping.field not in allowed_fields:
                    problem = f"unknown field '{mapping.field}'"
                    break
                if mapping.selected_column is not None and mapping.selected_column not in candidates.columns:
                    problem = f"column '{mapping.selected_column}' is not a candidate for '{mapping.field}'"
                    break

            if problem:
                LOGGER.warning(
                    "Rejected reviewer proposal",
                    extra={"reviewer_id": proposal.reviewer_id, "reason": problem},
                )
                rejected.append(RejectedProposal(reviewer_id=proposal.reviewer_id, reason=problem))
            else:
                valid.append(proposal)

        return valid, rejected

    @staticmethod
    def _votes(proposals: Sequence[ReviewerProposal], field: str) -> List[FieldVote]:
        votes = []
        for proposal in proposals:
            choice = proposal.choice_for(field)
            if choice is not None:
                votes.append(
                    FieldVote(
                        reviewer_id=proposal.reviewer_id,
                        column=choice.selected_column,
                        confidence=choice.confidence,
                    )
                )
        return votes

    def _decide(self, votes: Sequence[FieldVote]):
        groups: "OrderedDict[Optional[str], List[FieldVote]]" = OrderedDict()
        for vote in votes:
            groups.setdefault(vote.column, []).append(vote)

        best = None
        best_key = None
        saw_agreement = False
        for column, group in groups.items():
            if len(group) < self.min_agreeing:
                continue
            saw_agreement = True
            mean = sum(v.confidence for v in group) / len(group)
            if mean < self.consensus_threshold:
                continue
            key = (len(group), mean)
            if best_key is None or key > best_key:
                best, best_key = column, key

        if best_key is not None:
            return best, ""
        return _ABSENT, REASON_LOW_CONFIDENCE if saw_agreement else REASON_NO_AGREEMENT

    def _apply_same_table(
        self, decisions: Dict[str, Optional[str]], reasons: Dict[str, str], candidates: CandidateSet
    ) -> None:
        required = [f for f in self.required_fields if decisions.get(f) is not None]
        tables = {candidates.table_of(decisions[f]) for f in required}
        if len(tables) <= 1:
            return
        for field in required:
            decisions.pop(field)
            reasons[field] = REASON_SAME_TABLE

    @staticmethod
    def _apply_evidence(
        decisions: Dict[str, Optional[str]], reasons: Dict[str, str], deterministic_top: Dict[str, str]
    ) -> None:
        for field, column in list(decisions.items()):
            top = deterministic_top.get(field)
            if top is not None and column != top:
                decisions.pop(field)
                reasons[field] = REASON_EVIDENCE

    @staticmethod
    def _consensus(
        fields: Sequence[str], decisions: Dict[str, Optional[str]], unanimous_fields: set
    ) -> ConsensusLevel:
        if not fields:
            return ConsensusLevel.NO_CONSENSUS
        accepted = sum(1 for field in fields if field in decisions)
        if accepted == len(fields) and all(field in unanimous_fields for field in fields):
            return ConsensusLevel.UNANIMOUS
        ratio = accepted / len(fields)
        if ratio >= 2 / 3:
            return ConsensusLevel.MAJORITY
        if ratio >= 1 / 3:
            return ConsensusLevel.SPLIT
        return ConsensusLevel.NO_CONSENSUS

    def _choices(
        self,
        field: str,
        votes: Sequence[FieldVote],
        candidates: CandidateSet,
        deterministic_top: Dict[str, str],
    ) -> List[CandidateColumn]:
        counts: Dict[str, int] = {}
        for vote in votes:
            if vote.column is not None:
                counts[vote.column] = counts.get(vote.column, 0) + 1

        ordered: List[str] = sorted(counts, key=lambda column: -counts[column])
        top = deterministic_top.get(field)
        if top and top not in ordered:
            ordered.append(top)
        ordered.extend(column for column in candidates.columns if column not in ordered)

        return [candidates.columns[column] for column in ordered if column in candidates.columns][: self.max_choices]
