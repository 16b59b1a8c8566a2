"""Unit tests for CommitteeAdjudicator, EvidencePackBuilder and CommitteeService."""

import asyncio
from typing import Dict, Optional

import pytest

from order_intake.core.exceptions import InvalidProposalError, ReviewerUnavailableError
from order_intake.schemas.committee import (
    CandidateColumn,
    CandidateSet,
    ConsensusLevel,
    EvidencePack,
    ProposedMapping,
    ReviewerProposal,
)
from order_intake.services.committee import (
    BaseReviewer,
    CommitteeAdjudicator,
    CommitteeService,
    EvidencePackBuilder,
)
from order_intake.services.committee.adjudicator import (
    REASON_EVIDENCE,
    REASON_LOW_CONFIDENCE,
    REASON_NO_AGREEMENT,
    REASON_SAME_TABLE,
)
from order_intake.services.parsing.schema_inference_service import SchemaInferenceCoordinator
from order_intake.services.parsing.workbook_loader import WorkbookLoader


def _candidates(fields, columns: Dict[str, str], table_ids: Optional[Dict[str, str]] = None) -> CandidateSet:
    table_ids = table_ids or {}
    return CandidateSet(
        fields=list(fields),
        columns={
            column: CandidateColumn(column=column, header=header, table_id=table_ids.get(column, "Order!A1:E10"))
            for column, header in columns.items()
        },
    )


def _proposal(reviewer_id: str, confidence: float = 0.9, **choices) -> ReviewerProposal:
    return ReviewerProposal(
        reviewer_id=reviewer_id,
        mappings=[
            ProposedMapping(field=field, selected_column=column, confidence=confidence)
            for field, column in choices.items()
        ],
        overall_confidence=confidence,
    )


COLUMNS = {"A": "Item Code", "B": "Qty", "C": "Unit Price", "D": "Line Total", "E": "Customer"}


class TestCommitteeAdjudicator:

    @pytest.fixture
    def adjudicator(self):
        return CommitteeAdjudicator()

    def test_unanimous_agreement_is_accepted(self, adjudicator):
        candidates = _candidates(["quantity"], COLUMNS)
        proposals = [_proposal(f"r{i}", 0.9, quantity="B") for i in range(3)]

        verdict = adjudicator.adjudicate(proposals, candidates, {"quantity": "B"})

        assert verdict.consensus == ConsensusLevel.UNANIMOUS
        assert verdict.accepted_mapping == {"quantity": "B"}
        assert verdict.ambiguous_fields == []
        assert verdict.needs_human is False
        assert verdict.successful_reviewers == 3

    def test_three_different_columns_is_ambiguous(self, adjudicator):
        candidates = _candidates(["quantity"], COLUMNS)
        proposals = [
            _proposal("r1", 0.9, quantity="B"),
            _proposal("r2", 0.9, quantity="C"),
            _proposal("r3", 0.9, quantity="D"),
        ]

        verdict = adjudicator.adjudicate(proposals, candidates)

        assert verdict.consensus in (ConsensusLevel.NO_CONSENSUS, ConsensusLevel.SPLIT)
        assert verdict.ambiguous_fields == ["quantity"]
        assert verdict.needs_human is True
        disagreement = verdict.disagreements[0]
        assert disagreement.reason == REASON_NO_AGREEMENT
        assert {c.column for c in disagreement.choices[:3]} == {"B", "C", "D"}

    def test_majority_wins_over_dissent(self, adjudicator):
        candidates = _candidates(["quantity", "sku"], COLUMNS)
        proposals = [
            _proposal("r1", 0.9, quantity="B", sku="A"),
            _proposal("r2", 0.8, quantity="B", sku="A"),
            _proposal("r3", 0.9, quantity="C", sku="A"),
        ]

        verdict = adjudicator.adjudicate(proposals, candidates)

        assert verdict.accepted_mapping == {"quantity": "B", "sku": "A"}
        assert verdict.consensus == ConsensusLevel.MAJORITY

    def test_low_confidence_agreement_is_ambiguous(self, adjudicator):
        candidates = _candidates(["quantity"], COLUMNS)
        proposals = [_proposal(f"r{i}", 0.5, quantity="B") for i in range(3)]

        verdict = adjudicator.adjudicate(proposals, candidates)

        assert verdict.ambiguous_fields == ["quantity"]
        assert verdict.disagreements[0].reason == REASON_LOW_CONFIDENCE

    def test_agreeing_on_absent_field(self, adjudicator):
        candidates = _candidates(["gtin"], COLUMNS)
        proposals = [_proposal(f"r{i}", 0.9, gtin=None) for i in range(3)]

        verdict = adjudicator.adjudicate(proposals, candidates)

        assert verdict.accepted_mapping == {}
        assert verdict.ambiguous_fields == []
        assert verdict.needs_human is False

    def test_proposal_outside_candidates_is_rejected(self, adjudicator):
        candidates = _candidates(["quantity"], COLUMNS)
        proposals = [
            _proposal("r1", 0.9, quantity="B"),
            _proposal("r2", 0.9, quantity="B"),
            _proposal("rogue", 0.99, quantity="Z"),
        ]

        verdict = adjudicator.adjudicate(proposals, candidates)

        assert [r.reviewer_id for r in verdict.rejected_proposals] == ["rogue"]
        assert verdict.accepted_mapping == {"quantity": "B"}

    def test_unknown_field_rejects_whole_proposal(self, adjudicator):
        candidates = _candidates(["quantity"], COLUMNS)
        proposals = [
            _proposal("r1", 0.9, quantity="B"),
            _proposal("r2", 0.9, quantity="B", discount="C"),
        ]

        verdict = adjudicator.adjudicate(proposals, candidates)

        assert [r.reviewer_id for r in verdict.rejected_proposals] == ["r2"]
        # one valid vote cannot reach the two-reviewer agreement
        assert verdict.ambiguous_fields == ["quantity"]

    def test_required_fields_from_different_tables_are_ambiguous(self, adjudicator):
        tables = {"A": "Order!A1:E10", "B": "Order!A1:E10", "C": "Order!G1:H5", "D": "Order!A1:E10"}
        candidates = _candidates(["sku", "quantity", "unit_price"], COLUMNS, tables)
        proposals = [_proposal(f"r{i}", 0.9, sku="A", quantity="B", unit_price="C") for i in range(3)]

        verdict = adjudicator.adjudicate(proposals, candidates)

        assert set(verdict.ambiguous_fields) == {"sku", "quantity", "unit_price"}
        assert {d.reason for d in verdict.disagreements} == {REASON_SAME_TABLE}

    def test_deterministic_evidence_overrides_committee(self, adjudicator):
        candidates = _candidates(["quantity", "sku"], COLUMNS)
        proposals = [_proposal(f"r{i}", 0.95, quantity="C", sku="A") for i in range(3)]

        verdict = adjudicator.adjudicate(proposals, candidates, {"quantity": "B", "sku": "A"})

        assert verdict.accepted_mapping == {"sku": "A"}
        assert verdict.ambiguous_fields == ["quantity"]
        disagreement = verdict.disagreements[0]
        assert disagreement.reason == REASON_EVIDENCE
        assert disagreement.deterministic_top == "B"
        assert [c.column for c in disagreement.choices[:2]] == ["C", "B"]

    def test_failed_reviewers_are_not_counted(self, adjudicator):
        candidates = _candidates(["quantity"], COLUMNS)
        proposals = [
            _proposal("r1", 0.9, quantity="B"),
            _proposal("r2", 0.9, quantity="B"),
            ReviewerProposal(reviewer_id="r3", error="timeout"),
        ]

        verdict = adjudicator.adjudicate(proposals, candidates)

        assert verdict.successful_reviewers == 2
        assert verdict.accepted_mapping == {"quantity": "B"}


class TestEvidencePackBuilder:

    def test_pack_is_bounded(self, build_workbook, synonyms):
        long_header = "Quantity " + "x" * 200
        rows = [["SKU", long_header]] + [[f"A-{i}", i] for i in range(1, 12)]
        sheet = WorkbookLoader().load(build_workbook(rows)).sheets[0]
        inference = SchemaInferenceCoordinator(synonyms).infer(sheet, 1, 1.0, 1.0)

        pack = EvidencePackBuilder().build("case-001", inference, language="en")

        assert pack.table_id == "Order!A1:B12"
        assert len(pack.columns) == 2
        assert all(len(column.samples) <= 5 for column in pack.columns)
        assert len(pack.columns[1].header) <= 100
        assert pack.constraints


class _StaticReviewer(BaseReviewer):
    def __init__(self, reviewer_id, proposal=None, error=None, delay=0.0):
        super().__init__(reviewer_id)
        self.proposal = proposal
        self.error = error
        self.delay = delay

    async def review(self, pack, candidates):
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error:
            raise self.error
        return self.to_proposal(self.proposal)


class TestCommitteeService:

    @pytest.fixture
    def pack(self):
        return EvidencePack(case_id="case-001", table_id="Order!A1:E10", expected_fields=["quantity"])

    @pytest.fixture
    def candidates(self):
        return _candidates(["quantity"], COLUMNS)

    @staticmethod
    def _answer(column="B", confidence=0.9):
        return {"mappings": [{"field": "quantity", "selected_column": column, "confidence": confidence}]}

    @pytest.mark.asyncio
    async def test_review_adjudicates_successful_answers(self, pack, candidates):
        service = CommitteeService([
            _StaticReviewer("r1", self._answer()),
            _StaticReviewer("r2", self._answer()),
            _StaticReviewer("r3", error=RuntimeError("model overloaded")),
        ])

        verdict = await service.review(pack, candidates, {"quantity": "B"})

        assert verdict.accepted_mapping == {"quantity": "B"}
        assert verdict.successful_reviewers == 2

    @pytest.mark.asyncio
    async def test_too_few_answers_raise(self, pack, candidates):
        service = CommitteeService(
            [
                _StaticReviewer("r1", self._answer()),
                _StaticReviewer("r2", error=RuntimeError("boom")),
                _StaticReviewer("r3", self._answer(), delay=1.0),
            ],
            reviewer_timeout=0.05,
        )

        with pytest.raises(ReviewerUnavailableError):
            await service.review(pack, candidates)

    def test_malformed_answer_is_invalid_proposal(self):
        reviewer = _StaticReviewer("r1")

        with pytest.raises(InvalidProposalError):
            reviewer.to_proposal({"mappings": [{"field": "quantity", "confidence": 7}]})
