"""Tests for the chat completion client and the model-backed reviewer."""

import json

import httpx
import pytest

from order_intake.core.exceptions import APIClientError
from order_intake.core.llm_client import ChatCompletionClient
from order_intake.schemas.committee import CandidateColumn, CandidateSet, EvidenceColumn, EvidencePack
from order_intake.services.committee import OpenRouterReviewer


def _completion(content: str) -> httpx.Response:
    return httpx.Response(200, json={"choices": [{"message": {"role": "assistant", "content": content}}]})


def _client(handler, max_retries: int = 2) -> ChatCompletionClient:
    return ChatCompletionClient(
        api_key="key",
        model="test/model",
        url="https://llm.test/v1/chat/completions",
        max_retries=max_retries,
        retry_delay=0,
        transport=httpx.MockTransport(handler),
    )


class TestChatCompletionClient:

    @pytest.mark.asyncio
    async def test_sends_json_mode_request(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["body"] = json.loads(request.content)
            seen["auth"] = request.headers["Authorization"]
            return _completion('{"mappings": []}')

        content = await _client(handler).complete("map columns", system_prompt="be strict")

        assert content == '{"mappings": []}'
        assert seen["auth"] == "Bearer key"
        assert seen["body"]["model"] == "test/model"
        assert seen["body"]["response_format"] == {"type": "json_object"}
        assert [m["role"] for m in seen["body"]["messages"]] == ["system", "user"]

    @pytest.mark.asyncio
    async def test_retries_rate_limit(self):
        responses = iter([httpx.Response(429, text="slow down"), _completion("{}")])

        content = await _client(lambda request: next(responses)).complete("x")

        assert content == "{}"

    @pytest.mark.asyncio
    async def test_bad_request_is_not_retried(self):
        calls = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(request)
            return httpx.Response(400, text="bad model")

        with pytest.raises(APIClientError):
            await _client(handler, max_retries=3).complete("x")

        assert len(calls) == 1

    @pytest.mark.asyncio
    async def test_missing_choices(self):
        with pytest.raises(APIClientError, match="no choices"):
            await _client(lambda request: httpx.Response(200, json={})).complete("x")


class TestOpenRouterReviewer:

    @pytest.fixture
    def pack(self):
        return EvidencePack(
            case_id="case-001",
            table_id="Order!A1:B5",
            expected_fields=["quantity"],
            columns=[
                EvidenceColumn(column="A", header="SKU", detected_type="text", samples=["A-1"]),
                EvidenceColumn(column="B", header="Qty", detected_type="integer", samples=["5"]),
            ],
        )

    @pytest.fixture
    def candidates(self):
        return CandidateSet(
            fields=["quantity"],
            columns={"B": CandidateColumn(column="B", header="Qty", table_id="Order!A1:B5")},
        )

    def test_prompt_lists_only_candidate_columns(self, pack, candidates):
        prompt = OpenRouterReviewer.build_prompt(pack, candidates)
        task = json.loads(prompt.split("\n\n", 1)[1])

        assert [c["column"] for c in task["columns"]] == ["B"]
        assert task["fields"] == ["quantity"]

    @pytest.mark.asyncio
    async def test_review_parses_model_answer(self, pack, candidates):
        reviewer = OpenRouterReviewer(model="test/model", api_key="key", base_url="https://llm.test")
        reviewer.client = _client(
            lambda request: _completion(
                '```json\n{"mappings": [{"field": "quantity", "selected_column": "B", "confidence": 0.93}],'
                ' "overall_confidence": 0.9}\n```'
            )
        )

        proposal = await reviewer.review(pack, candidates)

        assert proposal.reviewer_id == "test/model"
        assert proposal.choice_for("quantity").selected_column == "B"
        assert proposal.overall_confidence == 0.9
