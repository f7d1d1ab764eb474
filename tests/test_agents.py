"""Tests for the LLM agents with the provider SDKs mocked out."""

import asyncio
import json
import pytest
from types import SimpleNamespace
from unittest.mock import AsyncMock, Mock, patch

import httpx
import openai

from puzzle_engine.agents import CreatorAgent, JudgeAgent, SolverAgent, TricksterAgent
from puzzle_engine.agents.base import map_provider_error, provider_for
from puzzle_engine.config import settings
from puzzle_engine.database import CacheManager
from puzzle_engine.errors import (
    ProviderError,
    ProviderResponseError,
    ProviderTimeoutError,
    ProviderTransientError,
    QuotaExceededError,
)
from puzzle_engine.models.puzzles import GenerationParams
from puzzle_engine.retry import RetryPolicy

from conftest import make_candidate


OPENAI_URL = "https://api.openai.com/v1/chat/completions"


def openai_response(content: str, tokens: int = 100):
    return SimpleNamespace(
        choices=[SimpleNamespace(message=SimpleNamespace(content=content))],
        usage=SimpleNamespace(total_tokens=tokens),
    )


def no_wait_policy(max_attempts: int = 3) -> RetryPolicy:
    return RetryPolicy(max_attempts=max_attempts, initial_delay=0, retry_on=(ProviderTransientError,))


CREATOR_RESPONSE = json.dumps({
    "thinking": ["sun and flower are both easy to draw", "sunflower has one reading"],
    "puzzle": {
        "content": "☀️ 🌻",
        "answer": "sunflower",
        "explanation": "Sun (☀️) + Flower (🌻) = Sunflower",
        "difficulty": 3,
        "hints": ["Think about nature", "Combine two elements", "A yellow flower"],
        "category": "compound_words",
    },
})


class TestProviderMapping:
    """Tests for translating SDK errors into the engine's taxonomy."""

    def test_provider_for_model(self):
        assert provider_for("claude-3-5-sonnet-latest") == "anthropic"
        assert provider_for("gpt-4o") == "openai"

    def test_rate_limit_is_quota(self):
        response = httpx.Response(
            429,
            request=httpx.Request("POST", OPENAI_URL),
            headers={"retry-after": "120"},
        )
        error = openai.RateLimitError("You exceeded your current quota", response=response, body=None)

        mapped = map_provider_error(error, "openai")

        assert isinstance(mapped, QuotaExceededError)
        assert mapped.quota_type == "day"
        assert mapped.reset_time is not None
        assert mapped.status_code == 429

    def test_connection_error_is_transient(self):
        error = openai.APIConnectionError(request=httpx.Request("POST", OPENAI_URL))
        assert isinstance(map_provider_error(error, "openai"), ProviderTransientError)

    def test_timeout_is_transient(self):
        mapped = map_provider_error(asyncio.TimeoutError(), "openai")
        assert isinstance(mapped, ProviderTimeoutError)

    def test_bad_request_is_not_transient(self):
        response = httpx.Response(400, request=httpx.Request("POST", OPENAI_URL))
        error = openai.BadRequestError("bad request", response=response, body=None)

        mapped = map_provider_error(error, "openai")

        assert type(mapped) is ProviderError
        assert mapped.status_code == 400


class TestBaseAgent:
    """Tests for the shared call, retry and parsing logic."""

    @pytest.fixture
    def client(self):
        client = Mock()
        client.chat.completions.create = AsyncMock(return_value=openai_response('{"ok": true}', tokens=150))
        return client

    @pytest.mark.asyncio
    async def test_call_llm_records_usage(self, client):
        agent = JudgeAgent(model_name="gpt-4o-mini", openai_client=client, retry_policy=no_wait_policy())

        assert await agent.call_llm("prompt") == '{"ok": true}'
        assert agent.total_calls == 1
        assert agent.consume_usage() == 150
        assert agent.consume_usage() == 0
        assert agent.total_tokens == 150

    @pytest.mark.asyncio
    async def test_transient_errors_are_retried(self, client):
        client.chat.completions.create.side_effect = [
            openai.APIConnectionError(request=httpx.Request("POST", OPENAI_URL)),
            openai_response('{"ok": true}'),
        ]
        agent = JudgeAgent(model_name="gpt-4o-mini", openai_client=client, retry_policy=no_wait_policy())

        assert await agent.call_llm("prompt") == '{"ok": true}'
        assert client.chat.completions.create.await_count == 2

    @pytest.mark.asyncio
    async def test_quota_is_not_retried(self, client):
        response = httpx.Response(429, request=httpx.Request("POST", OPENAI_URL))
        client.chat.completions.create.side_effect = openai.RateLimitError("Rate limit reached", response=response, body=None)
        agent = JudgeAgent(model_name="gpt-4o-mini", openai_client=client, retry_policy=no_wait_policy())

        with pytest.raises(QuotaExceededError) as exc_info:
            await agent.call_llm("prompt")

        assert exc_info.value.quota_type == "minute"
        assert client.chat.completions.create.await_count == 1

    @pytest.mark.asyncio
    async def test_call_deadline(self, client):
        async def hang(**kwargs):
            await asyncio.sleep(1)

        client.chat.completions.create.side_effect = hang
        agent = JudgeAgent(
            model_name="gpt-4o-mini",
            openai_client=client,
            retry_policy=no_wait_policy(max_attempts=1),
            timeout=0.01,
        )

        with pytest.raises(ProviderTimeoutError):
            await agent.call_llm("prompt")

    def test_missing_api_key(self, monkeypatch):
        monkeypatch.setattr(settings, "openai_api_key", None)
        agent = JudgeAgent(model_name="gpt-4o-mini")

        with pytest.raises(ProviderError):
            agent.openai_client

    @pytest.mark.asyncio
    async def test_low_temperature_responses_are_cached(self, client, monkeypatch):
        monkeypatch.setattr(settings, "enable_response_cache", True)
        cache = Mock(spec=CacheManager)
        cache.get_cached_llm_response = AsyncMock(side_effect=[None, '{"cached": true}'])
        cache.cache_llm_response = AsyncMock(return_value=True)
        agent = JudgeAgent(model_name="gpt-4o-mini", openai_client=client, cache_manager=cache)

        first = await agent.call_llm_with_cache("prompt", temperature=0.3)
        second = await agent.call_llm_with_cache("prompt", temperature=0.3)

        assert first == '{"ok": true}'
        assert second == '{"cached": true}'
        assert client.chat.completions.create.await_count == 1
        cache.cache_llm_response.assert_awaited_once_with("gpt-4o-mini", "prompt", '{"ok": true}')

    @pytest.mark.asyncio
    async def test_high_temperature_bypasses_cache(self, client):
        cache = Mock(spec=CacheManager)
        cache.get_cached_llm_response = AsyncMock()
        agent = JudgeAgent(model_name="gpt-4o-mini", openai_client=client, cache_manager=cache)

        await agent.call_llm_with_cache("prompt", temperature=0.9)

        cache.get_cached_llm_response.assert_not_awaited()

    def test_parse_json_response_strips_fences(self):
        agent = JudgeAgent(model_name="gpt-4o-mini")
        parsed = agent.parse_json_response('```json\n{"clarity": 80}\n```')
        assert parsed == {"clarity": 80}

    def test_parse_json_response_rejects_garbage(self):
        agent = JudgeAgent(model_name="gpt-4o-mini")
        with pytest.raises(ProviderResponseError):
            agent.parse_json_response("I could not think of a puzzle today.")


class TestCreatorAgent:
    """Tests for CreatorAgent."""

    @patch("puzzle_engine.agents.creator.CreatorAgent.call_llm", new_callable=AsyncMock)
    @pytest.mark.asyncio
    async def test_generate(self, mock_call_llm):
        mock_call_llm.return_value = CREATOR_RESPONSE
        agent = CreatorAgent(model_name="gpt-4o")

        candidate = await agent.generate(GenerationParams(target_difficulty=3, category="compound_words"))

        assert candidate.answer == "sunflower"
        assert candidate.difficulty == 3
        assert candidate.pattern_type == "compound_words"
        assert candidate.thinking == ["sun and flower are both easy to draw", "sunflower has one reading"]
        prompt = mock_call_llm.await_args.args[0]
        assert "Target difficulty: 3/10 (easy)" in prompt

    @patch("puzzle_engine.agents.creator.CreatorAgent.call_llm", new_callable=AsyncMock)
    @pytest.mark.asyncio
    async def test_generate_accepts_rebus_alias(self, mock_call_llm):
        mock_call_llm.return_value = json.dumps({"puzzle": {"rebus": "🌙 💡", "answer": "moonlight"}})
        agent = CreatorAgent(model_name="gpt-4o")

        candidate = await agent.generate(GenerationParams(target_difficulty=6, category="compound_words"))

        assert candidate.content == "🌙 💡"
        assert candidate.difficulty == 6
        assert candidate.category == "compound_words"

    @patch("puzzle_engine.agents.creator.CreatorAgent.call_llm", new_callable=AsyncMock)
    @pytest.mark.asyncio
    async def test_generate_rejects_incomplete_puzzle(self, mock_call_llm):
        mock_call_llm.return_value = json.dumps({"puzzle": {"answer": "moonlight"}})
        agent = CreatorAgent(model_name="gpt-4o")

        with pytest.raises(ProviderResponseError):
            await agent.generate(GenerationParams())


class TestScoringAgents:
    """Tests for the judge, trickster and solver response handling."""

    @patch("puzzle_engine.agents.base.BaseAgent.call_llm_with_cache", new_callable=AsyncMock)
    @pytest.mark.asyncio
    async def test_judge_analyze(self, mock_call):
        mock_call.return_value = json.dumps({
            "clarity": 90, "creativity": 70, "solvability": 85, "appropriateness": 100,
            "visual_appeal": 80, "educational_value": 60, "fun_factor": 75,
            "strengths": ["Clear"], "weaknesses": [],
        })

        analysis = await JudgeAgent(model_name="gpt-4o-mini").analyze(make_candidate())

        assert analysis.clarity == 90
        assert analysis.strengths == ["Clear"]

    @patch("puzzle_engine.agents.base.BaseAgent.call_llm_with_cache", new_callable=AsyncMock)
    @pytest.mark.asyncio
    async def test_trickster_attack(self, mock_call):
        mock_call.return_value = json.dumps({
            "issues": [{"attack_type": "alternative_answer", "description": "Could be sunshine",
                        "severity": "critical", "alternative_answer": "sunshine"}],
            "robustness_score": 40,
            "passes": False,
        })

        report = await TricksterAgent(model_name="gpt-4o-mini").attack(make_candidate())

        assert report.has_critical_issue is True
        assert report.issues[0].alternative_answer == "sunshine"

    @patch("puzzle_engine.agents.base.BaseAgent.call_llm_with_cache", new_callable=AsyncMock)
    @pytest.mark.asyncio
    async def test_solver_self_test(self, mock_call):
        mock_call.return_value = json.dumps({
            "proposed_answer": "Sun Flower",
            "perceived_difficulty": 2,
            "reasoning": "sun plus flower",
        })

        report = await SolverAgent(model_name="gpt-4o-mini").self_test(make_candidate())

        assert report.solved is True
        assert report.perceived_difficulty == 2
        prompt = mock_call.await_args.args[0]
        assert "Answer:" not in prompt
