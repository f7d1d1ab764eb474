"""Base agent class with common LLM functionality."""

import asyncio
import json
import logging
import re
from abc import ABC
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional, Type, TypeVar

import anthropic
import openai
from pydantic import BaseModel, ValidationError

from ..config import settings
from ..database.cache import CacheManager
from ..errors import (
    ProviderError,
    ProviderResponseError,
    ProviderTimeoutError,
    ProviderTransientError,
    QuotaExceededError,
)
from ..retry import RetryPolicy

logger = logging.getLogger(__name__)

M = TypeVar("M", bound=BaseModel)

# Responses at or below this temperature are treated as deterministic and cached
CACHEABLE_TEMPERATURE = 0.3


def provider_for(model: str) -> str:
    return "anthropic" if model.startswith("claude-") else "openai"


def _reset_time_from_headers(headers) -> Optional[datetime]:
    if not headers:
        return None
    retry_after = headers.get("retry-after")
    if retry_after:
        try:
            return datetime.now(timezone.utc) + timedelta(seconds=float(retry_after))
        except ValueError:
            pass
    reset_at = headers.get("anthropic-ratelimit-requests-reset")
    if reset_at:
        try:
            return datetime.fromisoformat(reset_at.replace("Z", "+00:00"))
        except ValueError:
            pass
    return None


def map_provider_error(error: Exception, provider: str) -> ProviderError:
    """Translate an SDK exception into the engine's error taxonomy."""
    if isinstance(error, (openai.RateLimitError, anthropic.RateLimitError)):
        message = str(error).lower()
        quota_type = "day" if "quota" in message or "billing" in message else "minute"
        response = getattr(error, "response", None)
        return QuotaExceededError(
            quota_type=quota_type,
            reset_time=_reset_time_from_headers(getattr(response, "headers", None)),
            provider=provider,
        )
    if isinstance(error, (openai.APITimeoutError, anthropic.APITimeoutError, asyncio.TimeoutError)):
        return ProviderTimeoutError(f"{provider} request timed out", provider=provider)
    if isinstance(error, (openai.APIConnectionError, anthropic.APIConnectionError)):
        return ProviderTransientError(f"{provider} connection error: {error}", provider=provider)
    if isinstance(error, (openai.InternalServerError, anthropic.InternalServerError)):
        return ProviderTransientError(
            f"{provider} server error: {error}", provider=provider, status_code=error.status_code
        )
    if isinstance(error, (openai.APIStatusError, anthropic.APIStatusError)):
        return ProviderError(f"{provider} API error: {error}", provider=provider, status_code=error.status_code)
    return ProviderError(f"{provider} call failed: {error}", provider=provider)


class BaseAgent(ABC):
    """Base class for the LLM-backed agents of the puzzle pipeline."""

    role_description = "an expert rebus puzzle editor"

    def __init__(
        self,
        model_name: str = None,
        cache_manager: Optional[CacheManager] = None,
        retry_policy: Optional[RetryPolicy] = None,
        timeout: Optional[float] = None,
        openai_client=None,
        anthropic_client=None,
    ):
        """Initialize the base agent."""
        self.model_name = model_name or settings.default_generation_model
        self.cache_manager = cache_manager
        self.retry_policy = retry_policy or RetryPolicy.for_provider(settings)
        self.timeout = timeout or settings.provider_timeout_seconds

        # Clients are created on first use so agents can be built without keys
        self._openai_client = openai_client
        self._anthropic_client = anthropic_client

        self._pending_tokens = 0
        self.total_tokens = 0
        self.total_calls = 0

    @property
    def provider(self) -> str:
        return provider_for(self.model_name)

    @property
    def openai_client(self):
        if self._openai_client is None:
            if not settings.openai_api_key:
                raise ProviderError("OpenAI API key not configured", provider="openai")
            self._openai_client = openai.AsyncOpenAI(api_key=settings.openai_api_key)
        return self._openai_client

    @property
    def anthropic_client(self):
        if self._anthropic_client is None:
            if not settings.anthropic_api_key:
                raise ProviderError("Anthropic API key not configured", provider="anthropic")
            self._anthropic_client = anthropic.AsyncAnthropic(api_key=settings.anthropic_api_key)
        return self._anthropic_client

    async def call_llm(
        self,
        prompt: str,
        model: str = None,
        max_tokens: int = None,
        temperature: float = 0.7,
    ) -> str:
        """Call the appropriate LLM based on model name, retrying transient failures."""
        model = model or self.model_name
        max_tokens = max_tokens or settings.max_tokens
        return await self.retry_policy.call(self._call_once, prompt, model, max_tokens, temperature)

    async def _call_once(self, prompt: str, model: str, max_tokens: int, temperature: float) -> str:
        provider = provider_for(model)
        try:
            if provider == "anthropic":
                call = self._call_anthropic(prompt, model, max_tokens, temperature)
            else:
                call = self._call_openai(prompt, model, max_tokens, temperature)
            return await asyncio.wait_for(call, timeout=self.timeout)

        except ProviderError:
            raise
        except Exception as e:
            mapped = map_provider_error(e, provider)
            logger.error(f"Error calling LLM {model}: {mapped}")
            raise mapped from e

    async def _call_openai(self, prompt: str, model: str, max_tokens: int, temperature: float) -> str:
        """Call OpenAI API."""
        response = await self.openai_client.chat.completions.create(
            model=model,
            messages=[{"role": "user", "content": prompt}],
            max_tokens=max_tokens,
            temperature=temperature,
        )
        if response.usage is not None:
            self._record_usage(response.usage.total_tokens)
        return response.choices[0].message.content or ""

    async def _call_anthropic(self, prompt: str, model: str, max_tokens: int, temperature: float) -> str:
        """Call Anthropic API."""
        response = await self.anthropic_client.messages.create(
            model=model,
            max_tokens=max_tokens,
            temperature=temperature,
            messages=[{"role": "user", "content": prompt}],
        )
        if response.usage is not None:
            self._record_usage(response.usage.input_tokens + response.usage.output_tokens)
        return response.content[0].text

    def _record_usage(self, tokens: int) -> None:
        self._pending_tokens += tokens
        self.total_tokens += tokens
        self.total_calls += 1

    def consume_usage(self) -> int:
        """Tokens used since the previous call to this method."""
        tokens, self._pending_tokens = self._pending_tokens, 0
        return tokens

    async def call_llm_with_cache(self, prompt: str, temperature: float = 0.7, **kwargs) -> str:
        """Call LLM, reusing cached responses for low-temperature prompts."""
        model = kwargs.get("model") or self.model_name
        cacheable = (
            self.cache_manager is not None
            and settings.enable_response_cache
            and temperature <= CACHEABLE_TEMPERATURE
        )

        if cacheable:
            cached_response = await self.cache_manager.get_cached_llm_response(model, prompt)
            if cached_response:
                logger.debug(f"Cache hit for {self.__class__.__name__} on {model}")
                return cached_response

        response = await self.call_llm(prompt, temperature=temperature, **kwargs)

        if cacheable:
            await self.cache_manager.cache_llm_response(model, prompt, response)

        return response

    def get_agent_metadata(self) -> Dict[str, Any]:
        """Get metadata about this agent."""
        return {
            "agent_name": self.__class__.__name__,
            "model_name": self.model_name,
            "provider": self.provider,
            "total_calls": self.total_calls,
            "total_tokens": self.total_tokens,
        }

    def create_system_prompt(self, role_description: str = None, guidelines: List[str] = None) -> str:
        """Create a system prompt for the agent."""
        prompt_parts = [
            f"You are {role_description or self.role_description}.",
            "",
            "Context: You are part of a daily puzzle service that publishes one rebus puzzle per day.",
            "A rebus combines emojis, symbols and short text so that reading them together spells an answer.",
            "Puzzles must be family friendly, fair, and have exactly one reasonable answer.",
            "",
        ]

        if guidelines:
            prompt_parts.append("Guidelines:")
            for guideline in guidelines:
                prompt_parts.append(f"- {guideline}")
            prompt_parts.append("")

        return "\n".join(prompt_parts)

    def parse_json_response(self, response: str) -> Dict[str, Any]:
        """Parse JSON response from LLM, handling common formatting issues."""
        response = (response or "").strip()

        # Remove markdown code blocks if present
        if response.startswith("```"):
            lines = response.split("\n")
            end_idx = next((i for i in range(len(lines) - 1, 0, -1) if lines[i].startswith("```")), len(lines))
            response = "\n".join(lines[1:end_idx])

        json_match = re.search(r"\{.*\}", response, re.DOTALL)
        if json_match:
            response = json_match.group(0)

        try:
            parsed = json.loads(response)
        except json.JSONDecodeError as e:
            logger.error(f"Failed to parse JSON response: {e}")
            logger.debug(f"Response was: {response}")
            raise ProviderResponseError(f"Invalid JSON response: {e}", provider=self.provider)

        if not isinstance(parsed, dict):
            raise ProviderResponseError("Expected a JSON object", provider=self.provider)
        return parsed

    def parse_model(self, data: Dict[str, Any], model_cls: Type[M]) -> M:
        """Validate parsed JSON against a response model."""
        try:
            return model_cls.model_validate(data)
        except ValidationError as e:
            logger.error(f"{self.__class__.__name__} returned an invalid {model_cls.__name__}: {e}")
            raise ProviderResponseError(
                f"Invalid {model_cls.__name__} payload: {e.error_count()} errors", provider=self.provider
            )

    def format_puzzle(self, candidate, include_answer: bool = True) -> str:
        """Format a candidate for inclusion in prompts."""
        lines = [f"Rebus: {candidate.content}"]
        if include_answer:
            lines.append(f"Answer: {candidate.answer}")
            if candidate.explanation:
                lines.append(f"Explanation: {candidate.explanation}")
        lines.append(f"Category: {candidate.category}")
        return "\n".join(lines)
