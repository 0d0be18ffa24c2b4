"""Chat-completion client: OpenAI primary, Google Gemini fallback."""

import asyncio
import logging
import os
import time
from dataclasses import dataclass, field
from typing import Any, Optional

import openai
import google.generativeai as genai

from seo_reporter.errors import ConfigurationError, ExternalServiceError
from seo_reporter.utils.rate_limiter import RateLimiter

logger = logging.getLogger(__name__)

# USD per 1M tokens, (input, output).
PRICING = {
    "OPENAI": (0.15, 0.60),
    "GEMINI": (0.10, 0.40),
}
# Blended split used when a provider reports only a total token count.
INPUT_TOKEN_SHARE = 0.75


def estimate_cost(tokens_used: int, provider: str = "OPENAI") -> float:
    """Estimate USD cost for ``tokens_used`` total tokens.

    Providers report a single total for most calls, so the total is split
    75/25 between input and output before pricing.
    """
    input_price, output_price = PRICING.get(provider, PRICING["OPENAI"])
    input_tokens = tokens_used * INPUT_TOKEN_SHARE
    output_tokens = tokens_used - input_tokens
    return (input_tokens / 1_000_000) * input_price + (output_tokens / 1_000_000) * output_price


@dataclass(frozen=True)
class Completion:
    """Text returned by one successful completion call."""

    text: str
    tokens_used: int
    provider: str
    model: str


@dataclass
class UsageStats:
    """Running token and cost totals for the current process."""

    total_requests: int = 0
    total_tokens: int = 0
    monthly_cost_usd: float = 0.0
    month_start: float = field(default_factory=time.time)

    def add(self, tokens: int, provider: str) -> float:
        cost = estimate_cost(tokens, provider)
        self.total_requests += 1
        self.total_tokens += tokens
        self.monthly_cost_usd += cost
        return cost


class LLMClient:
    """Async chat-completion client with OpenAI primary and Gemini fallback.

    Usage::

        client = LLMClient()
        if client.is_configured:
            completion = await client.complete(system_prompt, user_prompt,
                                               temperature=0.5, max_tokens=2000)
            print(completion.text, completion.tokens_used)
    """

    def __init__(
        self,
        openai_api_key: Optional[str] = None,
        gemini_api_key: Optional[str] = None,
        openai_model: str = "gpt-4o-mini",
        gemini_model: str = "gemini-2.0-flash",
        timeout: int = 60,
        openai_rpm: int = 60,
        gemini_rpm: int = 15,
        max_monthly_budget: float = 25.0,
        budget_warning_pct: float = 80.0,
    ):
        self._openai_key = openai_api_key or os.getenv("OPENAI_API_KEY", "")
        self._gemini_key = gemini_api_key or os.getenv("GEMINI_API_KEY", "")
        self.openai_model = openai_model
        self.gemini_model = gemini_model

        self._openai_client: Optional[openai.AsyncOpenAI] = None
        if self._openai_key:
            self._openai_client = openai.AsyncOpenAI(api_key=self._openai_key, timeout=timeout)
        if self._gemini_key:
            genai.configure(api_key=self._gemini_key)

        self._openai_limiter = RateLimiter.per_minute(openai_rpm, name="openai")
        self._gemini_limiter = RateLimiter.per_minute(gemini_rpm, name="gemini")

        self.usage = UsageStats()
        self._max_monthly_budget = max_monthly_budget
        self._budget_warning_pct = budget_warning_pct

    @property
    def is_configured(self) -> bool:
        return bool(self._openai_client or self._gemini_key)

    @property
    def primary_provider(self) -> str:
        """Provider that a call is attributed to before it resolves."""
        return "OPENAI" if self._openai_client or not self._gemini_key else "GEMINI"

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def complete(
        self,
        system_prompt: str,
        user_prompt: str,
        temperature: float = 0.5,
        max_tokens: int = 2000,
    ) -> Completion:
        """Run one chat completion, falling back to Gemini if OpenAI fails.

        Raises:
            ConfigurationError: No provider key is configured.
            ExternalServiceError: Every configured provider failed or the
                response was empty.
        """
        if not self.is_configured:
            raise ConfigurationError(
                "No LLM provider configured. Set OPENAI_API_KEY or GEMINI_API_KEY."
            )

        last_error: Optional[Exception] = None
        if self._openai_client:
            try:
                return await self._call_openai(system_prompt, user_prompt, temperature, max_tokens)
            except Exception as exc:
                last_error = exc
                if self._gemini_key:
                    logger.warning("OpenAI call failed: %s, falling back to Gemini", exc)
                else:
                    logger.error("OpenAI call failed: %s", exc)

        if self._gemini_key:
            try:
                return await self._call_gemini(system_prompt, user_prompt, temperature, max_tokens)
            except Exception as exc:
                logger.error("Gemini call failed: %s", exc)
                last_error = exc

        if isinstance(last_error, ExternalServiceError):
            raise last_error
        raise ExternalServiceError(f"LLM completion failed: {last_error}") from last_error

    # ------------------------------------------------------------------
    # Providers
    # ------------------------------------------------------------------

    async def _call_openai(
        self, system_prompt: str, user_prompt: str, temperature: float, max_tokens: int
    ) -> Completion:
        self._check_budget()
        async with self._openai_limiter:
            response = await self._openai_client.chat.completions.create(
                model=self.openai_model,
                messages=[
                    {"role": "system", "content": system_prompt},
                    {"role": "user", "content": user_prompt},
                ],
                max_tokens=max_tokens,
                temperature=temperature,
            )
        text = (response.choices[0].message.content or "").strip() if response.choices else ""
        tokens = response.usage.total_tokens if response.usage else 0
        if not text:
            raise ExternalServiceError("OpenAI returned an empty response")
        cost = self.usage.add(tokens, "OPENAI")
        logger.info("OpenAI call: %d tokens, ~$%.6f", tokens, cost)
        return Completion(text=text, tokens_used=tokens, provider="OPENAI", model=self.openai_model)

    async def _call_gemini(
        self, system_prompt: str, user_prompt: str, temperature: float, max_tokens: int
    ) -> Completion:
        self._check_budget()
        model = genai.GenerativeModel(
            model_name=self.gemini_model,
            system_instruction=system_prompt,
            generation_config=genai.types.GenerationConfig(
                max_output_tokens=max_tokens,
                temperature=temperature,
            ),
        )
        async with self._gemini_limiter:
            # The Gemini SDK is synchronous; keep the event loop free.
            loop = asyncio.get_running_loop()
            response = await loop.run_in_executor(None, model.generate_content, user_prompt)
        text = (response.text or "").strip()
        metadata = getattr(response, "usage_metadata", None)
        tokens = int(getattr(metadata, "total_token_count", 0) or 0)
        if not text:
            raise ExternalServiceError("Gemini returned an empty response")
        cost = self.usage.add(tokens, "GEMINI")
        logger.info("Gemini call: %d tokens, ~$%.6f", tokens, cost)
        return Completion(text=text, tokens_used=tokens, provider="GEMINI", model=self.gemini_model)

    def _check_budget(self) -> None:
        """Raise if the monthly budget is spent; warn when it is nearly spent."""
        spent = self.usage.monthly_cost_usd
        if spent >= self._max_monthly_budget:
            raise ExternalServiceError(
                f"Monthly LLM budget exceeded: ${spent:.2f} >= ${self._max_monthly_budget:.2f}"
            )
        if spent >= self._max_monthly_budget * (self._budget_warning_pct / 100):
            logger.warning(
                "LLM budget warning: $%.2f / $%.2f", spent, self._max_monthly_budget
            )

    def get_usage_summary(self) -> dict[str, Any]:
        return {
            "total_requests": self.usage.total_requests,
            "total_tokens": self.usage.total_tokens,
            "monthly_cost_usd": round(self.usage.monthly_cost_usd, 6),
            "max_monthly_budget": self._max_monthly_budget,
            "budget_remaining": round(self._max_monthly_budget - self.usage.monthly_cost_usd, 6),
        }
