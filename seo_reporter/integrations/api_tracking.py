"""Write-only audit of outbound API calls (Search Console and LLM providers)."""

import asyncio
import logging
from typing import Optional

from seo_reporter.database import Database
from seo_reporter.integrations.llm_client import Completion, LLMClient, estimate_cost
from seo_reporter.models.api_usage import ApiType, ApiUsage

logger = logging.getLogger(__name__)


class ApiUsageTracker:
    """Records one :class:`ApiUsage` row per outbound call attempt.

    Recording never raises: a failed insert is logged and dropped so that
    auditing cannot change the outcome of the call being audited.
    """

    def __init__(self, db: Database):
        self._db = db

    def record(
        self,
        api_type: ApiType,
        endpoint: str,
        success: bool,
        tokens_used: Optional[int] = None,
        error_message: Optional[str] = None,
    ) -> None:
        cost = None
        if tokens_used is not None and api_type != ApiType.GOOGLE:
            cost = estimate_cost(tokens_used, api_type.value)
        try:
            with self._db.session() as session:
                session.add(
                    ApiUsage(
                        api_type=api_type,
                        endpoint=endpoint,
                        tokens_used=tokens_used,
                        cost_estimate=cost,
                        success=success,
                        error_message=error_message[:2000] if error_message else None,
                    )
                )
        except Exception as exc:
            logger.error("Failed to record %s API usage for %s: %s", api_type.value, endpoint, exc)

    def log_google_call(self, endpoint: str, success: bool, error_message: Optional[str] = None) -> None:
        self.record(ApiType.GOOGLE, endpoint, success, error_message=error_message)

    def log_llm_call(
        self,
        provider: str,
        endpoint: str,
        tokens_used: int,
        success: bool,
        error_message: Optional[str] = None,
    ) -> None:
        try:
            api_type = ApiType(provider)
        except ValueError:
            api_type = ApiType.OPENAI
        self.record(api_type, endpoint, success, tokens_used=tokens_used, error_message=error_message)

    async def track_completion(
        self,
        llm: LLMClient,
        endpoint: str,
        system_prompt: str,
        user_prompt: str,
        temperature: float,
        max_tokens: int,
    ) -> Completion:
        """Call ``llm.complete`` and record exactly one audit row for it.

        A failed call is recorded with zero tokens and the error text, then
        the original exception is re-raised.
        """
        try:
            completion = await llm.complete(
                system_prompt, user_prompt, temperature=temperature, max_tokens=max_tokens
            )
        except Exception as exc:
            await asyncio.to_thread(
                self.log_llm_call, llm.primary_provider, endpoint, 0, False, str(exc) or type(exc).__name__
            )
            raise
        await asyncio.to_thread(
            self.log_llm_call, completion.provider, endpoint, completion.tokens_used, True
        )
        return completion
