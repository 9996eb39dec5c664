"""
LLM client for OpenRouter API.
Supports multiple models with fallback.
"""
import asyncio
import logging
import time
import httpx
from typing import Dict
from dataclasses import dataclass

from config.settings import get_settings
from config.api_config import APIConfig, LLM_MODELS
from core.exceptions import ConfigurationError, LabelingError, RateLimitError

logger = logging.getLogger(__name__)


@dataclass
class LLMResponse:
    """Response from LLM API."""
    content: str
    model: str
    tokens_used: int
    latency_ms: float


class OpenRouterClient:
    """
    Client for OpenRouter API.

    Features:
    - Multiple model support
    - Automatic fallback on errors
    - Retry-After handling on 429
    - Token tracking

    One instance is built by the caller and passed to every stage that
    needs text generation.
    """

    def __init__(
        self,
        api_key: str = None,
        default_model: str = None,
        api_config: APIConfig = None
    ):
        """
        Initialize OpenRouter client.

        Args:
            api_key: OpenRouter API key (from settings if not provided)
            default_model: Default model to use
            api_config: Endpoints, timeouts and rate limits
        """
        settings = get_settings()
        self.api_key = api_key or settings.openrouter_api_key
        self.default_model = default_model or settings.labeling.default_model
        self.api_config = api_config or APIConfig.default()
        self.temperature = settings.labeling.temperature

        # Request tracking
        self.total_tokens = 0
        self.request_count = 0

        if not self.api_key:
            raise ConfigurationError(
                "OpenRouter API key is required",
                missing_keys=["OPENROUTER_API_KEY"]
            )

    @property
    def url(self) -> str:
        endpoints = self.api_config.endpoints
        return endpoints.OPENROUTER_BASE_URL + endpoints.OPENROUTER_CHAT

    async def generate(
        self,
        prompt: str,
        model: str = None,
        max_tokens: int = 1000,
        temperature: float = None,
        system_prompt: str = None
    ) -> str:
        """
        Generate text using LLM.

        Args:
            prompt: User prompt
            model: Model to use (default if not specified)
            max_tokens: Maximum tokens to generate
            temperature: Sampling temperature
            system_prompt: Optional system prompt

        Returns:
            Generated text
        """
        response = await self.generate_with_metadata(
            prompt=prompt,
            model=model,
            max_tokens=max_tokens,
            temperature=temperature,
            system_prompt=system_prompt
        )
        return response.content

    async def generate_with_metadata(
        self,
        prompt: str,
        model: str = None,
        max_tokens: int = 1000,
        temperature: float = None,
        system_prompt: str = None
    ) -> LLMResponse:
        """
        Generate text with full response metadata.

        A rate-limited model is retried once after its Retry-After delay;
        other errors move on to the next model.

        Returns:
            LLMResponse with content and metadata
        """
        model = model or self.default_model
        temperature = self.temperature if temperature is None else temperature

        # Try requested model, then fallbacks
        models_to_try = [model]
        for role in ("primary", "fast", "fallback"):
            if LLM_MODELS[role] not in models_to_try:
                models_to_try.append(LLM_MODELS[role])

        last_error = None

        for try_model in models_to_try:
            for attempt in range(2):
                try:
                    return await self._make_request(
                        prompt=prompt,
                        model=try_model,
                        max_tokens=max_tokens,
                        temperature=temperature,
                        system_prompt=system_prompt
                    )
                except RateLimitError as e:
                    last_error = e
                    if attempt == 0:
                        await self._wait_for_rate_limit(e)
                except LabelingError as e:
                    last_error = e
                    logger.warning("Model %s failed: %s", try_model, e.message)
                    break

        raise last_error or LabelingError("All models failed")

    async def _make_request(
        self,
        prompt: str,
        model: str,
        max_tokens: int,
        temperature: float,
        system_prompt: str = None
    ) -> LLMResponse:
        """Make API request to OpenRouter."""
        start_time = time.time()

        messages = []
        if system_prompt:
            messages.append({
                "role": "system",
                "content": system_prompt
            })
        messages.append({
            "role": "user",
            "content": prompt
        })

        payload = {
            "model": model,
            "messages": messages,
            "max_tokens": max_tokens,
            "temperature": temperature
        }

        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
            "X-Title": "Legacy Document Clustering"
        }

        timeout = httpx.Timeout(
            self.api_config.read_timeout,
            connect=self.api_config.connect_timeout
        )

        try:
            async with httpx.AsyncClient(timeout=timeout) as client:
                response = await client.post(
                    self.url,
                    json=payload,
                    headers=headers
                )
        except httpx.HTTPError as e:
            raise LabelingError(f"OpenRouter request failed: {e}", model=model)

        latency = (time.time() - start_time) * 1000

        if response.status_code == 429:
            retry_after = response.headers.get("Retry-After", "60")
            raise RateLimitError(
                service="OpenRouter",
                retry_after=int(retry_after) if retry_after.isdigit() else 60
            )

        if response.status_code != 200:
            raise LabelingError(
                f"OpenRouter API error: {response.status_code}",
                model=model,
                status_code=response.status_code
            )

        try:
            data = response.json()
            content = data["choices"][0]["message"]["content"] or ""
        except (ValueError, KeyError, IndexError, TypeError) as e:
            raise LabelingError(f"Malformed OpenRouter response: {e}", model=model)

        tokens = (data.get("usage") or {}).get("total_tokens", 0)

        # Update tracking
        self.total_tokens += tokens
        self.request_count += 1

        return LLMResponse(
            content=content,
            model=model,
            tokens_used=tokens,
            latency_ms=latency
        )

    async def _wait_for_rate_limit(self, error: RateLimitError):
        """Wait for rate limit to reset."""
        wait_time = min(error.retry_after or 60, self.api_config.rate_limits.max_retry_after)
        logger.warning("Rate limited by %s, waiting %ss", error.service, wait_time)
        await asyncio.sleep(wait_time)

    def get_stats(self) -> Dict:
        """Get usage statistics."""
        return {
            "total_tokens": self.total_tokens,
            "request_count": self.request_count,
            "avg_tokens_per_request": (
                self.total_tokens / self.request_count
                if self.request_count > 0
                else 0
            )
        }
