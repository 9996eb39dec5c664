"""
API configuration and endpoint definitions.
"""
from dataclasses import dataclass
from typing import Dict


@dataclass
class APIEndpoints:
    """API endpoint configurations."""

    # OpenAI Batch API request target
    OPENAI_EMBEDDINGS: str = "/v1/embeddings"

    # OpenRouter
    OPENROUTER_BASE_URL: str = "https://openrouter.ai/api/v1"
    OPENROUTER_CHAT: str = "/chat/completions"


@dataclass
class RateLimits:
    """Rate limiting configuration per API."""

    # Upper bound for a Retry-After wait (seconds)
    max_retry_after: int = 120


@dataclass
class APIConfig:
    """Complete API configuration."""

    endpoints: APIEndpoints
    rate_limits: RateLimits

    # Timeout configuration (seconds)
    connect_timeout: int = 10
    read_timeout: int = 120

    @classmethod
    def default(cls) -> "APIConfig":
        """Create default API configuration."""
        return cls(
            endpoints=APIEndpoints(),
            rate_limits=RateLimits()
        )


# LLM models available via OpenRouter, by role.
# "primary" falls back to "fast", then "fallback".
LLM_MODELS: Dict[str, str] = {
    "primary": "anthropic/claude-3.5-haiku",
    "fast": "google/gemini-2.5-flash",
    "fallback": "openai/gpt-4.1-mini",
}

# Terminal states of an OpenAI batch job
BATCH_TERMINAL_STATUSES = ("completed", "failed", "expired", "cancelled")
