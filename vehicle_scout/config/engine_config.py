"""Engine configuration settings for Vehicle Scout."""

from dataclasses import dataclass
from typing import Optional
import os

from vehicle_scout.error_handling import RetryConfig


@dataclass
class RateLimitConfig:
    """Per-site rate limiting configuration."""
    min_delay_seconds: float = 0.0
    max_delay_seconds: float = 0.0
    max_pages_per_hour: int = 120


@dataclass
class SiteConfig:
    """Timeouts, thresholds and retry policy injected into the pass controller."""
    pass_timeout_s: float = 12.0
    site_deadline_s: float = 25.0
    max_results: int = 100
    sufficiency_threshold: int = 10
    opportunity_threshold: int = 5
    retry: RetryConfig = None
    rate_limit: RateLimitConfig = None

    def __post_init__(self):
        """Initialize nested configs if not provided."""
        if self.retry is None:
            self.retry = RetryConfig()
        if self.rate_limit is None:
            self.rate_limit = RateLimitConfig()


@dataclass
class FetchConfig:
    """Rendering-proxy fetch provider configuration."""
    api_url: str = "https://api.zenrows.com/v1"
    api_key: Optional[str] = None
    wait_ms: int = 5000
    proxy_country: str = "fr"
    block_resources: str = "image,media,font"
    timeout_s: float = 30.0


@dataclass
class AIConfig:
    """AI-assisted extraction configuration."""
    api_key: Optional[str] = None
    model: str = "claude-3-5-haiku-latest"
    temperature: float = 0.05
    max_tokens: int = 16384
    max_snippet_chars: int = 50000
    min_snippet_chars: int = 1000


@dataclass
class EngineSettings:
    """Main engine configuration settings."""
    concurrency: int = 3
    site: SiteConfig = None
    fetch: FetchConfig = None
    ai: AIConfig = None

    def __post_init__(self):
        """Initialize nested configs if not provided."""
        if self.site is None:
            self.site = SiteConfig()
        if self.fetch is None:
            self.fetch = FetchConfig()
        if self.ai is None:
            self.ai = AIConfig()


# Default engine configuration
ENGINE_CONFIG = {
    "concurrency": int(os.getenv("SCOUT_CONCURRENCY", "3")),
    "site": {
        "pass_timeout_s": float(os.getenv("SCOUT_PASS_TIMEOUT_S", "12")),
        "site_deadline_s": float(os.getenv("SCOUT_SITE_DEADLINE_S", "25")),
        "max_results": int(os.getenv("SCOUT_MAX_RESULTS", "100")),
        "sufficiency_threshold": int(os.getenv("SCOUT_SUFFICIENCY_THRESHOLD", "10")),
        "opportunity_threshold": int(os.getenv("SCOUT_OPPORTUNITY_THRESHOLD", "5")),
    },
    "retry": {
        "max_attempts": int(os.getenv("SCOUT_RETRY_MAX_ATTEMPTS", "2")),
        "initial_delay_s": float(os.getenv("SCOUT_RETRY_INITIAL_DELAY_S", "2.0")),
    },
    "rate_limit": {
        "min_delay_seconds": float(os.getenv("MIN_DELAY_SECONDS", "0")),
        "max_delay_seconds": float(os.getenv("MAX_DELAY_SECONDS", "0")),
        "max_pages_per_hour": int(os.getenv("MAX_PAGES_PER_HOUR", "120")),
    },
    "fetch": {
        "api_url": os.getenv("FETCH_API_URL", "https://api.zenrows.com/v1"),
        "api_key": os.getenv("FETCH_API_KEY"),
        "wait_ms": int(os.getenv("FETCH_WAIT_MS", "5000")),
        "proxy_country": os.getenv("FETCH_PROXY_COUNTRY", "fr"),
        "timeout_s": float(os.getenv("FETCH_TIMEOUT_S", "30")),
    },
    "ai": {
        "api_key": os.getenv("ANTHROPIC_API_KEY"),
        "model": os.getenv("AI_MODEL", "claude-3-5-haiku-latest"),
        "temperature": float(os.getenv("AI_TEMPERATURE", "0.05")),
        "max_tokens": int(os.getenv("AI_MAX_TOKENS", "16384")),
    },
}


def get_engine_settings() -> EngineSettings:
    """Get engine settings from configuration."""
    return EngineSettings(
        concurrency=ENGINE_CONFIG["concurrency"],
        site=SiteConfig(
            **ENGINE_CONFIG["site"],
            retry=RetryConfig(**ENGINE_CONFIG["retry"]),
            rate_limit=RateLimitConfig(**ENGINE_CONFIG["rate_limit"]),
        ),
        fetch=FetchConfig(**ENGINE_CONFIG["fetch"]),
        ai=AIConfig(**ENGINE_CONFIG["ai"]),
    )
