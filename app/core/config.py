"""Configuration management for the Ministry AI engine."""

from functools import lru_cache

from dotenv import load_dotenv
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

# Load environment variables from .env file (only if accessible)
try:
    load_dotenv()
except (PermissionError, OSError):
    # In sandboxed environments, .env might not be accessible
    # Environment variables should be set directly
    pass


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=True,
        extra="ignore",
    )

    # Supabase configuration (required)
    SUPABASE_URL: str = Field(..., description="Supabase project URL")
    SUPABASE_SERVICE_ROLE_KEY: str = Field(..., description="Supabase service role key")

    # Anthropic configuration (chat endpoint refuses to run without it)
    ANTHROPIC_API_KEY: str = Field(default="", description="Anthropic API key")

    # Environment
    ENGINE_ENV: str = Field(default="dev", description="Environment: dev, staging, prod, test")

    # Model tiers
    CHEAP_MODEL: str = Field(
        default="claude-haiku-4-5-20251001", description="Model for quick lookups"
    )
    STANDARD_MODEL: str = Field(
        default="claude-sonnet-4-5-20250929", description="Model for general questions"
    )
    DEEP_MODEL: str = Field(default="claude-opus-4-6", description="Model for deep analysis")
    CHEAP_MAX_TOKENS: int = Field(default=1024, description="Output cap for the cheap tier")
    STANDARD_MAX_TOKENS: int = Field(default=2048, description="Output cap for the standard tier")
    DEEP_MAX_TOKENS: int = Field(default=4096, description="Output cap for the deep tier")

    # Daily token budget (deep-equivalent weighted tokens)
    DAILY_TOKEN_BUDGET: int = Field(default=33_000, description="Weighted tokens allowed per day")
    BUDGET_WARN_PCT: float = Field(default=0.80, description="Cap at standard above this share")
    BUDGET_CRITICAL_PCT: float = Field(default=0.95, description="Cap at cheap above this share")
    CHEAP_COST_WEIGHT: float = Field(default=0.03, description="Cost weight of cheap-tier tokens")
    STANDARD_COST_WEIGHT: float = Field(
        default=0.1, description="Cost weight of standard-tier tokens"
    )
    DEEP_COST_WEIGHT: float = Field(default=1.0, description="Cost weight of deep-tier tokens")

    # Response cache (0 hours = do not cache)
    CACHE_TTL_CHEAP_HOURS: int = Field(default=24, description="Cheap-tier answer TTL")
    CACHE_TTL_STANDARD_HOURS: int = Field(default=12, description="Standard-tier answer TTL")
    CACHE_TTL_DEEP_HOURS: int = Field(default=0, description="Deep-tier answer TTL")
    CACHE_QUERY_TEXT_MAX_CHARS: int = Field(
        default=500, description="Max question chars stored with a cached answer"
    )

    # Context assembly
    CONTEXT_CACHE_TTL_SECONDS: int = Field(default=300, description="Context snapshot lifetime")
    SOURCE_TIMEOUT_SECONDS: float = Field(default=8.0, description="Per snapshot source timeout")
    MAX_CONTEXT_TOKENS: int = Field(default=6000, description="Token ceiling for context text")
    DELAYED_PROJECTS_LIMIT: int = Field(
        default=10, description="Delayed projects listed outside the projects page"
    )

    # Calendar day boundary for cache keys, budget reset, task/calendar grouping
    APP_TIMEZONE: str = Field(default="America/Guyana", description="Operator time zone")

    # Chat
    CHAT_RATE_LIMIT_PER_HOUR: int = Field(default=20, description="Chat requests per session/hour")
    CHAT_HISTORY_MESSAGES: int = Field(default=20, description="Prior turns considered per question")
    HISTORY_COMPRESS_THRESHOLD: int = Field(
        default=10, description="Summarize older turns once the conversation exceeds this"
    )
    HISTORY_FALLBACK_MESSAGES: int = Field(
        default=6, description="Turns kept verbatim when summarizing fails"
    )

    # Maintenance
    CRON_SECRET: str | None = Field(default=None, description="Bearer secret for scheduled jobs")


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
