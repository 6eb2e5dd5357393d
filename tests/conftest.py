"""Pytest configuration and fixtures."""

import os
from unittest.mock import patch

import pytest

# Test modules import app.main at collection time, before session fixtures run
os.environ.setdefault("SUPABASE_URL", "https://test.supabase.co")
os.environ.setdefault("SUPABASE_SERVICE_ROLE_KEY", "test-key")
os.environ.setdefault("ANTHROPIC_API_KEY", "test-anthropic-key")
os.environ.setdefault("ENGINE_ENV", "test")
os.environ.setdefault("APP_TIMEZONE", "America/Guyana")


@pytest.fixture(scope="session", autouse=True)
def setup_test_env():
    """Set up test environment variables."""
    os.environ["SUPABASE_URL"] = "https://test.supabase.co"
    os.environ["SUPABASE_SERVICE_ROLE_KEY"] = "test-key"
    os.environ["ANTHROPIC_API_KEY"] = "test-anthropic-key"
    os.environ["ENGINE_ENV"] = "test"


@pytest.fixture(autouse=True)
def reset_ai_services():
    """Fresh process-wide AI components and rate limits per test."""
    from app.core.ai_services import reset_services
    from app.core.rate_limiter import get_chat_rate_limiter

    reset_services()
    get_chat_rate_limiter.cache_clear()
    yield
    reset_services()
    get_chat_rate_limiter.cache_clear()


@pytest.fixture
def word_tokens():
    """Count tokens as whitespace-separated words (no encoder download)."""

    def _count(text: str) -> int:
        return len(text.split()) if text else 0

    with patch("app.core.context_budget.count_tokens", side_effect=_count), patch(
        "app.core.context_engine.count_tokens", side_effect=_count
    ):
        yield _count
