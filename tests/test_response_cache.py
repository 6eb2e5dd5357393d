"""Tests for the content-addressed answer cache."""

from datetime import datetime, timedelta

import pytest
from dateutil import tz

from app.core.model_router import ModelTier
from app.core.response_cache import ResponseCache, cache_key, normalize_question
from app.core.schemas_ai import FollowupAction, TokenUsage
from tests.fakes.ai_stores import FakeCacheStore

NOW = datetime(2026, 3, 10, 14, 0, tzinfo=tz.UTC)


@pytest.fixture
def backend():
    return FakeCacheStore()


@pytest.fixture
def cache(backend):
    return ResponseCache(backend=backend, query_text_max=20, timezone=tz.UTC)


class TestKeys:
    def test_normalize(self):
        assert normalize_question("  What IS   GPL\thealth? ") == "what is gpl health?"

    def test_whitespace_and_case_collapse(self):
        assert cache_key("What is GPL health?", "/", "2026-03-10") == cache_key(
            "  what is  gpl HEALTH? ", "/", "2026-03-10"
        )

    def test_page_and_day_partition(self):
        base = cache_key("q", "/", "2026-03-10")
        assert base != cache_key("q", "/intel", "2026-03-10")
        assert base != cache_key("q", "/", "2026-03-11")

    def test_hex_digest(self):
        key = cache_key("q", "/", "2026-03-10")
        assert len(key) == 64
        int(key, 16)


class TestLookupAndStore:
    @pytest.mark.asyncio
    async def test_store_then_hit(self, cache):
        stored = await cache.store(
            "What is GPL health?",
            "/",
            ModelTier.CHEAP,
            "GPL is at 7/10.",
            suggestions=["Show stations"],
            actions=[FollowupAction(label="Open GPL", route="/intel/gpl")],
            usage=TokenUsage(input_tokens=30, output_tokens=12),
            now=NOW,
        )
        assert stored is True

        hit = await cache.lookup("what is gpl health?", "/", now=NOW + timedelta(hours=1))
        assert hit is not None
        assert hit.text == "GPL is at 7/10."
        assert hit.tier == ModelTier.CHEAP
        assert hit.suggestions == ["Show stations"]
        assert hit.actions[0].route == "/intel/gpl"
        assert hit.usage.input_tokens == 30
        assert hit.expires_at == NOW + timedelta(hours=24)

    @pytest.mark.asyncio
    async def test_miss_on_other_page(self, cache):
        await cache.store("q", "/", ModelTier.STANDARD, "a", now=NOW)
        assert await cache.lookup("q", "/projects", now=NOW) is None

    @pytest.mark.asyncio
    async def test_deep_never_stored(self, cache, backend):
        assert cache.is_cacheable(ModelTier.DEEP) is False
        assert await cache.store("q", "/", ModelTier.DEEP, "a", now=NOW) is False
        assert backend.rows == {}

    @pytest.mark.asyncio
    async def test_standard_ttl(self, cache, backend):
        await cache.store("q", "/", ModelTier.STANDARD, "a", now=NOW)
        row = next(iter(backend.rows.values()))
        assert row["expires_at"] == (NOW + timedelta(hours=12)).isoformat()

    @pytest.mark.asyncio
    async def test_expired_not_served(self, cache):
        # Same operator day, past the 12h TTL
        await cache.store("q", "/", ModelTier.STANDARD, "a", now=NOW - timedelta(hours=13))
        assert await cache.lookup("q", "/", now=NOW) is None

    @pytest.mark.asyncio
    async def test_expired_row_from_store_rejected(self, cache, backend):
        key = cache.key_for("q", "/", NOW)
        backend.rows[key] = {
            "query_hash": key,
            "response_text": "stale",
            "model_tier": "cheap",
            "created_at": (NOW - timedelta(days=2)).isoformat(),
            "expires_at": (NOW - timedelta(days=1)).isoformat(),
        }
        # Bypass the store-side filter to exercise the re-check
        backend.get_cached_response = lambda query_hash, now_iso: dict(backend.rows[query_hash])
        assert await cache.lookup("q", "/", now=NOW) is None

    @pytest.mark.asyncio
    async def test_timestamps_without_offset_read_as_utc(self, cache, backend):
        key = cache.key_for("q", "/", NOW)
        backend.rows[key] = {
            "query_hash": key,
            "response_text": "fresh",
            "model_tier": "cheap",
            "created_at": "2026-03-10T13:00:00",
            "expires_at": "2026-03-10T15:00:00",
        }
        backend.get_cached_response = lambda query_hash, now_iso: dict(backend.rows[query_hash])

        answer = await cache.lookup("q", "/", now=NOW)
        assert answer is not None
        assert answer.text == "fresh"
        assert answer.expires_at == datetime(2026, 3, 10, 15, 0, tzinfo=tz.UTC)

        backend.rows[key]["expires_at"] = "2026-03-10T13:30:00"
        assert await cache.lookup("q", "/", now=NOW) is None

    @pytest.mark.asyncio
    async def test_key_rotates_daily(self, cache):
        await cache.store("q", "/", ModelTier.CHEAP, "a", now=NOW)
        assert await cache.lookup("q", "/", now=NOW + timedelta(hours=11)) is None

    @pytest.mark.asyncio
    async def test_query_text_truncated(self, cache, backend):
        await cache.store("x" * 100, "/", ModelTier.CHEAP, "a", now=NOW)
        row = next(iter(backend.rows.values()))
        assert row["query_text"] == "x" * 20


class TestFailures:
    @pytest.mark.asyncio
    async def test_lookup_failure_is_miss(self, cache, backend):
        backend.fail_reads = True
        assert await cache.lookup("q", "/", now=NOW) is None

    @pytest.mark.asyncio
    async def test_store_failure_returns_false(self, cache, backend):
        backend.fail_writes = True
        assert await cache.store("q", "/", ModelTier.CHEAP, "a", now=NOW) is False

    @pytest.mark.asyncio
    async def test_malformed_row_is_miss(self, cache, backend):
        key = cache.key_for("q", "/", NOW)
        backend.rows[key] = {
            "query_hash": key,
            "model_tier": "cheap",
            "expires_at": (NOW + timedelta(hours=1)).isoformat(),
        }
        assert await cache.lookup("q", "/", now=NOW) is None


class TestSweep:
    @pytest.mark.asyncio
    async def test_removes_only_expired(self, cache, backend):
        await cache.store("old", "/", ModelTier.STANDARD, "a", now=NOW - timedelta(hours=13))
        await cache.store("new", "/", ModelTier.CHEAP, "b", now=NOW)

        assert await cache.sweep_expired(now=NOW) == 1
        assert len(backend.rows) == 1
        assert await cache.sweep_expired(now=NOW) == 0

    @pytest.mark.asyncio
    async def test_failure_returns_zero(self, cache, backend):
        backend.fail_writes = True
        assert await cache.sweep_expired(now=NOW) == 0
