"""Tests for the AI assistant API endpoints.

Covers chat streaming, budget, usage, snapshot and maintenance endpoints via
FastAPI TestClient with the AI components mocked.
"""

import json
from datetime import datetime
from typing import List
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from dateutil import tz
from fastapi import HTTPException
from fastapi.testclient import TestClient

from app.core.context_engine import ContextSnapshot
from app.core.model_router import ModelTier
from app.core.token_budget import TokenBudgetStatus
from app.main import app

# ──────────────────────────────────────────────────────────────────────
# Helpers
# ──────────────────────────────────────────────────────────────────────


def parse_sse_events(text: str) -> List[dict]:
    """Parse SSE response body into a list of event dicts."""
    events = []
    for line in text.strip().split("\n"):
        line = line.strip()
        if line.startswith("data: "):
            try:
                events.append(json.loads(line[6:]))
            except json.JSONDecodeError:
                pass
    return events


def _mock_settings(api_key="test-key-xxx", cron_secret=None):
    settings = MagicMock()
    settings.ANTHROPIC_API_KEY = api_key
    settings.CRON_SECRET = cron_secret
    return settings


class _FakeStreamer:
    def __init__(self):
        self.requests = []

    async def stream(self, request, is_disconnected=None):
        self.requests.append(request)
        yield 'data: {"type": "meta", "tier": "cheap", "tier_used": "cheap", "cached": false}\n\n'
        yield 'data: {"type": "text", "text": "Hello"}\n\n'
        yield 'data: {"type": "done", "remaining": 100}\n\n'


def _snapshot():
    return ContextSnapshot(page="/", text="t", summary_text="s", gaps=["tasks"], built_at=datetime.now(tz.UTC))


# ──────────────────────────────────────────────────────────────────────
# Fixtures
# ──────────────────────────────────────────────────────────────────────


@pytest.fixture
def client():
    return TestClient(app, raise_server_exceptions=False)


@pytest.fixture
def streamer():
    fake = _FakeStreamer()
    with patch("app.api.ai.get_answer_streamer", return_value=fake):
        yield fake


@pytest.fixture
def assembler_mock():
    assembler = MagicMock()
    assembler.assemble = AsyncMock(return_value=_snapshot())
    with patch("app.api.ai.get_context_assembler", return_value=assembler):
        yield assembler


# ──────────────────────────────────────────────────────────────────────
# POST /v1/ai/chat
# ──────────────────────────────────────────────────────────────────────


class TestChat:
    def test_streams_sse(self, client, streamer):
        response = client.post(
            "/v1/ai/chat",
            json={"question": "What is GPL health?", "currentPage": "/intel/gpl", "sessionId": "s1"},
        )

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/event-stream")
        assert response.headers["cache-control"] == "no-cache"
        assert response.headers["x-accel-buffering"] == "no"
        assert response.headers["x-rate-limit-remaining"] == "19"

        events = parse_sse_events(response.text)
        assert [e["type"] for e in events] == ["meta", "text", "done"]

        request = streamer.requests[0]
        assert request.current_page == "/intel/gpl"
        assert request.session_id == "s1"
        assert request.force_deep is False

    def test_snake_case_body(self, client, streamer):
        response = client.post(
            "/v1/ai/chat",
            json={"question": "q", "current_page": "/projects", "force_deep": True},
        )
        assert response.status_code == 200
        assert streamer.requests[0].current_page == "/projects"
        assert streamer.requests[0].force_deep is True

    def test_blank_question_400(self, client, streamer):
        response = client.post("/v1/ai/chat", json={"question": "   "})
        assert response.status_code == 400
        assert streamer.requests == []

    def test_missing_question_422(self, client, streamer):
        response = client.post("/v1/ai/chat", json={"currentPage": "/"})
        assert response.status_code == 422

    def test_rate_limited_429(self, client, streamer):
        with patch(
            "app.api.ai.check_chat_rate_limit",
            side_effect=HTTPException(status_code=429, detail="Rate limit exceeded", headers={"Retry-After": "60"}),
        ):
            response = client.post("/v1/ai/chat", json={"question": "q"})
        assert response.status_code == 429
        assert response.headers["retry-after"] == "60"

    def test_rate_limit_enforced_per_session(self, client, streamer):
        statuses = [
            client.post("/v1/ai/chat", json={"question": "q", "sessionId": "busy"}).status_code
            for _ in range(21)
        ]
        assert statuses[:20] == [200] * 20
        assert statuses[20] == 429
        assert client.post("/v1/ai/chat", json={"question": "q", "sessionId": "other"}).status_code == 200

    def test_missing_api_key_500(self, client, streamer):
        with patch("app.api.ai.get_settings", return_value=_mock_settings(api_key="")):
            response = client.post("/v1/ai/chat", json={"question": "q"})
        assert response.status_code == 500
        assert "ANTHROPIC_API_KEY" in response.json()["detail"]


# ──────────────────────────────────────────────────────────────────────
# GET /v1/ai/budget, GET /v1/ai/usage
# ──────────────────────────────────────────────────────────────────────


class TestBudgetAndUsage:
    def test_budget(self, client):
        tracker = MagicMock()
        tracker.current_status.return_value = TokenBudgetStatus(
            used_today=27000,
            daily_limit=33000,
            pct=81,
            tier_cap=ModelTier.STANDARD,
            warning="AI budget at 80%. Deep analysis temporarily limited.",
            remaining=6000,
        )
        with patch("app.api.ai.get_budget_tracker", return_value=tracker):
            response = client.get("/v1/ai/budget")

        assert response.status_code == 200
        data = response.json()
        assert data["pct"] == 81
        assert data["tier_cap"] == "standard"
        assert data["remaining"] == 6000

    def test_usage(self, client):
        stats = {"daily": [], "totals": {"total_tokens": 0, "total_requests": 0, "cached_pct": 0, "by_tier": {}}}
        with patch("app.api.ai.get_usage_stats", new_callable=AsyncMock, return_value=stats) as mock_stats:
            response = client.get("/v1/ai/usage?days=14")

        assert response.status_code == 200
        assert response.json() == stats
        mock_stats.assert_awaited_once_with(14)

    @pytest.mark.parametrize("days", [0, 31])
    def test_usage_days_bounds(self, client, days):
        assert client.get(f"/v1/ai/usage?days={days}").status_code == 422

    def test_usage_store_failure_500(self, client):
        with patch("app.api.ai.get_usage_stats", new_callable=AsyncMock, side_effect=ConnectionError("down")):
            response = client.get("/v1/ai/usage")
        assert response.status_code == 500


# ──────────────────────────────────────────────────────────────────────
# Snapshot and maintenance
# ──────────────────────────────────────────────────────────────────────


class TestSnapshot:
    def test_returns_stored_snapshot(self, client, assembler_mock):
        stored = {"snapshot_date": "2026-03-10", "snapshot_data": {"gaps": []}}
        with patch("app.api.ai.get_metric_snapshot", return_value=stored):
            response = client.get("/v1/ai/snapshot")

        assert response.status_code == 200
        assert response.json()["precomputed"] is True
        assert response.json()["snapshot"] == {"gaps": []}
        assembler_mock.assemble.assert_not_awaited()

    def test_builds_and_stores_when_missing(self, client, assembler_mock):
        with patch("app.api.ai.get_metric_snapshot", return_value=None), patch(
            "app.api.ai.upsert_metric_snapshot"
        ) as mock_upsert:
            response = client.get("/v1/ai/snapshot")

        assert response.status_code == 200
        data = response.json()
        assert data["precomputed"] is False
        assert data["snapshot"]["gaps"] == ["tasks"]
        mock_upsert.assert_called_once()
        assembler_mock.assemble.assert_awaited_once_with("/")


class TestPrecomputeDaily:
    def _patches(self, cron_secret):
        cache = MagicMock()
        cache.sweep_expired = AsyncMock(return_value=4)
        return (
            patch("app.api.ai.get_settings", return_value=_mock_settings(cron_secret=cron_secret)),
            patch("app.api.ai.get_response_cache", return_value=cache),
            patch("app.api.ai.upsert_metric_snapshot"),
        )

    def test_requires_bearer_when_secret_set(self, client, assembler_mock):
        settings_patch, cache_patch, upsert_patch = self._patches("s3cret")
        with settings_patch, cache_patch, upsert_patch:
            assert client.post("/v1/ai/precompute-daily").status_code == 401
            assert (
                client.post("/v1/ai/precompute-daily", headers={"Authorization": "Bearer wrong"}).status_code
                == 401
            )
            response = client.post("/v1/ai/precompute-daily", headers={"Authorization": "Bearer s3cret"})

        assert response.status_code == 200
        data = response.json()
        assert data["ok"] is True
        assert data["cache_cleaned"] == 4
        assert data["gaps"] == ["tasks"]
        assembler_mock.invalidate.assert_called_once()

    def test_open_when_no_secret(self, client, assembler_mock):
        settings_patch, cache_patch, upsert_patch = self._patches(None)
        with settings_patch, cache_patch, upsert_patch as mock_upsert:
            response = client.post("/v1/ai/precompute-daily")

        assert response.status_code == 200
        mock_upsert.assert_called_once()

    def test_snapshot_store_failure_still_sweeps(self, client, assembler_mock):
        settings_patch, cache_patch, _ = self._patches(None)
        with settings_patch, cache_patch, patch(
            "app.api.ai.upsert_metric_snapshot", side_effect=ConnectionError("down")
        ):
            response = client.post("/v1/ai/precompute-daily")

        assert response.status_code == 200
        assert response.json()["cache_cleaned"] == 4


class TestInvalidate:
    def test_invalidate(self, client, assembler_mock):
        response = client.post("/v1/ai/context/invalidate")
        assert response.status_code == 200
        assert response.json() == {"ok": True}
        assembler_mock.invalidate.assert_called_once()
