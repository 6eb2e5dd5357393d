"""Test health check endpoint and application lifespan."""

from unittest.mock import AsyncMock, MagicMock, patch

from fastapi.testclient import TestClient

from app.main import app

client = TestClient(app)


def test_health_check():
    """Test that /health returns 200 with status ok."""
    response = client.get("/health")
    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "ok"


def test_lifespan_hydrates_and_flushes_budget():
    """Startup seeds today's spend from the usage log; shutdown drains pending writes."""
    tracker = MagicMock()
    tracker.hydrate_from_store = AsyncMock()
    tracker.flush = AsyncMock()

    with patch("app.core.ai_services.get_budget_tracker", return_value=tracker):
        with TestClient(app) as c:
            tracker.hydrate_from_store.assert_awaited_once()
            tracker.flush.assert_not_awaited()
            assert c.get("/health").json()["status"] == "ok"

    tracker.flush.assert_awaited_once()


def test_lifespan_survives_tracker_failure():
    """A misconfigured budget tracker does not stop the app from serving."""
    with patch("app.core.ai_services.get_budget_tracker", side_effect=RuntimeError("no supabase")):
        with TestClient(app) as c:
            response = c.get("/health")

    assert response.status_code == 200
