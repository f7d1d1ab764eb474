"""Tests for the FastAPI application."""

import pytest
from datetime import date
from unittest.mock import AsyncMock, Mock

from fastapi.testclient import TestClient

from puzzle_engine import main
from puzzle_engine.config import settings
from puzzle_engine.database import PuzzleStore
from puzzle_engine.errors import DateRangeError, MalformedDateInput
from puzzle_engine.models.puzzles import DatePreview, GenerationFailure
from puzzle_engine.pipeline import DailyPuzzleCoordinator, fallback

from conftest import make_candidate, make_record


class TestAPI:
    """Tests for the HTTP routes with the coordinator mocked out."""

    @pytest.fixture
    def coordinator(self):
        coordinator = Mock(spec=DailyPuzzleCoordinator)
        record = make_record(date(2024, 3, 10), difficulty=7)
        coordinator.get_todays_puzzle = AsyncMock(return_value=record)
        coordinator.get_puzzle_for_date = AsyncMock(return_value=record)
        coordinator.generate_next_puzzle = AsyncMock(return_value=record)
        coordinator.preview_generation = AsyncMock(return_value=GenerationFailure(reason="All 2 attempts failed"))
        coordinator.generate_date_range_preview = AsyncMock(return_value=[
            DatePreview(scheduled_for=date(2024, 3, 10), target_difficulty=5, puzzle=make_candidate(), quality_score=88.0),
            DatePreview(scheduled_for=date(2024, 3, 11), target_difficulty=4, error="All 2 attempts failed"),
        ])
        coordinator.get_status.return_value = {"coordinator": {"statistics": {"resolutions": 3}}}
        return coordinator

    @pytest.fixture
    def client(self, coordinator, monkeypatch):
        monkeypatch.setattr(settings, "admin_api_token", None)
        main.app.dependency_overrides[main.get_coordinator] = lambda: coordinator
        # No context manager: the lifespan (database, Redis) is not started
        yield TestClient(main.app)
        main.app.dependency_overrides.clear()

    def test_health(self, client):
        response = client.get("/health")

        assert response.status_code == 200
        assert response.json()["status"] == "healthy"

    def test_todays_puzzle(self, client):
        response = client.get("/api/v1/puzzles/today")

        assert response.status_code == 200
        puzzle = response.json()["puzzle"]
        assert puzzle["scheduled_for"] == "2024-03-10"
        assert puzzle["difficulty_category"] == "hard"
        assert puzzle["fallback_tier"] == "none"

    def test_puzzle_for_date(self, client, coordinator):
        response = client.get("/api/v1/puzzles/2024-03-10")

        assert response.status_code == 200
        coordinator.get_puzzle_for_date.assert_awaited_once_with("2024-03-10")

    def test_malformed_date(self, client, coordinator):
        coordinator.get_puzzle_for_date.side_effect = MalformedDateInput("Expected a YYYY-MM-DD date, got 'tomorrow'")

        response = client.get("/api/v1/puzzles/tomorrow")

        assert response.status_code == 400
        assert "YYYY-MM-DD" in response.json()["error"]

    def test_degraded_puzzle_is_still_served(self, client, coordinator):
        coordinator.get_todays_puzzle.return_value = fallback.emergency(date(2024, 3, 10), "store down")

        response = client.get("/api/v1/puzzles/today")

        assert response.status_code == 200
        assert response.json()["puzzle"]["fallback_tier"] == "emergency"

    def test_cron_generate(self, client):
        response = client.post("/api/v1/cron/generate-puzzle")

        assert response.status_code == 200
        assert response.json()["success"] is True
        assert response.json()["ai_generated"] is True

    def test_preview(self, client, coordinator):
        response = client.post("/api/v1/admin/puzzles/preview", json={"target_difficulty": 8})

        assert response.status_code == 200
        assert response.json()["success"] is False
        params = coordinator.preview_generation.await_args.args[0]
        assert params.target_difficulty == 8

    def test_preview_validates_params(self, client):
        response = client.post("/api/v1/admin/puzzles/preview", json={"target_difficulty": 42})
        assert response.status_code == 422

    def test_date_range(self, client, coordinator):
        response = client.post(
            "/api/v1/admin/puzzles/generate-date-range",
            json={"start_date": "2024-03-10", "end_date": "2024-03-11"},
        )

        assert response.status_code == 200
        body = response.json()
        assert body["total"] == 2
        assert body["succeeded"] == 1
        assert body["previews"][1]["error"] == "All 2 attempts failed"
        coordinator.generate_date_range_preview.assert_awaited_once_with("2024-03-10", "2024-03-11", None)

    def test_date_range_too_long(self, client, coordinator):
        coordinator.generate_date_range_preview.side_effect = DateRangeError("Date range covers 120 days; the maximum is 90")

        response = client.post(
            "/api/v1/admin/puzzles/generate-date-range",
            json={"start_date": "2024-01-01", "end_date": "2024-04-29"},
        )

        assert response.status_code == 400

    def test_pipeline_status(self, client):
        response = client.get("/api/v1/pipeline/status")

        assert response.status_code == 200
        assert response.json()["pipeline_status"]["coordinator"]["statistics"]["resolutions"] == 3

    def test_admin_token_required_when_configured(self, client, monkeypatch):
        monkeypatch.setattr(settings, "admin_api_token", "s3cret")

        assert client.post("/api/v1/cron/generate-puzzle").status_code == 401
        assert client.post("/api/v1/cron/generate-puzzle", headers={"X-Admin-Token": "wrong"}).status_code == 401
        assert client.post("/api/v1/cron/generate-puzzle", headers={"X-Admin-Token": "s3cret"}).status_code == 200
        # Public routes stay open
        assert client.get("/api/v1/puzzles/today").status_code == 200


class TestAPIUnavailable:
    """Tests for routes before the lifespan has wired components."""

    def test_coordinator_missing(self):
        client = TestClient(main.app)
        response = client.get("/api/v1/puzzles/today")

        assert response.status_code == 503

    def test_detailed_health_reports_store(self):
        store = Mock(spec=PuzzleStore)
        store.health_check = AsyncMock(return_value=False)
        main.app.dependency_overrides[main.get_puzzle_store] = lambda: store
        try:
            response = TestClient(main.app).get("/health/detailed")
        finally:
            main.app.dependency_overrides.clear()

        assert response.status_code == 503
        assert response.json()["status"] == "unhealthy"
        assert response.json()["components"]["store"] is False
