"""
Tests for the REST API.
"""

import pytest
from fastapi.testclient import TestClient

from devforecast.api import app


ITEMS = [
    {"story_id": "S-1", "story_number": 1, "story_points": 5, "assigned_developer_id": "dev-1"},
    {"story_id": "S-2", "story_number": 2, "story_points": 8, "assigned_developer_id": "dev-1"},
    {"story_id": "S-3", "story_number": 3, "story_points": 3, "assigned_developer_id": "dev-1"},
]

DEVELOPERS = [{"id": "dev-1", "name": "Alice", "hourly_rate": 100}]


@pytest.fixture
def client():
    with TestClient(app) as test_client:
        yield test_client


class TestHealth:

    def test_health(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json()["status"] == "healthy"


class TestConfigValidation:
    """Tests for the settings validation endpoint."""

    def test_valid_settings(self, client):
        response = client.post("/api/config/validate", json={"forecast": {"hours_per_point": 6}})
        assert response.json() == {"valid": True, "errors": []}

    def test_invalid_settings(self, client):
        response = client.post("/api/config/validate", json={
            "forecast": {"hours_per_point": 100},
            "sprints": [{"id": "s1", "name": "S1", "start_date": "2025-01-10", "end_date": "2025-01-01"}],
        })
        data = response.json()

        assert response.status_code == 200
        assert not data["valid"]
        fields = [e["field"] for e in data["errors"]]
        assert "forecast.hours_per_point" in fields
        assert "sprints.0.end_date" in fields


class TestForecastEndpoint:
    """Tests for the forecast endpoint."""

    def test_scenario(self, client):
        response = client.post("/api/forecast", json={
            "items": ITEMS,
            "developers": DEVELOPERS,
            "now": "2025-01-06T09:00:00",
        })
        data = response.json()

        assert response.status_code == 200
        assert data["completion"]["projected"] == "2025-01-16T09:00:00"
        assert data["remaining"]["hours"] == 64
        assert data["cost"]["remaining"] == 6400
        assert data["error"] is None

    def test_invalid_config_rejected(self, client):
        response = client.post("/api/forecast", json={
            "items": ITEMS,
            "forecast": {"parallel_work_factor": 0},
        })
        assert response.status_code == 422
        assert response.json()["detail"][0]["field"] == "forecast.parallel_work_factor"

    def test_invalid_item_rejected(self, client):
        response = client.post("/api/forecast", json={
            "items": [{"story_id": "S-1", "story_number": 1, "story_points": -2}],
        })
        assert response.status_code == 422
        assert response.json()["detail"][0]["field"] == "items.0.story_points"

    def test_wrongly_typed_developer_rejected(self, client):
        response = client.post("/api/forecast", json={
            "items": ITEMS,
            "developers": [{"id": "dev-1", "name": "Alice", "capacity_points_per_sprint": "x"}],
        })
        assert response.status_code == 422
        assert [e["field"] for e in response.json()["detail"]] == ["developers.0.capacity_points_per_sprint"]

    def test_string_fields_coerced(self, client):
        response = client.post("/api/forecast", json={
            "items": [
                {"story_id": "S-1", "story_number": 1, "story_points": 5, "queue_position": "2",
                 "assigned_developer_id": "dev-1"},
                {"story_id": "S-2", "story_number": 2, "story_points": 3, "queue_position": 1,
                 "assigned_developer_id": "dev-1"},
            ],
            "developers": [{"id": "dev-1", "name": "Alice", "hourly_rate": "100", "active": "false"}],
            "now": "2025-01-06T09:00:00",
        })
        data = response.json()

        assert response.status_code == 200
        assert [s["story_id"] for s in data["schedule"]] == ["S-2", "S-1"]
        assert data["cost"]["remaining"] == 3200
        assert any("inactive developer Alice" in r for r in data["recommendations"])

    def test_degenerate_calendar(self, client):
        response = client.post("/api/forecast", json={
            "items": ITEMS,
            "calendar": {"days": [{"enabled": False}] * 7},
            "now": "2025-01-06T09:00:00",
        })
        data = response.json()

        assert response.status_code == 200
        assert data["risk"]["level"] == "high"
        assert data["risk"]["bottlenecks"]
        assert data["completion"]["projected"] is None


class TestBurndownEndpoint:
    """Tests for the burndown endpoint."""

    def test_burndown(self, client):
        response = client.post("/api/burndown", json={
            "items": [
                {"story_id": "S-1", "story_number": 1, "story_points": 12, "sprint_id": "s1",
                 "status": "completed", "actual_end_date": "2025-01-11"},
                {"story_id": "S-2", "story_number": 2, "story_points": 8, "sprint_id": "s1"},
            ],
            "sprints": [{"id": "s1", "name": "Sprint 1", "start_date": "2025-01-06",
                         "end_date": "2025-01-16", "status": "active"}],
        })
        series = response.json()["series"]

        assert response.status_code == 200
        assert series[0]["remaining"] == 20
        assert series[5]["remaining"] == 8

    def test_unknown_sprint(self, client):
        response = client.post("/api/burndown", json={"items": [], "sprints": [], "sprint_id": "nope"})
        assert response.status_code == 404


class TestCostCsvEndpoint:

    def test_csv(self, client):
        response = client.post("/api/costs/csv", json={
            "items": ITEMS,
            "developers": DEVELOPERS,
            "now": "2025-01-06T09:00:00",
        })

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/csv")
        assert response.text.splitlines() == [
            '"Developer","2025-01"',
            '"Alice","6400.00"',
            '"TOTAL","6400.00"',
        ]
