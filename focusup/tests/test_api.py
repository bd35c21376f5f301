"""
Tests for the HTTP API.
"""
from unittest.mock import MagicMock

import pytest
from fastapi.testclient import TestClient

from focusup.auth import get_api_key
from focusup.domain import AttributeKey
from focusup.exceptions import PersistenceException
from focusup.main import app, get_registry
from focusup.services import reward_engine
from focusup.services.session_registry import SessionRegistry

HEADERS = {"X-API-Key": get_api_key()}


@pytest.fixture
def registry(persistence, timers, clock):
    return SessionRegistry(persistence, timers, clock)


@pytest.fixture
def client(registry):
    app.dependency_overrides[get_registry] = lambda: registry
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


class TestAuth:
    """Tests for API key checks"""

    def test_health_is_public(self, client):
        response = client.get("/")

        assert response.status_code == 200
        assert response.json()["status"] == "active"

    def test_missing_key_rejected(self, client):
        assert client.get("/api/session/user-1").status_code == 401

    def test_wrong_key_rejected(self, client):
        response = client.get("/api/session/user-1", headers={"X-API-Key": "nope"})

        assert response.status_code == 401

    def test_key_read_per_request(self, client, monkeypatch):
        """A rotated key applies without re-importing the app"""
        monkeypatch.setenv("FOCUSUP_API_KEY", "rotated-key")

        assert client.get("/api/session/user-1", headers=HEADERS).status_code == 401
        response = client.get("/api/session/user-1", headers={"X-API-Key": "rotated-key"})
        assert response.status_code == 200


class TestSessionEndpoints:
    """Tests for /api/session"""

    def test_idle_session(self, client):
        data = client.get("/api/session/user-1", headers=HEADERS).json()

        assert data["phase"] == "focus"
        assert data["running_state"] == "idle"
        assert data["seconds_left"] == 1500
        assert data["sprint"]["id"] is None

    def test_start(self, client):
        data = client.post("/api/session/user-1/start", headers=HEADERS).json()

        assert data["running_state"] == "running"
        assert data["display"] == "25:00"
        assert data["sprint"]["id"] == 1
        assert data["sprint"]["verification_required"] is True

    def test_state_follows_wall_clock(self, client, clock):
        client.post("/api/session/user-1/start", headers=HEADERS)
        clock.advance(90)

        data = client.get("/api/session/user-1", headers=HEADERS).json()

        assert data["seconds_left"] == 1410
        assert data["display"] == "23:30"

    def test_pause_and_reset(self, client, clock):
        client.post("/api/session/user-1/start", headers=HEADERS)
        clock.advance(60)

        paused = client.post("/api/session/user-1/pause", headers=HEADERS).json()
        assert paused["running_state"] == "paused"
        assert paused["seconds_left"] == 1440

        reset = client.post("/api/session/user-1/reset", headers=HEADERS).json()
        assert reset["running_state"] == "idle"
        assert reset["sprint"]["id"] is None

    def test_full_sprint(self, client, clock, timers):
        """Start, pass the check, finish focus and break, read the reward"""
        client.post("/api/session/user-1/start", headers=HEADERS)
        timers.fire("verification-challenge")

        pending = client.get("/api/session/user-1", headers=HEADERS).json()
        assert pending["verification_pending"] is True
        confirm = client.post("/api/session/user-1/verification/confirm", headers=HEADERS)
        assert confirm.json() == {"confirmed": True}

        clock.advance(1500)
        completed = client.get("/api/session/user-1", headers=HEADERS).json()
        assert completed["running_state"] == "completed"

        on_break = client.post("/api/session/user-1/break", headers=HEADERS).json()
        assert on_break["phase"] == "break"
        assert on_break["seconds_left"] == 300

        clock.advance(300)
        idle = client.get("/api/session/user-1", headers=HEADERS).json()
        assert idle["running_state"] == "idle"

        last = client.get("/api/session/user-1/last-sprint", headers=HEADERS).json()
        assert last["work_duration_sec"] == 1500
        assert last["reward_eligible"] is True
        assert last["reward"]["amount"] == 6

    def test_challenge_logged_for_user(self, client, timers, caplog):
        client.post("/api/session/user-1/start", headers=HEADERS)

        with caplog.at_level("INFO", logger="focusup.session"):
            timers.fire("verification-challenge")

        assert "Attentiveness check raised for user-1" in caplog.text

    def test_no_last_sprint(self, client):
        response = client.get("/api/session/user-1/last-sprint", headers=HEADERS)

        assert response.status_code == 404

    def test_sessions_are_per_user(self, client):
        client.post("/api/session/user-1/start", headers=HEADERS)

        other = client.get("/api/session/user-2", headers=HEADERS).json()

        assert other["running_state"] == "idle"

    def test_set_durations(self, client):
        response = client.put(
            "/api/session/user-1/durations",
            json={"work_seconds": 600, "break_seconds": 120},
            headers=HEADERS,
        )

        assert response.status_code == 200
        assert response.json()["display"] == "10:00"

    def test_invalid_durations(self, client):
        response = client.put(
            "/api/session/user-1/durations",
            json={"work_seconds": 0, "break_seconds": 300},
            headers=HEADERS,
        )

        assert response.status_code == 400
        assert "work_seconds" in response.json()["detail"]

    def test_link_task(self, client):
        client.put("/api/session/user-1/link", json={"task_id": "task-1"}, headers=HEADERS)

        data = client.post("/api/session/user-1/start", headers=HEADERS).json()

        assert data["sprint"]["linked_task_id"] == "task-1"
        assert data["sprint"]["linked_habit_id"] is None

    def test_link_both_rejected(self, client):
        response = client.put(
            "/api/session/user-1/link",
            json={"task_id": "task-1", "habit_id": "habit-1"},
            headers=HEADERS,
        )

        assert response.status_code == 400

    def test_confirm_without_challenge(self, client):
        response = client.post("/api/session/user-1/verification/confirm", headers=HEADERS)

        assert response.json() == {"confirmed": False}


class TestRewardPreviews:
    """Tests for /api/rewards/preview"""

    def test_habit_preview(self, client):
        response = client.post(
            "/api/rewards/preview/habit",
            json={"item_number": 3, "during_focus": True},
            headers=HEADERS,
        )

        assert response.json()["amount"] == 11

    def test_task_preview(self, client):
        response = client.post(
            "/api/rewards/preview/task?priority=medium",
            json={"during_focus": True, "is_duplicate": True},
            headers=HEADERS,
        )

        assert response.json()["amount"] == 6

    def test_sprint_preview(self, client):
        response = client.post(
            "/api/rewards/preview/sprint",
            json={"item_number": 2, "time_of_day": 10},
            headers=HEADERS,
        )

        assert response.json()["amount"] == 5

    def test_invalid_context(self, client):
        """item_number starts at 1"""
        response = client.post(
            "/api/rewards/preview/habit",
            json={"item_number": 0},
            headers=HEADERS,
        )

        assert response.status_code == 422


class TestUserEndpoints:
    """Tests for /api/users"""

    def test_complete_habit_and_stats(self, client):
        response = client.post(
            "/api/users/user-1/habits/complete",
            json={"attribute": "PH", "title": "Morning run"},
            headers=HEADERS,
        )
        assert response.json()["amount"] == 5

        stats = client.get("/api/users/user-1/stats", headers=HEADERS).json()

        assert stats["attributes"]["PH"] == 5
        assert stats["attribute_levels"]["PH"] == 1
        assert stats["character_level"] == 1

    def test_focus_flag_ignored_when_idle(self, client):
        """The focus bonus comes from the session, not the request body"""
        response = client.post(
            "/api/users/user-1/habits/complete",
            json={"attribute": "CO", "title": "Read", "during_focus": True},
            headers=HEADERS,
        )

        assert response.status_code == 200
        assert response.json()["amount"] == 5
        assert response.json()["multipliers"]["focus"] == 0.5

    def test_habit_during_running_focus(self, client):
        client.post("/api/session/user-1/start", headers=HEADERS)

        response = client.post(
            "/api/users/user-1/habits/complete",
            json={"attribute": "CO", "title": "Read"},
            headers=HEADERS,
        )

        assert response.json()["amount"] == 20

    def test_paused_focus_gets_no_bonus(self, client):
        client.post("/api/session/user-1/start", headers=HEADERS)
        client.post("/api/session/user-1/pause", headers=HEADERS)

        response = client.post(
            "/api/users/user-1/tasks/complete",
            json={"priority": "medium", "title": "Write the quarterly report"},
            headers=HEADERS,
        )

        assert response.json()["amount"] == 3

    def test_focus_ended_by_wall_clock(self, client, clock):
        """A focus phase that ran out before the request no longer counts"""
        client.post("/api/session/user-1/start", headers=HEADERS)
        clock.advance(1501)

        response = client.post(
            "/api/users/user-1/habits/complete",
            json={"attribute": "PH"},
            headers=HEADERS,
        )

        assert response.json()["amount"] == 5

    def test_complete_task_twice(self, client):
        """Repeated title is flagged"""
        client.post("/api/session/user-1/start", headers=HEADERS)
        first = client.post(
            "/api/users/user-1/tasks/complete",
            json={"priority": "medium", "title": "Buy milk"},
            headers=HEADERS,
        ).json()
        second = client.post(
            "/api/users/user-1/tasks/complete",
            json={"priority": "medium", "title": "buy  milk"},
            headers=HEADERS,
        ).json()

        assert first["amount"] == 12
        assert second["amount"] == 5
        assert second["spam_score"] == 0.3

    def test_level_status(self, client):
        data = client.get("/api/users/user-1/level", headers=HEADERS).json()

        assert data["character_level"] == 1
        assert data["check"]["can_level"] is True

    def test_level_up_refused(self, client, persistence):
        stats = persistence.read_user_aggregate("user-1")
        stats.coins = 50
        stats.attributes[AttributeKey.PHYSICAL] = reward_engine.xp_required_for_level(9)
        persistence.write_user_aggregate(stats)

        response = client.post("/api/users/user-1/level-up", headers=HEADERS)

        assert response.status_code == 409
        assert response.json()["detail"] == "Need 100 coins (you have 50)"

    def test_free_level_up(self, client):
        response = client.post("/api/users/user-1/level-up", headers=HEADERS)

        assert response.status_code == 200
        assert response.json()["cost"] == 0

    def test_update_streak(self, client):
        client.put("/api/users/user-1/streak", json={"current_streak": 7}, headers=HEADERS)

        data = client.put("/api/users/user-1/streak", json={"current_streak": 2}, headers=HEADERS).json()

        assert data["current_streak"] == 2
        assert data["longest_streak"] == 7
        stats = client.get("/api/users/user-1/stats", headers=HEADERS).json()
        assert stats["current_streak"] == 2

    def test_negative_streak_rejected(self, client):
        response = client.put("/api/users/user-1/streak", json={"current_streak": -3}, headers=HEADERS)

        assert response.status_code == 422

    def test_streak_raises_habit_reward(self, client):
        """Streak 10 during focus: 10 * 2.0 * 1.5 = 30 XP"""
        client.put("/api/users/user-1/streak", json={"current_streak": 10}, headers=HEADERS)
        client.post("/api/session/user-1/start", headers=HEADERS)

        response = client.post(
            "/api/users/user-1/habits/complete",
            json={"attribute": "EM"},
            headers=HEADERS,
        )

        assert response.json()["amount"] == 30


class TestSprintHistory:
    """Tests for /api/users/{user_id}/sprints"""

    def test_recent_sprints_newest_first(self, client):
        client.post("/api/session/user-1/start", headers=HEADERS)
        client.post("/api/session/user-1/reset", headers=HEADERS)
        client.put("/api/session/user-1/link", json={"habit_id": "habit-1"}, headers=HEADERS)
        client.post("/api/session/user-1/start", headers=HEADERS)

        data = client.get("/api/users/user-1/sprints", headers=HEADERS).json()

        assert [s["id"] for s in data] == [2, 1]
        assert data[0]["linked_habit_id"] == "habit-1"
        assert data[0]["coins_earned"] == 0

    def test_limit(self, client):
        for _ in range(3):
            client.post("/api/session/user-1/start", headers=HEADERS)
            client.post("/api/session/user-1/reset", headers=HEADERS)

        data = client.get("/api/users/user-1/sprints?limit=2", headers=HEADERS).json()

        assert [s["id"] for s in data] == [3, 2]

    def test_finished_sprint_shows_reward(self, client, clock, timers):
        client.post("/api/session/user-1/start", headers=HEADERS)
        timers.fire("verification-challenge")
        client.post("/api/session/user-1/verification/confirm", headers=HEADERS)
        clock.advance(1500)
        client.post("/api/session/user-1/break", headers=HEADERS)
        clock.advance(300)
        client.get("/api/session/user-1", headers=HEADERS)

        data = client.get("/api/users/user-1/sprints", headers=HEADERS).json()

        assert data[0]["work_duration_sec"] == 1500
        assert data[0]["break_duration_sec"] == 300
        assert data[0]["coins_earned"] == 6

    def test_other_users_excluded(self, client):
        client.post("/api/session/user-1/start", headers=HEADERS)

        assert client.get("/api/users/user-2/sprints", headers=HEADERS).json() == []

    def test_store_failure(self, client, registry):
        """Unreadable history is a 503, not a crash"""
        registry.persistence = MagicMock()
        registry.persistence.recent_sprint_records.side_effect = PersistenceException(
            "recent_sprints", "database is locked"
        )

        response = client.get("/api/users/user-1/sprints", headers=HEADERS)

        assert response.status_code == 503
