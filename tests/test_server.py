"""HTTP tests for the FastAPI application, run against both storage backends."""

from __future__ import annotations

import json

import pytest
from fastapi.testclient import TestClient

from plan_tracker import config
from plan_tracker.server import create_app
from plan_tracker.storage import MemoryStorage


@pytest.fixture
def plan_id(client: TestClient, plan_document: dict) -> int:
    response = client.post("/api/workout-plans", json=plan_document)
    assert response.status_code == 201
    return response.json()["id"]


class TestPlans:
    def test_health(self, client: TestClient) -> None:
        assert client.get("/api/health").json() == {"status": "ok"}

    def test_empty_list(self, client: TestClient) -> None:
        assert client.get("/api/workout-plans").json() == []

    def test_manual_entry(self, client: TestClient, plan_id: int) -> None:
        plan = client.get(f"/api/workout-plans/{plan_id}").json()
        assert plan["name"] == "Push Pull Legs"
        assert plan["total_days"] == 7
        assert len(client.get("/api/workout-plans").json()) == 1

    def test_manual_entry_several_days_with_notes(self, client: TestClient) -> None:
        document = {
            "name": "Hand Built",
            "totalDays": 10,
            "workouts": [
                {
                    "day": 1,
                    "name": "Upper",
                    "notes": "Warm up shoulders",
                    "exercises": [
                        {"name": "Pull-up", "sets": 4, "reps": "6", "notes": "Full hang"},
                        {"name": "Dip", "sets": 3, "reps": "10"},
                    ],
                },
                {"day": 3, "name": "Lower", "exercises": [{"name": "Lunge", "sets": 3, "reps": "12 each"}]},
            ],
        }
        plan_id = client.post("/api/workout-plans", json=document).json()["id"]
        assert client.get(f"/api/workout-plans/{plan_id}/export").json() == document

    def test_manual_entry_invalid(self, client: TestClient, plan_document: dict) -> None:
        plan_document["workouts"][0]["exercises"][0]["sets"] = "four"
        response = client.post("/api/workout-plans", json=plan_document)
        assert response.status_code == 400
        assert "workouts.0.exercises.0.sets" in response.json()["detail"]
        assert client.get("/api/workout-plans").json() == []

    def test_unknown_plan(self, client: TestClient) -> None:
        response = client.get("/api/workout-plans/9")
        assert response.status_code == 404
        assert response.json()["detail"] == "Workout plan not found"

    def test_non_integer_id(self, client: TestClient) -> None:
        assert client.get("/api/workout-plans/abc").status_code == 422

    def test_export(self, client: TestClient, plan_id: int, plan_document: dict) -> None:
        assert client.get(f"/api/workout-plans/{plan_id}/export").json() == plan_document

    def test_export_unknown(self, client: TestClient) -> None:
        assert client.get("/api/workout-plans/3/export").status_code == 404


class TestUpload:
    def test_csv_upload(self, client: TestClient, plan_csv: bytes) -> None:
        response = client.post("/api/workout-plans/upload", params={"filename": "plan.csv"}, content=plan_csv)
        assert response.status_code == 201
        plan = response.json()
        assert plan["total_days"] == 42
        workouts = client.get(f"/api/workout-plans/{plan['id']}/workouts").json()
        assert [w["day"] for w in workouts] == [1, 2]

    def test_json_upload(self, client: TestClient, plan_document: dict) -> None:
        response = client.post(
            "/api/workout-plans/upload",
            params={"filename": "plan.json"},
            content=json.dumps(plan_document).encode("utf-8"),
        )
        assert response.status_code == 201
        assert response.json()["name"] == "Push Pull Legs"

    def test_unsupported_extension(self, client: TestClient) -> None:
        response = client.post("/api/workout-plans/upload", params={"filename": "plan.txt"}, content=b"x")
        assert response.status_code == 400
        assert response.json()["detail"].startswith("Unsupported file type")

    def test_bad_csv(self, client: TestClient) -> None:
        response = client.post("/api/workout-plans/upload", params={"filename": "plan.csv"},
                               content=b"Plan,3\nheader\n")
        assert response.status_code == 400
        assert response.json()["detail"] == "CSV file must contain at least 3 lines"

    def test_empty_body(self, client: TestClient) -> None:
        response = client.post("/api/workout-plans/upload", params={"filename": "plan.json"}, content=b"")
        assert response.status_code == 400
        assert response.json()["detail"] == "Empty file."

    def test_filename_required(self, client: TestClient) -> None:
        assert client.post("/api/workout-plans/upload", content=b"{}").status_code == 422


class TestWorkouts:
    def test_day_view(self, client: TestClient, plan_id: int) -> None:
        body = client.get(f"/api/workout-plans/{plan_id}/workouts/day/4").json()
        assert body["workout"]["name"] == "Legs"
        assert [e["name"] for e in body["exercises"]] == ["Back Squat"]
        assert (body["week"], body["weekday"]) == (1, 4)

    def test_rest_day(self, client: TestClient, plan_id: int) -> None:
        response = client.get(f"/api/workout-plans/{plan_id}/workouts/day/3")
        assert response.status_code == 404

    def test_complete_and_progress(self, client: TestClient, plan_id: int) -> None:
        workouts = {w["day"]: w for w in client.get(f"/api/workout-plans/{plan_id}/workouts").json()}

        response = client.put(f"/api/workouts/{workouts[1]['id']}/complete")
        assert response.status_code == 200
        assert response.json()["is_completed"] is True
        client.put(f"/api/workouts/{workouts[4]['id']}/complete")

        summary = client.get(f"/api/workout-plans/{plan_id}/progress").json()
        assert summary["progress"]["completed_days"] == 2
        assert summary["progress"]["current_streak"] == 1
        assert summary["progress"]["current_day"] == 2
        assert summary["completion_percentage"] == 29
        assert summary["total_days"] == 7
        assert len(summary["recent_completed_workouts"]) == 2

    def test_complete_twice(self, client: TestClient, plan_id: int) -> None:
        workout = client.get(f"/api/workout-plans/{plan_id}/workouts/day/1").json()["workout"]
        client.put(f"/api/workouts/{workout['id']}/complete")
        client.put(f"/api/workouts/{workout['id']}/complete")
        summary = client.get(f"/api/workout-plans/{plan_id}/progress").json()
        assert summary["progress"]["completed_days"] == 1

    def test_complete_unknown_workout(self, client: TestClient) -> None:
        assert client.put("/api/workouts/77/complete").status_code == 404

    def test_complete_exercise(self, client: TestClient, plan_id: int) -> None:
        body = client.get(f"/api/workout-plans/{plan_id}/workouts/day/1").json()
        exercise_id = body["exercises"][1]["id"]
        response = client.put(f"/api/exercises/{exercise_id}/complete")
        assert response.status_code == 200
        assert response.json()["is_completed"] is True

    def test_complete_unknown_exercise(self, client: TestClient) -> None:
        assert client.put("/api/exercises/77/complete").status_code == 404

    def test_progress_unknown_plan(self, client: TestClient) -> None:
        assert client.get("/api/workout-plans/5/progress").status_code == 404


class TestPages:
    def test_index(self, client: TestClient, plan_id: int) -> None:
        response = client.get("/")
        assert response.status_code == 200
        assert "Push Pull Legs" in response.text

    def test_manual_entry_form_builds_days_and_exercises(self, client: TestClient) -> None:
        html = client.get("/").text
        for marker in ('id="add-day"', 'id="day-template"', 'id="exercise-template"',
                       'class="add-exercise"', 'class="remove-day"', 'class="remove-exercise"',
                       'class="day-notes"', 'class="exercise-notes"'):
            assert marker in html
        script = client.get("/static/app.js").text
        assert "function collectPlan" in script
        assert "workouts" in script

    def test_plan_page_defaults_to_current_day(self, client: TestClient, plan_id: int) -> None:
        response = client.get(f"/plans/{plan_id}")
        assert response.status_code == 200
        assert "Bench Press" in response.text
        assert "Week 1, day 1" in response.text

    def test_plan_page_rest_day(self, client: TestClient, plan_id: int) -> None:
        response = client.get(f"/plans/{plan_id}", params={"day": 3})
        assert "Rest day." in response.text

    def test_plan_page_unknown(self, client: TestClient) -> None:
        assert client.get("/plans/12").status_code == 404

    def test_static_assets(self, client: TestClient) -> None:
        assert client.get("/static/app.js").status_code == 200


def test_create_app_uses_configured_backend(monkeypatch) -> None:
    monkeypatch.setattr(config, "STORAGE_BACKEND", "memory")
    app = create_app()
    assert isinstance(app.state.store, MemoryStorage)
