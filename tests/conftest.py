"""Shared test fixtures: sample plan files and both storage backends."""

from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from plan_tracker.server import create_app
from plan_tracker.storage import MemoryStorage, SqliteStorage


@pytest.fixture
def plan_document() -> dict:
    """A three-day push/pull/legs week with a rest day left implicit."""
    return {
        "name": "Push Pull Legs",
        "totalDays": 7,
        "workouts": [
            {
                "day": 1,
                "name": "Push",
                "notes": "Chest and shoulders",
                "exercises": [
                    {"name": "Bench Press", "sets": 4, "reps": "6-8", "notes": "Pause on chest"},
                    {"name": "Overhead Press", "sets": 3, "reps": "8-10"},
                ],
            },
            {
                "day": 2,
                "name": "Pull",
                "exercises": [
                    {"name": "Deadlift", "sets": 3, "reps": "5"},
                    {"name": "Dead Hang", "sets": 2, "reps": "45s", "notes": ""},
                ],
            },
            {
                "day": 4,
                "name": "Legs",
                "notes": "",
                "exercises": [{"name": "Back Squat", "sets": 5, "reps": "5"}],
            },
        ],
    }


@pytest.fixture
def plan_csv() -> bytes:
    return (
        "Beginner Strength,42\n"
        "Day,Workout Name,Notes,Exercise Name,Sets,Reps,Exercise Notes\n"
        "1,Full Body A,Easy start,Goblet Squat,3,10,\"Keep your back straight, feet shoulder-width apart\"\n"
        "1,Full Body A,ignored,Push-up,3,8-12,\n"
        "\n"
        "2,Conditioning,,Plank,3,30s,Brace\n"
        "1,Full Body A,,Row,3,10,Squeeze\n"
    ).encode("utf-8")


@pytest.fixture
def memory_store() -> MemoryStorage:
    return MemoryStorage()


@pytest.fixture
def sqlite_store(tmp_path) -> SqliteStorage:
    return SqliteStorage(str(tmp_path / "fitness.db"))


@pytest.fixture(params=["memory", "sqlite"])
def store(request, tmp_path):
    """Run a test once against each storage backend."""
    if request.param == "memory":
        return MemoryStorage()
    return SqliteStorage(str(tmp_path / "fitness.db"))


@pytest.fixture
def client(store) -> TestClient:
    return TestClient(create_app(store))
