"""
Tests for the HTTP API.

Covers:
- Health and root endpoints
- App factory: engine config from arguments or the environment, CORS origins
- Malformed request bodies in the shared error shape
- Workout generation with an optional trace
- Standalone selection with candidate ranking
- Substitute suggestions and their error responses
- Periodization lookups
"""

import json
from datetime import datetime

import pytest
from fastapi.testclient import TestClient

from liftplan.api.main import (
    CONFIG_ENV,
    CORS_ENV,
    DEV_ORIGINS,
    app,
    config_from_env,
    create_app,
    origins_from_env,
)
from liftplan.config import EngineConfig

SESSION_DATE = datetime(2026, 3, 13, 18, 0)


@pytest.fixture
def client():
    return TestClient(app)


@pytest.fixture
def workout_payload(profile, goals, constraints, history, raw_library):
    return {
        "profile": profile.model_dump(mode="json"),
        "goals": goals.model_dump(mode="json"),
        "constraints": constraints.model_dump(mode="json"),
        "history": [entry.model_dump(mode="json") for entry in history],
        "exercise_library": raw_library,
        "options": {"scheduled_date": SESSION_DATE.isoformat(), "week_in_block": 2},
    }


def test_health(client):
    response = client.get("/health")

    assert response.status_code == 200
    assert response.json() == {"status": "healthy", "service": "liftplan-api"}


def test_root(client):
    body = client.get("/").json()

    assert body["name"] == "liftplan API"
    assert body["block_length"] == 4
    assert "/api/workouts" in body["endpoints"]
    assert "/api/periodization/{week}" in body["endpoints"]


def test_app_uses_its_engine_config():
    client = TestClient(create_app(EngineConfig(block_length=3)))

    assert client.get("/").json()["block_length"] == 3
    assert client.get("/api/periodization/3").json()["is_deload"] is True


def test_engine_config_from_environment(tmp_path, monkeypatch):
    path = tmp_path / "engine.json"
    path.write_text(json.dumps({"block_length": 5}))
    monkeypatch.setenv(CONFIG_ENV, str(path))

    assert config_from_env().block_length == 5
    assert TestClient(create_app()).get("/").json()["block_length"] == 5

    monkeypatch.delenv(CONFIG_ENV)
    assert config_from_env().block_length == 4


def test_cors_origins_from_environment(monkeypatch):
    monkeypatch.setenv(CORS_ENV, "https://app.example.com, ")
    assert origins_from_env() == ["https://app.example.com"]

    monkeypatch.delenv(CORS_ENV)
    assert origins_from_env() == DEV_ORIGINS


def test_malformed_request_uses_error_shape(client, workout_payload):
    workout_payload["profile"]["weight_kg"] = -5

    response = client.post("/api/workouts", json=workout_payload)

    assert response.status_code == 422
    body = response.json()
    assert body["error"] == "Invalid request"
    assert body["message"].startswith("body.profile.weight_kg")
    assert body["details"]


def test_generate_workout(client, workout_payload):
    response = client.post("/api/workouts", json=workout_payload)

    assert response.status_code == 200
    body = response.json()
    assert body["plan"]["session_intent"] == "pull"
    assert body["plan"]["main_lifts"]
    assert body["trace_markdown"] is None


def test_generate_workout_with_trace(client, workout_payload):
    workout_payload["include_trace"] = True

    body = client.post("/api/workouts", json=workout_payload).json()

    assert body["trace_markdown"].startswith("# Workout Trace")


def test_generate_workout_rejects_corrupt_library(client, workout_payload):
    workout_payload["exercise_library"].append(
        {"id": "clean_and_press", "name": "Clean and Press", "split_tags": ["push", "pull"]}
    )

    response = client.post("/api/workouts", json=workout_payload)

    assert response.status_code == 422
    assert "push and pull" in response.json()["message"]


def test_selection_with_ranking(client, make_selection_input):
    payload = {
        "selection_input": make_selection_input().model_dump(mode="json"),
        "include_ranking": True,
    }

    response = client.post("/api/selection", json=payload)

    assert response.status_code == 200
    body = response.json()
    assert body["selection"]["selected_exercise_ids"]
    scores = [candidate["score"] for candidate in body["ranking"]]
    assert scores == sorted(scores, reverse=True)


def test_substitutes(client, raw_library):
    payload = {
        "exercise_id": "barbell_bench_press",
        "exercise_library": raw_library,
        "available_equipment": ["dumbbell", "bench"],
    }

    body = client.post("/api/substitutes", json=payload).json()

    assert body["exercise_id"] == "barbell_bench_press"
    assert body["count"] == len(body["suggestions"]) == 2
    assert body["suggestions"][0]["exercise"]["id"] == "incline_dumbbell_press"


def test_substitutes_unknown_exercise(client, raw_library):
    payload = {"exercise_id": "zercher_squat", "exercise_library": raw_library}

    response = client.post("/api/substitutes", json=payload)

    assert response.status_code == 404
    assert "zercher_squat" in response.json()["error"]


def test_substitutes_duplicate_ids(client, raw_library):
    payload = {
        "exercise_id": "barbell_bench_press",
        "exercise_library": raw_library + [raw_library[0]],
    }

    response = client.post("/api/substitutes", json=payload)

    assert response.status_code == 422
    assert "Duplicate exercise ids" in response.json()["error"]


def test_periodization(client):
    body = client.get("/api/periodization/2", params={"goal": "hypertrophy"}).json()

    assert body["is_deload"] is False
    assert body["rpe_offset"] == -0.5
    assert body["week_in_block"] == 2


def test_periodization_rejects_week_zero(client):
    response = client.get("/api/periodization/0")

    assert response.status_code == 400
    assert response.json()["error"] == "week must be 1 or greater"
