"""
Shared fixtures: exercise library, training history and lifter context.
"""

import json
from datetime import datetime
from pathlib import Path

import pytest

from liftplan.config import get_default_config
from liftplan.library import normalize_library
from liftplan.plan_schemas import SelectionInput
from liftplan.schemas import (
    Constraints,
    EquipmentType,
    Goals,
    PrimaryGoal,
    SessionIntent,
    SplitType,
    TrainingAge,
    UserProfile,
    WorkoutHistoryEntry,
)

FIXTURES = Path(__file__).parent / "fixtures"

FULL_GYM = [
    EquipmentType.BARBELL,
    EquipmentType.DUMBBELL,
    EquipmentType.MACHINE,
    EquipmentType.CABLE,
    EquipmentType.BENCH,
    EquipmentType.RACK,
    EquipmentType.BAND,
    EquipmentType.TRAP_BAR,
]

SESSION_DATE = datetime(2026, 3, 13, 18, 0)


@pytest.fixture
def config():
    return get_default_config()


@pytest.fixture
def raw_library():
    """Exercise records as plain dicts."""
    with open(FIXTURES / "exercise_library.json") as f:
        return json.load(f)


@pytest.fixture
def library(raw_library):
    return normalize_library(raw_library)


@pytest.fixture
def history():
    """Four completed PPL sessions followed by a skipped pull day."""
    with open(FIXTURES / "history_ppl.json") as f:
        return [WorkoutHistoryEntry(**entry) for entry in json.load(f)]


@pytest.fixture
def profile():
    return UserProfile(id="lifter_001", training_age=TrainingAge.INTERMEDIATE, weight_kg=82.0)


@pytest.fixture
def goals():
    return Goals(primary=PrimaryGoal.HYPERTROPHY)


@pytest.fixture
def constraints():
    return Constraints(
        days_per_week=4,
        session_minutes=60,
        split_type=SplitType.PPL,
        available_equipment=FULL_GYM,
    )


@pytest.fixture
def make_selection_input(library, goals):
    """Factory for selector inputs with sensible defaults."""

    def _make(**overrides):
        data = {
            "intent": SessionIntent.PUSH,
            "week_in_block": 2,
            "session_minutes": 60,
            "goals": goals,
            "available_equipment": FULL_GYM,
            "exercise_library": library,
            "reference_time": SESSION_DATE,
        }
        data.update(overrides)
        return SelectionInput(**data)

    return _make
