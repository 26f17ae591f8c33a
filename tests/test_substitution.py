"""
Tests for exercise substitution.

Covers:
- Ranking by pattern, muscle and stimulus similarity
- Equipment and pain exclusions (bodyweight counts only when listed)
- Mobility, prehab and conditioning drills are never suggested
"""

import pytest

from liftplan.library import normalize_library
from liftplan.schemas import EquipmentType, Exercise
from liftplan.substitution import score_substitute, shares_equipment, suggest_substitutes

FULL_GYM = list(EquipmentType)


@pytest.fixture
def by_id(library):
    return {e.id: e for e in library}


def test_best_three_substitutes(library, by_id):
    suggestions = suggest_substitutes(by_id["barbell_bench_press"], library, FULL_GYM)

    assert [s.exercise.id for s in suggestions] == [
        "machine_chest_press",
        "push_up",
        "incline_dumbbell_press",
    ]
    assert [s.score for s in suggestions] == [9.0, 9.0, 8.0]


def test_target_is_never_suggested(library, by_id):
    suggestions = suggest_substitutes(by_id["cable_fly"], library, FULL_GYM)

    assert len(suggestions) == 3
    assert "cable_fly" not in {s.exercise.id for s in suggestions}


def test_equipment_limits_substitutes(library, by_id):
    suggestions = suggest_substitutes(
        by_id["barbell_bench_press"], library, [EquipmentType.DUMBBELL, EquipmentType.BENCH]
    )

    assert [s.exercise.id for s in suggestions] == [
        "incline_dumbbell_press",
        "dumbbell_lateral_raise",
    ]


def test_bodyweight_substitutes_need_bodyweight_listed(library, by_id):
    dumbbells = [EquipmentType.DUMBBELL, EquipmentType.BENCH]

    without = suggest_substitutes(by_id["barbell_bench_press"], library, dumbbells)
    with_bodyweight = suggest_substitutes(
        by_id["barbell_bench_press"], library, dumbbells + [EquipmentType.BODYWEIGHT]
    )

    assert "push_up" not in {s.exercise.id for s in without}
    assert with_bodyweight[0].exercise.id == "push_up"
    assert shares_equipment(by_id["push_up"], [EquipmentType.BODYWEIGHT])
    assert not shares_equipment(by_id["push_up"], dumbbells)


def test_pain_flags_exclude_substitutes(library, by_id):
    baseline = suggest_substitutes(by_id["cable_fly"], library, FULL_GYM)
    painful = suggest_substitutes(by_id["cable_fly"], library, FULL_GYM, {"shoulder": 1})

    assert "barbell_bench_press" in {s.exercise.id for s in baseline}
    assert [s.exercise.id for s in painful] == [
        "incline_dumbbell_press",
        "machine_chest_press",
        "push_up",
    ]


def test_prehab_drills_are_blocked(raw_library):
    records = raw_library + [
        {
            "id": "banded_row",
            "name": "Banded Row",
            "movement_patterns": ["horizontal_pull"],
            "split_tags": ["pull", "prehab"],
            "primary_muscles": ["Upper Back"],
            "equipment": ["band"],
            "fatigue_cost": 1,
        }
    ]
    library = normalize_library(records)
    target = next(e for e in library if e.id == "seated_cable_row")

    suggestions = suggest_substitutes(target, library, FULL_GYM)

    assert "banded_row" not in {s.exercise.id for s in suggestions}


def test_no_shared_tag_no_suggestions():
    target = Exercise(id="sled_push", name="Sled Push", split_tags=["conditioning"])
    other = Exercise(id="curl", name="Curl", split_tags=["pull"])

    assert suggest_substitutes(target, [target, other], []) == []


def test_score_rewards_fatigue_savings(by_id):
    assert score_substitute(by_id["barbell_back_squat"], by_id["leg_press"]) == 4 + 3 + 0 + 2
