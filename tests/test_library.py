"""
Tests for exercise library normalization and integrity checks.

Covers:
- Muscle names mapped onto the landmark spelling
- Secondary muscles promoted when no primary is listed
- Legacy main-lift flag folded at load time
- Dual push/pull tags and duplicate ids rejected
- Loading from JSON files
"""

import json

import pytest

from liftplan.library import (
    LibraryIntegrityError,
    load_library,
    normalize_library,
    normalize_name,
)
from liftplan.schemas import Exercise


def test_normalize_library_keeps_input_order(raw_library, library):
    """Normalization returns one exercise per record, in input order."""
    assert [e.id for e in library] == [record["id"] for record in raw_library]


def test_muscle_names_are_canonicalized():
    """Lower-case and padded muscle names map to the landmark spelling."""
    library = normalize_library(
        [
            {
                "id": "pec_deck",
                "name": "Pec Deck",
                "primary_muscles": [" chest ", "Chest"],
                "secondary_muscles": ["front delts", "chest"],
            }
        ]
    )

    exercise = library[0]
    assert exercise.primary_muscles == ["Chest"]
    # A muscle listed as primary is never also secondary
    assert exercise.secondary_muscles == ["Front Delts"]


def test_secondary_muscles_fill_empty_primary():
    library = normalize_library(
        [
            {
                "id": "farmer_carry",
                "name": "Farmer Carry",
                "secondary_muscles": ["forearms", "Traps"],
            }
        ]
    )

    assert library[0].primary_muscles == ["Forearms", "Traps"]
    assert library[0].secondary_muscles == []


def test_unknown_muscles_pass_through():
    library = normalize_library([{"id": "neck_curl", "name": "Neck Curl", "primary_muscles": ["Neck"]}])
    assert library[0].primary_muscles == ["Neck"]


def test_legacy_main_lift_flag_is_folded():
    """``is_main_lift`` becomes ``is_main_lift_eligible`` and implies compound."""
    exercise = Exercise(**{"id": "deadlift", "name": "Deadlift", "is_main_lift": True})

    assert exercise.is_main_lift_eligible is True
    assert exercise.is_compound is True
    assert exercise.is_isolation is False


def test_dual_push_pull_tag_raises():
    """An exercise tagged both push and pull is corrupt reference data."""
    records = [
        {"id": "clean_and_press", "name": "Clean and Press", "split_tags": ["push", "pull"]},
        {"id": "curl", "name": "Curl", "split_tags": ["pull"]},
    ]

    with pytest.raises(LibraryIntegrityError, match="clean_and_press"):
        normalize_library(records)


def test_duplicate_ids_raise():
    records = [
        {"id": "curl", "name": "Curl"},
        {"id": "curl", "name": "Cable Curl"},
    ]

    with pytest.raises(LibraryIntegrityError, match="Duplicate exercise ids: curl"):
        normalize_library(records)


def test_malformed_record_raises_integrity_error():
    with pytest.raises(LibraryIntegrityError, match="Invalid exercise record"):
        normalize_library([{"id": "bad", "name": "Bad", "fatigue_cost": 9}])


def test_inverted_rep_range_rejected():
    with pytest.raises(LibraryIntegrityError):
        normalize_library([{"id": "bad", "name": "Bad", "rep_range_min": 12, "rep_range_max": 6}])


def test_normalize_name():
    assert normalize_name("  Barbell   Bench Press ") == "barbell bench press"


def test_load_library_accepts_wrapped_object(tmp_path, raw_library):
    path = tmp_path / "library.json"
    path.write_text(json.dumps({"exercises": raw_library[:3]}))

    library = load_library(path)

    assert [e.id for e in library] == [record["id"] for record in raw_library[:3]]


def test_load_library_missing_file(tmp_path):
    with pytest.raises(FileNotFoundError):
        load_library(tmp_path / "missing.json")


def test_load_library_invalid_json(tmp_path):
    path = tmp_path / "library.json"
    path.write_text("{not json")

    with pytest.raises(ValueError, match="Invalid exercise library file"):
        load_library(path)
