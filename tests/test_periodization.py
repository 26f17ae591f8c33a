"""
Tests for the periodization engine.

Covers:
- Worked week 1 and deload-week examples
- Ramp across the accumulation weeks
- Week clamping at both ends of the block
- Training-age RPE offsets and goal lookups
"""

import pytest

from liftplan.config import EngineConfig
from liftplan.periodization import (
    get_back_off_multiplier,
    get_base_target_rpe,
    get_goal_rep_ranges,
    get_mesocycle_periodization,
    get_periodization_modifiers,
)
from liftplan.schemas import PrimaryGoal, TrainingAge


def test_week_one_hypertrophy_example():
    modifiers = get_periodization_modifiers(1, PrimaryGoal.HYPERTROPHY)

    assert modifiers.rpe_offset == -1.5
    assert modifiers.set_multiplier == 1.0
    assert modifiers.back_off_multiplier == 0.88
    assert modifiers.is_deload is False
    assert modifiers.week_in_block == 1


def test_deload_week_hypertrophy_example():
    modifiers = get_periodization_modifiers(4, PrimaryGoal.HYPERTROPHY)

    assert modifiers.rpe_offset == -2.0
    assert modifiers.set_multiplier == 0.5
    assert modifiers.back_off_multiplier == 0.75
    assert modifiers.is_deload is True
    assert modifiers.week_in_block == 4


def test_accumulation_weeks_ramp_up():
    """RPE offset and set multiplier never drop before the deload week."""
    weeks = [get_periodization_modifiers(w, PrimaryGoal.HYPERTROPHY) for w in (1, 2, 3)]

    offsets = [m.rpe_offset for m in weeks]
    multipliers = [m.set_multiplier for m in weeks]
    assert offsets == sorted(offsets)
    assert multipliers == sorted(multipliers)
    assert weeks[1].rpe_offset == -0.5
    assert weeks[1].set_multiplier == pytest.approx(1.15)
    assert weeks[2].rpe_offset == 1.0
    assert weeks[2].set_multiplier == pytest.approx(1.3)


def test_week_below_one_clamps_to_week_one():
    modifiers = get_periodization_modifiers(0, PrimaryGoal.STRENGTH)

    assert modifiers.week_in_block == 1
    assert modifiers.is_deload is False
    assert modifiers.rpe_offset == -1.5


def test_week_past_block_is_deload():
    modifiers = get_periodization_modifiers(7, PrimaryGoal.STRENGTH)

    assert modifiers.is_deload is True
    assert modifiers.week_in_block == 7


def test_longer_block_moves_the_deload():
    config = EngineConfig(block_length=6)

    assert get_periodization_modifiers(4, PrimaryGoal.HYPERTROPHY, config=config).is_deload is False
    assert get_periodization_modifiers(6, PrimaryGoal.HYPERTROPHY, config=config).is_deload is True


def test_training_age_offsets():
    """With a training age the age table replaces the generic offsets."""
    early = get_periodization_modifiers(1, PrimaryGoal.HYPERTROPHY, TrainingAge.INTERMEDIATE)
    late = get_periodization_modifiers(3, PrimaryGoal.HYPERTROPHY, TrainingAge.ADVANCED)

    assert early.rpe_offset == -1.0
    assert late.rpe_offset == 1.0


def test_single_accumulation_week_sits_mid_block():
    modifiers = get_mesocycle_periodization(
        total_weeks=1, current_week=0, is_deload=False, goal=PrimaryGoal.HYPERTROPHY
    )

    assert modifiers.rpe_offset == -0.5
    assert modifiers.set_multiplier == pytest.approx(1.15)


def test_goal_lookups():
    assert get_goal_rep_ranges(PrimaryGoal.STRENGTH).main == (3, 6)
    assert get_goal_rep_ranges(PrimaryGoal.FAT_LOSS).accessory == (12, 20)
    assert get_back_off_multiplier(PrimaryGoal.STRENGTH) == 0.90
    assert get_base_target_rpe(PrimaryGoal.HYPERTROPHY, TrainingAge.BEGINNER) == 7.0
    assert get_base_target_rpe(PrimaryGoal.GENERAL_HEALTH, TrainingAge.ADVANCED) == 7.0
