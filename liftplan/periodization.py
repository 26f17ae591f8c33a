"""
Periodization engine.

Maps a position in the training block onto week-level modifiers:
- RPE offset: easier early, harder late, capped on deload
- Set multiplier: ramps from 1.0 to 1.3 across the accumulation weeks
- Back-off multiplier: per-goal constant, 0.75 on deload

Weeks are 1-indexed and the final week of every block is a deload.
Also exposes the goal-level lookups (rep ranges, base RPE) that the
prescription engine and any rationale rendering share.
"""

from typing import Optional

from liftplan.config import EngineConfig, GoalRepRanges, resolve_config
from liftplan.plan_schemas import PeriodizationModifiers
from liftplan.schemas import PrimaryGoal, TrainingAge


def get_goal_rep_ranges(goal: PrimaryGoal, config: Optional[EngineConfig] = None) -> GoalRepRanges:
    """Main-lift and accessory rep ranges for a goal."""
    return resolve_config(config).rep_ranges[PrimaryGoal(goal)]


def get_base_target_rpe(
    goal: PrimaryGoal,
    training_age: TrainingAge = TrainingAge.INTERMEDIATE,
    config: Optional[EngineConfig] = None,
) -> float:
    """
    Base target RPE before readiness, preference and periodization adjustments.

    Hypertrophy scales with training age (beginners stop further from
    failure); every other goal uses a fixed per-goal value.
    """
    cfg = resolve_config(config)
    goal = PrimaryGoal(goal)
    if goal == PrimaryGoal.HYPERTROPHY:
        return cfg.hypertrophy_rpe_by_age.get(TrainingAge(training_age), 8.0)
    return cfg.target_rpe[goal]


def get_back_off_multiplier(goal: PrimaryGoal, config: Optional[EngineConfig] = None) -> float:
    cfg = resolve_config(config)
    return cfg.back_off_multipliers.get(PrimaryGoal(goal), cfg.default_back_off_multiplier)


def get_goal_set_multiplier(goal: PrimaryGoal, config: Optional[EngineConfig] = None) -> float:
    """Volume scaling for the goal; a caloric deficit trains on fewer sets."""
    if PrimaryGoal(goal) == PrimaryGoal.FAT_LOSS:
        return resolve_config(config).fat_loss_set_multiplier
    return 1.0


def _generic_rpe_offset(progress: float) -> float:
    if progress <= 0.25:
        return -1.5
    if progress <= 0.5:
        return -0.5
    if progress <= 0.75:
        return 0.5
    return 1.0


def _training_age_rpe_offset(
    training_age: TrainingAge, progress: float, config: EngineConfig
) -> float:
    offsets = config.rpe_offsets_by_age[TrainingAge(training_age)]
    if progress <= 0.25:
        return offsets.early
    if progress <= 0.75:
        return offsets.middle
    return offsets.late


def get_mesocycle_periodization(
    total_weeks: int,
    current_week: int,
    is_deload: bool,
    goal: PrimaryGoal,
    training_age: Optional[TrainingAge] = None,
    config: Optional[EngineConfig] = None,
) -> PeriodizationModifiers:
    """
    General form of the periodization lookup.

    Args:
        total_weeks: Accumulation weeks in the mesocycle (deload excluded)
        current_week: 0-based position inside the accumulation weeks
        is_deload: Whether this is the deload week
        goal: Primary training goal
        training_age: When given, selects the age-specific RPE offset table
        config: Engine configuration

    Returns:
        PeriodizationModifiers without a week_in_block
    """
    cfg = resolve_config(config)
    if is_deload:
        return PeriodizationModifiers(
            rpe_offset=cfg.deload.rpe_offset,
            set_multiplier=cfg.deload.set_multiplier,
            back_off_multiplier=cfg.deload.back_off_multiplier,
            is_deload=True,
        )

    total_weeks = max(1, total_weeks)
    progress = 0.5 if total_weeks <= 1 else current_week / (total_weeks - 1)
    progress = max(0.0, min(1.0, progress))

    if training_age is None:
        rpe_offset = _generic_rpe_offset(progress)
    else:
        rpe_offset = _training_age_rpe_offset(training_age, progress, cfg)

    return PeriodizationModifiers(
        rpe_offset=rpe_offset,
        set_multiplier=1.0 + 0.3 * progress,
        back_off_multiplier=get_back_off_multiplier(goal, cfg),
        is_deload=False,
    )


def get_periodization_modifiers(
    week_in_block: int,
    goal: PrimaryGoal,
    training_age: Optional[TrainingAge] = None,
    config: Optional[EngineConfig] = None,
) -> PeriodizationModifiers:
    """
    Week-level modifiers for a 1-indexed week in the block.

    Weeks below 1 are treated as week 1; weeks past the block length are
    treated as the deload week.

    Example:
        >>> get_periodization_modifiers(1, PrimaryGoal.HYPERTROPHY)
        PeriodizationModifiers(rpe_offset=-1.5, set_multiplier=1.0,
            back_off_multiplier=0.88, is_deload=False, week_in_block=1)
    """
    cfg = resolve_config(config)
    block_length = cfg.block_length
    week = max(1, int(week_in_block))
    week_index = min(week - 1, block_length - 1)
    is_deload = week_index >= block_length - 1

    modifiers = get_mesocycle_periodization(
        total_weeks=block_length - 1,
        current_week=min(week_index, block_length - 2),
        is_deload=is_deload,
        goal=goal,
        training_age=training_age,
        config=cfg,
    )
    return modifiers.model_copy(update={"week_in_block": week})
