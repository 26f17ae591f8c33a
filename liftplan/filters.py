"""
Hard filter engine.

Binary eligibility gate run before any scoring. Checks are evaluated in a
fixed order and the first failing check is reported, so a rejected
candidate always carries exactly one reason:

1. already_selected
2. equipment
3. avoid
4. pain_conflict
5. sfr_below_threshold (accessory phase, hypertrophy / fat loss)
6. critical_muscle_overlap
7. body_part_primary_overlap
8. intent_scope_primary_overlap (intent mode)
9. same_primary_pattern_duplicate (intent mode, accessory phase)
10. main_lift_eligibility / main_rep_range (main phase)
"""

import re
from typing import Dict, Iterable, Optional, Set, Tuple

from liftplan.config import EngineConfig, resolve_config
from liftplan.library import normalize_name
from liftplan.periodization import get_goal_rep_ranges
from liftplan.plan_schemas import HardFilterReason, SelectionPhase
from liftplan.schemas import (
    EquipmentType,
    Exercise,
    MovementPattern,
    PrimaryGoal,
    SelectionMode,
    SessionIntent,
    SplitTag,
)
from liftplan.state import SelectionState, primary_pattern_keys

LOW_BACK_KEYS = {"low_back", "lower_back"}
LOW_BACK_HINGE_SEVERITY = 2
SFR_FLOOR = 1

INTENT_SPLIT_TAGS: Dict[SessionIntent, Set[SplitTag]] = {
    SessionIntent.PUSH: {SplitTag.PUSH},
    SessionIntent.PULL: {SplitTag.PULL},
    SessionIntent.LEGS: {SplitTag.LEGS},
    SessionIntent.UPPER: {SplitTag.PUSH, SplitTag.PULL},
    SessionIntent.LOWER: {SplitTag.LEGS},
}


def normalize_body_part(body_part: str) -> str:
    """'Low Back', 'low-back' and 'low_back' all map to 'low_back'."""
    return re.sub(r"[\s\-]+", "_", body_part.strip().lower())


# ============================================================================
# Individual predicates
# ============================================================================


def passes_equipment(exercise: Exercise, available: Iterable[EquipmentType]) -> bool:
    if not exercise.equipment or EquipmentType.BODYWEIGHT in exercise.equipment:
        return True
    return bool(set(exercise.equipment) & set(available))


def has_pain_conflict(
    exercise: Exercise, pain_flags: Optional[Dict[str, int]], threshold: int = 1
) -> bool:
    """
    Whether current pain rules the exercise out.

    A flag at or above the threshold conflicts with a matching
    contraindication key. Low-back pain of 2 or more also excludes every
    hinge-pattern exercise, contraindicated or not.
    """
    if not pain_flags:
        return False
    contraindicated = {normalize_body_part(key) for key in exercise.contraindications}
    for body_part, severity in sorted(pain_flags.items()):
        key = normalize_body_part(body_part)
        if severity >= threshold and key in contraindicated:
            return True
        if (
            key in LOW_BACK_KEYS
            and severity >= LOW_BACK_HINGE_SEVERITY
            and MovementPattern.HINGE in exercise.movement_patterns
        ):
            return True
    return False


def is_low_sfr_accessory(exercise: Exercise, goal: PrimaryGoal) -> bool:
    if goal not in (PrimaryGoal.HYPERTROPHY, PrimaryGoal.FAT_LOSS):
        return False
    return exercise.sfr_score <= SFR_FLOOR


def hits_muscles(exercise: Exercise, muscles: Set[str], include_secondary: bool = False) -> bool:
    hit = set(exercise.primary_muscles)
    if include_secondary:
        hit.update(exercise.secondary_muscles)
    return bool(hit & muscles)


def rep_ranges_overlap(goal_range: Tuple[int, int], exercise: Exercise) -> bool:
    if exercise.rep_range_min is None or exercise.rep_range_max is None:
        return True
    return exercise.rep_range_min <= goal_range[1] and exercise.rep_range_max >= goal_range[0]


def is_demoted_for_rep_range(
    exercise: Exercise, goal: PrimaryGoal, config: Optional[EngineConfig] = None
) -> bool:
    """A main-eligible lift whose native range misses the goal's main range is demoted."""
    return not rep_ranges_overlap(get_goal_rep_ranges(goal, config).main, exercise)


def can_fill_main_slot(
    exercise: Exercise, goal: PrimaryGoal, config: Optional[EngineConfig] = None
) -> bool:
    return exercise.is_main_lift_eligible and not is_demoted_for_rep_range(exercise, goal, config)


def matches_split_tags(exercise: Exercise, intent: SessionIntent) -> bool:
    """Split days accept only exercises tagged for that day."""
    required = INTENT_SPLIT_TAGS.get(intent)
    if required is None:
        return True
    return bool(set(exercise.split_tags) & required)


def intent_primary_scope(
    intent: SessionIntent,
    target_muscles: Iterable[str] = (),
    config: Optional[EngineConfig] = None,
) -> Optional[Set[str]]:
    """
    Muscles an accessory's primary muscles must overlap for this intent.

    Full-body sessions have no scope; body-part sessions use the target
    muscles; split days use the split map.
    """
    cfg = resolve_config(config)
    if intent == SessionIntent.FULL_BODY:
        return None
    if intent == SessionIntent.BODY_PART:
        return {cfg.canonical_muscle(m) for m in target_muscles}
    groups = {tag.value for tag in INTENT_SPLIT_TAGS[intent]}
    return {muscle for muscle, split in cfg.split_map.items() if split in groups}


def duplicates_primary_pattern(state: SelectionState, exercise: Exercise) -> bool:
    return any(
        state.primary_pattern_overlap.get(key, 0) >= 1 for key in primary_pattern_keys(exercise)
    )


# ============================================================================
# Gate
# ============================================================================


def resolve_hard_filter_failure(
    state: SelectionState, exercise: Exercise, phase: SelectionPhase
) -> Optional[HardFilterReason]:
    """
    First hard filter an exercise fails for the given phase.

    Args:
        state: Current selection state
        exercise: Candidate exercise (normalized)
        phase: Slot type being filled

    Returns:
        The failure reason, or None if the exercise is eligible
    """
    selection_input = state.input
    cfg = state.config
    goal = selection_input.goals.primary
    is_intent_mode = selection_input.mode == SelectionMode.INTENT

    if exercise.id in state.selected_ids:
        return HardFilterReason.ALREADY_SELECTED
    if not passes_equipment(exercise, selection_input.available_equipment):
        return HardFilterReason.EQUIPMENT
    if exercise.id in state.avoid_by_id or normalize_name(exercise.name) in state.avoid_by_name:
        return HardFilterReason.AVOID
    if has_pain_conflict(exercise, selection_input.fatigue_state.pain_flags, cfg.pain_flag_threshold):
        return HardFilterReason.PAIN_CONFLICT
    if phase == SelectionPhase.ACCESSORY and is_low_sfr_accessory(exercise, goal):
        return HardFilterReason.SFR_BELOW_THRESHOLD
    if state.critical_muscles and not hits_muscles(
        exercise, state.critical_muscles, include_secondary=True
    ):
        return HardFilterReason.CRITICAL_MUSCLE_OVERLAP
    if selection_input.intent == SessionIntent.BODY_PART and not hits_muscles(
        exercise, state.critical_muscles
    ):
        return HardFilterReason.BODY_PART_PRIMARY_OVERLAP

    if is_intent_mode:
        if not matches_split_tags(exercise, selection_input.intent):
            return HardFilterReason.INTENT_SCOPE_PRIMARY_OVERLAP
        if phase == SelectionPhase.ACCESSORY:
            scope = intent_primary_scope(
                selection_input.intent, selection_input.target_muscles, cfg
            )
            if scope is not None and not hits_muscles(exercise, scope):
                return HardFilterReason.INTENT_SCOPE_PRIMARY_OVERLAP
            if duplicates_primary_pattern(state, exercise):
                return HardFilterReason.SAME_PRIMARY_PATTERN_DUPLICATE

    if phase == SelectionPhase.MAIN:
        if not exercise.is_main_lift_eligible:
            return HardFilterReason.MAIN_LIFT_ELIGIBILITY
        if is_demoted_for_rep_range(exercise, goal, cfg):
            return HardFilterReason.MAIN_REP_RANGE
    return None


def passes_hard_filters(
    state: SelectionState, exercise: Exercise, phase: SelectionPhase
) -> bool:
    return resolve_hard_filter_failure(state, exercise, phase) is None
