"""
Set allocator.

Intent-mode sessions start every selected exercise at two sets and then add
one set at a time to whichever exercise closes the most remaining
critical-muscle deficit, until no critical muscle is a full set short or
nothing more can be added. Full-body sessions are then rebalanced so no
movement category (push / pull / lower) carries more than three times the
sets of another.
"""

import logging
from typing import Dict, List, Optional, Tuple

from liftplan.numeric import round_half_up
from liftplan.periodization import get_goal_set_multiplier
from liftplan.schemas import Exercise, MovementPattern, SessionIntent
from liftplan.state import SelectedExercise, SelectionState
from liftplan.timeboxing import estimate_workout_minutes
from liftplan.volume import apply_effective_contribution

logger = logging.getLogger(__name__)

MIN_SETS = 2
DEFICIT_GAP = 1.0
LARGE_MUSCLES = {"Chest", "Lats", "Upper Back", "Quads", "Hamstrings", "Glutes"}
LARGE_MUSCLE_SESSION_CAP = 10
SMALL_MUSCLE_SESSION_CAP = 8

PUSH_PATTERNS = {MovementPattern.HORIZONTAL_PUSH, MovementPattern.VERTICAL_PUSH}
PULL_PATTERNS = {MovementPattern.HORIZONTAL_PULL, MovementPattern.VERTICAL_PULL}
LOWER_PATTERNS = {MovementPattern.SQUAT, MovementPattern.HINGE, MovementPattern.LUNGE}
FULL_BODY_CATEGORIES = ("push", "pull", "lower")
CATEGORY_PATTERNS = {"push": PUSH_PATTERNS, "pull": PULL_PATTERNS, "lower": LOWER_PATTERNS}


def resolve_full_body_category(exercise: Exercise) -> Optional[str]:
    """Lower wins over push, push over pull, when an exercise spans several."""
    patterns = set(exercise.movement_patterns)
    for category in ("lower", "push", "pull"):
        if patterns & CATEGORY_PATTERNS[category]:
            return category
    return None


def is_compound_in_category(exercise: Exercise, category: str) -> bool:
    if not exercise.is_compound:
        return False
    return bool(set(exercise.movement_patterns) & CATEGORY_PATTERNS[category])


def resolve_max_sets(state: SelectionState) -> int:
    """Per-exercise cap: training-age maximum scaled by the goal, never below two."""
    cfg = state.config
    base = cfg.max_sets_by_age[state.input.training_age]
    multiplier = get_goal_set_multiplier(state.input.goals.primary, cfg)
    return max(MIN_SETS, round_half_up(base * multiplier))


def _marginal_gain(
    state: SelectionState, planned: Dict[str, float], exercise: Exercise
) -> float:
    gain = 0.0
    for muscle in exercise.primary_muscles:
        if state.is_critical(muscle):
            gain += min(state.remaining_deficit(muscle, planned), 1.0)
    indirect = state.config.indirect_set_multiplier
    for muscle in exercise.secondary_muscles:
        if state.is_critical(muscle):
            gain += min(state.remaining_deficit(muscle, planned), indirect)
    return gain


def _deficits_remain(state: SelectionState, planned: Dict[str, float]) -> bool:
    for muscle in sorted(state.target_by_muscle):
        if not state.is_critical(muscle):
            continue
        if state.target_by_muscle[muscle] - planned.get(muscle, 0.0) >= DEFICIT_GAP:
            return True
    return False


def _exceeds_body_part_caps(
    state: SelectionState, exercise: Exercise, session_direct: Dict[str, int]
) -> bool:
    for muscle in exercise.primary_muscles:
        if muscle not in state.critical_muscles:
            continue
        cap = LARGE_MUSCLE_SESSION_CAP if muscle in LARGE_MUSCLES else SMALL_MUSCLE_SESSION_CAP
        if session_direct.get(muscle, 0) + 1 > cap:
            return True
    return False


def _add_sets(
    state: SelectionState,
    planned: Dict[str, float],
    session_direct: Dict[str, int],
    exercise: Exercise,
    sets: int,
) -> None:
    apply_effective_contribution(planned, exercise, sets, state.config)
    for muscle in exercise.primary_muscles:
        session_direct[muscle] = session_direct.get(muscle, 0) + sets


def allocate_intent_sets(state: SelectionState) -> Dict[str, int]:
    """
    Incremental one-set-at-a-time allocation.

    Each round ranks exercises below the per-exercise cap whose next set
    fits the time budget (and, for body-part sessions, the per-session
    direct-set caps) by marginal deficit closure, then order index, then
    name, and adds a set to the best one.

    Returns:
        exercise id -> set target
    """
    selected = list(state.selected)
    set_targets = {entry.exercise.id: MIN_SETS for entry in selected}
    planned = dict(state.base_planned_effective)
    session_direct: Dict[str, int] = {}
    for entry in selected:
        _add_sets(state, planned, session_direct, entry.exercise, MIN_SETS)

    max_sets = resolve_max_sets(state)
    budget = state.session_minutes
    running = sum(
        state.estimate_exercise_minutes(entry.exercise, MIN_SETS, entry.is_main_lift)
        for entry in selected
    )

    while _deficits_remain(state, planned):
        ranked = []
        for entry in selected:
            if set_targets[entry.exercise.id] >= max_sets:
                continue
            added = state.estimate_exercise_minutes(entry.exercise, 1, entry.is_main_lift)
            if budget > 0 and running + added > budget:
                continue
            if state.input.intent == SessionIntent.BODY_PART and _exceeds_body_part_caps(
                state, entry.exercise, session_direct
            ):
                continue
            gain = _marginal_gain(state, planned, entry.exercise)
            if gain > 0:
                ranked.append((gain, entry, added))

        if not ranked:
            break
        ranked.sort(key=lambda item: (-item[0], item[1].order_index, item[1].exercise.name))
        _, picked, added = ranked[0]
        set_targets[picked.exercise.id] += 1
        _add_sets(state, planned, session_direct, picked.exercise, 1)
        running += added

    if state.input.intent == SessionIntent.FULL_BODY:
        rebalance_full_body(state, set_targets)

    logger.debug("Allocated sets: %s", set_targets)
    return set_targets


def rebalance_full_body(state: SelectionState, set_targets: Dict[str, int]) -> None:
    """
    Move sets from the heaviest movement category to the lightest, in place.

    Stops once the heaviest category holds at most three times the
    lightest, when the lightest is empty, or when no donor/receiver pair
    exists.
    """
    categorized: List[Tuple[str, SelectedExercise]] = []
    for entry in state.selected:
        category = resolve_full_body_category(entry.exercise)
        if category is not None:
            categorized.append((category, entry))
    if not categorized:
        return

    totals = {category: 0 for category in FULL_BODY_CATEGORIES}
    for category, entry in categorized:
        totals[category] += set_targets.get(entry.exercise.id, MIN_SETS)

    max_sets = resolve_max_sets(state)
    for _ in range(state.config.rebalance_guard):
        ordered = sorted(FULL_BODY_CATEGORIES, key=lambda c: -totals[c])
        over, under = ordered[0], ordered[-1]
        if totals[under] <= 0 or totals[over] <= totals[under] * 3:
            break

        donors = [
            entry
            for category, entry in categorized
            if category == over and set_targets.get(entry.exercise.id, MIN_SETS) > MIN_SETS
        ]
        receivers = [
            entry
            for category, entry in categorized
            if category == under and set_targets.get(entry.exercise.id, MIN_SETS) < max_sets
        ]
        if not donors or not receivers:
            break
        donor = _pick_by_sets(donors, set_targets, most=True)
        receiver = _pick_by_sets(receivers, set_targets, most=False)

        set_targets[donor.exercise.id] = set_targets.get(donor.exercise.id, MIN_SETS) - 1
        set_targets[receiver.exercise.id] = set_targets.get(receiver.exercise.id, MIN_SETS) + 1
        totals[over] -= 1
        totals[under] += 1


def _pick_by_sets(
    entries: List[SelectedExercise], set_targets: Dict[str, int], most: bool
) -> SelectedExercise:
    sign = -1 if most else 1
    return sorted(
        entries,
        key=lambda e: (sign * set_targets.get(e.exercise.id, MIN_SETS), e.order_index),
    )[0]


# ============================================================================
# Time-budget reduction
# ============================================================================


def estimate_selected_minutes(state: SelectionState, set_targets: Dict[str, int]) -> int:
    return estimate_workout_minutes(state.to_workout_exercises(set_targets), state.config)


def reduce_set_targets_to_fit(state: SelectionState, set_targets: Dict[str, int]) -> None:
    """
    Trim sets until the selection fits the session budget, in place.

    Largest set counts go first, main lifts before accessories at equal
    counts, then earlier exercises; nothing drops below two sets.
    """
    if state.session_minutes <= 0:
        return
    for _ in range(state.config.time_reduction_guard):
        if estimate_selected_minutes(state, set_targets) <= state.session_minutes:
            return
        reducible = [
            entry
            for entry in state.selected
            if set_targets.get(entry.exercise.id, MIN_SETS) > MIN_SETS
        ]
        if not reducible:
            return
        target = sorted(
            reducible,
            key=lambda e: (
                -set_targets.get(e.exercise.id, MIN_SETS),
                0 if e.is_main_lift else 1,
                e.order_index,
            ),
        )[0]
        set_targets[target.exercise.id] = set_targets.get(target.exercise.id, MIN_SETS) - 1
