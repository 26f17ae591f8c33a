"""
Slot-filling selector.

Runs an ordered sequence of phases over a ``SelectionState``:
- Seed pinned (or template) exercises
- Seed continuity anchors
- Fill main-lift slots
- Guarantee a compound per push/pull/lower category (full body)
- Fill accessory slots, or fall back to starter picks on cold start
- Post-fill safety: volume caps, then time trimming
- Incremental set allocation and the minimum-exercise floor (intent mode)

Each phase is a plain function taking and returning the state.
"""

import logging
from typing import Callable, List, Optional, Set, Tuple

from liftplan.allocation import (
    FULL_BODY_CATEGORIES,
    MIN_SETS,
    allocate_intent_sets,
    estimate_selected_minutes,
    is_compound_in_category,
    reduce_set_targets_to_fit,
)
from liftplan.config import EngineConfig, SlotRange, resolve_config
from liftplan.filters import can_fill_main_slot, passes_hard_filters
from liftplan.library import normalize_library
from liftplan.numeric import clamp, round_half_up
from liftplan.plan_schemas import (
    CandidateRanking,
    ExerciseRole,
    SelectionInput,
    SelectionOutput,
    SelectionPhase,
    SelectionStep,
)
from liftplan.schemas import Exercise, SelectionMode, SessionIntent
from liftplan.scoring import (
    order_candidates,
    pick_best,
    score_candidates,
    score_starter_candidates,
)
from liftplan.state import ScoredCandidate, SelectionState, SlotTarget
from liftplan.timeboxing import fit_to_time_budget
from liftplan.volume import build_volume_plan_by_muscle, enforce_volume_caps

logger = logging.getLogger(__name__)

MIN_SESSION_MINUTES = 35
MAX_SESSION_MINUTES = 80
PIN_SLOT_RESERVE = 2
ANCHOR_MIN_COUNT = 2
MAX_MAIN_TEMPLATE_SLOTS = 2
STARTER_FLOOR = 3


# ============================================================================
# Slot sizing
# ============================================================================


def resolve_ranged_count(bounds: Tuple[int, int], session_minutes: int) -> int:
    """Interpolate a slot range on session length (35 to 80 minutes)."""
    low, high = bounds
    if low == high:
        return low
    minutes = clamp(session_minutes, MIN_SESSION_MINUTES, MAX_SESSION_MINUTES)
    ratio = (minutes - MIN_SESSION_MINUTES) / (MAX_SESSION_MINUTES - MIN_SESSION_MINUTES)
    return int(clamp(round_half_up(low + (high - low) * ratio), low, high))


def resolve_slot_target(
    selection_input: SelectionInput,
    library: List[Exercise],
    config: Optional[EngineConfig] = None,
) -> SlotTarget:
    """
    How many main and accessory slots the session gets.

    Template mode sizes the session from the template itself: main slots
    are the template's main-eligible exercises, capped at two. Intent mode
    reads the intent's slot ranges and scales them with session length.
    """
    cfg = resolve_config(config)
    template_ids = selection_input.template_exercise_ids
    if selection_input.mode == SelectionMode.TEMPLATE and template_ids:
        count = max(1, len(template_ids))
        by_id = {exercise.id: exercise for exercise in library}
        goal = selection_input.goals.primary
        eligible = len(
            [
                exercise_id
                for exercise_id in template_ids
                if exercise_id in by_id and can_fill_main_slot(by_id[exercise_id], goal, cfg)
            ]
        )
        main = int(clamp(eligible, 0, min(MAX_MAIN_TEMPLATE_SLOTS, count)))
        return SlotTarget(slot_count=count, main_slots=main, accessory_slots=count - main)

    ranges: SlotRange = cfg.slot_ranges[selection_input.intent]
    minutes = selection_input.session_minutes
    main = resolve_ranged_count(ranges.main, minutes)
    accessory = resolve_ranged_count(ranges.accessory, minutes)
    return SlotTarget(slot_count=main + accessory, main_slots=main, accessory_slots=accessory)


def resolve_critical_muscles(
    selection_input: SelectionInput,
    library: List[Exercise],
    config: Optional[EngineConfig] = None,
) -> Set[str]:
    """Muscles the session is responsible for."""
    cfg = resolve_config(config)
    intent = selection_input.intent
    if intent == SessionIntent.FULL_BODY:
        muscles = {m for m, landmark in cfg.landmarks.items() if landmark.mev > 0}
    elif intent == SessionIntent.BODY_PART:
        muscles = {cfg.canonical_muscle(m) for m in selection_input.target_muscles}
    else:
        muscles = set(cfg.critical_muscles.get(intent, []))

    if not muscles and selection_input.mode == SelectionMode.TEMPLATE:
        by_id = {exercise.id: exercise for exercise in library}
        for exercise_id in selection_input.template_exercise_ids:
            if exercise_id in by_id:
                muscles.update(by_id[exercise_id].primary_muscles)
    return muscles


def build_selection_state(
    selection_input: SelectionInput, config: Optional[EngineConfig] = None
) -> SelectionState:
    """
    Normalize the library and build a fresh working state.

    Raises:
        LibraryIntegrityError: If the library is corrupt
    """
    cfg = resolve_config(config)
    library = normalize_library(selection_input.exercise_library, cfg)
    slot_target = resolve_slot_target(selection_input, library, cfg)
    critical = resolve_critical_muscles(selection_input, library, cfg)
    logger.debug(
        "Slot target for %s: %d main, %d accessory",
        selection_input.intent.value,
        slot_target.main_slots,
        slot_target.accessory_slots,
    )
    return SelectionState(selection_input, library, slot_target, critical, cfg)


# ============================================================================
# Phase helpers
# ============================================================================


def _slots_remaining(state: SelectionState) -> bool:
    return state.main_slots_remaining > 0 or state.accessory_slots_remaining > 0


def resolve_preferred_role(state: SelectionState, exercise: Exercise) -> Optional[ExerciseRole]:
    """
    Role for a seeded exercise.

    Main when a main slot is open and the exercise can fill it; otherwise
    accessory when an accessory slot is open; otherwise any open main slot.
    """
    goal = state.input.goals.primary
    if state.main_slots_remaining > 0 and can_fill_main_slot(exercise, goal, state.config):
        return ExerciseRole.MAIN
    if state.accessory_slots_remaining > 0:
        return ExerciseRole.ACCESSORY
    if state.main_slots_remaining > 0:
        return ExerciseRole.MAIN
    return None


def _phase_for(role: ExerciseRole) -> SelectionPhase:
    return SelectionPhase.MAIN if role == ExerciseRole.MAIN else SelectionPhase.ACCESSORY


def _seed(state: SelectionState, exercise_ids: List[str], step: SelectionStep, cap: int) -> int:
    """Place listed exercises in order; returns how many were placed."""
    placed = 0
    seen: Set[str] = set()
    for exercise_id in exercise_ids:
        if placed >= cap or not _slots_remaining(state):
            break
        if exercise_id in seen:
            continue
        seen.add(exercise_id)
        exercise = state.library_index.get(exercise_id)
        if exercise is None:
            logger.debug("Ignoring unknown exercise id %s", exercise_id)
            continue
        role = resolve_preferred_role(state, exercise)
        if role is None:
            break
        if not passes_hard_filters(state, exercise, _phase_for(role)):
            continue
        state.add(ScoredCandidate(exercise=exercise, score=0.0), role, step)
        placed += 1
    return placed


def _fill(
    state: SelectionState,
    phase: SelectionPhase,
    step: SelectionStep,
    starter: bool = False,
) -> int:
    """Fill every open slot of a phase with the best-scoring candidate."""
    role = ExerciseRole.MAIN if phase == SelectionPhase.MAIN else ExerciseRole.ACCESSORY
    placed = 0
    while True:
        remaining = (
            state.main_slots_remaining
            if phase == SelectionPhase.MAIN
            else state.accessory_slots_remaining
        )
        if remaining <= 0:
            break
        if starter:
            candidates = score_starter_candidates(state, phase)
        else:
            filled, total = state.slot_progress(phase)
            candidates = score_candidates(state, phase, filled, total)
        pick = pick_best(candidates, state.input.random_seed)
        if pick is None:
            logger.warning(
                "No eligible %s candidates left; %d slot(s) unfilled", phase.value, remaining
            )
            break
        state.add(pick, role, step)
        placed += 1
    return placed


# ============================================================================
# Phases
# ============================================================================


def seed_pins(state: SelectionState) -> SelectionState:
    """
    Place pinned exercises first.

    Intent mode leaves room for at least two selector picks; template mode
    seeds the whole template.
    """
    selection_input = state.input
    if selection_input.mode == SelectionMode.TEMPLATE:
        placed = _seed(
            state,
            selection_input.template_exercise_ids,
            SelectionStep.PIN,
            state.slot_target.slot_count,
        )
        logger.debug("Seeded %d template exercises", placed)
        return state

    cap = max(1, state.slot_target.slot_count - PIN_SLOT_RESERVE)
    placed = _seed(state, selection_input.pinned_exercise_ids, SelectionStep.PIN, cap)
    logger.debug("Seeded %d pinned exercises (cap %d)", placed, cap)
    return state


def seed_anchors(state: SelectionState) -> SelectionState:
    """Keep exercises performed in two or more recent matching sessions."""
    if state.is_first_week:
        return state

    anchors = [
        state.library_index[exercise_id]
        for exercise_id, count in state.continuity_counts.items()
        if count >= ANCHOR_MIN_COUNT
        and exercise_id in state.library_index
        and exercise_id not in state.stalled_ids
    ]
    anchors.sort(
        key=lambda e: (-state.continuity_counts[e.id], e.fatigue_cost, e.name)
    )
    placed = 0
    for exercise in anchors:
        if not _slots_remaining(state):
            break
        if exercise.id in state.selected_ids:
            continue
        role = resolve_preferred_role(state, exercise)
        if role is None:
            break
        if not passes_hard_filters(state, exercise, _phase_for(role)):
            continue
        state.add(ScoredCandidate(exercise=exercise, score=0.0), role, SelectionStep.ANCHOR)
        placed += 1
    logger.debug("Seeded %d continuity anchors", placed)
    return state


def fill_main_slots(state: SelectionState) -> SelectionState:
    if state.cold_start_stage < 2:
        return state
    placed = _fill(state, SelectionPhase.MAIN, SelectionStep.MAIN_PICK)
    logger.debug("Main fill placed %d exercises", placed)
    return state


def enforce_full_body_compound_floor(state: SelectionState) -> SelectionState:
    """Full-body sessions carry at least one push, pull and lower compound."""
    selection_input = state.input
    if (
        selection_input.mode != SelectionMode.INTENT
        or selection_input.intent != SessionIntent.FULL_BODY
        or state.cold_start_stage < 1
    ):
        return state

    seed = selection_input.random_seed
    for category in FULL_BODY_CATEGORIES:
        if any(is_compound_in_category(entry.exercise, category) for entry in state.selected):
            continue
        if not _slots_remaining(state):
            break

        pick: Optional[ScoredCandidate] = None
        role = ExerciseRole.MAIN
        if state.main_slots_remaining > 0:
            filled, total = state.slot_progress(SelectionPhase.MAIN)
            candidates = [
                c
                for c in score_candidates(state, SelectionPhase.MAIN, filled, max(1, total))
                if is_compound_in_category(c.exercise, category)
            ]
            pick = pick_best(candidates, seed)
        if pick is None and state.accessory_slots_remaining > 0:
            role = ExerciseRole.ACCESSORY
            filled, total = state.slot_progress(SelectionPhase.ACCESSORY)
            candidates = [
                c
                for c in score_candidates(state, SelectionPhase.ACCESSORY, filled, max(1, total))
                if is_compound_in_category(c.exercise, category)
            ]
            pick = pick_best(candidates, seed)
        if pick is None:
            logger.debug("No eligible %s compound for the full-body floor", category)
            continue
        step = SelectionStep.MAIN_PICK if role == ExerciseRole.MAIN else SelectionStep.ACCESSORY_PICK
        state.add(pick, role, step)
    return state


def fill_accessory_slots(state: SelectionState) -> SelectionState:
    if state.cold_start_stage >= 1:
        placed = _fill(state, SelectionPhase.ACCESSORY, SelectionStep.ACCESSORY_PICK)
        logger.debug("Accessory fill placed %d exercises", placed)
        return state
    return apply_starter_fallback(state, force=True)


def apply_starter_fallback(state: SelectionState, force: bool = False) -> SelectionState:
    """
    Conservative picks when history is too thin for the full scorer.

    Forced on cold-start stage 0; otherwise runs only when an intent
    session ended with fewer than three exercises.
    """
    selection_input = state.input
    if not force:
        floor = min(STARTER_FLOOR, state.slot_target.slot_count)
        if selection_input.mode != SelectionMode.INTENT or len(state.selected) >= floor:
            return state

    placed = _fill(state, SelectionPhase.MAIN, SelectionStep.MAIN_PICK, starter=True)
    placed += _fill(state, SelectionPhase.ACCESSORY, SelectionStep.ACCESSORY_PICK, starter=True)
    logger.debug("Starter fallback placed %d exercises", placed)
    return state


def apply_post_fill_safety(state: SelectionState) -> SelectionState:
    """Drop accessories over weekly MRV, then accessories over the time budget."""
    if not state.selected:
        return state
    workout = state.to_workout_exercises(state.set_targets)
    main_lifts = [entry for entry in workout if entry.is_main_lift]
    accessories = [entry for entry in workout if not entry.is_main_lift]

    kept = enforce_volume_caps(accessories, main_lifts, state.volume_context, state.config)
    if state.session_minutes > 0:
        kept, _ = fit_to_time_budget(
            main_lifts, kept, state.session_minutes, config=state.config
        )

    kept_ids = {entry.exercise.id for entry in kept}
    dropped = [entry.exercise.id for entry in accessories if entry.exercise.id not in kept_ids]
    if dropped:
        logger.debug("Post-fill safety dropped: %s", ", ".join(dropped))
    state.keep_only(kept_ids, state.set_targets)
    for exercise_id in dropped:
        state.rationale.pop(exercise_id, None)
    return state


def allocate_sets(state: SelectionState) -> SelectionState:
    if state.input.mode != SelectionMode.INTENT or not state.selected:
        return state
    state.set_targets = allocate_intent_sets(state)
    state.recompute(state.set_targets)
    return state


def enforce_minimum_exercise_floor(state: SelectionState) -> SelectionState:
    """
    Top an intent session up to the minimum exercise count.

    Each added accessory starts at two sets; set targets are then trimmed
    to the budget, and if the session still does not fit the addition is
    rolled back and the floor gives up.
    """
    minimum = state.config.min_intent_exercises
    seed = state.input.random_seed
    while len(state.selected) < minimum:
        filled, total = state.slot_progress(SelectionPhase.ACCESSORY)
        pick = pick_best(score_candidates(state, SelectionPhase.ACCESSORY, filled, total), seed)
        if pick is None:
            logger.warning(
                "Session holds %d exercises; no eligible candidate reaches the minimum of %d",
                len(state.selected),
                minimum,
            )
            break

        exercise_id = pick.exercise.id
        state.add(pick, ExerciseRole.ACCESSORY, SelectionStep.ACCESSORY_PICK)
        state.set_targets[exercise_id] = max(MIN_SETS, state.set_targets.get(exercise_id, MIN_SETS))
        state.recompute(state.set_targets)

        if state.session_minutes <= 0:
            continue
        reduce_set_targets_to_fit(state, state.set_targets)
        if estimate_selected_minutes(state, state.set_targets) > state.session_minutes:
            logger.debug("Rolling back %s: session cannot fit the budget", exercise_id)
            state.remove(exercise_id, state.set_targets)
            state.rationale.pop(exercise_id, None)
            break
        state.recompute(state.set_targets)
    return state


def apply_final_intent_safety(state: SelectionState) -> SelectionState:
    if state.input.mode != SelectionMode.INTENT:
        return state
    state = apply_post_fill_safety(state)
    return enforce_minimum_exercise_floor(state)


def finalize_set_targets(state: SelectionState) -> SelectionState:
    """Intent sessions report a target of at least two sets per exercise."""
    if state.input.mode != SelectionMode.INTENT:
        state.set_targets = {}
        return state
    state.set_targets = {
        entry.exercise.id: max(MIN_SETS, state.set_targets.get(entry.exercise.id, MIN_SETS))
        for entry in state.selected
    }
    return state


SelectionPhaseFn = Callable[[SelectionState], SelectionState]

SELECTION_PHASES: Tuple[SelectionPhaseFn, ...] = (
    seed_pins,
    seed_anchors,
    fill_main_slots,
    enforce_full_body_compound_floor,
    fill_accessory_slots,
    apply_starter_fallback,
    apply_post_fill_safety,
    allocate_sets,
    apply_final_intent_safety,
    finalize_set_targets,
)


# ============================================================================
# Public API
# ============================================================================


def build_selection_output(state: SelectionState) -> SelectionOutput:
    """Assemble the selector result from a finished state."""
    workout = state.to_workout_exercises(state.set_targets)
    main_lifts = [entry for entry in workout if entry.is_main_lift]
    accessories = [entry for entry in workout if not entry.is_main_lift]
    selected_ids = [entry.exercise.id for entry in state.selected]
    return SelectionOutput(
        selected_exercise_ids=selected_ids,
        main_lift_ids=state.main_lift_ids(),
        accessory_ids=state.accessory_ids(),
        per_exercise_set_targets=dict(state.set_targets),
        volume_plan_by_muscle=build_volume_plan_by_muscle(
            main_lifts, accessories, state.volume_context, state.is_deload, state.config
        ),
        rationale={
            exercise_id: state.rationale[exercise_id]
            for exercise_id in selected_ids
            if exercise_id in state.rationale
        },
    )


def select_exercises(
    selection_input: SelectionInput, config: Optional[EngineConfig] = None
) -> SelectionOutput:
    """
    Choose the exercises for one session.

    Args:
        selection_input: Session request with history and library
        config: Engine configuration (defaults to the shared default)

    Returns:
        SelectionOutput with ids, set targets, volume plan and rationale

    Raises:
        LibraryIntegrityError: If the exercise library is corrupt
    """
    state = build_selection_state(selection_input, config)
    for phase in SELECTION_PHASES:
        state = phase(state)
        logger.debug("%s -> %d selected", phase.__name__, len(state.selected))

    if len(state.selected) < state.slot_target.slot_count:
        logger.warning(
            "Selected %d of %d slots for %s session",
            len(state.selected),
            state.slot_target.slot_count,
            selection_input.intent.value,
        )
    return build_selection_output(state)


def rank_candidates(
    selection_input: SelectionInput,
    phase: SelectionPhase = SelectionPhase.ACCESSORY,
    seed_exercise_ids: Optional[List[str]] = None,
    config: Optional[EngineConfig] = None,
) -> List[CandidateRanking]:
    """
    Score every eligible candidate for a phase, best first.

    ``seed_exercise_ids`` are placed first (as accessories) so the ranking
    reflects a partially built session.
    """
    state = build_selection_state(selection_input, config)
    for exercise_id in seed_exercise_ids or []:
        exercise = state.library_index.get(exercise_id)
        if exercise is None or exercise_id in state.selected_ids:
            continue
        state.add(
            ScoredCandidate(exercise=exercise, score=0.0),
            ExerciseRole.ACCESSORY,
            SelectionStep.PIN,
        )

    filled, total = state.slot_progress(phase)
    ordered = order_candidates(
        score_candidates(state, phase, filled, total), selection_input.random_seed
    )
    return [
        CandidateRanking(
            exercise_id=c.exercise.id,
            name=c.exercise.name,
            score=round(c.score, 3),
            fatigue_cost=c.exercise.fatigue_cost,
            components={k: round(v, 3) for k, v in c.components.items()},
        )
        for c in ordered
    ]

