"""
Candidate scoring module.

Scores hard-filter survivors with a weighted sum of soft components:

Score = Σ(weight_i × bonus_i) - Σ(weight_j × penalty_j)

Bonuses: muscle_deficit, targetedness, sfr, lengthened, preference,
movement_diversity, continuity, time_fit.
Penalties: recency_penalty, redundancy_penalty, fatigue_cost_penalty.

During the accessory phase the deficit, fatigue, SFR and redundancy
weights slide linearly with slot progress so early picks favor volume
closure and later picks favor sustainability.
"""

import hashlib
from typing import Dict, List, Optional, Set

from liftplan.config import EngineConfig
from liftplan.filters import passes_hard_filters
from liftplan.library import normalize_name
from liftplan.numeric import clamp
from liftplan.plan_schemas import ExerciseRole, SelectionPhase
from liftplan.schemas import Exercise, JointStress, SessionIntent
from liftplan.state import (
    CORE_PATTERNS,
    ScoredCandidate,
    SelectionState,
    primary_pattern_keys,
)

PENALTY_COMPONENTS = ("recency_penalty", "redundancy_penalty", "fatigue_cost_penalty")
COMPONENT_ORDER = (
    "muscle_deficit",
    "targetedness",
    "sfr",
    "lengthened",
    "preference",
    "movement_diversity",
    "continuity",
    "time_fit",
    "recency_penalty",
    "redundancy_penalty",
    "fatigue_cost_penalty",
)

TARGETEDNESS_BONUS = 0.3
TIME_FIT_CUSHION_MINUTES = 5
JOINT_STRESS_SAFETY = {JointStress.LOW: 3, JointStress.MEDIUM: 2, JointStress.HIGH: 1}


def _interpolate(start: float, end: float, progress: float) -> float:
    return start + (end - start) * clamp(progress, 0.0, 1.0)


def resolve_scoring_weights(
    phase: SelectionPhase, slot_progress: float, config: EngineConfig
) -> Dict[str, float]:
    """Component weights for a phase at a given slot-fill progress (0-1)."""
    weights = config.scoring_weights.model_dump()
    if phase != SelectionPhase.ACCESSORY:
        return weights
    ramp = config.accessory_weight_ramp.model_dump()
    for name, end in ramp.items():
        weights[name] = _interpolate(weights[name], end, slot_progress)
    return weights


class CandidateScorer:
    """
    Computes soft-score components for one candidate against the current state.

    Every component is bounded (roughly [-1, 1]) so the weight table alone
    sets relative importance.
    """

    def __init__(self, state: SelectionState):
        self.state = state
        self.highest_deficit_muscle = self._resolve_highest_deficit_muscle()

    def components(self, exercise: Exercise, phase: SelectionPhase) -> Dict[str, float]:
        role = ExerciseRole.MAIN if phase == SelectionPhase.MAIN else ExerciseRole.ACCESSORY
        sets = self.state.provisional_sets(role)
        return {
            "muscle_deficit": self._muscle_deficit(exercise, sets),
            "targetedness": self._targetedness(exercise),
            "sfr": _centered(exercise.sfr_score),
            "lengthened": _centered(exercise.length_position_score),
            "preference": self._preference(exercise),
            "movement_diversity": self._movement_diversity(exercise),
            "continuity": self._continuity(exercise),
            "time_fit": self._time_fit(exercise, sets, role == ExerciseRole.MAIN),
            "recency_penalty": self._recency_penalty(exercise),
            "redundancy_penalty": self._redundancy_penalty(exercise),
            "fatigue_cost_penalty": self._fatigue_cost_penalty(exercise),
        }

    def _resolve_highest_deficit_muscle(self) -> Optional[str]:
        best_muscle = None
        best_remaining = 0.0
        for muscle in sorted(self.state.target_by_muscle):
            if not self.state.is_critical(muscle):
                continue
            remaining = self.state.remaining_deficit(muscle)
            if remaining > best_remaining:
                best_remaining = remaining
                best_muscle = muscle
        return best_muscle

    def _muscle_deficit(self, exercise: Exercise, provisional_sets: int) -> float:
        """
        How much of the remaining weekly need this exercise would close.

        Per critical muscle: remaining fraction of target x provisional dose,
        secondary muscles at the indirect multiplier. Summed, divided by 4 and
        clamped to [-1, 1].
        """
        state = self.state
        indirect = state.config.indirect_set_multiplier
        total = 0.0
        contributions = [(m, 1.0) for m in exercise.primary_muscles]
        contributions += [(m, indirect) for m in exercise.secondary_muscles]
        for muscle, multiplier in contributions:
            if not state.is_critical(muscle):
                continue
            target = state.target_by_muscle.get(muscle, 0.0)
            remaining = state.remaining_deficit(muscle)
            if remaining <= 0:
                continue
            need = clamp(remaining / max(1.0, target), 0.0, 1.0)
            total += need * multiplier * provisional_sets
        return clamp(total / 4.0, -1.0, 1.0)

    def _targetedness(self, exercise: Exercise) -> float:
        if self.highest_deficit_muscle and self.highest_deficit_muscle in exercise.primary_muscles:
            return TARGETEDNESS_BONUS
        return 0.0

    def _preference(self, exercise: Exercise) -> float:
        state = self.state
        if exercise.id in state.favorites_by_id:
            return 1.0
        return 1.0 if normalize_name(exercise.name) in state.favorites_by_name else 0.0

    def _movement_diversity(self, exercise: Exercise) -> float:
        new_patterns = [
            p for p in exercise.movement_patterns if p not in self.state.selected_patterns
        ]
        if any(p in CORE_PATTERNS for p in new_patterns):
            return 1.0
        if new_patterns:
            return 0.5
        adds_coverage = any(
            m not in self.state.covered_primary_muscles for m in exercise.primary_muscles
        )
        return 0.0 if adds_coverage else -0.5

    def _continuity(self, exercise: Exercise) -> float:
        if self.state.is_first_week:
            return 0.0
        count = self.state.continuity_counts.get(exercise.id, 0)
        if count >= 2:
            return 1.0
        if count >= 1:
            return 0.4
        return 0.0

    def _time_fit(self, exercise: Exercise, provisional_sets: int, is_main_lift: bool) -> float:
        budget = self.state.session_minutes
        if budget <= 0:
            return 0.0
        projected = self.state.running_minutes + self.state.estimate_exercise_minutes(
            exercise, provisional_sets, is_main_lift
        )
        if projected <= budget - TIME_FIT_CUSHION_MINUTES:
            return 1.0
        if projected <= budget:
            return 0.0
        return -1.0

    def _recency_penalty(self, exercise: Exercise) -> float:
        hours = self.state.recency_hours.get(exercise.id)
        if hours is None:
            return 0.0
        if hours <= 48:
            return 1.0
        if hours <= 96:
            return 0.7
        if hours <= 168:
            return 0.4
        return 0.0

    def _redundancy_penalty(self, exercise: Exercise) -> float:
        overlap = max(
            (self.state.primary_pattern_overlap.get(key, 0) for key in primary_pattern_keys(exercise)),
            default=0,
        )
        if overlap >= 2:
            return 1.0
        if overlap == 1:
            return 0.5
        return 0.0

    def _fatigue_cost_penalty(self, exercise: Exercise) -> float:
        """Fatigue cost scaled to [0, 1], weighted harder when readiness is low."""
        base = clamp((exercise.fatigue_cost - 1) / 4.0, 0.0, 1.0)
        readiness = self.state.input.fatigue_state.readiness_score
        if readiness <= 2:
            factor = 1.0
        elif readiness == 3:
            factor = 0.5
        else:
            factor = 0.2
        return base * factor


def _centered(value: float, center: float = 3.0, spread: float = 2.0) -> float:
    return clamp((value - center) / spread, -1.0, 1.0)


def combine_components(components: Dict[str, float], weights: Dict[str, float]) -> float:
    score = 0.0
    for name in COMPONENT_ORDER:
        contribution = weights[name] * components[name]
        score += -contribution if name in PENALTY_COMPONENTS else contribution
    return score


def score_candidates(
    state: SelectionState,
    phase: SelectionPhase,
    filled_slot_index: int,
    total_slots: int,
) -> List[ScoredCandidate]:
    """
    Score every library exercise that passes the hard filters.

    Args:
        state: Current selection state
        phase: Slot type being filled
        filled_slot_index: Slots of this phase already filled
        total_slots: Total slots of this phase

    Returns:
        ScoredCandidate list in library order (unsorted)
    """
    progress = clamp(filled_slot_index / total_slots, 0.0, 1.0) if total_slots > 0 else 0.0
    weights = resolve_scoring_weights(phase, progress, state.config)
    scorer = CandidateScorer(state)

    scored = []
    for exercise in state.library:
        if not passes_hard_filters(state, exercise, phase):
            continue
        components = scorer.components(exercise, phase)
        scored.append(
            ScoredCandidate(
                exercise=exercise,
                score=combine_components(components, weights),
                components=components,
            )
        )
    return scored


def _seeded_tie_key(seed: int, exercise_id: str) -> str:
    return hashlib.sha256(f"{seed}:{exercise_id}".encode("utf-8")).hexdigest()


def order_candidates(
    candidates: List[ScoredCandidate], random_seed: Optional[int] = None
) -> List[ScoredCandidate]:
    """
    Score desc, fatigue cost asc, then name asc.

    With a seed, candidates tied on score and fatigue are ordered by a
    seed-keyed hash of their id instead of name.
    """
    def sort_key(candidate: ScoredCandidate):
        exercise = candidate.exercise
        if random_seed is None:
            tie = exercise.name
        else:
            tie = _seeded_tie_key(random_seed, exercise.id)
        return (-candidate.score, exercise.fatigue_cost, tie, exercise.id)

    return sorted(candidates, key=sort_key)


def pick_best(
    candidates: List[ScoredCandidate], random_seed: Optional[int] = None
) -> Optional[ScoredCandidate]:
    ordered = order_candidates(candidates, random_seed)
    return ordered[0] if ordered else None


# ============================================================================
# Starter sessions
# ============================================================================


def starter_target_muscles(state: SelectionState) -> Set[str]:
    """Muscles a starter session aims at: the intent's critical muscles."""
    cfg = state.config
    intent = state.input.intent
    if intent == SessionIntent.BODY_PART:
        return {cfg.canonical_muscle(m) for m in state.input.target_muscles}
    if intent == SessionIntent.FULL_BODY:
        return {m for m, landmark in cfg.landmarks.items() if landmark.mev > 0}
    return set(cfg.critical_muscles.get(intent, []))


def score_starter_candidates(
    state: SelectionState, phase: SelectionPhase
) -> List[ScoredCandidate]:
    """
    Conservative scoring for sessions without enough history.

    Score = target hits x 3 + joint safety x 2 - fatigue cost x 0.5
    """
    targets = starter_target_muscles(state)
    scored = []
    for exercise in state.library:
        if not passes_hard_filters(state, exercise, phase):
            continue
        hits = len([m for m in exercise.primary_muscles if m in targets])
        safety = JOINT_STRESS_SAFETY.get(exercise.joint_stress, 1)
        fatigue = exercise.fatigue_cost
        scored.append(
            ScoredCandidate(
                exercise=exercise,
                score=hits * 3 + safety * 2 - fatigue * 0.5,
                components={
                    "starter_target_hits": float(hits),
                    "starter_safety": float(safety),
                    "starter_fatigue_penalty": float(fatigue),
                },
            )
        )
    return scored
