"""
Exercise substitution.

Suggests up to three replacements for an exercise the lifter cannot or
does not want to perform, ranked by how closely they reproduce its
movement, muscles and stimulus without costing more fatigue.
"""

from typing import Dict, Iterable, List, Optional

from liftplan.config import EngineConfig, resolve_config
from liftplan.filters import has_pain_conflict
from liftplan.plan_schemas import SubstituteSuggestion
from liftplan.schemas import EquipmentType, Exercise, SplitTag

MAX_SUGGESTIONS = 3
BLOCKED_SUBSTITUTE_TAGS = {SplitTag.MOBILITY, SplitTag.PREHAB, SplitTag.CONDITIONING}


def shares_equipment(candidate: Exercise, available: Iterable[EquipmentType]) -> bool:
    """A substitute needs at least one listed item on hand; bodyweight must be listed too."""
    return bool(set(candidate.equipment) & set(available))


def score_substitute(target: Exercise, candidate: Exercise) -> float:
    """pattern overlap x 4 + muscle overlap x 3 + stimulus overlap x 2 + fatigue saved"""
    patterns = len(set(candidate.movement_patterns) & set(target.movement_patterns))
    muscles = len(set(candidate.primary_muscles) & set(target.primary_muscles))
    stimulus = len(set(candidate.stimulus_bias) & set(target.stimulus_bias))
    fatigue_delta = max(0, target.fatigue_cost - candidate.fatigue_cost)
    return float(patterns * 4 + muscles * 3 + stimulus * 2 + fatigue_delta)


def suggest_substitutes(
    target: Exercise,
    library: List[Exercise],
    available_equipment: Iterable[EquipmentType],
    pain_flags: Optional[Dict[str, int]] = None,
    config: Optional[EngineConfig] = None,
) -> List[SubstituteSuggestion]:
    """
    Top replacements for ``target``.

    Candidates must differ from the target, be free of pain conflicts,
    use at least one piece of the available equipment and share a split tag
    with the target. Mobility, prehab and conditioning drills are never
    offered.

    Returns:
        At most three suggestions, best first (ties by name). Each carries
        its score next to the exercise.
    """
    cfg = resolve_config(config)
    available = list(available_equipment)
    target_tags = set(target.split_tags)

    suggestions = []
    for candidate in library:
        if candidate.id == target.id:
            continue
        if has_pain_conflict(candidate, pain_flags, cfg.pain_flag_threshold):
            continue
        if not shares_equipment(candidate, available):
            continue
        tags = set(candidate.split_tags)
        if not tags & target_tags or tags & BLOCKED_SUBSTITUTE_TAGS:
            continue
        suggestions.append(
            SubstituteSuggestion(exercise=candidate, score=score_substitute(target, candidate))
        )

    suggestions.sort(key=lambda s: (-s.score, s.exercise.name))
    return suggestions[:MAX_SUGGESTIONS]
