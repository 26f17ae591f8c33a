"""
Workout generator.

Builds one training session from a lifter's profile, goals, constraints,
history and the exercise library:
- Fatigue state from the latest check-in or history
- Session intent from the split rotation (or a forced split)
- Periodization for the week, with an early deload when fatigue accumulates
- Exercise selection, set/rep/RPE prescription and target loads
- Stall interventions and check-in autoregulation on the loaded session
- Prep work, final time-boxing and SRA recovery warnings

Every step records a PlanDecision so the plan can be explained.
"""

import json
import logging
import uuid
from datetime import datetime
from typing import Dict, List, Optional, Tuple

from pydantic import BaseModel, Field

from liftplan.autoregulation import (
    apply_stall_ladder,
    autoregulate_session,
    compute_fatigue_score,
    compute_performance_signals,
    detect_stalls,
    fatigue_level_label,
    suggest_intervention,
)
from liftplan.config import EngineConfig, resolve_config
from liftplan.filters import has_pain_conflict, passes_equipment
from liftplan.history import (
    VolumeContext,
    build_volume_context,
    completed_history,
    most_recent_entry,
)
from liftplan.library import normalize_library, normalize_name
from liftplan.loads import LoadResolver, apply_loads
from liftplan.periodization import get_base_target_rpe, get_periodization_modifiers
from liftplan.plan_schemas import (
    AutoregulationAction,
    AutoregulationModification,
    ExerciseRole,
    FatigueScore,
    InterventionSuggestion,
    PeriodizationModifiers,
    PlanDecision,
    SelectionInput,
    SelectionOutput,
    WorkoutExercise,
    WorkoutPlan,
    WorkoutSet,
)
from liftplan.prescription import (
    apply_rest,
    exercise_rep_range,
    get_rest_seconds,
    prescribe_sets_reps,
)
from liftplan.readiness import derive_fatigue_state, should_deload
from liftplan.schemas import (
    Baseline,
    Constraints,
    Exercise,
    FatigueState,
    Goals,
    ProgressionRule,
    SelectionMode,
    SessionCheckIn,
    SessionIntent,
    SplitTag,
    SplitType,
    UserPreferences,
    UserProfile,
    WorkoutHistoryEntry,
)
from liftplan.selection import select_exercises
from liftplan.sra import build_recovery_map, check_sra_warnings
from liftplan.timeboxing import estimate_workout_minutes, fit_session_to_budget
from liftplan.volume import enforce_volume_caps

logger = logging.getLogger(__name__)

PLAN_NAMESPACE = uuid.uuid5(uuid.NAMESPACE_URL, "liftplan/workout-plan")
AUTOREGULATION_NOTE = "Autoregulated for recovery"
AUTO_DELOAD_NOTE = "[AUTO-DELOAD TRIGGERED]"
PREP_NOTE = "Warmup / prep"
PREP_TAGS = {SplitTag.MOBILITY, SplitTag.PREHAB}
MAX_PREP_EXERCISES = 2
CONDITIONING_INTENTS = {SessionIntent.LEGS, SessionIntent.LOWER}
PREP_REPS = 10
MAX_PAIN_FLAG = 3

SPLIT_ROTATIONS: Dict[SplitType, List[SessionIntent]] = {
    SplitType.PPL: [SessionIntent.PUSH, SessionIntent.PULL, SessionIntent.LEGS],
    SplitType.UPPER_LOWER: [SessionIntent.UPPER, SessionIntent.LOWER],
    SplitType.FULL_BODY: [SessionIntent.FULL_BODY],
    SplitType.CUSTOM: [SessionIntent.FULL_BODY],
}


class GenerationOptions(BaseModel):
    """Optional knobs for a single generation call."""

    forced_split: Optional[SessionIntent] = Field(
        None, description="Session intent to use instead of the split rotation"
    )
    preferences: UserPreferences = Field(default_factory=UserPreferences)
    check_in: Optional[SessionCheckIn] = None
    random_seed: Optional[int] = None
    week_in_block: int = Field(1, ge=1)
    periodization: Optional[PeriodizationModifiers] = Field(
        None, description="Explicit modifiers; skips the week lookup and deload trigger"
    )
    cold_start_stage: int = Field(2, ge=0, le=2)
    pinned_exercise_ids: List[str] = Field(default_factory=list)
    template_exercise_ids: List[str] = Field(default_factory=list)
    target_muscles: List[str] = Field(default_factory=list)
    baselines: List[Baseline] = Field(default_factory=list)
    scheduled_date: Optional[datetime] = None


# ============================================================================
# Helpers
# ============================================================================


def resolve_split_intent(
    split_type: SplitType,
    history: List[WorkoutHistoryEntry],
    forced_split: Optional[SessionIntent] = None,
) -> Tuple[SessionIntent, int]:
    """
    Session intent for the next session.

    The rotation advances once per completed session that counts toward
    the split.

    Returns:
        (intent, rotation index)
    """
    rotation = SPLIT_ROTATIONS.get(split_type, SPLIT_ROTATIONS[SplitType.FULL_BODY])
    advancing = [entry for entry in completed_history(history) if entry.advances_split]
    index = len(advancing) % max(1, len(rotation))
    if forced_split is not None:
        return forced_split, index
    return rotation[index], index


def merge_injury_pain(fatigue_state: FatigueState, profile: UserProfile) -> FatigueState:
    """Active injuries act as pain flags (severity capped at 3), keeping the worse value."""
    pain_flags = dict(fatigue_state.pain_flags)
    for injury in profile.injuries:
        if not injury.is_active:
            continue
        severity = min(MAX_PAIN_FLAG, injury.severity)
        pain_flags[injury.body_part] = max(pain_flags.get(injury.body_part, 0), severity)
    return fatigue_state.model_copy(update={"pain_flags": pain_flags})


def build_prep_exercise(exercise: Exercise, order_index: int, config: EngineConfig) -> WorkoutExercise:
    return WorkoutExercise(
        id=f"prep-{exercise.id}-{order_index}",
        exercise=exercise,
        order_index=order_index,
        is_main_lift=False,
        role=ExerciseRole.WARMUP,
        notes=PREP_NOTE,
        sets=[
            WorkoutSet(
                set_index=1,
                target_reps=PREP_REPS,
                role=ExerciseRole.WARMUP,
                rest_seconds=config.rest_seconds.warmup,
            )
        ],
    )


def _plan_id(
    profile: UserProfile,
    scheduled_date: datetime,
    intent: SessionIntent,
    week_in_block: int,
    exercise_ids: List[str],
    random_seed: Optional[int],
) -> str:
    key = json.dumps(
        {
            "profile": profile.id,
            "date": scheduled_date.isoformat(),
            "intent": intent.value,
            "week": week_in_block,
            "exercises": exercise_ids,
            "seed": random_seed,
        },
        sort_keys=True,
    )
    return str(uuid.uuid5(PLAN_NAMESPACE, key))


# ============================================================================
# Generator
# ============================================================================


class WorkoutGenerator:
    """
    Generates a single workout session.

    The generator:
    1. Normalizes the exercise library (corrupt libraries fail fast)
    2. Derives fatigue state and merges active injuries into pain flags
    3. Picks the session intent from the split rotation
    4. Resolves periodization, forcing a deload when fatigue accumulates
    5. Selects exercises and prescribes sets, reps, RPE and rest
    6. Resolves target loads and warm-up ramps
    7. Escalates stalled lifts and autoregulates against the check-in
    8. Adds prep work and fits the session into its time budget
    9. Documents every decision for the reasoning trace
    """

    def __init__(self, config: Optional[EngineConfig] = None):
        """
        Initialize the generator.

        Args:
            config: Engine configuration (defaults to the shared default)
        """
        self.config = resolve_config(config)
        self.plan_decisions: List[PlanDecision] = []

    def generate(
        self,
        profile: UserProfile,
        goals: Goals,
        constraints: Constraints,
        history: List[WorkoutHistoryEntry],
        exercise_library: List[Exercise],
        progression_rule: Optional[ProgressionRule] = None,
        options: Optional[GenerationOptions] = None,
    ) -> WorkoutPlan:
        """
        Generate the next session.

        Args:
            profile: Lifter profile (training age, bodyweight, injuries)
            goals: Training goals
            constraints: Equipment, session length and split
            history: Logged sessions, any order
            exercise_library: Raw or normalized exercises
            progression_rule: Load progression limits
            options: Per-call overrides

        Returns:
            WorkoutPlan with warm-up, main lifts, accessories and decisions

        Raises:
            LibraryIntegrityError: If the exercise library is corrupt
        """
        self.plan_decisions = []
        options = options or GenerationOptions()
        cfg = self.config

        # 1. Library
        library = normalize_library(exercise_library, cfg)

        # 2. Fatigue
        fatigue_state = merge_injury_pain(derive_fatigue_state(history, options.check_in), profile)
        self._record_fatigue(fatigue_state, options.check_in is not None)

        # 3. Session intent
        intent, rotation_index = resolve_split_intent(
            constraints.split_type, history, options.forced_split
        )
        self._record_intent(constraints.split_type, intent, rotation_index, options.forced_split)

        # 4. Periodization
        periodization, selection_week = self._resolve_periodization(
            goals, profile, history, library, options
        )

        # 5. Selection
        mode = SelectionMode.TEMPLATE if options.template_exercise_ids else SelectionMode.INTENT
        reference_time = options.scheduled_date or (
            options.check_in.date if options.check_in is not None else None
        )
        selection = select_exercises(
            SelectionInput(
                mode=mode,
                intent=intent,
                target_muscles=options.target_muscles,
                pinned_exercise_ids=options.pinned_exercise_ids,
                template_exercise_ids=options.template_exercise_ids,
                week_in_block=selection_week,
                mesocycle_length=cfg.block_length,
                session_minutes=constraints.session_minutes,
                training_age=profile.training_age,
                goals=goals,
                available_equipment=constraints.available_equipment,
                cold_start_stage=options.cold_start_stage,
                preferences=options.preferences,
                fatigue_state=fatigue_state,
                history=history,
                exercise_library=library,
                reference_time=reference_time,
                random_seed=options.random_seed,
            ),
            cfg,
        )
        self._record_selection(selection, intent, mode)

        # 6. Prescription
        library_index = {exercise.id: exercise for exercise in library}
        main_lifts, accessories = self._prescribe(
            selection, library_index, profile, goals, fatigue_state, options, periodization
        )

        # 7. Loads
        resolver = LoadResolver(
            history=history,
            baselines=options.baselines,
            library=library,
            goal=goals.primary,
            training_age=profile.training_age,
            periodization=periodization,
            weight_kg=profile.weight_kg,
            max_load_increase_pct=(
                progression_rule.max_load_increase_pct if progression_rule else 0.07
            ),
            config=cfg,
        )
        main_lifts = apply_loads(main_lifts, resolver)
        accessories = apply_loads(accessories, resolver)

        # 8. Stalled lifts
        interventions = self._run_stall_ladder(history, library, constraints, fatigue_state)
        main_lifts, applied = apply_stall_ladder(main_lifts, interventions, cfg)
        accessories, applied_accessories = apply_stall_ladder(accessories, interventions, cfg)
        interventions = [*applied, *applied_accessories]

        # 9. Check-in autoregulation
        fatigue_score = None
        modifications: List[AutoregulationModification] = []
        action = AutoregulationAction.MAINTAIN
        if options.check_in is not None and not periodization.is_deload:
            fatigue_score, action, modifications, main_lifts, accessories = self._autoregulate(
                main_lifts, accessories, history, goals, profile, options, len(interventions)
            )

        # 10. Prep work
        warmup = self._pick_prep(
            library, selection, constraints, fatigue_state, options.preferences, intent
        )

        # 11. Time budget and weekly caps
        volume_context = build_volume_context(
            history, library, reference_time, selection_week, cfg.block_length, cfg
        )
        warmup, main_lifts, accessories, estimated_minutes = self._fit_session(
            warmup, main_lifts, accessories, constraints.session_minutes, volume_context
        )

        # 12. Recovery warnings
        resolved_date = reference_time or self._latest_date(history) or datetime.now()
        recovery_map = build_recovery_map(history, library, resolved_date, cfg)
        targeted = sorted(
            {
                cfg.canonical_muscle(muscle)
                for entry in [*main_lifts, *accessories]
                for muscle in entry.exercise.primary_muscles
            }
        )
        sra_warnings = check_sra_warnings(recovery_map, targeted)
        if sra_warnings:
            self._record_sra(sra_warnings)

        notes_parts = []
        if action == AutoregulationAction.TRIGGER_DELOAD:
            notes_parts.append(AUTO_DELOAD_NOTE)
        if fatigue_state.readiness_score <= 2:
            notes_parts.append(AUTOREGULATION_NOTE)
        notes = "; ".join(notes_parts) or None
        exercise_ids = [e.exercise.id for e in [*warmup, *main_lifts, *accessories]]
        plan = WorkoutPlan(
            id=_plan_id(
                profile,
                resolved_date,
                intent,
                periodization.week_in_block or options.week_in_block,
                exercise_ids,
                options.random_seed,
            ),
            scheduled_date=resolved_date,
            session_intent=intent,
            week_in_block=periodization.week_in_block or options.week_in_block,
            warmup=warmup,
            main_lifts=main_lifts,
            accessories=accessories,
            estimated_minutes=estimated_minutes,
            notes=notes,
            sra_warnings=sra_warnings,
            decisions=self.plan_decisions,
            selection=selection,
            fatigue_score=fatigue_score,
            autoregulation=modifications,
            interventions=interventions,
        )
        logger.info(
            "Generated %s session: %d main lifts, %d accessories, ~%d min",
            intent.value,
            len(main_lifts),
            len(accessories),
            estimated_minutes,
        )
        return plan

    # ------------------------------------------------------------------
    # Steps
    # ------------------------------------------------------------------

    @staticmethod
    def _latest_date(history: List[WorkoutHistoryEntry]) -> Optional[datetime]:
        latest = most_recent_entry(history)
        return latest.date if latest is not None else None

    def _resolve_periodization(
        self,
        goals: Goals,
        profile: UserProfile,
        history: List[WorkoutHistoryEntry],
        library: List[Exercise],
        options: GenerationOptions,
    ) -> Tuple[PeriodizationModifiers, int]:
        """
        Week modifiers plus the week the selector should plan volume for.

        An explicit override wins. Otherwise the week-in-block lookup is
        used, replaced by the deload week when the deload trigger fires.
        """
        cfg = self.config
        if options.periodization is not None:
            modifiers = options.periodization
            week = modifiers.week_in_block or options.week_in_block
            if modifiers.is_deload:
                week = max(week, cfg.block_length)
            self.plan_decisions.append(
                PlanDecision(
                    decision_point="Periodization Override",
                    input_factors=[f"week_in_block={week}", f"is_deload={modifiers.is_deload}"],
                    reasoning="Explicit periodization modifiers were supplied, so the week lookup and deload trigger were skipped.",
                    outcome=f"rpe_offset={modifiers.rpe_offset}, set_multiplier={modifiers.set_multiplier}",
                )
            )
            return modifiers, week

        week = options.week_in_block
        main_ids = sorted(e.id for e in library if e.is_main_lift_eligible)
        forced = should_deload(history, main_ids, cfg)
        lookup_week = cfg.block_length if forced else week
        modifiers = get_periodization_modifiers(
            lookup_week, goals.primary, profile.training_age, cfg
        ).model_copy(update={"week_in_block": week})

        if forced:
            reasoning = (
                "Accumulated fatigue (low readiness streak or stalled progress) triggered "
                "an early deload regardless of the week in the block."
            )
        elif modifiers.is_deload:
            reasoning = "Final week of the block is a scheduled deload."
        else:
            reasoning = (
                f"Week {week} of {cfg.block_length}: sets and RPE ramp up across the "
                "accumulation weeks."
            )
        self.plan_decisions.append(
            PlanDecision(
                decision_point="Periodization Week",
                input_factors=[
                    f"week_in_block={week}",
                    f"block_length={cfg.block_length}",
                    f"deload_triggered={forced}",
                    f"policy_version={cfg.policy_version.value}",
                ],
                reasoning=reasoning,
                outcome=(
                    f"rpe_offset={modifiers.rpe_offset:+.1f}, "
                    f"set_multiplier={modifiers.set_multiplier:.2f}, "
                    f"deload={modifiers.is_deload}"
                ),
            )
        )
        return modifiers, lookup_week

    def _prescribe(
        self,
        selection: SelectionOutput,
        library_index: Dict[str, Exercise],
        profile: UserProfile,
        goals: Goals,
        fatigue_state: FatigueState,
        options: GenerationOptions,
        periodization: PeriodizationModifiers,
    ) -> Tuple[List[WorkoutExercise], List[WorkoutExercise]]:
        cfg = self.config
        main_ids = set(selection.main_lift_ids)
        main_lifts: List[WorkoutExercise] = []
        accessories: List[WorkoutExercise] = []
        for exercise_id in selection.selected_exercise_ids:
            exercise = library_index[exercise_id]
            is_main = exercise_id in main_ids
            sets = prescribe_sets_reps(
                is_main_lift=is_main,
                training_age=profile.training_age,
                goals=goals,
                fatigue_state=fatigue_state,
                preferences=options.preferences,
                periodization=periodization,
                exercise_range=exercise_rep_range(exercise),
                is_isolation=exercise.is_isolation,
                set_count_override=selection.per_exercise_set_targets.get(exercise_id),
                config=cfg,
            )
            sets = apply_rest(sets, get_rest_seconds(exercise, is_main, cfg))
            target = main_lifts if is_main else accessories
            target.append(
                WorkoutExercise(
                    id=f"{exercise_id}-{len(main_lifts) + len(accessories)}",
                    exercise=exercise,
                    order_index=len(target),
                    is_main_lift=is_main,
                    role=ExerciseRole.MAIN if is_main else ExerciseRole.ACCESSORY,
                    sets=sets,
                )
            )
        return main_lifts, accessories

    def _pick_prep(
        self,
        library: List[Exercise],
        selection: SelectionOutput,
        constraints: Constraints,
        fatigue_state: FatigueState,
        preferences: UserPreferences,
        intent: SessionIntent,
    ) -> List[WorkoutExercise]:
        """
        Up to two mobility/prehab drills, favorites first, then lowest fatigue.

        With optional conditioning on, one core drill follows, plus one
        conditioning drill on leg days.
        """
        selected = set(selection.selected_exercise_ids)
        avoid_ids = set(preferences.avoid_exercise_ids)
        avoid_names = {normalize_name(n) for n in preferences.avoid_exercises}
        favorite_ids = set(preferences.favorite_exercise_ids)
        favorite_names = {normalize_name(n) for n in preferences.favorite_exercises}

        eligible = [
            exercise
            for exercise in library
            if exercise.id not in selected
            and exercise.id not in avoid_ids
            and normalize_name(exercise.name) not in avoid_names
            and passes_equipment(exercise, constraints.available_equipment)
            and not has_pain_conflict(
                exercise, fatigue_state.pain_flags, self.config.pain_flag_threshold
            )
        ]

        def is_favorite(exercise: Exercise) -> bool:
            return exercise.id in favorite_ids or normalize_name(exercise.name) in favorite_names

        picked: List[Exercise] = []

        def pool(tags) -> List[Exercise]:
            taken = {e.id for e in picked}
            tagged = [e for e in eligible if set(e.split_tags) & tags and e.id not in taken]
            return sorted(tagged, key=lambda e: (0 if is_favorite(e) else 1, e.fatigue_cost, e.name))

        picked.extend(pool(PREP_TAGS)[:MAX_PREP_EXERCISES])
        if preferences.optional_conditioning:
            picked.extend(pool({SplitTag.CORE})[:1])
            if intent in CONDITIONING_INTENTS:
                picked.extend(pool({SplitTag.CONDITIONING})[:1])
        return [
            build_prep_exercise(exercise, index, self.config)
            for index, exercise in enumerate(picked)
        ]

    def _run_stall_ladder(
        self,
        history: List[WorkoutHistoryEntry],
        library: List[Exercise],
        constraints: Constraints,
        fatigue_state: FatigueState,
    ) -> List[InterventionSuggestion]:
        cfg = self.config
        stalls = detect_stalls(history, library, cfg)
        suggestions = [
            suggest_intervention(
                stall, library, constraints.available_equipment, fatigue_state.pain_flags, cfg
            )
            for stall in stalls
        ]
        if stalls:
            self.plan_decisions.append(
                PlanDecision(
                    decision_point="Stall Interventions",
                    input_factors=[
                        f"{s.exercise_id}={s.weeks_without_progress:g}wk" for s in stalls
                    ],
                    reasoning=(
                        "Lifts without a best-set PR climb a ladder by weeks stalled: "
                        "microload, deload, variation swap, then volume reset."
                    ),
                    outcome="; ".join(f"{s.exercise_name}: {s.level.value}" for s in stalls),
                )
            )
        return suggestions

    def _autoregulate(
        self,
        main_lifts: List[WorkoutExercise],
        accessories: List[WorkoutExercise],
        history: List[WorkoutHistoryEntry],
        goals: Goals,
        profile: UserProfile,
        options: GenerationOptions,
        stall_count: int,
    ) -> Tuple[
        FatigueScore,
        AutoregulationAction,
        List[AutoregulationModification],
        List[WorkoutExercise],
        List[WorkoutExercise],
    ]:
        cfg = self.config
        expected_rpe = get_base_target_rpe(goals.primary, profile.training_age, cfg)
        performance = compute_performance_signals(history, expected_rpe, stall_count, cfg)
        fatigue_score = compute_fatigue_score(options.check_in, performance)
        result = autoregulate_session(
            main_lifts, accessories, fatigue_score, options.preferences.autoregulation, cfg
        )
        self.plan_decisions.append(
            PlanDecision(
                decision_point="Autoregulation",
                input_factors=[
                    f"fatigue_score={fatigue_score.overall:.2f}",
                    f"rpe_deviation={performance.rpe_deviation:+.1f}",
                    f"volume_compliance={performance.volume_compliance_rate:.0%}",
                    f"stalled_lifts={stall_count}",
                ],
                reasoning=result.rationale,
                outcome=(
                    f"{result.action.value} ({fatigue_level_label(fatigue_score.overall)}); "
                    f"{len(result.modifications)} exercises adjusted"
                ),
            )
        )
        return (
            fatigue_score,
            result.action,
            result.modifications,
            result.main_lifts,
            result.accessories,
        )

    def _fit_session(
        self,
        warmup: List[WorkoutExercise],
        main_lifts: List[WorkoutExercise],
        accessories: List[WorkoutExercise],
        session_minutes: int,
        volume_context: VolumeContext,
    ) -> Tuple[List[WorkoutExercise], List[WorkoutExercise], List[WorkoutExercise], int]:
        cfg = self.config
        before = [entry.exercise.id for entry in [*warmup, *accessories]]
        prep, mains, kept, minutes = fit_session_to_budget(
            warmup, main_lifts, accessories, session_minutes, cfg
        )
        kept = enforce_volume_caps(kept, mains, volume_context, cfg)
        minutes = estimate_workout_minutes([*prep, *mains, *kept], cfg)

        kept_ids = {entry.exercise.id for entry in [*prep, *kept]}
        dropped = [exercise_id for exercise_id in before if exercise_id not in kept_ids]
        prescribed = {entry.id: len(entry.sets) for entry in [*main_lifts, *accessories]}
        sets_dropped = sum(prescribed[entry.id] - len(entry.sets) for entry in [*mains, *kept])
        trimmed = []
        if dropped:
            trimmed.append(f"dropped {', '.join(dropped)}")
        if sets_dropped:
            trimmed.append(f"{sets_dropped} working sets removed")
        self.plan_decisions.append(
            PlanDecision(
                decision_point="Session Time Budget",
                input_factors=[
                    f"session_minutes={session_minutes}",
                    f"prep_drills={len(warmup)}",
                    f"accessories_prescribed={len(accessories)}",
                ],
                reasoning=(
                    "Prep drills go first, then sets down to two per exercise, then the "
                    "lowest-retention accessories, until the session fits its budget."
                    if trimmed
                    else "Prescribed session fits the time budget without trimming."
                ),
                outcome=(
                    f"~{minutes} min; {'; '.join(trimmed)}"
                    if trimmed
                    else f"~{minutes} min, nothing dropped"
                ),
            )
        )
        return prep, mains, kept, minutes

    # ------------------------------------------------------------------
    # Decision log
    # ------------------------------------------------------------------

    def _record_fatigue(self, fatigue_state: FatigueState, from_check_in: bool) -> None:
        source = "today's check-in" if from_check_in else "the most recent logged session"
        pain = ", ".join(f"{k}={v}" for k, v in sorted(fatigue_state.pain_flags.items())) or "none"
        self.plan_decisions.append(
            PlanDecision(
                decision_point="Readiness Assessment",
                input_factors=[
                    f"readiness_score={fatigue_state.readiness_score}",
                    f"missed_last_session={fatigue_state.missed_last_session}",
                    f"pain_flags={pain}",
                ],
                reasoning=f"Readiness taken from {source}; active injuries are treated as pain flags.",
                outcome=(
                    "Autoregulate: fewer sets and lower RPE"
                    if fatigue_state.readiness_score <= 2
                    else "Train as planned"
                ),
            )
        )

    def _record_intent(
        self,
        split_type: SplitType,
        intent: SessionIntent,
        rotation_index: int,
        forced_split: Optional[SessionIntent],
    ) -> None:
        if forced_split is not None:
            reasoning = f"Split rotation overridden: session forced to {intent.value}."
        else:
            reasoning = (
                f"Split rotation for {split_type.value} advances once per completed session; "
                f"position {rotation_index} is {intent.value}."
            )
        self.plan_decisions.append(
            PlanDecision(
                decision_point="Session Intent",
                input_factors=[f"split_type={split_type.value}", f"rotation_index={rotation_index}"],
                reasoning=reasoning,
                outcome=f"{intent.value} session",
            )
        )

    def _record_selection(
        self, selection: SelectionOutput, intent: SessionIntent, mode: SelectionMode
    ) -> None:
        self.plan_decisions.append(
            PlanDecision(
                decision_point="Exercise Selection",
                input_factors=[
                    f"mode={mode.value}",
                    f"intent={intent.value}",
                    f"selected={len(selection.selected_exercise_ids)}",
                ],
                reasoning=(
                    "Candidates passing the hard filters were ranked by weekly volume deficit, "
                    "preference, diversity, continuity and fatigue cost."
                ),
                outcome=(
                    f"main: {', '.join(selection.main_lift_ids) or 'none'}; "
                    f"accessories: {', '.join(selection.accessory_ids) or 'none'}"
                ),
            )
        )

    def _record_sra(self, warnings) -> None:
        self.plan_decisions.append(
            PlanDecision(
                decision_point="Recovery Check",
                input_factors=[f"{w.muscle}={w.recovery_percent}%" for w in warnings],
                reasoning="Some targeted muscles are still inside their recovery window; this is advisory only.",
                outcome="Not yet recovered: " + ", ".join(w.muscle for w in warnings),
            )
        )


def generate_workout(
    profile: UserProfile,
    goals: Goals,
    constraints: Constraints,
    history: List[WorkoutHistoryEntry],
    exercise_library: List[Exercise],
    progression_rule: Optional[ProgressionRule] = None,
    options: Optional[GenerationOptions] = None,
    config: Optional[EngineConfig] = None,
) -> WorkoutPlan:
    """Generate one session; see ``WorkoutGenerator.generate``."""
    return WorkoutGenerator(config).generate(
        profile, goals, constraints, history, exercise_library, progression_rule, options
    )
