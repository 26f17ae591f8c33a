"""
Readiness and deload detection.

Derives the per-session fatigue state and decides when a block should be
cut short with a deload:
- Low readiness streak (readiness at or below 2 for four sessions running)
- Plateau (no session-over-session progress across five completed sessions)

Plateau detection depends on the policy version: v1 compares total reps,
v2 compares estimated 1RMs of the main lifts (falling back to total reps
when no main lift has two data points).
"""

import logging
from typing import Dict, Iterable, List, Optional

from liftplan.config import EngineConfig, resolve_config
from liftplan.history import most_recent_entry
from liftplan.schemas import (
    FatigueState,
    PolicyVersion,
    SessionCheckIn,
    SetLog,
    WorkoutHistoryEntry,
    WorkoutStatus,
)

logger = logging.getLogger(__name__)

DEFAULT_READINESS = 3


def derive_fatigue_state(
    history: List[WorkoutHistoryEntry], check_in: Optional[SessionCheckIn] = None
) -> FatigueState:
    """
    Fatigue state for the session about to be generated.

    A check-in wins over history for readiness and pain; soreness notes and
    the missed-session flag always come from the most recent logged entry.
    """
    last = most_recent_entry(history)
    readiness = DEFAULT_READINESS
    if check_in is not None:
        readiness = check_in.readiness
    elif last is not None and last.readiness_score is not None:
        readiness = last.readiness_score

    pain_flags: Dict[str, int] = {}
    if check_in is not None and check_in.pain_flags is not None:
        pain_flags = dict(check_in.pain_flags)
    elif last is not None and last.pain_flags:
        pain_flags = dict(last.pain_flags)

    return FatigueState(
        readiness_score=readiness,
        soreness_notes=last.soreness_notes if last is not None else None,
        missed_last_session=last is not None and last.status == WorkoutStatus.SKIPPED,
        pain_flags=pain_flags,
    )


def estimate_one_rep_max(load: float, reps: int) -> float:
    """Epley estimate."""
    return load * (1 + reps / 30)


def _top_set(sets: Iterable[SetLog]) -> Optional[SetLog]:
    """The earliest loaded set with reps."""
    loaded = [s for s in sets if s.load is not None and s.reps > 0]
    if not loaded:
        return None
    return min(loaded, key=lambda s: s.set_index)


class DeloadDetector:
    """
    Detect when accumulated fatigue calls for an early deload.

    Works on history sorted oldest first; only the most recent sessions
    are inspected.
    """

    def __init__(self, history: List[WorkoutHistoryEntry], config: Optional[EngineConfig] = None):
        """
        Initialize detector with the lifter's logged sessions.

        Args:
            history: Logged sessions in any order
            config: Engine configuration (defaults to the shared default)
        """
        self.history = sorted(history, key=lambda entry: entry.date)
        self.config = resolve_config(config)
        self.thresholds = self.config.deload_thresholds

    def detect_low_readiness_streak(self) -> bool:
        """Readiness at or below the threshold for the last N sessions."""
        window = self.thresholds.consecutive_low_readiness
        recent = self.history[-window:]
        if len(recent) < window:
            return False
        return all(
            (entry.readiness_score if entry.readiness_score is not None else DEFAULT_READINESS)
            <= self.thresholds.low_readiness_score
            for entry in recent
        )

    def detect_plateau(self, main_lift_ids: Optional[Iterable[str]] = None) -> bool:
        """
        No progress across the last N sessions, all of them completed.

        Args:
            main_lift_ids: Main lifts to track under the v2 policy

        Returns:
            True when the window shows no improvement
        """
        window = self.thresholds.plateau_sessions
        recent = self.history[-window:]
        if len(recent) < window:
            return False
        if not all(entry.is_completed for entry in recent):
            return False

        main_lift_ids = set(main_lift_ids or [])
        if self.config.policy_version == PolicyVersion.V2 and main_lift_ids:
            plateau = self._main_lift_plateau(recent, main_lift_ids)
            if plateau is not None:
                return plateau
        return self._total_reps_plateau(recent)

    @staticmethod
    def _total_reps_plateau(entries: List[WorkoutHistoryEntry]) -> bool:
        totals = [
            sum(s.reps for logged in entry.exercises for s in logged.sets) for entry in entries
        ]
        return not any(later > earlier for earlier, later in zip(totals, totals[1:]))

    @staticmethod
    def _main_lift_plateau(
        entries: List[WorkoutHistoryEntry], main_lift_ids: set
    ) -> Optional[bool]:
        """
        Whether every tracked main lift failed to beat its oldest e1RM.

        Returns None when no main lift appears in at least two sessions.
        """
        series: Dict[str, List[float]] = {}
        for entry in entries:
            for logged in entry.exercises:
                if logged.exercise_id not in main_lift_ids:
                    continue
                top = _top_set(logged.sets)
                if top is None:
                    continue
                series.setdefault(logged.exercise_id, []).append(
                    estimate_one_rep_max(top.load, top.reps)
                )

        tracked = {eid: values for eid, values in series.items() if len(values) >= 2}
        if not tracked:
            return None
        return all(max(values) <= values[0] for values in tracked.values())


def should_deload(
    history: List[WorkoutHistoryEntry],
    main_lift_ids: Optional[Iterable[str]] = None,
    config: Optional[EngineConfig] = None,
) -> bool:
    """
    Whether to force a deload this session.

    Args:
        history: Logged sessions
        main_lift_ids: Main lifts tracked by the v2 plateau policy
        config: Engine configuration

    Returns:
        True on a low-readiness streak or a plateau; False with fewer than
        two logged sessions
    """
    if len(history) < 2:
        return False
    detector = DeloadDetector(history, config)
    if detector.detect_low_readiness_streak():
        logger.info("Deload triggered: low readiness streak")
        return True
    if detector.detect_plateau(main_lift_ids):
        logger.info("Deload triggered: plateau across recent sessions")
        return True
    return False
