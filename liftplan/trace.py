"""
Workout trace export.

Turns a generated WorkoutPlan into a reviewable record of how it was built:
the prescribed session, selection rationale with score components, the
weekly volume picture and every generation decision. Traces export to JSON
and Markdown.
"""

import json
from pathlib import Path
from typing import List

from liftplan.plan_schemas import WorkoutExercise, WorkoutPlan


def _format_load(load) -> str:
    return f"{load:g} lb" if load is not None else "-"


def _exercise_rows(entries: List[WorkoutExercise]) -> List[str]:
    rows = []
    for entry in entries:
        first = entry.sets[0] if entry.sets else None
        reps = first.target_reps if first else "-"
        rpe = f"{first.target_rpe:g}" if first and first.target_rpe is not None else "-"
        rest = f"{first.rest_seconds}s" if first and first.rest_seconds is not None else "-"
        load = _format_load(first.target_load if first else None)
        rows.append(
            f"| {entry.exercise.name} | {len(entry.sets)} | {reps} | {rpe} | {load} | {rest} |"
        )
    return rows


class WorkoutTraceBuilder:
    """
    Builds and exports the reasoning trace for one generated workout.

    The trace shows:
    - The prescribed session (warm-up, main lifts, accessories)
    - Why each exercise was picked (score components and selection step)
    - Weekly volume per muscle after this session
    - Fatigue score, autoregulation and stall interventions, when present
    - Recovery warnings and the generation decisions in order
    """

    def __init__(self, plan: WorkoutPlan):
        """
        Initialize trace builder.

        Args:
            plan: The generated workout
        """
        self.plan = plan

    def export_to_json(self) -> dict:
        """
        Export the plan and its decisions as a JSON-serializable dictionary.
        """
        return self.plan.model_dump(mode="json")

    def export_to_markdown(self) -> str:
        """
        Export trace to human-readable Markdown format.

        Returns:
            Markdown-formatted trace report
        """
        plan = self.plan
        lines = []

        # Header
        lines.append("# Workout Trace")
        lines.append("")
        lines.append(f"**Scheduled:** {plan.scheduled_date.strftime('%Y-%m-%d %H:%M')}")
        lines.append(f"**Session:** `{plan.session_intent.value}`")
        lines.append(f"**Week in block:** {plan.week_in_block}")
        lines.append(f"**Estimated time:** ~{plan.estimated_minutes} min")
        lines.append(f"**Working sets:** {plan.total_working_sets()}")
        if plan.notes:
            lines.append(f"**Notes:** {plan.notes}")
        lines.append("")
        lines.append("---")
        lines.append("")

        # Session
        lines.append("## Session")
        lines.append("")
        sections = [
            ("Warm-up", plan.warmup),
            ("Main Lifts", plan.main_lifts),
            ("Accessories", plan.accessories),
        ]
        for title, entries in sections:
            lines.append(f"### {title}")
            lines.append("")
            if not entries:
                lines.append("*None*")
                lines.append("")
                continue
            lines.append("| Exercise | Sets | Reps | RPE | Load | Rest |")
            lines.append("|----------|------|------|-----|------|------|")
            lines.extend(_exercise_rows(entries))
            lines.append("")

        lines.append("---")
        lines.append("")

        # Selection rationale
        selection = plan.selection
        if selection is not None and selection.rationale:
            lines.append("## Selection Rationale")
            lines.append("")
            for exercise_id in selection.selected_exercise_ids:
                rationale = selection.rationale.get(exercise_id)
                if rationale is None:
                    continue
                lines.append(f"#### `{exercise_id}`")
                lines.append(f"- **Step:** {rationale.selected_step.value}")
                lines.append(f"- **Score:** {rationale.score:.3f}")
                if rationale.components:
                    parts = ", ".join(
                        f"{name}={value:+.2f}"
                        for name, value in sorted(rationale.components.items())
                    )
                    lines.append(f"- **Components:** {parts}")
                lines.append("")

            if selection.volume_plan_by_muscle:
                lines.append("### Weekly Volume")
                lines.append("")
                lines.append("| Muscle | Target | Logged | Planned | Projected | MRV |")
                lines.append("|--------|--------|--------|---------|-----------|-----|")
                for muscle, volume in sorted(selection.volume_plan_by_muscle.items()):
                    mrv = volume.mrv if volume.mrv is not None else "-"
                    lines.append(
                        f"| {muscle} | {volume.weekly_target:g} | {volume.weekly_direct_sets:g} "
                        f"| {volume.planned_direct_sets:g} | {volume.projected_effective_sets:.1f} | {mrv} |"
                    )
                lines.append("")

            lines.append("---")
            lines.append("")

        # Readiness adjustments
        if plan.fatigue_score is not None or plan.interventions:
            lines.append("## Readiness Adjustments")
            lines.append("")
            if plan.fatigue_score is not None:
                score = plan.fatigue_score
                lines.append(f"**Fatigue score:** {score.overall:.0%}")
                for muscle, freshness in sorted(score.per_muscle.items()):
                    lines.append(f"- {muscle}: {freshness:.0%} fresh")
                lines.append("")
                for modification in plan.autoregulation:
                    lines.append(f"- `{modification.action.value}` {modification.reason}")
                if plan.autoregulation:
                    lines.append("")
            for suggestion in plan.interventions:
                lines.append(
                    f"- 📉 **{suggestion.exercise_name}** ({suggestion.level.value}): "
                    f"{suggestion.action}. {suggestion.rationale}"
                )
            if plan.interventions:
                lines.append("")
            lines.append("---")
            lines.append("")

        # Recovery
        lines.append("## Recovery")
        lines.append("")
        if not plan.sra_warnings:
            lines.append("✅ **All targeted muscles recovered**")
        else:
            for warning in plan.sra_warnings:
                lines.append(
                    f"- ⚠️ **{warning.muscle}:** {warning.recovery_percent}% recovered "
                    f"({warning.hours_since_trained:g}h of {warning.sra_hours}h)"
                )
        lines.append("")
        lines.append("---")
        lines.append("")

        # Decisions
        if plan.decisions:
            lines.append("## Generation Decisions")
            lines.append("")
            for i, decision in enumerate(plan.decisions, 1):
                lines.append(f"### Decision {i}: {decision.decision_point}")
                lines.append("")
                lines.append(f"**Input Factors:** {', '.join(decision.input_factors)}")
                lines.append("")
                lines.append(f"**Reasoning:** {decision.reasoning}")
                lines.append("")
                lines.append(f"**Outcome:** {decision.outcome}")
                lines.append("")

        return "\n".join(lines)

    def save_to_file(self, output_dir: Path, format: str = "json") -> Path:
        """
        Save trace to file in specified format.

        Args:
            output_dir: Directory to save trace file
            format: Output format ("json" or "markdown")

        Returns:
            Path to saved file

        Raises:
            ValueError: If format is not supported
        """
        output_dir = Path(output_dir)
        output_dir.mkdir(parents=True, exist_ok=True)

        stamp = self.plan.scheduled_date.strftime("%Y%m%d_%H%M%S")
        stem = f"workout_{self.plan.session_intent.value}_{stamp}"

        if format == "json":
            filepath = output_dir / f"{stem}.json"
            with open(filepath, "w") as f:
                json.dump(self.export_to_json(), f, indent=2, default=str)
        elif format == "markdown":
            filepath = output_dir / f"{stem}.md"
            with open(filepath, "w") as f:
                f.write(self.export_to_markdown())
        else:
            raise ValueError(f"Unsupported format: {format}. Use 'json' or 'markdown'")

        return filepath
