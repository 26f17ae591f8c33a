"""
Command-line interface for liftplan.

Provides commands for:
- Generating the next workout from a request file
- Running the exercise selector (with an optional candidate ranking)
- Substitute suggestions, periodization tables and recovery status
"""

import json
import logging
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional

import typer
from pydantic import ValidationError
from rich import box
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from liftplan.config import EngineConfig
from liftplan.engine import GenerationOptions, WorkoutGenerator
from liftplan.library import index_library, load_library, normalize_library
from liftplan.periodization import get_periodization_modifiers
from liftplan.plan_schemas import (
    SelectionInput,
    SelectionPhase,
    WorkoutExercise,
    WorkoutPlan,
)
from liftplan.schemas import (
    Constraints,
    EquipmentType,
    Goals,
    PrimaryGoal,
    ProgressionRule,
    TrainingAge,
    UserProfile,
    WorkoutHistoryEntry,
)
from liftplan.selection import rank_candidates, select_exercises
from liftplan.sra import build_recovery_map
from liftplan.substitution import suggest_substitutes
from liftplan.trace import WorkoutTraceBuilder

app = typer.Typer(help="liftplan - deterministic, explainable strength session generator")
console = Console()


# ===== HELPERS =====


def _load_json(path: Path) -> Any:
    try:
        with open(path, "r") as f:
            return json.load(f)
    except json.JSONDecodeError as e:
        console.print(f"[red]✗ Invalid JSON in {path}: {e}[/red]")
        raise typer.Exit(1)


def _load_history(path: Optional[Path]) -> List[WorkoutHistoryEntry]:
    if path is None:
        return []
    data = _load_json(path)
    if isinstance(data, dict):
        data = data.get("history", [])
    try:
        return [WorkoutHistoryEntry(**entry) for entry in data]
    except ValidationError as e:
        console.print(f"[red]✗ Invalid history file: {e}[/red]")
        raise typer.Exit(1)


def _config(ctx: typer.Context) -> Optional[EngineConfig]:
    return (ctx.obj or {}).get("config")


def _parse_pain_flags(values: Optional[List[str]]) -> Dict[str, int]:
    """Parse repeated ``body_part=severity`` options."""
    flags: Dict[str, int] = {}
    for value in values or []:
        body_part, sep, severity = value.partition("=")
        if not sep or not severity.strip().isdigit():
            console.print(f"[red]✗ Pain flag must look like body_part=severity: {value}[/red]")
            raise typer.Exit(1)
        flags[body_part.strip()] = int(severity)
    return flags


# ===== DISPLAY HELPER FUNCTIONS =====


def _exercise_table(title: str, entries: List[WorkoutExercise]) -> Table:
    table = Table(title=title, box=box.ROUNDED)
    table.add_column("Exercise", style="cyan")
    table.add_column("Sets", justify="right")
    table.add_column("Reps", justify="right")
    table.add_column("RPE", justify="right")
    table.add_column("Load (lb)", justify="right", style="yellow")
    table.add_column("Rest", justify="right")

    for entry in entries:
        first = entry.sets[0] if entry.sets else None
        table.add_row(
            entry.exercise.name,
            str(len(entry.sets)),
            str(first.target_reps) if first else "-",
            f"{first.target_rpe:g}" if first and first.target_rpe is not None else "-",
            f"{first.target_load:g}" if first and first.target_load is not None else "-",
            f"{first.rest_seconds}s" if first and first.rest_seconds is not None else "-",
        )
    return table


def _display_plan(plan: WorkoutPlan) -> None:
    """
    Display the generated session with its recovery warnings.

    Args:
        plan: Generated WorkoutPlan
    """
    header = [
        f"[bold]{plan.session_intent.value.replace('_', ' ').title()} session[/bold]",
        f"Week {plan.week_in_block} | ~{plan.estimated_minutes} min",
    ]
    if plan.notes:
        header.append(f"[yellow]{plan.notes}[/yellow]")
    console.print(Panel("\n".join(header), title="Workout", border_style="cyan"))

    if plan.warmup:
        console.print(_exercise_table("Warm-up", plan.warmup))
    console.print(_exercise_table("Main Lifts", plan.main_lifts))
    console.print(_exercise_table("Accessories", plan.accessories))

    if plan.sra_warnings:
        console.print("\n[bold yellow]Recovery warnings:[/bold yellow]")
        for warning in plan.sra_warnings:
            console.print(
                f"  • {warning.muscle}: {warning.recovery_percent}% recovered "
                f"({warning.hours_since_trained:g}h of {warning.sra_hours}h)"
            )


# ===== CLI COMMANDS =====


@app.callback()
def main(
    ctx: typer.Context,
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
    config: Optional[Path] = typer.Option(
        None,
        "--config",
        "-c",
        help="Path to an engine configuration JSON file",
        exists=True,
    ),
):
    """Shared options for every command."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )
    engine_config = None
    if config is not None:
        try:
            engine_config = EngineConfig.from_file(config)
        except ValueError as e:
            console.print(f"[red]✗ Failed to load config: {e}[/red]")
            raise typer.Exit(1)
    ctx.obj = {"config": engine_config}


@app.command()
def generate(
    ctx: typer.Context,
    request: Path = typer.Option(
        ...,
        "--request",
        "-r",
        help="Path to a request JSON (profile, goals, constraints, history, options)",
        exists=True,
    ),
    library: Optional[Path] = typer.Option(
        None,
        "--library",
        "-l",
        help="Exercise library JSON (overrides the request's exercise_library)",
        exists=True,
    ),
    save_trace: bool = typer.Option(
        False,
        "--save-trace/--no-trace",
        help="Save the reasoning trace to file",
    ),
    trace_format: str = typer.Option(
        "markdown",
        "--trace-format",
        "-f",
        help="Trace output format (json or markdown)",
    ),
    output_dir: Path = typer.Option(
        Path("workout_logs"),
        "--output-dir",
        "-o",
        help="Directory for saved traces",
    ),
):
    """
    Generate the next workout session.

    Workflow:
    1. Load the request and exercise library
    2. Generate the session
    3. Display it and optionally save the reasoning trace
    """
    engine_config = _config(ctx)
    data = _load_json(request)

    try:
        exercises = (
            load_library(library, engine_config)
            if library is not None
            else normalize_library(data.get("exercise_library", []), engine_config)
        )
        profile = UserProfile(**data["profile"])
        goals = Goals(**data["goals"])
        constraints = Constraints(**data.get("constraints", {}))
        history = [WorkoutHistoryEntry(**entry) for entry in data.get("history", [])]
        rule_data = data.get("progression_rule")
        progression_rule = ProgressionRule(**rule_data) if rule_data else None
        options = GenerationOptions(**data.get("options", {}))
    except KeyError as e:
        console.print(f"[red]✗ Request is missing {e}[/red]")
        raise typer.Exit(1)
    except ValueError as e:
        console.print(f"[red]✗ Invalid request: {e}[/red]")
        raise typer.Exit(1)

    generator = WorkoutGenerator(engine_config)
    plan = generator.generate(
        profile, goals, constraints, history, exercises, progression_rule, options
    )
    _display_plan(plan)

    if save_trace:
        try:
            trace_path = WorkoutTraceBuilder(plan).save_to_file(output_dir, format=trace_format)
        except ValueError as e:
            console.print(f"[red]✗ {e}[/red]")
            raise typer.Exit(1)
        console.print(f"\n✓ Trace saved: [cyan]{trace_path}[/cyan]")


@app.command()
def select(
    ctx: typer.Context,
    request: Path = typer.Option(
        ...,
        "--request",
        "-r",
        help="Path to a selection input JSON",
        exists=True,
    ),
    rank: bool = typer.Option(False, "--rank", help="Also show the scored candidate list"),
    phase: SelectionPhase = typer.Option(
        SelectionPhase.ACCESSORY, "--phase", help="Slot type to rank candidates for"
    ),
    limit: int = typer.Option(10, "--limit", help="Ranked candidates to show"),
):
    """
    Run the exercise selector and show why each exercise was picked.
    """
    engine_config = _config(ctx)
    try:
        selection_input = SelectionInput(**_load_json(request))
        output = select_exercises(selection_input, engine_config)
    except ValueError as e:
        console.print(f"[red]✗ Selection failed: {e}[/red]")
        raise typer.Exit(1)

    table = Table(title="Selected Exercises", box=box.ROUNDED)
    table.add_column("Exercise", style="cyan")
    table.add_column("Role")
    table.add_column("Step")
    table.add_column("Score", justify="right", style="yellow")
    table.add_column("Sets", justify="right")

    main_ids = set(output.main_lift_ids)
    for exercise_id in output.selected_exercise_ids:
        rationale = output.rationale.get(exercise_id)
        sets = output.per_exercise_set_targets.get(exercise_id)
        table.add_row(
            exercise_id,
            "main" if exercise_id in main_ids else "accessory",
            rationale.selected_step.value if rationale else "-",
            f"{rationale.score:.3f}" if rationale else "-",
            str(sets) if sets is not None else "-",
        )
    console.print(table)

    if rank:
        ranking = rank_candidates(selection_input, phase, config=engine_config)
        ranked = Table(title=f"Candidate Ranking ({phase.value})", box=box.ROUNDED)
        ranked.add_column("#", justify="right")
        ranked.add_column("Exercise", style="cyan")
        ranked.add_column("Score", justify="right", style="yellow")
        ranked.add_column("Fatigue", justify="right")
        for i, candidate in enumerate(ranking[:limit], 1):
            ranked.add_row(
                str(i), candidate.name, f"{candidate.score:.3f}", str(candidate.fatigue_cost)
            )
        console.print(ranked)


@app.command()
def substitutes(
    ctx: typer.Context,
    exercise: str = typer.Option(..., "--exercise", "-e", help="Exercise id to replace"),
    library: Path = typer.Option(..., "--library", "-l", help="Exercise library JSON", exists=True),
    equipment: Optional[List[EquipmentType]] = typer.Option(
        None, "--equipment", help="Available equipment (repeatable; default: everything)"
    ),
    pain: Optional[List[str]] = typer.Option(
        None, "--pain", help="Pain flag as body_part=severity (repeatable)"
    ),
):
    """
    Suggest up to three replacements for an exercise.
    """
    engine_config = _config(ctx)
    try:
        exercises = load_library(library, engine_config)
    except ValueError as e:
        console.print(f"[red]✗ Failed to load library: {e}[/red]")
        raise typer.Exit(1)

    target = index_library(exercises).get(exercise)
    if target is None:
        console.print(f"[red]✗ Exercise not found: {exercise}[/red]")
        raise typer.Exit(1)

    available = equipment or list(EquipmentType)
    suggestions = suggest_substitutes(
        target, exercises, available, _parse_pain_flags(pain), engine_config
    )
    if not suggestions:
        console.print(f"[yellow]No substitutes found for {target.name}[/yellow]")
        return

    table = Table(title=f"Substitutes for {target.name}", box=box.ROUNDED)
    table.add_column("Exercise", style="cyan")
    table.add_column("Score", justify="right", style="yellow")
    table.add_column("Primary muscles")
    for suggestion in suggestions:
        table.add_row(
            suggestion.exercise.name,
            f"{suggestion.score:.2f}",
            ", ".join(suggestion.exercise.primary_muscles),
        )
    console.print(table)


@app.command()
def periodization(
    ctx: typer.Context,
    goal: PrimaryGoal = typer.Option(PrimaryGoal.HYPERTROPHY, "--goal", "-g"),
    training_age: Optional[TrainingAge] = typer.Option(None, "--training-age", "-a"),
):
    """
    Show the week-by-week modifiers for one training block.
    """
    engine_config = _config(ctx)
    block_length = (engine_config or EngineConfig()).block_length

    table = Table(title=f"Block periodization ({goal.value})", box=box.ROUNDED)
    table.add_column("Week", justify="right")
    table.add_column("RPE offset", justify="right")
    table.add_column("Set multiplier", justify="right")
    table.add_column("Back-off", justify="right")
    table.add_column("Deload", justify="center")
    for week in range(1, block_length + 1):
        modifiers = get_periodization_modifiers(week, goal, training_age, engine_config)
        table.add_row(
            str(week),
            f"{modifiers.rpe_offset:+.1f}",
            f"{modifiers.set_multiplier:.2f}",
            f"{modifiers.back_off_multiplier:.2f}",
            "✓" if modifiers.is_deload else "",
        )
    console.print(table)


@app.command()
def recovery(
    ctx: typer.Context,
    history: Path = typer.Option(..., "--history", help="History JSON", exists=True),
    library: Path = typer.Option(..., "--library", "-l", help="Exercise library JSON", exists=True),
    at: Optional[datetime] = typer.Option(
        None, "--at", help="Reference time (default: latest logged session)"
    ),
):
    """
    Show SRA recovery status for every tracked muscle.
    """
    engine_config = _config(ctx)
    try:
        exercises = load_library(library, engine_config)
    except ValueError as e:
        console.print(f"[red]✗ Failed to load library: {e}[/red]")
        raise typer.Exit(1)

    recovery_map = build_recovery_map(_load_history(history), exercises, at, engine_config)

    table = Table(title="Muscle Recovery", box=box.ROUNDED)
    table.add_column("Muscle", style="cyan")
    table.add_column("Hours since", justify="right")
    table.add_column("Window", justify="right")
    table.add_column("Recovered", justify="right")
    for muscle, state in recovery_map.items():
        color = "green" if state.is_recovered else "yellow"
        table.add_row(
            muscle,
            f"{state.hours_since_trained:g}" if state.hours_since_trained is not None else "-",
            f"{state.sra_hours}h",
            f"[{color}]{state.recovery_percent}%[/{color}]",
        )
    console.print(table)


if __name__ == "__main__":
    app()
