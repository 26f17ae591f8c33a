"""
Exercise library loading and integrity checks.

The library is reference data owned outside the engine. Before any selection
runs it is normalized once (legacy flags folded, muscle names mapped onto the
landmark table) and validated; corrupt data raises ``LibraryIntegrityError``
before any output is produced.
"""

import json
import logging
import re
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Union

from pydantic import ValidationError

from liftplan.config import EngineConfig, resolve_config
from liftplan.schemas import Exercise, SplitTag

logger = logging.getLogger(__name__)


class LibraryIntegrityError(ValueError):
    """Raised when the exercise library contains data the engine cannot reason about."""


def normalize_name(name: str) -> str:
    """Lower-case, trim and collapse whitespace for name matching."""
    return re.sub(r"\s+", " ", name.strip().lower())


def _dedupe(values: Iterable[str]) -> List[str]:
    seen = []
    for value in values:
        if value not in seen:
            seen.append(value)
    return seen


def normalize_exercise(exercise: Exercise, config: Optional[EngineConfig] = None) -> Exercise:
    """
    Return a copy with muscle names canonicalized against the landmark table.

    An exercise listing no primary muscles has its secondary muscles promoted
    to primary.
    """
    cfg = resolve_config(config)
    primary = _dedupe(cfg.canonical_muscle(m) for m in exercise.primary_muscles if m.strip())
    secondary = _dedupe(
        cfg.canonical_muscle(m)
        for m in exercise.secondary_muscles
        if m.strip() and cfg.canonical_muscle(m) not in primary
    )
    if not primary:
        primary, secondary = secondary, []
    return exercise.model_copy(update={"primary_muscles": primary, "secondary_muscles": secondary})


def validate_library(exercises: List[Exercise]) -> None:
    """
    Check library-wide invariants.

    Raises:
        LibraryIntegrityError: On duplicate ids or an exercise tagged both
            push and pull
    """
    dual_tagged = sorted(
        e.id
        for e in exercises
        if SplitTag.PUSH in e.split_tags and SplitTag.PULL in e.split_tags
    )
    if dual_tagged:
        raise LibraryIntegrityError(
            f"Exercises tagged both push and pull: {', '.join(dual_tagged)}"
        )

    seen: Dict[str, int] = {}
    for exercise in exercises:
        seen[exercise.id] = seen.get(exercise.id, 0) + 1
    duplicates = sorted(eid for eid, count in seen.items() if count > 1)
    if duplicates:
        raise LibraryIntegrityError(f"Duplicate exercise ids: {', '.join(duplicates)}")


def normalize_library(
    exercises: Iterable[Union[Exercise, Dict[str, Any]]],
    config: Optional[EngineConfig] = None,
) -> List[Exercise]:
    """
    Build a validated, normalized library from raw records.

    Args:
        exercises: Exercise models or plain dicts
        config: Engine configuration (defaults to the shared default)

    Returns:
        Normalized exercises in input order

    Raises:
        LibraryIntegrityError: If a record is malformed or a library-wide
            invariant is violated
    """
    cfg = resolve_config(config)
    normalized = []
    for raw in exercises:
        try:
            exercise = raw if isinstance(raw, Exercise) else Exercise(**raw)
        except ValidationError as e:
            raise LibraryIntegrityError(f"Invalid exercise record: {e}") from e
        normalized.append(normalize_exercise(exercise, cfg))

    validate_library(normalized)
    logger.debug("Normalized exercise library with %d exercises", len(normalized))
    return normalized


def load_library(library_path: Path, config: Optional[EngineConfig] = None) -> List[Exercise]:
    """
    Load an exercise library from a JSON file.

    The file holds either a list of exercises or an object with an
    ``exercises`` key.

    Raises:
        FileNotFoundError: If the file doesn't exist
        ValueError: If the JSON is invalid
        LibraryIntegrityError: If the library fails validation
    """
    library_path = Path(library_path)
    if not library_path.exists():
        raise FileNotFoundError(f"Exercise library not found: {library_path}")

    with open(library_path, "r") as f:
        try:
            data = json.load(f)
        except json.JSONDecodeError as e:
            raise ValueError(f"Invalid exercise library file: {e}") from e

    if isinstance(data, dict):
        data = data.get("exercises", [])
    if not isinstance(data, list):
        raise ValueError("Invalid exercise library file: expected a list of exercises")

    return normalize_library(data, config)


def index_library(exercises: Iterable[Exercise]) -> Dict[str, Exercise]:
    return {exercise.id: exercise for exercise in exercises}
