"""Rounding and clamping helpers shared by the engine modules."""

import math


def clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


def round_half_up(value: float) -> int:
    """Round to the nearest integer with .5 going up (Python's round() is banker's)."""
    return int(math.floor(value + 0.5))


def round_to_half(value: float) -> float:
    """Round a load to the nearest 0.5."""
    return math.floor(value * 2 + 0.5) / 2
