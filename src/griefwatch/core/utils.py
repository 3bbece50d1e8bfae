"""
Utility functions for the Griefwatch engine.

This module provides:
- Out-of-domain number guards (NaN, infinities, negative ticks)
- Small numeric helpers shared by the detectors
- A performance monitor for the orchestration layer
"""

import logging
import math
import time
from collections.abc import Iterable
from typing import Any

import numpy as np

logger = logging.getLogger(__name__)


def finite_or_none(value: Any) -> float | None:
    """
    Read a number, treating anything outside the numeric domain as absent.

    Args:
        value: Raw value from the timeline (int, float, str, None, ...)

    Returns:
        The value as a float, or None for None/NaN/inf/unparseable input
    """
    if value is None or isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    if math.isnan(number) or math.isinf(number):
        return None
    return number


def tick_or_none(value: Any) -> int | None:
    """Read a tick; negative or non-finite ticks are treated as absent."""
    number = finite_or_none(value)
    if number is None or number < 0:
        return None
    return int(number)


def non_negative_or_none(value: Any) -> float | None:
    """Read an amount that cannot be negative (damage, money)."""
    number = finite_or_none(value)
    if number is None or number < 0:
        return None
    return number


def safe_divide(numerator: float, denominator: float, default: float = 0.0) -> float:
    """
    Safely divide two numbers, returning default if denominator is 0.

    Args:
        numerator: Top of fraction
        denominator: Bottom of fraction
        default: Value to return if denominator is 0

    Returns:
        Result of division or default
    """
    if denominator == 0:
        return default
    return numerator / denominator


def clamp(value: float, min_val: float, max_val: float) -> float:
    """Clamp a value to a range."""
    return max(min_val, min(value, max_val))


def median(values: Iterable[float]) -> float:
    """Median of the values, 0.0 for an empty input."""
    data = list(values)
    if not data:
        return 0.0
    return float(np.median(np.asarray(data, dtype=float)))


def mean(values: Iterable[float]) -> float:
    """Arithmetic mean of the values, 0.0 for an empty input."""
    data = list(values)
    if not data:
        return 0.0
    return float(np.mean(np.asarray(data, dtype=float)))


def format_money(amount: float) -> str:
    """Format a money amount like the in-game HUD: $4,750."""
    return f"${int(round(amount)):,}"


class PerformanceMonitor:
    """
    Context manager for monitoring performance of code blocks.

    Usage:
        with PerformanceMonitor("economy griefing"):
            detect_economy_griefing(...)
    """

    def __init__(self, operation_name: str, log_level: int = logging.DEBUG):
        self.operation_name = operation_name
        self.log_level = log_level
        self.start_time: float | None = None
        self.elapsed: float = 0.0

    def __enter__(self):
        self.start_time = time.perf_counter()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.elapsed = time.perf_counter() - (self.start_time or 0)
        if exc_type is not None:
            logger.error(f"{self.operation_name} failed after {self.elapsed:.3f}s: {exc_val}")
        else:
            logger.log(self.log_level, f"{self.operation_name} completed in {self.elapsed:.3f}s")
        return False
