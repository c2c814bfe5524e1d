"""
Template usage statistics.

Pure functions used to fold one more completed onboarding into a
template's aggregate statistics.
"""

import math
from typing import Optional


def round_half_up(value: float) -> int:
    """Round to the nearest integer with halves going up (2.5 -> 3, -2.5 -> -2)."""
    return math.floor(value + 0.5)


def running_average(
    old_average: Optional[float],
    old_count: int,
    new_sample: float
) -> int:
    """
    Fold a new sample into a running average.

    Args:
        old_average: Average over the previous ``old_count`` samples, if any
        old_count: Number of samples already folded in
        new_sample: The new value

    Returns:
        The rounded average over ``old_count + 1`` samples; the sample itself
        when there is no previous average
    """
    if not old_average or old_count <= 0:
        return round_half_up(new_sample)
    return round_half_up((old_average * old_count + new_sample) / (old_count + 1))


def running_success_rate(
    old_rate: Optional[float],
    old_count: int,
    success: bool
) -> int:
    """
    Fold one more outcome into a success rate percentage.

    The previous number of successes is recovered from the rounded rate, so
    the result is rounded to a whole percent as well.
    """
    old_successes = round_half_up((old_rate or 0) * max(old_count, 0) / 100)
    total_successes = old_successes + (1 if success else 0)
    return round_half_up(total_successes / (max(old_count, 0) + 1) * 100)
