"""Small numeric helpers shared by the scoreboard and the rating service."""

from __future__ import annotations

import math


def round_half_up(value: float) -> int:
    """Round to the nearest integer with ties going towards +infinity.

    Python's ``round`` uses banker's rounding, which would turn ``0.5`` into
    ``0``. Ratings and display percentages round ties upwards instead.
    """

    return int(math.floor(value + 0.5))


def clamp(value: float, low: float, high: float) -> float:
    """Return ``value`` limited to the closed interval ``[low, high]``."""

    return min(max(value, low), high)
