"""Round-half-away-from-zero, used for odds (2 dp) and payouts (whole points).

Python's round() is half-to-even; market figures round 0.5 away from zero.
"""

from __future__ import annotations

import math


def round_half_away(value: float, ndigits: int = 0) -> float:
    factor = 10**ndigits
    scaled = abs(value) * factor
    whole = math.floor(scaled)
    if scaled - whole >= 0.5:
        whole += 1
    return math.copysign(whole, value) / factor


def round_points(value: float) -> int:
    """Nearest whole point, halves away from zero."""
    return int(round_half_away(value))
