#!/usr/bin/env python3
"""
sim/physics.py
==============
Low-level numeric helpers used by every simulation module.

Keeping these in a separate module avoids circular imports and makes unit
testing straightforward.  None of the helpers raise on degenerate input:
clamps are corrective and divisions floor their denominator instead.
"""

from __future__ import annotations

import math
from typing import Tuple

EPSILON: float = 1e-6

Point = Tuple[float, float]


def clamp(value: float, lo: float = 0.0, hi: float = 1.0) -> float:
    """Clamp *value* into ``[lo, hi]``.  NaN collapses to *lo*."""
    if value != value:  # NaN
        return lo
    return max(lo, min(hi, value))


def floor_eps(value: float, eps: float = EPSILON) -> float:
    """Return *value* floored to *eps* so it can be used as a denominator."""
    if value != value or value < eps:
        return eps
    return value


def lerp(a: float, b: float, t: float) -> float:
    return a + (b - a) * t


def lerp_point(p: Point, q: Point, t: float) -> Point:
    """Linear interpolation between two 2-D points."""
    return (lerp(p[0], q[0], t), lerp(p[1], q[1], t))


def squared_distance(p: Point, q: Point) -> float:
    """Squared Euclidean distance (no square root)."""
    dx = p[0] - q[0]
    dy = p[1] - q[1]
    return dx * dx + dy * dy


def distance(p: Point, q: Point) -> float:
    return math.hypot(p[0] - q[0], p[1] - q[1])
