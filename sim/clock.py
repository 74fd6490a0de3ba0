"""
sim/clock.py
============
The single source of simulated time and the periodic phases hung off it.

* :class:`SimulationClock` — owns ``now_ms``; only advanced by the tick.
* :class:`PeriodicPhase` — fires a slower phase (fusion, vision sweep, IMU
  feature recompute) on its own period, independent of the tick length.
* :class:`TickAccumulator` — turns irregular host wall-clock time into whole
  fixed simulation steps.
"""

from __future__ import annotations

import math
from typing import Optional


class SimulationClock:
    """Monotonic simulated clock in milliseconds."""

    def __init__(self, start_ms: float = 0.0) -> None:
        self.now_ms = float(start_ms)

    def advance(self, dt_ms: float) -> float:
        """Move time forward; negative or NaN steps count as zero.

        Returns the effective step.
        """
        if dt_ms != dt_ms or dt_ms < 0 or math.isinf(dt_ms):
            dt_ms = 0.0
        self.now_ms += dt_ms
        return dt_ms


class PeriodicPhase:
    """Fires at most once per :meth:`due` call, every *period_ms*.

    After a long stall the phase fires once and re-arms from the current
    time instead of replaying every missed period.
    """

    def __init__(self, period_ms: float) -> None:
        self.period_ms = max(float(period_ms), 1e-3)
        self._next_ms: Optional[float] = None

    def due(self, now_ms: float) -> bool:
        if self._next_ms is None:
            self._next_ms = now_ms + self.period_ms
            return False
        if now_ms < self._next_ms:
            return False
        self._next_ms += self.period_ms
        if self._next_ms <= now_ms:
            self._next_ms = now_ms + self.period_ms
        return True

    def reset(self) -> None:
        self._next_ms = None


class TickAccumulator:
    """Fixed-step accumulator for hosts driven by wall-clock time.

    Parameters
    ----------
    step_ms : float
        Length of one simulation step.
    max_steps : int
        Upper bound of steps returned by one :meth:`feed`; older backlog is
        dropped so a stalled host does not spiral.
    """

    def __init__(self, step_ms: float, max_steps: int = 5) -> None:
        self.step_ms = max(float(step_ms), 1e-3)
        self.max_steps = max(1, int(max_steps))
        self._acc = 0.0

    def feed(self, elapsed_ms: float) -> int:
        if elapsed_ms != elapsed_ms or elapsed_ms < 0:
            elapsed_ms = 0.0
        self._acc += elapsed_ms
        steps = int(self._acc // self.step_ms)
        if steps > self.max_steps:
            steps = self.max_steps
            self._acc = 0.0
        else:
            self._acc -= steps * self.step_ms
        return steps
