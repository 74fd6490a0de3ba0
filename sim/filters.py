"""
sim/filters.py
==============
Scalar alpha-beta (g-h) filter used to denoise the synthetic vertical
jolt channel of the inertial sensor.
"""

from __future__ import annotations

from typing import Optional

# Lower bound on the time step (seconds).
MIN_DT_S: float = 0.001


class AlphaBetaFilter:
    """Constant-velocity predict / correct estimator.

    Parameters
    ----------
    alpha : float
        Position gain (``0 < alpha < 1``).
    beta : float
        Rate gain.
    """

    def __init__(self, alpha: float = 0.5, beta: float = 0.1) -> None:
        self.alpha = alpha
        self.beta = beta
        self.estimate: float = 0.0
        self.rate: float = 0.0
        self.last_timestamp_ms: Optional[float] = None

    def reset(self) -> None:
        self.estimate = 0.0
        self.rate = 0.0
        self.last_timestamp_ms = None

    def update(self, measurement: float, now_ms: float) -> float:
        """Fold one measurement taken at *now_ms* into the estimate.

        The first measurement seeds the estimate.  Out-of-order or repeated
        timestamps use the ``MIN_DT_S`` floor instead of dividing by zero.
        """
        if self.last_timestamp_ms is None:
            self.estimate = measurement
            self.rate = 0.0
            self.last_timestamp_ms = now_ms
            return self.estimate

        dt = max((now_ms - self.last_timestamp_ms) / 1000.0, MIN_DT_S)
        x_pred = self.estimate + self.rate * dt
        residual = measurement - x_pred
        self.estimate = x_pred + self.alpha * residual
        self.rate = self.rate + (self.beta / dt) * residual
        self.last_timestamp_ms = now_ms
        return self.estimate
