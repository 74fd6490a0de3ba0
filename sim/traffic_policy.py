#!/usr/bin/env python3
"""
sim/traffic_policy.py
=====================
Tunable routing, sensing and fusion parameters for the hazard simulation.
Every constant lives in the frozen :class:`RoutingPolicy` dataclass so that
experiments can swap policies without touching code.

Also provides two stateless cost helpers shared by the road graph and the
decision logic:

* :func:`hazard_penalty` — extra traversal cost caused by hazards.
* :func:`slowdown_surcharge` — extra cost of an edge driven in slow-down mode.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable


@dataclass(frozen=True)
class RoutingPolicy:
    """Immutable bag of every tunable simulation parameter.

    Groups: routing costs, decision state machine, proximity, vision,
    inertial, acoustic, fusion, hazards, event log.
    """

    # ── Routing costs ─────────────────────────────────────────────────────
    hazard_penalty_factor: float = 4.0
    """Cost added per unit of hazard severity on an edge."""

    slowdown_factor: float = 0.55
    """Speed multiplier applied by a SLOW_DOWN decision (must be < 1)."""

    switch_penalty: float = 1.0
    """Cost a reroute must beat the current path by before it is taken."""

    # ── Decision state machine ────────────────────────────────────────────
    decision_ttl_ms: float = 2800.0
    """Lifetime of a SLOW_DOWN / REROUTE decision before reverting to CRUISE."""

    vehicle_radius: float = 140.0
    """Detection / communication radius of every vehicle (world units)."""

    # ── Proximity ─────────────────────────────────────────────────────────
    proximity_radius: float = 22.0
    """A vehicle closer than this to a hazard observes it."""

    proximity_rearm_ms: float = 4000.0
    """Minimum interval between two observations of one (vehicle, hazard) pair."""

    # ── Vision ────────────────────────────────────────────────────────────
    vision_buffer_ms: float = 2000.0
    """Lifetime of a vision detection."""

    vision_sweep_ms: float = 250.0
    """Period of the expired-detection sweep."""

    vision_jitter: float = 0.05
    """Half-width of the uniform confidence jitter."""

    # ── Inertial ──────────────────────────────────────────────────────────
    imu_window_ms: float = 2000.0
    """Rolling sample window, also the freshness window of IMU features."""

    imu_feature_interval_ms: float = 100.0
    """Throttle for the peak / impulse / half-width recomputation."""

    imu_alpha: float = 0.5
    imu_beta: float = 0.1

    imu_base_noise: float = 0.01
    imu_noise_gain: float = 0.05

    # ── Acoustic ──────────────────────────────────────────────────────────
    audio_freshness_ms: float = 1500.0
    """Audio features older than this contribute nothing."""

    audio_jitter: float = 0.03

    # ── Fusion ────────────────────────────────────────────────────────────
    fusion_period_ms: float = 125.0
    """Period of the fusion evaluation phase."""

    vision_weight: float = 0.5
    imu_weight: float = 0.7
    audio_weight: float = 0.3

    severity_prior: float = 0.18
    """Share of the base hazard severity added to the fused probability."""

    severity_ema_keep: float = 0.72
    """Weight of the previous value in the severity moving average."""

    probability_threshold: float = 0.7
    severity_threshold: float = 0.4

    mitigation_cooldown_ms: float = 1500.0
    """Minimum interval between two mitigations triggered by one hazard."""

    # ── Hazards ───────────────────────────────────────────────────────────
    hazard_ttl_ms: float = 15000.0
    """Lifetime of a spawned hazard."""

    work_zone_close_probability: float = 0.35
    """Chance that a work-zone hazard closes its edge."""

    auto_spawn_rate_hz: float = 0.0
    """Random hazards spawned per simulated second (0 disables)."""

    v2x_alert_on_spawn: bool = False
    """Decide SLOW_DOWN / REROUTE for nearby vehicles as soon as a hazard spawns."""

    # ── Event log ─────────────────────────────────────────────────────────
    event_log_size: int = 120
    """Number of events kept in the most-recent-first log."""


def hazard_penalty(severities: Iterable[float], policy: RoutingPolicy) -> float:
    """Traversal cost added by hazards of the given severities.

    Severities are clamped at zero so a penalty can never reduce the cost.
    """
    return sum(max(0.0, s) for s in severities) * policy.hazard_penalty_factor


def slowdown_surcharge(base_cost: float, policy: RoutingPolicy) -> float:
    """Extra cost of driving an edge at ``slowdown_factor`` speed.

    ``base_cost × (1/slowdown_factor − 1)`` with the factor floored so a
    zero factor cannot divide by zero.
    """
    factor = max(policy.slowdown_factor, 1e-3)
    return max(0.0, max(0.0, base_cost) * (1.0 / factor - 1.0))
