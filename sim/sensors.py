"""
sim/sensors.py
==============
Synthetic evidence generators fired when a vehicle passes close to a
hazard.

Three independent producers feed :class:`~sim.evidence.HazardEvidenceStore`:

* :class:`VisionSensor` — one buffered detection per hazard, latest wins,
  purged by a periodic sweep.
* :class:`InertialSensor` — per-vehicle jolt channel: shaped pulses plus
  noise, smoothed by an :class:`~sim.filters.AlphaBetaFilter`, with peak /
  impulse / half-width features recomputed on a throttle.
* :class:`AcousticSensor` — one instantaneous feature per pass, no buffer.

:func:`scan_proximity` is the entry point called once per vehicle per tick.
"""

from __future__ import annotations

import logging
import math
from collections import deque
from dataclasses import dataclass
from typing import TYPE_CHECKING, Deque, Dict, List, Optional, Tuple

import numpy as np

from sim.evidence import AudioFeature, HazardEvidence, ImuFeature, Modality, VisionDetection
from sim.filters import AlphaBetaFilter
from sim.network import Edge, Hazard, HazardId, HazardKind
from sim.physics import Point, clamp, squared_distance
from sim.traffic_policy import RoutingPolicy

if TYPE_CHECKING:
    from sim.context import SimulationContext

log = logging.getLogger("sensors")


# ── Vision ────────────────────────────────────────────────────────────────────

class VisionSensor:
    """Camera detections buffered for ``vision_buffer_ms``."""

    def __init__(self, policy: RoutingPolicy) -> None:
        self.policy = policy
        self.active: Dict[HazardId, VisionDetection] = {}

    def observe(
        self, ctx: "SimulationContext", vehicle_id: str, hazard: Hazard, evidence: HazardEvidence,
    ) -> VisionDetection:
        now = ctx.now_ms
        jitter = ctx.rng.uniform(-self.policy.vision_jitter, self.policy.vision_jitter)
        confidence = clamp(hazard.severity * 0.6 + (1.0 - ctx.noise_level) * 0.3 + jitter)
        det = VisionDetection(
            hazard_id=hazard.id,
            vehicle_id=vehicle_id,
            confidence=confidence,
            ts_ms=now,
            expires_ms=now + self.policy.vision_buffer_ms,
        )
        self.active[hazard.id] = det
        evidence.record(Modality.VISION, confidence, now)
        return det

    def detection(self, hazard_id: str) -> Optional[VisionDetection]:
        return self.active.get(HazardId(hazard_id))

    def sweep(self, now_ms: float) -> int:
        """Drop expired detections; returns how many were purged."""
        expired = [hid for hid, det in self.active.items() if det.expired(now_ms)]
        for hid in expired:
            del self.active[hid]
        if expired:
            log.debug("vision sweep purged %d detection(s)", len(expired))
        return len(expired)

    def discard(self, hazard_id: str) -> None:
        self.active.pop(HazardId(hazard_id), None)

    def clear(self) -> None:
        self.active.clear()


# ── Inertial ──────────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class PulseShape:
    """Kind-specific jolt waveform.

    ``sigma_div`` > 0 selects a gaussian with ``σ = duration / sigma_div``;
    0 selects a squared sine over the whole duration.
    """

    duration_ms: float
    gain: float
    sigma_div: float


PULSE_SHAPES: Dict[HazardKind, PulseShape] = {
    HazardKind.POTHOLE: PulseShape(duration_ms=260.0, gain=1.0, sigma_div=6.0),
    HazardKind.DEBRIS: PulseShape(duration_ms=160.0, gain=0.7, sigma_div=10.0),
    HazardKind.WORK: PulseShape(duration_ms=900.0, gain=0.45, sigma_div=0.0),
}


@dataclass(frozen=True)
class Pulse:
    hazard_id: HazardId
    shape: PulseShape
    start_ms: float
    amplitude: float

    def finished(self, now_ms: float) -> bool:
        return now_ms - self.start_ms > self.shape.duration_ms

    def sample(self, now_ms: float) -> float:
        s = now_ms - self.start_ms
        d = self.shape.duration_ms
        if s < 0 or s > d:
            return 0.0
        if self.shape.sigma_div > 0:
            sigma = d / self.shape.sigma_div
            z = (s - d / 2.0) / sigma
            return self.amplitude * math.exp(-0.5 * z * z)
        return self.amplitude * math.sin(math.pi * s / d) ** 2


class InertialChannel:
    """One vehicle's vertical-jolt channel."""

    def __init__(self, policy: RoutingPolicy) -> None:
        self.policy = policy
        self.pulses: List[Pulse] = []
        self.filter = AlphaBetaFilter(policy.imu_alpha, policy.imu_beta)
        # (t_ms, raw, filtered)
        self.samples: Deque[Tuple[float, float, float]] = deque()
        # (start_ms, hazard_id) of pulses that started inside the window
        self.starts: Deque[Tuple[float, HazardId]] = deque()

    def enqueue(self, pulse: Pulse) -> None:
        self.pulses.append(pulse)
        self.starts.append((pulse.start_ms, pulse.hazard_id))

    def sample(self, now_ms: float, noise_sigma: float, gauss) -> float:
        raw = sum(p.sample(now_ms) for p in self.pulses) + gauss(0.0, noise_sigma)
        self.pulses = [p for p in self.pulses if not p.finished(now_ms)]
        filtered = self.filter.update(raw, now_ms)
        self.samples.append((now_ms, raw, filtered))
        horizon = now_ms - self.policy.imu_window_ms
        while self.samples and self.samples[0][0] < horizon:
            self.samples.popleft()
        while self.starts and self.starts[0][0] < horizon:
            self.starts.popleft()
        return filtered

    def features(self, now_ms: float) -> Optional[ImuFeature]:
        """Peak, impulse and half-max width of the filtered window.

        Attributed to the hazard whose pulse started most recently inside
        the window; ``None`` when no pulse did.
        """
        if not self.starts or not self.samples:
            return None
        t = np.fromiter((s[0] for s in self.samples), dtype=float) / 1000.0
        y = np.abs(np.fromiter((s[2] for s in self.samples), dtype=float))
        peak = float(y.max())
        impulse = float(np.sum((y[1:] + y[:-1]) * np.diff(t)) / 2.0) if len(y) > 1 else 0.0
        half_width = 0.0
        if peak > 0.0:
            above = np.flatnonzero(y >= peak / 2.0)
            half_width = float(t[above[-1]] - t[above[0]])
        return ImuFeature(
            hazard_id=self.starts[-1][1],
            peak=peak,
            impulse=impulse,
            half_width=half_width,
            ts_ms=now_ms,
        )

    def drop_hazard(self, hazard_id: str) -> None:
        self.pulses = [p for p in self.pulses if p.hazard_id != hazard_id]
        self.starts = deque(s for s in self.starts if s[1] != hazard_id)


class InertialSensor:
    """Pulse queues and filtered windows for every vehicle."""

    def __init__(self, policy: RoutingPolicy) -> None:
        self.policy = policy
        self.channels: Dict[str, InertialChannel] = {}
        self._last_features_ms: Optional[float] = None

    def observe(
        self, ctx: "SimulationContext", vehicle_id: str, hazard: Hazard, evidence: HazardEvidence,
    ) -> Pulse:
        shape = PULSE_SHAPES[hazard.kind]
        pulse = Pulse(
            hazard_id=hazard.id,
            shape=shape,
            start_ms=ctx.now_ms,
            amplitude=shape.gain * (0.4 + 0.6 * clamp(hazard.severity)),
        )
        channel = self.channels.get(vehicle_id)
        if channel is None:
            channel = self.channels[vehicle_id] = InertialChannel(self.policy)
        channel.enqueue(pulse)
        return pulse

    def step(self, ctx: "SimulationContext") -> int:
        """Sample every channel; recompute features when the throttle allows.

        Returns the number of hazards whose IMU features were refreshed.
        """
        now = ctx.now_ms
        sigma = self.policy.imu_base_noise + self.policy.imu_noise_gain * ctx.noise_level
        for channel in self.channels.values():
            channel.sample(now, sigma, ctx.rng.gauss)

        if (
            self._last_features_ms is not None
            and now - self._last_features_ms < self.policy.imu_feature_interval_ms
        ):
            return 0
        self._last_features_ms = now

        best: Dict[HazardId, ImuFeature] = {}
        for channel in self.channels.values():
            feat = channel.features(now)
            if feat is None:
                continue
            prev = best.get(feat.hazard_id)
            if prev is None or feat.peak > prev.peak:
                best[feat.hazard_id] = feat

        for hazard_id, feat in best.items():
            ev = ctx.evidence.get(hazard_id)
            if ev is None:
                continue
            ev.imu = feat
            ev.record(Modality.IMU, feat.peak, now)
        return len(best)

    def discard(self, hazard_id: str) -> None:
        for channel in self.channels.values():
            channel.drop_hazard(hazard_id)

    def clear(self) -> None:
        self.channels.clear()
        self._last_features_ms = None


# ── Acoustic ──────────────────────────────────────────────────────────────────

# kind → (energy, screech)
_ACOUSTIC_SIGNATURE: Dict[HazardKind, Tuple[float, float]] = {
    HazardKind.POTHOLE: (0.8, 0.3),
    HazardKind.DEBRIS: (0.6, 0.7),
    HazardKind.WORK: (0.5, 0.2),
}


class AcousticSensor:
    """Instantaneous audio features; they age out at fusion time."""

    def __init__(self, policy: RoutingPolicy) -> None:
        self.policy = policy

    def observe(
        self, ctx: "SimulationContext", vehicle_id: str, hazard: Hazard, evidence: HazardEvidence,
    ) -> AudioFeature:
        base_energy, base_screech = _ACOUSTIC_SIGNATURE[hazard.kind]
        noise = ctx.noise_level
        jitter = ctx.rng.uniform(-self.policy.audio_jitter, self.policy.audio_jitter)
        feat = AudioFeature(
            hazard_id=hazard.id,
            energy=clamp(base_energy * (0.5 + 0.5 * hazard.severity) - 0.15 * noise + jitter),
            screech=clamp(base_screech * hazard.severity - 0.10 * noise),
            ts_ms=ctx.now_ms,
        )
        evidence.audio = feat
        evidence.record(Modality.AUDIO, feat.energy, ctx.now_ms)
        return feat


# ── Proximity ─────────────────────────────────────────────────────────────────

def scan_proximity(ctx: "SimulationContext", vehicle_id: str, position: Point) -> List[HazardId]:
    """Fire the enabled sensors for every hazard near *position*.

    Each (vehicle, hazard) pair fires at most once per
    ``proximity_rearm_ms``.  Returns the ids of hazards observed.
    """
    policy = ctx.policy
    now = ctx.now_ms
    thresh = policy.proximity_radius * policy.proximity_radius
    observed: List[HazardId] = []

    for edge, hz in list(ctx.graph.hazards()):
        if squared_distance(position, ctx.graph.point_on_edge(edge, hz.pos)) >= thresh:
            continue
        key = (vehicle_id, hz.id)
        last = ctx.proximity_seen.get(key)
        if last is not None and now - last < policy.proximity_rearm_ms:
            continue
        ctx.proximity_seen[key] = now
        _observe_hazard(ctx, vehicle_id, edge, hz)
        observed.append(hz.id)
    return observed


def _observe_hazard(ctx: "SimulationContext", vehicle_id: str, edge: Edge, hz: Hazard) -> None:
    evidence = ctx.evidence.observe(hz, edge.id)

    if ctx.enabled(Modality.VISION):
        det = ctx.vision.observe(ctx, vehicle_id, hz, evidence)
        ctx.emit(
            "sensor.vision", vehicle_id,
            f"Vision • {hz.kind.value} {hz.id} on {edge.id} ({det.confidence:.0%})",
            hazard_id=hz.id, edge_id=edge.id, confidence=det.confidence,
        )
    if ctx.enabled(Modality.IMU):
        pulse = ctx.inertial.observe(ctx, vehicle_id, hz, evidence)
        ctx.emit(
            "sensor.imu", vehicle_id,
            f"Accel • jolt {pulse.amplitude:.2f}g from {hz.id} on {edge.id}",
            hazard_id=hz.id, edge_id=edge.id, amplitude=pulse.amplitude,
        )
    if ctx.enabled(Modality.AUDIO):
        feat = ctx.acoustic.observe(ctx, vehicle_id, hz, evidence)
        ctx.emit(
            "sensor.audio", vehicle_id,
            f"Acoustic • energy {feat.energy:.2f} screech {feat.screech:.2f} near {hz.id}",
            hazard_id=hz.id, edge_id=edge.id, energy=feat.energy, screech=feat.screech,
        )
    log.debug("%s observed %s (%s) on %s", vehicle_id, hz.id, hz.kind.value, edge.id)
