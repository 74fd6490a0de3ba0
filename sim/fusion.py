#!/usr/bin/env python3
"""
sim/fusion.py
=============
Fuses vision, inertial and acoustic evidence into a hazard probability and
a smoothed severity, and triggers routing mitigations.

Every hazard with evidence is fused independently on each evaluation and
gets its own :class:`FusionResult`.  The result reported as "latest" is the
one for the most recently observed hazard, which is what a single-hazard
HUD displays.

Mitigation needs two thresholds (probability *and* smoothed severity) plus
a per-hazard cooldown, so a single noisy spike cannot keep slowing down or
rerouting vehicles.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Callable, Dict, Iterable, Optional

from sim.evidence import AudioFeature, HazardEvidence, ImuFeature, Modality, VisionDetection
from sim.physics import clamp, floor_eps
from sim.traffic_policy import RoutingPolicy

if TYPE_CHECKING:
    from sim.context import SimulationContext

log = logging.getLogger("fusion")


class FusionSource(str, Enum):
    """Which modality subset contributed to a result.

    Values are the alphabetically sorted, hyphen-joined modality names.
    """

    NONE = "none"
    AUDIO = "audio"
    IMU = "imu"
    VISION = "vision"
    AUDIO_IMU = "audio-imu"
    AUDIO_VISION = "audio-vision"
    IMU_VISION = "imu-vision"
    AUDIO_IMU_VISION = "audio-imu-vision"

    @classmethod
    def from_modalities(cls, modalities: Iterable[Modality]) -> "FusionSource":
        names = sorted({m.value for m in modalities})
        return cls("-".join(names)) if names else cls.NONE

    @property
    def modalities(self) -> frozenset:
        if self is FusionSource.NONE:
            return frozenset()
        return frozenset(Modality(part) for part in self.value.split("-"))


@dataclass(frozen=True)
class FusionResult:
    probability: float
    severity: float
    source: FusionSource
    hazard_id: Optional[str]
    edge_id: Optional[str]
    timestamp_ms: float
    vision_score: float = 0.0
    imu_score: float = 0.0
    audio_score: float = 0.0

    @classmethod
    def empty(cls, now_ms: float) -> "FusionResult":
        return cls(0.0, 0.0, FusionSource.NONE, None, None, now_ms)

    def as_dict(self) -> dict:
        return {
            "probability": self.probability,
            "severity": self.severity,
            "source": self.source.value,
            "hazard_id": self.hazard_id,
            "edge_id": self.edge_id,
            "timestamp_ms": self.timestamp_ms,
            "scores": {
                "vision": self.vision_score,
                "imu": self.imu_score,
                "audio": self.audio_score,
            },
        }


# ── Per-modality scores ───────────────────────────────────────────────────────

def vision_score(det: VisionDetection, now_ms: float, noise: float, policy: RoutingPolicy) -> float:
    age = max(0.0, now_ms - det.ts_ms)
    window = floor_eps(policy.vision_buffer_ms)
    return clamp(det.confidence * (1.0 - age / window) * (1.0 - noise * 0.35))


def imu_score(feat: ImuFeature, noise: float) -> float:
    return clamp(feat.peak * 0.55 + feat.impulse * 0.30 + feat.half_width * 0.35 - noise * 0.25)


def audio_score(feat: AudioFeature, noise: float) -> float:
    return clamp(feat.energy * 0.60 + feat.screech * 0.45 - noise * 0.20)


# Mitigation callback: (context, evidence) -> number of vehicles affected
MitigationHandler = Callable[["SimulationContext", HazardEvidence], int]


class FusionEngine:
    """Periodic fusion of the hazard evidence store.

    Parameters
    ----------
    policy : RoutingPolicy
        Weights, thresholds and windows.
    on_mitigation : callable or None
        Invoked when a hazard crosses both thresholds outside its cooldown.
    """

    def __init__(
        self,
        policy: Optional[RoutingPolicy] = None,
        on_mitigation: Optional[MitigationHandler] = None,
    ) -> None:
        self.policy = policy or RoutingPolicy()
        self.on_mitigation = on_mitigation
        self.mitigations: int = 0

    # ── evaluation ────────────────────────────────────────────────────────

    def evaluate(self, ctx: "SimulationContext") -> FusionResult:
        """Fuse every hazard; return the result for the most recent one."""
        now = ctx.now_ms
        results: Dict[str, FusionResult] = {}
        for hazard_id, ev in ctx.evidence.items():
            result = self.fuse(ctx, ev)
            results[hazard_id] = result
            self._maybe_mitigate(ctx, ev, result)

        ctx.fusion_results = results
        latest = results.get(ctx.evidence.latest_id) if ctx.evidence.latest_id else None
        if latest is None:
            latest = FusionResult.empty(now)
        ctx.latest_fusion = latest
        return latest

    def fuse(self, ctx: "SimulationContext", ev: HazardEvidence) -> FusionResult:
        """Fuse one hazard's evidence and update its severity EMA."""
        p = self.policy
        now = ctx.now_ms
        noise = clamp(ctx.noise_level)

        scores: Dict[Modality, float] = {
            Modality.VISION: 0.0, Modality.IMU: 0.0, Modality.AUDIO: 0.0,
        }
        if ctx.enabled(Modality.VISION):
            det = ctx.vision.detection(ev.hazard_id)
            if det is not None and not det.expired(now):
                scores[Modality.VISION] = vision_score(det, now, noise, p)
        if ctx.enabled(Modality.IMU) and ev.imu is not None:
            if now - ev.imu.ts_ms <= p.imu_window_ms:
                scores[Modality.IMU] = imu_score(ev.imu, noise)
        if ctx.enabled(Modality.AUDIO) and ev.audio is not None:
            if now - ev.audio.ts_ms <= p.audio_freshness_ms:
                scores[Modality.AUDIO] = audio_score(ev.audio, noise)

        weights = {
            Modality.VISION: p.vision_weight,
            Modality.IMU: p.imu_weight,
            Modality.AUDIO: p.audio_weight,
        }
        contributing = [m for m, s in scores.items() if s > 0.0]
        base = clamp(ev.hazard.severity)
        if contributing:
            wsum = sum(weights[m] for m in contributing)
            fused = sum(weights[m] * scores[m] for m in contributing) / floor_eps(wsum)
        else:
            fused = 0.0
        probability = clamp(fused + base * p.severity_prior)

        instant = clamp(
            0.35 * base
            + 0.25 * scores[Modality.VISION]
            + 0.25 * scores[Modality.IMU]
            + 0.15 * scores[Modality.AUDIO]
        )
        keep = p.severity_ema_keep
        ev.severity_ema = clamp(keep * ev.severity_ema + (1.0 - keep) * instant)

        return FusionResult(
            probability=probability,
            severity=ev.severity_ema,
            source=FusionSource.from_modalities(contributing),
            hazard_id=ev.hazard_id,
            edge_id=ev.edge_id,
            timestamp_ms=now,
            vision_score=scores[Modality.VISION],
            imu_score=scores[Modality.IMU],
            audio_score=scores[Modality.AUDIO],
        )

    # ── mitigation ────────────────────────────────────────────────────────

    def _maybe_mitigate(
        self, ctx: "SimulationContext", ev: HazardEvidence, result: FusionResult,
    ) -> bool:
        p = self.policy
        if result.probability <= p.probability_threshold:
            return False
        if result.severity <= p.severity_threshold:
            return False
        if not ev.cooldown_elapsed(ctx.now_ms, p.mitigation_cooldown_ms):
            log.debug("mitigation for %s suppressed by cooldown", ev.hazard_id)
            return False

        ev.last_mitigation_ms = ctx.now_ms
        self.mitigations += 1
        affected = self.on_mitigation(ctx, ev) if self.on_mitigation else 0
        log.info(
            "mitigation hazard=%s edge=%s p=%.2f sev=%.2f source=%s vehicles=%d",
            ev.hazard_id, ev.edge_id, result.probability, result.severity,
            result.source.value, affected,
        )
        ctx.emit(
            "fusion.mitigation", "fusion",
            f"Fusion • {ev.hazard_id} confirmed on {ev.edge_id} "
            f"(p={result.probability:.2f}, sev={result.severity:.2f}, {result.source.value})",
            hazard_id=ev.hazard_id, edge_id=ev.edge_id,
            probability=result.probability, severity=result.severity,
            source=result.source.value, vehicles=affected,
        )
        return True
