#!/usr/bin/env python3
"""
Fusion engine tests: bounds, modality sources, staleness and the
mitigation cooldown.
"""

from __future__ import annotations

import random
import unittest
from typing import List

from sim.context import SimulationContext
from sim.evidence import AudioFeature, HazardEvidence, ImuFeature, Modality, VisionDetection
from sim.fusion import FusionEngine, FusionSource
from sim.network import Hazard, HazardId, HazardKind, default_graph
from sim.traffic_policy import RoutingPolicy


def _context(noise: float = 0.0) -> SimulationContext:
    policy = RoutingPolicy()
    return SimulationContext(graph=default_graph(policy), policy=policy,
                             rng=random.Random(3), noise_level=noise)


def _place(ctx: SimulationContext, hid: str, severity: float, edge_id: str = "AB") -> HazardEvidence:
    hazard = Hazard(id=HazardId(hid), kind=HazardKind.POTHOLE, pos=0.5, severity=severity,
                    created_ms=ctx.now_ms, ttl_ms=ctx.policy.hazard_ttl_ms)
    ctx.graph.add_hazard(edge_id, hazard)
    return ctx.evidence.observe(hazard, ctx.graph.edge(edge_id).id)


def _saturate(ctx: SimulationContext, ev: HazardEvidence) -> None:
    """Fresh, maximal evidence from all three modalities."""
    now = ctx.now_ms
    ctx.vision.active[ev.hazard_id] = VisionDetection(
        hazard_id=ev.hazard_id, vehicle_id="V1", confidence=1.0,
        ts_ms=now, expires_ms=now + ctx.policy.vision_buffer_ms,
    )
    ev.imu = ImuFeature(hazard_id=ev.hazard_id, peak=1.0, impulse=1.0, half_width=1.0, ts_ms=now)
    ev.audio = AudioFeature(hazard_id=ev.hazard_id, energy=1.0, screech=1.0, ts_ms=now)


class FusionSourceTests(unittest.TestCase):
    def test_sorted_hyphen_joined_names(self) -> None:
        self.assertIs(FusionSource.from_modalities([Modality.VISION, Modality.IMU]),
                      FusionSource.IMU_VISION)
        self.assertIs(FusionSource.from_modalities(list(Modality)), FusionSource.AUDIO_IMU_VISION)
        self.assertIs(FusionSource.from_modalities([]), FusionSource.NONE)

    def test_every_source_maps_back_to_its_modalities(self) -> None:
        self.assertEqual(len(FusionSource), 8)
        for source in FusionSource:
            self.assertIs(FusionSource.from_modalities(source.modalities), source)


class FusionEngineTests(unittest.TestCase):
    def test_no_evidence_gives_empty_result(self) -> None:
        ctx = _context()
        result = FusionEngine(ctx.policy).evaluate(ctx)
        self.assertIs(result.source, FusionSource.NONE)
        self.assertEqual(result.probability, 0.0)
        self.assertIsNone(result.hazard_id)

    def test_all_modalities_disabled_uses_prior_only(self) -> None:
        ctx = _context()
        ev = _place(ctx, "HZ0001", 0.8)
        _saturate(ctx, ev)
        for m in Modality:
            ctx.modalities[m] = False
        result = FusionEngine(ctx.policy).evaluate(ctx)
        self.assertIs(result.source, FusionSource.NONE)
        self.assertAlmostEqual(result.probability, 0.8 * ctx.policy.severity_prior)
        self.assertEqual((result.vision_score, result.imu_score, result.audio_score), (0.0, 0.0, 0.0))

    def test_saturated_evidence_uses_every_modality(self) -> None:
        ctx = _context()
        ev = _place(ctx, "HZ0001", 1.0)
        _saturate(ctx, ev)
        result = FusionEngine(ctx.policy).evaluate(ctx)
        self.assertIs(result.source, FusionSource.AUDIO_IMU_VISION)
        self.assertEqual(result.probability, 1.0)
        # EMA starts at zero: one pass moves it by (1 - keep) of the instant value
        self.assertAlmostEqual(result.severity, 1.0 - ctx.policy.severity_ema_keep)
        self.assertEqual(result.edge_id, "AB")

    def test_stale_audio_contributes_nothing(self) -> None:
        ctx = _context()
        ev = _place(ctx, "HZ0001", 0.6)
        _saturate(ctx, ev)
        ctx.clock.advance(ctx.policy.audio_freshness_ms + 1.0)
        result = FusionEngine(ctx.policy).evaluate(ctx)
        self.assertEqual(result.audio_score, 0.0)
        self.assertIs(result.source, FusionSource.IMU_VISION)

    def test_results_stay_in_unit_range(self) -> None:
        rng = random.Random(11)
        for noise in (0.0, 0.5, 1.0):
            ctx = _context(noise)
            engine = FusionEngine(ctx.policy)
            for i in range(6):
                ev = _place(ctx, f"HZ{i:04d}", rng.random())
                _saturate(ctx, ev)
                ev.imu = ImuFeature(ev.hazard_id, rng.uniform(0, 3), rng.uniform(0, 3),
                                    rng.uniform(0, 3), ctx.now_ms)
            for _ in range(20):
                ctx.clock.advance(125.0)
                engine.evaluate(ctx)
                for result in ctx.fusion_results.values():
                    self.assertGreaterEqual(result.probability, 0.0)
                    self.assertLessEqual(result.probability, 1.0)
                    self.assertGreaterEqual(result.severity, 0.0)
                    self.assertLessEqual(result.severity, 1.0)

    def test_latest_is_most_recently_observed_hazard(self) -> None:
        ctx = _context()
        first = _place(ctx, "HZ0001", 0.5, "AB")
        second = _place(ctx, "HZ0002", 0.5, "CD")
        _saturate(ctx, first)
        _saturate(ctx, second)
        result = FusionEngine(ctx.policy).evaluate(ctx)
        self.assertEqual(result.hazard_id, "HZ0002")
        self.assertEqual(set(ctx.fusion_results), {"HZ0001", "HZ0002"})

    def test_cooldown_limits_mitigations(self) -> None:
        ctx = _context()
        ev = _place(ctx, "HZ0001", 1.0)
        calls: List[str] = []

        def on_mitigation(_ctx: SimulationContext, evidence: HazardEvidence) -> int:
            calls.append(evidence.hazard_id)
            return 0

        engine = FusionEngine(ctx.policy, on_mitigation=on_mitigation)
        while ctx.now_ms <= 1500.0:
            _saturate(ctx, ev)
            engine.evaluate(ctx)
            ctx.clock.advance(125.0)
        self.assertEqual(calls, ["HZ0001"])
        first = ev.last_mitigation_ms
        self.assertIsNotNone(first)

        while ctx.now_ms < first + ctx.policy.mitigation_cooldown_ms:
            _saturate(ctx, ev)
            engine.evaluate(ctx)
            ctx.clock.advance(125.0)
        self.assertEqual(len(calls), 1)

        _saturate(ctx, ev)
        engine.evaluate(ctx)
        self.assertEqual(len(calls), 2)
        self.assertEqual(engine.mitigations, 2)
        mitigation_events = ctx.bus.recent(topic="fusion.mitigation")
        self.assertEqual(len(mitigation_events), 2)


if __name__ == "__main__":
    unittest.main()
