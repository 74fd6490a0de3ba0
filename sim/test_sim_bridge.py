#!/usr/bin/env python3
"""
SimBridge tests without the background thread: commands issued from
several caller threads must reach the simulation one tick at a time.
"""

from __future__ import annotations

import threading
import unittest

from sim.sim_bridge import SimBridge
from sim.simulation import Simulation


class _OverlapCounter:
    """Wraps ``Simulation.tick`` and records how many calls ran at once."""

    def __init__(self, tick) -> None:
        self._tick = tick
        self._guard = threading.Lock()
        self.active = 0
        self.peak = 0
        self.calls = 0

    def __call__(self, dt_ms: float) -> None:
        with self._guard:
            self.active += 1
            self.calls += 1
            self.peak = max(self.peak, self.active)
        try:
            self._tick(dt_ms)
        finally:
            with self._guard:
                self.active -= 1


class UnstartedBridgeTests(unittest.TestCase):
    THREADS = 8
    ROUNDS = 25

    def setUp(self) -> None:
        self.sim = Simulation(seed=21)
        self.counter = _OverlapCounter(self.sim.tick)
        self.sim.tick = self.counter
        self.bridge = SimBridge(self.sim)

    def test_concurrent_commands_are_serialized(self) -> None:
        errors = []
        hazard_ids = []
        ids_lock = threading.Lock()
        barrier = threading.Barrier(self.THREADS)

        def worker(n: int) -> None:
            barrier.wait()
            try:
                for i in range(self.ROUNDS):
                    hid = self.bridge.spawn_hazard(kind="debris", edge_id="AB", closes_edge=False)
                    with ids_lock:
                        hazard_ids.append(hid)
                    self.bridge.set_noise_level((n + i) % 10 / 10.0)
                    if i % 5 == 4:
                        self.bridge.reset_network()
                    self.bridge.get_snapshot()
            except Exception as exc:
                errors.append(exc)

        threads = [threading.Thread(target=worker, args=(n,)) for n in range(self.THREADS)]
        for t in threads:
            t.start()
        for t in threads:
            t.join(timeout=30.0)

        self.assertFalse(any(t.is_alive() for t in threads))
        self.assertEqual(errors, [])
        self.assertEqual(self.counter.peak, 1)
        self.assertGreaterEqual(self.counter.calls, self.THREADS * self.ROUNDS)
        self.assertEqual(len(hazard_ids), self.THREADS * self.ROUNDS)
        self.assertEqual(len(set(hazard_ids)), len(hazard_ids))

    def test_snapshot_reflects_command_on_return(self) -> None:
        hid = self.bridge.spawn_hazard(kind="pothole", edge_id="CD", closes_edge=False)
        edge = next(e for e in self.bridge.get_snapshot()["edges"] if e["id"] == "CD")
        self.assertIn(hid, [h["id"] for h in edge["hazards"]])
        self.assertFalse(self.bridge.running)


if __name__ == "__main__":
    unittest.main()
