#!/usr/bin/env python3
"""
Alpha-beta filter behaviour.
"""

from __future__ import annotations

import unittest

from sim.filters import AlphaBetaFilter


class AlphaBetaFilterTests(unittest.TestCase):
    def test_first_measurement_seeds_estimate(self) -> None:
        f = AlphaBetaFilter()
        self.assertEqual(f.update(3.0, 100.0), 3.0)
        self.assertEqual(f.rate, 0.0)

    def test_converges_to_constant_measurement(self) -> None:
        f = AlphaBetaFilter(alpha=0.5, beta=0.1)
        f.update(0.0, 0.0)
        t = 0.0
        for _ in range(50):
            t += 10.0
            f.update(1.0, t)
        self.assertAlmostEqual(f.estimate, 1.0, places=4)
        self.assertAlmostEqual(f.rate, 0.0, places=2)

    def test_repeated_timestamp_does_not_divide_by_zero(self) -> None:
        f = AlphaBetaFilter()
        f.update(0.0, 50.0)
        value = f.update(1.0, 50.0)
        self.assertGreater(value, 0.0)
        self.assertLess(value, 1.0)

    def test_reset_forgets_state(self) -> None:
        f = AlphaBetaFilter()
        f.update(2.0, 0.0)
        f.update(4.0, 10.0)
        f.reset()
        self.assertIsNone(f.last_timestamp_ms)
        self.assertEqual(f.update(7.0, 20.0), 7.0)


if __name__ == "__main__":
    unittest.main()
