#!/usr/bin/env python3
"""
Routing tests for the road graph: costs, Dijkstra and hazard bookkeeping.
"""

from __future__ import annotations

import math
import unittest

from sim.errors import UnknownEdgeError, UnknownNodeError
from sim.network import Edge, EdgeId, Hazard, HazardId, HazardKind, Node, NodeId, RoadGraph, default_graph
from sim.traffic_policy import RoutingPolicy


def _hazard(hid: str, severity: float, closes_edge: bool = False, created_ms: float = 0.0) -> Hazard:
    return Hazard(
        id=HazardId(hid),
        kind=HazardKind.POTHOLE,
        pos=0.5,
        severity=severity,
        created_ms=created_ms,
        ttl_ms=15000.0,
        closes_edge=closes_edge,
    )


class RoadGraphCostTests(unittest.TestCase):
    def test_traversal_cost_never_below_base(self) -> None:
        graph = default_graph()
        graph.add_hazard("AB", _hazard("HZ0001", 0.0))
        graph.add_hazard("CD", _hazard("HZ0002", 1.0))
        for edge in graph.edges:
            self.assertGreaterEqual(graph.traversal_cost(edge), edge.base_cost)
            self.assertGreaterEqual(graph.traversal_cost(edge, {edge.id}), edge.base_cost)

    def test_hazard_penalty_adds_severity_times_factor(self) -> None:
        graph = default_graph()
        graph.add_hazard("AB", _hazard("HZ0001", 0.9))
        self.assertAlmostEqual(graph.traversal_cost(graph.edge("AB")), 8.6)

    def test_slowdown_surcharge_follows_factor(self) -> None:
        graph = default_graph(RoutingPolicy(slowdown_factor=0.5))
        edge = graph.edge("AB")
        self.assertAlmostEqual(graph.traversal_cost(edge, {"AB"}), 10.0)

    def test_negative_base_cost_rejected(self) -> None:
        with self.assertRaises(ValueError):
            Edge(id=EdgeId("XY"), a=NodeId("X"), b=NodeId("Y"), base_cost=-1.0)

    def test_path_cost_is_infinite_across_closed_edge(self) -> None:
        graph = default_graph()
        graph.set_closed("BC", True)
        self.assertTrue(math.isinf(graph.path_cost(["A", "B", "C"])))
        self.assertEqual(graph.path_cost(["A"]), 0.0)


class ShortestPathTests(unittest.TestCase):
    def test_trivial_path(self) -> None:
        graph = default_graph()
        self.assertEqual(graph.shortest_path("A", "A"), ["A"])

    def test_default_route_uses_central_detour(self) -> None:
        graph = default_graph()
        path = graph.shortest_path("A", "H")
        self.assertEqual(path, ["A", "B", "C", "D", "H"])
        self.assertAlmostEqual(graph.path_cost(path), 26.0)

    def test_closed_edge_is_avoided(self) -> None:
        graph = default_graph()
        graph.set_closed("DH", True)
        self.assertEqual(graph.shortest_path("A", "H"), ["A", "L", "K", "J", "I", "H"])

    def test_hazards_shift_the_route(self) -> None:
        graph = default_graph()
        graph.add_hazard("DH", _hazard("HZ0001", 1.0))
        graph.add_hazard("DH", _hazard("HZ0002", 1.0))
        self.assertEqual(graph.shortest_path("A", "H"), ["A", "L", "K", "J", "I", "H"])

    def test_all_edges_closed_returns_start(self) -> None:
        graph = default_graph()
        for edge in graph.edges:
            graph.set_closed(edge.id, True)
        self.assertEqual(graph.shortest_path("A", "H"), ["A"])

    def test_unreachable_goal_returns_start(self) -> None:
        nodes = [Node(NodeId(n), (float(i), 0.0)) for i, n in enumerate("XYZ")]
        edges = [Edge(EdgeId("XY"), NodeId("X"), NodeId("Y"), 1.0)]
        graph = RoadGraph(nodes, edges)
        self.assertEqual(graph.shortest_path("X", "Z"), ["X"])
        self.assertEqual(graph.shortest_path("Y", "X"), ["Y", "X"])

    def test_unknown_node_raises(self) -> None:
        graph = default_graph()
        with self.assertRaises(UnknownNodeError):
            graph.shortest_path("A", "Q")
        with self.assertRaises(KeyError):
            graph.node_position("Q")

    def test_unknown_edge_raises(self) -> None:
        graph = default_graph()
        with self.assertRaises(UnknownEdgeError):
            graph.edge("ZZ")


class HazardLifecycleTests(unittest.TestCase):
    def test_closing_hazard_closes_and_expiry_reopens(self) -> None:
        graph = default_graph()
        graph.add_hazard("AB", _hazard("HZ0001", 0.9, closes_edge=True))
        self.assertTrue(graph.edge("AB").closed)
        self.assertNotIn(graph.edge("AB"), graph.open_edges())

        self.assertEqual(graph.expire_hazards(14999.0), [])
        removed = graph.expire_hazards(15000.0)
        self.assertEqual([hz.id for _, hz in removed], ["HZ0001"])
        self.assertFalse(graph.edge("AB").closed)
        self.assertEqual(graph.edge("AB").hazards, [])

    def test_edge_stays_closed_while_another_closing_hazard_remains(self) -> None:
        graph = default_graph()
        graph.add_hazard("AB", _hazard("HZ0001", 0.9, closes_edge=True, created_ms=0.0))
        graph.add_hazard("AB", _hazard("HZ0002", 0.9, closes_edge=True, created_ms=5000.0))
        graph.expire_hazards(15000.0)
        self.assertTrue(graph.edge("AB").closed)
        graph.expire_hazards(20000.0)
        self.assertFalse(graph.edge("AB").closed)

    def test_clear_hazards_reopens_everything(self) -> None:
        graph = default_graph()
        graph.add_hazard("AB", _hazard("HZ0001", 0.9, closes_edge=True))
        graph.add_hazard("CD", _hazard("HZ0002", 0.5))
        self.assertEqual(graph.clear_hazards(), 2)
        self.assertEqual(len(graph.open_edges()), len(graph.edges))
        self.assertIsNone(graph.find_hazard("HZ0002"))


if __name__ == "__main__":
    unittest.main()
