"""
sim/network.py
==============
Road-network topology and shortest-path routing.

Defines :class:`Node`, :class:`Edge`, :class:`Hazard` and
:class:`RoadGraph` — a lightweight undirected graph whose edges carry a
base traversal cost, a closure flag and the hazards currently placed on
them.

:func:`default_graph` builds the demo city loop with two central detours.
"""

from __future__ import annotations

import heapq
import itertools
import logging
import math
from dataclasses import dataclass, field
from enum import Enum
from typing import AbstractSet, Dict, Iterator, List, NewType, Optional, Sequence, Tuple

from sim.errors import UnknownEdgeError, UnknownNodeError
from sim.physics import Point, lerp_point
from sim.traffic_policy import RoutingPolicy, hazard_penalty, slowdown_surcharge

log = logging.getLogger("network")

NodeId = NewType("NodeId", str)
EdgeId = NewType("EdgeId", str)
HazardId = NewType("HazardId", str)

_NO_SLOWDOWN: AbstractSet[str] = frozenset()


class HazardKind(str, Enum):
    POTHOLE = "pothole"
    DEBRIS = "debris"
    WORK = "work"

    @classmethod
    def parse(cls, value: "str | HazardKind") -> "HazardKind":
        """Accept an enum member or its (case-insensitive) name/value."""
        if isinstance(value, cls):
            return value
        text = str(value).strip().lower()
        for kind in cls:
            if text in (kind.value, kind.name.lower()):
                return kind
        raise ValueError(f"unknown hazard kind {value!r}")


# ── Graph entities ────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class Node:
    """A junction of the road network at world position *p*."""

    id: NodeId
    p: Point


@dataclass
class Hazard:
    """A hazard placed on exactly one edge.

    Parameters
    ----------
    id : HazardId
        Never reused within one graph.
    kind : HazardKind
        pothole / debris / work.
    pos : float
        Normalised position along the owning edge, ``0..1`` from ``a`` to ``b``.
    severity : float
        ``0..1``.
    created_ms : float
        Simulation time the hazard was placed.
    ttl_ms : float
        Lifetime; the hazard is destroyed once ``now - created_ms >= ttl_ms``.
    closes_edge : bool
        True when placing this hazard closed its edge.
    """

    id: HazardId
    kind: HazardKind
    pos: float
    severity: float
    created_ms: float
    ttl_ms: float
    closes_edge: bool = False

    def expired(self, now_ms: float) -> bool:
        return now_ms - self.created_ms >= self.ttl_ms

    def as_dict(self) -> dict:
        return {
            "id": self.id,
            "kind": self.kind.value,
            "pos": self.pos,
            "severity": self.severity,
            "created_ms": self.created_ms,
            "ttl_ms": self.ttl_ms,
            "closes_edge": self.closes_edge,
        }


@dataclass
class Edge:
    """An undirected road between nodes *a* and *b*.

    ``ctrl`` is a curve control point kept for renderers only; the core
    treats every edge as the straight segment ``a → b``.
    """

    id: EdgeId
    a: NodeId
    b: NodeId
    base_cost: float
    ctrl: Optional[Point] = None
    closed: bool = False
    hazards: List[Hazard] = field(default_factory=list)

    def __post_init__(self) -> None:
        if self.base_cost < 0:
            raise ValueError(f"edge {self.id}: base_cost must be >= 0, got {self.base_cost}")

    def other(self, node_id: str) -> NodeId:
        return self.b if node_id == self.a else self.a

    def connects(self, u: str, v: str) -> bool:
        return (self.a == u and self.b == v) or (self.a == v and self.b == u)


# ── Road graph ────────────────────────────────────────────────────────────────

class RoadGraph:
    """Static node/edge topology with mutable hazards and closures.

    Not reentrant: hazards and closures may only be mutated between
    simulation ticks, never while a path search is running.
    """

    def __init__(
        self,
        nodes: Sequence[Node],
        edges: Sequence[Edge],
        policy: Optional[RoutingPolicy] = None,
    ) -> None:
        self.policy = policy or RoutingPolicy()
        self.nodes: Dict[NodeId, Node] = {n.id: n for n in nodes}
        self._edges: Dict[EdgeId, Edge] = {}
        for edge in edges:
            for end in (edge.a, edge.b):
                if end not in self.nodes:
                    raise UnknownNodeError(end)
            self._edges[edge.id] = edge

    # ── queries ───────────────────────────────────────────────────────────

    @property
    def edges(self) -> List[Edge]:
        return list(self._edges.values())

    def edge(self, edge_id: str) -> Edge:
        try:
            return self._edges[EdgeId(edge_id)]
        except KeyError:
            raise UnknownEdgeError(edge_id) from None

    def open_edges(self) -> List[Edge]:
        return [e for e in self._edges.values() if not e.closed]

    def edge_between(self, u: str, v: str) -> Optional[Edge]:
        """First edge (in construction order) joining *u* and *v*, open or not."""
        for edge in self._edges.values():
            if edge.connects(u, v):
                return edge
        return None

    def node_position(self, node_id: str) -> Point:
        try:
            return self.nodes[NodeId(node_id)].p
        except KeyError:
            raise UnknownNodeError(node_id) from None

    def point_on_edge(self, edge: Edge, pos: float) -> Point:
        """World point at normalised position *pos* measured from ``edge.a``."""
        return lerp_point(self.node_position(edge.a), self.node_position(edge.b), pos)

    def hazards(self) -> Iterator[Tuple[Edge, Hazard]]:
        for edge in self._edges.values():
            for hz in edge.hazards:
                yield edge, hz

    def find_hazard(self, hazard_id: str) -> Optional[Tuple[Edge, Hazard]]:
        for edge, hz in self.hazards():
            if hz.id == hazard_id:
                return edge, hz
        return None

    # ── costs ─────────────────────────────────────────────────────────────

    def traversal_cost(
        self, edge: Edge, slowdown_edges: AbstractSet[str] = _NO_SLOWDOWN,
    ) -> float:
        """``base + Σ severity × penalty (+ slowdown surcharge)``; never below base."""
        cost = edge.base_cost + hazard_penalty((h.severity for h in edge.hazards), self.policy)
        if edge.id in slowdown_edges:
            cost += slowdown_surcharge(edge.base_cost, self.policy)
        return cost

    def path_cost(
        self, path: Sequence[str], slowdown_edges: AbstractSet[str] = _NO_SLOWDOWN,
    ) -> float:
        """Sum of edge weights along *path*.

        A missing or closed hop makes the whole path cost ``inf``.
        """
        total = 0.0
        for u, v in zip(path, path[1:]):
            best = math.inf
            for edge in self._edges.values():
                if edge.closed or not edge.connects(u, v):
                    continue
                best = min(best, self.traversal_cost(edge, slowdown_edges))
            if math.isinf(best):
                return math.inf
            total += best
        return total

    # ── shortest path ─────────────────────────────────────────────────────

    def shortest_path(
        self,
        start: str,
        goal: str,
        slowdown_edges: AbstractSet[str] = _NO_SLOWDOWN,
    ) -> List[NodeId]:
        """Dijkstra over open edges, treating the graph as undirected.

        Returns ``[start]`` when *goal* is *start* or unreachable; callers
        treat a single-node path as "hold position".
        """
        for node_id in (start, goal):
            if node_id not in self.nodes:
                raise UnknownNodeError(node_id)
        start_id, goal_id = NodeId(start), NodeId(goal)
        if start_id == goal_id:
            return [start_id]

        adjacency: Dict[NodeId, List[Tuple[NodeId, float]]] = {n: [] for n in self.nodes}
        for edge in self._edges.values():
            if edge.closed:
                continue
            w = self.traversal_cost(edge, slowdown_edges)
            adjacency[edge.a].append((edge.b, w))
            adjacency[edge.b].append((edge.a, w))

        dist: Dict[NodeId, float] = {start_id: 0.0}
        prev: Dict[NodeId, NodeId] = {}
        visited = set()
        # The counter keeps heap order stable so the first relaxation wins ties.
        counter = itertools.count()
        heap: List[Tuple[float, int, NodeId]] = [(0.0, next(counter), start_id)]

        while heap:
            d, _, u = heapq.heappop(heap)
            if u in visited:
                continue
            visited.add(u)
            if u == goal_id:
                break
            for v, w in adjacency[u]:
                if v in visited:
                    continue
                alt = d + w
                if alt < dist.get(v, math.inf):
                    dist[v] = alt
                    prev[v] = u
                    heapq.heappush(heap, (alt, next(counter), v))

        if goal_id not in prev:
            log.debug("no path %s -> %s", start_id, goal_id)
            return [start_id]

        path: List[NodeId] = [goal_id]
        while path[-1] != start_id:
            path.append(prev[path[-1]])
        path.reverse()
        return path

    # ── mutation (between ticks only) ─────────────────────────────────────

    def set_closed(self, edge_id: str, closed: bool) -> Edge:
        edge = self.edge(edge_id)
        if edge.closed != closed:
            edge.closed = closed
            log.warning("edge %s %s", edge.id, "closed" if closed else "reopened")
        return edge

    def add_hazard(self, edge_id: str, hazard: Hazard) -> Edge:
        edge = self.edge(edge_id)
        edge.hazards.append(hazard)
        if hazard.closes_edge:
            self.set_closed(edge.id, True)
        return edge

    def expire_hazards(self, now_ms: float) -> List[Tuple[Edge, Hazard]]:
        """Remove hazards whose TTL elapsed; reopen edges they alone closed."""
        removed: List[Tuple[Edge, Hazard]] = []
        for edge in self._edges.values():
            if not edge.hazards:
                continue
            keep = [h for h in edge.hazards if not h.expired(now_ms)]
            if len(keep) == len(edge.hazards):
                continue
            gone = [h for h in edge.hazards if h.expired(now_ms)]
            edge.hazards = keep
            removed.extend((edge, h) for h in gone)
            if any(h.closes_edge for h in gone) and not any(h.closes_edge for h in keep):
                self.set_closed(edge.id, False)
        return removed

    def clear_hazards(self) -> int:
        """Drop every hazard and reopen every edge.  Topology is untouched."""
        count = 0
        for edge in self._edges.values():
            count += len(edge.hazards)
            edge.hazards = []
            edge.closed = False
        return count

    def as_dict(self) -> List[dict]:
        return [
            {
                "id": e.id,
                "a": e.a,
                "b": e.b,
                "base_cost": e.base_cost,
                "cost": self.traversal_cost(e),
                "closed": e.closed,
                "ctrl": e.ctrl,
                "hazards": [h.as_dict() for h in e.hazards],
            }
            for e in self._edges.values()
        ]


# ── Default layout ────────────────────────────────────────────────────────────

def default_graph(policy: Optional[RoutingPolicy] = None) -> RoadGraph:
    """The demo city loop: twelve junctions on a ring plus two detours."""
    positions = {
        "A": (120.0, 520.0), "B": (260.0, 520.0), "C": (420.0, 520.0),
        "D": (620.0, 520.0), "E": (860.0, 520.0), "F": (980.0, 480.0),
        "G": (900.0, 360.0), "H": (760.0, 260.0), "I": (560.0, 220.0),
        "J": (360.0, 220.0), "K": (240.0, 280.0), "L": (140.0, 360.0),
    }
    nodes = [Node(id=NodeId(k), p=v) for k, v in positions.items()]

    spec = [
        ("AB", 5, None), ("BC", 6, (340.0, 560.0)), ("CD", 6, None),
        ("DE", 7, (760.0, 560.0)), ("EF", 5, None), ("FG", 5, None),
        ("GH", 6, (840.0, 280.0)), ("HI", 6, None), ("IJ", 6, (460.0, 160.0)),
        ("JK", 5, None), ("KL", 6, None), ("LA", 7, (100.0, 460.0)),
        # central detours
        ("DH", 9, (700.0, 380.0)), ("CK", 9, (340.0, 380.0)),
    ]
    edges = [
        Edge(id=EdgeId(eid), a=NodeId(eid[0]), b=NodeId(eid[1]),
             base_cost=float(cost), ctrl=ctrl)
        for eid, cost, ctrl in spec
    ]
    return RoadGraph(nodes, edges, policy=policy)
