#!/usr/bin/env python3
"""
sim/vehicles.py
===============
Vehicles moving along the road graph and their decision state machine.

Each :class:`Vehicle` follows a route of node ids, advancing a progress
``t`` along its current edge.  :class:`VehicleSimulator` owns the per-tick
movement loop and the CRUISE → SLOW_DOWN / REROUTE → CRUISE transitions
triggered by the fusion engine or by edge closures.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, List, Optional, Sequence

from sim.evidence import HazardEvidence
from sim.network import Edge, RoadGraph
from sim.physics import Point, distance, floor_eps, lerp_point
from sim.traffic_policy import RoutingPolicy

if TYPE_CHECKING:
    from sim.context import SimulationContext

log = logging.getLogger("vehicles")


def _finite(value: float) -> Optional[float]:
    return value if math.isfinite(value) else None


class Decision(str, Enum):
    CRUISE = "Cruise"
    SLOW_DOWN = "SlowDown"
    REROUTE = "Reroute"


@dataclass
class Vehicle:
    """A simulated vehicle.

    Attributes
    ----------
    id : str
        Unique identifier (e.g. ``V1``).
    node_from, node_to : str
        Endpoints of the edge being driven; ``node_to`` is ``None`` while
        the vehicle holds position at ``node_from``.
    route : list of str
        Node ids being followed; ``route[-1]`` is the destination.
    t : float
        Progress ``0..1`` along the current edge.
    speed : float
        Speed multiplier (1.0 = cruise).
    decision : Decision
        Current state of the decision machine.
    decision_ttl_ms : float or None
        Remaining lifetime of a non-CRUISE decision.
    """

    id: str
    node_from: str
    node_to: Optional[str]
    route: List[str] = field(default_factory=list)
    t: float = 0.0
    speed: float = 1.0
    radius: float = 140.0
    decision: Decision = Decision.CRUISE
    decision_ttl_ms: Optional[float] = None

    @property
    def holding(self) -> bool:
        return self.node_to is None

    @property
    def goal(self) -> str:
        return self.route[-1] if self.route else self.node_from

    def position(self, graph: RoadGraph) -> Point:
        start = graph.node_position(self.node_from)
        if self.node_to is None:
            return start
        return lerp_point(start, graph.node_position(self.node_to), self.t)

    def remaining_route(self) -> List[str]:
        """Route from ``node_from`` to the destination."""
        if self.node_from in self.route:
            return self.route[self.route.index(self.node_from):]
        return [self.node_from]

    def as_dict(self, graph: RoadGraph) -> dict:
        x, y = self.position(graph)
        return {
            "id": self.id,
            "x": x,
            "y": y,
            "from": self.node_from,
            "to": self.node_to,
            "t": self.t,
            "route": list(self.route),
            "speed": self.speed,
            "decision": self.decision.value,
            "decision_ttl_ms": self.decision_ttl_ms,
        }


class VehicleSimulator:
    """Movement loop and decision state machine for every vehicle.

    Parameters
    ----------
    policy : RoutingPolicy
        Decision TTL, slowdown factor and switching penalty.
    """

    def __init__(self, policy: Optional[RoutingPolicy] = None) -> None:
        self.policy = policy or RoutingPolicy()

    # ── fleet ─────────────────────────────────────────────────────────────

    def spawn(self, ctx: "SimulationContext", vehicle_id: str, start: str, goal: str) -> Vehicle:
        vehicle = Vehicle(
            id=vehicle_id, node_from=start, node_to=None, radius=self.policy.vehicle_radius,
        )
        self._adopt(vehicle, ctx.graph.shortest_path(start, goal))
        ctx.vehicles.append(vehicle)
        log.info("spawned %s at %s heading to %s", vehicle.id, start, goal)
        return vehicle

    def reset_routes(self, ctx: "SimulationContext") -> None:
        """Snap every vehicle to its last node and re-plan to its destination."""
        for v in ctx.vehicles:
            goal = v.goal
            v.speed = 1.0
            v.decision = Decision.CRUISE
            v.decision_ttl_ms = None
            self._adopt(v, ctx.graph.shortest_path(v.node_from, goal))

    # ── per-tick movement ─────────────────────────────────────────────────

    def tick(self, ctx: "SimulationContext", dt_ms: float) -> None:
        for vehicle in ctx.vehicles:
            self._step(ctx, vehicle, dt_ms)

    def _step(self, ctx: "SimulationContext", v: Vehicle, dt_ms: float) -> None:
        graph = ctx.graph
        if v.node_to is None:
            self._replan_holding(ctx, v)
            self._decay(ctx, v, dt_ms)
            return

        edge = graph.edge_between(v.node_from, v.node_to)
        if edge is None:
            log.warning("%s lost its edge %s-%s, holding", v.id, v.node_from, v.node_to)
            v.node_to = None
            v.t = 0.0
            return

        if edge.closed:
            self._forced_reroute(ctx, v, edge)
            return

        cost = floor_eps(graph.traversal_cost(edge))
        v.t += (dt_ms / 1000.0) * (1.0 / cost) * v.speed
        self._decay(ctx, v, dt_ms)

        if v.t >= 1.0:
            self._arrive(ctx, v)

    def _arrive(self, ctx: "SimulationContext", v: Vehicle) -> None:
        reached = v.node_to
        idx = v.route.index(reached) if reached in v.route else len(v.route) - 1
        if idx + 1 < len(v.route):
            v.node_from = reached
            v.node_to = v.route[idx + 1]
            v.t = 0.0
            return
        # destination reached: pick a new one
        v.node_from = reached
        goal = self._random_destination(ctx, reached)
        self._adopt(v, ctx.graph.shortest_path(reached, goal))
        log.debug("%s reached %s, next destination %s", v.id, reached, goal)

    def _replan_holding(self, ctx: "SimulationContext", v: Vehicle) -> None:
        """One bounded re-plan attempt for a vehicle holding position."""
        graph = ctx.graph
        goal = v.goal
        path = graph.shortest_path(v.node_from, goal) if goal != v.node_from else [v.node_from]
        if len(path) < 2:
            path = graph.shortest_path(v.node_from, self._random_destination(ctx, v.node_from))
        if len(path) > 1:
            self._adopt(v, path)
            log.info("%s resumes from %s towards %s", v.id, v.node_from, v.goal)

    def _forced_reroute(self, ctx: "SimulationContext", v: Vehicle, edge: Edge) -> None:
        path = ctx.graph.shortest_path(v.node_from, v.goal)
        self._adopt(v, path)
        self._arm(v, Decision.REROUTE, speed=1.0)
        if v.holding:
            msg = f"{v.id} → Hold at {v.node_from}: {edge.id} closed, no open route"
        else:
            msg = f"{v.id} → Reroute: {edge.id} closed, via {'-'.join(path)}"
        log.warning(msg)
        ctx.emit("vehicle.decision", v.id, msg, decision=v.decision.value,
                 edge_id=edge.id, route=list(v.route), forced=True)

    def _decay(self, ctx: "SimulationContext", v: Vehicle, dt_ms: float) -> None:
        if v.decision_ttl_ms is None:
            return
        v.decision_ttl_ms -= dt_ms
        if v.decision_ttl_ms > 0:
            return
        previous = v.decision
        v.decision_ttl_ms = None
        v.decision = Decision.CRUISE
        v.speed = 1.0
        ctx.emit("vehicle.decision", v.id, f"{v.id} → Cruise ({previous.value} expired)",
                 decision=Decision.CRUISE.value, expired=previous.value)

    # ── mitigation ────────────────────────────────────────────────────────

    def apply_mitigation(self, ctx: "SimulationContext", evidence: HazardEvidence) -> int:
        """Decide SLOW_DOWN or REROUTE for vehicles in range of a confirmed hazard.

        Returns the number of vehicles that received a decision.
        """
        found = ctx.graph.find_hazard(evidence.hazard_id)
        if found is None:
            return 0
        edge, hazard = found
        hazard_point = ctx.graph.point_on_edge(edge, hazard.pos)
        affected = 0
        for v in ctx.vehicles:
            if distance(v.position(ctx.graph), hazard_point) <= v.radius:
                self.decide(ctx, v, edge, reason=f"{hazard.kind.value} {hazard.id}")
                affected += 1
        return affected

    def alert_nearby(self, ctx: "SimulationContext", edge: Edge, pos: float, reason: str) -> int:
        """V2X broadcast from the edge endpoint nearest to *pos*."""
        anchor = ctx.graph.node_position(edge.a if pos < 0.5 else edge.b)
        affected = 0
        for v in ctx.vehicles:
            if distance(v.position(ctx.graph), anchor) <= v.radius:
                self.decide(ctx, v, edge, reason=reason)
                affected += 1
        return affected

    def decide(self, ctx: "SimulationContext", v: Vehicle, edge: Edge, reason: str = "") -> Decision:
        """Compare "slow down on the current path" against "reroute".

        The alternative treats *edge* as slowed; it wins only when it beats
        the unmodified current path by more than ``switch_penalty``.
        """
        graph = ctx.graph
        slow = frozenset({edge.id})
        alt = graph.shortest_path(v.node_from, v.goal, slow)
        alt_cost = graph.path_cost(alt, slow)
        keep_cost = graph.path_cost(v.remaining_route())

        if len(alt) > 1 and alt_cost + self.policy.switch_penalty < keep_cost:
            self._adopt(v, alt)
            self._arm(v, Decision.REROUTE, speed=1.0)
            msg = (f"{v.id} → Reroute due to {reason} on {edge.id} "
                   f"(alt {alt_cost:.1f}s < {keep_cost:.1f}s)")
        else:
            self._arm(v, Decision.SLOW_DOWN, speed=self.policy.slowdown_factor)
            msg = f"{v.id} → Slow down on {edge.id} (speed ×{self.policy.slowdown_factor:.2f})"
        log.info(msg)
        ctx.emit("vehicle.decision", v.id, msg, decision=v.decision.value, edge_id=edge.id,
                 route=list(v.route), alt_cost=_finite(alt_cost), keep_cost=_finite(keep_cost))
        return v.decision

    # ── helpers ───────────────────────────────────────────────────────────

    def _arm(self, v: Vehicle, decision: Decision, speed: float) -> None:
        # speed is absolute (relative to cruise), never multiplied onto the current value
        v.decision = decision
        v.decision_ttl_ms = self.policy.decision_ttl_ms
        v.speed = speed

    @staticmethod
    def _adopt(v: Vehicle, path: Sequence[str]) -> None:
        v.route = list(path)
        v.node_from = path[0]
        v.node_to = path[1] if len(path) > 1 else None
        v.t = 0.0

    @staticmethod
    def _random_destination(ctx: "SimulationContext", here: str) -> str:
        choices = [n for n in ctx.graph.nodes if n != here]
        return ctx.rng.choice(choices) if choices else here
