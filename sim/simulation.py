#!/usr/bin/env python3
"""
sim/simulation.py
=================
Command / query facade over one :class:`~sim.context.SimulationContext`.

The host (test harness, :class:`~sim.sim_bridge.SimBridge`, a game loop)
drives the simulation by calling :meth:`Simulation.tick` and
:meth:`Simulation.evaluate_fusion` on their own cadences, or
:meth:`Simulation.step` which runs fusion whenever its period is due.

Commands
--------
Direct methods (:meth:`spawn_hazard`, :meth:`set_modality_enabled`,
:meth:`set_noise_level`, :meth:`reset_network`) apply immediately and must
only be called between ticks by the thread that owns the simulation.
Other threads use :meth:`submit`, which queues the command and applies it
atomically at the start of the next tick.
"""

from __future__ import annotations

import itertools
import logging
import random
import threading
from collections import deque
from concurrent.futures import Future
from typing import Any, Callable, Deque, Dict, List, Optional, Sequence, Tuple

from bus.event_bus import EventBus
from sim.clock import PeriodicPhase
from sim.context import SimulationContext
from sim.errors import EdgeClosedError, NoOpenEdgesError
from sim.evidence import Modality
from sim.fusion import FusionEngine, FusionResult
from sim.network import HazardId, HazardKind, Hazard, RoadGraph, default_graph
from sim.physics import clamp
from sim.sensors import scan_proximity
from sim.traffic_policy import RoutingPolicy
from sim.vehicles import VehicleSimulator

log = logging.getLogger("simulation")

# (vehicle id, start node, destination node)
DEFAULT_FLEET: Tuple[Tuple[str, str, str], ...] = (
    ("V1", "A", "H"),
    ("V2", "E", "K"),
    ("V3", "L", "F"),
)

Command = Callable[["Simulation"], Any]


class Simulation:
    """Hazard-aware routing and sensor-fusion simulation.

    Parameters
    ----------
    graph : RoadGraph or None
        Road layout; :func:`~sim.network.default_graph` when *None*.
    policy : RoutingPolicy or None
        Tunable constants; defaults when *None*.
    seed : int or None
        Seed of the simulation's private random generator.
    fleet : sequence of (id, start, goal)
        Vehicles created at start-up.
    bus : EventBus or None
        Event channel; a private bus sized by ``policy.event_log_size`` when *None*.
    noise_level : float
        Initial sensor noise ``0..1``.
    """

    def __init__(
        self,
        graph: Optional[RoadGraph] = None,
        policy: Optional[RoutingPolicy] = None,
        seed: Optional[int] = None,
        fleet: Sequence[Tuple[str, str, str]] = DEFAULT_FLEET,
        bus: Optional[EventBus] = None,
        noise_level: float = 0.1,
    ) -> None:
        self.policy = policy or RoutingPolicy()
        self.ctx = SimulationContext(
            graph=graph or default_graph(self.policy),
            policy=self.policy,
            rng=random.Random(seed),
            bus=bus,
            noise_level=noise_level,
        )
        self.vehicle_sim = VehicleSimulator(self.policy)
        self.fusion = FusionEngine(self.policy, on_mitigation=self.vehicle_sim.apply_mitigation)

        self._fusion_phase = PeriodicPhase(self.policy.fusion_period_ms)
        self._sweep_phase = PeriodicPhase(self.policy.vision_sweep_ms)
        self._hazard_seq = itertools.count(1)

        self._mailbox: Deque[Tuple[Command, Future]] = deque()
        self._mailbox_lock = threading.Lock()

        for vehicle_id, start, goal in fleet:
            self.vehicle_sim.spawn(self.ctx, vehicle_id, start, goal)

    # ── convenience accessors ─────────────────────────────────────────────

    @property
    def graph(self) -> RoadGraph:
        return self.ctx.graph

    @property
    def bus(self) -> EventBus:
        return self.ctx.bus

    @property
    def now_ms(self) -> float:
        return self.ctx.now_ms

    # ── commands ──────────────────────────────────────────────────────────

    def spawn_hazard(
        self,
        kind: Optional["str | HazardKind"] = None,
        edge_id: Optional[str] = None,
        severity: Optional[float] = None,
        pos: Optional[float] = None,
        closes_edge: Optional[bool] = None,
    ) -> HazardId:
        """Place a hazard on an open edge.

        Raises
        ------
        NoOpenEdgesError
            Every edge is closed; nothing is mutated.
        EdgeClosedError
            *edge_id* names a closed edge; nothing is mutated.
        UnknownEdgeError
            *edge_id* is not part of the graph.
        """
        ctx = self.ctx
        rng = ctx.rng
        open_edges = ctx.graph.open_edges()
        if not open_edges:
            log.warning("spawn rejected: every edge is closed")
            raise NoOpenEdgesError()
        edge = ctx.graph.edge(edge_id) if edge_id is not None else rng.choice(open_edges)
        if edge.closed:
            log.warning("spawn rejected: edge %s is closed", edge.id)
            raise EdgeClosedError(edge.id)

        hz_kind = HazardKind.parse(kind) if kind is not None else rng.choice(list(HazardKind))
        if severity is None:
            severity = rng.uniform(0.7, 1.0) if hz_kind is HazardKind.WORK else rng.uniform(0.4, 0.85)
        if closes_edge is None:
            closes_edge = (
                hz_kind is HazardKind.WORK
                and rng.random() < self.policy.work_zone_close_probability
            )
        hazard = Hazard(
            id=HazardId(f"HZ{next(self._hazard_seq):04d}"),
            kind=hz_kind,
            pos=clamp(pos) if pos is not None else rng.random(),
            severity=clamp(severity),
            created_ms=ctx.now_ms,
            ttl_ms=self.policy.hazard_ttl_ms,
            closes_edge=bool(closes_edge),
        )
        ctx.graph.add_hazard(edge.id, hazard)

        note = " (edge closed)" if edge.closed else ""
        log.info("hazard %s (%s, sev=%.2f) on %s%s",
                 hazard.id, hz_kind.value, hazard.severity, edge.id, note)
        ctx.emit("hazard.spawned", hazard.id,
                 f"Hazard • {hazard.id} ({hz_kind.value}) on edge {edge.id}{note}",
                 edge_id=edge.id, **hazard.as_dict())

        if self.policy.v2x_alert_on_spawn:
            self.vehicle_sim.alert_nearby(ctx, edge, hazard.pos,
                                          reason=f"{hz_kind.value} {hazard.id}")
        return hazard.id

    def set_modality_enabled(self, modality: "str | Modality", enabled: bool) -> None:
        """Toggle a modality; disabling clears everything it buffered."""
        ctx = self.ctx
        m = Modality.parse(modality)
        enabled = bool(enabled)
        ctx.modalities[m] = enabled
        if not enabled:
            if m is Modality.VISION:
                ctx.vision.clear()
            elif m is Modality.IMU:
                ctx.inertial.clear()
            ctx.evidence.forget_modality(m)
        log.info("modality %s %s", m.value, "enabled" if enabled else "disabled")
        ctx.emit("modality.toggled", m.value,
                 f"Sensor • {m.value} {'on' if enabled else 'off'}",
                 modality=m.value, enabled=enabled)

    def set_noise_level(self, value: float) -> float:
        self.ctx.noise_level = clamp(float(value))
        log.info("noise level %.2f", self.ctx.noise_level)
        return self.ctx.noise_level

    def reset_network(self) -> None:
        """Clear hazards, closures, evidence and routes; topology is kept."""
        ctx = self.ctx
        removed = ctx.graph.clear_hazards()
        ctx.clear_derived()
        self.vehicle_sim.reset_routes(ctx)
        log.info("network reset (%d hazard(s) cleared)", removed)
        ctx.emit("network.reset", "simulation", f"Network reset • {removed} hazard(s) cleared",
                 hazards_cleared=removed)

    def submit(self, command: Command) -> Future:
        """Queue *command* for the start of the next tick.  Thread-safe."""
        future: Future = Future()
        with self._mailbox_lock:
            self._mailbox.append((command, future))
        return future

    # ── clock phases ──────────────────────────────────────────────────────

    def tick(self, dt_ms: float) -> None:
        """Advance movement, proximity and sensor buffers by *dt_ms*."""
        ctx = self.ctx
        self._drain_mailbox()
        dt = ctx.clock.advance(dt_ms)
        now = ctx.now_ms

        self._expire_hazards(now)
        self._auto_spawn(dt)

        self.vehicle_sim.tick(ctx, dt)
        for vehicle in ctx.vehicles:
            scan_proximity(ctx, vehicle.id, vehicle.position(ctx.graph))

        if ctx.enabled(Modality.IMU):
            ctx.inertial.step(ctx)
        if self._sweep_phase.due(now):
            ctx.vision.sweep(now)

    def evaluate_fusion(self, now_ms: Optional[float] = None) -> FusionResult:
        """Run one fusion pass.

        *now_ms* ahead of the clock moves the clock forward first; earlier
        values are ignored because simulated time never runs backwards.
        """
        if now_ms is not None and now_ms > self.ctx.now_ms:
            self.ctx.clock.advance(now_ms - self.ctx.now_ms)
        return self.fusion.evaluate(self.ctx)

    def step(self, dt_ms: float) -> Optional[FusionResult]:
        """One tick, plus a fusion pass when the fusion period is due."""
        self.tick(dt_ms)
        if self._fusion_phase.due(self.ctx.now_ms):
            return self.evaluate_fusion()
        return None

    # ── queries ───────────────────────────────────────────────────────────

    @property
    def latest_fusion(self) -> FusionResult:
        return self.ctx.latest_fusion or FusionResult.empty(self.ctx.now_ms)

    def fusion_results(self) -> Dict[str, FusionResult]:
        return dict(self.ctx.fusion_results)

    def events(self, limit: Optional[int] = None) -> List[dict]:
        return [e.as_dict() for e in self.ctx.bus.recent(limit)]

    def get_snapshot(self) -> Dict[str, Any]:
        ctx = self.ctx
        return {
            "now_ms": ctx.now_ms,
            "vehicles": [v.as_dict(ctx.graph) for v in ctx.vehicles],
            "edges": ctx.graph.as_dict(),
            "fusion": self.latest_fusion.as_dict(),
            "fusion_by_hazard": {hid: r.as_dict() for hid, r in ctx.fusion_results.items()},
            "modalities": {m.value: ctx.enabled(m) for m in Modality},
            "noise_level": ctx.noise_level,
            "mitigations": self.fusion.mitigations,
            "events": self.events(),
            "bus_metrics": ctx.bus.metrics.report(),
        }

    # ── internals ─────────────────────────────────────────────────────────

    def _drain_mailbox(self) -> None:
        with self._mailbox_lock:
            pending = list(self._mailbox)
            self._mailbox.clear()
        for command, future in pending:
            if not future.set_running_or_notify_cancel():
                continue
            try:
                future.set_result(command(self))
            except Exception as exc:
                log.warning("queued command failed: %s", exc)
                future.set_exception(exc)

    def _expire_hazards(self, now: float) -> None:
        ctx = self.ctx
        for edge, hz in ctx.graph.expire_hazards(now):
            ctx.evidence.discard(hz.id)
            ctx.vision.discard(hz.id)
            ctx.inertial.discard(hz.id)
            ctx.fusion_results.pop(hz.id, None)
            for key in [k for k in ctx.proximity_seen if k[1] == hz.id]:
                del ctx.proximity_seen[key]
            if ctx.latest_fusion is not None and ctx.latest_fusion.hazard_id == hz.id:
                ctx.latest_fusion = None
            log.info("hazard %s expired on %s", hz.id, edge.id)
            ctx.emit("hazard.expired", hz.id, f"Hazard • {hz.id} cleared from {edge.id}",
                     edge_id=edge.id, kind=hz.kind.value)

    def _auto_spawn(self, dt_ms: float) -> None:
        rate = self.policy.auto_spawn_rate_hz
        if rate <= 0.0 or self.ctx.rng.random() >= rate * dt_ms / 1000.0:
            return
        try:
            self.spawn_hazard()
        except NoOpenEdgesError:
            log.debug("auto spawn skipped: no open edges")
