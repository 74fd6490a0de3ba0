"""
sim/context.py
==============
:class:`SimulationContext` — every piece of mutable simulation state in one
explicit object.  The caller owns it and passes it by reference into each
subsystem call; there are no module-level singletons.
"""

from __future__ import annotations

import random
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

from bus.event_bus import EventBus
from sim.clock import SimulationClock
from sim.evidence import HazardEvidenceStore, Modality
from sim.fusion import FusionResult
from sim.network import HazardId, RoadGraph
from sim.physics import clamp
from sim.sensors import AcousticSensor, InertialSensor, VisionSensor
from sim.traffic_policy import RoutingPolicy
from sim.vehicles import Vehicle


@dataclass
class SimulationContext:
    graph: RoadGraph
    policy: RoutingPolicy = field(default_factory=RoutingPolicy)
    clock: SimulationClock = field(default_factory=SimulationClock)
    rng: random.Random = field(default_factory=random.Random)
    bus: Optional[EventBus] = None
    vehicles: List[Vehicle] = field(default_factory=list)
    evidence: HazardEvidenceStore = field(default_factory=HazardEvidenceStore)
    modalities: Dict[Modality, bool] = field(
        default_factory=lambda: {m: True for m in Modality}
    )
    noise_level: float = 0.1
    # (vehicle id, hazard id) -> time of the last observation
    proximity_seen: Dict[Tuple[str, str], float] = field(default_factory=dict)
    fusion_results: Dict[HazardId, FusionResult] = field(default_factory=dict)
    latest_fusion: Optional[FusionResult] = None
    vision: VisionSensor = field(init=False)
    inertial: InertialSensor = field(init=False)
    acoustic: AcousticSensor = field(init=False)

    def __post_init__(self) -> None:
        if self.bus is None:
            self.bus = EventBus(log_size=self.policy.event_log_size)
        self.noise_level = clamp(self.noise_level)
        self.vision = VisionSensor(self.policy)
        self.inertial = InertialSensor(self.policy)
        self.acoustic = AcousticSensor(self.policy)

    @property
    def now_ms(self) -> float:
        return self.clock.now_ms

    def enabled(self, modality: Modality) -> bool:
        return self.modalities.get(modality, False)

    def vehicle(self, vehicle_id: str) -> Optional[Vehicle]:
        for v in self.vehicles:
            if v.id == vehicle_id:
                return v
        return None

    def emit(self, topic: str, source: str, message: str, /, **payload) -> None:
        self.bus.publish(topic, source, message, ts_ms=self.now_ms, payload=payload)

    def clear_derived(self) -> None:
        """Drop evidence, detections, pulse queues and fusion output."""
        self.evidence.clear()
        self.vision.clear()
        self.inertial.clear()
        self.proximity_seen.clear()
        self.fusion_results = {}
        self.latest_fusion = None
