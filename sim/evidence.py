"""
sim/evidence.py
===============
Per-hazard evidence records produced by the synthetic sensors and read by
the fusion engine.

:class:`HazardEvidenceStore` is keyed by :data:`~sim.network.HazardId`.
Hazard ids are never reused, so once evidence is discarded a stale id can
only ever resolve to ``None``.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Iterator, List, Optional, Tuple

from sim.network import EdgeId, Hazard, HazardId
from sim.physics import clamp

log = logging.getLogger("evidence")


class Modality(str, Enum):
    VISION = "vision"
    IMU = "imu"
    AUDIO = "audio"

    @classmethod
    def parse(cls, value: "str | Modality") -> "Modality":
        if isinstance(value, cls):
            return value
        text = str(value).strip().lower()
        for m in cls:
            if text in (m.value, m.name.lower()):
                return m
        raise ValueError(f"unknown modality {value!r}")


# ── Observations ──────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class VisionDetection:
    hazard_id: HazardId
    vehicle_id: str
    confidence: float
    ts_ms: float
    expires_ms: float

    def expired(self, now_ms: float) -> bool:
        return now_ms >= self.expires_ms


@dataclass(frozen=True)
class ImuFeature:
    """Features of the filtered jolt window attributed to one hazard.

    ``impulse`` is in g·s and ``half_width`` in seconds.
    """

    hazard_id: HazardId
    peak: float
    impulse: float
    half_width: float
    ts_ms: float


@dataclass(frozen=True)
class AudioFeature:
    hazard_id: HazardId
    energy: float
    screech: float
    ts_ms: float


# ── Aggregate ─────────────────────────────────────────────────────────────────

@dataclass
class HazardEvidence:
    """Mutable aggregate of everything observed about one hazard."""

    hazard: Hazard
    edge_id: EdgeId
    severity_ema: float = 0.0
    last_seen_ms: Dict[Modality, float] = field(default_factory=dict)
    last_value: Dict[Modality, float] = field(default_factory=dict)
    imu: Optional[ImuFeature] = None
    audio: Optional[AudioFeature] = None
    last_mitigation_ms: Optional[float] = None

    @property
    def hazard_id(self) -> HazardId:
        return self.hazard.id

    def record(self, modality: Modality, value: float, now_ms: float) -> None:
        self.last_seen_ms[modality] = now_ms
        self.last_value[modality] = clamp(value)

    def forget(self, modality: Modality) -> None:
        """Drop everything a modality contributed."""
        self.last_seen_ms.pop(modality, None)
        self.last_value.pop(modality, None)
        if modality is Modality.IMU:
            self.imu = None
        elif modality is Modality.AUDIO:
            self.audio = None

    def cooldown_elapsed(self, now_ms: float, cooldown_ms: float) -> bool:
        return self.last_mitigation_ms is None or now_ms - self.last_mitigation_ms >= cooldown_ms


class HazardEvidenceStore:
    """Evidence keyed by hazard id, plus the most recently observed hazard."""

    def __init__(self) -> None:
        self._items: Dict[HazardId, HazardEvidence] = {}
        self._latest: Optional[HazardId] = None

    def __len__(self) -> int:
        return len(self._items)

    def __contains__(self, hazard_id: object) -> bool:
        return hazard_id in self._items

    def observe(self, hazard: Hazard, edge_id: EdgeId) -> HazardEvidence:
        """Return the evidence for *hazard*, creating it on first sight."""
        ev = self._items.get(hazard.id)
        if ev is None:
            ev = HazardEvidence(hazard=hazard, edge_id=edge_id)
            self._items[hazard.id] = ev
            log.debug("evidence opened for %s on %s", hazard.id, edge_id)
        self._latest = hazard.id
        return ev

    def get(self, hazard_id: Optional[str]) -> Optional[HazardEvidence]:
        if hazard_id is None:
            return None
        return self._items.get(HazardId(hazard_id))

    @property
    def latest_id(self) -> Optional[HazardId]:
        return self._latest

    def discard(self, hazard_id: str) -> None:
        self._items.pop(HazardId(hazard_id), None)
        if self._latest == hazard_id:
            # fall back to the most recently opened remaining entry
            self._latest = next(reversed(self._items), None)

    def forget_modality(self, modality: Modality) -> None:
        for ev in self._items.values():
            ev.forget(modality)

    def clear(self) -> None:
        self._items.clear()
        self._latest = None

    def items(self) -> List[Tuple[HazardId, HazardEvidence]]:
        return list(self._items.items())

    def __iter__(self) -> Iterator[HazardEvidence]:
        return iter(list(self._items.values()))
