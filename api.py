"""
api.py
======
Optional FastAPI server exposing a running :class:`~sim.sim_bridge.SimBridge`.

Start the server::

    HAZARD_SIM_SERVE=1 python main.py      # → http://localhost:8000/snapshot

Endpoints
---------
* ``POST /hazards``               spawn a hazard (409 when the edge or every edge is closed)
* ``PUT  /modalities/{modality}`` enable / disable ``vision``, ``imu`` or ``audio``
* ``PUT  /noise``                 set the sensor noise level (clamped to 0..1)
* ``POST /reset``                 clear hazards, closures and derived state
* ``GET  /snapshot``              full simulation snapshot
* ``GET  /fusion``                latest and per-hazard fusion results
* ``GET  /events``                event feed, most recent first

.. note::

   This server is **not** required to run the simulation headless.
   It exists for external integrations and testing.
"""

import logging
from concurrent.futures import TimeoutError as CommandTimeout
from typing import Optional

from fastapi import FastAPI, HTTPException, Query
from pydantic import BaseModel, Field

from sim.errors import EdgeClosedError, NoOpenEdgesError, UnknownEdgeError
from sim.evidence import Modality
from sim.network import HazardKind
from sim.sim_bridge import SimBridge

log = logging.getLogger("api")

# ── Pydantic request schemas ─────────────────────────────────────────────────


class SpawnHazardRequest(BaseModel):
    """Hazard to place; omitted fields are drawn at random."""
    kind: Optional[HazardKind] = None
    edge_id: Optional[str] = None
    severity: Optional[float] = Field(None, ge=0.0, le=1.0)
    pos: Optional[float] = Field(None, ge=0.0, le=1.0)
    closes_edge: Optional[bool] = None


class ModalityRequest(BaseModel):
    enabled: bool


class NoiseRequest(BaseModel):
    level: float


# ── FastAPI application ──────────────────────────────────────────────────────


def create_app(bridge: SimBridge) -> FastAPI:
    """Build the HTTP surface around *bridge*."""
    app = FastAPI(
        title="Hazard Routing & Sensor Fusion API",
        description="Spawns road hazards and reports fused sensor evidence.",
        version="1.0",
    )

    @app.post("/hazards", status_code=201)
    def spawn_hazard(req: SpawnHazardRequest):
        """Spawn a hazard on an open edge."""
        try:
            hazard_id = bridge.spawn_hazard(
                kind=req.kind,
                edge_id=req.edge_id,
                severity=req.severity,
                pos=req.pos,
                closes_edge=req.closes_edge,
            )
        except (NoOpenEdgesError, EdgeClosedError) as exc:
            raise HTTPException(status_code=409, detail=str(exc))
        except UnknownEdgeError as exc:
            raise HTTPException(status_code=404, detail=str(exc))
        except CommandTimeout:
            raise HTTPException(status_code=503, detail="simulation did not respond")
        log.info("spawned %s via API", hazard_id)
        return {"hazard_id": hazard_id}

    @app.put("/modalities/{modality}")
    def set_modality(modality: Modality, req: ModalityRequest):
        """Enable or disable one sensing modality."""
        try:
            bridge.set_modality_enabled(modality, req.enabled)
        except CommandTimeout:
            raise HTTPException(status_code=503, detail="simulation did not respond")
        return {"modality": modality.value, "enabled": req.enabled}

    @app.put("/noise")
    def set_noise(req: NoiseRequest):
        try:
            level = bridge.set_noise_level(req.level)
        except CommandTimeout:
            raise HTTPException(status_code=503, detail="simulation did not respond")
        return {"noise_level": level}

    @app.post("/reset")
    def reset():
        try:
            bridge.reset_network()
        except CommandTimeout:
            raise HTTPException(status_code=503, detail="simulation did not respond")
        return {"status": "reset"}

    @app.get("/snapshot")
    def snapshot():
        return bridge.get_snapshot()

    @app.get("/fusion")
    def fusion():
        return bridge.get_fusion()

    @app.get("/events")
    def events(limit: Optional[int] = Query(None, ge=0)):
        return bridge.get_events(limit)

    return app
