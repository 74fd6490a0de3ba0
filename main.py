#!/usr/bin/env python3
"""
main.py
=======
Entry point.  Runs the simulation in a :class:`~sim.sim_bridge.SimBridge`
and either logs a status line every few seconds (headless) or serves the
HTTP API with ``uvicorn`` when ``HAZARD_SIM_SERVE=1``.

Environment overrides
---------------------
``HAZARD_SIM_TICK_MS``, ``HAZARD_SIM_SEED``, ``HAZARD_SIM_NOISE``,
``HAZARD_SIM_AUTO_SPAWN_HZ``, ``HAZARD_SIM_V2X_ALERT``, ``HAZARD_SIM_HOST``,
``HAZARD_SIM_PORT``, ``HAZARD_SIM_LOG_LEVEL``, ``HAZARD_SIM_SERVE``.
"""

import os
import time
import logging
from dataclasses import replace
from typing import Callable, TypeVar

import config
from logging_setup import setup_logging
from sim.sim_bridge import SimBridge
from sim.simulation import Simulation
from sim.traffic_policy import RoutingPolicy

T = TypeVar("T")


def _env(name: str, default: T, cast: Callable[[str], T]) -> T:
    raw = os.environ.get(config.ENV_PREFIX + name)
    if raw is None or raw == "":
        return default
    try:
        return cast(raw)
    except ValueError:
        logging.getLogger("main").warning(
            "ignoring %s%s=%r: not a valid value", config.ENV_PREFIX, name, raw
        )
        return default


def _flag(raw: str) -> bool:
    return raw.strip().lower() in ("1", "true", "yes", "on")


def build_bridge() -> SimBridge:
    """Assemble policy, simulation and bridge from config + environment."""
    policy = replace(
        RoutingPolicy(),
        auto_spawn_rate_hz=_env("AUTO_SPAWN_HZ", config.DEFAULT_AUTO_SPAWN_HZ, float),
        v2x_alert_on_spawn=_env("V2X_ALERT", False, _flag),
    )
    simulation = Simulation(
        policy=policy,
        seed=_env("SEED", config.DEFAULT_SEED, int),
        noise_level=_env("NOISE", config.DEFAULT_NOISE_LEVEL, float),
    )
    return SimBridge(
        simulation,
        tick_ms=_env("TICK_MS", config.DEFAULT_TICK_MS, float),
        max_steps=config.DEFAULT_MAX_CATCHUP_STEPS,
    )


def _run_headless(bridge: SimBridge, log: logging.Logger) -> None:
    while True:
        time.sleep(config.STATUS_INTERVAL_S)
        snap = bridge.get_snapshot()
        fusion = snap["fusion"]
        log.info(
            "t=%.1fs hazards=%d p=%.2f sev=%.2f source=%s mitigations=%d",
            snap["now_ms"] / 1000.0,
            sum(len(e["hazards"]) for e in snap["edges"]),
            fusion["probability"],
            fusion["severity"],
            fusion["source"],
            snap["mitigations"],
        )
        for vehicle in snap["vehicles"]:
            log.debug("%s %s→%s %s", vehicle["id"], vehicle["from"], vehicle["to"], vehicle["decision"])


def main():
    level_name = os.environ.get(config.ENV_PREFIX + "LOG_LEVEL", "INFO").upper()
    setup_logging(getattr(logging, level_name, logging.INFO))
    log = logging.getLogger("main")
    log.info("Starting hazard simulation...")

    bridge = build_bridge()
    bridge.start()
    try:
        if _env("SERVE", False, _flag):
            import uvicorn
            from api import create_app

            uvicorn.run(
                create_app(bridge),
                host=_env("HOST", config.API_HOST, str),
                port=_env("PORT", config.API_PORT, int),
            )
        else:
            _run_headless(bridge, log)
    except KeyboardInterrupt:
        log.info("Shutting down...")
    finally:
        bridge.stop()


if __name__ == "__main__":
    main()
