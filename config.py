#!/usr/bin/env python3
"""
config.py
=========
Application-wide configuration constants.

Values can be overridden via ``HAZARD_SIM_*`` environment variables (see
:mod:`main`).  This module is a thin, import-safe leaf — it never imports
from other project packages.  Algorithmic constants live in
:class:`sim.traffic_policy.RoutingPolicy`.
"""

# ── Simulation defaults ──────────────────────────────────────────────────────
DEFAULT_TICK_MS: float = 28.0
DEFAULT_MAX_CATCHUP_STEPS: int = 5
DEFAULT_SEED: int = 7
DEFAULT_NOISE_LEVEL: float = 0.1
DEFAULT_AUTO_SPAWN_HZ: float = 0.0

# ── Headless loop ────────────────────────────────────────────────────────────
STATUS_INTERVAL_S: float = 2.0

# ── HTTP API ─────────────────────────────────────────────────────────────────
API_HOST: str = "0.0.0.0"
API_PORT: int = 8000

# ── Logging ──────────────────────────────────────────────────────────────────
LOG_FILE: str = "hazard_sim.log"
FUSION_DEBUG_LOG_FILE: str = "fusion_debug.log"

ENV_PREFIX: str = "HAZARD_SIM_"
