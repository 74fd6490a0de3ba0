"""
sim/sim_bridge.py
=================
Background-thread host for :class:`~sim.simulation.Simulation`.  Readers
(the HTTP API, a HUD, a logging loop) poll the bridge for the latest
snapshot without blocking the simulation thread.

Public API consumed by :mod:`api`
---------------------------------
* ``get_snapshot()``              → ``dict``
* ``get_fusion()``                → ``dict``
* ``get_events(limit)``           → ``List[dict]``
* ``spawn_hazard(**kwargs)``      → ``str``
* ``set_modality_enabled(m, on)`` → ``None``
* ``set_noise_level(value)``      → ``float``
* ``reset_network()``             → ``None``
* ``set_paused(bool)``            → ``None``

Commands travel through the simulation mailbox and are applied at the
start of the next tick; the calling thread blocks on the returned future.
"""

from __future__ import annotations

import threading
import time
import logging
from typing import Any, Dict, List, Optional

from sim.clock import TickAccumulator
from sim.simulation import Command, Simulation

log = logging.getLogger("sim_bridge")

_COMMAND_TIMEOUT_S = 2.0


class SimBridge:
    """Simulation orchestrator running in a background thread.

    The thread feeds wall-clock time into a :class:`~sim.clock.TickAccumulator`
    and runs one :meth:`Simulation.step` per fixed step, then publishes a
    fresh snapshot for reader threads.

    Parameters
    ----------
    simulation : Simulation or None
        Simulation to host; a default one is built when *None*.
    tick_ms : float
        Fixed simulation step in milliseconds.
    max_steps : int
        Catch-up bound per loop iteration after a stall.
    """

    def __init__(
        self,
        simulation: Optional[Simulation] = None,
        tick_ms: float = 28.0,
        max_steps: int = 5,
    ) -> None:
        self._sim = simulation or Simulation()
        self._tick_ms = tick_ms
        self._acc = TickAccumulator(tick_ms, max_steps=max_steps)

        self._lock = threading.Lock()
        # Held for every tick and snapshot build; the simulation has one writer at a time
        self._step_lock = threading.Lock()

        # Cached state, written by the sim thread and read by everyone else
        self._snapshot: Dict[str, Any] = self._sim.get_snapshot()

        self._thread: Optional[threading.Thread] = None
        self._running = False
        self._paused = False

    @property
    def simulation(self) -> Simulation:
        return self._sim

    @property
    def running(self) -> bool:
        return self._running

    # ── Lifecycle ─────────────────────────────────────────────────────────────

    def start(self) -> None:
        """Spawn the background simulation thread."""
        if self._running:
            return
        self._running = True
        self._thread = threading.Thread(
            target=self._loop, daemon=True, name="SimBridge"
        )
        self._thread.start()
        log.info("SimBridge started, step %.1f ms", self._tick_ms)

    def stop(self) -> None:
        """Signal the thread to stop and wait for it to join."""
        self._running = False
        if self._thread:
            self._thread.join(timeout=2.0)
            self._thread = None
        log.info("SimBridge stopped")

    def set_paused(self, paused: bool) -> None:
        """Pause / unpause the simulation tick.  Queued commands wait too."""
        self._paused = paused

    # ── Queries ───────────────────────────────────────────────────────────────

    def get_snapshot(self) -> Dict[str, Any]:
        with self._lock:
            return dict(self._snapshot)

    def get_fusion(self) -> Dict[str, Any]:
        with self._lock:
            return {
                "latest": self._snapshot["fusion"],
                "by_hazard": dict(self._snapshot["fusion_by_hazard"]),
            }

    def get_events(self, limit: Optional[int] = None) -> List[Dict[str, Any]]:
        with self._lock:
            events = list(self._snapshot["events"])
        return events if limit is None else events[: max(0, int(limit))]

    # ── Commands ──────────────────────────────────────────────────────────────

    def spawn_hazard(self, **kwargs: Any) -> str:
        return self._call(lambda sim: sim.spawn_hazard(**kwargs))

    def set_modality_enabled(self, modality: str, enabled: bool) -> None:
        self._call(lambda sim: sim.set_modality_enabled(modality, enabled))

    def set_noise_level(self, value: float) -> float:
        return self._call(lambda sim: sim.set_noise_level(value))

    def reset_network(self) -> None:
        self._call(lambda sim: sim.reset_network())

    def _call(self, command: Command) -> Any:
        """Run *command* on the simulation thread and return its result.

        Without a running thread the command is applied by a tick of zero
        length on the caller's thread, serialized with every other caller.
        """
        future = self._sim.submit(command)
        if not self._running:
            with self._step_lock:
                self._sim.tick(0.0)
                self._publish()
        return future.result(timeout=_COMMAND_TIMEOUT_S)

    # ── Background loop ───────────────────────────────────────────────────────

    def _loop(self) -> None:
        last = time.perf_counter()
        while self._running:
            now = time.perf_counter()
            elapsed_ms = (now - last) * 1000.0
            last = now
            if not self._paused:
                try:
                    self._tick(elapsed_ms)
                except Exception:
                    log.exception("SimBridge tick error")
            time.sleep(self._tick_ms / 1000.0)

    def _tick(self, elapsed_ms: float) -> None:
        steps = self._acc.feed(elapsed_ms)
        if not steps:
            return
        with self._step_lock:
            for _ in range(steps):
                self._sim.step(self._tick_ms)
            self._publish()

    def _publish(self) -> None:
        snapshot = self._sim.get_snapshot()
        # Atomic swap: readers see either the old or the new snapshot.
        with self._lock:
            self._snapshot = snapshot
