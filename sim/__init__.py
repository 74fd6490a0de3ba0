"""
sim — Simulation core
=====================

Modules
-------
network
    :class:`RoadGraph` with hazards, closures and Dijkstra routing.
filters
    :class:`AlphaBetaFilter` smoothing for the inertial channel.
evidence
    Per-hazard evidence records and the :class:`HazardEvidenceStore`.
sensors
    Vision, inertial and acoustic evidence generators plus proximity scan.
fusion
    :class:`FusionEngine` probability / severity fusion and mitigation.
vehicles
    :class:`Vehicle` movement and the decision state machine.
clock
    Simulated clock, periodic phases and the fixed-step accumulator.
context
    :class:`SimulationContext` holding all mutable state.
simulation
    :class:`Simulation` command / query facade with its mailbox.
sim_bridge
    :class:`SimBridge` background-thread host.
traffic_policy
    :class:`RoutingPolicy` tunable constants and cost helpers.
physics
    Clamping, interpolation and distance helpers.
errors
    Exception hierarchy.
"""
