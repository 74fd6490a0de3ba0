"""
sim/errors.py
=============
Exceptions raised by the simulation core.

Only conditions the caller must react to are errors.  Degenerate paths,
stale evidence and out-of-range confidences are handled in place.
"""


class SimulationError(Exception):
    """Base class for every simulation-core error."""


class NoOpenEdgesError(SimulationError):
    """A hazard was requested but every edge of the graph is closed."""

    def __init__(self) -> None:
        super().__init__("cannot spawn hazard: every edge is closed")


class UnknownNodeError(SimulationError, KeyError):
    """A node id that is not part of the road graph."""

    def __init__(self, node_id: str) -> None:
        super().__init__(f"unknown node {node_id!r}")
        self.node_id = node_id


class UnknownEdgeError(SimulationError, KeyError):
    """An edge id that is not part of the road graph."""

    def __init__(self, edge_id: str) -> None:
        super().__init__(f"unknown edge {edge_id!r}")
        self.edge_id = edge_id


class EdgeClosedError(SimulationError):
    """A hazard was requested on an edge that is currently closed."""

    def __init__(self, edge_id: str) -> None:
        super().__init__(f"cannot spawn hazard: edge {edge_id!r} is closed")
        self.edge_id = edge_id
