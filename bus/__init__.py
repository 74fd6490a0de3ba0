"""
bus — In-memory event infrastructure
========================================

Provides a lightweight pub/sub channel with a bounded most-recent-first
event log, used by the simulation core to report notable occurrences
(hazards spawned, sensor observations, mitigations) to its consumers
without depending on any UI framework.

Modules
-------
message
    :class:`SimEvent` dataclass.
event_bus
    :class:`EventBus` publish / subscribe / poll / recent transport.
metrics
    :class:`BusMetrics` counter snapshot.
"""

from .message import SimEvent
from .event_bus import EventBus
from .metrics import BusMetrics

__all__ = [
    "SimEvent",
    "EventBus",
    "BusMetrics",
]
