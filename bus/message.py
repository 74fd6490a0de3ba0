"""
SimEvent: Data structure representing a notable occurrence published on the EventBus.
"""

from dataclasses import dataclass, field


@dataclass(frozen=True)
class SimEvent:
    """
    Represents a single event emitted by the simulation.

    Attributes:
        id (str): Unique identifier for the event.
        topic (str): Event topic (e.g., 'hazard.spawned', 'sensor.vision', 'fusion.mitigation').
        source (str): ID of the emitter (e.g., 'V1', 'HZ0003', 'fusion').
        message (str): Human-readable one-line summary for event feeds.
        ts_ms (float): Simulation time (milliseconds) at which the event occurred.
        payload (dict): Arbitrary dictionary with structured event details.
    """
    id: str
    topic: str
    source: str
    message: str
    ts_ms: float
    payload: dict = field(default_factory=dict)

    def as_dict(self) -> dict:
        """
        Serialisable mapping of the event.

        Returns:
            dict: Mapping with 'id', 'topic', 'source', 'message', 'ts_ms' and 'payload'.
        """
        return {
            "id": self.id,
            "topic": self.topic,
            "source": self.source,
            "message": self.message,
            "ts_ms": self.ts_ms,
            "payload": dict(self.payload),
        }
