"""
EventBus: In-memory pub/sub channel between the simulation core and its consumers.

Supports:
    - Topic-based publication with per-topic poll queues
    - Observer callbacks (per topic or for every topic)
    - A bounded, most-recent-first event log for feeds and HUDs
    - Logging of events

Intended usage:
    - The simulation publishes 'hazard.*', 'sensor.*', 'fusion.*' and 'vehicle.*' events
    - UIs either poll a topic, read recent(), or subscribe a callback
"""

import uuid
import logging
from collections import deque
from typing import Callable, Deque, Dict, List, Optional

from .message import SimEvent
from .metrics import BusMetrics

log = logging.getLogger(__name__)

Subscriber = Callable[[SimEvent], None]


class EventBus:
    """
    Transport layer for simulation events.

    Attributes:
        log_size (int): Capacity of the recent-event log and of every topic queue.
        metrics (BusMetrics): Publication / delivery counters.
    """

    def __init__(self, log_size: int = 120):
        """
        Initialize an EventBus instance.

        Args:
            log_size (int): Number of events kept in the recent log and in each topic queue.
        """
        self.log_size = max(1, int(log_size))
        self._topics: Dict[str, Deque[SimEvent]] = {}
        self._log: Deque[SimEvent] = deque(maxlen=self.log_size)
        self._subscribers: List[tuple] = []
        self.metrics = BusMetrics()

    def publish(
        self,
        topic: str,
        source: str,
        message: str,
        ts_ms: float,
        payload: Optional[dict] = None,
    ) -> SimEvent:
        """
        Publish an event to a topic and notify subscribers.

        Args:
            topic (str): The topic name (e.g., 'hazard.spawned').
            source (str): ID of the emitter.
            message (str): Human-readable summary.
            ts_ms (float): Simulation time of the event in milliseconds.
            payload (dict): Structured event details.

        Returns:
            SimEvent: The published event.
        """
        event = SimEvent(
            id=str(uuid.uuid4()),
            topic=topic,
            source=source,
            message=message,
            ts_ms=ts_ms,
            payload=dict(payload or {}),
        )
        queue = self._topics.get(topic)
        if queue is None:
            queue = self._topics[topic] = deque(maxlen=self.log_size)
        if len(queue) == queue.maxlen:
            self.metrics.evicted += 1
        queue.append(event)
        self._log.append(event)
        self.metrics.published += 1
        log.debug("publish topic=%s source=%s %s", topic, source, message)

        for wanted, callback in list(self._subscribers):
            if wanted is not None and wanted != topic:
                continue
            try:
                callback(event)
                self.metrics.delivered += 1
            except Exception:
                self.metrics.subscriber_errors += 1
                log.exception("subscriber failed for topic=%s", topic)
        return event

    def subscribe(self, callback: Subscriber, topic: Optional[str] = None) -> Callable[[], None]:
        """
        Register a callback invoked synchronously for every matching event.

        Args:
            callback (Callable[[SimEvent], None]): Observer to notify.
            topic (Optional[str]): Topic to filter on, or None for every topic.

        Returns:
            Callable[[], None]: A function that removes the subscription.
        """
        entry = (topic, callback)
        self._subscribers.append(entry)

        def unsubscribe() -> None:
            if entry in self._subscribers:
                self._subscribers.remove(entry)

        return unsubscribe

    def poll(self, topic: str) -> List[SimEvent]:
        """
        Retrieve and clear all queued events of a given topic.

        Args:
            topic (str): The topic name to poll events from.

        Returns:
            List[SimEvent]: Events published to the topic since the last poll, oldest first.
        """
        queue = self._topics.get(topic)
        if not queue:
            return []
        events = list(queue)
        queue.clear()
        return events

    def recent(self, limit: Optional[int] = None, topic: Optional[str] = None) -> List[SimEvent]:
        """
        Return logged events, most recent first.

        Args:
            limit (Optional[int]): Maximum number of events to return.
            topic (Optional[str]): Restrict to one topic.

        Returns:
            List[SimEvent]: Events ordered newest to oldest.
        """
        events = [e for e in reversed(self._log) if topic is None or e.topic == topic]
        if limit is not None:
            events = events[: max(0, int(limit))]
        return events

    def clear(self):
        """Drop the event log and every topic queue. Subscribers stay registered."""
        self._log.clear()
        self._topics.clear()
