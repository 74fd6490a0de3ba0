"""
BusMetrics: Tracks simple statistics for EventBus traffic.
"""


class BusMetrics:
    """
    Tracks metrics for published events, subscriber deliveries and failures.

    Attributes:
        published (int): Total number of events published.
        delivered (int): Number of successful subscriber callbacks.
        subscriber_errors (int): Number of subscriber callbacks that raised.
        evicted (int): Number of events pushed out of a full topic queue before being polled.
    """

    def __init__(self):
        """Initialize all counters to zero."""
        self.published = 0
        self.delivered = 0
        self.subscriber_errors = 0
        self.evicted = 0

    def report(self) -> dict:
        """
        Return a snapshot of current metrics.

        Returns:
            dict: Dictionary containing 'published', 'delivered', 'subscriber_errors' and 'evicted' counters.
        """
        return {
            "published": self.published,
            "delivered": self.delivered,
            "subscriber_errors": self.subscriber_errors,
            "evicted": self.evicted,
        }
