"""
EventBus tests: bounded log ordering, topic polling and subscriber isolation.
"""

import unittest

from bus.event_bus import EventBus


class EventBusTests(unittest.TestCase):
    def test_log_is_bounded_and_most_recent_first(self):
        bus = EventBus(log_size=3)
        for i in range(5):
            bus.publish("hazard.spawned", f"HZ{i:04d}", f"event {i}", ts_ms=float(i))

        recent = bus.recent()
        self.assertEqual([e.source for e in recent], ["HZ0004", "HZ0003", "HZ0002"])
        self.assertEqual([e.source for e in bus.recent(limit=1)], ["HZ0004"])
        self.assertEqual(bus.metrics.published, 5)
        self.assertEqual(bus.metrics.evicted, 2)

    def test_recent_filters_by_topic(self):
        bus = EventBus()
        bus.publish("sensor.vision", "V1", "seen", ts_ms=0.0)
        bus.publish("sensor.imu", "V1", "jolt", ts_ms=1.0)
        bus.publish("sensor.vision", "V2", "seen", ts_ms=2.0)
        self.assertEqual([e.source for e in bus.recent(topic="sensor.vision")], ["V2", "V1"])

    def test_poll_drains_topic_oldest_first(self):
        bus = EventBus()
        bus.publish("vehicle.decision", "V1", "slow", ts_ms=0.0, payload={"decision": "SlowDown"})
        bus.publish("vehicle.decision", "V2", "reroute", ts_ms=1.0)
        polled = bus.poll("vehicle.decision")
        self.assertEqual([e.source for e in polled], ["V1", "V2"])
        self.assertEqual(polled[0].payload, {"decision": "SlowDown"})
        self.assertEqual(bus.poll("vehicle.decision"), [])
        self.assertEqual(bus.poll("unknown.topic"), [])
        # polling does not touch the feed
        self.assertEqual(len(bus.recent()), 2)

    def test_subscriber_error_does_not_break_publishing(self):
        bus = EventBus()
        received = []

        def broken(event):
            raise RuntimeError("boom")

        bus.subscribe(broken)
        bus.subscribe(received.append, topic="fusion.mitigation")

        with self.assertLogs("bus.event_bus", level="ERROR"):
            event = bus.publish("fusion.mitigation", "fusion", "confirmed", ts_ms=5.0)

        self.assertEqual(received, [event])
        self.assertEqual(bus.metrics.subscriber_errors, 1)
        self.assertEqual(bus.metrics.delivered, 1)

    def test_unsubscribe(self):
        bus = EventBus()
        received = []
        unsubscribe = bus.subscribe(received.append)
        bus.publish("network.reset", "simulation", "reset", ts_ms=0.0)
        unsubscribe()
        bus.publish("network.reset", "simulation", "reset", ts_ms=1.0)
        self.assertEqual(len(received), 1)

    def test_event_serialises(self):
        bus = EventBus()
        event = bus.publish("hazard.expired", "HZ0001", "cleared", ts_ms=15000.0, payload={"edge_id": "AB"})
        data = event.as_dict()
        self.assertEqual(data["topic"], "hazard.expired")
        self.assertEqual(data["payload"], {"edge_id": "AB"})
        self.assertEqual(data["id"], event.id)

    def test_clear(self):
        bus = EventBus()
        bus.publish("network.reset", "simulation", "reset", ts_ms=0.0)
        bus.clear()
        self.assertEqual(bus.recent(), [])
        self.assertEqual(bus.poll("network.reset"), [])


if __name__ == "__main__":
    unittest.main()
