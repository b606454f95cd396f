"""
Tests for event channels
"""

from webprobe.core.events import EventChannel


class TestEventChannel:
    def test_publish_to_all_subscribers(self):
        channel = EventChannel("test")
        first = channel.subscribe()
        second = channel.subscribe()

        delivered = channel.publish("hello")

        assert delivered == 2
        assert first.drain() == ["hello"]
        assert second.drain() == ["hello"]

    def test_callback_and_buffer(self):
        channel = EventChannel("test")
        seen = []
        subscription = channel.subscribe(callback=seen.append)

        channel.publish(1)
        channel.publish(2)

        assert seen == [1, 2]
        assert subscription.pending() == 2
        assert subscription.delivered == 2

    def test_unsubscribe(self):
        channel = EventChannel("test")
        subscription = channel.subscribe()

        assert subscription.unsubscribe() is True
        assert subscription.unsubscribe() is False
        assert channel.publish("ignored") == 0
        assert subscription.drain() == []

    def test_context_manager_unsubscribes(self):
        channel = EventChannel("test")

        with channel.subscribe() as subscription:
            assert channel.subscriber_count() == 1

        assert subscription.active is False
        assert channel.subscriber_count() == 0

    def test_default_buffer_size(self):
        channel = EventChannel("test", default_maxsize=3)
        subscription = channel.subscribe()

        for i in range(5):
            channel.publish(i)

        assert subscription.drain() == [2, 3, 4]
        assert subscription.dropped == 2

    def test_close(self):
        channel = EventChannel("test")
        subscription = channel.subscribe()

        channel.close()

        assert subscription.active is False
        assert channel.subscriber_count() == 0
