"""Unit tests for the call event bus."""
import pytest

from support_bridge.services.realtime.bus import CALL_ENDED, RINGING, CallEventBus


class TestCallEventBus:
    """Test per-call fan-out."""

    @pytest.mark.asyncio
    async def test_publish_reaches_subscribers_of_that_call_only(self, event_bus):
        first = event_bus.subscribe("call-1")
        second = event_bus.subscribe("call-1")
        other = event_bus.subscribe("call-2")

        delivered = await event_bus.publish("call-1", RINGING)

        assert delivered == 2
        assert first.get_nowait() == {"type": "ringing", "callId": "call-1"}
        assert second.get_nowait() == {"type": "ringing", "callId": "call-1"}
        assert other.empty()

    @pytest.mark.asyncio
    async def test_publish_without_subscribers(self, event_bus):
        assert await event_bus.publish("call-1", CALL_ENDED) == 0

    @pytest.mark.asyncio
    async def test_event_data_is_included(self, event_bus):
        queue = event_bus.subscribe("call-1")

        await event_bus.publish("call-1", "message", role="assistant", text="Hello")

        assert queue.get_nowait() == {
            "type": "message",
            "callId": "call-1",
            "role": "assistant",
            "text": "Hello",
        }

    @pytest.mark.asyncio
    async def test_subscription_context_unsubscribes(self, event_bus):
        async with event_bus.subscription("call-1"):
            assert event_bus.subscriber_count("call-1") == 1

        assert event_bus.subscriber_count("call-1") == 0
        assert await event_bus.publish("call-1", RINGING) == 0

    @pytest.mark.asyncio
    async def test_full_queue_drops_event_for_that_subscriber(self):
        bus = CallEventBus(max_queue_size=1)
        slow = bus.subscribe("call-1")
        await bus.publish("call-1", RINGING)
        fast = bus.subscribe("call-1")

        delivered = await bus.publish("call-1", CALL_ENDED)

        assert delivered == 1
        assert slow.qsize() == 1
        assert slow.get_nowait()["type"] == "ringing"
        assert fast.get_nowait()["type"] == "call_ended"

    def test_unsubscribe_unknown_queue_is_noop(self, event_bus):
        queue = event_bus.subscribe("call-1")
        event_bus.unsubscribe("call-2", queue)
        event_bus.unsubscribe("call-1", queue)
        event_bus.unsubscribe("call-1", queue)

        assert event_bus.subscriber_count("call-1") == 0
