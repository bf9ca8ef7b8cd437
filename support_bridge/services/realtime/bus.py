"""Per-call publish/subscribe for live call events."""
import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict, Set

logger = logging.getLogger(__name__)

# Event types sent to listeners
RINGING = "ringing"
IN_PROGRESS = "in-progress"
MESSAGE = "message"
CALL_ENDED = "call_ended"
TRANSCRIPT_READY = "transcript_ready"
CALL_ERROR = "call_error"


class CallEventBus:
    """
    Fans call events out to listeners subscribed to that call.

    Each subscriber gets its own bounded queue. When a queue is full the
    event is dropped for that subscriber only.
    """

    def __init__(self, max_queue_size: int = 100):
        self.max_queue_size = max_queue_size
        self._subscribers: Dict[str, Set[asyncio.Queue]] = {}

    def subscribe(self, call_id: str) -> asyncio.Queue:
        queue: asyncio.Queue = asyncio.Queue(maxsize=self.max_queue_size)
        self._subscribers.setdefault(call_id, set()).add(queue)
        logger.debug(f"[EVENT BUS] Subscriber added for call {call_id}")
        return queue

    def unsubscribe(self, call_id: str, queue: asyncio.Queue) -> None:
        queues = self._subscribers.get(call_id)
        if not queues:
            return
        queues.discard(queue)
        if not queues:
            del self._subscribers[call_id]
        logger.debug(f"[EVENT BUS] Subscriber removed for call {call_id}")

    @asynccontextmanager
    async def subscription(self, call_id: str) -> AsyncIterator[asyncio.Queue]:
        queue = self.subscribe(call_id)
        try:
            yield queue
        finally:
            self.unsubscribe(call_id, queue)

    def subscriber_count(self, call_id: str) -> int:
        return len(self._subscribers.get(call_id, ()))

    async def publish(self, call_id: str, event_type: str, **data: Any) -> int:
        """Send an event to every subscriber of a call. Returns the number reached."""
        event = {"type": event_type, "callId": call_id, **data}
        delivered = 0
        for queue in list(self._subscribers.get(call_id, ())):
            try:
                queue.put_nowait(event)
                delivered += 1
            except asyncio.QueueFull:
                logger.warning(
                    f"[EVENT BUS] Dropping {event_type} event for call {call_id}: subscriber queue full"
                )
        return delivered
