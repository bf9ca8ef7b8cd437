"""Live call event stream."""
import asyncio
import contextlib
import logging
from fastapi import APIRouter, Depends, WebSocket, WebSocketDisconnect

from support_bridge.core.dependencies import get_event_bus, get_orchestrator
from support_bridge.services.calls.orchestrator import CallOrchestrator
from support_bridge.services.realtime.bus import CallEventBus

router = APIRouter()
logger = logging.getLogger(__name__)


async def _wait_for_disconnect(websocket: WebSocket) -> None:
    """Consume client frames until the socket closes."""
    while True:
        message = await websocket.receive()
        if message["type"] == "websocket.disconnect":
            return


@router.websocket("/ws/calls/{call_id}")
async def call_events(
    websocket: WebSocket,
    call_id: str,
    orchestrator: CallOrchestrator = Depends(get_orchestrator),
    event_bus: CallEventBus = Depends(get_event_bus),
) -> None:
    """Stream events for one call to a browser client."""
    await websocket.accept()

    # Subscribe before reading the snapshot so no event falls between the two
    async with event_bus.subscription(call_id) as queue:
        record = await orchestrator.store.get(call_id)
        if record is None:
            await websocket.send_json({"type": "error", "callId": call_id, "error": "Call not found"})
            await websocket.close(code=4004)
            return

        logger.info(f"[REALTIME] Listener connected - CallId: {call_id}")
        await websocket.send_json({
            "type": "snapshot",
            "callId": call_id,
            "status": record.status.value,
            "providerStatus": record.provider_status,
            "transcript": record.transcript,
        })

        disconnect = asyncio.create_task(_wait_for_disconnect(websocket))
        try:
            while True:
                next_event = asyncio.create_task(queue.get())
                done, _ = await asyncio.wait(
                    {next_event, disconnect}, return_when=asyncio.FIRST_COMPLETED
                )
                if disconnect in done:
                    next_event.cancel()
                    break
                await websocket.send_json(next_event.result())
        except WebSocketDisconnect:
            pass
        finally:
            disconnect.cancel()
            with contextlib.suppress(asyncio.CancelledError, WebSocketDisconnect):
                await disconnect

    logger.info(f"[REALTIME] Listener disconnected - CallId: {call_id}")
