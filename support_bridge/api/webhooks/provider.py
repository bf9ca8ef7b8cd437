"""Voice provider webhook endpoint."""
import logging
from fastapi import APIRouter, Depends, Request

from support_bridge.core.dependencies import get_orchestrator
from support_bridge.services.calls.orchestrator import CallOrchestrator

router = APIRouter()
logger = logging.getLogger(__name__)

ACK = {"received": True}


@router.post("/webhook/{provider_name}")
async def handle_provider_webhook(
    request: Request,
    provider_name: str,
    orchestrator: CallOrchestrator = Depends(get_orchestrator),
):
    """
    Handle push notifications from the voice provider.

    Always acknowledges with 200 so the provider never retries; failures are
    only logged.
    """
    logger.info(
        f"[WEBHOOK] Received {provider_name} webhook - "
        f"Client: {request.client.host if request.client else 'unknown'}"
    )

    provider = orchestrator.provider
    if provider_name != provider.name:
        logger.warning(
            f"[WEBHOOK] Ignoring webhook for provider '{provider_name}', "
            f"configured provider is '{provider.name}'"
        )
        return ACK

    try:
        payload = await request.json()
        if not isinstance(payload, dict):
            logger.warning(f"[WEBHOOK] Ignoring non-object payload of type {type(payload).__name__}")
            return ACK

        event = provider.parse_event(payload)
        if event is None:
            logger.debug("[WEBHOOK] Payload carries no event we act on")
            return ACK

        logger.info(
            f"[WEBHOOK] Event {event.kind.value} - Provider call: {event.provider_call_id}, "
            f"Status: {event.status}"
        )
        record = await orchestrator.handle_provider_event(event)
        if record is not None:
            logger.info(f"[WEBHOOK] Updated call {record.id} - Status: {record.status}")

    except Exception as e:
        logger.error(
            f"[WEBHOOK] Error handling {provider_name} webhook - "
            f"Error: {type(e).__name__}: {str(e)}",
            exc_info=True
        )
        # Still acknowledge to avoid provider retries

    return ACK
