"""Health check endpoint."""
import logging
from datetime import datetime, timezone
from fastapi import APIRouter, Depends, Request

from support_bridge.core.config import settings
from support_bridge.core.dependencies import get_orchestrator
from support_bridge.services.calls.orchestrator import CallOrchestrator

router = APIRouter()
logger = logging.getLogger(__name__)


@router.get("/health")
async def health_check(
    request: Request,
    orchestrator: CallOrchestrator = Depends(get_orchestrator),
):
    """Health check endpoint."""
    logger.debug(
        f"[HEALTH] Health check requested - Client: {request.client.host if request.client else 'unknown'}"
    )
    return {
        "status": "healthy",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "totalCalls": await orchestrator.count(),
        "mockMode": settings.mock_mode,
        "assistantMode": settings.assistant_mode,
        "statusSync": settings.status_sync,
        "config": {
            "apiKey": bool(settings.vapi_api_key),
            "assistantId": bool(settings.vapi_assistant_id),
            "phoneNumberId": bool(settings.vapi_phone_number_id),
            "supportPhoneNumber": bool(settings.support_phone_number),
        },
    }
