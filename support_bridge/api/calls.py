"""Call API endpoints."""
import logging
from typing import List, Optional
from fastapi import APIRouter, Depends, Request, HTTPException
from fastapi.responses import FileResponse, JSONResponse
from pydantic import BaseModel, ConfigDict, Field

from support_bridge.core.dependencies import get_orchestrator
from support_bridge.services.calls.errors import NotFoundError, UpstreamError, ValidationError
from support_bridge.services.calls.models import CallRecord
from support_bridge.services.calls.orchestrator import CallOrchestrator
from support_bridge.services.transcript.recordings import media_type_for

router = APIRouter()
logger = logging.getLogger(__name__)


class InitiateCallResponse(BaseModel):
    """Initiate call response model."""
    model_config = ConfigDict(populate_by_name=True)

    success: bool = True
    call_id: str = Field(alias="callId")
    message: str
    listen_url: Optional[str] = Field(None, alias="listenUrl")


class CallStatusResponse(BaseModel):
    """Call status response model."""
    model_config = ConfigDict(populate_by_name=True)

    status: str
    provider_status: str = Field(alias="providerStatus")
    transcript: Optional[str] = None
    help_request: str = Field(alias="helpRequest")
    created_at: str = Field(alias="createdAt")
    completed_at: Optional[str] = Field(None, alias="completedAt")
    duration: Optional[float] = None
    ended_reason: Optional[str] = Field(None, alias="endedReason")
    recording_available: bool = Field(False, alias="recordingAvailable")
    listen_url: Optional[str] = Field(None, alias="listenUrl")


class CallSummaryResponse(BaseModel):
    """Call history entry response model."""
    model_config = ConfigDict(populate_by_name=True)

    id: str
    help_request: str = Field(alias="helpRequest")
    status: str
    created_at: str = Field(alias="createdAt")
    completed_at: Optional[str] = Field(None, alias="completedAt")


class EndCallResponse(BaseModel):
    """End call response model."""
    model_config = ConfigDict(populate_by_name=True)

    call_id: str = Field(alias="callId")
    status: str
    message: str


def upstream_error_response(message: str, error: UpstreamError) -> JSONResponse:
    """500 response carrying the provider's error detail."""
    return JSONResponse(status_code=500, content={"error": message, "details": error.details})


def to_status_response(record: CallRecord) -> CallStatusResponse:
    return CallStatusResponse(
        status=record.status.value,
        provider_status=record.provider_status,
        transcript=record.transcript,
        help_request=record.help_request,
        created_at=record.created_at.isoformat(),
        completed_at=record.completed_at.isoformat() if record.completed_at else None,
        duration=record.duration,
        ended_reason=record.ended_reason,
        recording_available=record.recording_available,
        listen_url=record.listen_url,
    )


async def read_help_request(request: Request) -> Optional[str]:
    """Pull `helpRequest` from the JSON body; anything but a string counts as missing."""
    try:
        payload = await request.json()
    except ValueError:
        return None
    if not isinstance(payload, dict):
        return None
    help_request = payload.get("helpRequest")
    return help_request if isinstance(help_request, str) else None


@router.post("/initiate-call", response_model=InitiateCallResponse)
async def initiate_call(
    request: Request,
    orchestrator: CallOrchestrator = Depends(get_orchestrator),
):
    """Place a support call on the user's behalf."""
    help_request = await read_help_request(request)
    logger.info(
        f"[INITIATE CALL] Request received - help request length: "
        f"{len(help_request) if help_request else 0}, "
        f"Client: {request.client.host if request.client else 'unknown'}"
    )

    try:
        initiated = await orchestrator.initiate_call(help_request)
    except ValidationError as e:
        logger.warning(f"[INITIATE CALL] Rejected request: {e}")
        raise HTTPException(status_code=400, detail=str(e))
    except UpstreamError as e:
        logger.error(
            f"[INITIATE CALL] Provider error - Error: {type(e).__name__}: {e}, Details: {e.details}",
            exc_info=True
        )
        return upstream_error_response("Failed to initiate call", e)

    logger.info(f"[INITIATE CALL] Call initiated - CallId: {initiated.call_id}")
    return InitiateCallResponse(
        call_id=initiated.call_id,
        message="Call initiated successfully",
        listen_url=initiated.listen_url,
    )


@router.get("/call-status/{call_id}", response_model=CallStatusResponse)
async def get_call_status(
    call_id: str,
    orchestrator: CallOrchestrator = Depends(get_orchestrator),
):
    """Get the current status and transcript of a call."""
    logger.debug(f"[CALL STATUS] Request received - CallId: {call_id}")

    try:
        record = await orchestrator.get_status(call_id)
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except UpstreamError as e:
        logger.error(
            f"[CALL STATUS] Provider error - CallId: {call_id}, Error: {type(e).__name__}: {e}",
            exc_info=True
        )
        return upstream_error_response("Failed to check call status", e)

    logger.debug(f"[CALL STATUS] CallId: {call_id}, Status: {record.status}")
    return to_status_response(record)


@router.get("/call-history", response_model=List[CallSummaryResponse])
async def get_call_history(
    orchestrator: CallOrchestrator = Depends(get_orchestrator),
):
    """List all calls, newest first."""
    summaries = await orchestrator.list_history()
    logger.info(f"[CALL HISTORY] Returning {len(summaries)} calls")
    return [
        CallSummaryResponse(
            id=summary.id,
            help_request=summary.help_request,
            status=summary.status.value,
            created_at=summary.created_at.isoformat(),
            completed_at=summary.completed_at.isoformat() if summary.completed_at else None,
        )
        for summary in summaries
    ]


@router.get("/call-recording/{call_id}")
async def get_call_recording(
    call_id: str,
    orchestrator: CallOrchestrator = Depends(get_orchestrator),
):
    """Download the call recording as an attachment."""
    try:
        path = await orchestrator.get_recording(call_id)
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except UpstreamError as e:
        logger.error(
            f"[CALL RECORDING] Download failed - CallId: {call_id}, Error: {type(e).__name__}: {e}",
            exc_info=True
        )
        return upstream_error_response("Failed to fetch recording", e)

    logger.info(f"[CALL RECORDING] Serving {path.name} - CallId: {call_id}")
    return FileResponse(
        path,
        media_type=media_type_for(path),
        filename=f"support-call-{call_id}{path.suffix}",
    )


@router.post("/end-call/{call_id}", response_model=EndCallResponse)
async def end_call(
    call_id: str,
    orchestrator: CallOrchestrator = Depends(get_orchestrator),
):
    """Hang up a call early."""
    logger.info(f"[END CALL] Request received - CallId: {call_id}")

    try:
        record = await orchestrator.end_call(call_id)
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except UpstreamError as e:
        logger.error(
            f"[END CALL] Provider error - CallId: {call_id}, Error: {type(e).__name__}: {e}",
            exc_info=True
        )
        return upstream_error_response("Failed to end call", e)

    return EndCallResponse(call_id=record.id, status=record.status.value, message="Call ended")
