"""Call record models and status normalization."""
from datetime import datetime
from enum import Enum
from typing import List, Optional
from pydantic import BaseModel

from support_bridge.services.transcript.models import TranscriptMessage


class CallStatus(str, Enum):
    """Frontend-facing call status."""

    PENDING = "pending"  # Record created, not yet synced with the provider
    CALLING = "calling"
    COMPLETED = "completed"
    ERROR = "error"

    def __str__(self) -> str:
        return self.value

    @property
    def is_terminal(self) -> bool:
        return self in (CallStatus.COMPLETED, CallStatus.ERROR)


PROVIDER_STATUS_MAP = {
    "queued": CallStatus.CALLING,
    "ringing": CallStatus.CALLING,
    "in-progress": CallStatus.CALLING,
    "forwarding": CallStatus.CALLING,
    "ended": CallStatus.COMPLETED,
    "busy": CallStatus.ERROR,
    "no-answer": CallStatus.ERROR,
    "failed": CallStatus.ERROR,
    "cancelled": CallStatus.ERROR,
}


def normalize_status(provider_status: Optional[str]) -> CallStatus:
    """Map a provider call status onto calling/completed/error."""
    if not provider_status:
        return CallStatus.CALLING
    return PROVIDER_STATUS_MAP.get(provider_status.strip().lower(), CallStatus.CALLING)


class CallRecord(BaseModel):
    """A call placed on behalf of a user."""

    id: str
    provider_call_id: str
    assistant_id: Optional[str] = None
    help_request: str
    provider_status: str = "queued"
    status: CallStatus = CallStatus.PENDING
    created_at: datetime
    completed_at: Optional[datetime] = None
    transcript: Optional[str] = None
    messages: List[TranscriptMessage] = []
    recording_url: Optional[str] = None
    recording_path: Optional[str] = None
    duration: Optional[float] = None
    ended_reason: Optional[str] = None
    listen_url: Optional[str] = None
    poll_failures: int = 0

    @property
    def recording_available(self) -> bool:
        return bool(self.recording_path or self.recording_url)


class CallSummary(BaseModel):
    """Condensed call record for history listings."""

    id: str
    help_request: str
    status: CallStatus
    created_at: datetime
    completed_at: Optional[datetime] = None


class InitiatedCall(BaseModel):
    """Result of placing a call."""

    call_id: str
    listen_url: Optional[str] = None
