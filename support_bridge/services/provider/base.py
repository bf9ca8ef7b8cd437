"""Voice provider interface."""
from abc import ABC, abstractmethod
from enum import Enum
from typing import Any, Dict, List, Optional
from pydantic import BaseModel

from support_bridge.services.transcript.models import TranscriptMessage


class ProviderCall(BaseModel):
    """Snapshot of a call as reported by the provider."""

    id: str
    status: Optional[str] = None
    assistant_id: Optional[str] = None
    messages: List[TranscriptMessage] = []
    recording_url: Optional[str] = None
    duration: Optional[float] = None
    ended_reason: Optional[str] = None
    listen_url: Optional[str] = None


class ProviderEventKind(str, Enum):
    """Kinds of push notifications we act on."""

    STATUS = "status"
    TRANSCRIPT = "transcript"
    ENDED = "ended"


class ProviderEvent(BaseModel):
    """A provider webhook notification, normalized."""

    kind: ProviderEventKind
    provider_call_id: str
    status: Optional[str] = None
    role: Optional[str] = None
    text: Optional[str] = None
    messages: List[TranscriptMessage] = []
    recording_url: Optional[str] = None
    duration: Optional[float] = None
    ended_reason: Optional[str] = None


class VoiceProvider(ABC):
    """Abstract base class for voice-AI calling providers."""

    name: str = "provider"

    @abstractmethod
    async def create_assistant(self, config: Dict[str, Any]) -> str:
        """Create an assistant and return its id."""
        pass

    @abstractmethod
    async def place_call(
        self,
        assistant_id: str,
        customer_number: Optional[str],
        phone_number_id: Optional[str],
        assistant_overrides: Optional[Dict[str, Any]] = None,
    ) -> ProviderCall:
        """Ask the provider to dial the customer number."""
        pass

    @abstractmethod
    async def get_call(self, provider_call_id: str) -> ProviderCall:
        """Fetch the current state of a call."""
        pass

    @abstractmethod
    async def end_call(self, provider_call_id: str) -> None:
        """Terminate a live call."""
        pass

    @abstractmethod
    async def fetch_recording(self, url: str) -> bytes:
        """Download a recording payload."""
        pass

    @abstractmethod
    def parse_event(self, payload: Dict[str, Any]) -> Optional[ProviderEvent]:
        """Convert a webhook payload into a ProviderEvent, or None if irrelevant."""
        pass

    async def aclose(self) -> None:
        """Release network resources."""
        return None
