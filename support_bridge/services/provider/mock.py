"""Simulated voice provider for local development and tests."""
import logging
import time
import uuid
from typing import Any, Callable, Dict, List, Optional

from support_bridge.services.calls.errors import UpstreamError
from support_bridge.services.provider.base import (
    ProviderCall,
    ProviderEvent,
    ProviderEventKind,
    VoiceProvider,
)
from support_bridge.services.transcript.formatter import coerce_messages
from support_bridge.services.transcript.models import TranscriptMessage

logger = logging.getLogger(__name__)

# One status per elapsed step; the last one is terminal
MOCK_PROGRESSION = ["queued", "ringing", "in-progress", "ended"]


class _MockCall:
    def __init__(self, call_id: str, assistant_id: str, help_request: str, placed_at: float):
        self.id = call_id
        self.assistant_id = assistant_id
        self.help_request = help_request
        self.placed_at = placed_at
        self.ended_by_user = False


def mock_conversation(help_request: str) -> List[TranscriptMessage]:
    """Scripted conversation used for every simulated call."""
    return [
        TranscriptMessage(
            role="assistant",
            text=(
                "Hi, I am an AI assistant calling on behalf of someone who needs some support "
                "but feels hesitant to ask directly."
            ),
        ),
        TranscriptMessage(role="user", text="Of course, I'm happy to help. What do they need?"),
        TranscriptMessage(role="assistant", text=f'They asked me to tell you: "{help_request}"'),
        TranscriptMessage(
            role="user",
            text="Thank you for letting me know. Please tell them we can work through this together.",
        ),
        TranscriptMessage(
            role="assistant",
            text="Thank you so much for your time and understanding. Goodbye.",
        ),
    ]


class MockVoiceProvider(VoiceProvider):
    """
    Deterministic stand-in for a real provider.

    A placed call advances one status every ``step_seconds`` of the injected
    clock: queued, ringing, in-progress, then ended. Nothing touches the network.
    """

    name = "mock"

    def __init__(self, step_seconds: float = 3.0, clock: Callable[[], float] = time.monotonic):
        self.step_seconds = step_seconds
        self.clock = clock
        self._assistants: Dict[str, Dict[str, Any]] = {}
        self._calls: Dict[str, _MockCall] = {}

    async def create_assistant(self, config: Dict[str, Any]) -> str:
        assistant_id = f"mock-assistant-{uuid.uuid4()}"
        self._assistants[assistant_id] = config
        return assistant_id

    async def place_call(
        self,
        assistant_id: str,
        customer_number: Optional[str],
        phone_number_id: Optional[str],
        assistant_overrides: Optional[Dict[str, Any]] = None,
    ) -> ProviderCall:
        help_request = self._help_request(assistant_id, assistant_overrides)
        call = _MockCall(
            call_id=f"mock-call-{uuid.uuid4()}",
            assistant_id=assistant_id,
            help_request=help_request,
            placed_at=self.clock(),
        )
        self._calls[call.id] = call
        logger.info(f"[MOCK PROVIDER] Simulating call {call.id} to {customer_number or 'unset number'}")
        return self._snapshot(call)

    async def get_call(self, provider_call_id: str) -> ProviderCall:
        call = self._calls.get(provider_call_id)
        if call is None:
            raise UpstreamError(f"Mock call {provider_call_id} not found")
        return self._snapshot(call)

    async def end_call(self, provider_call_id: str) -> None:
        call = self._calls.get(provider_call_id)
        if call is None:
            raise UpstreamError(f"Mock call {provider_call_id} not found")
        call.ended_by_user = True

    async def fetch_recording(self, url: str) -> bytes:
        raise UpstreamError("Mock provider does not produce recordings", url)

    def status_of(self, call: _MockCall) -> str:
        if call.ended_by_user:
            return "ended"
        elapsed = max(0.0, self.clock() - call.placed_at)
        step = int(elapsed // self.step_seconds) if self.step_seconds > 0 else len(MOCK_PROGRESSION)
        return MOCK_PROGRESSION[min(step, len(MOCK_PROGRESSION) - 1)]

    def _snapshot(self, call: _MockCall) -> ProviderCall:
        status = self.status_of(call)
        if status != "ended":
            return ProviderCall(id=call.id, status=status, assistant_id=call.assistant_id)

        return ProviderCall(
            id=call.id,
            status=status,
            assistant_id=call.assistant_id,
            messages=mock_conversation(call.help_request),
            duration=None if call.ended_by_user else self.step_seconds,
            ended_reason="manually-canceled" if call.ended_by_user else "customer-ended-call",
        )

    def _help_request(self, assistant_id: str, overrides: Optional[Dict[str, Any]]) -> str:
        variables = (overrides or {}).get("variableValues") or {}
        if variables.get("helpRequest"):
            return variables["helpRequest"]
        metadata = self._assistants.get(assistant_id, {}).get("metadata") or {}
        return metadata.get("helpRequest", "")

    def parse_event(self, payload: Dict[str, Any]) -> Optional[ProviderEvent]:
        """Parse a flat ``{"type": ..., "callId": ...}`` event."""
        call_id = payload.get("callId")
        event_type = payload.get("type")
        if not call_id or not event_type:
            return None

        if event_type in ("call-start", "status-update"):
            return ProviderEvent(
                kind=ProviderEventKind.STATUS,
                provider_call_id=call_id,
                status=payload.get("status", "in-progress"),
            )
        if event_type == "transcript":
            return ProviderEvent(
                kind=ProviderEventKind.TRANSCRIPT,
                provider_call_id=call_id,
                role=payload.get("role"),
                text=payload.get("text"),
            )
        if event_type == "call-end":
            duration = payload.get("durationSeconds")
            return ProviderEvent(
                kind=ProviderEventKind.ENDED,
                provider_call_id=call_id,
                status=payload.get("status", "ended"),
                messages=coerce_messages(payload.get("messages")),
                recording_url=payload.get("recordingUrl"),
                duration=float(duration) if isinstance(duration, (int, float)) else None,
                ended_reason=payload.get("endedReason"),
            )
        return None
