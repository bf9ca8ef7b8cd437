"""Call orchestration."""
import logging
import uuid
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

from support_bridge.services.calls.errors import NotFoundError, TransientError, UpstreamError, ValidationError
from support_bridge.services.calls.models import (
    CallRecord,
    CallStatus,
    CallSummary,
    InitiatedCall,
    normalize_status,
)
from support_bridge.services.calls.store import CallStore
from support_bridge.services.provider.assistant import build_assistant_config, build_assistant_overrides
from support_bridge.services.provider.base import ProviderEvent, ProviderEventKind, VoiceProvider
from support_bridge.services.realtime import bus as events
from support_bridge.services.realtime.bus import CallEventBus
from support_bridge.services.transcript.formatter import format_transcript
from support_bridge.services.transcript.models import TranscriptMessage
from support_bridge.services.transcript.recordings import RecordingStore, RecordingStrategy

logger = logging.getLogger(__name__)

HISTORY_PREVIEW_CHARS = 100

PendingEvent = Tuple[str, Dict[str, Any]]


class SyncMode(str, Enum):
    """How call records learn about provider status changes."""

    POLL = "poll"  # Status requests query the provider
    WEBHOOK = "webhook"  # Only provider push events update records
    HYBRID = "hybrid"  # Both

    def __str__(self) -> str:
        return self.value

    @property
    def polls(self) -> bool:
        return self in (SyncMode.POLL, SyncMode.HYBRID)


class AssistantMode(str, Enum):
    """Where the calling agent comes from."""

    AD_HOC = "ad_hoc"  # Create an assistant per help request
    PREPROVISIONED = "preprovisioned"  # Reuse a configured assistant id

    def __str__(self) -> str:
        return self.value


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class CallOrchestrator:
    """Places calls through a voice provider and keeps call records current."""

    def __init__(
        self,
        store: CallStore,
        provider: VoiceProvider,
        event_bus: CallEventBus,
        recording_store: RecordingStore,
        support_phone_number: Optional[str] = None,
        phone_number_id: Optional[str] = None,
        assistant_mode: AssistantMode = AssistantMode.AD_HOC,
        assistant_id: Optional[str] = None,
        webhook_url: Optional[str] = None,
        sync_mode: SyncMode = SyncMode.POLL,
        recording_strategy: RecordingStrategy = RecordingStrategy.EAGER,
        max_poll_failures: int = 10,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.store = store
        self.provider = provider
        self.event_bus = event_bus
        self.recording_store = recording_store
        self.support_phone_number = support_phone_number
        self.phone_number_id = phone_number_id
        self.assistant_mode = AssistantMode(assistant_mode)
        self.assistant_id = assistant_id
        self.webhook_url = webhook_url
        self.sync_mode = SyncMode(sync_mode)
        self.recording_strategy = RecordingStrategy(recording_strategy)
        self.max_poll_failures = max_poll_failures
        self.clock = clock

    async def initiate_call(self, help_request: Optional[str]) -> InitiatedCall:
        """
        Place a call relaying a help request.

        Raises:
            ValidationError: help request is missing or blank
            UpstreamError: the provider refused to create the assistant or call
        """
        if not isinstance(help_request, str) or not help_request.strip():
            raise ValidationError("Help request is required")
        help_request = help_request.strip()

        call_id = str(uuid.uuid4())
        logger.info(f"[ORCHESTRATOR] Initiating call {call_id} - Assistant mode: {self.assistant_mode}")

        if self.assistant_mode == AssistantMode.PREPROVISIONED:
            if not self.assistant_id:
                raise UpstreamError("No pre-provisioned assistant id is configured")
            assistant_id = self.assistant_id
            overrides = build_assistant_overrides(help_request)
        else:
            config = build_assistant_config(help_request, server_url=self.webhook_url)
            assistant_id = await self.provider.create_assistant(config)
            overrides = None

        provider_call = await self.provider.place_call(
            assistant_id=assistant_id,
            customer_number=self.support_phone_number,
            phone_number_id=self.phone_number_id,
            assistant_overrides=overrides,
        )

        record = CallRecord(
            id=call_id,
            provider_call_id=provider_call.id,
            assistant_id=assistant_id,
            help_request=help_request,
            provider_status=provider_call.status or "queued",
            status=CallStatus.PENDING,
            created_at=self.clock(),
            listen_url=provider_call.listen_url,
        )
        await self.store.save(record)
        logger.info(
            f"[ORCHESTRATOR] Call {call_id} placed - Provider call: {provider_call.id}, "
            f"Status: {record.provider_status}"
        )
        return InitiatedCall(call_id=call_id, listen_url=provider_call.listen_url)

    async def get_status(self, call_id: str) -> CallRecord:
        """
        Get a call record, refreshing it from the provider when polling is enabled.

        Transient provider failures keep the last-known values. After
        ``max_poll_failures`` consecutive failures the call is marked as errored.
        """
        record = await self._require(call_id)
        if not self._needs_poll(record):
            return record

        try:
            snapshot = await self.provider.get_call(record.provider_call_id)
        except TransientError as e:
            return await self._record_poll_failure(call_id, e)

        record = await self._require(call_id)
        record.poll_failures = 0
        pending = self._apply(
            record,
            status=snapshot.status,
            messages=snapshot.messages,
            recording_url=snapshot.recording_url,
            duration=snapshot.duration,
            ended_reason=snapshot.ended_reason,
        )
        if snapshot.listen_url and not record.listen_url:
            record.listen_url = snapshot.listen_url
        return await self._commit(record, pending)

    async def handle_provider_event(self, event: ProviderEvent) -> Optional[CallRecord]:
        """
        Apply a provider push notification.

        Events for calls we don't know about are dropped.
        """
        record = await self.store.get_by_provider_call_id(event.provider_call_id)
        if record is None:
            logger.info(
                f"[ORCHESTRATOR] Dropping {event.kind.value} event for unknown provider call "
                f"{event.provider_call_id}"
            )
            return None

        if event.kind == ProviderEventKind.TRANSCRIPT:
            return await self._handle_transcript_fragment(record, event)

        pending = self._apply(
            record,
            status=event.status,
            messages=event.messages,
            recording_url=event.recording_url,
            duration=event.duration,
            ended_reason=event.ended_reason,
        )
        return await self._commit(record, pending)

    async def end_call(self, call_id: str) -> CallRecord:
        """Ask the provider to hang up and mark the call completed."""
        record = await self._require(call_id)
        if record.status.is_terminal:
            logger.info(f"[ORCHESTRATOR] Call {call_id} already {record.status}, nothing to end")
            return record

        await self.provider.end_call(record.provider_call_id)

        record = await self._require(call_id)
        pending = self._apply(
            record,
            status="ended",
            ended_reason=record.ended_reason or "ended-by-user",
        )
        logger.info(f"[ORCHESTRATOR] Call {call_id} ended by user")
        return await self._commit(record, pending)

    async def list_history(self) -> List[CallSummary]:
        """All calls, newest first."""
        records = await self.store.list_all()
        records.sort(key=lambda record: record.created_at, reverse=True)
        return [
            CallSummary(
                id=record.id,
                help_request=_preview(record.help_request),
                status=record.status,
                created_at=record.created_at,
                completed_at=record.completed_at,
            )
            for record in records
        ]

    async def get_recording(self, call_id: str) -> Path:
        """
        Get the local recording file for a call, fetching it if the strategy allows.

        Raises:
            NotFoundError: unknown call, or no recording is available
        """
        record = await self._require(call_id)
        if self.recording_store.exists(record.recording_path):
            return Path(record.recording_path)

        if self.recording_strategy != RecordingStrategy.OFF and record.recording_url:
            return await self._download_recording(call_id, record.recording_url)

        raise NotFoundError(f"Recording not available for call {call_id}")

    async def count(self) -> int:
        return await self.store.count()

    async def _require(self, call_id: str) -> CallRecord:
        record = await self.store.get(call_id)
        if record is None:
            raise NotFoundError(f"Call {call_id} not found")
        return record

    def _needs_poll(self, record: CallRecord) -> bool:
        if not self.sync_mode.polls:
            return False
        if not record.status.is_terminal:
            return True
        # Completed calls keep polling until the provider has the transcript
        return record.status == CallStatus.COMPLETED and record.transcript is None

    async def _record_poll_failure(self, call_id: str, error: TransientError) -> CallRecord:
        record = await self._require(call_id)
        record.poll_failures += 1
        logger.warning(
            f"[ORCHESTRATOR] Status poll failed for call {call_id} "
            f"({record.poll_failures}/{self.max_poll_failures}): {error.details}"
        )

        pending: List[PendingEvent] = []
        if record.poll_failures >= self.max_poll_failures and not record.status.is_terminal:
            record.status = CallStatus.ERROR
            record.ended_reason = record.ended_reason or "status-poll-failed"
            record.completed_at = record.completed_at or self.clock()
            pending.append((events.CALL_ERROR, {"status": record.status.value, "endedReason": record.ended_reason}))
            logger.error(f"[ORCHESTRATOR] Giving up on call {call_id} after {record.poll_failures} failed polls")

        return await self._commit(record, pending)

    async def _handle_transcript_fragment(self, record: CallRecord, event: ProviderEvent) -> CallRecord:
        if not event.text or not event.text.strip():
            return record

        message = TranscriptMessage(role=event.role or "user", text=event.text.strip(), timestamp=self.clock())
        pending: List[PendingEvent] = []
        # The final transcript comes from the end-of-call data
        if not record.status.is_terminal:
            record.messages.append(message)
        pending.append((events.MESSAGE, {"role": message.role, "text": message.text}))
        return await self._commit(record, pending)

    def _apply(
        self,
        record: CallRecord,
        status: Optional[str] = None,
        messages: Sequence[TranscriptMessage] = (),
        recording_url: Optional[str] = None,
        duration: Optional[float] = None,
        ended_reason: Optional[str] = None,
    ) -> List[PendingEvent]:
        """
        Fold provider state into a record and return the events it produced.

        Terminal statuses are sticky and every write is idempotent, so the
        same update can arrive by poll and by webhook without harm.
        """
        previous_status = record.status
        previous_provider_status = record.provider_status
        pending: List[PendingEvent] = []

        if previous_status.is_terminal:
            # A late non-terminal report must not reopen a finished call
            if status and normalize_status(status).is_terminal:
                record.provider_status = status
        else:
            if status:
                record.provider_status = status
            record.status = normalize_status(record.provider_status)

        if duration is not None:
            record.duration = duration
        if ended_reason:
            record.ended_reason = ended_reason
        if recording_url:
            record.recording_url = recording_url
        if messages:
            record.messages = list(messages)

        if not record.status.is_terminal:
            if record.provider_status != previous_provider_status and record.provider_status in (
                events.RINGING,
                events.IN_PROGRESS,
            ):
                pending.append((record.provider_status, {"status": record.status.value}))
            return pending

        if record.completed_at is None:
            record.completed_at = self.clock()

        if record.messages:
            transcript = format_transcript(record.messages, call_date=record.created_at)
            if transcript != record.transcript:
                record.transcript = transcript
                pending.append((events.TRANSCRIPT_READY, {"transcript": transcript}))

        if not previous_status.is_terminal:
            event_type = events.CALL_ENDED if record.status == CallStatus.COMPLETED else events.CALL_ERROR
            pending.append((event_type, {"status": record.status.value, "endedReason": record.ended_reason}))
            logger.info(
                f"[ORCHESTRATOR] Call {record.id} reached {record.status} - "
                f"Provider status: {record.provider_status}, Reason: {record.ended_reason}"
            )

        return pending

    async def _commit(self, record: CallRecord, pending: List[PendingEvent]) -> CallRecord:
        """Save a record, publish its events and fetch the recording if due."""
        await self.store.save(record)
        for event_type, data in pending:
            await self.event_bus.publish(record.id, event_type, **data)

        if (
            record.status.is_terminal
            and self.recording_strategy == RecordingStrategy.EAGER
            and record.recording_url
            and not self.recording_store.exists(record.recording_path)
        ):
            try:
                path = await self._download_recording(record.id, record.recording_url)
                record.recording_path = str(path)
            except UpstreamError as e:
                logger.warning(
                    f"[ORCHESTRATOR] Could not fetch recording for call {record.id}: {e} ({e.details})"
                )
        return record

    async def _download_recording(self, call_id: str, url: str) -> Path:
        payload = await self.provider.fetch_recording(url)
        path = self.recording_store.save(call_id, payload, url)

        record = await self._require(call_id)
        record.recording_path = str(path)
        await self.store.save(record)
        return path


def _preview(text: str) -> str:
    if len(text) <= HISTORY_PREVIEW_CHARS:
        return text
    return text[:HISTORY_PREVIEW_CHARS] + "..."
