"""FastAPI dependencies."""
import logging
from typing import Optional

from support_bridge.core.config import settings
from support_bridge.db.database import create_engine, create_sessionmaker, init_db
from support_bridge.services.calls.orchestrator import AssistantMode, CallOrchestrator, SyncMode
from support_bridge.services.calls.store import CallStore, InMemoryCallStore
from support_bridge.services.persistence.calls import SqlCallStore
from support_bridge.services.provider.base import VoiceProvider
from support_bridge.services.provider.mock import MockVoiceProvider
from support_bridge.services.provider.vapi import VapiProvider
from support_bridge.services.realtime.bus import CallEventBus
from support_bridge.services.transcript.recordings import RecordingStore, RecordingStrategy

logger = logging.getLogger(__name__)

# Module-level singletons (persist across requests)
_call_store: Optional[CallStore] = None
_voice_provider: Optional[VoiceProvider] = None
_event_bus: Optional[CallEventBus] = None
_engine = None


def get_call_store() -> CallStore:
    """Get the process-wide call store."""
    global _call_store, _engine
    if _call_store is None:
        if settings.call_store == "database":
            _engine = create_engine(settings.database_url)
            _call_store = SqlCallStore(create_sessionmaker(_engine))
        else:
            _call_store = InMemoryCallStore()
    return _call_store


def get_voice_provider() -> VoiceProvider:
    """Get the configured voice provider (simulated in mock mode)."""
    global _voice_provider
    if _voice_provider is None:
        if settings.mock_mode:
            _voice_provider = MockVoiceProvider(step_seconds=settings.mock_step_seconds)
        else:
            _voice_provider = VapiProvider(
                api_key=settings.vapi_api_key,
                base_url=settings.vapi_base_url,
                timeout=settings.provider_timeout_seconds,
            )
    return _voice_provider


def get_event_bus() -> CallEventBus:
    """Get the process-wide call event bus."""
    global _event_bus
    if _event_bus is None:
        _event_bus = CallEventBus()
    return _event_bus


def get_webhook_url(provider: VoiceProvider) -> Optional[str]:
    if not settings.public_base_url:
        return None
    return f"{settings.public_base_url.rstrip('/')}/webhook/{provider.name}"


def get_orchestrator() -> CallOrchestrator:
    """Get a call orchestrator wired to the shared store, provider and event bus."""
    provider = get_voice_provider()
    return CallOrchestrator(
        store=get_call_store(),
        provider=provider,
        event_bus=get_event_bus(),
        recording_store=RecordingStore(settings.recordings_dir),
        support_phone_number=settings.support_phone_number,
        phone_number_id=settings.vapi_phone_number_id,
        assistant_mode=AssistantMode(settings.assistant_mode),
        assistant_id=settings.vapi_assistant_id,
        webhook_url=get_webhook_url(provider),
        sync_mode=SyncMode(settings.status_sync),
        recording_strategy=RecordingStrategy(settings.recording_strategy),
        max_poll_failures=settings.max_poll_failures,
    )


async def startup() -> None:
    """Prepare shared resources."""
    get_call_store()
    if _engine is not None:
        await init_db(_engine)
    provider = get_voice_provider()
    logger.info(
        f"[STARTUP] Provider: {provider.name}, Store: {settings.call_store}, "
        f"Status sync: {settings.status_sync}, Assistant mode: {settings.assistant_mode}"
    )
    if settings.mock_mode and settings.status_sync == SyncMode.WEBHOOK.value:
        logger.warning("[STARTUP] Mock provider sends no webhooks; calls will not progress without polling")


async def shutdown() -> None:
    """Release shared resources."""
    global _voice_provider, _engine, _call_store
    if _voice_provider is not None:
        await _voice_provider.aclose()
        _voice_provider = None
    if _engine is not None:
        await _engine.dispose()
        _engine = None
        _call_store = None
