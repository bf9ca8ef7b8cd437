"""Vapi voice provider."""
import logging
from datetime import datetime
from typing import Any, Dict, Optional

import httpx

from support_bridge.services.calls.errors import TransientError, UpstreamError
from support_bridge.services.provider.base import (
    ProviderCall,
    ProviderEvent,
    ProviderEventKind,
    VoiceProvider,
)
from support_bridge.services.transcript.formatter import coerce_messages, parse_timestamp

logger = logging.getLogger(__name__)


class VapiProvider(VoiceProvider):
    """Places and tracks calls through the Vapi REST API."""

    name = "vapi"

    def __init__(
        self,
        api_key: Optional[str],
        base_url: str = "https://api.vapi.ai",
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self._transport = transport
        headers = {"Content-Type": "application/json"}
        if api_key:
            headers["Authorization"] = f"Bearer {api_key}"
        self.client = httpx.AsyncClient(
            base_url=base_url.rstrip("/"),
            headers=headers,
            timeout=timeout,
            transport=transport,
        )

    async def _request(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        """Send a request, mapping failures onto upstream/transient errors."""
        try:
            response = await self.client.request(method, url, **kwargs)
        except httpx.TimeoutException as e:
            raise TransientError(f"Vapi request timed out: {method} {url}", str(e)) from e
        except httpx.TransportError as e:
            raise TransientError(f"Vapi request failed: {method} {url}", str(e)) from e

        if response.status_code >= 500 or response.status_code == 429:
            raise TransientError(
                f"Vapi API error: {response.status_code} {response.reason_phrase}",
                response.text,
            )
        if response.is_error:
            raise UpstreamError(
                f"Vapi API error: {response.status_code} {response.reason_phrase}",
                response.text,
            )
        return response

    async def create_assistant(self, config: Dict[str, Any]) -> str:
        response = await self._request("POST", "/assistant", json=config)
        assistant_id = response.json().get("id")
        if not assistant_id:
            raise UpstreamError("Vapi did not return an assistant id", response.text)
        logger.info(f"[VAPI] Created assistant {assistant_id}")
        return assistant_id

    async def place_call(
        self,
        assistant_id: str,
        customer_number: Optional[str],
        phone_number_id: Optional[str],
        assistant_overrides: Optional[Dict[str, Any]] = None,
    ) -> ProviderCall:
        payload: Dict[str, Any] = {
            "assistantId": assistant_id,
            "phoneNumberId": phone_number_id,
            "customer": {"number": customer_number},
        }
        if assistant_overrides:
            payload["assistantOverrides"] = assistant_overrides

        response = await self._request("POST", "/call", json=payload)
        call = self.parse_call(response.json())
        logger.info(f"[VAPI] Placed call {call.id} - Status: {call.status}")
        return call

    async def get_call(self, provider_call_id: str) -> ProviderCall:
        response = await self._request("GET", f"/call/{provider_call_id}")
        return self.parse_call(response.json())

    async def end_call(self, provider_call_id: str) -> None:
        response = await self._request("GET", f"/call/{provider_call_id}")
        data = response.json()
        if data.get("status") == "ended":
            logger.info(f"[VAPI] Call {provider_call_id} already ended, nothing to hang up")
            return
        control_url = (data.get("monitor") or {}).get("controlUrl")
        if not control_url:
            raise UpstreamError(f"Call {provider_call_id} has no control URL", response.text)
        await self._request("POST", control_url, json={"type": "end-call"})
        logger.info(f"[VAPI] Requested end of call {provider_call_id}")

    async def fetch_recording(self, url: str) -> bytes:
        # Recording URLs are pre-signed storage links, not API endpoints
        try:
            async with httpx.AsyncClient(timeout=self.client.timeout, transport=self._transport) as client:
                response = await client.get(url, follow_redirects=True)
                response.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise UpstreamError(f"Recording download failed: {e.response.status_code}", url) from e
        except httpx.HTTPError as e:
            raise TransientError(f"Recording download failed: {type(e).__name__}", str(e)) from e
        return response.content

    def parse_call(self, data: Dict[str, Any]) -> ProviderCall:
        """Convert a Vapi call object into a ProviderCall."""
        if not data.get("id"):
            raise UpstreamError("Vapi returned a call without an id", str(data))
        artifact = data.get("artifact") or {}
        monitor = data.get("monitor") or {}
        return ProviderCall(
            id=data["id"],
            status=data.get("status"),
            assistant_id=data.get("assistantId"),
            messages=coerce_messages(artifact.get("messages") or data.get("messages")),
            recording_url=artifact.get("recordingUrl") or data.get("recordingUrl"),
            duration=_duration(data.get("startedAt"), data.get("endedAt")),
            ended_reason=data.get("endedReason"),
            listen_url=monitor.get("listenUrl"),
        )

    def parse_event(self, payload: Dict[str, Any]) -> Optional[ProviderEvent]:
        """
        Parse a Vapi server message.

        Vapi wraps every notification in a ``message`` object whose ``call``
        field identifies the call. Message types we don't act on return None.
        """
        message = payload.get("message")
        if not isinstance(message, dict):
            return None

        call_id = (message.get("call") or {}).get("id")
        if not call_id:
            return None

        message_type = message.get("type")
        if message_type == "status-update":
            status = message.get("status")
            kind = ProviderEventKind.ENDED if status == "ended" else ProviderEventKind.STATUS
            return ProviderEvent(
                kind=kind,
                provider_call_id=call_id,
                status=status,
                ended_reason=message.get("endedReason"),
            )

        if message_type == "transcript":
            # Partial transcripts are superseded by the final one
            if message.get("transcriptType", "final") != "final":
                return None
            return ProviderEvent(
                kind=ProviderEventKind.TRANSCRIPT,
                provider_call_id=call_id,
                role=message.get("role"),
                text=message.get("transcript"),
            )

        if message_type == "end-of-call-report":
            artifact = message.get("artifact") or {}
            duration = message.get("durationSeconds")
            return ProviderEvent(
                kind=ProviderEventKind.ENDED,
                provider_call_id=call_id,
                status="ended",
                messages=coerce_messages(artifact.get("messages") or message.get("messages")),
                recording_url=artifact.get("recordingUrl") or message.get("recordingUrl"),
                duration=float(duration) if isinstance(duration, (int, float)) else None,
                ended_reason=message.get("endedReason"),
            )

        return None

    async def aclose(self) -> None:
        await self.client.aclose()


def _duration(started_at: Any, ended_at: Any) -> Optional[float]:
    start: Optional[datetime] = parse_timestamp(started_at)
    end: Optional[datetime] = parse_timestamp(ended_at)
    if start and end:
        return (end - start).total_seconds()
    return None
