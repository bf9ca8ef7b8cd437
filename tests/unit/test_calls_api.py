"""Unit tests for the call HTTP endpoints."""
import pytest
from unittest.mock import AsyncMock

from support_bridge.services.calls.errors import UpstreamError

RENT_REQUEST = "I need help paying rent this month"


class TestInitiateCallAPI:
    """Test POST /initiate-call."""

    def test_initiate_call_success(self, test_client):
        response = test_client.post("/initiate-call", json={"helpRequest": RENT_REQUEST})

        assert response.status_code == 200
        data = response.json()
        assert data["success"] is True
        assert data["callId"]
        assert data["message"] == "Call initiated successfully"

    def test_missing_help_request_returns_400(self, test_client):
        response = test_client.post("/initiate-call", json={})

        assert response.status_code == 400
        assert "required" in response.json()["detail"].lower()

    def test_blank_help_request_returns_400(self, test_client):
        response = test_client.post("/initiate-call", json={"helpRequest": "   "})
        assert response.status_code == 400

    def test_empty_body_returns_400(self, test_client):
        response = test_client.post("/initiate-call")

        assert response.status_code == 400
        assert "required" in response.json()["detail"].lower()

    def test_invalid_json_returns_400(self, test_client):
        response = test_client.post(
            "/initiate-call",
            content=b"{not json",
            headers={"Content-Type": "application/json"},
        )
        assert response.status_code == 400

    @pytest.mark.parametrize("payload", [{"helpRequest": 42}, {"helpRequest": None}, ["rent"]])
    def test_non_string_help_request_returns_400(self, test_client, payload):
        response = test_client.post("/initiate-call", json=payload)

        assert response.status_code == 400
        assert test_client.get("/call-history").json() == []

    def test_provider_failure_returns_500_with_details(self, test_client, mock_provider):
        mock_provider.place_call = AsyncMock(
            side_effect=UpstreamError("Vapi API error: 400 Bad Request", '{"message": "invalid number"}')
        )

        response = test_client.post("/initiate-call", json={"helpRequest": RENT_REQUEST})

        assert response.status_code == 500
        data = response.json()
        assert data["error"] == "Failed to initiate call"
        assert "invalid number" in data["details"]


class TestCallStatusAPI:
    """Test GET /call-status/{callId}."""

    def test_unknown_call_returns_404(self, test_client):
        response = test_client.get("/call-status/does-not-exist")
        assert response.status_code == 404

    def test_status_progresses_to_completed(self, test_client, fake_clock, mock_provider):
        call_id = test_client.post("/initiate-call", json={"helpRequest": RENT_REQUEST}).json()["callId"]

        response = test_client.get(f"/call-status/{call_id}")
        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "calling"
        assert data["helpRequest"] == RENT_REQUEST
        assert data["transcript"] is None
        assert data["createdAt"]

        fake_clock.advance(mock_provider.step_seconds * 3)
        data = test_client.get(f"/call-status/{call_id}").json()

        assert data["status"] == "completed"
        assert data["providerStatus"] == "ended"
        assert RENT_REQUEST in data["transcript"]
        assert data["completedAt"]
        assert data["recordingAvailable"] is False

    def test_provider_failure_returns_500(self, test_client, mock_provider):
        call_id = test_client.post("/initiate-call", json={"helpRequest": RENT_REQUEST}).json()["callId"]
        mock_provider.get_call = AsyncMock(side_effect=UpstreamError("Vapi API error: 401 Unauthorized"))

        response = test_client.get(f"/call-status/{call_id}")

        assert response.status_code == 500
        assert response.json()["error"] == "Failed to check call status"


class TestCallHistoryAPI:
    """Test GET /call-history."""

    def test_history_newest_first(self, test_client):
        first = test_client.post("/initiate-call", json={"helpRequest": "first"}).json()["callId"]
        second = test_client.post("/initiate-call", json={"helpRequest": "second"}).json()["callId"]

        response = test_client.get("/call-history")

        assert response.status_code == 200
        data = response.json()
        assert [entry["id"] for entry in data] == [second, first]
        assert data[0]["helpRequest"] == "second"
        assert data[0]["status"] == "pending"

    def test_empty_history(self, test_client):
        response = test_client.get("/call-history")
        assert response.status_code == 200
        assert response.json() == []


class TestEndCallAPI:
    """Test POST /end-call/{callId}."""

    def test_end_call(self, test_client):
        call_id = test_client.post("/initiate-call", json={"helpRequest": RENT_REQUEST}).json()["callId"]

        response = test_client.post(f"/end-call/{call_id}")

        assert response.status_code == 200
        data = response.json()
        assert data["callId"] == call_id
        assert data["status"] == "completed"

    def test_end_unknown_call_returns_404(self, test_client):
        response = test_client.post("/end-call/does-not-exist")
        assert response.status_code == 404


class TestCallRecordingAPI:
    """Test GET /call-recording/{callId}."""

    def test_unknown_call_returns_404(self, test_client):
        response = test_client.get("/call-recording/does-not-exist")
        assert response.status_code == 404

    def test_no_recording_returns_404(self, test_client):
        call_id = test_client.post("/initiate-call", json={"helpRequest": RENT_REQUEST}).json()["callId"]

        response = test_client.get(f"/call-recording/{call_id}")

        assert response.status_code == 404

    def test_recording_download(self, test_client, mock_provider, call_store):
        mock_provider.fetch_recording = AsyncMock(return_value=b"RIFF-fake-wav")
        call_id = test_client.post("/initiate-call", json={"helpRequest": RENT_REQUEST}).json()["callId"]

        test_client.post("/webhook/mock", json={
            "type": "call-end",
            "callId": _provider_call_id(call_store, call_id),
            "recordingUrl": "https://storage.example.test/recordings/abc.wav",
            "messages": [{"role": "assistant", "text": RENT_REQUEST}],
        })

        response = test_client.get(f"/call-recording/{call_id}")

        assert response.status_code == 200
        assert response.content == b"RIFF-fake-wav"
        assert response.headers["content-type"] == "audio/wav"
        assert "attachment" in response.headers["content-disposition"]
        assert f"support-call-{call_id}.wav" in response.headers["content-disposition"]


class TestProviderWebhookAPI:
    """Test POST /webhook/{provider}."""

    def test_call_end_for_unknown_call_is_acknowledged(self, test_client, call_store):
        response = test_client.post("/webhook/mock", json={"type": "call-end", "callId": "no-such-call"})

        assert response.status_code == 200
        assert response.json() == {"received": True}
        assert test_client.get("/call-history").json() == []

    def test_call_end_completes_call(self, test_client, call_store):
        call_id = test_client.post("/initiate-call", json={"helpRequest": RENT_REQUEST}).json()["callId"]
        provider_call_id = _provider_call_id(call_store, call_id)

        payload = {
            "type": "call-end",
            "callId": provider_call_id,
            "durationSeconds": 61,
            "endedReason": "customer-ended-call",
            "messages": [
                {"role": "assistant", "text": f"They need: {RENT_REQUEST}", "timestamp": "2025-01-15T12:00:05Z"},
                {"role": "user", "text": "We can help.", "timestamp": "2025-01-15T12:00:09Z"},
            ],
        }
        assert test_client.post("/webhook/mock", json=payload).status_code == 200
        # Providers may deliver the same event more than once
        assert test_client.post("/webhook/mock", json=payload).status_code == 200

        data = test_client.get(f"/call-status/{call_id}").json()
        assert data["status"] == "completed"
        assert data["duration"] == 61
        assert data["endedReason"] == "customer-ended-call"
        assert data["transcript"].count(RENT_REQUEST) == 1
        assert "[12:00:05] AI Agent:" in data["transcript"]

    def test_malformed_payload_is_acknowledged(self, test_client):
        response = test_client.post(
            "/webhook/mock",
            content=b"{not json",
            headers={"Content-Type": "application/json"},
        )
        assert response.status_code == 200

    def test_handler_errors_are_swallowed(self, test_client, call_store, orchestrator):
        call_id = test_client.post("/initiate-call", json={"helpRequest": RENT_REQUEST}).json()["callId"]
        provider_call_id = _provider_call_id(call_store, call_id)
        orchestrator.handle_provider_event = AsyncMock(side_effect=RuntimeError("boom"))

        response = test_client.post("/webhook/mock", json={"type": "call-end", "callId": provider_call_id})

        assert response.status_code == 200

    def test_webhook_for_other_provider_is_ignored(self, test_client, orchestrator):
        orchestrator.handle_provider_event = AsyncMock()

        response = test_client.post("/webhook/vapi", json={"message": {"type": "end-of-call-report"}})

        assert response.status_code == 200
        orchestrator.handle_provider_event.assert_not_called()


class TestHealthAPI:
    """Test GET /health."""

    def test_health(self, test_client):
        test_client.post("/initiate-call", json={"helpRequest": RENT_REQUEST})

        response = test_client.get("/health")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert data["totalCalls"] == 1
        assert set(data["config"]) == {"apiKey", "assistantId", "phoneNumberId", "supportPhoneNumber"}


class TestCallEventsWebSocket:
    """Test the live call event stream."""

    def test_unknown_call_is_rejected(self, test_client):
        with test_client.websocket_connect("/ws/calls/does-not-exist") as websocket:
            message = websocket.receive_json()
        assert message["type"] == "error"

    def test_snapshot_on_connect(self, test_client):
        call_id = test_client.post("/initiate-call", json={"helpRequest": RENT_REQUEST}).json()["callId"]

        with test_client.websocket_connect(f"/ws/calls/{call_id}") as websocket:
            message = websocket.receive_json()

        assert message["type"] == "snapshot"
        assert message["callId"] == call_id
        assert message["status"] == "pending"

    def test_event_during_snapshot_read_is_delivered(self, test_client, call_store, event_bus):
        call_id = test_client.post("/initiate-call", json={"helpRequest": RENT_REQUEST}).json()["callId"]
        read_record = call_store.get

        async def get_then_publish(requested_id):
            record = await read_record(requested_id)
            await event_bus.publish(requested_id, "ringing", status="calling")
            return record

        call_store.get = get_then_publish

        with test_client.websocket_connect(f"/ws/calls/{call_id}") as websocket:
            snapshot = websocket.receive_json()
            event = websocket.receive_json()

        assert snapshot["type"] == "snapshot"
        assert event == {"type": "ringing", "callId": call_id, "status": "calling"}


def _provider_call_id(call_store, call_id: str) -> str:
    return call_store._records[call_id].provider_call_id
