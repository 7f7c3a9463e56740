import base64

import pytest
from fastapi import status
from fastapi.testclient import TestClient
from starlette.websockets import WebSocketDisconnect

from src.medscribe.config import settings
from src.medscribe.main import app


def _b64(data: bytes) -> str:
    return base64.b64encode(data).decode("ascii")


@pytest.fixture
def client(coordinator, monkeypatch):
    monkeypatch.setattr(settings, "enable_api_auth", False)
    app.state.transcription_coordinator = coordinator
    yield TestClient(app)
    del app.state.transcription_coordinator


def test_live_transcription_flow(client, backend, repository):
    backend.results = ["the patient", "reports a cough"]

    with client.websocket_connect("/api/v1/transcription/ws") as ws:
        ws.send_json({"event": "start-transcription", "data": {"sessionId": "s1", "userId": "u1"}})
        assert ws.receive_json() == {"event": "transcription-started", "data": {"sessionId": "s1"}}

        ws.send_json({"event": "audio-chunk", "data": {"audioData": _b64(b"chunk-1")}})
        first = ws.receive_json()
        assert first["event"] == "transcript-chunk"
        assert first["data"]["text"] == "the patient"

        ws.send_json({"event": "audio-chunk", "data": {"audioData": _b64(b"chunk-2"), "isLast": True}})
        second = ws.receive_json()
        assert second["data"] == {"text": "reports a cough", "timestamp": second["data"]["timestamp"], "isLast": True}

        ws.send_json({"event": "stop-transcription"})
        assert ws.receive_json() == {
            "event": "transcription-stopped",
            "data": {"sessionId": "s1", "finalTranscript": "the patient reports a cough"},
        }

    assert backend.calls == [b"chunk-1", b"chunk-2"]
    assert repository.get("s1").transcript == "the patient reports a cough"


def test_dropped_connection_saves_transcript(client, backend, repository, coordinator):
    backend.results = ["unsaved dictation"]

    with client.websocket_connect("/api/v1/transcription/ws") as ws:
        ws.send_json({"event": "start-transcription", "data": {"sessionId": "s1", "userId": "u1"}})
        ws.receive_json()
        ws.send_json({"event": "audio-chunk", "data": {"audioData": _b64(b"chunk")}})
        ws.receive_json()

    assert repository.get("s1").transcript == "unsaved dictation"
    assert len(coordinator.registry) == 0


@pytest.mark.parametrize(
    "frame",
    [
        "not json",
        '{"event": "make-coffee", "data": {}}',
        '["start-transcription"]',
    ],
)
def test_unparseable_frames_are_reported(client, frame):
    with client.websocket_connect("/api/v1/transcription/ws") as ws:
        ws.send_text(frame)
        reply = ws.receive_json()
    assert reply["event"] == "transcription-error"
    assert reply["data"]["error"] == "InvalidPayload"


def test_start_requires_user_when_connection_is_anonymous(client):
    with client.websocket_connect("/api/v1/transcription/ws") as ws:
        ws.send_json({"event": "start-transcription", "data": {"sessionId": "s1"}})
        reply = ws.receive_json()
    assert reply["data"]["error"] == "InvalidPayload"
    assert reply["data"]["details"] == "userId is required"


def test_bad_base64_chunk_is_rejected(client, backend):
    with client.websocket_connect("/api/v1/transcription/ws") as ws:
        ws.send_json({"event": "start-transcription", "data": {"sessionId": "s1", "userId": "u1"}})
        ws.receive_json()
        ws.send_json({"event": "audio-chunk", "data": {"audioData": "%%%not-base64%%%"}})
        reply = ws.receive_json()
    assert reply["data"]["error"] == "InvalidPayload"
    assert backend.calls == []


def test_chunk_before_start_is_reported(client):
    with client.websocket_connect("/api/v1/transcription/ws") as ws:
        ws.send_json({"event": "audio-chunk", "data": {"audioData": _b64(b"audio")}})
        reply = ws.receive_json()
    assert reply["data"] == {"error": "NoActiveSession", "message": "No active transcription session"}


def test_authenticated_socket_uses_token_identity(client, monkeypatch):
    monkeypatch.setattr(settings, "enable_api_auth", True)
    monkeypatch.setattr(settings, "auth_tokens", "tok-u1:u1:doctor,tok-u2:u2:doctor")

    with client.websocket_connect("/api/v1/transcription/ws?token=tok-u1") as ws:
        ws.send_json({"event": "start-transcription", "data": {"sessionId": "s1"}})
        assert ws.receive_json()["event"] == "transcription-started"

    with client.websocket_connect("/api/v1/transcription/ws?token=tok-u2") as ws:
        ws.send_json({"event": "start-transcription", "data": {"sessionId": "s1", "userId": "u1"}})
        assert ws.receive_json()["data"]["error"] == "AccessDenied"


def test_socket_without_valid_token_is_closed(client, monkeypatch):
    monkeypatch.setattr(settings, "enable_api_auth", True)
    monkeypatch.setattr(settings, "auth_tokens", "tok-u1:u1:doctor")

    with pytest.raises(WebSocketDisconnect) as exc_info:
        with client.websocket_connect("/api/v1/transcription/ws?token=forged"):
            pass

    assert exc_info.value.code == status.WS_1008_POLICY_VIOLATION


def test_one_shot_transcription(client, backend):
    backend.results = ["single clip"]

    response = client.post("/api/v1/transcription/", json={"audio_data": _b64(b"clip")})

    assert response.status_code == status.HTTP_200_OK
    assert response.json() == {"transcript": "single clip"}


def test_one_shot_transcription_rejects_bad_audio(client):
    response = client.post("/api/v1/transcription/", json={"audio_data": "***"})

    assert response.status_code == status.HTTP_400_BAD_REQUEST


def test_one_shot_transcription_reports_backend_failure(client, backend, failure_factory):
    backend.results = [failure_factory("model loading")]

    response = client.post("/api/v1/transcription/", json={"audio_data": _b64(b"clip")})

    assert response.status_code == status.HTTP_502_BAD_GATEWAY
    assert response.json()["detail"] == "AI service temporarily unavailable: model loading"


def test_status_counts_live_transcriptions(client):
    with client.websocket_connect("/api/v1/transcription/ws") as ws:
        ws.send_json({"event": "start-transcription", "data": {"sessionId": "s1", "userId": "u1"}})
        ws.receive_json()
        assert client.get("/api/v1/transcription/status").json() == {"active_transcriptions": 1}

    assert client.get("/api/v1/transcription/status").json() == {"active_transcriptions": 0}
