from __future__ import annotations

import base64
import binascii
import json
import logging
from typing import List, Optional
from uuid import uuid4

from fastapi import APIRouter, Depends, HTTPException, Request, WebSocket, WebSocketDisconnect, status
from pydantic import BaseModel, Field, ValidationError

from src.medscribe.config import settings
from src.medscribe.domain.models.transcription_events import (
    AudioChunkData,
    InboundEventType,
    OutboundEvent,
    StartTranscriptionData,
    TranscriptionError,
    TranscriptionErrorCode,
)
from src.medscribe.domain.models.user import User, UserRole
from src.medscribe.security import authenticate_token, require_role
from src.medscribe.services.audit.service import audit_service
from src.medscribe.services.transcription.backends import TranscriptionFailure
from src.medscribe.services.transcription.coordinator import TranscriptionCoordinator, transcription_coordinator

router = APIRouter(prefix="/transcription", tags=["transcription"])
logger = logging.getLogger("medscribe.transcription.ws")

require_doctor = require_role(UserRole.DOCTOR)


class TranscribeRequest(BaseModel):
    # Base64-encoded audio.
    audio_data: str = Field(min_length=1)


class TranscribeResponse(BaseModel):
    transcript: str


def _coordinator_for(app) -> TranscriptionCoordinator:
    # Tests may inject their own coordinator via app.state.
    return getattr(app.state, "transcription_coordinator", transcription_coordinator)


def _invalid(details) -> List[OutboundEvent]:
    return [TranscriptionError.for_code(TranscriptionErrorCode.INVALID_PAYLOAD, details=details)]


@router.post("/", response_model=TranscribeResponse)
async def transcribe_audio(
    payload: TranscribeRequest,
    request: Request,
    user: User = Depends(require_doctor),
) -> TranscribeResponse:
    """Transcribe one complete audio clip outside of a live session."""

    try:
        audio = base64.b64decode(payload.audio_data, validate=True)
    except binascii.Error:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="audio_data is not valid base64")
    if len(audio) > settings.max_audio_bytes:
        raise HTTPException(status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE, detail="Audio payload too large.")

    try:
        transcript = await _coordinator_for(request.app).backend.transcribe(audio)
    except TranscriptionFailure as exc:
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail=f"AI service temporarily unavailable: {exc.message}",
        )

    audit_service.log_event(
        action="transcribe_audio",
        resource_type="audio",
        extra={"size_bytes": len(audio)},
    )
    return TranscribeResponse(transcript=transcript)


@router.get("/status")
async def transcription_status(request: Request, user: User = Depends(require_doctor)) -> dict:
    """Number of live transcriptions held by this process."""

    return {"active_transcriptions": len(_coordinator_for(request.app).registry)}


async def _dispatch(
    coordinator: TranscriptionCoordinator,
    connection_id: str,
    raw: str,
    user: Optional[User],
) -> List[OutboundEvent]:
    try:
        message = json.loads(raw)
        event_type = InboundEventType(message.get("event"))
        data = message.get("data") or {}
    except (ValueError, AttributeError):
        return _invalid("Expected a JSON object with a known 'event' name")

    try:
        if event_type is InboundEventType.START:
            start = StartTranscriptionData.model_validate(data)
            if user is not None:
                if start.user_id is not None and start.user_id != user.id:
                    return [TranscriptionError.for_code(TranscriptionErrorCode.ACCESS_DENIED)]
                user_id = user.id
            elif start.user_id:
                user_id = start.user_id
            else:
                return _invalid("userId is required")
            return await coordinator.start(connection_id, start.session_id, user_id)

        if event_type is InboundEventType.AUDIO_CHUNK:
            chunk = AudioChunkData.model_validate(data)
            audio = chunk.decode_audio()
            if len(audio) > settings.max_audio_bytes:
                return _invalid("Audio chunk too large")
            return await coordinator.chunk(connection_id, audio, chunk.is_last)

        return await coordinator.stop(connection_id)
    except ValidationError as exc:
        return _invalid([err["msg"] for err in exc.errors()])
    except ValueError as exc:
        return _invalid(str(exc))


@router.websocket("/ws")
async def transcription_socket(websocket: WebSocket) -> None:
    """Live transcription channel.

    Clients exchange JSON text frames shaped ``{"event": ..., "data": {...}}``:
    ``start-transcription``, then any number of ``audio-chunk`` frames with
    base64 audio, then ``stop-transcription``. Dropping the connection saves
    whatever was transcribed so far.

    With authentication enabled the bearer token is passed as ``?token=``.
    """

    user: Optional[User] = None
    if settings.enable_api_auth:
        user = authenticate_token(websocket.query_params.get("token"))
        if user is None:
            await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
            return

    await websocket.accept()
    coordinator = _coordinator_for(websocket.app)
    connection_id = uuid4().hex
    logger.debug("Transcription connection %s opened", connection_id)

    try:
        while True:
            raw = await websocket.receive_text()
            for event in await _dispatch(coordinator, connection_id, raw, user):
                await websocket.send_json(event.to_message())
    except WebSocketDisconnect:
        pass
    finally:
        await coordinator.disconnect(connection_id)
        logger.debug("Transcription connection %s closed", connection_id)
