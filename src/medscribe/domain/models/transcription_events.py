from __future__ import annotations

import base64
import binascii
from enum import Enum
from typing import Any, ClassVar, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field


class TranscriptionErrorCode(str, Enum):
    SESSION_NOT_FOUND = "SessionNotFound"
    ACCESS_DENIED = "AccessDenied"
    ALREADY_ACTIVE = "AlreadyActive"
    NO_ACTIVE_SESSION = "NoActiveSession"
    CHUNK_PROCESSING_FAILED = "ChunkProcessingFailed"
    FLUSH_FAILED = "FlushFailed"
    INVALID_PAYLOAD = "InvalidPayload"
    START_FAILED = "StartFailed"


ERROR_MESSAGES: Dict[TranscriptionErrorCode, str] = {
    TranscriptionErrorCode.SESSION_NOT_FOUND: "Session not found",
    TranscriptionErrorCode.ACCESS_DENIED: "Access denied",
    TranscriptionErrorCode.ALREADY_ACTIVE: "A transcription is already active on this connection",
    TranscriptionErrorCode.NO_ACTIVE_SESSION: "No active transcription session",
    TranscriptionErrorCode.CHUNK_PROCESSING_FAILED: "Failed to process audio chunk",
    TranscriptionErrorCode.FLUSH_FAILED: "Failed to save transcript",
    TranscriptionErrorCode.INVALID_PAYLOAD: "Invalid event payload",
    TranscriptionErrorCode.START_FAILED: "Failed to start transcription",
}


class InboundEventType(str, Enum):
    START = "start-transcription"
    AUDIO_CHUNK = "audio-chunk"
    STOP = "stop-transcription"


class StartTranscriptionData(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    session_id: str = Field(alias="sessionId", min_length=1)
    # Only consulted when the connection itself is not authenticated.
    user_id: Optional[str] = Field(default=None, alias="userId")


class AudioChunkData(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    audio_data: str = Field(alias="audioData", min_length=1)
    is_last: bool = Field(default=False, alias="isLast")

    def decode_audio(self) -> bytes:
        """Return the raw audio bytes; raises ValueError on malformed base64."""

        try:
            return base64.b64decode(self.audio_data, validate=True)
        except binascii.Error as exc:
            raise ValueError("audioData is not valid base64") from exc


class OutboundEvent(BaseModel):
    """Base class for events sent back over a transcription connection."""

    model_config = ConfigDict(populate_by_name=True)

    event: ClassVar[str]

    def to_message(self) -> Dict[str, Any]:
        return {
            "event": self.event,
            "data": self.model_dump(mode="json", by_alias=True, exclude_none=True),
        }


class TranscriptionStarted(OutboundEvent):
    event: ClassVar[str] = "transcription-started"

    session_id: str = Field(alias="sessionId")


class TranscriptChunk(OutboundEvent):
    event: ClassVar[str] = "transcript-chunk"

    text: str
    # Milliseconds since the epoch.
    timestamp: int
    is_last: bool = Field(default=False, alias="isLast")


class TranscriptionStopped(OutboundEvent):
    event: ClassVar[str] = "transcription-stopped"

    session_id: str = Field(alias="sessionId")
    final_transcript: str = Field(alias="finalTranscript")


class TranscriptionError(OutboundEvent):
    event: ClassVar[str] = "transcription-error"

    error: TranscriptionErrorCode
    message: str
    details: Optional[Any] = None

    @classmethod
    def for_code(cls, code: TranscriptionErrorCode, details: Optional[Any] = None) -> "TranscriptionError":
        return cls(error=code, message=ERROR_MESSAGES[code], details=details)
