from __future__ import annotations

import logging
from typing import Optional, Protocol

import httpx

from src.medscribe.config import settings
from src.medscribe.services.inference.huggingface import HuggingFaceInferenceClient, InferenceFailure

logger = logging.getLogger("medscribe.transcription.backend")


class TranscriptionFailure(InferenceFailure):
    """Raised by speech-to-text backends for every kind of upstream failure."""


class SpeechToTextBackend(Protocol):
    """Protocol for speech-to-text backends.

    Implementations take one encoded audio chunk and return its transcript.
    An empty string means no speech was detected and is not an error.
    """

    name: str

    async def transcribe(self, audio: bytes) -> str:  # pragma: no cover - interface
        ...


class DemoSpeechToTextBackend:
    """Deterministic offline backend.

    Returns a placeholder string derived from the chunk size so tests and local
    development stay fast and offline.
    """

    name = "demo"

    async def transcribe(self, audio: bytes) -> str:
        if not audio:
            return ""
        return f"[demo] {len(audio)} bytes of audio"


class HuggingFaceSpeechToTextBackend:
    """Backend that calls a hosted Whisper model on the Hugging Face inference API.

    The raw audio bytes are posted as the request body and the JSON response
    is expected to carry a ``text`` field.
    """

    name = "huggingface"

    def __init__(
        self,
        *,
        api_url: Optional[str] = None,
        api_key: Optional[str] = None,
        model: Optional[str] = None,
        timeout_seconds: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._client = HuggingFaceInferenceClient(
            api_url=api_url,
            api_key=api_key,
            timeout_seconds=timeout_seconds,
            transport=transport,
        )
        self._model = model or settings.hf_whisper_model

    @property
    def endpoint(self) -> str:
        return self._client.endpoint(self._model)

    async def transcribe(self, audio: bytes) -> str:
        try:
            payload = await self._client.post_bytes(self._model, audio, "audio/wav")
        except InferenceFailure as exc:
            raise TranscriptionFailure(exc.code, exc.message, self.name) from exc

        text = payload.get("text") if isinstance(payload, dict) else None
        if not isinstance(text, str):
            logger.warning("Speech-to-text response from %s has no text field", self._model)
            raise TranscriptionFailure("malformed_response", "Speech-to-text response has no text field", self.name)
        return text.strip()


demo_speech_backend = DemoSpeechToTextBackend()


def get_speech_backend_from_env() -> SpeechToTextBackend:
    """Select a speech-to-text backend based on TRANSCRIPTION_BACKEND.

    - TRANSCRIPTION_BACKEND=huggingface → HuggingFaceSpeechToTextBackend
    - Anything else (or unset) → DemoSpeechToTextBackend
    """

    backend_name = settings.transcription_backend.lower()
    if backend_name == "huggingface":
        return HuggingFaceSpeechToTextBackend()
    return demo_speech_backend
