from __future__ import annotations

import asyncio
import logging
import time
from typing import Callable, Dict, List, Optional

from src.medscribe.config import settings
from src.medscribe.domain.models.transcription_events import (
    OutboundEvent,
    TranscriptChunk,
    TranscriptionError,
    TranscriptionErrorCode,
    TranscriptionStarted,
    TranscriptionStopped,
)
from src.medscribe.services.audit.service import audit_service
from src.medscribe.services.transcription.backends import (
    SpeechToTextBackend,
    TranscriptionFailure,
    get_speech_backend_from_env,
)
from src.medscribe.services.transcription.gateway import (
    SessionNotFoundError,
    SessionRecordGateway,
    SessionStoreError,
)
from src.medscribe.services.transcription.registry import ActiveTranscriptionEntry, SessionRegistry

logger = logging.getLogger("medscribe.transcription")


class TranscriptionCoordinator:
    """Per-connection live transcription protocol.

    A connection is either idle (no registry entry) or active (entry present).
    Each handler consumes one inbound event and returns the outbound events
    for that connection, so the same logic runs behind any transport.

    Handlers for the same connection id run one at a time, in arrival order,
    behind a per-connection lock. Different connections never contend.
    """

    def __init__(
        self,
        *,
        registry: Optional[SessionRegistry] = None,
        gateway: Optional[SessionRecordGateway] = None,
        backend: Optional[SpeechToTextBackend] = None,
        flush_interval: Optional[float] = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._clock = clock
        self.registry = registry or SessionRegistry(clock=clock)
        self.gateway = gateway or SessionRecordGateway()
        self._backend = backend
        self.flush_interval = (
            flush_interval if flush_interval is not None else settings.transcription_flush_interval_seconds
        )
        self._locks: Dict[str, asyncio.Lock] = {}

    @property
    def backend(self) -> SpeechToTextBackend:
        if self._backend is None:
            self._backend = get_speech_backend_from_env()
        return self._backend

    def _lock_for(self, connection_id: str) -> asyncio.Lock:
        lock = self._locks.get(connection_id)
        if lock is None:
            lock = self._locks[connection_id] = asyncio.Lock()
        return lock

    def _now_ms(self) -> int:
        return int(self._clock() * 1000)

    # Inbound events

    async def start(self, connection_id: str, session_id: str, user_id: str) -> List[OutboundEvent]:
        async with self._lock_for(connection_id):
            if self.registry.get(connection_id) is not None:
                return [TranscriptionError.for_code(TranscriptionErrorCode.ALREADY_ACTIVE)]

            try:
                record = await self.gateway.load_session(session_id)
            except SessionStoreError as exc:
                logger.error("Could not load session %s to start transcription: %s", session_id, exc)
                return [TranscriptionError.for_code(TranscriptionErrorCode.START_FAILED, details=str(exc))]

            if record is None:
                return [TranscriptionError.for_code(TranscriptionErrorCode.SESSION_NOT_FOUND)]
            if not self.gateway.is_owned_by(record, user_id):
                logger.warning("User %s denied transcription access to session %s", user_id, session_id)
                return [TranscriptionError.for_code(TranscriptionErrorCode.ACCESS_DENIED)]

            self.registry.create(connection_id, session_id, user_id, record.transcript or "")

        logger.info("Transcription started for session %s", session_id)
        audit_service.log_event(
            action="start_transcription",
            resource_type="session",
            resource_id=session_id,
            subject=user_id,
        )
        return [TranscriptionStarted(session_id=session_id)]

    async def chunk(self, connection_id: str, audio: bytes, is_last: bool = False) -> List[OutboundEvent]:
        async with self._lock_for(connection_id):
            entry = self.registry.get(connection_id)
            if entry is None:
                return [TranscriptionError.for_code(TranscriptionErrorCode.NO_ACTIVE_SESSION)]

            try:
                text = (await self.backend.transcribe(audio)).strip()
            except TranscriptionFailure as exc:
                logger.warning("Audio chunk for session %s failed: %s", entry.session_id, exc.message)
                return [
                    TranscriptionError.for_code(
                        TranscriptionErrorCode.CHUNK_PROCESSING_FAILED,
                        details=exc.to_details(),
                    )
                ]
            except Exception:
                logger.exception("Unexpected error transcribing audio chunk for session %s", entry.session_id)
                return [TranscriptionError.for_code(TranscriptionErrorCode.CHUNK_PROCESSING_FAILED)]

            events: List[OutboundEvent] = []
            if text:
                entry = self.registry.append_text(connection_id, text) or entry
                events.append(TranscriptChunk(text=text, timestamp=self._now_ms(), is_last=is_last))
            else:
                # Silence still counts as activity for idle eviction.
                self.registry.touch(connection_id)

            flush_due = self._clock() - entry.last_flush_at > self.flush_interval
            if (is_last or flush_due) and entry.has_unflushed_text:
                events.extend(await self._flush(entry))
            return events

    async def stop(self, connection_id: str) -> List[OutboundEvent]:
        async with self._lock_for(connection_id):
            entry = self.registry.get(connection_id)
            if entry is None:
                return [TranscriptionError.for_code(TranscriptionErrorCode.NO_ACTIVE_SESSION)]

            events = await self._flush(entry)
            self.registry.remove(connection_id)

        logger.info("Transcription stopped for session %s", entry.session_id)
        audit_service.log_event(
            action="stop_transcription",
            resource_type="session",
            resource_id=entry.session_id,
            subject=entry.owner_id,
            extra={"flushed": not events},
        )
        events.append(TranscriptionStopped(session_id=entry.session_id, final_transcript=entry.transcript))
        return events

    async def disconnect(self, connection_id: str) -> None:
        async with self._lock_for(connection_id):
            entry = self.registry.get(connection_id)
            if entry is not None:
                await self._flush(entry)
                self.registry.remove(connection_id)
        self._locks.pop(connection_id, None)

        if entry is not None:
            logger.info("Client disconnected, saved transcript for session %s", entry.session_id)
            audit_service.log_event(
                action="disconnect_transcription",
                resource_type="session",
                resource_id=entry.session_id,
                subject=entry.owner_id,
            )

    async def evict(self, connection_id: str, now: float, timeout: float) -> bool:
        """Flush and drop an entry idle since before ``now - timeout``.

        Staleness is re-checked under the connection lock, so an entry that
        received a chunk after the sweep listed it is left alone.
        """

        async with self._lock_for(connection_id):
            entry = self.registry.get(connection_id)
            if entry is None or entry.last_activity_at >= now - timeout:
                return False
            await self._flush(entry)
            self.registry.remove(connection_id)

        logger.info(
            "Evicted idle transcription for session %s (idle %.0fs)",
            entry.session_id,
            now - entry.last_activity_at,
        )
        audit_service.log_event(
            action="evict_transcription",
            resource_type="session",
            resource_id=entry.session_id,
            subject=entry.owner_id,
        )
        return True

    async def _flush(self, entry: ActiveTranscriptionEntry) -> List[OutboundEvent]:
        try:
            await self.gateway.append_transcript(entry.session_id, entry.transcript)
        except (SessionStoreError, SessionNotFoundError) as exc:
            logger.error("Failed to flush transcript for session %s: %s", entry.session_id, exc)
            return [TranscriptionError.for_code(TranscriptionErrorCode.FLUSH_FAILED, details=str(exc))]
        self.registry.mark_flushed(entry.connection_id, entry.transcript)
        return []


transcription_coordinator = TranscriptionCoordinator()
