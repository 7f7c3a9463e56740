from __future__ import annotations

import asyncio
import logging
from typing import Optional

from src.medscribe.domain.models.session_record import SessionRecord
from src.medscribe.infra.db import inmemory as repos
from src.medscribe.infra.db.repositories import SessionRecordRepository

logger = logging.getLogger("medscribe.transcription.gateway")


class SessionStoreError(RuntimeError):
    """The document store could not be reached or rejected the operation.

    Retryable: callers keep their in-memory state and try again later.
    """


class SessionNotFoundError(LookupError):
    def __init__(self, session_id: str) -> None:
        super().__init__(f"Session {session_id} not found")
        self.session_id = session_id


class SessionRecordGateway:
    """Async facade the transcription coordinator uses to reach session records.

    Repository calls are synchronous, so each one runs in a worker thread and
    the event loop stays free while the store is busy.
    """

    def __init__(self, repository: Optional[SessionRecordRepository] = None) -> None:
        self._repository = repository

    @property
    def repository(self) -> SessionRecordRepository:
        # Resolved lazily so a repository swapped in at startup is picked up.
        return self._repository or repos.session_record_repository

    async def load_session(self, session_id: str) -> Optional[SessionRecord]:
        try:
            return await asyncio.to_thread(self.repository.get, session_id)
        except Exception as exc:
            raise SessionStoreError(f"Failed to load session {session_id}: {exc}") from exc

    @staticmethod
    def is_owned_by(record: SessionRecord, user_id: str) -> bool:
        return record.owner_id == user_id

    async def append_transcript(self, session_id: str, text: str) -> None:
        """Replace the persisted transcript with ``text`` (the full live transcript)."""

        try:
            updated = await asyncio.to_thread(
                self.repository.update_fields,
                session_id,
                {"transcript": text.strip()},
            )
        except Exception as exc:
            logger.error("Failed to update transcript for session %s: %s", session_id, exc)
            raise SessionStoreError(f"Failed to update session {session_id}: {exc}") from exc
        if updated is None:
            raise SessionNotFoundError(session_id)
