from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, List, Mapping, Optional
from uuid import uuid4

from src.medscribe.domain.models.session_record import SessionRecord, SessionStatus
from src.medscribe.infra.db import inmemory as repos
from src.medscribe.infra.db.repositories import SessionRecordRepository

# Fields a session owner may patch through the API.
UPDATABLE_FIELDS = frozenset({"transcript", "entities", "summary", "image_analysis", "status"})


class SessionService:
    """Create, read, update and delete consultation session records."""

    def __init__(self, repository: Optional[SessionRecordRepository] = None) -> None:
        self._repository = repository

    @property
    def repository(self) -> SessionRecordRepository:
        return self._repository or repos.session_record_repository

    def create_session(
        self,
        *,
        owner_id: str,
        patient_name: str,
        patient_id: Optional[str] = None,
        session_type: str = "consultation",
    ) -> SessionRecord:
        now = datetime.now(timezone.utc)
        record = SessionRecord(
            id=str(uuid4()),
            owner_id=owner_id,
            patient_name=patient_name,
            patient_id=patient_id,
            session_type=session_type,
            status=SessionStatus.ACTIVE,
            created_at=now,
            updated_at=now,
        )
        self.repository.save(record)
        return record

    def get_session(self, session_id: str) -> Optional[SessionRecord]:
        return self.repository.get(session_id)

    def list_sessions(
        self,
        *,
        owner_id: str,
        status: Optional[SessionStatus] = None,
        limit: int = 20,
        offset: int = 0,
    ) -> List[SessionRecord]:
        return self.repository.list_by_owner(owner_id, status=status, limit=limit, offset=offset)

    def update_session(self, session_id: str, updates: Mapping[str, Any]) -> Optional[SessionRecord]:
        unknown = set(updates) - UPDATABLE_FIELDS
        if unknown:
            raise ValueError(f"Fields cannot be updated: {', '.join(sorted(unknown))}")
        return self.repository.update_fields(session_id, updates)

    def delete_session(self, session_id: str) -> bool:
        return self.repository.delete(session_id)


session_service = SessionService()
