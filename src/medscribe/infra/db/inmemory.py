from __future__ import annotations

from datetime import datetime, timezone
from threading import Lock
from typing import Any, Dict, List, Mapping, Optional

from src.medscribe.domain.models.session_record import SessionRecord, SessionStatus
from src.medscribe.infra.db.repositories import SessionRecordRepository


class InMemorySessionRecordRepository(SessionRecordRepository):
    """Process-local session store used in development and tests.

    Records are copied on the way in and out so callers never share mutable
    state with the store.
    """

    def __init__(self) -> None:
        self._lock = Lock()
        self._records: Dict[str, SessionRecord] = {}

    def get(self, session_id: str) -> Optional[SessionRecord]:
        with self._lock:
            record = self._records.get(session_id)
            return record.model_copy(deep=True) if record is not None else None

    def list_by_owner(
        self,
        owner_id: str,
        *,
        status: Optional[SessionStatus] = None,
        limit: int = 20,
        offset: int = 0,
    ) -> List[SessionRecord]:
        with self._lock:
            matches = [
                r
                for r in self._records.values()
                if r.owner_id == owner_id and (status is None or r.status == status)
            ]
        matches.sort(key=lambda r: r.created_at, reverse=True)
        return [r.model_copy(deep=True) for r in matches[offset : offset + limit]]

    def save(self, record: SessionRecord) -> None:
        with self._lock:
            self._records[record.id] = record.model_copy(deep=True)

    def update_fields(self, session_id: str, updates: Mapping[str, Any]) -> Optional[SessionRecord]:
        with self._lock:
            existing = self._records.get(session_id)
            if existing is None:
                return None
            updated = existing.model_copy(
                update={**updates, "updated_at": datetime.now(timezone.utc)},
                deep=True,
            )
            self._records[session_id] = updated
            return updated.model_copy(deep=True)

    def delete(self, session_id: str) -> bool:
        with self._lock:
            return self._records.pop(session_id, None) is not None


session_record_repository: SessionRecordRepository = InMemorySessionRecordRepository()
