from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, List, Mapping, Optional

from src.medscribe.domain.models.session_record import SessionRecord, SessionStatus


class SessionRecordRepository(ABC):
    @abstractmethod
    def get(self, session_id: str) -> Optional[SessionRecord]:
        raise NotImplementedError

    @abstractmethod
    def list_by_owner(
        self,
        owner_id: str,
        *,
        status: Optional[SessionStatus] = None,
        limit: int = 20,
        offset: int = 0,
    ) -> List[SessionRecord]:
        """Return the owner's sessions, newest first."""
        raise NotImplementedError

    @abstractmethod
    def save(self, record: SessionRecord) -> None:
        raise NotImplementedError

    @abstractmethod
    def update_fields(self, session_id: str, updates: Mapping[str, Any]) -> Optional[SessionRecord]:
        """Apply a partial update and refresh ``updated_at``.

        Returns the updated record, or None if the session does not exist.
        """
        raise NotImplementedError

    @abstractmethod
    def delete(self, session_id: str) -> bool:
        raise NotImplementedError
