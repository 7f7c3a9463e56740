from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, List, Mapping, Optional

from sqlalchemy import select

from src.medscribe.domain.models.session_record import SessionRecord, SessionStatus
from src.medscribe.infra.db.models import SessionRecordORM
from src.medscribe.infra.db.repositories import SessionRecordRepository
from src.medscribe.infra.db.session import SessionFactory


class SqlSessionRecordRepository(SessionRecordRepository):
    """SQL-backed SessionRecordRepository.

    Every call opens and closes its own ORM session, so one repository can be
    shared across request handlers and worker threads.
    """

    def __init__(self, session_factory: SessionFactory) -> None:
        self._session_factory = session_factory

    def get(self, session_id: str) -> Optional[SessionRecord]:
        session = self._session_factory()
        try:
            orm = session.get(SessionRecordORM, session_id)
            if orm is None:
                return None
            return orm.to_domain()
        finally:
            session.close()

    def list_by_owner(
        self,
        owner_id: str,
        *,
        status: Optional[SessionStatus] = None,
        limit: int = 20,
        offset: int = 0,
    ) -> List[SessionRecord]:
        session = self._session_factory()
        try:
            query = select(SessionRecordORM).where(SessionRecordORM.owner_id == owner_id)
            if status is not None:
                query = query.where(SessionRecordORM.status == status.value)
            query = query.order_by(SessionRecordORM.created_at.desc()).offset(offset).limit(limit)
            return [orm.to_domain() for orm in session.scalars(query)]
        finally:
            session.close()

    def save(self, record: SessionRecord) -> None:
        """Insert or update a SessionRecord in the database."""

        session = self._session_factory()
        try:
            existing = session.get(SessionRecordORM, record.id)
            if existing is None:
                session.add(SessionRecordORM.from_domain(record))
            else:
                existing.apply(record.model_dump(exclude={"id"}))
            session.commit()
        finally:
            session.close()

    def update_fields(self, session_id: str, updates: Mapping[str, Any]) -> Optional[SessionRecord]:
        session = self._session_factory()
        try:
            orm = session.get(SessionRecordORM, session_id)
            if orm is None:
                return None
            orm.apply({**updates, "updated_at": datetime.now(timezone.utc)})
            session.commit()
            return orm.to_domain()
        finally:
            session.close()

    def delete(self, session_id: str) -> bool:
        session = self._session_factory()
        try:
            orm = session.get(SessionRecordORM, session_id)
            if orm is None:
                return False
            session.delete(orm)
            session.commit()
            return True
        finally:
            session.close()
