from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy import JSON, DateTime, String, Text
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from src.medscribe.domain.models.session_record import SessionRecord, SessionStatus


class Base(DeclarativeBase):
    pass


class SessionRecordORM(Base):
    __tablename__ = "sessions"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    owner_id: Mapped[str] = mapped_column(String, nullable=False, index=True)
    patient_name: Mapped[str] = mapped_column(String, nullable=False)
    patient_id: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    session_type: Mapped[str] = mapped_column(String, nullable=False)
    status: Mapped[str] = mapped_column(String, nullable=False)
    transcript: Mapped[str] = mapped_column(Text, nullable=False, default="")
    entities: Mapped[List[Dict[str, Any]]] = mapped_column(JSON, nullable=False, default=list)
    summary: Mapped[str] = mapped_column(Text, nullable=False, default="")
    image_analysis: Mapped[Optional[List[Dict[str, Any]]]] = mapped_column(JSON, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    @classmethod
    def from_domain(cls, record: SessionRecord) -> "SessionRecordORM":
        return cls(
            id=record.id,
            owner_id=record.owner_id,
            patient_name=record.patient_name,
            patient_id=record.patient_id,
            session_type=record.session_type,
            status=record.status.value,
            transcript=record.transcript,
            entities=list(record.entities),
            summary=record.summary,
            image_analysis=record.image_analysis,
            created_at=record.created_at,
            updated_at=record.updated_at,
        )

    def apply(self, values: Dict[str, Any]) -> None:
        """Copy domain-level field values onto this row."""

        for name, value in values.items():
            if name == "status" and isinstance(value, SessionStatus):
                value = value.value
            setattr(self, name, value)

    def to_domain(self) -> SessionRecord:
        return SessionRecord(
            id=self.id,
            owner_id=self.owner_id,
            patient_name=self.patient_name,
            patient_id=self.patient_id,
            session_type=self.session_type,
            status=SessionStatus(self.status),
            transcript=self.transcript or "",
            entities=list(self.entities or []),
            summary=self.summary or "",
            image_analysis=self.image_analysis,
            created_at=self.created_at,
            updated_at=self.updated_at,
        )
