from __future__ import annotations

from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, Field

from src.medscribe.domain.models.session_record import SessionRecord, SessionStatus
from src.medscribe.domain.models.user import User, UserRole
from src.medscribe.security import ensure_can_access_session, require_role
from src.medscribe.services.audit.service import audit_service
from src.medscribe.services.sessions.service import session_service

router = APIRouter(prefix="/sessions", tags=["sessions"])

require_doctor = require_role(UserRole.DOCTOR)


class CreateSessionRequest(BaseModel):
    patient_name: str = Field(min_length=1)
    patient_id: Optional[str] = None
    session_type: str = "consultation"


class UpdateSessionRequest(BaseModel):
    transcript: Optional[str] = None
    entities: Optional[List[Dict[str, Any]]] = None
    summary: Optional[str] = None
    image_analysis: Optional[List[Dict[str, Any]]] = None
    status: Optional[SessionStatus] = None


def _load_owned_session(session_id: str, user: User) -> SessionRecord:
    record = session_service.get_session(session_id)
    if record is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Session not found")
    ensure_can_access_session(user, record)
    return record


@router.post("/", response_model=SessionRecord, status_code=status.HTTP_201_CREATED)
async def create_session(payload: CreateSessionRequest, user: User = Depends(require_doctor)) -> SessionRecord:
    record = session_service.create_session(
        owner_id=user.id,
        patient_name=payload.patient_name,
        patient_id=payload.patient_id,
        session_type=payload.session_type,
    )

    audit_service.log_event(
        action="create_session",
        resource_type="session",
        resource_id=record.id,
    )

    return record


@router.get("/", response_model=List[SessionRecord])
async def list_sessions(
    limit: int = Query(default=20, ge=1, le=100),
    offset: int = Query(default=0, ge=0),
    status_filter: Optional[SessionStatus] = Query(default=None, alias="status"),
    user: User = Depends(require_doctor),
) -> List[SessionRecord]:
    """List the caller's sessions, newest first."""

    return session_service.list_sessions(owner_id=user.id, status=status_filter, limit=limit, offset=offset)


@router.get("/{session_id}", response_model=SessionRecord)
async def get_session(session_id: str, user: User = Depends(require_doctor)) -> SessionRecord:
    record = _load_owned_session(session_id, user)

    audit_service.log_event(
        action="get_session",
        resource_type="session",
        resource_id=session_id,
    )

    return record


@router.put("/{session_id}", response_model=SessionRecord)
async def update_session(
    session_id: str,
    payload: UpdateSessionRequest,
    user: User = Depends(require_doctor),
) -> SessionRecord:
    _load_owned_session(session_id, user)

    updates = payload.model_dump(exclude_unset=True, exclude_none=True)
    updated = session_service.update_session(session_id, updates)
    if updated is None:
        # Deleted between the ownership check and the write.
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Session not found")

    audit_service.log_event(
        action="update_session",
        resource_type="session",
        resource_id=session_id,
        extra={"fields": sorted(updates)},
    )

    return updated


@router.delete("/{session_id}")
async def delete_session(session_id: str, user: User = Depends(require_doctor)) -> dict:
    _load_owned_session(session_id, user)
    session_service.delete_session(session_id)

    audit_service.log_event(
        action="delete_session",
        resource_type="session",
        resource_id=session_id,
    )

    return {"message": "Session deleted successfully"}
