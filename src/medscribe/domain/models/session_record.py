from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


class SessionStatus(str, Enum):
    ACTIVE = "active"
    COMPLETED = "completed"
    ARCHIVED = "archived"


class SessionRecord(BaseModel):
    """A single clinician-patient consultation as persisted in the document store.

    ``owner_id`` is the user id of the doctor who created the session and is
    the only identity allowed to mutate it. ``transcript`` grows while a live
    transcription is attached to the session.
    """

    id: str
    owner_id: str
    patient_name: str
    patient_id: Optional[str] = None
    session_type: str = "consultation"
    status: SessionStatus = SessionStatus.ACTIVE
    transcript: str = ""
    entities: List[Dict[str, Any]] = Field(default_factory=list)
    summary: str = ""
    image_analysis: Optional[List[Dict[str, Any]]] = None
    created_at: datetime
    updated_at: datetime
