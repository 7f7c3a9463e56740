from __future__ import annotations

from enum import Enum

from pydantic import BaseModel


class UserRole(str, Enum):
    DOCTOR = "doctor"
    PATIENT = "patient"


class User(BaseModel):
    # Opaque user id issued by the identity provider.
    id: str
    role: UserRole
