from __future__ import annotations

from contextvars import ContextVar
from typing import Awaitable, Callable, Optional

from fastapi import Depends, HTTPException, Security, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from src.medscribe.config import settings
from src.medscribe.domain.models.session_record import SessionRecord
from src.medscribe.domain.models.user import User, UserRole
from src.medscribe.services.identity import service as identity

# Bearer token is expected in the Authorization header when ENABLE_API_AUTH is true.
_bearer_scheme = HTTPBearer(auto_error=False)

# Identifier of the authenticated caller for the in-flight request, used by
# the audit logger to attribute events without threading the user through
# every call.
_current_subject: ContextVar[Optional[str]] = ContextVar("current_subject", default=None)

# Development identity used when authentication is disabled.
ANONYMOUS_USER_ID = "anonymous"


def get_current_subject() -> Optional[str]:
    """Return the current subject identifier, if any."""

    return _current_subject.get()


def authenticate_token(token: Optional[str]) -> Optional[User]:
    """Verify a raw bearer token with the identity provider.

    Returns None when the token is missing or unknown. Callers decide whether
    an unauthenticated caller is acceptable.
    """

    if not token:
        return None
    user = identity.identity_provider.verify_token(token)
    if user is not None:
        _current_subject.set(user.id)
    return user


async def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Security(_bearer_scheme),
) -> User:
    """FastAPI dependency resolving the authenticated user.

    - If ENABLE_API_AUTH is false (default for development/tests), every
      caller is treated as a single anonymous doctor.
    - If ENABLE_API_AUTH is true, a bearer token known to the identity
      provider is required.
    """

    if not settings.enable_api_auth:
        _current_subject.set(ANONYMOUS_USER_ID)
        return User(id=ANONYMOUS_USER_ID, role=UserRole.DOCTOR)

    if credentials is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Access token required",
        )

    user = authenticate_token(credentials.credentials)
    if user is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
        )
    return user


def require_role(role: UserRole) -> Callable[..., Awaitable[User]]:
    """Build a dependency that only admits users carrying ``role``."""

    async def _dependency(user: User = Depends(get_current_user)) -> User:
        if user.role != role:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Access denied. {role.value} role required.",
            )
        return user

    return _dependency


def ensure_can_access_session(user: User, record: SessionRecord) -> None:
    """Raise HTTP 403 unless ``user`` owns the session."""

    if record.owner_id != user.id:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Access denied",
        )
