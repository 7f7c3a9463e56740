from __future__ import annotations

import logging
from typing import Dict, Optional, Protocol

from src.medscribe.config import settings
from src.medscribe.domain.models.user import User, UserRole

logger = logging.getLogger("medscribe.identity")


class IdentityProvider(Protocol):
    """Verifies bearer tokens issued by the managed identity provider."""

    def verify_token(self, token: str) -> Optional[User]:  # pragma: no cover - interface
        ...


class StaticTokenIdentityProvider:
    """Identity provider backed by a fixed token table.

    The table comes from AUTH_TOKENS as comma-separated ``token:user_id:role``
    triples. It stands in for the hosted provider in development, tests and
    single-tenant deployments.
    """

    def __init__(self, raw_tokens: Optional[str] = None) -> None:
        self._raw_tokens = raw_tokens

    def _parse(self) -> Dict[str, User]:
        raw = self._raw_tokens if self._raw_tokens is not None else settings.auth_tokens
        users: Dict[str, User] = {}
        for item in (raw or "").split(","):
            item = item.strip()
            if not item:
                continue
            parts = item.split(":")
            if len(parts) != 3:
                logger.warning("Ignoring malformed AUTH_TOKENS entry")
                continue
            token, user_id, role = (p.strip() for p in parts)
            try:
                users[token] = User(id=user_id, role=UserRole(role))
            except ValueError:
                logger.warning("Ignoring AUTH_TOKENS entry with unknown role %r", role)
        return users

    def verify_token(self, token: str) -> Optional[User]:
        # Parsed on every call so configuration changes apply without restart.
        return self._parse().get(token)


identity_provider: IdentityProvider = StaticTokenIdentityProvider()
