"""Bearer-token helpers for the lifecycle API and the webhook receiver."""

from __future__ import annotations

import hmac
from collections.abc import Mapping
from dataclasses import dataclass

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from app.core.errors import UnauthorizedError

security = HTTPBearer(auto_error=False)
SECURITY_DEP = Depends(security)


@dataclass(frozen=True)
class AuthContext:
    """Marker for a caller that presented the shared API token."""

    actor_type: str = "api_client"


def extract_bearer_token(headers: Mapping[str, str]) -> str | None:
    """Return the token from an `Authorization: Bearer <token>` header."""
    raw = headers.get("authorization")
    if not raw:
        return None
    parts = raw.strip().split()
    if len(parts) != 2 or parts[0].lower() != "bearer":
        return None
    return parts[1]


def tokens_match(presented: str | None, expected: str) -> bool:
    if presented is None or not expected:
        return False
    return hmac.compare_digest(presented.encode("utf-8"), expected.encode("utf-8"))


async def require_api_token(
    request: Request,
    credentials: HTTPAuthorizationCredentials | None = SECURITY_DEP,
) -> AuthContext:
    """Reject lifecycle calls that do not carry the configured API token."""
    expected = request.app.state.settings.api_bearer_token.strip()
    if not expected:
        raise UnauthorizedError("API_BEARER_TOKEN is not configured")
    presented = credentials.credentials if credentials is not None else None
    if not tokens_match(presented, expected):
        raise UnauthorizedError("Invalid or missing bearer token")
    return AuthContext()
