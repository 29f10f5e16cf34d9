"""Bearer authentication for operators and the audit worker."""

import hmac
from datetime import datetime, timedelta, timezone
from typing import Annotated, Any

import jwt
from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from ..core.errors import AuthError
from .config import APISettings, get_settings

bearer_scheme = HTTPBearer(auto_error=False)


def create_access_token(
    subject: str,
    settings: APISettings,
    expires_delta: timedelta | None = None,
) -> str:
    """Create a JWT access token for an operator."""
    now = datetime.now(timezone.utc)
    expire = now + (expires_delta or timedelta(hours=settings.jwt_expiration_hours))

    payload = {
        "sub": subject,
        "exp": expire,
        "iat": now,
        "type": "access",
    }

    token: str = jwt.encode(payload, settings.secret_key, algorithm=settings.jwt_algorithm)
    return token


def verify_token(token: str, settings: APISettings) -> dict[str, Any]:
    """Verify and decode a JWT token.

    Raises:
        AuthError: If the token is expired or invalid
    """
    try:
        payload: dict[str, Any] = jwt.decode(
            token,
            settings.secret_key,
            algorithms=[settings.jwt_algorithm],
        )
        return payload
    except jwt.ExpiredSignatureError as e:
        raise AuthError("Token has expired") from e
    except jwt.InvalidTokenError as e:
        raise AuthError("Invalid token") from e


async def require_operator(
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(bearer_scheme)],
    settings: Annotated[APISettings, Depends(get_settings)],
) -> dict[str, Any]:
    """Authenticated operator's token claims."""
    if credentials is None:
        raise AuthError("Missing authorization header")
    return verify_token(credentials.credentials, settings)


async def require_worker(
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(bearer_scheme)],
    settings: Annotated[APISettings, Depends(get_settings)],
) -> None:
    """Check the worker's shared secret on status callbacks."""
    if not settings.worker_secret:
        raise AuthError("Worker callbacks are disabled: no worker secret configured")
    if credentials is None:
        raise AuthError("Missing authorization header")
    if not hmac.compare_digest(credentials.credentials, settings.worker_secret):
        raise AuthError("Invalid worker credential")
