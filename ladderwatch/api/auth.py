"""Ladderwatch — Job trigger authentication.

Shared-secret Bearer auth for the job endpoints. A missing header, a wrong
token, and an unconfigured CRON_SECRET all produce the same 401 so callers
cannot tell which one happened.
"""

import secrets

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from ladderwatch.config import settings
from ladderwatch.core.logging import get_logger

logger = get_logger("api.auth")

_bearer_scheme = HTTPBearer(auto_error=False)


def _unauthorized() -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Unauthorized.",
        headers={"WWW-Authenticate": "Bearer", "Cache-Control": "no-store"},
    )


def _check_token(token: str) -> bool:
    expected = settings.cron_secret or ""
    # Compare even when unconfigured so the timing does not differ
    matches = secrets.compare_digest(token.encode(), expected.encode())
    return bool(expected) and matches


async def require_cron_secret(
    request: Request,
    credentials: HTTPAuthorizationCredentials = Depends(_bearer_scheme),
) -> None:
    """FastAPI dependency guarding the job trigger routes."""
    token = credentials.credentials if credentials else ""
    if not _check_token(token):
        if not settings.cron_secret:
            logger.error("CRON_SECRET is not configured; job trigger rejected")
        else:
            logger.warning(f"Job trigger rejected: {request.method} {request.url.path}")
        raise _unauthorized()
