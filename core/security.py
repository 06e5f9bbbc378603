"""
Security utilities for the Mail Parse Service.
==============================================

Provides shared-secret bearer authentication for the protected endpoints.

Usage:
    # As a FastAPI dependency (for specific endpoints/routers):
    from core.security import require_api_token

    @router.post("/parse")
    async def parse(_auth: None = Depends(require_api_token)):
        ...

    # Or for entire routers:
    router = APIRouter(dependencies=[Depends(require_api_token)])

Every failure (missing header, wrong scheme, empty or wrong token) produces
the same 401 response so callers cannot tell the cases apart.
"""

from __future__ import annotations

import logging
import secrets
from typing import Optional

from fastapi import HTTPException, Request, status

logger = logging.getLogger(__name__)

UNAUTHORIZED_MESSAGE = "Unauthorized: Invalid or missing token"
BEARER_SCHEME = "bearer"


# =============================================================================
# HELPER FUNCTIONS
# =============================================================================

def extract_bearer_token(authorization: Optional[str]) -> Optional[str]:
    """
    Pull the credential out of an ``Authorization: Bearer <token>`` header.

    Args:
        authorization: Raw header value, or None when absent

    Returns:
        The token, or None when the header is missing or malformed
    """
    if not authorization:
        return None
    scheme, _, credential = authorization.strip().partition(" ")
    if scheme.lower() != BEARER_SCHEME:
        return None
    credential = credential.strip()
    return credential or None


def is_token_valid(presented: Optional[str], expected: str) -> bool:
    """Constant-time comparison; an unset expected token never matches."""
    if not presented or not expected:
        return False
    return secrets.compare_digest(presented.encode("utf-8"), expected.encode("utf-8"))


def unauthorized() -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=UNAUTHORIZED_MESSAGE,
        headers={"WWW-Authenticate": "Bearer"},
    )


# =============================================================================
# FASTAPI DEPENDENCY
# =============================================================================

def require_api_token(request: Request) -> None:
    """
    FastAPI dependency that enforces the shared bearer token.

    The expected token comes from the configuration bound to the running
    application (``app.state.config``).

    Raises:
        HTTPException: 401 for any missing or mismatching credential
    """
    expected = request.app.state.config.API_TOKEN
    presented = extract_bearer_token(request.headers.get("Authorization"))
    if not is_token_valid(presented, expected):
        logger.warning("Rejected unauthenticated request to %s", request.url.path)
        raise unauthorized()
