"""
Request-scoped dependencies shared by the HTTP routes.
"""

from __future__ import annotations

import hmac
from typing import Optional

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import APIKeyHeader

from billing_sync.core.container import ServiceContainer

api_key_header = APIKeyHeader(name="Authorization", auto_error=False)


def get_container(request: Request) -> ServiceContainer:
    return request.app.state.container


async def require_service_token(
    authorization: Optional[str] = Depends(api_key_header),
    container: ServiceContainer = Depends(get_container),
) -> None:
    """Bearer token check for internal read-side callers.

    The read API is disabled (404) until a token is configured.
    """
    expected = container.settings.internal_api_token
    if not expected:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Not found")

    token = ""
    if authorization and authorization.startswith("Bearer "):
        token = authorization.replace("Bearer ", "", 1).strip()
    if not token or not hmac.compare_digest(token.encode(), expected.encode()):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid service token",
            headers={"WWW-Authenticate": "Bearer"},
        )
