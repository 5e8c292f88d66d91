"""
Bearer token guard for the admin API.

Routes that change servers, indexes or the task queue depend on
`require_api_token`. Without `API_TOKEN` configured the guard lets every
request through (local development).
"""

from __future__ import annotations

import hmac
from typing import Optional

from fastapi import HTTPException, Request, status

from ..config import settings


def is_auth_enabled() -> bool:
    return bool(settings.API_TOKEN)


def presented_token(request: Request) -> Optional[str]:
    """Token from `Authorization: Bearer ...`, else from `?token=`."""
    scheme, _, credentials = (request.headers.get("Authorization") or "").partition(" ")
    if scheme.lower() == "bearer" and credentials.strip():
        return credentials.strip()
    return request.query_params.get("token") or None


def require_api_token(request: Request) -> None:
    if not is_auth_enabled():
        return
    token = presented_token(request)
    if token is None or not hmac.compare_digest(token, settings.API_TOKEN or ""):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or missing bearer token.",
            headers={"WWW-Authenticate": "Bearer"},
        )
