from __future__ import annotations

import logging

from fastapi import HTTPException, Request, status

logger = logging.getLogger(__name__)

AUTHORIZATION_HEADER = "Authorization"
BEARER_PREFIX = "Bearer"


def extract_bearer_token(request: Request) -> str | None:
    """
    Extract the ID token from ``Authorization: Bearer <token>``.

    Returns None when the header is absent; raises 400 when it is malformed.
    """

    raw = request.headers.get(AUTHORIZATION_HEADER)
    if not raw:
        logger.info("Missing Authorization header path=%s method=%s", request.url.path, request.method)
        return None

    prefix = f"{BEARER_PREFIX} "
    if not raw.startswith(prefix):
        logger.warning("Invalid Authorization header format path=%s method=%s", request.url.path, request.method)
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Invalid {AUTHORIZATION_HEADER}. Expected '{BEARER_PREFIX} <token>'.",
        )

    token = raw[len(prefix) :].strip()
    if not token:
        logger.warning("Empty bearer token path=%s method=%s", request.url.path, request.method)
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Invalid {AUTHORIZATION_HEADER}. Missing token after '{BEARER_PREFIX}'.",
        )
    return token


def extract_session_cookie(request: Request, cookie_name: str) -> str | None:
    value = request.cookies.get(cookie_name, "").strip()
    if not value:
        logger.info("Missing session cookie path=%s method=%s", request.url.path, request.method)
        return None
    return value
