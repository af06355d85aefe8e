from __future__ import annotations

from fastapi import Depends, HTTPException, Request, status

from firebase_verify.idtoken.context import TokenContext, extract_context
from firebase_verify.idtoken.verifier import KIND_INFRASTRUCTURE, TokenVerificationError, TokenVerifier
from firebase_verify.security.auth import extract_bearer_token, extract_session_cookie
from firebase_verify.settings import Settings, get_settings


def _verifier(request: Request, name: str) -> TokenVerifier:
    verifier = getattr(request.app.state, name, None)
    if verifier is None:
        raise RuntimeError(f"{name} not configured. Did app startup run?")
    return verifier


def get_id_token_verifier(request: Request) -> TokenVerifier:
    return _verifier(request, "id_token_verifier")


def get_session_cookie_verifier(request: Request) -> TokenVerifier:
    return _verifier(request, "session_cookie_verifier")


def get_app_settings(request: Request) -> Settings:
    return getattr(request.app.state, "settings", None) or get_settings()


def to_http_exception(exc: TokenVerificationError) -> HTTPException:
    """
    Map a verification failure to an HTTP error.

    Bad tokens are 401; failing to fetch the signing keys is 503 so clients
    do not drop a token that may well be valid.
    """
    if exc.kind == KIND_INFRASTRUCTURE:
        return HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc))
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=str(exc),
        headers={"WWW-Authenticate": "Bearer"},
    )


async def _verify(request: Request, verifier: TokenVerifier, token: str) -> TokenContext:
    try:
        decoded = await verifier.verify(token)
    except TokenVerificationError as e:
        raise to_http_exception(e) from e

    ctx = extract_context(decoded)
    request.state.token_context = ctx
    return ctx


async def require_id_token(
    request: Request,
    verifier: TokenVerifier = Depends(get_id_token_verifier),
) -> TokenContext:
    """Verify the bearer ID token and return its context."""
    token = extract_bearer_token(request)
    if token is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authentication required",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return await _verify(request, verifier, token)


async def require_session_cookie(
    request: Request,
    verifier: TokenVerifier = Depends(get_session_cookie_verifier),
    settings: Settings = Depends(get_app_settings),
) -> TokenContext:
    """Verify the session cookie and return its context."""
    cookie = extract_session_cookie(request, settings.session_cookie_name)
    if cookie is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Session cookie required")
    return await _verify(request, verifier, cookie)
