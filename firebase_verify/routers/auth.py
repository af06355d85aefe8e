from __future__ import annotations

from fastapi import APIRouter, Depends, Request

from firebase_verify.idtoken.context import TokenContext
from firebase_verify.idtoken.verifier import KIND_INFRASTRUCTURE, TokenVerificationError
from firebase_verify.schemas.auth import TokenContextOut, VerifyRequest, VerifyResult
from firebase_verify.security.dependencies import (
    get_id_token_verifier,
    get_session_cookie_verifier,
    require_id_token,
    require_session_cookie,
    to_http_exception,
)

router = APIRouter(tags=["auth"])


@router.get("/me", response_model=TokenContextOut)
async def me(ctx: TokenContext = Depends(require_id_token)) -> TokenContext:
    return ctx


@router.get("/session/me", response_model=TokenContextOut)
async def session_me(ctx: TokenContext = Depends(require_session_cookie)) -> TokenContext:
    return ctx


@router.post("/verify", response_model=VerifyResult)
async def verify(body: VerifyRequest, request: Request) -> VerifyResult:
    """
    Verify a token passed in the body and report which check failed, if any.

    Infrastructure failures are still raised (503) rather than reported as an
    invalid token.
    """
    if body.kind == "session_cookie":
        verifier = get_session_cookie_verifier(request)
    else:
        verifier = get_id_token_verifier(request)

    try:
        token = await verifier.verify(body.token)
    except TokenVerificationError as e:
        if e.kind == KIND_INFRASTRUCTURE:
            raise to_http_exception(e) from e
        return VerifyResult(valid=False, error=type(e).__name__)

    return VerifyResult(valid=True, uid=token.subject, claims=token.all_claims)
