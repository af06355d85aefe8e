"""
Standalone utility to verify Firebase ID tokens and session cookies.

This package has no dependency on the web layer (firebase_verify.security,
firebase_verify.routers). Build a verifier with ``id_token_verifier()`` or
``session_cookie_verifier()`` and call ``await verifier.verify(token)``.
"""

from .cache import CacheError, HttpCache, InitFetchError
from .config import VerifierConfig
from .context import TokenContext, extract_context
from .crypto import PublicKey, RsaSigner, generate_test_certificate, parse_public_keys
from .fetch import BadHttpStatus, FetchError, HttpKeySource, KeySource, Resource, TransportError
from .jwt import DecodeError, Token, TokenClaims, TokenHeader, decode_token, encode_token
from .verifier import (
    EmulatedTokenVerifier,
    LiveTokenVerifier,
    TokenVerificationError,
    TokenVerifier,
    id_token_verifier,
    session_cookie_verifier,
)

__all__ = [
    "BadHttpStatus",
    "CacheError",
    "DecodeError",
    "EmulatedTokenVerifier",
    "FetchError",
    "HttpCache",
    "HttpKeySource",
    "InitFetchError",
    "KeySource",
    "LiveTokenVerifier",
    "PublicKey",
    "Resource",
    "RsaSigner",
    "Token",
    "TokenClaims",
    "TokenContext",
    "TokenHeader",
    "TokenVerificationError",
    "TokenVerifier",
    "TransportError",
    "VerifierConfig",
    "decode_token",
    "encode_token",
    "extract_context",
    "generate_test_certificate",
    "id_token_verifier",
    "parse_public_keys",
    "session_cookie_verifier",
]
