"""
Encode and decode the compact token form (``header.payload.signature``).

Background for newcomers:
    ID tokens and session cookies are JWTs: three base64url segments (no
    padding) joined with dots. The first two segments are JSON; the third is
    the raw RSA signature over ``<header segment>.<payload segment>``.

    The signature covers the *original text* of the first two segments, so we
    keep that text verbatim in ``Token.signing_input``. Re-serializing the
    decoded JSON could change key order or whitespace and break the check.
"""

from __future__ import annotations

import json
import re
import logging
from collections.abc import Mapping
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Protocol

from jwt.utils import base64url_decode, base64url_encode
from pydantic import BaseModel, ConfigDict, ValidationError, field_validator

logger = logging.getLogger(__name__)

_BASE64URL = re.compile(r"[A-Za-z0-9_-]*")


class DecodeError(Exception):
    """Raised when a string is not a well-formed compact token."""


class MalformedToken(DecodeError):
    """Wrong segment count, empty segment, or a segment that is not base64url."""


class InvalidHeader(DecodeError):
    """Header segment is not a JSON object with the expected fields."""


class InvalidClaims(DecodeError):
    """Payload segment is not a JSON object carrying the critical claims."""


class InvalidSignatureEncoding(DecodeError):
    """Signature segment could not be base64url-decoded."""


class EncodeError(Exception):
    """Raised when a header or claim set cannot be encoded."""


class SignError(EncodeError):
    """Raised when the signer back-end fails."""


class TokenHeader(BaseModel):
    model_config = ConfigDict(frozen=True, extra="ignore")

    alg: str
    kid: str | None = None
    typ: str | None = None

    def to_header(self) -> dict[str, str]:
        return self.model_dump(exclude_none=True)


class TokenClaims(BaseModel):
    """
    The claims every ID token and session cookie must carry.

    Timestamps arrive as seconds since the epoch (numbers or numeric strings)
    and are held as timezone-aware UTC datetimes.
    """

    model_config = ConfigDict(frozen=True, extra="ignore")

    exp: datetime
    iat: datetime
    auth_time: datetime
    aud: str
    iss: str
    sub: str

    @field_validator("exp", "iat", "auth_time")
    @classmethod
    def as_utc(cls, value: datetime) -> datetime:
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)

    def to_payload(self) -> dict[str, Any]:
        return {
            "exp": _epoch_seconds(self.exp),
            "iat": _epoch_seconds(self.iat),
            "auth_time": _epoch_seconds(self.auth_time),
            "aud": self.aud,
            "iss": self.iss,
            "sub": self.sub,
        }


@dataclass(frozen=True)
class Token:
    """A decoded (not yet verified) token."""

    header: TokenHeader
    critical_claims: TokenClaims
    all_claims: dict[str, Any]
    signing_input: str
    """Original ``header_b64 + "." + payload_b64`` text, exactly as signed."""

    signature: bytes

    @property
    def subject(self) -> str:
        return self.critical_claims.sub

    def to_dict(self) -> dict[str, object]:
        """Return a JSON-serializable dict (signature omitted)."""
        return {
            "header": self.header.to_header(),
            "critical_claims": self.critical_claims.to_payload(),
            "all_claims": dict(self.all_claims),
        }


class Signer(Protocol):
    """Produces the base64url signature for ``header_b64 + "." + payload_b64``."""

    def sign(self, header_b64: str, payload_b64: str) -> str: ...


def _epoch_seconds(value: datetime) -> int:
    return int(value.timestamp())


def _json_default(value: object) -> object:
    if isinstance(value, datetime):
        return _epoch_seconds(value)
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


def _b64decode(segment: str, error: type[DecodeError] = MalformedToken) -> bytes:
    # Unpadded alphabet only; base64url_decode alone tolerates "=" and junk.
    if not _BASE64URL.fullmatch(segment):
        raise error("Token segment is not valid base64url")
    try:
        return base64url_decode(segment.encode("ascii"))
    except ValueError as e:
        raise error("Token segment is not valid base64url") from e


def _load_json_object(raw: bytes, error: type[DecodeError], what: str) -> dict[str, Any]:
    try:
        value = json.loads(raw)
    except (UnicodeDecodeError, ValueError) as e:
        raise error(f"Token {what} is not valid JSON") from e
    if not isinstance(value, dict):
        raise error(f"Token {what} is not a JSON object")
    return value


def decode_token(encoded: str) -> Token:
    """
    Decode a compact token without verifying it.

    Raises a ``DecodeError`` subclass on any structural problem; a ``Token``
    is only returned when every segment decoded cleanly.
    """
    parts = encoded.split(".")
    if len(parts) != 3:
        raise MalformedToken(f"Token must have 3 segments, got {len(parts)}")
    header_b64, payload_b64, signature_b64 = parts
    # Unsigned (emulator) tokens carry an empty signature segment.
    if not header_b64 or not payload_b64:
        raise MalformedToken("Token header and payload segments must be non-empty")

    raw_header = _b64decode(header_b64)
    raw_payload = _b64decode(payload_b64)

    try:
        header = TokenHeader.model_validate(_load_json_object(raw_header, InvalidHeader, "header"))
    except ValidationError as e:
        raise InvalidHeader("Token header is missing required fields") from e

    # Parsed twice: once into the typed critical claims, once losslessly.
    all_claims = _load_json_object(raw_payload, InvalidClaims, "payload")
    try:
        critical_claims = TokenClaims.model_validate(all_claims)
    except ValidationError as e:
        raise InvalidClaims("Token payload is missing or has malformed critical claims") from e

    signature = _b64decode(signature_b64, InvalidSignatureEncoding)

    return Token(
        header=header,
        critical_claims=critical_claims,
        all_claims=all_claims,
        signing_input=f"{header_b64}.{payload_b64}",
        signature=signature,
    )


def _encode_segment(value: TokenHeader | TokenClaims | Mapping[str, Any]) -> str:
    if isinstance(value, TokenHeader):
        value = value.to_header()
    elif isinstance(value, TokenClaims):
        value = value.to_payload()
    try:
        text = json.dumps(dict(value), separators=(",", ":"), default=_json_default)
    except (TypeError, ValueError) as e:
        raise EncodeError("Token segment is not JSON serializable") from e
    return base64url_encode(text.encode("utf-8")).decode("ascii")


def encode_token(
    header: TokenHeader | Mapping[str, Any],
    claims: TokenClaims | Mapping[str, Any],
    signer: Signer,
) -> str:
    """
    Build a signed compact token.

    Used to mint tokens in tests and to round-trip issued session cookies;
    the ``signer`` decides which private key (or fixture key) signs it.
    """
    header_b64 = _encode_segment(header)
    payload_b64 = _encode_segment(claims)
    try:
        signature_b64 = signer.sign(header_b64, payload_b64)
    except SignError:
        raise
    except Exception as e:
        logger.warning("Token signer failed: %s", type(e).__name__)
        raise SignError("Failed to sign token") from e
    return f"{header_b64}.{payload_b64}.{signature_b64}"
