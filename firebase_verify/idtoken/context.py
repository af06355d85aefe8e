"""Serializable context produced after verifying an ID token or session cookie."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from .jwt import Token

# Claims set by the platform; anything else was added as a custom claim.
RESERVED_CLAIMS = frozenset({
    "acr",
    "amr",
    "at_hash",
    "aud",
    "auth_time",
    "azp",
    "cnf",
    "c_hash",
    "exp",
    "firebase",
    "iat",
    "iss",
    "jti",
    "nbf",
    "nonce",
    "sub",
    "user_id",
    "email",
    "email_verified",
    "name",
    "picture",
    "phone_number",
})


@dataclass(frozen=True)
class TokenContext:
    """
    Small, serializable view of a verified token for the rest of the application.
    """

    uid: str
    """The ``sub`` claim: the user's uid."""

    auth_time: datetime
    expires_at: datetime

    email: str | None = None
    email_verified: bool = False

    sign_in_provider: str | None = None
    """From ``firebase.sign_in_provider``, e.g. ``password`` or ``google.com``."""

    custom_claims: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, object]:
        """Return a JSON-serializable dict."""
        return {
            "uid": self.uid,
            "auth_time": int(self.auth_time.timestamp()),
            "expires_at": int(self.expires_at.timestamp()),
            "email": self.email,
            "email_verified": self.email_verified,
            "sign_in_provider": self.sign_in_provider,
            "custom_claims": dict(self.custom_claims),
        }


def extract_context(token: Token) -> TokenContext:
    """
    Build a ``TokenContext`` from a verified token.

    Claim mapping notes:

    * **sub** — the uid. ``user_id`` carries the same value and is ignored.
    * **email** / **email_verified** — present only for providers that supply
      an email address.
    * **firebase** — platform metadata; only ``sign_in_provider`` is surfaced.
    * Every claim not in ``RESERVED_CLAIMS`` is a custom claim set through the
      admin API.
    """
    claims = token.all_claims

    email = claims.get("email")
    if email is not None:
        email = str(email)

    sign_in_provider: str | None = None
    firebase = claims.get("firebase")
    if isinstance(firebase, dict) and firebase.get("sign_in_provider"):
        sign_in_provider = str(firebase["sign_in_provider"])

    custom = {k: v for k, v in claims.items() if k not in RESERVED_CLAIMS}

    return TokenContext(
        uid=token.critical_claims.sub,
        auth_time=token.critical_claims.auth_time,
        expires_at=token.critical_claims.exp,
        email=email,
        email_verified=claims.get("email_verified") is True,
        sign_in_provider=sign_in_provider,
        custom_claims=custom,
    )
