"""Verifier configuration. One config per purpose (ID tokens, session cookies)."""

from __future__ import annotations

import os
from dataclasses import dataclass

ID_TOKEN_ISSUER_PREFIX = "https://securetoken.google.com/"
ID_TOKEN_KEY_URI = (
    "https://www.googleapis.com/robot/v1/metadata/x509/securetoken@system.gserviceaccount.com"
)

SESSION_COOKIE_ISSUER_PREFIX = "https://session.firebase.google.com/"
SESSION_COOKIE_KEY_URI = "https://www.googleapis.com/identitytoolkit/v3/relyingparty/publicKeys"

DEFAULT_CLOCK_SKEW_SECONDS = 10

PURPOSE_ID_TOKEN = "id_token"
PURPOSE_SESSION_COOKIE = "session_cookie"


def _getenv_int(key: str, default: int) -> int:
    raw = os.environ.get(key)
    if raw is None:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def project_id_from_environ() -> str:
    """
    Resolve the project id from the environment.

    ``FIREBASE_PROJECT_ID`` wins over ``GOOGLE_CLOUD_PROJECT``.
    """
    for key in ("FIREBASE_PROJECT_ID", "GOOGLE_CLOUD_PROJECT"):
        value = _strip_or_none(os.environ.get(key))
        if value:
            return value
    raise ValueError("FIREBASE_PROJECT_ID or GOOGLE_CLOUD_PROJECT must be set")


@dataclass(frozen=True)
class VerifierConfig:
    """
    What a verifier expects from a token.

    Required:
        project_id: Firebase / GCP project id; the expected audience.

    Per purpose:
        issuer_prefix: Expected issuer is ``issuer_prefix + project_id``.
        key_uri: Endpoint publishing the key id -> PEM map.

    Optional:
        clock_skew_seconds: Tolerance for ``iat`` slightly in the future
            (default 10).
        auth_time_skew_seconds: Tolerance for ``auth_time`` in the future.
            Default 0: ``auth_time > now`` is rejected outright.
    """

    project_id: str
    issuer_prefix: str
    key_uri: str
    clock_skew_seconds: int = DEFAULT_CLOCK_SKEW_SECONDS
    auth_time_skew_seconds: int = 0

    @property
    def expected_audience(self) -> str:
        return self.project_id

    @property
    def issuer(self) -> str:
        return f"{self.issuer_prefix}{self.project_id}"

    @classmethod
    def for_id_tokens(cls, project_id: str, **kwargs: int) -> VerifierConfig:
        return cls(
            project_id=project_id,
            issuer_prefix=ID_TOKEN_ISSUER_PREFIX,
            key_uri=ID_TOKEN_KEY_URI,
            **kwargs,
        )

    @classmethod
    def for_session_cookies(cls, project_id: str, **kwargs: int) -> VerifierConfig:
        return cls(
            project_id=project_id,
            issuer_prefix=SESSION_COOKIE_ISSUER_PREFIX,
            key_uri=SESSION_COOKIE_KEY_URI,
            **kwargs,
        )

    @classmethod
    def from_environ(cls, purpose: str = PURPOSE_ID_TOKEN) -> VerifierConfig:
        project_id = project_id_from_environ()
        skew = {
            "clock_skew_seconds": _getenv_int("CLOCK_SKEW_SECONDS", DEFAULT_CLOCK_SKEW_SECONDS),
            "auth_time_skew_seconds": _getenv_int("AUTH_TIME_SKEW_SECONDS", 0),
        }
        if purpose == PURPOSE_ID_TOKEN:
            return cls.for_id_tokens(project_id, **skew)
        if purpose == PURPOSE_SESSION_COOKIE:
            return cls.for_session_cookies(project_id, **skew)
        raise ValueError(f"Unknown verifier purpose: {purpose!r}")


def _strip_or_none(s: str | None) -> str | None:
    if s is None:
        return None
    t = s.strip()
    return t if t else None
