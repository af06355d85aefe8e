from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field


class TokenContextOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    uid: str
    email: str | None = None
    email_verified: bool = False
    sign_in_provider: str | None = None
    custom_claims: dict[str, Any] = Field(default_factory=dict)


class VerifyRequest(BaseModel):
    token: str = Field(min_length=1)
    kind: Literal["id_token", "session_cookie"] = "id_token"


class VerifyResult(BaseModel):
    valid: bool
    uid: str | None = None
    claims: dict[str, Any] | None = None
    error: str | None = None
    """Name of the failed check, e.g. ``Expired`` or ``InvalidAudience``."""
