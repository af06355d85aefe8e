"""
Verify ID tokens and session cookies and return the decoded token.

Background for newcomers:
    A client sends us an ID token (or a session cookie minted from one). It is
    a JWT signed by the identity platform. Before we trust **anything** in it
    the live verifier checks, in this order, stopping at the first failure:

    1. The **header**: the algorithm must be RS256.
    2. The **claims**: not expired (``exp``), not issued in the future
       (``iat`` / ``auth_time``), audience (``aud``) is our project, issuer
       (``iss``) is the platform's issuer for our project, subject (``sub``)
       is set.
    3. The **signature**: the key named by the header's ``kid`` must be in
       the published key set and must verify the signature.

    The local emulator does not sign tokens, so ``EmulatedTokenVerifier`` only
    decodes them.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime, timedelta, timezone
from typing import Protocol

from .cache import CacheError, HttpCache
from .config import VerifierConfig
from .crypto import RS256, PublicKey, SignatureEngineError, parse_public_keys
from .fetch import HttpKeySource, KeySource
from .jwt import DecodeError, Token, decode_token

logger = logging.getLogger(__name__)

KIND_MALFORMED = "malformed"
KIND_CLAIMS = "claims"
KIND_CRYPTO = "crypto"
KIND_INFRASTRUCTURE = "infrastructure"


class TokenVerificationError(Exception):
    """
    Raised when a token does not verify. Do not log the token.

    ``kind`` tells callers whether the token is bad (``malformed``,
    ``claims``, ``crypto``) or whether we could not check it
    (``infrastructure``).
    """

    kind = KIND_MALFORMED
    message = "Token verification failed"

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message or self.message)


class FailedParsing(TokenVerificationError):
    message = "Error happened while parsing the token"


class FailedGettingKeys(TokenVerificationError):
    kind = KIND_INFRASTRUCTURE
    message = "Error happened while fetching public keys"


class InvalidSignatureKey(TokenVerificationError):
    kind = KIND_CRYPTO
    message = "Invalid key for token's signature"


class InvalidSignature(TokenVerificationError):
    kind = KIND_CRYPTO
    message = "Invalid token's signature"


class InvalidSignatureAlgorithm(TokenVerificationError):
    kind = KIND_CRYPTO
    message = "Invalid token's signature algorithm"


class Expired(TokenVerificationError):
    kind = KIND_CLAIMS
    message = "Token is expired"


class IssuedInFuture(TokenVerificationError):
    kind = KIND_CLAIMS
    message = "Token was issued in the future"


class InvalidAudience(TokenVerificationError):
    kind = KIND_CLAIMS
    message = "Token has invalid audience"


class InvalidIssuer(TokenVerificationError):
    kind = KIND_CLAIMS
    message = "Token has invalid issuer"


class MissingSubject(TokenVerificationError):
    kind = KIND_CLAIMS
    message = "Token has empty subject"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _decode(encoded: str) -> Token:
    try:
        return decode_token(encoded)
    except DecodeError as e:
        logger.info("Token decode failed: %s", type(e).__name__)
        raise FailedParsing() from e


class TokenVerifier(Protocol):
    async def verify(self, token: str) -> Token: ...

    async def aclose(self) -> None: ...


class EmulatedTokenVerifier:
    """
    Verifier for the local auth emulator.

    The emulator is trusted by construction: tokens are decoded and returned
    without signature or claim checks.
    """

    def __init__(self, project_id: str) -> None:
        self.project_id = project_id

    async def verify(self, token: str) -> Token:
        return _decode(token)

    async def aclose(self) -> None:
        pass

    async def __aenter__(self) -> EmulatedTokenVerifier:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()


class LiveTokenVerifier:
    """
    Verifier for tokens issued by the live identity platform.

    Holds only its configuration and a handle to the shared key cache; every
    ``verify`` call is independent.

    When ``create`` is called without a key source the verifier builds and
    owns an ``HttpKeySource``; release it with ``aclose()`` or ``async with``.
    """

    def __init__(
        self,
        config: VerifierConfig,
        key_cache: HttpCache[dict[str, PublicKey]],
        clock: Callable[[], datetime] = _utcnow,
        owned_source: HttpKeySource | None = None,
    ) -> None:
        self._config = config
        self._key_cache = key_cache
        self._clock = clock
        self._owned_source = owned_source

    @classmethod
    async def create(
        cls,
        config: VerifierConfig,
        source: KeySource | None = None,
        clock: Callable[[], datetime] = _utcnow,
    ) -> LiveTokenVerifier:
        """Build the verifier and its key cache (one initial key fetch)."""
        owned_source: HttpKeySource | None = None
        if source is None:
            owned_source = source = HttpKeySource()
        try:
            key_cache = await HttpCache.create(source, config.key_uri, parse_public_keys)
        except CacheError as e:
            logger.warning("Initial key fetch failed uri=%s", config.key_uri)
            if owned_source is not None:
                await owned_source.aclose()
            raise FailedGettingKeys() from e
        return cls(config, key_cache, clock=clock, owned_source=owned_source)

    @property
    def config(self) -> VerifierConfig:
        return self._config

    @property
    def key_cache(self) -> HttpCache[dict[str, PublicKey]]:
        return self._key_cache

    async def aclose(self) -> None:
        """Close the key source if this verifier created it."""
        if self._owned_source is not None:
            await self._owned_source.aclose()
            self._owned_source = None

    async def __aenter__(self) -> LiveTokenVerifier:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    async def verify(self, token: str) -> Token:
        """
        Decode and verify ``token``; return the decoded token on success.

        Raises a ``TokenVerificationError`` subclass naming the failed check.
        """
        decoded = _decode(token)
        try:
            await self.verify_decoded(decoded)
        except TokenVerificationError as e:
            logger.info("Token rejected: %s", type(e).__name__)
            raise
        return decoded

    async def verify_decoded(self, token: Token) -> None:
        self._verify_header(token)
        self._verify_claims(token)
        await self._verify_signature(token)

    def _verify_header(self, token: Token) -> None:
        if token.header.alg != RS256:
            raise InvalidSignatureAlgorithm()

    def _verify_claims(self, token: Token) -> None:
        claims = token.critical_claims
        now = self._clock()
        latest_issue = now + timedelta(seconds=self._config.clock_skew_seconds)
        latest_auth = now + timedelta(seconds=self._config.auth_time_skew_seconds)

        if claims.exp <= now:
            raise Expired()
        if claims.iat > latest_issue:
            raise IssuedInFuture()
        if claims.auth_time > latest_auth:
            raise IssuedInFuture()
        if claims.aud != self._config.expected_audience:
            raise InvalidAudience()
        if claims.iss != self._config.issuer:
            raise InvalidIssuer()
        if not claims.sub:
            raise MissingSubject()

    async def _verify_signature(self, token: Token) -> None:
        try:
            keys = await self._key_cache.get()
        except CacheError as e:
            raise FailedGettingKeys() from e

        kid = token.header.kid
        key = keys.get(kid) if kid else None
        if key is None:
            raise InvalidSignatureKey()

        try:
            is_valid = key.verify(token.signing_input, token.signature)
        except SignatureEngineError as e:
            raise InvalidSignature() from e
        if not is_valid:
            raise InvalidSignature()


async def _build(
    config: VerifierConfig,
    source: KeySource | None,
    emulated: bool,
) -> TokenVerifier:
    if emulated:
        return EmulatedTokenVerifier(config.project_id)
    return await LiveTokenVerifier.create(config, source)


async def id_token_verifier(
    project_id: str,
    source: KeySource | None = None,
    *,
    emulated: bool = False,
    **config_kwargs: int,
) -> TokenVerifier:
    """Verifier for ID tokens (issuer ``https://securetoken.google.com/<project>``).

    Without ``source`` the verifier opens its own HTTP client; close it with
    ``await verifier.aclose()``.
    """
    return await _build(VerifierConfig.for_id_tokens(project_id, **config_kwargs), source, emulated)


async def session_cookie_verifier(
    project_id: str,
    source: KeySource | None = None,
    *,
    emulated: bool = False,
    **config_kwargs: int,
) -> TokenVerifier:
    """Verifier for session cookies (issuer ``https://session.firebase.google.com/<project>``)."""
    return await _build(VerifierConfig.for_session_cookies(project_id, **config_kwargs), source, emulated)
