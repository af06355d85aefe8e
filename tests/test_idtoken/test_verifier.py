"""Tests for the live and emulated token verifiers."""

import json
import time

import pytest
from jwt.utils import base64url_encode

from firebase_verify.idtoken.config import (
    ID_TOKEN_KEY_URI,
    SESSION_COOKIE_ISSUER_PREFIX,
    SESSION_COOKIE_KEY_URI,
    VerifierConfig,
)
from firebase_verify.idtoken.fetch import TransportError
from firebase_verify.idtoken import verifier as verifier_module
from firebase_verify.idtoken.verifier import (
    KIND_CLAIMS,
    KIND_CRYPTO,
    KIND_INFRASTRUCTURE,
    KIND_MALFORMED,
    EmulatedTokenVerifier,
    Expired,
    FailedGettingKeys,
    FailedParsing,
    InvalidAudience,
    InvalidIssuer,
    InvalidSignature,
    InvalidSignatureAlgorithm,
    InvalidSignatureKey,
    IssuedInFuture,
    LiveTokenVerifier,
    MissingSubject,
    id_token_verifier,
    session_cookie_verifier,
)
from tests.helpers.token_factory import DAY, KID, PROJECT_ID, StubKeySource, key_set, make_claims, make_token


async def _verifier(source, **config_kwargs) -> LiveTokenVerifier:
    return await LiveTokenVerifier.create(VerifierConfig.for_id_tokens(PROJECT_ID, **config_kwargs), source)


@pytest.mark.asyncio
async def test_valid_token(signer, key_source):
    verifier = await _verifier(key_source)
    token = await verifier.verify(make_token(signer))
    assert token.subject == "user123"
    assert token.critical_claims.aud == PROJECT_ID
    assert key_source.uris == [ID_TOKEN_KEY_URI]


@pytest.mark.asyncio
async def test_valid_token_keeps_all_claims(signer, key_source):
    verifier = await _verifier(key_source)
    claims = make_claims(email="u@example.com", admin=True)
    token = await verifier.verify(make_token(signer, claims))
    assert token.all_claims == claims


@pytest.mark.asyncio
async def test_wrong_key_under_same_kid(signer, other_cert_and_signer):
    other_pem, _ = other_cert_and_signer
    verifier = await _verifier(StubKeySource(key_set(**{KID: other_pem})))
    with pytest.raises(InvalidSignature) as exc_info:
        await verifier.verify(make_token(signer))
    assert exc_info.value.kind == KIND_CRYPTO


@pytest.mark.asyncio
async def test_tampered_payload(signer, key_source):
    verifier = await _verifier(key_source)
    header, _, signature = make_token(signer).split(".")
    _, forged_payload, _ = make_token(signer, make_claims(sub="admin")).split(".")
    with pytest.raises(InvalidSignature):
        await verifier.verify(f"{header}.{forged_payload}.{signature}")


@pytest.mark.asyncio
async def test_expired(signer, key_source):
    verifier = await _verifier(key_source)
    claims = make_claims(exp=int(time.time()) - DAY)
    with pytest.raises(Expired) as exc_info:
        await verifier.verify(make_token(signer, claims))
    assert exc_info.value.kind == KIND_CLAIMS


@pytest.mark.asyncio
async def test_issued_in_future(signer, key_source):
    verifier = await _verifier(key_source)
    now = int(time.time())
    with pytest.raises(IssuedInFuture):
        await verifier.verify(make_token(signer, make_claims(iat=now + DAY, exp=now + 2 * DAY)))


@pytest.mark.asyncio
async def test_auth_time_in_future(signer, key_source):
    verifier = await _verifier(key_source)
    with pytest.raises(IssuedInFuture):
        await verifier.verify(make_token(signer, make_claims(auth_time=int(time.time()) + DAY)))


@pytest.mark.asyncio
async def test_small_clock_skew_tolerated(signer, key_source):
    verifier = await _verifier(key_source, clock_skew_seconds=10)
    now = int(time.time())
    token = await verifier.verify(make_token(signer, make_claims(iat=now + 5)))
    assert token.subject == "user123"


@pytest.mark.asyncio
async def test_clock_skew_disabled(signer, key_source):
    verifier = await _verifier(key_source, clock_skew_seconds=0)
    with pytest.raises(IssuedInFuture):
        await verifier.verify(make_token(signer, make_claims(iat=int(time.time()) + 60)))


@pytest.mark.asyncio
async def test_invalid_audience(signer, key_source):
    verifier = await _verifier(key_source)
    with pytest.raises(InvalidAudience):
        await verifier.verify(make_token(signer, make_claims(aud="other_project")))


@pytest.mark.asyncio
async def test_invalid_issuer(signer, key_source):
    verifier = await _verifier(key_source)
    claims = make_claims(iss="https://securetoken.google.com/other_project")
    with pytest.raises(InvalidIssuer):
        await verifier.verify(make_token(signer, claims))


@pytest.mark.asyncio
async def test_missing_subject(signer, key_source):
    verifier = await _verifier(key_source)
    with pytest.raises(MissingSubject):
        await verifier.verify(make_token(signer, make_claims(sub="")))


@pytest.mark.asyncio
async def test_disallowed_algorithm(signer, key_source):
    verifier = await _verifier(key_source)
    with pytest.raises(InvalidSignatureAlgorithm):
        await verifier.verify(make_token(signer, alg="HS256"))


@pytest.mark.asyncio
async def test_unknown_kid(signer, key_source):
    verifier = await _verifier(key_source)
    with pytest.raises(InvalidSignatureKey):
        await verifier.verify(make_token(signer, kid="999"))


@pytest.mark.asyncio
async def test_missing_kid(signer, key_source):
    verifier = await _verifier(key_source)
    with pytest.raises(InvalidSignatureKey):
        await verifier.verify(make_token(signer, kid=None))


@pytest.mark.asyncio
async def test_malformed_token(key_source):
    verifier = await _verifier(key_source)
    with pytest.raises(FailedParsing) as exc_info:
        await verifier.verify("only.two")
    assert exc_info.value.kind == KIND_MALFORMED


@pytest.mark.asyncio
async def test_first_failing_check_wins(signer, key_source):
    verifier = await _verifier(key_source)
    claims = make_claims(exp=int(time.time()) - DAY, aud="other_project")
    with pytest.raises(InvalidSignatureAlgorithm):
        await verifier.verify(make_token(signer, claims, alg="RS512"))
    with pytest.raises(Expired):
        await verifier.verify(make_token(signer, claims))


@pytest.mark.asyncio
async def test_initial_key_fetch_failure():
    source = StubKeySource(b"", error=TransportError("down"))
    with pytest.raises(FailedGettingKeys) as exc_info:
        await _verifier(source)
    assert exc_info.value.kind == KIND_INFRASTRUCTURE


@pytest.mark.asyncio
async def test_key_refresh_failure(signer, cert_and_signer):
    source = StubKeySource(key_set(**{KID: cert_and_signer[0]}), max_age=0)
    verifier = await _verifier(source)
    source.error = TransportError("down")
    with pytest.raises(FailedGettingKeys):
        await verifier.verify(make_token(signer))


@pytest.mark.asyncio
async def test_keys_fetched_once_across_verifications(signer, key_source):
    verifier = await _verifier(key_source)
    for _ in range(5):
        await verifier.verify(make_token(signer))
    assert key_source.calls == 1


@pytest.mark.asyncio
async def test_session_cookie_verifier(signer, key_source):
    verifier = await session_cookie_verifier(PROJECT_ID, key_source)
    cookie = make_token(signer, make_claims(issuer_prefix=SESSION_COOKIE_ISSUER_PREFIX))
    token = await verifier.verify(cookie)
    assert token.critical_claims.iss == f"{SESSION_COOKIE_ISSUER_PREFIX}{PROJECT_ID}"
    assert key_source.uris == [SESSION_COOKIE_KEY_URI]


@pytest.mark.asyncio
async def test_session_cookie_verifier_rejects_id_token(signer, key_source):
    verifier = await session_cookie_verifier(PROJECT_ID, key_source)
    with pytest.raises(InvalidIssuer):
        await verifier.verify(make_token(signer))


@pytest.mark.asyncio
async def test_id_token_verifier_factory(signer, key_source):
    verifier = await id_token_verifier(PROJECT_ID, key_source, clock_skew_seconds=0)
    assert isinstance(verifier, LiveTokenVerifier)
    assert verifier.config.clock_skew_seconds == 0
    assert verifier.config.issuer == f"https://securetoken.google.com/{PROJECT_ID}"


@pytest.mark.asyncio
async def test_emulated_verifier_skips_checks(signer):
    verifier = await id_token_verifier(PROJECT_ID, emulated=True)
    assert isinstance(verifier, EmulatedTokenVerifier)
    claims = make_claims(exp=int(time.time()) - DAY, aud="someone_else")
    token = await verifier.verify(make_token(signer, claims, alg="none", kid=None))
    assert token.all_claims == claims


@pytest.mark.asyncio
async def test_emulated_verifier_rejects_malformed():
    verifier = EmulatedTokenVerifier(PROJECT_ID)
    with pytest.raises(FailedParsing):
        await verifier.verify("not-a-jwt")


def _unsigned(claims: dict) -> str:
    header, payload = (
        base64url_encode(json.dumps(part).encode("utf-8")).decode("ascii")
        for part in ({"alg": "none", "typ": "JWT"}, claims)
    )
    return f"{header}.{payload}."


@pytest.mark.asyncio
async def test_emulated_verifier_accepts_unsigned_token():
    claims = make_claims()
    async with EmulatedTokenVerifier(PROJECT_ID) as verifier:
        token = await verifier.verify(_unsigned(claims))
    assert token.subject == "user123"
    assert token.signature == b""
    assert token.all_claims == claims


@pytest.mark.asyncio
async def test_live_verifier_rejects_empty_signature(signer, key_source):
    verifier = await _verifier(key_source)
    header, payload, _ = make_token(signer).split(".")
    with pytest.raises(InvalidSignature):
        await verifier.verify(f"{header}.{payload}.")


@pytest.mark.asyncio
async def test_auth_time_gets_no_skew_by_default(signer, key_source):
    verifier = await _verifier(key_source, clock_skew_seconds=60)
    now = int(time.time())
    with pytest.raises(IssuedInFuture):
        await verifier.verify(make_token(signer, make_claims(auth_time=now + 30)))


@pytest.mark.asyncio
async def test_auth_time_skew_configurable(signer, key_source):
    verifier = await _verifier(key_source, auth_time_skew_seconds=60)
    now = int(time.time())
    token = await verifier.verify(make_token(signer, make_claims(auth_time=now + 30)))
    assert token.subject == "user123"


class _ClosableSource(StubKeySource):
    instances: list["_ClosableSource"] = []

    def __init__(self, data: bytes, error: Exception | None = None) -> None:
        super().__init__(data, error=error)
        self.closed = False
        _ClosableSource.instances.append(self)

    async def aclose(self) -> None:
        self.closed = True


@pytest.fixture
def default_source(monkeypatch, cert_and_signer):
    _ClosableSource.instances = []
    body = key_set(**{KID: cert_and_signer[0]})
    monkeypatch.setattr(verifier_module, "HttpKeySource", lambda: _ClosableSource(body))
    return _ClosableSource.instances


@pytest.mark.asyncio
async def test_factory_without_source_owns_and_closes_it(signer, default_source):
    async with await id_token_verifier(PROJECT_ID) as verifier:
        assert (await verifier.verify(make_token(signer))).subject == "user123"
        assert not default_source[0].closed
    assert len(default_source) == 1
    assert default_source[0].closed


@pytest.mark.asyncio
async def test_session_cookie_factory_without_source_closes_it(default_source):
    verifier = await session_cookie_verifier(PROJECT_ID)
    await verifier.aclose()
    assert default_source[0].closed
    assert default_source[0].uris == [SESSION_COOKIE_KEY_URI]


@pytest.mark.asyncio
async def test_supplied_source_is_not_closed(cert_and_signer):
    source = _ClosableSource(key_set(**{KID: cert_and_signer[0]}))
    async with await _verifier(source):
        pass
    assert not source.closed


@pytest.mark.asyncio
async def test_owned_source_closed_when_initial_fetch_fails(monkeypatch):
    created: list[_ClosableSource] = []

    def _failing() -> _ClosableSource:
        created.append(_ClosableSource(b"", error=TransportError("down")))
        return created[-1]

    monkeypatch.setattr(verifier_module, "HttpKeySource", _failing)
    with pytest.raises(FailedGettingKeys):
        await id_token_verifier(PROJECT_ID)
    assert created[0].closed
