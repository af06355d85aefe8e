"""
Pytest fixtures for the test suite.

Generating RSA keys is slow, so the signing certificates are created once per
session. Tests get fresh key sources and verifiers.
"""
from __future__ import annotations

import pytest

from firebase_verify.idtoken.crypto import RsaSigner, generate_test_certificate
from tests.helpers.token_factory import KID, StubKeySource, key_set


@pytest.fixture(scope="session")
def cert_and_signer() -> tuple[str, RsaSigner]:
    """Certificate PEM and the signer holding its private key."""
    return generate_test_certificate()


@pytest.fixture(scope="session")
def other_cert_and_signer() -> tuple[str, RsaSigner]:
    """An unrelated certificate, for wrong-key cases."""
    return generate_test_certificate(common_name="Unrelated")


@pytest.fixture
def signer(cert_and_signer) -> RsaSigner:
    return cert_and_signer[1]


@pytest.fixture
def key_source(cert_and_signer) -> StubKeySource:
    """Key source publishing the test certificate under ``KID``."""
    cert_pem, _ = cert_and_signer
    return StubKeySource(key_set(**{KID: cert_pem}))
