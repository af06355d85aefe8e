"""
RS256 signature engine and PEM key handling.

The identity platform signs every token with RS256 (RSASSA-PKCS1-v1_5 over a
SHA-256 digest). Public keys are published as PEM X.509 certificates; plain
PEM public keys are accepted too.
"""

from __future__ import annotations

import datetime as dt
import json
import logging

from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from cryptography.x509.oid import NameOID
from jwt.algorithms import RSAAlgorithm
from jwt.utils import base64url_encode

logger = logging.getLogger(__name__)

RS256 = "RS256"

_rs256 = RSAAlgorithm(RSAAlgorithm.SHA256)


class KeyFormatError(Exception):
    """Raised when key material (or a key-set document) cannot be parsed."""


class SignatureEngineError(Exception):
    """Raised for malformed verification input, as opposed to a bad signature."""


class PublicKey:
    """An RSA public key able to check RS256 signatures."""

    def __init__(self, key: rsa.RSAPublicKey) -> None:
        self._key = key

    @classmethod
    def from_pem(cls, pem: str | bytes) -> PublicKey:
        data = pem.encode("utf-8") if isinstance(pem, str) else pem
        try:
            if b"-----BEGIN CERTIFICATE-----" in data:
                key = x509.load_pem_x509_certificate(data).public_key()
            else:
                key = serialization.load_pem_public_key(data)
        except ValueError as e:
            raise KeyFormatError("Not a PEM certificate or public key") from e
        if not isinstance(key, rsa.RSAPublicKey):
            raise KeyFormatError(f"Expected an RSA key, got {type(key).__name__}")
        return cls(key)

    @property
    def key(self) -> rsa.RSAPublicKey:
        return self._key

    def to_pem(self) -> str:
        return self._key.public_bytes(
            serialization.Encoding.PEM,
            serialization.PublicFormat.SubjectPublicKeyInfo,
        ).decode("ascii")

    def verify(self, signing_input: str | bytes, signature: bytes) -> bool:
        """
        Check ``signature`` over ``signing_input``.

        Returns False when the signature does not match. Raises
        ``SignatureEngineError`` when the input itself is unusable.
        """
        if isinstance(signing_input, str):
            try:
                signing_input = signing_input.encode("ascii")
            except UnicodeEncodeError as e:
                raise SignatureEngineError("Signing input must be ASCII text") from e
        if not isinstance(signing_input, bytes):
            raise SignatureEngineError("Signing input must be text or bytes")
        if not isinstance(signature, bytes) or not signature:
            raise SignatureEngineError("Signature must be non-empty bytes")
        return _rs256.verify(signing_input, self._key, signature)

    def __repr__(self) -> str:
        return f"PublicKey(bits={self._key.key_size})"


class RsaSigner:
    """RS256 ``Signer`` back-end over an RSA private key."""

    def __init__(self, private_key: rsa.RSAPrivateKey) -> None:
        self._key = private_key

    @classmethod
    def from_pem(cls, pem: str | bytes, password: bytes | None = None) -> RsaSigner:
        data = pem.encode("utf-8") if isinstance(pem, str) else pem
        try:
            key = serialization.load_pem_private_key(data, password=password)
        except (TypeError, ValueError) as e:
            raise KeyFormatError("Not a PEM private key") from e
        if not isinstance(key, rsa.RSAPrivateKey):
            raise KeyFormatError(f"Expected an RSA private key, got {type(key).__name__}")
        return cls(key)

    def public_key(self) -> PublicKey:
        return PublicKey(self._key.public_key())

    def sign(self, header_b64: str, payload_b64: str) -> str:
        signing_input = f"{header_b64}.{payload_b64}".encode("ascii")
        signature = _rs256.sign(signing_input, self._key)
        return base64url_encode(signature).decode("ascii")


def parse_public_keys(data: bytes) -> dict[str, PublicKey]:
    """
    Parse a key-source document: a JSON object of key id -> PEM text.
    """
    try:
        raw = json.loads(data)
    except (UnicodeDecodeError, ValueError) as e:
        raise KeyFormatError("Key set is not valid JSON") from e
    if not isinstance(raw, dict):
        raise KeyFormatError("Key set must be a JSON object")

    keys: dict[str, PublicKey] = {}
    for kid, pem in raw.items():
        if not isinstance(pem, str):
            raise KeyFormatError(f"Key {kid!r} is not PEM text")
        keys[kid] = PublicKey.from_pem(pem)
    logger.debug("Parsed %d public keys", len(keys))
    return keys


def generate_test_certificate(common_name: str = "Firebase test") -> tuple[str, RsaSigner]:
    """
    Create a throwaway self-signed certificate for tests.

    Returns ``(certificate_pem, signer)``; the certificate is valid for one day.
    """
    private_key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
    name = x509.Name(
        [
            x509.NameAttribute(NameOID.COUNTRY_NAME, "JP"),
            x509.NameAttribute(NameOID.ORGANIZATION_NAME, "Firebase"),
            x509.NameAttribute(NameOID.COMMON_NAME, common_name),
        ]
    )
    now = dt.datetime.now(dt.timezone.utc)
    cert = (
        x509.CertificateBuilder()
        .subject_name(name)
        .issuer_name(name)
        .public_key(private_key.public_key())
        .serial_number(x509.random_serial_number())
        .not_valid_before(now)
        .not_valid_after(now + dt.timedelta(days=1))
        .sign(private_key, hashes.SHA256())
    )
    pem = cert.public_bytes(serialization.Encoding.PEM).decode("ascii")
    return pem, RsaSigner(private_key)
