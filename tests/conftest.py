"""
Shared test fixtures and helpers for the certdist test suite.

Certificates and keys are generated on the fly with cryptography, age key
pairs with pyrage, so the suite needs no fixture files on disk.
"""

from __future__ import annotations

from datetime import UTC, datetime, timedelta
from pathlib import Path
from typing import TypeVar

import pytest
from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.x509.oid import NameOID

from certdist.adapters.age_crypto import AgeKeyPair, generate_key_pair
from certdist.result import ErrorCode, FailureDescription, Result

T = TypeVar("T")

DEFAULT_NOT_AFTER = datetime(2030, 1, 1, tzinfo=UTC)


# ─────────────────────── Result assertions ───────────────────────


def assert_success(result: Result[T]) -> T:
    """Assert the Result is a Success and return its value."""
    assert result.is_success(), (
        f"Expected Success but got Failure({result.error().code.value}: {result.error().message!r})"
    )
    return result.value()


def assert_failure(result: Result[T], expected_code: ErrorCode | None = None) -> FailureDescription:
    """Assert the Result is a Failure, optionally of a given code, and return the error."""
    assert result.is_failure(), f"Expected Failure but got Success({result.value()!r})"
    error = result.error()
    if expected_code is not None:
        assert error.code == expected_code, (
            f"Expected error code {expected_code.value} but got {error.code.value}: {error.message!r}"
        )
    return error


# ─────────────────────── PEM material ───────────────────────


def make_private_key() -> ec.EllipticCurvePrivateKey:
    return ec.generate_private_key(ec.SECP256R1())


def private_key_pem(key: ec.EllipticCurvePrivateKey, traditional: bool = False) -> bytes:
    """PEM-encode a key as "PRIVATE KEY" (PKCS#8) or "EC PRIVATE KEY" (traditional)."""
    return key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=(
            serialization.PrivateFormat.TraditionalOpenSSL
            if traditional
            else serialization.PrivateFormat.PKCS8
        ),
        encryption_algorithm=serialization.NoEncryption(),
    )


def certificate_pem(
    domains: list[str],
    not_after: datetime = DEFAULT_NOT_AFTER,
    key: ec.EllipticCurvePrivateKey | None = None,
) -> bytes:
    """Self-signed certificate with the given SAN DNS names (none if empty)."""
    key = key or make_private_key()
    name = x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, domains[0] if domains else "test")])
    builder = (
        x509.CertificateBuilder()
        .subject_name(name)
        .issuer_name(name)
        .public_key(key.public_key())
        .serial_number(x509.random_serial_number())
        .not_valid_before(not_after - timedelta(days=90))
        .not_valid_after(not_after)
    )
    if domains:
        builder = builder.add_extension(
            x509.SubjectAlternativeName([x509.DNSName(d) for d in domains]),
            critical=False,
        )
    return builder.sign(key, hashes.SHA256()).public_bytes(serialization.Encoding.PEM)


def write_certificate_set(
    directory: Path,
    domains: list[str],
    not_after: datetime = DEFAULT_NOT_AFTER,
) -> Path:
    """
    Write a Let's Encrypt style set into directory.

    cert.pem sorts first, so it is the first matching file of the set.
    """
    directory.mkdir(parents=True, exist_ok=True)
    key = make_private_key()
    cert = certificate_pem(domains, not_after, key)
    (directory / "cert.pem").write_bytes(cert)
    (directory / "fullchain.pem").write_bytes(cert + certificate_pem(["intermediate.test"]))
    (directory / "privkey.pem").write_bytes(private_key_pem(key))
    return directory


# ─────────────────────── Fixtures ───────────────────────


@pytest.fixture()
def age_keys() -> AgeKeyPair:
    return generate_key_pair()


@pytest.fixture()
def certificate_dir(tmp_path: Path) -> Path:
    """A certificate set for example.com and www.example.com."""
    return write_certificate_set(tmp_path / "store" / "example.com", ["example.com", "www.example.com"])
