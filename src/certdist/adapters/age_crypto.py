"""
age adapter: X25519 key handling, bundle packaging and decryption via pyrage.

Implements the BundlePackager and BundleDecryptor ports.

Recipients are textual age public keys ("age1..."), identities are age secret
keys ("AGE-SECRET-KEY-1..."). Ciphertext produced here can be decrypted with
the stock `age` CLI and vice versa.

All pyrage exceptions are converted into Result failures at this boundary.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass

import structlog
from pyrage import decrypt, encrypt, x25519

from certdist.adapters.bundle_archive import build_archive
from certdist.domain.models import CertificateFile
from certdist.result import ErrorCode, Result

log = structlog.get_logger()


@dataclass(frozen=True, slots=True)
class AgeKeyPair:
    private_key: str
    public_key: str


def generate_key_pair() -> AgeKeyPair:
    """Generate a fresh X25519 identity and its recipient."""
    identity = x25519.Identity.generate()
    return AgeKeyPair(private_key=str(identity), public_key=str(identity.to_public()))


def parse_recipient(public_key: str) -> Result[x25519.Recipient]:
    return Result.from_computation(
        lambda: x25519.Recipient.from_str(public_key.strip()),
        ErrorCode.RECIPIENT_ERROR,
        "Failed to parse age public key",
    )


def parse_identity(private_key: str) -> Result[x25519.Identity]:
    return Result.from_computation(
        lambda: x25519.Identity.from_str(private_key.strip()),
        ErrorCode.DECRYPTION_ERROR,
        "Failed to parse age private key",
    )


def public_key_for(private_key: str) -> Result[str]:
    """Derive the textual recipient belonging to an identity."""
    return parse_identity(private_key).map(lambda identity: str(identity.to_public()))


class AgeBundlePackager:
    """
    Zip certificate files and encrypt the archive for one age recipient.

    Implements the BundlePackager port. Steps fail independently:
    ARCHIVE_ERROR → RECIPIENT_ERROR → ENCRYPTION_ERROR.
    """

    def package(self, files: Sequence[CertificateFile], recipient: str) -> Result[bytes]:
        return (
            Result.from_computation(
                lambda: build_archive(files),
                ErrorCode.ARCHIVE_ERROR,
                "Failed to build certificate archive",
            )
            .flat_map(
                lambda archive: parse_recipient(recipient).flat_map(
                    lambda parsed: self._encrypt(archive, parsed)
                )
            )
            .peek(lambda ciphertext: log.debug(
                "packager.encrypted", files=len(files), size_bytes=len(ciphertext)
            ))
        )

    @staticmethod
    def _encrypt(archive: bytes, recipient: x25519.Recipient) -> Result[bytes]:
        return Result.from_computation(
            lambda: encrypt(archive, [recipient]),
            ErrorCode.ENCRYPTION_ERROR,
            "Failed to encrypt certificate archive",
        )


class AgeBundleDecryptor:
    """
    Decrypt bundles addressed to this client's identity.

    Implements the BundleDecryptor port.
    """

    def __init__(self, private_key: str) -> None:
        self._private_key = private_key

    def decrypt(self, ciphertext: bytes) -> Result[bytes]:
        return parse_identity(self._private_key).flat_map(
            lambda identity: Result.from_computation(
                lambda: decrypt(ciphertext, [identity]),
                ErrorCode.DECRYPTION_ERROR,
                "Failed to decrypt certificate bundle",
            )
        )
