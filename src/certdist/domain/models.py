"""
Domain models: certificate files, directory indices and the wire request.

CertificateFile and DirectoryIndex are frozen dataclasses built fresh on every
scan; nothing here is cached or persisted. CertificateRequest is the JSON body
exchanged between client and server, so it is a pydantic model.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from pathlib import Path

from pydantic import BaseModel, Field, field_validator

CERTIFICATE_REQUEST_ENDPOINT = "/api/v1/certificate-request"
HEALTH_ENDPOINT = "/health"

# Serialized as 0001-01-01T00:00:00Z, the "no certificate yet" marker on the wire.
ZERO_TIME = datetime(1, 1, 1, tzinfo=UTC)


def is_zero_time(value: datetime | None) -> bool:
    """True for a missing timestamp or the zero timestamp."""
    return value is None or value == ZERO_TIME


class FileKind(Enum):
    CERTIFICATE = "Public Certificate"
    PRIVATE_KEY = "Private Key"
    UNKNOWN = "Unknown"


@dataclass(frozen=True, slots=True)
class CertificateFile:
    """
    One parsed PEM file.

    Only certificates carry domains and an expiration; private keys and other
    material in the same directory are identified by their path alone.
    """

    path: Path
    kind: FileKind
    domains: tuple[str, ...] = ()
    expiration: datetime | None = None


@dataclass(frozen=True, slots=True)
class DirectoryIndex:
    """The certificate files found in one directory, in scan order."""

    path: Path
    files: tuple[CertificateFile, ...] = field(default_factory=tuple)


@dataclass(frozen=True, slots=True)
class CertificateTarget:
    """A domain the client keeps in sync, where to put it and what to run after."""

    domain: str
    directory: Path
    renew_commands: tuple[str, ...] = ()


@dataclass(frozen=True, slots=True)
class CycleSummary:
    """Per-cycle tally of the client's domains."""

    installed: int = 0
    up_to_date: int = 0
    failed: int = 0


class SyncOutcome(Enum):
    INSTALLED = "installed"
    UP_TO_DATE = "up_to_date"


class CertificateRequest(BaseModel):
    """
    Body of POST /api/v1/certificate-request.

    `expiration` is the NotAfter of the certificate the client already holds,
    or the zero timestamp (or null) when it holds none.
    """

    domain: str = Field(min_length=1)
    age_public_key: str
    expiration: datetime | None = None

    @field_validator("expiration")
    @classmethod
    def assume_utc(cls, value: datetime | None) -> datetime | None:
        """Timestamps without an offset are taken as UTC so comparisons never mix naive and aware."""
        if value is not None and value.tzinfo is None:
            return value.replace(tzinfo=UTC)
        return value

    @property
    def has_known_expiration(self) -> bool:
        return not is_zero_time(self.expiration)
