"""
Configuration: typed, validated server and client settings.

Uses pydantic-settings to:
  - Load a YAML file (passed on the command line) as init values
  - Let environment variables fill anything the file leaves out
  - Validate types, keys and directories before anything starts

Only the two roots (ServerSettings, ClientSettings) are BaseSettings
instances. Sections are plain BaseModel classes, so with
env_nested_delimiter="__" the variable CERTDIST_SERVER__PORT maps to
server.port.

Every configuration error surfaces at startup, never in the middle of a
request or polling cycle.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Literal

import structlog
import yaml
from pydantic import BaseModel, Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict
from pyrage import x25519

from certdist.domain.models import CertificateTarget

log = structlog.get_logger()


class ConfigurationError(Exception):
    """The configuration file could not be read or is not a YAML mapping."""


LogLevel = Literal["CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG"]


def _upper_log_level(value: Any) -> Any:
    return value.strip().upper() if isinstance(value, str) else value


def _read_yaml(path: Path) -> dict[str, Any]:
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8"))
    except (OSError, yaml.YAMLError) as e:
        raise ConfigurationError(f"Cannot load configuration file {path}: {e}") from e
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigurationError(f"Configuration file {path} must contain a mapping")
    return data


# ─────────────────────── Server ───────────────────────


class ServerDetails(BaseModel):
    """HTTP listener and the directories certificates are served from."""

    port: int = Field(ge=1, le=65535, description="TCP port to listen on")
    listen_address: str = Field(default="127.0.0.1", description="Interface to bind")
    certificate_directories: list[Path] = Field(
        min_length=1,
        description="Directories holding one certificate set each (not scanned recursively)",
    )

    @field_validator("listen_address")
    @classmethod
    def default_empty_address(cls, value: str) -> str:
        return value.strip() or "127.0.0.1"

    @field_validator("certificate_directories")
    @classmethod
    def directories_exist(cls, value: list[Path]) -> list[Path]:
        """Reject directories that do not exist at startup."""
        for directory in value:
            if not directory.exists():
                raise ValueError(f"configured certificate directory does not exist: {directory}")
        return value


class ServerSettings(BaseSettings):
    """
    Root server settings.

    Load order (highest priority first):
      1. YAML configuration file
      2. Environment variables (CERTDIST_ prefix)
      3. Default values
    """

    model_config = SettingsConfigDict(
        env_prefix="CERTDIST_",
        env_nested_delimiter="__",
        extra="ignore",
    )

    server: ServerDetails
    public_age_keys: list[str] = Field(
        min_length=1,
        description="age recipients (age1...) allowed to request certificates",
    )
    log_level: LogLevel = Field(default="INFO")
    json_logs: bool = Field(default=False)

    normalize_log_level = field_validator("log_level", mode="before")(_upper_log_level)

    @field_validator("public_age_keys")
    @classmethod
    def keys_are_recipients(cls, value: list[str]) -> list[str]:
        keys = [key.strip() for key in value]
        for key in keys:
            try:
                x25519.Recipient.from_str(key)
            except Exception as e:
                raise ValueError(f"invalid public_age_key configured: {key}") from e
        return keys

    @classmethod
    def from_yaml(cls, path: Path | str) -> ServerSettings:
        return cls(**_read_yaml(Path(path)))


# ─────────────────────── Client ───────────────────────


class ConnectionSettings(BaseModel):
    """Where the certdist server lives."""

    server: str = Field(min_length=1, description="Base URL of the certdist server")

    @field_validator("server")
    @classmethod
    def normalize_url(cls, value: str) -> str:
        """
        Default to https:// when no scheme is given and drop trailing slashes.

        Plain http:// is accepted with a warning; the payload is encrypted
        but request metadata is not.
        """
        url = value.strip()
        if url.startswith("http://"):
            log.warning("config.insecure_connection", server=url)
        elif not url.startswith("https://"):
            url = f"https://{url}"
            log.info("config.assuming_https", server=url)
        return url.rstrip("/")


class AgeKeySettings(BaseModel):
    """
    The client's age key pair.

    public_key may be omitted; it is derived from private_key. When given it
    must belong to private_key.
    """

    private_key: str = Field(min_length=1)
    public_key: str = Field(default="")

    @model_validator(mode="after")
    def derive_public_key(self) -> AgeKeySettings:
        try:
            identity = x25519.Identity.from_str(self.private_key.strip())
        except Exception as e:
            raise ValueError("invalid age_key.private_key") from e
        derived = str(identity.to_public())
        if self.public_key and self.public_key.strip() != derived:
            raise ValueError("age_key.public_key does not correspond to age_key.private_key")
        self.public_key = derived
        return self


class CertificateSettings(BaseModel):
    """One domain the client keeps in sync."""

    domain: str = Field(min_length=1)
    directory: Path
    renew_commands: list[str] = Field(default_factory=list)

    def to_target(self) -> CertificateTarget:
        return CertificateTarget(
            domain=self.domain,
            directory=self.directory,
            renew_commands=tuple(self.renew_commands),
        )


class ClientSettings(BaseSettings):
    """
    Root client settings.

    interval_hours=0 runs a single pass and exits; anything higher polls
    every that many hours.
    """

    model_config = SettingsConfigDict(
        env_prefix="CERTDIST_",
        env_nested_delimiter="__",
        extra="ignore",
    )

    connection: ConnectionSettings
    age_key: AgeKeySettings
    certificate: list[CertificateSettings] = Field(min_length=1)
    interval_hours: int = Field(default=0, ge=0)
    http_timeout_seconds: int = Field(default=60, ge=1)
    log_level: LogLevel = Field(default="INFO")
    json_logs: bool = Field(default=False)

    normalize_log_level = field_validator("log_level", mode="before")(_upper_log_level)

    @model_validator(mode="before")
    @classmethod
    def accept_interval_key(cls, data: Any) -> Any:
        """Older configuration files call the polling interval `interval`."""
        if isinstance(data, dict) and "interval" in data and "interval_hours" not in data:
            data = {**data, "interval_hours": data["interval"]}
            del data["interval"]
        return data

    @property
    def targets(self) -> list[CertificateTarget]:
        return [certificate.to_target() for certificate in self.certificate]

    @classmethod
    def from_yaml(cls, path: Path | str) -> ClientSettings:
        return cls(**_read_yaml(Path(path)))


# ─────────────────────── Examples ───────────────────────

EXAMPLE_SERVER_CONFIG: dict[str, Any] = {
    "server": {
        "port": 8080,
        "listen_address": "127.0.0.1",
        "certificate_directories": ["/etc/letsencrypt/live/example.com"],
    },
    "public_age_keys": ["age1publickey"],
}

EXAMPLE_CLIENT_CONFIG: dict[str, Any] = {
    "connection": {"server": "https://certs.example.com:8080"},
    "age_key": {"private_key": "AGE-SECRET-KEY-1..."},
    "certificate": [
        {
            "domain": "example.com",
            "directory": "/etc/ssl/example.com",
            "renew_commands": ["systemctl reload nginx"],
        }
    ],
    "interval_hours": 12,
}


def example_config(kind: str) -> str:
    """YAML text of an example server or client configuration."""
    examples = {"server": EXAMPLE_SERVER_CONFIG, "client": EXAMPLE_CLIENT_CONFIG}
    if kind not in examples:
        raise ConfigurationError(f"Unknown configuration type: {kind}")
    return yaml.safe_dump(examples[kind], sort_keys=False)
