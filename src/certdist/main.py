"""
Application entry point: the `certdist` command.

Composition root: loads configuration, creates concrete adapters, injects
them into the pipelines and starts either the HTTP server or the client's
polling loop.

This is the ONLY place where concrete adapters are instantiated for a run.
Everything else depends on Protocol interfaces.

Subcommands:
  certdist server <config.yaml>     serve certificates over HTTP (uvicorn)
  certdist client <config.yaml>     fetch, install and renew certificates
  certdist keygen                   print a fresh age key pair
  certdist config server|client     print an example configuration
"""

from __future__ import annotations

import argparse
import logging
import sys
from collections.abc import Callable, Sequence
from functools import partial

import structlog
import uvicorn
from pydantic import ValidationError

from certdist import __version__
from certdist.adapters.age_crypto import AgeBundleDecryptor, AgeBundlePackager, generate_key_pair
from certdist.adapters.commands import ShellCommandRunner
from certdist.adapters.http_client import HttpCertificateFetcher
from certdist.asgi import create_app
from certdist.config import ClientSettings, ConfigurationError, ServerSettings, example_config
from certdist.domain.models import CycleSummary
from certdist.pipeline import run_sync_cycle, sync_certificate
from certdist.result import Result
from certdist.scheduler import create_scheduler, run_cycle_logged


def configure_structlog(log_level: str = "INFO", json_logs: bool = False) -> None:
    """
    Configure structlog once for the whole process.

    Console output is colored and human-readable; json_logs switches to one
    JSON object per line for log shippers.
    """
    renderer = (
        structlog.processors.JSONRenderer() if json_logs else structlog.dev.ConsoleRenderer()
    )
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.StackInfoRenderer(),
            structlog.dev.set_exc_info,
            structlog.processors.TimeStamper(fmt="iso"),
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(
            getattr(logging, log_level.upper(), logging.INFO)
        ),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )


def _fatal(error: Exception) -> int:
    print(f"FATAL: Configuration error — {error}", file=sys.stderr)  # noqa: T201
    return 1


# ─────────────────────── Server ───────────────────────


def run_server(config_path: str) -> int:
    """Validate the server configuration and serve until interrupted."""
    try:
        settings = ServerSettings.from_yaml(config_path)
    except (ConfigurationError, ValidationError) as e:
        return _fatal(e)

    configure_structlog(settings.log_level, settings.json_logs)
    log = structlog.get_logger()
    log.info(
        "app.starting",
        mode="server",
        version=__version__,
        listen_address=settings.server.listen_address,
        port=settings.server.port,
        directories=[str(d) for d in settings.server.certificate_directories],
        authorized_keys=len(settings.public_age_keys),
    )

    app = create_app(
        certificate_directories=settings.server.certificate_directories,
        allowed_keys=settings.public_age_keys,
        packager=AgeBundlePackager(),
    )
    uvicorn.run(
        app,
        host=settings.server.listen_address,
        port=settings.server.port,
        log_level=settings.log_level.lower(),
    )
    log.info("app.shutdown", mode="server")
    return 0


# ─────────────────────── Client ───────────────────────


def build_cycle(settings: ClientSettings) -> Callable[[], Result[CycleSummary]]:
    """Wire the client adapters into a zero-argument sync cycle."""
    sync = partial(
        sync_certificate,
        public_key=settings.age_key.public_key,
        fetcher=HttpCertificateFetcher(
            settings.connection.server,
            timeout=settings.http_timeout_seconds,
        ),
        decryptor=AgeBundleDecryptor(settings.age_key.private_key),
        runner=ShellCommandRunner(),
    )
    return partial(run_sync_cycle, settings.targets, sync)


def run_client(config_path: str) -> int:
    """
    Validate the client configuration and sync certificates.

    With interval_hours == 0 a single cycle runs and the exit code tells
    whether every domain succeeded. Otherwise the scheduler polls until a
    signal stops it.
    """
    try:
        settings = ClientSettings.from_yaml(config_path)
    except (ConfigurationError, ValidationError) as e:
        return _fatal(e)

    configure_structlog(settings.log_level, settings.json_logs)
    log = structlog.get_logger()
    log.info(
        "app.starting",
        mode="client",
        version=__version__,
        server=settings.connection.server,
        domains=[target.domain for target in settings.targets],
        interval_hours=settings.interval_hours,
    )

    cycle_fn = build_cycle(settings)

    if settings.interval_hours == 0:
        result = run_cycle_logged(cycle_fn)
        return 0 if result.is_success() and result.value().failed == 0 else 1

    scheduler = create_scheduler(cycle_fn, interval_hours=settings.interval_hours)
    log.info("app.scheduler_starting", interval_hours=settings.interval_hours)

    try:
        scheduler.start()
    except KeyboardInterrupt:
        log.info("app.shutdown", reason="signal received")
    except SystemExit:
        log.info("app.shutdown", reason="signal received")
        raise
    return 0


# ─────────────────────── Utilities ───────────────────────


def run_keygen() -> int:
    pair = generate_key_pair()
    print(f"AGE_PRIVATE_KEY={pair.private_key}")  # noqa: T201
    print(f"AGE_PUBLIC_KEY={pair.public_key}")  # noqa: T201
    return 0


def run_config(kind: str) -> int:
    print(example_config(kind), end="")  # noqa: T201
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="certdist",
        description="Distribute TLS certificates encrypted with age.",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    commands = parser.add_subparsers(dest="command", required=True)

    server = commands.add_parser("server", help="serve certificates to authorized clients")
    server.add_argument("config", help="path to the server YAML configuration")

    client = commands.add_parser("client", help="fetch and install certificates")
    client.add_argument("config", help="path to the client YAML configuration")

    commands.add_parser("keygen", help="generate an age key pair")

    config = commands.add_parser("config", help="print an example configuration")
    config.add_argument("kind", choices=["server", "client"])

    return parser


def main(argv: Sequence[str] | None = None) -> int:
    """Parse the command line and dispatch to a subcommand."""
    args = build_parser().parse_args(argv)

    match args.command:
        case "server":
            return run_server(args.config)
        case "client":
            return run_client(args.config)
        case "keygen":
            return run_keygen()
        case "config":
            return run_config(args.kind)
    return 2  # pragma: no cover


if __name__ == "__main__":
    sys.exit(main())
