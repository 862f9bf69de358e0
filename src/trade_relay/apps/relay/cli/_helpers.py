"""Shared helpers for the relay CLI commands."""

import logging

import typer

from trade_relay.apps.relay.config import RelayConfig, load_relay_config
from trade_relay.apps.relay.protocols import SessionFactory, UpstreamSession
from trade_relay.clients.deriv.session import DerivSession
from trade_relay.core.config import ConfigError


def configure_logging(*, verbose: bool) -> None:
    """Configure root logging, at DEBUG level when ``verbose`` is set."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )


def load_config_or_exit(**overrides: object) -> RelayConfig:
    """Load the relay configuration and apply CLI overrides.

    Abort with exit code 1 if the settings cannot be loaded.

    Args:
        overrides: Option values; ``None`` means the option was not given.

    Returns:
        Relay configuration with overrides applied.

    """
    try:
        return load_relay_config().with_overrides(**overrides)
    except ConfigError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1) from exc


def build_session_factory(config: RelayConfig) -> SessionFactory:
    """Return a factory opening real Deriv sessions for ``config``."""

    def factory() -> UpstreamSession:
        return DerivSession(config.upstream_url, open_timeout=config.open_timeout_seconds)

    return factory
