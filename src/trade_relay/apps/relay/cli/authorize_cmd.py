"""CLI command for checking a Deriv API token from the terminal."""

import asyncio
from typing import Annotated

import typer

from trade_relay.apps.relay.cli._helpers import (
    build_session_factory,
    configure_logging,
    load_config_or_exit,
)
from trade_relay.apps.relay.flows import AuthenticationFlow
from trade_relay.clients.deriv.exceptions import DerivError


def authorize(
    token: Annotated[
        str, typer.Option(envvar="DERIV_API_TOKEN", help="Deriv API token to authorize")
    ],
    app_id: Annotated[int | None, typer.Option(help="Deriv application id")] = None,
    verbose: Annotated[  # noqa: FBT002
        bool, typer.Option("--verbose", "-v", help="Enable debug logging")
    ] = False,
) -> None:
    """Authorize a token against Deriv and print the account it belongs to.

    Run the same authentication exchange as ``POST /api/connect`` without
    starting the server.
    """
    configure_logging(verbose=verbose)
    config = load_config_or_exit(app_id=app_id)

    flow = AuthenticationFlow(
        build_session_factory(config), token, timeout=config.request_timeout_seconds
    )
    try:
        account = asyncio.run(flow.run())
    except DerivError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1) from exc

    typer.echo(f"Account: {account.login_id}")
    typer.echo(f"Balance: {account.balance} {account.currency}".rstrip())
