"""CLI command for running the relay HTTP server."""

from typing import Annotated

import typer
import uvicorn

from trade_relay.apps.relay.api import create_app
from trade_relay.apps.relay.cli._helpers import configure_logging, load_config_or_exit


def serve(
    host: Annotated[str | None, typer.Option(help="Interface to bind (default from settings)")] = None,
    port: Annotated[int | None, typer.Option(help="Port to listen on (default from settings)")] = None,
    app_id: Annotated[int | None, typer.Option(help="Deriv application id")] = None,
    verbose: Annotated[  # noqa: FBT002
        bool, typer.Option("--verbose", "-v", help="Enable debug logging")
    ] = False,
) -> None:
    """Serve the relay page and API.

    Run a single uvicorn worker; relay sessions live in process memory
    and are lost on restart.
    """
    configure_logging(verbose=verbose)
    config = load_config_or_exit(host=host, port=port, app_id=app_id)

    typer.echo(f"Starting trade relay on http://{config.host}:{config.port} (app_id {config.app_id})")
    uvicorn.run(
        create_app(config),
        host=config.host,
        port=config.port,
        log_level="debug" if verbose else "info",
        workers=1,
    )
