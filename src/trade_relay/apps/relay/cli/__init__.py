"""CLI subpackage for the trade relay.

Create the Typer application and register all command modules.
"""

import typer

from trade_relay.apps.relay.cli.authorize_cmd import authorize
from trade_relay.apps.relay.cli.serve_cmd import serve

app = typer.Typer(help="Relay between a web page and the Deriv trading API")

app.command()(serve)
app.command()(authorize)

__all__ = ["app"]
