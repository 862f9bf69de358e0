"""CLI entry point for the trade relay.

Provide access to the Typer app and main entry point. All command logic
lives in the cli subpackage.
"""

from trade_relay.apps.relay.cli import app

__all__ = ["app", "main"]


def main() -> None:
    """Run the trade relay CLI application."""
    app()


if __name__ == "__main__":
    main()
