"""Tests for the relay CLI commands."""

from unittest.mock import patch

from typer.testing import CliRunner

from tests.apps.relay.fakes import ScriptedFactory, ScriptedSession, authorize_reply, error_reply
from trade_relay.apps.relay.cli import app
from trade_relay.apps.relay.cli._helpers import build_session_factory
from trade_relay.apps.relay.config import RelayConfig
from trade_relay.clients.deriv.session import DerivSession

_FACTORY_TARGET = "trade_relay.apps.relay.cli.authorize_cmd.build_session_factory"


class TestAuthorizeCommand:
    """Tests for the authorize command."""

    def test_prints_account(self) -> None:
        """Print the account and balance of a valid token."""
        session = ScriptedSession([authorize_reply("CR1", "100.00")])
        runner = CliRunner()

        with patch(_FACTORY_TARGET, return_value=ScriptedFactory(session)):
            result = runner.invoke(app, ["authorize", "--token", "T1"])

        assert result.exit_code == 0
        assert "Account: CR1" in result.output
        assert "Balance: 100.00 USD" in result.output
        assert session.sent == [{"authorize": "T1"}]

    def test_token_from_environment(self) -> None:
        """Read the token from DERIV_API_TOKEN."""
        session = ScriptedSession([authorize_reply("VRTC1", "5")])
        runner = CliRunner()

        with patch(_FACTORY_TARGET, return_value=ScriptedFactory(session)):
            result = runner.invoke(app, ["authorize"], env={"DERIV_API_TOKEN": "T-env"})

        assert result.exit_code == 0
        assert session.sent == [{"authorize": "T-env"}]

    def test_rejected_token_exits_with_error(self) -> None:
        """Exit 1 with the upstream message."""
        session = ScriptedSession([error_reply("authorize", "The token is invalid.", "InvalidToken")])
        runner = CliRunner()

        with patch(_FACTORY_TARGET, return_value=ScriptedFactory(session)):
            result = runner.invoke(app, ["authorize", "--token", "bad"])

        assert result.exit_code == 1
        assert "The token is invalid." in result.output

    def test_app_id_override(self) -> None:
        """Pass --app-id through to the session factory config."""
        session = ScriptedSession([authorize_reply()])
        runner = CliRunner()

        with patch(_FACTORY_TARGET, return_value=ScriptedFactory(session)) as mock_factory:
            runner.invoke(app, ["authorize", "--token", "T1", "--app-id", "1089"])

        config = mock_factory.call_args.args[0]
        assert config.app_id == 1089


class TestServeCommand:
    """Tests for the serve command."""

    def test_runs_uvicorn_with_overrides(self) -> None:
        """Start uvicorn on the requested host and port."""
        runner = CliRunner()

        with patch("trade_relay.apps.relay.cli.serve_cmd.uvicorn.run") as mock_run:
            result = runner.invoke(app, ["serve", "--host", "0.0.0.0", "--port", "8080"])

        assert result.exit_code == 0
        assert "Starting trade relay on http://0.0.0.0:8080" in result.output
        mock_run.assert_called_once()
        kwargs = mock_run.call_args.kwargs
        assert kwargs["host"] == "0.0.0.0"
        assert kwargs["port"] == 8080
        assert kwargs["workers"] == 1
        assert kwargs["log_level"] == "info"

    def test_defaults_from_settings(self) -> None:
        """Use the bundled settings when no options are given."""
        runner = CliRunner()

        with patch("trade_relay.apps.relay.cli.serve_cmd.uvicorn.run") as mock_run:
            result = runner.invoke(app, ["serve", "--verbose"])

        assert result.exit_code == 0
        kwargs = mock_run.call_args.kwargs
        assert kwargs["host"] == "127.0.0.1"
        assert kwargs["port"] == 3000
        assert kwargs["log_level"] == "debug"


def test_session_factory_builds_deriv_sessions() -> None:
    """Open real sessions against the configured upstream URL."""
    factory = build_session_factory(RelayConfig(app_id=1089))

    session = factory()

    assert isinstance(session, DerivSession)
    assert session.url.endswith("app_id=1089")
    assert session.is_open is False
