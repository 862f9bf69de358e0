"""Configuration dataclass for the trade relay service.

Hold every tuneable parameter of the relay: upstream endpoint and app id,
the fixed instrument and currency used for trades, and the timeouts that
bound each upstream exchange. Immutable after construction so request
handlers cannot mutate it while flows are running.
"""

from dataclasses import dataclass, replace
from typing import Any

from trade_relay.clients.deriv.session import DEFAULT_WS_URL, build_ws_url
from trade_relay.core.config import ConfigError, ConfigLoader, get_config

_DEFAULT_APP_ID = 116785
_DEFAULT_SYMBOL = "R_100"
_DEFAULT_CURRENCY = "USD"
_DEFAULT_DURATION_UNIT = "t"
_DEFAULT_OPEN_TIMEOUT = 10.0
_DEFAULT_REQUEST_TIMEOUT = 30.0
_DEFAULT_CONTRACT_TIMEOUT = 300.0
_DEFAULT_MAX_SESSIONS = 16
_DEFAULT_HOST = "127.0.0.1"
_DEFAULT_PORT = 3000


@dataclass(frozen=True)
class RelayConfig:
    """Immutable configuration for a relay process.

    Attributes:
        app_id: Deriv application identifier sent on every connection.
        ws_url: Deriv WebSocket endpoint without the ``app_id`` parameter.
        symbol: Instrument traded and streamed by every trade.
        currency: Currency of every buy order.
        duration_unit: Deriv duration unit for buy orders (``"t"`` = ticks).
        open_timeout_seconds: WebSocket handshake timeout.
        request_timeout_seconds: Upper bound for the synchronous part of a
            flow (everything before the HTTP response is sent).
        contract_timeout_seconds: Upper bound for waiting on a bought
            contract to be reported sold.
        max_sessions: Maximum number of session contexts kept in memory.
        host: Interface the HTTP server binds to.
        port: Port the HTTP server listens on.

    """

    app_id: int = _DEFAULT_APP_ID
    ws_url: str = DEFAULT_WS_URL
    symbol: str = _DEFAULT_SYMBOL
    currency: str = _DEFAULT_CURRENCY
    duration_unit: str = _DEFAULT_DURATION_UNIT
    open_timeout_seconds: float = _DEFAULT_OPEN_TIMEOUT
    request_timeout_seconds: float = _DEFAULT_REQUEST_TIMEOUT
    contract_timeout_seconds: float = _DEFAULT_CONTRACT_TIMEOUT
    max_sessions: int = _DEFAULT_MAX_SESSIONS
    host: str = _DEFAULT_HOST
    port: int = _DEFAULT_PORT

    @property
    def upstream_url(self) -> str:
        """Return the full WebSocket URL including the ``app_id`` parameter."""
        return build_ws_url(self.ws_url, self.app_id)

    def with_overrides(self, **overrides: Any) -> "RelayConfig":
        """Return a copy with the non-``None`` overrides applied.

        Used by the CLI, whose options default to ``None`` when the user
        did not pass them.
        """
        changes = {key: value for key, value in overrides.items() if value is not None}
        return replace(self, **changes)


def load_relay_config(loader: ConfigLoader | None = None) -> RelayConfig:
    """Build a ``RelayConfig`` from the YAML settings.

    Args:
        loader: Config loader to read from. Defaults to the global singleton.

    Returns:
        Populated relay configuration.

    Raises:
        ConfigError: If a value cannot be converted to its expected type.

    """
    loader = loader or get_config()
    deriv = loader.get_section("deriv")
    relay = loader.get_section("relay")
    server = loader.get_section("server")
    return RelayConfig(
        app_id=_as_int("deriv.app_id", deriv.get("app_id", _DEFAULT_APP_ID)),
        ws_url=str(deriv.get("ws_url", DEFAULT_WS_URL)),
        symbol=str(deriv.get("symbol", _DEFAULT_SYMBOL)),
        currency=str(deriv.get("currency", _DEFAULT_CURRENCY)),
        duration_unit=str(deriv.get("duration_unit", _DEFAULT_DURATION_UNIT)),
        open_timeout_seconds=_as_float(
            "deriv.open_timeout_seconds",
            deriv.get("open_timeout_seconds", _DEFAULT_OPEN_TIMEOUT),
        ),
        request_timeout_seconds=_as_float(
            "relay.request_timeout_seconds",
            relay.get("request_timeout_seconds", _DEFAULT_REQUEST_TIMEOUT),
        ),
        contract_timeout_seconds=_as_float(
            "relay.contract_timeout_seconds",
            relay.get("contract_timeout_seconds", _DEFAULT_CONTRACT_TIMEOUT),
        ),
        max_sessions=_as_int("relay.max_sessions", relay.get("max_sessions", _DEFAULT_MAX_SESSIONS)),
        host=str(server.get("host", _DEFAULT_HOST)),
        port=_as_int("server.port", server.get("port", _DEFAULT_PORT)),
    )


def _as_int(key: str, value: Any) -> int:
    try:
        return int(value)
    except (TypeError, ValueError) as exc:
        msg = f"{key} must be an integer, got {value!r}"
        raise ConfigError(msg) from exc


def _as_float(key: str, value: Any) -> float:
    try:
        return float(value)
    except (TypeError, ValueError) as exc:
        msg = f"{key} must be a number, got {value!r}"
        raise ConfigError(msg) from exc
