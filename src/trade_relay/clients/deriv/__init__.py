"""Deriv WebSocket API client."""

from trade_relay.clients.deriv.exceptions import (
    DerivAPIError,
    DerivConnectionError,
    DerivError,
    DerivTimeoutError,
)
from trade_relay.clients.deriv.models import AccountInfo, BuyReceipt, ContractStatus
from trade_relay.clients.deriv.session import DerivSession, build_ws_url

__all__ = [
    "AccountInfo",
    "BuyReceipt",
    "ContractStatus",
    "DerivAPIError",
    "DerivConnectionError",
    "DerivError",
    "DerivSession",
    "DerivTimeoutError",
    "build_ws_url",
]
