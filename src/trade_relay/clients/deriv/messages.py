"""Builders for outbound Deriv WebSocket API requests.

Each function returns a plain dictionary ready to be JSON-encoded by
``DerivSession.send()``. Keeping them free of I/O lets the flows and the
tests share a single definition of the wire format.
"""

from decimal import Decimal
from typing import Any

STAKE_BASIS = "stake"
TICKS = "ticks"


def build_authorize(token: str) -> dict[str, Any]:
    """Build an ``authorize`` request for an API token."""
    return {"authorize": token}


def build_ticks_subscribe(symbol: str) -> dict[str, Any]:
    """Build a tick stream subscription for ``symbol``."""
    return {"ticks": symbol, "subscribe": 1}


def build_buy(
    *,
    amount: Decimal,
    contract_type: str,
    duration: int,
    symbol: str,
    currency: str,
    duration_unit: str,
) -> dict[str, Any]:
    """Build a ``buy`` request for a stake-based contract.

    The stake doubles as the maximum ``price`` Deriv may charge, so the
    purchase is rejected rather than filled above the requested amount.

    Args:
        amount: Stake to risk on the contract.
        contract_type: Deriv contract type (e.g. ``"CALL"`` or ``"PUT"``).
        duration: Contract length, in ``duration_unit`` units.
        symbol: Underlying instrument symbol (e.g. ``"R_100"``).
        currency: Account currency code.
        duration_unit: Deriv duration unit (``"t"`` for ticks).

    Returns:
        Request dictionary for the ``buy`` call.

    """
    stake = float(amount)
    return {
        "buy": 1,
        "price": stake,
        "parameters": {
            "amount": stake,
            "basis": STAKE_BASIS,
            "contract_type": contract_type,
            "currency": currency,
            "duration": duration,
            "duration_unit": duration_unit,
            "symbol": symbol,
        },
    }


def build_contract_subscribe(contract_id: int) -> dict[str, Any]:
    """Build a ``proposal_open_contract`` subscription for a bought contract."""
    return {"proposal_open_contract": 1, "contract_id": contract_id, "subscribe": 1}


def build_forget_all(stream_type: str = TICKS) -> dict[str, Any]:
    """Build a ``forget_all`` request cancelling every stream of one type."""
    return {"forget_all": stream_type}


def build_forget(subscription_id: str) -> dict[str, Any]:
    """Build a ``forget`` request cancelling a single subscription."""
    return {"forget": subscription_id}
