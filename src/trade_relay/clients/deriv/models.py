"""Typed data models for Deriv WebSocket API responses.

Provide frozen dataclasses that insulate the relay from the untyped
dictionaries returned by the API. All monetary values use ``Decimal``
for precision.
"""

from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Any

from trade_relay.clients.deriv.exceptions import DerivAPIError

_ZERO = Decimal(0)


@dataclass(frozen=True)
class AccountInfo:
    """Account details returned by a successful ``authorize`` call.

    Args:
        login_id: Deriv login identifier (e.g. ``"CR1234567"``).
        balance: Current account balance.
        currency: Account currency code, empty for accounts without one.

    """

    login_id: str
    balance: Decimal
    currency: str

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> "AccountInfo":
        """Parse the ``authorize`` object of an authorize response."""
        return cls(
            login_id=str(payload.get("loginid", "")),
            balance=safe_decimal(payload.get("balance")),
            currency=str(payload.get("currency", "")),
        )


@dataclass(frozen=True)
class BuyReceipt:
    """Confirmation returned by a successful ``buy`` call.

    Args:
        contract_id: Identifier of the newly opened contract.
        buy_price: Price actually paid for the contract.
        transaction_id: Identifier of the purchase transaction.
        balance_after: Account balance after the purchase.

    """

    contract_id: int
    buy_price: Decimal
    transaction_id: int
    balance_after: Decimal

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> "BuyReceipt":
        """Parse the ``buy`` object of a buy response.

        Raises:
            DerivAPIError: If the payload carries no contract identifier or
                an identifier is not an integer.

        """
        contract_id = payload.get("contract_id")
        if contract_id is None:
            raise DerivAPIError(code="", message="Buy response without contract_id", msg_type="buy")
        return cls(
            contract_id=safe_int(contract_id, msg_type="buy"),
            buy_price=safe_decimal(payload.get("buy_price")),
            transaction_id=safe_int(payload.get("transaction_id"), msg_type="buy"),
            balance_after=safe_decimal(payload.get("balance_after")),
        )


@dataclass(frozen=True)
class ContractStatus:
    """One ``proposal_open_contract`` update for a subscribed contract.

    Args:
        contract_id: Identifier of the contract being tracked.
        is_sold: Whether the contract has been settled.
        buy_price: Price paid for the contract.
        sell_price: Settlement price, ``None`` until the contract is sold.
        subscription_id: Stream identifier to pass to ``forget``.

    """

    contract_id: int
    is_sold: bool
    buy_price: Decimal
    sell_price: Decimal | None
    subscription_id: str

    @classmethod
    def from_message(cls, message: dict[str, Any]) -> "ContractStatus":
        """Parse a full ``proposal_open_contract`` response message.

        The subscription identifier is read from the message's
        ``subscription`` block, falling back to the contract's own ``id``.
        """
        contract: dict[str, Any] = message.get("proposal_open_contract") or {}
        subscription: dict[str, Any] = message.get("subscription") or {}
        sell_price = contract.get("sell_price")
        return cls(
            contract_id=safe_int(contract.get("contract_id"), msg_type="proposal_open_contract"),
            is_sold=contract.get("is_sold") == 1,
            buy_price=safe_decimal(contract.get("buy_price")),
            sell_price=None if sell_price is None else safe_decimal(sell_price),
            subscription_id=str(subscription.get("id") or contract.get("id") or ""),
        )


def safe_decimal(value: Any) -> Decimal:
    """Convert a value to Decimal, returning zero for None/empty strings.

    Raise ``DerivAPIError`` for values that are present but cannot be
    parsed into a valid Decimal, rather than substituting zero for
    corrupt data.

    Args:
        value: Value to convert (string, float, int, or None).

    Returns:
        Decimal representation, or ``Decimal("0")`` for None/empty.

    Raises:
        DerivAPIError: If the value is non-empty but malformed.

    """
    if value is None or (isinstance(value, str) and value.strip() == ""):
        return _ZERO
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError, TypeError) as exc:
        msg = f"Cannot convert {value!r} to Decimal"
        raise DerivAPIError(code="", message=msg) from exc


def safe_int(value: Any, *, msg_type: str = "") -> int:
    """Convert an identifier to int, returning zero for None/empty strings.

    Raises:
        DerivAPIError: If the value is present but not an integer, tagged
            with ``msg_type`` so callers can tell which reply was corrupt.

    """
    if value is None or (isinstance(value, str) and value.strip() == ""):
        return 0
    try:
        return int(value)
    except (ValueError, TypeError) as exc:
        msg = f"Cannot convert {value!r} to int"
        raise DerivAPIError(code="", message=msg, msg_type=msg_type) from exc
