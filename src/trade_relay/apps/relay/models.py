"""Domain models for relay trades and their final results.

Define the validated ``TradeRequest`` handed to the trade flow and the
immutable ``ContractResult`` snapshot exposed by the polling endpoint.
"""

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from enum import Enum

ZERO = Decimal(0)
_CENTS = Decimal("0.01")


class ContractOutcome(Enum):
    """Terminal outcome of a monitored contract, labelled for display."""

    WIN = "GANANCIA"
    LOSS = "PÉRDIDA"
    TIMEOUT = "TIEMPO AGOTADO"
    ERROR = "ERROR"


@dataclass(frozen=True)
class TradeRequest:
    """A trade as requested by the web client.

    Args:
        amount: Stake to risk, in the configured currency.
        duration: Contract length in ticks.
        contract_type: Deriv contract type (e.g. ``"CALL"``).

    """

    amount: Decimal
    duration: int
    contract_type: str


def classify_profit(profit: Decimal) -> ContractOutcome:
    """Classify a settled contract; a zero profit counts as a win."""
    return ContractOutcome.WIN if profit >= ZERO else ContractOutcome.LOSS


@dataclass(frozen=True)
class ContractResult:
    """Terminal snapshot of one trade, built exactly once per trade.

    ``profit`` and ``sell_price`` are only set for settled contracts
    (``WIN``/``LOSS``); ``detail`` explains ``TIMEOUT`` and ``ERROR``.

    Args:
        account_id: Login id of the account that placed the trade.
        contract_type: Deriv contract type of the trade.
        contract_id: Identifier of the bought contract.
        buy_price: Price paid for the contract.
        outcome: Terminal outcome.
        currency: Currency of the prices.
        sell_price: Settlement price, when settled.
        profit: ``sell_price - buy_price``, when settled.
        detail: Extra explanation for non-settled outcomes.

    """

    account_id: str
    contract_type: str
    contract_id: int
    buy_price: Decimal
    outcome: ContractOutcome
    currency: str = "USD"
    sell_price: Decimal | None = None
    profit: Decimal | None = None
    detail: str = ""

    @classmethod
    def settled(
        cls,
        *,
        account_id: str,
        contract_type: str,
        contract_id: int,
        buy_price: Decimal,
        sell_price: Decimal,
        currency: str = "USD",
    ) -> "ContractResult":
        """Build the result of a contract reported sold."""
        profit = sell_price - buy_price
        return cls(
            account_id=account_id,
            contract_type=contract_type,
            contract_id=contract_id,
            buy_price=buy_price,
            outcome=classify_profit(profit),
            currency=currency,
            sell_price=sell_price,
            profit=profit,
        )

    def format(self) -> str:
        """Render the result as the text shown by the web page."""
        lines = [
            "RESULTADO FINAL:",
            "",
            "---",
            f"Cuenta: {self.account_id}",
            f"Tipo: {self.contract_type}",
            f"Monto: ${_money(self.buy_price)}",
            f"Resultado: {self.outcome.value}",
        ]
        if self.profit is not None:
            lines.append(f"Ganancia/Pérdida Neta: {_money(self.profit)} {self.currency}")
        if self.detail:
            lines.append(f"Detalle: {self.detail}")
        return "\n".join(lines)


def _money(value: Decimal) -> str:
    return str(value.quantize(_CENTS, rounding=ROUND_HALF_UP))
