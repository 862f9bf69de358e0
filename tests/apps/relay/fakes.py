"""Scripted stand-ins for upstream Deriv sessions.

A ``ScriptedSession`` replays a fixed list of upstream replies through the
same ``expect()`` contract as ``DerivSession``, recording every request
sent. Once the script runs out it either stays silent forever (the default,
for timeout tests) or reports a dropped connection.
"""

from __future__ import annotations

import asyncio
from collections import deque
from typing import TYPE_CHECKING, Any

from trade_relay.clients.deriv.exceptions import DerivConnectionError
from trade_relay.clients.deriv.session import raise_for_error

if TYPE_CHECKING:
    from collections.abc import Iterable


class ScriptedSession:
    """Upstream session replaying canned replies."""

    def __init__(
        self,
        replies: Iterable[dict[str, Any]] = (),
        *,
        open_error: Exception | None = None,
        open_delay: float = 0.0,
        drop_when_exhausted: bool = False,
    ) -> None:
        self.replies: deque[dict[str, Any]] = deque(replies)
        self.sent: list[dict[str, Any]] = []
        self.opened = False
        self.closed = False
        self._open_error = open_error
        self._open_delay = open_delay
        self._drop_when_exhausted = drop_when_exhausted

    async def open(self) -> None:
        if self._open_delay:
            await asyncio.sleep(self._open_delay)
        if self._open_error is not None:
            raise self._open_error
        self.opened = True

    async def send(self, message: dict[str, Any]) -> int:
        if self.closed or not self.opened:
            raise DerivConnectionError("Session is not open")
        self.sent.append(message)
        return len(self.sent)

    async def expect(self, *msg_types: str) -> dict[str, Any]:
        while self.replies:
            message = self.replies.popleft()
            raise_for_error(message)
            if message.get("msg_type") in msg_types:
                return message
        if self._drop_when_exhausted:
            raise DerivConnectionError("Connection lost while receiving")
        await asyncio.Event().wait()
        raise AssertionError("unreachable")

    async def close(self) -> None:
        self.closed = True

    @property
    def sent_kinds(self) -> list[str]:
        """Return the first key of every request, in sending order."""
        return [next(iter(message)) for message in self.sent]


class ScriptedFactory:
    """Session factory handing out prepared sessions in order."""

    def __init__(self, *sessions: ScriptedSession) -> None:
        self.sessions = list(sessions)
        self.created: list[ScriptedSession] = []

    def __call__(self) -> ScriptedSession:
        if len(self.created) >= len(self.sessions):
            raise AssertionError("No more scripted sessions")
        session = self.sessions[len(self.created)]
        self.created.append(session)
        return session


def authorize_reply(login_id: str = "CR1", balance: str = "100.00") -> dict[str, Any]:
    """Build a successful authorize reply."""
    return {
        "msg_type": "authorize",
        "authorize": {"loginid": login_id, "balance": balance, "currency": "USD"},
    }


def buy_reply(contract_id: int = 42, buy_price: float = 10) -> dict[str, Any]:
    """Build a successful buy reply."""
    return {
        "msg_type": "buy",
        "buy": {
            "contract_id": contract_id,
            "buy_price": buy_price,
            "transaction_id": 1001,
            "balance_after": 90,
        },
    }


def tick_update(quote: float = 1234.56) -> dict[str, Any]:
    """Build a tick stream update."""
    return {"msg_type": "tick", "tick": {"symbol": "R_100", "quote": quote}}


def contract_update(
    contract_id: int = 42,
    *,
    buy_price: float = 10,
    sell_price: float | None = None,
    subscription_id: str = "sub-42",
) -> dict[str, Any]:
    """Build a proposal_open_contract update; a sell price marks it sold."""
    contract: dict[str, Any] = {
        "contract_id": contract_id,
        "buy_price": buy_price,
        "is_sold": 0 if sell_price is None else 1,
        "id": subscription_id,
    }
    if sell_price is not None:
        contract["sell_price"] = sell_price
    return {
        "msg_type": "proposal_open_contract",
        "proposal_open_contract": contract,
        "subscription": {"id": subscription_id},
    }


def error_reply(msg_type: str, message: str, code: str = "") -> dict[str, Any]:
    """Build an upstream error reply."""
    error = {"message": message}
    if code:
        error["code"] = code
    return {"msg_type": msg_type, "error": error}
