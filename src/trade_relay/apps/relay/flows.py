"""State machines driving the authenticate and trade exchanges with Deriv.

Each flow owns exactly one upstream session for its whole life and closes
it on every terminal path. Transitions are validated against a fixed
table so a flow can never, for example, report a contract sold before the
buy was confirmed.

Authentication::

    CONNECTING -> AUTH_SENT -> AUTHORIZED
                           \\-> FAILED

Trade::

    CONNECTING -> AUTH_SENT -> TRADING -> BUY_SENT -> MONITORING -> SOLD
                                                               \\-> TIMED_OUT
    (any non-terminal state) -> FAILED

The trade flow is split in two phases. ``start()`` runs until the buy is
confirmed, which is when the HTTP caller gets its answer. ``monitor()``
then waits for settlement in the background and always returns a terminal
``ContractResult``.
"""

from __future__ import annotations

import asyncio
import logging
from enum import Enum
from typing import TYPE_CHECKING, Any, ClassVar, TypeVar

from trade_relay.apps.relay.exceptions import InvalidTransitionError, RelayError
from trade_relay.apps.relay.models import ZERO, ContractOutcome, ContractResult
from trade_relay.clients.deriv.exceptions import DerivConnectionError, DerivError, DerivTimeoutError
from trade_relay.clients.deriv.messages import (
    build_authorize,
    build_buy,
    build_contract_subscribe,
    build_forget,
    build_forget_all,
    build_ticks_subscribe,
)
from trade_relay.clients.deriv.models import AccountInfo, BuyReceipt, ContractStatus

if TYPE_CHECKING:
    from collections.abc import Awaitable

    from trade_relay.apps.relay.config import RelayConfig
    from trade_relay.apps.relay.models import TradeRequest
    from trade_relay.apps.relay.protocols import SessionFactory, UpstreamSession

logger = logging.getLogger(__name__)

_CONTRACT_STREAM = "proposal_open_contract"
_T = TypeVar("_T")


class FlowState(Enum):
    """Lifecycle states shared by the authentication and trade flows."""

    CONNECTING = "connecting"
    AUTH_SENT = "auth_sent"
    AUTHORIZED = "authorized"
    TRADING = "trading"
    BUY_SENT = "buy_sent"
    MONITORING = "monitoring"
    SOLD = "sold"
    TIMED_OUT = "timed_out"
    FAILED = "failed"


TERMINAL_STATES = frozenset(
    {FlowState.AUTHORIZED, FlowState.SOLD, FlowState.TIMED_OUT, FlowState.FAILED}
)


class _Flow:
    """Common state handling for flows over a single upstream session."""

    TRANSITIONS: ClassVar[dict[FlowState, frozenset[FlowState]]] = {}

    def __init__(self, session_factory: SessionFactory) -> None:
        self._session_factory = session_factory
        self.state = FlowState.CONNECTING

    def _advance(self, target: FlowState) -> None:
        """Move to ``target``, rejecting transitions missing from the table.

        Raises:
            InvalidTransitionError: If ``target`` is not reachable.

        """
        if target not in self.TRANSITIONS.get(self.state, frozenset()):
            raise InvalidTransitionError(type(self).__name__, self.state.value, target.value)
        logger.debug("%s: %s -> %s", type(self).__name__, self.state.value, target.value)
        self.state = target

    def _fail(self) -> None:
        if self.state not in TERMINAL_STATES:
            self._advance(FlowState.FAILED)


async def _bounded(awaitable: Awaitable[_T], timeout: float, what: str) -> _T:
    """Await ``awaitable`` for at most ``timeout`` seconds.

    Raises:
        DerivTimeoutError: If the deadline passes first.

    """
    try:
        return await asyncio.wait_for(awaitable, timeout)
    except TimeoutError as exc:
        msg = f"No {what} reply within {timeout:g}s"
        raise DerivTimeoutError(msg) from exc


class AuthenticationFlow(_Flow):
    """Authorize an API token and report the account it belongs to.

    Args:
        session_factory: Creates the upstream session used by this flow.
        token: Deriv API token supplied by the caller.
        timeout: Seconds allowed for the whole exchange.

    """

    TRANSITIONS: ClassVar[dict[FlowState, frozenset[FlowState]]] = {
        FlowState.CONNECTING: frozenset({FlowState.AUTH_SENT, FlowState.FAILED}),
        FlowState.AUTH_SENT: frozenset({FlowState.AUTHORIZED, FlowState.FAILED}),
    }

    def __init__(self, session_factory: SessionFactory, token: str, *, timeout: float) -> None:
        """Initialize the flow without touching the network.

        Args:
            session_factory: Creates the upstream session used by this flow.
            token: Deriv API token supplied by the caller.
            timeout: Seconds allowed for the whole exchange.

        """
        super().__init__(session_factory)
        self._token = token
        self._timeout = timeout

    async def run(self) -> AccountInfo:
        """Open a session, authorize the token and close the session.

        Returns:
            Account details reported by Deriv.

        Raises:
            DerivAPIError: If Deriv rejects the token.
            DerivConnectionError: If the connection fails.
            DerivTimeoutError: If Deriv does not answer in time.

        """
        session = self._session_factory()
        try:
            return await _bounded(self._authorize(session), self._timeout, "authorize")
        except Exception:
            self._fail()
            raise
        finally:
            await session.close()

    async def _authorize(self, session: UpstreamSession) -> AccountInfo:
        await session.open()
        await session.send(build_authorize(self._token))
        self._advance(FlowState.AUTH_SENT)
        logger.info("Authorization request sent")

        message = await session.expect("authorize")
        account = AccountInfo.from_payload(message.get("authorize") or {})
        self._advance(FlowState.AUTHORIZED)
        logger.info("Authorized account %s", account.login_id)
        return account


class TradeFlow(_Flow):
    """Buy one contract and follow it until Deriv reports it sold.

    Args:
        session_factory: Creates the upstream session used by this flow.
        token: API token stored at connect time, re-sent to authorize.
        account_id: Login id shown in the final result.
        request: Trade parameters from the caller.
        config: Relay configuration (symbol, currency, timeouts).

    """

    TRANSITIONS: ClassVar[dict[FlowState, frozenset[FlowState]]] = {
        FlowState.CONNECTING: frozenset({FlowState.AUTH_SENT, FlowState.FAILED}),
        FlowState.AUTH_SENT: frozenset({FlowState.TRADING, FlowState.FAILED}),
        FlowState.TRADING: frozenset({FlowState.BUY_SENT, FlowState.FAILED}),
        FlowState.BUY_SENT: frozenset({FlowState.MONITORING, FlowState.FAILED}),
        FlowState.MONITORING: frozenset(
            {FlowState.SOLD, FlowState.TIMED_OUT, FlowState.FAILED}
        ),
    }

    def __init__(
        self,
        session_factory: SessionFactory,
        *,
        token: str,
        account_id: str,
        request: TradeRequest,
        config: RelayConfig,
    ) -> None:
        """Initialize the flow without touching the network.

        Args:
            session_factory: Creates the upstream session used by this flow.
            token: API token stored at connect time.
            account_id: Login id shown in the final result.
            request: Trade parameters from the caller.
            config: Relay configuration.

        """
        super().__init__(session_factory)
        self._token = token
        self._account_id = account_id
        self._request = request
        self._config = config
        self._session: UpstreamSession | None = None
        self._subscription_id = ""
        self.receipt: BuyReceipt | None = None

    async def start(self) -> BuyReceipt:
        """Authorize, subscribe to ticks and buy the contract.

        Return only once Deriv has confirmed the purchase, leaving the
        session open and subscribed to the contract for ``monitor()``.
        On any failure the session is closed before the error propagates.

        Returns:
            The buy confirmation.

        Raises:
            DerivAPIError: If Deriv rejects the authorization or the buy.
            DerivConnectionError: If the connection fails.
            DerivTimeoutError: If Deriv does not confirm in time.

        """
        session = self._session_factory()
        self._session = session
        try:
            receipt = await _bounded(
                self._open_trade(session), self._config.request_timeout_seconds, "buy"
            )
        except BaseException:
            self._fail()
            await session.close()
            raise
        self.receipt = receipt
        return receipt

    async def _open_trade(self, session: UpstreamSession) -> BuyReceipt:
        request = self._request
        await session.open()
        await session.send(build_authorize(self._token))
        self._advance(FlowState.AUTH_SENT)
        logger.info("Re-authorizing for trade")

        await session.expect("authorize")
        self._advance(FlowState.TRADING)

        await session.send(build_ticks_subscribe(self._config.symbol))
        await session.send(
            build_buy(
                amount=request.amount,
                contract_type=request.contract_type,
                duration=request.duration,
                symbol=self._config.symbol,
                currency=self._config.currency,
                duration_unit=self._config.duration_unit,
            )
        )
        self._advance(FlowState.BUY_SENT)
        logger.info(
            "Buying %s for %s %s over %d ticks",
            request.contract_type,
            request.amount,
            self._config.currency,
            request.duration,
        )

        message = await session.expect("buy")
        receipt = BuyReceipt.from_payload(message.get("buy") or {})
        logger.info("Bought contract %d at %s", receipt.contract_id, receipt.buy_price)

        await session.send(build_contract_subscribe(receipt.contract_id))
        self._advance(FlowState.MONITORING)
        return receipt

    async def monitor(self) -> ContractResult:
        """Wait until the bought contract settles, then clean up.

        Ignore contract updates until one reports ``is_sold``. Give up
        after ``contract_timeout_seconds``. The session is closed on
        return and on cancellation.

        Returns:
            A terminal result: ``WIN``/``LOSS`` when sold, ``TIMEOUT`` when
            the deadline passed, ``ERROR`` when the upstream failed.

        Raises:
            RelayError: If called before ``start()`` succeeded.

        """
        session = self._session
        receipt = self.receipt
        if self.state is not FlowState.MONITORING or session is None or receipt is None:
            msg = f"Cannot monitor a trade in state {self.state.value}"
            raise RelayError(msg)

        timeout = self._config.contract_timeout_seconds
        try:
            try:
                status = await asyncio.wait_for(self._wait_until_sold(session), timeout)
            except TimeoutError:
                self._advance(FlowState.TIMED_OUT)
                logger.warning(
                    "Contract %d not settled after %gs, giving up", receipt.contract_id, timeout
                )
                await self._unsubscribe(session)
                return self.result(
                    ContractOutcome.TIMEOUT,
                    detail=f"Contrato {receipt.contract_id} sin cierre tras {timeout:g}s",
                )
            except DerivError as exc:
                self._advance(FlowState.FAILED)
                logger.warning("Monitoring of contract %d failed: %s", receipt.contract_id, exc)
                return self.result(ContractOutcome.ERROR, detail=str(exc))

            self._advance(FlowState.SOLD)
            buy_price = status.buy_price or receipt.buy_price
            result = ContractResult.settled(
                account_id=self._account_id,
                contract_type=self._request.contract_type,
                contract_id=receipt.contract_id,
                buy_price=buy_price,
                sell_price=status.sell_price if status.sell_price is not None else ZERO,
                currency=self._config.currency,
            )
            logger.info(
                "Contract %d settled: %s / %s",
                receipt.contract_id,
                result.outcome.value,
                result.profit,
            )
            await self._unsubscribe(session)
            return result
        finally:
            await session.close()

    def result(self, outcome: ContractOutcome, *, detail: str = "") -> ContractResult:
        """Build an unsettled terminal result for this trade."""
        receipt = self.receipt
        return ContractResult(
            account_id=self._account_id,
            contract_type=self._request.contract_type,
            contract_id=receipt.contract_id if receipt else 0,
            buy_price=receipt.buy_price if receipt else self._request.amount,
            outcome=outcome,
            currency=self._config.currency,
            detail=detail,
        )

    async def _wait_until_sold(self, session: UpstreamSession) -> ContractStatus:
        while True:
            message: dict[str, Any] = await session.expect(_CONTRACT_STREAM)
            status = ContractStatus.from_message(message)
            if status.subscription_id:
                self._subscription_id = status.subscription_id
            if status.is_sold:
                return status
            logger.debug("Contract %d still open", status.contract_id)

    async def _unsubscribe(self, session: UpstreamSession) -> None:
        """Cancel the tick and contract streams; a dropped link is only logged."""
        try:
            await session.send(build_forget_all())
            if self._subscription_id:
                await session.send(build_forget(self._subscription_id))
            else:
                await session.send(build_forget_all(_CONTRACT_STREAM))
        except DerivConnectionError as exc:
            logger.warning("Could not unsubscribe before closing: %s", exc)
