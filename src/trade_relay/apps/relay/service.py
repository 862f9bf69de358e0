"""Orchestration of relay operations behind the HTTP handlers.

Wire the session registry to the authentication and trade flows: create
a session on connect, start trades and hand their settlement to a
background task, and expose the latest result for polling.
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING

from trade_relay.apps.relay.flows import AuthenticationFlow, TradeFlow
from trade_relay.apps.relay.models import ContractOutcome
from trade_relay.apps.relay.registry import RelaySession, SessionRegistry
from trade_relay.clients.deriv.session import DerivSession

if TYPE_CHECKING:
    from trade_relay.apps.relay.config import RelayConfig
    from trade_relay.apps.relay.models import TradeRequest
    from trade_relay.apps.relay.protocols import SessionFactory, UpstreamSession
    from trade_relay.clients.deriv.models import AccountInfo, BuyReceipt

logger = logging.getLogger(__name__)


class RelayService:
    """Run relay operations for the HTTP layer.

    Args:
        config: Relay configuration.
        session_factory: Creates upstream sessions. Defaults to real
            ``DerivSession`` connections to ``config.upstream_url``.

    """

    def __init__(
        self,
        config: RelayConfig,
        session_factory: SessionFactory | None = None,
    ) -> None:
        """Initialize the service with an empty session registry.

        Args:
            config: Relay configuration.
            session_factory: Creates upstream sessions.

        """
        self.config = config
        self.registry = SessionRegistry(max_sessions=config.max_sessions)
        self._session_factory = session_factory or self._open_deriv_session
        self._monitors: set[asyncio.Task[None]] = set()

    def _open_deriv_session(self) -> UpstreamSession:
        return DerivSession(self.config.upstream_url, open_timeout=self.config.open_timeout_seconds)

    async def connect(self, token: str) -> tuple[RelaySession, AccountInfo]:
        """Authorize ``token`` and register a session for its account.

        Raises:
            DerivError: If the authorization fails; no session is created.

        """
        flow = AuthenticationFlow(
            self._session_factory, token, timeout=self.config.request_timeout_seconds
        )
        account = await flow.run()
        session = self.registry.create(token, account)
        logger.info("Session %s opened for %s", session.session_id[:8], account.login_id)
        return session, account

    async def start_trade(self, session: RelaySession, request: TradeRequest) -> BuyReceipt:
        """Buy a contract for ``session`` and follow it in the background.

        Trades on one session run one at a time: each clears the previous
        result and cancels the trade still being followed, then returns
        once the buy is confirmed. A session evicted while its trade was
        being opened does not keep following the contract.

        Raises:
            DerivError: If the trade could not be opened.

        """
        async with session.trade_lock:
            session.cancel_monitor()
            session.result = None
            flow = TradeFlow(
                self._session_factory,
                token=session.token,
                account_id=session.account_id,
                request=request,
                config=self.config,
            )
            receipt = await flow.start()
            monitor = asyncio.create_task(
                self._follow(session, flow), name=f"contract-{receipt.contract_id}"
            )
            self._monitors.add(monitor)
            monitor.add_done_callback(self._monitors.discard)
            session.monitor = monitor
            # Let the monitor reach its cleanup scope before it can be cancelled.
            await asyncio.sleep(0)

        if self.registry.get(session.session_id) is not session:
            logger.info("Session %s evicted while trading, not following", session.session_id[:8])
            session.cancel_monitor()
        return receipt

    async def _follow(self, session: RelaySession, flow: TradeFlow) -> None:
        try:
            result = await flow.monitor()
        except Exception as exc:
            logger.exception("Unexpected failure following the trade of %s", session.account_id)
            result = flow.result(ContractOutcome.ERROR, detail=str(exc))
        session.result = result

    @staticmethod
    def read_result(session: RelaySession | None) -> str | None:
        """Return the formatted result of a session's latest trade, if any."""
        if session is None or session.result is None:
            return None
        return session.result.format()

    async def close(self) -> None:
        """Stop every background monitor, including those of evicted sessions."""
        monitors = list(self._monitors)
        for monitor in monitors:
            monitor.cancel()
        await self.registry.close()
        if monitors:
            await asyncio.gather(*monitors, return_exceptions=True)
