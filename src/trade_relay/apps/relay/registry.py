"""In-memory registry of authenticated relay sessions.

Every successful connect creates a ``RelaySession`` holding the caller's
token, the authorized account and the result slot of its latest trade.
Callers pass the returned ``session_id`` on later requests; requests that
omit it resolve to the most recent session so a single-user page works
without threading the id through.

All access happens on the event loop thread. Trades on one session are
serialised by its ``trade_lock`` so a new trade always sees, and cancels,
the monitor of the previous one.
"""

from __future__ import annotations

import asyncio
import logging
import secrets
from collections import OrderedDict
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from trade_relay.apps.relay.models import ContractResult
    from trade_relay.clients.deriv.models import AccountInfo

logger = logging.getLogger(__name__)

_SESSION_ID_BYTES = 16


@dataclass
class RelaySession:
    """Mutable context of one authenticated caller.

    Attributes:
        session_id: Random identifier handed to the caller.
        token: Deriv API token used to re-authorize each trade.
        account: Account details from the connect-time authorization.
        result: Final result of the latest trade, ``None`` while it runs.
        monitor: Background task following the latest trade, if any.
        trade_lock: Held while a trade is being opened for this session.

    """

    session_id: str
    token: str = field(repr=False)
    account: AccountInfo
    result: ContractResult | None = None
    monitor: asyncio.Task[None] | None = field(default=None, repr=False)
    trade_lock: asyncio.Lock = field(default_factory=asyncio.Lock, repr=False, compare=False)

    @property
    def account_id(self) -> str:
        """Return the login id of the authorized account."""
        return self.account.login_id

    @property
    def is_monitoring(self) -> bool:
        """Return whether a trade is still being followed."""
        return self.monitor is not None and not self.monitor.done()

    def cancel_monitor(self) -> None:
        """Cancel the running monitor task, if any."""
        if self.is_monitoring and self.monitor is not None:
            logger.info("Cancelling running monitor for session %s", self.session_id[:8])
            self.monitor.cancel()
        self.monitor = None


class SessionRegistry:
    """Bounded, insertion-ordered map of session id to ``RelaySession``.

    Args:
        max_sessions: Maximum number of sessions kept; the oldest is
            evicted (and its monitor cancelled) when exceeded.

    """

    def __init__(self, max_sessions: int = 16) -> None:
        """Initialize an empty registry.

        Args:
            max_sessions: Maximum number of sessions kept in memory.

        Raises:
            ValueError: If ``max_sessions`` is not positive.

        """
        if max_sessions < 1:
            msg = f"max_sessions must be positive, got {max_sessions}"
            raise ValueError(msg)
        self._max_sessions = max_sessions
        self._sessions: OrderedDict[str, RelaySession] = OrderedDict()

    def __len__(self) -> int:
        """Return the number of live sessions."""
        return len(self._sessions)

    def create(self, token: str, account: AccountInfo) -> RelaySession:
        """Register a new session for a freshly authorized account."""
        session = RelaySession(
            session_id=secrets.token_hex(_SESSION_ID_BYTES),
            token=token,
            account=account,
        )
        self._sessions[session.session_id] = session
        while len(self._sessions) > self._max_sessions:
            _, evicted = self._sessions.popitem(last=False)
            evicted.cancel_monitor()
            logger.info("Evicted session %s", evicted.session_id[:8])
        return session

    def get(self, session_id: str) -> RelaySession | None:
        """Return the session with the given id, if it is still registered."""
        return self._sessions.get(session_id)

    def latest(self) -> RelaySession | None:
        """Return the most recently created session."""
        if not self._sessions:
            return None
        return next(reversed(self._sessions.values()))

    def resolve(self, session_id: str | None) -> RelaySession | None:
        """Look up an explicit session id, or fall back to the latest session."""
        if session_id:
            return self.get(session_id)
        return self.latest()

    async def close(self) -> None:
        """Cancel every running monitor and forget all sessions."""
        tasks = [s.monitor for s in self._sessions.values() if s.is_monitoring and s.monitor]
        for session in self._sessions.values():
            session.cancel_monitor()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._sessions.clear()
