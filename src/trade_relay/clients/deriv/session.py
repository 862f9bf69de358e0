"""Async WebSocket session against the Deriv trading API.

Open a single connection to the Deriv endpoint, send JSON requests and
read JSON replies. There is no reconnect: a session lives for exactly one
exchange and is closed by whoever opened it.
"""

from __future__ import annotations

import itertools
import json
import logging
from typing import TYPE_CHECKING, Any, cast

from websockets import ConnectionClosed
from websockets.asyncio.client import ClientConnection, connect
from websockets.exceptions import WebSocketException

from trade_relay.clients.deriv.exceptions import DerivAPIError, DerivConnectionError

if TYPE_CHECKING:
    from types import TracebackType

logger = logging.getLogger(__name__)

DEFAULT_WS_URL = "wss://ws.binaryws.com/websockets/v3"
_PING_INTERVAL = 20
_PING_TIMEOUT = 10


def build_ws_url(ws_url: str, app_id: int | str) -> str:
    """Append the ``app_id`` query parameter Deriv requires on every connection."""
    separator = "&" if "?" in ws_url else "?"
    return f"{ws_url}{separator}app_id={app_id}"


class DerivSession:
    """One outbound WebSocket connection to the Deriv API.

    Every request is stamped with an increasing ``req_id`` which Deriv
    echoes back, so replies can be correlated in the logs.

    Args:
        url: Full WebSocket URL including the ``app_id`` parameter.
        open_timeout: Seconds to wait for the opening handshake.

    """

    def __init__(self, url: str, *, open_timeout: float = 10.0) -> None:
        """Initialize an unopened session.

        Args:
            url: Full WebSocket URL including the ``app_id`` parameter.
            open_timeout: Seconds to wait for the opening handshake.

        """
        self.url = url
        self._open_timeout = open_timeout
        self._ws: ClientConnection | None = None
        self._req_ids = itertools.count(1)
        self._closed = False

    @property
    def is_open(self) -> bool:
        """Return whether the connection is established and not yet closed."""
        return self._ws is not None and not self._closed

    async def open(self) -> None:
        """Establish the WebSocket connection.

        Raises:
            DerivConnectionError: If the connection cannot be established or
                the session was already closed.

        """
        if self._closed:
            raise DerivConnectionError("Session already closed")
        try:
            self._ws = await connect(
                self.url,
                open_timeout=self._open_timeout,
                ping_interval=_PING_INTERVAL,
                ping_timeout=_PING_TIMEOUT,
            )
        except (OSError, TimeoutError, WebSocketException) as exc:
            msg = f"Cannot connect to {self.url}: {exc}"
            raise DerivConnectionError(msg) from exc
        logger.debug("Connected to %s", self.url)

    async def send(self, message: dict[str, Any]) -> int:
        """Serialise and send one request.

        Args:
            message: Request payload; a ``req_id`` is added to a copy of it.

        Returns:
            The ``req_id`` assigned to the request.

        Raises:
            DerivConnectionError: If the session is not open or the
                connection drops while sending.

        """
        ws = self._require_open()
        req_id = next(self._req_ids)
        try:
            await ws.send(json.dumps({**message, "req_id": req_id}))
        except (ConnectionClosed, OSError) as exc:
            msg = f"Connection lost while sending: {exc}"
            raise DerivConnectionError(msg) from exc
        logger.debug("Sent request %d: %s", req_id, _describe(message))
        return req_id

    async def receive(self) -> dict[str, Any]:
        """Wait for the next JSON object from the server.

        Frames that are not valid JSON objects are skipped.

        Returns:
            Parsed message dictionary.

        Raises:
            DerivConnectionError: If the connection is closed or lost.

        """
        ws = self._require_open()
        while True:
            try:
                raw = await ws.recv()
            except (ConnectionClosed, OSError) as exc:
                msg = f"Connection lost while receiving: {exc}"
                raise DerivConnectionError(msg) from exc
            message = _parse_message(raw)
            if message is not None:
                return message

    async def expect(self, *msg_types: str) -> dict[str, Any]:
        """Receive messages until one of the given types arrives.

        Messages of other types (tick updates, subscription acks) are
        discarded. Any message carrying an ``error`` object ends the wait.

        Args:
            msg_types: Accepted values of the ``msg_type`` field.

        Returns:
            The first message whose ``msg_type`` is in ``msg_types``.

        Raises:
            DerivAPIError: If a received message carries an error.
            DerivConnectionError: If the connection is closed or lost.

        """
        while True:
            message = await self.receive()
            raise_for_error(message)
            msg_type = message.get("msg_type")
            if msg_type in msg_types:
                return message
            logger.debug("Skipping %s message while waiting for %s", msg_type, msg_types)

    async def close(self) -> None:
        """Close the connection. Safe to call more than once."""
        if self._closed:
            return
        self._closed = True
        if self._ws is not None:
            await self._ws.close()
            logger.debug("Closed connection to %s", self.url)

    async def __aenter__(self) -> DerivSession:
        """Open the session on entering the context."""
        await self.open()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        """Close the session on leaving the context."""
        await self.close()

    def _require_open(self) -> ClientConnection:
        if self._ws is None or self._closed:
            raise DerivConnectionError("Session is not open")
        return self._ws


def raise_for_error(message: dict[str, Any]) -> None:
    """Raise ``DerivAPIError`` if a response message carries an error.

    Args:
        message: Parsed response message.

    Raises:
        DerivAPIError: With the upstream code and message.

    """
    error = message.get("error")
    if not error:
        return
    details = cast("dict[str, Any]", error) if isinstance(error, dict) else {"message": str(error)}
    raise DerivAPIError(
        code=str(details.get("code", "")),
        message=str(details.get("message", "Unknown Deriv error")),
        msg_type=str(message.get("msg_type", "")),
    )


def _parse_message(raw: str | bytes) -> dict[str, Any] | None:
    """Parse a raw WebSocket frame into a message dictionary.

    Args:
        raw: Raw WebSocket message (string or bytes).

    Returns:
        Parsed dictionary, or ``None`` for malformed or non-object payloads.

    """
    try:
        data: Any = json.loads(raw)
    except (json.JSONDecodeError, TypeError, UnicodeDecodeError):
        logger.debug("Ignoring unparseable message: %s", raw[:100] if raw else raw)
        return None
    if isinstance(data, dict):
        return cast("dict[str, Any]", data)
    logger.debug("Ignoring non-object message: %s", type(data).__name__)
    return None


def _describe(message: dict[str, Any]) -> str:
    """Summarise a request for logging without leaking API tokens."""
    if "authorize" in message:
        return "authorize"
    return json.dumps(message, default=str)
