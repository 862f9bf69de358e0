"""Structural protocols decoupling the relay flows from the WebSocket client.

The flows only need to open a connection, send requests, wait for typed
replies and close. Any object with that shape can stand in for
``DerivSession``, which lets the tests script upstream conversations.
"""

from collections.abc import Callable
from typing import Any, Protocol, runtime_checkable


@runtime_checkable
class UpstreamSession(Protocol):
    """One outbound connection to the upstream trading API."""

    async def open(self) -> None:
        """Establish the connection."""
        ...

    async def send(self, message: dict[str, Any]) -> int:
        """Send one request and return its request id."""
        ...

    async def expect(self, *msg_types: str) -> dict[str, Any]:
        """Return the next message of one of the given types."""
        ...

    async def close(self) -> None:
        """Close the connection."""
        ...


SessionFactory = Callable[[], UpstreamSession]
