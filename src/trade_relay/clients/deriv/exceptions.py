"""Exception hierarchy for Deriv WebSocket client errors.

Follow the usual client pattern: a base exception class with a specialised
API error carrying the upstream code and message, plus transport and
timeout errors for failures that never produced an upstream reply.
"""


class DerivError(Exception):
    """Base exception for all Deriv client errors."""


class DerivAPIError(DerivError):
    """Error reported by the Deriv API inside a response message.

    Deriv returns errors as ``{"error": {"code": "InvalidToken",
    "message": "The token is invalid."}, "msg_type": "authorize"}``.

    Args:
        code: Deriv error code (e.g. ``"InvalidToken"``), empty if absent.
        message: Human-readable error message from the API.
        msg_type: Message type of the response that carried the error.

    """

    def __init__(self, code: str, message: str, msg_type: str = "") -> None:
        """Initialize Deriv API error.

        Args:
            code: Deriv error code, empty if the response had none.
            message: Human-readable error message from the API.
            msg_type: Message type of the failing response.

        """
        super().__init__(f"[{code}] {message}" if code else message)
        self.code = code
        self.message = message
        self.msg_type = msg_type


class DerivConnectionError(DerivError):
    """The WebSocket connection could not be opened or was lost."""


class DerivTimeoutError(DerivError):
    """No expected reply arrived from Deriv within the allotted time."""
