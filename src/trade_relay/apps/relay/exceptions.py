"""Exceptions raised by the relay application layer."""


class RelayError(Exception):
    """Base exception for relay errors that are not upstream failures."""


class InvalidTransitionError(RelayError):
    """A flow was asked to move to a state not reachable from its current one.

    Args:
        flow: Name of the flow class.
        current: State the flow is in.
        target: State that was requested.

    """

    def __init__(self, flow: str, current: str, target: str) -> None:
        """Initialize the transition error.

        Args:
            flow: Name of the flow class.
            current: State the flow is in.
            target: State that was requested.

        """
        super().__init__(f"{flow}: illegal transition {current} -> {target}")
        self.flow = flow
        self.current = current
        self.target = target
