"""Typed errors raised by the subscription lifecycle."""


class SubscriptionError(Exception):
    """Base class for subscription lifecycle errors."""


class InvalidTransition(SubscriptionError):
    """A transition was requested from a status that does not allow it.

    User-correctable (pause on paused, resume on active, ...); the API layer
    maps it to 400.
    """

    def __init__(self, action: str, current_status: str, message: str | None = None) -> None:
        self.action = action
        self.current_status = current_status
        super().__init__(
            message or f"Cannot {action} subscription with status: {current_status}"
        )


class CorruptState(SubscriptionError):
    """Stored subscription data violates a lifecycle invariant.

    Never patched silently: the API layer returns 500 and alerts operators.
    """


class MalformedDuration(SubscriptionError, ValueError):
    """A duration code carries no day count (e.g. ``"monthly"``)."""

    def __init__(self, duration_code: str | None) -> None:
        self.duration_code = duration_code
        super().__init__(f"Unparsable duration code: {duration_code!r}")
