"""Exception types shared across the engine."""

from __future__ import annotations


class FatalConfigurationError(RuntimeError):
    """A programming mistake that corrupts routing invariants.

    Raised for duplicate topic labels or job IDs, plugins registered after
    the bot started serving, and callback token collisions. Never caught
    and recovered from; the process is expected to stop.
    """


class CallbackCollisionError(FatalConfigurationError):
    """Two live interactive messages were given the same callback token."""

    def __init__(self, token: str) -> None:
        super().__init__(f"callback token collision: {token!r}")
        self.token = token
