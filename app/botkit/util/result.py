"""Lightweight result type for enqueue and dispatch outcomes."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


@dataclass(frozen=True, slots=True)
class Result:
    """Represents the outcome of an operation that may be refused.

    Supports boolean evaluation, tuple unpacking, and carries an optional
    payload via *value*.

    Examples::

        r = gm.new_conversation("alice", action)
        if not r:
            logger.warning("not queued: %s", r.message)

        ok, msg = Result.fail("queue full")
    """

    success: bool
    message: str = ""
    value: Any = field(default=None, repr=False)

    @classmethod
    def ok(cls, message: str = "", *, value: Any = None) -> Result:
        return cls(success=True, message=message, value=value)

    @classmethod
    def fail(cls, message: str = "") -> Result:
        return cls(success=False, message=message)

    def __bool__(self) -> bool:
        return self.success

    def __iter__(self):
        yield self.success
        yield self.message
