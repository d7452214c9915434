"""Interactive callback registry -- routes platform callbacks to waiters.

A token is registered when an interactive message is sent and removed when
the message is superseded, answered, or its conversation ends. Lookups for
unknown tokens are expected (stale buttons, a restart that lost the
in-memory state) and are only logged. Thread-safe via internal lock.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from typing import TYPE_CHECKING

from ..errors import CallbackCollisionError
from ..util.ids import NO_CALLBACK

if TYPE_CHECKING:
    from .messenger import Messenger
    from .outgoing import OutgoingMessage

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class _Waiter:
    messenger: Messenger
    message: OutgoingMessage


class CallbackRegistry:
    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._waiters: dict[str, _Waiter] = {}

    def __len__(self) -> int:
        with self._lock:
            return len(self._waiters)

    def __contains__(self, token: object) -> bool:
        with self._lock:
            return token in self._waiters

    def register(self, token: str, messenger: Messenger, message: OutgoingMessage) -> None:
        if token == NO_CALLBACK:
            return
        with self._lock:
            if token in self._waiters:
                raise CallbackCollisionError(token)
            self._waiters[token] = _Waiter(messenger, message)
        logger.debug("[callback] registered %s for %s", token, messenger.channel)

    def unregister(self, token: str) -> None:
        if token == NO_CALLBACK:
            return
        with self._lock:
            removed = self._waiters.pop(token, None)
        if removed is not None:
            logger.debug("[callback] unregistered %s", token)

    def resolve(self, token: str, raw_value: str) -> bool:
        """Deliver the label behind *raw_value* to the waiter on *token*."""
        with self._lock:
            waiter = self._waiters.get(token)
        if waiter is None:
            logger.info("[callback] no waiter for token %s, dropping", token)
            return False

        label = waiter.message.label_for(raw_value)
        if label is None:
            logger.warning(
                "[callback] value %r is not an element of message %s, dropping",
                raw_value, token,
            )
            return False
        if not waiter.messenger.deliver(label):
            return False
        self.unregister(token)
        return True
