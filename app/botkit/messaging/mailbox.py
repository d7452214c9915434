"""Single-slot response mailbox backing ``Messenger.await_response``.

Delivery is first-writer-wins: the first value delivered while the mailbox
is open is kept, later ones are dropped, and anything delivered while it
is closed is dropped as well. The mailbox reopens (empty) for the next
question, so a late answer can never leak into a later await.
"""

from __future__ import annotations

import asyncio
import logging

logger = logging.getLogger(__name__)

TIMEOUT = "timeout"


class ResponseMailbox:
    def __init__(self) -> None:
        self._slot: asyncio.Future[str] | None = None

    @property
    def is_open(self) -> bool:
        return self._slot is not None

    def open(self) -> asyncio.Future[str]:
        """Start accepting a response, discarding anything held before."""
        self._slot = asyncio.get_running_loop().create_future()
        return self._slot

    def close(self) -> None:
        slot, self._slot = self._slot, None
        if slot is not None and not slot.done():
            slot.cancel()

    def deliver(self, value: str) -> bool:
        slot = self._slot
        if slot is None:
            logger.debug("Mailbox closed, dropping response %r", value)
            return False
        if slot.done():
            logger.debug("Mailbox already holds a response, dropping %r", value)
            return False
        slot.set_result(value)
        return True

    async def wait(self, timeout: float) -> tuple[bool, str]:
        slot = self._slot if self._slot is not None else self.open()
        try:
            value = await asyncio.wait_for(slot, timeout)
        except TimeoutError:
            return False, TIMEOUT
        finally:
            if self._slot is slot:
                self.close()
        return True, value
