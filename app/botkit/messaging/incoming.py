"""Inbound channel messages as seen by plugins."""

from __future__ import annotations

from dataclasses import dataclass, field

from .client import ChatClient


@dataclass
class IncomingMessage:
    text: str
    channel: str
    timestamp: str
    user: str = ""
    _client: ChatClient | None = field(default=None, repr=False, compare=False)

    async def add_reaction(self, name: str) -> None:
        """React to this message with the emoji *name* (without colons)."""
        if self._client is None:
            raise RuntimeError("message is not bound to a chat client")
        await self._client.add_reaction(name, self.channel, self.timestamp)
