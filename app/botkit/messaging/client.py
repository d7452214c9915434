"""Chat platform boundary -- inbound event types and the client protocol.

The connection layer (authentication, the real-time socket, directory
fetches) lives outside this package. It hands the bot typed events and
exposes the send primitives below.
"""

from __future__ import annotations

from collections.abc import AsyncIterator
from dataclasses import dataclass
from typing import Any, Protocol

from ..state.directory import DirectorySnapshot

DIRECT_MESSAGE_PREFIX = "D"
CHANNEL_PREFIX = "C"


@dataclass(frozen=True)
class HelloEvent:
    pass


@dataclass(frozen=True)
class ConnectedEvent:
    pass


@dataclass(frozen=True)
class ChannelJoinedEvent:
    channel: str = ""


@dataclass(frozen=True)
class IMCreatedEvent:
    channel: str = ""
    user: str = ""


@dataclass(frozen=True)
class InvalidAuthEvent:
    pass


@dataclass(frozen=True)
class TransportErrorEvent:
    code: int = 0
    message: str = ""


@dataclass(frozen=True)
class MessageEvent:
    channel: str
    user: str
    text: str
    timestamp: str = ""
    thread_timestamp: str = ""


Event = (
    HelloEvent
    | ConnectedEvent
    | ChannelJoinedEvent
    | IMCreatedEvent
    | InvalidAuthEvent
    | TransportErrorEvent
    | MessageEvent
)


class ChatClient(Protocol):
    def events(self) -> AsyncIterator[Event]: ...

    async def fetch_directory(self) -> DirectorySnapshot: ...

    async def post_message(
        self, channel: str, text: str, attachments: list[dict[str, Any]]
    ) -> str: ...

    async def update_message(
        self, channel: str, handle: str, text: str, attachments: list[dict[str, Any]]
    ) -> str: ...

    async def add_reaction(self, name: str, channel: str, timestamp: str) -> None: ...
