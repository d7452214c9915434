"""Scoped messengers -- what plugins and conversations send through.

A ``Messenger`` is bound to one channel (or one user's DM) for the lifetime
of a single conversation or plugin invocation. It tracks the last message
it composed so that a newer question retires the buttons of the older one,
and owns the mailbox its ``await_response`` reads from.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from ..util.ids import random_id
from ..util.result import Result
from .callbacks import CallbackRegistry
from .client import ChatClient
from .mailbox import ResponseMailbox
from .outgoing import OutgoingMessage, Severity, summary_attachment

if TYPE_CHECKING:
    from ..state.directory import Directory
    from .conversations import ConversationAction, ConversationManager

logger = logging.getLogger(__name__)

DEFAULT_RESPONSE_TIMEOUT = 15 * 60.0


class Messenger:
    def __init__(
        self,
        channel: str,
        client: ChatClient,
        registry: CallbackRegistry,
        *,
        response_timeout: float = DEFAULT_RESPONSE_TIMEOUT,
    ) -> None:
        self._channel = channel
        self._client = client
        self._registry = registry
        self._response_timeout = response_timeout
        self._mailbox = ResponseMailbox()
        self._last: OutgoingMessage | None = None

    @property
    def channel(self) -> str:
        return self._channel

    @property
    def last_message(self) -> OutgoingMessage | None:
        return self._last

    def new_message(self, text: str) -> OutgoingMessage:
        """Compose a message, retiring the previous one's callback."""
        if self._last is not None:
            self._registry.unregister(self._last.token)
        self._mailbox.close()
        self._last = OutgoingMessage(text, self)
        return self._last

    async def await_response(self, timeout: float | None = None) -> tuple[bool, str]:
        """Wait for the user's answer.

        Returns ``(True, answer)`` or ``(False, "timeout")``. Answers to
        buttons and dropdowns arrive as the option's label; direct messages
        typed during a conversation arrive as raw text.
        """
        return await self._mailbox.wait(self._response_timeout if timeout is None else timeout)

    async def update_last_message(self, text: str, severity: Severity = Severity.NEUTRAL) -> None:
        """Swap the last message's buttons for a coloured one-line summary."""
        msg = self._last
        if msg is None or not msg.sent:
            return
        self._registry.unregister(msg.token)
        msg.handle = await self._client.update_message(
            self._channel, msg.handle, msg.text, summary_attachment(text, severity)
        )

    def deliver(self, value: str) -> bool:
        return self._mailbox.deliver(value)

    def close(self) -> None:
        """End of scope: drop the pending callback and any unread answer."""
        if self._last is not None:
            self._registry.unregister(self._last.token)
        self._mailbox.close()

    async def _send(self, msg: OutgoingMessage) -> str:
        if msg is not self._last:
            raise RuntimeError("message was superseded by a newer one in this scope")

        if msg.interactive:
            token = random_id()
            # Registered before the payload leaves the process.
            self._registry.register(token, self, msg)
            msg.token = token
        self._mailbox.open()

        try:
            handle = await self._client.post_message(self._channel, msg.text, msg.attachments())
        except Exception:
            self._registry.unregister(msg.token)
            self._mailbox.close()
            raise

        msg.sent = True
        msg.handle = handle
        logger.debug("Sent message to %s (handle=%s, token=%s)", self._channel, handle, msg.token)
        return handle


class GlobalMessenger:
    """Unscoped handle given to scheduled jobs."""

    def __init__(
        self,
        client: ChatClient,
        registry: CallbackRegistry,
        directory: Directory,
        conversations: ConversationManager,
        *,
        response_timeout: float = DEFAULT_RESPONSE_TIMEOUT,
        track_scopes: bool = False,
    ) -> None:
        self._client = client
        self._registry = registry
        self._directory = directory
        self._conversations = conversations
        self._response_timeout = response_timeout
        self._scopes: list[Messenger] | None = [] if track_scopes else None

    @property
    def client(self) -> ChatClient:
        return self._client

    def for_job(self) -> GlobalMessenger:
        """A handle whose scopes are all released by one ``close`` call."""
        return GlobalMessenger(
            self._client,
            self._registry,
            self._directory,
            self._conversations,
            response_timeout=self._response_timeout,
            track_scopes=True,
        )

    def scope(self, channel: str) -> Messenger:
        messenger = Messenger(
            channel,
            self._client,
            self._registry,
            response_timeout=self._response_timeout,
        )
        if self._scopes is not None:
            self._scopes.append(messenger)
        return messenger

    def close(self) -> None:
        """Close every scope opened through a ``for_job`` handle."""
        if not self._scopes:
            return
        scopes, self._scopes = self._scopes, []
        for messenger in scopes:
            messenger.close()
        logger.debug("Released %d job scope(s)", len(scopes))

    def direct_message_channel(self, user_name: str) -> str:
        return self._directory.im_channel_for(user_name)

    def new_message(self, text: str, channel: str) -> OutgoingMessage:
        return self.scope(channel).new_message(text)

    def new_conversation(self, user_name: str, action: ConversationAction) -> Result:
        """Queue *action* to run as a conversation with *user_name*."""
        return self._conversations.enqueue(user_name, action)
