"""Dispatch router -- classifies inbound events and hands them on.

Channel messages fan out to every plugin, direct messages go to the
sender's conversation worker, and interactive callbacks arriving over HTTP
are authenticated and resolved through the callback registry.
"""

from __future__ import annotations

import asyncio
import logging
import secrets
from collections.abc import Callable
from typing import TYPE_CHECKING

from pydantic import BaseModel, Field, ValidationError

from ..errors import FatalConfigurationError
from ..state.directory import Directory
from ..util.ids import NO_CALLBACK
from .callbacks import CallbackRegistry
from .client import (
    CHANNEL_PREFIX,
    DIRECT_MESSAGE_PREFIX,
    ChannelJoinedEvent,
    ChatClient,
    ConnectedEvent,
    Event,
    HelloEvent,
    IMCreatedEvent,
    InvalidAuthEvent,
    MessageEvent,
    TransportErrorEvent,
)
from .conversations import ConversationManager
from .incoming import IncomingMessage
from .outgoing import BUTTON, SELECT

if TYPE_CHECKING:
    from ..registries.plugins import PluginRegistry
    from .messenger import GlobalMessenger

logger = logging.getLogger(__name__)

_REFRESH_EVENTS = (HelloEvent, ConnectedEvent, ChannelJoinedEvent, IMCreatedEvent)


# -- interactive callback payload ------------------------------------------


class SelectedOption(BaseModel):
    value: str


class CallbackAction(BaseModel):
    type: str
    value: str | None = None
    selected_options: list[SelectedOption] = Field(default_factory=list)

    def chosen_value(self) -> str | None:
        if self.type == BUTTON:
            return self.value
        if self.type == SELECT and self.selected_options:
            return self.selected_options[0].value
        return None


class InteractionPayload(BaseModel):
    token: str
    callback_id: str
    actions: list[CallbackAction] = Field(default_factory=list)


# -- router ----------------------------------------------------------------


class EventRouter:
    def __init__(
        self,
        client: ChatClient,
        directory: Directory,
        plugins: PluginRegistry,
        conversations: ConversationManager,
        registry: CallbackRegistry,
        messenger: GlobalMessenger,
        *,
        verification_token: str,
        on_fatal: Callable[[FatalConfigurationError], None] | None = None,
    ) -> None:
        self._client = client
        self._directory = directory
        self._plugins = plugins
        self._conversations = conversations
        self._registry = registry
        self._messenger = messenger
        self._verification_token = verification_token
        self._on_fatal = on_fatal
        self._tasks: set[asyncio.Task[None]] = set()

    async def handle(self, event: Event) -> bool:
        """Route one event. Returns ``False`` when serving should stop."""
        if isinstance(event, _REFRESH_EVENTS):
            await self.refresh_directory()
        elif isinstance(event, MessageEvent):
            self._route_message(event)
        elif isinstance(event, TransportErrorEvent):
            logger.error("[router] transport error %s: %s", event.code, event.message)
        elif isinstance(event, InvalidAuthEvent):
            logger.error("[router] invalid credentials, stopping")
            return False
        else:
            logger.debug("[router] ignoring event %s", type(event).__name__)
        return True

    async def refresh_directory(self) -> None:
        try:
            snapshot = await self._client.fetch_directory()
        except Exception:
            logger.exception("[router] directory refresh failed")
            return
        self._directory.update(snapshot)
        self._conversations.sync_users(
            u.name for u in snapshot.users if u.id != snapshot.self_id
        )

    async def drain(self, timeout: float | None = None) -> None:
        """Wait for in-flight plugin fan-outs, cancelling any still running after *timeout*."""
        if not self._tasks:
            return
        _, pending = await asyncio.wait(set(self._tasks), timeout=timeout)
        for task in pending:
            task.cancel()
        if pending:
            logger.warning("[router] cancelled %d unfinished plugin call(s)", len(pending))
            await asyncio.gather(*pending, return_exceptions=True)

    def handle_interaction(self, raw_payload: str) -> bool:
        """Resolve a button or dropdown callback. Returns whether it was delivered."""
        try:
            payload = InteractionPayload.model_validate_json(raw_payload)
        except ValidationError as exc:
            logger.warning("[router] malformed interactive payload: %s", exc.errors()[:1])
            return False

        if not self._token_valid(payload.token):
            logger.warning("[router] garbage or illegal callback for %s, dropping", payload.callback_id)
            return False

        if not payload.actions:
            logger.warning("[router] callback %s carries no actions", payload.callback_id)
            return False

        value = payload.actions[0].chosen_value()
        if value is None:
            logger.warning(
                "[router] unsupported action type %r on %s",
                payload.actions[0].type, payload.callback_id,
            )
            return False
        if value == NO_CALLBACK:
            logger.debug("[router] no-op callback on %s", payload.callback_id)
            return False

        return self._registry.resolve(payload.callback_id, value)

    def _token_valid(self, token: str) -> bool:
        if not self._verification_token:
            return False
        return secrets.compare_digest(token.encode(), self._verification_token.encode())

    def _route_message(self, ev: MessageEvent) -> None:
        if ev.user and ev.user == self._directory.self_id:
            return
        # Threads are not supported yet.
        if ev.thread_timestamp:
            return

        prefix = ev.channel[:1]
        if prefix == CHANNEL_PREFIX:
            task = asyncio.get_running_loop().create_task(self._broadcast(ev))
            self._tasks.add(task)
            task.add_done_callback(self._tasks.discard)
        elif prefix == DIRECT_MESSAGE_PREFIX:
            self._dispatch_direct(ev)
        else:
            logger.debug("[router] ignoring message in %s", ev.channel)

    async def _broadcast(self, ev: MessageEvent) -> None:
        msg = IncomingMessage(
            text=ev.text,
            channel=ev.channel,
            timestamp=ev.timestamp,
            user=ev.user,
            _client=self._client,
        )
        for plugin in self._plugins.plugins:
            messenger = self._messenger.scope(ev.channel)
            try:
                await plugin.parse_message(msg, messenger)
            except FatalConfigurationError as exc:
                if self._on_fatal is None:
                    raise
                self._on_fatal(exc)
                return
            except Exception:
                logger.exception("[router] plugin %s failed on message in %s", plugin.name, ev.channel)
            finally:
                messenger.close()

    def _dispatch_direct(self, ev: MessageEvent) -> None:
        user = self._directory.user_for_im(ev.channel) or self._directory.user(ev.user)
        if user is None:
            logger.warning("[router] direct message on %s from unknown user %s", ev.channel, ev.user)
            return
        self._conversations.dispatch_direct_message(user.name, ev.text)
