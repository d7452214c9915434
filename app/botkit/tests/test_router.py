"""Tests for the dispatch router."""

from __future__ import annotations

import asyncio
import json
import logging
from unittest.mock import AsyncMock, MagicMock

import pytest

from app.botkit.errors import FatalConfigurationError
from app.botkit.messaging.callbacks import CallbackRegistry
from app.botkit.messaging.client import (
    ChannelJoinedEvent,
    ConnectedEvent,
    HelloEvent,
    IMCreatedEvent,
    InvalidAuthEvent,
    MessageEvent,
    TransportErrorEvent,
)
from app.botkit.messaging.incoming import IncomingMessage
from app.botkit.messaging.messenger import GlobalMessenger, Messenger
from app.botkit.messaging.router import EventRouter
from app.botkit.registries.plugins import BotPlugin, PluginConfig, PluginRegistry
from app.botkit.state.directory import Directory

VERIFICATION_TOKEN = "s3cret-verification"


class _Recorder(BotPlugin):
    def __init__(self, label: str, log: list, error: Exception | None = None) -> None:
        self.label = label
        self.log = log
        self.error = error

    def init(self) -> PluginConfig:
        return PluginConfig(name=self.label)

    async def parse_message(self, msg: IncomingMessage, messenger: Messenger) -> None:
        self.log.append((self.label, msg.text, messenger))
        if self.error is not None:
            raise self.error


def _router(chat_client, snapshot, *plugins, on_fatal=None, token=VERIFICATION_TOKEN):
    directory = Directory()
    directory.update(snapshot)
    registry = PluginRegistry()
    for plugin in plugins:
        registry.add(plugin)
    conversations = MagicMock()
    callbacks = CallbackRegistry()
    gm = GlobalMessenger(chat_client, callbacks, directory, conversations, response_timeout=1.0)
    router = EventRouter(
        chat_client,
        directory,
        registry,
        conversations,
        callbacks,
        gm,
        verification_token=token,
        on_fatal=on_fatal,
    )
    return router, conversations, callbacks


def _payload(callback_id: str, action: dict, token: str = VERIFICATION_TOKEN) -> str:
    return json.dumps({"token": token, "callback_id": callback_id, "actions": [action]})


class TestLifecycleEvents:
    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "event",
        [HelloEvent(), ConnectedEvent(), ChannelJoinedEvent(channel="C2"), IMCreatedEvent(channel="D3", user="U3")],
    )
    async def test_refresh_events_resync_users(self, chat_client, snapshot, event) -> None:
        router, conversations, _ = _router(chat_client, snapshot)
        assert await router.handle(event) is True
        chat_client.fetch_directory.assert_awaited_once()
        [names] = conversations.sync_users.call_args.args
        assert sorted(names) == ["alice", "bob"]

    @pytest.mark.asyncio
    async def test_refresh_failure_is_logged(self, chat_client, snapshot, caplog) -> None:
        router, conversations, _ = _router(chat_client, snapshot)
        chat_client.fetch_directory.side_effect = ConnectionError("down")
        with caplog.at_level(logging.ERROR, logger="app.botkit.messaging.router"):
            assert await router.handle(HelloEvent()) is True
        conversations.sync_users.assert_not_called()
        assert "directory refresh failed" in caplog.text

    @pytest.mark.asyncio
    async def test_invalid_auth_stops_serving(self, chat_client, snapshot) -> None:
        router, _, _ = _router(chat_client, snapshot)
        assert await router.handle(InvalidAuthEvent()) is False

    @pytest.mark.asyncio
    async def test_transport_error_is_logged(self, chat_client, snapshot, caplog) -> None:
        router, _, _ = _router(chat_client, snapshot)
        with caplog.at_level(logging.ERROR, logger="app.botkit.messaging.router"):
            assert await router.handle(TransportErrorEvent(code=1006, message="abnormal closure")) is True
        assert "abnormal closure" in caplog.text


class TestChannelMessages:
    @pytest.mark.asyncio
    async def test_fan_out_in_registration_order(self, chat_client, snapshot) -> None:
        log: list = []
        router, _, _ = _router(chat_client, snapshot, _Recorder("first", log), _Recorder("second", log))

        await router.handle(MessageEvent(channel="C1", user="U1", text="hello all", timestamp="1.0"))
        await router.drain()

        assert [(label, text) for label, text, _ in log] == [("first", "hello all"), ("second", "hello all")]
        first_scope, second_scope = log[0][2], log[1][2]
        assert first_scope is not second_scope
        assert first_scope.channel == second_scope.channel == "C1"

    @pytest.mark.asyncio
    async def test_plugin_error_does_not_stop_the_rest(self, chat_client, snapshot, caplog) -> None:
        log: list = []
        router, _, _ = _router(
            chat_client, snapshot,
            _Recorder("broken", log, error=ValueError("nope")),
            _Recorder("fine", log),
        )
        with caplog.at_level(logging.ERROR, logger="app.botkit.messaging.router"):
            await router.handle(MessageEvent(channel="C1", user="U1", text="hi"))
            await router.drain()

        assert [label for label, _, _ in log] == ["broken", "fine"]
        assert "plugin _Recorder failed" in caplog.text

    @pytest.mark.asyncio
    async def test_fatal_plugin_error_is_reported(self, chat_client, snapshot) -> None:
        log: list = []
        on_fatal = MagicMock()
        error = FatalConfigurationError("misconfigured")
        router, _, _ = _router(
            chat_client, snapshot,
            _Recorder("fatal", log, error=error),
            _Recorder("after", log),
            on_fatal=on_fatal,
        )
        await router.handle(MessageEvent(channel="C1", user="U1", text="hi"))
        await router.drain()

        on_fatal.assert_called_once_with(error)
        assert [label for label, _, _ in log] == ["fatal"]

    @pytest.mark.asyncio
    async def test_own_messages_ignored(self, chat_client, snapshot) -> None:
        log: list = []
        router, conversations, _ = _router(chat_client, snapshot, _Recorder("p", log))
        await router.handle(MessageEvent(channel="C1", user="UBOT", text="pong"))
        await router.handle(MessageEvent(channel="D1", user="UBOT", text="pong"))
        await router.drain()
        assert log == []
        conversations.dispatch_direct_message.assert_not_called()

    @pytest.mark.asyncio
    async def test_thread_replies_ignored(self, chat_client, snapshot) -> None:
        log: list = []
        router, conversations, _ = _router(chat_client, snapshot, _Recorder("p", log))
        await router.handle(MessageEvent(channel="C1", user="U1", text="hi", thread_timestamp="1.0"))
        await router.handle(MessageEvent(channel="D1", user="U1", text="hi", thread_timestamp="1.0"))
        await router.drain()
        assert log == []
        conversations.dispatch_direct_message.assert_not_called()

    @pytest.mark.asyncio
    async def test_other_channel_kinds_ignored(self, chat_client, snapshot) -> None:
        log: list = []
        router, conversations, _ = _router(chat_client, snapshot, _Recorder("p", log))
        await router.handle(MessageEvent(channel="G1", user="U1", text="hi"))
        await router.drain()
        assert log == []
        conversations.dispatch_direct_message.assert_not_called()

    @pytest.mark.asyncio
    async def test_plugin_can_react(self, chat_client, snapshot) -> None:
        class Reacts(BotPlugin):
            def init(self) -> PluginConfig:
                return PluginConfig(name="reacts")

            async def parse_message(self, msg, messenger) -> None:
                await msg.add_reaction("eyes")

        router, _, _ = _router(chat_client, snapshot, Reacts())
        await router.handle(MessageEvent(channel="C1", user="U1", text="hmm", timestamp="7.000200"))
        await router.drain()
        chat_client.add_reaction.assert_awaited_once_with("eyes", "C1", "7.000200")

    @pytest.mark.asyncio
    async def test_drain_cancels_stragglers(self, chat_client, snapshot) -> None:
        cancelled = asyncio.Event()

        class Stuck(BotPlugin):
            def init(self) -> PluginConfig:
                return PluginConfig(name="stuck")

            async def parse_message(self, msg, messenger) -> None:
                try:
                    await asyncio.Event().wait()
                except asyncio.CancelledError:
                    cancelled.set()
                    raise

        router, _, _ = _router(chat_client, snapshot, Stuck())
        await router.handle(MessageEvent(channel="C1", user="U1", text="hi"))
        await asyncio.sleep(0)
        await router.drain(timeout=0.05)
        assert cancelled.is_set()


class TestDirectMessages:
    @pytest.mark.asyncio
    async def test_routed_to_sender_by_im_channel(self, chat_client, snapshot) -> None:
        router, conversations, _ = _router(chat_client, snapshot)
        await router.handle(MessageEvent(channel="D1", user="U1", text="hi"))
        conversations.dispatch_direct_message.assert_called_once_with("alice", "hi")

    @pytest.mark.asyncio
    async def test_unknown_im_falls_back_to_sender_id(self, chat_client, snapshot) -> None:
        router, conversations, _ = _router(chat_client, snapshot)
        await router.handle(MessageEvent(channel="D9", user="U2", text="hey"))
        conversations.dispatch_direct_message.assert_called_once_with("bob", "hey")

    @pytest.mark.asyncio
    async def test_unknown_sender_dropped(self, chat_client, snapshot) -> None:
        router, conversations, _ = _router(chat_client, snapshot)
        await router.handle(MessageEvent(channel="D9", user="U9", text="hey"))
        conversations.dispatch_direct_message.assert_not_called()

    @pytest.mark.asyncio
    async def test_direct_messages_skip_plugins(self, chat_client, snapshot) -> None:
        log: list = []
        router, _, _ = _router(chat_client, snapshot, _Recorder("p", log))
        await router.handle(MessageEvent(channel="D1", user="U1", text="ping"))
        await router.drain()
        assert log == []


class TestInteractions:
    async def _question(self, callbacks: CallbackRegistry, chat_client: AsyncMock):
        messenger = Messenger("D1", chat_client, callbacks, response_timeout=0.5)
        msg = messenger.new_message("Pick").add_button("Ping").add_dropdown("Foobar", ["bar", "foo"])
        await msg.send()
        ids = {e.label: e.id for e in msg.elements}
        return messenger, msg, ids

    @pytest.mark.asyncio
    async def test_button_callback_delivers_label(self, chat_client, snapshot) -> None:
        router, _, callbacks = _router(chat_client, snapshot)
        messenger, msg, ids = await self._question(callbacks, chat_client)

        raw = _payload(msg.token, {"type": "button", "name": "Ping", "value": ids["Ping"]})
        assert router.handle_interaction(raw) is True
        assert await messenger.await_response() == (True, "Ping")

    @pytest.mark.asyncio
    async def test_select_callback_uses_first_option(self, chat_client, snapshot) -> None:
        router, _, callbacks = _router(chat_client, snapshot)
        messenger, msg, ids = await self._question(callbacks, chat_client)

        action = {"type": "select", "selected_options": [{"value": ids["foo"]}, {"value": ids["bar"]}]}
        assert router.handle_interaction(_payload(msg.token, action)) is True
        assert await messenger.await_response() == (True, "foo")

    @pytest.mark.asyncio
    async def test_wrong_verification_token_dropped(self, chat_client, snapshot) -> None:
        router, _, callbacks = _router(chat_client, snapshot)
        messenger, msg, ids = await self._question(callbacks, chat_client)

        raw = _payload(msg.token, {"type": "button", "value": ids["Ping"]}, token="forged")
        assert router.handle_interaction(raw) is False
        assert msg.token in callbacks
        assert await messenger.await_response(0.05) == (False, "timeout")

    @pytest.mark.asyncio
    async def test_unconfigured_verification_token_rejects_everything(self, chat_client, snapshot) -> None:
        router, _, callbacks = _router(chat_client, snapshot, token="")
        _, msg, ids = await self._question(callbacks, chat_client)
        raw = _payload(msg.token, {"type": "button", "value": ids["Ping"]}, token="")
        assert router.handle_interaction(raw) is False

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "raw",
        [
            "not json",
            json.dumps({"callback_id": "abc"}),
            json.dumps({"token": VERIFICATION_TOKEN, "callback_id": "abc", "actions": [{"value": "x"}]}),
        ],
    )
    async def test_malformed_payload_dropped(self, chat_client, snapshot, raw) -> None:
        router, _, _ = _router(chat_client, snapshot)
        assert router.handle_interaction(raw) is False

    @pytest.mark.asyncio
    async def test_payload_without_actions_dropped(self, chat_client, snapshot) -> None:
        router, _, _ = _router(chat_client, snapshot)
        raw = json.dumps({"token": VERIFICATION_TOKEN, "callback_id": "abc", "actions": []})
        assert router.handle_interaction(raw) is False

    @pytest.mark.asyncio
    async def test_unsupported_action_type_dropped(self, chat_client, snapshot) -> None:
        router, _, callbacks = _router(chat_client, snapshot)
        _, msg, ids = await self._question(callbacks, chat_client)
        raw = _payload(msg.token, {"type": "datepicker", "value": ids["Ping"]})
        assert router.handle_interaction(raw) is False
        assert msg.token in callbacks

    @pytest.mark.asyncio
    async def test_no_callback_value_ignored(self, chat_client, snapshot) -> None:
        router, _, callbacks = _router(chat_client, snapshot)
        _, msg, _ = await self._question(callbacks, chat_client)
        raw = _payload(msg.token, {"type": "button", "value": "NOCALLBACK"})
        assert router.handle_interaction(raw) is False
        assert msg.token in callbacks

    @pytest.mark.asyncio
    async def test_stale_token_dropped(self, chat_client, snapshot) -> None:
        router, _, _ = _router(chat_client, snapshot)
        raw = _payload("gone1234", {"type": "button", "value": "whatever"})
        assert router.handle_interaction(raw) is False
