"""Helps plugin developers see what is going on inside the bot."""

from __future__ import annotations

import logging

from ..messaging.conversations import ConversationTopic
from ..messaging.incoming import IncomingMessage
from ..messaging.messenger import GlobalMessenger, Messenger
from ..messaging.outgoing import Severity
from ..registries.plugins import BotPlugin, PluginConfig
from ..scheduler import CronJob

logger = logging.getLogger(__name__)


class SysAdminPlugin(BotPlugin):
    def __init__(self, poke_user: str = "", poke_spec: str = "@every 15m") -> None:
        self._poke_user = poke_user
        self._poke_spec = poke_spec

    def init(self) -> PluginConfig:
        jobs = []
        if self._poke_user:
            jobs.append(CronJob(id="poker", name="Developer Poker", spec=self._poke_spec, action=self.poke))

        return PluginConfig(
            name="SysAdmin Bot",
            description="Helps plugin developers see what is going on inside the bot",
            version="1.0",
            topics=[ConversationTopic(id="debug", label="debug", action=self.debugger)],
            jobs=jobs,
        )

    async def parse_message(self, msg: IncomingMessage, messenger: Messenger) -> None:
        if msg.text.strip().lower() == "ping":
            await messenger.new_message("pong").send()

    async def debugger(self, messenger: Messenger) -> None:
        msg = messenger.new_message("What's up hackerman?")
        msg.add_button("Ping").add_button("Pong")
        msg.add_dropdown("Foobar", ["bar", "foo"])
        await msg.send()

        ok, answer = await messenger.await_response()
        if not ok:
            await messenger.new_message("Really? You ignoring me?").send()
            return

        await messenger.update_last_message(f"{answer}, really?", Severity.GOOD)
        await messenger.new_message(
            "See? Now I can do stuff with your response, including ask another question"
        ).send()

    async def poke(self, gm: GlobalMessenger) -> None:
        async def code_faster(messenger: Messenger) -> None:
            await messenger.new_message("CODE FASTER!").send()

        result = gm.new_conversation(self._poke_user, code_faster)
        if not result:
            logger.info("Could not poke %s: %s", self._poke_user, result.message)
