"""Reacts to thoughtful "hmm"s in channels."""

from __future__ import annotations

import re

from ..messaging.incoming import IncomingMessage
from ..messaging.messenger import Messenger
from ..registries.plugins import BotPlugin, PluginConfig

_HMM_RE = re.compile(r"(h)+(m)+", re.IGNORECASE)


def matches_hmm(text: str) -> bool:
    return bool(_HMM_RE.search(text))


class ReactionPlugin(BotPlugin):
    def __init__(self, emoji: str = "hmm") -> None:
        self._emoji = emoji

    def init(self) -> PluginConfig:
        return PluginConfig(
            name="Reactions",
            description="Reacts to messages the way the team would",
            version="1.0",
        )

    async def parse_message(self, msg: IncomingMessage, messenger: Messenger) -> None:
        if matches_hmm(msg.text):
            await msg.add_reaction(self._emoji)
