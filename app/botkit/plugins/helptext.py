"""Answers common questions without bothering people."""

from __future__ import annotations

import re

from ..messaging.conversations import ConversationTopic
from ..messaging.incoming import IncomingMessage
from ..messaging.messenger import Messenger
from ..messaging.outgoing import Severity
from ..registries.plugins import BotPlugin, PluginConfig

NETWORK_DRIVE_TEXT = (
    "*On Windows*:\n"
    "• Open a File Explorer window.\n"
    "• Right-click on 'This PC' and then select 'Map Network Drive...'.\n"
    "• Enter '\\\\mefile4.me.gatech.edu\\Research\\GTSR' into the 'Folder:' field and then click 'Finish'.\n"
    "• Enter your GT Prism ID as 'AD\\<username>' (e.g. 'AD\\gburdell3') and your password.\n\n"
    "*On OSX*:\n"
    "• From the desktop, click 'Go' in the menu bar and then 'Connect to Server'.\n"
    "• Enter 'cifs://mefile4.me.gatech.edu/Research/GTSR' into the 'Server Address:' field and then click 'Connect'.\n"
    "• Enter your GT Prism ID (e.g. 'gburdell3') and your password."
)

FAQ: dict[str, str] = {
    "How do I get on the network drive?": NETWORK_DRIVE_TEXT,
    "Where are meetings held?": "General meetings are posted in #general every week.",
}

_NETWORK_DRIVE_RE = re.compile(r"\b(network|shared)\s+drive\b", re.IGNORECASE)


def asks_about_network_drive(text: str) -> bool:
    return bool(_NETWORK_DRIVE_RE.search(text))


class HelpTextPlugin(BotPlugin):
    def init(self) -> PluginConfig:
        return PluginConfig(
            name="Help Text",
            description="Let users get basic help information without bothering people",
            version="1.0",
            topics=[ConversationTopic(id="faq", label="FAQ", action=self.faq)],
        )

    async def parse_message(self, msg: IncomingMessage, messenger: Messenger) -> None:
        if asks_about_network_drive(msg.text):
            await messenger.new_message(NETWORK_DRIVE_TEXT).send()

    async def faq(self, messenger: Messenger) -> None:
        await messenger.new_message("What would you like to know?").add_dropdown(
            "Questions", list(FAQ)
        ).send()

        ok, question = await messenger.await_response()
        if not ok:
            await messenger.update_last_message("No question picked, maybe next time.", Severity.WARNING)
            return

        answer = FAQ.get(question)
        if answer is None:
            await messenger.update_last_message("I don't have an answer for that one yet.", Severity.DANGER)
            return

        await messenger.update_last_message(question, Severity.GOOD)
        await messenger.new_message(answer).send()
