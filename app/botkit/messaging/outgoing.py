"""Outgoing messages and the interactive elements attached to them.

Each button or dropdown option is given a short random ID. The ID, not the
visible label, travels to the platform as the element's value; the message
keeps the reverse mapping so a callback can be turned back into the label
the user actually picked.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Any

from ..util.ids import NO_CALLBACK, random_id

if TYPE_CHECKING:
    from .messenger import Messenger

BUTTON = "button"
SELECT = "select"


class Severity(str, Enum):
    GOOD = "good"
    WARNING = "warning"
    DANGER = "danger"
    NEUTRAL = "#cccccc"


@dataclass(frozen=True)
class InteractiveElement:
    id: str
    label: str


class OutgoingMessage:
    def __init__(self, text: str, messenger: Messenger) -> None:
        self.text = text
        self.token = NO_CALLBACK
        self.sent = False
        self.handle = ""
        self._messenger = messenger
        self._actions: list[dict[str, Any]] = []
        self._labels: dict[str, str] = {}

    @property
    def interactive(self) -> bool:
        return bool(self._actions)

    @property
    def elements(self) -> list[InteractiveElement]:
        return [InteractiveElement(id=k, label=v) for k, v in self._labels.items()]

    def label_for(self, element_id: str) -> str | None:
        return self._labels.get(element_id)

    def add_button(self, label: str) -> OutgoingMessage:
        self._check_unsent()
        self._actions.append({
            "name": label,
            "text": label,
            "type": BUTTON,
            "value": self._new_element(label),
        })
        return self

    def add_dropdown(self, label: str, options: list[str]) -> OutgoingMessage:
        self._check_unsent()
        if not options:
            raise ValueError("A dropdown needs at least one option")
        self._actions.append({
            "name": label,
            "text": label,
            "type": SELECT,
            "options": [{"text": opt, "value": self._new_element(opt)} for opt in options],
        })
        return self

    def attachments(self) -> list[dict[str, Any]]:
        if not self._actions:
            return []
        return [{
            "fallback": self.text,
            "callback_id": self.token,
            "actions": list(self._actions),
        }]

    async def send(self) -> str:
        """Post the message; returns the platform handle.

        Raises ``RuntimeError`` if the message was already sent or has been
        superseded by a newer message in the same scope.
        """
        self._check_unsent()
        return await self._messenger._send(self)

    def _new_element(self, label: str) -> str:
        element_id = random_id()
        while element_id in self._labels:
            element_id = random_id()
        self._labels[element_id] = label
        return element_id

    def _check_unsent(self) -> None:
        if self.sent:
            raise RuntimeError("message already sent")


def summary_attachment(text: str, severity: Severity) -> list[dict[str, Any]]:
    return [{"fallback": text, "text": text, "color": severity.value}]
