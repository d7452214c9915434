"""Per-user conversation serializer and the built-in topic menu.

Every known user gets one long-lived worker task that pulls conversations
off that user's bounded queue and runs them to completion one at a time.
Different users run concurrently; a single user never sees two
conversations interleave. While a conversation is running, direct messages
from its user are answers to it; otherwise they open the topic menu.
"""

from __future__ import annotations

import asyncio
import logging
import threading
from collections.abc import Awaitable, Callable, Iterable, Mapping
from dataclasses import dataclass

from ..errors import FatalConfigurationError
from ..util.result import Result
from .messenger import Messenger
from .outgoing import Severity

logger = logging.getLogger(__name__)

ConversationAction = Callable[[Messenger], Awaitable[None]]
FatalHandler = Callable[[FatalConfigurationError], None]

DEFAULT_QUEUE_SIZE = 10

MENU_PROMPT = "How can I help?"
LAPSED_TEXT = "This conversation timed out. Message me again whenever you need something."


@dataclass(frozen=True)
class ConversationTopic:
    """A user-selectable entry point into a conversation, declared by a plugin.

    *label* is what the user sees in the topic menu and must be unique
    across all plugins. *action* must be safe to run concurrently for
    different users.
    """

    id: str
    label: str
    action: ConversationAction


@dataclass
class Conversation:
    user: str
    action: ConversationAction
    messenger: Messenger


class UserConversations:
    """One user's queue plus the worker that drains it."""

    def __init__(self, user: str, queue_size: int = DEFAULT_QUEUE_SIZE) -> None:
        self.user = user
        self._queue: asyncio.Queue[Conversation] = asyncio.Queue(maxsize=queue_size)
        self._current: Conversation | None = None
        self._task: asyncio.Task[None] | None = None

    @property
    def current(self) -> Conversation | None:
        return self._current

    @property
    def pending(self) -> int:
        return self._queue.qsize()

    @property
    def idle(self) -> bool:
        return self._current is None and self._queue.empty()

    def start(self, on_fatal: FatalHandler | None = None) -> None:
        if self._task is None or self._task.done():
            self._task = asyncio.get_running_loop().create_task(
                self._run(on_fatal), name=f"conversations:{self.user}"
            )

    def stop(self) -> asyncio.Task[None] | None:
        task, self._task = self._task, None
        if task is not None:
            task.cancel()
        return task

    def enqueue(self, convo: Conversation) -> Result:
        try:
            self._queue.put_nowait(convo)
        except asyncio.QueueFull:
            logger.warning("[convo] queue full for %s, rejecting conversation", self.user)
            return Result.fail(f"conversation queue for {self.user} is full")
        return Result.ok(f"queued at position {self._queue.qsize()}")

    async def _run(self, on_fatal: FatalHandler | None) -> None:
        while True:
            convo = await self._queue.get()
            self._current = convo
            logger.info("[convo] %s: conversation started", self.user)
            try:
                await convo.action(convo.messenger)
            except FatalConfigurationError as exc:
                if on_fatal is None:
                    raise
                on_fatal(exc)
            except Exception:
                logger.exception("[convo] %s: conversation failed", self.user)
            finally:
                convo.messenger.close()
                self._current = None
                self._queue.task_done()
            logger.info("[convo] %s: conversation finished", self.user)


class ConversationManager:
    """Owns the per-user workers, keyed by user name.

    *scope_for* builds the messenger a new conversation with a user runs
    in. *default_conversation*, when set, produces the conversation that a
    direct message from an idle user starts.
    """

    def __init__(
        self,
        scope_for: Callable[[str], Messenger],
        *,
        queue_size: int = DEFAULT_QUEUE_SIZE,
        on_fatal: FatalHandler | None = None,
    ) -> None:
        self._scope_for = scope_for
        self._queue_size = queue_size
        self._on_fatal = on_fatal
        self._lock = threading.Lock()
        self._users: dict[str, UserConversations] = {}
        self.default_conversation: Callable[[str], ConversationAction] | None = None

    def known_users(self) -> list[str]:
        with self._lock:
            return sorted(self._users)

    def sync_users(self, names: Iterable[str]) -> None:
        """Start workers for new users and stop those no longer listed."""
        wanted = set(names)
        with self._lock:
            removed = [self._users.pop(n) for n in list(self._users) if n not in wanted]
            for name in wanted - self._users.keys():
                worker = UserConversations(name, self._queue_size)
                worker.start(self._on_fatal)
                self._users[name] = worker
        for worker in removed:
            logger.info("[convo] %s left the directory, stopping worker", worker.user)
            worker.stop()

    def is_running(self, user: str) -> bool:
        with self._lock:
            worker = self._users.get(user)
            return worker is not None and worker.current is not None

    def enqueue(self, user: str, action: ConversationAction) -> Result:
        with self._lock:
            return self._enqueue_locked(user, action)

    def dispatch_direct_message(self, user: str, text: str) -> bool:
        """Route a DM: answer to the running conversation, or open the menu."""
        with self._lock:
            worker = self._users.get(user)
            if worker is None:
                logger.warning("[convo] direct message from unknown user %s", user)
                return False
            if worker.current is not None:
                return worker.current.messenger.deliver(text)
            if not worker.idle:
                logger.debug("[convo] %s has a conversation starting, dropping message", user)
                return False
            if self.default_conversation is None:
                return False
            return bool(self._enqueue_locked(user, self.default_conversation(user)))

    async def shutdown(self) -> None:
        with self._lock:
            workers = list(self._users.values())
            self._users.clear()
        tasks = [t for t in (w.stop() for w in workers) if t is not None]
        await asyncio.gather(*tasks, return_exceptions=True)

    def _enqueue_locked(self, user: str, action: ConversationAction) -> Result:
        worker = self._users.get(user)
        if worker is None:
            return Result.fail(f"unknown user: {user}")
        convo = Conversation(user=user, action=action, messenger=self._scope_for(user))
        return worker.enqueue(convo)


class TopicMenu:
    """The "what can I help you with" conversation.

    Offers every registered topic in a dropdown, then queues the chosen
    topic's conversation for the same user. The chosen conversation starts
    once the menu's own conversation has returned.
    """

    def __init__(
        self,
        topics: Mapping[str, ConversationTopic],
        conversations: ConversationManager,
        greeting: str,
    ) -> None:
        self._topics = topics
        self._conversations = conversations
        self._greeting = greeting

    def labels(self) -> list[str]:
        return sorted(self._topics, key=str.lower)

    def conversation_for(self, user: str) -> ConversationAction:
        async def select_topic(messenger: Messenger) -> None:
            await self._run(user, messenger)

        return select_topic

    def _match(self, answer: str) -> ConversationTopic | None:
        topic = self._topics.get(answer)
        if topic is not None:
            return topic
        folded = answer.strip().casefold()
        return next((t for label, t in self._topics.items() if label.casefold() == folded), None)

    async def _run(self, user: str, messenger: Messenger) -> None:
        labels = self.labels()
        if not labels:
            return

        await messenger.new_message(self._greeting).add_dropdown(MENU_PROMPT, labels).send()
        ok, answer = await messenger.await_response()
        if not ok:
            await messenger.update_last_message(LAPSED_TEXT, Severity.WARNING)
            return

        topic = self._match(answer)
        if topic is None:
            await messenger.update_last_message(
                f"Sorry, I don't know anything about {answer!r}.", Severity.DANGER
            )
            return

        await messenger.update_last_message(topic.label, Severity.GOOD)
        result = self._conversations.enqueue(user, topic.action)
        if not result:
            logger.warning("[convo] could not start topic %s for %s: %s", topic.id, user, result.message)
