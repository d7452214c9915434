"""Plugin registry -- collects plugins and the topics and jobs they declare.

Registration is all-or-nothing per plugin and only allowed before the bot
starts serving. Duplicate topic labels or job IDs are programming mistakes
that would make routing ambiguous, so they raise
``FatalConfigurationError`` rather than being skipped.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any

from ..errors import FatalConfigurationError
from ..messaging.conversations import ConversationTopic
from ..messaging.incoming import IncomingMessage
from ..messaging.messenger import Messenger
from ..scheduler import CronJob

logger = logging.getLogger(__name__)


@dataclass
class PluginConfig:
    name: str
    description: str = ""
    version: str = "1.0"
    topics: list[ConversationTopic] = field(default_factory=list)
    jobs: list[CronJob] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "description": self.description,
            "version": self.version,
            "topics": [t.label for t in self.topics],
            "jobs": [j.id for j in self.jobs],
        }


class BotPlugin:
    """Base class for plugins.

    ``init`` is called once at registration and must return the complete
    configuration. ``parse_message`` is called for every message in a
    channel the bot is a member of. ``teardown`` runs on shutdown.
    """

    def init(self) -> PluginConfig:
        raise NotImplementedError

    async def parse_message(self, msg: IncomingMessage, messenger: Messenger) -> None:
        return None

    def teardown(self) -> None:
        return None

    @property
    def name(self) -> str:
        return type(self).__name__


class PluginRegistry:
    def __init__(self) -> None:
        self._plugins: list[BotPlugin] = []
        self._configs: dict[int, PluginConfig] = {}
        self._topics: dict[str, ConversationTopic] = {}
        self._jobs: dict[str, CronJob] = {}
        self._sealed = False

    @property
    def plugins(self) -> tuple[BotPlugin, ...]:
        return tuple(self._plugins)

    @property
    def topics(self) -> Mapping[str, ConversationTopic]:
        return MappingProxyType(self._topics)

    @property
    def jobs(self) -> Mapping[str, CronJob]:
        return MappingProxyType(self._jobs)

    @property
    def sealed(self) -> bool:
        return self._sealed

    def seal(self) -> None:
        self._sealed = True

    def config_for(self, plugin: BotPlugin) -> PluginConfig | None:
        return self._configs.get(id(plugin))

    def sorted_topic_labels(self) -> list[str]:
        return sorted(self._topics, key=str.lower)

    def add(self, plugin: BotPlugin) -> PluginConfig:
        if self._sealed:
            raise FatalConfigurationError("Register plugins before starting the bot")

        config = plugin.init()
        self._check_unique(config)

        for topic in config.topics:
            self._topics[topic.label] = topic
        for job in config.jobs:
            self._jobs[job.id] = job
        self._plugins.append(plugin)
        self._configs[id(plugin)] = config

        logger.info(
            "Registered plugin %s v%s (%d topic(s), %d job(s))",
            config.name, config.version, len(config.topics), len(config.jobs),
        )
        return config

    def teardown_all(self) -> None:
        for plugin in self._plugins:
            try:
                plugin.teardown()
            except Exception:
                logger.exception("Teardown failed for plugin %s", plugin.name)

    def _check_unique(self, config: PluginConfig) -> None:
        labels: set[str] = set()
        for topic in config.topics:
            if topic.label in self._topics or topic.label in labels:
                raise FatalConfigurationError(
                    f"Can't load multiple plugins that use the same conversation label: {topic.label!r}"
                )
            labels.add(topic.label)

        ids: set[str] = set()
        for job in config.jobs:
            if job.id in self._jobs or job.id in ids:
                raise FatalConfigurationError(
                    f"Can't load multiple plugins that use the same cron ID: {job.id!r}"
                )
            ids.add(job.id)
