"""Bot application -- wires the engine together and runs the serve loop."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Iterable

from aiohttp import web

from .. import __version__
from ..config.settings import Settings, cfg
from ..errors import FatalConfigurationError
from ..messaging.callbacks import CallbackRegistry
from ..messaging.client import ChatClient
from ..messaging.conversations import ConversationManager, TopicMenu
from ..messaging.messenger import GlobalMessenger, Messenger
from ..messaging.router import EventRouter
from ..registries.plugins import BotPlugin, PluginConfig, PluginRegistry
from ..scheduler import SchedulerBridge
from ..state.directory import Directory
from .callback_endpoint import CallbackEndpoint

logger = logging.getLogger(__name__)

_SHUTDOWN_GRACE_SECONDS = 5.0


class BotApp:
    """Top-level bot. Register every plugin, then ``await serve()``."""

    def __init__(self, client: ChatClient, settings: Settings | None = None) -> None:
        self._settings = settings or cfg
        self.client = client

        self.directory = Directory()
        self.callbacks = CallbackRegistry()
        self.plugins = PluginRegistry()
        self.conversations = ConversationManager(
            self._conversation_scope,
            queue_size=self._settings.conversation_queue_size,
            on_fatal=self._fatal,
        )
        self.messenger = GlobalMessenger(
            client,
            self.callbacks,
            self.directory,
            self.conversations,
            response_timeout=self._settings.response_timeout,
        )
        self.menu = TopicMenu(self.plugins.topics, self.conversations, self._settings.greeting)
        self.conversations.default_conversation = self.menu.conversation_for
        self.router = EventRouter(
            client,
            self.directory,
            self.plugins,
            self.conversations,
            self.callbacks,
            self.messenger,
            verification_token=self._settings.verification_token,
            on_fatal=self._fatal,
        )
        self.scheduler = SchedulerBridge(self.messenger, on_fatal=self._fatal)

        self._running = False
        self._stopped: asyncio.Event | None = None
        self._fatal_error: FatalConfigurationError | None = None

    @property
    def running(self) -> bool:
        return self._running

    def add_plugin(self, plugin: BotPlugin) -> PluginConfig:
        if self._running:
            raise FatalConfigurationError("Register plugins before starting the bot")
        return self.plugins.add(plugin)

    def create_web_app(self) -> web.Application:
        app = web.Application()
        CallbackEndpoint(self.router, self._settings.callback.path).register(app.router)
        app.router.add_get("/health", self._health)
        return app

    def stop(self) -> None:
        if self._stopped is not None:
            self._stopped.set()

    async def serve(self) -> None:
        """Serve until the event stream ends, credentials are rejected, or a
        fatal configuration error is reported. Fatal errors are re-raised."""
        if self._running:
            raise FatalConfigurationError(
                "There is already an instance of this bot running! Create a new instance to run two concurrently!"
            )
        self._running = True
        self.plugins.seal()
        self._stopped = asyncio.Event()

        server = self._settings.callback
        runner = web.AppRunner(self.create_web_app())
        await runner.setup()
        try:
            await web.TCPSite(runner, server.host, server.port).start()
            logger.info("Interactive callbacks on http://%s:%d%s", server.host, server.port, server.path)
            self.scheduler.start(self.plugins.jobs.values())
            await self._run_until_stopped()
        finally:
            await self._shutdown(runner)

        if self._fatal_error is not None:
            raise self._fatal_error

    async def _run_until_stopped(self) -> None:
        assert self._stopped is not None
        consumer = asyncio.create_task(self._consume_events(), name="events")
        stopper = asyncio.create_task(self._stopped.wait(), name="stop")
        try:
            done, _ = await asyncio.wait({consumer, stopper}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            consumer.cancel()
            stopper.cancel()
        if consumer in done:
            consumer.result()

    async def _consume_events(self) -> None:
        async for event in self.client.events():
            if not await self.router.handle(event):
                return
        logger.info("[bot] event stream closed")

    async def _shutdown(self, runner: web.AppRunner) -> None:
        self.scheduler.shutdown()
        await self.router.drain(timeout=_SHUTDOWN_GRACE_SECONDS)
        await self.conversations.shutdown()
        await runner.cleanup()
        self.plugins.teardown_all()
        logger.info("[bot] stopped")

    def _fatal(self, exc: FatalConfigurationError) -> None:
        logger.critical("Fatal configuration error: %s", exc)
        if self._fatal_error is None:
            self._fatal_error = exc
        self.stop()

    def _conversation_scope(self, user: str) -> Messenger:
        return self.messenger.scope(self.directory.im_channel_for(user))

    async def _health(self, _req: web.Request) -> web.Response:
        return web.json_response({
            "status": "ok",
            "version": __version__,
            "users": len(self.conversations.known_users()),
            "pending_callbacks": len(self.callbacks),
            "plugins": [p.name for p in self.plugins.plugins],
        })


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------


def run(client: ChatClient, plugins: Iterable[BotPlugin], settings: Settings | None = None) -> None:
    """Blocking entry point for a connection layer that supplies *client*."""
    settings = settings or cfg
    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s  %(name)s  %(levelname)s  %(message)s",
    )
    bot = BotApp(client, settings)
    try:
        for plugin in plugins:
            bot.add_plugin(plugin)
        asyncio.run(bot.serve())
    except FatalConfigurationError as exc:
        logger.critical("Stopping: %s", exc)
        raise SystemExit(1) from exc
    except KeyboardInterrupt:
        pass
