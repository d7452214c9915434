"""Interactive callback endpoint -- POST <callback path>.

The platform posts a form with a single ``payload`` field holding the JSON
description of the button or dropdown the user clicked. The caller does not
inspect the response, so drops are only logged.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from aiohttp import web

if TYPE_CHECKING:
    from ..messaging.router import EventRouter

logger = logging.getLogger(__name__)


class CallbackEndpoint:
    def __init__(self, events: EventRouter, path: str = "/") -> None:
        self._events = events
        self._path = path

    @property
    def path(self) -> str:
        return self._path

    def register(self, router: web.UrlDispatcher) -> None:
        router.add_post(self._path, self.handle)

    async def handle(self, req: web.Request) -> web.Response:
        logger.debug(
            "[callback] POST %s from %s | content-type=%s",
            req.path, req.remote, req.headers.get("Content-Type", "?"),
        )
        try:
            form = await req.post()
        except Exception as exc:
            logger.warning("[callback] failed to parse form body: %s", exc)
            return web.json_response(
                {"status": "error", "message": "Invalid form body"},
                status=400,
            )

        payload = form.get("payload")
        if not isinstance(payload, str) or not payload:
            logger.warning("[callback] request without payload field")
            return web.json_response(
                {"status": "error", "message": "Missing payload"},
                status=400,
            )

        delivered = self._events.handle_interaction(payload)
        logger.debug("[callback] handled (delivered=%s)", delivered)
        return web.Response(status=200)
