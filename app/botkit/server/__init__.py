"""Server module -- bot application, serve loop, and the callback endpoint."""

from __future__ import annotations

from .app import BotApp, run

__all__ = ["BotApp", "run"]
