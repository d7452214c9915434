"""Bundled plugins."""

from __future__ import annotations

from ..config.settings import Settings
from ..registries.plugins import BotPlugin
from .helptext import HelpTextPlugin
from .reactions import ReactionPlugin
from .sysadmin import SysAdminPlugin

__all__ = ["HelpTextPlugin", "ReactionPlugin", "SysAdminPlugin", "bundled_plugins"]


def bundled_plugins(settings: Settings) -> list[BotPlugin]:
    return [
        SysAdminPlugin(poke_user=settings.admin_user),
        HelpTextPlugin(),
        ReactionPlugin(),
    ]
