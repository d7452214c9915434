"""Plugin registry."""

__all__ = [
    "BotPlugin",
    "PluginConfig",
    "PluginRegistry",
]
