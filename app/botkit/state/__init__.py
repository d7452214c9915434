"""In-memory state shared across the bot."""

__all__ = ["Channel", "Directory", "DirectorySnapshot", "User"]
