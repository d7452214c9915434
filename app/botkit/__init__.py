"""botkit -- plugin chat bot with per-user conversations and interactive replies."""

__version__ = "0.3.0"
