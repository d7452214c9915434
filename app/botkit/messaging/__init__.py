"""Messaging engine -- messengers, callbacks, conversations, and routing."""

__all__ = [
    "CallbackRegistry",
    "ChatClient",
    "ConversationManager",
    "ConversationTopic",
    "EventRouter",
    "GlobalMessenger",
    "IncomingMessage",
    "Messenger",
    "OutgoingMessage",
    "ResponseMailbox",
    "Severity",
    "TopicMenu",
]
