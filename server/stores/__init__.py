"""Stores package: cross-server relay for UNO rooms."""

from .pubsub import GamePubSub, PubSubMessage, MessageType, get_pubsub, close_pubsub

__all__ = [
    "GamePubSub",
    "PubSubMessage",
    "MessageType",
    "get_pubsub",
    "close_pubsub",
]
