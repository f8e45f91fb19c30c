"""Stores package for Kaboo game persistence."""

from .state_cache import StateCache, CachedGame, ConcurrencyError, get_state_cache, close_state_cache
from .pubsub import GamePubSub, PubSubMessage, MessageType

__all__ = [
    # State cache
    "StateCache",
    "CachedGame",
    "ConcurrencyError",
    "get_state_cache",
    "close_state_cache",
    # Pub/sub
    "GamePubSub",
    "PubSubMessage",
    "MessageType",
]
