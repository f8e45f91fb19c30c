"""
Redis pub/sub for cross-server game notifications.

Game state lives in the state cache. After a move is persisted, the server
that applied it publishes a small notification on the game's channel.
Other servers watching that game re-read the state from the cache and push
a sanitized view to their own viewers. Notifications never carry card
identities.

Usage:
    pubsub = GamePubSub(redis_client, server_id="server-1")
    await pubsub.start()

    async def on_update(msg: PubSubMessage):
        print(f"Game {msg.game_id} is now at version {msg.data['version']}")

    await pubsub.subscribe("game-123", on_update)
    await pubsub.publish(PubSubMessage(
        type=MessageType.GAME_STATE_UPDATE,
        game_id="game-123",
        data={"version": 7, "last_action": "Drew from deck"},
    ))

    await pubsub.stop()
"""

import asyncio
import json
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Awaitable, Callable, Optional

import redis.asyncio as redis

from config import config

logger = logging.getLogger(__name__)

# Idle wait while no channel is subscribed (redis refuses get_message then)
IDLE_POLL_SECONDS = 0.1


class MessageType(str, Enum):
    """Notifications a server publishes about a game."""

    GAME_STARTED = "game_started"
    GAME_STATE_UPDATE = "game_state_update"
    GAME_FINISHED = "game_finished"
    GAME_CLOSED = "game_closed"


@dataclass
class PubSubMessage:
    """
    One notification on a game channel.

    Attributes:
        type: What happened.
        game_id: Game it happened to.
        data: Card-free payload (version, last_action, winners).
        sender_id: Publishing server, stamped by publish().
    """

    type: MessageType
    game_id: str
    data: dict
    sender_id: Optional[str] = None

    def to_json(self) -> str:
        return json.dumps({
            "type": self.type.value,
            "game_id": self.game_id,
            "data": self.data,
            "sender_id": self.sender_id,
        })

    @classmethod
    def from_json(cls, raw: str) -> "PubSubMessage":
        d = json.loads(raw)
        return cls(
            type=MessageType(d["type"]),
            game_id=d["game_id"],
            data=d.get("data", {}),
            sender_id=d.get("sender_id"),
        )


MessageHandler = Callable[[PubSubMessage], Awaitable[None]]


class GamePubSub:
    """
    Publishes game notifications and fans incoming ones out to handlers.

    Handlers are registered per game. The Redis channel for a game is
    subscribed while at least one handler is registered for it.
    """

    CHANNEL_PREFIX = "kaboo:game:"

    def __init__(self, redis_client: redis.Redis, server_id: Optional[str] = None):
        """
        Args:
            redis_client: Async Redis client.
            server_id: This server's id. Defaults to SERVER_ID.
        """
        self.redis = redis_client
        self.server_id = server_id or config.SERVER_ID
        self.pubsub = redis_client.pubsub()
        self._handlers: dict[str, list[MessageHandler]] = {}
        self._task: Optional[asyncio.Task] = None

    def _channel(self, game_id: str) -> str:
        return f"{self.CHANNEL_PREFIX}{game_id}"

    def _game_id(self, channel: str) -> str:
        return channel[len(self.CHANNEL_PREFIX):]

    @property
    def running(self) -> bool:
        return self._task is not None

    # -------------------------------------------------------------------------
    # Publishing
    # -------------------------------------------------------------------------

    async def publish(self, message: PubSubMessage) -> int:
        """
        Publish a notification on the message's game channel.

        Returns:
            Number of subscribers that received it.
        """
        message.sender_id = self.server_id
        channel = self._channel(message.game_id)
        receivers = await self.redis.publish(channel, message.to_json())
        logger.debug(f"Published {message.type.value} to {channel} ({receivers} receivers)")
        return receivers

    # -------------------------------------------------------------------------
    # Subscriptions
    # -------------------------------------------------------------------------

    async def subscribe(self, game_id: str, handler: MessageHandler) -> None:
        """Call handler for every notification about game_id from other servers."""
        handlers = self._handlers.setdefault(game_id, [])
        if not handlers:
            await self.pubsub.subscribe(self._channel(game_id))
            logger.debug(f"Subscribed to game {game_id}")
        handlers.append(handler)

    async def unsubscribe(self, game_id: str, handler: MessageHandler) -> None:
        """Remove one handler; the channel is dropped with the last one."""
        handlers = self._handlers.get(game_id)
        if not handlers or handler not in handlers:
            return
        handlers.remove(handler)
        if not handlers:
            del self._handlers[game_id]
            await self.pubsub.unsubscribe(self._channel(game_id))
            logger.debug(f"Unsubscribed from game {game_id}")

    # -------------------------------------------------------------------------
    # Listener
    # -------------------------------------------------------------------------

    async def start(self) -> None:
        """Start the background listener task (idempotent)."""
        if self._task is None:
            self._task = asyncio.create_task(self._listen())
            logger.info("GamePubSub listener started")

    async def stop(self) -> None:
        """Cancel the listener, drop all handlers and close the connection."""
        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None

        self._handlers.clear()
        await self.pubsub.aclose()
        logger.info("GamePubSub listener stopped")

    async def _listen(self) -> None:
        while True:
            if not self.pubsub.subscribed:
                await asyncio.sleep(IDLE_POLL_SECONDS)
                continue
            try:
                raw = await self.pubsub.get_message(ignore_subscribe_messages=True, timeout=1.0)
            except redis.ConnectionError as e:
                logger.error(f"PubSub connection error: {e}")
                await asyncio.sleep(1)
                continue
            if raw and raw["type"] == "message":
                await self.dispatch(raw)

    async def dispatch(self, raw: dict) -> None:
        """
        Decode one Redis message and hand it to the game's handlers.

        Messages this server published itself are skipped, as are payloads
        that do not decode. A failing handler is logged and does not stop
        the others.
        """
        channel = raw["channel"]
        if isinstance(channel, bytes):
            channel = channel.decode()
        data = raw["data"]
        if isinstance(data, bytes):
            data = data.decode()

        try:
            message = PubSubMessage.from_json(data)
        except (json.JSONDecodeError, KeyError, ValueError) as e:
            logger.warning(f"Dropped malformed pubsub message on {channel}: {e}")
            return

        if message.sender_id == self.server_id:
            return

        for handler in list(self._handlers.get(self._game_id(channel), [])):
            try:
                await handler(message)
            except Exception:
                logger.error(f"Handler failed for {message.type.value} on {channel}", exc_info=True)
