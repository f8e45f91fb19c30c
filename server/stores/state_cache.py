"""
Redis-backed live game state store.

Each game is stored as one JSON document holding the full (unsanitized)
GameState and a version counter. Writes carry the version the writer
read; a write against a newer version is refused with ConcurrencyError,
so two servers applying moves to the same game can't silently overwrite
each other.

Key patterns:
- kaboo:game:{game_id}    -> JSON {"version": int, "state": {...}}
- kaboo:room:{room_code}  -> String (game id currently played in the room)
- kaboo:games:active      -> Set (game ids with stored state)
"""

import json
import logging
from dataclasses import dataclass
from datetime import timedelta
from typing import Optional

import redis.asyncio as redis
from redis.exceptions import WatchError

from config import config

logger = logging.getLogger(__name__)


class ConcurrencyError(Exception):
    """Raised when optimistic concurrency check fails."""
    pass


@dataclass
class CachedGame:
    """A stored game state together with its version."""

    game_id: str
    version: int
    state: dict


class StateCache:
    """Redis-backed live game state store with optimistic versioning."""

    # Key patterns
    GAME_KEY = "kaboo:game:{game_id}"
    ROOM_KEY = "kaboo:room:{room_code}"
    ACTIVE_GAMES_KEY = "kaboo:games:active"

    def __init__(self, redis_client: redis.Redis, ttl: Optional[timedelta] = None):
        """
        Initialize state cache with Redis client.

        Args:
            redis_client: Async Redis client.
            ttl: Expiry for idle games. Defaults to GAME_TTL_HOURS.
        """
        self.redis = redis_client
        self.ttl = ttl or timedelta(hours=config.GAME_TTL_HOURS)

    @classmethod
    async def create(cls, redis_url: str) -> "StateCache":
        """
        Create a StateCache with a new Redis connection.

        Args:
            redis_url: Redis connection URL.

        Returns:
            Configured StateCache instance.
        """
        client = redis.from_url(redis_url, decode_responses=False)
        # Test connection
        await client.ping()
        logger.info("StateCache connected to Redis")
        return cls(client)

    async def close(self) -> None:
        """Close the Redis connection."""
        await self.redis.aclose()

    @property
    def _ttl_seconds(self) -> int:
        return int(self.ttl.total_seconds())

    # -------------------------------------------------------------------------
    # Game State Operations
    # -------------------------------------------------------------------------

    async def get_game(self, game_id: str) -> Optional[CachedGame]:
        """
        Get a stored game with its version.

        Args:
            game_id: Game id.

        Returns:
            CachedGame, or None if not found (never created or expired).
        """
        data = await self.redis.get(self.GAME_KEY.format(game_id=game_id))
        if not data:
            return None
        if isinstance(data, bytes):
            data = data.decode()
        doc = json.loads(data)
        return CachedGame(game_id=game_id, version=doc["version"], state=doc["state"])

    async def get_game_state(self, game_id: str) -> Optional[dict]:
        """
        Get the full game state dict.

        Args:
            game_id: Game id.

        Returns:
            Game state dict, or None if not found.
        """
        cached = await self.get_game(game_id)
        return cached.state if cached else None

    async def save_game_state(
        self,
        game_id: str,
        state: dict,
        expected_version: int,
    ) -> int:
        """
        Write a game state if nobody else has written since it was read.

        Args:
            game_id: Game id.
            state: Full game state dict (will be JSON serialized).
            expected_version: Version the caller read, or 0 to create.

        Returns:
            The new version.

        Raises:
            ConcurrencyError: If the stored version differs from expected_version.
        """
        key = self.GAME_KEY.format(game_id=game_id)
        new_version = expected_version + 1

        async with self.redis.pipeline(transaction=True) as pipe:
            try:
                await pipe.watch(key)
                raw = await pipe.get(key)
                current = 0
                if raw:
                    if isinstance(raw, bytes):
                        raw = raw.decode()
                    current = json.loads(raw)["version"]
                if current != expected_version:
                    raise ConcurrencyError(
                        f"Game {game_id} is at version {current}, expected {expected_version}"
                    )

                pipe.multi()
                pipe.set(
                    key,
                    json.dumps({"version": new_version, "state": state}),
                    ex=self._ttl_seconds,
                )
                pipe.sadd(self.ACTIVE_GAMES_KEY, game_id)
                await pipe.execute()
            except WatchError:
                raise ConcurrencyError(f"Game {game_id} was modified concurrently")

        logger.debug(f"Saved game {game_id} at version {new_version}")
        return new_version

    async def delete_game_state(self, game_id: str) -> None:
        """
        Delete game state.

        Args:
            game_id: Game id.
        """
        pipe = self.redis.pipeline()
        pipe.delete(self.GAME_KEY.format(game_id=game_id))
        pipe.srem(self.ACTIVE_GAMES_KEY, game_id)
        await pipe.execute()
        logger.debug(f"Deleted game {game_id}")

    async def touch_game(self, game_id: str) -> None:
        """
        Refresh game TTL on any activity.

        Args:
            game_id: Game id to refresh.
        """
        await self.redis.expire(self.GAME_KEY.format(game_id=game_id), self._ttl_seconds)

    async def get_active_games(self) -> set[str]:
        """
        Get ids of every game with stored state.

        Returns:
            Set of game ids.
        """
        games = await self.redis.smembers(self.ACTIVE_GAMES_KEY)
        return {g.decode() if isinstance(g, bytes) else g for g in games}

    # -------------------------------------------------------------------------
    # Room Mapping
    # -------------------------------------------------------------------------

    async def set_room_game(self, room_code: str, game_id: str) -> None:
        """
        Record which game a room is playing.

        Args:
            room_code: Lobby room code.
            game_id: Game id.
        """
        await self.redis.set(
            self.ROOM_KEY.format(room_code=room_code),
            game_id,
            ex=self._ttl_seconds,
        )

    async def get_room_game(self, room_code: str) -> Optional[str]:
        """
        Get the game a room is playing.

        Args:
            room_code: Room code to look up.

        Returns:
            Game id, or None if the room has no game.
        """
        game_id = await self.redis.get(self.ROOM_KEY.format(room_code=room_code))
        if game_id is None:
            return None
        return game_id.decode() if isinstance(game_id, bytes) else game_id


# Global state cache instance (initialized on first use)
_state_cache: Optional[StateCache] = None


async def get_state_cache(redis_url: Optional[str] = None) -> StateCache:
    """
    Get or create the global state cache instance.

    Args:
        redis_url: Redis connection URL. Defaults to REDIS_URL.

    Returns:
        StateCache instance.
    """
    global _state_cache
    if _state_cache is None:
        _state_cache = await StateCache.create(redis_url or config.REDIS_URL)
    return _state_cache


async def close_state_cache() -> None:
    """Close the global state cache connection."""
    global _state_cache
    if _state_cache is not None:
        await _state_cache.close()
        _state_cache = None
