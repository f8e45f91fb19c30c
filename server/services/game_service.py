"""
Game service: the single entry point for playing Kaboo moves.

For each move the service:
1. Loads the stored state (and its version) from the state cache
2. Checks the actor is seated and the action is allowed on this server
3. Applies the move through actions.process_move() on a copy
4. Persists the new state with an optimistic version check
5. Publishes a card-free notification for other servers
6. Returns the acting player's sanitized view plus any private peek result

Moves for the same game are serialized by a per-game asyncio.Lock within
this process. Across processes the version check is what protects the
state: a writer that lost the race gets GameError("CONFLICT") and should
reload and resubmit.

Viewers can watch a game: whenever it changes, here or on another server,
each watcher is sent its own sanitized view.

Usage:
    service = await GameService.connect()
    await service.start_game("game-123", "ABCD", {"p1": "Alice", "p2": "Bob"})
    await service.watch_game("game-123", "p2", send_to_client)
    response = await service.play_move("game-123", "p1", {"type": "READY_TO_PLAY"})
    await service.close()
"""

import asyncio
import random
from typing import Awaitable, Callable, Optional, Union

from redis.exceptions import RedisError

from actions import SetTestDeck, parse_action, process_move
from config import config
from game import (
    ACTION_NOT_ALLOWED,
    CONFLICT,
    GAME_NOT_FOUND,
    PLAYER_NOT_FOUND,
    GameError,
    GamePhase,
    GameSettings,
    GameState,
)
from logging_config import game_id_var, get_logger, user_id_var
from rules import initialize_game
from sanitizer import state_for_player
from stores.pubsub import GamePubSub, MessageHandler, MessageType, PubSubMessage
from stores.state_cache import (
    CachedGame, ConcurrencyError, StateCache, close_state_cache, get_state_cache,
)

logger = get_logger(__name__)

PlayerSpec = Union[list[str], dict[str, str]]

# Delivers a sanitized view to one viewer: (viewer_id, view)
ViewSender = Callable[[str, dict], Awaitable[None]]


def empty_game_view() -> dict:
    """Placeholder view for a game with no stored state."""
    return {"phase": GamePhase.LOBBY.value, "players": {}}


class GameService:
    """
    Applies moves to stored games.

    Holds no game state of its own; every call reads from and writes to the
    state cache.
    """

    def __init__(
        self,
        state_cache: StateCache,
        pubsub: Optional[GamePubSub] = None,
        rng: Optional[random.Random] = None,
        allow_test_actions: Optional[bool] = None,
    ):
        """
        Initialize the game service.

        Args:
            state_cache: Redis state cache (source of truth for live games).
            pubsub: Optional pub/sub for cross-server notifications.
            rng: Optional random source for deals and reshuffles.
            allow_test_actions: Accept SET_TEST_DECK. Defaults to ALLOW_TEST_ACTIONS.
        """
        self.state_cache = state_cache
        self.pubsub = pubsub
        self.rng = rng
        if allow_test_actions is None:
            allow_test_actions = config.ALLOW_TEST_ACTIONS
        self.allow_test_actions = allow_test_actions
        self._locks: dict[str, asyncio.Lock] = {}
        # game_id -> viewer_id -> (sender, pub/sub handler)
        self._watchers: dict[str, dict[str, tuple[ViewSender, MessageHandler]]] = {}

    @classmethod
    async def connect(cls, redis_url: Optional[str] = None, **kwargs) -> "GameService":
        """
        Build a service on the shared state cache with a running pub/sub listener.

        Args:
            redis_url: Redis connection URL. Defaults to REDIS_URL.
            **kwargs: Passed through to GameService().
        """
        state_cache = await get_state_cache(redis_url)
        pubsub = GamePubSub(state_cache.redis)
        await pubsub.start()
        return cls(state_cache, pubsub, **kwargs)

    async def close(self) -> None:
        """Stop the listener and release the shared state cache."""
        self._watchers.clear()
        if self.pubsub is not None:
            await self.pubsub.stop()
        await close_state_cache()

    def _lock_for(self, game_id: str) -> asyncio.Lock:
        return self._locks.setdefault(game_id, asyncio.Lock())

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    async def start_game(
        self,
        game_id: str,
        room_code: str,
        players: PlayerSpec,
        settings: Union[GameSettings, dict, None] = None,
    ) -> int:
        """
        Deal a new game and persist it.

        Args:
            game_id: Id to store the game under. Must not already exist.
            room_code: Lobby room code.
            players: Player ids, or a {player_id: display name} map.
            settings: Lobby settings (GameSettings or client dict).

        Returns:
            The stored version (1).

        Raises:
            GameError: ACTION_NOT_ALLOWED for bad player counts, CONFLICT if
                the game id is already in use.
        """
        if isinstance(players, dict):
            player_ids, names = list(players), dict(players)
        else:
            player_ids, names = list(players), None
        if not isinstance(settings, GameSettings):
            settings = GameSettings.from_client_data(settings)

        game_token = game_id_var.set(game_id)
        try:
            async with self._lock_for(game_id):
                state = initialize_game(player_ids, room_code, settings, names, self.rng)
                try:
                    version = await self.state_cache.save_game_state(game_id, state.to_dict(), 0)
                except ConcurrencyError as e:
                    raise GameError(CONFLICT, f"Game {game_id} already exists") from e
                await self.state_cache.set_room_game(room_code, game_id)

            logger.with_context(room_code=room_code).info(
                f"Game started with {len(player_ids)} players"
            )
            await self._publish(game_id, MessageType.GAME_STARTED, {
                "version": version,
                "room_code": room_code,
                "player_order": state.player_order,
            })
            await self._push_to_watchers(game_id, state)
            return version
        finally:
            game_id_var.reset(game_token)

    async def close_game(self, game_id: str) -> None:
        """Delete a game's stored state, notify other servers and release watchers."""
        async with self._lock_for(game_id):
            await self.state_cache.delete_game_state(game_id)
        self._locks.pop(game_id, None)
        await self._publish(game_id, MessageType.GAME_CLOSED, {})

        for viewer_id, (send, _) in list(self._watchers.get(game_id, {}).items()):
            await self._send(send, viewer_id, empty_game_view())
            await self.unwatch_game(game_id, viewer_id)

    # -------------------------------------------------------------------------
    # Moves
    # -------------------------------------------------------------------------

    async def play_move(self, game_id: str, actor_id: str, raw_action: dict) -> dict:
        """
        Apply one action for one player.

        Args:
            game_id: Game to act on.
            actor_id: Acting player.
            raw_action: Action payload as received from the client.

        Returns:
            {"game_state": actor's sanitized view, "result": peeked card dict
            or None, "version": new stored version}

        Raises:
            GameError: Rejected move. The stored state is unchanged.
        """
        game_token = game_id_var.set(game_id)
        user_token = user_id_var.set(actor_id)
        try:
            async with self._lock_for(game_id):
                cached = await self._load(game_id)
                state = GameState.from_dict(cached.state)

                if state.get_player(actor_id) is None:
                    raise GameError(PLAYER_NOT_FOUND, f"Player {actor_id} is not in this game")

                action = parse_action(raw_action)
                if isinstance(action, SetTestDeck) and not self.allow_test_actions:
                    raise GameError(ACTION_NOT_ALLOWED, "Test actions are disabled")

                move = process_move(state, action, actor_id, self.rng)

                try:
                    version = await self.state_cache.save_game_state(
                        game_id, move.state.to_dict(), cached.version,
                    )
                except ConcurrencyError as e:
                    raise GameError(CONFLICT, "Game changed while the move was applied; reload and retry") from e

            logger.debug(f"{action.type} applied at version {version}: {move.state.last_action}")

        except GameError as e:
            logger.info(f"Rejected move: {e.message}", extra={"error_code": e.code})
            raise
        except RedisError:
            logger.error(f"State cache error while applying move to {game_id}", exc_info=True)
            raise
        finally:
            user_id_var.reset(user_token)
            game_id_var.reset(game_token)

        await self._publish(game_id, MessageType.GAME_STATE_UPDATE, {
            "version": version,
            "last_action": move.state.last_action,
        })
        if move.state.phase == GamePhase.FINISHED:
            # No more moves can land on a finished match
            self._locks.pop(game_id, None)
            await self._publish(game_id, MessageType.GAME_FINISHED, {
                "version": version,
                "winner_ids": move.state.winner_ids,
            })
        await self._push_to_watchers(game_id, move.state, skip=actor_id)

        return {
            "game_state": state_for_player(move.state, actor_id),
            "result": move.result.to_dict() if move.result else None,
            "version": version,
        }

    async def get_game_state(self, game_id: str, viewer_id: Optional[str]) -> dict:
        """
        Get one viewer's sanitized view of a game.

        Args:
            game_id: Game to view.
            viewer_id: Player requesting the view (None for a spectator).

        Returns:
            Sanitized state dict, or a lobby placeholder if nothing is stored.
        """
        cached = await self.state_cache.get_game(game_id)
        if cached is None:
            return empty_game_view()
        return state_for_player(GameState.from_dict(cached.state), viewer_id)

    # -------------------------------------------------------------------------
    # Watchers
    # -------------------------------------------------------------------------

    async def watch_game(self, game_id: str, viewer_id: str, send: ViewSender) -> None:
        """
        Send viewer_id its sanitized view every time the game changes.

        Moves applied by this service are pushed directly. Moves applied
        by other servers arrive as pub/sub notifications, after which the
        view is re-read from the state cache. Watching again replaces the
        previous sender.
        """
        await self.unwatch_game(game_id, viewer_id)

        async def on_notification(message: PubSubMessage) -> None:
            if message.type == MessageType.GAME_FINISHED:
                # The matching GAME_STATE_UPDATE already carried the final state
                return
            if message.type == MessageType.GAME_CLOSED:
                await send(viewer_id, empty_game_view())
                return
            await send(viewer_id, await self.get_game_state(game_id, viewer_id))

        self._watchers.setdefault(game_id, {})[viewer_id] = (send, on_notification)
        if self.pubsub is not None:
            await self.pubsub.subscribe(game_id, on_notification)

    async def unwatch_game(self, game_id: str, viewer_id: str) -> None:
        """Stop sending views of game_id to viewer_id."""
        viewers = self._watchers.get(game_id)
        if not viewers or viewer_id not in viewers:
            return
        _, handler = viewers.pop(viewer_id)
        if not viewers:
            del self._watchers[game_id]
        if self.pubsub is not None:
            await self.pubsub.unsubscribe(game_id, handler)

    async def _push_to_watchers(
        self, game_id: str, state: GameState, skip: Optional[str] = None,
    ) -> None:
        for viewer_id, (send, _) in list(self._watchers.get(game_id, {}).items()):
            if viewer_id != skip:
                await self._send(send, viewer_id, state_for_player(state, viewer_id))

    async def _send(self, send: ViewSender, viewer_id: str, view: dict) -> None:
        """Deliver one view. A broken viewer connection never fails the move."""
        try:
            await send(viewer_id, view)
        except Exception:
            logger.error(f"Failed to send game view to {viewer_id}", exc_info=True)

    # -------------------------------------------------------------------------
    # Internal
    # -------------------------------------------------------------------------

    async def _load(self, game_id: str) -> CachedGame:
        cached = await self.state_cache.get_game(game_id)
        if cached is None:
            raise GameError(GAME_NOT_FOUND, f"Game {game_id} not found")
        return cached

    async def _publish(self, game_id: str, message_type: MessageType, data: dict) -> None:
        """Notify other servers. The move is already stored, so failures are only logged."""
        if self.pubsub is None:
            return
        try:
            await self.pubsub.publish(PubSubMessage(type=message_type, game_id=game_id, data=data))
        except RedisError:
            logger.error(f"Failed to publish {message_type.value} for {game_id}", exc_info=True)
