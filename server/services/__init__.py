"""Services package for Kaboo game logic."""

from .game_service import GameService, empty_game_view

__all__ = [
    "GameService",
    "empty_game_view",
]
