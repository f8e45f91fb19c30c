"""
Centralized configuration for the Kaboo game server.

Configuration is loaded from (in order of precedence):
1. Environment variables
2. .env file (if exists)
3. Default values

Usage:
    from config import config
    print(config.REDIS_URL)
    print(config.card_values)
"""

import os
from dataclasses import dataclass, field
from pathlib import Path

from dotenv import load_dotenv

# Load .env file if it exists
env_path = Path(__file__).parent.parent / ".env"
if env_path.exists():
    load_dotenv(env_path)


def get_env(key: str, default: str = "") -> str:
    """Get environment variable with default."""
    return os.environ.get(key, default)


def get_env_bool(key: str, default: bool = False) -> bool:
    """Get boolean environment variable."""
    val = os.environ.get(key, "").lower()
    if val in ("true", "1", "yes", "on"):
        return True
    if val in ("false", "0", "no", "off"):
        return False
    return default


def get_env_int(key: str, default: int = 0) -> int:
    """Get integer environment variable."""
    try:
        return int(os.environ.get(key, str(default)))
    except ValueError:
        return default


@dataclass
class CardValues:
    """
    Card point values - the single source of truth.

    Red royalty (hearts/diamonds J, Q, K) is the best card in the game,
    black royalty the worst.
    """
    JOKER: int = -1
    ACE: int = 1
    RED_ROYALTY: int = 0
    BLACK_JACK: int = 11
    BLACK_QUEEN: int = 12
    BLACK_KING: int = 13

    # Added to the caller's round score when Kaboo fails
    KABOO_PENALTY: int = 20


@dataclass
class GameDefaults:
    """Defaults for the per-game settings record."""
    turn_timer: str = "30"
    matts_pairs_rule: bool = False
    use_effect_cards: bool = True
    num_players: int = 4
    bot_difficulty: str = "medium"
    target_score: str = "100"


@dataclass
class ServerConfig:
    """Server configuration."""
    LOG_LEVEL: str = "INFO"
    ENVIRONMENT: str = "development"

    # Redis holds the serialized game state and carries change notifications
    REDIS_URL: str = "redis://localhost:6379/0"
    SERVER_ID: str = "default"
    GAME_TTL_HOURS: int = 24

    MIN_PLAYERS: int = 2
    MAX_PLAYERS: int = 8

    # Enables SET_TEST_DECK moves. Never turn this on for real games.
    ALLOW_TEST_ACTIONS: bool = False

    card_values: CardValues = field(default_factory=CardValues)
    game_defaults: GameDefaults = field(default_factory=GameDefaults)

    @classmethod
    def from_env(cls) -> "ServerConfig":
        """Load configuration from environment variables."""
        return cls(
            LOG_LEVEL=get_env("LOG_LEVEL", "INFO"),
            ENVIRONMENT=get_env("ENVIRONMENT", "development"),
            REDIS_URL=get_env("REDIS_URL", "redis://localhost:6379/0"),
            SERVER_ID=get_env("SERVER_ID", "default"),
            GAME_TTL_HOURS=get_env_int("GAME_TTL_HOURS", 24),
            MIN_PLAYERS=get_env_int("MIN_PLAYERS", 2),
            MAX_PLAYERS=get_env_int("MAX_PLAYERS", 8),
            ALLOW_TEST_ACTIONS=get_env_bool("ALLOW_TEST_ACTIONS", False),
            card_values=CardValues(
                JOKER=get_env_int("CARD_JOKER", -1),
                ACE=get_env_int("CARD_ACE", 1),
                RED_ROYALTY=get_env_int("CARD_RED_ROYALTY", 0),
                BLACK_JACK=get_env_int("CARD_BLACK_JACK", 11),
                BLACK_QUEEN=get_env_int("CARD_BLACK_QUEEN", 12),
                BLACK_KING=get_env_int("CARD_BLACK_KING", 13),
                KABOO_PENALTY=get_env_int("KABOO_PENALTY", 20),
            ),
            game_defaults=GameDefaults(
                turn_timer=get_env("DEFAULT_TURN_TIMER", "30"),
                matts_pairs_rule=get_env_bool("DEFAULT_MATTS_PAIRS_RULE", False),
                use_effect_cards=get_env_bool("DEFAULT_USE_EFFECT_CARDS", True),
                num_players=get_env_int("DEFAULT_NUM_PLAYERS", 4),
                bot_difficulty=get_env("DEFAULT_BOT_DIFFICULTY", "medium"),
                target_score=get_env("DEFAULT_TARGET_SCORE", "100"),
            ),
        )


# Global config instance - loaded once at module import
config = ServerConfig.from_env()


def reload_config() -> ServerConfig:
    """Reload configuration from environment (useful for testing)."""
    global config
    config = ServerConfig.from_env()
    return config
