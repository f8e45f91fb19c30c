"""
Card value and rules constants for Kaboo.

This module is the single source of truth for card point values and the
power-card table. Point values come from config.py and can be overridden
through environment variables.

Kaboo Scoring:
    - Joker: -1 point
    - Ace: 1 point
    - 2-10: Face value
    - Red J/Q/K (hearts, diamonds): 0 points
    - Black Jack: 11, black Queen: 12, black King: 13
"""

from config import config


# =============================================================================
# Card Values - Single Source of Truth
# =============================================================================

JOKER_VALUE: int = config.card_values.JOKER
ACE_VALUE: int = config.card_values.ACE
RED_ROYALTY_VALUE: int = config.card_values.RED_ROYALTY
BLACK_ROYALTY_VALUES: dict[str, int] = {
    'J': config.card_values.BLACK_JACK,
    'Q': config.card_values.BLACK_QUEEN,
    'K': config.card_values.BLACK_KING,
}

RED_SUITS: frozenset[str] = frozenset({"hearts", "diamonds"})

KABOO_PENALTY: int = config.card_values.KABOO_PENALTY


# =============================================================================
# Power Cards
# =============================================================================

# Rank played onto the discard pile -> effect granted to the player
POWER_EFFECTS: dict[str, str] = {
    '7': "PEEK_OWN",
    '8': "PEEK_OWN",
    '9': "PEEK_OTHER",
    '10': "PEEK_OTHER",
    'J': "SWAP_EITHER",
    'Q': "LOOK_AND_SWAP",
    'K': "FULL_VISION_SWAP",
}


# =============================================================================
# Game Constants
# =============================================================================

HAND_SIZE = 4
INITIAL_PEEK_INDICES = (0, 1)
JOKERS_PER_DECK = 2
MIN_PLAYERS = config.MIN_PLAYERS
MAX_PLAYERS = config.MAX_PLAYERS

# What a viewer sees in place of a card they are not allowed to know
MASKED_RANK = "A"
MASKED_SUIT = "hearts"
MASKED_VALUE = 0
