"""
Per-viewer projection of the game state.

The stored GameState holds every card identity. Before a state leaves the
server it is passed through sanitize_state() for the player who will see
it, so face-down cards can't be read off the wire.

Masking rules, in order:
    1. Every deck card is masked; observers only learn the deck size.
    2. A hand card stays visible if it is face up, or during the opening
       look for its owner at index 0 or 1. Every other hand card is masked.
    3. A drawn card that came from the deck is masked for everyone but the
       current player. One taken from the discard pile was already public.

The discard pile is never masked. Masked cards keep their slot (so counts
and indices still line up) but lose rank, suit, value and id.
"""

from typing import Optional

from constants import INITIAL_PEEK_INDICES, MASKED_RANK, MASKED_SUIT, MASKED_VALUE
from game import Card, CardSource, GamePhase, GameState, Rank, Suit


def mask_card(card: Card, slot: str) -> Card:
    """
    Build the sentinel that stands in for a hidden card.

    Args:
        card: Card being hidden (only its drawn-card source survives).
        slot: Positional label used as the masked card's id.

    Returns:
        A face-down A of hearts worth 0.
    """
    return Card(
        id=f"hidden:{slot}",
        suit=Suit(MASKED_SUIT),
        rank=Rank(MASKED_RANK),
        value=MASKED_VALUE,
        face_up=False,
        source=card.source,
    )


def can_see_hand_card(state: GameState, owner_id: str, index: int, card: Card, viewer_id: Optional[str]) -> bool:
    """Whether viewer_id may know the identity of owner_id's card at index."""
    if card.face_up:
        return True
    return (
        state.phase == GamePhase.INITIAL_LOOK
        and owner_id == viewer_id
        and index in INITIAL_PEEK_INDICES
    )


def sanitize_state(state: GameState, viewer_id: Optional[str]) -> GameState:
    """
    Produce the view of the state that viewer_id is entitled to.

    Args:
        state: Full game state. Left untouched.
        viewer_id: Player who will receive the view (None for a spectator).

    Returns:
        A deep copy with unauthorized cards replaced by the mask sentinel.
    """
    safe = state.copy()

    safe.deck = [mask_card(card, f"deck:{i}") for i, card in enumerate(safe.deck)]

    for owner_id, player in safe.players.items():
        player.cards = [
            card if can_see_hand_card(safe, owner_id, i, card, viewer_id)
            else mask_card(card, f"{owner_id}:{i}")
            for i, card in enumerate(player.cards)
        ]

    drawn = safe.drawn_card
    if (
        drawn is not None
        and drawn.source == CardSource.DECK
        and viewer_id != safe.current_turn_user_id
    ):
        safe.drawn_card = mask_card(drawn, "drawn")

    return safe


def state_for_player(state: GameState, viewer_id: Optional[str]) -> dict:
    """
    Sanitized state as a JSON-ready dict for one viewer.

    Adds a few convenience fields the client renders directly.
    """
    safe = sanitize_state(state, viewer_id)
    data = safe.to_dict()
    top = safe.discard_top()
    data["viewer_id"] = viewer_id
    data["deck_remaining"] = len(safe.deck)
    data["discard_top"] = top.to_dict() if top else None
    data["is_my_turn"] = viewer_id is not None and viewer_id == safe.current_turn_user_id
    return data
