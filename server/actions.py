"""
Move dispatch for Kaboo.

Client actions arrive as JSON objects with a "type" tag and camelCase
fields. They are validated into pydantic models here and routed to the
rules engine. SWAP_ANY is accepted in two shapes:

    current: {"type": "SWAP_ANY",
              "card1": {"playerId": "...", "cardIndex": 0},
              "card2": {"playerId": "...", "cardIndex": 2}}
    legacy:  {"type": "SWAP_ANY", "targetPlayerId": "...",
              "cardIndex": 2, "ownCardIndex": 0}

process_move() never touches the state it is given; it works on a deep
copy and returns the new state together with any private peek result.
"""

import logging
import random
from dataclasses import dataclass
from typing import Any, Callable, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, TypeAdapter, ValidationError
from pydantic.alias_generators import to_camel

import rules
from game import INVALID_ACTION, Card, GameError, GameState, Rank, Suit
from rules import CardRef, PeekTarget, SwapTarget

logger = logging.getLogger(__name__)


class ActionModel(BaseModel):
    """Base for all client actions: camelCase on the wire, no unknown fields."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="forbid",
        frozen=True,
    )


class ReadyToPlay(ActionModel):
    type: Literal["READY_TO_PLAY"] = "READY_TO_PLAY"


class DrawFromDeck(ActionModel):
    type: Literal["DRAW_FROM_DECK"] = "DRAW_FROM_DECK"


class DrawFromDiscard(ActionModel):
    type: Literal["DRAW_FROM_DISCARD"] = "DRAW_FROM_DISCARD"


class DiscardDrawn(ActionModel):
    type: Literal["DISCARD_DRAWN"] = "DISCARD_DRAWN"


class SwapWithOwn(ActionModel):
    type: Literal["SWAP_WITH_OWN"] = "SWAP_WITH_OWN"
    card_index: int


class CallKaboo(ActionModel):
    type: Literal["CALL_KABOO"] = "CALL_KABOO"


class Snap(ActionModel):
    type: Literal["SNAP"] = "SNAP"
    card_index: int


class PeekOwn(ActionModel):
    type: Literal["PEEK_OWN"] = "PEEK_OWN"
    card_index: int


class SpyOpponent(ActionModel):
    type: Literal["SPY_OPPONENT"] = "SPY_OPPONENT"
    target_player_id: str
    card_index: int


class CardPosition(ActionModel):
    player_id: str
    card_index: int


class SwapAny(ActionModel):
    """Swap two addressed cards (current payload shape)."""

    type: Literal["SWAP_ANY"] = "SWAP_ANY"
    card1: CardPosition
    card2: CardPosition


class LegacySwapAny(ActionModel):
    """Swap one of your cards with another player's (original payload shape)."""

    type: Literal["SWAP_ANY"] = "SWAP_ANY"
    target_player_id: str
    card_index: int
    own_card_index: int


class NextRound(ActionModel):
    type: Literal["NEXT_ROUND"] = "NEXT_ROUND"


class DeckCard(ActionModel):
    rank: Rank
    suit: Suit


class SetTestDeck(ActionModel):
    type: Literal["SET_TEST_DECK"] = "SET_TEST_DECK"
    cards: list[DeckCard]


GameAction = Union[
    ReadyToPlay,
    DrawFromDeck,
    DrawFromDiscard,
    DiscardDrawn,
    SwapWithOwn,
    CallKaboo,
    Snap,
    PeekOwn,
    SpyOpponent,
    SwapAny,
    LegacySwapAny,
    NextRound,
    SetTestDeck,
]

_action_adapter = TypeAdapter(GameAction)

ACTION_TYPES = frozenset({
    "READY_TO_PLAY", "DRAW_FROM_DECK", "DRAW_FROM_DISCARD", "DISCARD_DRAWN",
    "SWAP_WITH_OWN", "CALL_KABOO", "SNAP", "PEEK_OWN", "SPY_OPPONENT",
    "SWAP_ANY", "NEXT_ROUND", "SET_TEST_DECK",
})


def parse_action(raw: Union[dict, ActionModel]) -> ActionModel:
    """
    Validate a raw client action.

    Args:
        raw: Action dict from the client, or an already-built model.

    Returns:
        The matching action model.

    Raises:
        GameError: INVALID_ACTION for unknown types or malformed payloads.
    """
    if isinstance(raw, ActionModel):
        return raw
    if not isinstance(raw, dict):
        raise GameError(INVALID_ACTION, "Action must be an object")

    action_type = raw.get("type")
    if action_type not in ACTION_TYPES:
        raise GameError(INVALID_ACTION, f"Invalid action type: {action_type}")

    try:
        return _action_adapter.validate_python(raw)
    except ValidationError as e:
        raise GameError(INVALID_ACTION, f"Malformed {action_type} action: {e.error_count()} error(s)") from e


@dataclass
class MoveResult:
    """
    Outcome of a successful move.

    Attributes:
        state: The new full game state (persist this, sanitize before sending).
        result: Peeked card, for the acting player's eyes only.
    """

    state: GameState
    result: Optional[Card] = None


# -----------------------------------------------------------------------------
# Handlers
# -----------------------------------------------------------------------------

Handler = Callable[[GameState, Any, str, Optional[random.Random]], Optional[Card]]


def _ready(state, action: ReadyToPlay, player_id, rng):
    rules.ready_to_play(state, player_id)


def _draw_deck(state, action: DrawFromDeck, player_id, rng):
    rules.draw_from_deck(state, player_id, rng)


def _draw_discard(state, action: DrawFromDiscard, player_id, rng):
    rules.draw_from_discard(state, player_id)


def _discard(state, action: DiscardDrawn, player_id, rng):
    rules.discard_drawn_card(state, player_id)


def _swap_own(state, action: SwapWithOwn, player_id, rng):
    rules.swap_with_own(state, player_id, action.card_index)


def _kaboo(state, action: CallKaboo, player_id, rng):
    rules.call_kaboo(state, player_id)


def _snap(state, action: Snap, player_id, rng):
    rules.snap_card(state, player_id, action.card_index)


def _peek_own(state, action: PeekOwn, player_id, rng):
    return rules.resolve_effect(state, player_id, PeekTarget(CardRef(player_id, action.card_index)))


def _spy(state, action: SpyOpponent, player_id, rng):
    target = PeekTarget(CardRef(action.target_player_id, action.card_index))
    return rules.resolve_effect(state, player_id, target)


def _swap_any(state, action: SwapAny, player_id, rng):
    target = SwapTarget(
        CardRef(action.card1.player_id, action.card1.card_index),
        CardRef(action.card2.player_id, action.card2.card_index),
    )
    return rules.resolve_effect(state, player_id, target)


def _legacy_swap_any(state, action: LegacySwapAny, player_id, rng):
    target = SwapTarget(
        CardRef(player_id, action.own_card_index),
        CardRef(action.target_player_id, action.card_index),
    )
    return rules.resolve_effect(state, player_id, target)


def _next_round(state, action: NextRound, player_id, rng):
    rules.start_next_round(state, player_id, rng)


def _set_test_deck(state, action: SetTestDeck, player_id, rng):
    rules.set_test_deck(state, [(card.rank, card.suit) for card in action.cards])


HANDLERS: dict[type, Handler] = {
    ReadyToPlay: _ready,
    DrawFromDeck: _draw_deck,
    DrawFromDiscard: _draw_discard,
    DiscardDrawn: _discard,
    SwapWithOwn: _swap_own,
    CallKaboo: _kaboo,
    Snap: _snap,
    PeekOwn: _peek_own,
    SpyOpponent: _spy,
    SwapAny: _swap_any,
    LegacySwapAny: _legacy_swap_any,
    NextRound: _next_round,
    SetTestDeck: _set_test_deck,
}


def process_move(
    state: GameState,
    action: Union[dict, ActionModel],
    player_id: str,
    rng: Optional[random.Random] = None,
) -> MoveResult:
    """
    Apply one action by one player.

    Args:
        state: Current game state. Left untouched.
        action: Raw action dict or action model.
        player_id: Acting player.
        rng: Optional random source (deck reshuffles, next-round deals).

    Returns:
        MoveResult with the new state and optional private result.

    Raises:
        GameError: If the action is malformed or not allowed right now.
    """
    action = parse_action(action)
    new_state = state.copy()
    result = HANDLERS[type(action)](new_state, action, player_id, rng)
    logger.debug(f"Applied {action.type} for {player_id}: {new_state.last_action}")
    return MoveResult(state=new_state, result=result)
