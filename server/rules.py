"""
Rules engine for Kaboo.

Every function here takes the GameState it should transform and mutates it
in place, raising GameError before anything is applied when a precondition
fails. Callers that need value semantics (the move dispatcher) hand in a
deep copy; see actions.process_move().

Turn flow:
    DRAW --draw_from_deck / draw_from_discard--> ACTION
    ACTION --discard_drawn_card / swap_with_own--> EFFECT (power card) or next turn
    EFFECT --resolve_effect--> next turn

Kaboo:
    call_kaboo() consumes the caller's turn and starts a countdown of
    len(player_order). _end_turn() decrements it; scoring happens when it
    underflows or when the turn wraps back to the caller at zero. For
    [P1, P2, P3] with P1 calling: 3 -> 2 (P2) -> 1 (P3) -> 0 and back to P1,
    so every other player gets exactly one more turn.
"""

import copy
import logging
import random
from dataclasses import dataclass
from typing import Optional, Union

from constants import HAND_SIZE, KABOO_PENALTY, MAX_PLAYERS, MIN_PLAYERS, POWER_EFFECTS
from game import (
    ACTION_NOT_ALLOWED,
    CANNOT_DISCARD,
    DECK_EXHAUSTED,
    EMPTY_PILE,
    INVALID_CARD_INDEX,
    INVALID_TARGET,
    KABOO_ALREADY_CALLED,
    MATCH_OVER,
    NO_PENDING_EFFECT,
    NOT_YOUR_TURN,
    PLAYER_NOT_FOUND,
    WRONG_PHASE,
    Card,
    CardSource,
    EffectType,
    GameError,
    GamePhase,
    GameSettings,
    GameState,
    PendingEffect,
    Player,
    Rank,
    Suit,
    TurnPhase,
    create_deck,
    shuffle,
)

logger = logging.getLogger(__name__)


# =============================================================================
# Effect targets
# =============================================================================

@dataclass(frozen=True)
class CardRef:
    """A card addressed by owner and hand index."""

    player_id: str
    card_index: int


@dataclass(frozen=True)
class PeekTarget:
    """Look at one card."""

    card: CardRef


@dataclass(frozen=True)
class SwapTarget:
    """Exchange two cards in place."""

    first: CardRef
    second: CardRef


EffectTarget = Union[PeekTarget, SwapTarget]

PEEK_ONLY_EFFECTS = (EffectType.PEEK_OWN, EffectType.PEEK_OTHER)
SWAP_EFFECTS = (EffectType.SWAP_EITHER, EffectType.LOOK_AND_SWAP, EffectType.FULL_VISION_SWAP)


# =============================================================================
# Guards
# =============================================================================

def _require_player(state: GameState, player_id: str) -> Player:
    player = state.get_player(player_id)
    if player is None:
        raise GameError(PLAYER_NOT_FOUND, f"Player {player_id} is not in this game")
    return player


def _require_phase(state: GameState, phase: GamePhase) -> None:
    if state.phase == GamePhase.FINISHED:
        raise GameError(MATCH_OVER, "The match is over")
    if state.phase != phase:
        raise GameError(WRONG_PHASE, f"Not allowed during {state.phase.value}")


def _require_turn(state: GameState, player_id: str, turn_phase: TurnPhase) -> Player:
    """Check the player exists, the round is live, it's their turn and sub-phase."""
    player = _require_player(state, player_id)
    _require_phase(state, GamePhase.PLAYING)
    if state.current_turn_user_id != player_id:
        raise GameError(NOT_YOUR_TURN, "Not your turn")
    if state.turn_phase != turn_phase:
        raise GameError(
            WRONG_PHASE,
            f"Cannot do that during the {state.turn_phase.value} step",
        )
    return player


def _require_card(state: GameState, ref: CardRef) -> Card:
    player = state.get_player(ref.player_id)
    if player is None:
        raise GameError(PLAYER_NOT_FOUND, f"Target player {ref.player_id} not found")
    if not player.has_card(ref.card_index):
        raise GameError(INVALID_CARD_INDEX, f"{player.name} has no card at {ref.card_index}")
    return player.cards[ref.card_index]


# =============================================================================
# Game Lifecycle
# =============================================================================

def _deal_round(state: GameState, rng: Optional[random.Random] = None) -> None:
    """
    Deal a fresh round onto an existing state.

    Builds a new deck, deals HAND_SIZE face-down cards to each player in
    seating order, and seeds the discard pile with one face-up card.
    Cumulative scores and player_order are left alone.
    """
    deck = create_deck(rng)

    for player in state.players.values():
        player.cards = deck[:HAND_SIZE]
        del deck[:HAND_SIZE]
        player.is_ready = False
        player.kaboo_called = False

    first_discard = deck.pop(0)
    first_discard.face_up = True

    state.deck = deck
    state.discard_pile = [first_discard]
    state.turn_phase = TurnPhase.DRAW
    state.drawn_card = None
    state.pending_effect = None
    state.kaboo_caller_id = None
    state.turns_left_after_kaboo = None
    state.round_scores = {}
    state.phase = GamePhase.INITIAL_LOOK


def initialize_game(
    player_ids: list[str],
    room_code: str,
    settings: Optional[GameSettings] = None,
    names: Optional[dict[str, str]] = None,
    rng: Optional[random.Random] = None,
) -> GameState:
    """
    Create a new game, dealt and waiting in the opening look.

    Turn order is a shuffle of the ids, independent of the join order.

    Args:
        player_ids: Participating player ids, in seating order.
        room_code: Lobby room code.
        settings: Lobby settings, carried through.
        names: Optional display names keyed by player id.
        rng: Optional random source for the deck and turn order.

    Returns:
        A fresh GameState in the INITIAL_LOOK phase.
    """
    if len(player_ids) < MIN_PLAYERS:
        raise GameError(ACTION_NOT_ALLOWED, f"Need at least {MIN_PLAYERS} players")
    if len(player_ids) > MAX_PLAYERS:
        raise GameError(ACTION_NOT_ALLOWED, f"At most {MAX_PLAYERS} players can play")
    if len(set(player_ids)) != len(player_ids):
        raise GameError(ACTION_NOT_ALLOWED, "Duplicate player id")

    names = names or {}
    state = GameState(
        room_code=room_code,
        settings=settings or GameSettings(),
        players={
            pid: Player(id=pid, name=names.get(pid) or f"Player {pid[:4]}")
            for pid in player_ids
        },
    )
    _deal_round(state, rng)

    state.player_order = shuffle(list(player_ids), rng)
    state.current_turn_user_id = state.player_order[0]
    state.last_action = "Game Started"

    logger.debug(
        f"Game initialized in room {room_code}: order={state.player_order}, "
        f"deck={len(state.deck)}"
    )
    return state


def ready_to_play(state: GameState, player_id: str) -> None:
    """
    Mark a player as done with the opening look.

    When every player in player_order is ready the round moves to PLAYING.
    """
    player = _require_player(state, player_id)
    _require_phase(state, GamePhase.INITIAL_LOOK)

    player.is_ready = True
    state.last_action = f"{player.name} is ready"

    if all(state.players[pid].is_ready for pid in state.player_order):
        state.phase = GamePhase.PLAYING
        state.turn_phase = TurnPhase.DRAW
        state.last_action = "All players ready! Game started."
        logger.debug(f"Room {state.room_code}: all players ready, playing")


def start_next_round(
    state: GameState,
    player_id: str,
    rng: Optional[random.Random] = None,
) -> None:
    """
    Leave the scoring screen.

    If any cumulative score has reached the target score the match ends
    (FINISHED, lowest cumulative score wins). Otherwise a new round is
    dealt with the turn order rotated by one seat.
    """
    _require_player(state, player_id)
    _require_phase(state, GamePhase.SCORING)

    target = state.settings.target()
    if target is not None and any(p.score >= target for p in state.players.values()):
        best = min(p.score for p in state.players.values())
        state.winner_ids = [pid for pid in state.player_order if state.players[pid].score == best]
        state.phase = GamePhase.FINISHED
        names = ", ".join(state.players[pid].name for pid in state.winner_ids)
        state.last_action = f"Match over! Winner: {names}"
        logger.debug(f"Room {state.room_code}: match finished, winners={state.winner_ids}")
        return

    state.round_number += 1
    _deal_round(state, rng)
    state.player_order = state.player_order[1:] + state.player_order[:1]
    state.current_turn_user_id = state.player_order[0]
    state.last_action = f"Round {state.round_number} dealt"
    logger.debug(f"Room {state.room_code}: round {state.round_number} dealt")


# =============================================================================
# Turn Actions
# =============================================================================

def _reshuffle_discard_pile(state: GameState, rng: Optional[random.Random] = None) -> None:
    """
    Turn the discard pile (minus its top card) into a new face-down deck.

    Raises DECK_EXHAUSTED when the pile has nothing under its top card.
    """
    if len(state.discard_pile) <= 1:
        raise GameError(DECK_EXHAUSTED, "Deck empty and cannot reshuffle")

    top_card = state.discard_pile.pop()
    for card in state.discard_pile:
        card.face_up = False
    state.deck = shuffle(state.discard_pile, rng)
    state.discard_pile = [top_card]
    logger.debug(f"Room {state.room_code}: reshuffled {len(state.deck)} cards into the deck")


def draw_from_deck(
    state: GameState,
    player_id: str,
    rng: Optional[random.Random] = None,
) -> None:
    """Draw the head of the deck into drawn_card, reshuffling if it is empty."""
    _require_turn(state, player_id, TurnPhase.DRAW)

    if not state.deck:
        _reshuffle_discard_pile(state, rng)

    card = state.deck.pop(0)
    card.face_up = True
    card.source = CardSource.DECK

    state.drawn_card = card
    state.turn_phase = TurnPhase.ACTION
    state.last_action = "Drew from deck"


def draw_from_discard(state: GameState, player_id: str) -> None:
    """Take the top of the discard pile into drawn_card."""
    _require_turn(state, player_id, TurnPhase.DRAW)

    if not state.discard_pile:
        raise GameError(EMPTY_PILE, "Discard pile empty")

    card = state.discard_pile.pop()
    card.face_up = True
    card.source = CardSource.DISCARD

    state.drawn_card = card
    state.turn_phase = TurnPhase.ACTION
    state.last_action = "Drew from discard"


def discard_drawn_card(state: GameState, player_id: str) -> None:
    """
    Put the drawn card on the discard pile.

    A card taken from the discard pile cannot go straight back; it has to
    be swapped into the hand, unless snaps have left the hand empty.
    """
    player = _require_turn(state, player_id, TurnPhase.ACTION)

    card = state.drawn_card
    if card is None:
        raise GameError(WRONG_PHASE, "No card drawn")
    if card.source == CardSource.DISCARD and player.cards:
        raise GameError(CANNOT_DISCARD, "Cannot discard card drawn from discard pile")

    card.source = None
    card.face_up = True
    state.discard_pile.append(card)
    state.drawn_card = None
    state.last_action = f"Discarded {card.rank.value}"

    _after_card_played(state, player_id, card)


def swap_with_own(state: GameState, player_id: str, card_index: int) -> None:
    """
    Replace a hand card with the drawn card.

    The drawn card goes in face down at the same index; the displaced card
    is discarded face up and can trigger its power like a direct discard.
    """
    player = _require_turn(state, player_id, TurnPhase.ACTION)

    if state.drawn_card is None:
        raise GameError(WRONG_PHASE, "No card drawn")
    if not player.has_card(card_index):
        raise GameError(INVALID_CARD_INDEX, f"Invalid card index {card_index}")

    new_card = state.drawn_card
    new_card.source = None
    new_card.face_up = False

    old_card = player.cards[card_index]
    player.cards[card_index] = new_card
    old_card.face_up = True
    state.discard_pile.append(old_card)
    state.drawn_card = None
    state.last_action = "Swapped card"

    _after_card_played(state, player_id, old_card)


def call_kaboo(state: GameState, player_id: str) -> None:
    """
    Call Kaboo instead of drawing.

    The call uses up the caller's turn. Everyone else gets one more turn.
    """
    player = _require_turn(state, player_id, TurnPhase.DRAW)

    if state.kaboo_caller_id is not None:
        raise GameError(KABOO_ALREADY_CALLED, "Kaboo already called")

    state.kaboo_caller_id = player_id
    state.turns_left_after_kaboo = len(state.player_order)
    player.kaboo_called = True
    state.last_action = f"{player.name} called Kaboo!"
    logger.debug(f"Room {state.room_code}: Kaboo called by {player_id}")

    _end_turn(state)


def snap_card(state: GameState, player_id: str, card_index: int) -> bool:
    """
    Throw a hand card onto a matching top discard, out of turn.

    On a rank match the card leaves the hand (later cards shift left) and
    goes face up onto the pile. On a mismatch the player takes the head of
    the deck face down as a penalty, or nothing when the deck is empty.
    Turn state is untouched, except that a pending power left with no
    legal target is skipped and the turn ends.

    Returns:
        True if the snap matched.
    """
    player = _require_player(state, player_id)
    _require_phase(state, GamePhase.PLAYING)

    top = state.discard_top()
    if top is None:
        raise GameError(EMPTY_PILE, "No discard pile to snap to")
    if not player.has_card(card_index):
        raise GameError(INVALID_CARD_INDEX, f"Invalid card index {card_index}")

    card = player.cards[card_index]
    if card.rank == top.rank:
        player.cards.pop(card_index)
        card.face_up = True
        state.discard_pile.append(card)
        state.last_action = f"{player.name} snapped a {card.rank.value}!"
        _drop_stranded_effect(state)
        return True

    if state.deck:
        penalty = state.deck.pop(0)
        penalty.face_up = False
        player.cards.append(penalty)
        state.last_action = f"{player.name} failed snap! Penalty card."
    else:
        state.last_action = f"{player.name} failed snap! No deck left."
    return False


# =============================================================================
# Power Cards
# =============================================================================

def power_for_card(card: Card) -> Optional[EffectType]:
    """Get the power a card grants when played, or None."""
    effect = POWER_EFFECTS.get(card.rank.value)
    return EffectType(effect) if effect else None


def _effect_has_target(state: GameState, player_id: str, effect: EffectType) -> bool:
    """Whether any legal target exists for the effect (hands can be emptied by snaps)."""
    own = len(state.players[player_id].cards)
    others = sum(len(p.cards) for pid, p in state.players.items() if pid != player_id)
    if effect == EffectType.PEEK_OWN:
        return own > 0
    if effect == EffectType.PEEK_OTHER:
        return others > 0
    if effect == EffectType.SWAP_EITHER:
        return own + others >= 2
    return others > 0 or own + others >= 2


def _after_card_played(state: GameState, player_id: str, card: Card) -> None:
    """Open the effect step for a power card, otherwise end the turn."""
    effect = power_for_card(card)
    if effect is not None and _effect_has_target(state, player_id, effect):
        state.turn_phase = TurnPhase.EFFECT
        state.pending_effect = PendingEffect(type=effect, source_card_rank=card.rank)
        state.last_action = f"Played {card.rank.value} - Effect Triggered"
        return

    _end_turn(state)


def _drop_stranded_effect(state: GameState) -> None:
    """Skip a pending power whose last legal target was just snapped away."""
    pending = state.pending_effect
    if state.turn_phase != TurnPhase.EFFECT or pending is None:
        return
    if _effect_has_target(state, state.current_turn_user_id, pending.type):
        return

    logger.debug(f"Room {state.room_code}: {pending.type.value} lost its targets, skipped")
    state.pending_effect = None
    _end_turn(state)


def resolve_effect(state: GameState, player_id: str, target: EffectTarget) -> Optional[Card]:
    """
    Resolve the pending power and end the turn.

    Peek powers return the addressed card; the caller must only show it to
    the acting player. Swap powers exchange two cards in place without
    touching their face state. LOOK_AND_SWAP and FULL_VISION_SWAP accept
    either a single peek target (another player's card) or a swap pair.

    Returns:
        A copy of the peeked card, or None for a swap.
    """
    _require_turn(state, player_id, TurnPhase.EFFECT)

    pending = state.pending_effect
    if pending is None:
        raise GameError(NO_PENDING_EFFECT, "No pending effect")
    effect = pending.type

    result = None
    if isinstance(target, PeekTarget):
        if effect == EffectType.SWAP_EITHER:
            raise GameError(INVALID_TARGET, "Swap needs two cards")
        card = _require_card(state, target.card)
        owner = state.players[target.card.player_id]
        if effect == EffectType.PEEK_OWN and target.card.player_id != player_id:
            raise GameError(INVALID_TARGET, "Must peek own card")
        if effect != EffectType.PEEK_OWN and target.card.player_id == player_id:
            raise GameError(INVALID_TARGET, "Must peek other player's card")
        result = copy.copy(card)
        if effect == EffectType.PEEK_OWN:
            state.last_action = "Peeked own card"
        else:
            state.last_action = f"Peeked {owner.name}'s card"

    elif isinstance(target, SwapTarget):
        if effect in PEEK_ONLY_EFFECTS:
            raise GameError(INVALID_TARGET, "This power can only peek")
        if target.first == target.second:
            raise GameError(INVALID_TARGET, "Cannot swap a card with itself")
        first = _require_card(state, target.first)
        second = _require_card(state, target.second)
        first_owner = state.players[target.first.player_id]
        second_owner = state.players[target.second.player_id]
        first_owner.cards[target.first.card_index] = second
        second_owner.cards[target.second.card_index] = first
        state.last_action = f"Swapped {first_owner.name}'s card with {second_owner.name}'s"

    else:
        raise GameError(INVALID_TARGET, "Unknown effect target")

    state.pending_effect = None
    _end_turn(state)
    return result


# =============================================================================
# Turn & Round Flow (Internal)
# =============================================================================

def _end_turn(state: GameState) -> None:
    """
    Advance to the next player's turn, running the Kaboo countdown.

    Scores the round when the countdown underflows, or when it reaches zero
    and the turn comes back around to the caller.
    """
    state.turn_phase = TurnPhase.DRAW

    if state.turns_left_after_kaboo is not None:
        state.turns_left_after_kaboo -= 1
        if state.turns_left_after_kaboo < 0:
            calculate_scores(state)
            return

    current_idx = state.player_order.index(state.current_turn_user_id)
    next_idx = (current_idx + 1) % len(state.player_order)
    state.current_turn_user_id = state.player_order[next_idx]

    if (
        state.turns_left_after_kaboo == 0
        and state.current_turn_user_id == state.kaboo_caller_id
    ):
        calculate_scores(state)


# =============================================================================
# Scoring
# =============================================================================

def calculate_scores(state: GameState) -> dict[str, int]:
    """
    Score the round and move to SCORING.

    Each player's round score is their hand total. The Kaboo caller takes
    KABOO_PENALTY unless strictly lower than every other player. Round
    scores are added to the cumulative score and every hand is revealed.

    Returns:
        Round scores keyed by player id.
    """
    scores = {pid: state.players[pid].hand_total() for pid in state.player_order}

    caller_id = state.kaboo_caller_id
    if caller_id is not None and caller_id in scores:
        others = [score for pid, score in scores.items() if pid != caller_id]
        min_other = min(others) if others else None
        caller = state.players[caller_id]
        caller_total = scores[caller_id]
        if min_other is not None and caller_total >= min_other:
            scores[caller_id] = caller_total + KABOO_PENALTY
            outcome = "Tied" if caller_total == min_other else "Failed"
            state.last_action = f"Kaboo {outcome}! {caller.name} +{KABOO_PENALTY} Penalty"
        else:
            state.last_action = f"Kaboo Success for {caller.name}!"
    else:
        state.last_action = "Round scored"

    for pid, score in scores.items():
        player = state.players[pid]
        player.score += score
        for card in player.cards:
            card.face_up = True

    state.round_scores = scores
    state.phase = GamePhase.SCORING
    state.turn_phase = TurnPhase.DRAW
    logger.debug(f"Room {state.room_code}: round {state.round_number} scored {scores}")
    return scores


# =============================================================================
# Test Support
# =============================================================================

def set_test_deck(state: GameState, cards: list[tuple[Rank, Suit]]) -> None:
    """
    Stack the head of the draw pile.

    Each (rank, suit) is moved from wherever it sits in the deck to the
    front, in the order given. Cards outside the deck are refused, so no
    card is ever created or duplicated.
    """
    if state.phase == GamePhase.FINISHED:
        raise GameError(MATCH_OVER, "The match is over")

    stacked = []
    for rank, suit in cards:
        rank, suit = Rank(rank), Suit(suit)
        for i, card in enumerate(state.deck):
            if card.rank == rank and card.suit == suit:
                stacked.append(state.deck.pop(i))
                break
        else:
            raise GameError(INVALID_TARGET, f"{rank.value} of {suit.value} is not in the draw pile")

    state.deck[:0] = stacked
    state.last_action = "Test deck set"
