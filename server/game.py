"""
Data model for Kaboo.

This module holds the card/deck model and the game state aggregate that the
rules engine (rules.py) transforms. Nothing here performs I/O.

Kaboo Rules Summary:
    - Each player is dealt 4 face-down cards and may look at two of them once
    - On your turn: draw from the deck or the discard pile, then swap the
      drawn card into your hand or discard it
    - Discarding a 7 through K grants a one-time peek or swap power
    - Any player may "snap" a hand card matching the top discard at any time
    - Calling Kaboo ends your turn; everyone else gets one more turn, then
      hands are scored. Lowest total wins, and a caller who is not strictly
      lowest takes a +20 penalty

Hand Layout:
    [0] [1] [2] [3]   <- indices 0 and 1 are the opening peek

    Players address their own cards by index. Removing a card shifts later
    cards left; a swapped-in card keeps the index of the card it replaced.
"""

import copy
import random
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional

from config import config
from constants import (
    ACE_VALUE,
    BLACK_ROYALTY_VALUES,
    JOKER_VALUE,
    JOKERS_PER_DECK,
    RED_ROYALTY_VALUE,
    RED_SUITS,
)


class GameError(Exception):
    """
    A refused transition.

    Raised for every precondition violation (wrong turn, wrong phase, bad
    target, empty pile). The state the caller holds is never modified.
    """

    def __init__(self, code: str, message: str):
        self.code = code
        self.message = message
        super().__init__(f"[{code}] {message}")


# Failure codes
NOT_YOUR_TURN = "NOT_YOUR_TURN"
WRONG_PHASE = "WRONG_PHASE"
PLAYER_NOT_FOUND = "PLAYER_NOT_FOUND"
INVALID_CARD_INDEX = "INVALID_CARD_INDEX"
INVALID_TARGET = "INVALID_TARGET"
EMPTY_PILE = "EMPTY_PILE"
DECK_EXHAUSTED = "DECK_EXHAUSTED"
KABOO_ALREADY_CALLED = "KABOO_ALREADY_CALLED"
CANNOT_DISCARD = "CANNOT_DISCARD"
NO_PENDING_EFFECT = "NO_PENDING_EFFECT"
INVALID_ACTION = "INVALID_ACTION"
MATCH_OVER = "MATCH_OVER"
ACTION_NOT_ALLOWED = "ACTION_NOT_ALLOWED"
GAME_NOT_FOUND = "GAME_NOT_FOUND"
CONFLICT = "CONFLICT"


class Suit(str, Enum):
    """Card suits. Jokers carry their own pseudo-suit."""

    HEARTS = "hearts"
    DIAMONDS = "diamonds"
    CLUBS = "clubs"
    SPADES = "spades"
    JOKER = "joker"


class Rank(str, Enum):
    """Card ranks, valued by card_value()."""

    ACE = "A"
    TWO = "2"
    THREE = "3"
    FOUR = "4"
    FIVE = "5"
    SIX = "6"
    SEVEN = "7"
    EIGHT = "8"
    NINE = "9"
    TEN = "10"
    JACK = "J"
    QUEEN = "Q"
    KING = "K"
    JOKER = "joker"


STANDARD_SUITS = (Suit.HEARTS, Suit.DIAMONDS, Suit.CLUBS, Suit.SPADES)
STANDARD_RANKS = tuple(rank for rank in Rank if rank != Rank.JOKER)


class CardSource(str, Enum):
    """Where the currently held drawn card came from."""

    DECK = "deck"
    DISCARD = "discard"


class GamePhase(str, Enum):
    """
    Phases of a Kaboo game.

    Flow: LOBBY -> INITIAL_LOOK -> PLAYING -> SCORING
    SCORING -> INITIAL_LOOK for the next round, or FINISHED once the
    target score is reached.
    """

    LOBBY = "lobby"
    INITIAL_LOOK = "initial_look"
    PLAYING = "playing"
    SCORING = "scoring"
    FINISHED = "finished"


class TurnPhase(str, Enum):
    """Sub-phases of a single turn: draw -> action -> (effect) -> draw."""

    DRAW = "draw"
    ACTION = "action"
    EFFECT = "effect"


class EffectType(str, Enum):
    """Powers granted by discarding a 7 through K."""

    PEEK_OWN = "PEEK_OWN"
    PEEK_OTHER = "PEEK_OTHER"
    SWAP_EITHER = "SWAP_EITHER"
    LOOK_AND_SWAP = "LOOK_AND_SWAP"
    FULL_VISION_SWAP = "FULL_VISION_SWAP"


def card_value(rank: Rank, suit: Suit) -> int:
    """
    Get the point value of a card.

    Red royalty scores 0 and is the best card to hold; black royalty
    scores 11-13 and is the worst.

    Args:
        rank: Card rank.
        suit: Card suit.

    Returns:
        Point value for the card.
    """
    rank = Rank(rank)
    suit = Suit(suit)
    if rank == Rank.JOKER:
        return JOKER_VALUE
    if rank in (Rank.JACK, Rank.QUEEN, Rank.KING):
        if suit.value in RED_SUITS:
            return RED_ROYALTY_VALUE
        return BLACK_ROYALTY_VALUES[rank.value]
    if rank == Rank.ACE:
        return ACE_VALUE
    return int(rank.value)


@dataclass
class Card:
    """
    A playing card.

    Attributes:
        id: Opaque unique token, stable for the card's whole life.
        suit: The card's suit.
        rank: The card's rank.
        value: Point value, fixed at creation.
        face_up: Whether the card is visible to every player.
        source: Only set while the card is the held drawn card.
    """

    id: str
    suit: Suit
    rank: Rank
    value: int
    face_up: bool = False
    source: Optional[CardSource] = None

    @classmethod
    def create(cls, rank: Rank, suit: Suit) -> "Card":
        """Build a face-down card with a fresh id and its derived value."""
        return cls(
            id=str(uuid.uuid4()),
            suit=Suit(suit),
            rank=Rank(rank),
            value=card_value(rank, suit),
        )

    def to_dict(self) -> dict:
        """Convert card to a JSON-safe dictionary (full identity)."""
        data = {
            "id": self.id,
            "suit": self.suit.value,
            "rank": self.rank.value,
            "value": self.value,
            "face_up": self.face_up,
        }
        if self.source is not None:
            data["source"] = self.source.value
        return data

    @classmethod
    def from_dict(cls, d: dict) -> "Card":
        source = d.get("source")
        return cls(
            id=d["id"],
            suit=Suit(d["suit"]),
            rank=Rank(d["rank"]),
            value=d["value"],
            face_up=d.get("face_up", False),
            source=CardSource(source) if source else None,
        )

    def __str__(self) -> str:
        if self.rank == Rank.JOKER:
            return "Joker"
        return f"{self.rank.value} of {self.suit.value}"


def shuffle(items: list, rng: Optional[random.Random] = None) -> list:
    """
    Shuffle a list in place with a uniform Fisher-Yates pass.

    Args:
        items: List to permute.
        rng: Random source. Defaults to the module-level generator; pass a
            seeded random.Random for deterministic tests.

    Returns:
        The same list, permuted.
    """
    rng = rng or random
    for i in range(len(items) - 1, 0, -1):
        j = rng.randint(0, i)
        items[i], items[j] = items[j], items[i]
    return items


def create_deck(rng: Optional[random.Random] = None) -> list[Card]:
    """
    Build and shuffle a 54-card deck: 52 standard cards plus 2 jokers.

    Args:
        rng: Optional random source for the shuffle.

    Returns:
        Shuffled list of face-down cards; index 0 is the next draw.
    """
    deck = [Card.create(rank, suit) for suit in STANDARD_SUITS for rank in STANDARD_RANKS]
    deck.extend(Card.create(Rank.JOKER, Suit.JOKER) for _ in range(JOKERS_PER_DECK))
    return shuffle(deck, rng)


@dataclass
class GameSettings:
    """
    Per-game settings chosen in the lobby.

    Only target_score is read by the rules engine (match end); every other
    field is carried through untouched for clients and bots.
    """

    turn_timer: str = "30"
    matts_pairs_rule: bool = False
    use_effect_cards: bool = True
    num_players: int = 4
    bot_difficulty: str = "medium"
    target_score: Optional[str] = "100"
    extra: dict = field(default_factory=dict)

    _CLIENT_KEYS = {
        "turnTimer": "turn_timer",
        "mattsPairsRule": "matts_pairs_rule",
        "useEffectCards": "use_effect_cards",
        "numPlayers": "num_players",
        "botDifficulty": "bot_difficulty",
        "targetScore": "target_score",
    }

    @classmethod
    def from_client_data(cls, data: Optional[dict]) -> "GameSettings":
        """Build settings from a client payload (camelCase or snake_case keys)."""
        defaults = config.game_defaults
        values = {
            "turn_timer": defaults.turn_timer,
            "matts_pairs_rule": defaults.matts_pairs_rule,
            "use_effect_cards": defaults.use_effect_cards,
            "num_players": defaults.num_players,
            "bot_difficulty": defaults.bot_difficulty,
            "target_score": defaults.target_score,
        }
        extra = {}
        for key, value in (data or {}).items():
            name = cls._CLIENT_KEYS.get(key, key)
            if name in values:
                values[name] = value
            elif name != "extra":
                extra[key] = value
        if data and isinstance(data.get("extra"), dict):
            extra.update(data["extra"])
        return cls(**values, extra=extra)

    def target(self) -> Optional[int]:
        """Target score as an integer, or None when unset or unparseable."""
        if self.target_score in (None, ""):
            return None
        try:
            return int(self.target_score)
        except (TypeError, ValueError):
            return None

    def to_dict(self) -> dict:
        return {
            "turn_timer": self.turn_timer,
            "matts_pairs_rule": self.matts_pairs_rule,
            "use_effect_cards": self.use_effect_cards,
            "num_players": self.num_players,
            "bot_difficulty": self.bot_difficulty,
            "target_score": self.target_score,
            "extra": dict(self.extra),
        }


@dataclass
class Player:
    """
    A player seated in a Kaboo game.

    Attributes:
        id: Stable player id supplied by the lobby.
        name: Display name.
        is_connected: Presence flag maintained outside the engine.
        is_ready: Set by READY_TO_PLAY during the opening look.
        cards: Hand, addressed by index.
        score: Cumulative score across rounds.
        kaboo_called: Whether this player called Kaboo this round.
    """

    id: str
    name: str
    is_connected: bool = True
    is_ready: bool = False
    cards: list[Card] = field(default_factory=list)
    score: int = 0
    kaboo_called: bool = False

    def hand_total(self) -> int:
        """Sum of the values of every card in hand."""
        return sum(card.value for card in self.cards)

    def has_card(self, index: int) -> bool:
        return 0 <= index < len(self.cards)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "is_connected": self.is_connected,
            "is_ready": self.is_ready,
            "cards": [card.to_dict() for card in self.cards],
            "score": self.score,
            "kaboo_called": self.kaboo_called,
        }

    @classmethod
    def from_dict(cls, d: dict) -> "Player":
        return cls(
            id=d["id"],
            name=d["name"],
            is_connected=d.get("is_connected", True),
            is_ready=d.get("is_ready", False),
            cards=[Card.from_dict(c) for c in d.get("cards", [])],
            score=d.get("score", 0),
            kaboo_called=d.get("kaboo_called", False),
        )


@dataclass
class PendingEffect:
    """A power waiting to be resolved by the current player."""

    type: EffectType
    source_card_rank: Rank

    def to_dict(self) -> dict:
        return {"type": self.type.value, "source_card_rank": self.source_card_rank.value}

    @classmethod
    def from_dict(cls, d: dict) -> "PendingEffect":
        return cls(type=EffectType(d["type"]), source_card_rank=Rank(d["source_card_rank"]))


@dataclass
class GameState:
    """
    Complete state of one Kaboo game.

    Every card lives in exactly one of: a player's hand, the deck, the
    discard pile, or drawn_card. Treated as a value by the rules engine:
    process_move() works on a deep copy and hands back a new state.

    Attributes:
        room_code: Lobby room code.
        phase: Game phase.
        settings: Lobby settings.
        players: Players keyed by id.
        player_order: Turn order, fixed for the round.
        deck: Draw pile; index 0 is the next card drawn.
        discard_pile: Face-up pile; the last element is the top.
        current_turn_user_id: Whose turn it is.
        turn_phase: Sub-phase of the current turn.
        drawn_card: Card held by the current player between draw and play.
        pending_effect: Power awaiting resolution.
        kaboo_caller_id: Player who called Kaboo this round.
        turns_left_after_kaboo: Countdown after the Kaboo call.
        last_action: Human-readable description of the last transition.
        round_number: 1-indexed round counter.
        round_scores: Scores of the last completed round, penalty included.
        winner_ids: Lowest cumulative scorer(s) once the match is finished.
    """

    room_code: str
    phase: GamePhase = GamePhase.LOBBY
    settings: GameSettings = field(default_factory=GameSettings)
    players: dict[str, Player] = field(default_factory=dict)
    player_order: list[str] = field(default_factory=list)
    deck: list[Card] = field(default_factory=list)
    discard_pile: list[Card] = field(default_factory=list)
    current_turn_user_id: Optional[str] = None
    turn_phase: TurnPhase = TurnPhase.DRAW
    drawn_card: Optional[Card] = None
    pending_effect: Optional[PendingEffect] = None
    kaboo_caller_id: Optional[str] = None
    turns_left_after_kaboo: Optional[int] = None
    last_action: str = ""
    round_number: int = 1
    round_scores: dict[str, int] = field(default_factory=dict)
    winner_ids: list[str] = field(default_factory=list)

    def get_player(self, player_id: str) -> Optional[Player]:
        """Find a player by id, or None."""
        return self.players.get(player_id)

    def current_player(self) -> Optional[Player]:
        """Get the player whose turn it currently is."""
        if self.current_turn_user_id is None:
            return None
        return self.players.get(self.current_turn_user_id)

    def discard_top(self) -> Optional[Card]:
        """Get the top card of the discard pile (if any)."""
        if self.discard_pile:
            return self.discard_pile[-1]
        return None

    def all_cards(self) -> list[Card]:
        """Every card in play: deck, discard pile, hands and the drawn card."""
        cards = list(self.deck) + list(self.discard_pile)
        for player_id in self.player_order or list(self.players):
            cards.extend(self.players[player_id].cards)
        if self.drawn_card is not None:
            cards.append(self.drawn_card)
        return cards

    def copy(self) -> "GameState":
        """Deep copy, so transitions never touch a state another caller holds."""
        return copy.deepcopy(self)

    # -------------------------------------------------------------------------
    # Serialization
    # -------------------------------------------------------------------------

    def to_dict(self) -> dict:
        """Serialize the full (unsanitized) state for storage."""
        return {
            "room_code": self.room_code,
            "phase": self.phase.value,
            "settings": self.settings.to_dict(),
            "players": {pid: p.to_dict() for pid, p in self.players.items()},
            "player_order": list(self.player_order),
            "deck": [c.to_dict() for c in self.deck],
            "discard_pile": [c.to_dict() for c in self.discard_pile],
            "current_turn_user_id": self.current_turn_user_id,
            "turn_phase": self.turn_phase.value,
            "drawn_card": self.drawn_card.to_dict() if self.drawn_card else None,
            "pending_effect": self.pending_effect.to_dict() if self.pending_effect else None,
            "kaboo_caller_id": self.kaboo_caller_id,
            "turns_left_after_kaboo": self.turns_left_after_kaboo,
            "last_action": self.last_action,
            "round_number": self.round_number,
            "round_scores": dict(self.round_scores),
            "winner_ids": list(self.winner_ids),
        }

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> "GameState":
        """Rebuild a state from to_dict() output."""
        settings = d.get("settings") or {}
        drawn = d.get("drawn_card")
        pending = d.get("pending_effect")
        return cls(
            room_code=d["room_code"],
            phase=GamePhase(d.get("phase", GamePhase.LOBBY.value)),
            settings=GameSettings.from_client_data(settings),
            players={pid: Player.from_dict(p) for pid, p in d.get("players", {}).items()},
            player_order=list(d.get("player_order", [])),
            deck=[Card.from_dict(c) for c in d.get("deck", [])],
            discard_pile=[Card.from_dict(c) for c in d.get("discard_pile", [])],
            current_turn_user_id=d.get("current_turn_user_id"),
            turn_phase=TurnPhase(d.get("turn_phase", TurnPhase.DRAW.value)),
            drawn_card=Card.from_dict(drawn) if drawn else None,
            pending_effect=PendingEffect.from_dict(pending) if pending else None,
            kaboo_caller_id=d.get("kaboo_caller_id"),
            turns_left_after_kaboo=d.get("turns_left_after_kaboo"),
            last_action=d.get("last_action", ""),
            round_number=d.get("round_number", 1),
            round_scores=dict(d.get("round_scores", {})),
            winner_ids=list(d.get("winner_ids", [])),
        )
