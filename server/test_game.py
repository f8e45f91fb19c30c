"""
Test suite for the Kaboo data model.

Covers:
- Card values (joker -1, ace 1, 2-10 face, red royalty 0, black J/Q/K 11/12/13)
- Deck composition and shuffling
- Lobby settings parsing
- State serialization and copying

Run with: pytest test_game.py -v
"""

import random

import pytest
from game import (
    Card, CardSource, GamePhase, GameSettings, GameState, PendingEffect,
    EffectType, Player, Rank, Suit, TurnPhase, card_value, create_deck, shuffle,
)


# =============================================================================
# Card Value Tests
# =============================================================================

class TestCardValues:
    """Verify card point values."""

    def test_joker_worth_negative_1(self):
        assert card_value(Rank.JOKER, Suit.JOKER) == -1

    def test_ace_worth_1(self):
        for suit in (Suit.HEARTS, Suit.SPADES):
            assert card_value(Rank.ACE, suit) == 1

    def test_two_through_ten_face_value(self):
        for n in range(2, 11):
            assert card_value(Rank(str(n)), Suit.CLUBS) == n

    def test_red_royalty_worth_0(self):
        for rank in (Rank.JACK, Rank.QUEEN, Rank.KING):
            assert card_value(rank, Suit.HEARTS) == 0
            assert card_value(rank, Suit.DIAMONDS) == 0

    def test_black_royalty_worth_11_12_13(self):
        for suit in (Suit.CLUBS, Suit.SPADES):
            assert card_value(Rank.JACK, suit) == 11
            assert card_value(Rank.QUEEN, suit) == 12
            assert card_value(Rank.KING, suit) == 13

    def test_card_create_sets_value(self):
        card = Card.create(Rank.KING, Suit.SPADES)
        assert card.value == 13
        assert card.face_up is False
        assert card.source is None

    def test_card_create_accepts_raw_strings(self):
        card = Card.create("Q", "diamonds")
        assert card.rank == Rank.QUEEN
        assert card.suit == Suit.DIAMONDS
        assert card.value == 0

    def test_card_ids_are_unique(self):
        a = Card.create(Rank.ACE, Suit.HEARTS)
        b = Card.create(Rank.ACE, Suit.HEARTS)
        assert a.id != b.id

    def test_card_str(self):
        assert str(Card.create(Rank.TEN, Suit.SPADES)) == "10 of spades"
        assert str(Card.create(Rank.JOKER, Suit.JOKER)) == "Joker"


# =============================================================================
# Deck Tests
# =============================================================================

class TestDeck:
    """Verify deck construction."""

    def test_deck_has_54_cards(self):
        assert len(create_deck()) == 54

    def test_deck_has_two_jokers(self):
        deck = create_deck()
        jokers = [c for c in deck if c.rank == Rank.JOKER]
        assert len(jokers) == 2
        assert all(c.suit == Suit.JOKER for c in jokers)

    def test_deck_has_each_standard_card_once(self):
        deck = create_deck()
        standard = {(c.rank, c.suit) for c in deck if c.rank != Rank.JOKER}
        assert len(standard) == 52

    def test_deck_total_value(self):
        # 4 suits of A-10 (55 each), black royalty 2 * 36, red royalty 0, jokers -2
        assert sum(c.value for c in create_deck()) == 4 * 55 + 2 * 36 - 2

    def test_deck_cards_face_down(self):
        assert not any(c.face_up for c in create_deck())

    def test_deck_ids_unique(self):
        deck = create_deck()
        assert len({c.id for c in deck}) == 54

    def test_seeded_deck_is_deterministic(self):
        a = [(c.rank, c.suit) for c in create_deck(random.Random(7))]
        b = [(c.rank, c.suit) for c in create_deck(random.Random(7))]
        assert a == b


class TestShuffle:
    """Verify the Fisher-Yates shuffle."""

    def test_shuffle_is_permutation(self):
        items = list(range(20))
        result = shuffle(list(items), random.Random(3))
        assert sorted(result) == items

    def test_shuffle_returns_same_list(self):
        items = [1, 2, 3]
        assert shuffle(items, random.Random(1)) is items

    def test_shuffle_empty_and_single(self):
        assert shuffle([]) == []
        assert shuffle([1]) == [1]

    def test_shuffle_moves_things(self):
        items = list(range(30))
        assert shuffle(list(items), random.Random(11)) != items


# =============================================================================
# Settings Tests
# =============================================================================

class TestGameSettings:
    """Verify lobby settings parsing."""

    def test_defaults(self):
        settings = GameSettings.from_client_data(None)
        assert settings.turn_timer == "30"
        assert settings.use_effect_cards is True
        assert settings.target_score == "100"

    def test_camel_case_keys(self):
        settings = GameSettings.from_client_data({
            "turnTimer": "60",
            "mattsPairsRule": True,
            "numPlayers": 3,
            "botDifficulty": "hard",
            "targetScore": "50",
        })
        assert settings.turn_timer == "60"
        assert settings.matts_pairs_rule is True
        assert settings.num_players == 3
        assert settings.bot_difficulty == "hard"
        assert settings.target() == 50

    def test_unknown_keys_kept_in_extra(self):
        settings = GameSettings.from_client_data({"deckTheme": "neon"})
        assert settings.extra == {"deckTheme": "neon"}

    def test_target_unset_or_garbage(self):
        assert GameSettings(target_score=None).target() is None
        assert GameSettings(target_score="").target() is None
        assert GameSettings(target_score="lots").target() is None

    def test_round_trip(self):
        settings = GameSettings.from_client_data({"targetScore": "70", "deckTheme": "neon"})
        assert GameSettings.from_client_data(settings.to_dict()) == settings


# =============================================================================
# State Tests
# =============================================================================

def _sample_state() -> GameState:
    deck = create_deck(random.Random(5))
    alice = Player(id="alice", name="Alice", cards=deck[:4], score=12)
    bob = Player(id="bob", name="Bob", cards=deck[4:8], kaboo_called=True)
    drawn = deck[8]
    drawn.face_up = True
    drawn.source = CardSource.DECK
    top = deck[9]
    top.face_up = True
    return GameState(
        room_code="ABCD",
        phase=GamePhase.PLAYING,
        players={"alice": alice, "bob": bob},
        player_order=["bob", "alice"],
        deck=deck[10:],
        discard_pile=[top],
        current_turn_user_id="bob",
        turn_phase=TurnPhase.EFFECT,
        drawn_card=drawn,
        pending_effect=PendingEffect(EffectType.SWAP_EITHER, Rank.JACK),
        kaboo_caller_id="bob",
        turns_left_after_kaboo=1,
        last_action="Played J - Effect Triggered",
        round_number=2,
        round_scores={"alice": 7, "bob": 30},
    )


class TestGameState:
    """Verify the state aggregate."""

    def test_all_cards_accounts_for_every_zone(self):
        state = _sample_state()
        assert len(state.all_cards()) == 54

    def test_discard_top(self):
        state = _sample_state()
        assert state.discard_top() is state.discard_pile[-1]
        state.discard_pile = []
        assert state.discard_top() is None

    def test_current_player(self):
        state = _sample_state()
        assert state.current_player().id == "bob"
        state.current_turn_user_id = None
        assert state.current_player() is None

    def test_copy_is_deep(self):
        state = _sample_state()
        clone = state.copy()
        clone.players["alice"].cards.pop()
        clone.deck[0].face_up = True
        assert len(state.players["alice"].cards) == 4
        assert state.deck[0].face_up is False

    def test_serialization_round_trip(self):
        state = _sample_state()
        assert GameState.from_dict(state.to_dict()) == state

    def test_card_source_only_serialized_when_set(self):
        state = _sample_state()
        data = state.to_dict()
        assert data["drawn_card"]["source"] == "deck"
        assert "source" not in data["deck"][0]

    def test_hand_total(self):
        player = Player(id="p", name="P", cards=[
            Card.create(Rank.KING, Suit.SPADES),
            Card.create(Rank.JOKER, Suit.JOKER),
            Card.create(Rank.QUEEN, Suit.HEARTS),
        ])
        assert player.hand_total() == 12

    def test_has_card(self):
        player = Player(id="p", name="P", cards=[Card.create(Rank.ACE, Suit.CLUBS)])
        assert player.has_card(0)
        assert not player.has_card(1)
        assert not player.has_card(-1)
