"""
Tests for per-viewer state sanitization.

Hidden cards must not leak rank, suit, value or id to a viewer who is not
entitled to them, while slot counts and public cards stay intact.
"""

import json
import random

import rules
from game import CardSource, GamePhase, Rank, Suit
from sanitizer import mask_card, sanitize_state, state_for_player


def _dealt(phase=GamePhase.INITIAL_LOOK):
    state = rules.initialize_game(["alice", "bob", "carol"], "ROOM", rng=random.Random(12))
    if phase == GamePhase.PLAYING:
        for pid in state.player_order:
            rules.ready_to_play(state, pid)
    return state


def _is_masked(card) -> bool:
    return (
        card.id.startswith("hidden:")
        and card.rank == Rank.ACE
        and card.suit == Suit.HEARTS
        and card.value == 0
        and card.face_up is False
    )


class TestMasking:
    """Verify what each viewer can see."""

    def test_deck_always_masked(self):
        state = _dealt()
        view = sanitize_state(state, "alice")
        assert len(view.deck) == len(state.deck)
        assert all(_is_masked(c) for c in view.deck)
        assert view.deck[0].id == "hidden:deck:0"

    def test_own_peek_cards_visible_during_initial_look(self):
        state = _dealt()
        view = sanitize_state(state, "alice")
        own = view.players["alice"].cards
        assert own[0] == state.players["alice"].cards[0]
        assert own[1] == state.players["alice"].cards[1]
        assert _is_masked(own[2])
        assert _is_masked(own[3])

    def test_opponent_cards_masked_during_initial_look(self):
        state = _dealt()
        view = sanitize_state(state, "alice")
        assert all(_is_masked(c) for c in view.players["bob"].cards)
        assert view.players["bob"].cards[0].id == "hidden:bob:0"

    def test_own_cards_masked_once_playing(self):
        state = _dealt(GamePhase.PLAYING)
        view = sanitize_state(state, "alice")
        assert all(_is_masked(c) for c in view.players["alice"].cards)

    def test_face_up_cards_visible_to_everyone(self):
        state = _dealt(GamePhase.PLAYING)
        state.players["bob"].cards[3].face_up = True
        view = sanitize_state(state, "carol")
        assert view.players["bob"].cards[3] == state.players["bob"].cards[3]

    def test_discard_pile_public(self):
        state = _dealt()
        view = sanitize_state(state, None)
        assert view.discard_pile == state.discard_pile

    def test_spectator_sees_no_private_cards(self):
        state = _dealt()
        view = sanitize_state(state, None)
        for player in view.players.values():
            assert all(_is_masked(c) for c in player.cards)

    def test_drawn_deck_card_only_visible_to_drawer(self):
        state = _dealt(GamePhase.PLAYING)
        current = state.current_turn_user_id
        other = next(pid for pid in state.player_order if pid != current)
        rules.draw_from_deck(state, current)

        assert sanitize_state(state, current).drawn_card == state.drawn_card

        hidden = sanitize_state(state, other).drawn_card
        assert _is_masked(hidden)
        assert hidden.id == "hidden:drawn"
        assert hidden.source == CardSource.DECK

    def test_drawn_discard_card_is_public(self):
        state = _dealt(GamePhase.PLAYING)
        current = state.current_turn_user_id
        other = next(pid for pid in state.player_order if pid != current)
        rules.draw_from_discard(state, current)
        assert sanitize_state(state, other).drawn_card == state.drawn_card

    def test_hidden_ids_never_leak(self):
        state = _dealt(GamePhase.PLAYING)
        view = json.dumps(sanitize_state(state, "alice").to_dict())
        for card in state.deck:
            assert card.id not in view
        for player in state.players.values():
            for card in player.cards:
                assert card.id not in view

    def test_mask_card_keeps_drawn_source_only(self):
        state = _dealt()
        masked = mask_card(state.deck[0], "x")
        assert masked.id == "hidden:x"
        assert masked.source is None


class TestSanitizeProperties:
    """Verify sanitize_state behaves as a pure projection."""

    def test_input_untouched(self):
        state = _dealt()
        before = state.to_dict()
        sanitize_state(state, "bob")
        assert state.to_dict() == before

    def test_idempotent(self):
        state = _dealt()
        rules.ready_to_play(state, "alice")
        once = sanitize_state(state, "alice")
        assert sanitize_state(once, "alice") == once

    def test_idempotent_mid_turn(self):
        state = _dealt(GamePhase.PLAYING)
        rules.draw_from_deck(state, state.current_turn_user_id)
        for viewer in ("alice", "bob", "carol", None):
            once = sanitize_state(state, viewer)
            assert sanitize_state(once, viewer) == once

    def test_counts_preserved(self):
        state = _dealt(GamePhase.PLAYING)
        view = sanitize_state(state, "carol")
        assert len(view.all_cards()) == len(state.all_cards())


class TestStateForPlayer:
    """Verify the client-facing dict."""

    def test_convenience_fields(self):
        state = _dealt(GamePhase.PLAYING)
        current = state.current_turn_user_id
        data = state_for_player(state, current)
        assert data["viewer_id"] == current
        assert data["is_my_turn"] is True
        assert data["deck_remaining"] == len(state.deck)
        assert data["discard_top"] == state.discard_pile[-1].to_dict()
        assert data["phase"] == "playing"

    def test_not_my_turn(self):
        state = _dealt(GamePhase.PLAYING)
        other = next(pid for pid in state.player_order if pid != state.current_turn_user_id)
        assert state_for_player(state, other)["is_my_turn"] is False
        assert state_for_player(state, None)["is_my_turn"] is False
