"""
Tests for action parsing and move dispatch.

process_move() must validate every payload, leave the input state
untouched, and surface every failure as a GameError.
"""

import random

import pytest
from actions import (
    CallKaboo, LegacySwapAny, PeekOwn, SetTestDeck, SpyOpponent, SwapAny, SwapWithOwn,
    parse_action, process_move,
)
from game import EffectType, GameError, GamePhase, PendingEffect, Rank, Suit, TurnPhase
import rules


def _playing_state(seed=21):
    state = rules.initialize_game(["alice", "bob", "carol"], "ROOM", rng=random.Random(seed))
    for pid in state.player_order:
        rules.ready_to_play(state, pid)
    return state


def _with_effect(effect: EffectType):
    state = _playing_state()
    state.turn_phase = TurnPhase.EFFECT
    state.pending_effect = PendingEffect(effect, Rank.KING)
    return state


# =============================================================================
# Parsing
# =============================================================================

class TestParseAction:
    """Verify payload validation."""

    def test_simple_actions(self):
        for action_type in ("READY_TO_PLAY", "DRAW_FROM_DECK", "DRAW_FROM_DISCARD",
                            "DISCARD_DRAWN", "CALL_KABOO", "NEXT_ROUND"):
            assert parse_action({"type": action_type}).type == action_type

    def test_camel_case_fields(self):
        action = parse_action({"type": "SPY_OPPONENT", "targetPlayerId": "bob", "cardIndex": 2})
        assert isinstance(action, SpyOpponent)
        assert action.target_player_id == "bob"
        assert action.card_index == 2

    def test_swap_any_current_shape(self):
        action = parse_action({
            "type": "SWAP_ANY",
            "card1": {"playerId": "alice", "cardIndex": 0},
            "card2": {"playerId": "bob", "cardIndex": 3},
        })
        assert isinstance(action, SwapAny)
        assert action.card1.player_id == "alice"
        assert action.card2.card_index == 3

    def test_swap_any_legacy_shape(self):
        action = parse_action({
            "type": "SWAP_ANY", "targetPlayerId": "bob", "cardIndex": 3, "ownCardIndex": 1,
        })
        assert isinstance(action, LegacySwapAny)
        assert action.own_card_index == 1

    def test_set_test_deck(self):
        action = parse_action({"type": "SET_TEST_DECK", "cards": [{"rank": "K", "suit": "spades"}]})
        assert isinstance(action, SetTestDeck)
        assert action.cards[0].rank == Rank.KING
        assert action.cards[0].suit == Suit.SPADES

    def test_models_pass_through(self):
        action = CallKaboo()
        assert parse_action(action) is action

    @pytest.mark.parametrize("raw", [
        {"type": "FLY_AWAY"},
        {},
        {"type": "SWAP_WITH_OWN"},
        {"type": "SWAP_WITH_OWN", "cardIndex": "first"},
        {"type": "PEEK_OWN", "cardIndex": 0, "bonus": True},
        {"type": "SWAP_ANY", "card1": {"playerId": "a", "cardIndex": 0}},
        {"type": "SET_TEST_DECK", "cards": [{"rank": "Z", "suit": "spades"}]},
        "DRAW_FROM_DECK",
        None,
    ])
    def test_invalid_actions(self, raw):
        with pytest.raises(GameError) as excinfo:
            parse_action(raw)
        assert excinfo.value.code == "INVALID_ACTION"


# =============================================================================
# Dispatch
# =============================================================================

class TestProcessMove:
    """Verify move dispatch and value semantics."""

    def test_input_state_untouched(self):
        state = _playing_state()
        before = state.to_dict()
        result = process_move(state, {"type": "DRAW_FROM_DECK"}, state.current_turn_user_id)
        assert state.to_dict() == before
        assert result.state.turn_phase == TurnPhase.ACTION
        assert result.result is None

    def test_input_untouched_on_failure(self):
        state = _playing_state()
        before = state.to_dict()
        other = next(pid for pid in state.player_order if pid != state.current_turn_user_id)
        with pytest.raises(GameError) as excinfo:
            process_move(state, {"type": "DRAW_FROM_DECK"}, other)
        assert excinfo.value.code == "NOT_YOUR_TURN"
        assert state.to_dict() == before

    def test_accepts_models(self):
        state = _playing_state()
        current = state.current_turn_user_id
        state = process_move(state, {"type": "DRAW_FROM_DECK"}, current).state
        state = process_move(state, SwapWithOwn(card_index=1), current).state
        assert state.current_turn_user_id != current or state.turn_phase == TurnPhase.EFFECT

    def test_peek_returns_private_result(self):
        state = _with_effect(EffectType.PEEK_OWN)
        current = state.current_turn_user_id
        expected = state.players[current].cards[2]
        result = process_move(state, PeekOwn(card_index=2), current)
        assert result.result == expected
        assert result.state.players[current].cards[2].face_up is False

    def test_spy(self):
        state = _with_effect(EffectType.FULL_VISION_SWAP)
        current = state.current_turn_user_id
        other = next(pid for pid in state.player_order if pid != current)
        result = process_move(
            state, {"type": "SPY_OPPONENT", "targetPlayerId": other, "cardIndex": 0}, current,
        )
        assert result.result == state.players[other].cards[0]

    def test_swap_any_both_shapes_agree(self):
        state = _with_effect(EffectType.LOOK_AND_SWAP)
        current = state.current_turn_user_id
        other = next(pid for pid in state.player_order if pid != current)

        current_shape = process_move(state, {
            "type": "SWAP_ANY",
            "card1": {"playerId": current, "cardIndex": 1},
            "card2": {"playerId": other, "cardIndex": 2},
        }, current).state
        legacy_shape = process_move(state, {
            "type": "SWAP_ANY", "targetPlayerId": other, "cardIndex": 2, "ownCardIndex": 1,
        }, current).state

        assert current_shape.players[current].cards[1].id == state.players[other].cards[2].id
        assert legacy_shape.players[current].cards[1].id == state.players[other].cards[2].id
        assert current_shape.players[other].cards[2].id == legacy_shape.players[other].cards[2].id

    def test_snap_out_of_turn(self):
        state = _playing_state()
        other = next(pid for pid in state.player_order if pid != state.current_turn_user_id)
        result = process_move(state, {"type": "SNAP", "cardIndex": 0}, other)
        snapped = len(result.state.players[other].cards) == 3
        penalized = len(result.state.players[other].cards) == 5
        assert snapped or penalized

    def test_set_test_deck_then_draw(self):
        state = _playing_state()
        wanted = next(c for c in state.deck if c.rank != Rank.JOKER)
        state = process_move(state, {
            "type": "SET_TEST_DECK", "cards": [{"rank": wanted.rank.value, "suit": wanted.suit.value}],
        }, "alice").state
        current = state.current_turn_user_id
        state = process_move(state, {"type": "DRAW_FROM_DECK"}, current).state
        assert state.drawn_card.id == wanted.id

    def test_full_round_through_dispatcher(self):
        state = rules.initialize_game(["alice", "bob"], "ROOM", rng=random.Random(4))
        for pid in ("alice", "bob"):
            state = process_move(state, {"type": "READY_TO_PLAY"}, pid).state
        assert state.phase == GamePhase.PLAYING

        first = state.current_turn_user_id
        state = process_move(state, {"type": "CALL_KABOO"}, first).state
        second = state.current_turn_user_id
        assert second != first

        state = process_move(state, {"type": "DRAW_FROM_DISCARD"}, second).state
        state = process_move(state, {"type": "SWAP_WITH_OWN", "cardIndex": 0}, second).state
        if state.turn_phase == TurnPhase.EFFECT:
            effect = state.pending_effect.type
            if effect == EffectType.PEEK_OWN:
                action = {"type": "PEEK_OWN", "cardIndex": 0}
            elif effect == EffectType.SWAP_EITHER:
                action = {
                    "type": "SWAP_ANY",
                    "card1": {"playerId": second, "cardIndex": 0},
                    "card2": {"playerId": first, "cardIndex": 0},
                }
            else:
                action = {"type": "SPY_OPPONENT", "targetPlayerId": first, "cardIndex": 0}
            state = process_move(state, action, second).state

        assert state.phase == GamePhase.SCORING
        assert set(state.round_scores) == {"alice", "bob"}

        state = process_move(state, {"type": "NEXT_ROUND"}, "alice", random.Random(5)).state
        assert state.round_number == 2
        assert state.phase == GamePhase.INITIAL_LOOK
