"""
Kaboo Self-Play Simulation Runner

Plays complete matches between random legal-move bots, straight through
the move dispatcher. No server or Redis needed. Useful for smoke testing
the rules engine and for rough balance numbers.

Usage:
    python simulate.py [num_games] [num_players]
    python simulate.py detail [num_players]

Examples:
    python simulate.py 10        # Run 10 matches with 4 players each
    python simulate.py 50 2      # Run 50 matches with 2 players each
    python simulate.py detail 3  # Print every move of one 3-player match
"""

import random
import sys
from typing import Callable, Optional

from actions import MoveResult, process_move
from config import config
from game import CardSource, EffectType, GamePhase, GameSettings, GameState, TurnPhase
from logging_config import setup_logging
from rules import initialize_game

# Called after every applied move with (old state, move result, actor, action)
MoveHook = Callable[[GameState, MoveResult, str, dict], None]

KABOO_HAND_THRESHOLD = 6
RANDOM_KABOO_CHANCE = 0.03
SNAP_CHANCE = 0.1
MAX_MOVES = 20000


class SimulationStats:
    """Track simulation statistics."""

    def __init__(self):
        self.games_played = 0
        self.total_rounds = 0
        self.total_moves = 0
        self.kaboo_calls = 0
        self.kaboo_successes = 0
        self.snaps_hit = 0
        self.snaps_missed = 0
        self.player_wins: dict[str, int] = {}
        self.player_scores: dict[str, list[int]] = {}

    def record_move(self, old_state: GameState, move: MoveResult, actor: str, action: dict):
        self.total_moves += 1
        action_type = action["type"]
        if action_type == "SNAP":
            # A hit shrinks the snapper's hand by one
            before = len(old_state.players[actor].cards)
            after = len(move.state.players[actor].cards)
            if after < before:
                self.snaps_hit += 1
            else:
                self.snaps_missed += 1
        elif action_type == "CALL_KABOO":
            self.kaboo_calls += 1

        if old_state.phase != GamePhase.SCORING and move.state.phase == GamePhase.SCORING:
            self.total_rounds += 1
            if move.state.last_action.startswith("Kaboo Success"):
                self.kaboo_successes += 1

    def record_game(self, state: GameState):
        self.games_played += 1
        for pid in state.winner_ids:
            name = state.players[pid].name
            self.player_wins[name] = self.player_wins.get(name, 0) + 1
        for player in state.players.values():
            self.player_scores.setdefault(player.name, []).append(player.score)

    def report(self) -> str:
        lines = [
            "=" * 50,
            "SIMULATION RESULTS",
            "=" * 50,
            f"Games played: {self.games_played}",
            f"Total rounds: {self.total_rounds}",
            f"Total moves: {self.total_moves}",
            f"Avg moves/round: {self.total_moves / max(1, self.total_rounds):.1f}",
            "",
            "KABOO:",
            f"  Calls: {self.kaboo_calls}",
            f"  Successes: {self.kaboo_successes} "
            f"({self.kaboo_successes / max(1, self.kaboo_calls) * 100:.1f}%)",
            "",
            "SNAPS:",
            f"  Hits: {self.snaps_hit}",
            f"  Misses: {self.snaps_missed}",
            "",
            "WIN RATES:",
        ]

        total_wins = sum(self.player_wins.values())
        for name, wins in sorted(self.player_wins.items(), key=lambda x: -x[1]):
            pct = wins / max(1, total_wins) * 100
            lines.append(f"  {name}: {wins} wins ({pct:.1f}%)")

        lines.append("")
        lines.append("AVERAGE FINAL SCORES (lower is better):")
        for name, scores in sorted(
            self.player_scores.items(),
            key=lambda x: sum(x[1]) / len(x[1]) if x[1] else 999
        ):
            avg = sum(scores) / len(scores) if scores else 0
            lines.append(f"  {name}: {avg:.1f}")

        return "\n".join(lines)


# =============================================================================
# Bot
# =============================================================================

def _can_draw_from_deck(state: GameState) -> bool:
    return bool(state.deck) or len(state.discard_pile) > 1


def _effect_action(state: GameState, player_id: str, effect: EffectType, rng: random.Random) -> dict:
    """Pick a random legal target for the pending power."""
    own = state.players[player_id].cards
    others = [
        (pid, i)
        for pid in state.player_order if pid != player_id
        for i in range(len(state.players[pid].cards))
    ]
    everything = [
        (pid, i)
        for pid in state.player_order
        for i in range(len(state.players[pid].cards))
    ]

    if effect == EffectType.PEEK_OWN:
        return {"type": "PEEK_OWN", "cardIndex": rng.randrange(len(own))}

    spy_ok = bool(others) and effect != EffectType.SWAP_EITHER
    swap_ok = len(everything) >= 2 and effect != EffectType.PEEK_OTHER
    if spy_ok and (not swap_ok or rng.random() < 0.5):
        pid, index = rng.choice(others)
        return {"type": "SPY_OPPONENT", "targetPlayerId": pid, "cardIndex": index}

    (pid1, i1), (pid2, i2) = rng.sample(everything, 2)
    return {
        "type": "SWAP_ANY",
        "card1": {"playerId": pid1, "cardIndex": i1},
        "card2": {"playerId": pid2, "cardIndex": i2},
    }


def choose_action(state: GameState, player_id: str, rng: random.Random) -> Optional[dict]:
    """
    Choose a legal action for player_id, or None if it has nothing to do.

    Looks at the full state, so the bot knows its own hand. It never
    chooses an action the rules engine would reject.
    """
    player = state.players[player_id]

    if state.phase == GamePhase.INITIAL_LOOK:
        return None if player.is_ready else {"type": "READY_TO_PLAY"}

    if state.phase == GamePhase.SCORING:
        return {"type": "NEXT_ROUND"}

    if state.phase != GamePhase.PLAYING or state.current_turn_user_id != player_id:
        return None

    if state.turn_phase == TurnPhase.DRAW:
        if state.kaboo_caller_id is None and (
            player.hand_total() <= KABOO_HAND_THRESHOLD
            or rng.random() < RANDOM_KABOO_CHANCE
        ):
            return {"type": "CALL_KABOO"}
        if not player.cards or not state.discard_pile or rng.random() < 0.75:
            if _can_draw_from_deck(state):
                return {"type": "DRAW_FROM_DECK"}
        if state.discard_pile:
            return {"type": "DRAW_FROM_DISCARD"}
        if state.kaboo_caller_id is None:
            return {"type": "CALL_KABOO"}
        return None

    if state.turn_phase == TurnPhase.ACTION:
        drawn = state.drawn_card
        must_swap = drawn is not None and drawn.source == CardSource.DISCARD
        if player.cards and (must_swap or rng.random() < 0.5):
            return {"type": "SWAP_WITH_OWN", "cardIndex": rng.randrange(len(player.cards))}
        return {"type": "DISCARD_DRAWN"}

    if state.pending_effect is not None:
        return _effect_action(state, player_id, state.pending_effect.type, rng)
    return None


def choose_snap(state: GameState, rng: random.Random) -> Optional[tuple[str, dict]]:
    """Pick a snap attempt (usually a match, sometimes a miss), in any turn step."""
    if state.phase != GamePhase.PLAYING or not state.discard_pile:
        return None
    candidates = [pid for pid in state.player_order if state.players[pid].cards]
    if not candidates:
        return None

    player_id = rng.choice(candidates)
    cards = state.players[player_id].cards
    top = state.discard_pile[-1]
    matches = [i for i, card in enumerate(cards) if card.rank == top.rank]
    if matches and rng.random() < 0.8:
        index = rng.choice(matches)
    else:
        index = rng.randrange(len(cards))
    return player_id, {"type": "SNAP", "cardIndex": index}


def next_move(state: GameState, rng: random.Random) -> Optional[tuple[str, dict]]:
    """Pick the next (actor, action) pair, or None if the match is stuck or over."""
    if state.phase == GamePhase.FINISHED:
        return None

    if state.phase == GamePhase.INITIAL_LOOK:
        for pid in state.player_order:
            if not state.players[pid].is_ready:
                return pid, {"type": "READY_TO_PLAY"}
        return None

    if state.phase == GamePhase.SCORING:
        return state.player_order[0], {"type": "NEXT_ROUND"}

    if rng.random() < SNAP_CHANCE:
        snap = choose_snap(state, rng)
        if snap is not None:
            return snap

    actor = state.current_turn_user_id
    action = choose_action(state, actor, rng)
    if action is None:
        return None
    return actor, action


# =============================================================================
# Runner
# =============================================================================

def run_game(
    num_players: int = 4,
    rng: Optional[random.Random] = None,
    target_score: Optional[str] = "100",
    on_move: Optional[MoveHook] = None,
    max_moves: int = MAX_MOVES,
) -> GameState:
    """
    Play one match to completion.

    Args:
        num_players: Number of bots.
        rng: Random source for the deal, the bots and reshuffles.
        target_score: Match ends once a cumulative score reaches it.
        on_move: Optional hook called after every applied move.
        max_moves: Safety limit.

    Returns:
        The last state reached (FINISHED unless the safety limit hit).
    """
    rng = rng or random.Random()
    names = {f"bot-{i + 1}": f"Bot {i + 1}" for i in range(num_players)}
    settings = GameSettings.from_client_data({"targetScore": target_score})
    state = initialize_game(list(names), "SIM", settings, names, rng)

    for _ in range(max_moves):
        chosen = next_move(state, rng)
        if chosen is None:
            break
        actor, action = chosen
        move = process_move(state, action, actor, rng)
        if on_move:
            on_move(state, move, actor, action)
        state = move.state

    return state


def run_simulation(
    num_games: int = 10,
    num_players: int = 4,
    seed: Optional[int] = None,
    verbose: bool = True,
) -> SimulationStats:
    """Run multiple matches and report statistics."""
    print(f"\nRunning {num_games} games with {num_players} players each...")
    print("=" * 50)

    rng = random.Random(seed)
    stats = SimulationStats()

    for i in range(num_games):
        state = run_game(num_players, rng, on_move=stats.record_move)
        stats.record_game(state)

        if verbose:
            winners = ", ".join(state.players[pid].name for pid in state.winner_ids)
            print(f"Game {i + 1}/{num_games}: {state.round_number} rounds, winner {winners or '-'}")

    print("\n")
    print(stats.report())
    return stats


def run_detailed_game(num_players: int = 4, seed: Optional[int] = None):
    """Run a single match printing every move."""
    print(f"\nRunning detailed game with {num_players} players...")
    print("=" * 50)

    def show(old_state: GameState, move: MoveResult, actor: str, action: dict):
        name = old_state.players[actor].name
        line = f"  [round {move.state.round_number}] {name}: {action['type']} -> {move.state.last_action}"
        if move.result is not None:
            line += f" (saw {move.result})"
        print(line)
        if move.state.phase == GamePhase.SCORING and old_state.phase != GamePhase.SCORING:
            for pid, score in move.state.round_scores.items():
                player = move.state.players[pid]
                cards = [str(c) for c in player.cards]
                print(f"      {player.name}: {score} this round, {player.score} total  {cards}")

    state = run_game(num_players, random.Random(seed), on_move=show)

    print("\n" + "=" * 50)
    print("FINAL SCORES")
    print("=" * 50)
    for player in sorted(state.players.values(), key=lambda p: p.score):
        print(f"  {player.name}: {player.score} points")

    winners = ", ".join(state.players[pid].name for pid in state.winner_ids)
    print(f"\nWinner: {winners}!")


if __name__ == "__main__":
    setup_logging(config.LOG_LEVEL, config.ENVIRONMENT)

    if len(sys.argv) > 1 and sys.argv[1] == "detail":
        # Detailed single game
        num_players = int(sys.argv[2]) if len(sys.argv) > 2 else 4
        run_detailed_game(num_players)
    else:
        # Batch simulation
        num_games = int(sys.argv[1]) if len(sys.argv) > 1 else 10
        num_players = int(sys.argv[2]) if len(sys.argv) > 2 else 4
        run_simulation(num_games, num_players)
