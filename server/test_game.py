"""
Test suite for the Match aggregate.

Covers:
- Dealing a round
- Playing cards, wilds and special effects
- Draw policies (classic, unlimited, force play) and chains
- UNO calls and penalties
- Jump-in, player departure
- Snapshot / restore

Run with: pytest test_game.py -v
"""

import random
from collections import Counter

import pytest

from cards import Card, Color, FALLBACK_CARD, Value, generate_deck
from game import GameOptions, GamePhase, Match
from rules import StackState
from turns import TurnState


def c(color: str, value: str) -> Card:
    return Card(Color(color), Value(value))


def make_match(hands: dict, top: Card, deck=None, **options) -> Match:
    """Build a match in PLAYING phase with fixed hands; first player to act."""
    match = Match(options=GameOptions(**options), rng=random.Random(0))
    match.players = list(hands)
    match.hands = {name: list(cards) for name, cards in hands.items()}
    match.discard_pile = [top]
    match.deck = list(deck) if deck is not None else [c("yellow", "9")] * 10
    match.turn = TurnState(current_player_index=0, direction=1, player_count=len(hands))
    match.scores = {name: 0 for name in hands}
    match.said_uno = {name: False for name in hands}
    match.phase = GamePhase.PLAYING
    return match


# =============================================================================
# Dealing
# =============================================================================

class TestStartGame:

    def test_deal(self):
        match = Match(rng=random.Random(42))
        match.start_game(["Ann", "Bob", "Cy"])
        assert match.phase == GamePhase.PLAYING
        assert all(len(match.hands[p]) == 7 for p in ["Ann", "Bob", "Cy"])
        assert len(match.discard_pile) == 1
        assert match.top_card().is_number
        assert match.turn.current_player_index == 0
        assert match.turn.direction == 1
        assert match.scores == {"Ann": 0, "Bob": 0, "Cy": 0}

    @pytest.mark.parametrize("seed", range(5))
    def test_no_card_lost(self, seed):
        match = Match(rng=random.Random(seed))
        match.start_game(["Ann", "Bob"])
        everything = match.deck + match.discard_pile + match.hands["Ann"] + match.hands["Bob"]
        assert Counter(everything) == Counter(generate_deck())

    def test_hand_size_option(self):
        match = Match(rng=random.Random(1))
        match.start_game(["Ann", "Bob"], GameOptions(hand_size=5))
        assert len(match.hands["Ann"]) == 5

    def test_new_round_keeps_scores(self):
        match = Match(rng=random.Random(1))
        match.start_game(["Ann", "Bob"])
        match.scores["Ann"] = 120
        match.phase = GamePhase.ROUND_OVER
        match.start_new_round()
        assert match.scores["Ann"] == 120
        assert match.phase == GamePhase.PLAYING

    def test_version_increases(self):
        match = Match(rng=random.Random(1))
        match.start_game(["Ann", "Bob"])
        assert match.state_version == 1


# =============================================================================
# Playing
# =============================================================================

class TestPlayCard:

    def test_unknown_wild_color_refused(self):
        match = make_match({"A": [c("wild", "wild"), c("red", "1")], "B": [c("red", "4")]}, c("red", "9"))
        assert match.play_card("A", 0, "purple") is None
        assert len(match.hands["A"]) == 2
        assert match.phase == GamePhase.PLAYING
        assert match.play_card("A", 0, "green") is not None

    def test_matching_color(self):
        match = make_match({"A": [c("red", "3"), c("blue", "4")], "B": [c("green", "1")]}, c("red", "9"))
        result = match.play_card("A", 0)
        assert result is not None
        assert match.hands["A"] == [c("blue", "4")]
        assert match.top_card() == c("red", "3")
        assert match.current_player() == "B"

    def test_wrong_turn(self):
        match = make_match({"A": [c("red", "3")], "B": [c("red", "4")]}, c("red", "9"))
        assert match.play_card("B", 0) is None

    def test_illegal_card_leaves_state(self):
        match = make_match({"A": [c("blue", "3"), c("red", "1")], "B": [c("red", "4")]}, c("red", "9"))
        version = match.state_version
        assert match.play_card("A", 0) is None
        assert len(match.hands["A"]) == 2
        assert match.state_version == version

    def test_bad_index(self):
        match = make_match({"A": [c("red", "3")], "B": [c("red", "4")]}, c("red", "9"))
        assert match.play_card("A", 5) is None
        assert match.play_card("A", -1) is None

    def test_wild_then_select_color(self):
        match = make_match({"A": [c("wild", "wild"), c("red", "1")], "B": [c("red", "4")]}, c("blue", "9"))
        result = match.play_card("A", 0)
        assert result.awaiting_color
        assert match.phase == GamePhase.CHOOSING_COLOR
        assert match.current_player() == "A"
        assert match.select_color("B", Color.GREEN) is None

        result = match.select_color("A", Color.GREEN)
        assert result is not None
        assert match.phase == GamePhase.PLAYING
        assert match.top_card() == c("green", "wild")
        assert match.current_player() == "B"

    def test_select_wild_color_rejected(self):
        match = make_match({"A": [c("wild", "wild"), c("red", "1")], "B": [c("red", "4")]}, c("blue", "9"))
        match.play_card("A", 0)
        assert match.select_color("A", Color.WILD) is None
        assert match.select_color("A", "purple") is None

    def test_wild4_with_color_hits_next_player(self):
        hands = {"A": [c("wild", "wild4"), c("red", "1")], "B": [c("red", "4")], "C": [c("red", "5")]}
        match = make_match(hands, c("blue", "9"))
        result = match.play_card("A", 0, Color.RED)
        assert result.draw_target == "B"
        assert len(result.drawn) == 4
        assert len(match.hands["B"]) == 5
        assert match.current_player() == "C"
        assert match.top_card() == c("red", "wild4")

    def test_skip(self):
        hands = {"A": [c("red", "skip"), c("red", "1")], "B": [c("red", "4")], "C": [c("red", "5")]}
        match = make_match(hands, c("red", "9"))
        match.play_card("A", 0)
        assert match.current_player() == "C"

    def test_reverse_two_players(self):
        match = make_match({"A": [c("red", "reverse"), c("red", "1")], "B": [c("red", "4")]}, c("red", "9"))
        match.play_card("A", 0)
        assert match.turn.direction == -1
        assert match.current_player() == "B"

    def test_last_card_wins_round(self):
        hands = {"A": [c("red", "3")], "B": [c("blue", "5"), c("green", "skip")], "C": [c("wild", "wild4")]}
        match = make_match(hands, c("red", "9"))
        result = match.play_card("A", 0)
        assert result.round_result is not None
        assert result.round_result.points == 75
        assert match.scores["A"] == 75
        assert match.phase == GamePhase.ROUND_OVER
        assert match.round_winner == "A"

    def test_last_card_wins_game(self):
        match = make_match({"A": [c("red", "3")], "B": [c("wild", "wild")]}, c("red", "9"), points_to_win=50)
        match.play_card("A", 0)
        assert match.phase == GamePhase.GAME_OVER
        assert match.game_winner == "A"


# =============================================================================
# Chains
# =============================================================================

class TestStacking:

    def test_chain_passes_to_player_who_can_extend(self):
        hands = {
            "A": [c("red", "draw2"), c("red", "1")],
            "B": [c("blue", "draw2"), c("green", "1")],
            "C": [c("red", "5")],
        }
        match = make_match(hands, c("red", "9"), stacking_enabled=True)
        match.play_card("A", 0)
        assert match.stack.can_stack
        assert match.stack.pending_draw_count == 2
        assert match.current_player() == "B"
        assert len(match.hands["B"]) == 2

    def test_chain_only_accepts_extensions(self):
        hands = {
            "A": [c("red", "draw2"), c("red", "1")],
            "B": [c("blue", "draw2"), c("red", "1")],
            "C": [c("red", "5")],
        }
        match = make_match(hands, c("red", "9"), stacking_enabled=True)
        match.play_card("A", 0)
        assert match.play_card("B", 1) is None

    def test_extension_lands_on_player_who_cannot(self):
        hands = {
            "A": [c("red", "draw2"), c("red", "1")],
            "B": [c("blue", "draw2"), c("green", "1")],
            "C": [c("red", "5")],
        }
        match = make_match(hands, c("red", "9"), stacking_enabled=True)
        match.play_card("A", 0)
        result = match.play_card("B", 0)
        assert result.draw_target == "C"
        assert len(result.drawn) == 4
        assert not match.stack.can_stack
        assert match.current_player() == "A"

    def test_breaking_chain_draws_total(self):
        hands = {
            "A": [c("red", "draw2"), c("red", "1")],
            "B": [c("blue", "draw2"), c("green", "1")],
            "C": [c("red", "5")],
        }
        match = make_match(hands, c("red", "9"), stacking_enabled=True)
        match.play_card("A", 0)
        result = match.draw("B")
        assert result.chain_broken
        assert len(result.cards) == 2
        assert match.stack == StackState()
        assert match.current_player() == "C"

    def test_pass_refused_during_chain(self):
        hands = {"A": [c("red", "draw2"), c("red", "1")], "B": [c("blue", "draw2"), c("green", "1")]}
        match = make_match(hands, c("red", "9"), stacking_enabled=True)
        match.play_card("A", 0)
        assert not match.pass_turn("B")


# =============================================================================
# Drawing
# =============================================================================

class TestDrawPolicies:

    def test_classic_unplayable_passes(self):
        match = make_match({"A": [c("blue", "1")], "B": [c("red", "4")]}, c("red", "9"), deck=[c("green", "2")])
        result = match.draw("A")
        assert result.cards == [c("green", "2")]
        assert result.turn_passed
        assert match.current_player() == "B"

    def test_classic_playable_may_be_played(self):
        match = make_match({"A": [c("blue", "1")], "B": [c("red", "4")]}, c("red", "9"), deck=[c("red", "2")])
        result = match.draw("A")
        assert result.must_play
        assert match.current_player() == "A"
        assert match.draw("A") is None
        assert match.play_card("A", 0) is None
        assert match.play_card("A", 1) is not None

    def test_classic_playable_may_be_kept(self):
        match = make_match({"A": [c("blue", "1")], "B": [c("red", "4")]}, c("red", "9"), deck=[c("red", "2")])
        match.draw("A")
        assert match.pass_turn("A")
        assert match.current_player() == "B"

    def test_pass_requires_draw(self):
        match = make_match({"A": [c("blue", "1")], "B": [c("red", "4")]}, c("red", "9"))
        assert not match.pass_turn("A")

    def test_unlimited_draw(self):
        deck = [c("green", "2"), c("red", "2"), c("green", "3")]
        match = make_match({"A": [c("blue", "1")], "B": [c("red", "4")]}, c("red", "9"), deck=deck,
                           unlimited_draw_enabled=True)
        match.draw("A")
        match.draw("A")
        assert len(match.hands["A"]) == 3
        assert match.current_player() == "A"
        assert match.pass_turn("A")
        assert match.current_player() == "B"

    def test_force_play_draws_until_playable(self):
        deck = [c("red", "2"), c("green", "6"), c("green", "3")]
        match = make_match({"A": [c("blue", "1")], "B": [c("red", "4")]}, c("red", "9"), deck=deck,
                           force_play_enabled=True)
        result = match.draw("A")
        assert result.cards == [c("green", "3"), c("green", "6"), c("red", "2")]
        assert result.must_play
        assert not match.pass_turn("A")
        assert match.play_card("A", len(match.hands["A"]) - 1) is not None
        assert match.current_player() == "B"

    def test_force_play_stops_at_max_hand(self):
        match = make_match({"A": [c("blue", "1")] * 18, "B": [c("red", "4")]}, c("red", "9"),
                           deck=[c("green", "2")] * 5, force_play_enabled=True)
        result = match.draw("A")
        assert len(result.cards) == 2
        assert result.turn_passed

    def test_empty_piles(self):
        match = make_match({"A": [c("blue", "1")], "B": [c("red", "4")]}, c("red", "9"), deck=[])
        result = match.draw("A")
        assert result.cards == []
        assert result.turn_passed


# =============================================================================
# UNO calls
# =============================================================================

class TestUno:

    def test_call_with_two_cards(self):
        match = make_match({"A": [c("red", "1"), c("red", "2")], "B": [c("red", "4")]}, c("red", "9"))
        assert match.call_uno("A")
        assert match.said_uno["A"]

    def test_call_with_three_cards_refused(self):
        match = make_match({"A": [c("red", "1")] * 3, "B": [c("red", "4")]}, c("red", "9"))
        assert not match.call_uno("A")

    def test_penalty_for_missed_call(self):
        match = make_match({"A": [c("red", "1"), c("red", "2")], "B": [c("red", "4"), c("red", "5")]}, c("red", "9"))
        match.play_card("A", 0)
        assert match.needs_uno_penalty("A")
        cards = match.apply_uno_penalty("A")
        assert len(cards) == 2
        assert len(match.hands["A"]) == 3
        assert not match.said_uno["A"]

    def test_no_penalty_after_call(self):
        match = make_match({"A": [c("red", "1"), c("red", "2")], "B": [c("red", "4"), c("red", "5")]}, c("red", "9"))
        match.call_uno("A")
        match.play_card("A", 0)
        assert not match.needs_uno_penalty("A")
        assert match.apply_uno_penalty("A") is None


# =============================================================================
# Jump-in and departures
# =============================================================================

class TestJumpIn:

    def test_jump_in_takes_the_turn(self):
        hands = {"A": [c("red", "1")], "B": [c("blue", "2")], "C": [c("red", "9"), c("green", "1")], "D": [c("red", "3")]}
        match = make_match(hands, c("red", "9"), jump_in_enabled=True)
        result = match.jump_in("C", 0)
        assert result.jump_in
        assert match.top_card() == c("red", "9")
        assert match.current_player() == "D"

    def test_jump_in_disabled(self):
        hands = {"A": [c("red", "1")], "B": [c("red", "9"), c("green", "1")]}
        match = make_match(hands, c("red", "9"))
        assert match.jump_in("B", 0) is None

    def test_jump_in_needs_identical_card(self):
        hands = {"A": [c("red", "1")], "B": [c("blue", "9"), c("green", "1")]}
        match = make_match(hands, c("red", "9"), jump_in_enabled=True)
        assert match.jump_in("B", 0) is None


class TestRemovePlayer:

    def test_last_player_standing_wins(self):
        match = make_match({"A": [c("red", "1")], "B": [c("red", "2")]}, c("red", "9"))
        assert match.remove_player("B") == "A"
        assert match.phase == GamePhase.GAME_OVER
        assert match.game_winner == "A"

    def test_leaving_on_turn_clears_draw_flags(self):
        match = make_match({"A": [c("blue", "1")], "B": [c("red", "7"), c("yellow", "1")], "C": [c("green", "3")]},
                           c("red", "9"), deck=[c("red", "2")])
        assert match.draw("A").must_play
        match.remove_player("A")
        assert match.current_player() == "B"
        assert not match.must_play_drawn_card
        assert match.can_draw_more
        assert match.play_card("B", 0) is not None

    def test_turn_kept_on_same_player(self):
        hands = {"A": [c("red", "1")], "B": [c("red", "2")], "C": [c("red", "3")]}
        match = make_match(hands, c("red", "9"))
        match.turn.current_player_index = 2
        assert match.remove_player("A") is None
        assert match.current_player() == "C"
        assert "A" not in match.hands

    def test_unknown_player(self):
        match = make_match({"A": [c("red", "1")], "B": [c("red", "2")]}, c("red", "9"))
        assert match.remove_player("Z") is None


# =============================================================================
# Snapshots
# =============================================================================

class TestSnapshot:

    def test_restore_reproduces_state(self):
        source = Match(rng=random.Random(3))
        source.start_game(["Ann", "Bob"], GameOptions(stacking_enabled=True))
        target = Match()
        assert target.restore(source.snapshot()) == 0
        assert target.snapshot() == source.snapshot()

    def test_restore_is_idempotent(self):
        source = Match(rng=random.Random(4))
        source.start_game(["Ann", "Bob", "Cy"])
        snapshot = source.snapshot()
        once = Match()
        once.restore(snapshot)
        twice = Match()
        twice.restore(snapshot)
        twice.restore(snapshot)
        assert once.snapshot() == twice.snapshot()

    def test_restore_keeps_flags_of_player_on_turn(self):
        match = make_match({"A": [c("blue", "1")], "B": [c("red", "4")]}, c("red", "9"), deck=[c("red", "2"), c("red", "2")])
        match.draw("A")
        match.restore(match.snapshot())
        assert match.must_play_drawn_card
        assert not match.can_draw_more
        assert match.draw("A") is None
        assert match.play_card("A", 0) is None

    def test_restore_resets_flags_when_turn_moved(self):
        match = make_match({"A": [c("blue", "1")], "B": [c("red", "4")]}, c("red", "9"), deck=[c("red", "2")])
        match.draw("A")
        snapshot = match.snapshot()
        snapshot["current_player_index"] = 1
        match.restore(snapshot)
        assert not match.must_play_drawn_card
        assert match.can_draw_more

    def test_restore_replaces_bad_cards(self):
        source = Match(rng=random.Random(5))
        source.start_game(["Ann", "Bob"])
        snapshot = source.snapshot()
        snapshot["discard_pile"] = [{"color": "wild", "value": "3"}]
        snapshot["player_hands"]["Ann"].append({"color": "red", "value": "wild"})
        target = Match()
        assert target.restore(snapshot) == 2
        assert target.discard_pile == [FALLBACK_CARD]
        assert len(target.hands["Ann"]) == 7

    def test_restore_settings(self):
        snapshot = Match().snapshot()
        snapshot["settings"] = {"points_to_win": 200, "jump_in_enabled": True}
        target = Match()
        target.restore(snapshot)
        assert target.options.points_to_win == 200
        assert target.options.jump_in_enabled
