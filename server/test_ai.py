"""
Tests for computer player decisions.

Run with: pytest test_ai.py -v
"""

import random

from ai import choose_wild_color, get_computer_move, play_computer_turn
from cards import Card, Color, Value
from game import GameOptions, GamePhase, Match
from rules import PlayContext
from turns import TurnState


def c(color: str, value: str) -> Card:
    return Card(Color(color), Value(value))


def make_match(hands: dict, top: Card, deck=None) -> Match:
    match = Match(options=GameOptions(), rng=random.Random(0))
    match.players = list(hands)
    match.hands = {name: list(cards) for name, cards in hands.items()}
    match.discard_pile = [top]
    match.deck = list(deck) if deck is not None else [c("yellow", "9")] * 10
    match.turn = TurnState(current_player_index=0, direction=1, player_count=len(hands))
    match.scores = {name: 0 for name in hands}
    match.said_uno = {name: False for name in hands}
    match.phase = GamePhase.PLAYING
    return match


class TestChooseWildColor:

    def test_most_common_color(self):
        hand = [c("red", "1"), c("blue", "2"), c("blue", "3"), c("wild", "wild")]
        assert choose_wild_color(hand, exclude_index=3) == Color.BLUE

    def test_excluded_card_not_counted(self):
        hand = [c("green", "1"), c("red", "2")]
        assert choose_wild_color(hand, exclude_index=0) == Color.RED

    def test_only_wilds_picks_a_playable_color(self):
        color = choose_wild_color([c("wild", "wild")], 0, random.Random(1))
        assert color in (Color.RED, Color.BLUE, Color.GREEN, Color.YELLOW)


class TestGetComputerMove:

    def test_draw_when_nothing_playable(self):
        move = get_computer_move([c("blue", "1")], c("red", "9"))
        assert move.move == "draw"

    def test_easy_plays_first_playable(self):
        hand = [c("blue", "1"), c("red", "2"), c("red", "skip")]
        move = get_computer_move(hand, c("red", "9"), difficulty="easy")
        assert move.move == "play"
        assert move.card_index == 1

    def test_hard_prefers_wild(self):
        hand = [c("red", "2"), c("red", "skip"), c("wild", "wild4"), c("blue", "7")]
        move = get_computer_move(hand, c("red", "9"), difficulty="hard")
        assert move.card_index == 2
        assert move.color in (Color.RED, Color.BLUE)

    def test_hard_highest_number(self):
        hand = [c("red", "2"), c("red", "8"), c("blue", "9")]
        move = get_computer_move(hand, c("red", "5"), difficulty="hard")
        assert move.card == c("red", "8")

    def test_medium_plays_something_legal(self):
        hand = [c("blue", "1"), c("red", "2"), c("green", "9")]
        for seed in range(10):
            move = get_computer_move(hand, c("red", "9"), rng=random.Random(seed))
            assert move.card_index in (1, 2)

    def test_respects_chain(self):
        hand = [c("red", "5"), c("blue", "draw2")]
        move = get_computer_move(hand, c("red", "draw2"), PlayContext(can_stack=True), "easy")
        assert move.card_index == 1


class TestPlayComputerTurn:

    def test_not_its_turn(self):
        match = make_match({"A": [c("red", "1")], "CPU": [c("red", "2")]}, c("red", "9"))
        assert play_computer_turn(match, "CPU") == []

    def test_plays_a_card(self):
        match = make_match({"CPU": [c("red", "1"), c("blue", "2"), c("blue", "3")], "A": [c("red", "2")]}, c("red", "9"))
        steps = play_computer_turn(match, "CPU", "easy")
        assert [s for s, _ in steps] == ["play"]
        assert match.top_card() == c("red", "1")
        assert match.current_player() == "A"

    def test_draws_then_passes_turn(self):
        match = make_match({"CPU": [c("blue", "1")], "A": [c("red", "2")]}, c("red", "9"), deck=[c("green", "4")])
        steps = play_computer_turn(match, "CPU", "easy")
        assert [s for s, _ in steps] == ["draw"]
        assert steps[0][1].turn_passed
        assert match.current_player() == "A"

    def test_draws_then_plays_drawn_card(self):
        match = make_match({"CPU": [c("blue", "1")], "A": [c("red", "2")]}, c("red", "9"), deck=[c("red", "4")])
        steps = play_computer_turn(match, "CPU", "easy")
        assert [s for s, _ in steps] == ["draw", "uno", "play"]
        assert match.top_card() == c("red", "4")

    def test_calls_uno_before_second_to_last(self):
        match = make_match({"CPU": [c("red", "1"), c("blue", "2")], "A": [c("red", "2")]}, c("red", "9"))
        steps = play_computer_turn(match, "CPU", "easy")
        assert [s for s, _ in steps] == ["uno", "play"]
        assert not match.needs_uno_penalty("CPU")

    def test_wild_gets_a_color(self):
        match = make_match({"CPU": [c("wild", "wild"), c("blue", "2"), c("blue", "3")], "A": [c("red", "2")]},
                           c("red", "9"))
        play_computer_turn(match, "CPU", "easy")
        assert match.phase == GamePhase.PLAYING
        assert match.top_card() == c("blue", "wild")
