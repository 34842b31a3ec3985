"""Computer players for UNO."""

import logging
import os
import random
from collections import Counter
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from cards import Card, Color, PLAYABLE_COLORS, Value
from game import DrawResult, GamePhase, Match, PlayResult
from rules import PlayContext, can_play


# Debug logging configuration
# Set AI_DEBUG=1 environment variable to enable detailed AI decision logging
AI_DEBUG = os.environ.get("AI_DEBUG", "0") == "1"

ai_logger = logging.getLogger("uno.ai")
if AI_DEBUG:
    ai_logger.setLevel(logging.DEBUG)
    if not ai_logger.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(
            "%(asctime)s [AI] %(message)s", datefmt="%H:%M:%S"
        ))
        ai_logger.addHandler(handler)


def ai_log(message: str):
    """Log AI decision info when AI_DEBUG is enabled."""
    if AI_DEBUG:
        ai_logger.debug(message)


class Difficulty(str, Enum):
    EASY = "easy"
    MEDIUM = "medium"
    HARD = "hard"


# Default seat names for single-player games
CPU_NAMES = ["Computer 1", "Computer 2", "Computer 3"]


@dataclass
class ComputerMove:
    """
    A computer player's decision.

    Attributes:
        move: "play" or "draw".
        card_index: Hand position of the card to play.
        card: The card to play.
        color: Color to name if the card is a wild.
    """

    move: str
    card_index: Optional[int] = None
    card: Optional[Card] = None
    color: Optional[Color] = None


def choose_wild_color(hand: list[Card], exclude_index: Optional[int] = None, rng=random) -> Color:
    """
    Pick the most common color left in the hand.

    Args:
        hand: The computer's hand.
        exclude_index: Card about to be played (not counted).
        rng: Random source for the fallback.

    Returns:
        Most frequent non-wild color, or a random one if the hand has none.
    """
    counts = Counter(
        c.color for i, c in enumerate(hand)
        if i != exclude_index and c.color in PLAYABLE_COLORS
    )
    if not counts:
        return rng.choice(PLAYABLE_COLORS)
    return counts.most_common(1)[0][0]


def _pick_hard(candidates: list[tuple[int, Card]]) -> tuple[int, Card]:
    """Wild first, then draw cards, then other actions, else the highest number."""
    wilds = [(i, c) for i, c in candidates if c.is_wild]
    if wilds:
        return wilds[0]
    draws = [(i, c) for i, c in candidates if c.value == Value.DRAW2]
    if draws:
        return draws[0]
    actions = [(i, c) for i, c in candidates if c.is_action]
    if actions:
        return actions[0]
    return max(candidates, key=lambda ic: ic[1].number)


def get_computer_move(
    hand: list[Card],
    top_card: Optional[Card],
    context: Optional[PlayContext] = None,
    difficulty: str = Difficulty.MEDIUM,
    rng=random,
) -> ComputerMove:
    """
    Decide what a computer player does on its turn.

    Args:
        hand: Cards held.
        top_card: Top of the discard pile.
        context: Chain / must-play constraints.
        difficulty: easy, medium or hard.
        rng: Random source (medium policy and color fallback).

    Returns:
        ComputerMove with move="draw" when nothing is playable.
    """
    candidates = [(i, c) for i, c in enumerate(hand) if can_play(c, top_card, context)]
    if not candidates:
        ai_log(f"No playable card on {top_card}, drawing")
        return ComputerMove(move="draw")

    if difficulty == Difficulty.EASY:
        index, card = candidates[0]
    elif difficulty == Difficulty.HARD:
        index, card = _pick_hard(candidates)
    else:
        if rng.random() > 0.5:
            actions = [(i, c) for i, c in candidates if c.is_wild or c.is_action]
            if actions and rng.random() > 0.3:
                index, card = rng.choice(actions)
            else:
                index, card = rng.choice(candidates)
        else:
            index, card = rng.choice(candidates)

    color = choose_wild_color(hand, index, rng) if card.is_wild else None
    ai_log(f"[{difficulty}] playing {card} (index {index}) on {top_card}"
           + (f", naming {color.value}" if color else ""))
    return ComputerMove(move="play", card_index=index, card=card, color=color)


def play_computer_turn(
    match: Match,
    player: str,
    difficulty: str = Difficulty.MEDIUM,
    rng=random,
) -> list[tuple[str, object]]:
    """
    Run one computer turn against the match.

    Draws when nothing is playable, then plays the drawn card if it may,
    otherwise passes. Calls UNO before playing its second-to-last card.

    Returns:
        Steps taken, in order, as (step, result) pairs where step is one of
        "draw" (DrawResult), "pass" (None), "uno" (None) or "play"
        (PlayResult). Empty if it was not this player's turn.
    """
    if match.phase != GamePhase.PLAYING or match.current_player() != player:
        return []

    steps: list[tuple[str, object]] = []
    decision = get_computer_move(
        match.hands[player], match.top_card(), match.play_context(player), difficulty, rng
    )

    if decision.move == "draw":
        drawn: Optional[DrawResult] = match.draw(player)
        if drawn is None:
            return steps
        steps.append(("draw", drawn))
        if drawn.turn_passed or match.current_player() != player:
            return steps

        decision = get_computer_move(
            match.hands[player], match.top_card(), match.play_context(player), difficulty, rng
        )
        if decision.move != "play":
            if match.pass_turn(player):
                steps.append(("pass", None))
            return steps

    if len(match.hands[player]) == 2 and match.call_uno(player):
        steps.append(("uno", None))

    played: Optional[PlayResult] = match.play_card(player, decision.card_index, decision.color)
    if played is not None:
        steps.append(("play", played))
    return steps
