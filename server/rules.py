"""
Rule engine for UNO: playability, special-card effects, stacking and scoring.

Everything here is pure. resolve_play() describes what a play does as a
PlayEffects value; the Match applies it.

Stacking (draw-card chains):
    When enabled, a draw2 or wild4 does not hit the next player at once if
    that player holds a card that can extend the chain. A draw2 extends a
    draw2; a wild4 extends a draw2 or a wild4. A player who cannot (or will
    not) extend draws the whole chain and loses their turn.
"""

from dataclasses import dataclass, field
from typing import Iterable, Optional

from cards import Card, Color, Value, DRAW_VALUES
from config import CardValues
from constants import ACTION_CARD_VALUES, DRAW_AMOUNTS, NUMBER_MULTIPLIER
from turns import TurnState


@dataclass
class StackState:
    """
    An in-progress draw-card chain.

    Attributes:
        stacked_cards: Draw cards played into the chain, oldest first.
        can_stack: True while the player to act may extend the chain.
        pending_draw_count: Cards the chain will cost whoever breaks it.
    """

    stacked_cards: list[Card] = field(default_factory=list)
    can_stack: bool = False
    pending_draw_count: int = 0

    @property
    def active(self) -> bool:
        return self.can_stack and bool(self.stacked_cards)

    def copy(self) -> "StackState":
        return StackState(list(self.stacked_cards), self.can_stack, self.pending_draw_count)

    def to_dict(self) -> dict:
        return {
            "stacked_cards": [c.to_dict() for c in self.stacked_cards],
            "can_stack": self.can_stack,
            "pending_draw_count": self.pending_draw_count,
        }


@dataclass
class PlayContext:
    """Turn-local constraints on which cards may be played."""

    can_stack: bool = False
    must_play_drawn_card: bool = False
    drawn_card: Optional[Card] = None


@dataclass
class PlayEffects:
    """
    Outcome of a play, as data.

    Attributes:
        next_player_index: Seat that acts next.
        direction: Play direction after the card.
        draw_count: Cards the draw target must take (0 for none).
        draw_target: Seat that draws, or None.
        stack: Chain state after the card.
        awaiting_color: A wild was played without a color; the turn stays put.
        skipped: A player's turn was skipped.
        reversed: Direction flipped.
    """

    next_player_index: int
    direction: int
    draw_count: int = 0
    draw_target: Optional[int] = None
    stack: StackState = field(default_factory=StackState)
    awaiting_color: bool = False
    skipped: bool = False
    reversed: bool = False


@dataclass
class RoundResult:
    """Scores after a player empties their hand."""

    winner: str
    points: int
    scores: dict[str, int]
    game_winner: Optional[str] = None


# =============================================================================
# Playability
# =============================================================================

def matches_top(card: Card, top_card: Card) -> bool:
    """Plain matching rule: same color, same value, or a wild."""
    return card.color == top_card.color or card.value == top_card.value or card.color == Color.WILD


def can_extend_stack(card: Card, head: Card) -> bool:
    """
    Whether ``card`` may be added to a chain whose latest card is ``head``.
    """
    if card.value == Value.DRAW2:
        return head.value == Value.DRAW2
    if card.value == Value.WILD4:
        return head.value in DRAW_VALUES
    return False


def can_play(card: Card, top_card: Optional[Card], context: Optional[PlayContext] = None) -> bool:
    """
    Check whether a card may be played on the current top card.

    Args:
        card: Candidate card from the player's hand.
        top_card: Top of the discard pile.
        context: Chain and must-play-drawn-card constraints.

    Returns:
        True if the play is legal.
    """
    if card is None or top_card is None:
        return False
    context = context or PlayContext()

    if context.can_stack:
        return can_extend_stack(card, top_card)

    if context.must_play_drawn_card:
        return card == context.drawn_card and matches_top(card, top_card)

    return matches_top(card, top_card)


def can_jump_in(card: Card, top_card: Optional[Card], context: Optional[PlayContext] = None) -> bool:
    """
    Out-of-turn play of a card identical to the top card.

    Never allowed while a chain is active. Wilds cannot jump in because a
    played wild carries a color its unplayed twin does not.
    """
    if card is None or top_card is None or card.is_wild:
        return False
    if context and context.can_stack:
        return False
    return card.color == top_card.color and card.value == top_card.value


def playable_cards(hand: Iterable[Card], top_card: Optional[Card], context: Optional[PlayContext] = None) -> list[int]:
    """Indices of the cards in ``hand`` that may be played."""
    return [i for i, c in enumerate(hand) if can_play(c, top_card, context)]


# =============================================================================
# Effects
# =============================================================================

def stack_total(stacked_cards: Iterable[Card]) -> int:
    """Cards owed by a chain: 2 per draw2, 4 per wild4 or wild."""
    return sum(DRAW_AMOUNTS.get(c.value.value, 0) for c in stacked_cards)


def resolve_play(
    card: Card,
    turn: TurnState,
    stack: Optional[StackState] = None,
    stacking_enabled: bool = False,
    next_hand: Iterable[Card] = (),
) -> PlayEffects:
    """
    Work out the effect of playing ``card`` from the current seat.

    Wilds must already carry their chosen color; an uncolored wild yields
    ``awaiting_color`` and leaves the turn where it is.

    Args:
        card: The card being played.
        turn: Turn state before the play.
        stack: Chain state before the play.
        stacking_enabled: Room setting.
        next_hand: Hand of the next player, used to decide if the chain continues.

    Returns:
        PlayEffects describing the new turn, direction, draws and chain.
    """
    stack = stack or StackState()
    current = turn.current_player_index
    next_seat = turn.next_index()

    if card.color == Color.WILD:
        return PlayEffects(
            next_player_index=current,
            direction=turn.direction,
            stack=stack.copy(),
            awaiting_color=True,
        )

    if card.value == Value.SKIP:
        return PlayEffects(
            next_player_index=turn.skip_index(),
            direction=turn.direction,
            skipped=True,
        )

    if card.value == Value.REVERSE:
        direction, next_index = turn.reversed_index()
        return PlayEffects(
            next_player_index=next_index,
            direction=direction,
            reversed=True,
        )

    if card.value in DRAW_VALUES:
        amount = DRAW_AMOUNTS[card.value.value]
        if stacking_enabled:
            stacked = stack.stacked_cards + [card]
            if any(can_extend_stack(c, card) for c in next_hand):
                return PlayEffects(
                    next_player_index=next_seat,
                    direction=turn.direction,
                    stack=StackState(stacked, True, stack_total(stacked)),
                )
            amount = stack_total(stacked)
        return PlayEffects(
            next_player_index=turn.skip_index(),
            direction=turn.direction,
            draw_count=amount,
            draw_target=next_seat,
            skipped=True,
        )

    return PlayEffects(next_player_index=next_seat, direction=turn.direction)


# =============================================================================
# Scoring
# =============================================================================

def card_points(card: Card, card_values: Optional[CardValues] = None) -> int:
    if card.is_number:
        multiplier = card_values.NUMBER_MULTIPLIER if card_values else NUMBER_MULTIPLIER
        return card.number * multiplier
    values = card_values.to_dict() if card_values else ACTION_CARD_VALUES
    return values[card.value.value]


def calculate_points(hand: Iterable[Card], card_values: Optional[CardValues] = None) -> int:
    """
    Points left in a hand at the end of a round.

    Number cards score face value, skip/reverse/draw2 score 20 and
    wild/wild4 score 50 unless ``card_values`` overrides them.
    """
    return sum(card_points(c, card_values) for c in hand)


def evaluate_round(
    winner: str,
    hands: dict[str, list[Card]],
    scores: dict[str, int],
    points_to_win: int,
    card_values: Optional[CardValues] = None,
) -> RoundResult:
    """
    Credit the round winner with everyone else's remaining points.

    The round win is settled first; the game is won if the winner's new
    total reaches ``points_to_win``.

    Args:
        winner: Player who emptied their hand.
        hands: All hands at the end of the round.
        scores: Cumulative scores before this round (not modified).
        points_to_win: Game target.

    Returns:
        RoundResult with the new score table.
    """
    points = sum(
        calculate_points(hand, card_values)
        for name, hand in hands.items()
        if name != winner
    )
    new_scores = dict(scores)
    new_scores[winner] = new_scores.get(winner, 0) + points
    game_winner = winner if new_scores[winner] >= points_to_win else None
    return RoundResult(winner=winner, points=points, scores=new_scores, game_winner=game_winner)
