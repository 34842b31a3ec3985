"""
Card and deck model for UNO.

Cards are immutable value objects. The deck is a plain list whose END is
the top: dealing, drawing and reshuffling all pop from / push to the end.

Deck composition (108 cards):
    - Per color (red, blue, green, yellow): one 0, two each of 1-9,
      two each of skip, reverse and draw2 (19 + 6 = 25 cards)
    - 4 wild, 4 wild4

A wild that has been played carries the chosen color (e.g. red wild4).
That shape is only legal on the discard pile; it turns back into a plain
wild when the discard pile is reshuffled into the deck.
"""

import logging
import secrets
from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional

logger = logging.getLogger(__name__)

_system_random = secrets.SystemRandom()


class Color(str, Enum):
    """Card colors. WILD is the color of an unplayed wild card."""

    RED = "red"
    BLUE = "blue"
    GREEN = "green"
    YELLOW = "yellow"
    WILD = "wild"


class Value(str, Enum):
    """Card faces."""

    ZERO = "0"
    ONE = "1"
    TWO = "2"
    THREE = "3"
    FOUR = "4"
    FIVE = "5"
    SIX = "6"
    SEVEN = "7"
    EIGHT = "8"
    NINE = "9"
    SKIP = "skip"
    REVERSE = "reverse"
    DRAW2 = "draw2"
    WILD = "wild"
    WILD4 = "wild4"


PLAYABLE_COLORS: tuple[Color, ...] = (Color.RED, Color.BLUE, Color.GREEN, Color.YELLOW)
WILD_VALUES = frozenset({Value.WILD, Value.WILD4})
ACTION_VALUES = frozenset({Value.SKIP, Value.REVERSE, Value.DRAW2})
DRAW_VALUES = frozenset({Value.DRAW2, Value.WILD4})
NUMBER_VALUES: tuple[Value, ...] = tuple(Value(str(n)) for n in range(10))


@dataclass(frozen=True)
class Card:
    """
    A single UNO card.

    Attributes:
        color: One of the four playable colors, or WILD for an unplayed wild.
        value: Number face or action.
    """

    color: Color
    value: Value

    @property
    def is_wild(self) -> bool:
        """True for wild and wild4, whether or not a color was chosen."""
        return self.value in WILD_VALUES

    @property
    def is_action(self) -> bool:
        """True for skip, reverse and draw2."""
        return self.value in ACTION_VALUES

    @property
    def is_number(self) -> bool:
        return not self.is_wild and not self.is_action

    @property
    def number(self) -> Optional[int]:
        """Face value for number cards, None otherwise."""
        return int(self.value.value) if self.is_number else None

    def with_color(self, color: Color) -> "Card":
        """Return the played form of a wild card in the chosen color."""
        return Card(Color(color), self.value)

    def to_dict(self) -> dict:
        """Wire shape: ``{"color": ..., "value": ...}``."""
        return {"color": self.color.value, "value": self.value.value}

    @classmethod
    def from_dict(cls, data: Any) -> "Card":
        """
        Build a card from its wire shape.

        Raises:
            ValueError: If the color or value is unknown or missing.
        """
        if not isinstance(data, dict):
            raise ValueError(f"Card must be an object, got {type(data).__name__}")
        return cls(Color(data.get("color")), Value(str(data.get("value"))))

    def __str__(self) -> str:
        return f"{self.color.value} {self.value.value}"


# Substitute for malformed cards arriving from the network
FALLBACK_CARD = Card(Color.RED, Value.ONE)


# =============================================================================
# Validity predicates
# =============================================================================

def is_valid_card(card: Optional[Card]) -> bool:
    """
    Check the color/value invariant: color is WILD iff value is wild or wild4.

    Args:
        card: Card to check (None is never valid).

    Returns:
        True if the card could exist in a deck or hand.
    """
    if not isinstance(card, Card):
        return False
    return (card.color == Color.WILD) == (card.value in WILD_VALUES)


def is_played_wild(card: Optional[Card]) -> bool:
    """True for a wild or wild4 that already carries a chosen color."""
    return isinstance(card, Card) and card.value in WILD_VALUES and card.color in PLAYABLE_COLORS


def is_valid_discard(card: Optional[Card]) -> bool:
    """Cards on the discard pile may also be played wilds."""
    return is_valid_card(card) or is_played_wild(card)


def reset_wild(card: Card) -> Card:
    """Turn a played wild back into a deck card; other cards pass through."""
    if card.value in WILD_VALUES:
        return Card(Color.WILD, card.value)
    return card


def validate_hand(cards: list[Card]) -> list[Card]:
    """Filter out cards that violate the color/value invariant."""
    return [c for c in cards if is_valid_card(c)]


# =============================================================================
# Wire conversion
# =============================================================================

def card_from_wire(data: Any, on_discard: bool = False) -> tuple[Card, bool]:
    """
    Convert untrusted wire data to a card.

    Malformed or invalid cards are replaced by FALLBACK_CARD so bad data
    never propagates into the match.

    Args:
        data: ``{"color", "value"}`` dict from a peer.
        on_discard: Accept played wilds (colored wild/wild4).

    Returns:
        Tuple of (card, replaced) where replaced is True if the fallback was used.
    """
    try:
        card = Card.from_dict(data)
    except ValueError:
        logger.warning(f"Malformed card from network: {data!r}")
        return FALLBACK_CARD, True

    valid = is_valid_discard(card) if on_discard else is_valid_card(card)
    if not valid:
        logger.warning(f"Invalid card from network: {card}")
        return FALLBACK_CARD, True
    return card, False


def hand_from_wire(items: Any) -> tuple[list[Card], int]:
    """
    Convert a hand from the wire, dropping invalid entries.

    Returns:
        Tuple of (cards, number of dropped entries).
    """
    if not isinstance(items, list):
        return [], 0
    cards = []
    dropped = 0
    for item in items:
        try:
            card = Card.from_dict(item)
        except ValueError:
            dropped += 1
            continue
        if is_valid_card(card):
            cards.append(card)
        else:
            dropped += 1
    if dropped:
        logger.warning(f"Dropped {dropped} invalid card(s) from a remote hand")
    return cards, dropped


def pile_from_wire(items: Any, on_discard: bool = False) -> tuple[list[Card], int]:
    """
    Convert a deck or discard pile from the wire, replacing invalid entries.

    Returns:
        Tuple of (cards, number of replaced entries).
    """
    if not isinstance(items, list):
        return [], 0
    cards = []
    replaced = 0
    for item in items:
        card, bad = card_from_wire(item, on_discard=on_discard)
        cards.append(card)
        replaced += int(bad)
    return cards, replaced


def cards_to_wire(cards: list[Card]) -> list[dict]:
    return [c.to_dict() for c in cards]


# =============================================================================
# Deck operations
# =============================================================================

def generate_deck() -> list[Card]:
    """
    Build an unshuffled 108-card deck.

    Returns:
        Cards in canonical order: each color's 0, 1-9 pairs and action
        pairs, then 4 wild, then 4 wild4.
    """
    deck: list[Card] = []
    for color in PLAYABLE_COLORS:
        deck.append(Card(color, Value.ZERO))
        for value in NUMBER_VALUES[1:]:
            deck.append(Card(color, value))
            deck.append(Card(color, value))
        for value in (Value.SKIP, Value.REVERSE, Value.DRAW2):
            deck.append(Card(color, value))
            deck.append(Card(color, value))

    deck.extend(Card(Color.WILD, Value.WILD) for _ in range(4))
    deck.extend(Card(Color.WILD, Value.WILD4) for _ in range(4))
    return deck


def shuffle_deck(deck: list[Card], rng=None) -> list[Card]:
    """
    Return a uniformly shuffled copy of the deck (Fisher-Yates).

    Args:
        deck: Cards to shuffle; not modified.
        rng: Object with ``randrange``; defaults to an OS-backed source.
    """
    rng = rng or _system_random
    shuffled = list(deck)
    for i in range(len(shuffled) - 1, 0, -1):
        j = rng.randrange(i + 1)
        shuffled[i], shuffled[j] = shuffled[j], shuffled[i]
    return shuffled


def deal_cards_to_player(deck: list[Card], count: int) -> tuple[list[Card], list[Card]]:
    """
    Pop up to ``count`` cards off the top (end) of the deck.

    Returns:
        Tuple of (dealt cards, remaining deck). The input list is not modified.
    """
    remaining = list(deck)
    dealt = []
    for _ in range(count):
        if not remaining:
            break
        dealt.append(remaining.pop())
    return dealt, remaining


def reshuffle_discard(discard_pile: list[Card], rng=None) -> tuple[list[Card], list[Card]]:
    """
    Rebuild a deck from the discard pile, keeping its top card in play.

    Returns:
        Tuple of (new deck, new discard pile holding only the old top card).
    """
    if len(discard_pile) <= 1:
        return [], list(discard_pile)
    top = discard_pile[-1]
    rest = [reset_wild(c) for c in discard_pile[:-1]]
    return shuffle_deck(rest, rng), [top]


def draw_from(deck: list[Card], discard_pile: list[Card], count: int, rng=None) -> tuple[list[Card], list[Card], list[Card]]:
    """
    Draw ``count`` cards, reshuffling the discard pile whenever the deck runs out.

    Returns:
        Tuple of (drawn cards, new deck, new discard pile). Fewer than
        ``count`` cards are returned if both piles are exhausted.
    """
    deck = list(deck)
    discard_pile = list(discard_pile)
    drawn = []
    for _ in range(count):
        if not deck:
            deck, discard_pile = reshuffle_discard(discard_pile, rng)
            if not deck:
                logger.info("No more cards available to draw")
                break
        drawn.append(deck.pop())
    return drawn, deck, discard_pile
