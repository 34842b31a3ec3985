"""
Turn order and play direction.

Players sit in a fixed order established at game start. The next seat is
``(index + direction + N) % N``; a skip applies that twice and a reverse
flips the direction before applying it once from the current seat. With two
players a reverse therefore hands the turn to the other player, same as any
other card.
"""

from dataclasses import dataclass
from typing import Optional


@dataclass
class TurnState:
    """
    Whose turn it is and which way play travels.

    Attributes:
        current_player_index: Seat of the player to act.
        direction: +1 (clockwise) or -1.
        player_count: Number of seats.
    """

    current_player_index: int = 0
    direction: int = 1
    player_count: int = 0

    def next_index(self, from_index: Optional[int] = None, direction: Optional[int] = None) -> int:
        """
        Seat after ``from_index`` (default: the current seat) in ``direction``.
        """
        if self.player_count <= 0:
            return 0
        start = self.current_player_index if from_index is None else from_index
        step = self.direction if direction is None else direction
        return (start + step + self.player_count) % self.player_count

    def skip_index(self, from_index: Optional[int] = None) -> int:
        """Seat two places on: the next player's turn is skipped."""
        return self.next_index(self.next_index(from_index))

    def reversed_index(self) -> tuple[int, int]:
        """
        Direction and next seat after a reverse.

        Returns:
            Tuple of (new direction, next seat from the current seat).
        """
        new_direction = -self.direction
        return new_direction, self.next_index(direction=new_direction)

    def advance(self) -> int:
        self.current_player_index = self.next_index()
        return self.current_player_index

    def remove_seat(self, index: int) -> None:
        """
        Drop a seat and keep the turn pointing at the same player.

        If the departing player held the turn, it passes to whoever now
        sits at their seat (or wraps round).
        """
        if self.player_count <= 0:
            return
        self.player_count -= 1
        if self.player_count == 0:
            self.current_player_index = 0
            return
        if index < self.current_player_index:
            self.current_player_index -= 1
        elif index == self.current_player_index and self.direction < 0:
            self.current_player_index -= 1
        self.current_player_index %= self.player_count

    def to_dict(self) -> dict:
        return {
            "current_player_index": self.current_player_index,
            "direction": self.direction,
        }
