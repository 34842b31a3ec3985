"""
Game logic for UNO.

This module holds the Match aggregate: deck, discard pile, hands, turn
order, the draw-card chain, UNO flags and scores. Each participant keeps
its own Match and mutates it only through the methods below; the
replication layer (replication.py) turns those mutations into broadcast
deltas and applies deltas from peers.

UNO Rules Summary:
    - Each player is dealt 7 cards; one card starts the discard pile
    - On your turn play a card matching the top card's color or value, or a wild
    - Skip, reverse and draw cards change the turn order
    - Emptying your hand wins the round and scores everyone else's cards
    - First to the target score wins the game

Invalid actions (wrong turn, illegal card, bad index) return None or False
and leave the match untouched.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

from cards import (
    Card,
    Color,
    PLAYABLE_COLORS,
    FALLBACK_CARD,
    cards_to_wire,
    deal_cards_to_player,
    draw_from,
    generate_deck,
    hand_from_wire,
    pile_from_wire,
    shuffle_deck,
)
from config import CardValues
from constants import (
    DEFAULT_CPU_DIFFICULTY,
    DEFAULT_FORCE_PLAY,
    DEFAULT_HAND_SIZE,
    DEFAULT_JUMP_IN,
    DEFAULT_POINTS_TO_WIN,
    DEFAULT_STACKING,
    DEFAULT_UNLIMITED_DRAW,
    MAX_HAND_SIZE,
    UNO_PENALTY_CARDS,
)
from rules import (
    PlayContext,
    PlayEffects,
    RoundResult,
    StackState,
    can_jump_in,
    can_play,
    evaluate_round,
    resolve_play,
)
from turns import TurnState

logger = logging.getLogger(__name__)


class GamePhase(Enum):
    """
    Phases of an UNO match.

    Flow: WAITING -> PLAYING <-> CHOOSING_COLOR -> ROUND_OVER -> PLAYING ...
    Once someone reaches the target score: GAME_OVER
    """

    WAITING = "waiting"                # Lobby, no cards dealt
    PLAYING = "playing"                # Normal turns
    CHOOSING_COLOR = "choosing_color"  # A wild is waiting for its color
    ROUND_OVER = "round_over"          # Someone emptied their hand
    GAME_OVER = "game_over"            # Someone reached points_to_win


ACTIVE_PHASES = (GamePhase.PLAYING, GamePhase.CHOOSING_COLOR)


@dataclass
class GameOptions:
    """
    Room settings that change how a match plays.

    House rules default to the server configuration (all off for classic UNO).
    """

    points_to_win: int = DEFAULT_POINTS_TO_WIN
    """Cumulative score that wins the game."""

    hand_size: int = DEFAULT_HAND_SIZE
    """Cards dealt to each player at the start of a round."""

    stacking_enabled: bool = DEFAULT_STACKING
    """Draw cards can be stacked onto a draw card instead of drawing."""

    unlimited_draw_enabled: bool = DEFAULT_UNLIMITED_DRAW
    """Draw as many cards as you like before passing."""

    force_play_enabled: bool = DEFAULT_FORCE_PLAY
    """Keep drawing until a playable card turns up, then play it."""

    jump_in_enabled: bool = DEFAULT_JUMP_IN
    """Play an identical card out of turn."""

    cpu_difficulty: str = DEFAULT_CPU_DIFFICULTY
    """Policy used for computer seats: easy, medium or hard."""

    card_values: Optional[CardValues] = None
    """Scoring overrides; None uses the configured defaults."""

    @classmethod
    def from_client_data(cls, data: dict) -> "GameOptions":
        """Build GameOptions from room settings sent by a client."""
        difficulty = data.get("cpu_difficulty", DEFAULT_CPU_DIFFICULTY)
        if difficulty not in ("easy", "medium", "hard"):
            difficulty = DEFAULT_CPU_DIFFICULTY

        try:
            points_to_win = int(data.get("points_to_win", DEFAULT_POINTS_TO_WIN))
        except (TypeError, ValueError):
            points_to_win = DEFAULT_POINTS_TO_WIN

        try:
            hand_size = int(data.get("hand_size", DEFAULT_HAND_SIZE))
        except (TypeError, ValueError):
            hand_size = DEFAULT_HAND_SIZE

        return cls(
            points_to_win=max(1, points_to_win),
            hand_size=max(1, min(15, hand_size)),
            stacking_enabled=bool(data.get("stacking_enabled", DEFAULT_STACKING)),
            unlimited_draw_enabled=bool(data.get("unlimited_draw_enabled", DEFAULT_UNLIMITED_DRAW)),
            force_play_enabled=bool(data.get("force_play_enabled", DEFAULT_FORCE_PLAY)),
            jump_in_enabled=bool(data.get("jump_in_enabled", DEFAULT_JUMP_IN)),
            cpu_difficulty=difficulty,
        )

    def to_settings(self) -> dict:
        """Room settings shape shared with clients."""
        return {
            "points_to_win": self.points_to_win,
            "stacking_enabled": self.stacking_enabled,
            "unlimited_draw_enabled": self.unlimited_draw_enabled,
            "force_play_enabled": self.force_play_enabled,
            "jump_in_enabled": self.jump_in_enabled,
        }


@dataclass
class PlayResult:
    """
    What a successful play changed.

    Attributes:
        player: Who played.
        card: The card as it landed (wilds carry their color once chosen).
        effects: Turn/direction/chain outcome; None while awaiting a color.
        draw_target: Player who had to draw, if any.
        drawn: Cards that player drew.
        round_result: Set when the play emptied the player's hand.
        jump_in: The card was played out of turn.
    """

    player: str
    card: Card
    effects: Optional[PlayEffects] = None
    draw_target: Optional[str] = None
    drawn: list[Card] = field(default_factory=list)
    round_result: Optional[RoundResult] = None
    jump_in: bool = False

    @property
    def awaiting_color(self) -> bool:
        return self.effects is None and self.round_result is None


@dataclass
class DrawResult:
    """
    Outcome of a draw action.

    Attributes:
        player: Who drew.
        cards: Cards added to their hand.
        turn_passed: The turn moved on as part of the draw.
        chain_broken: The draw paid off an active draw-card chain.
        must_play: The player now has to play (or may play) the drawn card.
    """

    player: str
    cards: list[Card]
    turn_passed: bool = False
    chain_broken: bool = False
    must_play: bool = False


@dataclass
class Match:
    """
    Full state of one UNO game, owned by a single participant.

    Attributes:
        players: Player names in seat order (fixed for a round).
        deck: Draw pile; the end of the list is the top.
        discard_pile: Played cards; the last one is the top card.
        hands: Cards held by each player, keyed by name.
        turn: Current seat and direction.
        stack: Draw-card chain in progress.
        said_uno: Per-player UNO call flags.
        scores: Cumulative points, reset only by start_game.
        must_play_drawn_card: The current player may only play the card they just drew.
        can_draw_more: The current player may still draw this turn.
        drawn_this_turn: Cards drawn by the current player this turn.
        pending_wild: A played wild waiting for its color.
        pending_wild_player: Who played it.
        phase: Current phase.
        round_winner: Winner of the last finished round.
        game_winner: Winner of the game, once decided.
        state_version: Incremented on every local mutation; carried by every
            broadcast so peers can drop stale deltas.
        options: Room settings.
    """

    players: list[str] = field(default_factory=list)
    deck: list[Card] = field(default_factory=list)
    discard_pile: list[Card] = field(default_factory=list)
    hands: dict[str, list[Card]] = field(default_factory=dict)
    turn: TurnState = field(default_factory=TurnState)
    stack: StackState = field(default_factory=StackState)
    said_uno: dict[str, bool] = field(default_factory=dict)
    scores: dict[str, int] = field(default_factory=dict)
    must_play_drawn_card: bool = False
    can_draw_more: bool = True
    drawn_this_turn: int = 0
    pending_wild: Optional[Card] = None
    pending_wild_player: Optional[str] = None
    phase: GamePhase = GamePhase.WAITING
    round_winner: Optional[str] = None
    game_winner: Optional[str] = None
    state_version: int = 0
    options: GameOptions = field(default_factory=GameOptions)
    rng: object = field(default=None, repr=False, compare=False)

    # -------------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------------

    @property
    def is_active(self) -> bool:
        return self.phase in ACTIVE_PHASES

    def current_player(self) -> Optional[str]:
        """Name of the player whose turn it is."""
        if not self.players:
            return None
        return self.players[self.turn.current_player_index % len(self.players)]

    def top_card(self) -> Optional[Card]:
        return self.discard_pile[-1] if self.discard_pile else None

    def seat_of(self, player: str) -> Optional[int]:
        try:
            return self.players.index(player)
        except ValueError:
            return None

    def play_context(self, player: str) -> PlayContext:
        """Constraints on what ``player`` may play right now."""
        hand = self.hands.get(player, [])
        return PlayContext(
            can_stack=self.stack.can_stack,
            must_play_drawn_card=self.must_play_drawn_card,
            drawn_card=hand[-1] if self.must_play_drawn_card and hand else None,
        )

    def needs_uno_penalty(self, player: str) -> bool:
        """Player holds one card and has not called UNO."""
        return (
            self.is_active
            and len(self.hands.get(player, [])) == 1
            and not self.said_uno.get(player, False)
        )

    def _bump(self) -> None:
        self.state_version += 1

    # -------------------------------------------------------------------------
    # Game lifecycle
    # -------------------------------------------------------------------------

    def start_game(self, players: list[str], options: Optional[GameOptions] = None) -> None:
        """
        Start a new game: fresh scores and a first round.

        Args:
            players: Player names in seat order.
            options: Room settings (defaults if None).
        """
        self.players = list(players)
        if options is not None:
            self.options = options
        self.scores = {name: 0 for name in self.players}
        self.game_winner = None
        self.start_new_round()

    def start_new_round(self) -> None:
        """
        Deal a new round. Scores carry over.

        The first discard is the first number card popped off the shuffled
        deck (wilds and action cards go back under the deck); red 1 is used
        if none turns up.
        """
        deck = shuffle_deck(generate_deck(), self.rng)
        hands = {}
        for name in self.players:
            hands[name], deck = deal_cards_to_player(deck, self.options.hand_size)

        first = None
        passed_over = []
        while deck:
            candidate = deck.pop()
            if candidate.is_number:
                first = candidate
                break
            passed_over.append(candidate)
        # Passed-over cards go back under the pile
        deck = passed_over + deck
        if first is None:
            first = FALLBACK_CARD

        self.deck = deck
        self.hands = hands
        self.discard_pile = [first]
        self.turn = TurnState(current_player_index=0, direction=1, player_count=len(self.players))
        self.stack = StackState()
        self.said_uno = {name: False for name in self.players}
        for name in self.players:
            self.scores.setdefault(name, 0)
        self.reset_turn_flags()
        self.pending_wild = None
        self.pending_wild_player = None
        self.round_winner = None
        self.phase = GamePhase.PLAYING
        self._bump()
        logger.info(f"Round dealt to {len(self.players)} players, first card {first}")

    def reset_turn_flags(self) -> None:
        self.must_play_drawn_card = False
        self.can_draw_more = True
        self.drawn_this_turn = 0

    def _end_round(self, winner: str) -> RoundResult:
        result = evaluate_round(
            winner,
            self.hands,
            self.scores,
            self.options.points_to_win,
            self.options.card_values,
        )
        self.scores = result.scores
        self.round_winner = winner
        self.stack = StackState()
        self.reset_turn_flags()
        if result.game_winner:
            self.game_winner = result.game_winner
            self.phase = GamePhase.GAME_OVER
            logger.info(f"{winner} wins the game with {self.scores[winner]} points")
        else:
            self.phase = GamePhase.ROUND_OVER
            logger.info(f"{winner} wins the round (+{result.points})")
        return result

    # -------------------------------------------------------------------------
    # Drawing
    # -------------------------------------------------------------------------

    def _draw_into(self, player: str, count: int) -> list[Card]:
        """Move up to ``count`` cards from the deck into a hand."""
        drawn, self.deck, self.discard_pile = draw_from(self.deck, self.discard_pile, count, self.rng)
        self.hands.setdefault(player, []).extend(drawn)
        self.said_uno[player] = False
        return drawn

    def draw(self, player: str) -> Optional[DrawResult]:
        """
        Draw for the current player.

        - With a chain active, draws the whole chain and passes the turn.
        - Classic: one card per turn. A playable card may then be played,
          otherwise the turn passes.
        - Unlimited draw: one card per call, pass manually.
        - Force play: draws until a playable card turns up, which must be played.

        Returns:
            DrawResult, or None if the player may not draw.
        """
        if self.phase != GamePhase.PLAYING or self.current_player() != player:
            return None

        if self.stack.can_stack:
            count = self.stack.pending_draw_count
            cards = self._draw_into(player, count)
            self.stack = StackState()
            self._pass_turn()
            self._bump()
            logger.debug(f"{player} broke the chain and drew {len(cards)}")
            return DrawResult(player, cards, turn_passed=True, chain_broken=True)

        if not self.can_draw_more:
            return None

        top = self.top_card()
        if self.options.unlimited_draw_enabled:
            cards = self._draw_into(player, 1)
            self.drawn_this_turn += len(cards)
            self._bump()
            return DrawResult(player, cards)

        if self.options.force_play_enabled:
            cards = []
            while len(self.hands[player]) < MAX_HAND_SIZE:
                drawn = self._draw_into(player, 1)
                if not drawn:
                    break
                cards.extend(drawn)
                if can_play(drawn[0], top):
                    break
            self.drawn_this_turn += len(cards)
            playable = bool(cards) and can_play(cards[-1], top)
            if playable:
                self.must_play_drawn_card = True
                self.can_draw_more = False
            else:
                self._pass_turn()
            self._bump()
            return DrawResult(player, cards, turn_passed=not playable, must_play=playable)

        cards = self._draw_into(player, 1)
        self.drawn_this_turn += len(cards)
        playable = bool(cards) and can_play(cards[-1], top)
        if playable:
            self.must_play_drawn_card = True
            self.can_draw_more = False
        else:
            self._pass_turn()
        self._bump()
        return DrawResult(player, cards, turn_passed=not playable, must_play=playable)

    def _pass_turn(self) -> None:
        self.turn.advance()
        self.reset_turn_flags()

    def pass_turn(self, player: str) -> bool:
        """
        End the turn without playing, after drawing.

        Refused while a chain is waiting to be paid, before the player has
        drawn, or in force-play mode while the drawn card must be played.
        """
        if self.phase != GamePhase.PLAYING or self.current_player() != player:
            return False
        if self.stack.can_stack or self.drawn_this_turn == 0:
            return False
        if self.options.force_play_enabled and self.must_play_drawn_card:
            return False
        self._pass_turn()
        self._bump()
        return True

    # -------------------------------------------------------------------------
    # Playing
    # -------------------------------------------------------------------------

    def play_card(self, player: str, index: int, chosen_color: Optional[Color] = None) -> Optional[PlayResult]:
        """
        Play a card from the current player's hand.

        Wilds played without ``chosen_color`` leave the match in
        CHOOSING_COLOR until select_color() is called.

        Args:
            player: Acting player.
            index: Position of the card in their hand.
            chosen_color: Color for a wild.

        Returns:
            PlayResult, or None if the play is not allowed.
        """
        if self.phase != GamePhase.PLAYING or self.current_player() != player:
            return None

        hand = self.hands.get(player, [])
        if not 0 <= index < len(hand):
            return None
        if self.must_play_drawn_card and index != len(hand) - 1:
            return None

        card = hand[index]
        if not can_play(card, self.top_card(), self.play_context(player)):
            return None
        if chosen_color is not None:
            try:
                chosen_color = Color(chosen_color)
            except ValueError:
                return None
            if chosen_color not in PLAYABLE_COLORS:
                return None

        hand.pop(index)
        self.reset_turn_flags()
        return self._land(player, card, chosen_color)

    def jump_in(self, player: str, index: int) -> Optional[PlayResult]:
        """
        Play a card identical to the top card out of turn.

        Turn order continues from the jumping player.
        """
        if not self.options.jump_in_enabled or self.phase != GamePhase.PLAYING:
            return None
        seat = self.seat_of(player)
        hand = self.hands.get(player, [])
        if seat is None or not 0 <= index < len(hand):
            return None

        card = hand[index]
        if not can_jump_in(card, self.top_card(), self.play_context(player)):
            return None

        hand.pop(index)
        self.turn.current_player_index = seat
        self.reset_turn_flags()
        result = self._land(player, card, None)
        result.jump_in = True
        logger.debug(f"{player} jumped in with {card}")
        return result

    def select_color(self, player: str, color: Color) -> Optional[PlayResult]:
        """
        Choose the color for a pending wild and resolve its effect.

        Returns:
            PlayResult, or None if no wild is pending for this player.
        """
        if self.phase != GamePhase.CHOOSING_COLOR or self.pending_wild_player != player:
            return None
        try:
            color = Color(color)
        except ValueError:
            return None
        if color not in PLAYABLE_COLORS:
            return None

        card = self.pending_wild
        self.pending_wild = None
        self.pending_wild_player = None
        self.phase = GamePhase.PLAYING
        return self._resolve(player, card.with_color(color))

    def _land(self, player: str, card: Card, chosen_color: Optional[Color]) -> PlayResult:
        """Put a card just taken from ``player``'s hand into play."""
        if not self.hands[player]:
            # Last card wins the round whatever it was
            landed = card.with_color(chosen_color) if card.is_wild and chosen_color else card
            self.discard_pile.append(landed)
            result = PlayResult(player, landed, round_result=self._end_round(player))
            self._bump()
            return result

        if card.is_wild and chosen_color is None:
            self.pending_wild = card
            self.pending_wild_player = player
            self.phase = GamePhase.CHOOSING_COLOR
            self._bump()
            return PlayResult(player, card)

        if card.is_wild:
            card = card.with_color(chosen_color)
        return self._resolve(player, card)

    def _resolve(self, player: str, card: Card) -> PlayResult:
        """Put a (colored) card on the discard pile and apply its effects."""
        self.discard_pile.append(card)
        next_name = self.players[self.turn.next_index()]
        effects = resolve_play(
            card,
            self.turn,
            self.stack,
            stacking_enabled=self.options.stacking_enabled,
            next_hand=self.hands.get(next_name, []),
        )

        result = PlayResult(player, card, effects=effects)
        if effects.draw_count and effects.draw_target is not None:
            target = self.players[effects.draw_target]
            result.draw_target = target
            result.drawn = self._draw_into(target, effects.draw_count)

        self.turn.direction = effects.direction
        self.turn.current_player_index = effects.next_player_index
        self.stack = effects.stack
        self._bump()
        return result

    # -------------------------------------------------------------------------
    # UNO calls
    # -------------------------------------------------------------------------

    def call_uno(self, player: str) -> bool:
        """
        Flag that ``player`` called UNO.

        Allowed with two cards or fewer so the call can come just before
        playing the second-to-last card.
        """
        if not self.is_active or player not in self.hands:
            return False
        if len(self.hands[player]) > 2:
            return False
        self.said_uno[player] = True
        self._bump()
        return True

    def apply_uno_penalty(self, player: str) -> Optional[list[Card]]:
        """
        Give a player who forgot to call UNO their penalty cards.

        Returns:
            The penalty cards, or None if no penalty is due.
        """
        if not self.needs_uno_penalty(player):
            return None
        cards = self._draw_into(player, UNO_PENALTY_CARDS)
        self.said_uno[player] = False
        self._bump()
        logger.info(f"{player} forgot to say UNO, drew {len(cards)}")
        return cards

    # -------------------------------------------------------------------------
    # Membership
    # -------------------------------------------------------------------------

    def remove_player(self, player: str) -> Optional[str]:
        """
        Drop a player who left mid-game.

        Their hand leaves with them. If only one player remains during a
        game, that player wins it.

        Returns:
            The winner if the departure ended the game, else None.
        """
        seat = self.seat_of(player)
        if seat is None:
            return None

        if seat == self.turn.current_player_index:
            self.reset_turn_flags()
        self.players.pop(seat)
        self.hands.pop(player, None)
        self.said_uno.pop(player, None)
        self.turn.remove_seat(seat)
        if self.pending_wild_player == player:
            self.pending_wild = None
            self.pending_wild_player = None
            self.phase = GamePhase.PLAYING
        self._bump()

        if len(self.players) == 1 and self.phase in (*ACTIVE_PHASES, GamePhase.ROUND_OVER):
            winner = self.players[0]
            self.game_winner = winner
            self.round_winner = winner
            self.phase = GamePhase.GAME_OVER
            logger.info(f"{winner} wins: everyone else left")
            return winner
        return None

    # -------------------------------------------------------------------------
    # Snapshots
    # -------------------------------------------------------------------------

    def snapshot(self) -> dict:
        """
        Full match state in wire shape.

        Returns:
            Dict accepted by restore().
        """
        return {
            "players": list(self.players),
            "deck": cards_to_wire(self.deck),
            "player_hands": {name: cards_to_wire(hand) for name, hand in self.hands.items()},
            "discard_pile": cards_to_wire(self.discard_pile),
            "current_player_index": self.turn.current_player_index,
            "direction": self.turn.direction,
            "player_said_uno": dict(self.said_uno),
            "stacked_cards": cards_to_wire(self.stack.stacked_cards),
            "can_stack": self.stack.can_stack,
            "pending_draw_count": self.stack.pending_draw_count,
            "scores": dict(self.scores),
            "phase": self.phase.value,
            "pending_wild": self.pending_wild.to_dict() if self.pending_wild else None,
            "pending_wild_player": self.pending_wild_player,
            "round_winner": self.round_winner,
            "game_winner": self.game_winner,
            "settings": self.options.to_settings(),
            "state_version": self.state_version,
        }

    def restore(self, snapshot: dict) -> int:
        """
        Overwrite all state from a snapshot.

        Applying the same snapshot twice leaves the match as applying it once.
        Malformed cards are dropped (hands) or replaced (piles).

        Per-turn flags are not part of a snapshot. They survive when the
        snapshot leaves the same player on turn in the same round, and are
        reset otherwise.

        Returns:
            Number of cards that had to be dropped or replaced.
        """
        bad = 0
        turn_owner = self.current_player() if self.phase == GamePhase.PLAYING else None
        round_winner = self.round_winner
        if "players" in snapshot:
            self.players = [str(p) for p in snapshot["players"]]

        self.deck, n = pile_from_wire(snapshot.get("deck", []))
        bad += n
        self.discard_pile, n = pile_from_wire(snapshot.get("discard_pile", []), on_discard=True)
        bad += n

        hands = {}
        for name, items in (snapshot.get("player_hands") or {}).items():
            hands[name], n = hand_from_wire(items)
            bad += n
        self.hands = hands

        count = len(self.players) or len(hands)
        direction = -1 if snapshot.get("direction") == -1 else 1
        index = snapshot.get("current_player_index", 0)
        if not isinstance(index, int) or count == 0:
            index = 0
        self.turn = TurnState(current_player_index=index % max(count, 1), direction=direction, player_count=count)

        stacked, n = pile_from_wire(snapshot.get("stacked_cards", []), on_discard=True)
        bad += n
        self.stack = StackState(
            stacked_cards=stacked,
            can_stack=bool(snapshot.get("can_stack", False)),
            pending_draw_count=int(snapshot.get("pending_draw_count") or 0),
        )

        self.said_uno = {str(k): bool(v) for k, v in (snapshot.get("player_said_uno") or {}).items()}
        if "scores" in snapshot:
            self.scores = {str(k): int(v) for k, v in snapshot["scores"].items()}

        try:
            self.phase = GamePhase(snapshot.get("phase", GamePhase.PLAYING.value))
        except ValueError:
            self.phase = GamePhase.PLAYING

        pending = snapshot.get("pending_wild")
        if pending:
            card, replaced = pile_from_wire([pending])
            self.pending_wild = card[0]
            bad += replaced
        else:
            self.pending_wild = None
        self.pending_wild_player = snapshot.get("pending_wild_player")
        self.round_winner = snapshot.get("round_winner")
        self.game_winner = snapshot.get("game_winner")
        if "settings" in snapshot:
            settings = GameOptions.from_client_data(snapshot["settings"])
            self.options.points_to_win = settings.points_to_win
            self.options.stacking_enabled = settings.stacking_enabled
            self.options.unlimited_draw_enabled = settings.unlimited_draw_enabled
            self.options.force_play_enabled = settings.force_play_enabled
            self.options.jump_in_enabled = settings.jump_in_enabled

        same_turn = (
            turn_owner is not None
            and self.phase == GamePhase.PLAYING
            and self.current_player() == turn_owner
            and self.round_winner == round_winner
        )
        if not same_turn or (self.must_play_drawn_card and not self.hands.get(turn_owner)):
            self.reset_turn_flags()
        if isinstance(snapshot.get("state_version"), int):
            self.state_version = snapshot["state_version"]
        return bad
