"""
State replication between the participants of a room.

Every participant owns a full Match. A GameSession wraps that Match and:

    - applies the local player's actions optimistically, then broadcasts
      the resulting post-state as typed action messages;
    - applies actions from peers by overwriting the fields they carry,
      never by replaying rules;
    - drops its own echoes, duplicates and (optionally) stale deltas;
    - when it holds host authority, runs the timed duties: periodic full
      syncs, answers to REQUEST_SYNC, UNO penalties and computer turns.

Ordering is best effort. Each message carries the sender's state_version;
a receiver ignores deltas that are not newer than what it has applied.
Full snapshots always apply, and the host's periodic snapshot bounds any
divergence that gets through.

Connection lifecycle:

    DISCONNECTED -> CONNECTING -> CONNECTED <-> RESYNCING
                                     |
                                     v
                                    LEFT   (explicit leave only)
"""

import dataclasses
import logging
import random
from collections import deque
from enum import Enum
from typing import Any, Awaitable, Callable, Optional

from pydantic import ValidationError

from ai import CPU_NAMES, play_computer_turn
from cards import Card, Color, card_from_wire, cards_to_wire, hand_from_wire, pile_from_wire
from constants import (
    CPU_TURN_DELAY_SECONDS,
    PROCESSED_ACTIONS_LIMIT,
    SEND_RETRY_SECONDS,
    SYNC_INTERVAL_SECONDS,
    SYNC_TIMEOUT_SECONDS,
    UNO_GRACE_SECONDS,
)
from game import DrawResult, GameOptions, GamePhase, Match, PlayResult
from models.actions import ActionEnvelope, ActionKind, build_action, parse_action
from room import Room, RoomManager, RoomPlayer
from rules import StackState
from timers import TimerRegistry

logger = logging.getLogger(__name__)


class ConnectionState(str, Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    RESYNCING = "resyncing"
    LEFT = "left"


# Deltas subject to the state_version check. Snapshots always apply;
# SPECIAL_CARD is informational. Jump-in plays skip the check, see handle_action.
GUARDED_KINDS = frozenset({
    ActionKind.PLAY_CARD,
    ActionKind.DRAW_CARDS,
    ActionKind.PASS_TURN,
    ActionKind.WILD_COLOR_SELECT,
    ActionKind.STACKING,
    ActionKind.TURN_CHANGE,
    ActionKind.ROUND_WIN,
})

SNAPSHOT_KINDS = frozenset({ActionKind.GAME_STATE_SYNC, ActionKind.NEW_ROUND_STARTED})

# Sent out of turn, so they neither bump nor advance the state_version.
UNVERSIONED_KINDS = frozenset({ActionKind.UNO_CALL, ActionKind.REQUEST_SYNC})

MAX_NOTICES = 50


class CoordinatorTransport:
    """
    A participant's link to the RoomManager.

    Mirrors a network client: while ``connected`` is False every call
    raises ConnectionError.
    """

    def __init__(self, rooms: RoomManager, connected: bool = True):
        self.rooms = rooms
        self.connected = connected

    def _check(self) -> None:
        if not self.connected:
            raise ConnectionError("Not connected to the server")

    async def create_room(self, player_id: str, player_name: str, **kwargs) -> Room:
        self._check()
        return await self.rooms.create_room(player_id, player_name, **kwargs)

    async def join_room(self, id_or_code: str, player_id: str, player_name: str) -> Room:
        self._check()
        return await self.rooms.join_room(id_or_code, player_id, player_name)

    async def leave_room(self, room_id: str, player_id: str) -> Optional[RoomPlayer]:
        self._check()
        return await self.rooms.leave_room(room_id, player_id)

    async def start_game(self, room_id: str, player_id: str, new_game: bool = False) -> Room:
        self._check()
        return await self.rooms.start_game(room_id, player_id, new_game)

    async def broadcast(self, room_id: str, message: dict, exclude_player: Optional[str] = None) -> int:
        self._check()
        return await self.rooms.broadcast(room_id, message, exclude_player)

    async def send_to(self, room_id: str, player_id: str, message: dict) -> bool:
        self._check()
        return await self.rooms.send_to(room_id, player_id, message)

    def subscribe_actions(self, room_id: str, player_id: str, listener) -> Callable[[], None]:
        return self.rooms.subscribe_actions(room_id, player_id, listener)

    def on_player_joined(self, room_id: str, listener) -> Callable[[], None]:
        return self.rooms.on_player_joined(room_id, listener)

    def on_player_left(self, room_id: str, listener) -> Callable[[], None]:
        return self.rooms.on_player_left(room_id, listener)

    def is_host(self, room_id: str, player_id: str) -> bool:
        return self.rooms.is_host(room_id, player_id)

    def get_room(self, room_id: str) -> Optional[Room]:
        return self.rooms.get_room(room_id)


class GameSession:
    """
    One participant's replicated view of a game.

    Args:
        player_id: Stable id of the local player.
        player_name: Display name; hands are keyed by it.
        transport: Link to the coordinator. None for offline games.
        version_guard: Drop deltas whose state_version is not newer than
            the last one applied.
        rng: Random source for shuffles and computer players.
        uno_grace, sync_interval, sync_timeout, send_retry, cpu_delay:
            Timer durations in seconds.
    """

    def __init__(
        self,
        player_id: str,
        player_name: str,
        transport: Optional[CoordinatorTransport] = None,
        version_guard: bool = True,
        rng=None,
        uno_grace: float = UNO_GRACE_SECONDS,
        sync_interval: float = SYNC_INTERVAL_SECONDS,
        sync_timeout: float = SYNC_TIMEOUT_SECONDS,
        send_retry: float = SEND_RETRY_SECONDS,
        cpu_delay: float = CPU_TURN_DELAY_SECONDS,
    ):
        self.player_id = player_id
        self.player_name = player_name
        self.transport = transport
        self.version_guard = version_guard
        self.rng = rng
        self.uno_grace = uno_grace
        self.sync_interval = sync_interval
        self.sync_timeout = sync_timeout
        self.send_retry = send_retry
        self.cpu_delay = cpu_delay

        self.match = Match(rng=rng)
        self.room_id: Optional[str] = None
        self.room_code: Optional[str] = None
        self.state = ConnectionState.CONNECTED if transport and transport.connected else ConnectionState.DISCONNECTED
        self.timers = TimerRegistry()
        self.sync_in_progress = False
        self.cpu_players: dict[str, str] = {}
        self.notices: deque[str] = deque(maxlen=MAX_NOTICES)
        self._processed: deque[str] = deque(maxlen=PROCESSED_ACTIONS_LIMIT)
        self._pending_joins: list[str] = []
        self._unsubscribers: list[Callable[[], None]] = []

    # -------------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------------

    @property
    def messages(self) -> list[str]:
        """User-visible notices, oldest first."""
        return list(self.notices)

    @property
    def connected(self) -> bool:
        return self.state in (ConnectionState.CONNECTED, ConnectionState.RESYNCING)

    @property
    def is_host(self) -> bool:
        if self.transport is None or self.room_id is None:
            return True
        return self.transport.is_host(self.room_id, self.player_id)

    @property
    def is_my_turn(self) -> bool:
        return self.match.current_player() == self.player_name

    def notify(self, text: str) -> None:
        logger.info(f"[{self.player_name}] {text}")
        self.notices.append(text)

    # -------------------------------------------------------------------------
    # Connection
    # -------------------------------------------------------------------------

    async def connect(self) -> None:
        """
        (Re)connect to the coordinator.

        Joins requested while offline are replayed, and a session that was
        already in a running game asks the host for a full sync.
        """
        if self.transport is None:
            return
        self.state = ConnectionState.CONNECTING
        self.transport.connected = True
        self.state = ConnectionState.CONNECTED
        logger.debug(f"{self.player_name} connected")

        pending, self._pending_joins = self._pending_joins, []
        for code in pending:
            try:
                await self.join_room(code)
            except Exception as e:
                self.notify(f"Could not join {code}: {getattr(e, 'message', e)}")

        if self.room_id and self.match.phase != GamePhase.WAITING:
            await self.request_sync()

    def disconnect(self) -> None:
        """The link dropped. Inbound messages are ignored until connect()."""
        if self.transport is not None:
            self.transport.connected = False
        if self.state != ConnectionState.LEFT:
            self.state = ConnectionState.DISCONNECTED
        self.sync_in_progress = False
        self.timers.cancel("sync:timeout")
        logger.debug(f"{self.player_name} disconnected")

    # -------------------------------------------------------------------------
    # Rooms
    # -------------------------------------------------------------------------

    def _attach(self, room: Room) -> None:
        self.room_id = room.id
        self.room_code = room.code
        self.match = Match(rng=self.rng, options=dataclasses.replace(room.settings))
        self._unsubscribers = [
            self.transport.subscribe_actions(room.id, self.player_id, self.handle_action),
            self.transport.on_player_joined(room.id, self._on_player_joined),
            self.transport.on_player_left(room.id, self._on_player_left),
        ]

    async def create_room(
        self,
        name: Optional[str] = None,
        max_players: Optional[int] = None,
        settings: Optional[dict] = None,
    ) -> Room:
        """
        Create a room and become its host.

        Raises:
            ConnectionError: Not connected.
        """
        kwargs: dict[str, Any] = {"name": name, "settings": settings}
        if max_players is not None:
            kwargs["max_players"] = max_players
        room = await self.transport.create_room(self.player_id, self.player_name, **kwargs)
        self._attach(room)
        return room

    async def join_room(self, id_or_code: str) -> Optional[Room]:
        """
        Join a room by id or code.

        While disconnected the request is queued and replayed by connect().

        Returns:
            The room, or None if the join was queued.

        Raises:
            RoomError: The coordinator refused the join.
        """
        if not self.connected:
            self._pending_joins.append(id_or_code)
            self.notify("Not connected. Will join when the connection is back.")
            return None
        room = await self.transport.join_room(id_or_code, self.player_id, self.player_name)
        self._attach(room)
        return room

    async def leave(self) -> None:
        """Leave the room. Cancels every timer and listener of this session."""
        self.timers.cancel_all()
        for dispose in self._unsubscribers:
            dispose()
        self._unsubscribers = []

        if self.transport is not None and self.room_id is not None:
            try:
                await self.transport.leave_room(self.room_id, self.player_id)
            except ConnectionError as e:
                logger.warning(f"{self.player_name} left while disconnected: {e}")

        self.state = ConnectionState.LEFT
        self.room_id = None
        self.room_code = None
        self.sync_in_progress = False
        self.cpu_players = {}
        self._pending_joins = []
        self._processed.clear()
        self.match = Match(rng=self.rng)

    async def _on_player_joined(self, player: RoomPlayer) -> None:
        logger.debug(f"{self.player_name} sees {player.name} join")

    async def _on_player_left(self, player: RoomPlayer) -> None:
        if self.match.phase == GamePhase.WAITING or player.name not in self.match.players:
            return
        self.notify(f"{player.name} left the game")
        winner = self.match.remove_player(player.name)
        self.timers.cancel(f"uno:{player.name}")
        if winner:
            self.notify(f"{winner} wins the game")
        await self._after_change()

    # -------------------------------------------------------------------------
    # Game setup (host)
    # -------------------------------------------------------------------------

    def add_cpu_player(self, difficulty: Optional[str] = None) -> Optional[str]:
        """
        Reserve a computer seat for the next game. Host only.

        Returns:
            The computer's name, or None if not allowed.
        """
        if not self.is_host or self.match.is_active:
            return None
        taken = set(self.cpu_players)
        room = self.transport.get_room(self.room_id) if self.transport and self.room_id else None
        if room:
            taken.update(room.player_names())
        name = next((n for n in CPU_NAMES if n not in taken), None)
        if name is None:
            return None
        self.cpu_players[name] = difficulty or self.match.options.cpu_difficulty
        return name

    async def start_game(self) -> None:
        """
        Start the game in the current room. Host only.

        After a finished game this starts a new one with scores reset.

        Raises:
            RoomError: The coordinator refused (not host, too few players, ...).
        """
        new_game = self.match.phase == GamePhase.GAME_OVER
        room = await self.transport.start_game(self.room_id, self.player_id, new_game)
        options = dataclasses.replace(room.settings)
        self.match.start_game(room.player_names() + list(self.cpu_players), options)
        self.timers.cancel_prefix("uno:")
        await self._emit(ActionKind.NEW_ROUND_STARTED, **self._snapshot_data())
        await self._after_change()

    async def start_single_player(
        self,
        cpu_count: int = 1,
        difficulty: Optional[str] = None,
        options: Optional[GameOptions] = None,
    ) -> None:
        """Start an offline game against computer players."""
        self.cpu_players = {}
        options = options or self.match.options
        for name in CPU_NAMES[:max(1, min(cpu_count, len(CPU_NAMES)))]:
            self.cpu_players[name] = difficulty or options.cpu_difficulty
        self.match.start_game([self.player_name] + list(self.cpu_players), options)
        self._schedule_duties()

    async def start_new_round(self) -> bool:
        """Deal the next round after a round win. Host only."""
        if not self.is_host or self.match.phase != GamePhase.ROUND_OVER:
            return False
        self.timers.cancel_prefix("uno:")
        self.match.start_new_round()
        await self._emit(ActionKind.NEW_ROUND_STARTED, **self._snapshot_data())
        await self._after_change()
        return True

    # -------------------------------------------------------------------------
    # Local player actions
    # -------------------------------------------------------------------------

    async def play_card(self, index: int, color: Optional[Color] = None) -> Optional[PlayResult]:
        result = self.match.play_card(self.player_name, index, color)
        if result is None:
            self.notify("You can't play that card now")
            return None
        await self._broadcast_play(ActionKind.PLAY_CARD, result)
        await self._after_change()
        return result

    async def select_color(self, color: Color) -> Optional[PlayResult]:
        result = self.match.select_color(self.player_name, color)
        if result is None:
            self.notify("No wild card is waiting for a color")
            return None
        await self._broadcast_play(ActionKind.WILD_COLOR_SELECT, result)
        await self._after_change()
        return result

    async def jump_in(self, index: int) -> Optional[PlayResult]:
        result = self.match.jump_in(self.player_name, index)
        if result is None:
            self.notify("You can't jump in with that card")
            return None
        await self._broadcast_play(ActionKind.PLAY_CARD, result)
        await self._after_change()
        return result

    async def draw(self) -> Optional[DrawResult]:
        result = self.match.draw(self.player_name)
        if result is None:
            self.notify("You can't draw now")
            return None
        await self._broadcast_draw(result)
        await self._after_change()
        return result

    async def pass_turn(self) -> bool:
        if not self.match.pass_turn(self.player_name):
            self.notify("You can't pass now")
            return False
        await self._emit(
            ActionKind.PASS_TURN,
            player=self.player_name,
            current_player_index=self.match.turn.current_player_index,
        )
        await self._after_change()
        return True

    async def call_uno(self) -> bool:
        if not self.match.call_uno(self.player_name):
            return False
        self.timers.cancel(f"uno:{self.player_name}")
        await self._emit(ActionKind.UNO_CALL, player=self.player_name)
        return True

    async def request_sync(self) -> None:
        """
        Ask the host for a full snapshot.

        If none arrives within the sync timeout the session carries on with
        its current state.
        """
        if self.is_host:
            return
        self.state = ConnectionState.RESYNCING
        self.sync_in_progress = True
        self.timers.schedule("sync:timeout", self.sync_timeout, self._sync_timed_out)
        await self._emit(ActionKind.REQUEST_SYNC, requester=self.player_id)

    async def _sync_timed_out(self) -> None:
        if not self.sync_in_progress:
            return
        self.sync_in_progress = False
        if self.state == ConnectionState.RESYNCING:
            self.state = ConnectionState.CONNECTED
        self.notify("Sync timed out. Continuing with the current game state.")

    # -------------------------------------------------------------------------
    # Outgoing
    # -------------------------------------------------------------------------

    def _snapshot_data(self) -> dict:
        data = self.match.snapshot()
        data.pop("state_version", None)
        return data

    def _remember(self, action_id: str) -> None:
        self._processed.append(action_id)

    async def _emit(self, kind: ActionKind, actor: Optional[str] = None, **data) -> ActionEnvelope:
        """Stamp, record and send one action."""
        if kind not in UNVERSIONED_KINDS:
            self.match.state_version += 1
        envelope = build_action(
            kind,
            room_id=self.room_id or "",
            player_id=self.player_id,
            player_name=actor or self.player_name,
            state_version=self.match.state_version,
            **data,
        )
        self._remember(envelope.action_id)
        await self._send(envelope)
        return envelope

    async def _send(self, envelope: ActionEnvelope, target: Optional[str] = None, retry: bool = True) -> bool:
        """
        Hand an action to the coordinator.

        A failed send is retried once after ``send_retry`` seconds; if that
        fails too the action is dropped and the next full sync repairs state.
        """
        if self.transport is None or self.room_id is None:
            return True

        message = envelope.to_message()
        try:
            if target is not None:
                await self.transport.send_to(self.room_id, target, message)
            else:
                await self.transport.broadcast(self.room_id, message, exclude_player=self.player_id)
            return True
        except ConnectionError as e:
            if not retry:
                self.notify(f"Connection problem: {envelope.action} was not delivered")
                return False
            logger.warning(f"Send of {envelope.action} failed ({e}), retrying")

        async def _retry() -> None:
            await self._send(envelope, target, retry=False)

        self.timers.schedule(f"retry:{envelope.action_id}", self.send_retry, _retry)
        return False

    async def _broadcast_play(self, kind: ActionKind, result: PlayResult, actor: Optional[str] = None) -> None:
        """Send the messages describing a play (or a wild's color choice)."""
        actor = actor or result.player
        match = self.match
        effects = result.effects
        stack = match.stack.to_dict()
        special = {
            "skip_turn": bool(effects and effects.skipped),
            "draw_card_count": len(result.drawn),
            "target_player": result.draw_target,
        }

        if kind == ActionKind.PLAY_CARD:
            await self._emit(
                kind,
                actor=actor,
                card=result.card.to_dict(),
                player_hand=cards_to_wire(match.hands.get(actor, [])),
                discard_pile=cards_to_wire(match.discard_pile),
                current_player_index=match.turn.current_player_index,
                direction=match.turn.direction,
                awaiting_color=result.awaiting_color,
                jump_in=result.jump_in,
                special_effect=special,
                **stack,
            )
        else:
            await self._emit(
                kind,
                actor=actor,
                card=result.card.to_dict(),
                discard_pile=cards_to_wire(match.discard_pile),
                current_player_index=match.turn.current_player_index,
                direction=match.turn.direction,
                special_effect=special,
                **stack,
            )

        if result.round_result is not None:
            round_result = result.round_result
            await self._emit(
                ActionKind.ROUND_WIN,
                actor=actor,
                winner=round_result.winner,
                new_scores=round_result.scores,
                game_winner=round_result.game_winner,
                points=round_result.points,
            )
            return
        if effects is None:
            return

        if effects.stack.can_stack:
            await self._emit(
                ActionKind.STACKING,
                actor=actor,
                current_player_index=match.turn.current_player_index,
                **stack,
            )
        elif result.draw_target is not None:
            target = result.draw_target
            await self._emit(
                ActionKind.SPECIAL_CARD,
                actor=actor,
                card=result.card.to_dict(),
                effect="draw",
                target_player=target,
                draw_count=len(result.drawn),
            )
            await self._emit(
                ActionKind.DRAW_CARDS,
                actor=actor,
                player=target,
                num_cards=len(result.drawn),
                player_hand=cards_to_wire(match.hands.get(target, [])),
                deck=cards_to_wire(match.deck),
                discard_pile=cards_to_wire(match.discard_pile),
                pending_draw_count=0,
            )
        elif effects.skipped or effects.reversed or result.card.is_wild:
            effect = "skip" if effects.skipped else "reverse" if effects.reversed else "wild"
            await self._emit(
                ActionKind.SPECIAL_CARD,
                actor=actor,
                card=result.card.to_dict(),
                effect=effect,
            )

    async def _broadcast_draw(self, result: DrawResult, penalty: bool = False) -> None:
        match = self.match
        await self._emit(
            ActionKind.DRAW_CARDS,
            actor=result.player,
            player=result.player,
            num_cards=len(result.cards),
            player_hand=cards_to_wire(match.hands.get(result.player, [])),
            deck=cards_to_wire(match.deck),
            discard_pile=cards_to_wire(match.discard_pile),
            pending_draw_count=match.stack.pending_draw_count,
            penalty=penalty,
            chain_broken=result.chain_broken,
        )
        if result.turn_passed:
            await self._emit(
                ActionKind.TURN_CHANGE,
                actor=result.player,
                current_player_index=match.turn.current_player_index,
                direction=match.turn.direction,
            )

    # -------------------------------------------------------------------------
    # Incoming
    # -------------------------------------------------------------------------

    async def handle_action(self, message: dict) -> None:
        """
        Apply one inbound message from the coordinator.

        Unknown rooms, own echoes, duplicates, stale deltas and malformed
        messages are logged and ignored.
        """
        if self.state in (ConnectionState.LEFT, ConnectionState.DISCONNECTED):
            return
        if "action" not in message:
            if message.get("type") == "room_closed":
                await self._on_room_closed(message)
            return

        try:
            envelope = parse_action(message)
        except ValidationError as e:
            logger.warning(f"Malformed action ignored: {e.error_count()} error(s)")
            return

        if envelope.room_id != self.room_id:
            logger.debug(f"Action for room {envelope.room_id} ignored")
            return
        if envelope.origin == self.player_id:
            return
        if envelope.action_id in self._processed:
            logger.debug(f"Duplicate action {envelope.action_id} ignored")
            return
        self._remember(envelope.action_id)

        kind = ActionKind(envelope.action)
        version = envelope.data.state_version
        if (
            self.version_guard
            and kind in GUARDED_KINDS
            and not getattr(envelope.data, "jump_in", False)
            and version is not None
            and version <= self.match.state_version
        ):
            logger.debug(f"Stale {kind.value} v{version} ignored (at v{self.match.state_version})")
            return

        await REDUCERS[kind](self, envelope)
        if kind not in SNAPSHOT_KINDS and kind not in UNVERSIONED_KINDS and version is not None:
            self.match.state_version = max(self.match.state_version, version)
        await self._after_change()

    async def _on_room_closed(self, message: dict) -> None:
        self.notify(message.get("reason", "The room was closed"))
        self.timers.cancel_all()
        for dispose in self._unsubscribers:
            dispose()
        self._unsubscribers = []
        self.room_id = None
        self.room_code = None

    def _hand(self, items, owner: str) -> list[Card]:
        cards, dropped = hand_from_wire(items)
        if dropped:
            self.notify(f"Ignored {dropped} invalid card(s) in {owner}'s hand")
        return cards

    def _pile(self, items, on_discard: bool = False) -> list[Card]:
        cards, replaced = pile_from_wire(items, on_discard=on_discard)
        if replaced:
            self.notify(f"Replaced {replaced} invalid card(s) received from another player")
        return cards

    def _stack(self, data) -> StackState:
        return StackState(
            stacked_cards=self._pile(data.stacked_cards, on_discard=True),
            can_stack=data.can_stack,
            pending_draw_count=data.pending_draw_count,
        )

    def _set_turn(self, index: Optional[int], direction: Optional[int] = None) -> None:
        turn = self.match.turn
        turn.player_count = len(self.match.players)
        if index is not None and turn.player_count:
            turn.current_player_index = index % turn.player_count
        if direction in (1, -1):
            turn.direction = direction
        self.match.reset_turn_flags()

    async def _apply_play_card(self, envelope: ActionEnvelope) -> None:
        data = envelope.data
        match = self.match
        player = envelope.player_name
        match.hands[player] = self._hand(data.player_hand, player)
        match.discard_pile = self._pile(data.discard_pile, on_discard=True)
        match.stack = self._stack(data)
        self._set_turn(data.current_player_index, data.direction)
        if data.awaiting_color:
            card, replaced = card_from_wire(data.card)
            if replaced:
                self.notify("Replaced an invalid wild card received from another player")
            match.pending_wild = card
            match.pending_wild_player = player
            match.phase = GamePhase.CHOOSING_COLOR
        elif match.phase == GamePhase.CHOOSING_COLOR:
            match.phase = GamePhase.PLAYING

    async def _apply_draw_cards(self, envelope: ActionEnvelope) -> None:
        data = envelope.data
        match = self.match
        match.hands[data.player] = self._hand(data.player_hand, data.player)
        match.deck = self._pile(data.deck)
        if data.discard_pile is not None:
            match.discard_pile = self._pile(data.discard_pile, on_discard=True)
        match.said_uno[data.player] = False
        if data.chain_broken:
            match.stack = StackState()
        if data.penalty:
            self.notify(f"{data.player} forgot to say UNO and drew {data.num_cards} cards")

    async def _apply_pass_turn(self, envelope: ActionEnvelope) -> None:
        self._set_turn(envelope.data.current_player_index)

    async def _apply_uno_call(self, envelope: ActionEnvelope) -> None:
        player = envelope.data.player
        self.match.said_uno[player] = True
        self.timers.cancel(f"uno:{player}")

    async def _apply_wild_color_select(self, envelope: ActionEnvelope) -> None:
        data = envelope.data
        match = self.match
        match.discard_pile = self._pile(data.discard_pile, on_discard=True)
        match.stack = self._stack(data)
        match.pending_wild = None
        match.pending_wild_player = None
        if match.phase == GamePhase.CHOOSING_COLOR:
            match.phase = GamePhase.PLAYING
        self._set_turn(data.current_player_index, data.direction)

    async def _apply_special_card(self, envelope: ActionEnvelope) -> None:
        data = envelope.data
        logger.debug(f"{envelope.player_name} played {data.effect} card {data.card}")

    async def _apply_stacking(self, envelope: ActionEnvelope) -> None:
        data = envelope.data
        self.match.stack = self._stack(data)
        self._set_turn(data.current_player_index)

    async def _apply_turn_change(self, envelope: ActionEnvelope) -> None:
        self._set_turn(envelope.data.current_player_index, envelope.data.direction)

    async def _apply_snapshot(self, envelope: ActionEnvelope) -> None:
        bad = self.match.restore(envelope.data.to_snapshot())
        if envelope.action == ActionKind.NEW_ROUND_STARTED:
            self.match.reset_turn_flags()
        if bad:
            self.notify(f"Replaced {bad} invalid card(s) in the game state")
        self.timers.cancel_prefix("uno:")
        self.timers.cancel("sync:timeout")
        self.sync_in_progress = False
        if self.state == ConnectionState.RESYNCING:
            self.state = ConnectionState.CONNECTED

    async def _apply_round_win(self, envelope: ActionEnvelope) -> None:
        data = envelope.data
        match = self.match
        match.scores = dict(data.new_scores)
        match.round_winner = data.winner
        match.stack = StackState()
        match.reset_turn_flags()
        if data.game_winner:
            match.game_winner = data.game_winner
            match.phase = GamePhase.GAME_OVER
            self.notify(f"{data.game_winner} wins the game")
        else:
            match.phase = GamePhase.ROUND_OVER
            self.notify(f"{data.winner} wins the round (+{data.points})")
        self.timers.cancel_prefix("uno:")

    async def _apply_request_sync(self, envelope: ActionEnvelope) -> None:
        if not self.is_host:
            return
        if self.match.phase == GamePhase.WAITING:
            return
        requester = envelope.data.requester or envelope.origin
        self.match.state_version += 1
        reply = build_action(
            ActionKind.GAME_STATE_SYNC,
            room_id=self.room_id,
            player_id=self.player_id,
            player_name=self.player_name,
            state_version=self.match.state_version,
            **self._snapshot_data(),
        )
        self._remember(reply.action_id)
        await self._send(reply, target=requester)

    # -------------------------------------------------------------------------
    # Host duties
    # -------------------------------------------------------------------------

    async def _after_change(self) -> None:
        self._schedule_duties()

    def _schedule_duties(self) -> None:
        """(Re)arm the timers owned by whoever holds host authority."""
        if not self.is_host:
            return
        match = self.match

        if self.room_id and match.is_active and "sync:periodic" not in self.timers:
            self.timers.schedule_repeating("sync:periodic", self.sync_interval, self._periodic_sync)

        for name in match.players:
            timer = f"uno:{name}"
            if match.needs_uno_penalty(name):
                if timer not in self.timers:
                    self.timers.schedule(timer, self.uno_grace, self._make_uno_check(name))
            else:
                self.timers.cancel(timer)

        current = match.current_player()
        if match.phase == GamePhase.PLAYING and current in self.cpu_players:
            if "cpu:turn" not in self.timers:
                self.timers.schedule("cpu:turn", self.cpu_delay, self._run_cpu_turn)
        else:
            self.timers.cancel("cpu:turn")

    async def _periodic_sync(self) -> None:
        if not self.is_host or not self.match.is_active:
            return
        await self._emit(ActionKind.GAME_STATE_SYNC, **self._snapshot_data())

    def _make_uno_check(self, player: str) -> Callable[[], Awaitable[None]]:
        async def _check() -> None:
            await self._uno_timeout(player)
        return _check

    async def _uno_timeout(self, player: str) -> None:
        cards = self.match.apply_uno_penalty(player)
        if cards is None:
            return
        self.notify(f"{player} forgot to say UNO and drew {len(cards)} cards")
        await self._broadcast_draw(DrawResult(player, cards), penalty=True)
        await self._after_change()

    async def _run_cpu_turn(self) -> None:
        player = self.match.current_player()
        difficulty = self.cpu_players.get(player)
        if difficulty is None:
            return

        steps = play_computer_turn(self.match, player, difficulty, self.rng or random)
        if not steps:
            logger.warning(f"{player} had no move available")
            return

        for step, result in steps:
            if step == "draw":
                await self._broadcast_draw(result)
            elif step == "pass":
                await self._emit(
                    ActionKind.PASS_TURN,
                    actor=player,
                    player=player,
                    current_player_index=self.match.turn.current_player_index,
                )
            elif step == "uno":
                await self._emit(ActionKind.UNO_CALL, actor=player, player=player)
            elif step == "play":
                await self._broadcast_play(ActionKind.PLAY_CARD, result, actor=player)
        await self._after_change()


REDUCERS: dict[ActionKind, Callable[[GameSession, ActionEnvelope], Awaitable[None]]] = {
    ActionKind.PLAY_CARD: GameSession._apply_play_card,
    ActionKind.DRAW_CARDS: GameSession._apply_draw_cards,
    ActionKind.PASS_TURN: GameSession._apply_pass_turn,
    ActionKind.UNO_CALL: GameSession._apply_uno_call,
    ActionKind.WILD_COLOR_SELECT: GameSession._apply_wild_color_select,
    ActionKind.SPECIAL_CARD: GameSession._apply_special_card,
    ActionKind.STACKING: GameSession._apply_stacking,
    ActionKind.TURN_CHANGE: GameSession._apply_turn_change,
    ActionKind.NEW_ROUND_STARTED: GameSession._apply_snapshot,
    ActionKind.ROUND_WIN: GameSession._apply_round_win,
    ActionKind.GAME_STATE_SYNC: GameSession._apply_snapshot,
    ActionKind.REQUEST_SYNC: GameSession._apply_request_sync,
}

_missing = set(ActionKind) - set(REDUCERS)
if _missing:
    raise RuntimeError(f"No reducer for {sorted(k.value for k in _missing)}")
