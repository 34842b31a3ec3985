"""
Room management for multiplayer UNO games.

The RoomManager is the session coordinator: it owns every active room,
handles joining and leaving, elects hosts and relays game actions to the
players in a room. Game state itself lives with each participant (see
replication.py); the coordinator only moves messages.

A Room contains:
    - A unique 6-character code for joining
    - The players, in join order (the seat order for a new game)
    - The host's player id
    - Room settings (points to win and house rules)

Players are reached either through a WebSocket (relay server) or through
an in-process action listener registered with subscribe_actions().

Membership changes for a room are serialised with the room's lock.
"""

import asyncio
import logging
import secrets
import time
import uuid
from collections import deque
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Optional

from fastapi import WebSocket

from constants import (
    ACTION_LOG_SIZE,
    MAX_PLAYERS,
    MIN_PLAYERS_TO_START,
    ROOM_CODE_ALPHABET,
    ROOM_CODE_LENGTH,
)
from game import GameOptions

logger = logging.getLogger(__name__)

ActionListener = Callable[[dict], Awaitable[None]]
MembershipListener = Callable[["RoomPlayer"], Awaitable[None]]
Disposer = Callable[[], None]


# =============================================================================
# Errors
# =============================================================================

class RoomError(Exception):
    """A join/start precondition failed. Reported to the requester only."""

    code = "room_error"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_message(self) -> dict:
        return {"type": "error", "code": self.code, "message": self.message}


class RoomNotFoundError(RoomError):
    code = "room_not_found"

    def __init__(self, message: str = "Room not found"):
        super().__init__(message)


class RoomFullError(RoomError):
    code = "room_full"

    def __init__(self, message: str = "Room is full"):
        super().__init__(message)


class AlreadyInRoomError(RoomError):
    code = "already_in_room"

    def __init__(self, message: str = "You are already in this room"):
        super().__init__(message)


class NameTakenError(RoomError):
    code = "name_taken"

    def __init__(self, message: str = "Name already taken in this room"):
        super().__init__(message)


class GameAlreadyStartedError(RoomError):
    code = "game_already_started"

    def __init__(self, message: str = "Game already started"):
        super().__init__(message)


class NotHostError(RoomError):
    code = "not_host"

    def __init__(self, message: str = "Only the host can start the game"):
        super().__init__(message)


class NotEnoughPlayersError(RoomError):
    code = "not_enough_players"

    def __init__(self, message: str = f"Need at least {MIN_PLAYERS_TO_START} players to start"):
        super().__init__(message)


# =============================================================================
# Room
# =============================================================================

@dataclass
class RoomPlayer:
    """
    A player in a room (lobby-level representation).

    Attributes:
        id: Unique player identifier (connection id for WebSocket players).
        name: Display name, unique within the room. Hands are keyed by it.
        websocket: Connection for relay players; None for in-process players.
    """

    id: str
    name: str
    websocket: Optional[WebSocket] = None

    def to_dict(self) -> dict:
        return {"id": self.id, "name": self.name}


@dataclass
class Room:
    """
    A game room.

    Attributes:
        id: Stable room identifier.
        code: 6-character join code.
        name: Display name.
        max_players: Capacity.
        players: Players by id, in join order.
        host: Player id holding host authority.
        settings: Points to win and house rules.
        game_started: A game is in progress.
        action_log: Recently relayed action ids, for duplicate detection.
        created_at: Creation time (epoch seconds).
        last_activity: Last join/leave/action (epoch seconds).
        lock: Serialises membership changes.
    """

    id: str
    code: str
    name: str = "UNO Room"
    max_players: int = MAX_PLAYERS
    players: dict[str, RoomPlayer] = field(default_factory=dict)
    host: Optional[str] = None
    settings: GameOptions = field(default_factory=GameOptions)
    game_started: bool = False
    action_log: deque = field(default_factory=lambda: deque(maxlen=ACTION_LOG_SIZE))
    created_at: float = field(default_factory=time.time)
    last_activity: float = field(default_factory=time.time)
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)

    def touch(self) -> None:
        self.last_activity = time.time()

    def add_player(self, player: RoomPlayer) -> RoomPlayer:
        """Add a player. The first player becomes host."""
        self.players[player.id] = player
        if self.host is None:
            self.host = player.id
        self.touch()
        return player

    def remove_player(self, player_id: str) -> Optional[RoomPlayer]:
        """
        Remove a player, handing host authority to the earliest remaining player.

        Returns:
            The removed player, or None if not found.
        """
        player = self.players.pop(player_id, None)
        if player is None:
            return None
        if self.host == player_id:
            self.host = next(iter(self.players), None)
            if self.host:
                logger.info(f"Room {self.code}: host passed to {self.players[self.host].name}")
        self.touch()
        return player

    def get_player(self, player_id: str) -> Optional[RoomPlayer]:
        return self.players.get(player_id)

    def has_name(self, name: str) -> bool:
        return any(p.name == name for p in self.players.values())

    def is_empty(self) -> bool:
        return not self.players

    def player_names(self) -> list[str]:
        return [p.name for p in self.players.values()]

    def player_list(self) -> list[dict]:
        return [p.to_dict() for p in self.players.values()]

    def to_dict(self) -> dict:
        """Room shape shared with clients."""
        return {
            "id": self.id,
            "name": self.name,
            "code": self.code,
            "max_players": self.max_players,
            "players": self.player_list(),
            "host": self.host,
            "settings": self.settings.to_settings(),
            "game_started": self.game_started,
        }


# =============================================================================
# Coordinator
# =============================================================================

class RoomManager:
    """
    Manages all active game rooms and relays messages between their players.

    A single RoomManager instance is used by the server.
    """

    def __init__(self) -> None:
        self.rooms: dict[str, Room] = {}
        self._codes: dict[str, str] = {}
        self._action_listeners: dict[str, dict[str, ActionListener]] = {}
        self._joined_listeners: dict[str, list[MembershipListener]] = {}
        self._left_listeners: dict[str, list[MembershipListener]] = {}
        self.relay = None  # Optional cross-server relay (stores.pubsub.GamePubSub)

    # -------------------------------------------------------------------------
    # Registry
    # -------------------------------------------------------------------------

    def _generate_code(self, max_attempts: int = 100) -> str:
        """Generate a room code unique among active rooms."""
        for _ in range(max_attempts):
            code = "".join(secrets.choice(ROOM_CODE_ALPHABET) for _ in range(ROOM_CODE_LENGTH))
            if code not in self._codes:
                return code
        raise RuntimeError("Could not generate unique room code")

    def get_room(self, id_or_code: str) -> Optional[Room]:
        """
        Look a room up by id or by code (codes are case-insensitive).
        """
        if not id_or_code:
            return None
        room = self.rooms.get(id_or_code)
        if room:
            return room
        room_id = self._codes.get(id_or_code.strip().upper())
        return self.rooms.get(room_id) if room_id else None

    def list_rooms(self) -> list[dict]:
        return [room.to_dict() for room in self.rooms.values()]

    async def remove_room(self, room_id: str) -> None:
        room = self.rooms.pop(room_id, None)
        if room is None:
            return
        self._codes.pop(room.code, None)
        self._action_listeners.pop(room_id, None)
        self._joined_listeners.pop(room_id, None)
        self._left_listeners.pop(room_id, None)
        if self.relay is not None:
            await self.relay.unsubscribe(room.code)
        logger.info(f"Room {room.code} removed")

    # -------------------------------------------------------------------------
    # Cross-server relay
    # -------------------------------------------------------------------------

    async def attach_relay(self, relay) -> None:
        """
        Relay broadcasts through Redis pub/sub (stores.pubsub.GamePubSub).

        Rooms that already exist are subscribed straight away.
        """
        self.relay = relay
        for room in self.rooms.values():
            await relay.subscribe(room.code, self._on_relay_message)

    async def _on_relay_message(self, msg) -> None:
        """Deliver an action relayed by another server to local players."""
        room = self.get_room(msg.room_code)
        message = msg.data.get("message")
        if room is None or not isinstance(message, dict):
            return
        await self.broadcast(room.id, message, msg.data.get("exclude_player"), relay=False)

    def is_host(self, room_id: str, player_id: str) -> bool:
        room = self.rooms.get(room_id)
        return room is not None and room.host == player_id

    def player_count(self, room_id: str) -> int:
        room = self.rooms.get(room_id)
        return len(room.players) if room else 0

    # -------------------------------------------------------------------------
    # Membership
    # -------------------------------------------------------------------------

    async def create_room(
        self,
        host_id: str,
        host_name: str,
        websocket: Optional[WebSocket] = None,
        name: Optional[str] = None,
        max_players: int = MAX_PLAYERS,
        settings: Optional[dict] = None,
    ) -> Room:
        """
        Create a room with the creator as host.

        Args:
            host_id: Creator's player id.
            host_name: Creator's display name.
            websocket: Creator's connection, if a relay player.
            name: Room display name.
            max_players: Capacity (2 or more).
            settings: Room settings as sent by the client.

        Returns:
            The new Room.
        """
        code = self._generate_code()
        room = Room(
            id=str(uuid.uuid4()),
            code=code,
            name=name or f"{host_name}'s room",
            max_players=max(MIN_PLAYERS_TO_START, max_players),
            settings=GameOptions.from_client_data(settings or {}),
        )
        room.add_player(RoomPlayer(host_id, host_name, websocket))
        self.rooms[room.id] = room
        self._codes[code] = room.id
        if self.relay is not None:
            await self.relay.subscribe(code, self._on_relay_message)
        logger.info(f"Room {code} created by {host_name}", extra={"room_code": code})
        return room

    async def join_room(
        self,
        id_or_code: str,
        player_id: str,
        player_name: str,
        websocket: Optional[WebSocket] = None,
    ) -> Room:
        """
        Add a player to a room.

        Raises:
            RoomNotFoundError, GameAlreadyStartedError, AlreadyInRoomError,
            RoomFullError, NameTakenError.
        """
        room = self.get_room(id_or_code)
        if room is None:
            raise RoomNotFoundError()

        async with room.lock:
            if player_id in room.players:
                raise AlreadyInRoomError()
            if room.game_started:
                raise GameAlreadyStartedError()
            if len(room.players) >= room.max_players:
                raise RoomFullError()
            if room.has_name(player_name):
                raise NameTakenError()
            player = room.add_player(RoomPlayer(player_id, player_name, websocket))

        logger.info(f"{player_name} joined room {room.code}", extra={"room_code": room.code})
        await self._notify(self._joined_listeners.get(room.id, []), player)
        return room

    async def leave_room(self, room_id: str, player_id: str) -> Optional[RoomPlayer]:
        """
        Remove a player; empty rooms are deleted.

        Returns:
            The removed player, or None if they were not in the room.
        """
        room = self.rooms.get(room_id)
        if room is None:
            logger.debug(f"leave_room for unknown room {room_id}")
            return None

        async with room.lock:
            player = room.remove_player(player_id)
        if player is None:
            return None

        self._action_listeners.get(room_id, {}).pop(player_id, None)
        logger.info(f"{player.name} left room {room.code}", extra={"room_code": room.code})

        if room.is_empty():
            await self.remove_room(room_id)
            return player

        await self._notify(self._left_listeners.get(room_id, []), player)
        await self.broadcast(room_id, {
            "type": "player_left",
            "player_id": player.id,
            "player_name": player.name,
            "players": room.player_list(),
            "host": room.host,
        })
        return player

    async def start_game(self, room_id: str, player_id: str, new_game: bool = False) -> Room:
        """
        Check start preconditions and mark the room as playing.

        ``new_game`` lets the host start over in a room whose previous game
        has finished; the room stays closed to joins.

        Raises:
            RoomNotFoundError, GameAlreadyStartedError, NotHostError,
            NotEnoughPlayersError.
        """
        room = self.rooms.get(room_id)
        if room is None:
            raise RoomNotFoundError()
        async with room.lock:
            if room.game_started and not new_game:
                raise GameAlreadyStartedError()
            if room.host != player_id:
                raise NotHostError()
            if len(room.players) < MIN_PLAYERS_TO_START:
                raise NotEnoughPlayersError()
            room.game_started = True
            room.touch()
        logger.info(f"Game started in room {room.code}", extra={"room_code": room.code})
        return room

    async def cleanup_idle_rooms(self, max_idle_seconds: float) -> list[str]:
        """
        Remove rooms with no activity for ``max_idle_seconds``.

        Returns:
            Codes of the removed rooms.
        """
        now = time.time()
        stale = [room for room in self.rooms.values() if now - room.last_activity > max_idle_seconds]
        for room in stale:
            await self.broadcast(room.id, {"type": "room_closed", "reason": "Room closed after inactivity"})
            await self.remove_room(room.id)
        if stale:
            logger.info(f"Cleaned up {len(stale)} idle room(s)")
        return [room.code for room in stale]

    # -------------------------------------------------------------------------
    # Subscriptions
    # -------------------------------------------------------------------------

    def subscribe_actions(self, room_id: str, player_id: str, listener: ActionListener) -> Disposer:
        """
        Deliver room broadcasts addressed to ``player_id`` to ``listener``.

        Returns:
            A disposer that removes the subscription.
        """
        listeners = self._action_listeners.setdefault(room_id, {})
        listeners[player_id] = listener

        def dispose() -> None:
            current = self._action_listeners.get(room_id, {})
            if current.get(player_id) is listener:
                del current[player_id]

        return dispose

    def _subscribe(self, registry: dict, room_id: str, listener: MembershipListener) -> Disposer:
        registry.setdefault(room_id, []).append(listener)

        def dispose() -> None:
            listeners = registry.get(room_id, [])
            if listener in listeners:
                listeners.remove(listener)

        return dispose

    def on_player_joined(self, room_id: str, listener: MembershipListener) -> Disposer:
        return self._subscribe(self._joined_listeners, room_id, listener)

    def on_player_left(self, room_id: str, listener: MembershipListener) -> Disposer:
        return self._subscribe(self._left_listeners, room_id, listener)

    async def _notify(self, listeners: list[MembershipListener], player: RoomPlayer) -> None:
        for listener in list(listeners):
            try:
                await listener(player)
            except Exception as e:
                logger.error(f"Membership listener failed: {e}", exc_info=True)

    # -------------------------------------------------------------------------
    # Messaging
    # -------------------------------------------------------------------------

    async def _deliver(self, room_id: str, player: RoomPlayer, message: dict) -> bool:
        listener = self._action_listeners.get(room_id, {}).get(player.id)
        try:
            if listener is not None:
                await listener(message)
                return True
            if player.websocket is not None:
                await player.websocket.send_json(message)
                return True
        except Exception as e:
            logger.warning(f"Delivery to {player.name} failed: {e}")
        return False

    async def broadcast(
        self,
        room_id: str,
        message: dict[str, Any],
        exclude_player: Optional[str] = None,
        relay: bool = True,
    ) -> int:
        """
        Send a message to every player in a room.

        Messages for unknown rooms are logged and dropped.

        Args:
            room_id: Target room.
            message: JSON-serialisable message.
            exclude_player: Player id to skip (usually the sender).
            relay: Also publish to other servers when a relay is attached.

        Returns:
            Number of players the message was delivered to.
        """
        room = self.rooms.get(room_id)
        if room is None:
            logger.debug(f"Broadcast to unknown room {room_id} ignored")
            return 0

        room.touch()
        delivered = 0
        for player in list(room.players.values()):
            if player.id == exclude_player:
                continue
            if await self._deliver(room_id, player, message):
                delivered += 1

        if relay and self.relay is not None:
            await self.relay.publish_action(room.code, message, exclude_player)
        return delivered

    async def send_to(self, room_id: str, player_id: str, message: dict[str, Any]) -> bool:
        """Send a message to one player. Returns True if delivered."""
        room = self.rooms.get(room_id)
        player = room.get_player(player_id) if room else None
        if player is None:
            logger.debug(f"send_to unknown player {player_id} in room {room_id} ignored")
            return False
        return await self._deliver(room_id, player, message)

    def record_action(self, room_id: str, action_id: str) -> bool:
        """
        Remember a relayed action id.

        Returns:
            False if the id was already seen (duplicate).
        """
        room = self.rooms.get(room_id)
        if room is None:
            return False
        if action_id in room.action_log:
            return False
        room.action_log.append(action_id)
        return True
