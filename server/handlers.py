"""WebSocket message handlers for the UNO relay server.

Each handler corresponds to a single message type from the client.
Handlers are dispatched via the HANDLERS dict in main.py.

The relay never runs game rules: game actions are validated as envelopes
and forwarded to the other players in the room, who apply them to their
own state.
"""

from dataclasses import dataclass
from typing import Optional

from fastapi import WebSocket
from pydantic import ValidationError

from models.actions import ActionKind, parse_action
from logging_config import get_logger
from room import Room, RoomError, RoomManager

logger = get_logger(__name__)


@dataclass
class ConnectionContext:
    """State tracked per WebSocket connection."""

    websocket: WebSocket
    connection_id: str
    player_id: str
    player_name: Optional[str] = None
    current_room: Optional[Room] = None


async def send_error(ctx: ConnectionContext, message: str, code: str = "bad_request") -> None:
    await ctx.websocket.send_json({"type": "error", "code": code, "message": message})


def _player_name(data: dict) -> str:
    name = str(data.get("player_name") or "").strip()
    return name[:24] or "Player"


# ---------------------------------------------------------------------------
# Lobby / Room handlers
# ---------------------------------------------------------------------------

async def handle_get_rooms(data: dict, ctx: ConnectionContext, *, room_manager: RoomManager, **kw) -> None:
    await ctx.websocket.send_json({"type": "rooms_list", "rooms": room_manager.list_rooms()})


async def handle_create_room(data: dict, ctx: ConnectionContext, *, room_manager: RoomManager, **kw) -> None:
    if ctx.current_room:
        await send_error(ctx, "You are already in a room", "already_in_room")
        return

    player_name = _player_name(data)
    try:
        max_players = int(data.get("max_players") or 4)
    except (TypeError, ValueError):
        max_players = 4

    room = await room_manager.create_room(
        ctx.player_id,
        player_name,
        ctx.websocket,
        name=data.get("room_name"),
        max_players=max_players,
        settings=data.get("settings") or {},
    )
    ctx.current_room = room
    ctx.player_name = player_name

    await ctx.websocket.send_json({
        "type": "room_created",
        "room": room.to_dict(),
        "room_code": room.code,
        "player_id": ctx.player_id,
    })


async def handle_join_room(data: dict, ctx: ConnectionContext, *, room_manager: RoomManager, **kw) -> None:
    room_code = str(data.get("room_code") or data.get("room_id") or "")
    player_name = _player_name(data)

    try:
        room = await room_manager.join_room(room_code, ctx.player_id, player_name, ctx.websocket)
    except RoomError as e:
        await ctx.websocket.send_json(e.to_message())
        return

    ctx.current_room = room
    ctx.player_name = player_name

    await ctx.websocket.send_json({
        "type": "room_joined",
        "room": room.to_dict(),
        "room_code": room.code,
        "player_id": ctx.player_id,
    })

    await room_manager.broadcast(room.id, {
        "type": "player_joined",
        "player_id": ctx.player_id,
        "player_name": player_name,
        "players": room.player_list(),
    }, exclude_player=ctx.player_id)


async def handle_leave_room(data: dict, ctx: ConnectionContext, *, room_manager: RoomManager, **kw) -> None:
    if not ctx.current_room:
        return
    await room_manager.leave_room(ctx.current_room.id, ctx.player_id)
    ctx.current_room = None
    await ctx.websocket.send_json({"type": "room_left"})


async def handle_start_game(data: dict, ctx: ConnectionContext, *, room_manager: RoomManager, **kw) -> None:
    if not ctx.current_room:
        await send_error(ctx, "You are not in a room", "not_in_room")
        return

    try:
        room = await room_manager.start_game(
            ctx.current_room.id, ctx.player_id, new_game=bool(data.get("new_game"))
        )
    except RoomError as e:
        await ctx.websocket.send_json(e.to_message())
        return

    await room_manager.broadcast(room.id, {
        "type": "game_started",
        "room": room.to_dict(),
    })


# ---------------------------------------------------------------------------
# Game actions
# ---------------------------------------------------------------------------

async def handle_game_action(data: dict, ctx: ConnectionContext, *, room_manager: RoomManager, **kw) -> None:
    """
    Relay a game action envelope to the rest of the room.

    The envelope must name the sender's current room. Duplicate action ids
    are confirmed again but not relayed twice. REQUEST_SYNC goes only to
    the host; everything else goes to every other player.
    """
    room = ctx.current_room
    if not room:
        await send_error(ctx, "You are not in a room", "not_in_room")
        return

    payload = data.get("action_data") or {k: v for k, v in data.items() if k != "type"}
    try:
        envelope = parse_action(payload)
    except ValidationError as e:
        logger.with_context(room_code=room.code, player_id=ctx.player_id).warning(
            f"Invalid game action: {e.error_count()} error(s)"
        )
        await send_error(ctx, "Invalid game action", "invalid_action")
        return

    if envelope.room_id not in (room.id, room.code):
        logger.debug(f"Action for room {envelope.room_id} from {ctx.player_id} ignored")
        return

    confirmation = {"type": "action_confirmed", "action_id": envelope.action_id}
    if not room_manager.record_action(room.id, envelope.action_id):
        await ctx.websocket.send_json(confirmation)
        return

    message = envelope.to_message()
    message["room_id"] = room.id
    if envelope.action == ActionKind.REQUEST_SYNC.value:
        if room.host and room.host != ctx.player_id:
            await room_manager.send_to(room.id, room.host, message)
    else:
        await room_manager.broadcast(room.id, message, exclude_player=ctx.player_id)

    await ctx.websocket.send_json(confirmation)


async def handle_sync_reply(data: dict, ctx: ConnectionContext, *, room_manager: RoomManager, **kw) -> None:
    """Host answers a REQUEST_SYNC with a GAME_STATE_SYNC for one player."""
    room = ctx.current_room
    if not room or room.host != ctx.player_id:
        return
    target = data.get("target_player")
    try:
        envelope = parse_action(data.get("action_data") or {})
    except ValidationError:
        await send_error(ctx, "Invalid game action", "invalid_action")
        return
    if envelope.action != ActionKind.GAME_STATE_SYNC.value or not target:
        return
    message = envelope.to_message()
    message["room_id"] = room.id
    await room_manager.send_to(room.id, target, message)


# ---------------------------------------------------------------------------
# Handler dispatch table
# ---------------------------------------------------------------------------

HANDLERS = {
    "get_rooms": handle_get_rooms,
    "create_room": handle_create_room,
    "join_room": handle_join_room,
    "leave_room": handle_leave_room,
    "start_game": handle_start_game,
    "game_action": handle_game_action,
    "sync_reply": handle_sync_reply,
}
