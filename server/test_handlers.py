"""
Test suite for WebSocket message handlers.

Tests lobby flows and game action relaying using mock WebSockets and a
real RoomManager.

Run with: pytest test_handlers.py -v
"""

import pytest

from handlers import (
    HANDLERS,
    ConnectionContext,
    handle_create_room,
    handle_game_action,
    handle_get_rooms,
    handle_join_room,
    handle_leave_room,
    handle_start_game,
    handle_sync_reply,
)
from room import RoomManager


# =============================================================================
# Mock helpers
# =============================================================================

class MockWebSocket:
    """Mock WebSocket that collects sent messages."""

    def __init__(self):
        self.messages: list[dict] = []

    async def send_json(self, data: dict):
        self.messages.append(data)

    def last_message(self) -> dict:
        return self.messages[-1] if self.messages else {}

    def messages_of_type(self, msg_type: str) -> list[dict]:
        return [m for m in self.messages if m.get("type") == msg_type]


def make_ctx(player_id="p1", websocket=None):
    """Create a ConnectionContext with sensible defaults."""
    ws = websocket or MockWebSocket()
    return ConnectionContext(websocket=ws, connection_id=f"conn_{player_id}", player_id=player_id)


async def make_room(rm: RoomManager, names=("Ann", "Bob")):
    """Create a room through the handlers; returns the contexts in join order."""
    host = make_ctx("p1")
    await handle_create_room({"player_name": names[0]}, host, room_manager=rm)
    contexts = [host]
    for i, name in enumerate(names[1:], start=2):
        ctx = make_ctx(f"p{i}")
        await handle_join_room({"room_code": host.current_room.code, "player_name": name}, ctx, room_manager=rm)
        contexts.append(ctx)
    return contexts


def uno_call(room_id: str, player_id: str, player: str, action_id: str = "a1") -> dict:
    return {
        "room_id": room_id,
        "action": "UNO_CALL",
        "action_id": action_id,
        "player_name": player,
        "data": {"player_id": player_id, "player": player, "state_version": 3},
    }


# =============================================================================
# Lobby handlers
# =============================================================================

class TestLobby:

    def test_dispatch_table(self):
        assert set(HANDLERS) == {
            "get_rooms", "create_room", "join_room", "leave_room",
            "start_game", "game_action", "sync_reply",
        }

    @pytest.mark.asyncio
    async def test_create_room(self):
        rm = RoomManager()
        ctx = make_ctx()
        await handle_create_room({"player_name": "Ann", "settings": {"jump_in_enabled": True}}, ctx, room_manager=rm)
        msg = ctx.websocket.last_message()
        assert msg["type"] == "room_created"
        assert msg["room"]["host"] == "p1"
        assert msg["room"]["settings"]["jump_in_enabled"]
        assert ctx.current_room is not None

    @pytest.mark.asyncio
    async def test_create_twice_rejected(self):
        rm = RoomManager()
        ctx = make_ctx()
        await handle_create_room({"player_name": "Ann"}, ctx, room_manager=rm)
        await handle_create_room({"player_name": "Ann"}, ctx, room_manager=rm)
        assert ctx.websocket.last_message()["code"] == "already_in_room"
        assert len(rm.rooms) == 1

    @pytest.mark.asyncio
    async def test_join_notifies_others(self):
        rm = RoomManager()
        host, guest = await make_room(rm)
        assert guest.websocket.messages_of_type("room_joined")
        joined = host.websocket.messages_of_type("player_joined")
        assert joined[0]["player_name"] == "Bob"
        assert len(joined[0]["players"]) == 2
        assert not guest.websocket.messages_of_type("player_joined")

    @pytest.mark.asyncio
    async def test_join_unknown_room(self):
        rm = RoomManager()
        ctx = make_ctx("p2")
        await handle_join_room({"room_code": "XXXXXX", "player_name": "Bob"}, ctx, room_manager=rm)
        assert ctx.websocket.last_message() == {"type": "error", "code": "room_not_found", "message": "Room not found"}
        assert ctx.current_room is None

    @pytest.mark.asyncio
    async def test_join_name_taken(self):
        rm = RoomManager()
        host = make_ctx("p1")
        await handle_create_room({"player_name": "Ann"}, host, room_manager=rm)
        ctx = make_ctx("p2")
        await handle_join_room({"room_code": host.current_room.code, "player_name": "Ann"}, ctx, room_manager=rm)
        assert ctx.websocket.last_message()["code"] == "name_taken"

    @pytest.mark.asyncio
    async def test_get_rooms(self):
        rm = RoomManager()
        await make_room(rm)
        ctx = make_ctx("p9")
        await handle_get_rooms({}, ctx, room_manager=rm)
        msg = ctx.websocket.last_message()
        assert msg["type"] == "rooms_list"
        assert len(msg["rooms"]) == 1

    @pytest.mark.asyncio
    async def test_leave_room(self):
        rm = RoomManager()
        host, guest = await make_room(rm)
        await handle_leave_room({}, guest, room_manager=rm)
        assert guest.current_room is None
        assert guest.websocket.last_message() == {"type": "room_left"}
        assert host.websocket.messages_of_type("player_left")

    @pytest.mark.asyncio
    async def test_start_game_broadcast(self):
        rm = RoomManager()
        host, guest = await make_room(rm)
        await handle_start_game({}, host, room_manager=rm)
        assert host.websocket.messages_of_type("game_started")
        assert guest.websocket.messages_of_type("game_started")

    @pytest.mark.asyncio
    async def test_restart_needs_new_game_flag(self):
        rm = RoomManager()
        host, guest = await make_room(rm)
        await handle_start_game({}, host, room_manager=rm)
        await handle_start_game({}, host, room_manager=rm)
        assert host.websocket.last_message()["code"] == "game_already_started"
        await handle_start_game({"new_game": True}, host, room_manager=rm)
        assert len(guest.websocket.messages_of_type("game_started")) == 2

    @pytest.mark.asyncio
    async def test_start_game_not_host(self):
        rm = RoomManager()
        host, guest = await make_room(rm)
        await handle_start_game({}, guest, room_manager=rm)
        assert guest.websocket.last_message()["code"] == "not_host"
        assert not host.current_room.game_started


# =============================================================================
# Game action relay
# =============================================================================

class TestGameAction:

    @pytest.mark.asyncio
    async def test_relayed_to_others_and_confirmed(self):
        rm = RoomManager()
        host, guest, third = await make_room(rm, ("Ann", "Bob", "Cy"))
        room = host.current_room
        await handle_game_action(
            {"type": "game_action", "action_data": uno_call(room.code, "p2", "Bob")}, guest, room_manager=rm
        )
        relayed = [m for m in host.websocket.messages if m.get("action") == "UNO_CALL"]
        assert len(relayed) == 1
        assert relayed[0]["room_id"] == room.id
        assert relayed[0]["data"]["player"] == "Bob"
        assert [m for m in third.websocket.messages if m.get("action") == "UNO_CALL"]
        assert not [m for m in guest.websocket.messages if m.get("action") == "UNO_CALL"]
        assert guest.websocket.last_message() == {"type": "action_confirmed", "action_id": "a1"}

    @pytest.mark.asyncio
    async def test_inline_envelope(self):
        rm = RoomManager()
        host, guest = await make_room(rm)
        message = {"type": "game_action", **uno_call(host.current_room.id, "p2", "Bob")}
        await handle_game_action(message, guest, room_manager=rm)
        assert [m for m in host.websocket.messages if m.get("action") == "UNO_CALL"]

    @pytest.mark.asyncio
    async def test_duplicate_confirmed_not_relayed(self):
        rm = RoomManager()
        host, guest = await make_room(rm)
        envelope = uno_call(host.current_room.id, "p2", "Bob")
        await handle_game_action({"action_data": envelope}, guest, room_manager=rm)
        await handle_game_action({"action_data": envelope}, guest, room_manager=rm)
        assert len([m for m in host.websocket.messages if m.get("action") == "UNO_CALL"]) == 1
        assert len(guest.websocket.messages_of_type("action_confirmed")) == 2

    @pytest.mark.asyncio
    async def test_invalid_envelope(self):
        rm = RoomManager()
        host, guest = await make_room(rm)
        bad = {"room_id": host.current_room.id, "action": "SHUFFLE", "data": {"player_id": "p2"}}
        await handle_game_action({"action_data": bad}, guest, room_manager=rm)
        assert guest.websocket.last_message()["code"] == "invalid_action"

    @pytest.mark.asyncio
    async def test_wrong_room_ignored(self):
        rm = RoomManager()
        host, guest = await make_room(rm)
        before = len(host.websocket.messages)
        await handle_game_action({"action_data": uno_call("other-room", "p2", "Bob")}, guest, room_manager=rm)
        assert len(host.websocket.messages) == before
        assert not guest.websocket.messages_of_type("action_confirmed")

    @pytest.mark.asyncio
    async def test_not_in_room(self):
        rm = RoomManager()
        ctx = make_ctx("p5")
        await handle_game_action({"action_data": uno_call("r", "p5", "Eve")}, ctx, room_manager=rm)
        assert ctx.websocket.last_message()["code"] == "not_in_room"

    @pytest.mark.asyncio
    async def test_request_sync_goes_to_host_only(self):
        rm = RoomManager()
        host, guest, third = await make_room(rm, ("Ann", "Bob", "Cy"))
        request = {
            "room_id": host.current_room.id,
            "action": "REQUEST_SYNC",
            "action_id": "s1",
            "data": {"player_id": "p3", "requester": "p3"},
        }
        await handle_game_action({"action_data": request}, third, room_manager=rm)
        assert [m for m in host.websocket.messages if m.get("action") == "REQUEST_SYNC"]
        assert not [m for m in guest.websocket.messages if m.get("action") == "REQUEST_SYNC"]

    @pytest.mark.asyncio
    async def test_sync_reply_targets_one_player(self):
        rm = RoomManager()
        host, guest, third = await make_room(rm, ("Ann", "Bob", "Cy"))
        snapshot = {
            "room_id": host.current_room.id,
            "action": "GAME_STATE_SYNC",
            "action_id": "g1",
            "data": {"player_id": "p1", "players": ["Ann", "Bob", "Cy"], "state_version": 9},
        }
        await handle_sync_reply({"target_player": "p3", "action_data": snapshot}, host, room_manager=rm)
        assert [m for m in third.websocket.messages if m.get("action") == "GAME_STATE_SYNC"]
        assert not [m for m in guest.websocket.messages if m.get("action") == "GAME_STATE_SYNC"]

    @pytest.mark.asyncio
    async def test_sync_reply_from_non_host_ignored(self):
        rm = RoomManager()
        host, guest = await make_room(rm)
        snapshot = {
            "room_id": host.current_room.id,
            "action": "GAME_STATE_SYNC",
            "data": {"player_id": "p2"},
        }
        await handle_sync_reply({"target_player": "p1", "action_data": snapshot}, guest, room_manager=rm)
        assert not [m for m in host.websocket.messages if m.get("action") == "GAME_STATE_SYNC"]
