"""
Cross-server relay of room broadcasts over Redis pub/sub.

Each server only holds the WebSockets of its own players. Every broadcast a
RoomManager makes is also published on the room's channel; the other
servers pick it up and deliver it to the players of that room they hold.

Usage:
    relay = GamePubSub(redis_client, server_id="server-1")
    await relay.start()
    await relay.subscribe("ABCDEF", room_manager._on_relay_message)
    await relay.publish_action("ABCDEF", {"action": "PLAY_CARD", ...})
    await relay.stop()
"""

import asyncio
import json
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Awaitable, Callable, Optional

import redis.asyncio as redis

logger = logging.getLogger(__name__)


class MessageType(str, Enum):
    GAME_ACTION = "game_action"


@dataclass
class PubSubMessage:
    """One relayed message; sender_id lets a server skip its own echoes."""

    type: MessageType
    room_code: str
    data: dict
    sender_id: Optional[str] = None

    def to_json(self) -> str:
        return json.dumps({
            "type": self.type.value,
            "room_code": self.room_code,
            "data": self.data,
            "sender_id": self.sender_id,
        })

    @classmethod
    def from_json(cls, raw: str) -> "PubSubMessage":
        body = json.loads(raw)
        return cls(
            type=MessageType(body["type"]),
            room_code=body["room_code"],
            data=body.get("data") or {},
            sender_id=body.get("sender_id"),
        )


MessageHandler = Callable[[PubSubMessage], Awaitable[None]]


def _text(value) -> str:
    return value.decode() if isinstance(value, bytes) else value


class GamePubSub:
    """Room channels on one Redis connection, with a background listener."""

    CHANNEL_PREFIX = "uno:room:"

    def __init__(self, redis_client: redis.Redis, server_id: str = "default"):
        self.redis = redis_client
        self.server_id = server_id
        self.pubsub = redis_client.pubsub()
        self._handlers: dict[str, list[MessageHandler]] = {}
        self._running = False
        self._task: Optional[asyncio.Task] = None

    def _channel(self, room_code: str) -> str:
        return self.CHANNEL_PREFIX + room_code

    # -------------------------------------------------------------------------
    # Subscriptions
    # -------------------------------------------------------------------------

    async def subscribe(self, room_code: str, handler: MessageHandler) -> None:
        """Register a handler; the Redis channel is joined on first use."""
        channel = self._channel(room_code)
        handlers = self._handlers.setdefault(channel, [])
        if not handlers:
            await self.pubsub.subscribe(channel)
            logger.debug(f"Relay joined {channel}")
        handlers.append(handler)

    async def unsubscribe(self, room_code: str) -> None:
        channel = self._channel(room_code)
        if self._handlers.pop(channel, None) is not None:
            await self.pubsub.unsubscribe(channel)
            logger.debug(f"Relay left {channel}")

    # -------------------------------------------------------------------------
    # Publishing
    # -------------------------------------------------------------------------

    async def publish(self, message: PubSubMessage) -> int:
        """Publish on the room's channel. Returns the Redis receiver count."""
        message.sender_id = self.server_id
        count = await self.redis.publish(self._channel(message.room_code), message.to_json())
        logger.debug(f"Relayed {message.type.value} for room {message.room_code} to {count} receivers")
        return count

    async def publish_action(
        self,
        room_code: str,
        message: dict,
        exclude_player: Optional[str] = None,
    ) -> int:
        """
        Relay one room broadcast.

        Redis failures are logged and reported as zero receivers; local
        delivery has already happened by the time this is called.
        """
        relayed = PubSubMessage(
            type=MessageType.GAME_ACTION,
            room_code=room_code,
            data={"message": message, "exclude_player": exclude_player},
        )
        try:
            return await self.publish(relayed)
        except redis.RedisError as e:
            logger.warning(f"Relay publish for room {room_code} failed: {e}")
            return 0

    # -------------------------------------------------------------------------
    # Listener
    # -------------------------------------------------------------------------

    async def start(self) -> None:
        if self._running:
            return
        self._running = True
        self._task = asyncio.create_task(self._listen())
        logger.info(f"Relay listener started (server {self.server_id})")

    async def stop(self) -> None:
        self._running = False
        task, self._task = self._task, None
        if task:
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
        await self.pubsub.close()
        self._handlers.clear()
        logger.info("Relay listener stopped")

    async def _listen(self) -> None:
        while self._running:
            try:
                raw = await self.pubsub.get_message(ignore_subscribe_messages=True, timeout=1.0)
            except asyncio.CancelledError:
                break
            except redis.RedisError as e:
                logger.error(f"Relay connection error: {e}")
                await asyncio.sleep(1)
                continue
            if raw and raw.get("type") == "message":
                await self._handle_message(raw)

    async def _handle_message(self, raw: dict) -> None:
        """Decode one Redis message and hand it to the channel's handlers."""
        try:
            msg = PubSubMessage.from_json(_text(raw["data"]))
        except (KeyError, TypeError, ValueError) as e:
            logger.warning(f"Unreadable relay message ignored: {e}")
            return

        if msg.sender_id == self.server_id:
            return

        for handler in list(self._handlers.get(_text(raw["channel"]), [])):
            try:
                await handler(msg)
            except Exception as e:
                logger.error(f"Relay handler failed for room {msg.room_code}: {e}", exc_info=True)


_pubsub: Optional[GamePubSub] = None


async def get_pubsub(redis_client: redis.Redis, server_id: str = "default") -> GamePubSub:
    """Return the process-wide relay, creating it on first call."""
    global _pubsub
    if _pubsub is None:
        _pubsub = GamePubSub(redis_client, server_id)
    return _pubsub


async def close_pubsub() -> None:
    global _pubsub
    if _pubsub is not None:
        await _pubsub.stop()
        _pubsub = None
