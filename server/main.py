"""FastAPI WebSocket relay server for multiplayer UNO."""

import asyncio
import json
import logging
import uuid
from contextlib import asynccontextmanager

from fastapi import FastAPI, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware
import redis.asyncio as redis

from config import config
from constants import ROOM_IDLE_TIMEOUT_MINUTES
from handlers import HANDLERS, ConnectionContext
from logging_config import connection_id_var, player_id_var, room_id_var, setup_logging
from room import RoomManager

# Configure logging based on environment
setup_logging(
    level=config.LOG_LEVEL,
    environment=config.ENVIRONMENT,
)
logger = logging.getLogger(__name__)


# =============================================================================
# Services (initialized in lifespan)
# =============================================================================

_redis_client = None
_pubsub = None
_cleanup_task = None
_server_id = f"uno-{uuid.uuid4().hex[:8]}"

room_manager = RoomManager()


async def _init_redis():
    """Initialize the Redis client and the cross-server relay."""
    global _redis_client, _pubsub
    try:
        _redis_client = redis.from_url(config.REDIS_URL, decode_responses=False)
        await _redis_client.ping()
        logger.info("Redis client connected")

        from stores.pubsub import get_pubsub
        _pubsub = await get_pubsub(_redis_client, _server_id)
        await _pubsub.start()
        await room_manager.attach_relay(_pubsub)
        logger.info("Cross-server relay enabled")
    except Exception as e:
        logger.warning(f"Redis connection failed: {e} - running as a single server")
        _redis_client = None
        _pubsub = None


async def _periodic_room_cleanup():
    """Remove rooms that have been idle for too long."""
    interval = config.ROOM_CLEANUP_INTERVAL_MINUTES * 60
    while True:
        try:
            await asyncio.sleep(interval)
            await room_manager.cleanup_idle_rooms(ROOM_IDLE_TIMEOUT_MINUTES * 60)
        except asyncio.CancelledError:
            break
        except Exception as e:
            logger.error(f"Room cleanup failed: {e}")


async def _close_all_websockets():
    """Close all active WebSocket connections gracefully."""
    for room in list(room_manager.rooms.values()):
        for player in room.players.values():
            if player.websocket:
                try:
                    await player.websocket.close(code=1001, reason="Server shutting down")
                except Exception as e:
                    logger.debug(f"Close failed for {player.name}: {e}")
    logger.info("All WebSocket connections closed")


async def _shutdown_services():
    """Gracefully shut down all services."""
    await _close_all_websockets()

    if _cleanup_task:
        _cleanup_task.cancel()
        try:
            await _cleanup_task
        except asyncio.CancelledError:
            pass
        logger.info("Room cleanup task stopped")

    room_manager.rooms.clear()

    if _pubsub:
        from stores.pubsub import close_pubsub
        await close_pubsub()

    if _redis_client:
        await _redis_client.close()
        logger.info("Redis connection closed")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler for async service initialization."""
    global _cleanup_task

    if config.REDIS_URL:
        await _init_redis()
    else:
        logger.info("REDIS_URL not configured - running as a single server")

    from routers.health import set_health_dependencies
    set_health_dependencies(redis_client=_redis_client, room_manager=room_manager)

    _cleanup_task = asyncio.create_task(_periodic_room_cleanup())
    logger.info(f"UNO server started (environment={config.ENVIRONMENT})")

    yield

    logger.info("Shutdown initiated...")
    await _shutdown_services()
    logger.info("Shutdown complete")


app = FastAPI(
    title="UNO Relay Server",
    debug=config.DEBUG,
    version="1.0.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[config.CLIENT_URL],
    allow_credentials=True,
    allow_methods=["GET", "POST"],
    allow_headers=["*"],
)


# =============================================================================
# Routers
# =============================================================================

from routers.health import router as health_router
app.include_router(health_router)


@app.websocket("/ws")
async def websocket_endpoint(websocket: WebSocket):
    await websocket.accept()

    connection_id = str(uuid.uuid4())
    connection_id_var.set(connection_id)
    player_id_var.set(connection_id)
    logger.debug(f"WebSocket connected as {connection_id}")

    ctx = ConnectionContext(
        websocket=websocket,
        connection_id=connection_id,
        player_id=connection_id,
    )

    # Shared dependencies passed to every handler
    handler_deps = dict(room_manager=room_manager)

    try:
        while True:
            raw = await websocket.receive_text()
            try:
                data = json.loads(raw)
            except json.JSONDecodeError:
                logger.debug(f"Malformed message from {connection_id} ignored")
                continue
            if not isinstance(data, dict):
                logger.debug(f"Non-object message from {connection_id} ignored")
                continue
            handler = HANDLERS.get(data.get("type"))
            if handler:
                await handler(data, ctx, **handler_deps)
                room_id_var.set(ctx.current_room.id if ctx.current_room else None)
            else:
                logger.debug(f"Unknown message type {data.get('type')!r} ignored")
    except WebSocketDisconnect:
        if ctx.current_room:
            await room_manager.leave_room(ctx.current_room.id, ctx.player_id)
        logger.debug(f"WebSocket {connection_id} disconnected")


def run():
    """Run the server using uvicorn."""
    import uvicorn

    logger.info(f"Starting UNO server on {config.HOST}:{config.PORT}")
    logger.info(f"Debug mode: {config.DEBUG}")

    uvicorn.run(
        "main:app",
        host=config.HOST,
        port=config.PORT,
        reload=config.DEBUG,
        log_level=config.LOG_LEVEL.lower(),
    )


if __name__ == "__main__":
    run()
