"""
Health check endpoints for the relay server.

Provides:
- /health - Basic liveness check (is the app running?)
- /ready - Readiness check (Redis relay reachable, room counts)
"""

import json
import logging
from datetime import datetime, timezone

from fastapi import APIRouter, Response

logger = logging.getLogger(__name__)

router = APIRouter(tags=["health"])

# Service references (set during app initialization)
_redis_client = None
_room_manager = None


def set_health_dependencies(redis_client=None, room_manager=None):
    """Set dependencies for health checks."""
    global _redis_client, _room_manager
    _redis_client = redis_client
    _room_manager = room_manager


@router.get("/health")
async def health_check():
    """
    Basic liveness check - is the app running?

    This endpoint should always return 200 if the process is alive.
    """
    return {
        "status": "ok",
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }


@router.get("/ready")
async def readiness_check():
    """
    Readiness check - can the app relay games?

    Redis is optional; when configured and unreachable the server is
    degraded (503) because actions no longer reach other instances.
    """
    checks = {}
    overall_healthy = True

    if _redis_client is not None:
        try:
            await _redis_client.ping()
            checks["redis"] = {"status": "ok"}
        except Exception as e:
            logger.warning(f"Redis health check failed: {e}")
            checks["redis"] = {"status": "error", "message": str(e)}
            overall_healthy = False
    else:
        checks["redis"] = {"status": "not_configured"}

    if _room_manager is not None:
        rooms = _room_manager.rooms
        checks["rooms"] = {
            "status": "ok",
            "active_rooms": len(rooms),
            "games_in_progress": sum(1 for r in rooms.values() if r.game_started),
            "total_players": sum(len(r.players) for r in rooms.values()),
        }

    status_code = 200 if overall_healthy else 503
    return Response(
        content=json.dumps({
            "status": "ok" if overall_healthy else "degraded",
            "checks": checks,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }),
        status_code=status_code,
        media_type="application/json",
    )
