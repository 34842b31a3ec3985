"""
Centralized configuration for the UNO relay server and game core.

Configuration is loaded from (in order of precedence):
1. Environment variables
2. .env file (if exists)
3. Default values

Usage:
    from config import config
    print(config.PORT)
    print(config.card_values)
"""

import os
from dataclasses import dataclass, field
from pathlib import Path

from dotenv import load_dotenv

env_path = Path(__file__).parent.parent / ".env"
if env_path.exists():
    load_dotenv(env_path)


def get_env(key: str, default: str = "") -> str:
    """Get environment variable with default."""
    return os.environ.get(key, default)


def get_env_bool(key: str, default: bool = False) -> bool:
    """Get boolean environment variable."""
    val = os.environ.get(key, "").lower()
    if val in ("true", "1", "yes", "on"):
        return True
    if val in ("false", "0", "no", "off"):
        return False
    return default


def get_env_int(key: str, default: int = 0) -> int:
    """Get integer environment variable."""
    try:
        return int(os.environ.get(key, str(default)))
    except ValueError:
        return default


def get_env_float(key: str, default: float = 0.0) -> float:
    """Get float environment variable."""
    try:
        return float(os.environ.get(key, str(default)))
    except ValueError:
        return default


@dataclass
class CardValues:
    """Card point values used when scoring a finished round."""
    SKIP: int = 20
    REVERSE: int = 20
    DRAW2: int = 20
    WILD: int = 50
    WILD4: int = 50

    # Number cards score face value times this multiplier
    NUMBER_MULTIPLIER: int = 1

    def to_dict(self) -> dict[str, int]:
        """Get action card values keyed by card value string."""
        return {
            "skip": self.SKIP,
            "reverse": self.REVERSE,
            "draw2": self.DRAW2,
            "wild": self.WILD,
            "wild4": self.WILD4,
        }


@dataclass
class GameDefaults:
    """Default game settings."""
    points_to_win: int = 500
    hand_size: int = 7
    cpu_difficulty: str = "medium"  # "easy", "medium", or "hard"
    stacking_enabled: bool = False
    unlimited_draw_enabled: bool = False
    force_play_enabled: bool = False
    jump_in_enabled: bool = False


@dataclass
class SyncTimings:
    """Replication timers, in seconds."""
    uno_grace: float = 5.0
    sync_interval: float = 10.0
    sync_timeout: float = 5.0
    send_retry: float = 0.5
    cpu_turn_delay: float = 1.2


@dataclass
class ServerConfig:
    """Server configuration."""
    HOST: str = "0.0.0.0"
    PORT: int = 3001
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"
    ENVIRONMENT: str = "development"

    # Redis relay for multi-server deployments (empty disables it)
    REDIS_URL: str = ""

    # CORS origin of the web client
    CLIENT_URL: str = "http://localhost:3000"

    # Room settings
    MAX_PLAYERS_PER_ROOM: int = 4
    ROOM_CODE_LENGTH: int = 6
    ROOM_IDLE_TIMEOUT_MINUTES: int = 120
    ROOM_CLEANUP_INTERVAL_MINUTES: int = 30
    ACTION_LOG_SIZE: int = 100

    # Card values
    card_values: CardValues = field(default_factory=CardValues)

    # Game defaults
    game_defaults: GameDefaults = field(default_factory=GameDefaults)

    # Replication timers
    timings: SyncTimings = field(default_factory=SyncTimings)

    @classmethod
    def from_env(cls) -> "ServerConfig":
        """Load configuration from environment variables."""
        return cls(
            HOST=get_env("HOST", "0.0.0.0"),
            PORT=get_env_int("PORT", 3001),
            DEBUG=get_env_bool("DEBUG", False),
            LOG_LEVEL=get_env("LOG_LEVEL", "INFO"),
            ENVIRONMENT=get_env("ENVIRONMENT", "development"),
            REDIS_URL=get_env("REDIS_URL", ""),
            CLIENT_URL=get_env("CLIENT_URL", "http://localhost:3000"),
            MAX_PLAYERS_PER_ROOM=get_env_int("MAX_PLAYERS_PER_ROOM", 4),
            ROOM_CODE_LENGTH=get_env_int("ROOM_CODE_LENGTH", 6),
            ROOM_IDLE_TIMEOUT_MINUTES=get_env_int("ROOM_IDLE_TIMEOUT_MINUTES", 120),
            ROOM_CLEANUP_INTERVAL_MINUTES=get_env_int("ROOM_CLEANUP_INTERVAL_MINUTES", 30),
            ACTION_LOG_SIZE=get_env_int("ACTION_LOG_SIZE", 100),
            card_values=CardValues(
                SKIP=get_env_int("CARD_SKIP", 20),
                REVERSE=get_env_int("CARD_REVERSE", 20),
                DRAW2=get_env_int("CARD_DRAW2", 20),
                WILD=get_env_int("CARD_WILD", 50),
                WILD4=get_env_int("CARD_WILD4", 50),
                NUMBER_MULTIPLIER=get_env_int("CARD_NUMBER_MULTIPLIER", 1),
            ),
            game_defaults=GameDefaults(
                points_to_win=get_env_int("DEFAULT_POINTS_TO_WIN", 500),
                hand_size=get_env_int("DEFAULT_HAND_SIZE", 7),
                cpu_difficulty=get_env("DEFAULT_CPU_DIFFICULTY", "medium"),
                stacking_enabled=get_env_bool("DEFAULT_STACKING", False),
                unlimited_draw_enabled=get_env_bool("DEFAULT_UNLIMITED_DRAW", False),
                force_play_enabled=get_env_bool("DEFAULT_FORCE_PLAY", False),
                jump_in_enabled=get_env_bool("DEFAULT_JUMP_IN", False),
            ),
            timings=SyncTimings(
                uno_grace=get_env_float("UNO_GRACE_SECONDS", 5.0),
                sync_interval=get_env_float("SYNC_INTERVAL_SECONDS", 10.0),
                sync_timeout=get_env_float("SYNC_TIMEOUT_SECONDS", 5.0),
                send_retry=get_env_float("SEND_RETRY_SECONDS", 0.5),
                cpu_turn_delay=get_env_float("CPU_TURN_DELAY_SECONDS", 1.2),
            ),
        )


# Global config instance - loaded once at module import
config = ServerConfig.from_env()


def reload_config() -> ServerConfig:
    """Reload configuration from environment (useful for testing)."""
    global config
    config = ServerConfig.from_env()
    return config
